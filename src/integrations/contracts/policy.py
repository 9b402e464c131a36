"""
Policy contracts.

Defines the wire shapes exchanged with the policy contract and with the
off-chain sensor evaluator:
- the geo query attached to every sensor condition (JSON string stored on-chain)
- the tuple layout of sensor conditions and geofence passed to the constructor

The geo query JSON is read by an external evaluating service, so its shape is a
versioned contract: change it only by adding a new serializer version.
"""

from __future__ import annotations

import json
from typing import Any, Callable, Dict, List, Tuple

from pydantic import BaseModel, Field

from .interfaces import ComparisonOperator, GeoPoint, SensorCondition

GEO_QUERY_WIRE_VERSION = 1

# Coordinates are stored on-chain as fixed-point integers.
COORDINATE_SCALE = 10**6


class GeoGeometry(BaseModel):
    type: str = "Point"
    coordinates: List[float]


class GeoProperties(BaseModel):
    radius: float


class GeoFeature(BaseModel):
    type: str = "Feature"
    geometry: GeoGeometry
    properties: GeoProperties


class GeoQueryContract(BaseModel):
    """Version 1 evaluator query: a topic plus a GeoJSON point with radius."""

    topic: str
    geo: GeoFeature = Field(...)


def _geo_query_v1(topic: str, point: GeoPoint) -> str:
    query = GeoQueryContract(
        topic=topic,
        geo=GeoFeature(
            geometry=GeoGeometry(coordinates=[point.latitude, point.longitude]),
            properties=GeoProperties(radius=point.radius_meters),
        ),
    )
    return json.dumps(query.model_dump(), separators=(",", ":"))


_GEO_QUERY_SERIALIZERS: Dict[int, Callable[[str, GeoPoint], str]] = {
    1: _geo_query_v1,
}


def serialize_geo_query(condition: SensorCondition, version: int = GEO_QUERY_WIRE_VERSION) -> str:
    try:
        serializer = _GEO_QUERY_SERIALIZERS[version]
    except KeyError:
        raise ValueError(f"Unsupported geo query wire version: {version}") from None
    return serializer(condition.sensor_topic, condition.geofence)


def parse_geo_query(raw: str) -> Tuple[str, GeoPoint]:
    query = GeoQueryContract.model_validate_json(raw)
    lat, lon = query.geo.geometry.coordinates[:2]
    return query.topic, GeoPoint(latitude=lat, longitude=lon, radius_meters=query.geo.properties.radius)


def encode_geofence(point: GeoPoint) -> Tuple[int, int, int]:
    return (
        int(round(point.latitude * COORDINATE_SCALE)),
        int(round(point.longitude * COORDINATE_SCALE)),
        int(round(point.radius_meters)),
    )


def decode_geofence(raw: Any) -> GeoPoint:
    lat, lon, radius = raw
    return GeoPoint(
        latitude=int(lat) / COORDINATE_SCALE,
        longitude=int(lon) / COORDINATE_SCALE,
        radius_meters=float(radius),
    )


def encode_sensor_condition(condition: SensorCondition) -> Tuple[str, int, int, str]:
    return (
        condition.sensor_topic,
        int(condition.operator),
        int(condition.threshold),
        serialize_geo_query(condition),
    )


def decode_sensor_condition(raw: Any) -> SensorCondition:
    topic, operator, threshold, query = raw
    _, point = parse_geo_query(query)
    return SensorCondition(
        sensor_topic=topic,
        operator=ComparisonOperator(int(operator)),
        threshold=int(threshold),
        geofence=point,
    )
