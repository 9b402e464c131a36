"""Shared validation for policy deployment requests.

Callers submit the deployment form as a dictionary. These validators check
every field before anything is sent to the network and build the chain-ready
PolicyDeployment.

On validation failure, raise `PolicyValidationError` so the API can return
HTTP 422 with structured `field_errors`.
"""

from __future__ import annotations

import time
from decimal import Decimal, InvalidOperation, localcontext
from typing import Any, Dict, List, Optional

from web3 import Web3

from src.integrations.contracts.errors import PolicyValidationError
from src.integrations.contracts.interfaces import (
    ComparisonOperator,
    GeoPoint,
    PolicyDeployment,
    SensorCondition,
    is_zero_address,
)

MAX_SENSOR_CONDITIONS = 2
# Half the equator; no geofence needs more.
MAX_RADIUS_METERS = 20_037_508

# Constructor argument ranges: uint256 amounts and expiry, int256 thresholds.
UINT256_MAX = 2**256 - 1
INT256_MIN = -(2**255)
INT256_MAX = 2**255 - 1

_OPERATORS = {
    "at_most": ComparisonOperator.AT_MOST,
    "atmost": ComparisonOperator.AT_MOST,
    "<=": ComparisonOperator.AT_MOST,
    "at_least": ComparisonOperator.AT_LEAST,
    "atleast": ComparisonOperator.AT_LEAST,
    ">=": ComparisonOperator.AT_LEAST,
}


def _as_str(v: Any) -> str:
    return "" if v is None else str(v)


def _strip(v: Any) -> str:
    return _as_str(v).strip()


def add_error(errors: Dict[str, str], field: str, message: str) -> None:
    if field not in errors:
        errors[field] = message


def validate_address(payload: Dict[str, Any], field: str, errors: Dict[str, str], *, label: str) -> str:
    raw = _strip(payload.get(field))
    if not raw:
        add_error(errors, field, f"{label} is required")
        return raw
    if not Web3.is_address(raw):
        add_error(errors, field, f"{label} is not a valid address")
        return raw
    if is_zero_address(raw):
        add_error(errors, field, f"{label} cannot be the zero address")
        return raw
    return Web3.to_checksum_address(raw)


def parse_decimal(raw: Any) -> Optional[Decimal]:
    """Parse user-entered numbers; a comma is accepted as decimal separator."""
    s = _strip(raw).replace(",", ".")
    if not s:
        return None
    try:
        value = Decimal(s)
    except InvalidOperation:
        return None
    if not value.is_finite():
        return None
    return value


def parse_token_amount(payload: Dict[str, Any], field: str, errors: Dict[str, str], *, decimals: int, label: str) -> int:
    """Validate a positive token amount and return it scaled to the token's precision."""
    raw = payload.get(field)
    if raw is None or _strip(raw) == "":
        add_error(errors, field, f"{label} is required")
        return 0
    value = parse_decimal(raw)
    if value is None:
        add_error(errors, field, f"{label} must be a number")
        return 0
    if value <= 0:
        add_error(errors, field, f"{label} must be greater than 0")
        return 0
    with localcontext() as ctx:
        # scaleb rounds to the context precision; keep every entered digit.
        ctx.prec = max(ctx.prec, len(value.as_tuple().digits))
        scaled = value.scaleb(decimals)
    if scaled != scaled.to_integral_value():
        add_error(errors, field, f"{label} has more than {decimals} decimal places")
        return 0
    if scaled > UINT256_MAX:
        add_error(errors, field, f"{label} is too large")
        return 0
    return int(scaled)


def parse_coordinate(payload: Dict[str, Any], field: str, errors: Dict[str, str], *, low: float, high: float, label: str) -> float:
    value = parse_decimal(payload.get(field))
    if value is None:
        add_error(errors, field, f"{label} must be a valid number between {low:g} and {high:g}")
        return 0.0
    if value < Decimal(str(low)) or value > Decimal(str(high)):
        add_error(errors, field, f"{label} must be between {low:g} and {high:g}")
    return float(value)


def parse_radius(payload: Dict[str, Any], field: str, errors: Dict[str, str]) -> float:
    """Radius in whole metres, at least 1; the contract stores it as an integer."""
    value = parse_decimal(payload.get(field))
    if value is None or value < 1 or value != value.to_integral_value():
        add_error(errors, field, "Radius must be a whole number of metres, at least 1")
        return 0.0
    if value > MAX_RADIUS_METERS:
        add_error(errors, field, f"Radius cannot exceed {MAX_RADIUS_METERS} metres")
        return 0.0
    return float(int(value))


def parse_expiration(payload: Dict[str, Any], field: str, errors: Dict[str, str], *, now: int) -> int:
    raw = _strip(payload.get(field))
    if not raw:
        add_error(errors, field, "Expiration timestamp is required")
        return 0
    try:
        value = int(raw)
    except ValueError:
        add_error(errors, field, "Expiration timestamp must be a whole number of seconds")
        return 0
    if value <= now:
        add_error(errors, field, "Expiration must be in the future")
    elif value > UINT256_MAX:
        add_error(errors, field, "Expiration timestamp is too large")
    return value


def parse_sensor_conditions(
    payload: Dict[str, Any], field: str, errors: Dict[str, str], *, geofence: GeoPoint
) -> List[SensorCondition]:
    items = payload.get(field)
    if not isinstance(items, list) or not items:
        add_error(errors, field, "At least one sensor condition is required")
        return []
    if len(items) > MAX_SENSOR_CONDITIONS:
        add_error(errors, field, f"At most {MAX_SENSOR_CONDITIONS} sensor conditions are allowed")
        return []

    conditions: List[SensorCondition] = []
    seen_topics = set()
    for index, item in enumerate(items):
        prefix = f"{field}[{index}]"
        if not isinstance(item, dict):
            add_error(errors, prefix, "Sensor condition must be an object")
            continue

        topic = _strip(item.get("sensor_topic"))
        if not topic:
            add_error(errors, f"{prefix}.sensor_topic", "Sensor topic is required")
            continue
        if topic in seen_topics:
            add_error(errors, field, f"Sensor topic {topic} is used by more than one condition")
            continue
        seen_topics.add(topic)

        operator = _OPERATORS.get(_strip(item.get("operator")).lower())
        if operator is None:
            add_error(errors, f"{prefix}.operator", "Operator must be at_most or at_least")
            continue

        threshold = parse_decimal(item.get("threshold"))
        if threshold is None or threshold != threshold.to_integral_value():
            add_error(errors, f"{prefix}.threshold", "Threshold must be a whole number")
            continue
        if not INT256_MIN <= threshold <= INT256_MAX:
            add_error(errors, f"{prefix}.threshold", "Threshold is out of range")
            continue

        conditions.append(
            SensorCondition(sensor_topic=topic, operator=operator, threshold=int(threshold), geofence=geofence)
        )
    return conditions


def validate_policy_payload(
    payload: Dict[str, Any],
    *,
    issuer_wallet: str,
    token_decimals: int = 18,
    now: Optional[int] = None,
) -> PolicyDeployment:
    """Validate a deployment form and build the constructor parameters.

    Raises:
        PolicyValidationError: with one message per offending field.
    """
    errors: Dict[str, str] = {}
    now = int(time.time()) if now is None else now

    insured = validate_address(payload, "insured_wallet", errors, label="Insured wallet")
    premium = parse_token_amount(payload, "premium_amount", errors, decimals=token_decimals, label="Premium amount")
    payout = parse_token_amount(payload, "payout_amount", errors, decimals=token_decimals, label="Payout amount")
    token = validate_address(payload, "token_address", errors, label="Token address")
    expiration = parse_expiration(payload, "expiration_timestamp", errors, now=now)

    latitude = parse_coordinate(payload, "latitude", errors, low=-90, high=90, label="Latitude")
    longitude = parse_coordinate(payload, "longitude", errors, low=-180, high=180, label="Longitude")
    radius = parse_radius(payload, "radius", errors)
    geofence = GeoPoint(latitude=latitude, longitude=longitude, radius_meters=radius)

    conditions = parse_sensor_conditions(payload, "sensor_conditions", errors, geofence=geofence)

    raise_if_errors(errors)
    return PolicyDeployment(
        insured_wallet=insured,
        issuer_wallet=Web3.to_checksum_address(issuer_wallet),
        premium_amount_scaled=premium,
        payout_amount_scaled=payout,
        token_address=token,
        sensor_conditions=tuple(conditions),
        geofence=geofence,
        expiration_timestamp=expiration,
    )


def raise_if_errors(errors: Dict[str, str], message: str = "Please correct the highlighted fields") -> None:
    if errors:
        raise PolicyValidationError(field_errors=errors, message=message)
