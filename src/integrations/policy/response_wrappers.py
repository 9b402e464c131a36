from __future__ import annotations

from decimal import Decimal
from typing import Any, Dict, Optional

from web3 import Web3

from src.integrations.contracts.interfaces import PolicyDetail, PolicyStatus
from src.integrations.contracts.policy import decode_geofence, decode_sensor_condition


class IntegrationResponseError(ValueError):
    def __init__(self, message: str, *, payload: Optional[Dict[str, Any]] = None) -> None:
        super().__init__(message)
        self.payload = payload or {}


def normalize_policy_detail(address: str, raw: Dict[str, Any], *, token_decimals: int = 18) -> PolicyDetail:
    """Turn the raw policy getters into a PolicyDetail with human-unit amounts."""
    status = _map_policy_status(_required(raw, "currentStatus"), raw)
    try:
        conditions = [decode_sensor_condition(item) for item in _required(raw, "getSensorConditions")]
        geofence = decode_geofence(_required(raw, "geofence"))
    except (TypeError, ValueError) as exc:
        raise IntegrationResponseError(f"Malformed sensor data for policy {address}: {exc}", payload=raw) from exc

    return PolicyDetail(
        address=Web3.to_checksum_address(address),
        issuer_wallet=_address(raw, "companyWallet"),
        insured_wallet=_address(raw, "userWallet"),
        premium_amount=format_units(_required(raw, "premiumAmount"), token_decimals),
        payout_amount=format_units(_required(raw, "payoutAmount"), token_decimals),
        token_address=_address(raw, "tokenAddress"),
        sensor_conditions=conditions,
        geofence=geofence,
        expiration_timestamp=int(_required(raw, "expirationTimestamp")),
        status=status,
    )


def format_units(value: Any, decimals: int) -> Decimal:
    try:
        scaled = int(value)
    except (TypeError, ValueError) as exc:
        raise IntegrationResponseError(f"Invalid token amount: {value!r}") from exc
    return Decimal(scaled).scaleb(-decimals).normalize()


def _required(data: Dict[str, Any], key: str) -> Any:
    value = data.get(key)
    if value is None:
        raise IntegrationResponseError(f"Missing required field: {key}", payload=data)
    return value


def _address(data: Dict[str, Any], key: str) -> str:
    value = _required(data, key)
    if not Web3.is_address(value):
        raise IntegrationResponseError(f"Field {key} is not an address: {value!r}", payload=data)
    return Web3.to_checksum_address(value)


def _map_policy_status(raw_status: Any, data: Dict[str, Any]) -> PolicyStatus:
    try:
        return PolicyStatus(int(raw_status))
    except (TypeError, ValueError) as exc:
        raise IntegrationResponseError(f"Unsupported policy status code {raw_status!r}", payload=data) from exc
