"""ABI fragments for the contract surfaces this client consumes."""

from __future__ import annotations

from typing import Any, Dict, List

ABI = List[Dict[str, Any]]


def _fn(name: str, inputs: ABI = (), outputs: ABI = (), mutability: str = "nonpayable") -> Dict[str, Any]:
    return {
        "type": "function",
        "name": name,
        "inputs": list(inputs),
        "outputs": list(outputs),
        "stateMutability": mutability,
    }


def _arg(name: str, type_: str, components: ABI = None) -> Dict[str, Any]:
    arg: Dict[str, Any] = {"name": name, "type": type_}
    if components:
        arg["components"] = list(components)
    return arg


_SENSOR_CONDITION = [
    _arg("sensorTopic", "string"),
    _arg("operator", "uint8"),
    _arg("threshold", "int256"),
    _arg("query", "string"),
]

_GEOFENCE = [
    _arg("latitudeE6", "int256"),
    _arg("longitudeE6", "int256"),
    _arg("radiusMeters", "uint256"),
]


USER_COMPANY_REGISTRY_ABI: ABI = [
    _fn("getIndividualWalletInfoAddress", [_arg("wallet", "address")], [_arg("", "address")], "view"),
    _fn("registerAndCreateIndividualWalletInfo"),
    _fn("batchUpdateExpiredPolicies", [_arg("policies", "address[]")]),
]

INDIVIDUAL_WALLET_INFO_ABI: ABI = [
    _fn("getWalletType", outputs=[_arg("", "uint8")], mutability="view"),
    _fn("setWalletType", [_arg("walletType", "uint8")]),
    _fn("addSmartInsuranceContract", [_arg("policy", "address")]),
    _fn("getSmartInsuranceContracts", outputs=[_arg("", "address[]")], mutability="view"),
    _fn("getActiveSmartInsurances", outputs=[_arg("", "address[]")], mutability="view"),
    _fn("getClosedSmartInsurances", outputs=[_arg("", "address[]")], mutability="view"),
]

SMART_INSURANCE_ABI: ABI = [
    {
        "type": "constructor",
        "stateMutability": "nonpayable",
        "inputs": [
            _arg("userWallet", "address"),
            _arg("companyWallet", "address"),
            _arg("premiumAmount", "uint256"),
            _arg("payoutAmount", "uint256"),
            _arg("tokenAddress", "address"),
            _arg("sensorConditions", "tuple[]", _SENSOR_CONDITION),
            _arg("geofence", "tuple", _GEOFENCE),
            _arg("expirationTimestamp", "uint256"),
        ],
    },
    _fn("userWallet", outputs=[_arg("", "address")], mutability="view"),
    _fn("companyWallet", outputs=[_arg("", "address")], mutability="view"),
    _fn("premiumAmount", outputs=[_arg("", "uint256")], mutability="view"),
    _fn("payoutAmount", outputs=[_arg("", "uint256")], mutability="view"),
    _fn("tokenAddress", outputs=[_arg("", "address")], mutability="view"),
    _fn("getSensorConditions", outputs=[_arg("", "tuple[]", _SENSOR_CONDITION)], mutability="view"),
    _fn("geofence", outputs=[_arg("", "tuple", _GEOFENCE)], mutability="view"),
    _fn("expirationTimestamp", outputs=[_arg("", "uint256")], mutability="view"),
    _fn("currentStatus", outputs=[_arg("", "uint8")], mutability="view"),
    _fn("payPremium"),
    _fn("depositForCreation"),
    _fn("executePayout"),
    _fn("cancelPolicy"),
]

ERC20_ABI: ABI = [
    _fn("approve", [_arg("spender", "address"), _arg("amount", "uint256")], [_arg("", "bool")]),
    _fn("decimals", outputs=[_arg("", "uint8")], mutability="view"),
]

POLICY_DETAIL_GETTERS = (
    "userWallet",
    "companyWallet",
    "premiumAmount",
    "payoutAmount",
    "tokenAddress",
    "getSensorConditions",
    "geofence",
    "expirationTimestamp",
    "currentStatus",
)

POLICY_ACTIONS = ("payPremium", "depositForCreation", "executePayout", "cancelPolicy")
