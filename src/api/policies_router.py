"""
API endpoints for policy deployment, queries and lifecycle actions.
"""

from decimal import Decimal
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Body, Depends, HTTPException
from pydantic import BaseModel

from src.integrations.contracts.interfaces import DeploymentOutcome, PolicyDetail, PolicyFilter, SensorCondition
from src.integrations.policy.policy_queries import partition_expired
from src.wallet.dependencies import get_services
from src.wallet.session import SessionServices

api = APIRouter()


class RetryBindingRequest(BaseModel):
    insured_wallet: str
    issuer_bound: bool = False
    insured_bound: bool = False


def _amount(value: Decimal) -> str:
    return format(value, "f")


def _condition_to_dict(condition: SensorCondition) -> Dict[str, Any]:
    return {
        "sensor_topic": condition.sensor_topic,
        "operator": condition.operator.name.lower(),
        "threshold": condition.threshold,
    }


def policy_detail_to_dict(detail: PolicyDetail) -> Dict[str, Any]:
    return {
        "address": detail.address,
        "issuer_wallet": detail.issuer_wallet,
        "insured_wallet": detail.insured_wallet,
        "premium_amount": _amount(detail.premium_amount),
        "payout_amount": _amount(detail.payout_amount),
        "token_address": detail.token_address,
        "sensor_conditions": [_condition_to_dict(c) for c in detail.sensor_conditions],
        "geofence": {
            "latitude": detail.geofence.latitude,
            "longitude": detail.geofence.longitude,
            "radius": detail.geofence.radius_meters,
        },
        "expiration_timestamp": detail.expiration_timestamp,
        "status": detail.status.name.lower(),
        "status_code": int(detail.status),
    }


def outcome_to_dict(outcome: DeploymentOutcome) -> Dict[str, Any]:
    return {
        "policy_address": outcome.policy_address,
        "issuer_bound": outcome.issuer_bound,
        "insured_bound": outcome.insured_bound,
        "complete": outcome.complete,
    }


@api.post("/policies", tags=["Policies"])
async def deploy_policy(payload: Dict[str, Any] = Body(...), services: SessionServices = Depends(get_services)):
    outcome = await services.deployment.deploy(payload)
    return outcome_to_dict(outcome)


@api.post("/policies/{policy_address}/bindings", tags=["Policies"])
async def retry_policy_binding(
    policy_address: str,
    request: RetryBindingRequest,
    services: SessionServices = Depends(get_services),
):
    outcome = DeploymentOutcome(
        policy_address=policy_address,
        issuer_bound=request.issuer_bound,
        insured_bound=request.insured_bound,
    )
    outcome = await services.deployment.retry_binding(policy_address, request.insured_wallet, outcome)
    return outcome_to_dict(outcome)


@api.get("/policies", tags=["Policies"])
async def list_policies(
    filter: PolicyFilter = PolicyFilter.ALL,
    wallet: Optional[str] = None,
    services: SessionServices = Depends(get_services),
):
    owner = wallet or services.session.address
    addresses = await services.queries.list_policies(owner, filter)
    details = await services.queries.get_policy_details(addresses)
    expired, others = partition_expired(details)
    return {
        "wallet": owner,
        "filter": filter.value,
        "policies": [policy_detail_to_dict(d) for d in details],
        "expired": [d.address for d in expired],
        "open_or_settled": [d.address for d in others],
    }


@api.get("/policies/{policy_address}", tags=["Policies"])
async def get_policy(policy_address: str, services: SessionServices = Depends(get_services)):
    detail = await services.queries.get_policy_detail(policy_address)
    if detail is None:
        raise HTTPException(status_code=404, detail="Policy not found")
    return policy_detail_to_dict(detail)


@api.post("/policies/expired/refresh", tags=["Policies"])
async def refresh_expired(services: SessionServices = Depends(get_services)):
    submitted: List[str] = await services.queries.update_expired(services.session.address)
    return {"submitted": submitted, "count": len(submitted)}


@api.post("/policies/{policy_address}/premium", tags=["Lifecycle"])
async def pay_premium(policy_address: str, services: SessionServices = Depends(get_services)):
    return {"transactions": await services.lifecycle.pay_premium(policy_address)}


@api.post("/policies/{policy_address}/funding", tags=["Lifecycle"])
async def fund_payout(policy_address: str, services: SessionServices = Depends(get_services)):
    return {"transactions": await services.lifecycle.fund_payout(policy_address)}


@api.post("/policies/{policy_address}/payout", tags=["Lifecycle"])
async def execute_payout(policy_address: str, services: SessionServices = Depends(get_services)):
    return {"transactions": [await services.lifecycle.execute_payout(policy_address)]}


@api.post("/policies/{policy_address}/cancel", tags=["Lifecycle"])
async def cancel_policy(policy_address: str, services: SessionServices = Depends(get_services)):
    return {"transactions": [await services.lifecycle.cancel_policy(policy_address)]}
