"""
API endpoints for the wallet session and role registration.
"""

from typing import Any, Dict

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from src.integrations.contracts.errors import PolicyValidationError
from src.integrations.contracts.interfaces import WalletRole
from src.integrations.contracts.session import WalletSession
from src.wallet.dependencies import get_services, get_session_manager
from src.wallet.flows.role_registration import RegistrationSession
from src.wallet.session import SessionManager, SessionServices

api = APIRouter()


class AccountChangedRequest(BaseModel):
    address: str
    chain_id: int = Field(..., gt=0)


class RoleSelectionRequest(BaseModel):
    role: str = Field(..., description="user or company")


def session_to_dict(session: WalletSession) -> Dict[str, Any]:
    return {
        "connected": session.connected,
        "address": session.address,
        "chain_id": session.chain_id,
        "identity_address": session.identity_address,
        "role": session.on_chain_role.label if session.on_chain_role is not None else None,
        "binding": (
            {
                "registry_address": session.binding.registry_address,
                "token_address": session.binding.token_address,
                "insurance_gateway_address": session.binding.insurance_gateway_address,
            }
            if session.binding
            else None
        ),
    }


def registration_to_dict(registration: RegistrationSession) -> Dict[str, Any]:
    return {
        "wallet": registration.wallet,
        "role": registration.target_role.label,
        "step": registration.step.value,
        "history": [step.value for step in registration.history],
        "identity_address": registration.identity_address,
        "transactions": list(registration.transactions),
    }


@api.post("/wallet/connect", tags=["Wallet"])
async def connect_wallet(manager: SessionManager = Depends(get_session_manager)):
    session = await manager.connect()
    return session_to_dict(session)


@api.post("/wallet/disconnect", tags=["Wallet"])
async def disconnect_wallet(manager: SessionManager = Depends(get_session_manager)):
    await manager.disconnect()
    return session_to_dict(manager.session)


@api.get("/wallet/session", tags=["Wallet"])
async def get_wallet_session(manager: SessionManager = Depends(get_session_manager)):
    return session_to_dict(manager.session)


@api.post("/wallet/account-changed", tags=["Wallet"])
async def account_changed(request: AccountChangedRequest, manager: SessionManager = Depends(get_session_manager)):
    session = await manager.handle_account_changed(request.address, request.chain_id)
    return session_to_dict(session)


@api.post("/wallet/registration", tags=["Registration"])
async def register_role(request: RoleSelectionRequest, services: SessionServices = Depends(get_services)):
    try:
        role = WalletRole.from_label(request.role)
    except ValueError:
        raise PolicyValidationError({"role": "Role must be user or company"})
    registration = await services.registration.role_selected(role)
    registration.raise_for_failure()
    return registration_to_dict(registration)
