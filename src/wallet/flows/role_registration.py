"""
Role registration flow - resolve or create the identity record, then commit the role
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import List, Optional

from src.integrations.contracts.errors import (
    IdentityCreationFailed,
    RegistrationInProgress,
    RoleConflict,
    SmartInsuranceError,
)
from src.integrations.contracts.interfaces import WalletRole
from src.integrations.contracts.session import WalletSession
from src.integrations.policy.identity_registry import IdentityRegistryClient

logger = logging.getLogger(__name__)


class RegistrationStep(str, Enum):
    RESOLVING_IDENTITY = "resolving_identity"
    CREATING_IDENTITY = "creating_identity"
    SETTING_ROLE = "setting_role"
    DONE = "done"
    FAILED = "failed"


TERMINAL_STEPS = frozenset({RegistrationStep.DONE, RegistrationStep.FAILED})


@dataclass
class RegistrationSession:
    """In-flight intent for one registration; the chain remains the source of truth."""

    wallet: str
    target_role: WalletRole
    step: RegistrationStep = RegistrationStep.RESOLVING_IDENTITY
    identity_address: Optional[str] = None
    pending_tx_hash: Optional[str] = None
    transactions: List[str] = field(default_factory=list)
    history: List[RegistrationStep] = field(default_factory=list)
    error: Optional[SmartInsuranceError] = None
    started_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def __post_init__(self) -> None:
        self.history.append(self.step)

    @property
    def failure_reason(self) -> Optional[str]:
        return self.error.code if self.error else None

    @property
    def actual_role(self) -> Optional[WalletRole]:
        if isinstance(self.error, RoleConflict):
            return self.error.actual_role
        return None

    def advance(self, step: RegistrationStep) -> None:
        if self.step in TERMINAL_STEPS:
            raise RuntimeError(f"Registration already finished in state {self.step.value}")
        logger.info("Registration for %s: %s -> %s", self.wallet, self.step.value, step.value)
        self.step = step
        self.history.append(step)

    def fail(self, error: SmartInsuranceError) -> None:
        self.error = error
        self.pending_tx_hash = None
        self.advance(RegistrationStep.FAILED)

    def tx_submitted(self, tx_hash: str) -> None:
        self.pending_tx_hash = tx_hash
        self.transactions.append(tx_hash)

    def tx_confirmed(self) -> None:
        self.pending_tx_hash = None

    def raise_for_failure(self) -> "RegistrationSession":
        if self.error is not None:
            raise self.error
        return self


class RoleRegistrationFlow:
    """Drive ResolvingIdentity -> CreatingIdentity -> SettingRole -> Done.

    Only one registration per wallet may be in flight from this client; a second
    call while the first is running is rejected rather than racing it.
    """

    def __init__(self, session: WalletSession, identity: IdentityRegistryClient) -> None:
        self.session = session
        self.identity = identity

    async def role_selected(self, role: WalletRole) -> RegistrationSession:
        session = self.session.require_connected()
        if role is WalletRole.NONE:
            raise ValueError("A concrete role (user or company) must be selected")

        wallet_key = session.address.lower()
        if wallet_key in session.registrations_in_flight:
            raise RegistrationInProgress(session.address)

        session.registrations_in_flight.add(wallet_key)
        try:
            async with session.signing_lock:
                registration = RegistrationSession(wallet=session.address, target_role=role)
                await self._run(registration)
        finally:
            session.registrations_in_flight.discard(wallet_key)

        if registration.step is RegistrationStep.DONE and not session.closed:
            session.identity_address = registration.identity_address
            session.on_chain_role = role
        return registration

    async def _run(self, registration: RegistrationSession) -> None:
        try:
            identity_address = await self.identity.get_identity_address(registration.wallet)
        except SmartInsuranceError as exc:
            registration.fail(exc)
            return

        if identity_address is None:
            registration.advance(RegistrationStep.CREATING_IDENTITY)
            try:
                identity_address = await self.identity.ensure_identity(
                    registration.wallet, on_submitted=registration.tx_submitted
                )
                registration.tx_confirmed()
            except IdentityCreationFailed as exc:
                registration.fail(exc)
                return
            except SmartInsuranceError as exc:
                registration.fail(IdentityCreationFailed(registration.wallet, cause=str(exc)))
                return

        registration.identity_address = identity_address
        registration.advance(RegistrationStep.SETTING_ROLE)
        try:
            await self.identity.set_role(
                identity_address, registration.target_role, on_submitted=registration.tx_submitted
            )
            registration.tx_confirmed()
        except SmartInsuranceError as exc:
            registration.fail(exc)
            return

        registration.advance(RegistrationStep.DONE)
