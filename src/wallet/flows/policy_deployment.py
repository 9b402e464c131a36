"""
Policy deployment flow - deploy a policy contract and bind it to both parties

The sequence (deploy -> bind issuer -> bind insured) cannot be atomic: the
ledger has no cross-contract transaction. Instead every partial state is
reported precisely so the caller can retry the missing binding alone, without
redeploying.
"""

from __future__ import annotations

import logging
import time
from typing import Any, Callable, Dict, Optional, Union

from web3 import Web3

from src.integrations.contracts.errors import (
    DeploymentFailed,
    InsuredIdentityNotFound,
    IssuerNotRegistered,
    PartialRegistrationFailure,
    PolicyValidationError,
    TransactionFailure,
)
from src.integrations.contracts.interfaces import ChainClient, DeploymentOutcome, PolicyDeployment, WalletRole
from src.integrations.contracts.session import WalletSession
from src.integrations.policy.identity_registry import IdentityRegistryClient
from src.integrations.policy.transactions import TransactionSender
from src.wallet.validation import validate_policy_payload

logger = logging.getLogger(__name__)


class PolicyDeploymentFlow:
    def __init__(
        self,
        session: WalletSession,
        chain: ChainClient,
        identity: IdentityRegistryClient,
        sender: TransactionSender,
        token_decimals: int = 18,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.session = session
        self.chain = chain
        self.identity = identity
        self.sender = sender
        self.token_decimals = token_decimals
        self.clock = clock

    def validate(self, payload: Dict[str, Any]) -> PolicyDeployment:
        session = self.session.require_connected()
        return validate_policy_payload(
            payload,
            issuer_wallet=session.address,
            token_decimals=self.token_decimals,
            now=int(self.clock()),
        )

    async def deploy(self, payload: Union[Dict[str, Any], PolicyDeployment]) -> DeploymentOutcome:
        """Validate, deploy, then bind issuer and insured.

        Raises:
            PolicyValidationError: before any network call.
            IssuerNotRegistered / InsuredIdentityNotFound: before deployment.
            DeploymentFailed: the deploy transaction failed; nothing to undo.
            PartialRegistrationFailure: deployed, but a binding is missing.
        """
        deployment = payload if isinstance(payload, PolicyDeployment) else self.validate(payload)
        session = self.session.require_connected()

        async with session.signing_lock:
            issuer_identity = await self._issuer_identity(deployment.issuer_wallet)
            insured_is_issuer = deployment.insured_wallet.lower() == deployment.issuer_wallet.lower()
            if not insured_is_issuer and await self.identity.get_identity_address(deployment.insured_wallet) is None:
                raise InsuredIdentityNotFound(deployment.insured_wallet)

            policy_address = await self._deploy_contract(deployment)
            outcome = DeploymentOutcome(policy_address=policy_address)
            await self._bind_sides(outcome, issuer_identity, deployment.insured_wallet, check_existing=False)

        logger.info(f"Policy {outcome.policy_address} deployed and bound to both parties")
        return outcome

    async def retry_binding(
        self,
        policy_address: str,
        insured_wallet: str,
        outcome: Optional[DeploymentOutcome] = None,
    ) -> DeploymentOutcome:
        """Bind an already deployed policy; only the sides not yet bound are attempted."""
        errors: Dict[str, str] = {}
        for field, value in (("policy_address", policy_address), ("insured_wallet", insured_wallet)):
            if not Web3.is_address(value or ""):
                errors[field] = f"{field} is not a valid address"
        if not errors and outcome is not None and outcome.policy_address.lower() != policy_address.lower():
            errors["policy_address"] = f"policy_address does not match the outcome for {outcome.policy_address}"
        if errors:
            raise PolicyValidationError(errors)

        session = self.session.require_connected()
        outcome = outcome or DeploymentOutcome(policy_address=Web3.to_checksum_address(policy_address))
        async with session.signing_lock:
            issuer_identity = await self._issuer_identity(session.address)
            await self._bind_sides(outcome, issuer_identity, Web3.to_checksum_address(insured_wallet), check_existing=True)
        return outcome

    async def _issuer_identity(self, issuer_wallet: str) -> str:
        identity_address = await self.identity.get_identity_address(issuer_wallet)
        if identity_address is None:
            raise IssuerNotRegistered(issuer_wallet)
        role = await self.identity.get_role(identity_address)
        if role is not WalletRole.COMPANY:
            raise IssuerNotRegistered(issuer_wallet, actual_role=role)
        return identity_address

    async def _deploy_contract(self, deployment: PolicyDeployment) -> str:
        try:
            data = self.chain.encode_deploy_policy(deployment)
        except Exception as exc:
            raise DeploymentFailed(f"constructor arguments could not be encoded: {exc}") from exc
        try:
            receipt = await self.sender.send(
                data,
                to=None,
                description="policy deployment",
            )
        except TransactionFailure as exc:
            raise DeploymentFailed(exc.message, tx_hash=exc.tx_hash) from exc
        if not receipt.contract_address:
            raise DeploymentFailed("receipt has no contract address", tx_hash=receipt.tx_hash)
        return Web3.to_checksum_address(receipt.contract_address)

    async def _bind_sides(
        self,
        outcome: DeploymentOutcome,
        issuer_identity: str,
        insured_wallet: str,
        *,
        check_existing: bool,
    ) -> None:
        """Bind whatever is missing; any failure keeps the deployed address in the error."""
        try:
            await self._bind_missing(outcome, issuer_identity, insured_wallet, check_existing=check_existing)
        except (PartialRegistrationFailure, InsuredIdentityNotFound):
            raise
        except Exception as exc:
            side = "insured" if outcome.issuer_bound else "issuer"
            logger.warning(f"{side.capitalize()} binding failed for {outcome.policy_address}: {exc}")
            raise PartialRegistrationFailure(outcome, insured_wallet, cause=str(exc)) from exc

    async def _bind_missing(
        self,
        outcome: DeploymentOutcome,
        issuer_identity: str,
        insured_wallet: str,
        *,
        check_existing: bool,
    ) -> None:
        if not outcome.issuer_bound:
            await self.identity.bind_policy(issuer_identity, outcome.policy_address, check_existing=check_existing)
            outcome.issuer_bound = True

        if insured_wallet.lower() == (self.session.address or "").lower():
            outcome.insured_bound = True
            return

        if not outcome.insured_bound:
            insured_identity = await self.identity.get_identity_address(insured_wallet)
            if insured_identity is None:
                raise InsuredIdentityNotFound(insured_wallet, outcome=outcome)
            await self.identity.bind_policy(insured_identity, outcome.policy_address, check_existing=check_existing)
            outcome.insured_bound = True
