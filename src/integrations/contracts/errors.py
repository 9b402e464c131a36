"""
Failure taxonomy for wallet, identity and policy operations.

Every on-chain failure is surfaced to the caller; nothing here is retried
automatically because resubmitting a transaction risks a duplicate. The one
expected, recoverable condition is PartialRegistrationFailure, whose outcome
says exactly which binding is missing.
"""

from __future__ import annotations

from typing import Dict, Iterable, Optional

from .interfaces import DeploymentOutcome, WalletRole


class SmartInsuranceError(Exception):
    code = "error"
    retryable = False

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class UnsupportedNetwork(SmartInsuranceError):
    code = "unsupported_network"

    def __init__(self, chain_id: Optional[int]) -> None:
        super().__init__(f"No contract binding configured for chain id {chain_id}")
        self.chain_id = chain_id


class IncompleteBinding(SmartInsuranceError):
    code = "incomplete_binding"

    def __init__(self, chain_id: int, missing: Iterable[str]) -> None:
        self.missing = list(missing)
        super().__init__(f"Chain {chain_id} binding has no deployed address for: {', '.join(self.missing)}")
        self.chain_id = chain_id


class ConnectionRejected(SmartInsuranceError):
    code = "connection_rejected"
    retryable = True


class ConnectionTimeout(SmartInsuranceError):
    code = "connection_timeout"
    retryable = True


class WalletNotConnected(SmartInsuranceError):
    code = "wallet_not_connected"
    retryable = True

    def __init__(self, message: str = "Wallet session is not connected") -> None:
        super().__init__(message)


class PolicyValidationError(SmartInsuranceError):
    """Field-level validation failure raised before any network call.

    Attributes:
        field_errors: mapping of field name -> human-readable error message.
    """

    code = "validation_error"

    def __init__(self, field_errors: Dict[str, str], message: str = "Please correct the highlighted fields") -> None:
        super().__init__(message)
        self.field_errors = dict(field_errors)

    @property
    def field(self) -> Optional[str]:
        return next(iter(self.field_errors), None)


class TransactionFailure(SmartInsuranceError):
    code = "transaction_failure"
    retryable = True

    def __init__(
        self,
        cause: str,
        *,
        tx_hash: Optional[str] = None,
        revert_reason: Optional[str] = None,
    ) -> None:
        super().__init__(cause if not revert_reason else f"{cause}: {revert_reason}")
        self.cause = cause
        self.tx_hash = tx_hash
        self.revert_reason = revert_reason


class IdentityCreationFailed(SmartInsuranceError):
    code = "identity_creation_failed"

    def __init__(self, wallet: str, cause: Optional[str] = None) -> None:
        super().__init__(cause or f"Identity record for {wallet} was not found after creation")
        self.wallet = wallet


class RoleConflict(SmartInsuranceError):
    code = "role_conflict"

    def __init__(self, actual_role: WalletRole, requested_role: WalletRole) -> None:
        super().__init__(
            f"Wallet is already registered as {actual_role.label}; it cannot become {requested_role.label}"
        )
        self.actual_role = actual_role
        self.requested_role = requested_role


class RegistrationInProgress(SmartInsuranceError):
    code = "registration_in_progress"

    def __init__(self, wallet: str) -> None:
        super().__init__(f"A registration for {wallet} is already in flight")
        self.wallet = wallet


class IssuerNotRegistered(SmartInsuranceError):
    code = "issuer_not_registered"

    def __init__(self, wallet: str, actual_role: WalletRole = WalletRole.NONE) -> None:
        super().__init__(f"Wallet {wallet} must be registered as a company to issue policies")
        self.wallet = wallet
        self.actual_role = actual_role


class DeploymentFailed(SmartInsuranceError):
    code = "deployment_failed"
    retryable = True

    def __init__(self, cause: str, *, tx_hash: Optional[str] = None) -> None:
        super().__init__(f"Policy deployment failed: {cause}")
        self.cause = cause
        self.tx_hash = tx_hash


class PartialRegistrationFailure(SmartInsuranceError):
    code = "partial_registration_failure"
    retryable = True

    def __init__(self, outcome: DeploymentOutcome, insured_wallet: str, cause: Optional[str] = None) -> None:
        side = "issuer" if not outcome.issuer_bound else "insured"
        super().__init__(f"Policy {outcome.policy_address} is deployed but the {side} binding failed")
        self.outcome = outcome
        self.insured_wallet = insured_wallet
        self.cause = cause

    @property
    def policy_address(self) -> str:
        return self.outcome.policy_address

    @property
    def issuer_bound(self) -> bool:
        return self.outcome.issuer_bound

    @property
    def insured_bound(self) -> bool:
        return self.outcome.insured_bound


class InsuredIdentityNotFound(SmartInsuranceError):
    code = "insured_identity_not_found"

    def __init__(self, insured_wallet: str, outcome: Optional[DeploymentOutcome] = None) -> None:
        super().__init__(f"Insured wallet {insured_wallet} has no identity record")
        self.insured_wallet = insured_wallet
        self.outcome = outcome
