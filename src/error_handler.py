"""Error handling helpers for wallet and policy orchestration."""
from typing import Any, Dict
import logging

from fastapi import status

from src.integrations.contracts.errors import (
    ConnectionRejected,
    ConnectionTimeout,
    DeploymentFailed,
    IdentityCreationFailed,
    IncompleteBinding,
    InsuredIdentityNotFound,
    IssuerNotRegistered,
    PartialRegistrationFailure,
    PolicyValidationError,
    RegistrationInProgress,
    RoleConflict,
    SmartInsuranceError,
    TransactionFailure,
    UnsupportedNetwork,
    WalletNotConnected,
)

logger = logging.getLogger(__name__)

MESSAGES: Dict[str, str] = {
    UnsupportedNetwork.code: "This network is not supported. Please switch your wallet to a supported network.",
    IncompleteBinding.code: "The contracts are not fully deployed on this network yet.",
    ConnectionRejected.code: "The wallet connection was rejected. Please approve the request in your wallet.",
    ConnectionTimeout.code: "The wallet did not respond in time. Please try connecting again.",
    WalletNotConnected.code: "Your wallet session has ended. Please reconnect your wallet.",
    PolicyValidationError.code: "Please correct the highlighted fields.",
    TransactionFailure.code: "The transaction did not complete. Please try again.",
    IdentityCreationFailed.code: "We could not create your on-chain identity. Please try again.",
    RoleConflict.code: "This wallet is already registered with a different role.",
    RegistrationInProgress.code: "A registration is already in progress for this wallet.",
    IssuerNotRegistered.code: "Only wallets registered as a company can issue policies.",
    DeploymentFailed.code: "The policy could not be deployed. Nothing was created.",
    PartialRegistrationFailure.code: "The policy was deployed but is not yet linked to both parties. Retry the binding.",
    InsuredIdentityNotFound.code: "The insured wallet has not registered yet.",
}

STATUS_CODES: Dict[str, int] = {
    UnsupportedNetwork.code: status.HTTP_400_BAD_REQUEST,
    IncompleteBinding.code: status.HTTP_400_BAD_REQUEST,
    ConnectionRejected.code: status.HTTP_403_FORBIDDEN,
    ConnectionTimeout.code: status.HTTP_504_GATEWAY_TIMEOUT,
    WalletNotConnected.code: status.HTTP_401_UNAUTHORIZED,
    PolicyValidationError.code: status.HTTP_422_UNPROCESSABLE_ENTITY,
    TransactionFailure.code: status.HTTP_502_BAD_GATEWAY,
    IdentityCreationFailed.code: status.HTTP_502_BAD_GATEWAY,
    RoleConflict.code: status.HTTP_409_CONFLICT,
    RegistrationInProgress.code: status.HTTP_409_CONFLICT,
    IssuerNotRegistered.code: status.HTTP_409_CONFLICT,
    DeploymentFailed.code: status.HTTP_502_BAD_GATEWAY,
    PartialRegistrationFailure.code: status.HTTP_409_CONFLICT,
    InsuredIdentityNotFound.code: status.HTTP_409_CONFLICT,
}


def status_code_for(exc: Exception) -> int:
    if isinstance(exc, TransactionFailure) and "timed out" in exc.cause:
        return status.HTTP_504_GATEWAY_TIMEOUT
    if isinstance(exc, SmartInsuranceError):
        return STATUS_CODES.get(exc.code, status.HTTP_500_INTERNAL_SERVER_ERROR)
    return status.HTTP_500_INTERNAL_SERVER_ERROR


def _metadata(exc: SmartInsuranceError) -> Dict[str, Any]:
    if isinstance(exc, PolicyValidationError):
        return {"field": exc.field, "field_errors": exc.field_errors}
    if isinstance(exc, RoleConflict):
        return {"actual_role": exc.actual_role.label, "requested_role": exc.requested_role.label}
    if isinstance(exc, IssuerNotRegistered):
        return {"wallet": exc.wallet, "actual_role": exc.actual_role.label}
    if isinstance(exc, PartialRegistrationFailure):
        return {
            "policy_address": exc.policy_address,
            "issuer_bound": exc.issuer_bound,
            "insured_bound": exc.insured_bound,
            "insured_wallet": exc.insured_wallet,
        }
    if isinstance(exc, InsuredIdentityNotFound):
        meta: Dict[str, Any] = {"insured_wallet": exc.insured_wallet}
        if exc.outcome is not None:
            meta.update(
                policy_address=exc.outcome.policy_address,
                issuer_bound=exc.outcome.issuer_bound,
                insured_bound=exc.outcome.insured_bound,
            )
        return meta
    if isinstance(exc, (TransactionFailure, DeploymentFailed)):
        return {"tx_hash": exc.tx_hash, "revert_reason": getattr(exc, "revert_reason", None)}
    if isinstance(exc, (UnsupportedNetwork, IncompleteBinding)):
        return {"chain_id": exc.chain_id, "missing": getattr(exc, "missing", [])}
    if isinstance(exc, RegistrationInProgress):
        return {"wallet": exc.wallet}
    return {}


class ErrorHandler:
    def handle_exception(self, exc: Exception, context: Dict[str, Any] = None) -> Dict[str, Any]:
        if isinstance(exc, SmartInsuranceError):
            logger.warning("Operation failed (%s): %s", exc.code, exc.message)
            return {
                "message": MESSAGES.get(exc.code, exc.message),
                "code": exc.code,
                "retryable": exc.retryable,
                "fallback": False,
                "metadata": {"error": exc.message, "context": context or {}, **_metadata(exc)},
            }

        logger.error("Unhandled exception in wallet orchestration: %s", exc, exc_info=True)
        return {
            "message": "An internal error occurred while processing your request. Please try again later.",
            "code": "internal_error",
            "retryable": False,
            "fallback": True,
            "metadata": {"error": str(exc), "context": context or {}},
        }
