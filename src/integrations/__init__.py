"""
Integrations layer.
This package contains all code used to communicate with external systems:
- the wallet provider that signs and submits transactions
- the ledger (registry, identity records, policy contracts, token)

Key rule:
- Flows MUST NOT call the ledger or the wallet directly.
- Flows call the services under src/integrations/policy, which talk to the
  clients under src/integrations/clients.
- We use MOCK clients during development and swap to REAL_HTTP clients when a
  node and a wallet bridge are available.

Switching implementations:
- The selection of mock vs real clients happens in ONE place (src/api/main.py).
"""

from .contracts.interfaces import (
    ChainBinding,
    ChainClient,
    ComparisonOperator,
    DeploymentOutcome,
    GeoPoint,
    PolicyDeployment,
    PolicyDetail,
    PolicyFilter,
    PolicyStatus,
    SensorCondition,
    TransactionReceipt,
    TransactionRequest,
    WalletAccount,
    WalletProvider,
    WalletRole,
)
from .contracts.errors import (
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

__all__ = [
    # interfaces
    "ChainBinding", "ChainClient", "ComparisonOperator", "DeploymentOutcome",
    "GeoPoint", "PolicyDeployment", "PolicyDetail", "PolicyFilter", "PolicyStatus",
    "SensorCondition", "TransactionReceipt", "TransactionRequest", "WalletAccount",
    "WalletProvider", "WalletRole",
    # errors
    "ConnectionRejected", "ConnectionTimeout", "DeploymentFailed",
    "IdentityCreationFailed", "IncompleteBinding", "InsuredIdentityNotFound",
    "IssuerNotRegistered", "PartialRegistrationFailure", "PolicyValidationError",
    "RegistrationInProgress", "RoleConflict", "SmartInsuranceError",
    "TransactionFailure", "UnsupportedNetwork", "WalletNotConnected",
]
