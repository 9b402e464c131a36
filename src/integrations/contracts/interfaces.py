from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum, IntEnum
from typing import Any, Dict, List, Optional, Sequence

from web3.constants import ADDRESS_ZERO


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------

class WalletRole(IntEnum):
    """On-chain wallet type stored in the identity record."""

    NONE = 0
    USER = 1
    COMPANY = 2

    @classmethod
    def from_label(cls, label: str) -> "WalletRole":
        value = (label or "").strip().lower()
        if value == "user":
            return cls.USER
        if value == "company":
            return cls.COMPANY
        raise ValueError(f"Unknown wallet role: {label!r}")

    @property
    def label(self) -> Optional[str]:
        if self is WalletRole.NONE:
            return None
        return self.name.lower()


class PolicyStatus(IntEnum):
    PENDING = 0
    ACTIVE = 1
    CLAIMED = 2
    CANCELLED = 3
    EXPIRED = 4


OPEN_STATUSES = frozenset({PolicyStatus.PENDING, PolicyStatus.ACTIVE})
CLOSED_STATUSES = frozenset({PolicyStatus.CLAIMED, PolicyStatus.CANCELLED, PolicyStatus.EXPIRED})


class PolicyFilter(str, Enum):
    ALL = "all"
    ACTIVE = "active"
    CLOSED = "closed"


class ComparisonOperator(IntEnum):
    AT_MOST = 0
    AT_LEAST = 1


# ---------------------------------------------------------------------------
# Shared data models
# ---------------------------------------------------------------------------

def is_zero_address(address: Optional[str]) -> bool:
    return not address or address.lower() == ADDRESS_ZERO


@dataclass(frozen=True)
class ChainBinding:
    chain_id: int
    registry_address: str
    token_address: str
    insurance_gateway_address: str


@dataclass(frozen=True)
class WalletAccount:
    """What the wallet provider hands back after a successful connection."""

    address: str
    chain_id: int


@dataclass
class TransactionRequest:
    from_address: str
    data: str
    chain_id: int
    to: Optional[str] = None                 # None for contract creation

    def to_rpc_params(self) -> Dict[str, Any]:
        params: Dict[str, Any] = {
            "from": self.from_address,
            "data": self.data,
            "chainId": hex(self.chain_id),
        }
        if self.to:
            params["to"] = self.to
        return params


@dataclass
class TransactionReceipt:
    tx_hash: str
    status: int                              # 1 success, 0 reverted
    contract_address: Optional[str] = None
    revert_data: Optional[str] = None
    logs: List[Dict[str, Any]] = field(default_factory=list)

    @property
    def succeeded(self) -> bool:
        return self.status == 1


@dataclass(frozen=True)
class GeoPoint:
    latitude: float
    longitude: float
    radius_meters: float


@dataclass(frozen=True)
class SensorCondition:
    sensor_topic: str
    operator: ComparisonOperator
    threshold: int
    geofence: GeoPoint


@dataclass(frozen=True)
class PolicyDeployment:
    """Validated, chain-ready constructor parameters for a policy contract."""

    insured_wallet: str
    issuer_wallet: str
    premium_amount_scaled: int
    payout_amount_scaled: int
    token_address: str
    sensor_conditions: Sequence[SensorCondition]
    geofence: GeoPoint
    expiration_timestamp: int


@dataclass
class DeploymentOutcome:
    policy_address: str
    issuer_bound: bool = False
    insured_bound: bool = False

    @property
    def complete(self) -> bool:
        return self.issuer_bound and self.insured_bound


@dataclass
class PolicyDetail:
    address: str
    issuer_wallet: str
    insured_wallet: str
    premium_amount: Decimal
    payout_amount: Decimal
    token_address: str
    sensor_conditions: List[SensorCondition]
    geofence: GeoPoint
    expiration_timestamp: int
    status: PolicyStatus


# ---------------------------------------------------------------------------
# External collaborator interfaces
# ---------------------------------------------------------------------------

class WalletProvider(ABC):
    """Signing capability of the connected wallet (wallet-connect style transport)."""

    @abstractmethod
    async def connect(self) -> WalletAccount:
        """Open a session; raise ConnectionRejected when the user declines."""

    @abstractmethod
    async def disconnect(self) -> None:
        """Close the remote session."""

    @abstractmethod
    async def send_transaction(self, request: TransactionRequest) -> str:
        """Submit a transaction for signing and return its hash."""


class ChainClient(ABC):
    """Read access to the ledger plus calldata encoding for the consumed contracts."""

    # Identity records expose getActiveSmartInsurances/getClosedSmartInsurances.
    supports_filtered_policy_lists: bool = False

    # -- Reads --

    @abstractmethod
    async def get_identity_address(self, registry_address: str, wallet: str) -> str:
        """Registry lookup; returns the zero address when no record exists."""

    @abstractmethod
    async def get_wallet_type(self, identity_address: str) -> int:
        """Raw wallet type code stored in an identity record."""

    @abstractmethod
    async def get_policy_addresses(
        self, identity_address: str, policy_filter: PolicyFilter = PolicyFilter.ALL
    ) -> List[str]:
        """Policy addresses bound to an identity record."""

    @abstractmethod
    async def get_policy_fields(self, policy_address: str) -> Optional[Dict[str, Any]]:
        """Raw policy getters, or None when nothing is deployed at the address."""

    @abstractmethod
    async def wait_for_receipt(self, tx_hash: str) -> TransactionReceipt:
        """Suspend until the transaction is mined."""

    # -- Calldata --

    @abstractmethod
    def encode_register_identity(self) -> str:
        ...

    @abstractmethod
    def encode_set_wallet_type(self, role: WalletRole) -> str:
        ...

    @abstractmethod
    def encode_add_policy(self, policy_address: str) -> str:
        ...

    @abstractmethod
    def encode_deploy_policy(self, deployment: PolicyDeployment) -> str:
        ...

    @abstractmethod
    def encode_batch_expire(self, policy_addresses: Sequence[str]) -> str:
        ...

    @abstractmethod
    def encode_token_approve(self, spender: str, amount: int) -> str:
        ...

    @abstractmethod
    def encode_policy_call(self, function_name: str) -> str:
        """Calldata for an argument-less policy method (payPremium, cancelPolicy, ...)."""
