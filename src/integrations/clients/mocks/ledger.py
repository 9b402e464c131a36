"""Mock ledger with a registry, identity records, policies and a token.

This client stands in for a node during development and tests. It does NOT make
network calls: "transactions" are applied to in-memory contract state when the
mock wallet submits them, and receipts are available immediately.

Calldata produced by this client is a hex-encoded JSON call description, which
only this ledger understands.

Failure injection (``fail_next``) lets tests reproduce reverts, wallet
rejections and receipts that never arrive.
"""

from __future__ import annotations

import asyncio
import json
import logging
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Sequence

from eth_abi import encode as abi_encode
from web3 import Web3

from src.integrations.contracts.errors import TransactionFailure
from src.integrations.contracts.interfaces import (
    CLOSED_STATUSES,
    OPEN_STATUSES,
    ChainClient,
    PolicyDeployment,
    PolicyFilter,
    PolicyStatus,
    TransactionReceipt,
    TransactionRequest,
    WalletRole,
)
from src.integrations.contracts.policy import encode_geofence, encode_sensor_condition

logger = logging.getLogger(__name__)

REVERT = "revert"
REJECT = "reject"
HANG = "hang"


class _Revert(ValueError):
    pass


@dataclass
class IdentityRecord:
    owner: str
    wallet_type: int = WalletRole.NONE
    policies: List[str] = field(default_factory=list)


@dataclass
class PolicyRecord:
    fields: Dict[str, Any]
    funded: bool = False

    @property
    def status(self) -> PolicyStatus:
        return PolicyStatus(self.fields["currentStatus"])

    @status.setter
    def status(self, value: PolicyStatus) -> None:
        self.fields["currentStatus"] = int(value)


@dataclass
class SentTransaction:
    tx_hash: str
    method: str
    args: List[Any]
    sender: str
    to: Optional[str]


@dataclass
class FailureRule:
    method: str
    to: Optional[str]
    mode: str
    reason: str


def _derive_address(label: str) -> str:
    return Web3.to_checksum_address("0x" + bytes(Web3.keccak(text=label)[-20:]).hex())


def _lower(address: Optional[str]) -> str:
    return (address or "").lower()


class InMemoryLedger(ChainClient):
    def __init__(
        self,
        registry_address: str,
        token_address: str,
        gateway_address: Optional[str] = None,
        *,
        supports_filtered_policy_lists: bool = False,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.registry_address = Web3.to_checksum_address(registry_address)
        self.token_address = Web3.to_checksum_address(token_address)
        self.gateway_address = gateway_address
        self.supports_filtered_policy_lists = supports_filtered_policy_lists
        self.clock = clock

        self.identities: Dict[str, str] = {}
        self.records: Dict[str, IdentityRecord] = {}
        self.policies: Dict[str, PolicyRecord] = {}
        self.allowances: Dict[tuple, int] = {}
        self.sent: List[SentTransaction] = []
        self.reads: List[str] = []
        self._receipts: Dict[str, TransactionReceipt] = {}
        self._hanging: set = set()
        self._failures: List[FailureRule] = []
        self._nonce = 0

    # ------------------------------------------------------------------
    # Test helpers
    # ------------------------------------------------------------------

    def fail_next(self, method: str, *, to: Optional[str] = None, mode: str = REVERT, reason: str = "mock failure") -> None:
        """Make the next transaction calling ``method`` (optionally on ``to``) fail."""
        self._failures.append(FailureRule(method=method, to=_lower(to) or None, mode=mode, reason=reason))

    def transactions(self, method: Optional[str] = None) -> List[SentTransaction]:
        return [tx for tx in self.sent if method is None or tx.method == method]

    def seed_identity(self, wallet: str, role: WalletRole = WalletRole.NONE) -> str:
        """Create an identity record directly, as if registered earlier."""
        identity = self._create_identity(wallet)
        self.records[_lower(identity)].wallet_type = int(role)
        return identity

    def identity_of(self, wallet: str) -> Optional[str]:
        return self.identities.get(_lower(wallet))

    def bound_policies(self, wallet: str) -> List[str]:
        identity = self.identity_of(wallet)
        return list(self.records[_lower(identity)].policies) if identity else []

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def get_identity_address(self, registry_address: str, wallet: str) -> str:
        self.reads.append("getIndividualWalletInfoAddress")
        return self.identities.get(_lower(wallet), "0x" + "0" * 40)

    async def get_wallet_type(self, identity_address: str) -> int:
        self.reads.append("getWalletType")
        return self._record(identity_address).wallet_type

    async def get_policy_addresses(self, identity_address: str, policy_filter: PolicyFilter = PolicyFilter.ALL) -> List[str]:
        record = self._record(identity_address)
        if policy_filter is PolicyFilter.ALL:
            self.reads.append("getSmartInsuranceContracts")
            return list(record.policies)
        if not self.supports_filtered_policy_lists:
            raise NotImplementedError("Filtered policy lists are not supported by this ledger")
        wanted = OPEN_STATUSES if policy_filter is PolicyFilter.ACTIVE else CLOSED_STATUSES
        self.reads.append("getActiveSmartInsurances" if policy_filter is PolicyFilter.ACTIVE else "getClosedSmartInsurances")
        return [p for p in record.policies if self.policies[_lower(p)].status in wanted]

    async def get_policy_fields(self, policy_address: str) -> Optional[Dict[str, Any]]:
        self.reads.append("policyDetail")
        policy = self.policies.get(_lower(policy_address))
        return dict(policy.fields) if policy else None

    async def wait_for_receipt(self, tx_hash: str) -> TransactionReceipt:
        if tx_hash in self._hanging:
            await asyncio.Event().wait()
        return self._receipts[tx_hash]

    # ------------------------------------------------------------------
    # Calldata
    # ------------------------------------------------------------------

    @staticmethod
    def _encode(method: str, *args: Any) -> str:
        return "0x" + json.dumps({"method": method, "args": list(args)}).encode("utf-8").hex()

    @staticmethod
    def _decode(data: str) -> Dict[str, Any]:
        return json.loads(bytes.fromhex(data[2:]).decode("utf-8"))

    def encode_register_identity(self) -> str:
        return self._encode("registerAndCreateIndividualWalletInfo")

    def encode_set_wallet_type(self, role: WalletRole) -> str:
        return self._encode("setWalletType", int(role))

    def encode_add_policy(self, policy_address: str) -> str:
        return self._encode("addSmartInsuranceContract", policy_address)

    def encode_deploy_policy(self, deployment: PolicyDeployment) -> str:
        return self._encode(
            "deploySmartInsurance",
            {
                "userWallet": deployment.insured_wallet,
                "companyWallet": deployment.issuer_wallet,
                "premiumAmount": deployment.premium_amount_scaled,
                "payoutAmount": deployment.payout_amount_scaled,
                "tokenAddress": deployment.token_address,
                "getSensorConditions": [list(encode_sensor_condition(c)) for c in deployment.sensor_conditions],
                "geofence": list(encode_geofence(deployment.geofence)),
                "expirationTimestamp": deployment.expiration_timestamp,
            },
        )

    def encode_batch_expire(self, policy_addresses: Sequence[str]) -> str:
        return self._encode("batchUpdateExpiredPolicies", list(policy_addresses))

    def encode_token_approve(self, spender: str, amount: int) -> str:
        return self._encode("approve", spender, amount)

    def encode_policy_call(self, function_name: str) -> str:
        return self._encode(function_name)

    # ------------------------------------------------------------------
    # Execution (called by the mock wallet)
    # ------------------------------------------------------------------

    def execute(self, request: TransactionRequest) -> str:
        call = self._decode(request.data)
        method, args = call["method"], call["args"]
        rule = self._take_failure(method, request.to)
        if rule is not None and rule.mode == REJECT:
            raise TransactionFailure(f"User rejected {method}: {rule.reason}")

        self._nonce += 1
        tx_hash = "0x" + bytes(Web3.keccak(text=f"tx:{self._nonce}:{method}")).hex()
        self.sent.append(SentTransaction(tx_hash=tx_hash, method=method, args=args, sender=request.from_address, to=request.to))

        if rule is not None and rule.mode == HANG:
            self._hanging.add(tx_hash)
            return tx_hash

        try:
            if rule is not None:
                raise _Revert(rule.reason)
            contract_address = self._apply(method, args, request.from_address, request.to)
            receipt = TransactionReceipt(tx_hash=tx_hash, status=1, contract_address=contract_address)
        except _Revert as exc:
            revert_data = "0x08c379a0" + abi_encode(["string"], [str(exc)]).hex()
            receipt = TransactionReceipt(tx_hash=tx_hash, status=0, revert_data=revert_data)
        self._receipts[tx_hash] = receipt
        return tx_hash

    def _take_failure(self, method: str, to: Optional[str]) -> Optional[FailureRule]:
        for index, rule in enumerate(self._failures):
            if rule.method == method and (rule.to is None or rule.to == _lower(to)):
                return self._failures.pop(index)
        return None

    def _apply(self, method: str, args: List[Any], sender: str, to: Optional[str]) -> Optional[str]:
        if method == "deploySmartInsurance":
            return self._deploy(args[0])

        if method == "registerAndCreateIndividualWalletInfo":
            self._require(_lower(to) == _lower(self.registry_address), "not the registry")
            self._require(_lower(sender) not in self.identities, "Wallet already registered")
            self._create_identity(sender)
        elif method == "batchUpdateExpiredPolicies":
            self._require(_lower(to) == _lower(self.registry_address), "not the registry")
            now = int(self.clock())
            for address in args[0]:
                policy = self.policies.get(_lower(address))
                if policy and policy.status in OPEN_STATUSES and policy.fields["expirationTimestamp"] < now:
                    policy.status = PolicyStatus.EXPIRED
        elif method == "setWalletType":
            record = self._record(to)
            self._require(_lower(record.owner) == _lower(sender), "Caller is not the wallet owner")
            self._require(record.wallet_type == WalletRole.NONE, "Wallet type already set")
            record.wallet_type = int(args[0])
        elif method == "addSmartInsuranceContract":
            record = self._record(to)
            self._require(_lower(args[0]) not in {_lower(p) for p in record.policies}, "Policy already added")
            record.policies.append(Web3.to_checksum_address(args[0]))
        elif method == "approve":
            self._require(_lower(to) == _lower(self.token_address), "not the token")
            self.allowances[(_lower(sender), _lower(args[0]))] = int(args[1])
        else:
            self._apply_policy_call(method, sender, to)
        return None

    def _apply_policy_call(self, method: str, sender: str, to: Optional[str]) -> None:
        policy = self.policies.get(_lower(to))
        self._require(policy is not None, f"Unknown call {method}")
        fields = policy.fields
        if method == "payPremium":
            self._require(policy.status is PolicyStatus.PENDING, "Premium already paid")
            self._require(self._allowance(sender, to) >= fields["premiumAmount"], "Insufficient allowance")
            policy.status = PolicyStatus.ACTIVE
        elif method == "depositForCreation":
            self._require(self._allowance(sender, to) >= fields["payoutAmount"], "Insufficient allowance")
            policy.funded = True
        elif method == "executePayout":
            self._require(policy.status is PolicyStatus.ACTIVE, "Policy is not active")
            policy.status = PolicyStatus.CLAIMED
        elif method == "cancelPolicy":
            self._require(policy.status in OPEN_STATUSES, "Policy is already closed")
            policy.status = PolicyStatus.CANCELLED
        else:
            raise _Revert(f"Unknown call {method}")

    def _deploy(self, params: Dict[str, Any]) -> str:
        address = _derive_address(f"policy:{len(self.policies) + 1}")
        fields = dict(params)
        fields["getSensorConditions"] = [tuple(c) for c in params["getSensorConditions"]]
        fields["geofence"] = tuple(params["geofence"])
        fields["currentStatus"] = int(PolicyStatus.PENDING)
        self.policies[_lower(address)] = PolicyRecord(fields=fields)
        logger.debug("Mock ledger deployed policy %s", address)
        return address

    def _create_identity(self, wallet: str) -> str:
        identity = _derive_address(f"identity:{_lower(wallet)}")
        self.identities[_lower(wallet)] = identity
        self.records[_lower(identity)] = IdentityRecord(owner=Web3.to_checksum_address(wallet))
        return identity

    def _record(self, identity_address: Optional[str]) -> IdentityRecord:
        record = self.records.get(_lower(identity_address))
        if record is None:
            raise _Revert(f"No identity record at {identity_address}")
        return record

    def _allowance(self, owner: str, spender: Optional[str]) -> int:
        return self.allowances.get((_lower(owner), _lower(spender)), 0)

    @staticmethod
    def _require(condition: bool, reason: str) -> None:
        if not condition:
            raise _Revert(reason)
