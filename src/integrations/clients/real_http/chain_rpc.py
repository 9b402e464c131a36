"""
Real chain client.

Purpose:
- Reads identity records, wallet types and policy fields from a JSON-RPC node
- Encodes calldata for the registry, identity records, policy and token contracts
- Waits for receipts and recovers the revert payload of failed transactions

Usage:
- Wired in src/api/main.py when USE_MOCK_LEDGER=false
- One instance per chain binding (the session manager builds it on connect)

Important:
- Keep this client as the ONLY place where node RPC calls are made.
- Deploying a policy needs the compiled SmartInsurance artifact (abi + bytecode),
  configured through POLICY_ARTIFACT_PATH.
"""

from __future__ import annotations

import asyncio
import json
import logging
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence

from web3 import AsyncHTTPProvider, AsyncWeb3, Web3
from web3.exceptions import ContractLogicError, TransactionNotFound

from src.integrations.contracts.abis import (
    ERC20_ABI,
    INDIVIDUAL_WALLET_INFO_ABI,
    POLICY_DETAIL_GETTERS,
    SMART_INSURANCE_ABI,
    USER_COMPANY_REGISTRY_ABI,
)
from src.integrations.contracts.interfaces import (
    ChainBinding,
    ChainClient,
    PolicyDeployment,
    PolicyFilter,
    TransactionReceipt,
    WalletRole,
)
from src.integrations.contracts.policy import encode_geofence, encode_sensor_condition

logger = logging.getLogger(__name__)

_LIST_FUNCTIONS = {
    PolicyFilter.ALL: "getSmartInsuranceContracts",
    PolicyFilter.ACTIVE: "getActiveSmartInsurances",
    PolicyFilter.CLOSED: "getClosedSmartInsurances",
}


def load_policy_artifact(path: Optional[str]) -> Dict[str, Any]:
    """Load a compiled contract artifact ({"abi": [...], "bytecode": "0x..."})."""
    if not path:
        raise ValueError("POLICY_ARTIFACT_PATH is not configured.")
    artifact_path = Path(path)
    if not artifact_path.exists():
        raise ValueError(f"Policy artifact not found at {artifact_path}")
    with open(artifact_path, "r", encoding="utf-8") as f:
        artifact = json.load(f)
    bytecode = artifact.get("bytecode")
    if isinstance(bytecode, dict):
        bytecode = bytecode.get("object")
    if not bytecode:
        raise ValueError(f"Policy artifact at {artifact_path} has no bytecode")
    return {"abi": artifact.get("abi") or SMART_INSURANCE_ABI, "bytecode": bytecode}


class Web3ChainClient(ChainClient):
    def __init__(
        self,
        binding: ChainBinding,
        rpc_url: str,
        *,
        policy_artifact_path: Optional[str] = None,
        supports_filtered_policy_lists: bool = False,
        poll_latency_seconds: float = 1.0,
    ) -> None:
        if not rpc_url:
            raise ValueError(f"No RPC URL configured for chain {binding.chain_id}")
        self.binding = binding
        self.supports_filtered_policy_lists = supports_filtered_policy_lists
        self.policy_artifact_path = policy_artifact_path
        self.poll_latency_seconds = poll_latency_seconds
        self.w3 = AsyncWeb3(AsyncHTTPProvider(rpc_url))
        self._registry = self.w3.eth.contract(abi=USER_COMPANY_REGISTRY_ABI)
        self._identity = self.w3.eth.contract(abi=INDIVIDUAL_WALLET_INFO_ABI)
        self._policy = self.w3.eth.contract(abi=SMART_INSURANCE_ABI)
        self._token = self.w3.eth.contract(abi=ERC20_ABI)
        self._artifact: Optional[Dict[str, Any]] = None

    def _at(self, abi: List[Dict[str, Any]], address: str):
        return self.w3.eth.contract(address=Web3.to_checksum_address(address), abi=abi)

    # -- Reads --

    async def get_identity_address(self, registry_address: str, wallet: str) -> str:
        registry = self._at(USER_COMPANY_REGISTRY_ABI, registry_address)
        return await registry.functions.getIndividualWalletInfoAddress(Web3.to_checksum_address(wallet)).call()

    async def get_wallet_type(self, identity_address: str) -> int:
        identity = self._at(INDIVIDUAL_WALLET_INFO_ABI, identity_address)
        return int(await identity.functions.getWalletType().call())

    async def get_policy_addresses(
        self, identity_address: str, policy_filter: PolicyFilter = PolicyFilter.ALL
    ) -> List[str]:
        if policy_filter is not PolicyFilter.ALL and not self.supports_filtered_policy_lists:
            raise NotImplementedError("Filtered policy lists are not enabled for this chain")
        identity = self._at(INDIVIDUAL_WALLET_INFO_ABI, identity_address)
        function = getattr(identity.functions, _LIST_FUNCTIONS[policy_filter])
        return list(await function().call())

    async def get_policy_fields(self, policy_address: str) -> Optional[Dict[str, Any]]:
        address = Web3.to_checksum_address(policy_address)
        code = await self.w3.eth.get_code(address)
        if not code:
            return None
        policy = self._at(SMART_INSURANCE_ABI, address)
        values = await asyncio.gather(
            *(getattr(policy.functions, name)().call() for name in POLICY_DETAIL_GETTERS)
        )
        return dict(zip(POLICY_DETAIL_GETTERS, values))

    async def wait_for_receipt(self, tx_hash: str) -> TransactionReceipt:
        # The caller bounds the wait; poll until it cancels us.
        while True:
            try:
                receipt = await self.w3.eth.get_transaction_receipt(tx_hash)
                break
            except TransactionNotFound:
                await asyncio.sleep(self.poll_latency_seconds)

        status = int(receipt["status"])
        revert_data = None if status == 1 else await self._revert_data(tx_hash, receipt["blockNumber"])
        return TransactionReceipt(
            tx_hash=self.w3.to_hex(receipt["transactionHash"]),
            status=status,
            contract_address=receipt.get("contractAddress"),
            revert_data=revert_data,
            logs=[dict(log) for log in receipt.get("logs", [])],
        )

    async def _revert_data(self, tx_hash: str, block_number: int) -> Optional[str]:
        """Replay a reverted transaction as a call to recover its revert payload."""
        tx = await self.w3.eth.get_transaction(tx_hash)
        call: Dict[str, Any] = {"from": tx["from"], "data": tx["input"]}
        if tx.get("to"):
            call["to"] = tx["to"]
        try:
            await self.w3.eth.call(call, block_number)
        except ContractLogicError as exc:
            data = exc.data
            return data if isinstance(data, str) else None
        except Exception as exc:
            logger.warning(f"Could not replay reverted transaction {tx_hash}: {exc}")
        return None

    # -- Calldata --

    def encode_register_identity(self) -> str:
        return self._registry.encode_abi("registerAndCreateIndividualWalletInfo", args=[])

    def encode_set_wallet_type(self, role: WalletRole) -> str:
        return self._identity.encode_abi("setWalletType", args=[int(role)])

    def encode_add_policy(self, policy_address: str) -> str:
        return self._identity.encode_abi("addSmartInsuranceContract", args=[Web3.to_checksum_address(policy_address)])

    def encode_deploy_policy(self, deployment: PolicyDeployment) -> str:
        if self._artifact is None:
            self._artifact = load_policy_artifact(self.policy_artifact_path)
        factory = self.w3.eth.contract(abi=self._artifact["abi"], bytecode=self._artifact["bytecode"])
        constructor = factory.constructor(
            Web3.to_checksum_address(deployment.insured_wallet),
            Web3.to_checksum_address(deployment.issuer_wallet),
            deployment.premium_amount_scaled,
            deployment.payout_amount_scaled,
            Web3.to_checksum_address(deployment.token_address),
            [encode_sensor_condition(c) for c in deployment.sensor_conditions],
            encode_geofence(deployment.geofence),
            deployment.expiration_timestamp,
        )
        return constructor.data_in_transaction

    def encode_batch_expire(self, policy_addresses: Sequence[str]) -> str:
        return self._registry.encode_abi(
            "batchUpdateExpiredPolicies", args=[[Web3.to_checksum_address(a) for a in policy_addresses]]
        )

    def encode_token_approve(self, spender: str, amount: int) -> str:
        return self._token.encode_abi("approve", args=[Web3.to_checksum_address(spender), int(amount)])

    def encode_policy_call(self, function_name: str) -> str:
        return self._policy.encode_abi(function_name, args=[])
