"""
Policy lifecycle service.

Token-moving and status-changing calls on an already deployed policy:
- pay_premium: insured approves the premium, then calls payPremium()
- fund_payout: issuer approves the payout, then calls depositForCreation()
- execute_payout / cancel_policy: single calls on the policy

Each step waits for its receipt before the next is sent, and every action runs
under the session's signing lock.
"""

from __future__ import annotations

import logging
from typing import List

from web3 import Web3

from src.integrations.contracts.errors import PolicyValidationError
from src.integrations.contracts.interfaces import ChainClient, PolicyDetail, is_zero_address
from src.integrations.contracts.session import WalletSession
from src.integrations.policy.policy_queries import PolicyQueryService
from src.integrations.policy.transactions import TransactionSender

logger = logging.getLogger(__name__)


def _scaled(amount, decimals: int) -> int:
    return int(amount.scaleb(decimals))


class PolicyLifecycleService:
    def __init__(
        self,
        session: WalletSession,
        chain: ChainClient,
        sender: TransactionSender,
        queries: PolicyQueryService,
        token_decimals: int = 18,
    ) -> None:
        self.session = session
        self.chain = chain
        self.sender = sender
        self.queries = queries
        self.token_decimals = token_decimals

    async def pay_premium(self, policy_address: str) -> List[str]:
        detail = await self._load(policy_address)
        return await self._approve_then_call(detail, _scaled(detail.premium_amount, self.token_decimals), "payPremium")

    async def fund_payout(self, policy_address: str) -> List[str]:
        detail = await self._load(policy_address)
        return await self._approve_then_call(
            detail, _scaled(detail.payout_amount, self.token_decimals), "depositForCreation"
        )

    async def execute_payout(self, policy_address: str) -> str:
        detail = await self._load(policy_address)
        return await self._call(detail, "executePayout")

    async def cancel_policy(self, policy_address: str) -> str:
        detail = await self._load(policy_address)
        return await self._call(detail, "cancelPolicy")

    async def _load(self, policy_address: str) -> PolicyDetail:
        if not Web3.is_address(policy_address) or is_zero_address(policy_address):
            raise PolicyValidationError({"policy_address": "Policy address is not valid"})
        detail = await self.queries.get_policy_detail(policy_address)
        if detail is None:
            raise PolicyValidationError({"policy_address": "No policy is deployed at this address"})
        return detail

    async def _approve_then_call(self, detail: PolicyDetail, amount: int, function_name: str) -> List[str]:
        session = self.session.require_connected()
        async with session.signing_lock:
            approve = await self.sender.send(
                self.chain.encode_token_approve(detail.address, amount),
                to=detail.token_address,
                description=f"token approval for {function_name}",
            )
            call = await self.sender.send(
                self.chain.encode_policy_call(function_name),
                to=detail.address,
                description=function_name,
            )
        return [approve.tx_hash, call.tx_hash]

    async def _call(self, detail: PolicyDetail, function_name: str) -> str:
        session = self.session.require_connected()
        async with session.signing_lock:
            receipt = await self.sender.send(
                self.chain.encode_policy_call(function_name),
                to=detail.address,
                description=function_name,
            )
        logger.info(f"{function_name} confirmed for policy {detail.address}")
        return receipt.tx_hash
