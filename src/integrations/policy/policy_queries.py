"""
Policy query service.

Read-only aggregation of the policies bound to a wallet, plus the batch
"mark expired" transition used by the expirations workflow. Status is never
changed client-side; this service only reads it or asks the registry to run
the external transition.
"""

from __future__ import annotations

import logging
import time
from typing import Callable, List, Optional, Sequence, Tuple

from web3 import Web3

from src.integrations.contracts.interfaces import (
    CLOSED_STATUSES,
    OPEN_STATUSES,
    ChainClient,
    PolicyDetail,
    PolicyFilter,
    PolicyStatus,
    is_zero_address,
)
from src.integrations.contracts.session import WalletSession
from src.integrations.policy.identity_registry import IdentityRegistryClient
from src.integrations.policy.response_wrappers import IntegrationResponseError, normalize_policy_detail
from src.integrations.policy.transactions import TransactionSender

logger = logging.getLogger(__name__)

_FILTER_STATUSES = {
    PolicyFilter.ACTIVE: OPEN_STATUSES,
    PolicyFilter.CLOSED: CLOSED_STATUSES,
}


def partition_expired(details: Sequence[PolicyDetail]) -> Tuple[List[PolicyDetail], List[PolicyDetail]]:
    """Split into (expired, everything else). Only status Expired (4) counts as expired."""
    expired = [d for d in details if d.status is PolicyStatus.EXPIRED]
    others = [d for d in details if d.status is not PolicyStatus.EXPIRED]
    return expired, others


class PolicyQueryService:
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

    async def list_policies(self, wallet: str, policy_filter: PolicyFilter = PolicyFilter.ALL) -> List[str]:
        identity_address = await self.identity.get_identity_address(wallet)
        if identity_address is None:
            return []

        if policy_filter is PolicyFilter.ALL or self.chain.supports_filtered_policy_lists:
            return await self.identity.get_policies(identity_address, policy_filter)

        return [d.address for d in await self._filtered_details(identity_address, policy_filter)]

    async def _filtered_details(self, identity_address: str, policy_filter: PolicyFilter) -> List[PolicyDetail]:
        wanted = _FILTER_STATUSES[policy_filter]
        details = await self.get_policy_details(await self.identity.get_policies(identity_address))
        return [d for d in details if d.status in wanted]

    async def get_policy_detail(self, address: str) -> Optional[PolicyDetail]:
        self.session.require_connected()
        if not Web3.is_address(address) or is_zero_address(address):
            return None
        raw = await self.sender.read(
            self.chain.get_policy_fields(Web3.to_checksum_address(address)), f"policy read {address}"
        )
        if raw is None:
            return None
        try:
            return normalize_policy_detail(address, raw, token_decimals=self.token_decimals)
        except IntegrationResponseError as exc:
            logger.warning(f"Address {address} does not look like a deployed policy: {exc}")
            return None

    async def get_policy_details(self, addresses: Sequence[str]) -> List[PolicyDetail]:
        details = []
        for address in addresses:
            detail = await self.get_policy_detail(address)
            if detail is not None:
                details.append(detail)
        return details

    async def batch_mark_expired(self, addresses: Sequence[str]) -> Optional[str]:
        """Ask the registry to move past-expiry policies to Expired; returns the tx hash."""
        if not addresses:
            logger.warning("batch_mark_expired called with no addresses; skipping")
            return None

        session = self.session.require_connected()
        policies = [Web3.to_checksum_address(a) for a in addresses]
        async with session.signing_lock:
            receipt = await self.sender.send(
                self.chain.encode_batch_expire(policies),
                to=session.binding.registry_address,
                description=f"batch expiry of {len(policies)} policies",
            )
        return receipt.tx_hash

    async def update_expired(self, wallet: str) -> List[str]:
        """Submit the expiry transition for open policies past their expiration.

        Returns the addresses that were submitted; no transaction is sent when
        there is nothing to update.
        """
        details = await self._open_details(wallet)
        if not details:
            logger.info(f"No active or pending policies for {wallet}; nothing to expire")
            return []

        now = int(self.clock())
        due = [
            d.address
            for d in details
            if d.status in OPEN_STATUSES and d.expiration_timestamp < now
        ]
        if not due:
            logger.info("All open policies are still within their term")
            return []

        await self.batch_mark_expired(due)
        return due

    async def _open_details(self, wallet: str) -> List[PolicyDetail]:
        identity_address = await self.identity.get_identity_address(wallet)
        if identity_address is None:
            return []
        if self.chain.supports_filtered_policy_lists:
            addresses = await self.identity.get_policies(identity_address, PolicyFilter.ACTIVE)
            return await self.get_policy_details(addresses)
        return await self._filtered_details(identity_address, PolicyFilter.ACTIVE)
