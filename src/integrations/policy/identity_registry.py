"""
Identity registry client.

Read/write wrapper around the shared registry contract and the per-wallet
identity records it creates.

The read-before-write checks in ensure_identity and set_role only avoid
redundant transactions. They are not a lock: another client may create the
record or set a role between our read and our write. The contract is the final
arbiter, so every write path re-reads after a rejection and reports what the
chain actually holds.
"""

from __future__ import annotations

import logging
from typing import Callable, List, Optional

from web3 import Web3

from src.integrations.contracts.errors import IdentityCreationFailed, RoleConflict, TransactionFailure
from src.integrations.contracts.interfaces import ChainClient, PolicyFilter, WalletRole, is_zero_address
from src.integrations.contracts.session import WalletSession
from src.integrations.policy.transactions import TransactionSender

logger = logging.getLogger(__name__)


def _same_address(a: Optional[str], b: Optional[str]) -> bool:
    return bool(a) and bool(b) and a.lower() == b.lower()


class IdentityRegistryClient:
    def __init__(self, session: WalletSession, chain: ChainClient, sender: TransactionSender) -> None:
        self.session = session
        self.chain = chain
        self.sender = sender

    @property
    def registry_address(self) -> str:
        return self.session.require_connected().binding.registry_address

    # -- Identity records --

    async def get_identity_address(self, wallet: str) -> Optional[str]:
        registry = self.registry_address
        await self.sender.settled(registry)
        raw = await self.sender.read(
            self.chain.get_identity_address(registry, Web3.to_checksum_address(wallet)), "identity lookup"
        )
        if is_zero_address(raw):
            return None
        return Web3.to_checksum_address(raw)

    async def ensure_identity(self, wallet: str, on_submitted: Optional[Callable[[str], None]] = None) -> str:
        """Return the wallet's identity record, creating it first when absent."""
        existing = await self.get_identity_address(wallet)
        if existing:
            return existing

        if not _same_address(wallet, self.session.address):
            raise ValueError("An identity record can only be created by the wallet it belongs to")

        logger.info(f"No identity record for {wallet}; creating one through the registry")
        try:
            await self.sender.send(
                self.chain.encode_register_identity(),
                to=self.registry_address,
                description="identity creation",
                on_submitted=on_submitted,
            )
        except TransactionFailure:
            # Lost a race with another client creating the same record.
            created_elsewhere = await self.get_identity_address(wallet)
            if created_elsewhere:
                logger.warning(f"Identity creation for {wallet} was rejected but a record now exists")
                return created_elsewhere
            raise

        created = await self.get_identity_address(wallet)
        if not created:
            raise IdentityCreationFailed(wallet)
        return created

    # -- Roles --

    async def get_role(self, identity_address: str) -> WalletRole:
        await self.sender.settled(identity_address)
        raw = await self.sender.read(self.chain.get_wallet_type(identity_address), "wallet type read")
        return WalletRole(int(raw))

    async def set_role(
        self,
        identity_address: str,
        role: WalletRole,
        on_submitted: Optional[Callable[[str], None]] = None,
    ) -> bool:
        """Commit ``role``; returns False when it was already set (no transaction)."""
        if role is WalletRole.NONE:
            raise ValueError("Cannot register the NONE wallet role")

        current = await self.get_role(identity_address)
        if current == role:
            logger.info(f"Identity {identity_address} already has role {role.label}; nothing to send")
            return False
        if current is not WalletRole.NONE:
            raise RoleConflict(actual_role=current, requested_role=role)

        try:
            await self.sender.send(
                self.chain.encode_set_wallet_type(role),
                to=identity_address,
                description=f"set wallet type {role.label}",
                on_submitted=on_submitted,
            )
        except TransactionFailure:
            actual = await self.get_role(identity_address)
            if actual == role:
                logger.warning(f"set wallet type was rejected but {identity_address} already holds {role.label}")
                return False
            if actual is not WalletRole.NONE:
                raise RoleConflict(actual_role=actual, requested_role=role)
            raise
        return True

    # -- Policy bindings --

    async def get_policies(self, identity_address: str, policy_filter: PolicyFilter = PolicyFilter.ALL) -> List[str]:
        await self.sender.settled(identity_address)
        addresses = await self.sender.read(
            self.chain.get_policy_addresses(identity_address, policy_filter), "policy list read"
        )
        return [Web3.to_checksum_address(a) for a in addresses]

    async def is_policy_bound(self, identity_address: str, policy_address: str) -> bool:
        policies = await self.get_policies(identity_address)
        return any(_same_address(p, policy_address) for p in policies)

    async def bind_policy(self, identity_address: str, policy_address: str, *, check_existing: bool = False) -> bool:
        """Record ``policy_address`` in an identity record; False when it was already there."""
        if check_existing and await self.is_policy_bound(identity_address, policy_address):
            logger.info(f"Policy {policy_address} already bound to {identity_address}")
            return False

        try:
            await self.sender.send(
                self.chain.encode_add_policy(policy_address),
                to=identity_address,
                description="policy binding",
            )
        except TransactionFailure:
            if await self.is_policy_bound(identity_address, policy_address):
                logger.warning(f"Binding of {policy_address} was rejected as a duplicate; treating as bound")
                return False
            raise
        return True
