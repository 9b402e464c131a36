"""
Wallet session management
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Callable, Optional

from src.integrations.contracts.errors import (
    ConnectionRejected,
    ConnectionTimeout,
    SmartInsuranceError,
    WalletNotConnected,
)
from src.integrations.contracts.interfaces import ChainBinding, ChainClient, WalletAccount, WalletProvider, WalletRole
from src.integrations.contracts.session import WalletSession
from src.integrations.policy.chain_bindings import ChainBindingResolver
from src.integrations.policy.identity_registry import IdentityRegistryClient
from src.integrations.policy.policy_lifecycle import PolicyLifecycleService
from src.integrations.policy.policy_queries import PolicyQueryService
from src.integrations.policy.transactions import TransactionSender
from src.utils.config_loader import WalletConfig
from src.wallet.flows.policy_deployment import PolicyDeploymentFlow
from src.wallet.flows.role_registration import RoleRegistrationFlow

logger = logging.getLogger(__name__)

ChainClientFactory = Callable[[ChainBinding], ChainClient]


@dataclass
class SessionServices:
    """Every handle derived from one (chain id, wallet address) pair."""

    session: WalletSession
    chain: ChainClient
    sender: TransactionSender
    identity: IdentityRegistryClient
    registration: RoleRegistrationFlow
    deployment: PolicyDeploymentFlow
    queries: PolicyQueryService
    lifecycle: PolicyLifecycleService


def build_services(session: WalletSession, chain: ChainClient, config: WalletConfig) -> SessionServices:
    sender = TransactionSender(session, chain, receipt_timeout=config.receipt_timeout_seconds)
    identity = IdentityRegistryClient(session, chain, sender)
    queries = PolicyQueryService(session, chain, identity, sender, token_decimals=config.token_decimals)
    return SessionServices(
        session=session,
        chain=chain,
        sender=sender,
        identity=identity,
        registration=RoleRegistrationFlow(session, identity),
        deployment=PolicyDeploymentFlow(session, chain, identity, sender, token_decimals=config.token_decimals),
        queries=queries,
        lifecycle=PolicyLifecycleService(session, chain, sender, queries, token_decimals=config.token_decimals),
    )


class SessionManager:
    """Owns the one WalletSession and the services derived from it.

    Connect, disconnect, an account change and a network switch all replace the
    session wholesale; the previous session is closed so any handle still held
    by a caller raises WalletNotConnected instead of acting on stale state.
    """

    def __init__(
        self,
        provider: WalletProvider,
        chain_factory: ChainClientFactory,
        resolver: ChainBindingResolver,
        config: Optional[WalletConfig] = None,
    ) -> None:
        self.provider = provider
        self.chain_factory = chain_factory
        self.resolver = resolver
        self.config = config or WalletConfig()
        self.session = WalletSession()
        self._services: Optional[SessionServices] = None

    async def connect(self) -> WalletSession:
        """Connect the wallet provider and bind the session to its chain."""
        self._reset()
        try:
            account = await asyncio.wait_for(self.provider.connect(), timeout=self.config.connect_timeout_seconds)
        except asyncio.TimeoutError as exc:
            raise ConnectionTimeout(
                f"Wallet did not connect within {self.config.connect_timeout_seconds:g}s"
            ) from exc
        except SmartInsuranceError:
            raise
        except Exception as exc:
            raise ConnectionRejected(f"Wallet connection failed: {exc}") from exc

        return await self._open(account)

    async def handle_account_changed(self, address: str, chain_id: int) -> WalletSession:
        """Treat an account or network switch reported by the wallet as a fresh connect."""
        if self.session.connected and self.session.key == (chain_id, address.lower()):
            return self.session
        logger.info(f"Wallet switched to {address} on chain {chain_id}; rebuilding session")
        self._reset()
        return await self._open(WalletAccount(address=address, chain_id=chain_id))

    async def disconnect(self) -> None:
        """Always clears local state, even when the remote disconnect fails."""
        try:
            await self.provider.disconnect()
        except Exception as exc:
            logger.warning(f"Wallet provider disconnect failed; clearing local session anyway: {exc}")
        finally:
            self._reset()
            logger.info("Wallet disconnected and session cleared")

    def services(self) -> SessionServices:
        session = self.session.require_connected()
        if self._services is None or self._services.session is not session:
            raise WalletNotConnected()
        return self._services

    async def _open(self, account: WalletAccount) -> WalletSession:
        try:
            binding = self.resolver.resolve(account.chain_id)
        except SmartInsuranceError:
            # Never keep a half-initialised session around.
            self._reset()
            raise

        session = WalletSession(
            connected=True,
            address=account.address,
            chain_id=account.chain_id,
            binding=binding,
            signing_capability=self.provider,
        )
        chain = self.chain_factory(binding)
        services = build_services(session, chain, self.config)
        self.session = session
        self._services = services

        try:
            identity_address = await services.identity.get_identity_address(account.address)
            if identity_address:
                session.identity_address = identity_address
                session.on_chain_role = await services.identity.get_role(identity_address)
            else:
                session.on_chain_role = WalletRole.NONE
        except Exception:
            self._reset()
            raise

        logger.info(
            "Wallet %s connected on chain %s (role=%s)",
            account.address,
            account.chain_id,
            session.on_chain_role.label,
        )
        return session

    def _reset(self) -> None:
        self.session.close()
        self.session = WalletSession()
        self._services = None
