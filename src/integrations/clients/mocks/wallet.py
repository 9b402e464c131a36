"""
Mock wallet provider.

Signs and "mines" transactions against an InMemoryLedger. Connection outcomes
(approve, reject, never answer) are configurable so the session lifecycle can
be exercised without a wallet app.
"""

from __future__ import annotations

import asyncio
import logging
from typing import List, Optional

from web3 import Web3

from src.integrations.contracts.errors import ConnectionRejected
from src.integrations.contracts.interfaces import TransactionRequest, WalletAccount, WalletProvider

from .ledger import InMemoryLedger

logger = logging.getLogger(__name__)


class MockWalletProvider(WalletProvider):
    def __init__(
        self,
        ledger: InMemoryLedger,
        address: str,
        chain_id: int = 31337,
        *,
        reject_connect: bool = False,
        hang_on_connect: bool = False,
        fail_disconnect: bool = False,
    ) -> None:
        self.ledger = ledger
        self.address = Web3.to_checksum_address(address)
        self.chain_id = chain_id
        self.reject_connect = reject_connect
        self.hang_on_connect = hang_on_connect
        self.fail_disconnect = fail_disconnect
        self.connected = False
        self.submitted: List[TransactionRequest] = []

    async def connect(self) -> WalletAccount:
        if self.hang_on_connect:
            await asyncio.Event().wait()
        if self.reject_connect:
            raise ConnectionRejected("User rejected the connection request")
        self.connected = True
        logger.info("Mock wallet connected: %s on chain %s", self.address, self.chain_id)
        return WalletAccount(address=self.address, chain_id=self.chain_id)

    async def disconnect(self) -> None:
        self.connected = False
        if self.fail_disconnect:
            raise RuntimeError("Wallet bridge unreachable")

    async def send_transaction(self, request: TransactionRequest) -> str:
        if not self.connected:
            raise RuntimeError("Wallet is not connected")
        self.submitted.append(request)
        return self.ledger.execute(request)

    def switch_account(self, address: str, chain_id: Optional[int] = None) -> WalletAccount:
        """Simulate the user picking another account or network in the wallet app."""
        self.address = Web3.to_checksum_address(address)
        if chain_id is not None:
            self.chain_id = chain_id
        return WalletAccount(address=self.address, chain_id=self.chain_id)
