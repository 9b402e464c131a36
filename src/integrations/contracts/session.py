"""
Wallet session contract.

A WalletSession is the single explicit value every service receives by
reference. It is replaced, never patched: connect, disconnect, a network switch
or a binding failure produce a new session and close the old one, so handles
built for the old (chain id, address) pair stop working instead of acting on
stale state.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import Optional, Set

from .errors import WalletNotConnected
from .interfaces import ChainBinding, WalletProvider, WalletRole


@dataclass(eq=False)
class WalletSession:
    connected: bool = False
    address: Optional[str] = None
    chain_id: Optional[int] = None
    binding: Optional[ChainBinding] = None
    signing_capability: Optional[WalletProvider] = None
    identity_address: Optional[str] = None
    on_chain_role: WalletRole = WalletRole.NONE
    # One orchestration at a time may submit transactions from this client.
    signing_lock: asyncio.Lock = field(default_factory=asyncio.Lock)
    registrations_in_flight: Set[str] = field(default_factory=set)
    closed: bool = False

    def __post_init__(self) -> None:
        if self.connected and (self.address is None or self.chain_id is None):
            raise ValueError("A connected session needs both an address and a chain id")

    @property
    def key(self) -> tuple:
        return (self.chain_id, (self.address or "").lower())

    def require_connected(self) -> "WalletSession":
        if self.closed or not self.connected:
            raise WalletNotConnected()
        return self

    def close(self) -> None:
        self.closed = True
        self.connected = False
        self.registrations_in_flight.clear()
