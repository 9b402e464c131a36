"""
Mock integration clients.

An in-memory ledger and wallet provider that behave like the deployed
contracts without touching a node. They are used when:
- no RPC endpoint or wallet bridge is configured (local development)
- we want to test flows end-to-end, including reverts and timeouts

Important:
- Mock clients must follow the SAME interface as real clients
  (src/integrations/contracts/interfaces.py).

Switching to real:
Set USE_MOCK_LEDGER=false and configure the RPC/bridge URLs; the selection
happens in src/api/main.py only.
"""

from .ledger import InMemoryLedger
from .wallet import MockWalletProvider

__all__ = ["InMemoryLedger", "MockWalletProvider"]
