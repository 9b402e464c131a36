"""
Transaction sender.

The only place where transactions leave this client. Each send is:
submit through the wallet provider -> wait for the receipt (bounded by the
configured timeout) -> fail with TransactionFailure on rejection, revert or
timeout. Nothing is resubmitted automatically.

Callers that run a multi-step orchestration hold ``session.signing_lock`` for
its whole duration; this class does not take the lock itself so that flows can
compose several sends.
"""

from __future__ import annotations

import asyncio
import logging
from collections import Counter
from typing import Any, Awaitable, Callable, Optional

from eth_abi import decode as abi_decode

from src.integrations.contracts.errors import TransactionFailure
from src.integrations.contracts.interfaces import ChainClient, TransactionReceipt, TransactionRequest
from src.integrations.contracts.session import WalletSession

logger = logging.getLogger(__name__)

ERROR_STRING_SELECTOR = "08c379a0"


def decode_revert_reason(revert_data: Optional[str]) -> Optional[str]:
    """Decode a standard ``Error(string)`` revert payload; None for anything else."""
    if not revert_data:
        return None
    data = revert_data[2:] if revert_data.startswith("0x") else revert_data
    if not data.lower().startswith(ERROR_STRING_SELECTOR):
        return None
    try:
        (reason,) = abi_decode(["string"], bytes.fromhex(data[8:]))
    except Exception:
        return None
    return reason


class TransactionSender:
    def __init__(self, session: WalletSession, chain: ChainClient, receipt_timeout: float = 20.0) -> None:
        self.session = session
        self.chain = chain
        self.receipt_timeout = receipt_timeout
        self._unconfirmed: Counter = Counter()
        self._settled = asyncio.Condition()

    async def send(
        self,
        data: str,
        *,
        to: Optional[str] = None,
        description: str = "transaction",
        on_submitted: Optional[Callable[[str], None]] = None,
    ) -> TransactionReceipt:
        session = self.session.require_connected()
        request = TransactionRequest(from_address=session.address, to=to, data=data, chain_id=session.chain_id)
        target = (to or "").lower()

        await self._mark_unconfirmed(target)
        try:
            try:
                tx_hash = await session.signing_capability.send_transaction(request)
            except TransactionFailure:
                raise
            except Exception as exc:
                logger.error(f"Wallet refused {description}: {exc}")
                raise TransactionFailure(f"{description} was not submitted: {exc}") from exc

            logger.info("Submitted %s to %s (hash=%s)", description, to or "<create>", tx_hash)
            if on_submitted is not None:
                on_submitted(tx_hash)

            try:
                receipt = await asyncio.wait_for(self.chain.wait_for_receipt(tx_hash), timeout=self.receipt_timeout)
            except asyncio.TimeoutError as exc:
                raise TransactionFailure(
                    f"{description} confirmation timed out after {self.receipt_timeout:g}s", tx_hash=tx_hash
                ) from exc
            except Exception as exc:
                raise TransactionFailure(f"{description} receipt could not be read: {exc}", tx_hash=tx_hash) from exc

            if not receipt.succeeded:
                raise TransactionFailure(
                    f"{description} reverted on-chain",
                    tx_hash=tx_hash,
                    revert_reason=decode_revert_reason(receipt.revert_data),
                )
            logger.info("Confirmed %s (hash=%s)", description, tx_hash)
            return receipt
        finally:
            await self._mark_settled(target)

    async def read(self, call: Awaitable[Any], description: str = "contract read") -> Any:
        """Await a contract read under the same bound as a receipt wait.

        Node errors and timeouts surface as TransactionFailure so a read can
        never block a flow forever or escape it untyped.
        """
        try:
            return await asyncio.wait_for(call, timeout=self.receipt_timeout)
        except asyncio.TimeoutError as exc:
            raise TransactionFailure(f"{description} timed out after {self.receipt_timeout:g}s") from exc
        except TransactionFailure:
            raise
        except Exception as exc:
            logger.error(f"{description} failed: {exc}")
            raise TransactionFailure(f"{description} failed: {exc}") from exc

    def has_unconfirmed(self, address: str) -> bool:
        return self._unconfirmed[(address or "").lower()] > 0

    async def settled(self, address: str) -> None:
        """Wait until no write from this client to ``address`` is awaiting confirmation."""
        key = (address or "").lower()
        async with self._settled:
            await self._settled.wait_for(lambda: self._unconfirmed[key] == 0)

    async def _mark_unconfirmed(self, target: str) -> None:
        async with self._settled:
            self._unconfirmed[target] += 1

    async def _mark_settled(self, target: str) -> None:
        async with self._settled:
            self._unconfirmed[target] -= 1
            if self._unconfirmed[target] <= 0:
                del self._unconfirmed[target]
            self._settled.notify_all()
