"""
Real wallet bridge HTTP client.

Used when a wallet bridge is configured (WALLET_BRIDGE_URL). The bridge relays
EIP-1193 JSON-RPC requests to the user's wallet app and blocks until the user
approves or rejects them.
"""

from __future__ import annotations

import itertools
import logging
import os
from typing import Any, Dict, List, Optional

import httpx

from src.integrations.contracts.errors import ConnectionRejected, TransactionFailure
from src.integrations.contracts.interfaces import TransactionRequest, WalletAccount, WalletProvider

logger = logging.getLogger(__name__)

# EIP-1193 "User Rejected Request".
USER_REJECTED_CODE = 4001


class WalletBridgeError(Exception):
    def __init__(self, code: Optional[int], message: str) -> None:
        super().__init__(message)
        self.code = code
        self.message = message


class WalletBridgeProvider(WalletProvider):
    def __init__(
        self,
        base_url: Optional[str] = None,
        api_key: Optional[str] = None,
        timeout_seconds: float = 120.0,
    ) -> None:
        self.base_url = (base_url or os.getenv("WALLET_BRIDGE_URL", "")).rstrip("/")
        self.api_key = api_key or os.getenv("WALLET_BRIDGE_API_KEY", "")
        self.timeout_seconds = timeout_seconds
        self._ids = itertools.count(1)

    async def _request(self, method: str, params: Optional[List[Any]] = None) -> Any:
        if not self.base_url:
            raise ValueError("WALLET_BRIDGE_URL is not configured.")

        headers: Dict[str, str] = {"Content-Type": "application/json"}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"

        payload = {"jsonrpc": "2.0", "id": next(self._ids), "method": method, "params": params or []}
        async with httpx.AsyncClient(timeout=self.timeout_seconds) as client:
            response = await client.post(self.base_url, json=payload, headers=headers)
            response.raise_for_status()
            data = response.json() if response.content else {}

        error = data.get("error")
        if error:
            raise WalletBridgeError(error.get("code"), error.get("message") or "wallet bridge error")
        return data.get("result")

    async def connect(self) -> WalletAccount:
        try:
            accounts = await self._request("eth_requestAccounts")
            chain_id = await self._request("eth_chainId")
        except WalletBridgeError as exc:
            if exc.code == USER_REJECTED_CODE:
                raise ConnectionRejected("User rejected the connection request") from exc
            raise ConnectionRejected(f"Wallet bridge refused the connection: {exc.message}") from exc

        if not accounts:
            raise ConnectionRejected("Wallet returned no accounts")
        chain = int(chain_id, 16) if isinstance(chain_id, str) else int(chain_id)
        logger.info(f"Wallet bridge connected account {accounts[0]} on chain {chain}")
        return WalletAccount(address=accounts[0], chain_id=chain)

    async def disconnect(self) -> None:
        await self._request("wallet_disconnect")

    async def send_transaction(self, request: TransactionRequest) -> str:
        try:
            return await self._request("eth_sendTransaction", [request.to_rpc_params()])
        except WalletBridgeError as exc:
            if exc.code == USER_REJECTED_CODE:
                raise TransactionFailure("User rejected the transaction") from exc
            raise TransactionFailure(f"Wallet bridge error: {exc.message}") from exc
