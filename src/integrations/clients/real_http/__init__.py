"""
Real integration clients.

These clients talk to live external systems:
- an Ethereum JSON-RPC node (reads, receipts) via web3
- a wallet bridge that forwards signing requests to the user's wallet app

Important:
- Must implement the same interfaces as the mock clients
- Must return data shaped according to src/integrations/contracts/*

Switching:
The selection of mock vs real clients should happen in src/api/main.py only.
"""
