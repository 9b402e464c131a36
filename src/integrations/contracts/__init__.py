"""
Contracts (data models).

This folder defines the shapes exchanged with the external collaborators:
- wallet provider (connect, submit transaction)
- chain client (contract reads, receipts, calldata encoding)
- the policy contract's constructor tuples and the sensor geo query JSON

Why this exists:
- Ensures consistent data structures across mock and real clients
- Keeps the orchestration flows independent of web3 and of the wallet transport
- Makes failure handling explicit: every failure kind lives in errors.py

Both mock and real clients should use these contracts.
"""
