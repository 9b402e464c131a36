"""Pytest fixtures for wallet, registration and policy tests."""

import time

import pytest

from src.integrations.clients.mocks import InMemoryLedger, MockWalletProvider
from src.integrations.policy.chain_bindings import DEFAULT_BINDINGS, ChainBindingResolver
from src.utils.config_loader import WalletConfig
from src.wallet.session import SessionManager

# Hardhat default accounts.
COMPANY = "0xf39Fd6e51aad88F6F4ce6aB8827279cffFb92266"
USER = "0x70997970C51812dc3A010C7d01b50e0d17dc79C8"
INSURED = "0x3C44CdDdB6a900fa2b585dd299e03d12FA4293BC"

LOCAL_CHAIN_ID = 31337


@pytest.fixture
def binding():
    return DEFAULT_BINDINGS[LOCAL_CHAIN_ID]


@pytest.fixture
def ledger(binding):
    """In-memory ledger holding the registry, identity records and policies."""
    return InMemoryLedger(
        binding.registry_address,
        binding.token_address,
        binding.insurance_gateway_address,
    )


@pytest.fixture
def wallet(ledger):
    return MockWalletProvider(ledger, COMPANY, chain_id=LOCAL_CHAIN_ID)


@pytest.fixture
def config():
    return WalletConfig(receipt_timeout_seconds=0.2, connect_timeout_seconds=0.2)


@pytest.fixture
def manager(wallet, ledger, config):
    return SessionManager(wallet, lambda _binding: ledger, ChainBindingResolver(), config)


@pytest.fixture
def connect(manager):
    """Connect the mock wallet and return the live service bundle."""

    async def _connect():
        await manager.connect()
        return manager.services()

    return _connect


@pytest.fixture
def policy_payload(binding):
    def _payload(**overrides):
        payload = {
            "insured_wallet": INSURED,
            "premium_amount": "1,5",
            "payout_amount": "100",
            "token_address": binding.token_address,
            "expiration_timestamp": int(time.time()) + 86400,
            "latitude": "45.07",
            "longitude": "7.68",
            "radius": "1000",
            "sensor_conditions": [
                {"sensor_topic": "saref:Temperature", "operator": "at_least", "threshold": "35"},
            ],
        }
        payload.update(overrides)
        return payload

    return _payload
