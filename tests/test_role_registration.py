import asyncio

import pytest

from src.integrations.clients.mocks.ledger import HANG
from src.integrations.contracts.errors import RegistrationInProgress, RoleConflict
from src.integrations.contracts.interfaces import WalletRole
from src.wallet.flows.role_registration import RegistrationStep

from conftest import COMPANY

S = RegistrationStep


@pytest.mark.asyncio
async def test_fresh_wallet_creates_identity_then_sets_role(connect, manager, ledger):
    services = await connect()

    registration = await services.registration.role_selected(WalletRole.USER)

    assert registration.step is S.DONE
    assert registration.history == [S.RESOLVING_IDENTITY, S.CREATING_IDENTITY, S.SETTING_ROLE, S.DONE]
    assert len(ledger.transactions("registerAndCreateIndividualWalletInfo")) == 1
    assert len(ledger.transactions("setWalletType")) == 1
    assert len(registration.transactions) == 2
    assert registration.pending_tx_hash is None
    assert registration.identity_address == ledger.identity_of(COMPANY)
    assert ledger.records[registration.identity_address.lower()].wallet_type == WalletRole.USER
    assert manager.session.on_chain_role is WalletRole.USER
    assert manager.session.identity_address == registration.identity_address


@pytest.mark.asyncio
async def test_existing_identity_skips_creation(connect, ledger):
    ledger.seed_identity(COMPANY)
    services = await connect()

    registration = await services.registration.role_selected(WalletRole.COMPANY)

    assert registration.history == [S.RESOLVING_IDENTITY, S.SETTING_ROLE, S.DONE]
    assert ledger.transactions("registerAndCreateIndividualWalletInfo") == []


@pytest.mark.asyncio
async def test_selecting_current_role_sends_nothing(connect, ledger):
    ledger.seed_identity(COMPANY, WalletRole.COMPANY)
    services = await connect()

    registration = await services.registration.role_selected(WalletRole.COMPANY)

    assert registration.step is S.DONE
    assert registration.transactions == []
    assert ledger.transactions() == []


@pytest.mark.asyncio
async def test_conflicting_role_fails_with_actual_role(connect, ledger):
    ledger.seed_identity(COMPANY, WalletRole.USER)
    services = await connect()

    registration = await services.registration.role_selected(WalletRole.COMPANY)

    assert registration.step is S.FAILED
    assert registration.failure_reason == "role_conflict"
    assert registration.actual_role is WalletRole.USER
    assert ledger.transactions() == []
    with pytest.raises(RoleConflict):
        registration.raise_for_failure()


@pytest.mark.asyncio
async def test_reverted_identity_creation_fails_registration(connect, ledger):
    services = await connect()
    ledger.fail_next("registerAndCreateIndividualWalletInfo")

    registration = await services.registration.role_selected(WalletRole.USER)

    assert registration.step is S.FAILED
    assert registration.history[-2:] == [S.CREATING_IDENTITY, S.FAILED]
    assert registration.failure_reason == "identity_creation_failed"
    assert ledger.transactions("setWalletType") == []


@pytest.mark.asyncio
async def test_second_registration_while_first_in_flight_is_rejected(connect, ledger):
    services = await connect()
    ledger.fail_next("registerAndCreateIndividualWalletInfo", mode=HANG)

    first = asyncio.create_task(services.registration.role_selected(WalletRole.USER))
    await asyncio.sleep(0.05)

    with pytest.raises(RegistrationInProgress):
        await services.registration.role_selected(WalletRole.COMPANY)

    registration = await first
    # The receipt never arrived, so the bounded wait fails the registration.
    assert registration.step is S.FAILED
    assert len(registration.transactions) == 1
    assert len(ledger.transactions("registerAndCreateIndividualWalletInfo")) == 1


@pytest.mark.asyncio
async def test_registration_can_run_again_after_failure(connect, ledger):
    services = await connect()
    ledger.fail_next("setWalletType")

    failed = await services.registration.role_selected(WalletRole.USER)
    retried = await services.registration.role_selected(WalletRole.USER)

    assert failed.step is S.FAILED
    assert retried.step is S.DONE
    assert retried.history == [S.RESOLVING_IDENTITY, S.SETTING_ROLE, S.DONE]
    assert len(ledger.transactions("registerAndCreateIndividualWalletInfo")) == 1


@pytest.mark.asyncio
async def test_none_role_cannot_be_selected(connect):
    services = await connect()
    with pytest.raises(ValueError):
        await services.registration.role_selected(WalletRole.NONE)


@pytest.mark.asyncio
async def test_node_error_while_resolving_fails_registration(connect, ledger, monkeypatch):
    services = await connect()

    async def unreachable(registry_address, wallet):
        raise ConnectionError("node unreachable")

    monkeypatch.setattr(ledger, "get_identity_address", unreachable)

    registration = await services.registration.role_selected(WalletRole.USER)

    assert registration.step is S.FAILED
    assert registration.failure_reason == "transaction_failure"
    assert ledger.transactions() == []
