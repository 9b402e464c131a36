import asyncio

import pytest

from src.integrations.clients.mocks.ledger import HANG
from src.integrations.contracts.errors import RoleConflict, TransactionFailure
from src.integrations.contracts.interfaces import WalletRole

from conftest import COMPANY, USER


@pytest.mark.asyncio
async def test_unknown_wallet_has_no_identity(connect):
    services = await connect()
    assert await services.identity.get_identity_address(USER) is None


@pytest.mark.asyncio
async def test_ensure_identity_creates_at_most_once(connect, ledger):
    services = await connect()

    first = await services.identity.ensure_identity(COMPANY)
    second = await services.identity.ensure_identity(COMPANY)

    assert first == second == ledger.identity_of(COMPANY)
    assert len(ledger.transactions("registerAndCreateIndividualWalletInfo")) == 1


@pytest.mark.asyncio
async def test_ensure_identity_only_for_connected_wallet(connect, ledger):
    services = await connect()

    with pytest.raises(ValueError):
        await services.identity.ensure_identity(USER)
    assert ledger.transactions() == []


@pytest.mark.asyncio
async def test_ensure_identity_accepts_record_created_by_another_client(connect, ledger):
    services = await connect()
    original_execute = ledger.execute

    def racing_execute(request):
        ledger.seed_identity(COMPANY)
        return original_execute(request)

    ledger.execute = racing_execute

    identity = await services.identity.ensure_identity(COMPANY)

    assert identity == ledger.identity_of(COMPANY)


@pytest.mark.asyncio
async def test_set_role_is_idempotent(connect, ledger):
    identity = ledger.seed_identity(COMPANY, WalletRole.COMPANY)
    services = await connect()

    changed = await services.identity.set_role(identity, WalletRole.COMPANY)

    assert changed is False
    assert ledger.transactions("setWalletType") == []


@pytest.mark.asyncio
async def test_set_role_conflict_sends_nothing(connect, ledger):
    identity = ledger.seed_identity(COMPANY, WalletRole.USER)
    services = await connect()

    with pytest.raises(RoleConflict) as exc:
        await services.identity.set_role(identity, WalletRole.COMPANY)

    assert exc.value.actual_role is WalletRole.USER
    assert exc.value.requested_role is WalletRole.COMPANY
    assert ledger.transactions("setWalletType") == []


@pytest.mark.asyncio
async def test_rejected_role_write_reports_role_read_back_from_chain(connect, ledger):
    identity = ledger.seed_identity(COMPANY)
    services = await connect()
    original_execute = ledger.execute

    def racing_execute(request):
        ledger.records[identity.lower()].wallet_type = int(WalletRole.USER)
        return original_execute(request)

    ledger.execute = racing_execute

    with pytest.raises(RoleConflict) as exc:
        await services.identity.set_role(identity, WalletRole.COMPANY)
    assert exc.value.actual_role is WalletRole.USER


@pytest.mark.asyncio
async def test_rejected_role_write_without_role_change_propagates(connect, ledger):
    identity = ledger.seed_identity(COMPANY)
    services = await connect()
    ledger.fail_next("setWalletType", reason="paused")

    with pytest.raises(TransactionFailure) as exc:
        await services.identity.set_role(identity, WalletRole.COMPANY)
    assert exc.value.revert_reason == "paused"
    assert exc.value.tx_hash is not None


@pytest.mark.asyncio
async def test_none_role_is_never_written(connect, ledger):
    identity = ledger.seed_identity(COMPANY)
    services = await connect()

    with pytest.raises(ValueError):
        await services.identity.set_role(identity, WalletRole.NONE)


@pytest.mark.asyncio
async def test_duplicate_binding_counts_as_bound(connect, ledger):
    identity = ledger.seed_identity(COMPANY, WalletRole.COMPANY)
    services = await connect()
    policy = "0x1111111111111111111111111111111111111111"

    assert await services.identity.bind_policy(identity, policy) is True
    assert await services.identity.bind_policy(identity, policy) is False
    assert await services.identity.bind_policy(identity, policy, check_existing=True) is False
    assert len(ledger.transactions("addSmartInsuranceContract")) == 2
    assert ledger.bound_policies(COMPANY) == [policy]


@pytest.mark.asyncio
async def test_node_error_on_read_is_a_transaction_failure(connect, ledger, monkeypatch):
    services = await connect()

    async def unreachable(registry_address, wallet):
        raise ConnectionError("node unreachable")

    monkeypatch.setattr(ledger, "get_identity_address", unreachable)

    with pytest.raises(TransactionFailure) as exc:
        await services.identity.get_identity_address(USER)
    assert "node unreachable" in exc.value.cause


@pytest.mark.asyncio
async def test_stalled_read_times_out(connect, ledger, monkeypatch):
    identity = ledger.seed_identity(COMPANY)
    services = await connect()

    async def stalled(identity_address):
        await asyncio.Event().wait()

    monkeypatch.setattr(ledger, "get_wallet_type", stalled)

    with pytest.raises(TransactionFailure) as exc:
        await services.identity.get_role(identity)
    assert "timed out" in exc.value.cause


@pytest.mark.asyncio
async def test_role_read_waits_for_unconfirmed_role_write(connect, ledger):
    identity = ledger.seed_identity(COMPANY)
    services = await connect()
    ledger.fail_next("setWalletType", to=identity, mode=HANG)

    write = asyncio.create_task(services.identity.set_role(identity, WalletRole.COMPANY))
    while not ledger.transactions("setWalletType"):
        await asyncio.sleep(0)
    reads_before = ledger.reads.count("getWalletType")
    read = asyncio.create_task(services.identity.get_role(identity))
    await asyncio.sleep(0.05)

    assert services.sender.has_unconfirmed(identity)
    assert not read.done()
    assert ledger.reads.count("getWalletType") == reads_before

    with pytest.raises(TransactionFailure):
        await write
    assert not services.sender.has_unconfirmed(identity)
    assert await read is WalletRole.NONE


@pytest.mark.asyncio
async def test_identity_lookup_waits_for_unconfirmed_registration(connect, ledger):
    services = await connect()
    registry = services.session.binding.registry_address
    ledger.fail_next("registerAndCreateIndividualWalletInfo", mode=HANG)

    create = asyncio.create_task(services.identity.ensure_identity(COMPANY))
    while not ledger.transactions("registerAndCreateIndividualWalletInfo"):
        await asyncio.sleep(0)
    lookup = asyncio.create_task(services.identity.get_identity_address(USER))
    await asyncio.sleep(0.05)

    assert services.sender.has_unconfirmed(registry)
    assert not lookup.done()

    with pytest.raises(TransactionFailure):
        await create
    assert await lookup is None
