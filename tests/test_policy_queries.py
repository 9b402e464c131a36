import time
from decimal import Decimal

import pytest

from src.integrations.contracts.interfaces import (
    GeoPoint,
    PolicyDetail,
    PolicyFilter,
    PolicyStatus,
    WalletRole,
)
from src.integrations.policy.policy_queries import partition_expired

from conftest import COMPANY, INSURED, USER


@pytest.fixture
def registered(ledger):
    ledger.seed_identity(COMPANY, WalletRole.COMPANY)
    ledger.seed_identity(INSURED, WalletRole.USER)


async def _deploy(services, policy_payload, **overrides):
    outcome = await services.deployment.deploy(policy_payload(**overrides))
    return outcome.policy_address


def _detail(address, status):
    return PolicyDetail(
        address=address,
        issuer_wallet=COMPANY,
        insured_wallet=INSURED,
        premium_amount=Decimal("1"),
        payout_amount=Decimal("10"),
        token_address=COMPANY,
        sensor_conditions=[],
        geofence=GeoPoint(0.0, 0.0, 1.0),
        expiration_timestamp=0,
        status=status,
    )


def test_partition_expired_uses_status_only():
    details = [_detail(f"0x{i}", status) for i, status in enumerate(PolicyStatus)]

    expired, others = partition_expired(details)

    assert [d.status for d in expired] == [PolicyStatus.EXPIRED]
    assert [d.status for d in others] == [
        PolicyStatus.PENDING,
        PolicyStatus.ACTIVE,
        PolicyStatus.CLAIMED,
        PolicyStatus.CANCELLED,
    ]


@pytest.mark.asyncio
async def test_policy_detail_is_normalized(connect, registered, policy_payload):
    services = await connect()
    address = await _deploy(services, policy_payload)

    detail = await services.queries.get_policy_detail(address)

    assert detail.issuer_wallet == COMPANY
    assert detail.insured_wallet == INSURED
    assert detail.premium_amount == Decimal("1.5")
    assert detail.payout_amount == Decimal("100")
    assert detail.status is PolicyStatus.PENDING
    assert detail.geofence == GeoPoint(latitude=45.07, longitude=7.68, radius_meters=1000.0)
    assert detail.sensor_conditions[0].sensor_topic == "saref:Temperature"


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "address",
    ["not-an-address", "0x0000000000000000000000000000000000000000", "0x2222222222222222222222222222222222222222"],
)
async def test_non_policy_addresses_yield_no_detail(connect, address):
    services = await connect()
    assert await services.queries.get_policy_detail(address) is None


@pytest.mark.asyncio
async def test_wallet_without_identity_has_no_policies(connect):
    services = await connect()
    assert await services.queries.list_policies(USER) == []


@pytest.mark.asyncio
async def test_list_policies_filters_client_side(connect, ledger, registered, policy_payload):
    services = await connect()
    kept = await _deploy(services, policy_payload)
    cancelled = await _deploy(services, policy_payload)
    await services.lifecycle.cancel_policy(cancelled)

    assert await services.queries.list_policies(COMPANY) == [kept, cancelled]
    assert await services.queries.list_policies(COMPANY, PolicyFilter.ACTIVE) == [kept]
    assert await services.queries.list_policies(INSURED, PolicyFilter.CLOSED) == [cancelled]
    assert "getActiveSmartInsurances" not in ledger.reads


@pytest.mark.asyncio
async def test_list_policies_uses_filtered_lists_when_available(connect, ledger, registered, policy_payload):
    ledger.supports_filtered_policy_lists = True
    services = await connect()
    address = await _deploy(services, policy_payload)

    assert await services.queries.list_policies(COMPANY, PolicyFilter.ACTIVE) == [address]
    assert await services.queries.list_policies(COMPANY, PolicyFilter.CLOSED) == []
    assert "getActiveSmartInsurances" in ledger.reads
    assert "getClosedSmartInsurances" in ledger.reads


@pytest.mark.asyncio
async def test_batch_mark_expired_with_nothing_sends_nothing(connect, ledger):
    services = await connect()

    assert await services.queries.batch_mark_expired([]) is None
    assert ledger.transactions() == []


@pytest.mark.asyncio
async def test_update_expired_marks_only_policies_past_expiration(connect, ledger, registered, policy_payload):
    services = await connect()
    now = int(time.time())
    soon = await _deploy(services, policy_payload, expiration_timestamp=now + 100)
    later = await _deploy(services, policy_payload, expiration_timestamp=now + 10_000)

    ledger.clock = lambda: now + 1_000
    services.queries.clock = lambda: now + 1_000
    submitted = await services.queries.update_expired(COMPANY)

    assert submitted == [soon]
    batches = ledger.transactions("batchUpdateExpiredPolicies")
    assert len(batches) == 1
    assert batches[0].to == services.session.binding.registry_address
    assert (await services.queries.get_policy_detail(soon)).status is PolicyStatus.EXPIRED
    assert (await services.queries.get_policy_detail(later)).status is PolicyStatus.PENDING

    # Already expired policies are no longer open, so a second run is a no-op.
    assert await services.queries.update_expired(COMPANY) == []
    assert len(ledger.transactions("batchUpdateExpiredPolicies")) == 1


@pytest.mark.asyncio
async def test_update_expired_without_due_policies_sends_nothing(connect, ledger, registered, policy_payload):
    services = await connect()
    await _deploy(services, policy_payload)

    assert await services.queries.update_expired(COMPANY) == []
    assert ledger.transactions("batchUpdateExpiredPolicies") == []


@pytest.mark.asyncio
async def test_update_expired_reads_each_policy_once(connect, ledger, registered, policy_payload):
    services = await connect()
    await _deploy(services, policy_payload)
    await _deploy(services, policy_payload)
    ledger.reads.clear()

    assert await services.queries.update_expired(COMPANY) == []
    assert ledger.reads.count("policyDetail") == 2
