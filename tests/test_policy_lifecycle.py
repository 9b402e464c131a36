import pytest

from src.integrations.contracts.errors import PolicyValidationError, TransactionFailure
from src.integrations.contracts.interfaces import PolicyStatus, WalletRole

from conftest import COMPANY, INSURED, LOCAL_CHAIN_ID


@pytest.fixture
def registered(ledger):
    ledger.seed_identity(COMPANY, WalletRole.COMPANY)
    ledger.seed_identity(INSURED, WalletRole.USER)


@pytest.fixture
def deployed(connect, registered, policy_payload):
    async def _deployed():
        services = await connect()
        outcome = await services.deployment.deploy(policy_payload())
        return services, outcome.policy_address

    return _deployed


@pytest.mark.asyncio
async def test_insured_pays_premium_after_approval(deployed, manager, ledger, binding):
    _, policy = await deployed()
    await manager.handle_account_changed(INSURED, LOCAL_CHAIN_ID)
    services = manager.services()
    sent_before = len(ledger.transactions())

    hashes = await services.lifecycle.pay_premium(policy)

    new = ledger.transactions()[sent_before:]
    assert [tx.method for tx in new] == ["approve", "payPremium"]
    assert [tx.tx_hash for tx in new] == hashes
    assert new[0].to == binding.token_address
    assert new[0].args == [policy, 1_500_000_000_000_000_000]
    assert all(tx.sender == INSURED for tx in new)
    assert ledger.policies[policy.lower()].status is PolicyStatus.ACTIVE


@pytest.mark.asyncio
async def test_issuer_funds_payout(deployed, ledger):
    services, policy = await deployed()

    hashes = await services.lifecycle.fund_payout(policy)

    assert len(hashes) == 2
    assert [tx.method for tx in ledger.transactions()[-2:]] == ["approve", "depositForCreation"]
    assert ledger.transactions("approve")[0].args[1] == 100 * 10**18
    assert ledger.policies[policy.lower()].funded is True


@pytest.mark.asyncio
async def test_payout_requires_active_policy(deployed, ledger):
    services, policy = await deployed()

    with pytest.raises(TransactionFailure) as exc:
        await services.lifecycle.execute_payout(policy)
    assert exc.value.revert_reason == "Policy is not active"

    await services.lifecycle.pay_premium(policy)
    await services.lifecycle.execute_payout(policy)
    assert ledger.policies[policy.lower()].status is PolicyStatus.CLAIMED


@pytest.mark.asyncio
async def test_cancel_policy_once(deployed, ledger):
    services, policy = await deployed()

    await services.lifecycle.cancel_policy(policy)
    assert (await services.queries.get_policy_detail(policy)).status is PolicyStatus.CANCELLED

    with pytest.raises(TransactionFailure) as exc:
        await services.lifecycle.cancel_policy(policy)
    assert exc.value.revert_reason == "Policy is already closed"


@pytest.mark.asyncio
@pytest.mark.parametrize("address", ["0x123", "0x3333333333333333333333333333333333333333"])
async def test_lifecycle_needs_a_deployed_policy(connect, ledger, address):
    services = await connect()

    with pytest.raises(PolicyValidationError) as exc:
        await services.lifecycle.pay_premium(address)

    assert exc.value.field == "policy_address"
    assert ledger.transactions() == []
