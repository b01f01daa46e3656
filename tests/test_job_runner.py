import os
import sys
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', 'src'))

from unittest.mock import MagicMock

import pytest

from core.errors import AuthError, LeaseUnavailableError, UpstreamQueryError
from core.job_runner import JobRunner
from fakes import (
    NOW,
    FakeChainClient,
    FakeContextFactory,
    InMemoryIndexRepository,
    open_account,
    open_row,
    proposed_account,
    proposed_row,
    submit_rejected,
)
from models import JobType, ResolutionStatus, SignatureState, SignatureStatus

SECRET = "s3cret"
AUTH = f"Bearer {SECRET}"


@pytest.fixture
def chain():
    return FakeChainClient()


@pytest.fixture
def repository():
    return InMemoryIndexRepository()


@pytest.fixture
def factory(chain, repository):
    return FakeContextFactory(chain=chain, repository=repository)


@pytest.fixture
def runner(factory):
    return JobRunner(factory, SECRET, MagicMock(), lease_ttl_seconds=600, now=lambda: NOW)


@pytest.mark.asyncio
async def test_finalize_happy_path(runner, chain, repository):
    chain.put_market("mkt1", proposed_account())
    repository.rows["mkt1"] = proposed_row("mkt1")

    summary = await runner.run(JobType.FINALIZE, AUTH)

    assert summary.ok and summary.step == "complete"
    assert summary.count == 1
    result = summary.results[0]
    assert result.ok and result.tx_sig == "sig1"
    assert chain.market("mkt1").status == ResolutionStatus.FINALIZED
    assert repository.rows["mkt1"]["resolution_status"] == "finalized"
    assert repository.rows["mkt1"]["winning_outcome"] == 1
    assert repository.rows["mkt1"]["resolve_tx"] == "sig1"


@pytest.mark.asyncio
async def test_finalize_skips_disputed_market_without_submitting(runner, chain, repository):
    # Index still says proposed; chain already counts two disputes.
    chain.put_market("mkt1", proposed_account(dispute_count=2))
    repository.rows["mkt1"] = proposed_row("mkt1")

    summary = await runner.run(JobType.FINALIZE, AUTH)

    result = summary.results[0]
    assert result.skip is True
    assert result.reason == "has_disputes"
    assert result.diagnostics["dispute_count"] == 2
    assert chain.submitted == []
    assert repository.rows["mkt1"]["resolution_status"] == "proposed"


@pytest.mark.asyncio
async def test_cancel_happy_path(runner, chain, repository):
    chain.put_market("mkt2", open_account())
    repository.rows["mkt2"] = open_row("mkt2")

    summary = await runner.run(JobType.CANCEL, AUTH)

    assert summary.results[0].ok
    assert chain.submitted_instructions() == ["cancel_if_no_proposal"]
    row = repository.rows["mkt2"]
    assert row["cancelled"] is True
    assert row["resolution_status"] == "cancelled"
    assert row["cancel_reason"] == "no_proposal_48h"


@pytest.mark.asyncio
async def test_rerun_is_idempotent(runner, chain, repository):
    chain.put_market("mkt1", proposed_account())
    repository.rows["mkt1"] = proposed_row("mkt1")

    await runner.run(JobType.FINALIZE, AUTH)
    second = await runner.run(JobType.FINALIZE, AUTH)

    assert second.ok and second.count == 0
    assert len(chain.submitted) == 1


@pytest.mark.asyncio
async def test_rerun_after_failed_write_skips_on_chain_state(runner, chain, repository):
    chain.put_market("mkt1", proposed_account())
    repository.rows["mkt1"] = proposed_row("mkt1")
    repository.fail_updates_for.add("mkt1")

    first = await runner.run(JobType.FINALIZE, AUTH)
    assert first.results[0].reason == "reconciliation_write_failed"
    assert first.results[0].tx_sig == "sig1"

    second = await runner.run(JobType.FINALIZE, AUTH)
    assert second.results[0].skip is True
    assert second.results[0].reason == "not_proposed"
    assert len(chain.submitted) == 1


@pytest.mark.asyncio
async def test_confirmation_timeout_does_not_block_later_candidates(runner, chain, repository, factory):
    chain.put_market("mkt1", proposed_account())
    chain.put_market("mkt2", proposed_account())
    repository.rows["mkt1"] = proposed_row("mkt1")
    repository.rows["mkt2"] = proposed_row("mkt2")
    chain.status_sequence = [SignatureStatus(state=SignatureState.PENDING)]

    summary = await runner.run(JobType.FINALIZE, AUTH)

    assert [r.reason for r in summary.results] == ["confirmation_timeout", "confirmation_timeout"]
    assert [r.tx_sig for r in summary.results] == ["sig1", "sig2"]
    assert factory.clock.now == pytest.approx(180.0)
    assert repository.updates == []


@pytest.mark.asyncio
async def test_one_failure_does_not_abort_batch(runner, chain, repository):
    for address in ("a", "b", "c"):
        chain.put_market(address, proposed_account())
        repository.rows[address] = proposed_row(address)
    chain.account_errors["b"] = ConnectionError("rpc unavailable")

    summary = await runner.run(JobType.FINALIZE, AUTH)

    by_market = {r.market: r for r in summary.results}
    assert by_market["a"].ok and by_market["c"].ok
    assert by_market["b"].reason == "unexpected_error"
    assert "rpc unavailable" in by_market["b"].error


@pytest.mark.asyncio
async def test_submit_error_is_reported_per_candidate(runner, chain, repository):
    chain.put_market("mkt1", proposed_account())
    repository.rows["mkt1"] = proposed_row("mkt1")
    chain.submit_error = submit_rejected()

    summary = await runner.run(JobType.FINALIZE, AUTH)

    assert summary.ok
    assert summary.results[0].reason == "submit_error"
    assert summary.results[0].tx_sig is None


@pytest.mark.asyncio
@pytest.mark.parametrize("header", [None, "", "Bearer wrong", SECRET, f"bearer {SECRET}"])
async def test_rejects_bad_authorization(runner, factory, header):
    with pytest.raises(AuthError):
        await runner.run(JobType.FINALIZE, header)
    assert factory.created == 0


@pytest.mark.asyncio
async def test_rejects_everything_without_configured_secret(factory):
    runner = JobRunner(factory, None, MagicMock(), lease_ttl_seconds=600, now=lambda: NOW)
    with pytest.raises(AuthError):
        await runner.run(JobType.FINALIZE, "Bearer ")
    assert factory.created == 0


@pytest.mark.asyncio
async def test_busy_lease_aborts_without_scanning(runner, factory, repository):
    repository.rows["mkt1"] = proposed_row("mkt1")
    factory.lease.holders["resolution:finalize"] = "other-run"

    with pytest.raises(LeaseUnavailableError):
        await runner.run(JobType.FINALIZE, AUTH)
    assert factory.chain.submitted == []
    assert factory.chain.closed
    assert repository.stopped


@pytest.mark.asyncio
async def test_lease_is_released_after_run(runner, factory):
    await runner.run(JobType.CANCEL, AUTH)
    job_name, owner, ttl = factory.lease.acquired[0]
    assert job_name == "resolution:cancel"
    assert ttl == 600
    assert factory.lease.released == [(job_name, owner)]
    assert factory.lease.holders == {}


@pytest.mark.asyncio
async def test_scan_failure_aborts_and_releases_lease(runner, factory, repository):
    repository.query_error = RuntimeError("index unavailable")

    with pytest.raises(UpstreamQueryError) as exc_info:
        await runner.run(JobType.FINALIZE, AUTH)
    assert exc_info.value.step == "scan"
    assert factory.lease.holders == {}


@pytest.mark.asyncio
async def test_init_failure_is_upstream_error():
    factory = MagicMock()

    async def failing_create(job_type):
        raise ValueError("SERVICE_SIGNER_SECRET is required")

    factory.create = failing_create
    runner = JobRunner(factory, SECRET, MagicMock(), lease_ttl_seconds=600)

    with pytest.raises(UpstreamQueryError) as exc_info:
        await runner.run(JobType.FINALIZE, AUTH)
    assert exc_info.value.step == "init"


@pytest.mark.asyncio
async def test_onchain_revert_leaves_index_unchanged(runner, chain, repository):
    chain.put_market("mkt1", proposed_account())
    repository.rows["mkt1"] = proposed_row("mkt1")
    chain.status_sequence = [SignatureStatus(
        state=SignatureState.FAILED,
        error="InstructionErrorCustom(Custom(6008)) (InvalidState)",
    )]

    summary = await runner.run(JobType.FINALIZE, AUTH)

    result = summary.results[0]
    assert not result.ok
    assert result.reason == "onchain_revert"
    assert "InvalidState" in result.error
    assert result.tx_sig == "sig1"
    assert repository.updates == []
    assert repository.history == []


@pytest.mark.asyncio
async def test_status_lookup_error_still_reconciles(runner, chain, repository):
    chain.put_market("mkt1", proposed_account())
    repository.rows["mkt1"] = proposed_row("mkt1")
    chain.status_errors = [ConnectionError("429 Too Many Requests")]

    summary = await runner.run(JobType.FINALIZE, AUTH)

    result = summary.results[0]
    assert result.ok and result.tx_sig == "sig1"
    assert repository.rows["mkt1"]["resolve_tx"] == "sig1"
