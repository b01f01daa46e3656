import os
import sys
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', 'src'))

from unittest.mock import MagicMock

import pytest

from core.interfaces import FilterOp, IndexFilter
from core.resolution_rules import FinalizeNoDisputesRule
from fakes import NOW
from models import ResolutionStatus
from services.job_lease import SupabaseJobLease
from services.supabase_repository import SupabaseIndexRepository, format_filter_value, parse_market_row


def make_builder(data=None):
    builder = MagicMock()
    for method in ("select", "insert", "update", "delete", "eq", "lt", "lte", "gte", "limit"):
        getattr(builder, method).return_value = builder
    builder.execute.return_value = MagicMock(data=data)
    return builder


@pytest.fixture
def builder():
    return make_builder()


@pytest.fixture
def client(builder):
    client = MagicMock()
    client.table.return_value = builder
    return client


@pytest.fixture
def mock_logger():
    return MagicMock()


def test_format_filter_value():
    assert format_filter_value(True) == "true"
    assert format_filter_value(False) == "false"
    assert format_filter_value(NOW) == "2026-10-17T12:00:00+00:00"
    assert format_filter_value("proposed") == "proposed"


def test_parse_market_row_maps_key_and_drops_nulls():
    market = parse_market_row({
        "market_address": "mkt1",
        "resolution_status": "proposed",
        "proposed_winning_outcome": None,
        "resolved": False,
    })
    assert market.address == "mkt1"
    assert market.resolution_status == ResolutionStatus.PROPOSED
    assert market.proposed_winning_outcome is None


@pytest.mark.asyncio
async def test_query_applies_filters_and_limit(client, builder, mock_logger):
    builder.execute.return_value = MagicMock(data=[{"market_address": "mkt1", "resolution_status": "proposed"}])
    repo = SupabaseIndexRepository(client, mock_logger)

    markets = await repo.query(FinalizeNoDisputesRule().candidate_filters(NOW), 50)

    client.table.assert_called_with("markets")
    builder.eq.assert_any_call("resolution_status", "proposed")
    builder.eq.assert_any_call("resolved", "false")
    builder.eq.assert_any_call("cancelled", "false")
    builder.lte.assert_called_once_with("contest_deadline", NOW.isoformat())
    builder.limit.assert_called_once_with(50)
    assert [m.address for m in markets] == ["mkt1"]


@pytest.mark.asyncio
async def test_query_custom_table(client, builder, mock_logger):
    builder.execute.return_value = MagicMock(data=None)
    repo = SupabaseIndexRepository(client, mock_logger, table="markets_v2")
    markets = await repo.query([IndexFilter(column="resolved", op=FilterOp.EQ, value=True)], 10)
    client.table.assert_called_with("markets_v2")
    assert markets == []


@pytest.mark.asyncio
async def test_update_by_key_serializes_timestamps(client, builder, mock_logger):
    builder.execute.return_value = MagicMock(data=[{"market_address": "mkt1"}])
    repo = SupabaseIndexRepository(client, mock_logger)

    await repo.update_by_key("mkt1", {"resolved": True, "resolved_at": NOW})

    builder.update.assert_called_once_with({"resolved": True, "resolved_at": NOW.isoformat()})
    builder.eq.assert_called_once_with("market_address", "mkt1")


@pytest.mark.asyncio
async def test_update_by_key_missing_row(client, builder, mock_logger):
    builder.execute.return_value = MagicMock(data=[])
    repo = SupabaseIndexRepository(client, mock_logger)
    with pytest.raises(LookupError):
        await repo.update_by_key("ghost", {"resolved": True})


@pytest.mark.asyncio
async def test_state_transition_failure_is_logged(client, builder, mock_logger):
    builder.execute.side_effect = Exception("relation does not exist")
    repo = SupabaseIndexRepository(client, mock_logger)

    await repo.write_state_transition("mkt1", "proposed", "finalized", {"tx": "sig1"})

    client.table.assert_called_with("market_resolution_history")
    mock_logger.error.assert_called_once()


@pytest.mark.asyncio
async def test_lease_acquire_inserts_row(client, builder, mock_logger):
    lease = SupabaseJobLease(client, mock_logger)
    assert await lease.acquire("resolution:finalize", "run-1", 600)
    row = builder.insert.call_args.args[0]
    assert row["job_name"] == "resolution:finalize"
    assert row["owner"] == "run-1"


@pytest.mark.asyncio
async def test_lease_busy_when_unexpired(mock_logger):
    insert_builder = make_builder()
    insert_builder.execute.side_effect = Exception('duplicate key value violates unique constraint "job_leases_pkey"')
    update_builder = make_builder(data=[])
    client = MagicMock()
    client.table.side_effect = [insert_builder, update_builder]

    lease = SupabaseJobLease(client, mock_logger)

    assert not await lease.acquire("resolution:finalize", "run-2", 600)
    update_builder.eq.assert_called_once_with("job_name", "resolution:finalize")
    assert update_builder.lt.call_args.args[0] == "expires_at"


@pytest.mark.asyncio
async def test_lease_takes_over_expired_row(mock_logger):
    insert_builder = make_builder()
    insert_builder.execute.side_effect = Exception("code 23505")
    update_builder = make_builder(data=[{"job_name": "resolution:cancel"}])
    client = MagicMock()
    client.table.side_effect = [insert_builder, update_builder]

    lease = SupabaseJobLease(client, mock_logger)

    assert await lease.acquire("resolution:cancel", "run-3", 600)


@pytest.mark.asyncio
async def test_lease_other_errors_propagate(client, builder, mock_logger):
    builder.execute.side_effect = Exception("permission denied for table job_leases")
    lease = SupabaseJobLease(client, mock_logger)
    with pytest.raises(Exception, match="permission denied"):
        await lease.acquire("resolution:cancel", "run-1", 600)


@pytest.mark.asyncio
async def test_lease_release_scoped_to_owner(client, builder, mock_logger):
    lease = SupabaseJobLease(client, mock_logger)
    await lease.release("resolution:cancel", "run-1")
    builder.delete.assert_called_once()
    builder.eq.assert_any_call("job_name", "resolution:cancel")
    builder.eq.assert_any_call("owner", "run-1")
