from datetime import datetime
from typing import Any, Optional

from core.interfaces import IIndexRepository, IndexFilter
from models import Market

KEY_COLUMN = "market_address"

MARKET_COLUMNS = (
    "market_address",
    "resolution_status",
    "resolved",
    "cancelled",
    "proposed_winning_outcome",
    "contest_deadline",
    "end_date",
    "winning_outcome",
    "resolved_at",
    "resolve_tx",
    "cancel_reason",
    "cancelled_at",
    "cancel_tx",
)


def format_filter_value(value: Any) -> Any:
    """PostgREST expects lowercase booleans and ISO-8601 timestamps in filters."""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, datetime):
        return value.isoformat()
    return value


def parse_market_row(row: dict) -> Market:
    data = {column: row.get(column) for column in MARKET_COLUMNS if column != KEY_COLUMN}
    data = {k: v for k, v in data.items() if v is not None}
    return Market(address=str(row.get(KEY_COLUMN) or ""), **data)


class SupabaseIndexRepository(IIndexRepository):
    def __init__(
        self,
        client,
        logger,
        table: str = "markets",
        history_table: str = "market_resolution_history",
    ):
        self._client = client
        self._logger = logger
        self._table = table
        self._history_table = history_table

    async def start(self) -> None:
        pass

    async def stop(self) -> None:
        pass

    async def query(self, filters: list[IndexFilter], limit: int) -> list[Market]:
        request = self._client.table(self._table).select(",".join(MARKET_COLUMNS))
        for f in filters:
            request = getattr(request, f.op.value)(f.column, format_filter_value(f.value))
        response = request.limit(limit).execute()
        return [parse_market_row(row) for row in response.data or []]

    async def update_by_key(self, address: str, patch: dict) -> None:
        payload = {k: v.isoformat() if isinstance(v, datetime) else v for k, v in patch.items()}
        response = self._client.table(self._table).update(payload).eq(KEY_COLUMN, address).execute()
        if not response.data:
            raise LookupError(f"no index row for {address}")

    async def write_state_transition(
        self, address: str, old_state: Optional[str], new_state: str, metadata: dict
    ) -> None:
        try:
            self._client.table(self._history_table).insert({
                "market_address": address,
                "previous_state": old_state,
                "new_state": new_state,
                "metadata": metadata,
            }).execute()
        except Exception as e:
            self._logger.error("write_state_transition_failed", market=address, error=str(e))
