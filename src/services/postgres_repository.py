import json
from typing import Optional

import asyncpg

from core.interfaces import FilterOp, IIndexRepository, IndexFilter
from models import Market
from services.supabase_repository import KEY_COLUMN, MARKET_COLUMNS, parse_market_row

_OPERATORS = {
    FilterOp.EQ: "=",
    FilterOp.LT: "<",
    FilterOp.LTE: "<=",
    FilterOp.GTE: ">=",
}

_WRITABLE_COLUMNS = frozenset(MARKET_COLUMNS) - {KEY_COLUMN}


class PostgresIndexRepository(IIndexRepository):
    def __init__(
        self,
        dsn: str,
        logger,
        table: str = "markets",
        history_table: str = "market_resolution_history",
    ):
        self._dsn = dsn
        self._logger = logger
        self._table = table
        self._history_table = history_table
        self._pool: Optional[asyncpg.Pool] = None

    @property
    def pool(self) -> Optional[asyncpg.Pool]:
        return self._pool

    async def start(self) -> None:
        self._pool = await asyncpg.create_pool(self._dsn, min_size=1, max_size=2)
        self._logger.info("postgres_repository_started")

    async def stop(self) -> None:
        if self._pool:
            await self._pool.close()
            self._pool = None
        self._logger.info("postgres_repository_stopped")

    async def query(self, filters: list[IndexFilter], limit: int) -> list[Market]:
        clauses = []
        params = []
        for f in filters:
            if f.column not in MARKET_COLUMNS:
                raise ValueError(f"unknown filter column: {f.column}")
            params.append(f.value)
            clauses.append(f"{f.column} {_OPERATORS[f.op]} ${len(params)}")
        params.append(limit)
        where = f" WHERE {' AND '.join(clauses)}" if clauses else ""
        sql = f"SELECT {', '.join(MARKET_COLUMNS)} FROM {self._table}{where} LIMIT ${len(params)}"
        async with self._pool.acquire() as conn:
            rows = await conn.fetch(sql, *params)
        return [parse_market_row(dict(row)) for row in rows]

    async def update_by_key(self, address: str, patch: dict) -> None:
        unknown = set(patch) - _WRITABLE_COLUMNS
        if unknown:
            raise ValueError(f"unknown patch columns: {sorted(unknown)}")
        columns = list(patch)
        assignments = ", ".join(f"{c} = ${i}" for i, c in enumerate(columns, start=1))
        sql = f"UPDATE {self._table} SET {assignments} WHERE {KEY_COLUMN} = ${len(columns) + 1}"
        async with self._pool.acquire() as conn:
            result = await conn.execute(sql, *[patch[c] for c in columns], address)
        if result == "UPDATE 0":
            raise LookupError(f"no index row for {address}")

    async def write_state_transition(
        self, address: str, old_state: Optional[str], new_state: str, metadata: dict
    ) -> None:
        try:
            async with self._pool.acquire() as conn:
                await conn.execute(
                    f"""
                    INSERT INTO {self._history_table}
                    (market_address, previous_state, new_state, metadata)
                    VALUES ($1, $2, $3, $4)
                    """,
                    address,
                    old_state,
                    new_state,
                    json.dumps(metadata),
                )
        except Exception as e:
            self._logger.error("write_state_transition_failed", market=address, error=str(e))
