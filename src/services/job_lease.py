from datetime import datetime, timedelta, timezone

from core.interfaces import IJobLease
from services.postgres_repository import PostgresIndexRepository


def _is_duplicate_key(error: Exception) -> bool:
    message = str(error).lower()
    return "23505" in message or "duplicate key" in message


class SupabaseJobLease(IJobLease):
    """
    Row-per-job lease in ``job_leases``. A run owns the job until ``expires_at``;
    an expired row may be taken over by the next run.
    """

    def __init__(self, client, logger, table: str = "job_leases"):
        self._client = client
        self._logger = logger
        self._table = table

    async def acquire(self, job_name: str, owner: str, ttl_seconds: int) -> bool:
        now = datetime.now(timezone.utc)
        expires_at = (now + timedelta(seconds=ttl_seconds)).isoformat()
        try:
            self._client.table(self._table).insert({
                "job_name": job_name,
                "owner": owner,
                "expires_at": expires_at,
            }).execute()
            self._logger.info("job_lease_acquired", job_name=job_name, owner=owner)
            return True
        except Exception as e:
            if not _is_duplicate_key(e):
                raise

        response = (
            self._client.table(self._table)
            .update({"owner": owner, "expires_at": expires_at})
            .eq("job_name", job_name)
            .lt("expires_at", now.isoformat())
            .execute()
        )
        if response.data:
            self._logger.info("job_lease_taken_over", job_name=job_name, owner=owner)
            return True
        return False

    async def release(self, job_name: str, owner: str) -> None:
        self._client.table(self._table).delete().eq("job_name", job_name).eq("owner", owner).execute()


class PostgresJobLease(IJobLease):
    def __init__(self, repository: PostgresIndexRepository, logger, table: str = "job_leases"):
        self._repository = repository
        self._logger = logger
        self._table = table

    async def acquire(self, job_name: str, owner: str, ttl_seconds: int) -> bool:
        now = datetime.now(timezone.utc)
        async with self._repository.pool.acquire() as conn:
            row = await conn.fetchrow(
                f"""
                INSERT INTO {self._table} (job_name, owner, expires_at)
                VALUES ($1, $2, $3)
                ON CONFLICT (job_name) DO UPDATE
                SET owner = EXCLUDED.owner, expires_at = EXCLUDED.expires_at
                WHERE {self._table}.expires_at < $4
                RETURNING job_name
                """,
                job_name,
                owner,
                now + timedelta(seconds=ttl_seconds),
                now,
            )
        acquired = row is not None
        if acquired:
            self._logger.info("job_lease_acquired", job_name=job_name, owner=owner)
        return acquired

    async def release(self, job_name: str, owner: str) -> None:
        async with self._repository.pool.acquire() as conn:
            await conn.execute(
                f"DELETE FROM {self._table} WHERE job_name = $1 AND owner = $2",
                job_name,
                owner,
            )
