from config import Config
from core.context import JobContext
from core.guard import EligibilityGuard
from core.interfaces import IChainClient, IIndexRepository, IJobLease
from core.orchestrator import TransactionOrchestrator
from core.reconciler import ReconciliationWriter
from core.scanner import CandidateScanner
from models import JobType
from services.solana_chain_client import SolanaChainClient, load_keypair


class JobContextFactory:
    """Builds a fresh JobContext per invocation; nothing is shared between runs."""

    def __init__(self, config: Config, logger_factory):
        self._config = config
        self._logger_factory = logger_factory

    def _create_index(self, logger) -> tuple[IIndexRepository, IJobLease]:
        config = self._config
        if config.db_mode == "postgres":
            from services.postgres_repository import PostgresIndexRepository
            from services.job_lease import PostgresJobLease
            repository = PostgresIndexRepository(
                dsn=config.postgres_dsn,
                logger=logger,
                table=config.markets_table,
                history_table=config.history_table,
            )
            return repository, PostgresJobLease(repository, logger, table=config.lease_table)
        elif config.db_mode == "supabase":
            if not config.supabase_url or not config.supabase_key:
                raise ValueError("SUPABASE_URL and SUPABASE_KEY must be set when db_mode=supabase")
            from supabase import create_client
            from services.supabase_repository import SupabaseIndexRepository
            from services.job_lease import SupabaseJobLease
            client = create_client(config.supabase_url, config.supabase_key)
            repository = SupabaseIndexRepository(
                client,
                logger,
                table=config.markets_table,
                history_table=config.history_table,
            )
            return repository, SupabaseJobLease(client, logger, table=config.lease_table)
        else:
            raise ValueError(f"Unknown db_mode: {config.db_mode}")

    def _create_chain(self, logger) -> IChainClient:
        config = self._config
        if not config.program_id:
            raise ValueError("PROGRAM_ID must be set")
        if not config.service_signer_secret:
            raise ValueError("SERVICE_SIGNER_SECRET must be set")
        return SolanaChainClient(
            rpc_endpoint=config.rpc_endpoint,
            program_id=config.program_id,
            signer=load_keypair(config.service_signer_secret),
            logger=logger,
        )

    async def create(self, job_type: JobType) -> JobContext:
        config = self._config
        logger = self._logger_factory.create(f"job.{job_type.value}")

        repository, lease = self._create_index(logger)
        chain = self._create_chain(logger)
        try:
            await repository.start()
        except Exception:
            await chain.close()
            raise

        return JobContext(
            chain=chain,
            repository=repository,
            lease=lease,
            scanner=CandidateScanner(repository, logger, batch_limit=config.batch_limit),
            guard=EligibilityGuard(chain, config.program_id, logger),
            orchestrator=TransactionOrchestrator(
                chain,
                logger,
                confirmation_timeout=config.confirmation_timeout_seconds,
                poll_interval=config.poll_interval_seconds,
                max_retries=config.submit_max_retries,
            ),
            writer=ReconciliationWriter(repository, logger),
            logger=logger,
        )
