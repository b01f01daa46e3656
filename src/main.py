import argparse
import asyncio
import json
import sys

from config import Config
from core.errors import AuthError, LeaseUnavailableError, UpstreamQueryError
from core.job_context_factory import JobContextFactory
from core.job_runner import JobRunner
from models import JobSummary, JobType
from utils.logger import LoggerFactory


def build_runner(config: Config, logger_factory: LoggerFactory) -> JobRunner:
    return JobRunner(
        context_factory=JobContextFactory(config, logger_factory),
        cron_secret=config.shared_cron_secret,
        logger=logger_factory.create("job_runner"),
        lease_ttl_seconds=config.effective_lease_ttl_seconds,
        cancel_grace_hours=config.cancel_grace_hours,
    )


async def run_once(config: Config, logger_factory: LoggerFactory, job_type: JobType) -> JobSummary:
    logger = logger_factory.create("main")
    runner = build_runner(config, logger_factory)
    try:
        return await runner.run(job_type, f"Bearer {config.shared_cron_secret}")
    except AuthError:
        return JobSummary(ok=False, step="auth", job=job_type, error="SHARED_CRON_SECRET is not configured")
    except LeaseUnavailableError as e:
        return JobSummary(ok=False, step="lease", job=job_type, error=e.reason)
    except UpstreamQueryError as e:
        logger.error("job_failed", job=job_type.value, step=e.step, error=str(e))
        return JobSummary(ok=False, step=e.step, job=job_type, error=str(e))


def serve(config: Config, logger_factory: LoggerFactory) -> None:
    import uvicorn
    from server import create_app

    logger = logger_factory.create("main")
    app = create_app(build_runner(config, logger_factory), logger_factory.create("server"))
    logger.info("server_starting", host=config.server_host, port=config.server_port, db_mode=config.db_mode)
    uvicorn.run(app, host=config.server_host, port=config.server_port, log_config=None)


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description="Market resolution jobs")
    sub = parser.add_subparsers(dest="command", required=True)
    sub.add_parser("serve", help="Serve the cron trigger endpoints over HTTP")
    run_parser = sub.add_parser("run", help="Run one job invocation and print its summary")
    run_parser.add_argument("job", choices=[j.value for j in JobType])
    args = parser.parse_args(argv)

    config = Config()
    logger_factory = LoggerFactory(config.log_level)

    if args.command == "serve":
        serve(config, logger_factory)
        return 0

    summary = asyncio.run(run_once(config, logger_factory, JobType(args.job)))
    print(json.dumps(summary.to_response(), indent=2))
    return 0 if summary.ok else 1


if __name__ == "__main__":
    sys.exit(main())
