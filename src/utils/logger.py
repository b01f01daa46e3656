import logging
from contextlib import contextmanager
import structlog


def setup_logging(level: str = "INFO") -> None:
    logging.basicConfig(
        format="%(message)s",
        level=getattr(logging, level.upper()),
    )
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


@contextmanager
def job_log_context(job: str, run_id: str):
    """Tag every log line emitted during one job invocation with its job and run id."""
    with structlog.contextvars.bound_contextvars(job_run=run_id, job_type=job):
        yield


class LoggerFactory:
    def __init__(self, level: str = "INFO"):
        setup_logging(level)

    def create(self, name: str) -> structlog.stdlib.BoundLogger:
        return structlog.get_logger(name)
