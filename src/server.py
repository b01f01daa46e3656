from typing import Annotated, Optional

from fastapi import FastAPI, Header
from fastapi.responses import JSONResponse

from core.errors import AuthError, LeaseUnavailableError, UpstreamQueryError
from core.job_runner import JobRunner
from models import JobSummary, JobType


def create_app(runner: JobRunner, logger) -> FastAPI:
    app = FastAPI(title="Funmarket Resolution Jobs", version="0.1.0")

    async def run_job(job_type: JobType, authorization: Optional[str]) -> JSONResponse:
        try:
            summary = await runner.run(job_type, authorization)
            return JSONResponse(summary.to_response())
        except AuthError:
            return _error(401, "auth", job_type, "Unauthorized")
        except LeaseUnavailableError as e:
            return _error(409, "lease", job_type, e.reason)
        except UpstreamQueryError as e:
            return _error(500, e.step, job_type, str(e))
        except Exception as e:
            logger.exception("job_unhandled_error", job=job_type.value)
            return _error(500, "run", job_type, str(e))

    @app.get("/healthz", tags=["system"])
    def healthcheck() -> dict[str, str]:
        return {"status": "ok"}

    @app.get("/api/cron/finalize-no-disputes", tags=["cron"])
    async def finalize_no_disputes(
        authorization: Annotated[Optional[str], Header()] = None,
    ) -> JSONResponse:
        return await run_job(JobType.FINALIZE, authorization)

    @app.get("/api/cron/cancel-no-proposal", tags=["cron"])
    async def cancel_no_proposal(
        authorization: Annotated[Optional[str], Header()] = None,
    ) -> JSONResponse:
        return await run_job(JobType.CANCEL, authorization)

    # Legacy scheduler path. It used to only flag rows as stale_no_propose in the
    # index; it now runs the full on-chain cancel job.
    app.add_api_route("/api/cron/stale-no-propose", cancel_no_proposal, methods=["GET"], tags=["cron"])

    return app


def _error(status_code: int, step: str, job_type: JobType, message: str) -> JSONResponse:
    summary = JobSummary(ok=False, step=step, job=job_type, error=message)
    return JSONResponse(summary.to_response(), status_code=status_code)
