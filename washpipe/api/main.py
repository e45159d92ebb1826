"""FastAPI application exposing the pipeline entrypoints."""

from datetime import datetime, timezone
from typing import Optional

from fastapi import BackgroundTasks, Depends, FastAPI, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from washpipe import __version__
from washpipe.core.config import get_config
from washpipe.core.error_logger import get_error_logger
from washpipe.core.error_models import ErrorComponent, ErrorStage
from washpipe.core.exceptions import PipelineError
from washpipe.core.logging import get_logger, init_pipeline_logging
from washpipe.pipeline.service import PipelineService
from washpipe.pipeline.state import BatchType

logger = get_logger(__name__)

app = FastAPI(title="Washpipe API", version=__version__)

_service: Optional[PipelineService] = None


def get_pipeline() -> PipelineService:
    """Shared PipelineService, built on first use."""
    global _service
    if _service is None:
        _service = PipelineService.from_config(get_config())
    return _service


@app.on_event("startup")
async def startup():
    """Initialize logging on startup."""
    config = get_config()
    init_pipeline_logging(level=config.log_level, log_dir=config.log_dir)
    logger.info(f"Washpipe API {__version__} starting")


@app.exception_handler(PipelineError)
async def pipeline_error_handler(request: Request, exc: PipelineError):
    return JSONResponse(status_code=exc.status_code, content={"error": exc.message})


@app.exception_handler(Exception)
async def unexpected_error_handler(request: Request, exc: Exception):
    get_error_logger().log_exception(exc, component=ErrorComponent.API, stage=request.url.path.strip("/") or "root")
    return JSONResponse(status_code=500, content={"error": str(exc) or type(exc).__name__})


class SubmitRequest(BaseModel):
    """Request model for batch submission."""
    retry_failed: bool = False
    force: bool = False
    chunk_index: int = 0
    chunk_size: Optional[int] = None
    batch_type: BatchType = BatchType.CLASSIFY


class PollRequest(BaseModel):
    """Request model for one poll step."""
    job_id: str
    next_cursor: Optional[str] = None
    auto_continue: bool = False


class ReclassifyRequest(BaseModel):
    offset: int = 0
    page_size: int = 10


@app.get("/health")
async def health():
    """Health check endpoint."""
    return {
        "status": "ok",
        "version": __version__,
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }


@app.post("/submit")
def submit(request: SubmitRequest, pipeline: PipelineService = Depends(get_pipeline)):
    """Submit the next chunk of eligible listings as one crawl job."""
    outcome = pipeline.submitter.submit(
        retry_failed=request.retry_failed,
        force=request.force,
        chunk_size=request.chunk_size,
        chunk_index=request.chunk_index,
        batch_type=request.batch_type.value,
    )
    return outcome.to_dict()


@app.post("/poll")
def poll(
    request: PollRequest,
    background_tasks: BackgroundTasks,
    pipeline: PipelineService = Depends(get_pipeline),
):
    """
    Process one page of results.

    With ``auto_continue`` the next step is kicked in the background until
    the job is done, so a single call drives the whole job.
    """
    outcome = pipeline.poller.poll(request.job_id, request.next_cursor)

    if outcome.expired:
        return JSONResponse(
            status_code=410,
            content={
                "error": "Crawl job results have expired; submit a new batch",
                "expired": True,
                "done": True,
                "job_id": request.job_id,
            },
        )

    # with no cursor and a finished provider there is nothing new to fetch; the watchdog takes over
    keep_going = outcome.next_cursor is not None or outcome.provider_status not in ("completed", "failed", "cancelled")
    if request.auto_continue and not outcome.done and keep_going:
        background_tasks.add_task(pipeline.kicker.kick_poll, request.job_id, outcome.next_cursor)

    return outcome.to_dict()


@app.get("/status")
def status(
    job_id: Optional[str] = None,
    runs_page: int = 0,
    pipeline: PipelineService = Depends(get_pipeline),
):
    """Pipeline-wide counts and recent activity, or one job's progress."""
    return pipeline.reporter.status(job_id=job_id, runs_page=runs_page)


@app.post("/watchdog")
def watchdog(pipeline: PipelineService = Depends(get_pipeline)):
    """Run one watchdog sweep (called by an external scheduler)."""
    return pipeline.watchdog.sweep()


@app.post("/reclassify")
def reclassify(request: ReclassifyRequest, pipeline: PipelineService = Depends(get_pipeline)):
    """Reclassify one page of saved run text."""
    return pipeline.reclassifier.reclassify_saved(offset=request.offset, page_size=request.page_size)


@app.post("/cancel")
def cancel(pipeline: PipelineService = Depends(get_pipeline)):
    """Cancel every running batch."""
    return pipeline.canceller.cancel_running()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("washpipe.api.main:app", host="0.0.0.0", port=8000)
