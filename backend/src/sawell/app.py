"""FastAPI application factory."""

import asyncio
from contextlib import asynccontextmanager
from dataclasses import dataclass

import structlog
from fastapi import FastAPI, Response, status
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy import text

from sawell.api.routes import config, users, videos
# Import timezone enforcement (sets TZ=UTC)
from sawell.core import timezone  # noqa: F401
from sawell.core.config import Settings, configure_logging
from sawell.core.database import setup_db_session
from sawell.services.heygen.client import build_status_client
from sawell.services.reconciliation import VideoReconciler
from sawell.uow import create_uow_factory
from sawell.workers.credit_refresh_worker import run_credit_refresh_worker

logger = structlog.get_logger()


WORKER_RESTART_DELAY_SECONDS = 1


@dataclass
class WorkerHandle:
    """Tracks the live incarnation of a restartable worker.

    ``task`` is replaced on every restart, so shutdown must go through the
    handle rather than the task that was started first.
    """

    name: str
    task: asyncio.Task | None = None
    restart_task: asyncio.Task | None = None
    stopping: bool = False

    async def stop(self) -> None:
        """Cancel the pending restart and the current incarnation, then wait for both."""
        self.stopping = True
        pending = [t for t in (self.restart_task, self.task) if t is not None]
        for task in pending:
            task.cancel()
        await asyncio.gather(*pending, return_exceptions=True)


def create_resilient_worker(
    coro_func, uow_factory, settings, worker_name: str, shutdown_event: asyncio.Event
):
    """Start a worker task that is restarted whenever it stops on its own.

    Cancellation and a set shutdown_event end the worker for good. A crash or
    an unexpected clean return is logged and the worker is started again
    after WORKER_RESTART_DELAY_SECONDS.

    Args:
        coro_func: Worker coroutine function, called as coro_func(uow_factory, settings)
        uow_factory: UnitOfWork factory
        settings: Application settings
        worker_name: Name used in log events
        shutdown_event: Set by the lifespan when the application stops

    Returns:
        WorkerHandle whose ``task`` always points at the running incarnation
    """
    handle = WorkerHandle(name=worker_name)

    def start() -> asyncio.Task:
        task = asyncio.create_task(coro_func(uow_factory, settings))
        task.add_done_callback(on_done)
        handle.task = task
        return task

    async def restart_later() -> None:
        await asyncio.sleep(WORKER_RESTART_DELAY_SECONDS)
        if shutdown_event.is_set() or handle.stopping:
            return
        logger.info("worker.restarting", worker=worker_name)
        start()

    def on_done(task: asyncio.Task) -> None:
        if shutdown_event.is_set() or handle.stopping:
            logger.info("worker.shutdown_complete", worker=worker_name)
            return
        if task.cancelled():
            logger.info("worker.cancelled", worker=worker_name)
            return

        exc = task.exception()
        if exc is not None:
            logger.error(
                "worker.crashed",
                worker=worker_name,
                error=str(exc),
                error_type=type(exc).__name__,
                retry_in_seconds=WORKER_RESTART_DELAY_SECONDS,
                exc_info=exc,
            )
        else:
            logger.warning(
                "worker.stopped_unexpectedly",
                worker=worker_name,
                retry_in_seconds=WORKER_RESTART_DELAY_SECONDS,
            )
        handle.restart_task = asyncio.create_task(restart_later())

    start()
    return handle


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan context manager.

    Handles startup and shutdown tasks:
    - Startup: Configure logging, build the session and UoW factories, the
      shared HeyGen client and reconciler, start the credit refresh worker
    - Shutdown: Stop the worker, drain pending video write-backs, close the
      HeyGen client and the connection pool
    """
    settings: Settings = app.state.settings

    configure_logging(settings)

    session_factory = setup_db_session(settings.database_url, settings.db_pool_size)
    uow_factory = create_uow_factory(session_factory)

    # One HeyGen client per process; None when no API key is configured
    status_client = build_status_client(settings)
    reconciler = VideoReconciler.from_settings(uow_factory, status_client, settings)

    # Store in app.state for access in routes
    app.state.session_factory = session_factory
    app.state.uow_factory = uow_factory
    app.state.reconciler = reconciler

    shutdown_event = asyncio.Event()
    workers: list[WorkerHandle] = []
    if settings.credit_refresh_enabled:
        workers.append(
            create_resilient_worker(
                run_credit_refresh_worker, uow_factory, settings, "credit_refresh", shutdown_event
            )
        )

    logger.info(
        "application.startup",
        db_url=settings.database_url.split("@")[-1],
        heygen_configured=status_client is not None,
        workers=len(workers),
    )

    yield

    logger.info("application.shutdown")
    shutdown_event.set()

    for worker in workers:
        await worker.stop()

    await reconciler.drain(timeout=settings.reconcile_write_timeout_seconds)
    if status_client is not None:
        await status_client.aclose()

    engine = session_factory.kw.get("bind")
    if engine is not None:
        await engine.dispose()


def create_app(settings: Settings | None = None) -> FastAPI:
    """Create and configure FastAPI application.

    Args:
        settings: Settings to use (loaded from the environment when omitted)

    Returns:
        Configured FastAPI application instance
    """
    settings = settings or Settings()  # type: ignore[call-arg]

    app = FastAPI(
        title="Sawell Creative Backend API",
        description="Avatar video listing and credit ledger",
        version="0.1.0",
        lifespan=lifespan,
    )
    app.state.settings = settings

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins_list,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Register API routers (each carries its own /api/... prefix)
    app.include_router(videos.router)
    app.include_router(users.router)
    app.include_router(config.router)

    @app.get("/health")
    async def health_check(response: Response):
        """Database connectivity probe.

        Returns 200 {"status": "healthy"} when a trivial query succeeds, and
        503 with the error type and message otherwise.
        """
        try:
            async with app.state.session_factory() as session:
                await session.execute(text("SELECT 1"))
        except Exception as e:
            logger.error("health_check.failed", error=str(e), error_type=type(e).__name__)
            response.status_code = status.HTTP_503_SERVICE_UNAVAILABLE
            return {"status": "unhealthy", "error": {"type": type(e).__name__, "message": str(e)}}

        return {"status": "healthy"}

    return app


# Create app instance for uvicorn
app = create_app()
