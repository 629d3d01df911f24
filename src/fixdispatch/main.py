"""FixDispatch application entry point."""

from contextlib import asynccontextmanager

from fastapi import FastAPI, Response
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest

from fixdispatch import __version__
from fixdispatch.api import api_router
from fixdispatch.config import Settings, get_settings
from fixdispatch.db.session import close_engine
from fixdispatch.dispatch.worker import DispatchWorker
from fixdispatch.middleware import RequestLoggingMiddleware


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler."""
    yield
    await app.state.worker.stop()
    await close_engine()


def create_app(
    settings: Settings | None = None,
    worker: DispatchWorker | None = None,
) -> FastAPI:
    """Create and configure the FastAPI application.

    Args:
        settings: Optional settings override for testing. If not provided,
                  default settings will be loaded from environment.
        worker: Worker used by the manual run endpoint. The scheduler loop
                is started by the CLI, not by the application.
    """
    if settings is None:
        settings = get_settings()

    app = FastAPI(
        title="FixDispatch",
        description="Outbound dispatch queue for fix actions",
        version=__version__,
        lifespan=lifespan,
    )

    app.state.settings = settings
    app.state.worker = worker or DispatchWorker(settings)

    app.add_middleware(RequestLoggingMiddleware)
    app.include_router(api_router)

    @app.get("/metrics", include_in_schema=False)
    async def metrics() -> Response:
        """Expose Prometheus metrics."""
        return Response(
            content=generate_latest(),
            media_type=CONTENT_TYPE_LATEST,
        )

    return app
