import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

from fastapi import FastAPI

from .bootstrap import Runtime, build_runtime
from .config import configure_logging, get_settings
from .routers.documents import router as documents_router
from .routers.finance import router as finance_router
from .routers.health import router as health_router
from .routers.session import router as session_router
from .routers.tasks import router as tasks_router
from .routers.workspace import router as workspace_router

logger = logging.getLogger(__name__)


def create_app(runtime: Optional[Runtime] = None) -> FastAPI:
    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        active = runtime
        if active is None:
            settings = get_settings()
            configure_logging(settings.LOG_LEVEL)
            active = build_runtime(settings)
            logger.info("Workspace sync started against %s", settings.SUPABASE_URL)
        app.state.runtime = active
        app.state.controller = active.controller
        app.state.auth = active.auth
        try:
            yield
        finally:
            await active.aclose()

    app = FastAPI(title="Workspace Sync Service", version="0.1.0", lifespan=lifespan)

    @app.get("/health")
    async def health() -> dict[str, str]:
        return {"status": "ok"}

    app.include_router(session_router)
    app.include_router(workspace_router)
    app.include_router(documents_router)
    app.include_router(tasks_router)
    app.include_router(finance_router)
    app.include_router(health_router)
    return app


app = create_app()
