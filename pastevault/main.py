"""
Paste Vault - Main FastAPI application.
"""
import logging
from contextlib import asynccontextmanager
from pathlib import Path
from typing import AsyncIterator, Optional

from fastapi import FastAPI
from fastapi.responses import FileResponse
from fastapi.middleware.cors import CORSMiddleware

from pastevault.config import Settings, settings as default_settings
from pastevault.database import build_backend
from pastevault.engine import PasteStore
from pastevault.error_handlers import register_error_handlers
from pastevault.reaper import Reaper
from pastevault.routes import health, pastes

TEMPLATES_DIR = Path(__file__).parent / "templates"

logger = logging.getLogger(__name__)


def configure_logging(level_name: str) -> None:
    """Configure the ``pastevault`` logger namespace.

    Configured directly, with ``propagate = False``, so logs reach stdout
    even when uvicorn has already set up the root logger.
    """
    level = getattr(logging, level_name.upper(), logging.INFO)
    app_log = logging.getLogger("pastevault")
    app_log.setLevel(level)
    if not app_log.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(
            logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")
        )
        app_log.addHandler(handler)
    app_log.propagate = False


def create_app(store: Optional[PasteStore] = None, settings: Settings = default_settings) -> FastAPI:
    """
    Build the FastAPI app around a paste store.

    When no store is given one is built from settings at startup.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        logger.info("Paste Vault application starting...")
        if app.state.store is None:
            app.state.store = PasteStore(
                build_backend(settings),
                id_max_attempts=settings.ID_MAX_ATTEMPTS,
                reap_batch_size=settings.REAPER_BATCH_SIZE,
            )
        backend_name = app.state.store.backend.name
        if backend_name == "memory":
            logger.warning("⚠️  STORAGE: Using IN-MEMORY storage")
            logger.warning("   Data will NOT persist across server restarts!")
        else:
            logger.info(f"✅ STORAGE: Using {backend_name}")

        reaper = None
        if settings.REAPER_ENABLED:
            reaper = Reaper(app.state.store, settings.REAPER_INTERVAL_SECONDS)
            reaper.start()
        app.state.reaper = reaper
        yield
        if reaper is not None:
            reaper.stop()
        logger.info("Paste Vault application shutting down...")

    app = FastAPI(
        title="Paste Vault",
        description="Share text pastes that expire by time or by view count",
        version="1.0.0",
        lifespan=lifespan,
    )
    app.state.store = store
    app.state.settings = settings
    app.state.reaper = None

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    register_error_handlers(app)
    app.include_router(health.router)
    app.include_router(pastes.router)

    @app.get("/", response_class=FileResponse)
    async def root():
        """Serve the create paste HTML page."""
        return FileResponse(TEMPLATES_DIR / "create.html", media_type="text/html")

    return app


configure_logging(default_settings.LOG_LEVEL)
app = create_app()


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "pastevault.main:app",
        host="0.0.0.0",
        port=8000,
        reload=default_settings.DEBUG,
    )
