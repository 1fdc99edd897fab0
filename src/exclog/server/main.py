from __future__ import annotations

import logging
import os
from contextlib import asynccontextmanager
from typing import Any

from fastapi import FastAPI

from exclog import __version__
from exclog.config import ExclogSettings, settings as default_settings
from exclog.server.exceptions_api import router as exceptions_router
from exclog.telemetry import ExceptionLogger, install_global_interceptor

log_level = os.environ.get("LOG_LEVEL", "INFO").upper()
log_level_value = getattr(logging, log_level, logging.INFO)

logging.basicConfig(
    level=log_level_value,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


def create_app(settings: ExclogSettings | None = None, *, backend: Any = None) -> FastAPI:
    cfg = settings or default_settings

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info("[exclog] starting service mode=%s", cfg.mode)
        if cfg.install_global_hook:
            install_global_interceptor()

        if backend is None:
            exc_logger = ExceptionLogger.from_settings(cfg)
        else:
            exc_logger = ExceptionLogger(backend=backend)
        app.state.exception_logger = exc_logger
        app.state.exception_logger_mode = cfg.mode
        try:
            # Non-blocking: requests arriving before the handle loads are buffered.
            exc_logger.start(cfg.connection_string, {**cfg.backend_options(), **dict(cfg.configuration or {})})
        except Exception as e:
            logger.error("[exclog] start failed: %s", e, exc_info=True)
        try:
            yield
        finally:
            # Stop last so shutdown-time exceptions can still be flushed.
            exc_logger.stop()
            app.state.exception_logger = None
            logger.info("[exclog] service stopped")

    app = FastAPI(title="exclog", version=__version__, lifespan=lifespan)
    app.include_router(exceptions_router)

    @app.get("/health")
    async def health_check():
        return {"status": "healthy", "version": __version__}

    return app


app = create_app()


def run() -> None:
    import uvicorn

    uvicorn.run(
        "exclog.server.main:app",
        host=default_settings.server_host,
        port=default_settings.server_port,
        lifespan="on",
        access_log=False,
    )


if __name__ == "__main__":
    run()
