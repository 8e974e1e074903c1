"""
FastAPI application factory for the job service.
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from mediajobs.core.constants import APP_NAME, APP_VERSION
from mediajobs.core.config import AppConfig
from mediajobs.core.error_codes import JobError
from mediajobs.web.router import api_router
from mediajobs.web.state import AppServices, build_services

logger = logging.getLogger(__name__)


def create_app(config: AppConfig | None = None,
               services: AppServices | None = None) -> FastAPI:
    """
    Build the app. Services passed in are used as is and left open on
    shutdown; otherwise they are built from config and closed with the app.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        owned = services is None
        app.state.services = services or build_services(config or AppConfig())
        logger.info("%s %s started", APP_NAME, APP_VERSION)
        try:
            yield
        finally:
            if owned:
                app.state.services.close()
            logger.info("%s stopped", APP_NAME)

    app = FastAPI(title=f"{APP_NAME} API", version=APP_VERSION, lifespan=lifespan)
    app.include_router(api_router)

    @app.exception_handler(JobError)
    async def job_error_handler(request: Request, exc: JobError):
        if exc.http_status >= 500:
            logger.error("%s %s: %s", request.method, request.url.path, exc)
        return JSONResponse(status_code=exc.http_status,
                            content={"error": exc.message, "code": exc.code})

    return app
