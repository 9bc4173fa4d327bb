"""
FastAPI application serving the article feed and ingestion triggers.
"""
import logging
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from ..config import Settings, configure_logging
from ..pipeline import IngestionPipeline, build_pipeline
from . import articles, ingest

logger = logging.getLogger(__name__)


def _first_error(exc: RequestValidationError) -> str:
    errors = exc.errors()
    if not errors:
        return "Invalid request"
    err = errors[0]
    field = ".".join(str(p) for p in err.get("loc", ())[1:]) or "request"
    return f"Invalid {field} parameter: {err.get('msg')}"


def create_app(
    settings: Optional[Settings] = None,
    pipeline: Optional[IngestionPipeline] = None,
) -> FastAPI:
    settings = settings or Settings.from_env()
    configure_logging(settings.log_level)
    pipeline = pipeline or build_pipeline(settings)

    app = FastAPI(title="DevDigest API")
    app.state.settings = settings
    app.state.pipeline = pipeline
    app.state.store = pipeline.store
    app.state.enricher = pipeline.enricher

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError):
        return JSONResponse(
            status_code=400,
            content={"success": False, "data": None, "error": _first_error(exc)},
        )

    @app.exception_handler(StarletteHTTPException)
    async def http_error_handler(request: Request, exc: StarletteHTTPException):
        return JSONResponse(
            status_code=exc.status_code,
            content={"success": False, "error": exc.detail},
        )

    @app.exception_handler(Exception)
    async def unhandled_error_handler(request: Request, exc: Exception):
        logger.exception("Unhandled error on %s %s", request.method, request.url.path)
        return JSONResponse(status_code=500, content={"success": False, "error": str(exc)})

    @app.get("/")
    def read_root():
        return {"status": "ok", "message": "DevDigest backend is running"}

    app.include_router(articles.router)
    app.include_router(ingest.router)
    return app
