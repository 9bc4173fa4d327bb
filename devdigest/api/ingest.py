import logging
import time
from datetime import datetime, timezone

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

from ..models import Platform

logger = logging.getLogger(__name__)

router = APIRouter(tags=["ingest"])

DEFAULT_PLATFORM = Platform.ANDROID


def _timestamp() -> str:
    return datetime.now(timezone.utc).isoformat()


@router.post("/rss/fetch")
async def fetch_feeds(request: Request):
    platform = DEFAULT_PLATFORM
    try:
        body = await request.json()
    except ValueError:
        logger.info("No request body, using default platform: %s", platform.value)
        body = {}

    requested = body.get("platform") if isinstance(body, dict) else None
    if requested:
        try:
            platform = Platform(requested)
        except ValueError:
            valid = ", ".join(p.value for p in Platform)
            return JSONResponse(
                status_code=400,
                content={
                    "success": False,
                    "count": 0,
                    "error": f"Invalid platform. Must be one of: {valid}",
                },
            )

    result = await request.app.state.pipeline.run(platform)
    if not result.success:
        return JSONResponse(
            status_code=500,
            content={
                "success": False,
                "count": 0,
                "error": result.error or "Failed to fetch and store articles",
            },
        )

    return {
        "success": True,
        "count": result.count,
        "error": None,
        "message": f"Successfully fetched and stored {result.count} new articles",
    }


@router.get("/cron/fetch")
async def scheduled_fetch(request: Request):
    settings = request.app.state.settings
    if not settings.is_development:
        secret = settings.cron_secret
        auth_header = request.headers.get("authorization")
        if not secret or auth_header != f"Bearer {secret}":
            return JSONResponse(status_code=401, content={"success": False, "error": "Unauthorized"})

    logger.info("[Cron] Starting scheduled fetch...")
    start = time.monotonic()
    results = await request.app.state.pipeline.run_all()
    elapsed_ms = int((time.monotonic() - start) * 1000)

    count = sum(r.count for r in results.values())
    errors = [f"{p.value}: {r.error}" for p, r in results.items() if not r.success]

    if errors or not results:
        error = errors[0] if errors else "No sources configured"
        logger.error("[Cron] Fetch failed: %s", error)
        return JSONResponse(
            status_code=500,
            content={
                "success": False,
                "error": error,
                "elapsedTime": elapsed_ms,
                "timestamp": _timestamp(),
            },
        )

    logger.info("[Cron] Fetch completed: %d new articles (%dms)", count, elapsed_ms)
    return {
        "success": True,
        "count": count,
        "elapsedTime": elapsed_ms,
        "timestamp": _timestamp(),
    }
