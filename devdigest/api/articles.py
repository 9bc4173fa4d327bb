import logging
import math
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from fastapi.responses import JSONResponse

from ..models import ContentType, Platform

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/articles", tags=["articles"])

MAX_PAGE_SIZE = 100
DEFAULT_PAGE_SIZE = 12


def get_store(request: Request):
    return request.app.state.store


def get_enricher(request: Request):
    return request.app.state.enricher


@router.get("")
def list_articles(
    platform: Optional[Platform] = Query(None),
    days: int = Query(7, ge=1),
    content_type: Optional[ContentType] = Query(None),
    page: int = Query(1, ge=1),
    limit: int = Query(DEFAULT_PAGE_SIZE, ge=1, le=MAX_PAGE_SIZE),
    store=Depends(get_store),
):
    """Newest-first articles published within the last `days` days."""
    logger.info(
        "Fetching articles - platform: %s, days: %d, type: %s, page: %d",
        platform.value if platform else "all", days,
        content_type.value if content_type else "all", page,
    )
    items, total = store.list_articles(
        platform=platform, days=days, content_type=content_type, page=page, limit=limit
    )
    return {
        "success": True,
        "data": [item.model_dump(mode="json") for item in items],
        "count": len(items),
        "total": total,
        "page": page,
        "totalPages": math.ceil(total / limit) if total else 0,
    }


@router.delete("/delete-all")
def delete_all_articles(request: Request, store=Depends(get_store)):
    if not request.app.state.settings.is_development:
        return JSONResponse(
            status_code=403,
            content={
                "success": False,
                "error": "This endpoint is only available in development mode",
            },
        )

    logger.warning("Deleting all articles...")
    count = store.delete_all()
    logger.info("Deleted all articles (count: %d)", count)
    return {"success": True, "message": "All articles deleted successfully", "count": count}


@router.get("/{article_id}")
def get_article(article_id: str, store=Depends(get_store)):
    article = store.get_by_id(article_id)
    if article is None:
        raise HTTPException(status_code=404, detail="Article not found")
    return {"success": True, "data": article.model_dump(mode="json")}


@router.post("/{article_id}/summarize")
def summarize_article(
    article_id: str, store=Depends(get_store), enricher=Depends(get_enricher)
):
    """Detailed digest, generated on first request and served from the store afterwards."""
    article = store.get_by_id(article_id)
    if article is None:
        raise HTTPException(status_code=404, detail="Article not found")

    if article.content_summary:
        logger.info("Returning cached digest for %s", article_id)
        return {
            "success": True,
            "data": {"content_summary": article.content_summary, "tokens": 0, "cached": True},
        }

    logger.info("Generating digest for %s", article_id)
    result = enricher.elaborate(article.title, article.description) if enricher else None
    if result is None:
        raise HTTPException(status_code=500, detail="Failed to generate summary")

    if not store.save_digest(article_id, result.content_summary):
        # Another request filled it first; the stored digest wins
        stored = store.get_by_id(article_id)
        if stored is not None and stored.content_summary:
            return {
                "success": True,
                "data": {"content_summary": stored.content_summary, "tokens": 0, "cached": True},
            }
        logger.warning("Failed to save digest for %s", article_id)

    return {
        "success": True,
        "data": {
            "content_summary": result.content_summary,
            "tokens": result.tokens,
            "cached": False,
        },
    }
