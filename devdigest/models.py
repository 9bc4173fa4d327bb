import hashlib
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field


class Platform(str, Enum):
    ANDROID = "android"
    IOS = "ios"
    WEB = "web"
    BACKEND = "backend"


class ContentType(str, Enum):
    BLOG = "blog"
    VIDEO = "video"


def generate_article_id(url: str) -> str:
    """Content address of a source URL, used as primary key and dedup key."""
    return hashlib.sha1(url.encode("utf-8")).hexdigest()


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def published_since(days: int) -> datetime:
    """Cutoff for a "last N days" window; clamps to the earliest date when N is huge."""
    try:
        return utc_now() - timedelta(days=days)
    except OverflowError:
        return datetime.min.replace(tzinfo=timezone.utc)


class ContentItem(BaseModel):
    id: str = Field(..., description="sha1 of source_url")
    title: str = Field(..., min_length=1)
    title_ko: Optional[str] = None
    description: str = ""
    summary_ko: Optional[str] = None
    keywords: Optional[List[str]] = None
    content_summary: Optional[str] = None
    source_url: str
    published_at: datetime
    platform: Platform
    content_type: ContentType
    created_at: Optional[datetime] = None

    @classmethod
    def draft(
        cls,
        source_url: str,
        title: str,
        description: str,
        published_at: datetime,
        platform: Platform,
        content_type: ContentType,
    ) -> "ContentItem":
        return cls(
            id=generate_article_id(source_url),
            title=title.strip(),
            description=description or "",
            source_url=source_url,
            published_at=published_at,
            platform=platform,
            content_type=content_type,
        )

    @property
    def is_enriched(self) -> bool:
        return self.title_ko is not None

    def with_summary(self, summary: Optional["SummaryResult"]) -> "ContentItem":
        if summary is None:
            return self
        return self.model_copy(
            update={
                "title_ko": summary.title_ko,
                "summary_ko": summary.summary_ko,
                "keywords": list(summary.keywords),
            }
        )

    def to_row(self) -> dict:
        return {
            "id": self.id,
            "title": self.title,
            "title_ko": self.title_ko,
            "description": self.description,
            "summary_ko": self.summary_ko,
            "keywords": self.keywords,
            "content_summary": self.content_summary,
            "source_url": self.source_url,
            "published_at": self.published_at.isoformat(),
            "platform": self.platform.value,
            "content_type": self.content_type.value,
        }

    @classmethod
    def from_row(cls, row: dict) -> "ContentItem":
        return cls.model_validate(row)


class SummaryResult(BaseModel):
    title_ko: str
    summary_ko: str
    keywords: List[str] = []
    tokens: int = 0


class DigestResult(BaseModel):
    content_summary: str
    tokens: int = 0


class InsertSummary(BaseModel):
    success_count: int = 0
    skip_count: int = 0


class IngestionResult(BaseModel):
    success: bool
    count: int = 0
    skipped: int = 0
    tokens: int = 0
    error: Optional[str] = None
