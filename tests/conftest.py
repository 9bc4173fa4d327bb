"""
Pytest fixtures for DevDigest.

Provides in-memory doubles for the store, enricher and HTTP session so
no test reaches Supabase, Gemini, YouTube or a real feed.
"""
from datetime import timedelta
from typing import Dict, List, Optional
from unittest.mock import MagicMock

import pytest
import requests
from fastapi.testclient import TestClient

from devdigest.api.app import create_app
from devdigest.config import FeedSource, Settings
from devdigest.extract.rss import FeedAdapter
from devdigest.load.supabase import StoreUnavailableError
from devdigest.models import (
    ContentItem,
    ContentType,
    DigestResult,
    InsertSummary,
    Platform,
    SummaryResult,
    published_since,
    utc_now,
)
from devdigest.pipeline import IngestionPipeline
from devdigest.throttle import BatchGate


def rss_document(*items: dict) -> bytes:
    """Builds an RSS 2.0 payload from dicts with optional title/link/pubDate/description."""
    parts = []
    for item in items:
        fields = "".join(
            f"<{tag}>{item[tag]}</{tag}>"
            for tag in ("title", "link", "pubDate", "description")
            if tag in item
        )
        parts.append(f"<item>{fields}</item>")
    return (
        '<?xml version="1.0" encoding="UTF-8"?>'
        '<rss version="2.0"><channel><title>Feed</title>'
        + "".join(parts)
        + "</channel></rss>"
    ).encode("utf-8")


class FakeResponse:
    def __init__(self, content: bytes = b"", status_code: int = 200):
        self.content = content
        self.status_code = status_code

    def raise_for_status(self):
        if self.status_code >= 400:
            raise requests.HTTPError(f"{self.status_code} error")


def make_session(routes: Dict[str, object]) -> MagicMock:
    """Session whose get() serves bytes per URL, or raises when mapped to an exception."""
    session = MagicMock()

    def get(url, **kwargs):
        payload = routes[url]
        if isinstance(payload, Exception):
            raise payload
        if isinstance(payload, FakeResponse):
            return payload
        return FakeResponse(payload)

    session.get.side_effect = get
    return session


class InMemoryStore:
    """Mirrors SupabaseStore's contract, with source_url as the unique key."""

    def __init__(self):
        self.rows: Dict[str, ContentItem] = {}
        self.unavailable = False
        self.lookup_fails = False
        self.exists_calls = 0

    def check_table(self) -> None:
        if self.unavailable:
            raise StoreUnavailableError("Supabase unreachable: connection refused")

    def exists(self, source_url: str) -> bool:
        self.exists_calls += 1
        if self.lookup_fails:
            return False
        return any(r.source_url == source_url for r in self.rows.values())

    def insert_one(self, item: ContentItem) -> bool:
        if self.unavailable:
            raise StoreUnavailableError("Supabase unreachable: connection refused")
        if item.id in self.rows or any(r.source_url == item.source_url for r in self.rows.values()):
            return False
        self.rows[item.id] = item.model_copy(update={"created_at": utc_now()})
        return True

    def insert_many(self, items) -> InsertSummary:
        summary = InsertSummary()
        for item in items:
            if self.insert_one(item):
                summary.success_count += 1
            else:
                summary.skip_count += 1
        return summary

    def get_by_id(self, article_id: str) -> Optional[ContentItem]:
        return self.rows.get(article_id)

    def list_articles(self, platform=None, days=7, content_type=None, page=1, limit=12):
        since = published_since(days)
        matches = [
            r for r in self.rows.values()
            if r.published_at >= since
            and (platform is None or r.platform == platform)
            and (content_type is None or r.content_type == content_type)
        ]
        matches.sort(key=lambda r: r.published_at, reverse=True)
        offset = (page - 1) * limit
        return matches[offset:offset + limit], len(matches)

    def save_digest(self, article_id: str, content_summary: str) -> bool:
        row = self.rows.get(article_id)
        if row is None or row.content_summary is not None:
            return False
        self.rows[article_id] = row.model_copy(update={"content_summary": content_summary})
        return True

    def delete_all(self) -> int:
        count = len(self.rows)
        self.rows.clear()
        return count


class FakeEnricher:
    def __init__(self, failing_titles=(), digest: str = "## 핵심 내용\n- point"):
        self.failing_titles = set(failing_titles)
        self.digest = digest
        self.summarize_calls: List[str] = []
        self.elaborate_calls: List[str] = []

    def summarize(self, title: str, body: str) -> Optional[SummaryResult]:
        self.summarize_calls.append(title)
        if title in self.failing_titles:
            return None
        return SummaryResult(
            title_ko=f"{title} (번역)", summary_ko="요약입니다.", keywords=["Kotlin"], tokens=10
        )

    def elaborate(self, title: str, body: str) -> Optional[DigestResult]:
        self.elaborate_calls.append(title)
        if title in self.failing_titles:
            return None
        return DigestResult(content_summary=self.digest, tokens=42)


async def no_sleep(seconds: float) -> None:
    return None


def make_item(url: str, title: str = "Title", days_ago: float = 0, **kwargs) -> ContentItem:
    return ContentItem.draft(
        source_url=url,
        title=title,
        description=kwargs.pop("description", "body"),
        published_at=utc_now() - timedelta(days=days_ago),
        platform=kwargs.pop("platform", Platform.ANDROID),
        content_type=kwargs.pop("content_type", ContentType.BLOG),
    )


@pytest.fixture
def store():
    return InMemoryStore()


@pytest.fixture
def enricher():
    return FakeEnricher()


@pytest.fixture
def feed_urls():
    return ["https://feeds.example.com/a.xml", "https://feeds.example.com/b.xml"]


@pytest.fixture
def feed_routes(feed_urls):
    return {
        feed_urls[0]: rss_document(
            {"title": "Foo", "link": "https://x/y"},
            {"title": "Compose 1.7", "link": "https://blog.example.com/compose",
             "pubDate": "Tue, 01 Oct 2024 10:00:00 GMT"},
        ),
        feed_urls[1]: rss_document(
            {"title": "Kotlin 2.1", "link": "https://kotlin.example.com/2-1"},
        ),
    }


@pytest.fixture
def feed_adapter(feed_urls, feed_routes):
    sources = {
        Platform.ANDROID: [
            FeedSource(name=f"feed-{i}", url=url, platform=Platform.ANDROID)
            for i, url in enumerate(feed_urls)
        ]
    }
    return FeedAdapter(sources, session=make_session(feed_routes))


@pytest.fixture
def pipeline(store, feed_adapter, enricher):
    return IngestionPipeline(
        store, feed_adapter, videos=None, enricher=enricher, gate=BatchGate(2, 1.0, sleep=no_sleep)
    )


@pytest.fixture
def settings():
    return Settings(app_env="development", cron_secret="s3cret")


@pytest.fixture
def client(settings, pipeline):
    app = create_app(settings, pipeline=pipeline)
    return TestClient(app, raise_server_exceptions=False)
