import logging
from datetime import datetime, timezone
from email.utils import parsedate_to_datetime
from typing import Dict, List, Optional

import feedparser
import requests
from bs4 import BeautifulSoup

from ..config import FeedSource
from ..models import ContentItem, ContentType, Platform, utc_now

logger = logging.getLogger(__name__)

_HEADERS = {"User-Agent": "DevDigest/1.0 (+feed reader)"}
MAX_BODY_CHARS = 5000


def parse_date(entry) -> datetime:
    # feedparser normalizes most formats into *_parsed (UTC struct_time)
    for field in ("published_parsed", "updated_parsed"):
        parsed = entry.get(field)
        if parsed:
            return datetime(*parsed[:6], tzinfo=timezone.utc)

    for field in ("published", "updated"):
        raw = entry.get(field)
        if not raw:
            continue
        try:
            value = parsedate_to_datetime(raw)
        except (TypeError, ValueError):
            try:
                value = datetime.fromisoformat(raw.replace("Z", "+00:00"))
            except ValueError:
                continue
        if value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        return value

    return utc_now()


def extract_body(entry) -> str:
    # Prefer content > summary > description
    if entry.get("content"):
        html = entry["content"][0].get("value", "")
    elif entry.get("summary"):
        html = entry["summary"]
    else:
        html = entry.get("description", "")

    if not html:
        return ""
    text = BeautifulSoup(html, "html.parser").get_text(separator=" ", strip=True)
    return text[:MAX_BODY_CHARS]


def entry_to_item(
    entry, platform: Platform, content_type: ContentType
) -> Optional[ContentItem]:
    url = (entry.get("link") or "").strip()
    title = (entry.get("title") or "").strip()
    if not url or not title:
        logger.warning("Dropping feed entry without link or title: %r", title or url)
        return None

    return ContentItem.draft(
        source_url=url,
        title=title,
        description=extract_body(entry),
        published_at=parse_date(entry),
        platform=platform,
        content_type=content_type,
    )


class FeedAdapter:
    """Fetches configured feeds and normalizes their entries into draft items."""

    def __init__(
        self,
        sources: Dict[Platform, List[FeedSource]],
        session: Optional[requests.Session] = None,
        timeout: int = 30,
    ):
        self.sources = sources
        self.session = session or requests.Session()
        self.timeout = timeout

    def has_sources(self, platform: Platform) -> bool:
        return bool(self.sources.get(platform))

    def fetch(
        self, feed_url: str, platform: Platform, content_type: ContentType
    ) -> List[ContentItem]:
        """Returns drafts for one endpoint; any failure yields []."""
        try:
            resp = self.session.get(feed_url, headers=_HEADERS, timeout=self.timeout)
            resp.raise_for_status()
            feed = feedparser.parse(resp.content)
        except Exception:
            logger.exception("Failed to fetch feed %s", feed_url)
            return []

        if feed.bozo and not feed.entries:
            logger.warning("Malformed feed %s: %s", feed_url, feed.get("bozo_exception"))
            return []

        items = []
        for entry in feed.entries:
            item = entry_to_item(entry, platform, content_type)
            if item:
                items.append(item)

        logger.info(
            "Converted %d/%d entries from %s", len(items), len(feed.entries), feed_url
        )
        return items

    def collect(self, platform: Platform) -> List[ContentItem]:
        items: List[ContentItem] = []
        for source in self.sources.get(platform, []):
            logger.info("Fetching %s...", source.name)
            items.extend(self.fetch(source.url, source.platform, source.content_type))
        return items
