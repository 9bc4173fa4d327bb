import datetime
import logging
from typing import List, Optional

from googleapiclient.discovery import build
from googleapiclient.errors import HttpError

from ..config import ChannelSource
from ..models import ContentItem, ContentType, Platform, utc_now
from ..throttle import Pacer

logger = logging.getLogger(__name__)

WATCH_URL = "https://www.youtube.com/watch?v={video_id}"


def parse_published_at(value: Optional[str]) -> datetime.datetime:
    if not value:
        return utc_now()
    try:
        # 2024-02-05T10:00:00Z
        parsed = datetime.datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return utc_now()
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=datetime.timezone.utc)
    return parsed


class VideoAdapter:
    """Polls channel uploads through the YouTube Data API v3."""

    def __init__(
        self,
        channels: List[ChannelSource],
        api_key: Optional[str] = None,
        youtube=None,
        max_results: int = 5,
        pacer: Optional[Pacer] = None,
    ):
        self.channels = channels
        self.api_key = api_key
        self.max_results = max_results
        self.pacer = pacer or Pacer(0.5)
        self._youtube = youtube

    def _service(self):
        if self._youtube is None:
            self._youtube = build("youtube", "v3", developerKey=self.api_key)
        return self._youtube

    @property
    def enabled(self) -> bool:
        return bool(self.api_key) or self._youtube is not None

    def channels_for(self, platform: Platform) -> List[ChannelSource]:
        return [c for c in self.channels if c.enabled and c.platform == platform]

    def fetch_recent(self, channel_id: str, max_items: Optional[int] = None) -> List[dict]:
        if not self.enabled:
            logger.warning("No YouTube API key configured. Skipping channel %s", channel_id)
            return []

        try:
            request = self._service().search().list(
                part="snippet",
                channelId=channel_id,
                maxResults=max_items or self.max_results,
                order="date",
                type="video",
            )
            response = request.execute()
        except HttpError as e:
            logger.error("YouTube API error for channel %s: %s", channel_id, e)
            return []
        except Exception:
            logger.exception("Error fetching videos for channel %s", channel_id)
            return []

        videos = []
        for result in response.get("items", []):
            video_id = result.get("id", {}).get("videoId")
            snippet = result.get("snippet", {})
            title = (snippet.get("title") or "").strip()
            if not video_id or not title:
                logger.warning("Skipping video without id or title in channel %s", channel_id)
                continue
            videos.append({
                "video_id": video_id,
                "title": title,
                "description": snippet.get("description", ""),
                "published_at": snippet.get("publishedAt"),
            })
        return videos

    def to_article(self, video: dict, platform: Platform, enricher=None) -> ContentItem:
        item = ContentItem.draft(
            source_url=WATCH_URL.format(video_id=video["video_id"]),
            title=video["title"],
            description=video.get("description") or "",
            published_at=parse_published_at(video.get("published_at")),
            platform=platform,
            content_type=ContentType.VIDEO,
        )
        if enricher is not None:
            self.pacer.wait()
            item = item.with_summary(enricher.summarize(item.title, item.description))
        return item

    def collect(self, platform: Platform, enricher=None) -> List[ContentItem]:
        if not self.enabled:
            logger.warning("No YouTube API key configured. Skipping video extraction.")
            return []

        items: List[ContentItem] = []
        for channel in self.channels_for(platform):
            logger.info("Fetching videos from %s (%s)...", channel.name, channel.channel_id)
            for video in self.fetch_recent(channel.channel_id):
                try:
                    items.append(self.to_article(video, channel.platform, enricher))
                except Exception:
                    logger.exception(
                        "Skipping video %s from %s", video.get("video_id"), channel.name
                    )
        logger.info("Collected %d videos for %s", len(items), platform.value)
        return items

