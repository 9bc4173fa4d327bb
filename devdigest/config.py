import logging
import os
import sys
from typing import Dict, List, Optional

import yaml
from dotenv import load_dotenv
from pydantic import BaseModel

from .models import ContentType, Platform

logger = logging.getLogger(__name__)

DEFAULT_SOURCES_CONFIG = "config/sources.yaml"
DEFAULT_CHANNELS_CONFIG = "config/channels.yaml"


def configure_logging(level: str = "INFO") -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        handlers=[logging.StreamHandler(sys.stdout)],
    )


class FeedSource(BaseModel):
    name: str
    url: str
    platform: Platform
    content_type: ContentType = ContentType.BLOG


class ChannelSource(BaseModel):
    name: str
    channel_id: str
    platform: Platform
    enabled: bool = True


class Settings(BaseModel):
    supabase_url: Optional[str] = None
    supabase_key: Optional[str] = None
    google_api_key: Optional[str] = None
    youtube_api_key: Optional[str] = None
    cron_secret: Optional[str] = None
    app_env: str = "production"
    llm_model: str = "gemini-2.5-flash"
    llm_fallback_model: Optional[str] = "gemini-2.0-flash"
    enrich_batch_size: int = 3
    enrich_batch_pause: float = 1.0
    video_item_pause: float = 0.5
    video_max_results: int = 5
    sources_config: str = DEFAULT_SOURCES_CONFIG
    channels_config: str = DEFAULT_CHANNELS_CONFIG
    log_level: str = "INFO"

    @property
    def is_development(self) -> bool:
        return self.app_env.lower() == "development"

    @classmethod
    def from_env(cls) -> "Settings":
        load_dotenv()
        env = {
            "supabase_url": os.getenv("SUPABASE_URL"),
            "supabase_key": os.getenv("SUPABASE_KEY"),
            "google_api_key": os.getenv("GOOGLE_API_KEY"),
            "youtube_api_key": os.getenv("YOUTUBE_API_KEY"),
            "cron_secret": os.getenv("CRON_SECRET"),
            "app_env": os.getenv("APP_ENV"),
            "llm_model": os.getenv("LLM_MODEL"),
            "llm_fallback_model": os.getenv("LLM_FALLBACK_MODEL"),
            "enrich_batch_size": os.getenv("ENRICH_BATCH_SIZE"),
            "enrich_batch_pause": os.getenv("ENRICH_BATCH_PAUSE"),
            "video_item_pause": os.getenv("VIDEO_ITEM_PAUSE"),
            "video_max_results": os.getenv("VIDEO_MAX_RESULTS"),
            "sources_config": os.getenv("SOURCES_CONFIG"),
            "channels_config": os.getenv("CHANNELS_CONFIG"),
            "log_level": os.getenv("LOG_LEVEL"),
        }
        # Unset variables fall back to the model defaults
        return cls(**{k: v for k, v in env.items() if v})


def _read_yaml(path: str) -> dict:
    if not os.path.exists(path):
        logger.warning("Source config %s not found", path)
        return {}
    with open(path, "r") as f:
        return yaml.safe_load(f) or {}


def load_feed_sources(path: str) -> Dict[Platform, List[FeedSource]]:
    """Reads `platforms: {android: [{name, url, content_type}]}` into FeedSource lists."""
    config = _read_yaml(path)
    sources: Dict[Platform, List[FeedSource]] = {}

    for platform_name, feeds in (config.get("platforms") or {}).items():
        platform = Platform(platform_name)
        for feed in feeds or []:
            if not feed or not feed.get("url"):
                continue
            sources.setdefault(platform, []).append(
                FeedSource(
                    name=feed.get("name", feed["url"]),
                    url=feed["url"],
                    platform=platform,
                    content_type=feed.get("content_type", ContentType.BLOG),
                )
            )
    return sources


def load_channel_sources(path: str) -> List[ChannelSource]:
    config = _read_yaml(path)
    channels = []
    for channel in config.get("channels") or []:
        if not channel or not channel.get("channel_id"):
            continue
        channels.append(ChannelSource(**channel))
    return channels
