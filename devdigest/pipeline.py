import asyncio
import logging
import time
from typing import Dict, Iterable, List, Optional, Tuple

from .config import Settings, load_channel_sources, load_feed_sources
from .extract.rss import FeedAdapter
from .extract.youtube import VideoAdapter
from .load.supabase import SupabaseStore
from .models import ContentItem, IngestionResult, Platform
from .throttle import BatchGate, Pacer
from .transform.llm import EnrichmentClient

logger = logging.getLogger(__name__)


class IngestionPipeline:
    """Collect -> filter -> enrich -> persist, for one platform per run.

    Each stage completes before the next starts. Source, lookup and
    enrichment failures are absorbed per item; only errors that escape
    those scopes (e.g. the store being unreachable) fail the run.
    """

    def __init__(
        self,
        store: SupabaseStore,
        feeds: FeedAdapter,
        videos: Optional[VideoAdapter] = None,
        enricher: Optional[EnrichmentClient] = None,
        gate: Optional[BatchGate] = None,
    ):
        self.store = store
        self.feeds = feeds
        self.videos = videos
        self.enricher = enricher
        self.gate = gate or BatchGate()

    def has_sources(self, platform: Platform) -> bool:
        if self.feeds.has_sources(platform):
            return True
        return bool(self.videos and self.videos.channels_for(platform))

    async def collect(self, platform: Platform) -> List[ContentItem]:
        async def absorb(label, func):
            try:
                return await asyncio.to_thread(func, platform)
            except Exception:
                logger.exception("%s collection failed for %s", label, platform.value)
                return []

        tasks = [absorb("Feed", self.feeds.collect)]
        if self.videos is not None:
            tasks.append(absorb("Video", self.videos.collect))

        drafts: List[ContentItem] = []
        for items in await asyncio.gather(*tasks):
            drafts.extend(items)
        logger.info("[Collect] %d drafts for %s", len(drafts), platform.value)
        return drafts

    async def filter_new(self, drafts: Iterable[ContentItem]) -> List[ContentItem]:
        new_items: List[ContentItem] = []
        seen_ids = set()
        for item in drafts:
            if item.id in seen_ids:
                continue
            seen_ids.add(item.id)
            if await asyncio.to_thread(self.store.exists, item.source_url):
                continue
            new_items.append(item)
        logger.info("[Filter] %d new of %d unique drafts", len(new_items), len(seen_ids))
        return new_items

    async def _enrich_one(self, item: ContentItem) -> Tuple[ContentItem, int]:
        try:
            summary = await asyncio.to_thread(
                self.enricher.summarize, item.title, item.description
            )
        except Exception:
            logger.exception("Enrichment raised for %r", item.title)
            summary = None

        if summary is None:
            logger.warning("Storing %r without translation", item.title)
            return item, 0
        return item.with_summary(summary), summary.tokens

    async def enrich(self, items: List[ContentItem]) -> Tuple[List[ContentItem], int]:
        if not items or self.enricher is None:
            return items, 0

        results = await self.gate.map(self._enrich_one, items)
        tokens = sum(t for _, t in results)
        enriched_count = sum(1 for item, _ in results if item.is_enriched)
        logger.info(
            "[Enrich] %d/%d summarized (%d tokens)", enriched_count, len(items), tokens
        )
        return [item for item, _ in results], tokens

    async def run(self, platform: Platform) -> IngestionResult:
        start = time.monotonic()
        logger.info("=== Ingestion started for %s ===", platform.value)
        try:
            if not self.has_sources(platform):
                return IngestionResult(
                    success=False,
                    error=f"No sources configured for platform: {platform.value}",
                )

            await asyncio.to_thread(self.store.check_table)

            drafts = await self.collect(platform)
            new_items = await self.filter_new(drafts)
            enriched, tokens = await self.enrich(new_items)

            if enriched:
                summary = await asyncio.to_thread(self.store.insert_many, enriched)
            else:
                summary = None

            count = summary.success_count if summary else 0
            skipped = len(drafts) - len(new_items) + (summary.skip_count if summary else 0)
        except Exception as e:
            logger.exception("Ingestion failed for %s", platform.value)
            return IngestionResult(success=False, error=str(e))

        logger.info(
            "=== Ingestion done for %s: %d stored, %d skipped (%.1fs) ===",
            platform.value, count, skipped, time.monotonic() - start,
        )
        return IngestionResult(success=True, count=count, skipped=skipped, tokens=tokens)

    def configured_platforms(self) -> List[Platform]:
        return [p for p in Platform if self.has_sources(p)]

    async def run_all(
        self, platforms: Optional[Iterable[Platform]] = None
    ) -> Dict[Platform, IngestionResult]:
        results: Dict[Platform, IngestionResult] = {}
        for platform in platforms or self.configured_platforms():
            results[platform] = await self.run(platform)
        return results


def build_pipeline(settings: Settings) -> IngestionPipeline:
    if not settings.supabase_url or not settings.supabase_key:
        raise ValueError("SUPABASE_URL and SUPABASE_KEY must be set")

    store = SupabaseStore(settings.supabase_url, settings.supabase_key)
    feeds = FeedAdapter(load_feed_sources(settings.sources_config))
    videos = VideoAdapter(
        load_channel_sources(settings.channels_config),
        api_key=settings.youtube_api_key,
        max_results=settings.video_max_results,
        pacer=Pacer(settings.video_item_pause),
    )
    enricher = EnrichmentClient(
        settings.google_api_key,
        model_name=settings.llm_model,
        fallback_model=settings.llm_fallback_model,
    )
    gate = BatchGate(settings.enrich_batch_size, settings.enrich_batch_pause)
    return IngestionPipeline(store, feeds, videos, enricher, gate)
