import logging
from typing import List, Optional, Sequence, Tuple

import requests

from ..models import ContentItem, ContentType, InsertSummary, Platform, published_since

logger = logging.getLogger(__name__)

UNIQUE_VIOLATION = "23505"


class StoreError(Exception):
    pass


class StoreUnavailableError(StoreError):
    pass


def parse_content_range(header: Optional[str]) -> Optional[int]:
    """'0-11/25' -> 25, '*/0' -> 0"""
    if not header or "/" not in header:
        return None
    total = header.rsplit("/", 1)[1]
    return int(total) if total.isdigit() else None


class SupabaseStore:
    """Article persistence over the Supabase PostgREST API.

    The unique constraint on source_url is the authoritative dedup gate;
    exists() is only a pre-filter.
    """

    def __init__(
        self,
        url: str,
        key: str,
        table: str = "articles",
        session: Optional[requests.Session] = None,
        timeout: int = 30,
    ):
        self.base_url = f"{url.rstrip('/')}/rest/v1/{table}"
        self.table = table
        self.headers = {
            "apikey": key,
            "Authorization": f"Bearer {key}",
            "Content-Type": "application/json",
        }
        self.session = session or requests.Session()
        self.timeout = timeout

    def _request(self, method: str, params=None, json=None, prefer: Optional[str] = None):
        headers = dict(self.headers)
        if prefer:
            headers["Prefer"] = prefer
        try:
            return self.session.request(
                method,
                self.base_url,
                headers=headers,
                params=params,
                json=json,
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            raise StoreUnavailableError(f"Supabase unreachable: {e}") from e

    def check_table(self) -> None:
        resp = self._request("GET", params={"select": "id", "limit": 1})
        if resp.status_code != 200:
            raise StoreError(
                f"Table '{self.table}' is not accessible ({resp.status_code}): {resp.text}. "
                "Create it with sql/schema.sql."
            )

    def exists(self, source_url: str) -> bool:
        """Point lookup by source_url. Lookup errors count as 'not found'."""
        try:
            resp = self._request(
                "GET", params={"select": "id", "source_url": f"eq.{source_url}", "limit": 1}
            )
        except StoreError as e:
            logger.error("Error checking existence of %s: %s", source_url, e)
            return False

        if resp.status_code != 200:
            logger.error("Error checking existence of %s: %s %s", source_url, resp.status_code, resp.text)
            return False
        try:
            return len(resp.json()) > 0
        except (TypeError, ValueError) as e:
            logger.error("Unreadable existence reply for %s: %s", source_url, e)
            return False

    def insert_one(self, item: ContentItem) -> bool:
        resp = self._request("POST", json=item.to_row(), prefer="return=minimal")

        if resp.status_code in (200, 201, 204):
            logger.debug("Inserted: %s", item.title)
            return True

        if resp.status_code == 409 or self._error_code(resp) == UNIQUE_VIOLATION:
            logger.info("Already exists: %s", item.title)
            return False

        logger.error("Error inserting %r (%s): %s", item.title, resp.status_code, resp.text)
        return False

    def insert_many(self, items: Sequence[ContentItem]) -> InsertSummary:
        summary = InsertSummary()
        for item in items:
            if self.insert_one(item):
                summary.success_count += 1
            else:
                summary.skip_count += 1
        logger.info("Inserted %d articles, skipped %d", summary.success_count, summary.skip_count)
        return summary

    def get_by_id(self, article_id: str) -> Optional[ContentItem]:
        resp = self._request("GET", params={"select": "*", "id": f"eq.{article_id}", "limit": 1})
        self._raise_for_status(resp)
        rows = resp.json()
        return ContentItem.from_row(rows[0]) if rows else None

    def list_articles(
        self,
        platform: Optional[Platform] = None,
        days: int = 7,
        content_type: Optional[ContentType] = None,
        page: int = 1,
        limit: int = 12,
    ) -> Tuple[List[ContentItem], int]:
        since = published_since(days)
        params = {
            "select": "*",
            "published_at": f"gte.{since.isoformat()}",
            "order": "published_at.desc",
            "offset": (page - 1) * limit,
            "limit": limit,
        }
        if platform:
            params["platform"] = f"eq.{platform.value}"
        if content_type:
            params["content_type"] = f"eq.{content_type.value}"

        resp = self._request("GET", params=params, prefer="count=exact")
        # Offsets past the end answer 416 with the total still in Content-Range
        if resp.status_code == 416:
            return [], parse_content_range(resp.headers.get("Content-Range")) or 0
        self._raise_for_status(resp)

        rows = resp.json()
        total = parse_content_range(resp.headers.get("Content-Range"))
        return [ContentItem.from_row(r) for r in rows], total if total is not None else len(rows)

    def save_digest(self, article_id: str, content_summary: str) -> bool:
        """Write-once: only fills content_summary while it is still null."""
        resp = self._request(
            "PATCH",
            params={"id": f"eq.{article_id}", "content_summary": "is.null"},
            json={"content_summary": content_summary},
            prefer="return=representation",
        )
        self._raise_for_status(resp)
        return len(resp.json()) > 0

    def delete_all(self) -> int:
        resp = self._request("DELETE", params={"id": "neq."}, prefer="count=exact,return=minimal")
        self._raise_for_status(resp)
        return parse_content_range(resp.headers.get("Content-Range")) or 0

    @staticmethod
    def _error_code(resp) -> Optional[str]:
        try:
            return resp.json().get("code")
        except (ValueError, AttributeError):
            return None

    @staticmethod
    def _raise_for_status(resp) -> None:
        if resp.status_code >= 400:
            raise StoreError(f"Supabase error ({resp.status_code}): {resp.text}")
