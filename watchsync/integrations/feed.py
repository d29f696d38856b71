# watchsync/integrations/feed.py
"""
XML inventory feed over HTTP.

The feed is a result set of `record` elements, each holding
`<field name="..."><data>value</data></field>` children. The readiness
document uses the same layout; `web_refresh_running=1` means the feed is
being rebuilt and must not be read.
"""

import asyncio
import logging
from typing import Any, Dict, List, Optional

import httpx
import xmltodict

from watchsync.core.exceptions import FeedUnavailableError
from watchsync.integrations.base import FeedProvider
from watchsync.services.reconciliation.types import CanonicalItem

logger = logging.getLogger(__name__)

REFRESH_RUNNING_FIELD = "web_refresh_running"


def _as_list(value) -> List:
    if value is None:
        return []
    return value if isinstance(value, list) else [value]


def _find_records(node: Any) -> List[Dict[str, Any]]:
    """Depth-first search for `record` elements wherever the envelope puts them."""
    if isinstance(node, list):
        records = []
        for child in node:
            records.extend(_find_records(child))
        return records
    if not isinstance(node, dict):
        return []
    if "record" in node:
        return [r for r in _as_list(node["record"]) if isinstance(r, dict)]
    records = []
    for key, child in node.items():
        if not key.startswith("@"):
            records.extend(_find_records(child))
    return records


def _data_text(field: Dict[str, Any]) -> str:
    data = _as_list(field.get("data"))
    if not data:
        return ""
    value = data[0]
    if isinstance(value, dict):
        value = value.get("#text", "")
    return (value or "").strip()


def parse_records(xml_text: str) -> List[Dict[str, str]]:
    """Turn a record/field/data document into a list of {field name: value} in document order."""
    try:
        document = xmltodict.parse(xml_text)
    except Exception as e:
        raise FeedUnavailableError(f"Feed XML could not be parsed: {e}") from e

    rows = []
    for record in _find_records(document):
        row: Dict[str, str] = {}
        for field in _as_list(record.get("field")):
            name = field.get("@name")
            if name:
                row[name] = _data_text(field)
        rows.append(row)
    return rows


class XmlFeedProvider(FeedProvider):

    def __init__(
        self,
        feed_url: str,
        readiness_url: str = "",
        check_readiness: bool = False,
        sku_field: str = "web_tag_number",
        status_field: str = "web_status",
        page_size: int = 2000,
        timeout: float = 300.0,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.feed_url = feed_url
        self.readiness_url = readiness_url
        self.check_readiness = check_readiness
        self.sku_field = sku_field
        self.status_field = status_field
        self.page_size = page_size
        self.timeout = timeout
        self._client = client

    async def _get(self, url: str) -> str:
        try:
            if self._client is not None:
                response = await self._client.get(url, timeout=self.timeout)
            else:
                async with httpx.AsyncClient(timeout=self.timeout) as client:
                    response = await client.get(url)
        except httpx.HTTPError as e:
            raise FeedUnavailableError(f"Feed request to {url} failed: {e}") from e

        if response.status_code != 200:
            raise FeedUnavailableError(f"Feed request to {url} returned HTTP {response.status_code}")
        return response.text

    async def is_ready(self) -> bool:
        if not self.check_readiness:
            logger.info("Not checking feed readiness. Feed is ready.")
            return True

        logger.info(f"Checking on feed readiness: {self.readiness_url}")
        rows = await asyncio.to_thread(parse_records, await self._get(self.readiness_url))
        if not rows:
            logger.error("Feed readiness url returned 0 records")
            return False

        flag = rows[0].get(REFRESH_RUNNING_FIELD)
        logger.info(f"{REFRESH_RUNNING_FIELD}={flag}")
        if flag is None:
            return False
        return flag != "1"

    def _page_url(self, page: int) -> str:
        separator = "&" if "?" in self.feed_url else "?"
        return f"{self.feed_url}{separator}-max={self.page_size}&-skip={page * self.page_size}"

    async def fetch_snapshot(self) -> List[CanonicalItem]:
        if not self.feed_url:
            raise FeedUnavailableError("FEED_URL is not configured")

        rows: List[Dict[str, str]] = []
        if self.page_size <= 0:
            rows = await asyncio.to_thread(parse_records, await self._get(self.feed_url))
        else:
            page = 0
            while True:
                url = self._page_url(page)
                logger.info(f"Reading feed from: {url}")
                batch = await asyncio.to_thread(parse_records, await self._get(url))
                if not batch:
                    break
                rows.extend(batch)
                if len(batch) < self.page_size:
                    break
                page += 1

        items = []
        blank = 0
        for row in rows:
            sku = row.get(self.sku_field, "")
            if not sku:
                blank += 1
                continue
            items.append(CanonicalItem(sku=sku, attributes=dict(row), feed_status=row.get(self.status_field, "")))

        if blank:
            # A corrupted feed must not look like a shrunken one
            raise FeedUnavailableError(f"Feed has {blank} records without {self.sku_field}")

        logger.info(f"All feed downloaded successfully. Total read item count: {len(items)}")
        return items
