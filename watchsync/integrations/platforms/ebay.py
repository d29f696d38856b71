# watchsync/integrations/platforms/ebay.py
import asyncio
import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Mapping, Optional

import httpx
import xmltodict

from watchsync.core.enums import ChannelName, RetentionPolicy
from watchsync.core.exceptions import (
    AlreadyConvergedError,
    PermanentChannelError,
    TransientChannelError,
)
from watchsync.integrations.base import ChannelStatusPolicy
from watchsync.integrations.platforms.rest import HttpChannelAdapter, _contains_any
from watchsync.services.reconciliation.types import CanonicalItem, RemoteListingRef

logger = logging.getLogger(__name__)

EBAY_NS = "urn:ebay:apis:eBLBaseComponents"
ALREADY_CLOSED = "The auction has already been closed"
IMAGE_FIELDS = [f"web_image_path_{i}" for i in range(1, 10)]


def _as_list(value) -> List:
    if value is None:
        return []
    return value if isinstance(value, list) else [value]


def build_item(sku: str, attributes: Mapping[str, Any], defaults: Optional[Mapping[str, Any]] = None) -> Dict[str, Any]:
    """Map feed attributes onto a Trading API `Item` element."""
    price = attributes.get("web_price_ebay") or attributes.get("web_price_sale")
    title = (attributes.get("web_description_short") or sku)[:80]

    item: Dict[str, Any] = {
        "SKU": sku,
        "Title": title,
        "Description": attributes.get("web_notes") or title,
        "StartPrice": price,
        "Quantity": 1,
        "ListingType": "FixedPriceItem",
        "ListingDuration": "GTC",
    }
    pictures = [attributes[f] for f in IMAGE_FIELDS if attributes.get(f)]
    if pictures:
        item["PictureDetails"] = {"PictureURL": pictures}

    for key, value in (defaults or {}).items():
        item.setdefault(key, value)
    return item


class EbayAdapter(HttpChannelAdapter):
    """
    eBay Trading API (XML) adapter.

    Ended listings are deleted from the mirror; a SKU that comes back is
    listed again as a new item.
    """

    channel_id = ChannelName.EBAY.value
    supports_listing = True
    retention = RetentionPolicy.DELETE
    already_converged_markers = (ALREADY_CLOSED,)

    PRODUCTION_ENDPOINT = "https://api.ebay.com/ws/api.dll"

    def __init__(
        self,
        access_token: str,
        base_url: str = "",
        site_id: str = "0",
        compatibility_level: str = "1155",
        item_defaults: Optional[Mapping[str, Any]] = None,
        page_size: int = 200,
        sku_field: str = "web_tag_number",
        timeout: float = 60.0,
        client: Optional[httpx.AsyncClient] = None,
        status_policy: Optional[ChannelStatusPolicy] = None,
    ):
        super().__init__(
            base_url or self.PRODUCTION_ENDPOINT,
            api_key=access_token,
            timeout=timeout,
            client=client,
            status_policy=status_policy or ChannelStatusPolicy(remote_active_statuses=("active",)),
        )
        self.site_id = site_id
        self.compatibility_level = compatibility_level
        self.page_size = page_size
        self.sku_field = sku_field
        self.item_defaults = dict(item_defaults or {
            "Country": "US",
            "Currency": "USD",
            "PrimaryCategory": {"CategoryID": "31387"},
            "ConditionID": "3000",
            "DispatchTimeMax": 3,
        })

    def _call_headers(self, call_name: str) -> Dict[str, str]:
        return {
            "X-EBAY-API-CALL-NAME": call_name,
            "X-EBAY-API-SITEID": self.site_id,
            "X-EBAY-API-COMPATIBILITY-LEVEL": self.compatibility_level,
            "X-EBAY-API-IAF-TOKEN": self.api_key,
            "Content-Type": "text/xml",
        }

    async def _call(self, call_name: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        """Send one Trading API call and return the `<CallName>Response` body."""
        body = {f"{call_name}Request": {"@xmlns": EBAY_NS, **payload}}
        xml_request = xmltodict.unparse(body)

        response = await self._make_request(
            "POST", "", content=xml_request, headers=self._call_headers(call_name)
        )
        parsed = await asyncio.to_thread(xmltodict.parse, response.text)
        result = parsed.get(f"{call_name}Response") or {}
        self._check_ack(call_name, result)
        return result

    def _check_ack(self, call_name: str, result: Dict[str, Any]) -> None:
        ack = result.get("Ack", "")
        if ack in ("Success", "Warning"):
            return

        errors = _as_list(result.get("Errors"))
        messages = [e.get("LongMessage") or e.get("ShortMessage") or "" for e in errors]
        message = "; ".join(m for m in messages if m) or f"{call_name} returned Ack={ack or 'missing'}"

        if _contains_any(message, self.already_converged_markers):
            raise AlreadyConvergedError(message)
        if any(e.get("ErrorClassification") == "SystemError" for e in errors):
            logger.warning(f"eBay {call_name} system error: {message}")
            raise TransientChannelError(message)
        logger.error(f"eBay {call_name} failed: {message}")
        raise PermanentChannelError(message)

    async def create(self, item: CanonicalItem) -> str:
        logger.info(f"Calling eBay AddItem for {item.sku}")
        result = await self._call("AddItem", {"Item": build_item(item.sku, item.attributes, self.item_defaults)})
        item_id = result.get("ItemID")
        logger.info(f"Listed {item.sku} as eBay item {item_id}")
        return item_id

    async def update(self, remote_id: str, attributes: Mapping[str, Any]) -> None:
        item = build_item(attributes.get(self.sku_field, ""), attributes)
        item.pop("SKU", None)
        item.pop("ListingType", None)
        item.pop("ListingDuration", None)
        item["ItemID"] = remote_id
        await self._call("ReviseItem", {"Item": item})

    async def deactivate(self, remote_id: str) -> None:
        logger.info(f"Calling eBay EndFixedPriceItem: {remote_id}")
        await self._call("EndFixedPriceItem", {"ItemID": remote_id, "EndingReason": "NotAvailable"})

    async def reactivate(self, remote_id: str, attributes: Mapping[str, Any]) -> None:
        raise PermanentChannelError("eBay listings can't be reactivated; the SKU is listed again instead")

    async def list_remote(self) -> List[RemoteListingRef]:
        now = datetime.now(timezone.utc)
        window = {
            "EndTimeFrom": (now - timedelta(days=30)).strftime("%Y-%m-%dT%H:%M:%S.000Z"),
            "EndTimeTo": (now + timedelta(days=90)).strftime("%Y-%m-%dT%H:%M:%S.000Z"),
        }

        refs: List[RemoteListingRef] = []
        page = 1
        while True:
            result = await self._call("GetSellerList", {
                "DetailLevel": "ReturnAll",
                **window,
                "Pagination": {"EntriesPerPage": self.page_size, "PageNumber": page},
            })
            items = _as_list((result.get("ItemArray") or {}).get("Item"))
            for entry in items:
                status = (entry.get("SellingStatus") or {}).get("ListingStatus", "")
                refs.append(RemoteListingRef(
                    remote_id=str(entry.get("ItemID")),
                    sku=entry.get("SKU"),
                    remote_status=status,
                ))

            total_pages = int((result.get("PaginationResult") or {}).get("TotalNumberOfPages") or 1)
            if page >= total_pages:
                break
            page += 1

        logger.info(f"eBay GetSellerList returned {len(refs)} listings over {page} pages")
        return refs
