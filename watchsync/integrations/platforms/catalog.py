# watchsync/integrations/platforms/catalog.py
import logging
from typing import Any, Dict, List, Mapping, Optional

import httpx

from watchsync.core.enums import ChannelName, RetentionPolicy
from watchsync.core.exceptions import PermanentChannelError
from watchsync.integrations.base import ChannelStatusPolicy
from watchsync.integrations.platforms.rest import HttpChannelAdapter
from watchsync.services.reconciliation.types import CanonicalItem, RemoteListingRef

logger = logging.getLogger(__name__)

INVENTORY_ACTIVE = "Active"
INVENTORY_INACTIVE = "Inactive"


def remote_status(product: Mapping[str, Any]) -> str:
    """
    Collapse product approval and inventory state into one status.

    approved + active inventory -> "active"
    approved + inactive inventory -> "approved" (ready to be reactivated)
    anything else -> the product status as reported (e.g. "pending", "rejected")
    """
    product_status = str(product.get("status") or "").lower()
    inventory_status = str((product.get("inventory") or {}).get("status") or "").lower()
    if product_status == "approved":
        return "active" if inventory_status == "active" else "approved"
    return product_status


class CatalogAdapter(HttpChannelAdapter):
    """
    B2B wholesale catalog.

    Deactivated products are kept on the catalog with inactive inventory
    and can be reactivated once the catalog reports them approved.
    """

    channel_id = ChannelName.CATALOG.value
    supports_listing = True
    retention = RetentionPolicy.ARCHIVE

    def __init__(
        self,
        base_url: str,
        api_key: str,
        price_field: str = "web_price_wholesale",
        sku_field: str = "web_tag_number",
        timeout: float = 30.0,
        client: Optional[httpx.AsyncClient] = None,
        status_policy: Optional[ChannelStatusPolicy] = None,
    ):
        super().__init__(
            base_url,
            api_key=api_key,
            timeout=timeout,
            client=client,
            status_policy=status_policy or ChannelStatusPolicy(
                remote_active_statuses=("active",),
                remote_accepting_statuses=("approved",),
            ),
        )
        self.price_field = price_field
        self.sku_field = sku_field

    def _get_headers(self) -> Dict[str, str]:
        headers = super()._get_headers()
        headers["User-Agent"] = "watchsync"
        return headers

    def _price(self, attributes: Mapping[str, Any]) -> Optional[float]:
        raw = attributes.get(self.price_field) or attributes.get("web_price_sale")
        try:
            return float(raw) if raw not in (None, "") else None
        except (TypeError, ValueError):
            return None

    def _product_payload(self, sku: str, attributes: Mapping[str, Any]) -> Dict[str, Any]:
        return {
            "product": {
                "name": attributes.get("web_description_short") or sku,
                "brand": attributes.get("web_designer"),
                "model": attributes.get("web_watch_model"),
                "attributes": dict(attributes),
            },
            "vendor": {"sku": sku},
        }

    def _inventory_payload(self, status: str, quantity: int, attributes: Mapping[str, Any]) -> Dict[str, Any]:
        return {"inventory": {"status": status, "quantity": quantity, "price": self._price(attributes)}}

    async def create(self, item: CanonicalItem) -> str:
        payload = self._product_payload(item.sku, item.attributes)
        payload.update(self._inventory_payload(INVENTORY_ACTIVE, 1, item.attributes))
        response = await self._make_request("POST", "/products", data=payload)
        body = self._json(response)
        product_id = body.get("id") or body.get("catalog_sku")
        if not product_id:
            raise PermanentChannelError(f"Catalog did not return a product id for {item.sku}")
        logger.debug(f"Inserted catalog product {product_id} for {item.sku}")
        return str(product_id)

    async def update(self, remote_id: str, attributes: Mapping[str, Any]) -> None:
        sku = attributes.get(self.sku_field, "")
        # Product and inventory are separate resources on the catalog
        await self._make_request("PUT", f"/products/{remote_id}", data=self._product_payload(sku, attributes))
        await self._make_request(
            "PUT", f"/products/{remote_id}/inventory",
            data=self._inventory_payload(INVENTORY_ACTIVE, 1, attributes),
        )

    async def deactivate(self, remote_id: str) -> None:
        await self._make_request(
            "PUT", f"/products/{remote_id}/inventory",
            data={"inventory": {"status": INVENTORY_INACTIVE, "quantity": 0}},
        )

    async def reactivate(self, remote_id: str, attributes: Mapping[str, Any]) -> None:
        await self._make_request(
            "PUT", f"/products/{remote_id}/inventory",
            data=self._inventory_payload(INVENTORY_ACTIVE, 1, attributes),
        )

    async def list_remote(self) -> List[RemoteListingRef]:
        refs: List[RemoteListingRef] = []
        page, total_pages = 1, 1
        while True:
            params = {"page": page} if page > 1 else None
            body = self._json(await self._make_request("GET", "/products", params=params))
            for product in body.get("products") or []:
                vendor = product.get("vendor") or {}
                refs.append(RemoteListingRef(
                    remote_id=str(product.get("id")),
                    sku=vendor.get("sku"),
                    remote_status=remote_status(product),
                ))
            total_pages = int(body.get("pages") or 1)
            if page >= total_pages:
                break
            page += 1
        logger.info(f"Catalog returned {len(refs)} products over {total_pages} pages")
        return refs
