# watchsync/integrations/platforms/broadcast.py
"""WhatsApp group broadcast through the Wassenger API."""

import logging
from typing import Any, Dict, List, Mapping, Optional

import httpx

from watchsync.core.enums import ChannelName, RetentionPolicy
from watchsync.core.exceptions import PermanentChannelError, TransientChannelError
from watchsync.integrations.base import ChannelStatusPolicy
from watchsync.integrations.platforms.rest import HttpChannelAdapter
from watchsync.services.reconciliation.backoff import PacingPolicy, RetryPolicy, Sleeper, real_sleep
from watchsync.services.reconciliation.types import CanonicalItem

logger = logging.getLogger(__name__)

IMAGE_FIELDS = [f"web_image_path_{i}" for i in range(1, 10)]

# Wassenger answers these with a 4xx even though a later retry succeeds
TRANSIENT_MARKERS = (
    "Please try again in 30 seconds.",
    "Failed to send message in real-time due to number session is not online: online.",
    "Failed to download the file from remote URL, the server cannot be reached from the Internet, "
    "timed-out or returned an HTTP error",
)


def format_caption(attributes: Mapping[str, Any]) -> str:
    description = attributes.get("web_description_short") or ""
    price = attributes.get("web_price_sale")
    try:
        return f"{description} ${float(price):,.0f}".strip()
    except (TypeError, ValueError):
        return description


class WhatsAppBroadcastAdapter(HttpChannelAdapter):
    """
    Posts new items to a WhatsApp group.

    An item with images goes out as one message per image, the caption on the
    last one. Each message is retried on its own and consecutive messages are
    spaced by `pacing`, so a retry never posts an image twice. Once a message
    has been delivered the item can't be retried as a whole: running out of
    attempts after that point is a PermanentChannelError.

    A sent message can't be edited or recalled, so update, deactivate and
    reactivate only touch the mirror.
    """

    channel_id = ChannelName.WHATSAPP.value
    supports_listing = False
    retention = RetentionPolicy.DELETE
    transient_markers = TRANSIENT_MARKERS

    def __init__(
        self,
        api_token: str,
        group_id: str,
        base_url: str = "https://api.wassenger.com/v1",
        timeout: float = 60.0,
        client: Optional[httpx.AsyncClient] = None,
        status_policy: Optional[ChannelStatusPolicy] = None,
        retry_policy: Optional[RetryPolicy] = None,
        pacing: Optional[PacingPolicy] = None,
        sleeper: Optional[Sleeper] = None,
    ):
        super().__init__(base_url, api_key=api_token, timeout=timeout, client=client,
                         status_policy=status_policy)
        self.group_id = group_id
        self.retry_policy = retry_policy or RetryPolicy.no_retry()
        self.pacing = pacing or PacingPolicy()
        self._sleep = sleeper or real_sleep

    def _get_headers(self):
        return {
            "Content-Type": "application/json",
            "Token": self.api_key,
        }

    async def _send(self, payload: Dict[str, Any]) -> str:
        attempt = 0
        while True:
            attempt += 1
            try:
                response = await self._make_request("POST", "/messages", data=payload)
                return str(self._json(response).get("id", ""))
            except TransientChannelError as e:
                if not self.retry_policy.should_retry(attempt):
                    raise
                delay = self.retry_policy.delay_for(attempt)
                logger.warning(
                    f"Message to {self.group_id} failed on attempt {attempt}/{self.retry_policy.max_attempts} "
                    f"({e}); retrying in {delay:.1f}s"
                )
                await self._sleep(delay)

    async def create(self, item: CanonicalItem) -> str:
        images: List[str] = [item.attributes[f] for f in IMAGE_FIELDS if item.attributes.get(f)]
        caption = format_caption(item.attributes)

        if not images:
            return await self._send({"group": self.group_id, "message": caption, "priority": "normal"})

        message_id = ""
        for index, url in enumerate(images):
            if index and self.pacing.enabled:
                await self._sleep(self.pacing.next_delay())
            payload = {"group": self.group_id, "media": {"url": url}, "priority": "normal"}
            # Caption only on the final image
            if index == len(images) - 1:
                payload["message"] = caption
            try:
                message_id = await self._send(payload)
            except TransientChannelError as e:
                if index == 0:
                    raise
                raise PermanentChannelError(
                    f"Broadcast of {item.sku} stopped after {index}/{len(images)} images: {e}"
                ) from e
        logger.info(f"Broadcast {item.sku} with {len(images)} images")
        return message_id

    async def update(self, remote_id: str, attributes: Mapping[str, Any]) -> None:
        logger.debug(f"Broadcast message {remote_id} can't be edited; mirror only")

    async def deactivate(self, remote_id: str) -> None:
        logger.debug(f"Broadcast message {remote_id} can't be recalled; mirror only")

    async def reactivate(self, remote_id: str, attributes: Mapping[str, Any]) -> None:
        logger.debug(f"Broadcast message {remote_id} stays as sent")
