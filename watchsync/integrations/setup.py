# watchsync/integrations/setup.py
"""Builds channel adapters, runtimes and the orchestrator from Settings."""

import logging
from typing import List, Optional, Tuple

from watchsync.core.config import Settings, get_settings
from watchsync.core.enums import ChannelName, RetentionPolicy
from watchsync.core.exceptions import ConfigurationError
from watchsync.database import get_session_maker
from watchsync.integrations.base import ChannelAdapter
from watchsync.integrations.feed import XmlFeedProvider
from watchsync.integrations.platforms.broadcast import WhatsAppBroadcastAdapter
from watchsync.integrations.platforms.catalog import CatalogAdapter
from watchsync.integrations.platforms.ebay import EbayAdapter
from watchsync.services.mirror_store import MirrorStore, SqlMirrorStore
from watchsync.services.notification_service import AlertSink, get_alert_dispatcher
from watchsync.services.reconciliation.backoff import PacingPolicy, RetryPolicy
from watchsync.services.reconciliation.orchestrator import ChannelRuntime, ReconciliationOrchestrator

logger = logging.getLogger(__name__)

_orchestrator: Optional[ReconciliationOrchestrator] = None


def _retention(value: str, channel: str) -> RetentionPolicy:
    try:
        return RetentionPolicy(value.lower())
    except ValueError:
        raise ConfigurationError(f"Unknown retention {value!r} for {channel}") from None


def _whatsapp_policies(settings: Settings) -> Tuple[RetryPolicy, PacingPolicy]:
    retry = RetryPolicy(
        max_attempts=settings.WHATSAPP_RETRY_MAX_ATTEMPTS,
        min_delay=settings.WHATSAPP_RETRY_MIN_DELAY_SECONDS,
        max_delay=settings.WHATSAPP_RETRY_MAX_DELAY_SECONDS,
    )
    pacing = PacingPolicy(
        min_delay=settings.WHATSAPP_PACING_MIN_DELAY_SECONDS,
        max_delay=settings.WHATSAPP_PACING_MAX_DELAY_SECONDS,
    )
    return retry, pacing


def configured_channels(settings: Settings) -> List[str]:
    """Channels named in SYNC_ENABLED_CHANNELS, or every channel with credentials when it's empty."""
    if settings.SYNC_ENABLED_CHANNELS:
        known = {c.value for c in ChannelName}
        unknown = [c for c in settings.SYNC_ENABLED_CHANNELS if c not in known]
        if unknown:
            raise ConfigurationError(f"Unknown channels in SYNC_ENABLED_CHANNELS: {', '.join(unknown)}")
        return list(settings.SYNC_ENABLED_CHANNELS)

    channels = []
    if settings.EBAY_ACCESS_TOKEN:
        channels.append(ChannelName.EBAY.value)
    if settings.CATALOG_API_BASE_URL and settings.CATALOG_API_KEY:
        channels.append(ChannelName.CATALOG.value)
    if settings.WHATSAPP_API_TOKEN and settings.WHATSAPP_GROUP_ID:
        channels.append(ChannelName.WHATSAPP.value)
    return channels


def build_adapter(channel: str, settings: Settings) -> ChannelAdapter:
    if channel == ChannelName.EBAY.value:
        if not settings.EBAY_ACCESS_TOKEN:
            raise ConfigurationError("EBAY_ACCESS_TOKEN is not set")
        adapter = EbayAdapter(
            access_token=settings.EBAY_ACCESS_TOKEN,
            base_url=settings.EBAY_API_BASE_URL,
            sku_field=settings.FEED_SKU_FIELD,
        )
        adapter.retention = _retention(settings.EBAY_RETENTION, channel)
        return adapter

    if channel == ChannelName.CATALOG.value:
        if not (settings.CATALOG_API_BASE_URL and settings.CATALOG_API_KEY):
            raise ConfigurationError("CATALOG_API_BASE_URL and CATALOG_API_KEY must be set")
        adapter = CatalogAdapter(
            settings.CATALOG_API_BASE_URL, settings.CATALOG_API_KEY, sku_field=settings.FEED_SKU_FIELD,
        )
        adapter.retention = _retention(settings.CATALOG_RETENTION, channel)
        return adapter

    if channel == ChannelName.WHATSAPP.value:
        if not (settings.WHATSAPP_API_TOKEN and settings.WHATSAPP_GROUP_ID):
            raise ConfigurationError("WHATSAPP_API_TOKEN and WHATSAPP_GROUP_ID must be set")
        retry, pacing = _whatsapp_policies(settings)
        return WhatsAppBroadcastAdapter(
            api_token=settings.WHATSAPP_API_TOKEN,
            group_id=settings.WHATSAPP_GROUP_ID,
            base_url=settings.WHATSAPP_API_BASE_URL,
            retry_policy=retry,
            pacing=pacing,
        )

    raise ConfigurationError(f"Unknown channel: {channel}")


def build_feed(settings: Settings) -> XmlFeedProvider:
    return XmlFeedProvider(
        feed_url=settings.FEED_URL,
        readiness_url=settings.FEED_READINESS_URL,
        check_readiness=settings.CHECK_FEED_READINESS,
        sku_field=settings.FEED_SKU_FIELD,
        status_field=settings.FEED_STATUS_FIELD,
        page_size=settings.FEED_PAGE_SIZE,
        timeout=settings.FEED_TIMEOUT_SECONDS,
    )


def build_runtime(channel: str, settings: Settings, feed: Optional[XmlFeedProvider] = None) -> ChannelRuntime:
    adapter = build_adapter(channel, settings)

    if channel == ChannelName.WHATSAPP.value:
        # The adapter retries each message itself; retrying the whole item would repost images
        retry = RetryPolicy.no_retry()
        _, pacing = _whatsapp_policies(settings)
    else:
        retry = RetryPolicy(
            max_attempts=settings.RETRY_MAX_ATTEMPTS,
            min_delay=settings.RETRY_MIN_DELAY_SECONDS,
            max_delay=settings.RETRY_MAX_DELAY_SECONDS,
        )
        pacing = PacingPolicy(
            min_delay=settings.PACING_MIN_DELAY_SECONDS,
            max_delay=settings.PACING_MAX_DELAY_SECONDS,
        )

    return ChannelRuntime(
        adapter=adapter,
        feed=feed or build_feed(settings),
        max_destructive_per_cycle=settings.MAX_DESTRUCTIVE_PER_CYCLE,
        max_divergence=settings.divergence_threshold,
        retry_policy=retry,
        pacing=pacing,
    )


def build_orchestrator(
    settings: Optional[Settings] = None,
    store: Optional[MirrorStore] = None,
    alerts: Optional[AlertSink] = None,
    channels: Optional[List[str]] = None,
) -> ReconciliationOrchestrator:
    settings = settings or get_settings()
    if store is None:
        store = SqlMirrorStore(get_session_maker())

    orchestrator = ReconciliationOrchestrator(
        store=store,
        alerts=alerts or get_alert_dispatcher(settings),
        runs_per_hour=settings.SYNC_RUNS_PER_HOUR,
    )
    # All channels read the same feed
    feed = build_feed(settings)
    for channel in channels if channels is not None else configured_channels(settings):
        orchestrator.register(build_runtime(channel, settings, feed))
    return orchestrator


def get_orchestrator() -> ReconciliationOrchestrator:
    """Process-wide orchestrator shared by the API and the scheduler."""
    global _orchestrator
    if _orchestrator is None:
        _orchestrator = build_orchestrator()
    return _orchestrator


def reset_orchestrator() -> None:
    global _orchestrator
    _orchestrator = None


async def close_orchestrator(orchestrator: ReconciliationOrchestrator) -> None:
    for channel in orchestrator.channels:
        await orchestrator.get_channel(channel).adapter.aclose()
