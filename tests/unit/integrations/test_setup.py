# tests/unit/integrations/test_setup.py
import pytest

from watchsync.core.config import Settings
from watchsync.core.enums import RetentionPolicy
from watchsync.core.exceptions import ConfigurationError
from watchsync.integrations import setup
from watchsync.integrations.platforms.broadcast import WhatsAppBroadcastAdapter
from watchsync.integrations.platforms.catalog import CatalogAdapter
from watchsync.integrations.platforms.ebay import EbayAdapter
from watchsync.services.mirror_store import InMemoryMirrorStore

from tests.mocks.mock_channel import RecordingAlerts


def full_settings(**overrides):
    values = dict(
        FEED_URL="https://feed.test/items.xml",
        EBAY_ACCESS_TOKEN="ebay-token",
        CATALOG_API_BASE_URL="https://catalog.test/api",
        CATALOG_API_KEY="catalog-key",
        WHATSAPP_API_TOKEN="wa-token",
        WHATSAPP_GROUP_ID="1203630@g.us",
    )
    values.update(overrides)
    return Settings(**values)


def test_configured_channels_from_credentials():
    assert setup.configured_channels(full_settings()) == ["EBAY", "CATALOG", "WHATSAPP"]
    assert setup.configured_channels(full_settings(WHATSAPP_GROUP_ID="", CATALOG_API_KEY="")) == ["EBAY"]


def test_configured_channels_from_explicit_list():
    settings = full_settings(SYNC_ENABLED_CHANNELS="CATALOG, WHATSAPP")
    assert setup.configured_channels(settings) == ["CATALOG", "WHATSAPP"]


def test_unknown_enabled_channel_rejected():
    with pytest.raises(ConfigurationError):
        setup.configured_channels(full_settings(SYNC_ENABLED_CHANNELS="EBAY,AMAZON"))


def test_build_adapter_types_and_retention():
    settings = full_settings(EBAY_RETENTION="ARCHIVE")

    ebay = setup.build_adapter("EBAY", settings)
    catalog = setup.build_adapter("CATALOG", settings)
    whatsapp = setup.build_adapter("WHATSAPP", settings)

    assert isinstance(ebay, EbayAdapter)
    assert ebay.retention is RetentionPolicy.ARCHIVE
    assert isinstance(catalog, CatalogAdapter)
    assert catalog.retention is RetentionPolicy.ARCHIVE
    assert isinstance(whatsapp, WhatsAppBroadcastAdapter)
    assert whatsapp.group_id == "1203630@g.us"


def test_adapters_use_configured_sku_field():
    settings = full_settings(FEED_SKU_FIELD="stock_no")

    assert setup.build_adapter("EBAY", settings).sku_field == "stock_no"
    assert setup.build_adapter("CATALOG", settings).sku_field == "stock_no"


@pytest.mark.parametrize("channel,missing", [
    ("EBAY", {"EBAY_ACCESS_TOKEN": ""}),
    ("CATALOG", {"CATALOG_API_KEY": ""}),
    ("WHATSAPP", {"WHATSAPP_GROUP_ID": ""}),
])
def test_build_adapter_requires_credentials(channel, missing):
    with pytest.raises(ConfigurationError):
        setup.build_adapter(channel, full_settings(**missing))


def test_bad_retention_value():
    with pytest.raises(ConfigurationError):
        setup.build_adapter("CATALOG", full_settings(CATALOG_RETENTION="forever"))


def test_whatsapp_retries_per_message_not_per_item():
    settings = full_settings(WHATSAPP_RETRY_MAX_ATTEMPTS=7, RETRY_MAX_ATTEMPTS=2,
                             MAX_DESTRUCTIVE_PER_CYCLE=9, MAX_REMOTE_DIVERGENCE=40)

    whatsapp = setup.build_runtime("WHATSAPP", settings)
    ebay = setup.build_runtime("EBAY", settings)

    assert whatsapp.retry_policy.max_attempts == 1
    assert whatsapp.adapter.retry_policy.max_attempts == 7
    assert whatsapp.adapter.retry_policy.min_delay == settings.WHATSAPP_RETRY_MIN_DELAY_SECONDS
    assert whatsapp.adapter.pacing.min_delay == settings.WHATSAPP_PACING_MIN_DELAY_SECONDS
    assert whatsapp.pacing.min_delay == settings.WHATSAPP_PACING_MIN_DELAY_SECONDS
    assert ebay.retry_policy.max_attempts == 2
    assert ebay.max_destructive_per_cycle == 9
    assert ebay.max_divergence == 40


def test_divergence_defaults_to_destructive_threshold():
    runtime = setup.build_runtime("EBAY", full_settings(MAX_DESTRUCTIVE_PER_CYCLE=12))
    assert runtime.max_divergence == 12


def test_build_feed_from_settings():
    feed = setup.build_feed(full_settings(FEED_PAGE_SIZE=500, CHECK_FEED_READINESS=True,
                                          FEED_READINESS_URL="https://feed.test/status.xml"))

    assert feed.feed_url == "https://feed.test/items.xml"
    assert feed.page_size == 500
    assert feed.check_readiness is True


def test_build_orchestrator_shares_one_feed():
    orchestrator = setup.build_orchestrator(
        settings=full_settings(SYNC_RUNS_PER_HOUR=6),
        store=InMemoryMirrorStore(),
        alerts=RecordingAlerts(),
    )

    assert orchestrator.channels == ["CATALOG", "EBAY", "WHATSAPP"]
    assert orchestrator.runs_per_hour == 6
    feeds = {id(orchestrator.get_channel(c).feed) for c in orchestrator.channels}
    assert len(feeds) == 1


def test_build_orchestrator_with_explicit_channels():
    orchestrator = setup.build_orchestrator(
        settings=full_settings(), store=InMemoryMirrorStore(), alerts=RecordingAlerts(), channels=["EBAY"],
    )
    assert orchestrator.channels == ["EBAY"]


def test_get_orchestrator_is_cached(mocker):
    built = mocker.patch.object(setup, "build_orchestrator", return_value=mocker.sentinel.orchestrator)
    setup.reset_orchestrator()
    try:
        assert setup.get_orchestrator() is mocker.sentinel.orchestrator
        assert setup.get_orchestrator() is mocker.sentinel.orchestrator
        built.assert_called_once_with()
    finally:
        setup.reset_orchestrator()


@pytest.mark.asyncio
async def test_close_orchestrator_closes_adapters(mocker):
    orchestrator = setup.build_orchestrator(
        settings=full_settings(), store=InMemoryMirrorStore(), alerts=RecordingAlerts(), channels=["CATALOG"],
    )
    adapter = orchestrator.get_channel("CATALOG").adapter
    close = mocker.patch.object(adapter, "aclose")

    await setup.close_orchestrator(orchestrator)

    close.assert_awaited_once()
