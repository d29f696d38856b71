# tests/unit/integrations/test_xml_feed.py
import httpx
import pytest

from watchsync.core.exceptions import FeedUnavailableError
from watchsync.integrations.feed import XmlFeedProvider, parse_records

FEED_URL = "https://feed.test/fmi/xml/fmresultset.xml?-db=Inventory&-findall"
READY_URL = "https://feed.test/fmi/xml/fmresultset.xml?-db=Status&-findall"


def record(**fields):
    body = "".join(f'<field name="{k}"><data>{v}</data></field>' for k, v in fields.items())
    return f"<record>{body}</record>"


def document(*records):
    return (
        '<?xml version="1.0" encoding="UTF-8"?>'
        '<fmresultset xmlns="http://www.filemaker.com/xml/fmresultset" version="1.0">'
        f'<resultset count="{len(records)}">{"".join(records)}</resultset>'
        "</fmresultset>"
    )


def provider_for(pages, **kwargs):
    """pages: url -> xml text, or a callable(request) -> httpx.Response"""
    requested = []
    routes = {} if callable(pages) else {str(httpx.URL(k)): v for k, v in pages.items()}

    def handler(request):
        url = str(request.url)
        requested.append(url)
        reply = pages(request) if callable(pages) else routes.get(url)
        if isinstance(reply, httpx.Response):
            return reply
        if reply is None:
            return httpx.Response(404, text="not found")
        return httpx.Response(200, text=reply)

    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    kwargs.setdefault("feed_url", FEED_URL)
    return XmlFeedProvider(client=client, **kwargs), requested


"""
1. Parsing
"""

def test_parse_records_in_document_order():
    xml = document(
        record(web_tag_number="100200", web_status="Available", web_price_sale="9500"),
        record(web_tag_number="100201", web_status="Sold", web_price_sale=""),
    )

    rows = parse_records(xml)

    assert rows == [
        {"web_tag_number": "100200", "web_status": "Available", "web_price_sale": "9500"},
        {"web_tag_number": "100201", "web_status": "Sold", "web_price_sale": ""},
    ]


def test_parse_single_record_and_empty_data():
    xml = document('<record><field name="web_tag_number"><data>7</data></field>'
                   '<field name="web_notes"><data/></field></record>')

    assert parse_records(xml) == [{"web_tag_number": "7", "web_notes": ""}]


def test_parse_empty_resultset():
    assert parse_records(document()) == []


def test_parse_garbage_is_feed_unavailable():
    with pytest.raises(FeedUnavailableError):
        parse_records("<fmresultset><resultset>")


"""
2. Snapshot
"""

@pytest.mark.asyncio
async def test_single_request_when_paging_disabled():
    provider, requested = provider_for({FEED_URL: document(
        record(web_tag_number="A", web_status="Available"),
        record(web_tag_number="B", web_status="Sold"),
    )}, page_size=0)

    items = await provider.fetch_snapshot()

    assert [(i.sku, i.feed_status) for i in items] == [("A", "Available"), ("B", "Sold")]
    assert items[0].attributes["web_tag_number"] == "A"
    assert len(requested) == 1


@pytest.mark.asyncio
async def test_pages_until_short_page():
    provider, requested = provider_for({
        f"{FEED_URL}&-max=2&-skip=0": document(record(web_tag_number="A"), record(web_tag_number="B")),
        f"{FEED_URL}&-max=2&-skip=2": document(record(web_tag_number="C")),
    }, page_size=2)

    items = await provider.fetch_snapshot()

    assert [i.sku for i in items] == ["A", "B", "C"]
    assert len(requested) == 2


@pytest.mark.asyncio
async def test_pages_until_empty_page():
    provider, requested = provider_for({
        f"{FEED_URL}&-max=1&-skip=0": document(record(web_tag_number="A")),
        f"{FEED_URL}&-max=1&-skip=1": document(record(web_tag_number="B")),
        f"{FEED_URL}&-max=1&-skip=2": document(),
    }, page_size=1)

    items = await provider.fetch_snapshot()

    assert [i.sku for i in items] == ["A", "B"]
    assert len(requested) == 3


def test_page_url_without_query_string():
    provider = XmlFeedProvider("https://feed.test/items.xml", page_size=50)
    assert provider._page_url(3) == "https://feed.test/items.xml?-max=50&-skip=150"


@pytest.mark.asyncio
async def test_blank_sku_means_feed_is_broken():
    provider, _ = provider_for({FEED_URL: document(
        record(web_tag_number="A"),
        record(web_tag_number="", web_status="Available"),
    )}, page_size=0)

    with pytest.raises(FeedUnavailableError) as exc_info:
        await provider.fetch_snapshot()

    assert "1 records without web_tag_number" in str(exc_info.value)


@pytest.mark.asyncio
async def test_http_error_status_is_feed_unavailable():
    provider, _ = provider_for(lambda request: httpx.Response(502, text="bad gateway"), page_size=0)

    with pytest.raises(FeedUnavailableError):
        await provider.fetch_snapshot()


@pytest.mark.asyncio
async def test_network_error_is_feed_unavailable():
    def handler(request):
        raise httpx.ConnectError("refused", request=request)

    provider, _ = provider_for(handler, page_size=0)

    with pytest.raises(FeedUnavailableError):
        await provider.fetch_snapshot()


@pytest.mark.asyncio
async def test_missing_url_is_feed_unavailable():
    with pytest.raises(FeedUnavailableError):
        await XmlFeedProvider("").fetch_snapshot()


@pytest.mark.asyncio
async def test_custom_field_names():
    provider, _ = provider_for({FEED_URL: document(record(stock_no="X1", state="ON MEMO"))},
                               page_size=0, sku_field="stock_no", status_field="state")

    items = await provider.fetch_snapshot()

    assert items[0].sku == "X1"
    assert items[0].feed_status == "ON MEMO"


"""
3. Readiness
"""

@pytest.mark.asyncio
async def test_ready_without_check():
    provider, requested = provider_for({})
    assert await provider.is_ready()
    assert requested == []


@pytest.mark.asyncio
@pytest.mark.parametrize("flag,expected", [("0", True), ("", True), ("1", False)])
async def test_readiness_flag(flag, expected):
    provider, _ = provider_for({READY_URL: document(record(web_refresh_running=flag))},
                               readiness_url=READY_URL, check_readiness=True)

    assert await provider.is_ready() is expected


@pytest.mark.asyncio
async def test_readiness_missing_field_is_not_ready():
    provider, _ = provider_for({READY_URL: document(record(other="x"))},
                               readiness_url=READY_URL, check_readiness=True)

    assert await provider.is_ready() is False


@pytest.mark.asyncio
async def test_readiness_no_records_is_not_ready():
    provider, _ = provider_for({READY_URL: document()}, readiness_url=READY_URL, check_readiness=True)

    assert await provider.is_ready() is False
