"""Tests for source collectors and the collector registry."""

import httpx
import pytest

from coffee_agent.core.errors import CollectionError
from coffee_agent.ingestion.collectors import (
    COLLECTOR_REGISTRY,
    ShopifyCollector,
    StaticCollector,
    get_collector,
    list_collectors,
    register_collector,
)
from coffee_agent.ingestion.collectors.base import Listing, SourceCollector
from coffee_agent.ingestion.collectors.shopify import strip_html
from coffee_agent.ingestion.fetcher import Fetcher
from coffee_agent.ingestion.registry import RateLimitConfig, SourceConfig

BASE = "https://shop.example.com"


def shopify_source(**custom_config) -> SourceConfig:
    return SourceConfig(
        name="shop",
        collector="shopify",
        base_url=f"{BASE}/",
        rate_limit=RateLimitConfig(requests_per_second=100.0, burst_limit=100),
        custom_config=custom_config,
    )


def product(handle: str, available: bool = True, **fields) -> dict:
    data = {
        "handle": handle,
        "title": handle.replace("-", " ").title(),
        "available": available,
        "variants": [
            {"title": "5 lbs", "price": "32.50"},
            {"title": "1 lb", "price": "7.25"},
        ],
    }
    data.update(fields)
    return data


class ShopifyHandler:
    """Mock storefront serving products.json pages and product documents."""

    def __init__(self, pages: list[list[dict]], products: dict[str, dict] | None = None) -> None:
        self.pages = pages
        self.products = products or {}
        self.requests: list[httpx.URL] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request.url)
        path = request.url.path
        if path.endswith("/products.json"):
            page = int(request.url.params.get("page", "1"))
            products = self.pages[page - 1] if page <= len(self.pages) else []
            return httpx.Response(200, json={"products": products})
        handle = path.rsplit("/", 1)[-1].removesuffix(".json")
        if handle in self.products:
            return httpx.Response(200, json={"product": self.products[handle]})
        return httpx.Response(404)


def make_fetcher(handler: ShopifyHandler) -> Fetcher:
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return Fetcher(client=client, respect_robots=False, max_retries=1)


class TestStripHtml:
    """Tests for strip_html."""

    def test_keeps_paragraphs(self) -> None:
        markup = "<p>Bright &amp; sweet</p><p>Washed   at <strong>1,900</strong> masl</p>"
        assert strip_html(markup) == "Bright & sweet\nWashed at 1,900 masl"

    def test_drops_style_script_and_attributes(self) -> None:
        markup = (
            "<p>Washed Guji</p><style>.x{color:red}</style>"
            '<script>track("view")</script><img alt="a > b" src="x.png"><p>Jasmine</p>'
        )
        assert strip_html(markup) == "Washed Guji\nJasmine"

    def test_line_breaks_and_list_items(self) -> None:
        markup = "<ul><li>Process: Natural</li><li>Altitude: 2,100&nbsp;masl</li></ul>Notes<br>Peach"
        assert strip_html(markup) == "Process: Natural\nAltitude: 2,100 masl\nNotes\nPeach"

    def test_empty(self) -> None:
        assert strip_html(None) is None
        assert strip_html("<p> </p>") is None


class TestShopifyCollector:
    """Tests for ShopifyCollector."""

    @pytest.mark.asyncio
    async def test_list_latest_pages_and_filters(self) -> None:
        handler = ShopifyHandler(
            pages=[
                [product("kenya-nyeri"), product("sold-out-lot", available=False)],
                [product("colombia-huila")],
            ]
        )
        collector = ShopifyCollector(
            shopify_source(collection="green-coffee", page_size=2), make_fetcher(handler)
        )

        listings = await collector.list_latest()

        assert listings == [
            Listing(f"{BASE}/products/kenya-nyeri", 7.25),
            Listing(f"{BASE}/products/colombia-huila", 7.25),
        ]
        assert len(handler.requests) == 2
        assert handler.requests[0].path == "/collections/green-coffee/products.json"
        assert handler.requests[0].params["limit"] == "2"

    @pytest.mark.asyncio
    async def test_price_falls_back_to_first_variant(self) -> None:
        handler = ShopifyHandler(
            pages=[[product("lot", variants=[{"title": "2 kg", "price": "30.00"}])]]
        )
        collector = ShopifyCollector(shopify_source(), make_fetcher(handler))

        listings = await collector.list_latest()

        assert listings == [Listing(f"{BASE}/products/lot", 30.0)]
        assert handler.requests[0].path == "/products.json"

    @pytest.mark.asyncio
    async def test_fetch_detail(self) -> None:
        handler = ShopifyHandler(
            pages=[],
            products={"kenya-nyeri": product("kenya-nyeri", body_html="<p>Blackcurrant</p>")},
        )
        collector = ShopifyCollector(shopify_source(), make_fetcher(handler))

        scraped = await collector.fetch_detail(f"{BASE}/products/kenya-nyeri", None)

        assert scraped.url == f"{BASE}/products/kenya-nyeri"
        assert scraped.name == "Kenya Nyeri"
        assert scraped.cost_lb == 7.25
        assert scraped.description_long == "Blackcurrant"

    @pytest.mark.asyncio
    async def test_fetch_detail_missing_product(self) -> None:
        collector = ShopifyCollector(shopify_source(), make_fetcher(ShopifyHandler(pages=[])))
        with pytest.raises(CollectionError):
            await collector.fetch_detail(f"{BASE}/products/ghost", 7.0)

    @pytest.mark.asyncio
    async def test_requires_base_url_and_fetcher(self) -> None:
        no_base = SourceConfig(name="shop", collector="shopify")
        with pytest.raises(CollectionError, match="base_url"):
            await ShopifyCollector(no_base, make_fetcher(ShopifyHandler(pages=[]))).list_latest()

        with pytest.raises(CollectionError, match="fetcher"):
            await ShopifyCollector(shopify_source()).list_latest()


class TestStaticCollector:
    """Tests for StaticCollector."""

    def _source(self) -> SourceConfig:
        return SourceConfig(
            name="demo",
            collector="static",
            custom_config={
                "listings": [
                    {"url": "https://demo.example.com/a", "price": 6},
                    {"url": "https://demo.example.com/b"},
                ],
                "details": {"https://demo.example.com/a": {"name": "Lot A", "region": "Huila"}},
            },
        )

    @pytest.mark.asyncio
    async def test_list_latest(self) -> None:
        listings = await StaticCollector(self._source()).list_latest()
        assert listings == [
            Listing("https://demo.example.com/a", 6.0),
            Listing("https://demo.example.com/b", None),
        ]

    @pytest.mark.asyncio
    async def test_fetch_detail(self) -> None:
        scraped = await StaticCollector(self._source()).fetch_detail("https://demo.example.com/a", 6.0)
        assert scraped.name == "Lot A"
        assert scraped.region == "Huila"
        assert scraped.cost_lb == 6.0

    @pytest.mark.asyncio
    async def test_missing_detail(self) -> None:
        with pytest.raises(CollectionError):
            await StaticCollector(self._source()).fetch_detail("https://demo.example.com/b", None)


class TestCollectorRegistry:
    """Tests for the collector registry."""

    def test_builtin_collectors(self) -> None:
        assert {"static", "shopify"} <= set(list_collectors())

    def test_get_collector(self) -> None:
        collector = get_collector(SourceConfig(name="demo", collector="static"))
        assert isinstance(collector, StaticCollector)
        assert get_collector(SourceConfig(name="x", collector="unknown")) is None

    def test_register_collector(self) -> None:
        class CustomCollector(StaticCollector):
            COLLECTOR_NAME = "custom"

        register_collector("custom", CustomCollector)
        try:
            collector = get_collector(SourceConfig(name="x", collector="custom"))
            assert isinstance(collector, CustomCollector)
        finally:
            COLLECTOR_REGISTRY.pop("custom", None)

    def test_register_rejects_non_collector(self) -> None:
        with pytest.raises(TypeError):
            register_collector("bad", dict)  # type: ignore[arg-type]
        assert "bad" not in COLLECTOR_REGISTRY

    def test_base_is_abstract(self) -> None:
        with pytest.raises(TypeError):
            SourceCollector(SourceConfig(name="x", collector="base"))  # type: ignore[abstract]
