"""Tests for perch.routing.table — validation, indexing, and persistence."""

import json

import pytest

from perch.cache.memory import MemoryCacheAdapter
from perch.config import AppConfig
from perch.controller import Controller
from perch.errors import (
    ConfigurationError,
    DuplicateRouteError,
    InvalidHttpMethodError,
    InvalidRouteMethodParameterTypeError,
    RouteMiddlewareError,
    RouteParameterExpectedError,
)
from perch.http.request import Request
from perch.middleware.combinators import MatchAll, Single
from perch.middleware.registry import MiddlewareRegistry
from perch.middleware.route import RouteMiddleware
from perch.routing.registry import HandlerSpec, route
from perch.routing.table import ROUTES_CACHE_KEY, RouteTable, RouteTableBuilder


class Gate(RouteMiddleware):
    def result(self) -> bool:
        return True


def list_products() -> str:
    return "products"


def show_product(id: int) -> str:
    return f"product {id}"


def search(page: int = 1) -> str:
    return f"page {page}"


def with_request(request: Request, id: int) -> str:
    return str(id)


class ProductController(Controller):
    @route("/product/{id}", "GET", name="product_show", middleware=Gate)
    def show(self, id: int) -> str:
        return f"product {id}"

    @route("/product/{id}", "DELETE", name="product_delete", middleware=["auth", Gate])
    def delete(self, id: int) -> str:
        return "deleted"


def _build(*specs: HandlerSpec, **kwargs) -> RouteTable:
    builder = RouteTableBuilder(**kwargs)
    for spec in specs:
        builder.add(spec)
    return builder.build()


class TestBuild:
    def test_indexes_by_name_and_method_url(self) -> None:
        table = _build(
            HandlerSpec("/products", "GET", list_products),
            HandlerSpec("products/{id}/", "get", show_product, name="product"),
        )
        assert len(table) == 2
        assert table.by_name["product"].url == "/products/{id}"
        assert table.by_name["product"].http_method == "GET"
        assert table.by_method_and_url["GET"]["/products"].name == "list_products"

    def test_param_types_from_annotations(self) -> None:
        table = _build(HandlerSpec("/products/{id}", "GET", show_product))
        assert table.routes[0].route_params == ("id",)
        assert table.routes[0].param_types == {"id": "int"}

    def test_unannotated_param_is_str(self) -> None:
        def tagged(tag):
            return tag

        table = _build(HandlerSpec("/tags/{tag}", "GET", tagged))
        assert table.routes[0].param_types == {"tag": "str"}

    def test_request_param_is_not_a_route_param(self) -> None:
        table = _build(HandlerSpec("/items/{id}", "GET", with_request))
        assert table.routes[0].route_params == ("id",)

    def test_defaulted_param_needs_no_placeholder(self) -> None:
        table = _build(HandlerSpec("/search", "GET", search))
        assert table.routes[0].route_params == ()

    def test_controller_methods_skip_self(self) -> None:
        builder = RouteTableBuilder(registry=MiddlewareRegistry.with_defaults())
        builder.add_controller(ProductController)
        table = builder.build()
        assert [r.name for r in table] == ["product_show", "product_delete"]
        show = table.by_name["product_show"]
        assert show.controller is ProductController
        assert show.param_types == {"id": "int"}
        assert show.middleware == Single(Gate)
        assert isinstance(table.by_name["product_delete"].middleware, MatchAll)


class TestValidation:
    def test_invalid_http_method(self) -> None:
        with pytest.raises(InvalidHttpMethodError, match="Undefined HTTP method 'FETCH'"):
            _build(HandlerSpec("/products", "FETCH", list_products))

    def test_union_param_rejected(self) -> None:
        def show(id: int | None) -> str:
            return ""

        with pytest.raises(InvalidRouteMethodParameterTypeError) as exc_info:
            _build(HandlerSpec("/p/{id}", "GET", show))
        assert exc_info.value.parameter == "id"

    def test_unsupported_type_rejected(self) -> None:
        def show(flag: bool) -> str:
            return ""

        with pytest.raises(InvalidRouteMethodParameterTypeError, match="'bool'"):
            _build(HandlerSpec("/p/{flag}", "GET", show))

    def test_placeholder_without_parameter(self) -> None:
        with pytest.raises(RouteParameterExpectedError, match=r"\{slug\}"):
            _build(HandlerSpec("/products/{slug}", "GET", list_products))

    def test_parameter_without_placeholder(self) -> None:
        with pytest.raises(RouteParameterExpectedError, match="'id'"):
            _build(HandlerSpec("/products", "GET", show_product))

    def test_malformed_placeholder(self) -> None:
        with pytest.raises(ConfigurationError, match="Malformed placeholder"):
            _build(HandlerSpec("/products/id-{id}", "GET", show_product))

    def test_duplicate_name(self) -> None:
        with pytest.raises(DuplicateRouteError, match="'products' is already registered"):
            _build(
                HandlerSpec("/products", "GET", list_products, name="products"),
                HandlerSpec("/catalog", "GET", list_products, name="products"),
            )

    def test_duplicate_method_and_url(self) -> None:
        with pytest.raises(DuplicateRouteError, match="GET '/products' already exists"):
            _build(
                HandlerSpec("/products", "GET", list_products, name="a"),
                HandlerSpec("/products/", "GET", list_products, name="b"),
            )

    def test_same_url_different_methods(self) -> None:
        table = _build(
            HandlerSpec("/products", "GET", list_products, name="a"),
            HandlerSpec("/products", "POST", list_products, name="b"),
        )
        assert len(table) == 2

    def test_bad_middleware_names_route(self) -> None:
        with pytest.raises(RouteMiddlewareError) as exc_info:
            _build(HandlerSpec("/products", "GET", list_products, middleware={"all": []}))
        assert "MatchAll list must not be empty!" in str(exc_info.value)
        assert any("list_products" in note for note in exc_info.value.__notes__)

    def test_no_partial_table(self) -> None:
        builder = RouteTableBuilder()
        builder.add(HandlerSpec("/products", "GET", list_products))
        builder.add(HandlerSpec("/broken", "TRACE", list_products, name="broken"))
        with pytest.raises(InvalidHttpMethodError):
            builder.build()


class TestPersistence:
    def _cache(self) -> MemoryCacheAdapter:
        return MemoryCacheAdapter("tables:")

    def test_stored_outside_debug(self) -> None:
        cache = self._cache()
        _build(HandlerSpec("/products/{id}", "GET", show_product), cache=cache)
        payload = json.loads(cache.get(ROUTES_CACHE_KEY))
        assert payload["routes"][0]["handler"].endswith(":show_product")
        assert payload["routes"][0]["param_types"] == {"id": "int"}
        assert payload["fingerprint"]

    def test_not_stored_in_debug(self) -> None:
        cache = self._cache()
        _build(
            HandlerSpec("/products", "GET", list_products),
            config=AppConfig(debug=True),
            cache=cache,
        )
        assert not cache.has(ROUTES_CACHE_KEY)

    def test_not_stored_with_local_handlers(self) -> None:
        def local() -> str:
            return ""

        cache = self._cache()
        _build(HandlerSpec("/local", "GET", local), cache=cache)
        assert not cache.has(ROUTES_CACHE_KEY)

    def test_rehydrated_from_cache(self) -> None:
        cache = self._cache()
        spec = HandlerSpec("/products/{id}", "GET", show_product)
        _build(spec, cache=cache)

        # Rename the cached route to prove the next build reads the cache
        payload = json.loads(cache.get(ROUTES_CACHE_KEY))
        payload["routes"][0]["name"] = "from_cache"
        cache.set(ROUTES_CACHE_KEY, json.dumps(payload))

        table = _build(spec, cache=cache)
        route = table.routes[0]
        assert route.name == "from_cache"
        assert route.handler is show_product
        assert route.param_types == {"id": "int"}

    def test_controllers_and_middleware_round_trip(self) -> None:
        cache = self._cache()
        registry = MiddlewareRegistry.with_defaults()
        first = RouteTableBuilder(cache=cache, registry=registry)
        first.add_controller(ProductController)
        built = first.build()

        second = RouteTableBuilder(cache=cache, registry=registry)
        second.add_controller(ProductController)
        loaded = second.build()

        assert loaded == built
        assert loaded.by_name["product_show"].controller is ProductController

    def test_fingerprint_mismatch_rebuilds(self) -> None:
        cache = self._cache()
        _build(HandlerSpec("/products", "GET", list_products), cache=cache)
        table = _build(
            HandlerSpec("/products", "GET", list_products),
            HandlerSpec("/products/{id}", "GET", show_product),
            cache=cache,
        )
        assert len(table) == 2
        assert len(json.loads(cache.get(ROUTES_CACHE_KEY))["routes"]) == 2

    def test_changed_signature_rebuilds(self) -> None:
        cache = self._cache()
        _build(HandlerSpec("/products/{id}", "GET", show_product), cache=cache)

        def redeployed(id: str) -> str:
            return f"product {id}"

        # Same module:qualname as the cached handler, new annotation
        redeployed.__name__ = redeployed.__qualname__ = "show_product"
        table = _build(HandlerSpec("/products/{id}", "GET", redeployed), cache=cache)
        route = table.routes[0]
        assert route.handler is redeployed
        assert route.param_types == {"id": "str"}

    def test_unreadable_cache_rebuilds(self) -> None:
        cache = self._cache()
        cache.set(ROUTES_CACHE_KEY, "not json")
        table = _build(HandlerSpec("/products", "GET", list_products), cache=cache)
        assert len(table) == 1
