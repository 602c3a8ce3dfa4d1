"""Tests for perch.routing.router — route matching and reverse lookup."""

import pytest

from perch.errors import RouteNotFoundError, RouteParameterError
from perch.routing.registry import HandlerSpec
from perch.routing.router import Router
from perch.routing.table import RouteTableBuilder


def _router(*specs: HandlerSpec, cache_size: int = 1024) -> Router:
    builder = RouteTableBuilder()
    for spec in specs:
        builder.add(spec)
    return Router(builder.build(), cache_size=cache_size)


def users_me() -> str:
    return "me"


def user_show(id: int) -> str:
    return f"user {id}"


def user_create() -> str:
    return "created"


def product_edit(id: int) -> str:
    return f"edit {id}"


def product_in_category(category: str, id: int) -> str:
    return f"{category} {id}"


def price_show(amount: float) -> str:
    return str(amount)


def home() -> str:
    return "home"


class TestStaticRoutes:
    def test_root(self) -> None:
        router = _router(HandlerSpec("/", "GET", home))
        matched = router.match("GET", "/")
        assert matched is not None
        assert matched.name == "home"
        assert matched.params == {}

    def test_trailing_slash_and_query_ignored(self) -> None:
        router = _router(HandlerSpec("/users/me", "GET", users_me))
        matched = router.match("GET", "/users/me/?tab=profile")
        assert matched is not None
        assert matched.name == "users_me"

    def test_method_is_case_insensitive(self) -> None:
        router = _router(HandlerSpec("/users/me", "GET", users_me))
        assert router.match("get", "/users/me") is not None

    def test_no_match(self) -> None:
        router = _router(HandlerSpec("/users/me", "GET", users_me))
        assert router.match("GET", "/nothing") is None
        assert router.match("POST", "/users/me") is None


class TestParametricRoutes:
    def test_static_beats_parametric(self) -> None:
        router = _router(
            HandlerSpec("/users/{id}", "GET", user_show),
            HandlerSpec("/users/me", "GET", users_me),
        )
        matched = router.match("GET", "/users/me")
        assert matched is not None
        assert matched.name == "users_me"

    def test_param_coerced_to_annotation(self) -> None:
        router = _router(
            HandlerSpec("/users/me", "GET", users_me),
            HandlerSpec("/users/{id}", "GET", user_show),
        )
        matched = router.match("GET", "/users/42")
        assert matched is not None
        assert matched.name == "user_show"
        assert matched.params == {"id": 42}
        assert matched.raw_params == {"id": "42"}

    def test_fewer_placeholders_wins(self) -> None:
        router = _router(
            HandlerSpec("/product/{category}/{id}", "GET", product_in_category),
            HandlerSpec("/product/edit/{id}", "GET", product_edit),
        )
        matched = router.match("GET", "/product/edit/7")
        assert matched is not None
        assert matched.name == "product_edit"
        assert matched.params == {"id": 7}

        other = router.match("GET", "/product/lamps/7")
        assert other is not None
        assert other.name == "product_in_category"
        assert other.params == {"category": "lamps", "id": 7}

    def test_registration_order_breaks_ties(self) -> None:
        def first(a: str, b: str) -> str:
            return "first"

        def second(x: str, b: str) -> str:
            return "second"

        router = _router(
            HandlerSpec("/{a}/fixed/{b}", "GET", first),
            HandlerSpec("/{x}/fixed/{b}", "GET", second),
        )
        matched = router.match("GET", "/one/fixed/two")
        assert matched is not None
        assert matched.name == "first"

    def test_segment_count_must_match(self) -> None:
        router = _router(HandlerSpec("/users/{id}", "GET", user_show))
        assert router.match("GET", "/users/1/extra") is None
        assert router.match("GET", "/users") is None

    def test_float_param(self) -> None:
        router = _router(HandlerSpec("/price/{amount}", "GET", price_show))
        matched = router.match("GET", "/price/9.5")
        assert matched is not None
        assert matched.params == {"amount": 9.5}

    def test_unconvertible_param_raises_400(self) -> None:
        router = _router(HandlerSpec("/users/{id}", "GET", user_show))
        with pytest.raises(RouteParameterError) as exc_info:
            router.match("GET", "/users/abc")
        assert exc_info.value.status == 400
        assert "'id'" in exc_info.value.detail


class TestResolutionCache:
    def test_successful_match_is_cached(self) -> None:
        router = _router(HandlerSpec("/users/{id}", "GET", user_show))
        router.match("GET", "/users/1")
        router.match("GET", "/users/1?x=1")
        assert router.cached_resolutions == 1

    def test_misses_are_not_cached(self) -> None:
        router = _router(HandlerSpec("/users/{id}", "GET", user_show))
        router.match("GET", "/missing")
        assert router.cached_resolutions == 0

    def test_cache_is_bounded(self) -> None:
        router = _router(HandlerSpec("/users/{id}", "GET", user_show), cache_size=2)
        for i in range(5):
            router.match("GET", f"/users/{i}")
        assert router.cached_resolutions == 2

    def test_cached_result_is_identical(self) -> None:
        router = _router(HandlerSpec("/users/{id}", "GET", user_show))
        first = router.match("GET", "/users/5")
        second = router.match("GET", "/users/5")
        assert first == second

    def test_clear_cache(self) -> None:
        router = _router(HandlerSpec("/users/{id}", "GET", user_show))
        router.match("GET", "/users/1")
        router.clear_cache()
        assert router.cached_resolutions == 0


class TestAllowedMethods:
    def test_lists_methods_matching_path(self) -> None:
        router = _router(
            HandlerSpec("/users/{id}", "GET", user_show),
            HandlerSpec("/users", "POST", user_create),
        )
        assert router.allowed_methods("/users") == frozenset({"POST"})
        assert router.allowed_methods("/users/3") == frozenset({"GET"})
        assert router.allowed_methods("/nowhere") == frozenset()


class TestReverseLookup:
    def test_route_exists(self) -> None:
        router = _router(HandlerSpec("/users/{id}", "GET", user_show))
        assert router.is_route_exists("user_show")
        assert not router.is_route_exists("user_delete")

    def test_route_info(self) -> None:
        router = _router(HandlerSpec("/users/{id}", "GET", user_show))
        info = router.get_route_info("user_show")
        assert info.url == "/users/{id}"
        assert info.http_method == "GET"

    def test_route_info_unknown(self) -> None:
        router = _router(HandlerSpec("/users/{id}", "GET", user_show))
        with pytest.raises(RouteNotFoundError, match="'nope' not found"):
            router.get_route_info("nope")

    def test_link(self) -> None:
        router = _router(HandlerSpec("/product/{category}/{id}", "GET", product_in_category))
        assert router.get_route_link("product_in_category", {"category": "lamps", "id": 3}) == "/product/lamps/3"
        assert router.get_route_link("product_in_category", category="desks", id=1) == "/product/desks/1"

    def test_link_keeps_missing_placeholders(self) -> None:
        router = _router(HandlerSpec("/product/{category}/{id}", "GET", product_in_category))
        assert router.get_route_link("product_in_category", {"id": 3}) == "/product/{category}/3"

    def test_link_unknown_route(self) -> None:
        router = _router(HandlerSpec("/", "GET", home))
        assert router.get_route_link("missing") == "#missing"

    def test_link_root(self) -> None:
        router = _router(HandlerSpec("/", "GET", home))
        assert router.get_route_link("home") == "/"
