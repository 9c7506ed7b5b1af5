"""Tests for rebound.routing.router — compiled trie-based router."""

import pytest

from rebound.errors import ConfigurationError
from rebound.routing.route import RouteMatch
from rebound.routing.router import Router, parse_path


class TestParsePath:
    def test_static(self) -> None:
        segments = parse_path("/users")
        assert len(segments) == 1
        assert segments[0].value == "users"
        assert segments[0].is_param is False

    def test_multi_static(self) -> None:
        segments = parse_path("/api/v2/users")
        assert [s.value for s in segments] == ["api", "v2", "users"]

    def test_param(self) -> None:
        segments = parse_path("/users/{id}")
        assert segments[1].is_param is True
        assert segments[1].param_name == "id"
        assert segments[1].param_type == "str"

    def test_typed_param(self) -> None:
        segments = parse_path("/users/{id:int}")
        assert segments[1].param_type == "int"

    def test_path_param(self) -> None:
        segments = parse_path("/files/{rest:path}")
        assert segments[1].param_type == "path"
        assert segments[1].param_name == "rest"

    def test_bracket_param(self) -> None:
        segments = parse_path("/users/[id]")
        assert segments[1].param_name == "id"
        assert segments[1].param_type == "str"

    def test_bracket_wildcard(self) -> None:
        segments = parse_path("/files/[...rest]")
        assert segments[1].param_name == "rest"
        assert segments[1].param_type == "path"

    def test_root(self) -> None:
        assert parse_path("/") == []

    def test_rejects_angle_bracket_param(self) -> None:
        with pytest.raises(ConfigurationError) as exc_info:
            parse_path("/share/<slug>")
        assert "<param>" in str(exc_info.value)
        assert "{param}" in str(exc_info.value)
        assert "/share/<slug>" in str(exc_info.value)

    def test_rejects_unknown_converter(self) -> None:
        with pytest.raises(ConfigurationError, match="Unknown converter"):
            parse_path("/users/{id:uuid}")


class TestRouterMatching:
    def test_root(self) -> None:
        router = Router(["/"])
        assert router("/") == RouteMatch(route_id="/", route_params={})

    def test_static(self) -> None:
        router = Router(["/health", "/users"])
        match = router("/health")
        assert match is not None
        assert match.route_id == "/health"

    def test_trailing_slash_ignored(self) -> None:
        router = Router(["/health"])
        match = router("/health/")
        assert match is not None
        assert match.route_id == "/health"

    def test_no_match_returns_none(self) -> None:
        router = Router(["/health"])
        assert router("/missing") is None

    def test_empty_router_matches_nothing(self) -> None:
        assert Router()("/") is None

    def test_param_binds_value(self) -> None:
        router = Router(["/users/{user_id}"])
        match = router("/users/42")
        assert match is not None
        assert match.route_params == {"user_id": "42"}

    def test_int_converter_rejects_non_digits(self) -> None:
        router = Router(["/users/{user_id:int}"])
        assert router("/users/abc") is None
        match = router("/users/7")
        assert match is not None
        assert match.route_params == {"user_id": "7"}

    def test_static_beats_param(self) -> None:
        router = Router(["/users/{user_id}", "/users/me"])
        match = router("/users/me")
        assert match is not None
        assert match.route_id == "/users/me"

    def test_param_beats_wildcard(self) -> None:
        router = Router(["/files/{name}", "/files/{rest:path}"])
        match = router("/files/readme")
        assert match is not None
        assert match.route_id == "/files/{name}"

    def test_wildcard_binds_segment_list(self) -> None:
        router = Router(["/api/{rest:path}"])
        match = router("/api/a/b/health")
        assert match is not None
        assert match.route_params == {"rest": ["a", "b", "health"]}

    def test_wildcard_needs_one_segment(self) -> None:
        router = Router(["/api/{rest:path}"])
        assert router("/api") is None

    def test_bracket_wildcard_matches(self) -> None:
        router = Router(["/docs/[...slug]"])
        match = router("/docs/guide/intro")
        assert match is not None
        assert match.route_params == {"slug": ["guide", "intro"]}

    def test_backtracks_to_wildcard(self) -> None:
        router = Router(["/a/{x}/end", "/a/{rest:path}"])
        match = router("/a/b/c")
        assert match is not None
        assert match.route_id == "/a/{rest:path}"


class TestRouterRegistration:
    def test_duplicate_route_rejected(self) -> None:
        router = Router()
        router.add("/health")
        with pytest.raises(ConfigurationError, match="conflicts"):
            router.add("/health")

    def test_conflicting_wildcards_rejected(self) -> None:
        router = Router()
        router.add("/files/{a:path}")
        with pytest.raises(ConfigurationError, match="conflicts"):
            router.add("/files/[...b]")

    def test_add_after_compile_rejected(self) -> None:
        router = Router(["/health"])
        with pytest.raises(RuntimeError):
            router.add("/other")

    def test_route_ids_in_registration_order(self) -> None:
        router = Router(["/b", "/a", "/c/{rest:path}"])
        assert router.route_ids == ["/b", "/a", "/c/{rest:path}"]

    def test_differently_named_params_at_same_level_rejected(self) -> None:
        router = Router()
        router.add("/users/{id}")
        with pytest.raises(ConfigurationError, match="declares"):
            router.add("/users/{name}/posts")

    def test_differently_typed_params_at_same_level_rejected(self) -> None:
        router = Router()
        router.add("/a/{n:int}")
        with pytest.raises(ConfigurationError, match="declares"):
            router.add("/a/{n}/edit")

    def test_same_param_shared_across_routes(self) -> None:
        router = Router(["/users/{id}", "/users/[id]/posts"])
        match = router("/users/x/posts")
        assert match is not None
        assert match.route_id == "/users/[id]/posts"
        assert match.route_params == {"id": "x"}
