"""Compiled router with trie-based path matching.

Route ids are registered while a bundle is assembled and compiled into an
immutable lookup structure. The compiled router is the default route
matcher: ``router(pathname)`` returns a ``RouteMatch`` or ``None``.
"""

import re
from collections.abc import Iterable
from dataclasses import dataclass

from rebound.errors import ConfigurationError
from rebound.http.request import RouteParamValue
from rebound.routing.params import CONVERTERS, WILDCARD
from rebound.routing.route import PathSegment, RouteMatch


def parse_path(path: str) -> list[PathSegment]:
    """Parse a route path string into segments.

    Both brace and file-route bracket spellings are accepted::

        "/users"             -> [PathSegment("users")]
        "/users/{id}"        -> [..., PathSegment("{id}", is_param=True, param_name="id")]
        "/users/[id]"        -> same as "/users/{id}"
        "/users/{id:int}"    -> [..., PathSegment("{id:int}", is_param=True, param_type="int")]
        "/files/{rest:path}" -> [..., PathSegment("{rest:path}", is_param=True, param_type="path")]
        "/files/[...rest]"   -> same as "/files/{rest:path}"
    """
    segments: list[PathSegment] = []
    for part in path.strip("/").split("/"):
        if not part:
            continue
        if part.startswith("<") and part.endswith(">"):
            msg = (
                f"Route path {path!r} uses <param> syntax. "
                "Use {param} (or [param]) for path parameters."
            )
            raise ConfigurationError(msg)
        if part.startswith("{") and part.endswith("}"):
            inner = part[1:-1]
            if ":" in inner:
                param_name, param_type = inner.split(":", 1)
            else:
                param_name = inner
                param_type = "str"
        elif part.startswith("[") and part.endswith("]"):
            inner = part[1:-1]
            if inner.startswith("..."):
                param_name, param_type = inner[3:], WILDCARD
            else:
                param_name, param_type = inner, "str"
        else:
            segments.append(PathSegment(value=part))
            continue

        if param_type != WILDCARD and param_type not in CONVERTERS:
            msg = f"Unknown converter {param_type!r} in route path {path!r}"
            raise ConfigurationError(msg)
        segments.append(
            PathSegment(
                value=part,
                is_param=True,
                param_name=param_name,
                param_type=param_type,
            )
        )
    return segments


class _TrieNode:
    """A node in the route trie. Mutable during compilation only."""

    __slots__ = ("children", "param_child", "route_id", "wildcard")

    def __init__(self) -> None:
        # Static segment children: "users" -> node
        self.children: dict[str, _TrieNode] = {}
        # Single parameter child (only one param pattern per level)
        self.param_child: _ParamEdge | None = None
        # Wildcard route consuming the rest of the path
        self.wildcard: _WildcardEdge | None = None
        # Route id terminating at this node
        self.route_id: str | None = None


@dataclass(slots=True)
class _ParamEdge:
    """A parameter edge in the trie."""

    param_name: str
    param_type: str
    regex: re.Pattern[str]
    node: _TrieNode


@dataclass(slots=True)
class _WildcardEdge:
    """A wildcard edge — consumes the remaining segments."""

    param_name: str
    route_id: str


class Router:
    """Compiled router with trie-based path matching.

    Usage::

        router = Router(["/health", "/users/{user_id}", "/files/{rest:path}"])
        match = router("/users/42")
        # RouteMatch(route_id="/users/{user_id}", route_params={"user_id": "42"})
    """

    __slots__ = ("_compiled", "_root", "_route_ids")

    def __init__(self, route_ids: Iterable[str] = ()) -> None:
        self._root = _TrieNode()
        self._compiled = False
        self._route_ids: list[str] = []
        for route_id in route_ids:
            self.add(route_id)
        if self._route_ids:
            self.compile()

    def add(self, route_id: str) -> None:
        """Add a route id. Must be called before compile()."""
        if self._compiled:
            msg = "Cannot add routes after compilation."
            raise RuntimeError(msg)

        node = self._root
        for seg in parse_path(route_id):
            if seg.is_param and seg.param_type == WILDCARD:
                # Wildcard: consumes rest of path, must be last segment
                if node.wildcard is not None:
                    msg = f"Route {route_id!r} conflicts with {node.wildcard.route_id!r}"
                    raise ConfigurationError(msg)
                node.wildcard = _WildcardEdge(
                    param_name=seg.param_name or "path",
                    route_id=route_id,
                )
                self._route_ids.append(route_id)
                return

            if seg.is_param:
                if node.param_child is None:
                    node.param_child = _ParamEdge(
                        param_name=seg.param_name or "",
                        param_type=seg.param_type,
                        regex=re.compile(f"^{CONVERTERS[seg.param_type]}$"),
                        node=_TrieNode(),
                    )
                elif (node.param_child.param_name, node.param_child.param_type) != (
                    seg.param_name or "",
                    seg.param_type,
                ):
                    # One parameter edge per trie level
                    msg = (
                        f"Route {route_id!r} declares {seg.value!r} where another route "
                        f"declares {{{node.param_child.param_name}:{node.param_child.param_type}}}"
                    )
                    raise ConfigurationError(msg)
                node = node.param_child.node
            else:
                node = node.children.setdefault(seg.value, _TrieNode())

        if node.route_id is not None:
            msg = f"Route {route_id!r} conflicts with {node.route_id!r}"
            raise ConfigurationError(msg)
        node.route_id = route_id
        self._route_ids.append(route_id)

    @property
    def route_ids(self) -> list[str]:
        """All registered route ids, in registration order."""
        return list(self._route_ids)

    def compile(self) -> None:
        """Freeze the router. No more routes can be added."""
        self._compiled = True

    def match(self, path: str) -> RouteMatch | None:
        """Match a pathname against compiled routes.

        Static segments win over parameters, parameters over wildcards.
        Returns ``None`` when nothing matches.
        """
        parts = [p for p in path.strip("/").split("/") if p]
        return self._match_node(self._root, parts, 0, {})

    __call__ = match

    def _match_node(
        self,
        node: _TrieNode,
        parts: list[str],
        index: int,
        params: dict[str, RouteParamValue],
    ) -> RouteMatch | None:
        """Recursively match path parts against the trie."""
        # All parts consumed
        if index == len(parts):
            if node.route_id is not None:
                return RouteMatch(route_id=node.route_id, route_params=params)
            return None

        part = parts[index]

        # 1. Static child (exact match)
        if part in node.children:
            result = self._match_node(node.children[part], parts, index + 1, params)
            if result is not None:
                return result

        # 2. Parameter child
        if node.param_child is not None:
            edge = node.param_child
            if edge.regex.match(part):
                new_params = {**params, edge.param_name: part}
                result = self._match_node(edge.node, parts, index + 1, new_params)
                if result is not None:
                    return result

        # 3. Wildcard
        if node.wildcard is not None:
            new_params = {**params, node.wildcard.param_name: parts[index:]}
            return RouteMatch(route_id=node.wildcard.route_id, route_params=new_params)

        return None
