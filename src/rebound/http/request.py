"""Immutable HTTP request.

Frozen metadata plus a fully buffered body. The request is honest about
what it is: received data that doesn't change. Per-request mutable state
lives on ``RequestContext``, never on the request itself.
"""

from __future__ import annotations

import json as json_module
from collections.abc import Mapping
from dataclasses import dataclass, replace
from typing import Any
from urllib.parse import urlsplit

from rebound._internal.asgi import Scope
from rebound.http.fields import Headers, QueryParams

# A route parameter binds one segment (str) or a "rest of path" wildcard (list)
type RouteParamValue = str | list[str]
type RouteParams = Mapping[str, RouteParamValue]


@dataclass(frozen=True, slots=True)
class Request:
    """An immutable HTTP request.

    ``route_params`` is ``None`` for a request that arrived straight from
    the front door. When a parent router hands the request to a mounted
    child bundle it carries the *parent's* resolved parameters, which is
    what automatic prefix removal looks at.
    """

    method: str
    url: str
    headers: Headers
    body: bytes = b""
    http_version: str = "1.1"
    client: tuple[str, int] | None = None
    route_params: RouteParams | None = None

    # -- Computed properties --

    @property
    def path(self) -> str:
        """The URL pathname."""
        return urlsplit(self.url).path or "/"

    @property
    def query(self) -> QueryParams:
        """Parsed query string."""
        return QueryParams.parse(urlsplit(self.url).query)

    @property
    def content_type(self) -> str | None:
        """The Content-Type header value."""
        return self.headers.get("content-type")

    # -- Body access --

    def text(self) -> str:
        """The body decoded as UTF-8."""
        return self.body.decode("utf-8")

    def json(self) -> Any:
        """The body parsed as JSON."""
        return json_module.loads(self.body)

    # -- Derived requests --

    def with_route_params(self, route_params: RouteParams) -> Request:
        """Return a copy carrying *route_params* as the parent's parameters.

        Used when a route handler forwards the request to a mounted bundle.
        """
        return replace(self, route_params=dict(route_params))

    # -- Factories --

    @classmethod
    def build(
        cls,
        url: str,
        *,
        method: str = "GET",
        headers: Mapping[str, str] | None = None,
        body: bytes | str = b"",
        route_params: RouteParams | None = None,
    ) -> Request:
        """Create a request from plain values (tests, mounted bundles)."""
        return cls(
            method=method.upper(),
            url=url,
            headers=Headers.from_mapping(headers),
            body=body.encode("utf-8") if isinstance(body, str) else body,
            route_params=route_params,
        )

    @classmethod
    def from_asgi(cls, scope: Scope, body: bytes, *, default_origin: str) -> Request:
        """Create a Request from an ASGI scope and an already-read body."""
        headers = Headers.from_asgi(scope.get("headers", ()))
        host = headers.get("host")
        if host:
            origin = f"{scope.get('scheme', 'http')}://{host}"
        else:
            origin = default_origin.rstrip("/")
        url = origin + scope.get("root_path", "") + scope["path"]
        query_string = scope.get("query_string", b"")
        if query_string:
            url = f"{url}?{query_string.decode('latin-1')}"
        client = scope.get("client")
        return cls(
            method=scope["method"],
            url=url,
            headers=headers,
            body=body,
            http_version=scope.get("http_version", "1.1"),
            client=tuple(client) if client else None,
        )
