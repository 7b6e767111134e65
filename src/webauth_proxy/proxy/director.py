"""
webauth_proxy.proxy.director

Outbound request rewriting.

Responsibilities:
- Define the mutable outbound request handed between rewrite steps.
- Provide the single-host backend rewrite (scheme/host/path/query).
- Compose it with the identity header injector, in that order.
"""

from __future__ import annotations

from collections.abc import AsyncIterator, Awaitable, Callable
from dataclasses import dataclass
from typing import TYPE_CHECKING

import httpx

if TYPE_CHECKING:
    from webauth_proxy.proxy.injector import HeaderInjector


@dataclass(slots=True)
class ProxyRequest:
    method: str
    url: httpx.URL
    headers: httpx.Headers
    # Connection-level "ip:port" of the overlay peer.
    peer_address: str
    content: AsyncIterator[bytes] | bytes | None = None
    # Path as received, before any backend rewriting.
    inbound_path: str = ""

    def __post_init__(self) -> None:
        if not self.inbound_path:
            self.inbound_path = self.url.path


Director = Callable[[ProxyRequest], Awaitable[None]]


def _join_paths(a: str, b: str) -> str:
    a_slash = a.endswith("/")
    b_slash = b.startswith("/")
    if a_slash and b_slash:
        return a + b[1:]
    if not a_slash and not b_slash:
        return a + "/" + b
    return a + b


def single_host_director(target: httpx.URL) -> Director:
    """
    Route every request to `target`, joining its base path with the request path.

    The inbound Host header is kept; only the URL changes.
    """

    target_path = target.raw_path.split(b"?", 1)[0].decode("ascii")
    target_query = target.query.decode("ascii")

    async def direct(request: ProxyRequest) -> None:
        raw = request.url.raw_path.decode("ascii")
        path, _, query = raw.partition("?")
        if target_path:
            path = _join_paths(target_path, path)
        if target_query and query:
            query = f"{target_query}&{query}"
        else:
            query = target_query or query

        raw_path = path + (f"?{query}" if query else "")
        request.url = request.url.copy_with(
            scheme=target.scheme,
            host=target.host,
            port=target.port,
            raw_path=raw_path.encode("ascii"),
        )

    return direct


class ProxyDirector:
    """
    Runs the backend rewrite first and the header injector second, so generic
    rewriting can never clobber the identity headers.
    """

    def __init__(self, base: Director, injector: HeaderInjector) -> None:
        self._base = base
        self._injector = injector

    async def __call__(self, request: ProxyRequest) -> None:
        await self._base(request)
        await self._injector.inject(request)
