"""
webauth_proxy.proxy.injector

Identity header injection at the backend's login boundary.

Responsibilities:
- Resolve the peer identity for login requests only.
- Overwrite the trusted auth-proxy headers on success; leave headers alone on failure.
"""

from __future__ import annotations

from webauth_proxy.errors import ResolutionError
from webauth_proxy.identity.resolver import IdentityResolver
from webauth_proxy.observability.logging import get_logger
from webauth_proxy.proxy.director import ProxyRequest

log = get_logger(__name__)

USER_HEADER = "X-Webauth-User"
NAME_HEADER = "X-Webauth-Name"


class HeaderInjector:
    def __init__(self, resolver: IdentityResolver, *, login_path: str = "/login") -> None:
        self._resolver = resolver
        self._login_path = login_path

    async def inject(self, request: ProxyRequest) -> None:
        # Other paths are authenticated by the backend's own session cookie.
        if request.inbound_path != self._login_path:
            return

        try:
            identity = await self._resolver.resolve(request.peer_address)
        except ResolutionError as e:
            # Fail open: forward without asserted identity; the backend rejects it.
            log.warning(
                "identity.resolution_failed",
                kind=e.kind,
                peer=request.peer_address,
                error=str(e),
            )
            return

        # Assignment replaces any client-supplied values.
        request.headers[USER_HEADER] = identity.login_name
        request.headers[NAME_HEADER] = identity.display_name
