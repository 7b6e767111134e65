"""
webauth_proxy.identity.resolver

Identity resolution on top of the overlay whois lookup.

Responsibilities:
- Classify lookup failures into LookupFailed / TaggedPrincipal / UnidentifiedUser.
- Return a user Identity only for untagged nodes with a named user profile.
"""

from __future__ import annotations

from typing import Protocol

from webauth_proxy.errors import LookupFailed, OverlayError, TaggedPrincipal, UnidentifiedUser
from webauth_proxy.identity.models import Identity
from webauth_proxy.overlay.models import WhoIs


class WhoIsSource(Protocol):
    async def whois(self, peer_address: str) -> WhoIs: ...


class IdentityResolver:
    def __init__(self, source: WhoIsSource) -> None:
        self._source = source

    async def resolve(self, peer_address: str) -> Identity:
        # No retries and no cache: a peer may re-authenticate as someone else between requests.
        try:
            whois = await self._source.whois(peer_address)
        except OverlayError as e:
            raise LookupFailed(f"failed to identify remote host: {e}") from e

        # Tagged nodes are machines, not users.
        if whois.tags:
            raise TaggedPrincipal("tagged nodes are not users")

        profile = whois.user_profile
        if profile is None or not profile.login_name:
            raise UnidentifiedUser("failed to identify remote user")

        return Identity(
            login_name=profile.login_name,
            display_name=profile.display_name,
            is_tagged=False,
        )
