"""
tests.conftest

Shared fakes for the overlay network boundary.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

import pytest
import structlog

from webauth_proxy.errors import ListenerError, OverlayUnavailable
from webauth_proxy.overlay.models import OverlayStatus, UserProfile, WhoIs


class FakeListener:
    def __init__(self, address: str) -> None:
        self.address = address
        self.sockets = ()

    @property
    def addresses(self) -> list[str]:
        return [f"100.64.0.1:{self.address.rpartition(':')[2]}"]

    def close(self) -> None:
        pass


@pytest.fixture(autouse=True)
def _restore_logging():
    root = logging.getLogger()
    level = root.level
    yield
    # Drop the JSON handler a test installed via configure_logging.
    for h in root.handlers[:]:
        if isinstance(h.formatter, structlog.stdlib.ProcessorFormatter):
            root.removeHandler(h)
    root.setLevel(level)
    structlog.reset_defaults()


class FakeWhoIsSource:
    """
    Maps peer addresses to whois answers (or exceptions to raise).
    """

    def __init__(self, answers: dict[str, WhoIs | Exception] | None = None) -> None:
        self.answers = dict(answers or {})
        self.calls: list[str] = []

    async def whois(self, peer_address: str) -> WhoIs:
        self.calls.append(peer_address)
        answer = self.answers.get(peer_address, OverlayUnavailable("daemon unreachable"))
        if isinstance(answer, Exception):
            raise answer
        return answer


@dataclass
class FakeOverlay:
    states: list[str] = field(default_factory=lambda: ["Running"])
    secure_name: str | None = "svc.tail1234.ts.net"
    capabilities: tuple[str, ...] = ()
    fail_listen: set[str] = field(default_factory=set)
    status_error: Exception | None = None
    events: list[tuple[str, object]] = field(default_factory=list)

    async def status(self) -> OverlayStatus:
        if self.status_error is not None:
            raise self.status_error
        n = sum(1 for kind, _ in self.events if kind == "status")
        state = self.states[min(n, len(self.states) - 1)]
        self.events.append(("status", state))
        return OverlayStatus(backend_state=state, capabilities=self.capabilities)

    async def expand_secure_name(self, hostname: str) -> str | None:
        self.events.append(("expand", hostname))
        return self.secure_name

    async def listen(self, network: str, address: str) -> FakeListener:
        if address in self.fail_listen:
            raise ListenerError(f"listen {network} {address}: address already in use")
        self.events.append(("listen", address))
        return FakeListener(address)

    @property
    def status_count(self) -> int:
        return sum(1 for kind, _ in self.events if kind == "status")


def user_whois(login: str, name: str, *tags: str) -> WhoIs:
    return WhoIs(user_profile=UserProfile(login_name=login, display_name=name), tags=tags)


# --- Module Notes -----------------------------------------------------------
# httpx.ASGITransport reports the client as 127.0.0.1:123, so tests key whois answers
# on that peer address.
