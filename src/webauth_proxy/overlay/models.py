"""
webauth_proxy.overlay.models

Typed views over the overlay daemon's local API responses.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from typing import Any


class ReadinessState(enum.StrEnum):
    not_connected = "NOT_CONNECTED"
    connecting = "CONNECTING"
    running = "RUNNING"
    error = "ERROR"


# Daemon backend states, grouped by what they mean for serving traffic.
_BACKEND_STATES: dict[str, ReadinessState] = {
    "NoState": ReadinessState.not_connected,
    "NeedsLogin": ReadinessState.not_connected,
    "NeedsMachineAuth": ReadinessState.not_connected,
    "Stopped": ReadinessState.not_connected,
    "Starting": ReadinessState.connecting,
    "Running": ReadinessState.running,
}


@dataclass(frozen=True, slots=True)
class OverlayStatus:
    backend_state: str
    cert_domains: tuple[str, ...] = ()
    capabilities: tuple[str, ...] = ()
    # The node's own overlay IPs (IPv4 and IPv6).
    addresses: tuple[str, ...] = ()

    @property
    def readiness(self) -> ReadinessState:
        return _BACKEND_STATES.get(self.backend_state, ReadinessState.error)

    @classmethod
    def from_json(cls, data: dict[str, Any]) -> OverlayStatus:
        self_node = data.get("Self") or {}
        return cls(
            backend_state=str(data.get("BackendState", "")),
            cert_domains=tuple(data.get("CertDomains") or ()),
            capabilities=tuple(self_node.get("Capabilities") or ()),
            addresses=tuple(data.get("TailscaleIPs") or self_node.get("TailscaleIPs") or ()),
        )


@dataclass(frozen=True, slots=True)
class UserProfile:
    login_name: str
    display_name: str


@dataclass(frozen=True, slots=True)
class WhoIs:
    user_profile: UserProfile | None
    tags: tuple[str, ...] = field(default=())

    @classmethod
    def from_json(cls, data: dict[str, Any]) -> WhoIs:
        node = data.get("Node") or {}
        profile = data.get("UserProfile")
        user = None
        if profile:
            user = UserProfile(
                login_name=str(profile.get("LoginName", "")),
                display_name=str(profile.get("DisplayName", "")),
            )
        return cls(user_profile=user, tags=tuple(node.get("Tags") or ()))


def join_host_port(host: str, port: int | str) -> str:
    # IPv6 literals are bracketed, as the daemon's whois expects.
    if ":" in host:
        return f"[{host}]:{port}"
    return f"{host}:{port}"


def split_host_port(address: str) -> tuple[str, int]:
    host, sep, port = address.rpartition(":")
    if not sep:
        raise ValueError(f"missing port in address {address!r}")
    return host.removeprefix("[").removesuffix("]"), int(port)
