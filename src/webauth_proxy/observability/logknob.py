"""
webauth_proxy.observability.logknob

Verbose logging that can be switched on from three independent sources.

Responsibilities:
- Manual toggle (set at runtime, e.g. from an admin action).
- Environment switch, re-read on every check.
- Overlay node capability, refreshed from the node's capability list.

Logging happens when any one of the three is on.
"""

from __future__ import annotations

import os
import threading
from collections.abc import Callable, Iterable
from typing import Any

_TRUE_VALUES = frozenset({"1", "t", "true"})


def _env_bool(name: str) -> bool:
    return os.environ.get(name, "").strip().lower() in _TRUE_VALUES


class LogKnob:
    """
    Each source is an Event, so concurrent setters and readers need no extra locking.
    """

    def __init__(self, *, env: str = "", capability: str = "") -> None:
        if not env and not capability:
            raise ValueError("must provide either an environment variable or capability")
        self._env = env
        self._capability = capability
        self._manual = threading.Event()
        self._cap = threading.Event()

    def set(self, enabled: bool) -> None:
        # Clearing the manual source does not override the env or capability sources.
        if enabled:
            self._manual.set()
        else:
            self._manual.clear()

    def update_from_capabilities(self, capabilities: Iterable[str]) -> None:
        if not self._capability:
            return
        if self._capability in capabilities:
            self._cap.set()
        else:
            self._cap.clear()

    @property
    def enabled(self) -> bool:
        env_on = bool(self._env) and _env_bool(self._env)
        return self._manual.is_set() or env_on or self._cap.is_set()

    def do(self, log: Callable[..., Any], event: str, **kw: Any) -> None:
        if self.enabled:
            log(event, **kw)


# --- Module Notes -----------------------------------------------------------
# The proxy app gates its per-request "proxy.forward" lines behind one knob; the
# bootstrapper feeds it the capabilities reported by each overlay status poll.
