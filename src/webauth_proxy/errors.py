"""
webauth_proxy.errors

Exception taxonomy shared by every layer.

Responsibilities:
- Separate startup-fatal failures (config, bootstrap) from per-request ones (resolution).
- Keep overlay client failures distinguishable ("daemon unreachable" vs "no such peer").
"""

from __future__ import annotations


class WebauthProxyError(Exception):
    pass


class ConfigError(WebauthProxyError):
    """
    Invalid static configuration. Raised before any listener is opened.
    """


# --- Overlay client ----------------------------------------------------------


class OverlayError(WebauthProxyError):
    pass


class OverlayUnavailable(OverlayError):
    """
    The overlay daemon could not be reached or answered with a server error.
    """


class PeerNotFound(OverlayError):
    """
    The overlay daemon has no node matching the peer address.
    """


# --- Identity resolution (recovered per request) -----------------------------


class ResolutionError(WebauthProxyError):
    # Short machine-readable label used in log events.
    kind = "resolution_error"


class LookupFailed(ResolutionError):
    kind = "lookup_failed"


class TaggedPrincipal(ResolutionError):
    kind = "tagged_principal"


class UnidentifiedUser(ResolutionError):
    kind = "unidentified_user"


# --- Bootstrap (fatal) -------------------------------------------------------


class BootstrapError(WebauthProxyError):
    pass


class ListenerError(BootstrapError):
    pass


class ReadinessTimeout(BootstrapError):
    pass


class SecureNameUnavailable(BootstrapError):
    pass


# --- Module Notes -----------------------------------------------------------
# `__main__` treats every WebauthProxyError that escapes startup as fatal (exit 1).
# ResolutionError never escapes a request: the header injector logs and drops it.
