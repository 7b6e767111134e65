"""
webauth_proxy.identity.models

Identity domain models.
"""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True, slots=True)
class Identity:
    """
    Verified user behind an overlay connection. Resolved per request, never cached.
    """

    login_name: str
    display_name: str
    is_tagged: bool = False
