"""
webauth_proxy.identity

Peer identity package.

Responsibilities:
- Map an overlay peer address to a verified human user identity.
"""

# Package marker.
