"""
webauth_proxy.proxy

Reverse proxy package.

Responsibilities:
- Rewrite inbound requests for the backend (director).
- Assert the peer's identity on the login boundary (header injector).
- Serve the proxy and the HTTPS redirect as ASGI apps.
"""

# Package marker.
