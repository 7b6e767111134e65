"""
webauth_proxy.serve

Blocking accept/serve loop for one already-bound overlay listener.

Responsibilities:
- Run an ASGI app under uvicorn on the sockets of an overlay listener.
- Attach the on-demand certificate SSLContext for the secure listener.
"""

from __future__ import annotations

import ssl

import uvicorn
from starlette.types import ASGIApp

from webauth_proxy.overlay.client import Listener


async def serve(app: ASGIApp, listener: Listener, ssl_context: ssl.SSLContext | None = None) -> None:
    config = uvicorn.Config(
        app,
        log_config=None,  # structlog
        lifespan="off",
        # The peer address must come from the connection, never from X-Forwarded-*.
        proxy_headers=False,
        server_header=False,
    )
    # uvicorn only builds SSL contexts from files; load first, then attach ours.
    config.load()
    config.ssl = ssl_context

    server = uvicorn.Server(config)
    await server.serve(sockets=list(listener.sockets))


# --- Module Notes -----------------------------------------------------------
# Returns only when uvicorn stops (signal); listener failures propagate to the caller.
