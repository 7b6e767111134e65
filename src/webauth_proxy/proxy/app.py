"""
webauth_proxy.proxy.app

ASGI reverse proxy in front of the backend application.

Responsibilities:
- Turn every inbound request into a ProxyRequest and run the director on it.
- Stream the request to the backend and the response back, unmodified.
- Map backend transport failures to 502 Bad Gateway.
"""

from __future__ import annotations

import httpx
from fastapi import FastAPI, Request
from starlette.background import BackgroundTask
from starlette.responses import Response, StreamingResponse
from starlette.status import HTTP_502_BAD_GATEWAY

from webauth_proxy.observability.logging import get_logger
from webauth_proxy.observability.logknob import LogKnob
from webauth_proxy.observability.middleware import RequestContextMiddleware, peer_address
from webauth_proxy.proxy.director import Director, ProxyRequest

log = get_logger(__name__)

# RFC 9110 hop-by-hop headers; never forwarded in either direction.
HOP_BY_HOP = frozenset(
    {
        "connection",
        "keep-alive",
        "proxy-authenticate",
        "proxy-authorization",
        "proxy-connection",
        "te",
        "trailer",
        "transfer-encoding",
        "upgrade",
    }
)

# Shared with the redirect listener so both ports answer the same methods.
PROXY_METHODS = ["GET", "HEAD", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"]


def strip_hop_by_hop(raw: list[tuple[bytes, bytes]]) -> list[tuple[bytes, bytes]]:
    drop = set(HOP_BY_HOP)
    # Headers named in Connection are hop-by-hop for this message too.
    for name, value in raw:
        if name.lower() == b"connection":
            drop.update(t.strip().lower() for t in value.decode("latin-1").split(",") if t.strip())
    return [(k, v) for k, v in raw if k.decode("latin-1").lower() not in drop]


def _outbound_request(request: Request) -> ProxyRequest:
    headers = httpx.Headers(strip_hop_by_hop(list(request.headers.raw)))

    client_ip = request.client.host if request.client else ""
    if client_ip:
        prior = headers.get("x-forwarded-for")
        headers["X-Forwarded-For"] = f"{prior}, {client_ip}" if prior else client_ip

    raw_path: bytes = request.scope.get("raw_path") or request.url.path.encode("utf-8")
    raw_path = raw_path.split(b"?", 1)[0]
    query: bytes = request.scope.get("query_string", b"")
    url = httpx.URL(str(request.base_url)).copy_with(
        raw_path=raw_path + (b"?" + query if query else b"")
    )

    has_body = "content-length" in request.headers or "transfer-encoding" in request.headers
    return ProxyRequest(
        method=request.method,
        url=url,
        headers=headers,
        peer_address=peer_address(request),
        content=request.stream() if has_body else None,
        inbound_path=request.url.path,
    )


def create_proxy_app(
    *,
    director: Director,
    http: httpx.AsyncClient,
    knob: LogKnob | None = None,
) -> FastAPI:
    app = FastAPI(docs_url=None, redoc_url=None, openapi_url=None)
    app.add_middleware(RequestContextMiddleware)

    @app.api_route("/{path:path}", methods=PROXY_METHODS, include_in_schema=False)
    async def forward(request: Request) -> Response:
        out = _outbound_request(request)
        await director(out)

        if knob is not None:
            knob.do(log.info, "proxy.forward", method=out.method, url=str(out.url))

        upstream_request = httpx.Request(
            out.method,
            out.url,
            headers=out.headers,
            content=out.content,
        )
        try:
            upstream = await http.send(upstream_request, stream=True)
        except httpx.TransportError as e:
            log.error("proxy.backend_error", url=str(out.url), error=str(e))
            return Response(status_code=HTTP_502_BAD_GATEWAY)

        response = StreamingResponse(
            upstream.aiter_raw(),
            status_code=upstream.status_code,
            background=BackgroundTask(upstream.aclose),
        )
        # Raw header list keeps repeated headers (Set-Cookie) intact.
        response.raw_headers = strip_hop_by_hop(list(upstream.headers.raw))
        return response

    return app


# --- Module Notes -----------------------------------------------------------
# The HTTP client is owned by the caller (see webauth_proxy.__main__) so tests can
# swap in an httpx.MockTransport backend.
