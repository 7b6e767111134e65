"""
tests.test_proxy_app

End-to-end behaviour of the ASGI proxy against a mocked backend.

Responsibilities:
- Drive the proxy app through httpx.ASGITransport (peer 127.0.0.1:123).
- Capture what the backend receives with httpx.MockTransport.
"""

from __future__ import annotations

import httpx
import pytest
from conftest import FakeWhoIsSource, user_whois

from webauth_proxy.errors import OverlayUnavailable
from webauth_proxy.identity.resolver import IdentityResolver
from webauth_proxy.observability.logknob import LogKnob
from webauth_proxy.proxy.app import create_proxy_app
from webauth_proxy.proxy.director import ProxyDirector, single_host_director
from webauth_proxy.proxy.injector import HeaderInjector

ASGI_PEER = "127.0.0.1:123"
BACKEND = httpx.URL("http://127.0.0.1:3000")


class RecordingBackend:
    def __init__(self, response: httpx.Response | None = None) -> None:
        self.requests: list[httpx.Request] = []
        self.bodies: list[bytes] = []
        self._response = response

    async def __call__(self, request: httpx.Request) -> httpx.Response:
        self.bodies.append(await request.aread())
        self.requests.append(request)
        if self._response is not None:
            return self._response
        return httpx.Response(200, text="backend ok")


def _proxy(
    source: FakeWhoIsSource, backend, peer: tuple[str, int] = ("127.0.0.1", 123), **kw
) -> tuple[httpx.AsyncClient, httpx.AsyncClient]:
    director = ProxyDirector(
        single_host_director(BACKEND),
        HeaderInjector(IdentityResolver(source), login_path="/login"),
    )
    http = httpx.AsyncClient(transport=httpx.MockTransport(backend))
    app = create_proxy_app(director=director, http=http, **kw)
    transport = httpx.ASGITransport(app=app, client=peer)
    client = httpx.AsyncClient(transport=transport, base_url="http://svc")
    return client, http


@pytest.mark.asyncio
async def test_login_request_carries_identity_headers() -> None:
    backend = RecordingBackend()
    client, http = _proxy(FakeWhoIsSource({ASGI_PEER: user_whois("a@b.com", "Ann")}), backend)
    async with client, http:
        r = await client.get("/login", headers={"X-Webauth-User": "mallory"})

    assert r.status_code == 200
    assert r.text == "backend ok"
    (sent,) = backend.requests
    assert str(sent.url) == "http://127.0.0.1:3000/login"
    assert sent.headers.get_list("x-webauth-user") == ["a@b.com"]
    assert sent.headers["x-webauth-name"] == "Ann"
    assert sent.headers["host"] == "svc"
    assert sent.headers["x-forwarded-for"] == "127.0.0.1"


@pytest.mark.asyncio
async def test_ipv6_peer_is_looked_up_with_bracketed_address() -> None:
    backend = RecordingBackend()
    source = FakeWhoIsSource({"[fd7a:115c:a1e0::1]:4000": user_whois("a@b.com", "Ann")})
    client, http = _proxy(source, backend, peer=("fd7a:115c:a1e0::1", 4000))
    async with client, http:
        r = await client.get("/login")

    assert r.status_code == 200
    assert source.calls == ["[fd7a:115c:a1e0::1]:4000"]
    assert backend.requests[0].headers["x-webauth-user"] == "a@b.com"


@pytest.mark.asyncio
async def test_other_paths_pass_through_without_identity() -> None:
    backend = RecordingBackend()
    source = FakeWhoIsSource({ASGI_PEER: user_whois("a@b.com", "Ann")})
    client, http = _proxy(source, backend)
    async with client, http:
        r = await client.get("/dashboard", params={"orgId": "1"})

    assert r.status_code == 200
    (sent,) = backend.requests
    assert str(sent.url) == "http://127.0.0.1:3000/dashboard?orgId=1"
    assert "x-webauth-user" not in sent.headers
    assert "x-webauth-name" not in sent.headers
    assert source.calls == []


@pytest.mark.asyncio
async def test_login_is_forwarded_without_identity_when_resolution_fails() -> None:
    backend = RecordingBackend()
    source = FakeWhoIsSource({ASGI_PEER: OverlayUnavailable("daemon down")})
    client, http = _proxy(source, backend)
    async with client, http:
        r = await client.get("/login")

    assert r.status_code == 200
    (sent,) = backend.requests
    assert "x-webauth-user" not in sent.headers
    assert "x-webauth-name" not in sent.headers


@pytest.mark.asyncio
async def test_request_body_and_method_are_forwarded() -> None:
    backend = RecordingBackend()
    client, http = _proxy(FakeWhoIsSource({ASGI_PEER: user_whois("a@b.com", "Ann")}), backend)
    async with client, http:
        r = await client.post("/login", content=b'{"user":"x"}', headers={"Content-Type": "application/json"})

    assert r.status_code == 200
    (sent,) = backend.requests
    assert sent.method == "POST"
    assert backend.bodies == [b'{"user":"x"}']
    assert sent.headers["content-type"] == "application/json"


@pytest.mark.asyncio
async def test_response_is_streamed_back_unmodified() -> None:
    upstream = httpx.Response(
        302,
        headers=[
            ("Location", "/"),
            ("Set-Cookie", "grafana_session=abc; Path=/"),
            ("Set-Cookie", "redirect_to=; Path=/"),
            ("Connection", "close"),
        ],
        content=b"",
    )
    client, http = _proxy(
        FakeWhoIsSource({ASGI_PEER: user_whois("a@b.com", "Ann")}),
        RecordingBackend(upstream),
    )
    async with client, http:
        r = await client.get("/login")

    assert r.status_code == 302
    assert r.headers["location"] == "/"
    assert r.headers.get_list("set-cookie") == [
        "grafana_session=abc; Path=/",
        "redirect_to=; Path=/",
    ]
    assert "connection" not in r.headers
    assert "x-request-id" in r.headers


@pytest.mark.asyncio
async def test_hop_by_hop_request_headers_are_dropped() -> None:
    backend = RecordingBackend()
    client, http = _proxy(FakeWhoIsSource(), backend)
    async with client, http:
        await client.get(
            "/api/health",
            headers={"Connection": "keep-alive, X-Private", "X-Private": "1", "Upgrade": "h2c"},
        )

    (sent,) = backend.requests
    assert "upgrade" not in sent.headers
    assert "x-private" not in sent.headers


@pytest.mark.asyncio
async def test_backend_unreachable_is_bad_gateway() -> None:
    def refuse(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    client, http = _proxy(FakeWhoIsSource(), refuse)
    async with client, http:
        r = await client.get("/dashboard")

    assert r.status_code == 502


@pytest.mark.asyncio
async def test_verbose_knob_does_not_change_forwarding() -> None:
    knob = LogKnob(capability="webauth-proxy-verbose")
    knob.set(True)
    backend = RecordingBackend()
    client, http = _proxy(FakeWhoIsSource(), backend, knob=knob)
    async with client, http:
        r = await client.get("/dashboard")

    assert r.status_code == 200
    assert len(backend.requests) == 1
