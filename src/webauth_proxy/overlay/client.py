"""
webauth_proxy.overlay.client

HTTP client boundary for the overlay daemon's local API.

Responsibilities:
- Poll node status (backend state, certificate domains, capabilities).
- Resolve a peer address to the user/node behind it (whois).
- Fetch TLS certificate pairs for the node's certificate domains.
- Open TCP listeners on the node's overlay addresses only.
"""

from __future__ import annotations

import re
import socket
from dataclasses import dataclass
from typing import Any

import httpx

from webauth_proxy.errors import ListenerError, OverlayUnavailable, PeerNotFound
from webauth_proxy.overlay.models import OverlayStatus, WhoIs, join_host_port, split_host_port
from webauth_proxy.settings import Settings

# The daemon rejects local API calls without this header (browser CSRF guard).
_LOCALAPI_HEADERS = {"Sec-Tailscale": "localapi"}

_PEM_BLOCK = re.compile(rb"-----BEGIN ([A-Z ]+)-----.*?-----END \1-----\s*", re.DOTALL)

# Issuing a certificate can mean a round trip to the CA; far beyond the default 5 s.
CERT_FETCH_TIMEOUT_S = 120.0


@dataclass(frozen=True, slots=True)
class Listener:
    """
    Sockets bound to every overlay address of the node for one port.
    """

    sockets: tuple[socket.socket, ...]

    @property
    def addresses(self) -> list[str]:
        return [join_host_port(*s.getsockname()[:2]) for s in self.sockets]

    def close(self) -> None:
        for s in self.sockets:
            s.close()


class OverlayClient:
    def __init__(
        self,
        *,
        http: httpx.AsyncClient,
        sync_http: httpx.Client | None = None,
        listen_host: str = "",
    ) -> None:
        self._http = http
        self._sync_http = sync_http
        self._listen_host = listen_host

    async def status(self) -> OverlayStatus:
        data = await self._get_json("/localapi/v0/status")
        return OverlayStatus.from_json(data)

    async def whois(self, peer_address: str) -> WhoIs:
        try:
            r = await self._http.get("/localapi/v0/whois", params={"addr": peer_address})
        except httpx.HTTPError as e:
            raise OverlayUnavailable(f"whois {peer_address}: {e}") from e
        if r.status_code == 404:
            raise PeerNotFound(f"no overlay node for {peer_address}")
        _raise_for_status(r)
        return WhoIs.from_json(r.json())

    async def expand_secure_name(self, hostname: str) -> str | None:
        # Certificate domains are FQDNs; pick the one whose first label is our hostname.
        st = await self.status()
        prefix = f"{hostname}."
        for domain in st.cert_domains:
            if domain.startswith(prefix):
                return domain
        return None

    def certificate_pair(self, domain: str) -> tuple[bytes, bytes]:
        """
        Return (cert_pem, key_pem) for `domain`.

        Blocking; the certificate provider runs it in a worker thread.
        """

        if self._sync_http is None:
            raise OverlayUnavailable("certificate fetch requires a synchronous local API client")
        try:
            r = self._sync_http.get(
                f"/localapi/v0/cert/{domain}",
                params={"type": "pair"},
                timeout=CERT_FETCH_TIMEOUT_S,
            )
        except httpx.HTTPError as e:
            raise OverlayUnavailable(f"cert {domain}: {e}") from e
        _raise_for_status(r)
        return split_pem_pair(r.content)

    async def listen(self, network: str, address: str) -> Listener:
        """
        Bind `address` ("host:port" or ":port") for TCP.

        Without a host, binds each of the node's overlay addresses (or the explicit
        `listen_host` override); never the wildcard address.
        """

        if network != "tcp":
            raise ListenerError(f"unsupported network {network!r}")

        sockets: list[socket.socket] = []
        try:
            host, port = split_host_port(address)
            hosts = [host] if host else await self._listen_hosts()
            for h in hosts:
                family = socket.AF_INET6 if ":" in h else socket.AF_INET
                sockets.append(socket.create_server((h, port), family=family))
        except (OSError, ValueError, OverlayUnavailable) as e:
            for s in sockets:
                s.close()
            raise ListenerError(f"listen {network} {address}: {e}") from e
        return Listener(sockets=tuple(sockets))

    async def _listen_hosts(self) -> list[str]:
        if self._listen_host:
            return [self._listen_host]
        addresses = list((await self.status()).addresses)
        if not addresses:
            raise OverlayUnavailable("overlay node has no addresses yet")
        return addresses

    async def aclose(self) -> None:
        await self._http.aclose()
        if self._sync_http is not None:
            self._sync_http.close()

    async def _get_json(self, path: str) -> dict[str, Any]:
        try:
            r = await self._http.get(path)
        except httpx.HTTPError as e:
            raise OverlayUnavailable(f"{path}: {e}") from e
        _raise_for_status(r)
        return r.json()


def _raise_for_status(r: httpx.Response) -> None:
    if r.is_success:
        return
    raise OverlayUnavailable(
        f"{r.request.method} {r.request.url.path}: {r.status_code} {r.text.strip()}"
    )


def split_pem_pair(blob: bytes) -> tuple[bytes, bytes]:
    # The daemon returns the key and the certificate chain concatenated in one body.
    cert = b""
    key = b""
    for m in _PEM_BLOCK.finditer(blob):
        if b"PRIVATE KEY" in m.group(1):
            key += m.group(0)
        else:
            cert += m.group(0)
    if not cert or not key:
        raise OverlayUnavailable("certificate response is missing a certificate or key")
    return cert, key


def create_overlay_client(settings: Settings) -> OverlayClient:
    if settings.localapi_socket:
        transport = httpx.AsyncHTTPTransport(uds=settings.localapi_socket)
        sync_transport = httpx.HTTPTransport(uds=settings.localapi_socket)
    else:
        transport = httpx.AsyncHTTPTransport()
        sync_transport = httpx.HTTPTransport()

    return OverlayClient(
        http=httpx.AsyncClient(
            base_url=settings.localapi_url,
            transport=transport,
            headers=_LOCALAPI_HEADERS,
        ),
        sync_http=httpx.Client(
            base_url=settings.localapi_url,
            transport=sync_transport,
            headers=_LOCALAPI_HEADERS,
        ),
        listen_host=settings.listen_host,
    )


# --- Module Notes -----------------------------------------------------------
# No retries here: whois failures are classified by the identity resolver and status
# failures are fatal to the bootstrapper. Callers decide.
