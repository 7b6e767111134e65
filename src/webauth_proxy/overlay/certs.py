"""
webauth_proxy.overlay.certs

TLS certificates for the secure listener, served from a cache filled off the event loop.

Responsibilities:
- Build a server SSLContext whose SNI hook picks a cached certificate per requested name.
- Load certificate pairs from the overlay daemon in worker threads (`prefetch`).
- Refresh stale or missing names in the background; the SNI hook never does I/O.
"""

from __future__ import annotations

import asyncio
import os
import ssl
import threading
import time
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from pathlib import Path

from webauth_proxy.errors import OverlayError
from webauth_proxy.observability.logging import get_logger

log = get_logger(__name__)

FetchPair = Callable[[str], tuple[bytes, bytes]]


@dataclass(frozen=True, slots=True)
class _CachedContext:
    context: ssl.SSLContext
    loaded_at: float


class CertificateProvider:
    def __init__(
        self,
        *,
        fetch_pair: FetchPair,
        cache_dir: Path,
        refresh_after_s: float = 12 * 60 * 60,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._fetch_pair = fetch_pair
        self._cache_dir = cache_dir
        self._refresh_after_s = refresh_after_s
        self._clock = clock
        self._lock = threading.Lock()
        self._contexts: dict[str, _CachedContext] = {}
        self._refreshing: set[str] = set()
        self._tasks: set[asyncio.Task[None]] = set()

    def server_context(self) -> ssl.SSLContext:
        # The base context carries no certificate; the SNI hook swaps one in per handshake.
        ctx = ssl.SSLContext(ssl.PROTOCOL_TLS_SERVER)
        ctx.minimum_version = ssl.TLSVersion.TLSv1_2
        ctx.sni_callback = self._on_sni
        return ctx

    def cached(self, server_name: str) -> ssl.SSLContext | None:
        with self._lock:
            entry = self._contexts.get(server_name.lower())
        return entry.context if entry is not None else None

    def load(self, server_name: str) -> ssl.SSLContext:
        """
        Fetch, install and cache the certificate for `server_name`.

        Blocking (local API call + file I/O); run it in a worker thread.
        """

        name = server_name.lower()
        cert_pem, key_pem = self._fetch_pair(name)
        ctx = self._build(name, cert_pem, key_pem)
        with self._lock:
            self._contexts[name] = _CachedContext(context=ctx, loaded_at=self._clock())
        log.info("tls.certificate_loaded", server_name=name)
        return ctx

    async def prefetch(self, names: Iterable[str]) -> None:
        # Failures leave the name uncached; the SNI hook retries it in the background.
        for name in names:
            try:
                await asyncio.to_thread(self.load, name)
            except (OverlayError, OSError, ssl.SSLError) as e:
                log.warning("tls.certificate_unavailable", server_name=name, error=str(e))

    def _build(self, name: str, cert_pem: bytes, key_pem: bytes) -> ssl.SSLContext:
        # load_cert_chain only reads from files.
        self._cache_dir.mkdir(parents=True, exist_ok=True, mode=0o700)
        cert_path = self._cache_dir / f"{name}.crt"
        key_path = self._cache_dir / f"{name}.key"
        cert_path.write_bytes(cert_pem)
        key_path.touch(mode=0o600, exist_ok=True)
        # touch() keeps the mode of an existing file.
        os.chmod(key_path, 0o600)
        key_path.write_bytes(key_pem)

        ctx = ssl.SSLContext(ssl.PROTOCOL_TLS_SERVER)
        ctx.minimum_version = ssl.TLSVersion.TLSv1_2
        ctx.load_cert_chain(certfile=str(cert_path), keyfile=str(key_path))
        return ctx

    def _schedule_refresh(self, name: str) -> None:
        if name in self._refreshing:
            return
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            return
        self._refreshing.add(name)
        task = loop.create_task(self._refresh(name))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _refresh(self, name: str) -> None:
        try:
            await self.prefetch([name])
        finally:
            self._refreshing.discard(name)

    def _on_sni(self, sock, server_name: str | None, _: ssl.SSLContext) -> int | None:
        # Runs inside the handshake on the event loop thread: cache reads only.
        if not server_name:
            log.warning("tls.handshake_rejected", reason="missing SNI server name")
            return ssl.ALERT_DESCRIPTION_HANDSHAKE_FAILURE

        name = server_name.lower()
        with self._lock:
            entry = self._contexts.get(name)
        if entry is None:
            log.warning("tls.certificate_not_ready", server_name=name)
            self._schedule_refresh(name)
            return ssl.ALERT_DESCRIPTION_INTERNAL_ERROR

        if self._clock() - entry.loaded_at >= self._refresh_after_s:
            # Keep serving the old certificate until the new one lands.
            self._schedule_refresh(name)
        sock.context = entry.context
        return None


# --- Module Notes -----------------------------------------------------------
# The bootstrapper prefetches the node's HTTPS name once the overlay network is
# running; later renewals go through the stale-entry refresh above.
