"""
webauth_proxy.bootstrap

Listener bootstrap sequence.

Responsibilities:
- Plaintext mode: open the HTTP port and serve the proxy.
- TLS mode: open the HTTPS port and serve the proxy right away; in parallel, wait for
  the overlay network to report Running, resolve the HTTPS name, load its certificate,
  then open the HTTP port and serve permanent redirects to it.
- Surface every startup failure as a BootstrapError.
"""

from __future__ import annotations

import asyncio
import ssl
from collections.abc import Awaitable, Callable
from typing import Protocol

from starlette.types import ASGIApp

from webauth_proxy.errors import (
    BootstrapError,
    OverlayError,
    ReadinessTimeout,
    SecureNameUnavailable,
)
from webauth_proxy.observability.logging import get_logger
from webauth_proxy.observability.logknob import LogKnob
from webauth_proxy.overlay.certs import CertificateProvider
from webauth_proxy.overlay.client import Listener
from webauth_proxy.overlay.models import OverlayStatus, ReadinessState
from webauth_proxy.proxy.redirect import create_redirect_app
from webauth_proxy.serve import serve as uvicorn_serve
from webauth_proxy.settings import Settings

log = get_logger(__name__)

READINESS_ATTEMPTS = 60
READINESS_INTERVAL_S = 1.0

ServeFn = Callable[[ASGIApp, Listener, ssl.SSLContext | None], Awaitable[None]]
SleepFn = Callable[[float], Awaitable[None]]


class OverlayNode(Protocol):
    async def status(self) -> OverlayStatus: ...

    async def expand_secure_name(self, hostname: str) -> str | None: ...

    async def listen(self, network: str, address: str) -> Listener: ...


async def wait_until_running(
    overlay: OverlayNode,
    *,
    sleep: SleepFn = asyncio.sleep,
    on_status: Callable[[OverlayStatus], None] | None = None,
) -> OverlayStatus:
    """
    Poll overlay status up to READINESS_ATTEMPTS times, READINESS_INTERVAL_S apart.

    Returns the first Running status. A failed status call or never reaching
    Running is fatal.
    """

    for attempt in range(1, READINESS_ATTEMPTS + 1):
        try:
            st = await overlay.status()
        except OverlayError as e:
            raise BootstrapError(f"overlay status: {e}") from e

        log.info("overlay.status", attempt=attempt, backend_state=st.backend_state)
        if on_status is not None:
            on_status(st)
        if st.readiness is ReadinessState.running:
            return st
        if attempt < READINESS_ATTEMPTS:
            await sleep(READINESS_INTERVAL_S)

    raise ReadinessTimeout(
        f"overlay network not running after {READINESS_ATTEMPTS} status checks"
    )


class ListenerBootstrapper:
    def __init__(
        self,
        *,
        settings: Settings,
        overlay: OverlayNode,
        proxy_app: ASGIApp,
        certificates: CertificateProvider | None = None,
        knob: LogKnob | None = None,
        serve: ServeFn = uvicorn_serve,
        sleep: SleepFn = asyncio.sleep,
    ) -> None:
        self._settings = settings
        self._overlay = overlay
        self._proxy_app = proxy_app
        self._certificates = certificates
        self._knob = knob
        self._serve = serve
        self._sleep = sleep

    async def run(self) -> None:
        if not self._settings.use_https:
            ln = await self._overlay.listen("tcp", f":{self._settings.http_port}")
            self._log_running(ln)
            await self._serve(self._proxy_app, ln, None)
            return

        if self._certificates is None:
            raise BootstrapError("HTTPS requested without a certificate provider")

        ln = await self._overlay.listen("tcp", f":{self._settings.https_port}")
        tls = self._certificates.server_context()
        self._log_running(ln)

        # Secure port serves immediately; the redirect listener waits on readiness.
        await asyncio.gather(
            self._serve(self._proxy_app, ln, tls),
            self._serve_redirect(),
        )

    async def _serve_redirect(self) -> None:
        await wait_until_running(self._overlay, sleep=self._sleep, on_status=self._refresh_knob)

        name = await self._overlay.expand_secure_name(self._settings.hostname)
        if not name:
            raise SecureNameUnavailable("can't get hostname for https redirect")
        if self._certificates is not None:
            await self._certificates.prefetch([name])

        ln = await self._overlay.listen("tcp", f":{self._settings.http_port}")
        log.info("redirect.running", addrs=ln.addresses, target=f"https://{name}")
        await self._serve(create_redirect_app(secure_name=name), ln, None)

    def _refresh_knob(self, st: OverlayStatus) -> None:
        if self._knob is not None:
            self._knob.update_from_capabilities(st.capabilities)

    def _log_running(self, ln: Listener) -> None:
        log.info(
            "proxy.running",
            addrs=ln.addresses,
            backend=self._settings.backend_addr,
            https=self._settings.use_https,
        )


# --- Module Notes -----------------------------------------------------------
# There is no supervisor: any exception out of run() ends the process (see __main__).
