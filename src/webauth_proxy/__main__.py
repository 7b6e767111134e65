"""
webauth_proxy.__main__

Entrypoint for `python -m webauth_proxy` (also installed as `webauth-proxy`).

Responsibilities:
- Parse flags/env into Settings and validate them before anything is opened.
- Wire the overlay client, identity resolver, director and apps together.
- Run the listener bootstrapper; exit 1 on any fatal startup error.
"""

from __future__ import annotations

import asyncio
import sys
from collections.abc import Sequence

import httpx

from webauth_proxy.bootstrap import ListenerBootstrapper
from webauth_proxy.errors import ConfigError, WebauthProxyError
from webauth_proxy.identity.resolver import IdentityResolver
from webauth_proxy.observability.logging import configure_logging, get_logger
from webauth_proxy.observability.logknob import LogKnob
from webauth_proxy.overlay.certs import CertificateProvider
from webauth_proxy.overlay.client import create_overlay_client
from webauth_proxy.proxy.app import create_proxy_app
from webauth_proxy.proxy.director import ProxyDirector, single_host_director
from webauth_proxy.proxy.injector import HeaderInjector
from webauth_proxy.settings import Settings, parse_args

log = get_logger(__name__)


async def run(settings: Settings) -> None:
    overlay = create_overlay_client(settings)
    backend = httpx.AsyncClient(
        timeout=httpx.Timeout(settings.backend_timeout_s),
        follow_redirects=False,
    )
    knob = LogKnob(env=settings.verbose_env, capability=settings.verbose_capability)
    try:
        director = ProxyDirector(
            single_host_director(settings.backend_url),
            HeaderInjector(IdentityResolver(overlay), login_path=settings.login_path),
        )
        certificates = None
        if settings.use_https:
            certificates = CertificateProvider(
                fetch_pair=overlay.certificate_pair,
                cache_dir=settings.cert_dir,
            )

        bootstrapper = ListenerBootstrapper(
            settings=settings,
            overlay=overlay,
            proxy_app=create_proxy_app(director=director, http=backend, knob=knob),
            certificates=certificates,
            knob=knob,
        )
        await bootstrapper.run()
    finally:
        await backend.aclose()
        await overlay.aclose()


def main(argv: Sequence[str] | None = None) -> None:
    try:
        settings = parse_args(argv)
    except ConfigError as e:
        # Logging is configured from settings, so this one goes straight to stderr.
        sys.exit(f"webauth-proxy: {e}")
    configure_logging(service_name=settings.service_name, level=settings.log_level)

    try:
        settings.validate_bootstrap()
        asyncio.run(run(settings))
    except WebauthProxyError as e:
        log.error("startup.fatal", error=str(e), kind=type(e).__name__)
        sys.exit(1)


if __name__ == "__main__":
    main()
