"""
webauth_proxy.settings

Central configuration model (Pydantic Settings).

Responsibilities:
- Provide strongly-typed, env-driven settings for all layers.
- Map the command-line flags onto the same model (flags win over env).
- Validate the bootstrap invariants before any listener is opened.
"""

from __future__ import annotations

import argparse
from collections.abc import Sequence
from pathlib import Path

import httpx
from pydantic import ValidationError
from pydantic_settings import BaseSettings, SettingsConfigDict

from webauth_proxy.errors import ConfigError


class Settings(BaseSettings):
    """
    Immutable once parsed; `validate_bootstrap` must pass before startup continues.
    """

    model_config = SettingsConfigDict(
        env_prefix="WEBAUTH_PROXY_",
        case_sensitive=False,
        frozen=True,
    )

    service_name: str = "webauth-proxy"
    log_level: str = "INFO"

    # Overlay node identity; used as a single DNS label, so no dots.
    hostname: str = ""
    # Backend application served over plain HTTP, host:port.
    backend_addr: str = ""
    state_dir: str = "./"
    use_https: bool = False

    # Login boundary: the only path that receives identity headers.
    login_path: str = "/login"

    # Overlay daemon local API. An empty socket path means plain TCP to localapi_url.
    localapi_url: str = "http://local-tailscaled.sock"
    localapi_socket: str = "/var/run/tailscale/tailscaled.sock"

    # Listeners bind the node's overlay addresses; set this only to override them.
    listen_host: str = ""
    http_port: int = 80
    https_port: int = 443

    backend_timeout_s: float = 30.0

    # Verbose request logging switches (see observability.logknob).
    verbose_env: str = "WEBAUTH_PROXY_VERBOSE"
    verbose_capability: str = "webauth-proxy-verbose"

    def validate_bootstrap(self) -> None:
        if not self.hostname or "." in self.hostname:
            raise ConfigError("missing or invalid --hostname")
        if not self.backend_addr:
            raise ConfigError("missing --backend-addr")
        # Parse eagerly so a bad address fails here rather than on the first request.
        _ = self.backend_url

    @property
    def backend_url(self) -> httpx.URL:
        try:
            url = httpx.URL(f"http://{self.backend_addr}")
        except httpx.InvalidURL as e:
            raise ConfigError(f"couldn't parse backend address: {e}") from e
        if not url.host:
            raise ConfigError(f"couldn't parse backend address: {self.backend_addr!r}")
        return url

    @property
    def cert_dir(self) -> Path:
        return Path(self.state_dir) / "certs"


def build_arg_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="webauth-proxy",
        description=(
            "Reverse proxy that identifies users by their overlay network identity "
            "and asserts it to the backend's auth-proxy login endpoint."
        ),
    )
    # Defaults stay None so unset flags fall through to environment values.
    parser.add_argument(
        "--hostname",
        help="Overlay hostname to serve on; base name for the HTTPS certificate domain.",
    )
    parser.add_argument(
        "--backend-addr",
        dest="backend_addr",
        help="Address of the backend served over HTTP, in host:port format.",
    )
    parser.add_argument(
        "--state-dir",
        dest="state_dir",
        help="Directory for overlay state and cached certificates.",
    )
    parser.add_argument(
        "--use-https",
        dest="use_https",
        action="store_true",
        default=None,
        help="Serve over HTTPS with certificates from the overlay network.",
    )
    return parser


def parse_args(argv: Sequence[str] | None = None) -> Settings:
    ns = build_arg_parser().parse_args(argv)
    overrides = {k: v for k, v in vars(ns).items() if v is not None}
    try:
        return Settings(**overrides)
    except ValidationError as e:
        raise ConfigError(f"invalid configuration: {e}") from e


# --- Module Notes -----------------------------------------------------------
# Only the four deployment flags are exposed on the command line; every other knob is
# environment-only (WEBAUTH_PROXY_*).
