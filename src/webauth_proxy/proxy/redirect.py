"""
webauth_proxy.proxy.redirect

Plaintext listener app for TLS mode: permanently redirects to the HTTPS name.
"""

from __future__ import annotations

from fastapi import FastAPI, Request
from starlette.responses import RedirectResponse
from starlette.status import HTTP_301_MOVED_PERMANENTLY

from webauth_proxy.observability.middleware import RequestContextMiddleware
from webauth_proxy.proxy.app import PROXY_METHODS


def redirect_target(secure_name: str, request: Request) -> str:
    target = f"https://{secure_name}{request.url.path}"
    if request.url.query:
        target = f"{target}?{request.url.query}"
    return target


def create_redirect_app(*, secure_name: str) -> FastAPI:
    app = FastAPI(docs_url=None, redoc_url=None, openapi_url=None)
    app.add_middleware(RequestContextMiddleware)

    @app.api_route(
        "/{path:path}",
        methods=PROXY_METHODS,
        include_in_schema=False,
    )
    async def redirect(request: Request) -> RedirectResponse:
        return RedirectResponse(
            redirect_target(secure_name, request),
            status_code=HTTP_301_MOVED_PERMANENTLY,
        )

    return app
