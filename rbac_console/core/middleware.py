"""
HTTP middleware shared by every console route
"""

from typing import Iterable, Optional, Tuple

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from slowapi import Limiter
from slowapi.util import get_remote_address
from starlette.datastructures import MutableHeaders

from rbac_console.config.settings import settings

# Snapshots carry role assignments, so responses must never be cached
SECURITY_HEADERS: Tuple[Tuple[str, str], ...] = (
    ("X-Content-Type-Options", "nosniff"),
    ("X-Frame-Options", "DENY"),
    ("Referrer-Policy", "no-referrer"),
    ("Cache-Control", "no-store"),
)

limiter = Limiter(key_func=get_remote_address, default_limits=[settings.rate_limit])


class SecurityHeadersMiddleware:
    """Adds the security headers to every HTTP response unless a route set them already"""

    def __init__(self, app, headers: Optional[Iterable[Tuple[str, str]]] = None):
        self.app = app
        self.headers = tuple(headers) if headers is not None else SECURITY_HEADERS

    async def __call__(self, scope, receive, send):
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        async def send_wrapper(message):
            if message["type"] == "http.response.start":
                response_headers = MutableHeaders(scope=message)
                for name, value in self.headers:
                    response_headers.setdefault(name, value)
            await send(message)

        await self.app(scope, receive, send_wrapper)


def install_middleware(app: FastAPI) -> None:
    app.state.limiter = limiter
    app.add_middleware(SecurityHeadersMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.get_cors_origins_list(),
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
