"""
Tableside Orders — Staff JWT Authentication Middleware

Customer routes (placing/editing from the table QR page) are public; a valid
Bearer token there only marks the caller as staff. Every other route
requires a valid token and returns 401 without one.
"""
import logging
import re

from fastapi import Request, Response
from fastapi.responses import JSONResponse
from jose import JWTError
from starlette.middleware.base import BaseHTTPMiddleware

from tableside.core.security import decode_token

logger = logging.getLogger(__name__)

# Paths that do NOT require authentication
PUBLIC_PATHS = {
    "/health",
    "/",
    "/docs",
    "/openapi.json",
}

# (method, path) pairs reachable from the customer's table page
PUBLIC_ROUTES = [
    ("POST", re.compile(r"^/tables/[^/]+/orders/?$")),
    ("GET", re.compile(r"^/tables/[^/]+/orders/active/?$")),
    ("POST", re.compile(r"^/tables/[^/]+/call-waiter/?$")),
    ("PATCH", re.compile(r"^/orders/[^/]+/?$")),
    ("GET", re.compile(r"^/orders/[^/]+/status/?$")),
]


def is_public(method: str, path: str) -> bool:
    if path in PUBLIC_PATHS or path.startswith("/metrics"):
        return True
    return any(method == m and pattern.match(path) for m, pattern in PUBLIC_ROUTES)


def _unauthorized(detail: str) -> JSONResponse:
    return JSONResponse(
        status_code=401,
        content={"detail": detail},
        headers={"WWW-Authenticate": "Bearer"},
    )


class StaffAuthMiddleware(BaseHTTPMiddleware):
    """
    Intercepts every request. Validates the Bearer token when present.
    Attaches decoded claims to request.state.principal (None for customers).
    """

    async def dispatch(self, request: Request, call_next) -> Response:
        request.state.principal = None
        if request.method == "OPTIONS":
            return await call_next(request)

        public = is_public(request.method, request.url.path)
        auth_header = request.headers.get("Authorization", "")

        if not auth_header.startswith("Bearer "):
            if public:
                return await call_next(request)
            return _unauthorized("Missing or invalid Authorization header. Expected: Bearer <token>")

        token = auth_header.split(" ", 1)[1]
        try:
            request.state.principal = decode_token(token)
        except JWTError as exc:
            if public:
                # a stale staff token on the table page still orders as a customer
                logger.debug("Ignoring invalid token on public route %s: %s", request.url.path, exc)
                return await call_next(request)
            return _unauthorized(f"Invalid or expired JWT: {exc}")

        return await call_next(request)
