"""Security-related helpers.

Optional site-wide HTTP Basic auth, the administrator check guarding the
on-demand full sync, its cooldown, and webhook signature verification.
"""

from __future__ import annotations

import base64
import binascii
import hashlib
import hmac
import secrets
import threading
import time
from dataclasses import dataclass

from fastapi import HTTPException, Request
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import Response

from app.config import settings


@dataclass(frozen=True)
class BasicAuthCredentials:
    username: str
    password: str


def _parse_basic_auth_header(header_value: str) -> BasicAuthCredentials | None:
    """Parse an Authorization header containing HTTP Basic auth."""
    if not header_value:
        return None

    scheme, _, param = header_value.partition(" ")
    if scheme.lower() != "basic" or not param:
        return None

    try:
        decoded = base64.b64decode(param, validate=True).decode("utf-8")
    except (binascii.Error, UnicodeDecodeError):
        return None

    username, sep, password = decoded.partition(":")
    if sep != ":":
        return None

    return BasicAuthCredentials(username=username, password=password)


def credentials_match(creds: BasicAuthCredentials | None, username: str | None, password: str | None) -> bool:
    """Constant-time comparison; unset expected credentials never match."""
    if creds is None or not username or not password:
        return False
    ok_user = secrets.compare_digest(creds.username.encode("utf-8"), username.encode("utf-8"))
    ok_pass = secrets.compare_digest(creds.password.encode("utf-8"), password.encode("utf-8"))
    return ok_user and ok_pass


class BasicAuthMiddleware(BaseHTTPMiddleware):
    """Protect routes via HTTP Basic auth.

    If enabled, we protect all paths except an allowlist (by default /health
    and /webhook, which is authenticated by its signature instead).
    """

    def __init__(
        self,
        app,
        *,
        username: str,
        password: str,
        allow_paths: set[str] | None = None,
        realm: str = "LinearMirror",
    ):
        super().__init__(app)
        self._username = username
        self._password = password
        self._allow_paths = allow_paths or {"/health", "/webhook"}
        self._realm = realm

    def _unauthorized(self) -> Response:
        return Response(
            content="Unauthorized",
            status_code=401,
            headers={"WWW-Authenticate": f'Basic realm="{self._realm}", charset="UTF-8"'},
        )

    async def dispatch(self, request: Request, call_next):
        if request.url.path in self._allow_paths:
            return await call_next(request)

        creds = _parse_basic_auth_header(request.headers.get("Authorization", ""))
        if not credentials_match(creds, self._username, self._password):
            return self._unauthorized()

        return await call_next(request)


def require_admin(request: Request) -> str:
    """FastAPI dependency: HTTP Basic administrator credentials or 401."""
    creds = _parse_basic_auth_header(request.headers.get("Authorization", ""))
    if not credentials_match(creds, settings.admin_username, settings.admin_password):
        raise HTTPException(
            status_code=401,
            detail="Administrator credentials required",
            headers={"WWW-Authenticate": 'Basic realm="LinearMirror admin", charset="UTF-8"'},
        )
    return creds.username


class TriggerThrottle:
    """Allow at most one trigger per cooldown window, process-wide."""

    def __init__(self, cooldown_seconds: float, clock=time.monotonic):
        self.cooldown_seconds = cooldown_seconds
        self._clock = clock
        self._lock = threading.Lock()
        self._last: float | None = None

    def try_acquire(self) -> float:
        """Claim the window. Returns 0 on success, else the seconds left to wait."""
        with self._lock:
            now = self._clock()
            if self._last is not None:
                remaining = self.cooldown_seconds - (now - self._last)
                if remaining > 0:
                    return remaining
            self._last = now
            return 0.0

    def reset(self):
        with self._lock:
            self._last = None


def verify_webhook_signature(body: bytes, signature: str | None, secret: str | None) -> bool:
    """Check a hex HMAC-SHA256 of the raw request body."""
    if not secret or not signature:
        return False
    expected = hmac.new(secret.encode("utf-8"), body, hashlib.sha256).hexdigest()
    return hmac.compare_digest(expected, signature.strip().lower())
