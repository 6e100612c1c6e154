from __future__ import annotations

import secrets
import threading
import time
from dataclasses import dataclass
from typing import Dict, Tuple

from flask import current_app, request, session

from giftops.errors import ValidationError
from giftops.observability import observe_rate_limited
from giftops.ui_strings import error_message


CSRF_SESSION_KEY = "_csrf_token"
CSRF_FORM_FIELD = "csrf_token"
_SAFE_METHODS = {"GET", "HEAD", "OPTIONS", "TRACE"}
# Content types a cross-site HTML form can send without a preflight.
_BROWSER_FORM_TYPES = {"application/x-www-form-urlencoded", "multipart/form-data", "text/plain"}
_CSRF_EXEMPT_PAGES = {"/login", "/register"}


def csrf_token() -> str:
    token = str(session.get(CSRF_SESSION_KEY) or "").strip()
    if not token:
        token = secrets.token_urlsafe(24)
        session[CSRF_SESSION_KEY] = token
    return token


def validate_csrf_token(token: str | None) -> bool:
    expected = str(session.get(CSRF_SESSION_KEY) or "").strip()
    provided = str(token or "").strip()
    return bool(expected and provided) and secrets.compare_digest(expected, provided)


def _is_api_request() -> bool:
    return request.path.startswith("/api/")


def _form_content_type() -> bool:
    return str(request.mimetype or "").strip().lower() in _BROWSER_FORM_TYPES


def enforce_form_csrf() -> None:
    """Page forms (logout, dashboard actions) must echo the session token."""
    if request.method in _SAFE_METHODS or _is_api_request() or request.path in _CSRF_EXEMPT_PAGES:
        return
    if not bool(current_app.config.get("CSRF_ENABLED", True)) or not _form_content_type():
        return
    if not validate_csrf_token(request.form.get(CSRF_FORM_FIELD)):
        raise ValidationError(code="csrf_invalid", message_key="csrf_invalid")


def enforce_json_api_body() -> None:
    """API mutations only accept JSON or an empty body, never a browser form post."""
    if request.method in _SAFE_METHODS or not _is_api_request():
        return
    if _form_content_type():
        raise ValidationError(
            code="json_body_required",
            message_key="json_body_required",
            http_status=415,
            payload={"content_type": request.mimetype},
        )


@dataclass(frozen=True)
class RateLimitBucket:
    """Tighter limit for one sensitive endpoint, on top of the per-route limit.

    ``per_user`` buckets count signed-in users separately; the rest count
    per client address.
    """

    name: str
    method: str
    url_rule: str
    per_user: bool


SENSITIVE_BUCKETS: Tuple[RateLimitBucket, ...] = (
    RateLimitBucket("login", "POST", "/login", per_user=False),
    RateLimitBucket("login", "POST", "/api/auth/login", per_user=False),
    RateLimitBucket("bid", "POST", "/api/stock-requests/<string:request_id>/bids", per_user=True),
    RateLimitBucket("checkout", "POST", "/api/orders", per_user=True),
)


class WindowRateLimiter:
    """Fixed-window counters keyed by bucket and caller."""

    max_keys = 10_000

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._windows: Dict[str, Tuple[float, int]] = {}

    def hit(self, key: str, *, limit: int, window_seconds: int) -> int | None:
        """Count one request; return seconds to wait when ``limit`` is exceeded."""
        now = time.monotonic()
        with self._lock:
            started, count = self._windows.get(key, (now, 0))
            if now - started >= window_seconds:
                started, count = now, 0
            count += 1
            self._windows[key] = (started, count)
            if len(self._windows) > self.max_keys:
                self._prune(now, window_seconds)
            if count <= limit:
                return None
            return max(0, int(window_seconds - (now - started)))

    def _prune(self, now: float, window_seconds: int) -> None:
        cutoff = now - window_seconds * 2
        self._windows = {key: value for key, value in self._windows.items() if value[0] >= cutoff}

    def reset(self) -> None:
        with self._lock:
            self._windows.clear()


_RATE_LIMITER = WindowRateLimiter()


def _client_address() -> str:
    return str(request.remote_addr or "").strip() or "unknown"


def _session_user() -> str:
    return str(session.get("user_id") or "").strip()


def _route() -> str:
    return request.url_rule.rule if request.url_rule else request.path


def _config_int(name: str, default: int) -> int:
    return max(1, int(current_app.config.get(name, default) or default))


def _sensitive_bucket() -> RateLimitBucket | None:
    route = _route()
    for bucket in SENSITIVE_BUCKETS:
        if bucket.method == request.method and bucket.url_rule == route:
            return bucket
    return None


def _check_limits() -> Tuple[str, int] | None:
    window = _config_int("RATE_LIMIT_WINDOW_SECONDS", 60)
    route_key = f"route|{_client_address()}|{_session_user() or 'anon'}|{request.method}|{_route()}"
    retry_after = _RATE_LIMITER.hit(
        route_key,
        limit=_config_int("RATE_LIMIT_MAX_REQUESTS", 300),
        window_seconds=window,
    )
    if retry_after is not None:
        return "route", retry_after

    bucket = _sensitive_bucket()
    if bucket is None:
        return None
    prefix = f"RATE_LIMIT_{bucket.name.upper()}"
    caller = (_session_user() if bucket.per_user else "") or _client_address()
    retry_after = _RATE_LIMITER.hit(
        f"{bucket.name}|{caller}",
        limit=_config_int(f"{prefix}_MAX_REQUESTS", 10),
        window_seconds=_config_int(f"{prefix}_WINDOW_SECONDS", window),
    )
    if retry_after is not None:
        return bucket.name, retry_after
    return None


def enforce_rate_limit():
    if not bool(current_app.config.get("RATE_LIMIT_ENABLED", True)):
        return None
    if request.method == "OPTIONS" or request.path.startswith("/static/"):
        return None

    blocked = _check_limits()
    if blocked is None:
        return None
    bucket_name, retry_after = blocked
    observe_rate_limited(bucket_name)
    current_app.logger.warning(
        "rate_limit_exceeded",
        extra={"bucket": bucket_name, "path": request.path, "user_id": _session_user() or None},
    )
    if _is_api_request():
        raise ValidationError(
            code="rate_limit_exceeded",
            message_key="rate_limit_exceeded",
            http_status=429,
            payload={"retry_after": retry_after, "bucket": bucket_name},
        )
    return (
        error_message("rate_limit_exceeded", "Too many requests."),
        429,
        {"Retry-After": str(retry_after)},
    )


_CONTENT_SECURITY_POLICY = "; ".join(
    [
        "default-src 'self'",
        "img-src 'self' data: https:",
        "style-src 'self' 'unsafe-inline'",
        "script-src 'self'",
        "frame-ancestors 'none'",
        "form-action 'self'",
    ]
)


def apply_security_headers(response):
    if not bool(current_app.config.get("SECURITY_HEADERS_ENABLED", True)):
        return response
    headers = {
        "X-Content-Type-Options": "nosniff",
        "X-Frame-Options": "DENY",
        "Referrer-Policy": "strict-origin-when-cross-origin",
        "Permissions-Policy": "camera=(), microphone=()",
        "Content-Security-Policy": _CONTENT_SECURITY_POLICY,
    }
    if request.is_secure:
        headers["Strict-Transport-Security"] = "max-age=31536000; includeSubDomains"
    for name, value in headers.items():
        response.headers.setdefault(name, value)
    return response


def reset_rate_limiter_for_tests() -> None:
    _RATE_LIMITER.reset()
