"""HTTP access log middleware -- one structured METRIC line per request.

Fields: method, path, status, wall time, visitor key (same key the rate
limiter buckets on), request ID, and the error detail of 4xx/5xx bodies.
Written to the ``pushpilot.access`` logger; ``/health`` is skipped so
load-balancer probes do not flood the log.
"""

from __future__ import annotations

import json
import logging
import time

from starlette.types import ASGIApp, Receive, Scope, Send

logger = logging.getLogger("pushpilot.access")

_SKIP_PREFIXES = ("/health", "/favicon.ico")


class AccessLogMiddleware:
    """ASGI middleware that logs every HTTP request as a METRIC line."""

    def __init__(self, app: ASGIApp) -> None:
        self.app = app

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        path: str = scope.get("path", "")
        if path.startswith(_SKIP_PREFIXES):
            await self.app(scope, receive, send)
            return

        method: str = scope.get("method", "?")
        visitor = scope_client_key(scope)
        t0 = time.perf_counter()
        status_code = 0
        error_detail = ""

        async def send_wrapper(message: dict) -> None:
            nonlocal status_code, error_detail
            if message["type"] == "http.response.start":
                status_code = message.get("status", 0)
            elif message["type"] == "http.response.body" and status_code >= 400:
                error_detail = _error_detail(message.get("body", b""))
            await send(message)

        try:
            await self.app(scope, receive, send_wrapper)
        except Exception:
            if status_code == 0:
                status_code = 500
            raise
        finally:
            request_id = scope.get("state", {}).get("request_id", "-")
            _emit(method, path, status_code, (time.perf_counter() - t0) * 1000,
                  visitor, request_id, error_detail)


def scope_client_key(scope: Scope) -> str:
    """First ``X-Forwarded-For`` hop, else the peer address, else ``unknown``."""
    headers = dict(scope.get("headers", []))
    forwarded = headers.get(b"x-forwarded-for", b"").decode("latin-1")
    first = forwarded.split(",")[0].strip()
    if first:
        return first
    client = scope.get("client")
    if client and client[0]:
        return client[0]
    return "unknown"


def _error_detail(body_bytes: bytes) -> str:
    if not body_bytes:
        return ""
    try:
        body = json.loads(body_bytes)
    except ValueError:
        return body_bytes[:200].decode("utf-8", errors="replace")
    if not isinstance(body, dict):
        return ""
    return str(body.get("detail", body.get("error", "")))[:200]


def _emit(
    method: str,
    path: str,
    status_code: int,
    wall_ms: float,
    visitor: str,
    request_id: str,
    error_detail: str,
) -> None:
    parts = [
        "METRIC | type=http_request",
        f"method={method}",
        f"path={path}",
        f"status={status_code}",
        f"wall_ms={wall_ms:.0f}",
        f"visitor={visitor}",
        f"req_id={request_id}",
    ]
    if error_detail:
        # Pipes would break the METRIC field separator
        parts.append(f"error={error_detail.replace('|', '/')}")
    line = " | ".join(parts)

    if status_code >= 500:
        logger.error(line)
    elif status_code >= 400:
        logger.warning(line)
    else:
        logger.info(line)
