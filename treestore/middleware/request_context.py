"""Per-request context: request id, timing and one access log line per call.

The log line names the caller (token subject, when a valid bearer token is
present) and the tree entity the URL addresses, so a user's tree operations
can be followed across requests without reading the route handlers' logs.
"""

import logging
import re
import time
import uuid
from typing import Optional

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

from ..core.config import settings
from ..core.logging_config import request_id_var
from ..core.token_factory import decode_token

logger = logging.getLogger(__name__)

# /api/{directories|files|entities}/{uuid}[/...]
_ENTITY_PATH = re.compile(
    r"^/api/(?:directories|files|entities)/([0-9a-fA-F-]{36})(?:/|$)"
)


def _caller_id(request: Request) -> Optional[str]:
    """Token subject for logging only. Authorization is enforced by the routes."""
    header = request.headers.get("authorization", "")
    scheme, _, token = header.partition(" ")
    if scheme.lower() != "bearer" or not token:
        return None
    claims = decode_token(token, settings.jwt_secret_key, settings.jwt_algorithm)
    return claims.user_id if claims else None


def _entity_id(path: str) -> Optional[str]:
    match = _ENTITY_PATH.match(path)
    return match.group(1) if match else None


class RequestContextMiddleware(BaseHTTPMiddleware):
    """Tags every request with an id and logs its outcome."""

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        rid = request.headers.get("x-request-id") or uuid.uuid4().hex[:16]
        token = request_id_var.set(rid)
        start = time.monotonic()
        fields = {
            "method": request.method,
            "path": request.url.path,
            "user_id": _caller_id(request),
            "entity_id": _entity_id(request.url.path),
        }

        try:
            response = await call_next(request)
            duration_ms = round((time.monotonic() - start) * 1000, 1)

            response.headers["X-Request-ID"] = rid
            response.headers["X-Response-Time"] = f"{duration_ms}ms"

            level = logging.WARNING if response.status_code >= 500 else logging.INFO
            logger.log(
                level,
                f"{request.method} {request.url.path} {response.status_code}",
                extra={**fields, "status_code": response.status_code, "duration_ms": duration_ms},
            )
            return response
        finally:
            request_id_var.reset(token)
