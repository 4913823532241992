"""
Scope check for incoming requests.

Trust boundary: the upstream gateway authenticates the caller and writes the
granted scopes into X-Authenticated-Scope. This module takes that header at
face value. It does not verify tokens or call an identity provider; adding
such a check here would move the trust boundary and is not done on purpose.
"""
import logging
from dataclasses import dataclass
from typing import Callable

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import Response

from instance_service.config import SCOPE_HEADER, ScopeConfiguration
from instance_service.errors import ErrorKind, send_request_error

logger = logging.getLogger(__name__)

_LOG_CONTEXT = {"middleware": True, "title": "AuthorizationGate"}


@dataclass(frozen=True)
class AuthorizationContext:
    raw_scope_header: str
    scope_set: frozenset[str]

    @classmethod
    def from_header(cls, raw: str) -> "AuthorizationContext":
        # Entries are split on "," only; "a, b" yields "a" and " b"
        return cls(raw_scope_header=raw, scope_set=frozenset(raw.split(",")))

    @property
    def is_blank(self) -> bool:
        return self.raw_scope_header.strip() == ""

    def grants(self, scope: str) -> bool:
        return scope in self.scope_set


def check_scope(raw_header: str | None, required_scope: str) -> ErrorKind | None:
    """
    Admission decision for one header value.
    Returns None when the request may pass, otherwise the error kind to send.
    """
    context = AuthorizationContext.from_header(raw_header or "")
    if context.is_blank:
        logger.warning(
            "Unauthorized request detected. The %s header had no content or was not set",
            SCOPE_HEADER,
            extra=_LOG_CONTEXT,
        )
        return ErrorKind.UNAUTHORIZED_REQUEST
    if not context.grants(required_scope):
        logger.error(
            "Request rejected. The caller is missing the scope '%s' needed for this service",
            required_scope,
            extra=_LOG_CONTEXT,
        )
        return ErrorKind.MISSING_SCOPE
    return None


class AuthorizationGate(BaseHTTPMiddleware):
    """Rejects requests whose gateway-asserted scopes do not include the configured scope."""

    def __init__(self, app, *, scope_config: ScopeConfiguration):
        super().__init__(app)
        self.scope_config = scope_config

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        path = request.url.path
        logger.debug(
            "Checking %s %s for authorization information set by the gateway",
            request.method,
            path,
            extra={**_LOG_CONTEXT, "path": path},
        )
        if path == self.scope_config.healthcheck_path:
            return await call_next(request)

        error = check_scope(request.headers.get(SCOPE_HEADER), self.scope_config.scope_value)
        if error is not None:
            return send_request_error(error)
        return await call_next(request)
