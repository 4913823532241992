"""
Error kinds of the instance service and the writer that turns them into responses.
Body shape follows the OAuth style used elsewhere: {"error": ..., "error_description": ...}.
"""
import enum

from fastapi import status
from fastapi.responses import JSONResponse


class ErrorKind(enum.Enum):
    UNAUTHORIZED_REQUEST = "UnauthorizedRequest"
    MISSING_SCOPE = "MissingScope"
    MISSING_QUERY_PARAMETER = "MissingQueryParameter"
    DATABASE_QUERY_ERROR = "DatabaseQueryError"


# kind -> (status code, error code, description)
_RESPONSES: dict[ErrorKind, tuple[int, str, str]] = {
    ErrorKind.UNAUTHORIZED_REQUEST: (
        status.HTTP_401_UNAUTHORIZED,
        "unauthorized_request",
        "The request did not carry any authorization information",
    ),
    ErrorKind.MISSING_SCOPE: (
        status.HTTP_403_FORBIDDEN,
        "missing_scope",
        "The caller is missing the scope required for this service",
    ),
    ErrorKind.MISSING_QUERY_PARAMETER: (
        status.HTTP_400_BAD_REQUEST,
        "missing_query_parameter",
        "modelID and instanceID are required query parameters",
    ),
    ErrorKind.DATABASE_QUERY_ERROR: (
        status.HTTP_500_INTERNAL_SERVER_ERROR,
        "database_query_error",
        "The instance data could not be read from the database",
    ),
}


class RequestError(Exception):
    """Raised by handlers; converted to a response by the app's exception handler."""

    def __init__(self, kind: ErrorKind):
        super().__init__(kind.value)
        self.kind = kind


def status_code_for(kind: ErrorKind) -> int:
    return _RESPONSES[kind][0]


def send_request_error(kind: ErrorKind) -> JSONResponse:
    """Build the error response for the given kind."""
    status_code, error, description = _RESPONSES[kind]
    return JSONResponse(
        status_code=status_code,
        content={"error": error, "error_description": description},
    )
