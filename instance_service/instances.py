"""
Instance lookup endpoint (GET /). Reads the JSON documents stored for a
(modelID, instanceID) pair and returns them as a JSON array.

Rows are consumed through InstanceCursor one at a time. Each row has two
failure channels, extraction and JSON decoding; both are checked and logged on
their own, and either one aborts the whole response with DatabaseQueryError.
"""
import json
import logging
import math
import re
from contextlib import closing
from dataclasses import dataclass
from typing import Any, Iterator

from fastapi import APIRouter, Depends, Request
from fastapi.responses import StreamingResponse
from sqlalchemy import text
from sqlalchemy.engine import Connection, CursorResult
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.sql.expression import TextClause

from instance_service.config import INSTANCES_TABLE
from instance_service.database import get_connection
from instance_service.errors import ErrorKind, RequestError

logger = logging.getLogger(__name__)
router = APIRouter()

MODEL_ID_PARAM = "modelID"
INSTANCE_ID_PARAM = "instanceID"

# Schema-qualified or plain identifier; the table name comes from config, never from the request
_TABLE_NAME = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*(\.[A-Za-z_][A-Za-z0-9_]*)?$")

# #>> '{}' unwraps the json value into its text form
_POSTGRES_QUERY = "SELECT data #>> '{{}}' FROM {table} WHERE model = :model_id AND id = :instance_id"
_GENERIC_QUERY = "SELECT CAST(data AS TEXT) FROM {table} WHERE model = :model_id AND id = :instance_id"


@dataclass(frozen=True)
class LookupQuery:
    model_id: str
    instance_id: str

    @property
    def log_context(self) -> dict:
        return {
            "title": "InstanceLookupHandler",
            "model_id": self.model_id,
            "instance_id": self.instance_id,
        }


class ScanError(Exception):
    """A result row could not be read as a single text/bytes column."""


@dataclass(frozen=True)
class ScannedRow:
    payload: str | bytes | None
    error: Exception | None = None


class InstanceCursor:
    """
    Sequential, one-directional view over the rows of one query.
    Yields a ScannedRow per row; extraction problems are reported in ScannedRow.error
    instead of being raised. close() releases the underlying result.
    """

    def __init__(self, result: CursorResult):
        self._result = result
        self._rows = iter(result)

    def __iter__(self) -> Iterator[ScannedRow]:
        return self

    def __next__(self) -> ScannedRow:
        try:
            row = next(self._rows)
        except SQLAlchemyError as e:
            # The driver failed while fetching; stop after reporting it once
            self._rows = iter(())
            return ScannedRow(payload=None, error=ScanError(f"fetching row failed: {e}"))
        return scan_row(row)

    def close(self) -> None:
        self._result.close()


def scan_row(row) -> ScannedRow:
    if len(row) == 0:
        return ScannedRow(payload=None, error=ScanError("row has no columns"))
    value = row[0]
    if isinstance(value, memoryview):
        value = value.tobytes()
    if value is not None and not isinstance(value, (str, bytes)):
        return ScannedRow(
            payload=None,
            error=ScanError(f"unsupported column type {type(value).__name__}"),
        )
    if len(row) != 1:
        # the first column is still handed on, its payload gets decoded as well
        return ScannedRow(payload=value, error=ScanError(f"expected 1 column, got {len(row)}"))
    return ScannedRow(payload=value)


class InstanceSource:
    """Executes read queries on one checked-out connection."""

    def __init__(self, conn: Connection):
        self._conn = conn

    @property
    def dialect_name(self) -> str:
        return self._conn.dialect.name

    def execute(self, statement: TextClause, params: dict[str, str]) -> InstanceCursor:
        return InstanceCursor(self._conn.execute(statement, params))


def build_instance_query(dialect_name: str, table: str = INSTANCES_TABLE) -> TextClause:
    """Parameterized lookup statement; model_id and instance_id are bound, not interpolated."""
    if not _TABLE_NAME.match(table):
        raise ValueError(f"invalid instances table name: {table!r}")
    template = _POSTGRES_QUERY if dialect_name == "postgresql" else _GENERIC_QUERY
    return text(template.format(table=table))


def _reject_constant(name: str):
    raise ValueError(f"{name} is not valid JSON")


def _parse_float(literal: str) -> float:
    value = float(literal)
    if not math.isfinite(value):
        raise ValueError(f"number {literal} is out of range")
    return value


def _parse_int(literal: str) -> int:
    value = int(literal)
    try:
        float(value)
    except OverflowError:
        raise ValueError(f"number {literal} is out of range") from None
    return value


def decode_payload(payload: str | bytes | None) -> Any:
    """
    Parse one stored document. Raises ValueError or TypeError on anything that is not JSON text
    or holds a number a double cannot represent.
    """
    if payload is None:
        raise TypeError("row payload is NULL")
    return json.loads(
        payload,
        parse_constant=_reject_constant,
        parse_float=_parse_float,
        parse_int=_parse_int,
    )


def collect_instances(cursor: InstanceCursor, lookup: LookupQuery) -> list[Any]:
    """Decode every row in cursor order. The first bad row raises DatabaseQueryError."""
    instances: list[Any] = []
    for row in cursor:
        if row.error is not None:
            logger.error(
                "Unable to scan the returned row: %s",
                row.error,
                extra={**lookup.log_context, "error_kind": ErrorKind.DATABASE_QUERY_ERROR.value},
            )
        instance = None
        decode_error = None
        # a failed scan that yielded no payload leaves nothing to convert
        if row.error is None or row.payload is not None:
            try:
                instance = decode_payload(row.payload)
            except (TypeError, ValueError) as e:
                decode_error = e
                logger.error(
                    "Unable to convert the returned row: %s",
                    decode_error,
                    extra={**lookup.log_context, "error_kind": ErrorKind.DATABASE_QUERY_ERROR.value},
                )
        if decode_error is not None or row.error is not None:
            raise RequestError(ErrorKind.DATABASE_QUERY_ERROR)
        instances.append(instance)
    return instances


def encode_instances(instances: list[Any], lookup: LookupQuery) -> Iterator[bytes]:
    """
    Response body. Runs after the status line and headers went out, so a failure
    here can only be logged.
    """
    try:
        # ASCII output: lone surrogates from "\udXXX" escapes stay escaped instead of failing to encode
        body = json.dumps(instances, separators=(",", ":"), allow_nan=False).encode("ascii")
    except (TypeError, ValueError):
        logger.exception("An error occurred while sending back the response", extra=lookup.log_context)
        return
    yield body


def require_lookup_query(request: Request) -> LookupQuery:
    """Dependency: both identifiers must be present as keys; empty values are accepted."""
    params = request.query_params
    if MODEL_ID_PARAM not in params or INSTANCE_ID_PARAM not in params:
        logger.warning(
            "Incoming request did not contain the needed query parameters (%s=%s, %s=%s)",
            MODEL_ID_PARAM,
            MODEL_ID_PARAM in params,
            INSTANCE_ID_PARAM,
            INSTANCE_ID_PARAM in params,
            extra={"title": "InstanceLookupHandler"},
        )
        raise RequestError(ErrorKind.MISSING_QUERY_PARAMETER)
    # repeated keys: the first occurrence wins
    return LookupQuery(
        model_id=params.getlist(MODEL_ID_PARAM)[0],
        instance_id=params.getlist(INSTANCE_ID_PARAM)[0],
    )


def get_instance_source(conn: Connection = Depends(get_connection)) -> InstanceSource:
    """Dependency: instance source bound to this request's connection."""
    return InstanceSource(conn)


@router.get("/")
def lookup_instances(
    lookup: LookupQuery = Depends(require_lookup_query),
    source: InstanceSource = Depends(get_instance_source),
):
    """Return every document stored for modelID/instanceID as a JSON array ([] when none match)."""
    statement = build_instance_query(source.dialect_name)
    try:
        cursor = source.execute(
            statement,
            {"model_id": lookup.model_id, "instance_id": lookup.instance_id},
        )
    except SQLAlchemyError:
        logger.exception(
            "An error occurred while querying the database for the instance information",
            extra={**lookup.log_context, "error_kind": ErrorKind.DATABASE_QUERY_ERROR.value},
        )
        raise RequestError(ErrorKind.DATABASE_QUERY_ERROR)

    with closing(cursor):
        instances = collect_instances(cursor, lookup)

    logger.debug("Found %d instance(s)", len(instances), extra=lookup.log_context)
    return StreamingResponse(encode_instances(instances, lookup), media_type="application/json")
