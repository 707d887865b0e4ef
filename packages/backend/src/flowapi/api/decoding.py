"""Strict JSON request decoding.

FastAPI's automatic body parsing answers every problem with a 422 and a
pydantic error dump. Onboarding endpoints instead decode the raw body
here so that each failure lands in exactly one DecodeErrorKind, each
kind with a fixed HTTP status and a message safe to show the client.

Decoding is structural only. Callers must still run the schema's
validate_fields() afterwards for presence and format checks.
"""

import enum
import json
import re
from typing import Any, Optional, Sequence, TypeVar

import structlog
from fastapi import Request
from pydantic import BaseModel, ValidationError

from flowapi.errors import MalformedRequest

logger = structlog.get_logger()

ModelT = TypeVar("ModelT", bound=BaseModel)


class DecodeErrorKind(str, enum.Enum):
    SYNTAX = "syntax"
    TRUNCATED = "truncated"
    TYPE_MISMATCH = "type_mismatch"
    UNKNOWN_FIELD = "unknown_field"
    INTERNAL = "internal"


_STATUS = {
    DecodeErrorKind.SYNTAX: 400,
    DecodeErrorKind.TRUNCATED: 400,
    DecodeErrorKind.TYPE_MISMATCH: 400,
    DecodeErrorKind.UNKNOWN_FIELD: 400,
    DecodeErrorKind.INTERNAL: 500,
}


class DecodeError(MalformedRequest):
    """A request body that could not be decoded into its schema."""

    def __init__(
        self,
        kind: DecodeErrorKind,
        message: str,
        field: Optional[str] = None,
        offset: Optional[int] = None,
        detail: Optional[Any] = None,
    ):
        super().__init__(message, detail=detail)
        self.kind = kind
        self.field = field
        self.offset = offset
        self.status_code = _STATUS[kind]
        if kind is DecodeErrorKind.INTERNAL:
            self.code = "INTERNAL_ERROR"


def _locate(raw: bytes, path: Sequence[Any]) -> Optional[int]:
    """Byte offset of the last key in path, searching each key after its parent.

    Only a quoted token followed by a colon counts, so a string value that
    happens to equal a key name is skipped.
    """
    pos = 0
    found = None
    for part in path:
        if isinstance(part, int):
            continue
        key = json.dumps(str(part), ensure_ascii=False).encode("utf-8")
        match = re.compile(re.escape(key) + rb"\s*:").search(raw, pos)
        if match is None:
            return None
        pos = found = match.start()
    return found


def _is_truncated(e: json.JSONDecodeError) -> bool:
    """True when the input ended while a value was still open."""
    if e.pos >= len(e.doc.rstrip()):
        return True
    # Inside a string the reported position is where the string starts
    if e.msg.startswith("Unterminated string"):
        return True
    return e.msg.startswith("Invalid \\uXXXX escape") and '"' not in e.doc[e.pos:]


def _dotted(path: Sequence[Any]) -> str:
    return ".".join(str(p) for p in path)


def _classify_validation_error(raw: bytes, exc: ValidationError) -> DecodeError:
    candidates = []
    for err in exc.errors():
        loc = err.get("loc", ())
        candidates.append((_locate(raw, loc), err))
    # Report the problem that appears first in the body
    candidates.sort(key=lambda c: (c[0] is None, c[0] or 0))
    offset, err = candidates[0]
    err_type = err.get("type", "")
    field = _dotted(err.get("loc", ()))

    if err_type == "extra_forbidden":
        return DecodeError(
            DecodeErrorKind.UNKNOWN_FIELD,
            f"Unknown field '{field}' in request",
            field=field,
            offset=offset,
        )
    if err_type.endswith("_type"):
        position = f" (at position {offset})" if offset is not None else ""
        return DecodeError(
            DecodeErrorKind.TYPE_MISMATCH,
            f'Request body contains an invalid value for the "{field}" field{position}',
            field=field,
            offset=offset,
        )
    return DecodeError(
        DecodeErrorKind.INTERNAL,
        "Error reading and verifying request",
        field=field,
        detail=str(exc),
    )


def decode_json_body(raw: bytes, model: type[ModelT]) -> ModelT:
    """Decode raw bytes into model, raising DecodeError on any failure."""
    if not raw.strip():
        raise DecodeError(DecodeErrorKind.TRUNCATED, "Request body must not be empty")

    try:
        text = raw.decode("utf-8")
    except UnicodeDecodeError as e:
        raise DecodeError(
            DecodeErrorKind.SYNTAX,
            f"Request body contains badly-formed JSON (at position {e.start})",
            offset=e.start,
        ) from e

    try:
        data = json.loads(text)
    except json.JSONDecodeError as e:
        offset = len(e.doc[: e.pos].encode("utf-8"))
        if _is_truncated(e):
            raise DecodeError(
                DecodeErrorKind.TRUNCATED,
                "Request body contains badly-formed JSON",
                offset=offset,
            ) from e
        raise DecodeError(
            DecodeErrorKind.SYNTAX,
            f"Request body contains badly-formed JSON (at position {offset})",
            offset=offset,
        ) from e

    if not isinstance(data, dict):
        raise DecodeError(
            DecodeErrorKind.TYPE_MISMATCH,
            "Request body contains an invalid value (at position 0): expected a JSON object",
            offset=0,
        )

    try:
        return model.model_validate(data)
    except ValidationError as e:
        error = _classify_validation_error(raw, e)
        logger.info(
            "decoding.rejected",
            kind=error.kind.value,
            field=error.field,
            offset=error.offset,
        )
        raise error from e


async def read_json_body(request: Request, model: type[ModelT]) -> ModelT:
    """Read the request body and decode it strictly into model."""
    raw = await request.body()
    return decode_json_body(raw, model)
