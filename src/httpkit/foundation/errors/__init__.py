"""Unified error handling for httpkit.

- ErrorCode: Machine-readable error codes
- TransportRetryError and subclasses: retrying transport failures
- RequestBuildError / ResponseDecodeError / HttpStatusError: client-side failures
- ErrorResponse: parsed API error payload
"""

from .errors import (
    BodyCloseError,
    BodyDrainError,
    BodyReplayError,
    ErrorCode,
    ErrorResponse,
    HttpStatusError,
    RequestBuildError,
    RequestCancelledError,
    ResponseDecodeError,
    RetriesExhaustedError,
    TransportRetryError,
    classify_exception,
)
from .types import JsonDict, JsonPrimitive, JsonValue

__all__ = [
    # Codes
    "ErrorCode", "classify_exception",
    # Transport errors
    "TransportRetryError", "RetriesExhaustedError", "BodyReplayError",
    "BodyDrainError", "BodyCloseError", "RequestCancelledError",
    # Client errors
    "RequestBuildError", "ResponseDecodeError", "ErrorResponse", "HttpStatusError",
    # Types
    "JsonDict", "JsonPrimitive", "JsonValue",
]
