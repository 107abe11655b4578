"""Client layer - assembly, request building and typed JSON execution.

- ClientBuilder / new_retry_client: retrying httpx clients
- RequestBuilder: validated, replay-aware httpx.Request construction
- JsonClient: typed responses decoded with pydantic
"""

from .builder import ClientBuilder, RetryClient, new_retry_client
from .generic import JsonClient, Response, parse_error_response
from .request import MAX_USER_AGENT_LENGTH, VALID_METHODS, RequestBuilder

__all__ = [
    # Assembly
    "ClientBuilder", "RetryClient", "new_retry_client",
    # Requests
    "RequestBuilder", "VALID_METHODS", "MAX_USER_AGENT_LENGTH",
    # JSON
    "JsonClient", "Response", "parse_error_response",
]
