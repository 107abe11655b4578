"""Retry policy configuration for the retrying transport.

A RetryPolicy is the immutable pair of attempt ceiling and backoff strategy,
built once when a client is assembled and shared read-only by every request.
"""

from __future__ import annotations

from typing import Annotated

from pydantic import BaseModel, ConfigDict, Field, computed_field

from .backoff import Backoff, ExponentialBackoff

# First status code treated as a transient server failure
SERVER_ERROR_THRESHOLD = 500


class RetryPolicy(BaseModel):
    """Configurable retry policy for HTTP requests.

    Attributes:
        max_retries: Retries after the first attempt (0 = single attempt)
        backoff: Backoff strategy for delay calculation

    Example:
        >>> policy = RetryPolicy(max_retries=3, backoff=JitterBackoff(0.5, 10.0))
        >>> policy.total_attempts
        4
    """

    model_config = ConfigDict(
        frozen=True,
        arbitrary_types_allowed=True,  # For Backoff protocol
        validate_default=True,
        extra="forbid",
        revalidate_instances="never",
    )

    max_retries: Annotated[int, Field(ge=0)] = 3
    backoff: Backoff = Field(default_factory=ExponentialBackoff, repr=False)

    @computed_field
    @property
    def total_attempts(self) -> int:
        return self.max_retries + 1

    @computed_field
    @property
    def is_disabled(self) -> bool:
        """Whether retries are effectively disabled."""
        return self.max_retries == 0

    def has_attempts_left(self, attempt: int) -> bool:
        """Whether another attempt follows the 0-indexed ``attempt``."""
        return attempt < self.max_retries

    def get_delay(self, attempt: int) -> float:
        """Get delay before the retry following ``attempt``."""
        return self.backoff.delay(attempt)

    @staticmethod
    def is_retryable_status(status_code: int) -> bool:
        """Only 5xx responses are retried; every status below 500 is final."""
        return status_code >= SERVER_ERROR_THRESHOLD

    def __hash__(self) -> int:
        return hash((self.max_retries, self.backoff))


# Single attempt, no retries
NO_RETRY = RetryPolicy(max_retries=0)
