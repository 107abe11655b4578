"""Cancellation and deadline signal for synchronous requests.

A CancelToken travels with an ``httpx.Request`` (in ``request.extensions``)
and is checked by the retry transport before every attempt and while
waiting out a backoff delay.

Example:
    >>> token = CancelToken.with_timeout(5.0)
    >>> request = httpx.Request("GET", url, extensions={CANCEL_TOKEN: token})
    >>> # From another thread:
    >>> token.cancel()  # a pending backoff wait returns immediately
"""

from __future__ import annotations

import threading
import time
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Self

from httpkit.foundation.errors import RequestCancelledError

if TYPE_CHECKING:
    import httpx

# request.extensions key carrying the token
CANCEL_TOKEN = "httpkit.cancel_token"


@dataclass(slots=True)
class _Signal:
    event: threading.Event = field(default_factory=threading.Event)
    reason: str = "request cancelled"


@dataclass(slots=True, eq=False)
class CancelToken:
    """Externally owned cancellation signal with an optional deadline.

    The token fires when ``cancel()`` is called or when the monotonic
    ``deadline`` passes, whichever comes first. Safe to share across threads.

    Attributes:
        deadline: time.monotonic() value after which the token counts as fired
    """

    deadline: float | None = None
    _signal: _Signal = field(default_factory=_Signal, repr=False)

    @classmethod
    def with_timeout(cls, timeout: float) -> Self:
        """Token that fires ``timeout`` seconds from now."""
        return cls(deadline=time.monotonic() + timeout)

    def bounded(self, timeout: float) -> CancelToken:
        """Token sharing this cancel signal with a deadline at most ``timeout`` away.

        Cancelling either token cancels both.
        """
        deadline = time.monotonic() + timeout
        if self.deadline is not None:
            deadline = min(deadline, self.deadline)
        return CancelToken(deadline=deadline, _signal=self._signal)

    def cancel(self, reason: str = "request cancelled") -> None:
        self._signal.reason = reason
        self._signal.event.set()

    @property
    def expired(self) -> bool:
        return self.deadline is not None and time.monotonic() >= self.deadline

    @property
    def cancelled(self) -> bool:
        """Whether the signal has fired (explicit cancel or deadline)."""
        return self._signal.event.is_set() or self.expired

    @property
    def reason(self) -> str:
        if self._signal.event.is_set():
            return self._signal.reason
        return "request deadline exceeded" if self.expired else ""

    def remaining(self) -> float | None:
        """Seconds until the deadline (never negative), or None without one."""
        if self.deadline is None:
            return None
        return max(0.0, self.deadline - time.monotonic())

    def wait(self, seconds: float) -> bool:
        """Block up to ``seconds``; return True if the token fired meanwhile.

        Returns early as soon as ``cancel()`` is called. When the deadline
        falls inside the wait, only waits until the deadline.
        """
        remaining = self.remaining()
        if remaining is not None and remaining <= seconds:
            self._signal.event.wait(remaining)
            return True
        return self._signal.event.wait(seconds)

    def raise_if_cancelled(self, request: httpx.Request | None = None) -> None:
        if self.cancelled:
            raise RequestCancelledError(self.reason, request=request)


def cancel_token_of(request: httpx.Request) -> CancelToken | None:
    """Token attached to ``request``, if any."""
    token = request.extensions.get(CANCEL_TOKEN)
    return token if isinstance(token, CancelToken) else None
