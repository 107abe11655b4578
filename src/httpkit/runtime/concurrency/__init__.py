"""Concurrency primitives - cancellation and deadlines for blocking requests."""

from __future__ import annotations

from .cancel import CANCEL_TOKEN, CancelToken, cancel_token_of

__all__ = ["CANCEL_TOKEN", "CancelToken", "cancel_token_of"]
