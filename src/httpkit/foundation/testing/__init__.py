"""Testing utilities for code built on httpkit clients.

- ScriptedTransport: canned responses and errors with invocation recording
- TrackedStream: response body that reports drain and close
"""

from .mock import Invocation, ScriptedTransport, ScriptItem, TrackedStream

__all__ = ["Invocation", "ScriptedTransport", "ScriptItem", "TrackedStream"]
