"""Shared utility helpers."""

from safevoice.utils.backoff import FailureBackoff
from safevoice.utils.retry import is_transient_error, retry_async

__all__ = [
    "FailureBackoff",
    "is_transient_error",
    "retry_async",
]
