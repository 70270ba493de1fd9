"""Fetch utilities - retries for network and browser steps."""

from .retries import RetryConfig, retry_async, retry_until

__all__ = [
    "RetryConfig",
    "retry_async",
    "retry_until",
]
