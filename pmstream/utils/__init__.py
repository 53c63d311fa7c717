"""Utility modules for the pmstream client."""

from .redaction import CredentialRedactionFilter
from .retry import RetryStrategy, CircuitBreaker

__all__ = [
    "CredentialRedactionFilter",
    "RetryStrategy",
    "CircuitBreaker",
]
