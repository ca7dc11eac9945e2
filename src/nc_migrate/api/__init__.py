"""N-central REST API access."""

from .client import NCentralClient, NCentralClientFactory
from .exceptions import (
    NCentralAPIError,
    NCentralAuthenticationError,
    NCentralNotFoundError,
    NCentralPermissionError,
    NCentralRateLimitError,
    NCentralValidationError,
)

__all__ = [
    'NCentralClient',
    'NCentralClientFactory',
    'NCentralAPIError',
    'NCentralAuthenticationError',
    'NCentralNotFoundError',
    'NCentralPermissionError',
    'NCentralRateLimitError',
    'NCentralValidationError',
]
