"""N-central API exceptions."""

from typing import Optional


class NCentralAPIError(Exception):
    """Base exception for N-central API errors."""

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        response_data: Optional[dict] = None,
    ):
        """Initialize N-central API error.

        Args:
            message: Error message
            status_code: HTTP status code
            response_data: Response data from API
        """
        super().__init__(message)
        self.status_code = status_code
        self.response_data = response_data


class NCentralAuthenticationError(NCentralAPIError):
    """Authentication error with the N-central API."""

    pass


class NCentralTokenExpiredError(NCentralAuthenticationError):
    """Refresh token expired; a new JWT exchange is required."""

    pass


class NCentralRateLimitError(NCentralAPIError):
    """Rate limit exceeded error."""

    def __init__(self, message: str, retry_after: int = 60, **kwargs):
        """Initialize rate limit error.

        Args:
            message: Error message
            retry_after: Seconds to wait before retry
            **kwargs: Additional arguments for base class
        """
        super().__init__(message, **kwargs)
        self.retry_after = retry_after


class NCentralNotFoundError(NCentralAPIError):
    """Resource not found error."""

    pass


class NCentralPermissionError(NCentralAPIError):
    """Permission denied error."""

    pass


class NCentralValidationError(NCentralAPIError):
    """Validation error for API requests."""

    pass


class NCentralInvalidResponseError(NCentralAPIError):
    """Response body could not be interpreted."""

    pass
