"""CRM API exceptions."""

from typing import Any, Optional


class MigrationAPIError(Exception):
    """Base exception for source and destination API errors."""

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        response_data: Optional[Any] = None,
    ):
        """Initialize API error.

        Args:
            message: Error message
            status_code: HTTP status code
            response_data: Response data from API
        """
        super().__init__(message)
        self.status_code = status_code
        self.response_data = response_data


class AuthenticationError(MigrationAPIError):
    """No usable credentials for an API."""

    pass


class TransportFault(MigrationAPIError):
    """Connection or IO level failure while issuing a request."""

    pass


class TerminalNotFound(MigrationAPIError):
    """The API answered 404; the request will not be retried."""

    def __init__(self, message: str = 'Resource not found', **kwargs):
        kwargs.setdefault('status_code', 404)
        super().__init__(message, **kwargs)


class RetryExhausted(MigrationAPIError):
    """All retry attempts failed."""

    def __init__(
        self,
        message: str,
        attempts: int,
        last_response: Optional[Any] = None,
        last_exception: Optional[BaseException] = None,
    ):
        """Initialize retry exhausted error.

        Args:
            message: Error message
            attempts: Total number of attempts made
            last_response: Last non-success response, if one was received
            last_exception: Last transport fault, if the final attempt raised
        """
        super().__init__(
            message,
            status_code=getattr(last_response, 'status_code', None),
            response_data=getattr(last_response, 'data', None),
        )
        self.attempts = attempts
        self.last_response = last_response
        self.last_exception = last_exception
