"""Retry with exponential backoff around single API calls."""

import asyncio
import traceback
from datetime import datetime
from pathlib import Path
from typing import Awaitable, Callable, List, Optional

from loguru import logger

from .client import APIRequest, APIResponse
from .exceptions import RetryExhausted, TransportFault
from .rate_limiter import RateLimiter

SEPARATOR = '-' * 77


class ApiErrorLog:
    """Append-only text log of failed and retried API calls.

    Each block carries enough detail to replay the request by hand.
    """

    def __init__(self, path: str):
        self.path = Path(path)

    def log_response(
        self, api_name: str, request: APIRequest, response: APIResponse
    ) -> None:
        """Record a non-success response."""
        block = '\n'.join(
            [
                f'------ {api_name} Error ------',
                f'Time: {datetime.now().isoformat()}',
                *_request_lines(request),
                'Response:',
                f'    Status Code: {response.status_code}',
                f'    Error Content: {response.text}',
                f'    Error Message: {response.error_message or ""}',
                SEPARATOR,
            ]
        )
        logger.error(block)
        self._append(block)

    def log_exception(
        self, api_name: str, request: APIRequest, exc: BaseException
    ) -> None:
        """Record a transport fault with its full cause chain."""
        lines = [
            SEPARATOR,
            f'Date: {datetime.now().isoformat()}',
            f'API: {api_name} {request.method} {request.resource}',
            *_request_lines(request),
        ]
        lines.extend(_describe_exception(exc))

        cause = _next_cause(exc)
        while cause is not None:
            lines.append('-------------------- Inner Exception --------------------')
            lines.extend(_describe_exception(cause))
            cause = _next_cause(cause)

        block = '\n'.join(lines)
        logger.opt(exception=exc).error(
            f'{api_name} transport fault on {request.method} {request.resource}: {exc}'
        )
        self._append(block)

    def _append(self, block: str) -> None:
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with open(self.path, 'a', encoding='utf-8') as f:
                f.write(block + '\n')
        except OSError as e:
            logger.error(f'Error writing to error log {self.path}: {e}')


def _request_lines(request: APIRequest) -> List[str]:
    params = ', '.join(f'{k}={v}' for k, v in request.params.items())
    return [
        'Request:',
        f'    Method: {request.method}',
        f'    Resource: {request.resource}',
        f'    Parameters: {params}',
        f'    Body: {request.body if request.body is not None else ""}',
    ]


def _describe_exception(exc: BaseException) -> List[str]:
    exc_type = type(exc)
    stack = ''.join(traceback.format_tb(exc.__traceback__)).rstrip()
    return [
        f'Exception Type: {exc_type.__module__}.{exc_type.__qualname__}',
        f'Message: {exc}',
        f'StackTrace:\n{stack}',
    ]


def _next_cause(exc: BaseException) -> Optional[BaseException]:
    if exc.__cause__ is not None:
        return exc.__cause__
    if not exc.__suppress_context__:
        return exc.__context__
    return None


class RetryingExecutor:
    """Run an API operation with bounded retries and exponential backoff.

    Success and 404 responses are terminal. Transport faults and every other
    non-success status are retried ``max_retries`` times, sleeping
    ``2 ** attempt`` seconds before retry ``attempt`` (2, 4, 8, ...).
    """

    def __init__(
        self,
        api_name: str,
        max_retries: int = 3,
        error_log: Optional[ApiErrorLog] = None,
        limiter: Optional[RateLimiter] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        """Initialize retrying executor.

        Args:
            api_name: API name used in logs
            max_retries: Additional attempts after the first one
            error_log: Where failed calls are recorded
            limiter: Rate limiter acquired before every attempt
            sleep: Coroutine used for backoff
        """
        if max_retries < 0:
            raise ValueError('max_retries must not be negative')

        self.api_name = api_name
        self.max_retries = max_retries
        self.error_log = error_log
        self.limiter = limiter
        self._sleep = sleep
        self.logger = logger.bind(component='RetryingExecutor', api=api_name)

    async def execute(
        self,
        operation: Callable[[], Awaitable[APIResponse]],
        request: APIRequest,
    ) -> APIResponse:
        """Execute operation until it succeeds, hits a 404 or runs out of attempts.

        Args:
            operation: Zero argument coroutine function issuing the request
            request: Description of the request, for logging

        Returns:
            Successful or 404 response

        Raises:
            RetryExhausted: If every attempt failed
        """
        total_attempts = self.max_retries + 1
        last_response: Optional[APIResponse] = None
        last_exception: Optional[TransportFault] = None

        for attempt in range(1, total_attempts + 1):
            if self.limiter is not None:
                await self.limiter.acquire()

            try:
                response = await operation()
            except TransportFault as e:
                last_exception = e
                last_response = None
                if self.error_log is not None:
                    self.error_log.log_exception(self.api_name, request, e)
                self.logger.warning(
                    f'Attempt {attempt}/{total_attempts} of {request.method} '
                    f'{request.resource} raised: {e}'
                )
            else:
                if response.success:
                    return response
                if response.not_found:
                    self._log_response(request, response)
                    return response

                last_response = response
                last_exception = None
                self.logger.warning(
                    f'Attempt {attempt}/{total_attempts} of {request.method} '
                    f'{request.resource} failed: {response.error_message}'
                )

            if attempt < total_attempts:
                delay = 2**attempt
                self.logger.info(f'Retrying in {delay}s')
                await self._sleep(delay)

        if last_response is not None:
            self._log_response(request, last_response)

        reason = (
            last_response.error_message
            if last_response is not None
            else str(last_exception)
        )
        raise RetryExhausted(
            f'{self.api_name} {request.method} {request.resource} failed after '
            f'{total_attempts} attempts: {reason}',
            attempts=total_attempts,
            last_response=last_response,
            last_exception=last_exception,
        ) from last_exception

    def _log_response(self, request: APIRequest, response: APIResponse) -> None:
        if self.error_log is not None:
            self.error_log.log_response(self.api_name, request, response)
        else:
            self.logger.error(
                f'{request.method} {request.resource} -> {response.status_code}: '
                f'{response.text}'
            )
