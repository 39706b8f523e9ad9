"""CRM API client implementation."""

import asyncio
import json
from typing import Any, Dict, Optional
from urllib.parse import urljoin

import aiohttp
import requests
from loguru import logger
from pydantic import BaseModel, Field

from ..config.config import ApiConfig
from .exceptions import AuthenticationError, TransportFault

USER_AGENT = 'crm-migrate/0.1.0'


class APIRequest(BaseModel):
    """Description of a single API call, kept for retries and error logs."""

    method: str = Field(default='GET', description='HTTP method')
    resource: str = Field(..., description='Resource path relative to the API root')
    params: Dict[str, Any] = Field(default_factory=dict, description='Query parameters')
    body: Optional[Dict[str, Any]] = Field(default=None, description='JSON body')


class APIResponse(BaseModel):
    """Standard API response wrapper."""

    status_code: int
    data: Any = None
    text: str = ''
    headers: Dict[str, str] = Field(default_factory=dict)
    success: bool
    error_message: Optional[str] = None

    @property
    def not_found(self) -> bool:
        return self.status_code == 404


class APIClient:
    """HTTP client for one CRM API.

    Non-success statuses are returned, not raised, so the retry layer can
    decide what to do with them. Connection level failures raise
    ``TransportFault``.
    """

    def __init__(self, name: str, config: ApiConfig):
        """Initialize API client.

        Args:
            name: Human readable API name used in logs
            config: API configuration
        """
        self.name = name
        self.config = config
        self.base_url = config.url.rstrip('/')
        self.headers = {
            'Content-Type': 'application/json',
            'User-Agent': USER_AGENT,
        }

        # Set authentication headers
        if config.token:
            self.headers['Authorization'] = f'Bearer {config.token}'
        elif config.api_key:
            self.headers['Authorization'] = f'Token token={config.api_key}'
        else:
            raise AuthenticationError(f'No credentials provided for {name}')

        self.session = requests.Session()
        self.session.headers.update(self.headers)

        logger.info(f'Initialized {name} client for {config.url}')

    def _build_url(self, resource: str) -> str:
        """Build full API URL from a resource path."""
        return urljoin(self.base_url + '/', resource.lstrip('/'))

    async def send(self, request: APIRequest) -> APIResponse:
        """Issue a request and wrap the answer, whatever its status.

        Args:
            request: Request to send

        Returns:
            API response

        Raises:
            TransportFault: If the request could not be completed
        """
        url = self._build_url(request.resource)
        timeout = aiohttp.ClientTimeout(total=self.config.timeout)

        try:
            async with aiohttp.ClientSession(
                headers=self.headers, timeout=timeout
            ) as session:
                async with session.request(
                    method=request.method,
                    url=url,
                    params=_query_params(request.params),
                    json=request.body,
                ) as response:
                    text = await response.text(errors='replace')
                    return _wrap_response(
                        response.status, dict(response.headers), text
                    )
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise TransportFault(
                f'{request.method} {request.resource} failed: {e!r}'
            ) from e

    def test_connection(self, resource: str) -> bool:
        """Check that the API answers with the configured credentials.

        Args:
            resource: Cheap resource to probe

        Returns:
            True if connection successful, False otherwise
        """
        try:
            response = self.session.get(
                self._build_url(resource),
                params={'limit': 1},
                timeout=self.config.timeout,
            )
        except requests.RequestException as e:
            logger.error(f'{self.name} connection test failed: {e}')
            return False

        if not response.ok:
            logger.error(
                f'{self.name} connection test failed: HTTP {response.status_code}'
            )
        return response.ok

    def close(self):
        """Close the client session."""
        self.session.close()
        logger.info(f'{self.name} client session closed')

    def __enter__(self):
        """Context manager entry."""
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        """Context manager exit."""
        self.close()


def _query_params(params: Dict[str, Any]) -> Dict[str, str]:
    """Flatten query parameters; lists become comma separated values."""
    flat = {}
    for key, value in params.items():
        if value is None:
            continue
        if isinstance(value, (list, tuple)):
            value = ','.join(str(v) for v in value)
        flat[key] = str(value)
    return flat


def _wrap_response(status: int, headers: Dict[str, str], text: str) -> APIResponse:
    try:
        data = json.loads(text) if text else None
    except ValueError:
        data = None

    success = 200 <= status < 300
    error_message = None
    if not success:
        error_message = f'HTTP {status}'
        if isinstance(data, dict) and data.get('message'):
            error_message = f'HTTP {status}: {data["message"]}'

    return APIResponse(
        status_code=status,
        data=data,
        text=text,
        headers=headers,
        success=success,
        error_message=error_message,
    )


class APIClientFactory:
    """Factory for creating CRM API clients."""

    @staticmethod
    def create_client(name: str, config: ApiConfig) -> APIClient:
        """Create API client from configuration.

        Raises:
            AuthenticationError: If no credentials are configured
        """
        if not config.token and not config.api_key:
            raise AuthenticationError(
                f'Either token or api_key must be provided for {name}'
            )

        return APIClient(name, config)
