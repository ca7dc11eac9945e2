"""N-central REST API client implementation."""

import asyncio
import json
import time
from typing import Any, Dict, List, Optional, Tuple

import aiohttp
import requests
from loguru import logger
from pydantic import BaseModel

from ..config.config import ServerConfig
from . import endpoints
from .auth import TokenManager
from .exceptions import (
    NCentralAPIError,
    NCentralAuthenticationError,
    NCentralInvalidResponseError,
    NCentralNotFoundError,
    NCentralPermissionError,
    NCentralRateLimitError,
    NCentralValidationError,
)
from .rate_limiter import RateLimiter

USER_AGENT = 'nc-migrate/0.1.0'
DEFAULT_RETRY_AFTER = 5


class APIResponse(BaseModel):
    """Standard API response wrapper."""

    status_code: int
    data: Any
    headers: Dict[str, str]
    success: bool


def parse_page(body: Any, page: int, page_size: int) -> Tuple[List[Dict], bool]:
    """Split a listing response into its items and a has-more flag.

    Listing endpoints answer either with a bare list or with
    ``{"data": [...], "totalPages": n, ...}``. A page is the last one when
    the server says so, when it is empty, or when it is short.
    """
    total_pages = None
    if isinstance(body, list):
        items = body
    elif isinstance(body, dict):
        items = body.get('data') or []
        page_info = body.get('pageInfo') if isinstance(body.get('pageInfo'), dict) else body
        total_pages = page_info.get('totalPages')
    elif body is None:
        items = []
    else:
        raise NCentralInvalidResponseError(
            f'Unexpected listing response type: {type(body).__name__}'
        )

    if not isinstance(items, list):
        raise NCentralInvalidResponseError('Listing response "data" is not a list')

    has_more = bool(items) and len(items) >= page_size
    if total_pages is not None:
        has_more = has_more and page < int(total_pages)

    return items, has_more


class NCentralClient:
    """N-central API client bound to one server."""

    def __init__(self, config: ServerConfig):
        """Initialize N-central client.

        Args:
            config: Server configuration
        """
        self.config = config
        self.base_url = config.url.rstrip('/')
        self.session = requests.Session()
        self.session.headers.update(
            {'Content-Type': 'application/json', 'User-Agent': USER_AGENT}
        )

        self.auth = TokenManager(
            self.base_url,
            config.jwt,
            self.session,
            timeout=config.timeout,
            verify_ssl=config.verify_ssl,
        )
        self.rate_limiter = RateLimiter(config.rate_limit_per_second)

        logger.info(f'Initialized N-central client for {self.base_url}')

    def _build_url(self, endpoint: str) -> str:
        """Build full API URL from an endpoint path."""
        return self.base_url + '/' + endpoint.lstrip('/')

    def _raise_for_status(
        self, status: int, headers: Dict[str, str], data: Any, text: str
    ) -> None:
        """Translate an HTTP error status into an API exception.

        Raises:
            NCentralAPIError: For any status of 400 and above
        """
        if status < 400:
            return

        if status == 429:
            retry_after = int(headers.get('Retry-After', DEFAULT_RETRY_AFTER))
            raise NCentralRateLimitError(
                f'Rate limit exceeded. Retry after {retry_after} seconds',
                retry_after=retry_after,
                status_code=status,
            )

        if isinstance(data, dict):
            message = data.get('message') or data.get('error') or f'HTTP {status}'
        else:
            message = f'HTTP {status}: {text[:500]}' if text else f'HTTP {status}'
        response_data = data if isinstance(data, dict) else None

        if status == 401:
            self.auth.clear()
            raise NCentralAuthenticationError(
                f'Authentication failed: {message}',
                status_code=status,
                response_data=response_data,
            )
        if status == 403:
            raise NCentralPermissionError(
                f'Permission denied: {message}',
                status_code=status,
                response_data=response_data,
            )
        if status == 404:
            raise NCentralNotFoundError(
                f'Resource not found: {message}',
                status_code=status,
                response_data=response_data,
            )
        if status in (400, 409, 422):
            raise NCentralValidationError(
                f'Request rejected: {message}',
                status_code=status,
                response_data=response_data,
            )

        raise NCentralAPIError(
            f'API request failed: {message}',
            status_code=status,
            response_data=response_data,
        )

    @staticmethod
    def _decode(text: str) -> Any:
        if not text:
            return None
        try:
            return json.loads(text)
        except ValueError:
            return text

    def _handle_response(self, response: requests.Response) -> APIResponse:
        """Handle API response and convert to standard format.

        Raises:
            NCentralAPIError: For various API errors
        """
        headers = dict(response.headers)
        text = response.text if response.content else ''
        data = self._decode(text)

        self._raise_for_status(response.status_code, headers, data, text)

        return APIResponse(
            status_code=response.status_code,
            data=data,
            headers=headers,
            success=200 <= response.status_code < 300,
        )

    def _request(
        self,
        method: str,
        endpoint: str,
        params: Optional[Dict[str, Any]] = None,
        data: Optional[Any] = None,
    ) -> APIResponse:
        """Make a synchronous API request, retrying when rate limited."""
        url = self._build_url(endpoint)
        attempt = 0

        while True:
            self.rate_limiter.acquire_sync()
            token = self.auth.get_token()

            try:
                response = self.session.request(
                    method,
                    url,
                    params=params,
                    json=data,
                    headers={'Authorization': f'Bearer {token}'},
                    timeout=self.config.timeout,
                    verify=self.config.verify_ssl,
                )
                return self._handle_response(response)
            except NCentralRateLimitError as e:
                if attempt >= self.config.max_retries:
                    raise
                attempt += 1
                logger.warning(
                    f'Rate limited on {method} {endpoint}, '
                    f'retrying after {e.retry_after} seconds'
                )
                time.sleep(e.retry_after)
            except requests.RequestException as e:
                logger.error(f'Network error during {method} request: {e}')
                raise NCentralAPIError(f'Network error: {e}')

    async def _make_request_async(
        self,
        method: str,
        endpoint: str,
        params: Optional[Dict[str, Any]] = None,
        data: Optional[Any] = None,
    ) -> APIResponse:
        """Make an asynchronous API request, retrying when rate limited."""
        url = self._build_url(endpoint)
        timeout = aiohttp.ClientTimeout(total=self.config.timeout)
        attempt = 0

        while True:
            await self.rate_limiter.acquire()

            try:
                token = await self.auth.get_token_async()
                headers = {
                    'Content-Type': 'application/json',
                    'User-Agent': USER_AGENT,
                    'Authorization': f'Bearer {token}',
                }
                async with aiohttp.ClientSession(
                    headers=headers, timeout=timeout
                ) as session:
                    async with session.request(
                        method=method,
                        url=url,
                        params=params,
                        json=data,
                        ssl=None if self.config.verify_ssl else False,
                    ) as response:
                        response_headers = dict(response.headers)
                        text = await response.text()
                        response_data = self._decode(text)

                        self._raise_for_status(
                            response.status, response_headers, response_data, text
                        )

                        return APIResponse(
                            status_code=response.status,
                            data=response_data,
                            headers=response_headers,
                            success=200 <= response.status < 300,
                        )
            except NCentralRateLimitError as e:
                if attempt >= self.config.max_retries:
                    raise
                attempt += 1
                logger.warning(
                    f'Rate limited on {method} {endpoint}, '
                    f'retrying after {e.retry_after} seconds'
                )
                await asyncio.sleep(e.retry_after)
            except asyncio.TimeoutError:
                logger.error(f'Timeout during {method} {endpoint}')
                raise NCentralAPIError(
                    f'Request timed out after {self.config.timeout} seconds'
                )
            except aiohttp.ClientError as e:
                logger.error(f'Network error during API request: {e}')
                raise NCentralAPIError(f'Network error: {e}')

    def get(self, endpoint: str, params: Optional[Dict[str, Any]] = None) -> APIResponse:
        """Make GET request."""
        return self._request('GET', endpoint, params=params)

    def post(self, endpoint: str, data: Optional[Any] = None) -> APIResponse:
        """Make POST request."""
        return self._request('POST', endpoint, data=data)

    async def get_async(
        self, endpoint: str, params: Optional[Dict[str, Any]] = None
    ) -> APIResponse:
        """Make asynchronous GET request."""
        return await self._make_request_async('GET', endpoint, params=params)

    async def post_async(self, endpoint: str, data: Optional[Any] = None) -> APIResponse:
        """Make asynchronous POST request."""
        return await self._make_request_async('POST', endpoint, data=data)

    async def get_page_async(
        self,
        endpoint: str,
        page: int,
        page_size: Optional[int] = None,
        params: Optional[Dict[str, Any]] = None,
    ) -> Tuple[List[Dict[str, Any]], bool]:
        """Fetch one page of a listing endpoint.

        Args:
            endpoint: API endpoint
            page: Page number, starting at 1
            page_size: Items per page (defaults to the configured size)
            params: Extra query parameters

        Returns:
            Tuple of the page items and whether more pages follow
        """
        page_size = page_size or self.config.page_size
        query = dict(params or {})
        query.update({'pageNumber': page, 'pageSize': page_size})

        response = await self.get_async(endpoint, params=query)
        items, has_more = parse_page(response.data, page, page_size)
        logger.debug(f'Fetched {endpoint} page {page}: {len(items)} items')
        return items, has_more

    def test_connection(self) -> bool:
        """Test connection and authentication against the server.

        Returns:
            True if connection successful, False otherwise
        """
        try:
            self.auth.authenticate()
            return self.get(endpoints.SERVER_INFO).success
        except NCentralAPIError as e:
            logger.error(f'Connection test failed: {e}')
            return False

    def get_version(self) -> Optional[str]:
        """Get the N-central version, if the server reports one."""
        try:
            response = self.get(endpoints.SERVER_INFO)
        except NCentralAPIError as e:
            logger.warning(f'Could not retrieve N-central version: {e}')
            return None

        if isinstance(response.data, dict):
            for key in ('ncentral', 'ncentralVersion', 'productVersion', 'version'):
                if response.data.get(key):
                    return str(response.data[key])
        return None

    def get_service_org(self, so_id: int) -> Dict[str, Any]:
        """Fetch a service organization by id.

        Raises:
            NCentralNotFoundError: If the service organization does not exist
        """
        response = self.get(endpoints.service_org(so_id))
        data = response.data
        if isinstance(data, dict) and isinstance(data.get('data'), dict):
            data = data['data']
        return data

    def close(self):
        """Close the client session."""
        self.session.close()
        logger.debug(f'N-central client session closed for {self.base_url}')

    def __enter__(self):
        """Context manager entry."""
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        """Context manager exit."""
        self.close()


class NCentralClientFactory:
    """Factory for creating N-central API clients."""

    @staticmethod
    def create_client(config: ServerConfig) -> NCentralClient:
        """Create an N-central client from configuration.

        Raises:
            NCentralAuthenticationError: If no JWT is configured
        """
        if not config.jwt:
            raise NCentralAuthenticationError('A JWT must be provided')

        return NCentralClient(config)
