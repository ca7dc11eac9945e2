"""Token management for the N-central REST API.

N-central issues short lived access tokens in exchange for the JWT of an
API-only user. The access token is refreshed with the refresh token and,
once the refresh token expires as well, the JWT is exchanged again.
"""

import asyncio
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

import aiohttp
import requests
from loguru import logger
from pydantic import BaseModel

from .exceptions import (
    NCentralAPIError,
    NCentralAuthenticationError,
    NCentralInvalidResponseError,
    NCentralRateLimitError,
    NCentralTokenExpiredError,
)

AUTHENTICATE_PATH = '/api/auth/authenticate'
REFRESH_PATH = '/api/auth/refresh'

DEFAULT_EXPIRY_SECONDS = 3600
EXPIRY_BUFFER = timedelta(seconds=30)


def _expiry_seconds(token_info: Dict[str, Any]) -> int:
    for key in ('expirySeconds', 'expiresInSeconds', 'expires_in_seconds'):
        if token_info.get(key) is not None:
            return int(token_info[key])
    return DEFAULT_EXPIRY_SECONDS


class AuthTokens(BaseModel):
    """Access and refresh tokens with their expiry times."""

    access_token: str
    refresh_token: Optional[str] = None
    access_expires_at: datetime
    refresh_expires_at: datetime

    @classmethod
    def from_response(cls, data: Any) -> 'AuthTokens':
        """Build tokens from an ``/api/auth/authenticate`` response body."""
        try:
            tokens = data['tokens']
            access = tokens['access']
            refresh = tokens.get('refresh') or {}
            now = datetime.now(timezone.utc)
            return cls(
                access_token=access['token'],
                refresh_token=refresh.get('token'),
                access_expires_at=now + timedelta(seconds=_expiry_seconds(access)),
                refresh_expires_at=now + timedelta(seconds=_expiry_seconds(refresh)),
            )
        except (KeyError, TypeError) as e:
            raise NCentralInvalidResponseError(
                f'Unexpected authentication response: missing {e}'
            )

    def with_refreshed_access(self, data: Any) -> 'AuthTokens':
        """Return a copy carrying the access token from a refresh response."""
        try:
            access = data['tokens']['access']
        except (KeyError, TypeError) as e:
            raise NCentralInvalidResponseError(
                f'Unexpected refresh response: missing {e}'
            )
        now = datetime.now(timezone.utc)
        return self.model_copy(
            update={
                'access_token': access['token'],
                'access_expires_at': now
                + timedelta(seconds=_expiry_seconds(access)),
            }
        )

    def is_access_expired(self) -> bool:
        return datetime.now(timezone.utc) >= self.access_expires_at - EXPIRY_BUFFER

    def is_refresh_expired(self) -> bool:
        return (
            self.refresh_token is None
            or datetime.now(timezone.utc) >= self.refresh_expires_at
        )


class TokenManager:
    """Exchanges the JWT for access tokens and keeps them fresh."""

    def __init__(
        self,
        base_url: str,
        jwt: str,
        session: requests.Session,
        timeout: int = 30,
        verify_ssl: bool = True,
    ):
        """Initialize token manager.

        Args:
            base_url: Server base URL
            jwt: API-only user JWT
            session: Session used for synchronous auth calls
            timeout: Request timeout in seconds
            verify_ssl: Verify TLS certificates
        """
        if not jwt:
            raise NCentralAuthenticationError('No JWT provided')

        self.base_url = base_url.rstrip('/')
        self.jwt = jwt
        self.session = session
        self.timeout = timeout
        self.verify_ssl = verify_ssl
        self.tokens: Optional[AuthTokens] = None

    @property
    def is_authenticated(self) -> bool:
        return self.tokens is not None and not self.tokens.is_refresh_expired()

    def clear(self) -> None:
        self.tokens = None

    def _check_status(self, status: int, body: str) -> None:
        if status in (401, 403):
            raise NCentralAuthenticationError(
                f'Authentication failed: {body}', status_code=status
            )
        if status == 429:
            raise NCentralRateLimitError(
                'Rate limited during authentication', status_code=status
            )
        if status >= 400:
            raise NCentralAPIError(
                f'Authentication request failed: HTTP {status}: {body}',
                status_code=status,
            )

    def _post(self, path: str, bearer: str) -> Any:
        try:
            response = self.session.post(
                self.base_url + path,
                headers={'Authorization': f'Bearer {bearer}'},
                timeout=self.timeout,
                verify=self.verify_ssl,
            )
        except requests.RequestException as e:
            logger.error(f'Network error during authentication: {e}')
            raise NCentralAPIError(f'Network error: {e}')

        self._check_status(response.status_code, response.text)
        try:
            return response.json()
        except ValueError:
            raise NCentralInvalidResponseError('Authentication response is not JSON')

    async def _post_async(self, path: str, bearer: str) -> Any:
        timeout = aiohttp.ClientTimeout(total=self.timeout)
        try:
            async with aiohttp.ClientSession(timeout=timeout) as session:
                async with session.post(
                    self.base_url + path,
                    headers={'Authorization': f'Bearer {bearer}'},
                    ssl=None if self.verify_ssl else False,
                ) as response:
                    body = await response.text()
                    self._check_status(response.status, body)
                    try:
                        return await response.json(content_type=None)
                    except ValueError:
                        raise NCentralInvalidResponseError(
                            'Authentication response is not JSON'
                        )
        except asyncio.TimeoutError:
            logger.error(f'Timeout during authentication against {self.base_url}')
            raise NCentralAPIError(
                f'Authentication timed out after {self.timeout} seconds'
            )
        except aiohttp.ClientError as e:
            logger.error(f'Network error during authentication: {e}')
            raise NCentralAPIError(f'Network error: {e}')

    def authenticate(self) -> AuthTokens:
        """Exchange the JWT for a new token pair."""
        self.tokens = AuthTokens.from_response(self._post(AUTHENTICATE_PATH, self.jwt))
        logger.debug(f'Authenticated against {self.base_url}')
        return self.tokens

    async def authenticate_async(self) -> AuthTokens:
        """Exchange the JWT for a new token pair (async version)."""
        data = await self._post_async(AUTHENTICATE_PATH, self.jwt)
        self.tokens = AuthTokens.from_response(data)
        logger.debug(f'Authenticated against {self.base_url}')
        return self.tokens

    def get_token(self) -> str:
        """Get a valid access token, authenticating or refreshing as needed."""
        if self.tokens is None or self.tokens.is_refresh_expired():
            return self.authenticate().access_token

        if self.tokens.is_access_expired():
            try:
                data = self._post(REFRESH_PATH, self.tokens.refresh_token)
            except NCentralAuthenticationError:
                raise NCentralTokenExpiredError('Refresh token rejected')
            self.tokens = self.tokens.with_refreshed_access(data)

        return self.tokens.access_token

    async def get_token_async(self) -> str:
        """Get a valid access token (async version)."""
        if self.tokens is None or self.tokens.is_refresh_expired():
            return (await self.authenticate_async()).access_token

        if self.tokens.is_access_expired():
            try:
                data = await self._post_async(REFRESH_PATH, self.tokens.refresh_token)
            except NCentralAuthenticationError:
                raise NCentralTokenExpiredError('Refresh token rejected')
            self.tokens = self.tokens.with_refreshed_access(data)

        return self.tokens.access_token
