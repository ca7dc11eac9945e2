"""Tests for N-central token management."""

from datetime import datetime, timedelta, timezone

import pytest
from unittest.mock import Mock

from nc_migrate.api.auth import AuthTokens, TokenManager
from nc_migrate.api.exceptions import (
    NCentralAPIError,
    NCentralAuthenticationError,
    NCentralInvalidResponseError,
    NCentralTokenExpiredError,
)

AUTH_BODY = {
    'tokens': {
        'access': {'token': 'access-1', 'type': 'Bearer', 'expirySeconds': 3600},
        'refresh': {'token': 'refresh-1', 'type': 'Bearer', 'expirySeconds': 90000},
    }
}


def _response(status_code=200, body=None):
    response = Mock()
    response.status_code = status_code
    response.text = str(body)
    response.json.return_value = body
    return response


class TestAuthTokens:
    """Test token parsing and expiry."""

    def test_from_response(self):
        tokens = AuthTokens.from_response(AUTH_BODY)

        assert tokens.access_token == 'access-1'
        assert tokens.refresh_token == 'refresh-1'
        assert tokens.is_access_expired() is False
        assert tokens.is_refresh_expired() is False

    def test_from_response_missing_tokens(self):
        with pytest.raises(NCentralInvalidResponseError):
            AuthTokens.from_response({'unexpected': True})

    def test_access_expiry_buffer(self):
        """Tokens count as expired shortly before their expiry time."""
        now = datetime.now(timezone.utc)
        tokens = AuthTokens(
            access_token='a',
            refresh_token='r',
            access_expires_at=now + timedelta(seconds=10),
            refresh_expires_at=now + timedelta(hours=1),
        )

        assert tokens.is_access_expired() is True
        assert tokens.is_refresh_expired() is False

    def test_with_refreshed_access(self):
        tokens = AuthTokens.from_response(AUTH_BODY)

        refreshed = tokens.with_refreshed_access(
            {'tokens': {'access': {'token': 'access-2', 'expirySeconds': 60}}}
        )

        assert refreshed.access_token == 'access-2'
        assert refreshed.refresh_token == 'refresh-1'
        assert tokens.access_token == 'access-1'


class TestTokenManager:
    """Test JWT exchange and refresh."""

    def setup_method(self):
        self.session = Mock()
        self.manager = TokenManager(
            'https://ncentral.example.com/', 'the-jwt', self.session, timeout=10
        )

    def test_requires_jwt(self):
        with pytest.raises(NCentralAuthenticationError):
            TokenManager('https://ncentral.example.com', '', Mock())

    def test_get_token_authenticates_with_jwt(self):
        self.session.post.return_value = _response(200, AUTH_BODY)

        assert self.manager.get_token() == 'access-1'
        args, kwargs = self.session.post.call_args
        assert args[0] == 'https://ncentral.example.com/api/auth/authenticate'
        assert kwargs['headers'] == {'Authorization': 'Bearer the-jwt'}
        assert self.manager.is_authenticated is True

    def test_get_token_reuses_valid_token(self):
        self.session.post.return_value = _response(200, AUTH_BODY)

        self.manager.get_token()
        self.manager.get_token()

        assert self.session.post.call_count == 1

    def test_get_token_refreshes_expired_access(self):
        self.session.post.return_value = _response(200, AUTH_BODY)
        self.manager.get_token()
        self.manager.tokens = self.manager.tokens.model_copy(
            update={'access_expires_at': datetime.now(timezone.utc)}
        )
        self.session.post.return_value = _response(
            200, {'tokens': {'access': {'token': 'access-2', 'expirySeconds': 3600}}}
        )

        assert self.manager.get_token() == 'access-2'
        args, kwargs = self.session.post.call_args
        assert args[0].endswith('/api/auth/refresh')
        assert kwargs['headers'] == {'Authorization': 'Bearer refresh-1'}

    def test_rejected_refresh(self):
        self.session.post.return_value = _response(200, AUTH_BODY)
        self.manager.get_token()
        self.manager.tokens = self.manager.tokens.model_copy(
            update={'access_expires_at': datetime.now(timezone.utc)}
        )
        self.session.post.return_value = _response(401, {'message': 'expired'})

        with pytest.raises(NCentralTokenExpiredError):
            self.manager.get_token()

    def test_authentication_rejected(self):
        self.session.post.return_value = _response(401, {'message': 'bad jwt'})

        with pytest.raises(NCentralAuthenticationError):
            self.manager.authenticate()
        assert self.manager.is_authenticated is False

    def test_server_error(self):
        self.session.post.return_value = _response(500, {'message': 'boom'})

        with pytest.raises(NCentralAPIError) as exc_info:
            self.manager.authenticate()
        assert exc_info.value.status_code == 500

    def test_clear(self):
        self.session.post.return_value = _response(200, AUTH_BODY)
        self.manager.get_token()

        self.manager.clear()

        assert self.manager.is_authenticated is False


class TestTokenManagerAsync:
    """Test asynchronous JWT exchange and refresh failures."""

    def setup_method(self):
        self.manager = TokenManager(
            'https://ncentral.example.com', 'the-jwt', Mock(), timeout=1
        )

    @pytest.mark.asyncio
    async def test_authenticate_timeout(self, timing_out_aiohttp):
        with pytest.raises(NCentralAPIError, match='timed out after 1 seconds'):
            await self.manager.get_token_async()

        assert self.manager.is_authenticated is False

    @pytest.mark.asyncio
    async def test_refresh_timeout(self, timing_out_aiohttp):
        tokens = AuthTokens.from_response(AUTH_BODY)
        self.manager.tokens = tokens.model_copy(
            update={'access_expires_at': datetime.now(timezone.utc)}
        )

        with pytest.raises(NCentralAPIError, match='timed out'):
            await self.manager.get_token_async()

        assert self.manager.tokens.refresh_token == 'refresh-1'
