"""
Unit tests for SalesforceConnection.

HTTP is served by httpx.MockTransport; no network access.
"""

import json
from urllib.parse import parse_qs

import httpx
import pytest

from frontdoor.tools.salesforce_connection import (
    SalesforceAPIError,
    SalesforceAuthenticationError,
    SalesforceConnection,
)
from frontdoor.tools.token_resolver import TokenResolver


def _connection(handler, **kwargs):
    values = {
        "instance_url": "https://org.my.salesforce.com",
        "access_token": "00Dxx!OLD",
        "refresh_token": "5Aep861REFRESH",
        "client_id": "3MVG9CLIENT",
        "api_version": "60.0",
    }
    values.update(kwargs)
    return SalesforceConnection(transport=httpx.MockTransport(handler), **values)


@pytest.mark.unit
class TestQuery:

    async def test_query_success(self):
        requests = []

        def handler(request):
            requests.append(request)
            return httpx.Response(200, json={"totalSize": 1, "done": True, "records": [{"Id": "005xx"}]})

        async with _connection(handler) as connection:
            result = await connection.query("SELECT Id FROM User LIMIT 1")

        assert result["totalSize"] == 1
        request = requests[0]
        assert request.url.path == "/services/data/v60.0/query"
        assert request.url.params["q"] == "SELECT Id FROM User LIMIT 1"
        assert request.headers["Authorization"] == "Bearer 00Dxx!OLD"

    async def test_query_unauthorized(self):
        def handler(request):
            return httpx.Response(401, json=[{"message": "Session expired or invalid", "errorCode": "INVALID_SESSION_ID"}])

        async with _connection(handler) as connection:
            with pytest.raises(SalesforceAuthenticationError):
                await connection.query("SELECT Id FROM User LIMIT 1")

    async def test_query_error_message(self):
        def handler(request):
            return httpx.Response(400, json=[{"message": "unexpected token: FROM", "errorCode": "MALFORMED_QUERY"}])

        async with _connection(handler) as connection:
            with pytest.raises(SalesforceAPIError, match="unexpected token: FROM"):
                await connection.query("SELECT FROM")

    async def test_query_network_error(self):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        async with _connection(handler) as connection:
            with pytest.raises(SalesforceAPIError, match="Request failed"):
                await connection.query("SELECT Id FROM User LIMIT 1")

    async def test_query_requires_context_manager(self):
        connection = _connection(lambda request: httpx.Response(200, json={}))

        with pytest.raises(SalesforceAPIError, match="Client not initialized"):
            await connection.query("SELECT Id FROM User LIMIT 1")


@pytest.mark.unit
class TestRefreshAuth:

    async def test_refresh_replaces_token_and_instance(self, token_response):
        requests = []

        def handler(request):
            requests.append(request)
            return httpx.Response(200, json=token_response)

        async with _connection(handler, client_secret="SECRET") as connection:
            await connection.refresh_auth()

        assert connection.access_token == "00Dxx!REFRESHED"
        assert connection.instance_url == "https://org2.my.salesforce.com"

        request = requests[0]
        assert str(request.url) == "https://login.salesforce.com/services/oauth2/token"
        form = parse_qs(request.content.decode())
        assert form == {
            "grant_type": ["refresh_token"],
            "refresh_token": ["5Aep861REFRESH"],
            "client_id": ["3MVG9CLIENT"],
            "client_secret": ["SECRET"],
        }

    async def test_refresh_rejected(self):
        def handler(request):
            return httpx.Response(400, json={"error": "invalid_grant", "error_description": "expired access/refresh token"})

        async with _connection(handler) as connection:
            with pytest.raises(SalesforceAuthenticationError, match="expired access/refresh token"):
                await connection.refresh_auth()

        assert connection.access_token == "00Dxx!OLD"

    async def test_refresh_response_without_token(self):
        def handler(request):
            return httpx.Response(200, json={"instance_url": "https://org2.my.salesforce.com"})

        async with _connection(handler) as connection:
            with pytest.raises(SalesforceAuthenticationError, match="did not include an access token"):
                await connection.refresh_auth()

        assert connection.access_token == "00Dxx!OLD"
        assert connection.instance_url == "https://org.my.salesforce.com"

    async def test_refresh_requires_refresh_token(self):
        async with _connection(lambda request: httpx.Response(200, json={}), refresh_token=None) as connection:
            with pytest.raises(SalesforceAuthenticationError, match="refresh token"):
                await connection.refresh_auth()


@pytest.mark.unit
class TestAuthInfo:

    def test_auth_info_fields_omit_unset(self):
        connection = SalesforceConnection(instance_url="https://org.my.salesforce.com", access_token="TOKEN")

        assert connection.get_auth_info_fields() == {
            "accessToken": "TOKEN",
            "instanceUrl": "https://org.my.salesforce.com",
            "loginUrl": "https://login.salesforce.com",
        }

    def test_from_settings(self, monkeypatch):
        monkeypatch.setenv("SF_INSTANCE_URL", "https://env.my.salesforce.com")
        monkeypatch.setenv("SF_ACCESS_TOKEN", "ENV_TOKEN")
        monkeypatch.setenv("SF_LOGIN_URL", "https://test.salesforce.com/")
        monkeypatch.setenv("SF_API_VERSION", "v59.0")

        connection = SalesforceConnection.from_settings(access_token="CLI_TOKEN", refresh_token=None)

        assert connection.instance_url == "https://env.my.salesforce.com"
        assert connection.access_token == "CLI_TOKEN"
        assert connection.login_url == "https://test.salesforce.com"
        assert connection.api_version == "59.0"


@pytest.mark.unit
class TestResolverIntegration:
    """The REST connection satisfies the resolver's expectations."""

    async def test_expired_session_is_refreshed_before_resolution(self, token_response):
        def handler(request):
            if request.url.path.endswith("/query"):
                return httpx.Response(401, json=[{"message": "Session expired or invalid"}])
            return httpx.Response(200, content=json.dumps(token_response).encode())

        async with _connection(handler) as connection:
            token = await TokenResolver().resolve(connection)

        assert token == "00Dxx!REFRESHED"

    async def test_refresh_failure_keeps_existing_token(self):
        def handler(request):
            return httpx.Response(503, text="Service Unavailable")

        async with _connection(handler) as connection:
            token = await TokenResolver().resolve(connection)

        assert token == "00Dxx!OLD"
