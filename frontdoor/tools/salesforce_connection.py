"""
Salesforce REST connection for sf-frontdoor.

A small httpx-based client holding an OAuth session for one org. It provides
the members the login flow reads (``instance_url``, ``query``,
``refresh_auth`` and ``get_auth_info_fields``) and nothing more.
"""

from typing import Any, Dict, Optional

import httpx

from frontdoor.config.settings import get_settings
from frontdoor.utils.logging import LoggingMixin


class SalesforceAPIError(Exception):
    """Base exception for Salesforce API errors."""
    pass


class SalesforceAuthenticationError(SalesforceAPIError):
    """Raised when the session is invalid or cannot be refreshed."""
    pass


class SalesforceConnection(LoggingMixin):
    """
    Authenticated REST connection to a Salesforce org.

    Use as an async context manager so the underlying HTTP client is
    opened and closed with the connection.
    """

    def __init__(
        self,
        instance_url: Optional[str] = None,
        access_token: Optional[str] = None,
        refresh_token: Optional[str] = None,
        client_id: Optional[str] = None,
        client_secret: Optional[str] = None,
        login_url: Optional[str] = None,
        api_version: Optional[str] = None,
        username: Optional[str] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """
        Initialize the connection.

        Args:
            instance_url: Org base URL (https://acme.my.salesforce.com)
            access_token: Current session ID / OAuth access token
            refresh_token: OAuth refresh token used by refresh_auth()
            client_id: Connected app consumer key for the refresh grant
            client_secret: Connected app consumer secret, if required
            login_url: OAuth host (login.salesforce.com or test.salesforce.com)
            api_version: REST API version, e.g. "60.0"
            username: Username, reported back in auth info
            transport: Optional httpx transport (used by tests)
        """
        super().__init__()
        self.setup_logging("salesforce_connection")

        settings = get_settings().salesforce

        self.instance_url = instance_url
        self.access_token = access_token
        self.refresh_token = refresh_token
        self.client_id = client_id
        self.client_secret = client_secret
        self.login_url = (login_url or settings.login_url).rstrip("/")
        self.api_version = (api_version or settings.api_version).lstrip("vV")
        self.username = username

        self.timeout = httpx.Timeout(30.0)
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

        self.logger.info(
            "Salesforce connection initialized",
            instance_url=self.instance_url,
            has_access_token=bool(self.access_token),
            has_refresh_token=bool(self.refresh_token),
        )

    @classmethod
    def from_settings(cls, **overrides: Any) -> "SalesforceConnection":
        """Build a connection from SF_* settings, letting non-None overrides win."""
        settings = get_settings().salesforce
        values = {
            "instance_url": settings.instance_url,
            "access_token": settings.access_token,
            "refresh_token": settings.refresh_token,
            "client_id": settings.client_id,
            "client_secret": settings.client_secret,
            "login_url": settings.login_url,
            "api_version": settings.api_version,
            "username": settings.username,
        }
        values.update({k: v for k, v in overrides.items() if v is not None})
        return cls(**values)

    async def __aenter__(self):
        """Async context manager entry."""
        self._client = httpx.AsyncClient(
            timeout=self.timeout,
            headers={"Accept": "application/json", "User-Agent": "sf-frontdoor/1.0"},
            transport=self._transport,
        )
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        """Async context manager exit."""
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    def _ensure_client(self) -> httpx.AsyncClient:
        if self._client is None:
            raise SalesforceAPIError("Client not initialized. Use async context manager.")
        return self._client

    async def query(self, soql: str) -> Dict[str, Any]:
        """
        Run a SOQL query.

        Args:
            soql: Query string

        Returns:
            Query result with ``totalSize``, ``done`` and ``records``
        """
        client = self._ensure_client()
        if not self.instance_url or not self.access_token:
            raise SalesforceAuthenticationError("Connection has no instance URL or access token")

        self.log_method_call("query", soql=soql)
        url = f"{self.instance_url.rstrip('/')}/services/data/v{self.api_version}/query"

        try:
            response = await client.get(
                url,
                params={"q": soql},
                headers={"Authorization": f"Bearer {self.access_token}"},
            )
        except httpx.RequestError as e:
            self.log_error("query", e)
            raise SalesforceAPIError(f"Request failed: {e}")

        if response.status_code == 401:
            raise SalesforceAuthenticationError("Session expired or invalid")
        if response.status_code >= 400:
            raise SalesforceAPIError(f"Query failed: {_error_message(response)}")

        result = response.json()
        self.log_method_result("query", {"total_size": result.get("totalSize")})
        return result

    async def refresh_auth(self) -> None:
        """
        Exchange the refresh token for a new access token.

        Updates ``access_token`` and, when the response carries one,
        ``instance_url``.
        """
        client = self._ensure_client()
        if not self.refresh_token or not self.client_id:
            raise SalesforceAuthenticationError("Refreshing requires a refresh token and client ID")

        self.log_method_call("refresh_auth", login_url=self.login_url)
        data = {
            "grant_type": "refresh_token",
            "refresh_token": self.refresh_token,
            "client_id": self.client_id,
        }
        if self.client_secret:
            data["client_secret"] = self.client_secret

        try:
            response = await client.post(f"{self.login_url}/services/oauth2/token", data=data)
        except httpx.RequestError as e:
            self.log_error("refresh_auth", e)
            raise SalesforceAPIError(f"Request failed: {e}")

        if response.status_code >= 400:
            raise SalesforceAuthenticationError(f"Token refresh failed: {_error_message(response)}")

        payload = response.json()
        if not payload.get("access_token"):
            raise SalesforceAuthenticationError("Token refresh response did not include an access token")
        self.access_token = payload["access_token"]
        if payload.get("instance_url"):
            self.instance_url = payload["instance_url"]

        self.logger.info("Access token refreshed", instance_url=self.instance_url)

    def get_auth_info_fields(self) -> Dict[str, str]:
        """Return the session's auth fields, omitting unset values."""
        fields = {
            "accessToken": self.access_token,
            "instanceUrl": self.instance_url,
            "loginUrl": self.login_url,
            "clientId": self.client_id,
            "username": self.username,
        }
        return {k: v for k, v in fields.items() if v}


def _error_message(response: httpx.Response) -> str:
    """Pull the error text out of a REST or OAuth error response."""
    try:
        body = response.json()
    except ValueError:
        return f"HTTP {response.status_code}"

    if isinstance(body, list) and body and isinstance(body[0], dict):
        return body[0].get("message") or f"HTTP {response.status_code}"
    if isinstance(body, dict):
        return body.get("error_description") or body.get("error") or f"HTTP {response.status_code}"
    return f"HTTP {response.status_code}"
