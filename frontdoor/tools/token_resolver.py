"""
Access token resolution for authenticated Salesforce connections.

Connection objects in the wild expose the current session token in several
incompatible ways depending on the client library and its version. The
resolver walks an ordered list of probes and returns the first token found.
"""

import inspect
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, List, Mapping, Optional, Sequence, Tuple

from frontdoor.errors import CredentialResolutionError
from frontdoor.utils.logging import LoggingMixin

LIVENESS_QUERY = "SELECT Id FROM User LIMIT 1"

# Field names used for the token by different auth-info shapes, highest priority first.
AUTH_INFO_TOKEN_FIELDS = ("accessToken", "access_token", "token")

# Attributes holding the raw token on the connection itself.
RAW_TOKEN_ATTRIBUTES = ("access_token", "session_id")


async def _maybe_await(value: Any) -> Any:
    """Await coroutine results so sync and async connections look the same."""
    if inspect.isawaitable(value):
        return await value
    return value


def _read_field(source: Any, name: str) -> Any:
    if source is None:
        return None
    if isinstance(source, Mapping):
        return source.get(name)
    return getattr(source, name, None)


def _as_token(value: Any) -> Optional[str]:
    if isinstance(value, str) and value.strip():
        return value
    return None


async def _from_auth_info_fields(connection: Any) -> Optional[str]:
    fields = await _maybe_await(connection.get_auth_info_fields())
    return _as_token(_read_field(fields, "accessToken"))


async def _from_auth_info(connection: Any) -> Optional[str]:
    auth_info = await _maybe_await(connection.get_auth_info())
    for name in AUTH_INFO_TOKEN_FIELDS:
        token = _as_token(_read_field(auth_info, name))
        if token:
            return token
    return None


async def _from_connection_attributes(connection: Any) -> Optional[str]:
    for name in RAW_TOKEN_ATTRIBUTES:
        token = _as_token(getattr(connection, name, None))
        if token:
            return token
    return None


@dataclass(frozen=True)
class TokenProbe:
    """A named strategy for reading the access token off a connection."""

    name: str
    read: Callable[[Any], Awaitable[Optional[str]]]


DEFAULT_PROBES: Tuple[TokenProbe, ...] = (
    TokenProbe("auth_info_fields", _from_auth_info_fields),
    TokenProbe("auth_info", _from_auth_info),
    TokenProbe("connection_attribute", _from_connection_attributes),
)


class TokenResolver(LoggingMixin):
    """
    Produces a usable bearer token from an authenticated connection.

    Before reading the token the resolver issues a trivial query and, if
    that fails, asks the connection to refresh itself. Both steps are
    best-effort: whatever they raise is logged and dropped.

    Probes run in order and stop at the first non-empty token. A probe
    raising is treated the same as a probe finding nothing.
    """

    def __init__(
        self,
        probes: Sequence[TokenProbe] = DEFAULT_PROBES,
        liveness_query: str = LIVENESS_QUERY,
    ):
        super().__init__()
        self.setup_logging("token_resolver")
        self.probes = tuple(probes)
        self.liveness_query = liveness_query

    async def ensure_authenticated(self, connection: Any) -> None:
        """Run the liveness query, refreshing auth if it fails. Never raises."""
        try:
            await _maybe_await(connection.query(self.liveness_query))
            return
        except Exception as e:
            self.logger.debug("Liveness query failed, refreshing auth", error=str(e))

        try:
            await _maybe_await(connection.refresh_auth())
            self.logger.debug("Connection auth refreshed")
        except Exception as e:
            # Continue anyway; one of the probes may still find a token.
            self.logger.debug("Auth refresh failed", error=str(e))

    async def resolve(self, connection: Any) -> str:
        """
        Resolve the access token for a connection.

        Args:
            connection: Authenticated API connection (sync or async methods)

        Returns:
            The first non-empty token found

        Raises:
            CredentialResolutionError: If every probe came up empty
        """
        await self.ensure_authenticated(connection)

        for probe in self.probes:
            try:
                token = await probe.read(connection)
            except Exception as e:
                self.logger.debug("Token probe failed", probe=probe.name, error=str(e))
                continue

            if token:
                self.logger.info("Access token resolved", probe=probe.name)
                return token

            self.logger.debug("Token probe found nothing", probe=probe.name)

        available_fields, introspection_error = await self._describe_auth_info_fields(connection)
        if introspection_error is None:
            debug_info = f"Available auth info fields: {', '.join(available_fields) or 'none'}."
        else:
            debug_info = f"Could not retrieve auth info fields: {introspection_error}."

        self.logger.error("Access token is not available on connection", probes=[p.name for p in self.probes])
        raise CredentialResolutionError(
            f"Access token is not available on connection. {debug_info} "
            "Please ensure the connection is properly authenticated "
            "(for example by setting SF_ACCESS_TOKEN or SF_REFRESH_TOKEN).",
            available_fields=available_fields,
            introspection_error=introspection_error,
        )

    async def _describe_auth_info_fields(self, connection: Any) -> Tuple[List[str], Optional[str]]:
        """List the keys of the structured auth info, for error messages."""
        try:
            fields = await _maybe_await(connection.get_auth_info_fields())
        except Exception as e:
            return [], str(e) or type(e).__name__

        if isinstance(fields, Mapping):
            return sorted(str(key) for key in fields.keys()), None
        if fields is None:
            return [], None
        return sorted(k for k in getattr(fields, "__dict__", {}) if not k.startswith("_")), None


async def resolve_access_token(connection: Any) -> str:
    """Resolve a token with the default probe chain."""
    return await TokenResolver().resolve(connection)
