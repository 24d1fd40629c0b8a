"""
Front-door login for Salesforce browser sessions.

Salesforce accepts an API session ID on /secur/frontdoor.jsp and answers
with a browser cookie session, redirecting to ``retURL``. LoginPage drives a
Playwright page through that exchange and waits for either the redirect
target or a platform error page, whichever shows up first.
"""

import asyncio
import functools
from enum import Enum
from typing import Any, Optional
from urllib.parse import quote, urlparse

from playwright.async_api import Page
from playwright.async_api import TimeoutError as PlaywrightTimeoutError

from frontdoor.config.settings import get_settings
from frontdoor.errors import MissingInstanceUrlError, SessionBootstrapError
from frontdoor.tools.page_errors import PageErrorDetector, wait_for_page_errors
from frontdoor.tools.token_resolver import TokenResolver
from frontdoor.utils.logging import LoggingMixin, LogTimer

FRONTDOOR_PATH = "/secur/frontdoor.jsp"
POST_LOGIN_PATH = "/setup/forcecomHomepage.apexp"


class LoginState(str, Enum):
    """Lifecycle of a single front-door login."""

    IDLE = "idle"
    NAVIGATING = "navigating"
    AUTHENTICATED = "authenticated"
    FAILED = "failed"


def normalize_instance_url(instance_url: Optional[str]) -> str:
    """Strip one trailing slash and reject empty URLs."""
    url = instance_url or ""
    if url.endswith("/"):
        url = url[:-1]
    if not url:
        raise MissingInstanceUrlError("Instance URL is not available on connection")
    return url


def build_frontdoor_url(instance_url: Optional[str], access_token: str) -> str:
    """
    Build the one-time front-door URL for a session.

    Args:
        instance_url: Org base URL, e.g. https://acme.my.salesforce.com/
        access_token: Session ID or OAuth access token

    Returns:
        ``{instance}/secur/frontdoor.jsp?sid={token}&retURL={encoded path}``

    Raises:
        MissingInstanceUrlError: If the instance URL is empty
    """
    base_url = normalize_instance_url(instance_url)
    ret_url = quote(POST_LOGIN_PATH, safe="")
    return f"{base_url}{FRONTDOOR_PATH}?sid={access_token}&retURL={ret_url}"


def get_instance_url(connection: Any) -> Optional[str]:
    """Read the org base URL off a connection object."""
    instance_url = getattr(connection, "instance_url", None)
    if isinstance(instance_url, str) and instance_url:
        return instance_url

    # simple-salesforce style clients keep only the host name
    sf_instance = getattr(connection, "sf_instance", None)
    if isinstance(sf_instance, str) and sf_instance:
        return f"https://{sf_instance}"

    return None


def _is_post_login_url(url: str) -> bool:
    return urlparse(url).path == POST_LOGIN_PATH


def _timed_out(task: "asyncio.Task[Any]") -> bool:
    if not task.done() or task.cancelled():
        return False
    return isinstance(task.exception(), (PlaywrightTimeoutError, TimeoutError))


def _redact(text: str, secret: str) -> str:
    return text.replace(secret, "[REDACTED]") if secret else text


class LoginPage(LoggingMixin):
    """
    Logs a borrowed Playwright page into Salesforce via the front door.

    A LoginPage performs at most one navigation. On success the same
    instance is returned so callers can keep using ``login_page.page``.
    """

    def __init__(
        self,
        page: Page,
        error_detector: Optional[PageErrorDetector] = None,
        timeout_ms: Optional[float] = None,
        token_resolver: Optional[TokenResolver] = None,
    ):
        super().__init__()
        self.setup_logging("login_page")

        self.page = page
        self.timeout_ms = timeout_ms if timeout_ms is not None else get_settings().browser.timeout_ms
        # Bounded by the redirect timeout so the selector wait ends in the browser as well.
        self.error_detector = error_detector or functools.partial(wait_for_page_errors, timeout=self.timeout_ms)
        self.token_resolver = token_resolver or TokenResolver()
        self.state = LoginState.IDLE

    async def login(self, connection: Any) -> "LoginPage":
        """
        Log in using the credentials of an authenticated API connection.

        Args:
            connection: Connection exposing ``instance_url`` and a token

        Returns:
            self, with the page on the post-login landing page

        Raises:
            MissingInstanceUrlError: If the connection has no instance URL
            CredentialResolutionError: If no access token can be found
            SessionBootstrapError: If the browser login fails
        """
        instance_url = get_instance_url(connection)
        normalize_instance_url(instance_url)

        access_token = await self.token_resolver.resolve(connection)

        # A refresh during resolution may have moved the org to another instance.
        instance_url = get_instance_url(connection) or instance_url
        return await self.bootstrap(instance_url, access_token)

    async def bootstrap(self, instance_url: Optional[str], access_token: str) -> "LoginPage":
        """
        Exchange an access token for a browser session.

        Args:
            instance_url: Org base URL
            access_token: Non-empty session ID or OAuth access token

        Returns:
            self, with the page on the post-login landing page

        Raises:
            MissingInstanceUrlError: If the instance URL is empty
            SessionBootstrapError: If navigation fails or an error page wins
        """
        if self.state is not LoginState.IDLE:
            raise SessionBootstrapError(f"Login already attempted (state: {self.state.value})")

        frontdoor_url = build_frontdoor_url(instance_url, access_token)
        base_url = normalize_instance_url(instance_url)
        self.log_method_call("bootstrap", instance_url=base_url, access_token=access_token)

        self.state = LoginState.NAVIGATING
        try:
            with LogTimer(self.logger, "front-door login", instance_url=base_url):
                await self._navigate(frontdoor_url, access_token)
                await self._wait_for_outcome(access_token)
        except BaseException:
            self.state = LoginState.FAILED
            raise

        self.state = LoginState.AUTHENTICATED
        self.logger.info("Browser session authenticated", instance_url=base_url)
        return self

    async def _navigate(self, frontdoor_url: str, access_token: str) -> None:
        try:
            await self.page.goto(frontdoor_url)
        except Exception as e:
            message = _redact(str(e), access_token)
            raise SessionBootstrapError(f"Front-door navigation failed: {message}", detail=message) from e

    async def _watch_post_login(self) -> None:
        await self.page.wait_for_url(_is_post_login_url, timeout=self.timeout_ms)

    async def _watch_errors(self) -> Any:
        return await self.error_detector(self.page)

    async def _wait_for_outcome(self, access_token: str) -> None:
        """Race the post-login redirect against the error detector."""
        post_login = asyncio.create_task(self._watch_post_login())
        page_error = asyncio.create_task(self._watch_errors())

        try:
            done, _ = await asyncio.wait(
                {post_login, page_error},
                return_when=asyncio.FIRST_COMPLETED,
            )
            if _timed_out(page_error):
                # No error shown within the timeout; the redirect alone decides.
                done, _ = await asyncio.wait({post_login})
        finally:
            await self._detach(post_login, page_error)

        if post_login in done and post_login.exception() is None:
            return

        if page_error in done:
            detail = _redact(self._error_detail(page_error), access_token)
            self.logger.warning("Salesforce reported an error during login", detail=detail)
            raise SessionBootstrapError(f"Salesforce reported an error during login: {detail}", detail=detail)

        error = post_login.exception()
        message = _redact(str(error), access_token)
        raise SessionBootstrapError(
            f"Did not reach {POST_LOGIN_PATH} after front-door login: {message}",
            detail=message,
        ) from error

    @staticmethod
    def _error_detail(task: "asyncio.Task[Any]") -> str:
        error = task.exception()
        if error is not None:
            return str(error) or type(error).__name__
        result = task.result()
        return str(result) if result else "error page detected"

    @staticmethod
    async def _detach(*tasks: "asyncio.Task[Any]") -> None:
        """Cancel unfinished watchers and wait for them to unwind."""
        for task in tasks:
            if not task.done():
                task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
