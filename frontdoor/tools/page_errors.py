"""
Detection of Salesforce error pages.

The detector is meant to be raced against a success condition: it waits
until the platform renders one of its error containers and then raises
PageError with the text shown to the user.
"""

from typing import Any, Awaitable, Callable, Optional

from playwright.async_api import Page

from frontdoor.utils.logging import get_logger

logger = get_logger(__name__, "page_errors")

# Classic error page title, setup page messages, Visualforce page messages, login error.
ERROR_SELECTORS = (
    "#errorTitle",
    "div.errorMsg",
    "div.message.errorM3",
    "#error",
)

PageErrorDetector = Callable[[Page], Awaitable[Any]]


class PageError(Exception):
    """Raised when the page displays a platform error."""
    pass


async def wait_for_page_errors(page: Page, timeout: Optional[float] = None) -> None:
    """
    Wait for an error container to become visible and raise its message.

    Args:
        page: Page to watch
        timeout: Milliseconds to wait; None waits indefinitely

    Raises:
        PageError: Once an error is displayed
    """
    selector = ", ".join(ERROR_SELECTORS)
    handle = await page.wait_for_selector(
        selector,
        state="visible",
        timeout=0 if timeout is None else timeout,
    )

    message = ""
    if handle is not None:
        message = " ".join((await handle.inner_text()).split())

    logger.warning("Salesforce error displayed", url=page.url, message=message)
    raise PageError(message or f"Salesforce reported an error at {page.url}")
