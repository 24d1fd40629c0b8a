"""
Command Line Interface for sf-frontdoor.

Opens a browser already logged into a Salesforce org using an existing API
session, or prints the front-door URL for use elsewhere.
"""

import asyncio
import json
import sys
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.syntax import Syntax

from frontdoor import __version__
from frontdoor.config.settings import get_settings
from frontdoor.errors import FrontdoorError
from frontdoor.tools.browser import BrowserSession, BrowserSessionError
from frontdoor.tools.login_page import (
    LoginPage,
    build_frontdoor_url,
    get_instance_url,
    normalize_instance_url,
)
from frontdoor.tools.salesforce_connection import SalesforceConnection
from frontdoor.tools.token_resolver import TokenResolver

app = typer.Typer(
    name="frontdoor",
    help="sf-frontdoor - log a browser into Salesforce with an API session",
    add_completion=False,
)
console = Console()

config_app = typer.Typer(name="config", help="Configuration management")
app.add_typer(config_app)


def version_callback(value: bool) -> None:
    """Print version information and exit."""
    if value:
        console.print(f"sf-frontdoor v{__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: Optional[bool] = typer.Option(
        None, "--version", "-v", callback=version_callback, help="Show version and exit"
    ),
) -> None:
    """
    sf-frontdoor - log a browser into Salesforce with an API session.

    Credentials come from the options below or from SF_* environment
    variables (SF_INSTANCE_URL, SF_ACCESS_TOKEN, SF_REFRESH_TOKEN,
    SF_CLIENT_ID, ...).
    """
    pass


@app.command()
def login(
    instance_url: Optional[str] = typer.Option(None, help="Org URL, e.g. https://acme.my.salesforce.com"),
    access_token: Optional[str] = typer.Option(None, help="Session ID or OAuth access token"),
    refresh_token: Optional[str] = typer.Option(None, help="OAuth refresh token"),
    client_id: Optional[str] = typer.Option(None, help="Connected app consumer key"),
    headless: Optional[bool] = typer.Option(None, "--headless/--headed", help="Run the browser invisibly"),
    storage_state: Optional[Path] = typer.Option(
        None, "--storage-state", help="Save the logged-in cookies to this Playwright storage-state file"
    ),
    keep_open: float = typer.Option(0.0, "--keep-open", help="Seconds to keep the browser open after login"),
) -> None:
    """
    Open a browser and log it into the org through the front door.
    """
    try:
        final_url = asyncio.run(
            _login(instance_url, access_token, refresh_token, client_id, headless, storage_state, keep_open)
        )
    except (FrontdoorError, BrowserSessionError) as e:
        console.print(f"❌ [red]Login failed: {escape(str(e))}[/red]")
        raise typer.Exit(1)

    console.print(Panel.fit(
        f"✅ Logged in\n\n"
        f"🌐 Landing page: {final_url}"
        + (f"\n💾 Storage state: {storage_state}" if storage_state else ""),
        title="sf-frontdoor",
        border_style="green",
    ))


@app.command()
def url(
    instance_url: Optional[str] = typer.Option(None, help="Org URL, e.g. https://acme.my.salesforce.com"),
    access_token: Optional[str] = typer.Option(None, help="Session ID or OAuth access token"),
    refresh_token: Optional[str] = typer.Option(None, help="OAuth refresh token"),
    client_id: Optional[str] = typer.Option(None, help="Connected app consumer key"),
) -> None:
    """
    Print the one-time front-door URL without starting a browser.

    The URL carries the session ID; anyone holding it can log in.
    """
    try:
        frontdoor_url = asyncio.run(_frontdoor_url(instance_url, access_token, refresh_token, client_id))
    except FrontdoorError as e:
        console.print(f"❌ [red]{escape(str(e))}[/red]")
        raise typer.Exit(1)

    typer.echo(frontdoor_url)


@config_app.command("show")
def show_config() -> None:
    """Show current configuration with secrets redacted."""
    settings = get_settings()
    console.print(Syntax(json.dumps(settings.redacted(), indent=2), "json", theme="ansi_dark"))


def _connection(
    instance_url: Optional[str],
    access_token: Optional[str],
    refresh_token: Optional[str],
    client_id: Optional[str],
) -> SalesforceConnection:
    return SalesforceConnection.from_settings(
        instance_url=instance_url,
        access_token=access_token,
        refresh_token=refresh_token,
        client_id=client_id,
    )


async def _frontdoor_url(
    instance_url: Optional[str],
    access_token: Optional[str],
    refresh_token: Optional[str],
    client_id: Optional[str],
) -> str:
    async with _connection(instance_url, access_token, refresh_token, client_id) as connection:
        normalize_instance_url(get_instance_url(connection))
        token = await TokenResolver().resolve(connection)
        return build_frontdoor_url(get_instance_url(connection), token)


async def _login(
    instance_url: Optional[str],
    access_token: Optional[str],
    refresh_token: Optional[str],
    client_id: Optional[str],
    headless: Optional[bool],
    storage_state: Optional[Path],
    keep_open: float,
) -> str:
    async with _connection(instance_url, access_token, refresh_token, client_id) as connection:
        normalize_instance_url(get_instance_url(connection))
        async with BrowserSession(headless=headless) as browser:
            login_page = await LoginPage(browser.page).login(connection)

            if storage_state:
                await browser.save_storage_state(storage_state)

            if keep_open > 0:
                console.print(f"⏳ Keeping browser open for {keep_open:g} seconds...")
                await asyncio.sleep(keep_open)

            return login_page.page.url


def main_cli() -> None:
    """Main CLI entry point."""
    try:
        app()
    except KeyboardInterrupt:
        console.print("\n👋 Goodbye!")
        sys.exit(0)


if __name__ == "__main__":
    main_cli()
