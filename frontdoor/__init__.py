"""
sf-frontdoor - browser sessions for Salesforce from API credentials

Turns an authenticated API connection into a logged-in browser page by
exchanging its session token on the Salesforce front door.
"""

__version__ = "0.1.0"

from frontdoor.errors import (
    CredentialResolutionError,
    FrontdoorError,
    MissingInstanceUrlError,
    SessionBootstrapError,
)
from frontdoor.tools.login_page import LoginPage, LoginState, build_frontdoor_url
from frontdoor.tools.token_resolver import TokenResolver, resolve_access_token

__all__ = [
    "CredentialResolutionError",
    "FrontdoorError",
    "LoginPage",
    "LoginState",
    "MissingInstanceUrlError",
    "SessionBootstrapError",
    "TokenResolver",
    "build_frontdoor_url",
    "resolve_access_token",
    "__version__",
]
