"""
Exception hierarchy for sf-frontdoor.

Every failure the login flow surfaces to callers derives from FrontdoorError.
"""

from typing import List, Optional


class FrontdoorError(Exception):
    """Base exception for front-door login errors."""
    pass


class MissingInstanceUrlError(FrontdoorError):
    """Raised when no instance URL is available to build the front-door URL."""
    pass


class CredentialResolutionError(FrontdoorError):
    """Raised when no access token could be read from the connection."""

    def __init__(
        self,
        message: str,
        available_fields: Optional[List[str]] = None,
        introspection_error: Optional[str] = None,
    ):
        super().__init__(message)
        self.available_fields = available_fields
        self.introspection_error = introspection_error


class SessionBootstrapError(FrontdoorError):
    """Raised when the browser could not be logged in through the front door."""

    def __init__(self, message: str, detail: Optional[str] = None):
        super().__init__(message)
        self.detail = detail
