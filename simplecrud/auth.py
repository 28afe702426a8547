# File: simplecrud/auth.py
"""
SimpleCRUD - Authorization Gate
================================
Checks a CRUD's ``AuthPolicy`` against the current request before a
handler runs.  Authentication itself belongs to the host application,
which supplies an ``AuthProvider``.

    not logged in, login required        -> AuthorizationError(login_required)
                                            (redirect to the login URL)
    logged in, lacking the required role -> AuthorizationError (403)

Editing also requires whatever viewing requires.
"""

from __future__ import annotations

import logging
from typing import Any, List, Optional, Protocol, runtime_checkable
from urllib.parse import urlencode

from simplecrud.errors import AuthorizationError, ConfigurationError
from simplecrud.models import AuthPolicy, AuthRule

# ---------------------------------------------------------------------------
# Logger
# ---------------------------------------------------------------------------
logger: logging.Logger = logging.getLogger("simplecrud.auth")

VIEW: str = "view"
EDIT: str = "edit"


@runtime_checkable
class AuthProvider(Protocol):
    """Host-supplied answers about the user behind a request."""

    def is_logged_in(self, request: Any) -> bool: ...

    def user_has_role(self, request: Any, role: str) -> bool: ...


def login_redirect_url(login_url: str, return_url: Optional[str]) -> str:
    if not return_url:
        return login_url
    separator: str = "&" if "?" in login_url else "?"
    return f"{login_url}{separator}{urlencode({'return_url': return_url})}"


class AuthGate:
    """Per-CRUD authorization check; stateless between requests."""

    __slots__ = ("policy", "provider", "login_url")

    def __init__(
        self,
        policy: Optional[AuthPolicy],
        provider: Optional[AuthProvider] = None,
        login_url: str = "/login",
    ) -> None:
        if policy is not None and provider is None and (
            policy.rules_for(VIEW) or policy.rules_for(EDIT)
        ):
            raise ConfigurationError(
                "An auth policy is configured but no AuthProvider was given."
            )
        self.policy: Optional[AuthPolicy] = policy
        self.provider: Optional[AuthProvider] = provider
        self.login_url: str = login_url

    def allowed(self, action: str, request: Any) -> bool:
        """True when *request* may perform *action*; never raises for denial."""
        try:
            self.check(action, request)
        except AuthorizationError:
            return False
        return True

    def check(self, action: str, request: Any, return_url: Optional[str] = None) -> None:
        """
        Raise ``AuthorizationError`` unless *request* may perform *action*.
        """
        if self.policy is None:
            return
        rules: List[AuthRule] = self.policy.rules_for(action)
        if not rules:
            return
        provider: Optional[AuthProvider] = self.provider
        if provider is None:
            raise ConfigurationError("No AuthProvider to check the auth policy with.")

        logged_in: bool = bool(provider.is_logged_in(request))
        for rule in rules:
            if not logged_in:
                logger.info("Login required to %s; redirecting.", action)
                raise AuthorizationError(
                    f"You must log in to {action} this data.",
                    login_required=True,
                    login_url=login_redirect_url(self.login_url, return_url),
                )
            if rule.require_role is not None and not provider.user_has_role(
                request, rule.require_role
            ):
                logger.info("Role '%s' required to %s; denied.", rule.require_role, action)
                raise AuthorizationError(
                    f"You need the '{rule.require_role}' role to {action} this data."
                )


__all__: List[str] = ["AuthGate", "AuthProvider", "EDIT", "VIEW", "login_redirect_url"]
