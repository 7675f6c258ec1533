"""
auth/errors.py -- Failure taxonomy for the authentication core.

Every operation in auth/ either returns its success value or raises one of
these. Route handlers in web/ map each type to a user-visible outcome
(re-render, redirect, or a generic error page). Exception messages are for
logs only and are never rendered.

Layer rule: no imports from api/, web/, or core/.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from auth.models import FederationStage


class AuthError(Exception):
    """Base class for all auth-core failures."""


class ValidationError(AuthError):
    """A required field is missing, empty, or out of bounds."""

    def __init__(self, field: str, message: str) -> None:
        super().__init__(f"{field}: {message}")
        self.field = field
        self.message = message


class AlreadyExists(AuthError):
    """A username or external identity is already bound to another account."""


class InvalidCredentials(AuthError):
    """Unknown username or wrong password. Deliberately carries no detail."""

    def __init__(self) -> None:
        super().__init__("invalid username or password")


class OAuthFailure(AuthError):
    """The identity provider denied the request, the code exchange failed, or
    the returned profile has no stable subject identifier."""

    def __init__(self, stage: FederationStage, reason: str) -> None:
        super().__init__(f"federation failed at {stage.value}: {reason}")
        self.stage = stage
        self.reason = reason


class NotFound(AuthError):
    """An operation referenced an account that does not exist."""


class BackendUnavailable(AuthError):
    """The persistence backend or the identity provider could not be reached."""
