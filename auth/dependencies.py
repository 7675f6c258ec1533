"""
auth/dependencies.py -- Request -> session resolution helpers.

The only code that reads the session cookie. Components come from app.state,
where the lifespan put them:
  app.state.settings         -- core.config.Settings
  app.state.session_manager  -- auth.sessions.SessionManager
  app.state.gate             -- auth.gate.AuthorizationGate

resolve_account_id() is the soft variant (None for Anonymous).
authorize() hands that result to the gate and returns its decision.
try_get_current_account() collapses the decision to Account | None for
templates.

Layer rule: no imports from web/.
"""

from __future__ import annotations

from fastapi import Request

from auth.gate import Admit, RedirectTo
from auth.models import Account
from auth.tokens import COOKIE_NAME, decode_session_cookie


def read_session_token(request: Request) -> str | None:
    """Return the raw session token carried by the request, or None.

    A cookie with a bad signature or past its expiry yields None.
    """
    secret_key = request.app.state.settings.secret_key
    return decode_session_cookie(request.cookies.get(COOKIE_NAME), secret_key)


def resolve_account_id(request: Request) -> str | None:
    """Return the account id the request's session is bound to, or None."""
    return request.app.state.session_manager.resolve(read_session_token(request))


def authorize(request: Request) -> Admit | RedirectTo:
    return request.app.state.gate.require_authenticated(resolve_account_id(request))


def try_get_current_account(request: Request) -> Account | None:
    decision = authorize(request)
    return decision.account if isinstance(decision, Admit) else None
