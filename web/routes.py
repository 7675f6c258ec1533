"""
web/routes.py -- Jinja2 template routes for the Secret Notes web UI.

Routes:
  GET  /                        -- landing page
  GET  /login                   -- login form
  GET  /register                -- registration form
  GET  /secrets                 -- every submitted secret (public)
  GET  /submit                  -- secret submission form (auth required)
  GET  /logout                  -- end session, redirect /
  GET  /auth/provider           -- redirect to the identity provider
  GET  /auth/provider/callback  -- identity provider callback
  POST /register                -- create local account, start session
  POST /login                   -- password login, start session
  POST /submit                  -- overwrite the caller's own secret (auth required)

Failure mapping:
  ValidationError     -> re-render the originating form (400)
  AlreadyExists       -> 302 /register?error=username_taken
  InvalidCredentials  -> 302 /login?error=bad_credentials
  OAuthFailure        -> 302 /login?error=oauth_failed
  NotFound            -> 404 page      (register_exception_handlers)
  BackendUnavailable  -> 503 page      (register_exception_handlers)
  anything else       -> 500 page      (register_exception_handlers)

Sessions are established only after the strategy has returned an Account.
"""

import logging
from pathlib import Path
from typing import Union

from fastapi import APIRouter, FastAPI, Form, Request
from fastapi.responses import HTMLResponse, RedirectResponse
from fastapi.templating import Jinja2Templates

from auth.dependencies import authorize, read_session_token, try_get_current_account
from auth.errors import AlreadyExists, BackendUnavailable, InvalidCredentials, NotFound, OAuthFailure, ValidationError
from auth.gate import RedirectTo
from auth.models import Account, FederationStage
from auth.oauth import CALLBACK_ROUTE
from auth.store import AccountStore
from auth.tokens import clear_session_cookie, encode_session_cookie, set_session_cookie

logger = logging.getLogger("secretnotes.web")

templates = Jinja2Templates(directory=str(Path(__file__).parent / "templates"))
# Expose try_get_current_account as a Jinja2 global so layout.html can render
# the nav without every handler passing the account in.
templates.env.globals["try_get_current_account"] = try_get_current_account
router = APIRouter()

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

# Whitelist mapping for ?error= query params. The raw query value is NEVER
# passed to templates -- only the message from this dict is.
_ERROR_MESSAGES: dict[str, str] = {
    "bad_credentials": "Invalid username or password.",
    "username_taken": "That username is already registered.",
    "oauth_failed": "Sign-in with the identity provider failed. Please try again.",
}


def _error_msg(request: Request) -> str | None:
    return _ERROR_MESSAGES.get(request.query_params.get("error", ""))


def _require_account(request: Request) -> Union[Account, RedirectResponse]:
    """Run the authorization gate for a protected route.

    Returns the caller's Account, or the redirect to send instead:
        account = _require_account(request)
        if isinstance(account, RedirectResponse):
            return account
    """
    decision = authorize(request)
    if isinstance(decision, RedirectTo):
        return RedirectResponse(decision.location, status_code=302)
    return decision.account


def _start_session(request: Request, account: Account, location: str) -> RedirectResponse:
    """Establish a fresh session for account and redirect to location.

    Any session the request already carried is destroyed first, so a token
    fixed before login never becomes authenticated.
    """
    state = request.app.state
    settings = state.settings
    state.session_manager.destroy(read_session_token(request))
    token = state.session_manager.establish(account.id)

    resp = RedirectResponse(location, status_code=302)
    cookie = encode_session_cookie(token, settings.secret_key, settings.session_expire_seconds)
    set_session_cookie(resp, cookie, settings.session_expire_seconds, settings.secure_cookies)
    resp.headers["Cache-Control"] = "no-store"
    return resp


# ---------------------------------------------------------------------------
# Public pages
# ---------------------------------------------------------------------------


@router.get("/", response_class=HTMLResponse)
def home(request: Request) -> HTMLResponse:
    return templates.TemplateResponse(request, "home.html")


@router.get("/login", response_class=HTMLResponse)
def login_form(request: Request) -> HTMLResponse:
    """Render the login page with the password form and the provider button."""
    return templates.TemplateResponse(
        request,
        "login.html",
        {"error_msg": _error_msg(request), "federation_enabled": request.app.state.federation is not None},
    )


@router.get("/register", response_class=HTMLResponse)
def register_form(request: Request) -> HTMLResponse:
    return templates.TemplateResponse(request, "register.html", {"error_msg": _error_msg(request)})


@router.get("/secrets", response_class=HTMLResponse)
def secrets_page(request: Request) -> HTMLResponse:
    """List every account's secret. Authors are not shown."""
    store: AccountStore = request.app.state.account_store
    return templates.TemplateResponse(request, "secrets.html", {"accounts": store.list_with_secret()})


# ---------------------------------------------------------------------------
# Secret submission (auth required)
# ---------------------------------------------------------------------------


@router.get("/submit", response_class=HTMLResponse)
def submit_form(request: Request) -> HTMLResponse:
    account = _require_account(request)
    if isinstance(account, RedirectResponse):
        return account
    return templates.TemplateResponse(request, "submit.html", {"account": account})


@router.post("/submit", response_class=HTMLResponse)
def submit_secret(request: Request, secret: str = Form("")) -> HTMLResponse:
    """Overwrite the caller's own secret.

    The account id comes from the caller's session only. The form has no id
    field and none is read, so one user can never write another's secret.
    """
    account = _require_account(request)
    if isinstance(account, RedirectResponse):
        return account
    if not secret.strip():
        return templates.TemplateResponse(
            request,
            "submit.html",
            {"account": account, "error_msg": "Secret cannot be empty."},
            status_code=400,
        )
    store: AccountStore = request.app.state.account_store
    store.update_secret(account.id, secret)
    return RedirectResponse("/secrets", status_code=302)


# ---------------------------------------------------------------------------
# Local accounts
# ---------------------------------------------------------------------------


@router.post("/register", response_class=HTMLResponse)
def register(request: Request, username: str = Form(""), password: str = Form("")) -> HTMLResponse:
    """Create a local account and sign it in."""
    try:
        account = request.app.state.local_auth.register(username, password)
    except ValidationError as exc:
        return templates.TemplateResponse(
            request,
            "register.html",
            {"error_msg": exc.message, "username": username},
            status_code=400,
        )
    except AlreadyExists:
        logger.info("Registration rejected: username already taken")
        return RedirectResponse("/register?error=username_taken", status_code=302)
    return _start_session(request, account, "/secrets")


@router.post("/login", response_class=HTMLResponse)
def login(request: Request, username: str = Form(""), password: str = Form("")) -> HTMLResponse:
    """Verify credentials first; only then establish a session."""
    try:
        account = request.app.state.local_auth.login(username, password)
    except InvalidCredentials:
        return RedirectResponse("/login?error=bad_credentials", status_code=302)
    return _start_session(request, account, "/secrets")


@router.get("/logout")
def logout(request: Request) -> RedirectResponse:
    """Destroy the session (if any), clear the cookie, and go home."""
    request.app.state.session_manager.destroy(read_session_token(request))
    resp = RedirectResponse("/", status_code=302)
    clear_session_cookie(resp)
    return resp


# ---------------------------------------------------------------------------
# Federated login
# ---------------------------------------------------------------------------


@router.get("/auth/provider")
async def oauth_redirect(request: Request) -> RedirectResponse:
    """Redirect the browser to the identity provider's authorization page."""
    federation = request.app.state.federation
    if federation is None:
        return RedirectResponse("/login?error=oauth_failed", status_code=302)
    url = await federation.begin_authorization(request)
    return RedirectResponse(url, status_code=302)


@router.get("/auth/provider/callback", name=CALLBACK_ROUTE)
async def oauth_callback(request: Request) -> RedirectResponse:
    """Complete the provider login; on any failure go back to /login, never to /secrets."""
    federation = request.app.state.federation
    if federation is None:
        return RedirectResponse("/login?error=oauth_failed", status_code=302)
    try:
        account = await federation.complete_authorization(request)
    except OAuthFailure:
        return RedirectResponse("/login?error=oauth_failed", status_code=302)
    resp = _start_session(request, account, "/secrets")
    logger.info("Federated login %s (account=%s)", FederationStage.SESSION_ESTABLISHED.value, account.id)
    return resp


# ---------------------------------------------------------------------------
# Error pages
#
# Messages come from this module only. Exception text, backend messages and
# stack traces are written to the log and never to the response body.
# ---------------------------------------------------------------------------


def _error_page(request: Request, status_code: int, message: str) -> HTMLResponse:
    return templates.TemplateResponse(
        request, "error.html", {"status_code": status_code, "message": message}, status_code=status_code
    )


async def not_found_handler(request: Request, exc: NotFound) -> HTMLResponse:
    logger.error("Account missing on %s %s: %s", request.method, request.url.path, exc)
    return _error_page(request, 404, "The requested account no longer exists.")


async def backend_unavailable_handler(request: Request, exc: BackendUnavailable) -> HTMLResponse:
    logger.error("Backend unavailable on %s %s: %s", request.method, request.url.path, exc)
    return _error_page(request, 503, "The service is temporarily unavailable. Please try again later.")


async def unhandled_exception_handler(request: Request, exc: Exception) -> HTMLResponse:
    logger.exception("Unhandled exception on %s %s", request.method, request.url.path)
    return _error_page(request, 500, "An unexpected error occurred.")


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(NotFound, not_found_handler)
    app.add_exception_handler(BackendUnavailable, backend_unavailable_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)
