"""
api/main.py -- FastAPI application entry point for Secret Notes.

Owns the application object, its lifespan, the middleware stack, and the
JSON health endpoint. The HTML route surface lives in web/routes.py and is
mounted by asgi.py.

Run with:  uvicorn asgi:app --reload

Middleware stack (outermost to innermost):
  1. TrustedHostMiddleware -- rejects requests with unexpected Host headers
  2. SessionMiddleware     -- signed Starlette session holding the OAuth state
  3. log_requests          -- one log line per request with latency

Lifespan builds every auth component exactly once and places it on
app.state. Route handlers reach them through request.app.state; there are no
module-level component singletons.
"""

from __future__ import annotations

import logging
import time
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.trustedhost import TrustedHostMiddleware
from starlette.middleware.sessions import SessionMiddleware

from api.models import HealthResponse
from auth.gate import AuthorizationGate
from auth.local import LocalAuthStrategy
from auth.oauth import OAuthFederationStrategy, build_oauth_client
from auth.passwords import PasswordHasher
from auth.sessions import SessionManager
from auth.store import AccountStore
from core.config import get_settings

__version__ = "0.1.0"

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)-5s %(name)s %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger("secretnotes.api")

_settings = get_settings()


# ---------------------------------------------------------------------------
# Lifespan -- startup / shutdown
# ---------------------------------------------------------------------------


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Build the auth components on startup and release them on shutdown.

    Startup order follows the dependency graph: store and session manager
    first, then the strategies and the gate that hold references to them.
    """
    logger.info("Secret Notes starting up")
    settings = get_settings()
    app.state.settings = settings

    store = AccountStore(settings.database_url, timeout=settings.database_timeout_seconds)
    sessions = SessionManager(
        settings.database_url,
        expire_seconds=settings.session_expire_seconds,
        timeout=settings.database_timeout_seconds,
    )
    purged = sessions.purge_expired()
    logger.info("Stores initialized (%d accounts, %d expired sessions purged)", store.count(), purged)

    app.state.account_store = store
    app.state.session_manager = sessions
    app.state.local_auth = LocalAuthStrategy(store, PasswordHasher(rounds=settings.bcrypt_rounds))
    app.state.gate = AuthorizationGate(store)

    client = build_oauth_client(settings)
    app.state.federation = (
        OAuthFederationStrategy(
            store,
            client,
            profile_url=settings.oauth_profile_url,
            callback_url=settings.oauth_callback_url,
        )
        if client is not None
        else None
    )
    logger.info("Auth initialized (federation=%s)", app.state.federation is not None)

    yield

    sessions.close()
    store.close()
    logger.info("Secret Notes shutdown complete")


# ---------------------------------------------------------------------------
# App instantiation
# ---------------------------------------------------------------------------

app = FastAPI(
    title="Secret Notes",
    description="Anonymous secrets, shared by registered users.",
    version=__version__,
    lifespan=lifespan,
    docs_url=None,
    redoc_url=None,
)

# ---------------------------------------------------------------------------
# Middleware stack
#
# add_middleware() prepends, so the last one registered is the outermost.
# Register innermost first: Session, then TrustedHost.
# ---------------------------------------------------------------------------

# SessionMiddleware is required by authlib to store the OAuth state value
# between the authorization redirect and the callback. It is separate from
# the session_token cookie, which only ever carries the signed session token.
app.add_middleware(
    SessionMiddleware,
    secret_key=_settings.secret_key,
    https_only=_settings.secure_cookies,
    same_site="lax",
)

app.add_middleware(TrustedHostMiddleware, allowed_hosts=_settings.allowed_hosts)


@app.middleware("http")
async def log_requests(request: Request, call_next):
    start = time.perf_counter()
    response = await call_next(request)
    ms = (time.perf_counter() - start) * 1000
    logger.info(
        "%s %s %d %.1fms %s",
        request.method,
        request.url.path,
        response.status_code,
        ms,
        request.client.host if request.client else "unknown",
    )
    return response


# ---------------------------------------------------------------------------
# Health endpoint
#
# Defined directly in main.py so it is reachable regardless of router
# registration. Reports the database component separately; the endpoint
# itself answers 200 as long as the process is up.
# ---------------------------------------------------------------------------


@app.get("/api/v1/health", tags=["Health"])
def health(request: Request) -> HealthResponse:
    """Return liveness, version, and backend status."""
    store: AccountStore = request.app.state.account_store
    database = "ok" if store.ping() else "error"
    return HealthResponse(version=__version__, components={"app": "ok", "database": database})
