"""
auth/oauth.py -- Federated login through an external OAuth 2.0 identity provider.

build_oauth_client() registers one provider, named "provider", in an authlib
Starlette OAuth registry. It is called once from the application lifespan;
there is no module-level registry. When OAUTH_CLIENT_ID or
OAUTH_CLIENT_SECRET is missing it returns None and federation is disabled.

OAuthFederationStrategy drives one authorization attempt through its stages:

    INITIATED -> PROFILE_FETCHED -> ACCOUNT_RESOLVED -> SESSION_ESTABLISHED

Any stage can move to FAILED. The last stage belongs to the route (it owns
the session). Every failure raises OAuthFailure carrying the stage it
happened in, and is logged with it.

Security notes:
  OAuth state parameter (CSRF protection) is handled by authlib via the
  Starlette SessionMiddleware. begin_authorization() stores the state in the
  session before redirecting; authorize_access_token() checks it on the way
  back. A callback without matching state fails with OAuthError.

  The provider's subject id ("sub", or "id" for non-OIDC providers) is the
  only identifier trusted for account mapping. Email addresses are not used;
  a profile without a stable subject id is rejected.

Layer rule: no imports from api/ or web/. Import from core/ is allowed.
"""

from __future__ import annotations

import logging

import httpx
from authlib.integrations.starlette_client import OAuth, OAuthError

from auth.errors import BackendUnavailable, OAuthFailure
from auth.models import Account, FederationStage
from auth.store import AccountStore
from core.config import Settings

logger = logging.getLogger("secretnotes.auth.oauth")

PROVIDER_NAME = "provider"
CALLBACK_ROUTE = "oauth_callback"


def build_oauth_client(settings: Settings):
    """Register the configured identity provider and return its authlib client.

    Returns None when the provider is not configured.
    """
    if not settings.oauth_enabled:
        logger.info("Identity provider not configured -- federated login disabled")
        return None
    registry = OAuth()
    registry.register(
        name=PROVIDER_NAME,
        client_id=settings.oauth_client_id,
        client_secret=settings.oauth_client_secret,
        authorize_url=settings.oauth_authorize_url,
        access_token_url=settings.oauth_access_token_url,  # noqa: S106 -- URL, not a password
        client_kwargs={
            "scope": settings.oauth_scopes,
            "timeout": settings.oauth_timeout_seconds,
        },
    )
    logger.info("Identity provider registered")
    return registry.create_client(PROVIDER_NAME)


class OAuthFederationStrategy:
    """Exchange an identity-provider login for a local Account.

    client is an authlib StarletteOAuth2App (or anything with the same
    coroutine methods: create_authorization_url, save_authorize_data,
    authorize_access_token, plus get for the profile request).
    """

    def __init__(
        self,
        store: AccountStore,
        client,
        profile_url: str,
        callback_url: str = "",
    ) -> None:
        self.store = store
        self.client = client
        self.profile_url = profile_url
        self.callback_url = callback_url

    def _redirect_uri(self, request) -> str:
        if self.callback_url:
            return self.callback_url
        return str(request.url_for(CALLBACK_ROUTE))

    async def begin_authorization(self, request) -> str:
        """Return the provider authorization URL for this attempt.

        The generated state is saved in the request's session so the callback
        can be matched to this attempt.
        """
        redirect_uri = self._redirect_uri(request)
        try:
            rv = await self.client.create_authorization_url(redirect_uri)
        except httpx.TransportError as exc:
            logger.error("Identity provider unreachable while starting authorization")
            raise BackendUnavailable("identity provider unreachable") from exc
        await self.client.save_authorize_data(request, redirect_uri=redirect_uri, **rv)
        return rv["url"]

    async def complete_authorization(self, request) -> Account:
        """Finish the attempt started by begin_authorization() and return the account.

        Raises OAuthFailure when the provider denied the request, the code
        exchange failed, or the profile has no stable subject id.
        Raises BackendUnavailable when the provider cannot be reached.
        """
        stage = FederationStage.INITIATED

        denied = request.query_params.get("error")
        if denied:
            raise self._fail(stage, f"provider returned error={denied!r}")

        try:
            token = await self.client.authorize_access_token(request)
            profile = await self._fetch_profile(token)
        except OAuthError as exc:
            raise self._fail(stage, f"code exchange failed ({exc.error})") from exc
        except httpx.HTTPStatusError as exc:
            raise self._fail(stage, f"profile request returned {exc.response.status_code}") from exc
        except httpx.TransportError as exc:
            logger.error("Identity provider unreachable during %s", stage.value)
            raise BackendUnavailable("identity provider unreachable") from exc
        stage = FederationStage.PROFILE_FETCHED

        external_id, display_name = _extract_identity(profile)
        if not external_id:
            raise self._fail(stage, "profile has no stable subject id")

        account = self.store.find_or_create_by_external_id(external_id, display_name)
        stage = FederationStage.ACCOUNT_RESOLVED
        logger.info("Federated login %s (account=%s)", stage.value, account.id)
        return account

    async def _fetch_profile(self, token: dict) -> dict:
        """Fetch the profile from the configured endpoint.

        Falls back to the OIDC userinfo claims authlib already parsed from the
        token response when no profile endpoint is configured.
        """
        if not self.profile_url:
            return dict(token.get("userinfo") or {})
        resp = await self.client.get(self.profile_url, token=token)
        resp.raise_for_status()
        try:
            profile = resp.json()
        except ValueError as exc:
            raise self._fail(FederationStage.INITIATED, "profile body is not JSON") from exc
        return profile if isinstance(profile, dict) else {}

    @staticmethod
    def _fail(stage: FederationStage, reason: str) -> OAuthFailure:
        logger.warning("Federated login %s -> %s: %s", stage.value, FederationStage.FAILED.value, reason)
        return OAuthFailure(stage, reason)


def _extract_identity(profile: dict) -> tuple[str | None, str | None]:
    """Normalize (external_id, display_name) out of a provider profile.

    OIDC providers use "sub"; GitHub-style APIs use a numeric "id". Some
    profiles use "displayName" where OIDC uses "name".

    Only string (or integer id) values are kept. A structured "name" object
    falls through to "displayName" and then to None.
    """
    subject = profile.get("sub") or profile.get("id")
    external_id = None
    if isinstance(subject, str):
        external_id = subject.strip()
    elif isinstance(subject, int) and not isinstance(subject, bool):
        external_id = str(subject)

    display_name = None
    for candidate in (profile.get("name"), profile.get("displayName")):
        if isinstance(candidate, str) and candidate:
            display_name = candidate
            break
    return external_id or None, display_name
