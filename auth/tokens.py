"""
auth/tokens.py -- Signed session cookie codec and cookie helpers.

The browser holds one cookie, "session_token". Its value is an HS256 JWT
(python-jose) signed with SECRET_KEY whose only claims are the opaque session
token ("sid") and an expiry ("exp"). The JWT adds tamper evidence and a hard
client-side expiry; the server-side session row remains the source of truth,
so a validly signed cookie for a destroyed session still resolves to nobody.

Decoding returns None on any failure -- bad signature, expired, malformed,
missing claim. Callers treat None as Anonymous.

Layer rule: no imports from api/ or web/.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

from jose import JWTError, jwt

COOKIE_NAME = "session_token"
_ALGORITHM = "HS256"


def encode_session_cookie(token: str, secret_key: str, expire_seconds: int) -> str:
    """Wrap a raw session token in a signed, expiring JWT."""
    expire = datetime.now(timezone.utc) + timedelta(seconds=expire_seconds)
    return jwt.encode({"sid": token, "exp": expire}, secret_key, algorithm=_ALGORITHM)


def decode_session_cookie(value: str | None, secret_key: str) -> str | None:
    """Return the raw session token from a cookie value, or None."""
    if not value:
        return None
    try:
        payload = jwt.decode(value, secret_key, algorithms=[_ALGORITHM])
    except JWTError:
        return None
    sid = payload.get("sid")
    return sid if isinstance(sid, str) and sid else None


def set_session_cookie(response, value: str, expire_seconds: int, secure: bool) -> None:
    """Write the signed session cookie on the response.

    httponly=True: JS cannot read the cookie (XSS mitigation).
    samesite="lax": not sent on cross-site POST -- CSRF mitigation for the
        form posts.
    secure: only sent over HTTPS when SECURE_COOKIES=true (set in production).
    max_age: matches the session lifetime so both expire together.
    """
    response.set_cookie(
        COOKIE_NAME,
        value=value,
        httponly=True,
        samesite="lax",
        secure=secure,
        max_age=expire_seconds,
    )


def clear_session_cookie(response) -> None:
    response.delete_cookie(COOKIE_NAME)
