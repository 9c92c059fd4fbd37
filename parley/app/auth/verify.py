from __future__ import annotations

import time
from collections.abc import Container
from uuid import uuid4

import jwt
from jwt import InvalidTokenError

from parley.app.auth.config import AuthSettings
from parley.app.auth.contracts import AuthContext, IssuedToken
from parley.app.chat.contracts import User

TOKEN_ALGORITHM = "HS256"


class AuthVerificationError(Exception):
    pass


class AuthConfigurationError(Exception):
    pass


def _require_secret(settings: AuthSettings) -> str:
    if not settings.secret:
        raise AuthConfigurationError(
            "Token signing is not configured (missing PARLEY_AUTH_SECRET)"
        )
    return settings.secret


def _extract_bearer_token(authorization: str | None) -> str:
    if not authorization:
        raise AuthVerificationError("Missing Authorization header")
    parts = authorization.strip().split(" ", 1)
    if len(parts) != 2 or parts[0].lower() != "bearer" or not parts[1].strip():
        raise AuthVerificationError("Authorization header must be Bearer token")
    return parts[1].strip()


def issue_access_token(
    user: User,
    settings: AuthSettings,
    *,
    now: int | None = None,
) -> IssuedToken:
    secret = _require_secret(settings)
    issued_at = int(time.time()) if now is None else now
    expires_at = issued_at + settings.token_ttl_seconds
    token_id = uuid4().hex
    token = jwt.encode(
        {
            "sub": str(user.user_id),
            "username": user.username,
            "jti": token_id,
            "iat": issued_at,
            "exp": expires_at,
            "iss": settings.issuer,
        },
        secret,
        algorithm=TOKEN_ALGORITHM,
    )
    return IssuedToken(access_token=token, token_id=token_id, expires_at=expires_at)


def verify_bearer_token(
    authorization: str | None,
    settings: AuthSettings,
    *,
    revoked_token_ids: Container[str] = frozenset(),
) -> AuthContext:
    token = _extract_bearer_token(authorization)
    secret = _require_secret(settings)

    try:
        claims = jwt.decode(
            token,
            secret,
            algorithms=[TOKEN_ALGORITHM],
            issuer=settings.issuer,
            options={"require": ["sub", "exp", "iat", "jti", "iss"]},
        )
    except InvalidTokenError as exc:
        raise AuthVerificationError("Token verification failed") from exc

    token_id = claims.get("jti")
    if not isinstance(token_id, str) or not token_id:
        raise AuthVerificationError("Token missing id claim")
    if token_id in revoked_token_ids:
        raise AuthVerificationError("Token has been revoked")

    subject = claims.get("sub")
    if not isinstance(subject, str) or not subject.isdigit():
        raise AuthVerificationError("Token missing subject claim")
    username = claims.get("username")
    return AuthContext(
        user_id=int(subject),
        username=username if isinstance(username, str) else "",
        token_id=token_id,
        expires_at=int(claims["exp"]),
        access_token=token,
    )
