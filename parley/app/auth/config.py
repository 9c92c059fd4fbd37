from __future__ import annotations

import os
from dataclasses import dataclass

DEFAULT_TOKEN_TTL_SECONDS = 7 * 24 * 60 * 60


@dataclass(frozen=True)
class AuthSettings:
    secret: str | None
    issuer: str
    token_ttl_seconds: int


def load_auth_settings() -> AuthSettings:
    return AuthSettings(
        secret=os.getenv("PARLEY_AUTH_SECRET", "").strip() or None,
        issuer=os.getenv("PARLEY_AUTH_ISSUER", "parley"),
        token_ttl_seconds=int(
            os.getenv("PARLEY_TOKEN_TTL_SECONDS", str(DEFAULT_TOKEN_TTL_SECONDS))
        ),
    )
