from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class AuthContext:
    user_id: int
    username: str
    token_id: str
    expires_at: int
    access_token: str | None = None


@dataclass(frozen=True)
class IssuedToken:
    access_token: str
    token_id: str
    expires_at: int
