from __future__ import annotations

import asyncio
import time

from parley.app.auth.passwords import hash_password, verify_password
from parley.app.chat.contracts import User
from parley.app.runtime.store import RuntimeStore, persist_runtime_state


class UsernameTakenError(ValueError):
    pass


def normalize_username(username: str) -> str:
    return username.strip()


def get_user(*, store: RuntimeStore, user_id: int) -> User | None:
    return store.users.get(user_id)


def get_user_by_username(*, store: RuntimeStore, username: str) -> User | None:
    normalized = normalize_username(username).lower()
    return next(
        (user for user in store.users.values() if user.username.lower() == normalized),
        None,
    )


async def register_user(*, store: RuntimeStore, username: str, password: str) -> User:
    normalized = normalize_username(username)
    if get_user_by_username(store=store, username=normalized):
        raise UsernameTakenError("Username already exists")
    password_hash = await asyncio.to_thread(hash_password, password)
    # another registration may have claimed the name while hashing
    if get_user_by_username(store=store, username=normalized):
        raise UsernameTakenError("Username already exists")
    user = User(
        user_id=store.next_user_id(),
        username=normalized,
        password_hash=password_hash,
        created_at=int(time.time()),
    )
    store.users[user.user_id] = user
    persist_runtime_state(store)
    return user


async def authenticate_user(
    *,
    store: RuntimeStore,
    username: str,
    password: str,
) -> User | None:
    user = get_user_by_username(store=store, username=username)
    if not user:
        return None
    if not await asyncio.to_thread(verify_password, password, user.password_hash):
        return None
    return user


def revoke_token(*, store: RuntimeStore, token_id: str, expires_at: int) -> None:
    store.revoked_token_ids[token_id] = expires_at
    persist_runtime_state(store)
