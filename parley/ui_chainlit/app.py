from __future__ import annotations

import os

import chainlit as cl
import httpx

from parley.ui_chainlit.rendering import (
    build_reply_view,
    format_chat_list,
    parse_command,
)

API_BASE_URL = os.getenv("PARLEY_API_URL", "http://localhost:8000").rstrip("/")
PROVIDER_CHOICES = ("deepseek", "gemini")
PROVIDER_AUTHORS = {"deepseek": "DeepSeek AI", "gemini": "Gemini AI"}
DEFAULT_PROVIDER = os.getenv("DEFAULT_PROVIDER", "deepseek").strip().lower()

HELP_TEXT = (
    "Commands:\n"
    "- `/register <username> <password>`\n"
    "- `/login <username> <password>`\n"
    "- `/logout`\n"
    "- `/provider [deepseek|gemini]`\n"
    "- `/new [title]`\n"
    "- `/chats`\n"
    "- `/open <chat_id>`\n"
    "- `/rename <title>`\n"
    "- `/delete <chat_id>`\n"
    "- `/regenerate`\n"
    "- `/help`"
)


def _auth_token() -> str | None:
    token = cl.user_session.get("access_token")
    if isinstance(token, str) and token.strip():
        return token.strip()
    return None


def _active_chat_id() -> int | None:
    chat_id = cl.user_session.get("chat_id")
    return chat_id if isinstance(chat_id, int) else None


def _active_provider() -> str:
    provider = cl.user_session.get("provider")
    if isinstance(provider, str) and provider in PROVIDER_CHOICES:
        return provider
    return DEFAULT_PROVIDER if DEFAULT_PROVIDER in PROVIDER_CHOICES else "deepseek"


def _headers() -> dict[str, str]:
    token = _auth_token()
    return {"Authorization": f"Bearer {token}"} if token else {}


async def _request(
    method: str,
    path: str,
    payload: dict[str, object] | None = None,
    *,
    timeout: float = 30.0,
) -> httpx.Response:
    async with httpx.AsyncClient(timeout=timeout) as client:
        return await client.request(
            method,
            f"{API_BASE_URL}{path}",
            json=payload,
            headers=_headers(),
        )


def _error_detail(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return response.text
    if isinstance(body, dict) and isinstance(body.get("detail"), str):
        return body["detail"]
    return response.text


async def _say(content: str) -> None:
    await cl.Message(content=content).send()


async def _show_assistant_message(message: object) -> None:
    if not isinstance(message, dict):
        return
    view = build_reply_view(message.get("segments"))
    for thought in view.thoughts:
        async with cl.Step(name="View AI thought process", type="llm") as step:
            step.output = thought.thought
    provider = message.get("provider")
    author = PROVIDER_AUTHORS.get(provider, "Assistant") if provider else "Assistant"
    content = view.markdown or str(message.get("content", ""))
    await cl.Message(content=content, author=author).send()


async def _store_session(response: httpx.Response, verb: str) -> None:
    if response.status_code not in {200, 201}:
        await _say(f"{verb} failed: {_error_detail(response)}")
        return
    body = response.json()
    cl.user_session.set("access_token", body.get("access_token"))
    cl.user_session.set("chat_id", None)
    user = body.get("user") or {}
    await _say(f"{verb} successful. Signed in as **{user.get('username', '?')}**.")


async def _ensure_chat() -> int | None:
    chat_id = _active_chat_id()
    if chat_id is not None:
        return chat_id
    response = await _request("POST", "/api/v1/chats", {})
    if response.status_code != 201:
        await _say(f"Could not create a chat: {_error_detail(response)}")
        return None
    chat_id = response.json().get("id")
    cl.user_session.set("chat_id", chat_id)
    return chat_id


async def _open_chat(chat_id: int) -> None:
    response = await _request("GET", f"/api/v1/chats/{chat_id}/messages")
    if response.status_code != 200:
        await _say(f"Could not open chat {chat_id}: {_error_detail(response)}")
        return
    cl.user_session.set("chat_id", chat_id)
    messages = response.json().get("messages", [])
    await _say(f"Opened chat `{chat_id}` ({len(messages)} messages).")
    for message in messages:
        if message.get("role") == "user":
            await cl.Message(content=str(message.get("content", "")), author="You").send()
        elif message.get("role") == "assistant":
            await _show_assistant_message(message)


async def _handle_command(name: str, args: list[str], raw: str) -> None:
    if name == "help":
        await _say(HELP_TEXT)
        return

    if name in {"register", "login"}:
        if len(args) < 2:
            await _say(f"Use `/{name} <username> <password>`.")
            return
        response = await _request(
            "POST",
            f"/api/v1/auth/{name}",
            {"username": args[0], "password": " ".join(args[1:])},
        )
        await _store_session(response, "Registration" if name == "register" else "Login")
        return

    if not _auth_token():
        await _say("Sign in first with `/login` or `/register`.")
        return

    if name == "logout":
        await _request("POST", "/api/v1/auth/logout")
        cl.user_session.set("access_token", None)
        cl.user_session.set("chat_id", None)
        await _say("Signed out.")
        return

    if name == "provider":
        if args and args[0].lower() in PROVIDER_CHOICES:
            cl.user_session.set("provider", args[0].lower())
        elif args:
            await _say(f"Unknown provider. Choose one of: {', '.join(PROVIDER_CHOICES)}.")
            return
        await _say(f"Current provider: **{PROVIDER_AUTHORS[_active_provider()]}**")
        return

    if name == "new":
        title = raw.partition(" ")[2].strip() or None
        response = await _request("POST", "/api/v1/chats", {"title": title})
        if response.status_code != 201:
            await _say(f"Could not create a chat: {_error_detail(response)}")
            return
        chat = response.json()
        cl.user_session.set("chat_id", chat.get("id"))
        await _say(f"Started chat `{chat.get('id')}`: {chat.get('title')}")
        return

    if name == "chats":
        response = await _request("GET", "/api/v1/chats")
        if response.status_code != 200:
            await _say(f"Could not list chats: {_error_detail(response)}")
            return
        await _say(format_chat_list(response.json().get("chats"), _active_chat_id()))
        return

    if name in {"open", "delete"}:
        if not args or not args[0].isdigit():
            await _say(f"Use `/{name} <chat_id>`.")
            return
        chat_id = int(args[0])
        if name == "open":
            await _open_chat(chat_id)
            return
        response = await _request("DELETE", f"/api/v1/chats/{chat_id}")
        if response.status_code != 200:
            await _say(f"Could not delete chat {chat_id}: {_error_detail(response)}")
            return
        if _active_chat_id() == chat_id:
            cl.user_session.set("chat_id", None)
        await _say(f"Deleted chat `{chat_id}`.")
        return

    if name == "rename":
        chat_id = _active_chat_id()
        title = raw.partition(" ")[2].strip()
        if chat_id is None or not title:
            await _say("Open a chat and use `/rename <title>`.")
            return
        response = await _request(
            "PATCH", f"/api/v1/chats/{chat_id}/title", {"title": title}
        )
        if response.status_code != 200:
            await _say(f"Rename failed: {_error_detail(response)}")
            return
        await _say(f"Chat renamed to: {response.json().get('title')}")
        return

    if name == "regenerate":
        chat_id = _active_chat_id()
        if chat_id is None:
            await _say("There is no active chat to regenerate.")
            return
        response = await _request(
            "POST",
            f"/api/v1/chats/{chat_id}/regenerate",
            {"provider": _active_provider()},
            timeout=180.0,
        )
        if response.status_code != 201:
            await _say(f"Regenerate failed: {_error_detail(response)}")
            return
        await _show_assistant_message(response.json().get("assistant_message"))
        return

    await _say(f"Unknown command `/{name}`.\n\n{HELP_TEXT}")


@cl.on_chat_start
async def on_chat_start() -> None:
    cl.user_session.set("provider", _active_provider())
    await _say(
        "Welcome to Parley. Chat with DeepSeek or Gemini.\n\n"
        f"{HELP_TEXT}\n\n"
        f"Current provider: **{PROVIDER_AUTHORS[_active_provider()]}**"
    )


@cl.on_message
async def on_message(message: cl.Message) -> None:
    content = message.content.strip()
    command = parse_command(content)
    if command:
        name, args = command
        await _handle_command(name, args, content)
        return

    if not _auth_token():
        await _say("Sign in first with `/login` or `/register`.")
        return

    chat_id = await _ensure_chat()
    if chat_id is None:
        return

    provider = _active_provider()
    async with cl.Step(name=f"{PROVIDER_AUTHORS[provider]} is working on your response"):
        response = await _request(
            "POST",
            f"/api/v1/chats/{chat_id}/messages",
            {"content": content, "provider": provider},
            timeout=180.0,
        )
    if response.status_code != 201:
        await _say(f"Message failed: {_error_detail(response)}")
        return
    await _show_assistant_message(response.json().get("assistant_message"))
