from __future__ import annotations

import logging

from fastapi import Depends, FastAPI, Header, HTTPException
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from parley.app.auth.access import (
    UsernameTakenError,
    authenticate_user,
    get_user,
    register_user,
    revoke_token,
)
from parley.app.auth.config import AuthSettings, load_auth_settings
from parley.app.auth.contracts import AuthContext
from parley.app.auth.verify import (
    AuthConfigurationError,
    AuthVerificationError,
    issue_access_token,
    verify_bearer_token,
)
from parley.app.chat.contracts import Chat, Message, User
from parley.app.chat.service import (
    ConversationChangedError,
    NothingToRegenerateError,
    create_chat,
    delete_chat,
    get_chat,
    list_chats,
    list_messages,
    regenerate_reply,
    send_message,
    update_chat_title,
)
from parley.app.formatting.service import format_content, segment_to_payload
from parley.app.llm.adapter import ChatAdapter
from parley.app.llm.contracts import PROVIDER_LABELS, ProviderError, ProviderName
from parley.app.llm.providers import build_chat_adapter
from parley.app.runtime.store import RuntimeStore, runtime_store
from parley.core.config import AppConfig, load_app_config

LOGGER = logging.getLogger(__name__)
GENERATION_FAILED_DETAIL = "Failed to generate response"
TRACE_PAGE_SIZE = 50


class CredentialsRequest(BaseModel):
    username: str = Field(min_length=1, max_length=64)
    password: str = Field(min_length=1)


class ChatCreateRequest(BaseModel):
    title: str | None = None


class ChatTitleRequest(BaseModel):
    title: str = Field(min_length=1)


class MessageCreateRequest(BaseModel):
    content: str = Field(min_length=1)
    provider: ProviderName | None = None


class RegenerateRequest(BaseModel):
    provider: ProviderName | None = None


def _user_payload(user: User) -> dict[str, object]:
    return {
        "id": user.user_id,
        "username": user.username,
        "created_at": user.created_at,
    }


def _chat_payload(chat: Chat) -> dict[str, object]:
    return {
        "id": chat.chat_id,
        "user_id": chat.user_id,
        "title": chat.title,
        "created_at": chat.created_at,
        "updated_at": chat.updated_at,
    }


def _message_payload(message: Message) -> dict[str, object]:
    return {
        "id": message.message_id,
        "chat_id": message.chat_id,
        "role": message.role,
        "content": message.content,
        "provider": message.provider,
        "created_at": message.created_at,
        "segments": [
            segment_to_payload(segment) for segment in format_content(message.content)
        ],
    }


def _resolve_default_provider(config: AppConfig) -> ProviderName:
    try:
        return ProviderName(config.default_provider)
    except ValueError:
        LOGGER.warning(
            "unknown_default_provider value=%s fallback=%s",
            config.default_provider,
            ProviderName.DEEPSEEK.value,
        )
        return ProviderName.DEEPSEEK


def create_app(
    *,
    config: AppConfig | None = None,
    auth_settings: AuthSettings | None = None,
    store: RuntimeStore | None = None,
    adapter: ChatAdapter | None = None,
) -> FastAPI:
    config = config or load_app_config()
    auth_settings = auth_settings or load_auth_settings()
    store = store if store is not None else runtime_store
    adapter = adapter or build_chat_adapter(config)
    default_provider = _resolve_default_provider(config)

    app = FastAPI(title=config.app_name, version=config.app_version)

    def require_auth_context(
        authorization: str | None = Header(default=None, alias="Authorization"),
    ) -> AuthContext:
        try:
            context = verify_bearer_token(
                authorization,
                auth_settings,
                revoked_token_ids=store.revoked_token_ids,
            )
        except AuthConfigurationError as exc:
            raise HTTPException(status_code=503, detail=str(exc)) from exc
        except AuthVerificationError as exc:
            raise HTTPException(status_code=401, detail=str(exc)) from exc
        if not get_user(store=store, user_id=context.user_id):
            raise HTTPException(status_code=401, detail="Unknown user")
        return context

    def require_owned_chat(
        chat_id: int,
        context: AuthContext = Depends(require_auth_context),
    ) -> Chat:
        chat = get_chat(store=store, chat_id=chat_id)
        if not chat:
            raise HTTPException(status_code=404, detail="Chat not found")
        if chat.user_id != context.user_id:
            raise HTTPException(status_code=403, detail="Forbidden")
        return chat

    def _token_response(user: User, status_code: int) -> JSONResponse:
        try:
            issued = issue_access_token(user, auth_settings)
        except AuthConfigurationError as exc:
            raise HTTPException(status_code=503, detail=str(exc)) from exc
        return JSONResponse(
            status_code=status_code,
            content={
                "user": _user_payload(user),
                "access_token": issued.access_token,
                "token_type": "bearer",
                "expires_at": issued.expires_at,
            },
        )

    @app.get("/")
    async def root() -> JSONResponse:
        return JSONResponse(
            content={
                "name": config.app_name,
                "version": config.app_version,
                "environment": config.environment,
                "docs": "/docs",
            }
        )

    @app.get("/health")
    async def health() -> dict[str, bool]:
        return {"ok": True}

    @app.get("/ready")
    async def ready() -> JSONResponse:
        providers = {
            provider.value: {"configured": adapter.is_configured(provider)}
            for provider in ProviderName
        }
        auth_ready = bool(auth_settings.secret)
        overall_ready = auth_ready and any(
            item["configured"] for item in providers.values()
        )
        return JSONResponse(
            status_code=200 if overall_ready else 503,
            content={
                "ready": overall_ready,
                "auth": {
                    "configured": auth_ready,
                    "reason": (
                        "signing_secret_available"
                        if auth_ready
                        else "missing_PARLEY_AUTH_SECRET"
                    ),
                },
                "providers": providers,
            },
        )

    @app.post("/api/v1/auth/register")
    async def register(payload: CredentialsRequest) -> JSONResponse:
        if not payload.username.strip():
            raise HTTPException(status_code=400, detail="Username is required")
        try:
            user = await register_user(
                store=store,
                username=payload.username,
                password=payload.password,
            )
        except UsernameTakenError as exc:
            raise HTTPException(status_code=400, detail=str(exc)) from exc
        return _token_response(user, status_code=201)

    @app.post("/api/v1/auth/login")
    async def login(payload: CredentialsRequest) -> JSONResponse:
        user = await authenticate_user(
            store=store,
            username=payload.username,
            password=payload.password,
        )
        if not user:
            raise HTTPException(status_code=401, detail="Invalid credentials")
        return _token_response(user, status_code=200)

    @app.post("/api/v1/auth/logout")
    async def logout(
        context: AuthContext = Depends(require_auth_context),
    ) -> dict[str, bool]:
        revoke_token(
            store=store,
            token_id=context.token_id,
            expires_at=context.expires_at,
        )
        return {"ok": True}

    @app.get("/api/v1/auth/session")
    async def auth_session(
        context: AuthContext = Depends(require_auth_context),
    ) -> dict[str, object]:
        user = get_user(store=store, user_id=context.user_id)
        return {"user": _user_payload(user) if user else None}

    @app.get("/api/v1/providers")
    async def providers() -> dict[str, object]:
        return {
            "default": default_provider.value,
            "providers": [
                {
                    "id": provider.value,
                    "label": PROVIDER_LABELS[provider],
                    "configured": adapter.is_configured(provider),
                }
                for provider in ProviderName
            ],
        }

    @app.get("/api/v1/chats")
    async def chats(
        context: AuthContext = Depends(require_auth_context),
    ) -> dict[str, list[dict[str, object]]]:
        return {
            "chats": [
                _chat_payload(chat)
                for chat in list_chats(store=store, user_id=context.user_id)
            ]
        }

    @app.post("/api/v1/chats", status_code=201)
    async def new_chat(
        payload: ChatCreateRequest,
        context: AuthContext = Depends(require_auth_context),
    ) -> dict[str, object]:
        chat = create_chat(store=store, user_id=context.user_id, title=payload.title)
        return _chat_payload(chat)

    @app.delete("/api/v1/chats/{chat_id}")
    async def remove_chat(chat: Chat = Depends(require_owned_chat)) -> dict[str, str]:
        if not delete_chat(store=store, chat_id=chat.chat_id):
            raise HTTPException(status_code=404, detail="Chat not found")
        return {"message": "Chat deleted successfully"}

    @app.patch("/api/v1/chats/{chat_id}/title")
    async def rename_chat(
        payload: ChatTitleRequest,
        chat: Chat = Depends(require_owned_chat),
    ) -> dict[str, object]:
        title = payload.title.strip()
        if not title:
            raise HTTPException(status_code=400, detail="Title is required")
        updated = update_chat_title(store=store, chat_id=chat.chat_id, title=title)
        if not updated:
            raise HTTPException(status_code=404, detail="Chat not found")
        return _chat_payload(updated)

    @app.get("/api/v1/chats/{chat_id}/messages")
    async def chat_messages(
        chat: Chat = Depends(require_owned_chat),
    ) -> dict[str, list[dict[str, object]]]:
        return {
            "messages": [
                _message_payload(message)
                for message in list_messages(store=store, chat_id=chat.chat_id)
            ]
        }

    @app.post("/api/v1/chats/{chat_id}/messages", status_code=201)
    async def post_message(
        payload: MessageCreateRequest,
        chat: Chat = Depends(require_owned_chat),
    ) -> dict[str, object]:
        content = payload.content.strip()
        if not content:
            raise HTTPException(status_code=400, detail="Content is required")
        provider = payload.provider or default_provider
        try:
            exchange = await send_message(
                store=store,
                adapter=adapter,
                chat=chat,
                content=content,
                provider=provider,
            )
        except ProviderError as exc:
            LOGGER.error(
                "generation_failed chat_id=%s provider=%s status=%s",
                chat.chat_id,
                exc.provider,
                exc.status_code,
            )
            raise HTTPException(
                status_code=502, detail=GENERATION_FAILED_DETAIL
            ) from exc
        return {
            "user_message": _message_payload(exchange.user_message),
            "assistant_message": _message_payload(exchange.assistant_message),
        }

    @app.post("/api/v1/chats/{chat_id}/regenerate", status_code=201)
    async def regenerate(
        payload: RegenerateRequest,
        chat: Chat = Depends(require_owned_chat),
    ) -> dict[str, object]:
        try:
            exchange = await regenerate_reply(
                store=store,
                adapter=adapter,
                chat=chat,
                provider=payload.provider,
            )
        except NothingToRegenerateError as exc:
            raise HTTPException(status_code=400, detail=str(exc)) from exc
        except ConversationChangedError as exc:
            raise HTTPException(status_code=409, detail=str(exc)) from exc
        except ProviderError as exc:
            LOGGER.error(
                "regeneration_failed chat_id=%s provider=%s status=%s",
                chat.chat_id,
                exc.provider,
                exc.status_code,
            )
            raise HTTPException(
                status_code=502, detail=GENERATION_FAILED_DETAIL
            ) from exc
        return {"assistant_message": _message_payload(exchange.assistant_message)}

    @app.get("/api/v1/observability/traces")
    async def provider_traces(
        context: AuthContext = Depends(require_auth_context),
    ) -> dict[str, object]:
        own_traces = [
            row for row in store.provider_trace_log if row.user_id == context.user_id
        ]
        return {
            "user_id": context.user_id,
            "traces": [
                {
                    "trace_id": row.trace_id,
                    "provider": row.provider,
                    "chat_id": row.chat_id,
                    "status": row.status,
                    "status_code": row.status_code,
                    "latency_ms": row.latency_ms,
                    "error_message": row.error_message,
                }
                for row in own_traces[-TRACE_PAGE_SIZE:]
            ],
        }

    return app
