from __future__ import annotations

import asyncio
from collections.abc import Callable
from typing import Any

from fastapi import Depends, FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse
from pydantic import AliasChoices, BaseModel, Field, model_validator

from glasstodo.config import ServerConfig, load_config
from glasstodo.errors import StorageError
from glasstodo.models import PushSubscription
from glasstodo.observability import configure_uvicorn_logging, get_json_logger, get_metrics
from glasstodo.push.dispatcher import NotificationDispatcher, build_test_payload
from glasstodo.push.transport import PushTransport, WebPushTransport
from glasstodo.push.vapid import PushConfig, init_push_config
from glasstodo.reminders.scanner import ReminderScanner, ReminderScheduler
from glasstodo.store.interface import SettingsStore, SubscriptionRegistry, TaskStore
from glasstodo.store.redis_store import (
    RedisSettingsStore,
    RedisSubscriptionRegistry,
    RedisTaskStore,
)
from glasstodo.sync.reconciler import PublishConflict, SyncReconciler, now_ms

from .auth import AuthContext, Authenticator, HeaderAuthenticator

CONFLICT_MESSAGE = "Cloud data is newer; fetch before saving or force overwrite"


class SyncWriteRequest(BaseModel):
    # Older clients send the task list as "data"
    tasks: list[Any] = Field(validation_alias=AliasChoices("tasks", "data"))
    version: int = 0
    force: bool = False


class SubscriptionKeys(BaseModel):
    p256dh: str = Field(min_length=1)
    auth: str = Field(min_length=1)


class SubscribeRequest(BaseModel):
    endpoint: str = Field(min_length=1)
    keys: SubscriptionKeys
    expiration_time: int | None = Field(default=None, alias="expirationTime")

    @model_validator(mode="before")
    @classmethod
    def _unwrap(cls, data: Any) -> Any:
        # Browsers' PushSubscription.toJSON() is often posted as {"subscription": {...}}
        if isinstance(data, dict) and isinstance(data.get("subscription"), dict):
            return data["subscription"]
        return data


class UnsubscribeRequest(BaseModel):
    endpoint: str | None = None


def _error(status_code: int, error: str, **fields: Any) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": error, **fields})


def create_app(
    *,
    tasks: TaskStore,
    subscriptions: SubscriptionRegistry,
    push: PushConfig,
    transport: PushTransport | None = None,
    authenticator: Authenticator | None = None,
    config: ServerConfig | None = None,
    clock: Callable[[], int] | None = None,
) -> FastAPI:
    cfg = config or load_config()
    clock = clock or now_ms
    app = FastAPI(title="glasstodo")
    # Configure uvicorn logging at app creation to avoid import-time side effects
    configure_uvicorn_logging()
    logger = get_json_logger("glasstodo.gateway")
    metrics = get_metrics()
    authenticate = authenticator or HeaderAuthenticator()

    if transport is None and push.is_configured:
        transport = WebPushTransport(push, ttl=cfg.push_ttl_s)
    reconciler = SyncReconciler(tasks, clock=clock)
    dispatcher = NotificationDispatcher(subscriptions, transport, push)
    scanner = ReminderScanner(tasks, reconciler, dispatcher, window_ms=cfg.window_ms, clock=clock)
    scheduler = ReminderScheduler(scanner, interval_ms=cfg.scan_interval_ms)

    app.state.reconciler = reconciler
    app.state.dispatcher = dispatcher
    app.state.scanner = scanner
    app.state.scheduler = scheduler

    async def current_user(request: Request) -> AuthContext:
        return await authenticate(request)

    @app.exception_handler(StorageError)
    async def _storage_error(request: Request, exc: StorageError) -> JSONResponse:
        logger.error(
            "storage error",
            extra={"event": "gateway_error", "attributes": {"path": request.url.path}},
            exc_info=exc,
        )
        metrics.increment("gateway_storage_errors", {"path": request.url.path})
        return _error(503, "Storage unavailable")

    @app.on_event("startup")
    async def _on_startup() -> None:
        if cfg.scan_interval_ms > 0 and dispatcher.is_configured:
            scheduler.start()

    @app.on_event("shutdown")
    async def _on_shutdown() -> None:
        await scheduler.stop()
        logger.info("gateway shutdown", extra={"event": "gateway_shutdown", "service": "gateway"})

    @app.get("/health")
    async def health() -> dict[str, str]:  # lightweight healthcheck endpoint
        return {"status": "ok"}

    @app.get("/ready")
    async def ready() -> dict[str, str]:
        try:
            # Harmless read to validate storage connectivity
            await asyncio.to_thread(tasks.get, "ready:check")
        except StorageError as exc:
            raise HTTPException(status_code=503, detail="storage not ready") from exc
        return {"status": "ok"}

    # ----------------------------
    # Task sync
    # ----------------------------

    @app.get("/api/data")
    async def read_data(user: AuthContext = Depends(current_user)) -> dict[str, Any]:
        task_list, version = await asyncio.to_thread(reconciler.fetch, user.username)
        # "data" mirrors "tasks" for older clients, which also write it under that name
        return {"tasks": task_list, "data": task_list, "version": version}

    @app.post("/api/data", response_model=None)
    async def write_data(
        body: SyncWriteRequest, user: AuthContext = Depends(current_user)
    ) -> dict[str, Any] | JSONResponse:
        result = await asyncio.to_thread(
            reconciler.publish, user.username, body.tasks, body.version, body.force
        )
        if isinstance(result, PublishConflict):
            return _error(
                409, "Conflict", serverVersion=result.server_version, message=CONFLICT_MESSAGE
            )
        return {"success": True, "version": result.version}

    # ----------------------------
    # Push subscriptions
    # ----------------------------

    @app.get("/api/push/public-key", response_model=None)
    async def public_key(
        user: AuthContext = Depends(current_user),
    ) -> dict[str, Any] | JSONResponse:
        if not push.is_configured:
            return _error(500, "Push not configured")
        return {"key": push.public_key}

    @app.post("/api/push/subscribe", response_model=None)
    async def subscribe(
        body: SubscribeRequest, user: AuthContext = Depends(current_user)
    ) -> dict[str, Any] | JSONResponse:
        if not push.is_configured:
            return _error(500, "Push not configured")
        sub = PushSubscription(
            endpoint=body.endpoint,
            username=user.username,
            p256dh=body.keys.p256dh,
            auth=body.keys.auth,
            expiration_time=body.expiration_time,
            created_at=clock(),
        )
        await asyncio.to_thread(subscriptions.upsert, sub)
        logger.info(
            "push subscribed",
            extra={"event": "push_subscribed", "username": user.username, "endpoint": sub.endpoint},
        )
        return {"success": True}

    @app.post("/api/push/unsubscribe")
    async def unsubscribe(
        body: UnsubscribeRequest | None = None, user: AuthContext = Depends(current_user)
    ) -> dict[str, Any]:
        endpoint = body.endpoint if body is not None else None
        removed = await asyncio.to_thread(
            subscriptions.delete_for_user, user.username, endpoint or None
        )
        logger.info(
            "push unsubscribed",
            extra={
                "event": "push_unsubscribed",
                "username": user.username,
                "attributes": {"removed": removed, "all": not endpoint},
            },
        )
        return {"success": True}

    @app.post("/api/push/test", response_model=None)
    async def push_test(
        user: AuthContext = Depends(current_user),
    ) -> dict[str, Any] | JSONResponse:
        if not push.is_configured:
            return _error(500, "Push not configured")
        sent = await dispatcher.dispatch(user.username, build_test_payload(clock()))
        if not sent:
            return _error(404, "No subscription")
        return {"success": True}

    return app


def resolve_push_config(settings: SettingsStore, config: ServerConfig) -> PushConfig:
    """Run the signing-key init sequence; any failure leaves push disabled."""
    try:
        return init_push_config(settings, config)
    except Exception:
        get_json_logger("glasstodo.push").warning(
            "vapid init failed", extra={"event": "vapid_init_failed"}, exc_info=True
        )
        return PushConfig()


def create_app_from_config(config: ServerConfig) -> FastAPI:
    """Wire Redis-backed stores and the push identity for a real deployment."""
    settings = RedisSettingsStore(url=config.redis_url, key_prefix=config.key_prefix)
    return create_app(
        tasks=RedisTaskStore(url=config.redis_url, key_prefix=config.key_prefix),
        subscriptions=RedisSubscriptionRegistry(url=config.redis_url, key_prefix=config.key_prefix),
        push=resolve_push_config(settings, config),
        config=config,
    )


__all__ = [
    "SubscribeRequest",
    "SyncWriteRequest",
    "UnsubscribeRequest",
    "create_app",
    "create_app_from_config",
    "resolve_push_config",
]
