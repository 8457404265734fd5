from __future__ import annotations

import json
from collections.abc import Generator, Iterable, Iterator, Mapping
from contextlib import contextmanager
from typing import Any

import redis
from pydantic import ValidationError

from glasstodo.errors import StorageError
from glasstodo.models import PushSubscription, TaskCollection
from glasstodo.observability import get_json_logger


@contextmanager
def _storage_errors(op: str) -> Generator[None, None, None]:
    try:
        yield
    except redis.RedisError as exc:
        raise StorageError(f"redis {op} failed: {exc}") from exc


def _connect(url: str | None, client: Any | None) -> Any:
    if client is not None:
        return client
    # decode_responses=True returns str everywhere for easier JSON handling
    return redis.Redis.from_url(url or "redis://localhost:6379/0", decode_responses=True)


class RedisTaskStore:
    """Redis-backed task documents.

    Data structures:
    - Hash per user: key `{prefix}:data:{username}` with fields `json` and `version`
    - Set of usernames with a document: key `{prefix}:data:users`
    """

    def __init__(
        self, *, url: str | None = None, key_prefix: str = "glasstodo", client: Any | None = None
    ) -> None:
        self._redis = _connect(url, client)
        self._prefix = key_prefix.rstrip(":")
        self._logger = get_json_logger("glasstodo.store")

    def _doc_key(self, username: str) -> str:
        return f"{self._prefix}:data:{username}"

    def _users_key(self) -> str:
        return f"{self._prefix}:data:users"

    def _decode(self, username: str, raw: Mapping[str, str]) -> TaskCollection:
        try:
            tasks = json.loads(raw.get("json") or "[]")
            version = int(raw.get("version") or 0)
        except (ValueError, TypeError) as exc:
            raise StorageError(f"corrupt task document for {username!r}") from exc
        if not isinstance(tasks, list):
            raise StorageError(f"corrupt task document for {username!r}")
        return TaskCollection(username=username, tasks=tasks, version=version)

    def get(self, username: str) -> TaskCollection | None:
        with _storage_errors("get"):
            raw = self._redis.hgetall(self._doc_key(username))
        if not raw:
            return None
        return self._decode(username, raw)

    def put(self, collection: TaskCollection) -> None:
        payload = json.dumps(collection.tasks, separators=(",", ":"), ensure_ascii=False)
        with _storage_errors("put"):
            p = self._redis.pipeline()
            p.hset(
                self._doc_key(collection.username),
                mapping={"json": payload, "version": str(collection.version)},
            )
            p.sadd(self._users_key(), collection.username)
            p.execute()

    def delete(self, username: str) -> bool:
        with _storage_errors("delete"):
            p = self._redis.pipeline()
            p.delete(self._doc_key(username))
            p.srem(self._users_key(), username)
            res = p.execute()
        return bool(sum(int(x) for x in res))

    def list_all(self) -> Iterator[TaskCollection]:
        with _storage_errors("list"):
            usernames = sorted(self._redis.smembers(self._users_key()))
        for username in usernames:
            try:
                collection = self.get(username)
            except StorageError:
                self._logger.warning(
                    "skipping unreadable task document",
                    extra={"event": "store_skip", "username": username},
                    exc_info=True,
                )
                continue
            if collection is not None:
                yield collection


class RedisSubscriptionRegistry:
    """Redis-backed push subscriptions.

    Data structures:
    - Hash per endpoint: key `{prefix}:push:sub:{endpoint}` with field `json`
    - Set of endpoints per owner: key `{prefix}:push:user:{username}`
    - Set of every endpoint: key `{prefix}:push:endpoints`
    """

    def __init__(
        self, *, url: str | None = None, key_prefix: str = "glasstodo", client: Any | None = None
    ) -> None:
        self._redis = _connect(url, client)
        self._prefix = key_prefix.rstrip(":")

    def _sub_key(self, endpoint: str) -> str:
        return f"{self._prefix}:push:sub:{endpoint}"

    def _user_key(self, username: str) -> str:
        return f"{self._prefix}:push:user:{username}"

    def _all_key(self) -> str:
        return f"{self._prefix}:push:endpoints"

    def get(self, endpoint: str) -> PushSubscription | None:
        with _storage_errors("get subscription"):
            raw = self._redis.hget(self._sub_key(endpoint), "json")
        if raw is None:
            return None
        try:
            return PushSubscription.model_validate_json(raw)
        except ValidationError as exc:
            raise StorageError(f"corrupt subscription for {endpoint!r}") from exc

    def upsert(self, subscription: PushSubscription) -> None:
        previous = self.get(subscription.endpoint)
        with _storage_errors("upsert subscription"):
            p = self._redis.pipeline()
            if previous is not None and previous.username != subscription.username:
                p.srem(self._user_key(previous.username), subscription.endpoint)
            p.hset(
                self._sub_key(subscription.endpoint),
                mapping={"json": subscription.model_dump_json()},
            )
            p.sadd(self._user_key(subscription.username), subscription.endpoint)
            p.sadd(self._all_key(), subscription.endpoint)
            p.execute()

    def delete(self, endpoint: str) -> bool:
        existing = self.get(endpoint)
        with _storage_errors("delete subscription"):
            p = self._redis.pipeline()
            p.delete(self._sub_key(endpoint))
            p.srem(self._all_key(), endpoint)
            if existing is not None:
                p.srem(self._user_key(existing.username), endpoint)
            res = p.execute()
        return bool(res[0])

    def list_for_user(self, username: str) -> list[PushSubscription]:
        with _storage_errors("list subscriptions"):
            endpoints = sorted(self._redis.smembers(self._user_key(username)))
        result: list[PushSubscription] = []
        for endpoint in endpoints:
            sub = self.get(endpoint)
            if sub is not None and sub.username == username:
                result.append(sub)
        return result

    def delete_for_user(self, username: str, endpoint: str | None = None) -> int:
        if endpoint is not None:
            existing = self.get(endpoint)
            if existing is None or existing.username != username:
                return 0
            return int(self.delete(endpoint))
        removed = 0
        for sub in self.list_for_user(username):
            removed += int(self.delete(sub.endpoint))
        with _storage_errors("delete subscriptions"):
            self._redis.delete(self._user_key(username))
        return removed

    def list_all(self) -> Iterator[PushSubscription]:
        with _storage_errors("list subscriptions"):
            endpoints = sorted(self._redis.smembers(self._all_key()))
        for endpoint in endpoints:
            sub = self.get(endpoint)
            if sub is not None:
                yield sub


class RedisSettingsStore:
    """Server settings in a single hash: key `{prefix}:settings`."""

    def __init__(
        self, *, url: str | None = None, key_prefix: str = "glasstodo", client: Any | None = None
    ) -> None:
        self._redis = _connect(url, client)
        self._key = f"{key_prefix.rstrip(':')}:settings"

    def get_many(self, keys: Iterable[str]) -> dict[str, str]:
        names = list(keys)
        if not names:
            return {}
        with _storage_errors("get settings"):
            values = self._redis.hmget(self._key, names)
        return {k: v for k, v in zip(names, values, strict=True) if v is not None}

    def set_many(self, values: Mapping[str, str]) -> None:
        if not values:
            return
        with _storage_errors("set settings"):
            self._redis.hset(self._key, mapping=dict(values))


__all__ = ["RedisTaskStore", "RedisSubscriptionRegistry", "RedisSettingsStore"]
