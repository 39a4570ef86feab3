"""Credential store - key/value storage with per-key expiry.

Every component reaches shared state through the ``CredentialStore`` interface.
The store is eventually consistent and offers no transactions or key listing;
callers design their writes to be safe under last-writer-wins.
"""

from __future__ import annotations

import asyncio
import json
import logging
import os
import time
from collections.abc import Callable
from typing import Any, Protocol

import boto3  # type: ignore[reportMissingTypeStubs]

logger = logging.getLogger(__name__)


class CredentialStore(Protocol):
    """Minimal key/value interface shared by every backend."""

    async def get(self, key: str) -> str | None:
        """Return the stored value, or None when absent or expired."""
        ...

    async def put(self, key: str, value: str, ttl: int | None = None) -> None:
        """Store a value, overwriting any previous one. ``ttl`` is in seconds."""
        ...

    async def delete(self, key: str) -> None:
        """Remove a key. Deleting a missing key is not an error."""
        ...


class InMemoryCredentialStore:
    """Process-local store used for development and tests."""

    def __init__(self, clock: Callable[[], float] = time.time) -> None:
        self._lock = asyncio.Lock()
        self._items: dict[str, tuple[str, float | None]] = {}
        self._clock = clock

    async def get(self, key: str) -> str | None:
        async with self._lock:
            item = self._items.get(key)
            if item is None:
                return None
            value, expires_at = item
            if expires_at is not None and expires_at <= self._clock():
                self._items.pop(key, None)
                return None
            return value

    async def put(self, key: str, value: str, ttl: int | None = None) -> None:
        expires_at = self._clock() + ttl if ttl is not None else None
        async with self._lock:
            self._items[key] = (value, expires_at)

    async def delete(self, key: str) -> None:
        async with self._lock:
            self._items.pop(key, None)


class DynamoCredentialStore:
    """DynamoDB-backed store keyed by ``pk`` with a ``ttl`` expiry attribute."""

    def __init__(
        self,
        table_name: str,
        *,
        region_name: str | None = None,
        boto3_resource: Any | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._table_name = table_name
        self._clock = clock
        resource = boto3_resource or boto3.resource("dynamodb", region_name=region_name)  # type: ignore[reportUnknownMemberType]
        self._table = resource.Table(table_name)  # type: ignore[reportAttributeAccessIssue]

    async def get(self, key: str) -> str | None:
        response = await asyncio.to_thread(self._table.get_item, Key={"pk": key})  # type: ignore[reportUnknownMemberType,reportUnknownArgumentType]
        item = response.get("Item")  # type: ignore[reportUnknownMemberType,reportUnknownVariableType]
        if item is None:
            return None
        # DynamoDB removes expired items lazily, so they can still be returned.
        ttl = item.get("ttl")  # type: ignore[reportUnknownMemberType]
        if ttl is not None and int(ttl) <= int(self._clock()):
            return None
        return str(item["data"])  # type: ignore[reportUnknownArgumentType]

    async def put(self, key: str, value: str, ttl: int | None = None) -> None:
        item: dict[str, Any] = {"pk": key, "data": value}
        if ttl is not None:
            item["ttl"] = int(self._clock()) + ttl
        await asyncio.to_thread(self._table.put_item, Item=item)  # type: ignore[reportUnknownMemberType,reportUnknownArgumentType]

    async def delete(self, key: str) -> None:
        await asyncio.to_thread(self._table.delete_item, Key={"pk": key})  # type: ignore[reportUnknownMemberType,reportUnknownArgumentType]


async def get_json(store: CredentialStore, key: str) -> dict[str, Any] | None:
    """Read a JSON object, treating corrupt or non-object values as absent."""
    raw = await store.get(key)
    if raw is None:
        return None
    try:
        data = json.loads(raw)
    except ValueError:
        logger.warning("Discarding undecodable value stored at %s", key)
        return None
    if not isinstance(data, dict):
        logger.warning("Discarding non-object value stored at %s", key)
        return None
    return data


async def put_json(
    store: CredentialStore, key: str, data: dict[str, Any], ttl: int | None = None
) -> None:
    await store.put(key, json.dumps(data), ttl=ttl)


def create_credential_store_from_env() -> CredentialStore:
    """Instantiate the appropriate store based on environment configuration."""
    backend = os.getenv("STRAVA_SESSION_BACKEND", "").strip().lower()
    if backend == "dynamodb":
        table_name = os.getenv("STRAVA_SESSION_TABLE")
        if not table_name:
            raise ValueError(
                "STRAVA_SESSION_TABLE must be set when STRAVA_SESSION_BACKEND=dynamodb."
            )
        region = os.getenv("AWS_REGION") or os.getenv("AWS_DEFAULT_REGION")
        return DynamoCredentialStore(table_name, region_name=region)
    return InMemoryCredentialStore()
