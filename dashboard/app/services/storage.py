from __future__ import annotations

from typing import Protocol

import redis.asyncio as redis


class CredentialStore(Protocol):
    """Persistence for the session credential under one well-known key."""

    async def load(self) -> str | None: ...

    async def save(self, credential: str) -> None: ...

    async def delete(self) -> None: ...


class MemoryCredentialStore:
    """Process-local store, the equivalent of one tab's local storage."""

    def __init__(self, key: str = "jwtToken") -> None:
        self.key = key
        self._values: dict[str, str] = {}

    async def load(self) -> str | None:
        return self._values.get(self.key)

    async def save(self, credential: str) -> None:
        self._values[self.key] = credential

    async def delete(self) -> None:
        self._values.pop(self.key, None)


class RedisCredentialStore:
    """Credential shared by every dashboard process pointed at the same Redis."""

    def __init__(self, client: redis.Redis, key: str = "jwtToken") -> None:
        self._client = client
        self.key = key

    async def load(self) -> str | None:
        return await self._client.get(self.key)

    async def save(self, credential: str) -> None:
        await self._client.set(self.key, credential)

    async def delete(self) -> None:
        await self._client.delete(self.key)
