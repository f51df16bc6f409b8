from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable
from typing import Protocol

import redis.asyncio as redis
from pydantic import ValidationError

from dashboard.app.models import RefreshKind, RefreshSignal

logger = logging.getLogger(__name__)

SignalHandler = Callable[[RefreshSignal], Awaitable[None]]
VisibilityListener = Callable[[str], Awaitable[None]]


def decode_signal(raw: str | bytes) -> RefreshSignal | None:
    """Parse a channel message; unknown message types are ignored."""
    try:
        return RefreshSignal.model_validate_json(raw)
    except ValidationError:
        logger.debug("Ignoring broadcast message %r", raw)
        return None


def make_signal(kind: RefreshKind, tenant_id: str | None = None) -> RefreshSignal:
    return RefreshSignal(kind=kind, tenant_id=tenant_id, timestamp=time.time())


class Subscription(Protocol):
    async def close(self) -> None: ...


class BroadcastChannel(Protocol):
    """Publish/subscribe channel shared by every open dashboard view."""

    name: str

    async def publish(self, signal: RefreshSignal) -> None: ...

    async def subscribe(self, handler: SignalHandler) -> Subscription: ...


async def _deliver(handler: SignalHandler, signal: RefreshSignal) -> None:
    try:
        await handler(signal)
    except Exception:
        logger.exception("Broadcast handler failed for %s", signal.kind.value)


class _LocalSubscription:
    def __init__(self, channel: "LocalBroadcastChannel", handler: SignalHandler) -> None:
        self._channel = channel
        self.handler = handler

    async def close(self) -> None:
        self._channel._subscriptions.discard(self)


class LocalBroadcastChannel:
    """In-process channel: views living in the same process see each other."""

    def __init__(self, name: str = "reservations") -> None:
        self.name = name
        self._subscriptions: set[_LocalSubscription] = set()
        self._pending: set[asyncio.Task] = set()

    @property
    def subscriber_count(self) -> int:
        return len(self._subscriptions)

    async def publish(self, signal: RefreshSignal) -> None:
        # Round-trip through JSON so local delivery matches the Redis wire format.
        decoded = decode_signal(signal.model_dump_json(by_alias=True))
        if decoded is None:
            return
        for subscription in list(self._subscriptions):
            task = asyncio.create_task(_deliver(subscription.handler, decoded))
            self._pending.add(task)
            task.add_done_callback(self._pending.discard)

    async def subscribe(self, handler: SignalHandler) -> Subscription:
        subscription = _LocalSubscription(self, handler)
        self._subscriptions.add(subscription)
        return subscription


class _RedisSubscription:
    def __init__(self, pubsub, task: asyncio.Task, channel: str) -> None:
        self._pubsub = pubsub
        self._task = task
        self._channel = channel

    async def close(self) -> None:
        await self._pubsub.unsubscribe(self._channel)
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        await self._pubsub.aclose()


class RedisBroadcastChannel:
    """Channel backed by Redis pub/sub, for views running in separate processes."""

    def __init__(self, client: redis.Redis, name: str = "reservations") -> None:
        self._client = client
        self.name = name

    async def publish(self, signal: RefreshSignal) -> None:
        await self._client.publish(self.name, signal.model_dump_json(by_alias=True, exclude_none=True))

    async def subscribe(self, handler: SignalHandler) -> Subscription:
        pubsub = self._client.pubsub()
        await pubsub.subscribe(self.name)
        task = asyncio.create_task(self._listen(pubsub, handler))
        return _RedisSubscription(pubsub, task, self.name)

    async def _listen(self, pubsub, handler: SignalHandler) -> None:
        while True:
            message = await pubsub.get_message(ignore_subscribe_messages=True, timeout=1.0)
            if message is None or message.get("type") != "message":
                continue
            signal = decode_signal(message["data"])
            if signal is not None:
                await _deliver(handler, signal)


class VisibilityEvents:
    """Visibility changes of the page hosting the dashboard ("visible"/"hidden")."""

    def __init__(self) -> None:
        self._listeners: list[VisibilityListener] = []
        self.state = "visible"

    def add_listener(self, listener: VisibilityListener) -> None:
        self._listeners.append(listener)

    def remove_listener(self, listener: VisibilityListener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    @property
    def listener_count(self) -> int:
        return len(self._listeners)

    async def set_state(self, state: str) -> None:
        self.state = state
        for listener in list(self._listeners):
            try:
                await listener(state)
            except Exception:
                logger.exception("Visibility listener failed")
