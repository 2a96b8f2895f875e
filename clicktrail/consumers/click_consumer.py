"""Redis Pub/Sub consumer feeding published redirects to the click recorder."""

import asyncio
import time
from typing import Callable, Coroutine

import redis.asyncio as redis
import structlog
from pydantic import ValidationError

from clicktrail.core.config import get_settings
from clicktrail.core.observability import (
    record_click_failed,
    record_click_received,
    set_consumer_running,
)
from clicktrail.schemas.events import RedirectContext

logger = structlog.get_logger()

ClickEventHandler = Callable[[RedirectContext], Coroutine[None, None, object]]

# Seconds to wait before resubscribing after a Redis failure
RECONNECT_DELAY = 1.0
MAX_RECONNECT_DELAY = 30.0


class ClickEventConsumer:
    """Subscribe to the click channel and hand each redirect to the handlers.

    Used when ``click_transport`` is ``redis``. Messages are ``RedirectContext``
    JSON as published by the dispatcher. A message that does not parse is
    counted as failed and dropped; a handler that raises does not keep the
    remaining handlers from running. When Redis goes away the consumer keeps
    resubscribing with a growing delay until it is stopped.

    Usage:
        consumer = ClickEventConsumer()
        consumer.register_handler(recorder.record_click)
        await consumer.start()
        ...
        await consumer.stop()
    """

    def __init__(self, redis_url: str | None = None, channel: str | None = None):
        settings = get_settings()
        self.redis_url = redis_url or settings.redis_url
        self.channel = channel or settings.redis_channel
        self._handlers: list[ClickEventHandler] = []
        self._client: redis.Redis | None = None
        self._task: asyncio.Task | None = None
        self._running = False
        self._events_processed = 0
        self._events_failed = 0
        self._reconnects = 0

    def register_handler(self, handler: ClickEventHandler) -> None:
        """Add a handler; handlers run in registration order."""
        self._handlers.append(handler)
        logger.debug("Click handler registered", handler=_handler_name(handler))

    async def start(self) -> None:
        if self._running:
            logger.warning("Click consumer already running", channel=self.channel)
            return

        self._client = redis.from_url(self.redis_url, encoding="utf-8", decode_responses=True)
        self._running = True
        set_consumer_running(True)
        self._task = asyncio.create_task(self._run())
        logger.info("Click consumer started", channel=self.channel)

    async def stop(self) -> None:
        if not self._running:
            return

        self._running = False
        set_consumer_running(False)
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None

        if self._client:
            await self._client.aclose()
            self._client = None

        logger.info("Click consumer stopped", **self.stats)

    async def _run(self) -> None:
        """Keep a subscription alive for as long as the consumer runs."""
        delay = RECONNECT_DELAY
        while self._running:
            try:
                await self._listen()
            except redis.RedisError as e:
                self._reconnects += 1
                logger.error(
                    "Click channel lost, resubscribing",
                    channel=self.channel,
                    error=str(e),
                    retry_in=delay,
                )
                await asyncio.sleep(delay)
                delay = min(delay * 2, MAX_RECONNECT_DELAY)
            else:
                delay = RECONNECT_DELAY

    async def _listen(self) -> None:
        async with self._client.pubsub(ignore_subscribe_messages=True) as pubsub:
            await pubsub.subscribe(self.channel)
            while self._running:
                message = await pubsub.get_message(timeout=1.0)
                if message is not None:
                    await self.process_message(message["data"])

    async def process_message(self, data: str) -> None:
        """Parse one published redirect and run every handler on it."""
        start_time = time.perf_counter()
        record_click_received()

        try:
            ctx = RedirectContext.model_validate_json(data)
        except ValidationError as e:
            reason = (
                "invalid_json"
                if any(err["type"] == "json_invalid" for err in e.errors())
                else "invalid_schema"
            )
            logger.warning("Click message dropped", reason=reason, data=data[:100])
            self._events_failed += 1
            record_click_failed(reason)
            return

        for handler in self._handlers:
            try:
                await handler(ctx)
            except Exception:
                logger.exception(
                    "Click handler failed",
                    handler=_handler_name(handler),
                    short_code=ctx.short_code,
                )

        self._events_processed += 1
        logger.debug(
            "Click message processed",
            short_code=ctx.short_code,
            duration_ms=round((time.perf_counter() - start_time) * 1000, 2),
        )

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def stats(self) -> dict:
        """Get consumer statistics."""
        return {
            "running": self._running,
            "channel": self.channel,
            "events_processed": self._events_processed,
            "events_failed": self._events_failed,
            "reconnects": self._reconnects,
            "handlers": len(self._handlers),
        }


def _handler_name(handler: ClickEventHandler) -> str:
    return getattr(handler, "__qualname__", repr(handler))


# Global consumer instance
_consumer: ClickEventConsumer | None = None


def get_consumer() -> ClickEventConsumer:
    """Get the global consumer instance, creating it if necessary."""
    global _consumer
    if _consumer is None:
        _consumer = ClickEventConsumer()
    return _consumer


async def start_consumer() -> None:
    await get_consumer().start()


async def stop_consumer() -> None:
    await get_consumer().stop()
