"""Fire-and-forget hand-off of redirect events to the click pipeline."""

import asyncio
from typing import Literal

import structlog

from clicktrail.core.config import get_settings
from clicktrail.core.observability import set_pending_dispatches
from clicktrail.core.redis import publish_click_event
from clicktrail.schemas.events import RedirectContext
from clicktrail.services.click_recorder import ClickEventRecorder, get_click_recorder

logger = structlog.get_logger()


class ClickDispatcher:
    """Schedule click recording without delaying the redirect response.

    In ``inline`` mode the recorder runs as a background task in this
    process. In ``redis`` mode the event is published on the click channel
    for the consumer; if publishing fails or no consumer is subscribed it is
    recorded inline instead.

    Usage:
        dispatcher = ClickDispatcher(recorder)
        dispatcher.dispatch(ctx)
        ...
        await dispatcher.drain()  # on shutdown
    """

    def __init__(
        self,
        recorder: ClickEventRecorder,
        transport: Literal["inline", "redis"] = "inline",
        channel: str | None = None,
    ):
        self._recorder = recorder
        self._transport = transport
        self._channel = channel or get_settings().redis_channel
        # Strong references: the event loop only keeps weak ones to tasks
        self._tasks: set[asyncio.Task] = set()
        self._dispatched = 0
        self._published = 0

    def dispatch(self, ctx: RedirectContext) -> asyncio.Task:
        """Schedule recording of one redirect and return immediately."""
        if self._transport == "redis":
            task = asyncio.create_task(self._publish(ctx))
        else:
            task = asyncio.create_task(self._recorder.record_click(ctx))

        self._tasks.add(task)
        task.add_done_callback(self._task_done)
        self._dispatched += 1
        set_pending_dispatches(len(self._tasks))
        return task

    async def _publish(self, ctx: RedirectContext) -> None:
        if await publish_click_event(self._channel, ctx.model_dump_json()):
            self._published += 1
            return
        logger.warning("Click not delivered, recording inline", short_code=ctx.short_code)
        await self._recorder.record_click(ctx)

    def _task_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        set_pending_dispatches(len(self._tasks))

    async def drain(self) -> None:
        """Wait for all scheduled recordings to finish."""
        while self._tasks:
            pending = list(self._tasks)
            logger.info("Draining click dispatches", pending=len(pending))
            await asyncio.gather(*pending, return_exceptions=True)

    @property
    def pending(self) -> int:
        return len(self._tasks)

    @property
    def stats(self) -> dict:
        """Get dispatcher statistics."""
        return {
            "transport": self._transport,
            "dispatched": self._dispatched,
            "published": self._published,
            "pending": len(self._tasks),
        }


# Global dispatcher instance
_dispatcher: ClickDispatcher | None = None


def get_dispatcher() -> ClickDispatcher:
    """Get the global dispatcher instance, creating it if necessary."""
    global _dispatcher
    if _dispatcher is None:
        settings = get_settings()
        _dispatcher = ClickDispatcher(
            get_click_recorder(),
            transport=settings.click_transport,
            channel=settings.redis_channel,
        )
    return _dispatcher
