"""Redis Pub/Sub consumers."""

from clicktrail.consumers.click_consumer import (
    ClickEventConsumer,
    get_consumer,
    start_consumer,
    stop_consumer,
)

__all__ = [
    "ClickEventConsumer",
    "get_consumer",
    "start_consumer",
    "stop_consumer",
]
