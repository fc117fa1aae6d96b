"""
Quiz Event Sinks

This module provides the destinations of the quiz event stream. Every sink
implements ``publish(event) -> bool``; a False return or an exception means
the event was not delivered. The event sequencer logs such failures and
carries on, so sinks are free to raise.

Available sinks:
1. InMemoryEventSink - keeps the most recent events (tests, single-process setups)
2. FileEventSink - writes one JSON file per event under
   ``<root>/<EventType>/<course_id>/``, never overwriting an earlier one
3. RedisEventSink - publishes to the ``quiz_events:<assessment_id>`` channel
4. WebSocketEventSink - broadcasts to monitors of the assessment
5. CompositeEventSink - fans out to several sinks
"""

import os
import json
import asyncio
from abc import ABC, abstractmethod
from collections import deque
from typing import Any, Deque, List, Optional, Sequence
from urllib.parse import quote

from redis.asyncio import Redis
from redis.exceptions import RedisError

from edusync.assessments.models import QuizEvent
from edusync.common.logger import app_logger

logger = app_logger.getChild("telemetry.sinks")

REDIS_CHANNEL_PREFIX = "quiz_events"
UNKNOWN_COURSE = "unknown"
DEFAULT_MEMORY_LIMIT = 10000


def assessment_group(assessment_id: str) -> str:
    """WebSocket group of the live monitors of an assessment."""
    return f"assessment:{assessment_id}"


def path_segment(value: str) -> str:
    """Escape a value so that it stays a single path segment."""
    escaped = quote(str(value), safe="-_.@+")
    if escaped.strip(".") == "":
        escaped = escaped.replace(".", "%2E")
    return escaped


class QuizEventSink(ABC):
    """Destination of the quiz event stream."""

    @abstractmethod
    async def publish(self, event: QuizEvent) -> bool:
        """
        Deliver one event.

        Args:
            event: The event to deliver

        Returns:
            True if the event was delivered, False otherwise
        """
        pass

    async def close(self) -> None:
        """Release any resources held by the sink."""


class InMemoryEventSink(QuizEventSink):
    """Sink that records the most recent events in arrival order."""

    def __init__(self, max_events: Optional[int] = DEFAULT_MEMORY_LIMIT):
        self.events: Deque[QuizEvent] = deque(maxlen=max_events)

    async def publish(self, event: QuizEvent) -> bool:
        self.events.append(event)
        return True

    def events_for(self, assessment_id: str, user_id: Optional[str] = None) -> List[QuizEvent]:
        """Recorded events of an assessment, optionally for one user."""
        return [
            event for event in self.events
            if event.assessment_id == assessment_id and (user_id is None or event.user_id == user_id)
        ]

    def clear(self) -> None:
        self.events.clear()


class FileEventSink(QuizEventSink):
    """
    Sink that stores every event as its own JSON file.

    Files are named
    ``<yyyyMMdd_HHmmss_fff>_<user_id>_<assessment_id>_<attempt>_<sequence>.json``
    and grouped by event type and course, so a directory listing of one
    course shows its quiz activity in time order. Identifiers are escaped to
    single path segments, and an existing file is never overwritten.
    """

    def __init__(self, root: str):
        self.root = root

    def path_for(self, event: QuizEvent) -> str:
        course_id = path_segment(event.payload.get("course_id") or UNKNOWN_COURSE)
        stamp = event.timestamp.strftime("%Y%m%d_%H%M%S_") + f"{event.timestamp.microsecond // 1000:03d}"
        filename = (
            f"{stamp}_{path_segment(event.user_id)}_{path_segment(event.assessment_id)}"
            f"_{event.attempt}_{event.sequence}.json"
        )
        return os.path.join(self.root, event.event_type.value, course_id, filename)

    def _write(self, path: str, content: str) -> None:
        os.makedirs(os.path.dirname(path), exist_ok=True)
        with open(path, "x", encoding="utf-8") as f:
            f.write(content)

    async def publish(self, event: QuizEvent) -> bool:
        path = self.path_for(event)
        try:
            await asyncio.to_thread(self._write, path, json.dumps(event.to_dict(), indent=2))
        except OSError as e:
            logger.error(f"Error writing quiz event to {path}: {e}")
            return False

        logger.debug(f"{event.event_type.value} event saved to {path}")
        return True


class RedisEventSink(QuizEventSink):
    """Sink that publishes events on a Redis pub/sub channel per assessment."""

    def __init__(self, redis_client: Redis, channel_prefix: str = REDIS_CHANNEL_PREFIX):
        self.redis = redis_client
        self.channel_prefix = channel_prefix

    def channel_for(self, event: QuizEvent) -> str:
        return f"{self.channel_prefix}:{event.assessment_id}"

    async def publish(self, event: QuizEvent) -> bool:
        try:
            await self.redis.publish(self.channel_for(event), json.dumps(event.to_dict()))
        except RedisError as e:
            logger.error(f"Error publishing quiz event to Redis: {e}")
            return False
        return True

    async def close(self) -> None:
        await self.redis.aclose()


class WebSocketEventSink(QuizEventSink):
    """
    Sink that pushes events to the instructors monitoring an assessment.

    An event with no connected monitor counts as delivered.
    """

    def __init__(self, manager: Any):
        self.manager = manager

    async def publish(self, event: QuizEvent) -> bool:
        message = {"type": "quiz_event", "data": event.to_dict()}
        await self.manager.broadcast_to_group(message, assessment_group(event.assessment_id))
        return True


class CompositeEventSink(QuizEventSink):
    """Sink that forwards every event to each of its children in order."""

    def __init__(self, sinks: Sequence[QuizEventSink]):
        self.sinks = list(sinks)

    async def publish(self, event: QuizEvent) -> bool:
        delivered = True
        for sink in self.sinks:
            try:
                ok = await sink.publish(event)
            except Exception as e:
                logger.error(f"{type(sink).__name__} failed to publish {event.event_type.value}: {e}")
                ok = False
            delivered = delivered and ok
        return delivered

    async def close(self) -> None:
        for sink in self.sinks:
            await sink.close()


def build_event_sink(
    names: Sequence[str],
    events_path: str = "./events",
    redis_client: Optional[Redis] = None,
    websocket_manager: Any = None,
    memory_limit: Optional[int] = DEFAULT_MEMORY_LIMIT
) -> QuizEventSink:
    """
    Build the sink configured by name.

    Args:
        names: Sink names among "memory", "file", "redis" and "websocket"
        events_path: Root directory of the file sink
        redis_client: Client for the redis sink
        websocket_manager: Connection manager for the websocket sink
        memory_limit: Most events the memory sink keeps

    Returns:
        A single sink, or a composite when several names are given

    Raises:
        ValueError: If a name is unknown or its dependency is missing
    """
    sinks: List[QuizEventSink] = []
    for name in names:
        if name == "memory":
            sinks.append(InMemoryEventSink(memory_limit))
        elif name == "file":
            sinks.append(FileEventSink(events_path))
        elif name == "redis":
            if redis_client is None:
                raise ValueError("The redis event sink needs REDIS_URL to be set")
            sinks.append(RedisEventSink(redis_client))
        elif name == "websocket":
            if websocket_manager is None:
                raise ValueError("The websocket event sink needs a WebSocket manager")
            sinks.append(WebSocketEventSink(websocket_manager))
        else:
            raise ValueError(f"Unknown event sink: {name}")

    logger.info(f"Quiz events go to: {', '.join(names) or 'nowhere'}")
    if len(sinks) == 1:
        return sinks[0]
    return CompositeEventSink(sinks)
