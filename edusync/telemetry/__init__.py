"""
Quiz event telemetry.

Sinks that receive the ordered QuizStart/QuizAnswer/QuizSubmit stream
emitted by the event sequencer.
"""

from edusync.telemetry.sinks import (
    CompositeEventSink,
    FileEventSink,
    InMemoryEventSink,
    QuizEventSink,
    RedisEventSink,
    WebSocketEventSink,
    build_event_sink,
)

__all__ = [
    "CompositeEventSink",
    "FileEventSink",
    "InMemoryEventSink",
    "QuizEventSink",
    "RedisEventSink",
    "WebSocketEventSink",
    "build_event_sink",
]
