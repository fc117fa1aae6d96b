"""
Event Sequencer

This module tracks the lifecycle of every attempt, keyed by
(assessment_id, user_id), and emits the ordered quiz event stream:

    NOT_STARTED --start--> STARTED --answer--> IN_PROGRESS --submit--> SUBMITTED

Each successful transition takes the next sequence number of its key while
the key's lock is held. The resulting QuizEvent is then handed to a delivery
task chained behind the previous delivery of the same key, so a sink observes
the events of one attempt key in sequence order without the transition ever
waiting on it. Delivery is best effort: a publish that fails or outlasts the
delivery timeout is logged and never rolls the sequence counter back or fails
the transition.
"""

import uuid
import asyncio
import datetime
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import Any, AsyncIterator, Callable, Dict, Optional, Tuple

from edusync.assessments.models import AttemptStatus, QuizEvent, QuizEventType, utcnow
from edusync.common.error_handling import AlreadySubmittedError, DuplicateStartError, NotStartedError
from edusync.common.locks import KeyedLock
from edusync.common.logger import app_logger
from edusync.telemetry.sinks import QuizEventSink

logger = app_logger.getChild("assessments.sequencer")

AttemptKey = Tuple[str, str]

DEFAULT_DELIVERY_TIMEOUT = 5.0


@dataclass
class AttemptState:
    """Mutable per-key state; only touched while the key's lock is held."""
    status: AttemptStatus = AttemptStatus.NOT_STARTED
    attempt: int = 0
    next_sequence: int = 1
    started_at: Optional[datetime.datetime] = None


class AttemptHandle:
    """
    View of one attempt key while its lock is held.

    Obtained from ``EventSequencer.attempt``; lets a caller inspect the state
    and drive the submit transition without releasing the lock in between.
    """

    def __init__(self, sequencer: 'EventSequencer', key: AttemptKey):
        self._sequencer = sequencer
        self._key = key

    @property
    def status(self) -> AttemptStatus:
        return self._sequencer._state(self._key).status

    @property
    def started_at(self) -> Optional[datetime.datetime]:
        return self._sequencer._state(self._key).started_at

    @property
    def attempt(self) -> int:
        return self._sequencer._state(self._key).attempt

    async def submit(self, payload: Optional[Dict[str, Any]] = None) -> QuizEvent:
        return self._sequencer._submit(self._key, payload)


class EventSequencer:
    """
    Per-attempt state machine and quiz event emitter.

    Attributes:
        sink: Destination of emitted events
        clock: Source of event timestamps
        delivery_timeout: Seconds a single publish may take before it is
            abandoned; None waits for the sink indefinitely
    """

    def __init__(
        self,
        sink: QuizEventSink,
        clock: Callable[[], datetime.datetime] = utcnow,
        delivery_timeout: Optional[float] = DEFAULT_DELIVERY_TIMEOUT
    ):
        self.sink = sink
        self.clock = clock
        self.delivery_timeout = delivery_timeout
        self._states: Dict[AttemptKey, AttemptState] = {}
        self._locks = KeyedLock()
        # Last scheduled delivery per key; later deliveries of the key chain behind it
        self._deliveries: Dict[AttemptKey, asyncio.Task] = {}

    def _state(self, key: AttemptKey) -> AttemptState:
        state = self._states.get(key)
        if state is None:
            state = self._states[key] = AttemptState()
        return state

    def status(self, assessment_id: str, user_id: str) -> AttemptStatus:
        """Current status of an attempt key, read without locking."""
        state = self._states.get((assessment_id, user_id))
        return state.status if state else AttemptStatus.NOT_STARTED

    @property
    def pending_deliveries(self) -> int:
        """Number of attempt keys with a delivery still in flight."""
        return len(self._deliveries)

    @asynccontextmanager
    async def attempt(self, assessment_id: str, user_id: str) -> AsyncIterator[AttemptHandle]:
        """Hold the lock of an attempt key for the duration of the block."""
        key = (assessment_id, user_id)
        async with self._locks.acquire(key):
            yield AttemptHandle(self, key)

    async def start(self, assessment_id: str, user_id: str,
                    payload: Optional[Dict[str, Any]] = None) -> QuizEvent:
        """
        Open a new attempt.

        Starting again after a submit opens the next attempt; the sequence
        counter of the key keeps counting.

        Raises:
            DuplicateStartError: If an attempt is already open
        """
        key = (assessment_id, user_id)
        async with self._locks.acquire(key):
            state = self._state(key)
            if state.status.is_open:
                raise DuplicateStartError(assessment_id, user_id)

            now = self.clock()
            state.status = AttemptStatus.STARTED
            state.attempt += 1
            state.started_at = now
            return self._emit(key, state, QuizEventType.START, payload, now)

    async def answer(self, assessment_id: str, user_id: str,
                     payload: Optional[Dict[str, Any]] = None) -> QuizEvent:
        """
        Record an answer of an open attempt.

        Raises:
            NotStartedError: If the key was never started
            AlreadySubmittedError: If the attempt was already submitted
        """
        key = (assessment_id, user_id)
        async with self._locks.acquire(key):
            state = self._state(key)
            self._require_open(key, state)
            state.status = AttemptStatus.IN_PROGRESS
            return self._emit(key, state, QuizEventType.ANSWER, payload)

    async def submit(self, assessment_id: str, user_id: str,
                     payload: Optional[Dict[str, Any]] = None) -> QuizEvent:
        """
        Close an open attempt.

        Raises:
            NotStartedError: If the key was never started
            AlreadySubmittedError: If the attempt was already submitted
        """
        key = (assessment_id, user_id)
        async with self._locks.acquire(key):
            return self._submit(key, payload)

    async def flush(self) -> None:
        """Wait until every event emitted so far has been handed to the sink."""
        while self._deliveries:
            await asyncio.wait(list(self._deliveries.values()))

    def _submit(self, key: AttemptKey, payload: Optional[Dict[str, Any]]) -> QuizEvent:
        state = self._state(key)
        self._require_open(key, state)
        state.status = AttemptStatus.SUBMITTED
        return self._emit(key, state, QuizEventType.SUBMIT, payload)

    @staticmethod
    def _require_open(key: AttemptKey, state: AttemptState) -> None:
        if state.status is AttemptStatus.SUBMITTED:
            raise AlreadySubmittedError(*key)
        if state.status is AttemptStatus.NOT_STARTED:
            raise NotStartedError(*key)

    def _emit(
        self,
        key: AttemptKey,
        state: AttemptState,
        event_type: QuizEventType,
        payload: Optional[Dict[str, Any]],
        timestamp: Optional[datetime.datetime] = None
    ) -> QuizEvent:
        event = QuizEvent(
            event_id=str(uuid.uuid4()),
            event_type=event_type,
            assessment_id=key[0],
            user_id=key[1],
            sequence=state.next_sequence,
            attempt=state.attempt,
            timestamp=timestamp or self.clock(),
            payload=dict(payload or {})
        )
        state.next_sequence += 1
        self._schedule(key, event)
        return event

    def _schedule(self, key: AttemptKey, event: QuizEvent) -> None:
        previous = self._deliveries.get(key)
        task = asyncio.get_running_loop().create_task(self._deliver_after(previous, event))
        self._deliveries[key] = task
        task.add_done_callback(lambda done: self._forget(key, done))

    def _forget(self, key: AttemptKey, task: asyncio.Task) -> None:
        if self._deliveries.get(key) is task:
            del self._deliveries[key]

    async def _deliver_after(self, previous: Optional[asyncio.Task], event: QuizEvent) -> None:
        if previous is not None:
            await asyncio.wait([previous])
        await self._deliver(event)

    async def _deliver(self, event: QuizEvent) -> None:
        try:
            if self.delivery_timeout is None:
                delivered = await self.sink.publish(event)
            else:
                delivered = await asyncio.wait_for(self.sink.publish(event), self.delivery_timeout)
        except asyncio.TimeoutError:
            logger.error(
                f"Sink timed out after {self.delivery_timeout}s delivering {event.event_type.value} "
                f"#{event.sequence} for assessment {event.assessment_id}, user {event.user_id}"
            )
            return
        except Exception as e:
            logger.error(
                f"Sink failed to deliver {event.event_type.value} #{event.sequence} for "
                f"assessment {event.assessment_id}, user {event.user_id}: {e}"
            )
            return

        if not delivered:
            logger.warning(
                f"Sink rejected {event.event_type.value} #{event.sequence} for "
                f"assessment {event.assessment_id}, user {event.user_id}"
            )
