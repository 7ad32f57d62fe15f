"""
TECHRUN Frame Scheduler

Throttled single-flow dispatcher for pose detection requests. Bursts are
queued and drained by one worker thread so that at most one request is ever
in flight against the pose source.
"""

import asyncio
import logging
import threading
import time
from collections import deque
from concurrent.futures import Future
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Deque, Optional

from core.config import settings

logger = logging.getLogger(__name__)


class QueueFull(RuntimeError):
    """The scheduler queue reached its configured depth."""

    def __init__(self, max_depth: int):
        self.max_depth = max_depth
        super().__init__(f"Frame queue is full (max depth {max_depth})")


class ContentionPolicy(str, Enum):
    """What to do with a request that arrives inside the throttle window."""
    QUEUE = "queue"
    DROP = "drop"


class DispatchMode(str, Enum):
    IMMEDIATE = "immediate"
    QUEUED = "queued"
    DROPPED = "dropped"


@dataclass
class ScheduledRequest:
    """A frame waiting for dispatch; the caller awaits ``completion``."""
    frame_identity: str
    exercise_type: Any
    sequence: int
    completion: Future = field(default_factory=Future)
    mode: DispatchMode = DispatchMode.IMMEDIATE
    submitted_at: float = 0.0
    dispatched_at: Optional[float] = None


def monotonic_ms() -> float:
    return time.monotonic() * 1000.0


class FrameScheduler:
    """
    Rate-limits dispatches to a frame handler.

    Features:
    - Immediate dispatch when the throttle window has elapsed
    - FIFO queue drained by a single worker thread otherwise
    - Optional queue depth limit and drop-on-contention policy
    - Injectable clock/sleep for deterministic tests
    """

    def __init__(
        self,
        handler: Callable[[str, Any], Any],
        throttle_ms: Optional[float] = None,
        policy: ContentionPolicy = ContentionPolicy.QUEUE,
        max_queue_depth: Optional[int] = None,
        clock: Callable[[], float] = monotonic_ms,
        sleep: Callable[[float], None] = time.sleep,
        name: str = "frame_scheduler",
    ):
        self._handler = handler
        self.throttle_ms = settings.FRAME_THROTTLE_MS if throttle_ms is None else throttle_ms
        self.policy = ContentionPolicy(policy)
        self.max_queue_depth = max_queue_depth
        self.name = name
        self._clock = clock
        self._sleep = sleep

        self._queue: Deque[ScheduledRequest] = deque()
        self._condition = threading.Condition()
        self._last_dispatch_ms: Optional[float] = None
        self._in_flight = False
        self._running = True
        self._sequence = 0

        # Stats
        self._immediate_count = 0
        self._queued_count = 0
        self._dropped_count = 0
        self._failed_count = 0

        self._worker = threading.Thread(
            target=self._drain_loop,
            name=f"{name}_worker",
            daemon=True,
        )
        self._worker.start()

        logger.info(
            f"🧵 FrameScheduler '{name}' started "
            f"(throttle: {self.throttle_ms}ms, policy: {self.policy.value}, "
            f"max queue: {max_queue_depth or 'unbounded'})"
        )

    # ========================================
    # Submission
    # ========================================

    def _remaining_ms(self, now: float) -> float:
        if self._last_dispatch_ms is None:
            return 0.0
        return self.throttle_ms - (now - self._last_dispatch_ms)

    def submit(self, frame_identity: str, exercise_type: Any) -> Future:
        """
        Submit a frame for dispatch.

        Returns a Future resolving to the handler's result (or None when the
        request was dropped under the DROP policy).
        """
        with self._condition:
            if not self._running:
                raise RuntimeError(f"FrameScheduler '{self.name}' is shut down")

            self._sequence += 1
            now = self._clock()
            request = ScheduledRequest(
                frame_identity=frame_identity,
                exercise_type=exercise_type,
                sequence=self._sequence,
                submitted_at=now,
            )

            if not self._queue and not self._in_flight and self._remaining_ms(now) <= 0:
                self._in_flight = True
                self._last_dispatch_ms = now
                request.dispatched_at = now
                self._immediate_count += 1
            elif self.policy == ContentionPolicy.DROP:
                request.mode = DispatchMode.DROPPED
                self._dropped_count += 1
                request.completion.set_result(None)
                logger.debug(f"Dropped frame {frame_identity!r} inside throttle window")
                return request.completion
            else:
                if self.max_queue_depth is not None and len(self._queue) >= self.max_queue_depth:
                    raise QueueFull(self.max_queue_depth)
                request.mode = DispatchMode.QUEUED
                self._queue.append(request)
                self._queued_count += 1
                self._condition.notify_all()
                logger.debug(f"Queued frame {frame_identity!r} (depth: {len(self._queue)})")
                return request.completion

        self._dispatch(request)
        return request.completion

    async def submit_async(self, frame_identity: str, exercise_type: Any) -> Any:
        """Submit and await a frame result without blocking the event loop."""
        loop = asyncio.get_running_loop()
        # Immediate dispatch runs the handler on the submitting thread
        completion = await loop.run_in_executor(None, self.submit, frame_identity, exercise_type)
        return await asyncio.wrap_future(completion)

    # ========================================
    # Dispatch
    # ========================================

    def _dispatch(self, request: ScheduledRequest) -> None:
        result, error = None, None
        try:
            result = self._handler(request.frame_identity, request.exercise_type)
        except Exception as e:
            error = e
            logger.error(f"Frame {request.frame_identity!r} failed: {e}")
        finally:
            with self._condition:
                self._in_flight = False
                if error is not None:
                    self._failed_count += 1
                self._condition.notify_all()

        if error is not None:
            request.completion.set_exception(error)
        else:
            request.completion.set_result(result)

    def _next_request(self) -> Optional[ScheduledRequest]:
        """Block until the head of the queue may be dispatched; None on shutdown."""
        while True:
            with self._condition:
                while self._in_flight or (not self._queue and self._running):
                    self._condition.wait()
                if not self._queue:
                    return None

                now = self._clock()
                remaining = self._remaining_ms(now)
                if remaining <= 0:
                    request = self._queue.popleft()
                    self._in_flight = True
                    self._last_dispatch_ms = now
                    request.dispatched_at = now
                    return request

            self._sleep(remaining / 1000.0)

    def _drain_loop(self) -> None:
        while True:
            request = self._next_request()
            if request is None:
                return
            self._dispatch(request)

    # ========================================
    # Introspection
    # ========================================

    @property
    def queue_depth(self) -> int:
        with self._condition:
            return len(self._queue)

    @property
    def last_dispatch_timestamp(self) -> Optional[float]:
        with self._condition:
            return self._last_dispatch_ms

    def get_stats(self) -> dict:
        """Get scheduler statistics."""
        with self._condition:
            return {
                "name": self.name,
                "throttle_ms": self.throttle_ms,
                "policy": self.policy.value,
                "immediate_dispatches": self._immediate_count,
                "queued_dispatches": self._queued_count,
                "dropped_requests": self._dropped_count,
                "failed_dispatches": self._failed_count,
                "queue_depth": len(self._queue),
                "max_queue_depth": self.max_queue_depth,
                "in_flight": self._in_flight,
                "last_dispatch_ms": self._last_dispatch_ms,
            }

    # ========================================
    # Lifecycle
    # ========================================

    def shutdown(self, wait: bool = True) -> None:
        """Stop accepting requests; queued requests are still dispatched."""
        logger.info(f"Shutting down FrameScheduler '{self.name}'...")
        with self._condition:
            self._running = False
            self._condition.notify_all()
        if wait and self._worker.is_alive() and threading.current_thread() is not self._worker:
            self._worker.join()
        logger.info(f"FrameScheduler '{self.name}' shutdown complete")
