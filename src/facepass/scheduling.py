"""Frame scheduling primitives.

Everything here is single-threaded and cooperative: the frame source calls
in, nothing runs in the background.

- :class:`FrameGate`: busy flag + minimum interval between accepted frames.
- :class:`CountdownTimer`: periodic countdown advanced by ``tick()``.
- :class:`Subscription` / :class:`CallbackFrameSource`: cancellable frame
  delivery.

Clocks are ``Callable[[], int]`` returning monotonic nanoseconds
(``time.monotonic_ns`` by default) so tests can inject a fake one.
"""

from __future__ import annotations

import logging
import time
from contextlib import contextmanager
from typing import Callable, Iterator, List, Optional, Protocol

from facepass.types import Frame

logger = logging.getLogger(__name__)

Clock = Callable[[], int]
FrameCallback = Callable[[Frame], None]

_NS_PER_MS = 1_000_000
_NS_PER_S = 1_000_000_000


class FrameGate:
    """Admits at most one frame at a time, no faster than an interval.

    Args:
        min_interval_ms: Minimum time between two accepted frames.
        clock: Monotonic nanosecond clock.
    """

    def __init__(self, min_interval_ms: float = 50.0, clock: Optional[Clock] = None):
        self._interval_ns = int(min_interval_ms * _NS_PER_MS)
        self._clock = clock or time.monotonic_ns
        self._busy = False
        self._last_ns: Optional[int] = None

        self.accepted = 0
        self.dropped_busy = 0
        self.dropped_throttle = 0

    @property
    def busy(self) -> bool:
        return self._busy

    def try_acquire(self, t_ns: Optional[int] = None) -> bool:
        """Claim the gate for one frame.

        Args:
            t_ns: Frame timestamp; the clock is read when None.

        Returns:
            False when another frame is in progress or the interval since
            the last accepted frame has not elapsed.
        """
        if self._busy:
            self.dropped_busy += 1
            return False

        now = self._clock() if t_ns is None else t_ns
        if self._last_ns is not None and now - self._last_ns < self._interval_ns:
            self.dropped_throttle += 1
            return False

        self._last_ns = now
        self._busy = True
        self.accepted += 1
        return True

    def release(self) -> None:
        self._busy = False

    @contextmanager
    def processing(self, t_ns: Optional[int] = None) -> Iterator[bool]:
        """Acquire for the duration of a ``with`` block.

        Yields whether the frame was admitted. The busy flag is cleared on
        every exit path, including exceptions.
        """
        acquired = self.try_acquire(t_ns)
        try:
            yield acquired
        finally:
            if acquired:
                self.release()

    def reset(self) -> None:
        self._busy = False
        self._last_ns = None

    def stats(self) -> dict:
        return {
            "accepted": self.accepted,
            "dropped_busy": self.dropped_busy,
            "dropped_throttle": self.dropped_throttle,
        }


class CountdownTimer:
    """Cooperative periodic countdown.

    Counts down ``seconds`` in steps of ``interval_s``; each ``tick()``
    applies every period that has elapsed since ``start()``. When the count
    reaches zero the timer stops and ``on_expire`` is called once.

    Args:
        seconds: Countdown length.
        interval_s: Period of one countdown step.
        clock: Monotonic nanosecond clock.
        on_expire: Called once when the countdown reaches zero.
    """

    def __init__(
        self,
        seconds: float = 2.0,
        interval_s: float = 1.0,
        clock: Optional[Clock] = None,
        on_expire: Optional[Callable[[], None]] = None,
    ):
        if interval_s <= 0:
            raise ValueError("interval_s must be positive")
        self.seconds = seconds
        self.interval_s = interval_s
        self._clock = clock or time.monotonic_ns
        self._on_expire = on_expire
        self._start_ns: Optional[int] = None
        self._running = False
        self._expired = False
        self._remaining = 0.0

    @property
    def running(self) -> bool:
        return self._running

    @property
    def expired(self) -> bool:
        return self._expired

    @property
    def remaining(self) -> float:
        return self._remaining

    def start(self, now_ns: Optional[int] = None) -> None:
        """Start counting. A running timer is left untouched."""
        if self._running:
            return
        self._start_ns = self._clock() if now_ns is None else now_ns
        self._running = True
        self._expired = False
        self._remaining = self.seconds

    def cancel(self) -> None:
        self._running = False
        self._start_ns = None
        self._remaining = 0.0

    def tick(self, now_ns: Optional[int] = None) -> bool:
        """Advance the countdown.

        Returns:
            True on the tick where the countdown expired.
        """
        if not self._running or self._start_ns is None:
            return False

        now = self._clock() if now_ns is None else now_ns
        periods = int((now - self._start_ns) // int(self.interval_s * _NS_PER_S))
        self._remaining = max(0.0, self.seconds - periods * self.interval_s)

        if self._remaining > 0:
            return False

        self._running = False
        self._expired = True
        if self._on_expire is not None:
            self._on_expire()
        return True


class Subscription:
    """Handle for a frame subscription.

    ``cancel()`` is idempotent; using the handle as a context manager
    cancels it on scope exit.
    """

    def __init__(self, on_cancel: Callable[[], None]):
        self._on_cancel = on_cancel
        self._active = True

    @property
    def active(self) -> bool:
        return self._active

    def cancel(self) -> None:
        if not self._active:
            return
        self._active = False
        self._on_cancel()

    def __enter__(self) -> Subscription:
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.cancel()


class FrameSource(Protocol):
    """Camera frame stream."""

    def subscribe(self, callback: FrameCallback) -> Subscription:
        ...


class CallbackFrameSource:
    """In-process frame source; frames are pushed by the caller."""

    def __init__(self):
        self._callbacks: List[FrameCallback] = []

    @property
    def subscriber_count(self) -> int:
        return len(self._callbacks)

    def subscribe(self, callback: FrameCallback) -> Subscription:
        self._callbacks.append(callback)

        def _remove() -> None:
            if callback in self._callbacks:
                self._callbacks.remove(callback)

        return Subscription(_remove)

    def push(self, frame: Frame) -> int:
        """Deliver a frame to every current subscriber.

        Returns:
            Number of callbacks invoked.
        """
        callbacks = list(self._callbacks)
        for cb in callbacks:
            cb(frame)
        return len(callbacks)


__all__ = [
    "Clock",
    "FrameCallback",
    "FrameGate",
    "CountdownTimer",
    "Subscription",
    "FrameSource",
    "CallbackFrameSource",
]
