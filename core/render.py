"""
Larm -- Render Coordinator
Coalesces a rapid stream of render requests into a bounded number of
engine calls, with at most one call in flight.

States:
    IDLE     nothing pending, nothing running
    PENDING  a request is waiting for the debounce window to pass
    RUNNING  the worker is inside a render (a newer request may be pending)

A new request always overwrites the pending one. The worker dispatches the
pending request once no new request has arrived for `debounce` seconds and
nothing is running. Running renders are never interrupted; when one
finishes its result is published and any pending request goes back
through the debounce step. Results are published through a single-slot
handoff that only ever moves forward in sequence order.
"""

import logging
import threading
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable

from core.config import DEBOUNCE_MS
from core.params import EffectParameters
from core.tiers import TierKind

log = logging.getLogger(__name__)


class RenderState(str, Enum):
    IDLE = "idle"
    PENDING = "pending"
    RUNNING = "running"


@dataclass(frozen=True)
class RenderRequest:
    """Parameters plus the tier to render. focus is used by crop renders."""
    params: EffectParameters = field(default_factory=EffectParameters)
    mode: TierKind = TierKind.PROXY
    focus: tuple[float, float] | None = None


@dataclass(frozen=True)
class RenderResult:
    seq: int
    request: RenderRequest
    image: Any
    elapsed: float = 0.0


class ResultSlot:
    """Single-writer, single-reader handoff holding the newest result."""

    def __init__(self):
        self._cond = threading.Condition()
        self._result: RenderResult | None = None

    def put(self, result: RenderResult) -> bool:
        """Store result unless an equal-or-newer one is already held."""
        with self._cond:
            if self._result is not None and result.seq <= self._result.seq:
                return False
            self._result = result
            self._cond.notify_all()
            return True

    def get(self) -> RenderResult | None:
        with self._cond:
            return self._result

    def clear(self) -> None:
        with self._cond:
            self._result = None

    def wait_for(self, seq: int, timeout: float | None = None) -> RenderResult | None:
        """Block until a result with sequence >= seq is held (None on timeout)."""
        with self._cond:
            self._cond.wait_for(
                lambda: self._result is not None and self._result.seq >= seq,
                timeout=timeout,
            )
            if self._result is not None and self._result.seq >= seq:
                return self._result
            return None


class RenderCoordinator:
    """Debounced single-flight dispatcher on one background thread.

    Args:
        render_fn: Called with a RenderRequest on the worker thread; its
            return value is published as RenderResult.image.
        debounce: Quiescence window in seconds.
        slot: Result handoff (a new ResultSlot by default).
        on_result: Optional callback invoked on the worker thread after
            each publish.
    """

    def __init__(
        self,
        render_fn: Callable[[RenderRequest], Any],
        debounce: float = DEBOUNCE_MS / 1000.0,
        slot: ResultSlot | None = None,
        on_result: Callable[[RenderResult], None] | None = None,
        name: str = "larm-render",
    ):
        self._render_fn = render_fn
        self.debounce = debounce
        self.slot = slot or ResultSlot()
        self._on_result = on_result

        self._cond = threading.Condition()
        self._seq = 0
        self._floor = 0  # results with seq <= floor are dropped
        self._pending: tuple[int, RenderRequest] | None = None
        self._last_arrival = 0.0
        self._running = False
        self._closed = False
        self.dispatch_count = 0
        self.last_error: BaseException | None = None

        self._thread = threading.Thread(target=self._worker, name=name, daemon=True)
        self._thread.start()

    # --- producer side ---

    def submit(self, request: RenderRequest) -> int:
        """Queue request, superseding any pending one. Returns its sequence number."""
        with self._cond:
            if self._closed:
                raise RuntimeError("RenderCoordinator is closed")
            self._seq += 1
            self._pending = (self._seq, request)
            self._last_arrival = time.monotonic()
            self._cond.notify_all()
            return self._seq

    def reset(self) -> None:
        """Drop the pending request and discard anything already in flight."""
        with self._cond:
            self._pending = None
            self._floor = self._seq
            self.slot.clear()
            self._cond.notify_all()

    @property
    def state(self) -> RenderState:
        with self._cond:
            if self._running:
                return RenderState.RUNNING
            if self._pending is not None:
                return RenderState.PENDING
            return RenderState.IDLE

    def latest(self) -> RenderResult | None:
        return self.slot.get()

    def wait_idle(self, timeout: float | None = None) -> bool:
        """Block until nothing is pending or running. False on timeout."""
        with self._cond:
            return self._cond.wait_for(
                lambda: self._pending is None and not self._running,
                timeout=timeout,
            )

    def close(self, timeout: float | None = 5.0) -> None:
        with self._cond:
            self._closed = True
            self._pending = None
            self._cond.notify_all()
        if self._thread is not threading.current_thread():
            self._thread.join(timeout)

    # --- worker side ---

    def _next_request(self) -> tuple[int, RenderRequest] | None:
        with self._cond:
            while not self._closed:
                if self._pending is None:
                    self._cond.wait()
                    continue
                remaining = self._last_arrival + self.debounce - time.monotonic()
                if remaining > 0:
                    self._cond.wait(remaining)
                    continue
                job = self._pending
                self._pending = None
                self._running = True
                self.dispatch_count += 1
                return job
            return None

    def _worker(self) -> None:
        while True:
            job = self._next_request()
            if job is None:
                return
            seq, request = job
            start = time.perf_counter()
            result = None
            try:
                image = self._render_fn(request)
                result = RenderResult(seq, request, image, time.perf_counter() - start)
            except Exception as e:
                self.last_error = e
                log.exception("Render %d (%s) failed", seq, request.mode.value)

            published = False
            with self._cond:
                if result is not None and seq > self._floor:
                    published = self.slot.put(result)
                self._running = False
                self._cond.notify_all()

            if published and self._on_result is not None:
                try:
                    self._on_result(result)
                except Exception:
                    log.exception("Render result callback failed")
