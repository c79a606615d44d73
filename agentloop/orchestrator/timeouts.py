# ==============================
# Timeouts & Cancellation
# ==============================
"""
Deadline handling for agent runs.

Up to three independent, optional deadlines are layered onto a run:
- total     : the whole execution call
- step      : each backend call
- chunk     : each chunk of a streaming backend call

Each is realized as a derived CancellationToken whose deadline never exceeds its
parent's, so an outer timeout also aborts every nested scope. Scopes are released
(cancelled) automatically when the `timeout_scope` block exits.
"""

from __future__ import annotations

import queue
import threading
import time
from contextlib import contextmanager
from typing import Any, Callable, Iterator, Optional, Tuple, TypeVar

from pydantic import BaseModel, ConfigDict, Field

from agentloop.contracts.errors import DeadlineExceededError

T = TypeVar("T")


# ==============================
# Config
# ==============================
class TimeoutConfig(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    total_seconds: Optional[float] = Field(default=None, gt=0, description="Timeout for the whole run.")
    per_step_seconds: Optional[float] = Field(default=None, gt=0, description="Timeout for each backend call.")
    per_chunk_seconds: Optional[float] = Field(default=None, gt=0, description="Timeout between streamed chunks.")

    def has_total(self) -> bool:
        return self.total_seconds is not None

    def has_per_step(self) -> bool:
        return self.per_step_seconds is not None

    def has_per_chunk(self) -> bool:
        return self.per_chunk_seconds is not None

    def seconds_for(self, scope: str) -> Optional[float]:
        return {
            "total": self.total_seconds,
            "step": self.per_step_seconds,
            "chunk": self.per_chunk_seconds,
        }.get(scope)


# ==============================
# Token
# ==============================
class CancellationToken:
    """
    Cooperative cancellation + optional monotonic deadline.

    Handlers that block for long should poll `cancelled` or `remaining()`.
    """

    def __init__(
        self,
        *,
        deadline: Optional[float] = None,
        parent: Optional["CancellationToken"] = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._clock = clock
        self._parent = parent
        self._cancelled = False
        if parent is not None and parent.deadline is not None:
            deadline = parent.deadline if deadline is None else min(deadline, parent.deadline)
        self.deadline = deadline

    @classmethod
    def background(cls) -> "CancellationToken":
        return cls()

    def derive(self, seconds: Optional[float]) -> "CancellationToken":
        deadline = None if seconds is None else self._clock() + seconds
        return CancellationToken(deadline=deadline, parent=self, clock=self._clock)

    def cancel(self) -> None:
        self._cancelled = True

    @property
    def cancelled(self) -> bool:
        if self._cancelled:
            return True
        if self.deadline is not None and self._clock() >= self.deadline:
            return True
        return self._parent.cancelled if self._parent is not None else False

    def remaining(self) -> Optional[float]:
        if self.deadline is None:
            return None
        return max(0.0, self.deadline - self._clock())

    def raise_if_cancelled(self, scope: str) -> None:
        if self.cancelled:
            raise DeadlineExceededError(scope)


@contextmanager
def timeout_scope(token: CancellationToken, seconds: Optional[float], scope: str) -> Iterator[CancellationToken]:
    """Derive a child token for `scope`; the child is cancelled when the block exits."""
    child = token.derive(seconds)
    try:
        yield child
    finally:
        child.cancel()


# ==============================
# Blocking Calls
# ==============================
def call_with_deadline(fn: Callable[[], T], token: CancellationToken, scope: str) -> T:
    """
    Run `fn` under the token's deadline.

    Without a deadline `fn` runs inline. With one, it runs on a daemon worker thread and
    the caller stops waiting once the deadline passes; the worker is abandoned, not
    killed, and never holds up interpreter exit.
    """
    token.raise_if_cancelled(scope)
    remaining = token.remaining()
    if remaining is None:
        return fn()

    outcome: "queue.Queue[Tuple[bool, Any]]" = queue.Queue(maxsize=1)

    def _work() -> None:
        try:
            outcome.put((True, fn()))
        except Exception as exc:  # re-raised on the caller's thread
            outcome.put((False, exc))

    threading.Thread(target=_work, name=f"agentloop-{scope}", daemon=True).start()
    try:
        ok, value = outcome.get(timeout=remaining)
    except queue.Empty:
        token.cancel()
        raise DeadlineExceededError(scope) from None
    if not ok:
        raise value
    return value
