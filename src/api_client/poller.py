"""
Operation polling: wait for a submitted operation to reach a terminal state.

State machine::

    Pending ──► Succeeded | Failed | Cancelled | TimedOut   (all terminal)

Deadline rule: elapsed time is checked once per cycle, before each status
call.  Once elapsed >= max_wait the poller returns TimedOut without issuing
another call; there is no extra status check after the final sleep.

Failed status calls (transport or API errors) are logged and retried after
one interval.  The time spent on a failed call and its sleep is excluded
from the elapsed time, so an unreachable API never times a job out on its
own.  The server-side operation keeps running after a client-side TimedOut.
"""

from __future__ import annotations

import time
from collections.abc import Callable
from dataclasses import dataclass

import requests

from . import console
from .config import DEFAULT_MAX_WAIT_SECONDS, DEFAULT_POLL_INTERVAL_SECONDS
from .errors import (
    OperationCancelled,
    OperationError,
    OperationFailed,
    OperationTimedOut,
)
from .parser import (
    CANCELLED,
    FAILED,
    SUCCEEDED,
    describe_failure,
    extract_operation_status,
    is_terminal_status,
)
from .translations import OperationHandle, get_operation

TIMED_OUT = "TimedOut"


@dataclass(frozen=True)
class PollOutcome:
    """
    Terminal result of :func:`poll_operation`.

    ``payload`` is the last status body observed (``None`` on TimedOut).
    """

    state: str
    operation_id: str
    payload: dict | None
    polls: int
    elapsed_seconds: float

    @property
    def succeeded(self) -> bool:
        return self.state == SUCCEEDED

    def to_error(self) -> OperationError | None:
        """Return the matching (unraised) error for a non-success outcome."""
        if self.state == SUCCEEDED:
            return None
        if self.state == FAILED:
            return OperationFailed(
                f"Operation {self.operation_id} failed ({describe_failure(self.payload)})",
                self.operation_id,
                self.payload,
            )
        if self.state == CANCELLED:
            return OperationCancelled(
                f"Operation {self.operation_id} was cancelled",
                self.operation_id,
                self.payload,
            )
        return OperationTimedOut(
            f"Operation {self.operation_id} did not finish within "
            f"{self.elapsed_seconds:.0f}s; it may still be running on the server",
            self.operation_id,
            self.payload,
        )


def poll_operation(
    handle: OperationHandle,
    interval: float = DEFAULT_POLL_INTERVAL_SECONDS,
    max_wait: float = DEFAULT_MAX_WAIT_SECONDS,
    clock: Callable[[], float] | None = None,
    sleep: Callable[[float], None] | None = None,
    session: requests.Session | None = None,
) -> PollOutcome:
    """
    Poll ``GET /operations/{id}`` until a terminal status or the deadline.

    Args:
        handle: Handle returned by a successful submission call.
        interval: Seconds between status calls.
        max_wait: Seconds of status progression to wait before TimedOut.
        clock: Monotonic clock (defaults to ``time.monotonic``).
        sleep: Sleep function (defaults to ``time.sleep``).
        session: Optional ``requests.Session``.

    Returns:
        :class:`PollOutcome` in state Succeeded, Failed, Cancelled or
        TimedOut.

    Raises:
        ValueError: ``interval`` or ``max_wait`` is negative.
    """
    if interval < 0 or max_wait < 0:
        raise ValueError(
            f"interval and max_wait must be >= 0, got {interval} and {max_wait}"
        )

    clock = clock or time.monotonic
    sleep = sleep or time.sleep
    operation_id = handle.operation_id

    start = clock()
    excluded = 0.0
    polls = 0

    while True:
        elapsed = clock() - start - excluded
        if elapsed >= max_wait:
            console.warning(
                f"  Operation {operation_id}: no terminal status after "
                f"{elapsed:.0f}s (limit {max_wait:g}s)"
            )
            return PollOutcome(TIMED_OUT, operation_id, None, polls, elapsed)

        call_started = clock()
        result = get_operation(handle.config, operation_id, session=session)
        polls += 1

        if not result.ok:
            console.warning(
                f"  Status check {polls} for operation {operation_id} failed: "
                f"{result.error}. Retrying in {interval:g}s"
            )
            sleep(interval)
            excluded += clock() - call_started
            continue

        status = extract_operation_status(result.payload)
        console.info(
            f"  Operation {operation_id}: {status or 'unknown'} "
            f"(elapsed {elapsed:.0f}s)"
        )
        if is_terminal_status(status):
            return PollOutcome(
                status, operation_id, result.payload, polls,
                clock() - start - excluded,
            )

        sleep(interval)
