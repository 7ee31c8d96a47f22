"""
Workflow orchestration: translation → iteration → results.

Execution order:
- The translation job is submitted and polled to a terminal state.
- Only on Succeeded is the first iteration submitted and polled.
- Only on Succeeded are the translation and iteration details fetched
  (the iteration body carries the result file URLs).

The first failing step halts the workflow.  Its typed error and the last
known status are recorded on the :class:`WorkflowResult`; nothing is
re-submitted automatically because a retry needs a fresh operation id,
which is the caller's decision.  Persisting artifacts is left to callers.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime

import requests

from . import console
from .config import (
    DEFAULT_MAX_WAIT_SECONDS,
    DEFAULT_POLL_INTERVAL_SECONDS,
    ServiceConfig,
)
from .errors import OperationFailed, VideoTranslationError
from .parser import (
    SUCCEEDED,
    describe_failure,
    extract_operation_status,
    extract_result_urls,
)
from .poller import PollOutcome, poll_operation
from .translations import (
    IterationRequest,
    TranslationRequest,
    create_iteration,
    create_translation,
    get_iteration,
    get_translation,
)

# Step names recorded on WorkflowResult.failed_step
STEP_CREATE_TRANSLATION = "create_translation"
STEP_POLL_TRANSLATION = "poll_translation"
STEP_GET_TRANSLATION = "get_translation"
STEP_CREATE_ITERATION = "create_iteration"
STEP_POLL_ITERATION = "poll_iteration"
STEP_GET_ITERATION = "get_iteration"


@dataclass
class WorkflowResult:
    """Everything a workflow run learned, successful or not."""

    translation_id: str
    iteration_id: str
    succeeded: bool = False
    failed_step: str | None = None
    error: VideoTranslationError | None = None
    last_status: dict | None = None
    translation: dict | None = None
    iteration: dict | None = None
    outcomes: dict[str, PollOutcome] = field(default_factory=dict)
    started_at: datetime = field(default_factory=datetime.now)
    finished_at: datetime | None = None

    @property
    def result_urls(self) -> dict[str, str]:
        return extract_result_urls(self.iteration or {})

    @property
    def duration_seconds(self) -> float | None:
        if self.finished_at is None:
            return None
        return (self.finished_at - self.started_at).total_seconds()

    def fail(
        self,
        step: str,
        error: VideoTranslationError,
        last_status: dict | None = None,
    ) -> WorkflowResult:
        self.succeeded = False
        self.failed_step = step
        self.error = error
        self.last_status = last_status
        self.finished_at = datetime.now()
        console.error(f"Workflow halted at '{step}': {error.message}")
        return self

    def succeed(self) -> WorkflowResult:
        self.succeeded = True
        self.finished_at = datetime.now()
        return self


def _run_iteration_steps(
    result: WorkflowResult,
    config: ServiceConfig,
    request: IterationRequest,
    interval: float,
    max_wait: float,
    clock: Callable[[], float] | None,
    sleep: Callable[[float], None] | None,
    session: requests.Session | None,
) -> WorkflowResult:
    """Submit, poll and fetch one iteration, recording into ``result``."""
    submitted, handle = create_iteration(
        config, result.translation_id, result.iteration_id, request, session=session
    )
    if handle is None:
        return result.fail(STEP_CREATE_ITERATION, submitted.to_error())

    outcome = poll_operation(
        handle, interval=interval, max_wait=max_wait,
        clock=clock, sleep=sleep, session=session,
    )
    result.outcomes[STEP_POLL_ITERATION] = outcome
    if not outcome.succeeded:
        return result.fail(STEP_POLL_ITERATION, outcome.to_error(), outcome.payload)

    fetched = get_iteration(
        config, result.translation_id, result.iteration_id, session=session
    )
    if not fetched.ok:
        return result.fail(STEP_GET_ITERATION, fetched.to_error(), outcome.payload)
    result.iteration = fetched.payload

    # The operation can succeed while the iteration body reports otherwise
    iteration_status = extract_operation_status(fetched.payload)
    if iteration_status is not None and iteration_status != SUCCEEDED:
        return result.fail(
            STEP_GET_ITERATION,
            OperationFailed(
                f"Iteration {result.iteration_id} finished with "
                f"{describe_failure(fetched.payload)}",
                handle.operation_id,
                fetched.payload,
            ),
            fetched.payload,
        )

    return result.succeed()


def run_translation_workflow(
    config: ServiceConfig,
    translation_id: str,
    request: TranslationRequest,
    iteration_id: str,
    iteration_request: IterationRequest | None = None,
    interval: float = DEFAULT_POLL_INTERVAL_SECONDS,
    max_wait: float = DEFAULT_MAX_WAIT_SECONDS,
    clock: Callable[[], float] | None = None,
    sleep: Callable[[float], None] | None = None,
    session: requests.Session | None = None,
) -> WorkflowResult:
    """
    Create a translation, its first iteration, and fetch the results.

    Args:
        config: Service configuration.
        translation_id: Identifier for the new translation.
        request: Translation input.
        iteration_id: Identifier for the first iteration.
        iteration_request: Iteration input (defaults to an empty input).
        interval: Seconds between operation status calls.
        max_wait: Polling deadline per operation, in seconds.
        clock: Monotonic clock passed to the poller.
        sleep: Sleep function passed to the poller.
        session: Optional ``requests.Session``.

    Returns:
        :class:`WorkflowResult`; ``succeeded`` is ``True`` only when every
        step succeeded.
    """
    result = WorkflowResult(translation_id=translation_id, iteration_id=iteration_id)

    sep = "=" * 60
    console.info(sep)
    console.info(f"TRANSLATION WORKFLOW  {translation_id} / {iteration_id}")
    console.info(sep)

    # ── Step 1: translation ──
    submitted, handle = create_translation(
        config, translation_id, request, session=session
    )
    if handle is None:
        return result.fail(STEP_CREATE_TRANSLATION, submitted.to_error())

    outcome = poll_operation(
        handle, interval=interval, max_wait=max_wait,
        clock=clock, sleep=sleep, session=session,
    )
    result.outcomes[STEP_POLL_TRANSLATION] = outcome
    if not outcome.succeeded:
        return result.fail(STEP_POLL_TRANSLATION, outcome.to_error(), outcome.payload)
    console.success(f"Translation '{translation_id}' created.")

    fetched = get_translation(config, translation_id, session=session)
    if not fetched.ok:
        return result.fail(STEP_GET_TRANSLATION, fetched.to_error(), outcome.payload)
    result.translation = fetched.payload

    # ── Step 2: first iteration ──
    _run_iteration_steps(
        result, config, iteration_request or IterationRequest(),
        interval, max_wait, clock, sleep, session,
    )
    if result.succeeded:
        console.success(
            f"Iteration '{iteration_id}' succeeded with "
            f"{len(result.result_urls)} result file(s)."
        )
    return result


def run_iteration_workflow(
    config: ServiceConfig,
    translation_id: str,
    iteration_id: str,
    request: IterationRequest,
    interval: float = DEFAULT_POLL_INTERVAL_SECONDS,
    max_wait: float = DEFAULT_MAX_WAIT_SECONDS,
    clock: Callable[[], float] | None = None,
    sleep: Callable[[float], None] | None = None,
    session: requests.Session | None = None,
) -> WorkflowResult:
    """
    Create a refinement iteration on an existing translation.

    The translation details are fetched first so callers can persist them
    alongside the iteration; a missing translation halts the workflow
    before anything is submitted.
    """
    result = WorkflowResult(translation_id=translation_id, iteration_id=iteration_id)

    fetched = get_translation(config, translation_id, session=session)
    if not fetched.ok:
        return result.fail(STEP_GET_TRANSLATION, fetched.to_error())
    result.translation = fetched.payload

    _run_iteration_steps(
        result, config, request, interval, max_wait, clock, sleep, session
    )
    if result.succeeded:
        console.success(
            f"Iteration '{iteration_id}' succeeded with "
            f"{len(result.result_urls)} result file(s)."
        )
    return result
