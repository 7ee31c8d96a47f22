"""
src/api_client — retry/poll core and vendor API client for video translation.

Module layout
-------------
config.py        — ServiceConfig, env-var loading, retry/poll/artifact constants
errors.py        — error taxonomy (transient, permanent, exhausted, operation)
retry.py         — RequestDescriptor, exponential backoff, transport retrier
executor.py      — request construction, ApiResult shaping, invoke_api
parser.py        — vendor error bodies, status normalization, result URLs, ids
translations.py  — translation / iteration / operation endpoints
poller.py        — operation polling to a terminal state or deadline
workflow.py      — translation → iteration → results orchestration
console.py       — shared rich console helpers

Public interface
----------------
Load configuration once at startup:
    config = load_service_config()

Run the full workflow:
    run_translation_workflow(config, translation_id, request, iteration_id)

Refine an existing translation:
    run_iteration_workflow(config, translation_id, iteration_id, request)

Poll a submitted operation:
    poll_operation(handle, interval=30, max_wait=3600)
"""

from .config import ServiceConfig, load_service_config
from .executor import ApiResult, invoke_api
from .poller import PollOutcome, poll_operation
from .translations import (
    IterationRequest,
    OperationHandle,
    TranslationRequest,
    create_iteration,
    create_translation,
    delete_translation,
    get_iteration,
    get_operation,
    get_translation,
    list_iterations,
    list_translations,
)
from .workflow import WorkflowResult, run_iteration_workflow, run_translation_workflow

__all__ = [
    # Configuration
    "ServiceConfig",
    "load_service_config",
    # Invocation
    "ApiResult",
    "invoke_api",
    # Endpoints
    "TranslationRequest",
    "IterationRequest",
    "OperationHandle",
    "create_translation",
    "create_iteration",
    "get_translation",
    "get_iteration",
    "get_operation",
    "list_translations",
    "list_iterations",
    "delete_translation",
    # Polling and orchestration
    "PollOutcome",
    "poll_operation",
    "WorkflowResult",
    "run_translation_workflow",
    "run_iteration_workflow",
]
