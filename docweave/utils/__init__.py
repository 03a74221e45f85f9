"""Utility modules for docweave.

Available utility modules (all re-exported here for convenience):

- **errors** -- Exception hierarchy rooted at DocweaveError; each engine
  raises its own subclass so callers can handle failures granularly.
- **concurrency** -- asyncio semaphore throttling and fixed-delay batching
  that keep fan-out to external collaborators bounded.
- **retry** -- Exponential backoff with jitter and ``asyncio.wait_for``
  timeouts shared by the transformation composer and the pipeline engine.
- **logging** -- structlog setup with a dual-renderer pattern: coloured
  console output in development, structured JSON in production.
"""

# -- Exception hierarchy ---------------------------------------------------
from docweave.utils.errors import (
    ConfigurationError,
    DisabledFeatureError,
    DocumentNotFoundError,
    DocweaveError,
    NotFoundError,
    OperationTimeoutError,
    PipelineCancelledError,
    PipelineNotFoundError,
    RetryExhaustedError,
    StageExecutionError,
    TransformationError,
    UnknownChainError,
    ValidationError,
    VersionNotFoundError,
    VersioningDisabledError,
    VersionsNotFoundError,
)

# -- Async concurrency helpers ---------------------------------------------
from docweave.utils.concurrency import maybe_await, run_in_batches, throttled_gather

# -- Retry / timeout wrappers ----------------------------------------------
from docweave.utils.retry import BackoffPolicy, with_retry, with_timeout

# -- Structured logging setup ----------------------------------------------
from docweave.utils.logging import configure_from_settings, configure_logging, get_logger

__all__ = [
    "BackoffPolicy",
    "ConfigurationError",
    "DisabledFeatureError",
    "DocumentNotFoundError",
    "DocweaveError",
    "NotFoundError",
    "OperationTimeoutError",
    "PipelineCancelledError",
    "PipelineNotFoundError",
    "RetryExhaustedError",
    "StageExecutionError",
    "TransformationError",
    "UnknownChainError",
    "ValidationError",
    "VersionNotFoundError",
    "VersioningDisabledError",
    "VersionsNotFoundError",
    "configure_from_settings",
    "configure_logging",
    "get_logger",
    "maybe_await",
    "run_in_batches",
    "throttled_gather",
    "with_retry",
    "with_timeout",
]
