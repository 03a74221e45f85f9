"""Custom exception hierarchy for docweave.

All library exceptions inherit from :class:`DocweaveError`, which carries an
optional ``component`` so error handlers can identify which engine (e.g.
"chunking", "versioning", "pipeline") raised the failure.

The hierarchy is organized by failure category:

    DocweaveError  (base -- catch-all for any docweave error)
    +-- ValidationError          (malformed or oversized input)
    +-- NotFoundError            (unknown pipeline / chain / version / document)
    |   +-- PipelineNotFoundError
    |   +-- UnknownChainError
    |   +-- DocumentNotFoundError
    |   +-- VersionNotFoundError
    |   +-- VersionsNotFoundError
    +-- DisabledFeatureError     (feature requested while switched off)
    |   +-- VersioningDisabledError
    +-- OperationTimeoutError    (also a builtin TimeoutError)
    +-- RetryExhaustedError      (every attempt failed)
    +-- TransformationError      (transform failed, original unit preserved)
    +-- StageExecutionError      (pipeline stage failed)
    +-- PipelineCancelledError   (run cancelled while a stage was in flight)
    +-- ConfigurationError       (startup / missing config)

Leaf engines raise these typed errors.  The pipeline engine catches every
stage error and turns it into a stage outcome record, so callers of
``execute_pipeline`` only ever see :class:`PipelineNotFoundError`.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from docweave.models.document import TextUnit


class DocweaveError(Exception):
    """Base exception for all docweave errors.

    Every subclass carries a human-readable ``message`` and an optional
    ``component`` naming the engine that raised it.  ``__str__`` prefixes
    the component in brackets for structured log output, e.g.
    ``[versioning] Versioning is not enabled``.
    """

    default_message = "An unexpected error occurred"

    def __init__(
        self,
        message: str | None = None,
        component: str | None = None,
    ) -> None:
        self._message = message or self.default_message
        self._component = component
        super().__init__(self._message)

    @property
    def message(self) -> str:
        return self._message

    @property
    def component(self) -> str | None:
        return self._component

    def __str__(self) -> str:
        if self._component:
            return f"[{self._component}] {self._message}"
        return self._message


# ---------------------------------------------------------------------------
# Input errors
# ---------------------------------------------------------------------------

class ValidationError(DocweaveError):
    """Raised for malformed or oversized input (bad chunk config, bad keep count)."""

    default_message = "Invalid input"


class ConfigurationError(DocweaveError):
    """Raised when configuration is invalid or missing at startup."""

    default_message = "Invalid or missing configuration"


# ---------------------------------------------------------------------------
# Lookup errors
# ---------------------------------------------------------------------------

class NotFoundError(DocweaveError):
    """Raised when a named pipeline, chain, document or version does not exist."""

    default_message = "Requested item was not found"


class PipelineNotFoundError(NotFoundError):
    """Raised by ``execute_pipeline`` when the pipeline name is unregistered."""

    def __init__(self, pipeline_name: str) -> None:
        self.pipeline_name = pipeline_name
        super().__init__(f"Pipeline '{pipeline_name}' not found", component="pipeline")


class UnknownChainError(NotFoundError):
    """Raised when no requested transformation chain can be resolved."""

    default_message = "No valid chains provided for composite chain"


class DocumentNotFoundError(NotFoundError):
    """Raised when a logical document id has no version history."""

    default_message = "Document not found"


class VersionNotFoundError(NotFoundError):
    """Raised when a single requested version does not exist."""

    default_message = "Version not found"


class VersionsNotFoundError(NotFoundError):
    """Raised by ``compare_versions`` when one or both versions are missing."""

    default_message = "One or both versions not found"


# ---------------------------------------------------------------------------
# Feature switches
# ---------------------------------------------------------------------------

class DisabledFeatureError(DocweaveError):
    """Raised when a feature is requested while its policy disables it."""

    default_message = "Feature is disabled"


class VersioningDisabledError(DisabledFeatureError):
    """Raised by ``create_version`` when the versioning policy is disabled."""

    default_message = "Versioning is not enabled"


# ---------------------------------------------------------------------------
# Execution errors
# ---------------------------------------------------------------------------

class OperationTimeoutError(DocweaveError, TimeoutError):
    """Raised when a wrapped operation exceeds its timeout."""

    def __init__(self, timeout: float, component: str | None = None) -> None:
        self.timeout = timeout
        super().__init__(f"Operation timed out after {timeout:g}s", component=component)


class RetryExhaustedError(DocweaveError):
    """Raised when every retry attempt failed.

    ``last_error`` holds the exception raised by the final attempt.
    """

    def __init__(
        self,
        attempts: int,
        last_error: BaseException | None = None,
        component: str | None = None,
    ) -> None:
        self.attempts = attempts
        self.last_error = last_error
        detail = f": {last_error}" if last_error is not None else ""
        super().__init__(f"All {attempts} attempts failed{detail}", component=component)


class TransformationError(DocweaveError):
    """Wraps a transform failure; ``original`` is the untouched input unit."""

    def __init__(
        self,
        message: str,
        original: TextUnit | None = None,
        chain_name: str | None = None,
    ) -> None:
        self.original = original
        self.chain_name = chain_name
        super().__init__(message, component="transformation")


class StageExecutionError(DocweaveError):
    """Wraps a pipeline stage failure with the stage name and timing attached."""

    def __init__(
        self,
        stage_name: str,
        message: str,
        duration: float = 0.0,
        attempts: int = 1,
    ) -> None:
        self.stage_name = stage_name
        self.duration = duration
        self.attempts = attempts
        super().__init__(f"Stage '{stage_name}' failed: {message}", component="pipeline")


class PipelineCancelledError(DocweaveError):
    """Raised inside a run when ``cancel_pipeline`` fires while a stage is in flight."""

    default_message = "Pipeline run cancelled"
