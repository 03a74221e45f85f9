"""Transformation chain composer.

Holds a registry of named, side-effect-free ``TextUnit -> TextUnit``
transforms (sync or async), composes them into sequential or parallel
chains, and executes a chain with timeout and retry wrapping.

The central guarantee is that :meth:`TransformationComposer.execute` never
raises: on any failure the caller gets a :class:`TransformationResult`
whose ``transformed`` unit is the untouched input.  The pipeline engine's
continue-on-error mode depends on this.
"""

from __future__ import annotations

import asyncio
import threading
import time
import uuid
from dataclasses import dataclass
from typing import Any, Callable, Sequence

import structlog

from docweave.models.document import TextUnit
from docweave.models.transformation import (
    TransformationConfig,
    TransformationResult,
    TransformationStats,
)
from docweave.services.transformation.builtins import BUILTIN_TRANSFORMS
from docweave.utils.concurrency import maybe_await, throttled_gather
from docweave.utils.errors import (
    DocweaveError,
    RetryExhaustedError,
    TransformationError,
    UnknownChainError,
)
from docweave.utils.logging import get_logger
from docweave.utils.retry import BackoffPolicy, with_retry

# A transform may be a plain function or a coroutine function.
Transform = Callable[[TextUnit], Any]


def merge_parallel_outputs(original: TextUnit, outputs: Sequence[TextUnit]) -> TextUnit:
    """Merge independently computed variants of *original* deterministically.

    Metadata is merged in declaration order (later outputs win on key
    conflicts).  Content comes from the last output whose content differs
    from the original; if none differ the original content is kept.
    """
    metadata: dict[str, Any] = dict(original.metadata)
    content = original.content
    for output in outputs:
        metadata.update(output.metadata)
        if output.content != original.content:
            content = output.content
    return TextUnit(content=content, metadata=metadata)


@dataclass(frozen=True)
class RegisteredTransform:
    name: str
    fn: Transform
    description: str = ""
    kind: str = "custom"


class ComposedChain:
    """Callable applying several transforms, in order or side by side.

    Instances are produced by :meth:`TransformationComposer.compose` and
    :meth:`TransformationComposer.compose_parallel`.
    """

    def __init__(self, steps: list[RegisteredTransform], parallel: bool = False) -> None:
        self._steps = steps
        self._parallel = parallel

    @property
    def names(self) -> list[str]:
        return [step.name for step in self._steps]

    @property
    def parallel(self) -> bool:
        return self._parallel

    async def __call__(self, unit: TextUnit) -> TextUnit:
        if self._parallel:
            outputs = await asyncio.gather(
                *(self._apply(step, unit) for step in self._steps)
            )
            return merge_parallel_outputs(unit, outputs)

        current = unit
        for step in self._steps:
            current = await self._apply(step, current)
        return current

    @staticmethod
    async def _apply(step: RegisteredTransform, unit: TextUnit) -> TextUnit:
        result = await maybe_await(step.fn(unit))
        if not isinstance(result, TextUnit):
            raise TransformationError(
                f"Transform '{step.name}' returned {type(result).__name__}, expected TextUnit",
                original=unit,
                chain_name=step.name,
            )
        return result

    def __repr__(self) -> str:
        mode = "parallel" if self._parallel else "sequential"
        return f"ComposedChain({mode}, {self.names})"


class TransformationComposer:
    """Registry and executor for named transformation chains.

    Parameters
    ----------
    backoff:
        Delay policy between retry attempts in :meth:`execute`.
    default_timeout:
        Per-attempt timeout (seconds) used when ``execute`` is called
        without one.  ``None`` disables the timeout.
    register_builtins:
        Register the built-in cleaning and enrichment transforms.
    """

    def __init__(
        self,
        backoff: BackoffPolicy | None = None,
        default_timeout: float | None = None,
        register_builtins: bool = True,
    ) -> None:
        self._backoff = backoff or BackoffPolicy()
        self._default_timeout = default_timeout
        self._registry: dict[str, RegisteredTransform] = {}
        self._lock = threading.Lock()
        self._logger: structlog.BoundLogger = get_logger(__name__)

        if register_builtins:
            for name, (fn, description, kind) in BUILTIN_TRANSFORMS.items():
                self.register(name, fn, description=description, kind=kind)

    # ------------------------------------------------------------------
    # Registry
    # ------------------------------------------------------------------

    def register(
        self,
        name: str,
        fn: Transform,
        description: str = "",
        kind: str = "custom",
    ) -> None:
        """Store *fn* under *name*.  Re-registering a name replaces it."""
        with self._lock:
            replaced = name in self._registry
            self._registry[name] = RegisteredTransform(name, fn, description, kind)
        if replaced:
            self._logger.info("transformation_overwritten", name=name)
        else:
            self._logger.debug("transformation_registered", name=name, kind=kind)

    def register_chain(self, name: str, names: Sequence[str], parallel: bool = False) -> ComposedChain:
        """Compose *names* and register the result under *name*."""
        chain = self.compose_parallel(names) if parallel else self.compose(names)
        self.register(
            name,
            chain,
            description=f"{'Parallel' if parallel else 'Sequential'} chain of {', '.join(chain.names)}",
            kind="composite",
        )
        return chain

    def has(self, name: str) -> bool:
        with self._lock:
            return name in self._registry

    def list_transforms(self) -> list[dict[str, str]]:
        with self._lock:
            return [
                {"name": t.name, "description": t.description, "kind": t.kind}
                for t in self._registry.values()
            ]

    # ------------------------------------------------------------------
    # Composition
    # ------------------------------------------------------------------

    def compose(self, names: Sequence[str]) -> ComposedChain:
        """Build a chain applying *names* in order.

        Unknown names are skipped with a warning.

        Raises
        ------
        UnknownChainError
            If none of *names* is registered.
        """
        return ComposedChain(self._resolve(names), parallel=False)

    def compose_parallel(self, names: Sequence[str]) -> ComposedChain:
        """Build a chain running *names* side by side on the same input.

        Outputs are merged with :func:`merge_parallel_outputs`.
        """
        return ComposedChain(self._resolve(names), parallel=True)

    def _resolve(self, names: Sequence[str]) -> list[RegisteredTransform]:
        steps: list[RegisteredTransform] = []
        with self._lock:
            for name in names:
                step = self._registry.get(name)
                if step is None:
                    self._logger.warning("transformation_not_found", name=name)
                    continue
                steps.append(step)
        if not steps:
            raise UnknownChainError(
                f"No valid chains provided for composite chain: {list(names)}",
                component="transformation",
            )
        return steps

    def create_preprocessing_chain(self, config: TransformationConfig | None = None) -> ComposedChain:
        """Chain the cleaning transforms selected by *config* (identity if none)."""
        config = config or TransformationConfig()
        names: list[str] = []
        if config.remove_headers_footers:
            names.append("header-footer-remover")
        if config.remove_extra_whitespace:
            names.append("whitespace-normalizer")
        if config.normalize_unicode:
            names.append("unicode-normalizer")
        if config.remove_special_characters:
            names.append("text-cleaner")
        if config.to_lowercase:
            names.append("lowercase")
        return self._compose_or_identity(names)

    def create_enrichment_chain(self, config: TransformationConfig | None = None) -> ComposedChain:
        """Chain the enrichment transforms selected by *config* (identity if none)."""
        config = config or TransformationConfig()
        names: list[str] = []
        if config.add_timestamps:
            names.append("add-timestamp")
        if config.add_document_id:
            names.append("add-document-id")
        if config.add_source_info:
            names.append("add-source-info")
        return self._compose_or_identity(names)

    def _compose_or_identity(self, names: list[str]) -> ComposedChain:
        if not names:
            return ComposedChain([RegisteredTransform("identity", lambda unit: unit)])
        return self.compose(names)

    # ------------------------------------------------------------------
    # Execution
    # ------------------------------------------------------------------

    async def execute(
        self,
        unit: TextUnit,
        chain_name: str,
        timeout: float | None = None,
        retries: int | None = None,
    ) -> TransformationResult:
        """Apply the chain registered as *chain_name* to *unit*.

        Never raises.  *retries* is the total number of attempts (default 1);
        *timeout* applies per attempt.  On failure the result's
        ``transformed`` is *unit* itself and ``error`` holds the message.
        """
        with self._lock:
            registered = self._registry.get(chain_name)

        if registered is None:
            return self._failure(
                f"transform_{uuid.uuid4().hex[:12]}", chain_name, unit, time.perf_counter(),
                f"Transformation chain '{chain_name}' not found",
            )
        return await self.run_chain(unit, registered.fn, chain_name, timeout=timeout, retries=retries)

    async def run_chain(
        self,
        unit: TextUnit,
        chain: Transform,
        chain_name: str,
        timeout: float | None = None,
        retries: int | None = None,
    ) -> TransformationResult:
        """Apply an unregistered *chain* with the same guarantees as :meth:`execute`."""
        transformation_id = f"transform_{uuid.uuid4().hex[:12]}"
        started = time.perf_counter()
        step = RegisteredTransform(chain_name, chain)

        try:
            transformed = await with_retry(
                lambda: ComposedChain._apply(step, unit),
                attempts=retries or 1,
                backoff=self._backoff,
                timeout=timeout if timeout is not None else self._default_timeout,
                component="transformation",
            )
        except RetryExhaustedError as exc:
            cause = exc.last_error if exc.last_error is not None else exc
            message = cause.message if isinstance(cause, DocweaveError) else str(cause)
            return self._failure(transformation_id, chain_name, unit, started, message or repr(cause))

        duration = time.perf_counter() - started
        stats = TransformationStats.measure(unit, transformed)
        self._logger.debug(
            "transformation_complete",
            chain=chain_name,
            duration=round(duration, 4),
            length_change=stats.length_change,
        )
        return TransformationResult(
            transformation_id=transformation_id,
            chain_name=chain_name,
            original=unit,
            transformed=transformed,
            success=True,
            duration=duration,
            stats=stats,
        )

    async def execute_batch(
        self,
        units: Sequence[TextUnit],
        chain_name: str,
        batch_size: int = 10,
        timeout: float | None = None,
        retries: int | None = None,
    ) -> list[TransformationResult]:
        """Run :meth:`execute` over *units* with at most *batch_size* in flight."""
        results = await throttled_gather(
            [self.execute(unit, chain_name, timeout=timeout, retries=retries) for unit in units],
            limit=batch_size,
            return_exceptions=False,
        )
        failed = sum(1 for result in results if not result.success)
        self._logger.info(
            "transformation_batch_complete",
            chain=chain_name,
            total=len(results),
            failed=failed,
        )
        return list(results)

    def _failure(
        self,
        transformation_id: str,
        chain_name: str,
        unit: TextUnit,
        started: float,
        message: str,
    ) -> TransformationResult:
        self._logger.error("transformation_failed", chain=chain_name, error=message)
        return TransformationResult(
            transformation_id=transformation_id,
            chain_name=chain_name,
            original=unit,
            transformed=unit,
            success=False,
            error=message,
            duration=time.perf_counter() - started,
        )
