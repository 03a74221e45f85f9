"""Pipeline execution engine.

Runs a registered :class:`~docweave.models.pipeline.PipelineDefinition`
over a list of text units, stage by stage, delegating each stage to the
transformation composer, the chunker, the metadata enricher, the versioning
service, a document loader, or a caller-supplied handler.

ARCHITECTURE NOTE:
    Every run owns three things: an immutable :class:`PipelineRunState`
    snapshot (swapped, never mutated, on each transition), a cancellation
    token (an ``asyncio.Event``), and a working set of units.  Stages never
    see the run state; they take units in and hand units back.

    Stage failures never escape :meth:`PipelineEngine.execute_pipeline`.
    They become :class:`StageOutcome` records and error strings, and an
    aborted run is reported as a non-success :class:`ExecutionResult`.  The
    only exceptions raised to the caller happen at submission time:
    ``PipelineNotFoundError`` for an unknown pipeline and ``ValidationError``
    for a ``run_id`` that is still active.

    Consecutive parallel-eligible stages form a group.  Every stage in a
    group sees the same input; their outputs are merged per unit position
    with :func:`merge_parallel_outputs`.

    Stage middleware wraps every stage call, outermost first:
    ``await middleware(stage, units, call_next)`` where
    ``call_next(stage, units)`` runs the rest of the chain.
"""

from __future__ import annotations

import asyncio
import threading
import time
import uuid
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Coroutine, Sequence

import structlog
from cachetools import TTLCache

from docweave.interfaces.document_loader import IDocumentLoader
from docweave.models.chunking import ChunkingConfig
from docweave.models.document import TextUnit
from docweave.models.pipeline import (
    ErrorHandling,
    ExecutionMode,
    ExecutionResult,
    PipelineDefinition,
    PipelineMetrics,
    PipelineRunState,
    RunStatus,
    Stage,
    StageKind,
    StageOutcome,
)
from docweave.models.transformation import TransformationConfig
from docweave.models.versioning import Version, VersioningPolicy, utc_now
from docweave.pipeline.events import PipelineEvent, PipelineEventBus, PipelineEvents
from docweave.pipeline.history import ExecutionHistory
from docweave.pipeline.registry import PipelineRegistry
from docweave.services.chunking.chunker import TextChunker
from docweave.services.extraction.enricher import MetadataEnricher
from docweave.services.transformation.composer import (
    TransformationComposer,
    merge_parallel_outputs,
)
from docweave.services.versioning.versioning_service import VersioningService
from docweave.utils.concurrency import maybe_await, throttled_gather
from docweave.utils.errors import (
    ConfigurationError,
    DocweaveError,
    PipelineCancelledError,
    PipelineNotFoundError,
    RetryExhaustedError,
    StageExecutionError,
    TransformationError,
    UnknownChainError,
    ValidationError,
)
from docweave.utils.logging import get_logger
from docweave.utils.retry import BackoffPolicy, with_retry

StageHandler = Callable[[list[TextUnit], Stage], Any]
StageCall = Callable[[Stage, list[TextUnit]], Awaitable[list[TextUnit]]]
StageMiddleware = Callable[[Stage, list[TextUnit], StageCall], Any]

# Deterministic failures; retrying them cannot help.
_FATAL_STAGE_ERRORS: tuple[type[BaseException], ...] = (
    PipelineCancelledError,
    ValidationError,
    ConfigurationError,
)

_DEFAULT_TRANSFORM = TransformationConfig(remove_extra_whitespace=True, normalize_unicode=True)


@dataclass
class _RunContext:
    run_id: str
    definition: PipelineDefinition
    cancel: asyncio.Event
    call: StageCall | None = None
    outcomes: list[StageOutcome] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)
    versions: list[Version] = field(default_factory=list)


class PipelineEngine:
    """Executes registered pipelines and tracks their runs.

    All collaborators are injected at construction time; see
    :func:`docweave.main.build_engine` for the default wiring.

    Parameters
    ----------
    registry:
        Pipeline definitions by name.
    composer:
        Transformation chains for ``transform`` and chain-based ``custom`` stages.
    chunker:
        Chunking engine for ``chunk`` stages.
    versioning:
        Versioning service for ``version`` stages and pipeline-level versioning.
    enricher:
        Metadata enricher for ``extract`` stages.  Optional; an ``extract``
        stage without one fails.
    loader:
        Document loader for ``load`` stages.  Optional, like *enricher*.
    event_bus:
        Receives lifecycle events.  ``None`` disables events entirely.
    history:
        Ring buffer of recent results.
    backoff:
        Delay policy between stage attempts.
    chunking_defaults:
        Size/overlap used by ``chunk`` stages that do not set their own.
    run_state_ttl, run_state_max:
        How long, and how many, terminal run states stay queryable.
    concurrency:
        Units transformed concurrently inside one ``transform`` stage.
    """

    def __init__(
        self,
        registry: PipelineRegistry,
        composer: TransformationComposer,
        chunker: TextChunker,
        versioning: VersioningService,
        enricher: MetadataEnricher | None = None,
        loader: IDocumentLoader | None = None,
        event_bus: PipelineEventBus | None = None,
        history: ExecutionHistory | None = None,
        backoff: BackoffPolicy | None = None,
        chunking_defaults: ChunkingConfig | None = None,
        run_state_ttl: float = 3600,
        run_state_max: int = 1000,
        concurrency: int = 10,
    ) -> None:
        self._registry = registry
        self._composer = composer
        self._chunker = chunker
        self._versioning = versioning
        self._enricher = enricher
        self._loader = loader
        self._event_bus = event_bus
        self._history = history or ExecutionHistory()
        self._backoff = backoff or BackoffPolicy()
        self._chunking_defaults = chunking_defaults or ChunkingConfig()
        self._concurrency = concurrency

        self._active: dict[str, PipelineRunState] = {}
        self._finished: TTLCache = TTLCache(maxsize=run_state_max, ttl=run_state_ttl)
        self._tokens: dict[str, asyncio.Event] = {}
        self._state_lock = threading.Lock()

        self._handlers: dict[str, StageHandler] = {}
        self._middleware: list[StageMiddleware] = []
        self._logger: structlog.BoundLogger = get_logger(__name__)

    # ------------------------------------------------------------------
    # Registration
    # ------------------------------------------------------------------

    @property
    def registry(self) -> PipelineRegistry:
        return self._registry

    @property
    def loader(self) -> IDocumentLoader | None:
        return self._loader

    @property
    def event_bus(self) -> PipelineEventBus | None:
        return self._event_bus

    def register_pipeline(self, definition: PipelineDefinition) -> None:
        self._registry.register(definition)

    def list_pipelines(self) -> list[str]:
        return self._registry.names()

    def register_handler(self, name: str, handler: StageHandler) -> None:
        """Make *handler* available to custom stages as ``config["handler"] = name``.

        A handler receives ``(units, stage)`` and returns the new unit list;
        it may be sync or async.
        """
        self._handlers[name] = handler
        self._logger.debug("stage_handler_registered", handler=name)

    def add_middleware(self, middleware: StageMiddleware) -> None:
        """Wrap every subsequent stage call with *middleware*.

        Middleware added first runs outermost.
        """
        self._middleware.append(middleware)

    def create_custom_pipeline(self, name: str, chain_names: Sequence[str]) -> PipelineDefinition:
        """Register a pipeline running one custom stage per transformation chain.

        Raises
        ------
        UnknownChainError
            If any chain is not registered with the composer.
        """
        missing = [chain for chain in chain_names if not self._composer.has(chain)]
        if missing:
            raise UnknownChainError(
                f"Transformation chain '{missing[0]}' not found",
                component="pipeline",
            )

        definition = PipelineDefinition(
            name=name,
            description=f"Custom pipeline with {len(chain_names)} stages",
            stages=[
                Stage(name=f"stage-{index}-{chain}", kind=StageKind.CUSTOM, config={"chains": [chain]})
                for index, chain in enumerate(chain_names)
            ],
            error_handling=ErrorHandling(stop_on_error=False, max_retries=2),
        )
        self._registry.register(definition)
        self._logger.info("custom_pipeline_created", pipeline=name, stages=len(chain_names))
        return definition

    # ------------------------------------------------------------------
    # Execution
    # ------------------------------------------------------------------

    async def execute_pipeline(
        self,
        pipeline_name: str,
        units: Sequence[TextUnit],
        run_id: str | None = None,
    ) -> ExecutionResult:
        """Run *pipeline_name* over *units*.

        Parameters
        ----------
        pipeline_name:
            A registered pipeline.
        units:
            The input text units.  They are never modified; if the pipeline
            falls back, the fallback receives these same units.
        run_id:
            Optional caller-chosen id, e.g. so the run can be cancelled
            from another task before this call returns.

        Returns
        -------
        ExecutionResult
            Always returned, even when stages fail or the run aborts.

        Raises
        ------
        PipelineNotFoundError
            If *pipeline_name* is not registered.
        ValidationError
            If *run_id* belongs to a run that is still active.
        """
        definition = self._registry.get(pipeline_name)
        if definition is None:
            raise PipelineNotFoundError(pipeline_name)
        return await self._run(definition, list(units), run_id=run_id)

    async def _run(
        self,
        definition: PipelineDefinition,
        units: list[TextUnit],
        run_id: str | None = None,
        fallback_from: str | None = None,
    ) -> ExecutionResult:
        run_id = run_id or f"run_{uuid.uuid4().hex[:12]}"
        ctx = _RunContext(run_id=run_id, definition=definition, cancel=asyncio.Event())
        ctx.call = self._build_call_chain(ctx)
        self._open_run(ctx, len(units))

        started_at = utc_now()
        started = time.perf_counter()
        working = list(units)
        aborted = False

        with structlog.contextvars.bound_contextvars(run_id=run_id, pipeline=definition.name):
            self._transition(run_id, status=RunStatus.RUNNING, started_at=started_at)
            self._logger.info(
                "pipeline_started",
                documents=len(units),
                stages=len(definition.enabled_stages),
                fallback_from=fallback_from,
            )
            await self._emit(ctx, PipelineEvents.PIPELINE_STARTED, documents=len(units))

            try:
                working, aborted = await self._run_stages(ctx, working)
                if not aborted and definition.versioning is not None and definition.versioning.enabled:
                    aborted = await self._version_final(ctx, working, definition.versioning)
            except PipelineCancelledError:
                self._logger.info("pipeline_cancelled_in_flight")
                self._transition(run_id, status=RunStatus.CANCELLED, finished_at=utc_now())

            if aborted:
                self._transition(
                    run_id,
                    status=RunStatus.FAILED,
                    finished_at=utc_now(),
                    errors=list(ctx.errors),
                )
            else:
                self._transition(
                    run_id,
                    status=RunStatus.COMPLETED,
                    progress=100.0,
                    finished_at=utc_now(),
                    documents_processed=len(working),
                )

            # Terminal states are set once; a concurrent cancel may have won.
            status = self._terminal_status(run_id)
            duration = time.perf_counter() - started
            result = ExecutionResult(
                run_id=run_id,
                pipeline_name=definition.name,
                started_at=started_at,
                ended_at=utc_now(),
                duration=duration,
                success=status is RunStatus.COMPLETED,
                status=status,
                documents_processed=len(working),
                stages=ctx.outcomes,
                errors=ctx.errors,
                final_units=working,
                versions=ctx.versions,
                fallback_from=fallback_from,
            )

            if status is RunStatus.COMPLETED:
                self._logger.info(
                    "pipeline_completed",
                    duration=round(duration, 4),
                    documents=len(working),
                    errors=len(ctx.errors),
                )
                await self._emit(
                    ctx,
                    PipelineEvents.PIPELINE_COMPLETED,
                    duration=duration,
                    documents=len(working),
                )
            elif status is RunStatus.FAILED:
                self._logger.error("pipeline_failed", errors=ctx.errors)
                await self._emit(ctx, PipelineEvents.PIPELINE_FAILED, errors=list(ctx.errors))

                fallback = definition.error_handling.fallback_pipeline
                if fallback and fallback_from is None:
                    fallback_result = await self._run_fallback(ctx, fallback, units)
                    if fallback_result is not None:
                        return fallback_result
                    result = result.model_copy(update={"errors": ctx.errors})

        if definition.monitoring.collect_metrics:
            self._history.record(result)
        return result

    async def _run_fallback(
        self,
        ctx: _RunContext,
        fallback: str,
        original_units: list[TextUnit],
    ) -> ExecutionResult | None:
        fallback_definition = self._registry.get(fallback)
        if fallback_definition is None:
            message = f"Fallback pipeline '{fallback}' not found"
            ctx.errors.append(message)
            self._logger.error("fallback_pipeline_missing", fallback=fallback)
            return None

        self._logger.warning("pipeline_fallback", fallback=fallback)
        await self._emit(ctx, PipelineEvents.PIPELINE_FALLBACK, fallback=fallback)
        return await self._run(
            fallback_definition,
            list(original_units),
            fallback_from=ctx.definition.name,
        )

    async def _run_stages(
        self,
        ctx: _RunContext,
        working: list[TextUnit],
    ) -> tuple[list[TextUnit], bool]:
        """Execute every stage group; return the working set and whether the run aborted."""
        definition = ctx.definition
        groups = self._stage_groups(definition)
        total = sum(len(group) for group in groups)
        done = 0

        for group in groups:
            if ctx.cancel.is_set():
                raise PipelineCancelledError(component="pipeline")

            self._transition(ctx.run_id, current_stage=group[0].name)
            if len(group) == 1:
                stage = group[0]
                output, outcome = await self._execute_stage(ctx, stage, working)
                outcomes = [(stage, outcome)]
                if output is not None:
                    working = output
            else:
                working, outcomes = await self._execute_parallel_group(ctx, group, working)

            aborted = False
            for stage, outcome in outcomes:
                ctx.outcomes.append(outcome)
                if outcome.success:
                    continue
                ctx.errors.append(outcome.error or f"Stage '{stage.name}' failed")
                if definition.error_handling.stop_on_error and not stage.continue_on_error:
                    aborted = True

            done += len(group)
            self._transition(
                ctx.run_id,
                progress=done / total * 100.0,
                documents_processed=len(working),
                errors=list(ctx.errors),
            )
            if aborted:
                return working, True

        return working, False

    async def _execute_parallel_group(
        self,
        ctx: _RunContext,
        group: list[Stage],
        working: list[TextUnit],
    ) -> tuple[list[TextUnit], list[tuple[Stage, StageOutcome]]]:
        results = await asyncio.gather(
            *(self._execute_stage(ctx, stage, working, expected_count=len(working)) for stage in group)
        )
        outputs = [output for output, _ in results if output is not None]
        merged = [
            merge_parallel_outputs(unit, [output[index] for output in outputs])
            for index, unit in enumerate(working)
        ]
        self._logger.debug(
            "parallel_group_merged",
            stages=[stage.name for stage in group],
            merged_outputs=len(outputs),
        )
        return merged, [(stage, outcome) for stage, (_, outcome) in zip(group, results)]

    async def _execute_stage(
        self,
        ctx: _RunContext,
        stage: Stage,
        units: list[TextUnit],
        expected_count: int | None = None,
    ) -> tuple[list[TextUnit] | None, StageOutcome]:
        """Run one stage with its retry budget; never raises except on cancellation."""
        budget = stage.retry_count or ctx.definition.error_handling.max_retries or 1
        attempts = 0

        async def _attempt() -> list[TextUnit]:
            nonlocal attempts
            attempts += 1
            output = await self._race(ctx.call(stage, list(units)), ctx.cancel)
            if expected_count is not None and len(output) != expected_count:
                raise ValidationError(
                    f"parallel stage changed unit count from {expected_count} to {len(output)}",
                    component="pipeline",
                )
            return output

        async def _on_retry(attempt: int, exc: BaseException) -> None:
            self._logger.warning("stage_retrying", stage=stage.name, attempt=attempt, error=str(exc))
            await self._emit(
                ctx,
                PipelineEvents.STAGE_RETRYING,
                stage=stage.name,
                attempt=attempt,
                error=str(exc),
            )

        self._logger.info("stage_started", stage=stage.name, kind=stage.kind.value)
        await self._emit(ctx, PipelineEvents.STAGE_STARTED, stage=stage.name)
        started = time.perf_counter()

        try:
            output = await with_retry(
                _attempt,
                attempts=budget,
                backoff=self._backoff,
                timeout=stage.timeout,
                component="pipeline",
                on_retry=_on_retry,
                fatal=_FATAL_STAGE_ERRORS,
            )
        except PipelineCancelledError:
            raise
        except (RetryExhaustedError, ValidationError, ConfigurationError) as exc:
            cause = exc.last_error if isinstance(exc, RetryExhaustedError) and exc.last_error else exc
            error = StageExecutionError(
                stage.name,
                cause.message if isinstance(cause, DocweaveError) else str(cause) or repr(cause),
                duration=time.perf_counter() - started,
                attempts=attempts,
            )
            self._logger.error("stage_failed", stage=stage.name, attempts=attempts, error=error.message)
            await self._emit(ctx, PipelineEvents.STAGE_FAILED, stage=stage.name, error=error.message)
            return None, StageOutcome(
                name=stage.name,
                success=False,
                duration=error.duration,
                error=error.message,
                attempts=attempts,
            )

        duration = time.perf_counter() - started
        self._logger.info(
            "stage_completed",
            stage=stage.name,
            duration=round(duration, 4),
            documents=len(output),
        )
        await self._emit(
            ctx,
            PipelineEvents.STAGE_COMPLETED,
            stage=stage.name,
            duration=duration,
            documents=len(output),
        )
        return output, StageOutcome(
            name=stage.name,
            success=True,
            duration=duration,
            documents_output=len(output),
            attempts=attempts,
        )

    async def _version_final(
        self,
        ctx: _RunContext,
        units: list[TextUnit],
        policy: VersioningPolicy,
    ) -> bool:
        """Version every final unit; return whether the run must abort."""
        for unit in units:
            try:
                ctx.versions.append(self._versioning.create_version(unit, policy))
            except DocweaveError as exc:
                ctx.errors.append(f"Versioning failed: {exc.message}")
                self._logger.error("pipeline_versioning_failed", error=exc.message)
                if ctx.definition.error_handling.stop_on_error:
                    return True
        return False

    # ------------------------------------------------------------------
    # Stage dispatch
    # ------------------------------------------------------------------

    def _build_call_chain(self, ctx: _RunContext) -> StageCall:
        async def _terminal(stage: Stage, units: list[TextUnit]) -> list[TextUnit]:
            return await self._dispatch(ctx, stage, units)

        call: StageCall = _terminal
        for middleware in reversed(list(self._middleware)):
            call = self._wrap_middleware(middleware, call)
        return call

    @staticmethod
    def _wrap_middleware(middleware: StageMiddleware, call_next: StageCall) -> StageCall:
        async def _wrapped(stage: Stage, units: list[TextUnit]) -> list[TextUnit]:
            return await maybe_await(middleware(stage, units, call_next))

        return _wrapped

    async def _dispatch(self, ctx: _RunContext, stage: Stage, units: list[TextUnit]) -> list[TextUnit]:
        if stage.kind is StageKind.TRANSFORM:
            output = await self._transform_stage(stage, units)
        elif stage.kind is StageKind.CHUNK:
            output = self._chunk_stage(stage, units)
        elif stage.kind is StageKind.EXTRACT:
            output = await self._extract_stage(stage, units)
        elif stage.kind is StageKind.VERSION:
            output = self._version_stage(ctx, stage, units)
        elif stage.kind is StageKind.LOAD:
            output = await self._load_stage(stage, units)
        else:
            output = await self._custom_stage(stage, units)

        if not isinstance(output, list) or not all(isinstance(unit, TextUnit) for unit in output):
            raise ValidationError(
                f"Stage '{stage.name}' must return a list of TextUnit",
                component="pipeline",
            )
        return output

    async def _transform_stage(self, stage: Stage, units: list[TextUnit]) -> list[TextUnit]:
        config = stage.config
        if config:
            transform_config = TransformationConfig.model_validate(
                {**config, "chains": self._chain_names(config)}
            )
        else:
            transform_config = _DEFAULT_TRANSFORM

        output = list(units)
        if transform_config.selects_builtins:
            output = await self._run_builtin_transforms(stage, output, transform_config)
        if transform_config.chains:
            output = await self._run_named_chains(stage, output, transform_config.chains)
        return output

    async def _run_builtin_transforms(
        self,
        stage: Stage,
        units: list[TextUnit],
        transform_config: TransformationConfig,
    ) -> list[TextUnit]:
        preprocess = self._composer.create_preprocessing_chain(transform_config)
        enrich = self._composer.create_enrichment_chain(transform_config)

        async def _chain(unit: TextUnit) -> TextUnit:
            return await enrich(await preprocess(unit))

        results = await throttled_gather(
            [self._composer.run_chain(unit, _chain, stage.name) for unit in units],
            limit=self._concurrency,
            return_exceptions=False,
        )
        output: list[TextUnit] = []
        for unit, result in zip(units, results):
            if not result.success:
                raise TransformationError(result.error, original=unit, chain_name=stage.name)
            output.append(result.transformed)
        return output

    async def _run_named_chains(
        self,
        stage: Stage,
        units: list[TextUnit],
        chain_names: list[str],
    ) -> list[TextUnit]:
        output: list[TextUnit] = []
        for unit in units:
            current = unit
            for chain_name in chain_names:
                result = await self._composer.execute(current, chain_name)
                if not result.success:
                    raise TransformationError(result.error, original=unit, chain_name=chain_name)
                current = result.transformed
            output.append(current)
        return output

    def _chunk_stage(self, stage: Stage, units: list[TextUnit]) -> list[TextUnit]:
        config = stage.config
        return self._chunker.chunk_many(
            units,
            self._chunking_config(config, "chunk_size", "chunk_overlap"),
            strategy=config.get("strategy", "recursive"),
            child_config=(
                self._chunking_config(config, "child_chunk_size", "child_chunk_overlap")
                if "child_chunk_size" in config
                else None
            ),
            emit=config.get("emit", "children"),
        )

    def _chunking_config(self, config: dict[str, Any], size_key: str, overlap_key: str) -> ChunkingConfig:
        values = self._chunking_defaults.model_dump()
        for key in ("min_chunk_size", "separators", "keep_separator", "preserve_paragraphs", "preserve_sentences"):
            if key in config:
                values[key] = config[key]
        if size_key in config:
            values["chunk_size"] = config[size_key]
            # Let the model derive a default overlap that fits the new size.
            values.pop("chunk_overlap")
        if overlap_key in config:
            values["chunk_overlap"] = config[overlap_key]
        return ChunkingConfig.model_validate(values)

    async def _extract_stage(self, stage: Stage, units: list[TextUnit]) -> list[TextUnit]:
        if self._enricher is None:
            raise ConfigurationError(
                f"Stage '{stage.name}' needs a metadata extractor but none is configured",
                component="pipeline",
            )
        config = dict(stage.config)
        batch_size = config.pop("batch_size", None)
        batch_delay = config.pop("batch_delay", None)
        return await self._enricher.enrich(
            units,
            config or None,
            batch_size=batch_size,
            batch_delay=batch_delay,
        )

    def _version_stage(self, ctx: _RunContext, stage: Stage, units: list[TextUnit]) -> list[TextUnit]:
        policy = VersioningPolicy.model_validate({"enabled": True, **stage.config})
        output: list[TextUnit] = []
        for unit in units:
            version = self._versioning.create_version(unit, policy)
            ctx.versions.append(version)
            output.append(
                version.unit.with_metadata(
                    document_id=version.document_id,
                    version_id=version.version_id,
                    version_number=version.version_number,
                )
            )
        return output

    async def _load_stage(self, stage: Stage, units: list[TextUnit]) -> list[TextUnit]:
        if self._loader is None:
            raise ConfigurationError(
                f"Stage '{stage.name}' needs a document loader but none is configured",
                component="pipeline",
            )
        sources = stage.config.get("sources") or []
        if isinstance(sources, str):
            sources = [sources]
        loaded: list[TextUnit] = []
        for source in sources:
            result = await self._loader.load(source)
            loaded.extend(result.units)
        self._logger.debug("stage_sources_loaded", stage=stage.name, sources=len(sources), units=len(loaded))
        return list(units) + loaded

    async def _custom_stage(self, stage: Stage, units: list[TextUnit]) -> list[TextUnit]:
        handler = stage.handler
        handler_name = stage.config.get("handler")
        if handler is None and handler_name:
            handler = self._handlers.get(handler_name)
            if handler is None:
                raise ConfigurationError(
                    f"Custom stage '{stage.name}' references unknown handler '{handler_name}'",
                    component="pipeline",
                )
        if handler is not None:
            return await maybe_await(handler(list(units), stage))

        chain_names = self._chain_names(stage.config)
        if chain_names:
            return await self._run_named_chains(stage, units, chain_names)

        raise ConfigurationError(
            f"Custom stage '{stage.name}' has no handler defined",
            component="pipeline",
        )

    @staticmethod
    def _chain_names(config: dict[str, Any]) -> list[str]:
        chains = config.get("chains")
        if chains:
            return [chains] if isinstance(chains, str) else list(chains)
        chain = config.get("chain")
        return [chain] if chain else []

    @staticmethod
    def _stage_groups(definition: PipelineDefinition) -> list[list[Stage]]:
        groups: list[list[Stage]] = []
        pending: list[Stage] = []
        all_parallel = definition.execution_mode is ExecutionMode.PARALLEL
        for stage in definition.enabled_stages:
            if stage.parallel or all_parallel:
                pending.append(stage)
                continue
            if pending:
                groups.append(pending)
                pending = []
            groups.append([stage])
        if pending:
            groups.append(pending)
        return groups

    @staticmethod
    async def _race(operation: Coroutine[Any, Any, Any], cancel: asyncio.Event) -> Any:
        """Await *operation* unless *cancel* fires first; the loser is cancelled."""
        if cancel.is_set():
            operation.close()
            raise PipelineCancelledError(component="pipeline")

        work = asyncio.ensure_future(operation)
        waiter = asyncio.ensure_future(cancel.wait())
        try:
            done, _ = await asyncio.wait({work, waiter}, return_when=asyncio.FIRST_COMPLETED)
            if work in done:
                return work.result()
            raise PipelineCancelledError(component="pipeline")
        finally:
            for task in (work, waiter):
                if not task.done():
                    task.cancel()

    # ------------------------------------------------------------------
    # Run state
    # ------------------------------------------------------------------

    def _open_run(self, ctx: _RunContext, total_documents: int) -> None:
        with self._state_lock:
            if ctx.run_id in self._active:
                raise ValidationError(f"Run '{ctx.run_id}' is already active", component="pipeline")
            self._active[ctx.run_id] = PipelineRunState(
                run_id=ctx.run_id,
                pipeline_name=ctx.definition.name,
                total_documents=total_documents,
            )
            self._tokens[ctx.run_id] = ctx.cancel

    def _transition(self, run_id: str, **update: Any) -> PipelineRunState | None:
        """Swap in a new state snapshot; terminal states are never modified."""
        with self._state_lock:
            state = self._active.get(run_id)
            if state is None:
                return None
            new_state = state.model_copy(update=update)
            if new_state.status.is_terminal:
                del self._active[run_id]
                self._tokens.pop(run_id, None)
                self._finished[run_id] = new_state
            else:
                self._active[run_id] = new_state
            return new_state

    def _terminal_status(self, run_id: str) -> RunStatus:
        with self._state_lock:
            state = self._finished.get(run_id) or self._active.get(run_id)
        return state.status if state is not None else RunStatus.FAILED

    def get_pipeline_state(self, run_id: str) -> PipelineRunState | None:
        """Current snapshot of a run; terminal states expire after the TTL."""
        with self._state_lock:
            return self._active.get(run_id) or self._finished.get(run_id)

    async def cancel_pipeline(self, run_id: str) -> bool:
        """Move a running run to ``cancelled`` and stop its in-flight stage.

        Returns ``False`` without any state change when the run is unknown
        or not ``running``.
        """
        with self._state_lock:
            state = self._active.get(run_id)
            if state is None or state.status is not RunStatus.RUNNING:
                return False
            token = self._tokens.get(run_id)

        if self._transition(run_id, status=RunStatus.CANCELLED, finished_at=utc_now()) is None:
            return False
        if token is not None:
            token.set()

        self._logger.info("pipeline_cancelled", run_id=run_id, pipeline=state.pipeline_name)
        definition = self._registry.get(state.pipeline_name)
        if self._event_bus is not None and (definition is None or definition.monitoring.emit_events):
            await self._event_bus.publish(
                PipelineEvent(
                    name=PipelineEvents.PIPELINE_CANCELLED,
                    run_id=run_id,
                    pipeline_name=state.pipeline_name,
                )
            )
        return True

    # ------------------------------------------------------------------
    # History and metrics
    # ------------------------------------------------------------------

    def get_pipeline_history(self, limit: int = 10) -> list[ExecutionResult]:
        return self._history.recent(limit)

    def get_pipeline_metrics(self, pipeline_name: str | None = None) -> PipelineMetrics:
        return self._history.metrics(pipeline_name)

    # ------------------------------------------------------------------
    # Events
    # ------------------------------------------------------------------

    async def _emit(self, ctx: _RunContext, name: str, **data: Any) -> None:
        if self._event_bus is None or not ctx.definition.monitoring.emit_events:
            return
        await self._event_bus.publish(
            PipelineEvent(
                name=name,
                run_id=ctx.run_id,
                pipeline_name=ctx.definition.name,
                data=data,
            )
        )
