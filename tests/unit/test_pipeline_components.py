"""Unit tests for the pipeline registry, execution history and event bus."""

from __future__ import annotations

from pathlib import Path
from typing import Any

import pytest

from docweave.models.pipeline import (
    ExecutionMode,
    ExecutionResult,
    PipelineDefinition,
    RunStatus,
    Stage,
    StageKind,
)
from docweave.pipeline.events import PipelineEvent, PipelineEventBus, PipelineEvents
from docweave.pipeline.history import ExecutionHistory
from docweave.pipeline.registry import PipelineRegistry, default_pipelines
from docweave.utils.errors import ConfigurationError


def _result(name: str = "p", success: bool = True, errors: list[str] | None = None, **kwargs: Any) -> ExecutionResult:
    return ExecutionResult(
        run_id=f"run-{name}",
        pipeline_name=name,
        success=success,
        status=RunStatus.COMPLETED if success else RunStatus.FAILED,
        errors=errors or [],
        **kwargs,
    )


# ---------------------------------------------------------------------------
# Registry
# ---------------------------------------------------------------------------


class TestPipelineRegistry:
    def test_default_pipelines_registered(self) -> None:
        registry = PipelineRegistry()
        assert registry.names() == ["standard-processing", "rag-optimized", "quick-analysis"]

    def test_default_pipeline_shapes(self) -> None:
        by_name = {definition.name: definition for definition in default_pipelines()}

        standard = by_name["standard-processing"]
        assert [s.kind for s in standard.stages] == [
            StageKind.TRANSFORM,
            StageKind.CHUNK,
            StageKind.EXTRACT,
            StageKind.VERSION,
        ]
        assert standard.error_handling.stop_on_error is False
        assert standard.error_handling.max_retries == 3

        rag = by_name["rag-optimized"]
        assert rag.stages[1].config == {"strategy": "semantic"}
        assert rag.error_handling.stop_on_error is True

        assert by_name["quick-analysis"].execution_mode is ExecutionMode.PARALLEL

    def test_empty_registry(self) -> None:
        registry = PipelineRegistry(include_defaults=False)
        assert registry.names() == []
        assert registry.get("standard-processing") is None
        assert "standard-processing" not in registry

    def test_register_replaces_by_name(self) -> None:
        registry = PipelineRegistry(include_defaults=False)
        registry.register(PipelineDefinition(name="p", description="first"))
        registry.register(PipelineDefinition(name="p", description="second"))

        assert registry.names() == ["p"]
        assert registry.get("p").description == "second"
        assert len(registry.definitions()) == 1

    def test_load_shipped_pipelines_file(self, project_root: Path) -> None:
        registry = PipelineRegistry()
        loaded = registry.load_file(project_root / "config" / "pipelines.yaml")

        assert loaded == 3
        assert {"markdown-knowledge-base", "plain-split", "token-windows"} <= set(registry.names())
        kb = registry.get("markdown-knowledge-base")
        assert kb.error_handling.fallback_pipeline == "plain-split"
        assert kb.versioning is not None and kb.versioning.max_versions == 10

    def test_load_missing_file_registers_nothing(self, tmp_path: Path) -> None:
        assert PipelineRegistry().load_file(tmp_path / "absent.yaml") == 0

    def test_load_invalid_definition_raises(self, tmp_path: Path) -> None:
        path = tmp_path / "bad.yaml"
        path.write_text("pipelines:\n  - name: broken\n    stages:\n      - kind: chunk\n", encoding="utf-8")

        with pytest.raises(ConfigurationError, match="broken"):
            PipelineRegistry().load_file(path)


# ---------------------------------------------------------------------------
# History
# ---------------------------------------------------------------------------


class TestExecutionHistory:
    def test_ring_buffer_evicts_oldest(self) -> None:
        history = ExecutionHistory(max_size=3)
        for i in range(5):
            history.record(_result(f"p{i}"))

        assert len(history) == 3
        assert [r.pipeline_name for r in history.recent()] == ["p4", "p3", "p2"]
        assert [r.pipeline_name for r in history.recent(limit=1)] == ["p4"]

    def test_metrics(self) -> None:
        history = ExecutionHistory()
        history.record(_result(duration=1.0, documents_processed=4))
        history.record(_result(success=False, errors=["boom", "bust"], duration=3.0, documents_processed=0))
        history.record(_result(success=False, errors=["boom"], duration=2.0, documents_processed=2))
        history.record(_result("other", duration=10.0))

        metrics = history.metrics("p")

        assert metrics.total_executions == 3
        assert metrics.successful_executions == 1
        assert metrics.failed_executions == 2
        assert metrics.average_duration == pytest.approx(2.0)
        assert metrics.average_documents_processed == pytest.approx(2.0)
        assert metrics.most_common_errors[0] == ("boom", 2)
        assert history.metrics().total_executions == 4

    def test_most_common_errors_capped_at_five(self) -> None:
        history = ExecutionHistory()
        history.record(_result(success=False, errors=[f"error {i}" for i in range(8)]))
        assert len(history.metrics().most_common_errors) == 5

    def test_empty_and_clear(self) -> None:
        history = ExecutionHistory()
        assert history.metrics().total_executions == 0
        history.record(_result())
        history.clear()
        assert history.recent() == []


# ---------------------------------------------------------------------------
# Event bus
# ---------------------------------------------------------------------------


def _event(name: str = PipelineEvents.STAGE_COMPLETED) -> PipelineEvent:
    return PipelineEvent(name=name, run_id="run-1", pipeline_name="p", data={"stage": "s"})


class TestPipelineEventBus:
    @pytest.mark.asyncio
    async def test_specific_then_wildcard_listeners(self, event_bus: PipelineEventBus) -> None:
        calls: list[str] = []
        event_bus.subscribe(lambda e: calls.append("wildcard"))
        event_bus.subscribe(lambda e: calls.append("specific"), PipelineEvents.STAGE_COMPLETED)
        event_bus.subscribe(lambda e: calls.append("other"), PipelineEvents.STAGE_FAILED)

        await event_bus.publish(_event())

        assert calls == ["specific", "wildcard"]

    @pytest.mark.asyncio
    async def test_async_listener_is_awaited(self, event_bus: PipelineEventBus) -> None:
        seen: list[PipelineEvent] = []

        async def listener(event: PipelineEvent) -> None:
            seen.append(event)

        event_bus.subscribe(listener)
        await event_bus.publish(_event())

        assert seen[0].data == {"stage": "s"}

    @pytest.mark.asyncio
    async def test_failing_listener_does_not_block_others(self, event_bus: PipelineEventBus) -> None:
        seen: list[str] = []

        def broken(event: PipelineEvent) -> None:
            raise RuntimeError("listener bug")

        event_bus.subscribe(broken)
        event_bus.subscribe(lambda e: seen.append(e.name))

        await event_bus.publish(_event(PipelineEvents.PIPELINE_STARTED))

        assert seen == [PipelineEvents.PIPELINE_STARTED]

    @pytest.mark.asyncio
    async def test_subscribe_is_idempotent_and_unsubscribe_works(
        self, event_bus: PipelineEventBus
    ) -> None:
        seen: list[str] = []

        def listener(event: PipelineEvent) -> None:
            seen.append(event.name)

        event_bus.subscribe(listener)
        event_bus.subscribe(listener)
        await event_bus.publish(_event())
        event_bus.unsubscribe(listener)
        await event_bus.publish(_event())

        assert seen == [PipelineEvents.STAGE_COMPLETED]


def test_stage_handler_survives_registration() -> None:
    registry = PipelineRegistry(include_defaults=False)

    def handler(units: list, stage: Stage) -> list:
        return units

    registry.register(PipelineDefinition(name="h", stages=[Stage(name="s", handler=handler)]))
    assert registry.get("h").stages[0].handler is handler
