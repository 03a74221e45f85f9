"""Pipeline execution components: registry, engine, events and history."""

from docweave.pipeline.engine import PipelineEngine
from docweave.pipeline.events import PipelineEvent, PipelineEventBus, PipelineEvents
from docweave.pipeline.history import ExecutionHistory
from docweave.pipeline.registry import PipelineRegistry, default_pipelines

__all__ = [
    "ExecutionHistory",
    "PipelineEngine",
    "PipelineEvent",
    "PipelineEventBus",
    "PipelineEvents",
    "PipelineRegistry",
    "default_pipelines",
]
