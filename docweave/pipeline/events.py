"""Pipeline lifecycle events with callback-based listener notification.

Implements the Observer pattern:

    PipelineEngine --publish()--> PipelineEventBus --callback()--> listener(s)

Listeners subscribe either to one event name (``"stage.failed"``) or to
every event (``"*"``).  Both sync and async callbacks are supported.  A
listener that raises is logged and skipped; it can never break a run or
stop other listeners from being notified.
"""

from __future__ import annotations

import asyncio
import threading
from collections.abc import Callable
from datetime import datetime
from typing import Any

import structlog
from pydantic import BaseModel, ConfigDict, Field

from docweave.models.versioning import utc_now
from docweave.utils.logging import get_logger

ALL_EVENTS = "*"


class PipelineEvents:
    """Event names published by the engine."""

    PIPELINE_STARTED = "pipeline.started"
    PIPELINE_COMPLETED = "pipeline.completed"
    PIPELINE_FAILED = "pipeline.failed"
    PIPELINE_CANCELLED = "pipeline.cancelled"
    PIPELINE_FALLBACK = "pipeline.fallback"
    STAGE_STARTED = "stage.started"
    STAGE_COMPLETED = "stage.completed"
    STAGE_FAILED = "stage.failed"
    STAGE_RETRYING = "stage.retrying"


class PipelineEvent(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str
    run_id: str
    pipeline_name: str
    timestamp: datetime = Field(default_factory=utc_now)
    data: dict[str, Any] = Field(default_factory=dict)


class PipelineEventBus:
    """Broadcasts :class:`PipelineEvent` objects to registered listeners."""

    def __init__(self) -> None:
        # Per-event-name listener lists; ALL_EVENTS holds wildcard listeners.
        self._listeners: dict[str, list[Callable]] = {}
        self._lock = threading.Lock()
        self._logger: structlog.BoundLogger = get_logger(__name__)

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def subscribe(self, callback: Callable, event: str = ALL_EVENTS) -> None:
        """Register *callback* for *event* (default: every event).

        Parameters
        ----------
        callback:
            An async or sync callable accepting a single :class:`PipelineEvent`.
        event:
            Event name such as ``"stage.completed"``, or ``"*"``.
        """
        with self._lock:
            listeners = self._listeners.setdefault(event, [])
            if callback in listeners:
                return
            listeners.append(callback)
            total = len(listeners)
        self._logger.debug("listener_registered", event_name=event, total_listeners=total)

    def unsubscribe(self, callback: Callable, event: str = ALL_EVENTS) -> None:
        with self._lock:
            listeners = self._listeners.get(event, [])
            if callback in listeners:
                listeners.remove(callback)
        self._logger.debug("listener_unregistered", event_name=event)

    async def publish(self, event: PipelineEvent) -> None:
        """Notify every listener for ``event.name`` and every wildcard listener."""
        with self._lock:
            listeners = list(self._listeners.get(event.name, [])) + list(
                self._listeners.get(ALL_EVENTS, [])
            )

        self._logger.debug(
            "pipeline_event",
            event_name=event.name,
            run_id=event.run_id,
            pipeline=event.pipeline_name,
        )

        for callback in listeners:
            try:
                result = callback(event)
                if asyncio.iscoroutine(result):
                    await result
            except Exception as exc:
                self._logger.warning(
                    "listener_callback_error",
                    event_name=event.name,
                    run_id=event.run_id,
                    error=str(exc),
                    callback=getattr(callback, "__name__", repr(callback)),
                )
