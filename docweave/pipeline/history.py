"""Bounded execution history and metrics aggregation.

A ring buffer of the most recent execution results (default 100; the oldest
entry is evicted first).  Appends and reads take a lock so concurrent runs
can record results safely.
"""

from __future__ import annotations

import threading
from collections import Counter, deque

from docweave.models.pipeline import ExecutionResult, PipelineMetrics

DEFAULT_HISTORY_SIZE = 100
TOP_ERRORS = 5


class ExecutionHistory:
    def __init__(self, max_size: int = DEFAULT_HISTORY_SIZE) -> None:
        self._results: deque[ExecutionResult] = deque(maxlen=max(1, max_size))
        self._lock = threading.Lock()

    def record(self, result: ExecutionResult) -> None:
        with self._lock:
            self._results.append(result)

    def recent(self, limit: int = 10) -> list[ExecutionResult]:
        """Return up to *limit* results, most recent first."""
        with self._lock:
            results = list(self._results)
        results.reverse()
        return results[:limit] if limit else results

    def metrics(self, pipeline_name: str | None = None) -> PipelineMetrics:
        """Aggregate over retained results, optionally for one pipeline only."""
        with self._lock:
            results = [
                r for r in self._results
                if pipeline_name is None or r.pipeline_name == pipeline_name
            ]
        if not results:
            return PipelineMetrics()

        successful = sum(1 for r in results if r.success)
        error_counts = Counter(error for r in results for error in r.errors)
        return PipelineMetrics(
            total_executions=len(results),
            successful_executions=successful,
            failed_executions=len(results) - successful,
            average_duration=sum(r.duration for r in results) / len(results),
            average_documents_processed=sum(r.documents_processed for r in results) / len(results),
            most_common_errors=error_counts.most_common(TOP_ERRORS),
        )

    def clear(self) -> None:
        with self._lock:
            self._results.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._results)
