"""Structured logging setup using structlog.

One shared processor chain feeds either a coloured ConsoleRenderer
(development) or a JSONRenderer (``app_env == "production"`` or
``json_output=True``).  Every record gets a ``component`` key derived from
the emitting module, e.g. ``docweave.services.chunking.chunker`` logs as
``component="chunking"``, matching the ``component`` carried by
:class:`~docweave.utils.errors.DocweaveError`.

Standard-library ``logging`` is routed through the same formatter, so a host
application embedding docweave sees one consistent format.  Output goes to
*stream* (stdout by default); the CLI passes stderr so machine-readable
results on stdout stay clean.
"""

from __future__ import annotations

import logging
import sys
from typing import TYPE_CHECKING, Any, TextIO

import structlog

if TYPE_CHECKING:
    from docweave.config.settings import Settings

_PACKAGE = "docweave"
# Subpackages whose second path segment is the engine name.
_NESTED = {"services", "providers"}


def _component_for(logger_name: str) -> str | None:
    parts = logger_name.split(".")
    if not parts or parts[0] != _PACKAGE or len(parts) < 2:
        return None
    if parts[1] in _NESTED and len(parts) > 2:
        return parts[2]
    return parts[1]


def add_component(_logger: Any, _method: str, event_dict: dict[str, Any]) -> dict[str, Any]:
    """Processor: set ``component`` from ``logger_name`` unless already bound."""
    if "component" not in event_dict:
        name = event_dict.get("logger_name") or event_dict.get("logger")
        component = _component_for(name) if isinstance(name, str) else None
        if component:
            event_dict["component"] = component
    return event_dict


def configure_logging(
    log_level: str = "INFO",
    json_output: bool = False,
    stream: TextIO | None = None,
    app_env: str = "development",
) -> structlog.BoundLogger:
    """Configure structlog and the stdlib root logger.

    Parameters
    ----------
    log_level:
        DEBUG, INFO, WARNING, ERROR or CRITICAL.
    json_output:
        Force JSON rendering regardless of *app_env*.
    stream:
        Destination for both structlog and stdlib records (default stdout).
    app_env:
        ``"production"`` selects JSON rendering.
    """
    level = log_level.upper()
    out = stream or sys.stdout
    use_json = json_output or app_env == "production"

    shared_processors: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        add_component,
        structlog.processors.StackInfoRenderer(),
        structlog.dev.set_exc_info,
        structlog.processors.TimeStamper(fmt="iso"),
    ]

    if use_json:
        renderer: structlog.types.Processor = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer(colors=out.isatty())

    structlog.configure(
        processors=[*shared_processors, renderer],
        wrapper_class=structlog.make_filtering_bound_logger(logging.getLevelName(level)),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(file=out),
        cache_logger_on_first_use=True,
    )

    formatter = structlog.stdlib.ProcessorFormatter(
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            *shared_processors,
            renderer,
        ],
    )
    handler = logging.StreamHandler(out)
    handler.setFormatter(formatter)

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.addHandler(handler)
    root_logger.setLevel(level)

    return structlog.get_logger()


def configure_from_settings(settings: Settings, stream: TextIO | None = None) -> structlog.BoundLogger:
    """Configure logging from ``DOCWEAVE_LOG_LEVEL`` / ``DOCWEAVE_APP_ENV``."""
    return configure_logging(
        log_level=settings.log_level,
        stream=stream,
        app_env=settings.app_env,
    )


def get_logger(name: str) -> structlog.BoundLogger:
    """Return a structlog logger bound to *name*, configuring defaults on first use."""
    if not structlog.is_configured():
        configure_logging()
    return structlog.get_logger(logger_name=name)
