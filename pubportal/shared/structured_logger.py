"""Structured logging for the portal.

Every entry carries the service name and environment, the request's
correlation ID (bound by the request middleware) and, when a span is
active, the OpenTelemetry trace and span IDs.
"""

import logging
import sys
from typing import Any, List

import structlog
from structlog.types import EventDict, Processor


class ServiceContext:
    """Processor stamping the service name and environment on each entry."""

    def __init__(self, service: str, environment: str):
        self.fields = {"app": service, "environment": environment}

    def __call__(self, logger: logging.Logger, method_name: str, event_dict: EventDict) -> EventDict:
        for key, value in self.fields.items():
            event_dict.setdefault(key, value)
        return event_dict


def add_trace_ids(logger: logging.Logger, method_name: str, event_dict: EventDict) -> EventDict:
    from opentelemetry import trace

    span = trace.get_current_span()
    if span.is_recording():
        context = span.get_span_context()
        event_dict["trace_id"] = format(context.trace_id, "032x")
        event_dict["span_id"] = format(context.span_id, "016x")
    return event_dict


def build_processors(service: str, environment: str, json_logs: bool) -> List[Processor]:
    """Processor chain ending in the JSON or console renderer."""
    renderer: Processor = structlog.processors.JSONRenderer() if json_logs else structlog.dev.ConsoleRenderer()
    return [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.format_exc_info,
        ServiceContext(service, environment),
        add_trace_ids,
        renderer,
    ]


def configure_logging(
    log_level: str = "INFO",
    json_logs: bool = True,
    service_name: str = "pubportal",
    environment: str = "production",
) -> None:
    """
    Route structlog through the standard library at ``log_level``.

    Args:
        log_level: DEBUG, INFO, WARNING, ERROR or CRITICAL
        json_logs: JSON lines when true, coloured console output otherwise
        service_name: Value of the ``app`` key
        environment: Value of the ``environment`` key
    """
    structlog.configure(
        processors=build_processors(service_name, environment, json_logs),
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )
    logging.basicConfig(format="%(message)s", stream=sys.stdout, level=log_level.upper())


def bind_context(**kwargs: Any) -> None:
    """Bind key/values to every entry logged in the current context."""
    structlog.contextvars.bind_contextvars(**kwargs)


def clear_context() -> None:
    structlog.contextvars.clear_contextvars()
