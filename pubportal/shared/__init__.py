"""Cross-cutting helpers: structured logging and tracing."""

from pubportal.shared.structured_logger import bind_context, clear_context, configure_logging

__all__ = ["bind_context", "clear_context", "configure_logging"]
