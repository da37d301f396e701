"""Logging and timing helpers."""

from counselor.observability.logging import StructuredFormatter, log_event, timed_operation

__all__ = ["StructuredFormatter", "log_event", "timed_operation"]
