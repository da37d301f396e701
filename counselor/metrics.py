"""Per-session throughput metrics."""

from __future__ import annotations

from dataclasses import dataclass

STATUS_PREFIX = "Tokens/second:"


def tokens_per_second(token_count: int, elapsed_seconds: float) -> float:
    """Return ``token_count / elapsed_seconds``, or 0.0 when no time has elapsed."""
    if elapsed_seconds <= 0:
        return 0.0
    return token_count / elapsed_seconds


def format_status(rate: float) -> str:
    """Render the status line shown after a session, e.g. ``Tokens/second: 18.250``."""
    return f"{STATUS_PREFIX} {rate:.3f}"


@dataclass(frozen=True)
class GenerationMetrics:
    """Throughput for one finished session. Not retained across sessions."""

    token_count: int
    elapsed_seconds: float

    @property
    def tokens_per_second(self) -> float:
        return tokens_per_second(self.token_count, self.elapsed_seconds)

    @property
    def status(self) -> str:
        return format_status(self.tokens_per_second)
