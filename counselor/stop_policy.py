"""Stop condition for the decoding loop."""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class StopPolicy:
    """Decides whether generation should end after the latest token.

    Stops once ``max_tokens`` tokens have been produced or the most recent
    token decodes to exactly ``end_marker``, whichever comes first.

    Attributes:
        max_tokens: Hard cap on produced tokens. Must be >= 1.
        end_marker: Decoded text of the end-of-turn token.
    """

    max_tokens: int = 240
    end_marker: str = "<|end|>"

    def __post_init__(self) -> None:
        if self.max_tokens < 1:
            msg = f"max_tokens must be >= 1, got {self.max_tokens}"
            raise ValueError(msg)

    def should_stop(self, token_count: int, most_recent_token: str) -> bool:
        """Evaluate both conditions for the token just produced."""
        reached_limit = token_count >= self.max_tokens
        hit_marker = most_recent_token == self.end_marker
        return reached_limit or hit_marker
