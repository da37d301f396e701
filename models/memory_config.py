"""MLX memory configuration for Apple Silicon.

All MLX memory limits are set through this module so the engine adapter
and any future model types agree on the same budget.
"""

from __future__ import annotations

BYTES_PER_MB = 1024 * 1024

# Buffer cache budget for the LLM. Small on purpose: the cache only speeds up
# allocations between decode steps and otherwise competes with the weights.
DEFAULT_LLM_CACHE_LIMIT_MB = 20


def _mb_to_bytes(value_mb: int) -> int:
    return max(1, value_mb) * BYTES_PER_MB


def apply_cache_limit(cache_limit_mb: int = DEFAULT_LLM_CACHE_LIMIT_MB) -> int:
    """Apply the MLX buffer-cache limit.

    Args:
        cache_limit_mb: Budget in megabytes.

    Returns:
        The previous limit in bytes, as reported by MLX.
    """
    import mlx.core as mx

    return mx.set_cache_limit(_mb_to_bytes(cache_limit_mb))


def get_active_memory_mb() -> float:
    """Return MLX active (non-cache) memory in MB."""
    import mlx.core as mx

    return mx.get_active_memory() / BYTES_PER_MB


def clear_cache() -> None:
    """Release cached MLX buffers back to the system."""
    import mlx.core as mx

    mx.clear_cache()
