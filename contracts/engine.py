"""Inference engine and tokenizer interfaces.

The generation controller codes against these contracts only. The MLX
adapter in ``models.mlx_engine`` implements them for Apple Silicon; tests
implement them with in-memory fakes.
"""

from __future__ import annotations

from collections.abc import Callable, Iterator, Sequence
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

if TYPE_CHECKING:
    from models.loader import ModelConfig

ProgressCallback = Callable[[float], None]
"""Receives fractional load completion in [0.0, 1.0]."""


class Tokenizer(Protocol):
    """Text <-> token id conversion for a loaded model."""

    eos_token: str | None

    def encode(self, text: str) -> list[int]:
        """Encode text into a token sequence."""
        ...

    def decode(self, tokens: Sequence[int]) -> str:
        """Decode a token sequence into text."""
        ...


@dataclass(frozen=True)
class ModelHandle:
    """Loaded model weights plus their tokenizer.

    Immutable once built; shared read-only by every generation call.

    Attributes:
        model: Engine-specific model object (opaque to the controller).
        tokenizer: Tokenizer paired with the weights.
        model_id: Repository id or path the weights came from.
        weights_mb: Engine memory in use right after loading, in MB.
    """

    model: Any
    tokenizer: Tokenizer
    model_id: str
    weights_mb: float = 0.0


@dataclass(frozen=True)
class GenerationParams:
    """Sampling parameters for one generation call.

    Attributes:
        seed: Seed for the engine's sampling randomness.
        temperature: Sampling temperature (0.0 = greedy).
        top_p: Nucleus sampling threshold (1.0 disables it).
        max_tokens: Upper bound the engine may enforce on its own.
    """

    seed: int
    temperature: float = 0.6
    top_p: float = 1.0
    max_tokens: int = 240


@runtime_checkable
class TokenStream(Protocol):
    """Finite, non-restartable sequence of produced token ids.

    ``close()`` is the explicit stop signal: the engine must release its
    resources when it is called, even mid-sequence.
    """

    def __iter__(self) -> Iterator[int]: ...

    def __next__(self) -> int: ...

    def close(self) -> None: ...


class InferenceEngine(Protocol):
    """Interface to the numeric inference implementation."""

    def load(self, config: ModelConfig, on_progress: ProgressCallback | None) -> ModelHandle:
        """Acquire weights and tokenizer. Slow; may download.

        Raises:
            ModelLoadError: If the weights cannot be acquired.
        """
        ...

    def produce_tokens(
        self,
        prompt_tokens: Sequence[int],
        params: GenerationParams,
        handle: ModelHandle,
    ) -> TokenStream:
        """Start decoding after ``prompt_tokens``, one token per step."""
        ...
