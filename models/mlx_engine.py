"""MLX inference engine for Apple Silicon.

Implements contracts.engine.InferenceEngine on top of mlx-lm. MLX is only
importable on macOS with Apple Silicon, so every mlx import happens inside
the method that needs it; importing this module is safe anywhere.
"""

from __future__ import annotations

import logging
from collections.abc import Iterator, Sequence
from typing import TYPE_CHECKING

from contracts.engine import GenerationParams, ModelHandle, ProgressCallback
from models.memory_config import apply_cache_limit, clear_cache, get_active_memory_mb
from models.registry import download_model

if TYPE_CHECKING:
    from models.loader import ModelConfig

logger = logging.getLogger(__name__)


class MLXEngine:
    """mlx-lm backed engine: downloads, loads, and steps a causal LM."""

    def __init__(self) -> None:
        self._cache_limit_applied = False

    def load(self, config: ModelConfig, on_progress: ProgressCallback | None) -> ModelHandle:
        """Download (if needed) and load weights plus tokenizer.

        The buffer-cache limit is applied once, before the first load.
        """
        from mlx_lm import load

        if not self._cache_limit_applied:
            apply_cache_limit(config.cache_limit_mb)
            self._cache_limit_applied = True
            logger.debug("MLX cache limit set to %dMB", config.cache_limit_mb)

        local_dir = download_model(config.model_path, on_progress=on_progress)
        model, tokenizer = load(str(local_dir))
        if on_progress is not None:
            on_progress(1.0)

        return ModelHandle(
            model=model,
            tokenizer=tokenizer,
            model_id=config.model_path,
            weights_mb=get_active_memory_mb(),
        )

    def produce_tokens(
        self,
        prompt_tokens: Sequence[int],
        params: GenerationParams,
        handle: ModelHandle,
    ) -> Iterator[int]:
        """Yield sampled token ids one decode step at a time.

        Ends on its own at the tokenizer's EOS ids or after
        ``params.max_tokens`` steps. Calling ``close()`` on the returned
        generator stops the step loop and releases cached buffers.
        """
        import mlx.core as mx
        from mlx_lm.generate import generate_step
        from mlx_lm.sample_utils import make_sampler

        mx.random.seed(params.seed)
        sampler = make_sampler(temp=params.temperature, top_p=params.top_p)
        eos_ids = set(getattr(handle.tokenizer, "eos_token_ids", None) or ())

        return self._step(
            generate_step(
                mx.array(list(prompt_tokens)),
                handle.model,
                max_tokens=params.max_tokens,
                sampler=sampler,
            ),
            eos_ids,
        )

    @staticmethod
    def _step(steps: Iterator[tuple[int, object]], eos_ids: set[int]) -> Iterator[int]:
        try:
            for token, _logprobs in steps:
                token_id = int(token)
                if token_id in eos_ids:
                    break
                yield token_id
        finally:
            steps.close()  # type: ignore[attr-defined]
            clear_cache()
