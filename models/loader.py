"""Load-once model cache.

Acquires a model and tokenizer through an InferenceEngine the first time
they are needed and returns the same handle on every later call.

Usage:
    from models.loader import ModelLoader, ModelConfig
    from models.mlx_engine import MLXEngine

    loader = ModelLoader(MLXEngine(), ModelConfig(model_id="phi-3-mini-4k"))
    handle = loader.load(on_progress=lambda f: print(f"{f:.0%}"))
    assert loader.load() is handle
"""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass, field

import psutil

from contracts.engine import InferenceEngine, ModelHandle, ProgressCallback
from counselor.errors import (
    ModelLoadError,
    model_not_found,
    model_out_of_memory,
)
from counselor.observability.logging import timed_operation
from models.memory_config import BYTES_PER_MB, DEFAULT_LLM_CACHE_LIMIT_MB
from models.registry import (
    DEFAULT_MODEL_ID,
    MODEL_REGISTRY,
    ModelSpec,
    get_model_spec,
    get_model_spec_by_path,
)

logger = logging.getLogger(__name__)


@dataclass
class ModelConfig:
    """Configuration for model loading.

    Can be initialized with either model_id (from registry) or model_path.
    If both are provided, model_path wins. If neither is provided,
    uses the default model from the registry.

    Attributes:
        model_id: Model identifier from registry (e.g., "phi-3-mini-4k").
        model_path: HuggingFace repo id or local directory.
        estimated_memory_mb: Estimated memory usage (auto-set from registry).
        memory_buffer_multiplier: Safety buffer for memory checks.
        cache_limit_mb: Engine buffer-cache budget applied at first load.
    """

    model_id: str | None = None
    model_path: str = ""
    estimated_memory_mb: float = 2048
    memory_buffer_multiplier: float = 1.3
    cache_limit_mb: int = DEFAULT_LLM_CACHE_LIMIT_MB
    _resolved_spec: ModelSpec | None = field(default=None, repr=False)

    def __post_init__(self) -> None:
        """Resolve model_id to model_path and estimated_memory_mb."""
        if self.model_path:
            spec = get_model_spec_by_path(self.model_path)
        elif self.model_id:
            spec = get_model_spec(self.model_id)
            if spec is None:
                logger.warning("Unknown model_id '%s', using as-is", self.model_id)
                self.model_path = self.model_id
        else:
            spec = MODEL_REGISTRY[DEFAULT_MODEL_ID]

        if spec is not None:
            self._resolved_spec = spec
            self.model_id = spec.id
            self.model_path = spec.path
            self.estimated_memory_mb = spec.estimated_memory_mb

    @classmethod
    def from_settings(cls, settings: object) -> ModelConfig:
        """Build from a ``counselor.config.ModelSettings`` instance."""
        return cls(
            model_id=getattr(settings, "model_id", None),
            model_path=getattr(settings, "model_path", None) or "",
            memory_buffer_multiplier=getattr(settings, "memory_buffer_multiplier", 1.3),
            cache_limit_mb=getattr(settings, "cache_limit_mb", DEFAULT_LLM_CACHE_LIMIT_MB),
        )

    @property
    def display_name(self) -> str:
        """Return a human-readable name for the model."""
        if self._resolved_spec:
            return self._resolved_spec.display_name
        return self.model_path.rstrip("/").split("/")[-1]


@dataclass(frozen=True)
class Unloaded:
    """No weights acquired yet."""


@dataclass(frozen=True)
class Loaded:
    """Weights acquired; ``handle`` is shared read-only from here on."""

    handle: ModelHandle


LoadState = Unloaded | Loaded


class ModelLoader:
    """Lazy, memoized acquisition of a ModelHandle.

    State moves from Unloaded to Loaded exactly once, on the first
    successful load, and never reverts. A failed load leaves the state
    Unloaded so the next call retries.

    The check-then-set is serialized with double-check locking, so
    overlapping callers share a single acquisition instead of racing.
    """

    def __init__(self, engine: InferenceEngine | None = None, config: ModelConfig | None = None) -> None:
        """Initialize the loader.

        Args:
            engine: Engine that performs the actual acquisition. Defaults to MLXEngine.
            config: Model configuration. Uses defaults if not provided.
        """
        if engine is None:
            from models.mlx_engine import MLXEngine

            engine = MLXEngine()
        self.config = config or ModelConfig()
        self._engine = engine
        self._state: LoadState = Unloaded()
        self._lock = threading.Lock()
        self.last_load_time_ms: float | None = None

    @property
    def state(self) -> LoadState:
        """Current load state."""
        return self._state

    def is_loaded(self) -> bool:
        """Check if the handle has been acquired."""
        match self._state:
            case Loaded():
                return True
            case Unloaded():
                return False

    def _can_load_model(self) -> tuple[bool, int, int]:
        """Check if sufficient memory is available for loading.

        Returns:
            Tuple of (can_load, available_mb, required_mb).
        """
        mem = psutil.virtual_memory()
        available_mb = int(mem.available / BYTES_PER_MB)
        required_mb = int(self.config.estimated_memory_mb * self.config.memory_buffer_multiplier)

        if available_mb < required_mb:
            logger.warning(
                "Insufficient memory for model load: %dMB available, %dMB required",
                available_mb,
                required_mb,
            )
            return False, available_mb, required_mb
        return True, available_mb, required_mb

    def load(self, on_progress: ProgressCallback | None = None) -> ModelHandle:
        """Return the model handle, acquiring it on first use.

        Args:
            on_progress: Receives fractional completion while acquiring.
                Not called when the handle is already cached.

        Returns:
            The cached ModelHandle (identical object on every call).

        Raises:
            ModelLoadError: If acquisition fails. The loader stays Unloaded.
        """
        # Fast path: already loaded
        match self._state:
            case Loaded(handle=handle):
                return handle
            case Unloaded():
                pass

        with self._lock:
            # Double-check after acquiring lock
            match self._state:
                case Loaded(handle=handle):
                    return handle
                case Unloaded():
                    handle = self._acquire(on_progress)
                    self._state = Loaded(handle)
                    return handle

    def _acquire(self, on_progress: ProgressCallback | None) -> ModelHandle:
        can_load, available_mb, required_mb = self._can_load_model()
        if not can_load:
            raise model_out_of_memory(
                self.config.display_name,
                available_mb=available_mb,
                required_mb=required_mb,
            )

        logger.info("Loading model: %s (%s)", self.config.display_name, self.config.model_path)
        start_time = time.perf_counter()
        try:
            with timed_operation(logger, "model.load", model_id=self.config.model_path) as ctx:
                handle = self._engine.load(self.config, on_progress)
                ctx["weights_mb"] = handle.weights_mb
        except ModelLoadError:
            raise
        except FileNotFoundError as e:
            logger.error(
                "Model not found: %s. Run `huggingface-cli download %s` first.",
                self.config.model_path,
                self.config.model_path,
            )
            raise model_not_found(self.config.model_path) from e
        except MemoryError as e:
            logger.error("Out of memory loading model. Free up memory or use a smaller model.")
            raise model_out_of_memory(self.config.display_name) from e
        except Exception as e:
            raise ModelLoadError(
                f"Failed to load model: {e}",
                model_name=self.config.display_name,
                model_path=self.config.model_path,
                cause=e,
            ) from e

        self.last_load_time_ms = (time.perf_counter() - start_time) * 1000
        return handle


# Singleton model loader for the process-wide cache
_model_loader: ModelLoader | None = None
_model_loader_lock = threading.Lock()


def get_loader(config: ModelConfig | None = None) -> ModelLoader:
    """Get or create the singleton loader.

    Thread-safe using double-check locking. ``config`` only applies when
    the singleton is first created.
    """
    global _model_loader

    if _model_loader is None:
        with _model_loader_lock:
            if _model_loader is None:
                _model_loader = ModelLoader(config=config)
    return _model_loader


def reset_loader() -> None:
    """Drop the singleton loader. Use this to clear state between tests."""
    global _model_loader
    with _model_loader_lock:
        _model_loader = None
