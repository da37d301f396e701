"""Model Registry for the counselor.

Provides model specifications, local availability checks, and weight
downloads from the HuggingFace Hub with progress reporting.

Usage:
    from models.registry import get_model_spec, download_model

    spec = get_model_spec("phi-3-mini-4k")
    local_dir = download_model(spec.path, on_progress=print)
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Literal

from contracts.engine import ProgressCallback
from counselor.errors import model_download_failed, model_not_found

logger = logging.getLogger(__name__)

# Download configuration defaults
DEFAULT_DOWNLOAD_TIMEOUT = 60  # seconds
DEFAULT_MAX_RETRIES = 3
DEFAULT_RETRY_BASE_DELAY = 1.0  # seconds (exponential backoff base)

# Only weights, tokenizer and config files are needed by mlx_lm.load
ALLOW_PATTERNS = ["*.json", "*.safetensors", "*.py", "tokenizer.model", "*.tiktoken", "*.txt"]


@dataclass(frozen=True)
class ModelSpec:
    """Specification for a supported MLX model.

    Attributes:
        id: Unique identifier for the model (e.g., "phi-3-mini-4k").
        path: HuggingFace model path for MLX.
        display_name: Human-readable name for display in UI.
        size_gb: Approximate GPU memory usage in GB.
        min_ram_gb: Minimum system RAM required.
        quality_tier: Quality classification ("basic", "good", "excellent").
        description: User-facing description of the model.
    """

    id: str
    path: str
    display_name: str
    size_gb: float
    min_ram_gb: int
    quality_tier: Literal["basic", "good", "excellent"]
    description: str

    @property
    def estimated_memory_mb(self) -> float:
        """Return estimated memory usage in MB."""
        return self.size_gb * 1024


MODEL_REGISTRY: dict[str, ModelSpec] = {
    "phi-3-mini-4k": ModelSpec(
        id="phi-3-mini-4k",
        path="mlx-community/Phi-3-mini-4k-instruct-4bit-no-q-embed",
        display_name="Phi-3 Mini 4K (4-bit)",
        size_gb=2.2,
        min_ram_gb=8,
        quality_tier="good",
        description="Phi-3 mini instruct with unquantized embeddings. Fits 8GB machines.",
    ),
    "phi-3.5-mini": ModelSpec(
        id="phi-3.5-mini",
        path="mlx-community/Phi-3.5-mini-instruct-4bit",
        display_name="Phi-3.5 Mini (4-bit)",
        size_gb=2.2,
        min_ram_gb=8,
        quality_tier="excellent",
        description="Phi-3.5 mini instruct. Same chat format, longer context.",
    ),
}

# Default model ID when none specified
DEFAULT_MODEL_ID = "phi-3-mini-4k"


def get_model_spec(model_id: str) -> ModelSpec | None:
    """Get model specification by ID.

    Args:
        model_id: The model identifier (e.g., "phi-3-mini-4k").

    Returns:
        ModelSpec if found, None otherwise.
    """
    return MODEL_REGISTRY.get(model_id)


def get_model_spec_by_path(model_path: str) -> ModelSpec | None:
    """Get model specification by HuggingFace path."""
    for spec in MODEL_REGISTRY.values():
        if spec.path == model_path:
            return spec
    return None


def _hub_cache_dir() -> Path:
    return Path.home() / ".cache" / "huggingface" / "hub"


def is_model_available(model_path: str) -> bool:
    """Check if a model is a local directory or already in the HuggingFace cache.

    Args:
        model_path: Local directory or HuggingFace repo id.

    Returns:
        True if weights can be loaded without a download.
    """
    if Path(model_path).expanduser().is_dir():
        return True

    # e.g., models--mlx-community--Phi-3-mini-4k-instruct-4bit-no-q-embed
    snapshots_dir = _hub_cache_dir() / f"models--{model_path.replace('/', '--')}" / "snapshots"
    if not snapshots_dir.exists():
        return False
    return any(snapshot.is_dir() and any(snapshot.iterdir()) for snapshot in snapshots_dir.iterdir())


def _progress_bar_class(on_progress: ProgressCallback) -> Any:
    """Build a tqdm subclass that forwards file-level progress to ``on_progress``."""
    from tqdm.auto import tqdm

    class _ProgressBar(tqdm):  # type: ignore[misc]
        def update(self, n: float | None = 1) -> bool | None:
            displayed = super().update(n)
            if self.total:
                on_progress(min(self.n / self.total, 1.0))
            return displayed

    return _ProgressBar


def download_model(
    model_path: str,
    on_progress: ProgressCallback | None = None,
    timeout: int = DEFAULT_DOWNLOAD_TIMEOUT,
    max_retries: int = DEFAULT_MAX_RETRIES,
    retry_base_delay: float = DEFAULT_RETRY_BASE_DELAY,
) -> Path:
    """Resolve a model to a local directory, downloading it if needed.

    Implements retry logic with exponential backoff for network failures.

    Args:
        model_path: Local directory or HuggingFace repo id.
        on_progress: Receives the fraction of files fetched so far.
        timeout: Timeout in seconds for hub metadata requests.
        max_retries: Maximum number of download attempts.
        retry_base_delay: Base delay in seconds for exponential backoff.

    Returns:
        Path to the directory holding the weights and tokenizer files.

    Raises:
        ModelLoadError: If the repo does not exist, access is denied, or
            every attempt failed.
    """
    local = Path(model_path).expanduser()
    if local.is_dir():
        if on_progress is not None:
            on_progress(1.0)
        return local

    from huggingface_hub import snapshot_download
    from huggingface_hub.utils import (  # type: ignore[attr-defined]
        GatedRepoError,
        HfHubHTTPError,
        RepositoryNotFoundError,
    )

    kwargs: dict[str, Any] = {
        "repo_id": model_path,
        "allow_patterns": ALLOW_PATTERNS,
        "etag_timeout": timeout,
    }
    if on_progress is not None:
        kwargs["tqdm_class"] = _progress_bar_class(on_progress)

    last_error: Exception | None = None

    for attempt in range(1, max_retries + 1):
        try:
            logger.info(
                "Fetching model %s [attempt %d/%d]",
                model_path,
                attempt,
                max_retries,
            )
            return Path(snapshot_download(**kwargs))

        except GatedRepoError as e:
            logger.error(
                "Access denied: %s requires authentication. "
                "Run `huggingface-cli login` and accept the model terms.",
                model_path,
            )
            raise model_download_failed(model_path, cause=e) from e

        except RepositoryNotFoundError as e:
            logger.error("Model not found on HuggingFace Hub: %s", model_path)
            raise model_not_found(model_path) from e

        except HfHubHTTPError as e:
            last_error = e
            response = getattr(e, "response", None)
            status_code = getattr(response, "status_code", None)
            if status_code and 400 <= status_code < 500 and status_code != 429:
                logger.error("Client error downloading model %s: %s", model_path, e)
                raise model_download_failed(model_path, cause=e) from e
            logger.warning(
                "Network error downloading model %s (attempt %d/%d): %s",
                model_path,
                attempt,
                max_retries,
                e,
            )

        except (TimeoutError, ConnectionError) as e:
            last_error = e
            logger.warning(
                "Download interrupted for %s (attempt %d/%d): %s",
                model_path,
                attempt,
                max_retries,
                e,
            )

        if attempt < max_retries:
            delay = retry_base_delay * (2 ** (attempt - 1))
            logger.debug("Waiting %.1fs before retry...", delay)
            time.sleep(delay)

    logger.error(
        "Failed to download model %s after %d attempts. Last error: %s",
        model_path,
        max_retries,
        last_error,
    )
    raise model_download_failed(model_path, cause=last_error)
