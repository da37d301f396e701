"""Convenience factory functions for common error scenarios."""

from __future__ import annotations

from typing import Any

from counselor.errors.base import ErrorCode
from counselor.errors.model import ModelGenerationError, ModelLoadError


def model_not_found(model_path: str) -> ModelLoadError:
    """Create a ModelLoadError for a missing model."""
    return ModelLoadError(
        f"Model not found at: {model_path}",
        model_path=model_path,
        code=ErrorCode.MDL_NOT_FOUND,
    )


def model_out_of_memory(
    model_name: str, available_mb: int | None = None, required_mb: int | None = None
) -> ModelLoadError:
    """Create a ModelLoadError for out of memory during loading."""
    details: dict[str, Any] = {}
    if available_mb is not None:
        details["available_mb"] = available_mb
    if required_mb is not None:
        details["required_mb"] = required_mb

    return ModelLoadError(
        f"Insufficient memory to load model: {model_name}",
        model_name=model_name,
        code=ErrorCode.RES_MEMORY_EXHAUSTED,
        details=details,
    )


def model_download_failed(model_path: str, cause: Exception | None = None) -> ModelLoadError:
    """Create a ModelLoadError for a weight download that gave up."""
    return ModelLoadError(
        f"Failed to download model weights: {model_path}",
        model_path=model_path,
        code=ErrorCode.MDL_DOWNLOAD_FAILED,
        cause=cause,
    )


def generation_failed(
    model_name: str, cause: Exception, tokens_generated: int | None = None
) -> ModelGenerationError:
    """Create a ModelGenerationError wrapping an engine or tokenizer failure."""
    return ModelGenerationError(
        f"Generation failed: {cause}",
        model_name=model_name,
        tokens_generated=tokens_generated,
        cause=cause,
    )
