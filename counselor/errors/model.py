"""Model error classes.

Contains errors for weight acquisition and token generation.
"""

from __future__ import annotations

from typing import Any

from counselor.errors.base import CounselorError, ErrorCode


class ModelError(CounselorError):
    """Base class for model-related errors."""

    default_message = "Model error"
    default_code = ErrorCode.MDL_GENERATION_FAILED

    def __init__(
        self,
        message: str | None = None,
        *,
        model_name: str | None = None,
        model_path: str | None = None,
        code: ErrorCode | None = None,
        details: dict[str, Any] | None = None,
        cause: Exception | None = None,
    ) -> None:
        details = details or {}
        if model_name:
            details["model_name"] = model_name
        if model_path:
            details["model_path"] = model_path
        super().__init__(message, code=code, details=details, cause=cause)


class ModelLoadError(ModelError):
    """Raised when acquiring or decoding model weights fails."""

    default_message = "Failed to load model"
    default_code = ErrorCode.MDL_LOAD_FAILED


class ModelGenerationError(ModelError):
    """Raised when the token-production loop fails."""

    default_message = "Text generation failed"
    default_code = ErrorCode.MDL_GENERATION_FAILED

    def __init__(
        self,
        message: str | None = None,
        *,
        prompt: str | None = None,
        tokens_generated: int | None = None,
        model_name: str | None = None,
        model_path: str | None = None,
        code: ErrorCode | None = None,
        details: dict[str, Any] | None = None,
        cause: Exception | None = None,
    ) -> None:
        details = details or {}
        if tokens_generated is not None:
            details["tokens_generated"] = tokens_generated
        if prompt is not None:
            details["prompt_preview"] = prompt[:200] + "..." if len(prompt) > 200 else prompt
        super().__init__(
            message,
            model_name=model_name,
            model_path=model_path,
            code=code,
            details=details,
            cause=cause,
        )
