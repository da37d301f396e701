"""Unified exception hierarchy for the counselor.

Exception Hierarchy:
    CounselorError (base)
    +-- ConfigurationError - Configuration and settings issues
    +-- ModelError - Model loading and generation failures
        +-- ModelLoadError - Weight acquisition failed (retryable)
        +-- ModelGenerationError - Token production failed

Usage:
    from counselor.errors import ModelError

    try:
        handle = loader.load()
    except ModelError as e:
        logger.error("Model error: %s (code: %s)", e.message, e.code)
"""

from counselor.errors.base import (
    ConfigurationError,
    CounselorError,
    ErrorCode,
)
from counselor.errors.factories import (
    generation_failed,
    model_download_failed,
    model_not_found,
    model_out_of_memory,
)
from counselor.errors.model import (
    ModelError,
    ModelGenerationError,
    ModelLoadError,
)

__all__ = [
    # Error codes
    "ErrorCode",
    # Base exception
    "CounselorError",
    # Configuration errors
    "ConfigurationError",
    # Model errors
    "ModelError",
    "ModelLoadError",
    "ModelGenerationError",
    # Factories
    "generation_failed",
    "model_download_failed",
    "model_not_found",
    "model_out_of_memory",
]
