"""Model loading, prompt formatting, and the MLX engine adapter.

Model Registry:
    from models import get_model_spec, MODEL_REGISTRY

    spec = get_model_spec("phi-3-mini-4k")
    for model_id, spec in MODEL_REGISTRY.items():
        print(f"{model_id}: {spec.display_name}")

The MLX engine is imported from ``models.mlx_engine`` directly; it pulls in
mlx lazily and only works on Apple Silicon.
"""

from models.loader import (
    Loaded,
    LoadState,
    ModelConfig,
    ModelLoader,
    Unloaded,
    get_loader,
    reset_loader,
)
from models.prompt_template import SYSTEM_INSTRUCTION, PromptTemplate
from models.registry import (
    DEFAULT_MODEL_ID,
    MODEL_REGISTRY,
    ModelSpec,
    download_model,
    get_model_spec,
    get_model_spec_by_path,
    is_model_available,
)

__all__ = [
    # Loader
    "Loaded",
    "LoadState",
    "ModelConfig",
    "ModelLoader",
    "Unloaded",
    "get_loader",
    "reset_loader",
    # Prompt
    "PromptTemplate",
    "SYSTEM_INSTRUCTION",
    # Registry
    "DEFAULT_MODEL_ID",
    "MODEL_REGISTRY",
    "ModelSpec",
    "download_model",
    "get_model_spec",
    "get_model_spec_by_path",
    "is_model_available",
]
