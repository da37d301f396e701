"""Contract interfaces for the counselor.

The controller codes against these Protocols, not concrete engines.
"""

from contracts.engine import (
    GenerationParams,
    InferenceEngine,
    ModelHandle,
    ProgressCallback,
    Tokenizer,
    TokenStream,
)

__all__ = [
    "GenerationParams",
    "InferenceEngine",
    "ModelHandle",
    "ProgressCallback",
    "Tokenizer",
    "TokenStream",
]
