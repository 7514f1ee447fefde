"""Model provider adapters."""

from codeagent.providers.base import BaseProvider
from codeagent.providers.registry import MODELS, get_model_info, resolve_model

__all__ = [
    "BaseProvider",
    "MODELS",
    "get_model_info",
    "resolve_model",
]
