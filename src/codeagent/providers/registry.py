"""Model catalogue: context windows and output limits for known models."""

from __future__ import annotations

from codeagent.types.providers import ModelInfo

DEFAULT_MODEL = "claude-sonnet-4-6"

# (id, display name, context window, max output tokens, short alias)
_CATALOGUE: tuple[tuple[str, str, int, int, str], ...] = (
    ("claude-opus-4-6", "Claude Opus 4.6", 200_000, 32_768, "opus"),
    ("claude-sonnet-4-6", "Claude Sonnet 4.6", 200_000, 16_384, "sonnet"),
    ("claude-haiku-4-5-20251001", "Claude Haiku 4.5", 200_000, 8_192, "haiku"),
    ("claude-sonnet-4-5-20250514", "Claude Sonnet 4.5", 200_000, 16_384, "sonnet-4.5"),
)

MODELS: dict[str, ModelInfo] = {
    model_id: ModelInfo(
        id=model_id, context_window=window, max_output_tokens=output, display_name=label,
    )
    for model_id, label, window, output, _ in _CATALOGUE
}

ALIASES: dict[str, str] = {alias: model_id for model_id, *_, alias in _CATALOGUE}


def resolve_model(model: str | None) -> str:
    """Expand an alias to a full model id; None gives the default model.

    Unknown names pass through unchanged so newer models work before the
    catalogue learns about them.
    """
    if not model:
        return DEFAULT_MODEL
    return ALIASES.get(model, model)


def get_model_info(model: str) -> ModelInfo | None:
    return MODELS.get(resolve_model(model))
