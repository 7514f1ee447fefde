"""Configuration loading (TOML, env vars, explicit overrides)."""

from __future__ import annotations

import logging
import os
import tomllib
from pathlib import Path
from typing import Any

from dotenv import load_dotenv

from codeagent.types.config import ContextWindowConfig, LoopConfig, ToolSyntax

logger = logging.getLogger(__name__)

# Load .env from current directory (and parents), won't override existing env vars
load_dotenv()


def _parse_bool(value: str) -> bool:
    lowered = value.strip().lower()
    if lowered in ("1", "true", "yes", "on"):
        return True
    if lowered in ("0", "false", "no", "off"):
        return False
    raise ValueError(f"Not a boolean: {value!r}")


# Environment variable -> (config key, converter)
ENV_VARS: dict[str, tuple[str, Any]] = {
    "CODEAGENT_MODEL": ("model", str),
    "CODEAGENT_TOOL_SYNTAX": ("tool_syntax", str),
    "CODEAGENT_MAX_TOKENS": ("max_tokens", int),
    "CODEAGENT_MAX_TURN_REQUESTS": ("max_turn_requests", int),
    "CODEAGENT_MAX_PARALLEL_SUB_AGENTS": ("max_parallel_sub_agents", int),
    "CODEAGENT_MAX_RATE_LIMIT_RETRIES": ("max_rate_limit_retries", int),
    "CODEAGENT_CONTEXT_LIMIT": ("context_limit", int),
    "CODEAGENT_CONTEXT_THRESHOLD": ("context_threshold", float),
    "CODEAGENT_COMPACTION": ("compaction_enabled", _parse_bool),
}


def load_env_config() -> dict[str, Any]:
    """Load configuration from environment variables."""
    config: dict[str, Any] = {}
    for var, (key, convert) in ENV_VARS.items():
        raw = os.environ.get(var)
        if raw is None or raw == "":
            continue
        try:
            config[key] = convert(raw)
        except ValueError as exc:
            raise ValueError(f"Invalid value for {var}: {exc}") from exc
    return config


def load_toml_config(cwd: str | None = None) -> dict[str, Any]:
    """Load the ``[agent]`` table from .codeagent/config.toml if it exists.

    The project directory wins over ~/.codeagent/config.toml.
    """
    candidates = []
    if cwd:
        candidates.append(Path(cwd) / ".codeagent" / "config.toml")
    candidates.append(Path.cwd() / ".codeagent" / "config.toml")
    candidates.append(Path.home() / ".codeagent" / "config.toml")

    for path in candidates:
        if not path.exists():
            continue
        try:
            with open(path, "rb") as f:
                data = tomllib.load(f)
        except (OSError, tomllib.TOMLDecodeError) as exc:
            logger.warning("Cannot read config file %s: %s", path, exc)
            continue
        return dict(data.get("agent", {}))
    return {}


def load_loop_config(cwd: str | None = None, **overrides: Any) -> LoopConfig:
    """Merge defaults < TOML < environment < *overrides* into a LoopConfig."""
    merged: dict[str, Any] = {}
    merged.update(load_toml_config(cwd))
    merged.update(load_env_config())
    merged.update({k: v for k, v in overrides.items() if v is not None})

    context_args: dict[str, Any] = {}
    if "context_limit" in merged:
        context_args["limit"] = merged.pop("context_limit")
    if "context_threshold" in merged:
        context_args["threshold"] = merged.pop("context_threshold")
    if "compaction_enabled" in merged:
        context_args["enabled"] = merged.pop("compaction_enabled")
    if context_args and "context" not in merged:
        merged["context"] = ContextWindowConfig(**context_args)

    if "tool_syntax" in merged and not isinstance(merged["tool_syntax"], ToolSyntax):
        try:
            merged["tool_syntax"] = ToolSyntax(str(merged["tool_syntax"]).lower())
        except ValueError:
            raise ValueError(
                f"Unknown tool syntax {merged['tool_syntax']!r}; "
                f"expected one of {[s.value for s in ToolSyntax]}"
            ) from None

    known = set(LoopConfig.__dataclass_fields__)
    unknown = sorted(set(merged) - known)
    if unknown:
        logger.warning("Ignoring unknown config keys: %s", ", ".join(unknown))
    if cwd is not None:
        merged.setdefault("cwd", cwd)
    return LoopConfig(**{k: v for k, v in merged.items() if k in known})


def resolve_api_key(explicit_key: str | None = None) -> str | None:
    """Resolve the Anthropic API key from an explicit value or the environment."""
    return explicit_key or os.environ.get("ANTHROPIC_API_KEY") or None
