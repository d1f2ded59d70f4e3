"""
Configuration for tokenizing, evaluating, and explaining dice expressions.

Settings can be built directly, loaded from a ``dicelang.toml`` file, and
overridden from ``DICELANG_*`` environment variables:

    [tokenizer]
    max_expression_length = 500
    case_sensitive = false
    allowed_operators = ["+", "-"]

    [evaluator]
    max_rerolls = 50
    max_execution_time = 2000
    enable_caching = true
    cache_policy = "replay"

    [explanation]
    verbose = true
"""

from __future__ import annotations

import os
import tomllib
from collections.abc import Callable
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any

from dicelang.core.cache import CachePolicy
from dicelang.core.errors import ConfigurationError

RandomSource = Callable[[], float]

DEFAULT_OPERATORS = frozenset({"+", "-", "*", "/"})
DEFAULT_CONDITIONALS = frozenset({">", ">=", "<", "<=", "=", "=="})

DEFAULT_MAX_REROLLS = 100
DEFAULT_MAX_EXECUTION_TIME = 5000.0  # milliseconds


@dataclass(frozen=True)
class TokenizerConfig:
    """Lexical limits and the accepted operator sets."""

    max_expression_length: int = 1000
    allowed_operators: frozenset[str] = DEFAULT_OPERATORS
    allowed_conditionals: frozenset[str] = DEFAULT_CONDITIONALS
    case_sensitive: bool = False

    def __post_init__(self) -> None:
        if self.max_expression_length <= 0:
            raise ConfigurationError(
                f"max_expression_length must be positive, got {self.max_expression_length}"
            )
        unknown_ops = set(self.allowed_operators) - DEFAULT_OPERATORS
        if unknown_ops:
            raise ConfigurationError(f"Unknown operators: {sorted(unknown_ops)}")
        unknown_conds = set(self.allowed_conditionals) - DEFAULT_CONDITIONALS
        if unknown_conds:
            raise ConfigurationError(f"Unknown conditionals: {sorted(unknown_conds)}")
        # Accept lists/sets from TOML or callers
        object.__setattr__(self, "allowed_operators", frozenset(self.allowed_operators))
        object.__setattr__(self, "allowed_conditionals", frozenset(self.allowed_conditionals))


@dataclass(frozen=True)
class EvaluatorConfig:
    """
    Evaluation limits and policies.

    ``max_execution_time`` is in milliseconds. ``random_source`` wins over
    ``random_seed``; with neither, a system-entropy source is used.
    """

    max_rerolls: int = DEFAULT_MAX_REROLLS
    max_execution_time: float = DEFAULT_MAX_EXECUTION_TIME
    enable_metrics: bool = True
    enable_caching: bool = False
    cache_policy: CachePolicy = CachePolicy.DETERMINISTIC
    cache_size: int = 100
    fail_on_max_rerolls: bool = False
    random_source: RandomSource | None = field(default=None, compare=False)
    random_seed: int | None = None
    debug: bool = False

    def __post_init__(self) -> None:
        if self.max_rerolls < 0:
            raise ConfigurationError(f"max_rerolls must be >= 0, got {self.max_rerolls}")
        if self.max_execution_time <= 0:
            raise ConfigurationError(
                f"max_execution_time must be > 0, got {self.max_execution_time}"
            )
        if self.cache_size <= 0:
            raise ConfigurationError(f"cache_size must be positive, got {self.cache_size}")
        object.__setattr__(self, "cache_policy", CachePolicy(self.cache_policy))

    def with_overrides(self, **overrides: Any) -> EvaluatorConfig:
        """Return a copy with the given fields replaced (None values ignored)."""
        changes = {k: v for k, v in overrides.items() if v is not None}
        return replace(self, **changes)


@dataclass(frozen=True)
class ExplanationOptions:
    """What the explanation renderers include."""

    include_tokenization: bool = True
    include_parsing: bool = True
    verbose: bool = False
    include_timestamps: bool = False


@dataclass(frozen=True)
class DicelangConfig:
    """All configuration sections together."""

    tokenizer: TokenizerConfig = field(default_factory=TokenizerConfig)
    evaluator: EvaluatorConfig = field(default_factory=EvaluatorConfig)
    explanation: ExplanationOptions = field(default_factory=ExplanationOptions)


# =============================================================================
# Loading
# =============================================================================


def load_config(path: Path) -> DicelangConfig:
    """
    Load configuration from a TOML file.

    Missing sections and keys fall back to defaults; unknown keys are an
    error so typos do not pass silently.
    """
    try:
        data = tomllib.loads(path.read_text(encoding="utf-8"))
    except tomllib.TOMLDecodeError as e:
        raise ConfigurationError(f"Invalid TOML in {path}: {e}") from e

    return DicelangConfig(
        tokenizer=_build_section(TokenizerConfig, data.get("tokenizer", {}), "tokenizer"),
        evaluator=_build_section(EvaluatorConfig, data.get("evaluator", {}), "evaluator"),
        explanation=_build_section(
            ExplanationOptions, data.get("explanation", {}), "explanation"
        ),
    )


def _build_section(cls: type, values: dict[str, Any], section: str) -> Any:
    allowed = {f for f in cls.__dataclass_fields__ if f != "random_source"}
    unknown = set(values) - allowed
    if unknown:
        raise ConfigurationError(f"Unknown keys in [{section}]: {', '.join(sorted(unknown))}")
    try:
        return cls(**values)
    except (TypeError, ValueError) as e:
        raise ConfigurationError(f"Invalid [{section}] configuration: {e}") from e


def apply_env_overrides(
    config: DicelangConfig, environ: dict[str, str] | None = None
) -> DicelangConfig:
    """
    Apply ``DICELANG_*`` environment overrides.

    - DICELANG_MAX_REROLLS: int
    - DICELANG_MAX_EXECUTION_TIME: milliseconds
    - DICELANG_SEED: int seed for reproducible rolls
    - DICELANG_CACHE: off | deterministic | replay
    """
    env = os.environ if environ is None else environ
    overrides: dict[str, Any] = {}

    try:
        if "DICELANG_MAX_REROLLS" in env:
            overrides["max_rerolls"] = int(env["DICELANG_MAX_REROLLS"])
        if "DICELANG_MAX_EXECUTION_TIME" in env:
            overrides["max_execution_time"] = float(env["DICELANG_MAX_EXECUTION_TIME"])
        if "DICELANG_SEED" in env:
            overrides["random_seed"] = int(env["DICELANG_SEED"])
    except ValueError as e:
        raise ConfigurationError(f"Invalid DICELANG_* environment value: {e}") from e

    cache = env.get("DICELANG_CACHE")
    if cache is not None:
        cache = cache.strip().lower()
        if cache in ("off", "0", "false", ""):
            overrides["enable_caching"] = False
        else:
            try:
                overrides["cache_policy"] = CachePolicy(cache)
            except ValueError as e:
                raise ConfigurationError(f"Invalid DICELANG_CACHE value: {cache!r}") from e
            overrides["enable_caching"] = True

    if not overrides:
        return config
    return replace(config, evaluator=replace(config.evaluator, **overrides))
