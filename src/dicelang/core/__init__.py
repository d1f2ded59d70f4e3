"""Core dicelang functionality: IR, expression language, cache, configuration, engine."""

from . import ir
from .cache import CachePolicy, CacheStats, ResultCache, normalize_key
from .config import (
    DicelangConfig,
    EvaluatorConfig,
    ExplanationOptions,
    TokenizerConfig,
    apply_env_overrides,
    load_config,
)
from .engine import (
    DiceExpressionSystem,
    EvaluationStatistics,
    evaluate_expression,
    explain_expression,
)
from .errors import (
    ConfigurationError,
    DicelangError,
    ErrorContext,
    ErrorKind,
    EvaluationError,
    EvaluationTimeoutError,
    MaxRerollsExceededError,
    ParseError,
    TokenizationError,
)

__all__ = [
    "ir",
    "CachePolicy",
    "CacheStats",
    "ResultCache",
    "normalize_key",
    "DicelangConfig",
    "EvaluatorConfig",
    "ExplanationOptions",
    "TokenizerConfig",
    "apply_env_overrides",
    "load_config",
    "DiceExpressionSystem",
    "EvaluationStatistics",
    "evaluate_expression",
    "explain_expression",
    "ConfigurationError",
    "DicelangError",
    "ErrorContext",
    "ErrorKind",
    "EvaluationError",
    "EvaluationTimeoutError",
    "MaxRerollsExceededError",
    "ParseError",
    "TokenizationError",
]
