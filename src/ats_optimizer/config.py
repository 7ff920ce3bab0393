"""Application configuration loaded from config.yaml."""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from pathlib import Path

import yaml

from ats_optimizer.errors import ConfigurationError

DIMENSIONS: tuple[str, ...] = ("keywords", "skills", "attributes", "experience", "level")

DEFAULT_DIMENSION_WEIGHTS: dict[str, float] = {
    "keywords": 0.20,
    "skills": 0.35,
    "attributes": 0.20,
    "experience": 0.15,
    "level": 0.10,
}

WEIGHT_TOLERANCE = 1e-6


def _check_range(name: str, value: float, low: float, high: float) -> None:
    if not isinstance(value, (int, float)) or not low <= value <= high:
        raise ConfigurationError(name, f"must be between {low} and {high}", value)


def _check_positive_int(name: str, value: int, high: int | None = None) -> None:
    if not isinstance(value, int) or isinstance(value, bool) or value < 1:
        raise ConfigurationError(name, "must be a positive integer", value)
    if high is not None and value > high:
        raise ConfigurationError(name, f"must be at most {high}", value)


def validate_dimension_weights(weights: dict[str, float]) -> None:
    """Raise ConfigurationError unless ``weights`` is a valid dimension map."""
    if not weights:
        raise ConfigurationError("dimension_weights", "must not be empty")
    unknown = sorted(set(weights) - set(DIMENSIONS))
    if unknown:
        raise ConfigurationError("dimension_weights", f"unknown dimensions {unknown}")
    for name, weight in weights.items():
        if not isinstance(weight, (int, float)) or weight < 0 or math.isnan(weight):
            raise ConfigurationError(
                f"dimension_weights.{name}", "must be a non-negative number", weight
            )
    total = sum(weights.values())
    if abs(total - 1.0) > WEIGHT_TOLERANCE:
        raise ConfigurationError("dimension_weights", "must sum to 1.0", round(total, 6))


@dataclass(frozen=True)
class LLMConfig:
    model: str = "claude-haiku-4-5-20251001"
    max_tokens: int = 4096
    timeout: int = 60
    max_retries: int = 3
    base_delay: float = 1.0
    backoff_multiplier: float = 2.0
    max_delay: float = 10.0

    def __post_init__(self) -> None:
        _check_positive_int("timeout", self.timeout)
        _check_positive_int("max_retries", self.max_retries, high=10)
        _check_positive_int("max_tokens", self.max_tokens)
        if self.base_delay < 0 or self.max_delay < 0:
            raise ConfigurationError("base_delay", "delays must be non-negative")
        if self.backoff_multiplier < 1:
            raise ConfigurationError(
                "backoff_multiplier", "must be at least 1", self.backoff_multiplier
            )


@dataclass(frozen=True)
class MatcherConfig:
    batch_size: int = 20
    max_concurrency: int = 4
    min_strength: float = 0.5

    def __post_init__(self) -> None:
        _check_positive_int("batch_size", self.batch_size)
        _check_positive_int("max_concurrency", self.max_concurrency)
        _check_range("min_strength", self.min_strength, 0.0, 1.0)


@dataclass(frozen=True)
class ScoringConfig:
    strength_floor: float = 0.6
    theme_boost: float = 1.5
    theme_count: int = 6

    def __post_init__(self) -> None:
        _check_range("strength_floor", self.strength_floor, 0.0, 1.0)
        _check_range("theme_boost", self.theme_boost, 1.0, 1.5)
        _check_positive_int("theme_count", self.theme_count)


@dataclass(frozen=True)
class RecommendationConfig:
    # None selects the adaptive rule tied to the distance from the target score
    priority_threshold: float | None = None
    high_importance: float = 0.8
    rewording_threshold: float = 0.8
    max_items: int = 10
    llm_summary: bool = False

    def __post_init__(self) -> None:
        if self.priority_threshold is not None:
            _check_range("priority_threshold", self.priority_threshold, 0.0, 1.0)
        _check_range("high_importance", self.high_importance, 0.0, 1.0)
        _check_range("rewording_threshold", self.rewording_threshold, 0.0, 1.0)
        _check_positive_int("max_items", self.max_items)


@dataclass(frozen=True)
class OptimizationConfig:
    """Termination policy and scoring weights for one run. Immutable."""

    target_score: float = 0.8
    max_iterations: int = 5
    early_stopping_rounds: int = 2
    min_improvement: float = 0.01
    dimension_weights: dict[str, float] = field(
        default_factory=lambda: dict(DEFAULT_DIMENSION_WEIGHTS)
    )

    def __post_init__(self) -> None:
        _check_range("target_score", self.target_score, 0.0, 1.0)
        _check_positive_int("max_iterations", self.max_iterations)
        _check_positive_int("early_stopping_rounds", self.early_stopping_rounds)
        _check_range("min_improvement", self.min_improvement, 0.0, 1.0)
        validate_dimension_weights(self.dimension_weights)


@dataclass(frozen=True)
class CacheConfig:
    enabled: bool = True
    ttl_days: int = 7
    db_path: str = "~/.ats-optimizer/cache.db"

    def __post_init__(self) -> None:
        _check_positive_int("ttl_days", self.ttl_days, high=365)

    @property
    def resolved_db_path(self) -> Path:
        return Path(self.db_path).expanduser()


@dataclass(frozen=True)
class AppConfig:
    llm: LLMConfig = field(default_factory=LLMConfig)
    matcher: MatcherConfig = field(default_factory=MatcherConfig)
    scoring: ScoringConfig = field(default_factory=ScoringConfig)
    recommendations: RecommendationConfig = field(default_factory=RecommendationConfig)
    optimization: OptimizationConfig = field(default_factory=OptimizationConfig)
    cache: CacheConfig = field(default_factory=CacheConfig)


def _section(raw: dict, name: str) -> dict:
    value = raw.get(name) or {}
    if not isinstance(value, dict):
        raise ConfigurationError(name, "must be a mapping", value)
    return value


def load_config(path: str | Path | None = None) -> AppConfig:
    """Load config from YAML file, falling back to defaults."""
    if path is None:
        # Look for config.yaml relative to the project root
        candidates = [
            Path.cwd() / "config.yaml",
            Path(__file__).resolve().parent.parent.parent / "config.yaml",
        ]
        for c in candidates:
            if c.exists():
                path = c
                break

    raw: dict = {}
    if path is not None:
        p = Path(path)
        if p.exists():
            raw = yaml.safe_load(p.read_text()) or {}

    try:
        return AppConfig(
            llm=LLMConfig(**_section(raw, "llm")),
            matcher=MatcherConfig(**_section(raw, "matcher")),
            scoring=ScoringConfig(**_section(raw, "scoring")),
            recommendations=RecommendationConfig(**_section(raw, "recommendations")),
            optimization=OptimizationConfig(**_section(raw, "optimization")),
            cache=CacheConfig(**_section(raw, "cache")),
        )
    except TypeError as e:
        # unknown keys in a section
        raise ConfigurationError("config", str(e)) from e
