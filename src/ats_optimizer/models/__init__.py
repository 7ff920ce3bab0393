"""Data models for the optimization engine."""

from ats_optimizer.models.element import (
    DocumentSection,
    Element,
    ElementCategory,
    ParsedDocument,
    ParsedJob,
    ParsedResume,
    Position,
    Role,
)
from ats_optimizer.models.matching import MatchReport, MatchType, SemanticMatch, TaggedElement
from ats_optimizer.models.optimization import (
    IterationRecord,
    OptimizationMetrics,
    OptimizationResult,
    TerminationReason,
)
from ats_optimizer.models.recommendation import (
    Recommendation,
    RecommendationMetadata,
    Recommendations,
    RecommendationType,
)
from ats_optimizer.models.scoring import (
    DimensionScore,
    Gap,
    MatchResult,
    ScoreBreakdown,
    Strength,
    Theme,
)
from ats_optimizer.models.summary import JobMatchSummary, SkillImportance

__all__ = [
    "DimensionScore",
    "DocumentSection",
    "Element",
    "ElementCategory",
    "Gap",
    "IterationRecord",
    "JobMatchSummary",
    "MatchReport",
    "MatchResult",
    "MatchType",
    "OptimizationMetrics",
    "OptimizationResult",
    "ParsedDocument",
    "ParsedJob",
    "ParsedResume",
    "Position",
    "Recommendation",
    "RecommendationMetadata",
    "RecommendationType",
    "Recommendations",
    "Role",
    "ScoreBreakdown",
    "SemanticMatch",
    "SkillImportance",
    "Strength",
    "TaggedElement",
    "TerminationReason",
    "Theme",
]
