"""Customer classification components.

This package provides customer classification functionality:
- Record normalization onto the canonical field schema
- Rule evaluator for the five outreach issue types
- Claude scorer with tool use for optional confidence scoring
- Classification engine that merges rule and scoring results
"""

from outreach.classifier.engine import (
    AnalysisResult,
    ClassificationEngine,
    ClassificationOptions,
    MatchResult,
)
from outreach.classifier.records import normalize_record, normalize_records
from outreach.classifier.rules import IssueType, Priority, RuleOutcome, evaluate
from outreach.classifier.scoring import (
    ClaudeScorer,
    CustomerScorer,
    ScoreEntry,
    ScoringResponse,
    create_scorer,
)

__all__ = [
    # Engine
    "AnalysisResult",
    "ClassificationEngine",
    "ClassificationOptions",
    "MatchResult",
    # Records
    "normalize_record",
    "normalize_records",
    # Rules
    "IssueType",
    "Priority",
    "RuleOutcome",
    "evaluate",
    # Scoring
    "ClaudeScorer",
    "CustomerScorer",
    "ScoreEntry",
    "ScoringResponse",
    "create_scorer",
]
