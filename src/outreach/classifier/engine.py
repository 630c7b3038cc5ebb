"""Classification engine: rule filtering with an optional scoring overlay.

Classification flow:
1. Normalize every customer record (canonical keys, ACCOUNT_NO required)
2. Evaluate the rule for the issue type; keep matches in input order
3. If scoring is enabled, send up to `scoring_cap` matches to the scorer
   and merge confidence/priority/reason back by account number
4. If scoring fails for any reason, keep the rule-based result
5. Compute insights and recommendations for the report

With scoring disabled the result is deterministic for a given input and
evaluation time.

Usage:
    from outreach.classifier.engine import ClassificationEngine, ClassificationOptions

    engine = ClassificationEngine(scorer=None)
    result = await engine.classify(customers, "account_closure", ClassificationOptions())
    for match in result.matches:
        print(match.account_no, match.priority, match.reason)
"""

from __future__ import annotations

import asyncio
import time
from collections import Counter
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from datetime import UTC, datetime
from types import MappingProxyType
from typing import TYPE_CHECKING, Any

from outreach.classifier.records import (
    ACCOUNT_KEY,
    CustomerRecord,
    days_since,
    normalize_records,
    parse_float,
    parse_int,
    text,
)
from outreach.classifier.rules import (
    DORMANT_AFTER_DAYS,
    LOW_BALANCE_LIMIT,
    SENIOR_AGE,
    IssueType,
    Priority,
    RuleOutcome,
    evaluate,
)
from outreach.core.errors import InputValidationError, ScoringError
from outreach.core.logging import get_logger, start_run

if TYPE_CHECKING:
    from outreach.classifier.scoring import CustomerScorer, ScoreEntry
    from outreach.config_schema import AppConfig

logger = get_logger(__name__)

# Confidence attached to plain rule matches
RULE_CONFIDENCE = 0.85

# Defaults for matches the scorer did not return
FALLBACK_CONFIDENCE = 0.8
FALLBACK_REASON = "Rule-based match"


@dataclass(frozen=True, slots=True)
class ClassificationOptions:
    """Per-request classification options."""

    use_external_scoring: bool = False
    scoring_cap: int = 100
    min_confidence: float = 0.7
    scoring_timeout_seconds: float = 60.0

    def __post_init__(self) -> None:
        if self.scoring_cap < 1:
            raise InputValidationError(
                f"scoring_cap must be at least 1, got {self.scoring_cap}", field="scoring_cap"
            )
        if not 0.0 <= self.min_confidence <= 1.0:
            raise InputValidationError(
                f"min_confidence must be between 0.0 and 1.0, got {self.min_confidence}",
                field="min_confidence",
            )

    @classmethod
    def from_config(cls, config: AppConfig, **overrides: Any) -> ClassificationOptions:
        """Build options from the analysis config section, applying non-None overrides."""
        values: dict[str, Any] = {
            "use_external_scoring": config.analysis.use_external_scoring,
            "scoring_cap": config.analysis.scoring_cap,
            "min_confidence": config.analysis.min_confidence,
            "scoring_timeout_seconds": config.scoring.timeout_seconds,
        }
        values.update({k: v for k, v in overrides.items() if v is not None})
        return cls(**values)


@dataclass(frozen=True, slots=True)
class MatchResult:
    """A matched customer with derived attributes.

    Attributes:
        customer: Normalized customer record (read-only view)
        confidence: Confidence score (0.0-1.0)
        priority: Outreach priority
        reason: Human-readable explanation
        method: 'rule', 'scored' or 'rule_fallback'
        recommendation: Suggested next step from the scorer, if any
    """

    customer: Mapping[str, Any]
    confidence: float
    priority: Priority
    reason: str
    method: str = "rule"
    recommendation: str | None = None

    @property
    def account_no(self) -> str:
        return str(self.customer.get(ACCOUNT_KEY, ""))

    def to_dict(self) -> dict[str, Any]:
        """Flatten the record and the derived attributes for JSON output."""
        result: dict[str, Any] = {
            **self.customer,
            "confidence": self.confidence,
            "priority": self.priority.value,
            "reason": self.reason,
            "method": self.method,
        }
        if self.recommendation:
            result["recommendation"] = self.recommendation
        return result


@dataclass(frozen=True)
class AnalysisResult:
    """Outcome of one classification run.

    `matches` always holds every rule match; `final_matches` counts only
    those at or above `min_confidence` once scoring has been applied.
    """

    run_id: str
    issue_type: str
    total_customers: int
    rule_based_matches: int
    final_matches: int
    matches: tuple[MatchResult, ...]
    method: str  # 'rule-based' or 'ai-enhanced'
    min_confidence: float
    insights: dict[str, Any] = field(default_factory=dict)
    recommendations: tuple[str, ...] = ()
    scoring_summary: dict[str, Any] = field(default_factory=dict)
    scoring_error: str | None = None
    processing_time_ms: int = 0

    @property
    def ai_enhanced(self) -> bool:
        return self.method == "ai-enhanced"

    def to_dict(self) -> dict[str, Any]:
        """Serialize for JSON responses."""
        result: dict[str, Any] = {
            "run_id": self.run_id,
            "issue_type": self.issue_type,
            "total_customers": self.total_customers,
            "rule_based_matches": self.rule_based_matches,
            "final_matches": self.final_matches,
            "customers": [m.to_dict() for m in self.matches],
            "confidence": self.method,
            "ai_enhanced": self.ai_enhanced,
            "min_confidence": self.min_confidence,
            "insights": self.insights,
            "recommendations": list(self.recommendations),
            "processing_time_ms": self.processing_time_ms,
        }
        if self.scoring_summary:
            result["ai_insights"] = self.scoring_summary
        if self.scoring_error:
            result["ai_error"] = self.scoring_error
        return result


class ClassificationEngine:
    """Classifies customers for an issue type.

    Attributes:
        _scorer: Optional external scorer; None means scoring is unavailable
    """

    def __init__(self, scorer: CustomerScorer | None = None):
        self._scorer = scorer

    @property
    def scoring_available(self) -> bool:
        return self._scorer is not None

    def filter_by_rule(
        self,
        customers: Sequence[CustomerRecord],
        issue_type: IssueType | str,
        now: datetime,
    ) -> list[MatchResult]:
        """Apply the rule evaluator to normalized customers, preserving order.

        Args:
            customers: Normalized customer records
            issue_type: Issue to evaluate (unknown types match nothing)
            now: Evaluation time

        Returns:
            Rule matches in input order
        """
        matches: list[MatchResult] = []
        for customer in customers:
            outcome: RuleOutcome = evaluate(customer, issue_type, now)
            if outcome.matches:
                matches.append(
                    MatchResult(
                        customer=MappingProxyType(dict(customer)),
                        confidence=RULE_CONFIDENCE,
                        priority=outcome.priority,
                        reason=outcome.reason,
                        method="rule",
                    )
                )
        return matches

    async def classify(
        self,
        customers: Sequence[Mapping[Any, Any]],
        issue_type: IssueType | str,
        options: ClassificationOptions | None = None,
        now: datetime | None = None,
    ) -> AnalysisResult:
        """Classify customers for an issue type.

        Args:
            customers: Raw or normalized customer records (non-empty)
            issue_type: Issue to classify for; unknown values yield no matches
            options: Scoring options (defaults: no scoring, cap 100, threshold 0.7)
            now: Evaluation time (defaults to the current UTC time)

        Returns:
            AnalysisResult with the full match set and the report counts

        Raises:
            InputValidationError: If customers is empty or a record has no account number
        """
        options = options or ClassificationOptions()
        now = now or datetime.now(UTC)
        run_id = start_run()
        start_time = time.monotonic()

        normalized = normalize_records(customers)
        parsed_issue = IssueType.parse(issue_type)
        issue_label = parsed_issue.value if parsed_issue else str(issue_type)

        logger.info(
            "analysis_start",
            issue_type=issue_label,
            customers=len(normalized),
            use_external_scoring=options.use_external_scoring,
        )

        matches = self.filter_by_rule(normalized, issue_type, now)
        rule_count = len(matches)
        final_count = rule_count
        method = "rule-based"
        scoring_summary: dict[str, Any] = {}
        scoring_error: str | None = None

        if parsed_issue is None:
            logger.warning("analysis_unknown_issue_type", issue_type=issue_label)

        if options.use_external_scoring and matches and parsed_issue is not None:
            try:
                matches, scoring_summary = await self._apply_scoring(
                    matches, parsed_issue, options
                )
                final_count = sum(1 for m in matches if m.confidence >= options.min_confidence)
                method = "ai-enhanced"
            except Exception as e:
                scoring_error = str(e) or type(e).__name__
                logger.warning(
                    "scoring_failed_using_rules",
                    error=scoring_error,
                    error_type=type(e).__name__,
                )

        insights = generate_insights(parsed_issue, matches, now)
        recommendations = get_recommendations(parsed_issue, final_count)
        duration_ms = int((time.monotonic() - start_time) * 1000)

        logger.info(
            "analysis_complete",
            issue_type=issue_label,
            rule_based_matches=rule_count,
            final_matches=final_count,
            method=method,
            duration_ms=duration_ms,
        )

        return AnalysisResult(
            run_id=run_id,
            issue_type=issue_label,
            total_customers=len(normalized),
            rule_based_matches=rule_count,
            final_matches=final_count,
            matches=tuple(matches),
            method=method,
            min_confidence=options.min_confidence,
            insights=insights,
            recommendations=tuple(recommendations),
            scoring_summary=scoring_summary,
            scoring_error=scoring_error,
            processing_time_ms=duration_ms,
        )

    async def _apply_scoring(
        self,
        matches: list[MatchResult],
        issue_type: IssueType,
        options: ClassificationOptions,
    ) -> tuple[list[MatchResult], dict[str, Any]]:
        """Send capped matches to the scorer and merge the entries back.

        Raises:
            ScoringError: If no scorer is configured or the scorer fails
            TimeoutError: If the scorer exceeds the configured timeout

        Anything else the scorer raises propagates to classify(), which
        treats every failure the same way.
        """
        if self._scorer is None:
            raise ScoringError(
                "External scoring is not configured. Set ANTHROPIC_API_KEY to enable it.",
                code="not_configured",
            )

        to_score = [m.customer for m in matches[: options.scoring_cap]]
        response = await asyncio.wait_for(
            self._scorer.score(to_score, issue_type),
            timeout=options.scoring_timeout_seconds,
        )

        entries: dict[str, ScoreEntry] = {}
        for entry in response.analysis:
            entries.setdefault(entry.account_no.lower(), entry)

        merged = [_merge_score(match, entries.get(match.account_no.lower())) for match in matches]
        return merged, response.summary


def _merge_score(match: MatchResult, entry: ScoreEntry | None) -> MatchResult:
    if entry is None:
        return MatchResult(
            customer=match.customer,
            confidence=FALLBACK_CONFIDENCE,
            priority=match.priority,
            reason=FALLBACK_REASON,
            method="rule_fallback",
        )
    return MatchResult(
        customer=match.customer,
        confidence=entry.confidence,
        priority=entry.priority,
        reason=entry.reason,
        method="scored",
        recommendation=entry.recommendation,
    )


# ---------------------------------------------------------------------------
# Insights & recommendations
# ---------------------------------------------------------------------------


def generate_insights(
    issue_type: IssueType | None,
    matches: Sequence[MatchResult],
    now: datetime,
) -> dict[str, Any]:
    """Summarize matched customers with issue-specific counts.

    Args:
        issue_type: Issue classified for (None for unknown types)
        matches: Matched customers
        now: Evaluation time

    Returns:
        Dict of counts; always includes 'priority_breakdown'
    """
    customers = [m.customer for m in matches]
    breakdown = Counter(m.priority.value for m in matches)
    insights: dict[str, Any] = {
        "priority_breakdown": {p.value: breakdown.get(p.value, 0) for p in Priority},
    }

    match issue_type:
        case IssueType.ACCOUNT_CLOSURE:
            balances = [parse_float(c.get("BALANCE")) for c in customers]
            insights["zero_balance"] = sum(1 for b in balances if b == 0)
            insights["low_balance"] = sum(1 for b in balances if 0 < b <= LOW_BALANCE_LIMIT)
            insights["dormant"] = sum(
                1
                for c in customers
                if days_since(c.get("LAST_TRANSACTION"), now) > DORMANT_AFTER_DAYS
            )
        case IssueType.KYC_UPDATE:
            statuses = [text(c.get("KYC_STATUS")).lower() for c in customers]
            insights["missing_email"] = sum(1 for c in customers if not text(c.get("EMAIL")))
            insights["missing_mobile"] = sum(1 for c in customers if not text(c.get("MOBILE")))
            insights["expired_kyc"] = sum(1 for s in statuses if "expired" in s)
            insights["pending_kyc"] = sum(1 for s in statuses if "pending" in s)
        case IssueType.LOAN_DEFAULT:
            total = sum(parse_float(c.get("OUTSTANDING_AMOUNT")) for c in customers)
            insights["total_outstanding"] = round(total, 2)
            insights["average_outstanding"] = round(total / len(customers), 2) if customers else 0
        case IssueType.FEE_WAIVER:
            insights["senior_citizens"] = sum(
                1
                for c in customers
                if parse_int(c.get("AGE")) > SENIOR_AGE
                or "senior" in text(c.get("CUSTOMER_CATEGORY")).lower()
            )
            insights["students"] = sum(
                1 for c in customers if text(c.get("ACCOUNT_TYPE")).lower() == "student"
            )
        case IssueType.DOCUMENT_EXPIRY:
            insights["expired_documents"] = sum(
                1 for c in customers if text(c.get("DOC_STATUS")).lower() == "expired"
            )
            insights["expiring_within_30_days"] = sum(
                1 for c in customers if parse_int(c.get("DAYS_TO_EXPIRY"), default=9999) <= 30
            )
        case _:
            pass

    return insights


def get_recommendations(issue_type: IssueType | None, affected_count: int) -> list[str]:
    """Suggested next steps for branch staff."""
    if not affected_count:
        return ["No immediate action required for this issue type."]

    match issue_type:
        case IssueType.ACCOUNT_CLOSURE:
            return [
                f"Send account closure warnings to {affected_count} customers",
                "Follow up with phone calls for high-value accounts",
                "Offer account reactivation incentives",
            ]
        case IssueType.KYC_UPDATE:
            return [
                f"Initiate KYC update process for {affected_count} customers",
                "Set up digital KYC collection drive",
                "Send reminders with document requirements",
            ]
        case IssueType.LOAN_DEFAULT:
            return [
                f"Contact {affected_count} customers for payment collection",
                "Offer payment restructuring options",
                "Schedule follow-up calls within 7 days",
            ]
        case IssueType.FEE_WAIVER:
            return [
                f"Apply fee waivers for {affected_count} eligible customers",
                "Confirm age or student status documents on file",
            ]
        case IssueType.DOCUMENT_EXPIRY:
            return [
                f"Send document renewal notices to {affected_count} customers",
                "Prioritize customers whose documents have already expired",
            ]
        case _:
            return ["Perform manual review for affected customers"]
