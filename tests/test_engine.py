"""Tests for the classification engine.

Covers rule-only classification, the scoring overlay with a mocked scorer,
and fallback to the rule-based result when scoring fails.
"""

from __future__ import annotations

import asyncio
from datetime import datetime
from typing import Any
from unittest.mock import AsyncMock

import pytest

from outreach.classifier.engine import (
    FALLBACK_CONFIDENCE,
    FALLBACK_REASON,
    RULE_CONFIDENCE,
    ClassificationEngine,
    ClassificationOptions,
    get_recommendations,
)
from outreach.classifier.rules import IssueType, Priority
from outreach.classifier.scoring import ScoreEntry, ScoringResponse
from outreach.core.errors import InputValidationError, ScoringError

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _make_scorer(response: ScoringResponse | None = None, error: Exception | None = None):
    scorer = AsyncMock()
    if error is not None:
        scorer.score.side_effect = error
    else:
        scorer.score.return_value = response
    return scorer


def _entry(account_no: str, confidence: float, priority: Priority, reason: str) -> ScoreEntry:
    return ScoreEntry(
        account_no=account_no, confidence=confidence, priority=priority, reason=reason
    )


def _closure_customers() -> list[dict[str, Any]]:
    return [
        {"ACCOUNT_NO": "A1", "BALANCE": 0},
        {"ACCOUNT_NO": "A2", "BALANCE": 500, "LAST_TRANSACTION": "2024-01-01"},
        {"ACCOUNT_NO": "A3", "BALANCE": 900, "LAST_TRANSACTION": "2024-12-30"},
    ]


SCORING_ON = ClassificationOptions(use_external_scoring=True)


# ---------------------------------------------------------------------------
# Rule-only classification
# ---------------------------------------------------------------------------


class TestRuleClassification:
    """Classification with scoring disabled."""

    async def test_closure_scenario(self, now: datetime) -> None:
        engine = ClassificationEngine()
        customers = [
            {"ACCOUNT_NO": "A1", "BALANCE": 0},
            {"ACCOUNT_NO": "A2", "BALANCE": 500, "LAST_TRANSACTION": "2024-01-01"},
        ]

        result = await engine.classify(customers, "account_closure", now=now)

        assert [m.account_no for m in result.matches] == ["A1", "A2"]
        assert result.matches[0].priority is Priority.HIGH
        assert result.matches[1].priority is Priority.LOW
        assert result.rule_based_matches == 2
        assert result.final_matches == 2
        assert result.method == "rule-based"

    async def test_matches_carry_rule_confidence(self, now: datetime) -> None:
        result = await ClassificationEngine().classify(
            _closure_customers(), "account_closure", now=now
        )
        assert all(m.confidence == RULE_CONFIDENCE for m in result.matches)
        assert all(m.method == "rule" for m in result.matches)

    async def test_deterministic_for_same_input(self, now: datetime) -> None:
        engine = ClassificationEngine()
        first = await engine.classify(_closure_customers(), "account_closure", now=now)
        second = await engine.classify(_closure_customers(), "account_closure", now=now)
        assert [m.to_dict() for m in first.matches] == [m.to_dict() for m in second.matches]
        assert first.insights == second.insights

    async def test_accepts_variant_column_names(self, now: datetime) -> None:
        result = await ClassificationEngine().classify(
            [{"accountNo": "X1", "balance": 0}], "account_closure", now=now
        )
        assert result.matches[0].account_no == "X1"

    async def test_unknown_issue_type_yields_no_matches(self, now: datetime) -> None:
        result = await ClassificationEngine().classify(_closure_customers(), "overdraft", now=now)
        assert result.matches == ()
        assert result.final_matches == 0
        assert result.recommendations == ("No immediate action required for this issue type.",)

    async def test_empty_customers_rejected(self) -> None:
        with pytest.raises(InputValidationError):
            await ClassificationEngine().classify([], "account_closure")

    async def test_matches_are_read_only(self, now: datetime) -> None:
        result = await ClassificationEngine().classify(
            _closure_customers(), "account_closure", now=now
        )
        with pytest.raises(TypeError):
            result.matches[0].customer["BALANCE"] = 1  # type: ignore[index]

    async def test_insights_and_to_dict(self, now: datetime) -> None:
        result = await ClassificationEngine().classify(
            _closure_customers(), "account_closure", now=now
        )
        assert result.insights["priority_breakdown"] == {"high": 1, "medium": 0, "low": 1}
        assert result.insights["zero_balance"] == 1
        assert result.insights["dormant"] == 2

        data = result.to_dict()
        assert data["confidence"] == "rule-based"
        assert data["customers"][0]["ACCOUNT_NO"] == "A1"
        assert "ai_error" not in data


# ---------------------------------------------------------------------------
# Scoring overlay
# ---------------------------------------------------------------------------


class TestScoring:
    """Classification with the external scorer."""

    async def test_scores_merge_by_account_number(self, now: datetime) -> None:
        scorer = _make_scorer(
            ScoringResponse(
                analysis=[
                    _entry("a1", 0.95, Priority.HIGH, "Empty"),
                    _entry("A2", 0.4, Priority.LOW, "Active?"),
                ],
                summary={"overall": "ok"},
            )
        )
        engine = ClassificationEngine(scorer=scorer)

        result = await engine.classify(_closure_customers(), "account_closure", SCORING_ON, now=now)

        assert result.method == "ai-enhanced"
        assert result.rule_based_matches == 2
        assert result.final_matches == 1
        assert [m.method for m in result.matches] == ["scored", "scored"]
        assert result.matches[0].reason == "Empty"
        assert result.to_dict()["ai_insights"] == {"overall": "ok"}
        scorer.score.assert_awaited_once()
        assert scorer.score.await_args.args[1] is IssueType.ACCOUNT_CLOSURE

    async def test_unscored_matches_fall_back(self, now: datetime) -> None:
        scorer = _make_scorer(
            ScoringResponse(
                analysis=[
                    _entry("A1", 0.9, Priority.HIGH, "x"),
                ]
            )
        )
        result = await ClassificationEngine(scorer=scorer).classify(
            _closure_customers(), "account_closure", SCORING_ON, now=now
        )
        fallback = result.matches[1]
        assert fallback.method == "rule_fallback"
        assert fallback.confidence == FALLBACK_CONFIDENCE
        assert fallback.reason == FALLBACK_REASON

    async def test_first_duplicate_entry_wins(self, now: datetime) -> None:
        scorer = _make_scorer(
            ScoringResponse(
                analysis=[
                    _entry("A1", 0.9, Priority.HIGH, "first"),
                    _entry("A1", 0.1, Priority.LOW, "second"),
                ]
            )
        )
        result = await ClassificationEngine(scorer=scorer).classify(
            _closure_customers(), "account_closure", SCORING_ON, now=now
        )
        assert result.matches[0].reason == "first"

    async def test_scoring_cap_limits_request(self, now: datetime) -> None:
        scorer = _make_scorer(ScoringResponse(analysis=[]))
        options = ClassificationOptions(use_external_scoring=True, scoring_cap=1)

        await ClassificationEngine(scorer=scorer).classify(
            _closure_customers(), "account_closure", options, now=now
        )

        sent = scorer.score.await_args.args[0]
        assert len(sent) == 1

    async def test_scorer_error_falls_back_to_rules(self, now: datetime) -> None:
        scorer = _make_scorer(error=ScoringError("service down", code="connection_error"))
        engine = ClassificationEngine(scorer=scorer)

        scored = await engine.classify(_closure_customers(), "account_closure", SCORING_ON, now=now)
        plain = await engine.classify(_closure_customers(), "account_closure", now=now)

        assert scored.method == "rule-based"
        assert scored.scoring_error == "service down"
        assert scored.to_dict()["ai_error"] == "service down"
        assert [m.to_dict() for m in scored.matches] == [m.to_dict() for m in plain.matches]

    async def test_unexpected_scorer_error_falls_back(self, now: datetime) -> None:
        scorer = _make_scorer(error=ValueError("malformed JSON from scoring service"))
        engine = ClassificationEngine(scorer=scorer)

        scored = await engine.classify(_closure_customers(), "account_closure", SCORING_ON, now=now)
        plain = await engine.classify(_closure_customers(), "account_closure", now=now)

        assert scored.method == "rule-based"
        assert scored.scoring_error == "malformed JSON from scoring service"
        assert [m.to_dict() for m in scored.matches] == [m.to_dict() for m in plain.matches]

    async def test_recommendation_carried_onto_match(self, now: datetime) -> None:
        entry = ScoreEntry(
            account_no="A1",
            confidence=0.9,
            priority=Priority.HIGH,
            reason="Empty",
            recommendation="Call before sending the letter",
        )
        scorer = _make_scorer(ScoringResponse(analysis=[entry]))

        result = await ClassificationEngine(scorer=scorer).classify(
            _closure_customers(), "account_closure", SCORING_ON, now=now
        )

        assert result.matches[0].recommendation == "Call before sending the letter"
        assert result.matches[0].to_dict()["recommendation"] == "Call before sending the letter"
        assert "recommendation" not in result.matches[1].to_dict()

    async def test_scorer_timeout_falls_back(self, now: datetime) -> None:
        async def slow_score(*args: Any) -> ScoringResponse:
            await asyncio.sleep(5)
            return ScoringResponse(analysis=[])

        scorer = AsyncMock()
        scorer.score.side_effect = slow_score
        options = ClassificationOptions(use_external_scoring=True, scoring_timeout_seconds=0.01)

        result = await ClassificationEngine(scorer=scorer).classify(
            _closure_customers(), "account_closure", options, now=now
        )

        assert result.method == "rule-based"
        assert result.scoring_error == "TimeoutError"

    async def test_scoring_requested_without_scorer(self, now: datetime) -> None:
        result = await ClassificationEngine().classify(
            _closure_customers(), "account_closure", SCORING_ON, now=now
        )
        assert result.method == "rule-based"
        assert "not configured" in result.scoring_error

    async def test_no_matches_skips_scorer(self, now: datetime) -> None:
        scorer = _make_scorer(ScoringResponse(analysis=[]))
        await ClassificationEngine(scorer=scorer).classify(
            [{"ACCOUNT_NO": "A9", "BALANCE": 900, "LAST_TRANSACTION": "2024-12-30"}],
            "account_closure",
            SCORING_ON,
            now=now,
        )
        scorer.score.assert_not_awaited()


# ---------------------------------------------------------------------------
# Options & recommendations
# ---------------------------------------------------------------------------


class TestOptions:
    def test_invalid_threshold_rejected(self) -> None:
        with pytest.raises(InputValidationError):
            ClassificationOptions(min_confidence=1.5)

    def test_from_config_applies_overrides(self, sample_config) -> None:
        options = ClassificationOptions.from_config(
            sample_config, use_external_scoring=True, min_confidence=None
        )
        assert options.use_external_scoring is True
        assert options.min_confidence == sample_config.analysis.min_confidence

    def test_recommendations_mention_count(self) -> None:
        lines = get_recommendations(IssueType.LOAN_DEFAULT, 4)
        assert lines[0] == "Contact 4 customers for payment collection"
