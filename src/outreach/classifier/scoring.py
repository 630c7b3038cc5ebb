"""External confidence scoring with Claude tool use.

The scorer is an optional overlay on top of the rule evaluator. It is
treated as unreliable: any transport failure, refusal or malformed payload
surfaces as ScoringError, and the classification engine falls back to the
rule-based result.

Error handling strategy:
- Transient errors (429, 5xx, network): handled by the Anthropic SDK
  (max_retries from config); what is left is raised as ScoringError
- Malformed entries (bad confidence, unknown priority): dropped and logged,
  the rest of the response is kept
- Missing tool call or missing 'analysis' list: ScoringError

Usage:
    from outreach.classifier.scoring import create_scorer

    scorer = create_scorer(config)   # None when no API key is configured
    if scorer:
        response = await scorer.score(customers, IssueType.LOAN_DEFAULT)
"""

from __future__ import annotations

import os
import time
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any, Protocol

import anthropic

from outreach.classifier.prompts import (
    SCORE_CUSTOMERS_TOOL,
    build_system_prompt,
    build_user_message,
)
from outreach.classifier.records import normalize_account_no
from outreach.classifier.rules import IssueType, Priority
from outreach.core.errors import ScoringError
from outreach.core.logging import get_logger

if TYPE_CHECKING:
    from outreach.config_schema import AppConfig

logger = get_logger(__name__)


@dataclass(frozen=True, slots=True)
class ScoreEntry:
    """One customer's score from the external service."""

    account_no: str
    confidence: float
    priority: Priority
    reason: str
    recommendation: str | None = None


@dataclass(frozen=True)
class ScoringResponse:
    """Validated scorer response.

    Attributes:
        analysis: Valid per-customer entries (malformed ones are dropped)
        summary: Free-form summary block from the service
        dropped: Number of entries dropped during validation
    """

    analysis: list[ScoreEntry]
    summary: dict[str, Any] = field(default_factory=dict)
    dropped: int = 0


class CustomerScorer(Protocol):
    """External scoring collaborator."""

    async def score(
        self,
        customers: Sequence[Mapping[str, Any]],
        issue_type: IssueType,
    ) -> ScoringResponse: ...


class ClaudeScorer:
    """Scores rule-matched customers with Claude using forced tool use.

    Attributes:
        _client: Async Anthropic client (transport retries configured on it)
        _model: Model name
        _max_tokens: Response token budget
        _system_prompt: System prompt built once at construction
    """

    def __init__(
        self,
        client: anthropic.AsyncAnthropic,
        model: str,
        max_tokens: int = 4096,
        bank_name: str = "State Bank of India",
    ):
        self._client = client
        self._model = model
        self._max_tokens = max_tokens
        self._system_prompt = build_system_prompt(bank_name)

    async def score(
        self,
        customers: Sequence[Mapping[str, Any]],
        issue_type: IssueType,
    ) -> ScoringResponse:
        """Score customers for an issue type.

        Args:
            customers: Normalized, rule-matched records
            issue_type: Issue being scored

        Returns:
            Validated ScoringResponse

        Raises:
            ScoringError: On API failure or an unusable response
        """
        user_message = build_user_message(customers, issue_type, datetime.now(UTC).date())
        start_time = time.monotonic()

        try:
            response = await self._client.messages.create(
                model=self._model,
                max_tokens=self._max_tokens,
                system=self._system_prompt,
                messages=[{"role": "user", "content": user_message}],
                tools=[SCORE_CUSTOMERS_TOOL],
                tool_choice={"type": "tool", "name": "score_customers"},
            )
        except anthropic.RateLimitError as e:
            raise ScoringError(
                f"Scoring rate limited after SDK retries: {e}", code="rate_limited"
            ) from e
        except anthropic.APIConnectionError as e:
            raise ScoringError(
                f"Scoring API connection error after SDK retries: {e}", code="connection_error"
            ) from e
        except anthropic.APIStatusError as e:
            raise ScoringError(
                f"Scoring API status error {e.status_code}: {e.message}",
                code=str(e.status_code),
            ) from e

        duration_ms = int((time.monotonic() - start_time) * 1000)
        tool_call = _extract_tool_call(response)
        if tool_call is None:
            raise ScoringError(
                "No score_customers tool call in response (unexpected with forced tool_choice)",
                code="malformed_response",
            )

        result = parse_scoring_payload(tool_call)
        logger.info(
            "scoring_complete",
            issue_type=issue_type.value,
            requested=len(customers),
            scored=len(result.analysis),
            dropped=result.dropped,
            duration_ms=duration_ms,
        )
        return result


def create_scorer(config: AppConfig) -> ClaudeScorer | None:
    """Build the Claude scorer from config, or None when no API key is set.

    Args:
        config: Application configuration

    Returns:
        ClaudeScorer, or None if ANTHROPIC_API_KEY is absent
    """
    if not os.environ.get("ANTHROPIC_API_KEY"):
        logger.info("scoring_disabled", reason="ANTHROPIC_API_KEY not set")
        return None

    client = anthropic.AsyncAnthropic(
        max_retries=config.scoring.max_retries,
        timeout=config.scoring.timeout_seconds,
    )
    return ClaudeScorer(
        client=client,
        model=config.scoring.model,
        max_tokens=config.scoring.max_tokens,
        bank_name=config.bank.name,
    )


def parse_scoring_payload(data: Any) -> ScoringResponse:
    """Validate a raw scoring payload.

    Args:
        data: Tool call input (or equivalent JSON object)

    Returns:
        ScoringResponse with the valid entries

    Raises:
        ScoringError: If the payload has no 'analysis' list
    """
    if not isinstance(data, Mapping) or not isinstance(data.get("analysis"), list):
        raise ScoringError("Scoring response has no 'analysis' list", code="malformed_response")

    entries: list[ScoreEntry] = []
    dropped = 0
    for raw in data["analysis"]:
        entry, error = _parse_entry(raw)
        if entry is None:
            dropped += 1
            logger.warning("scoring_entry_dropped", error=error)
            continue
        entries.append(entry)

    summary = data.get("summary")
    return ScoringResponse(
        analysis=entries,
        summary=dict(summary) if isinstance(summary, Mapping) else {},
        dropped=dropped,
    )


# ---------------------------------------------------------------------------
# Internal helpers
# ---------------------------------------------------------------------------


def _extract_tool_call(response: anthropic.types.Message) -> dict[str, Any] | None:
    """Extract the score_customers tool call input from the API response."""
    for block in response.content:
        if block.type == "tool_use" and block.name == "score_customers":
            return block.input
    return None


def _parse_entry(raw: Any) -> tuple[ScoreEntry | None, str | None]:
    """Validate one analysis entry.

    Returns:
        (entry, None) when valid, (None, error message) otherwise
    """
    if not isinstance(raw, Mapping):
        return None, f"Entry is not an object: {type(raw).__name__}"

    account_no = normalize_account_no(
        raw.get("account_no") or raw.get("ACCOUNT_NO") or raw.get("accountNo")
    )
    if not account_no:
        return None, "Missing account_no"

    confidence = raw.get("confidence")
    if (
        isinstance(confidence, bool)
        or not isinstance(confidence, int | float)
        or not 0.0 <= confidence <= 1.0
    ):
        return None, f"Invalid confidence: {confidence!r}. Must be a number between 0.0 and 1.0"

    priority = Priority.parse(raw.get("priority"))
    if priority is None:
        return None, f"Invalid priority: {raw.get('priority')!r}. Must be high, medium or low"

    reason = raw.get("reason")
    if not isinstance(reason, str) or not reason.strip():
        reason = "Scored by external analysis"

    recommendation = raw.get("recommendation")
    return (
        ScoreEntry(
            account_no=account_no,
            confidence=float(confidence),
            priority=priority,
            reason=reason.strip(),
            recommendation=recommendation if isinstance(recommendation, str) else None,
        ),
        None,
    )
