"""Letter generation pipeline.

Runs each customer through the template renderer and, optionally, the PDF
renderer, using the batch processor for sizing and failure isolation.

Failure semantics per customer:
- Template error: the item is failed
- PDF error: the item succeeds with its text and `pdf_error` set, unless
  `strict_pdf` is on, in which case the item is failed

Usage:
    from outreach.pipeline.letters import LetterPipeline

    pipeline = LetterPipeline(renderer, pdf_renderer, BatchConfig(batch_size=10))
    run = await pipeline.generate(customers, "kyc_update", generate_pdf=True)
"""

from __future__ import annotations

import base64
from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any, Protocol

from outreach.batch.processor import BatchConfig, BatchProgress, BatchRun, run_batched
from outreach.classifier.records import ACCOUNT_KEY, normalize_record, normalize_records, text
from outreach.classifier.rules import IssueType
from outreach.core.errors import InputValidationError, PdfRenderError
from outreach.core.logging import get_logger, start_run
from outreach.core.scheduler import Scheduler

logger = get_logger(__name__)

MAX_CUSTOM_MESSAGE_LENGTH = 500


@dataclass(frozen=True, slots=True)
class LetterContent:
    """Rendered letter text and its metadata."""

    subject: str
    content: str
    urgency: str = "medium"
    follow_up_days: int = 30
    category: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {
            "subject": self.subject,
            "content": self.content,
            "urgency": self.urgency,
            "follow_up_days": self.follow_up_days,
            "category": self.category,
        }


class TemplateRenderer(Protocol):
    """Renders letter text for one customer."""

    def render(
        self,
        customer: Mapping[str, Any],
        issue_type: IssueType,
        custom_message: str | None = None,
    ) -> LetterContent: ...


class PdfRenderer(Protocol):
    """Renders letter text to PDF bytes."""

    async def render(self, content: str, customer: Mapping[str, Any]) -> bytes: ...


@dataclass(frozen=True)
class GeneratedLetter:
    """One generated letter.

    Attributes:
        account_no: Customer account number
        customer_name: Customer name ('' when absent)
        letter: Rendered text and metadata
        generated_at: Generation timestamp (UTC)
        pdf: PDF bytes when a PDF was produced
        pdf_error: Why the PDF could not be produced (text is still valid)
    """

    account_no: str
    customer_name: str
    letter: LetterContent
    generated_at: datetime = field(default_factory=lambda: datetime.now(UTC))
    pdf: bytes | None = None
    pdf_error: str | None = None

    @property
    def subject(self) -> str:
        return self.letter.subject

    @property
    def content(self) -> str:
        return self.letter.content

    @property
    def pdf_base64(self) -> str | None:
        if self.pdf is None:
            return None
        return base64.b64encode(self.pdf).decode("ascii")

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {
            "customer_id": self.account_no,
            "customer_name": self.customer_name,
            "subject": self.letter.subject,
            "content": self.letter.content,
            "urgency": self.letter.urgency,
            "follow_up_days": self.letter.follow_up_days,
            "generated_at": self.generated_at.isoformat(),
        }
        if self.pdf is not None:
            result["pdf_base64"] = self.pdf_base64
            result["pdf_size"] = len(self.pdf)
        if self.pdf_error is not None:
            result["pdf_error"] = self.pdf_error
        return result


def require_issue_type(issue_type: IssueType | str) -> IssueType:
    """Parse an issue type, raising InputValidationError when unknown."""
    parsed = IssueType.parse(issue_type)
    if parsed is None:
        valid = ", ".join(t.value for t in IssueType)
        raise InputValidationError(
            f"Unknown issue type '{issue_type}'. Valid types: {valid}", field="issue_type"
        )
    return parsed


def check_custom_message(custom_message: str | None) -> str | None:
    """Reject custom messages over the length limit; blank becomes None."""
    if custom_message is None or not custom_message.strip():
        return None
    if len(custom_message) > MAX_CUSTOM_MESSAGE_LENGTH:
        raise InputValidationError(
            f"custom_message is {len(custom_message)} characters; "
            f"the limit is {MAX_CUSTOM_MESSAGE_LENGTH}",
            field="custom_message",
        )
    return custom_message


class LetterPipeline:
    """Generates letters (and optionally PDFs) for a batch of customers.

    Attributes:
        _renderer: Template renderer
        _pdf_renderer: PDF renderer, or None when PDFs are unavailable
        _batch_config: Batch sizing and delays
        _strict_pdf: Treat a PDF failure as a failed item
        _scheduler: Delay provider passed to the batch processor
    """

    def __init__(
        self,
        renderer: TemplateRenderer,
        pdf_renderer: PdfRenderer | None = None,
        batch_config: BatchConfig | None = None,
        *,
        strict_pdf: bool = False,
        scheduler: Scheduler | None = None,
    ):
        self._renderer = renderer
        self._pdf_renderer = pdf_renderer
        self._batch_config = batch_config or BatchConfig()
        self._strict_pdf = strict_pdf
        self._scheduler = scheduler

    @property
    def pdf_available(self) -> bool:
        return self._pdf_renderer is not None

    def preview(
        self,
        customer: Mapping[Any, Any],
        issue_type: IssueType | str,
        custom_message: str | None = None,
    ) -> LetterContent:
        """Render a single letter without batching or PDF output.

        Raises:
            InputValidationError: On an unknown issue type or over-long message
            TemplateRenderError: If the template cannot be rendered
        """
        parsed = require_issue_type(issue_type)
        message = check_custom_message(custom_message)
        return self._renderer.render(normalize_record(customer), parsed, message)

    async def generate(
        self,
        customers: Sequence[Mapping[Any, Any]],
        issue_type: IssueType | str,
        custom_message: str | None = None,
        *,
        generate_pdf: bool = False,
        on_progress: Callable[[BatchProgress], None] | None = None,
    ) -> BatchRun[GeneratedLetter]:
        """Generate one letter per customer.

        Args:
            customers: Customer records (non-empty, each with an account number)
            issue_type: Letter type
            custom_message: Optional paragraph inserted into every letter
            generate_pdf: Also render each letter to PDF
            on_progress: Per-batch progress callback

        Returns:
            BatchRun whose success payloads are GeneratedLetter values

        Raises:
            InputValidationError: Before any processing, on bad input or when
                PDFs are requested without a PDF renderer
        """
        parsed = require_issue_type(issue_type)
        message = check_custom_message(custom_message)
        normalized = normalize_records(customers)
        if generate_pdf and self._pdf_renderer is None:
            raise InputValidationError(
                "PDF generation requested but no PDF renderer is configured", field="generate_pdf"
            )

        logger.info(
            "letter_generation_start",
            run_id=start_run(),
            issue_type=parsed.value,
            customers=len(normalized),
            generate_pdf=generate_pdf,
            has_custom_message=message is not None,
        )

        async def generate_one(customer: dict[str, Any]) -> GeneratedLetter:
            letter = self._renderer.render(customer, parsed, message)
            pdf: bytes | None = None
            pdf_error: str | None = None
            if generate_pdf and self._pdf_renderer is not None:
                try:
                    pdf = await self._pdf_renderer.render(letter.content, customer)
                except PdfRenderError as e:
                    if self._strict_pdf:
                        raise
                    pdf_error = str(e)
                    logger.warning(
                        "pdf_render_failed_keeping_text",
                        account_no=customer[ACCOUNT_KEY],
                        error=pdf_error,
                    )
            return GeneratedLetter(
                account_no=customer[ACCOUNT_KEY],
                customer_name=text(customer.get("NAME")),
                letter=letter,
                pdf=pdf,
                pdf_error=pdf_error,
            )

        return await run_batched(
            normalized,
            generate_one,
            self._batch_config,
            key=lambda c: c[ACCOUNT_KEY],
            scheduler=self._scheduler,
            on_progress=on_progress,
        )
