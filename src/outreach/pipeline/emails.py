"""Email dispatch pipeline.

Customers without an EMAIL are recorded as skipped before any batching.
Every other customer gets exactly one mailer call: there is no retry layer,
a caller that wants to retry re-submits the failed items as a new run.

Subject and body are either supplied by the caller (same text for every
customer) or rendered per customer by the template renderer. With
`attach_pdf`, the body is also rendered to PDF and attached; a PDF failure
sends the email without the attachment.

Usage:
    from outreach.pipeline.emails import EmailDispatcher, summarize

    dispatcher = EmailDispatcher(mailer, renderer, batch_config=BatchConfig(batch_size=5))
    run = await dispatcher.dispatch(customers, "loan_default")
    print(summarize(run))  # {'total': 3, 'sent': 2, 'failed': 1, ...}
"""

from __future__ import annotations

from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any, Protocol

from outreach.batch.processor import BatchConfig, BatchProgress, BatchRun, run_batched
from outreach.classifier.records import ACCOUNT_KEY, normalize_records, text
from outreach.classifier.rules import IssueType
from outreach.core.errors import InputValidationError, PdfRenderError
from outreach.core.logging import get_logger, start_run
from outreach.core.scheduler import Scheduler
from outreach.pipeline.letters import (
    PdfRenderer,
    TemplateRenderer,
    check_custom_message,
    require_issue_type,
)

logger = get_logger(__name__)

NO_EMAIL_REASON = "No email address provided"
UNKNOWN_ERROR_CODE = "UNKNOWN"


@dataclass(frozen=True, slots=True)
class MailOptions:
    """Per-message delivery options."""

    attachment: bytes | None = None
    attachment_name: str | None = None


@dataclass(frozen=True, slots=True)
class MailReceipt:
    """Mailer acknowledgement for one delivered message."""

    success: bool
    message_id: str | None
    recipient: str
    subject: str = ""
    sent_at: datetime = field(default_factory=lambda: datetime.now(UTC))

    def to_dict(self) -> dict[str, Any]:
        return {
            "success": self.success,
            "message_id": self.message_id,
            "email": self.recipient,
            "subject": self.subject,
            "sent_at": self.sent_at.isoformat(),
        }


class Mailer(Protocol):
    """Outbound mail transport. Raises MailerError on delivery failure."""

    async def send(
        self,
        customer: Mapping[str, Any],
        subject: str,
        content: str,
        issue_type: IssueType,
        options: MailOptions | None = None,
    ) -> MailReceipt: ...


def has_email(customer: Mapping[str, Any]) -> bool:
    return bool(text(customer.get("EMAIL")))


class EmailDispatcher:
    """Sends one email per customer through the batch processor.

    Attributes:
        _mailer: Mail transport
        _renderer: Template renderer used when subject/content are not supplied
        _pdf_renderer: PDF renderer for attachments (optional)
        _batch_config: Batch sizing and delays
        _scheduler: Delay provider passed to the batch processor
    """

    def __init__(
        self,
        mailer: Mailer,
        renderer: TemplateRenderer | None = None,
        pdf_renderer: PdfRenderer | None = None,
        batch_config: BatchConfig | None = None,
        *,
        scheduler: Scheduler | None = None,
    ):
        self._mailer = mailer
        self._renderer = renderer
        self._pdf_renderer = pdf_renderer
        self._batch_config = batch_config or BatchConfig()
        self._scheduler = scheduler

    async def dispatch(
        self,
        customers: Sequence[Mapping[Any, Any]],
        issue_type: IssueType | str,
        subject: str | None = None,
        content: str | None = None,
        custom_message: str | None = None,
        *,
        attach_pdf: bool = False,
        on_progress: Callable[[BatchProgress], None] | None = None,
    ) -> BatchRun[MailReceipt]:
        """Send one email to every customer that has an address.

        Args:
            customers: Customer records (non-empty, each with an account number)
            issue_type: Issue the email is about
            subject: Fixed subject for every email (rendered per customer if None)
            content: Fixed body for every email (rendered per customer if None)
            custom_message: Paragraph passed to the renderer
            attach_pdf: Attach the body rendered as PDF
            on_progress: Per-batch progress callback

        Returns:
            BatchRun with one result per customer, in input order

        Raises:
            InputValidationError: Before any sending, on bad input or when
                text must be rendered and no renderer is configured
        """
        parsed = require_issue_type(issue_type)
        message = check_custom_message(custom_message)
        normalized = normalize_records(customers)
        if (subject is None or content is None) and self._renderer is None:
            raise InputValidationError(
                "subject and content are required when no template renderer is configured",
                field="content",
            )
        if attach_pdf and self._pdf_renderer is None:
            raise InputValidationError(
                "PDF attachment requested but no PDF renderer is configured", field="attach_pdf"
            )

        logger.info(
            "email_dispatch_start",
            run_id=start_run(),
            issue_type=parsed.value,
            customers=len(normalized),
            with_email=sum(1 for c in normalized if has_email(c)),
            attach_pdf=attach_pdf,
        )

        async def send_one(customer: dict[str, Any]) -> MailReceipt:
            mail_subject, mail_content = subject, content
            if mail_subject is None or mail_content is None:
                letter = self._renderer.render(customer, parsed, message)
                mail_subject = mail_subject if mail_subject is not None else letter.subject
                mail_content = mail_content if mail_content is not None else letter.content

            options = None
            if attach_pdf and self._pdf_renderer is not None:
                options = await self._attachment_options(mail_content, customer)

            receipt = await self._mailer.send(customer, mail_subject, mail_content, parsed, options)
            logger.info(
                "email_sent", account_no=customer[ACCOUNT_KEY], message_id=receipt.message_id
            )
            return receipt

        return await run_batched(
            normalized,
            send_one,
            self._batch_config,
            key=lambda c: c[ACCOUNT_KEY],
            skip_reason=lambda c: None if has_email(c) else NO_EMAIL_REASON,
            scheduler=self._scheduler,
            on_progress=on_progress,
            default_error_code=UNKNOWN_ERROR_CODE,
        )

    async def _attachment_options(
        self, content: str, customer: dict[str, Any]
    ) -> MailOptions | None:
        try:
            pdf = await self._pdf_renderer.render(content, customer)
        except PdfRenderError as e:
            logger.warning(
                "email_attachment_skipped",
                account_no=customer[ACCOUNT_KEY],
                error=str(e),
            )
            return None
        return MailOptions(attachment=pdf, attachment_name=f"Letter_{customer[ACCOUNT_KEY]}.pdf")


def summarize(run: BatchRun[MailReceipt]) -> dict[str, Any]:
    """Email statistics in the shape the API reports.

    Returns:
        Dict with total, sent, failed, skipped, processing_time_ms and
        success_rate (percentage of all customers that were sent)
    """
    stats = run.statistics
    return {
        "total": stats.total,
        "sent": stats.succeeded,
        "failed": stats.failed,
        "skipped": stats.skipped,
        "processing_time_ms": stats.elapsed_ms,
        "success_rate": stats.success_rate,
    }
