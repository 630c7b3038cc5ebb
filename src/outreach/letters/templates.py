"""Jinja2 letter templates, one per issue type.

Letter bodies live in `templates/*.txt.j2` next to this module and share a
base layout (`_base.txt.j2`) with the bank letterhead, reference line and
sign-off. Subjects, urgency and follow-up windows are catalog metadata.

Templates are rendered with StrictUndefined, so a typo in a template is a
TemplateRenderError instead of a silently blank field. Optional customer
fields are read with `default(..., true)` inside the templates.

Usage:
    from outreach.letters.templates import JinjaTemplateRenderer

    renderer = JinjaTemplateRenderer(config.bank)
    letter = renderer.render(customer, IssueType.KYC_UPDATE, "Visit before 31 March")
"""

from __future__ import annotations

from collections.abc import Callable, Mapping
from dataclasses import dataclass
from datetime import UTC, datetime
from pathlib import Path
from typing import TYPE_CHECKING, Any

import jinja2

from outreach.classifier.records import parse_float, text
from outreach.classifier.rules import RULE_CRITERIA, IssueType
from outreach.core.errors import TemplateRenderError
from outreach.core.logging import get_logger
from outreach.pipeline.letters import LetterContent

if TYPE_CHECKING:
    from outreach.config_schema import BankSettings

logger = get_logger(__name__)

TEMPLATE_DIR = Path(__file__).parent / "templates"


@dataclass(frozen=True, slots=True)
class TemplateInfo:
    """Catalog entry for one letter template."""

    issue_type: IssueType
    name: str
    description: str
    category: str
    urgency: str
    follow_up_days: int
    subject: str  # Jinja expression template
    reference_code: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.issue_type.value,
            "name": self.name,
            "description": self.description,
            "category": self.category,
            "urgency": self.urgency,
            "follow_up_days": self.follow_up_days,
        }


TEMPLATE_CATALOG: dict[IssueType, TemplateInfo] = {
    IssueType.ACCOUNT_CLOSURE: TemplateInfo(
        issue_type=IssueType.ACCOUNT_CLOSURE,
        name="Account Closure Notice",
        description="For inactive accounts or accounts with zero balance",
        category="Account Management",
        urgency="medium",
        follow_up_days=30,
        subject="Important Notice - Account Status Review - A/C {{ account_no }}",
        reference_code="AC",
    ),
    IssueType.KYC_UPDATE: TemplateInfo(
        issue_type=IssueType.KYC_UPDATE,
        name="KYC Update Required",
        description="For customers with expired or missing KYC documents",
        category="Compliance",
        urgency="high",
        follow_up_days=15,
        subject="Action Required - KYC Document Update - A/C {{ account_no }}",
        reference_code="KYC",
    ),
    IssueType.LOAN_DEFAULT: TemplateInfo(
        issue_type=IssueType.LOAN_DEFAULT,
        name="Loan Payment Reminder",
        description="For customers with overdue loan payments",
        category="Credit Management",
        urgency="high",
        follow_up_days=7,
        subject=(
            "Urgent Payment Reminder - Loan A/C "
            "{{ customer.LOAN_ACCOUNT_NO | default(account_no, true) }}"
        ),
        reference_code="LN",
    ),
    IssueType.FEE_WAIVER: TemplateInfo(
        issue_type=IssueType.FEE_WAIVER,
        name="Fee Waiver Information",
        description="For eligible customers (senior citizens, students, etc.)",
        category="Customer Service",
        urgency="low",
        follow_up_days=365,
        subject="Fee Waiver Approval - Account {{ account_no }}",
        reference_code="FW",
    ),
    IssueType.DOCUMENT_EXPIRY: TemplateInfo(
        issue_type=IssueType.DOCUMENT_EXPIRY,
        name="Document Expiry Notice",
        description="For customers with expiring identity or address documents",
        category="Compliance",
        urgency="high",
        follow_up_days=15,
        subject="Document Renewal Required - Account {{ account_no }}",
        reference_code="DOC",
    ),
}


def get_template_catalog() -> dict[str, dict[str, Any]]:
    """Return template metadata keyed by issue type value."""
    return {issue.value: info.to_dict() for issue, info in TEMPLATE_CATALOG.items()}


def get_issue_types() -> dict[str, dict[str, str]]:
    """Name, description and matching criteria for every issue type."""
    return {
        issue.value: {
            "name": info.name,
            "description": info.description,
            "criteria": RULE_CRITERIA[issue],
        }
        for issue, info in TEMPLATE_CATALOG.items()
    }


def get_template_info(template_id: str) -> TemplateInfo | None:
    """Look up one catalog entry, or None when the id is unknown."""
    issue_type = IssueType.parse(template_id)
    return TEMPLATE_CATALOG.get(issue_type) if issue_type else None


def format_inr(value: Any) -> str:
    """Format an amount as rupees with thousands separators."""
    return f"₹{parse_float(value):,.2f}"


def create_environment(template_dir: Path = TEMPLATE_DIR) -> jinja2.Environment:
    """Build the Jinja environment used for letters."""
    env = jinja2.Environment(
        loader=jinja2.FileSystemLoader(template_dir),
        undefined=jinja2.StrictUndefined,
        keep_trailing_newline=False,
        trim_blocks=True,
        lstrip_blocks=True,
        autoescape=False,
    )
    env.filters["inr"] = format_inr
    return env


class JinjaTemplateRenderer:
    """Renders letters from the bundled Jinja templates.

    Attributes:
        _bank: Bank profile shown in letterhead and contact lines
        _env: Jinja environment
        _clock: Returns the current time (injectable for tests)
    """

    def __init__(
        self,
        bank: BankSettings,
        template_dir: Path = TEMPLATE_DIR,
        clock: Callable[[], datetime] | None = None,
    ):
        self._bank = bank
        self._env = create_environment(template_dir)
        self._clock = clock or (lambda: datetime.now(UTC))

    def render(
        self,
        customer: Mapping[str, Any],
        issue_type: IssueType,
        custom_message: str | None = None,
    ) -> LetterContent:
        """Render the letter for one normalized customer record.

        Args:
            customer: Normalized customer record
            issue_type: Letter type
            custom_message: Optional paragraph inserted into the body

        Returns:
            LetterContent with subject, body, urgency and follow-up days

        Raises:
            TemplateRenderError: If the template is missing or fails to render
        """
        info = TEMPLATE_CATALOG[issue_type]
        now = self._clock()
        account_no = text(customer.get("ACCOUNT_NO"))
        context = {
            "customer": dict(customer),
            "account_no": account_no,
            "name": text(customer.get("NAME")) or "Valued Customer",
            "bank": self._bank,
            "today": now.strftime("%d/%m/%Y"),
            "year": now.year,
            "reference": f"{self._bank.short_name}/{info.reference_code}/{account_no}/{now.year}",
            "custom_message": (custom_message or "").strip(),
            "follow_up_days": info.follow_up_days,
        }

        try:
            subject = self._env.from_string(info.subject).render(context)
            content = self._env.get_template(f"{issue_type.value}.txt.j2").render(context)
        except jinja2.TemplateError as e:
            logger.error(
                "template_render_failed",
                issue_type=issue_type.value,
                account_no=account_no,
                error=str(e),
            )
            raise TemplateRenderError(
                f"Failed to render {issue_type.value} letter for account {account_no}: {e}",
                code="template_error",
            ) from e

        return LetterContent(
            subject=subject.strip(),
            content=content.strip() + "\n",
            urgency=info.urgency,
            follow_up_days=info.follow_up_days,
            category=issue_type.value,
        )
