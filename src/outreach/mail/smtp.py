"""SMTP mailer.

Builds a multipart message (plain text plus an HTML alternative rendered
from `templates/letter.html.j2`) and delivers it over SMTP. smtplib is
blocking, so each send runs in a worker thread.

Every message carries:
- A priority derived from the issue type (X-Priority / Importance)
- X-Customer-ID, X-Issue-Type and X-Branch headers for tracing
- An optional PDF attachment

`verify()` checks the connection and credentials without sending, and
`send_test()` sends a standalone test message to any address.

Failures raise MailerError with a code: the SMTP reply code when the server
sent one, otherwise a symbolic code (ENOTCONFIGURED, ECONNECTION, ...).

Usage:
    from outreach.mail.smtp import SmtpMailer

    mailer = SmtpMailer(config.smtp, config.bank, password=os.environ["OUTREACH_SMTP_PASSWORD"])
    receipt = await mailer.send(customer, subject, content, IssueType.KYC_UPDATE)
"""

from __future__ import annotations

import asyncio
import os
import smtplib
from collections.abc import Callable, Mapping
from datetime import UTC, datetime
from email.message import EmailMessage
from email.utils import formataddr, make_msgid
from pathlib import Path
from typing import TYPE_CHECKING, Any

import jinja2

from outreach.classifier.records import text
from outreach.classifier.rules import IssueType
from outreach.core.errors import MailerError
from outreach.core.logging import get_logger
from outreach.pipeline.emails import MailOptions, MailReceipt

if TYPE_CHECKING:
    from outreach.config_schema import BankSettings, SmtpSettings

logger = get_logger(__name__)

PASSWORD_ENV_VAR = "OUTREACH_SMTP_PASSWORD"

TEST_MESSAGE = """This is a test email from the {bank} branch outreach system.

If you received it, outgoing email is configured correctly.

Sent: {sent_at}
From: {sender}
"""

# Issue type -> (X-Priority, Importance)
PRIORITY_HEADERS: dict[IssueType, tuple[str, str]] = {
    IssueType.LOAN_DEFAULT: ("1 (Highest)", "high"),
    IssueType.DOCUMENT_EXPIRY: ("1 (Highest)", "high"),
    IssueType.ACCOUNT_CLOSURE: ("3 (Normal)", "normal"),
    IssueType.KYC_UPDATE: ("3 (Normal)", "normal"),
    IssueType.FEE_WAIVER: ("5 (Lowest)", "low"),
}

_html_env = jinja2.Environment(
    loader=jinja2.FileSystemLoader(Path(__file__).parent / "templates"),
    autoescape=True,
    trim_blocks=True,
    lstrip_blocks=True,
)


def render_html(content: str, bank: BankSettings) -> str:
    """Render the HTML alternative for a plain-text letter body."""
    template = _html_env.get_template("letter.html.j2")
    return template.render(lines=content.splitlines(), bank=bank, year=datetime.now(UTC).year)


class SmtpMailer:
    """Delivers letters over SMTP.

    Attributes:
        _settings: SMTP connection settings
        _bank: Bank profile used for the sender name and branch header
        _password: SMTP password (None when not configured)
    """

    def __init__(
        self,
        settings: SmtpSettings,
        bank: BankSettings,
        password: str | None = None,
    ):
        self._settings = settings
        self._bank = bank
        self._password = password if password is not None else os.environ.get(PASSWORD_ENV_VAR)

    @property
    def configured(self) -> bool:
        """True when host, sender address and credentials are all present."""
        return bool(
            self._settings.host
            and self._settings.from_address
            and self._settings.username
            and self._password
        )

    def status(self) -> dict[str, Any]:
        """Configuration status for the API (never includes the password)."""
        return {
            "email_configured": self.configured,
            "host": self._settings.host or "Not configured",
            "port": self._settings.port,
            "from_address": self._settings.from_address or "Not configured",
            "use_tls": self._settings.use_tls,
        }

    def build_message(
        self,
        customer: Mapping[str, Any],
        subject: str,
        content: str,
        issue_type: IssueType,
        options: MailOptions | None = None,
    ) -> EmailMessage:
        """Assemble the MIME message for one customer."""
        account_no = text(customer.get("ACCOUNT_NO"))
        x_priority, importance = PRIORITY_HEADERS.get(issue_type, ("3 (Normal)", "normal"))
        domain = self._settings.from_address.partition("@")[2] or None

        message = EmailMessage()
        message["From"] = formataddr((self._bank.name, self._settings.from_address))
        message["To"] = formataddr((text(customer.get("NAME")), text(customer.get("EMAIL"))))
        message["Subject"] = subject
        message["Message-ID"] = make_msgid(domain=domain)
        message["X-Priority"] = x_priority
        message["Importance"] = importance
        message["X-Customer-ID"] = account_no
        message["X-Issue-Type"] = issue_type.value
        message["X-Branch"] = text(customer.get("BRANCH_CODE")) or self._bank.branch_code

        message.set_content(content)
        message.add_alternative(render_html(content, self._bank), subtype="html")

        if options and options.attachment:
            message.add_attachment(
                options.attachment,
                maintype="application",
                subtype="pdf",
                filename=options.attachment_name or f"Letter_{account_no}.pdf",
            )
        return message

    async def send(
        self,
        customer: Mapping[str, Any],
        subject: str,
        content: str,
        issue_type: IssueType,
        options: MailOptions | None = None,
    ) -> MailReceipt:
        """Send one email.

        Args:
            customer: Normalized customer record (EMAIL required)
            subject: Subject line
            content: Plain-text body
            issue_type: Issue the email is about (sets priority headers)
            options: Optional attachment

        Returns:
            MailReceipt with the Message-ID

        Raises:
            MailerError: If SMTP is not configured or delivery fails
        """
        if not self.configured:
            raise MailerError(
                f"Email service not configured. Set smtp.host, smtp.username and "
                f"smtp.from_address in config.yaml and {PASSWORD_ENV_VAR} in the environment.",
                code="ENOTCONFIGURED",
            )
        recipient = text(customer.get("EMAIL"))
        if not recipient:
            raise MailerError("Customer has no email address", code="ENORECIPIENT")

        message = self.build_message(customer, subject, content, issue_type, options)
        await asyncio.to_thread(self._deliver, message)
        logger.debug(
            "smtp_message_delivered",
            account_no=message["X-Customer-ID"],
            host=self._settings.host,
            has_attachment=bool(options and options.attachment),
        )

        return MailReceipt(
            success=True,
            message_id=message["Message-ID"],
            recipient=recipient,
            subject=subject,
        )

    async def verify(self) -> bool:
        """Open an authenticated SMTP session and close it again.

        Returns:
            True when the server accepted the connection and credentials;
            False when SMTP is not configured or the session failed
        """
        if not self.configured:
            return False
        try:
            await asyncio.to_thread(self._session, lambda smtp: smtp.noop(), "Connection check")
        except MailerError as e:
            logger.warning("smtp_verify_failed", host=self._settings.host, code=e.code)
            return False
        logger.info("smtp_verified", host=self._settings.host)
        return True

    async def send_test(self, email: str, custom_message: str | None = None) -> MailReceipt:
        """Send a test message to check the SMTP setup.

        Args:
            email: Recipient address
            custom_message: Body to send instead of the standard test text

        Raises:
            MailerError: If SMTP is not configured or delivery fails
        """
        if not self.configured:
            raise MailerError("Email service not configured", code="ENOTCONFIGURED")
        recipient = email.strip()
        if not recipient:
            raise MailerError("A recipient address is required", code="ENORECIPIENT")

        now = datetime.now(UTC)
        content = custom_message or TEST_MESSAGE.format(
            bank=self._bank.name,
            sent_at=now.strftime("%d %b %Y %H:%M UTC"),
            sender=self._settings.from_address,
        )
        subject = f"Test Email - {self._bank.short_name} Branch Outreach - {now:%d %b %Y}"

        message = EmailMessage()
        message["From"] = formataddr(
            (f"{self._bank.short_name} Branch Outreach - Test", self._settings.from_address)
        )
        message["To"] = recipient
        message["Subject"] = subject
        domain = self._settings.from_address.partition("@")[2] or None
        message["Message-ID"] = make_msgid(domain=domain)
        message.set_content(content)
        message.add_alternative(render_html(content, self._bank), subtype="html")

        await asyncio.to_thread(
            self._session, lambda smtp: smtp.send_message(message), "Test email failed"
        )
        logger.info("smtp_test_sent", host=self._settings.host)
        return MailReceipt(
            success=True, message_id=message["Message-ID"], recipient=recipient, subject=subject
        )

    def _deliver(self, message: EmailMessage) -> None:
        self._session(lambda smtp: smtp.send_message(message), "Email delivery failed")

    def _session(self, action: Callable[[smtplib.SMTP], Any], failure: str) -> None:
        """Connect, upgrade to TLS, log in and run action; map errors to MailerError."""
        settings = self._settings
        try:
            smtp_class = smtplib.SMTP_SSL if settings.use_ssl else smtplib.SMTP
            with smtp_class(settings.host, settings.port, timeout=settings.timeout_seconds) as smtp:
                if settings.use_tls and not settings.use_ssl:
                    smtp.starttls()
                smtp.login(settings.username, self._password)
                action(smtp)
        except smtplib.SMTPRecipientsRefused as e:
            raise MailerError(f"{failure}: recipient refused ({e})", code="EENVELOPE") from e
        except smtplib.SMTPAuthenticationError as e:
            raise MailerError(
                f"{failure}: authentication rejected ({e.smtp_code})", code="EAUTH"
            ) from e
        except smtplib.SMTPResponseException as e:
            raise MailerError(
                f"{failure}: {e.smtp_code} {e.smtp_error!r}", code=str(e.smtp_code)
            ) from e
        except smtplib.SMTPException as e:
            raise MailerError(f"{failure}: {e}", code="ESMTP") from e
        except OSError as e:
            raise MailerError(
                f"{failure}: cannot reach {settings.host}:{settings.port} ({e})",
                code="ECONNECTION",
            ) from e
