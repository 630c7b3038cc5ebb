"""Outbound mail transport."""

from outreach.mail.smtp import SmtpMailer, render_html

__all__ = ["SmtpMailer", "render_html"]
