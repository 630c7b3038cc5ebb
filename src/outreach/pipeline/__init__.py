"""Artifact pipelines built on the batch processor.

This package provides the two outreach workloads:
- Letter pipeline: template rendering with optional PDF output
- Email dispatcher: one mailer call per customer with an address
"""

from outreach.pipeline.emails import (
    EmailDispatcher,
    Mailer,
    MailOptions,
    MailReceipt,
    summarize,
)
from outreach.pipeline.letters import (
    GeneratedLetter,
    LetterContent,
    LetterPipeline,
    PdfRenderer,
    TemplateRenderer,
)

__all__ = [
    # Emails
    "EmailDispatcher",
    "Mailer",
    "MailOptions",
    "MailReceipt",
    "summarize",
    # Letters
    "GeneratedLetter",
    "LetterContent",
    "LetterPipeline",
    "PdfRenderer",
    "TemplateRenderer",
]
