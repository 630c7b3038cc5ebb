"""Service wiring shared by the web app and the CLI.

Builds the classification engine and both pipelines from config, with the
concrete collaborators (Claude scorer, Jinja templates, PyMuPDF, SMTP).

Usage:
    from outreach.services import build_services

    services = build_services(config)
    result = await services.engine.classify(customers, "kyc_update")
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

from outreach.classifier.engine import ClassificationEngine
from outreach.classifier.scoring import create_scorer
from outreach.core.logging import get_logger
from outreach.letters.pdf import PyMuPdfRenderer
from outreach.letters.templates import JinjaTemplateRenderer
from outreach.mail.smtp import SmtpMailer
from outreach.pipeline.emails import EmailDispatcher
from outreach.pipeline.letters import LetterPipeline

if TYPE_CHECKING:
    from outreach.config_schema import AppConfig
    from outreach.core.scheduler import Scheduler

logger = get_logger(__name__)


@dataclass
class Services:
    """Collaborators and pipelines for one process."""

    config: AppConfig
    engine: ClassificationEngine
    renderer: JinjaTemplateRenderer
    pdf_renderer: PyMuPdfRenderer
    mailer: SmtpMailer
    letters: LetterPipeline
    emails: EmailDispatcher


def build_services(config: AppConfig, scheduler: Scheduler | None = None) -> Services:
    """Wire up collaborators and pipelines from config.

    Args:
        config: Application configuration
        scheduler: Delay provider for batch pacing (defaults to asyncio.sleep)

    Returns:
        Services bundle
    """
    renderer = JinjaTemplateRenderer(config.bank)
    pdf_renderer = PyMuPdfRenderer(config.bank)
    mailer = SmtpMailer(config.smtp, config.bank)
    engine = ClassificationEngine(scorer=create_scorer(config))

    letters = LetterPipeline(
        renderer,
        pdf_renderer,
        config.letters.batch.to_batch_config(),
        strict_pdf=config.letters.strict_pdf,
        scheduler=scheduler,
    )
    emails = EmailDispatcher(
        mailer,
        renderer,
        pdf_renderer,
        config.email.batch.to_batch_config(),
        scheduler=scheduler,
    )

    logger.info(
        "services_initialized",
        scoring_available=engine.scoring_available,
        smtp_configured=mailer.configured,
    )
    return Services(
        config=config,
        engine=engine,
        renderer=renderer,
        pdf_renderer=pdf_renderer,
        mailer=mailer,
        letters=letters,
        emails=emails,
    )
