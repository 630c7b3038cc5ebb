"""Custom exception types for Branch Outreach.

Error messages follow the same standard throughout the package:
- What failed (specific operation or component)
- Why it failed (the specific condition)
- How to fix it (actionable guidance, where there is any)

Three families matter to callers:
- InputValidationError: malformed request input, raised before any processing
- CollaboratorError: a scorer, renderer or mailer failed; always caught at the
  smallest scope (one item, or one optional feature) and degraded
- Config*/IngestionError: startup and file problems
"""


class OutreachError(Exception):
    """Base exception for all Branch Outreach errors."""

    pass


class ConfigValidationError(OutreachError):
    """Raised when config.yaml fails Pydantic validation.

    Includes specific field errors with actionable messages.
    """

    pass


class ConfigLoadError(OutreachError):
    """Raised when config.yaml cannot be loaded (file not found, YAML parse error)."""

    pass


class InputValidationError(OutreachError):
    """Raised when caller input is malformed or missing required data.

    Attributes:
        field: Name of the offending field or parameter (if known)
    """

    def __init__(self, message: str, field: str | None = None):
        super().__init__(message)
        self.field = field


class IngestionError(OutreachError):
    """Raised when a spreadsheet cannot be read at all (corrupt file, bad format)."""

    pass


class CollaboratorError(OutreachError):
    """Raised when an external collaborator fails.

    Attributes:
        code: Machine-readable error code from the collaborator (if available)
    """

    def __init__(self, message: str, code: str | None = None):
        super().__init__(message)
        self.code = code


class ScoringError(CollaboratorError):
    """Raised when the external scoring service fails or returns garbage.

    Never fatal: classification falls back to the rule-based result.
    """

    pass


class TemplateRenderError(CollaboratorError):
    """Raised when a letter template cannot be rendered for a customer."""

    pass


class PdfRenderError(CollaboratorError):
    """Raised when a letter cannot be rendered to PDF.

    Non-fatal by default: the letter text is kept and the error is attached
    to that letter's result.
    """

    pass


class MailerError(CollaboratorError):
    """Raised when the mailer cannot deliver a message.

    Attributes:
        code: SMTP reply code or a symbolic code such as 'ENOTCONFIGURED'
    """

    pass
