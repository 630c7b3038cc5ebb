"""Pydantic configuration schema for Branch Outreach.

This module defines the configuration schema that mirrors config.yaml structure.
All configuration is validated against these models on startup.

Usage:
    from outreach.config_schema import AppConfig

    # Validate a config dict
    config = AppConfig(**yaml_data)
"""

from typing import Literal

from pydantic import BaseModel, Field, field_validator

from outreach.batch.processor import BatchConfig

# Current schema version - increment when adding new required fields
CURRENT_SCHEMA_VERSION = 1


class BankSettings(BaseModel):
    """Bank and branch identity used in letters and emails."""

    name: str = Field(default="State Bank of India", description="Bank name for letterheads")
    short_name: str = Field(
        default="SBI",
        description="Short code used in letter reference numbers",
    )
    branch_code: str = Field(default="MAIN", description="Default branch code")
    branch_address: str = Field(
        default="Branch Address",
        description="Printed under the signature when a customer has no BRANCH_ADDRESS",
    )
    helpline: str = Field(default="1800-1234", description="Customer care number")
    email: str = Field(default="customercare@example.com", description="Customer care email")
    website: str = Field(default="www.example.com", description="Bank website")
    sender_name: str = Field(
        default="[Branch Manager Name]",
        description="Signatory name printed at the end of letters",
    )

    @field_validator("short_name")
    @classmethod
    def validate_short_name(cls, v: str) -> str:
        """Reference numbers use '/' as separator, so it cannot appear here."""
        if not v.strip():
            raise ValueError("short_name cannot be empty")
        if "/" in v:
            raise ValueError("short_name cannot contain '/'")
        return v.strip()


class AnalysisSettings(BaseModel):
    """Classification defaults (overridable per request)."""

    use_external_scoring: bool = Field(
        default=False,
        description="Score rule matches with Claude when an API key is available",
    )
    scoring_cap: int = Field(
        default=100,
        ge=1,
        le=1000,
        description="Max rule matches sent to the scorer per analysis",
    )
    min_confidence: float = Field(
        default=0.7,
        ge=0.0,
        le=1.0,
        description="Confidence threshold for the reported match count",
    )


class ScoringSettings(BaseModel):
    """Claude scorer settings."""

    model: str = Field(
        default="claude-haiku-4-5-20251001",
        description="Model used for customer scoring",
    )
    max_tokens: int = Field(default=4096, ge=256, le=32000, description="Response token budget")
    timeout_seconds: float = Field(
        default=60.0,
        gt=0,
        le=600,
        description="Overall scoring timeout (seconds)",
    )
    max_retries: int = Field(
        default=2,
        ge=0,
        le=10,
        description="Transport retries performed by the Anthropic SDK",
    )


class BatchSettings(BaseModel):
    """Batch sizing and pacing for a pipeline."""

    batch_size: int = Field(default=10, ge=1, le=100, description="Customers per batch")
    inter_item_delay_ms: int = Field(
        default=0,
        ge=0,
        le=60_000,
        description="Stagger between item launches within a batch (ms)",
    )
    inter_batch_delay_ms: int = Field(
        default=0,
        ge=0,
        le=300_000,
        description="Pause between batches (ms)",
    )
    max_concurrent: int = Field(
        default=4,
        ge=1,
        le=50,
        description="Items in flight at once within a batch",
    )

    def to_batch_config(self) -> BatchConfig:
        return BatchConfig(
            batch_size=self.batch_size,
            inter_item_delay_ms=self.inter_item_delay_ms,
            inter_batch_delay_ms=self.inter_batch_delay_ms,
            max_concurrent=self.max_concurrent,
        )


class LetterSettings(BaseModel):
    """Letter pipeline configuration."""

    batch: BatchSettings = Field(default_factory=BatchSettings)
    generate_pdf: bool = Field(default=False, description="Render PDFs by default")
    strict_pdf: bool = Field(
        default=False,
        description="Fail a letter when its PDF cannot be rendered (default keeps the text)",
    )


class EmailSettings(BaseModel):
    """Email dispatch configuration."""

    batch: BatchSettings = Field(
        default_factory=lambda: BatchSettings(
            batch_size=5,
            inter_item_delay_ms=1000,
            inter_batch_delay_ms=5000,
            max_concurrent=1,
        )
    )
    attach_pdf: bool = Field(default=False, description="Attach the letter as a PDF")


class SmtpSettings(BaseModel):
    """SMTP transport. The password comes from OUTREACH_SMTP_PASSWORD."""

    host: str = Field(default="", description="SMTP server host (empty disables email)")
    port: int = Field(default=587, ge=1, le=65535, description="SMTP server port")
    username: str = Field(default="", description="SMTP login")
    from_address: str = Field(default="", description="Sender address")
    use_tls: bool = Field(default=True, description="Upgrade the connection with STARTTLS")
    use_ssl: bool = Field(default=False, description="Connect with implicit TLS (port 465)")
    timeout_seconds: float = Field(default=30.0, gt=0, le=300, description="Socket timeout")

    @field_validator("from_address")
    @classmethod
    def validate_from_address(cls, v: str) -> str:
        if v and "@" not in v:
            raise ValueError("from_address must be an email address")
        return v.strip()


class LoggingSettings(BaseModel):
    """Logging output configuration."""

    level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(
        default="INFO",
        description="Minimum log level",
    )
    json_output: bool = Field(
        default=True,
        description="JSON log lines (server); the CLI always uses console output",
    )


class AppConfig(BaseModel):
    """Root configuration schema for Branch Outreach.

    This model validates the entire config.yaml structure. Every section has
    defaults, so an empty file is a valid configuration.
    """

    schema_version: int = Field(
        default=CURRENT_SCHEMA_VERSION,
        ge=1,
        description="Config schema version for migration tracking",
    )

    bank: BankSettings = Field(default_factory=BankSettings)
    analysis: AnalysisSettings = Field(default_factory=AnalysisSettings)
    scoring: ScoringSettings = Field(default_factory=ScoringSettings)
    letters: LetterSettings = Field(default_factory=LetterSettings)
    email: EmailSettings = Field(default_factory=EmailSettings)
    smtp: SmtpSettings = Field(default_factory=SmtpSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)
