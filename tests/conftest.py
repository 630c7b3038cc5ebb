"""Pytest fixtures and configuration for Branch Outreach tests.

Provides common fixtures for configuration, customer records, batch pacing
and a fixed evaluation time.
"""

import os
from datetime import UTC, datetime
from pathlib import Path
from typing import Any, Generator

import pytest

from outreach.config import reset_config
from outreach.config_schema import AppConfig


@pytest.fixture(autouse=True)
def reset_config_singleton() -> Generator[None, None, None]:
    """Reset the config singleton before each test."""
    reset_config()
    yield
    reset_config()


@pytest.fixture
def now() -> datetime:
    """Fixed evaluation time for date-based rules."""
    return datetime(2025, 1, 1, tzinfo=UTC)


@pytest.fixture
def temp_config_dir(tmp_path: Path) -> Path:
    """Create a temporary config directory."""
    config_dir = tmp_path / "config"
    config_dir.mkdir()
    return config_dir


@pytest.fixture
def sample_config_yaml() -> str:
    """Return a minimal valid config.yaml content."""
    return """
schema_version: 1

bank:
  name: "Test Bank"
  short_name: "TB"
  branch_address: "1 Test Road, Pune"
  sender_name: "Asha Rao"

letters:
  batch:
    batch_size: 2

email:
  batch:
    batch_size: 3
    inter_item_delay_ms: 0
    inter_batch_delay_ms: 0

smtp:
  host: "smtp.example.com"
  port: 587
  username: "branch"
  from_address: "branch@example.com"
"""


@pytest.fixture
def sample_config_dict() -> dict[str, Any]:
    """Return a minimal valid config as a dictionary."""
    return {
        "schema_version": 1,
        "bank": {
            "name": "Test Bank",
            "short_name": "TB",
            "branch_address": "1 Test Road, Pune",
            "sender_name": "Asha Rao",
        },
        "letters": {"batch": {"batch_size": 2}},
        "email": {
            "batch": {"batch_size": 3, "inter_item_delay_ms": 0, "inter_batch_delay_ms": 0},
        },
        "smtp": {
            "host": "smtp.example.com",
            "port": 587,
            "username": "branch",
            "from_address": "branch@example.com",
        },
    }


@pytest.fixture
def sample_config(sample_config_dict: dict[str, Any]) -> AppConfig:
    """Return a minimal valid AppConfig instance."""
    return AppConfig(**sample_config_dict)


@pytest.fixture
def config_file(temp_config_dir: Path, sample_config_yaml: str) -> Path:
    """Create a temporary config file with valid content."""
    config_path = temp_config_dir / "config.yaml"
    config_path.write_text(sample_config_yaml)
    return config_path


@pytest.fixture
def set_config_env(config_file: Path) -> Generator[None, None, None]:
    """Set the OUTREACH_CONFIG_PATH environment variable."""
    old_value = os.environ.get("OUTREACH_CONFIG_PATH")
    os.environ["OUTREACH_CONFIG_PATH"] = str(config_file)
    yield
    if old_value is None:
        del os.environ["OUTREACH_CONFIG_PATH"]
    else:
        os.environ["OUTREACH_CONFIG_PATH"] = old_value


class FakeScheduler:
    """Scheduler that records requested delays instead of sleeping."""

    def __init__(self) -> None:
        self.delays: list[int] = []

    async def sleep(self, delay_ms: int) -> None:
        self.delays.append(delay_ms)


@pytest.fixture
def scheduler() -> FakeScheduler:
    """Return a FakeScheduler."""
    return FakeScheduler()


@pytest.fixture
def customers() -> list[dict[str, Any]]:
    """Three customers with email addresses and mixed attributes."""
    return [
        {
            "ACCOUNT_NO": "1001",
            "NAME": "Ravi Kumar",
            "EMAIL": "ravi@example.com",
            "MOBILE": "9800000001",
            "BALANCE": 0,
            "KYC_STATUS": "Expired",
            "OUTSTANDING_AMOUNT": 150000,
        },
        {
            "ACCOUNT_NO": "1002",
            "NAME": "Meera Iyer",
            "EMAIL": "meera@example.com",
            "MOBILE": "9800000002",
            "BALANCE": 25000,
            "KYC_STATUS": "Verified",
            "AGE": 67,
        },
        {
            "ACCOUNT_NO": "1003",
            "NAME": "Arjun Singh",
            "EMAIL": "arjun@example.com",
            "MOBILE": "",
            "BALANCE": 40,
            "DOC_STATUS": "Expired",
        },
    ]
