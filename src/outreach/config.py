"""Configuration for Branch Outreach.

Settings come from a YAML file validated by `AppConfig`. Individual values
can be overridden from the environment with a double-underscore path, e.g.
`OUTREACH_SMTP__HOST=mail.branch.local` or `OUTREACH_EMAIL__BATCH__BATCH_SIZE=3`,
so a deployment can keep one file and vary hosts per environment.

The API server and CLI share one cached `AppConfig`; tests reset it with
`reset_config()`.
"""

import os
import threading
from collections.abc import Mapping
from pathlib import Path
from typing import Any

import yaml
from pydantic import ValidationError

from outreach.config_schema import CURRENT_SCHEMA_VERSION, AppConfig
from outreach.core.errors import ConfigLoadError, ConfigValidationError
from outreach.core.logging import get_logger

logger = get_logger(__name__)

CONFIG_PATH_ENV_VAR = "OUTREACH_CONFIG_PATH"
DEFAULT_CONFIG_PATH = Path("config/config.yaml")
ENV_OVERRIDE_PREFIX = "OUTREACH_"
ENV_PATH_SEPARATOR = "__"

# Pydantic error type -> message template for the offending field
_ERROR_MESSAGES = {
    "missing": "'{field}' is required",
    "string_type": "'{field}' must be text",
    "int_type": "'{field}' must be an integer",
    "int_parsing": "'{field}' must be an integer",
    "float_parsing": "'{field}' must be a number",
    "bool_type": "'{field}' must be true or false",
    "bool_parsing": "'{field}' must be true or false",
    "extra_forbidden": "'{field}' is not a recognised setting",
}

_lock = threading.Lock()
_cached: AppConfig | None = None


def get_config_path() -> Path:
    """Config file path: OUTREACH_CONFIG_PATH, else config/config.yaml."""
    return Path(os.environ.get(CONFIG_PATH_ENV_VAR) or DEFAULT_CONFIG_PATH)


def describe_errors(error: ValidationError) -> str:
    """One line per invalid field, with its dotted path (e.g. email.batch.batch_size)."""
    lines = []
    for err in error.errors():
        field = ".".join(str(part) for part in err["loc"])
        template = _ERROR_MESSAGES.get(err["type"], "'{field}': {msg}")
        lines.append("  - " + template.format(field=field, msg=err["msg"]))
    return "\n".join(lines)


def env_overrides(environ: Mapping[str, str] | None = None) -> dict[str, Any]:
    """Collect OUTREACH_SECTION__FIELD variables into a nested mapping.

    Values are parsed as YAML scalars so `true`, `25` and `0.5` arrive typed.
    Variables without the separator (such as OUTREACH_CONFIG_PATH) are ignored.
    """
    environ = os.environ if environ is None else environ
    overrides: dict[str, Any] = {}
    for name, raw in environ.items():
        if not name.startswith(ENV_OVERRIDE_PREFIX):
            continue
        path = name[len(ENV_OVERRIDE_PREFIX) :].lower().split(ENV_PATH_SEPARATOR)
        if len(path) < 2 or not all(path):
            continue
        try:
            value = yaml.safe_load(raw)
        except yaml.YAMLError:
            value = raw
        node = overrides
        for key in path[:-1]:
            node = node.setdefault(key, {})
        node[path[-1]] = value
    return overrides


def merge_settings(base: dict[str, Any], overrides: Mapping[str, Any]) -> dict[str, Any]:
    """Deep-merge overrides into a copy of base; mappings merge, other values replace."""
    merged = dict(base)
    for key, value in overrides.items():
        current = merged.get(key)
        if isinstance(value, Mapping) and isinstance(current, Mapping):
            merged[key] = merge_settings(dict(current), value)
        else:
            merged[key] = value
    return merged


def _read_yaml(path: Path) -> dict[str, Any]:
    if not path.exists():
        raise ConfigLoadError(
            f"Configuration file not found: {path}\n"
            f"Copy config/config.yaml.example to {path} and fill in the bank details."
        )
    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8"))
    except yaml.YAMLError as e:
        raise ConfigLoadError(f"Failed to parse YAML in {path}:\n{e}") from e
    except OSError as e:
        raise ConfigLoadError(f"Cannot read {path}: {e}") from e

    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigLoadError(
            f"{path} must contain a YAML mapping of sections, not a {type(data).__name__}"
        )
    return data


def build_config(data: Mapping[str, Any], source: str = "<memory>") -> AppConfig:
    """Validate settings and check the schema version.

    Raises:
        ConfigValidationError: On invalid fields or a schema newer than supported
    """
    try:
        config = AppConfig.model_validate(data)
    except ValidationError as e:
        raise ConfigValidationError(
            f"Invalid configuration in {source}:\n{describe_errors(e)}"
        ) from e

    if config.schema_version > CURRENT_SCHEMA_VERSION:
        raise ConfigValidationError(
            f"{source} uses schema version {config.schema_version}, newer than the "
            f"supported version {CURRENT_SCHEMA_VERSION}. Upgrade branch-outreach."
        )
    return config


def load_config(path: Path | None = None, *, use_env: bool = True) -> AppConfig:
    """Read, merge environment overrides into, and validate a config file.

    Always reads from disk; use get_config() for the shared instance.

    Args:
        path: Config file (default: get_config_path())
        use_env: Apply OUTREACH_SECTION__FIELD overrides

    Raises:
        ConfigLoadError: Missing, unreadable or malformed file
        ConfigValidationError: Settings fail validation
    """
    config_path = path or get_config_path()
    data = _read_yaml(config_path)
    overrides = env_overrides() if use_env else {}
    config = build_config(merge_settings(data, overrides), str(config_path))

    logger.info(
        "config_loaded",
        path=str(config_path),
        schema_version=config.schema_version,
        branch=config.bank.branch_code,
        env_overrides=sorted(overrides),
    )
    return config


def get_config(allow_missing: bool = False) -> AppConfig:
    """Return the shared config, loading it on first use.

    Args:
        allow_missing: Fall back to defaults (plus environment overrides)
            when the config file does not exist

    Raises:
        ConfigLoadError: File missing (unless allow_missing) or unreadable
        ConfigValidationError: Settings fail validation
    """
    global _cached

    with _lock:
        if _cached is None:
            config_path = get_config_path()
            if allow_missing and not config_path.exists():
                logger.info("config_defaults_used", path=str(config_path))
                _cached = build_config(env_overrides(), "environment")
            else:
                _cached = load_config(config_path)
        return _cached


def validate_config_file(path: Path | None = None) -> tuple[bool, str]:
    """Check a config file without caching it.

    Returns:
        (is_valid, human-readable summary or error)
    """
    try:
        config = load_config(path or get_config_path())
    except ConfigLoadError as e:
        return False, f"Load error: {e}"
    except ConfigValidationError as e:
        return False, f"Validation error: {e}"

    scoring = "on" if config.analysis.use_external_scoring else "off"
    smtp = config.smtp.host or "not configured"
    return True, "\n".join(
        [
            f"Configuration valid (schema version {config.schema_version})",
            f"  - Bank: {config.bank.name} ({config.bank.branch_code})",
            f"  - External scoring: {scoring} (model {config.scoring.model})",
            f"  - Letter batches of {config.letters.batch.batch_size}, "
            f"email batches of {config.email.batch.batch_size}",
            f"  - SMTP: {smtp}",
        ]
    )


def reset_config() -> None:
    """Drop the cached config."""
    global _cached
    with _lock:
        _cached = None
