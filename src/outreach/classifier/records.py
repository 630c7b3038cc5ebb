"""Customer record normalization and tolerant field parsing.

Spreadsheet exports are dirty: column names arrive as 'accountNo',
'Account No', 'ACC_NO' or 'accno', numbers arrive as '1,250.50' or NaN, and
dates arrive as strings in several formats or as datetime objects. This
module is the single place where that mess is turned into one canonical
schema (UPPER_SNAKE keys) so the rule evaluator never re-guesses casing.

Parsing never raises on bad data: unparsable numbers become their default
and unparsable dates count as UNKNOWN_DAYS old.

Usage:
    from outreach.classifier.records import normalize_records, parse_float

    customers = normalize_records(rows)   # raises InputValidationError
    balance = parse_float(customers[0].get("BALANCE"))
"""

from __future__ import annotations

import math
from collections.abc import Iterable, Mapping
from datetime import UTC, date, datetime
from decimal import Decimal
from typing import Any

import regex

from outreach.core.errors import InputValidationError

# A customer record: canonical field name -> raw value
CustomerRecord = Mapping[str, Any]

ACCOUNT_KEY = "ACCOUNT_NO"

# Days reported for a missing or unparsable date
UNKNOWN_DAYS = 9999

# Alias -> canonical key, applied after case/spacing canonicalization
FIELD_ALIASES: dict[str, str] = {
    "ACCNO": ACCOUNT_KEY,
    "ACC_NO": ACCOUNT_KEY,
    "ACCOUNT": ACCOUNT_KEY,
    "ACCOUNTNO": ACCOUNT_KEY,
    "ACCOUNT_NUMBER": ACCOUNT_KEY,
    "A_C_NO": ACCOUNT_KEY,
    "DOC_EXPIRY_DAYS": "DAYS_TO_EXPIRY",
    "OUTSTANDING": "OUTSTANDING_AMOUNT",
    "MOBILE_NO": "MOBILE",
    "MOBILE_NUMBER": "MOBILE",
    "PHONE": "MOBILE",
    "EMAIL_ID": "EMAIL",
    "EMAIL_ADDRESS": "EMAIL",
    "CUSTOMER_NAME": "NAME",
}

_DATE_FORMATS = ("%d/%m/%Y", "%d-%m-%Y", "%Y/%m/%d", "%d %b %Y", "%d-%b-%Y")

_MISSING = object()


def canonical_key(name: Any) -> str:
    """Map a column name onto the canonical UPPER_SNAKE schema.

    Args:
        name: Raw column name (e.g. 'accountNo', 'Account No', 'acc-no')

    Returns:
        Canonical key (e.g. 'ACCOUNT_NO')
    """
    text = str(name).strip()
    # lowerUpper and ACRONYMWord boundaries: kycStatus, KYCStatus -> KYC_STATUS
    text = regex.sub(r"(?<=[a-z0-9])(?=[A-Z])|(?<=[A-Z])(?=[A-Z][a-z])", "_", text, timeout=1)
    text = regex.sub(r"[^A-Za-z0-9]+", "_", text, timeout=1).strip("_")
    key = text.upper()
    return FIELD_ALIASES.get(key, key)


def is_blank(value: Any) -> bool:
    """True for None, NaN and empty/whitespace strings."""
    if value is None:
        return True
    if isinstance(value, float) and math.isnan(value):
        return True
    if isinstance(value, str) and not value.strip():
        return True
    return False


def text(value: Any) -> str:
    """Return the value as a stripped string ('' when blank)."""
    if is_blank(value):
        return ""
    return str(value).strip()


def parse_float(value: Any, default: float = 0.0) -> float:
    """Parse a numeric field, returning default for anything unparsable.

    Accepts ints, floats, Decimals and strings with thousands separators or
    a rupee sign. Booleans, NaN and infinities count as unparsable.
    """
    if isinstance(value, bool) or is_blank(value):
        return default
    if isinstance(value, int | float | Decimal):
        number = float(value)
    elif isinstance(value, str):
        cleaned = value.strip().replace(",", "").replace("₹", "").replace(" ", "")
        try:
            number = float(cleaned)
        except ValueError:
            return default
    else:
        return default
    if math.isnan(number) or math.isinf(number):
        return default
    return number


def parse_int(value: Any, default: int = 0) -> int:
    """Parse an integer field (fractions truncate toward zero)."""
    number = parse_float(value, default=math.nan)
    if math.isnan(number):
        return default
    return int(number)


def parse_date(value: Any) -> datetime | None:
    """Parse a date-like field into an aware UTC datetime.

    Naive values are taken to be UTC. Returns None when the value is
    missing or in no recognized format.
    """
    if is_blank(value):
        return None

    parsed: datetime | None = None
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, date):
        parsed = datetime(value.year, value.month, value.day)
    elif isinstance(value, str):
        raw = value.strip()
        try:
            parsed = datetime.fromisoformat(raw.replace("Z", "+00:00"))
        except ValueError:
            for fmt in _DATE_FORMATS:
                try:
                    parsed = datetime.strptime(raw, fmt)
                    break
                except ValueError:
                    continue

    if parsed is None:
        return None
    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=UTC)
    return parsed.astimezone(UTC)


def days_since(value: Any, now: datetime) -> int:
    """Whole days elapsed between a date field and now (UNKNOWN_DAYS if unparsable)."""
    then = parse_date(value)
    if then is None:
        return UNKNOWN_DAYS
    if now.tzinfo is None:
        now = now.replace(tzinfo=UTC)
    return math.floor((now - then).total_seconds() / 86400)


def normalize_account_no(value: Any) -> str:
    """Render an account number as a stripped string.

    Spreadsheet readers turn numeric account columns into floats, so a
    whole-number float loses its '.0'.
    """
    if isinstance(value, float) and not math.isnan(value) and value.is_integer():
        return str(int(value))
    return text(value)


def normalize_record(record: Mapping[Any, Any]) -> dict[str, Any]:
    """Return a new record with canonical keys.

    When both a canonical key and one of its variants are present, the
    canonical key wins unless its value is blank.

    Args:
        record: Raw row from the spreadsheet reader

    Returns:
        New dict keyed by canonical field names; values are untouched
        except ACCOUNT_NO, which is normalized to a stripped string
    """
    normalized: dict[str, Any] = {}
    for raw_key, value in record.items():
        key = canonical_key(raw_key)
        current = normalized.get(key, _MISSING)
        if current is _MISSING or (is_blank(current) and not is_blank(value)):
            normalized[key] = value
        elif str(raw_key) == key and not is_blank(value):
            normalized[key] = value

    if ACCOUNT_KEY in normalized:
        normalized[ACCOUNT_KEY] = normalize_account_no(normalized[ACCOUNT_KEY])
    return normalized


def normalize_records(records: Iterable[Mapping[Any, Any]]) -> list[dict[str, Any]]:
    """Normalize every record and enforce a non-empty ACCOUNT_NO.

    Args:
        records: Raw rows

    Returns:
        Normalized records in input order

    Raises:
        InputValidationError: If there are no records, a row is not a
            mapping, or a row has no account number
    """
    if isinstance(records, Mapping) or isinstance(records, str):
        raise InputValidationError("Customers must be a list of records", field="customers")

    normalized: list[dict[str, Any]] = []
    for index, record in enumerate(records):
        if not isinstance(record, Mapping):
            raise InputValidationError(
                f"Row {index + 1}: expected a record mapping, got {type(record).__name__}",
                field="customers",
            )
        row = normalize_record(record)
        if not row.get(ACCOUNT_KEY):
            raise InputValidationError(
                f"Row {index + 1}: missing account number. "
                "Add an ACCOUNT_NO column (accountNo, Account No and accno are also accepted).",
                field=ACCOUNT_KEY,
            )
        normalized.append(row)

    if not normalized:
        raise InputValidationError("Customer data must be a non-empty list", field="customers")
    return normalized
