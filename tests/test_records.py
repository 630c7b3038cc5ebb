"""Tests for customer record normalization and field parsing."""

from datetime import UTC, date, datetime

import pytest

from outreach.classifier.records import (
    UNKNOWN_DAYS,
    canonical_key,
    days_since,
    normalize_record,
    normalize_records,
    parse_date,
    parse_float,
    parse_int,
)
from outreach.core.errors import InputValidationError

# ---------------------------------------------------------------------------
# canonical_key
# ---------------------------------------------------------------------------


class TestCanonicalKey:
    """Tests for column name canonicalization."""

    @pytest.mark.parametrize(
        "raw",
        ["ACCOUNT_NO", "accountNo", "Account No", "accno", "ACC_NO", "account number", "A/C No"],
    )
    def test_account_number_variants(self, raw: str) -> None:
        assert canonical_key(raw) == "ACCOUNT_NO"

    def test_camel_case_becomes_upper_snake(self) -> None:
        assert canonical_key("lastTransaction") == "LAST_TRANSACTION"
        assert canonical_key("kycStatus") == "KYC_STATUS"

    @pytest.mark.parametrize(
        ("raw", "expected"),
        [("KYCStatus", "KYC_STATUS"), ("DOCStatus", "DOC_STATUS"), ("PANNumber", "PAN_NUMBER")],
    )
    def test_leading_acronym_is_split(self, raw: str, expected: str) -> None:
        assert canonical_key(raw) == expected

    def test_spaces_and_punctuation(self) -> None:
        assert canonical_key("  Days to Expiry ") == "DAYS_TO_EXPIRY"
        assert canonical_key("doc-status") == "DOC_STATUS"


# ---------------------------------------------------------------------------
# Numeric and date parsing
# ---------------------------------------------------------------------------


class TestParsing:
    """Tests for tolerant field parsing."""

    def test_parse_float_handles_separators_and_rupee(self) -> None:
        assert parse_float("1,250.50") == 1250.5
        assert parse_float("₹ 2,000") == 2000.0

    def test_parse_float_defaults_on_garbage(self) -> None:
        assert parse_float("n/a") == 0.0
        assert parse_float(None) == 0.0
        assert parse_float(float("nan")) == 0.0
        assert parse_float(True) == 0.0
        assert parse_float("abc", default=-1.0) == -1.0

    def test_parse_int_truncates(self) -> None:
        assert parse_int("61.9") == 61
        assert parse_int("") == 0
        assert parse_int("x", default=UNKNOWN_DAYS) == UNKNOWN_DAYS

    def test_parse_int_keeps_zero(self) -> None:
        """A present zero is a value, not a missing field."""
        assert parse_int(0, default=UNKNOWN_DAYS) == 0

    def test_parse_date_formats(self) -> None:
        expected = datetime(2024, 3, 15, tzinfo=UTC)
        assert parse_date("2024-03-15") == expected
        assert parse_date("15/03/2024") == expected
        assert parse_date("15-Mar-2024") == expected
        assert parse_date(date(2024, 3, 15)) == expected

    def test_parse_date_unparsable(self) -> None:
        assert parse_date("someday") is None
        assert parse_date(None) is None

    def test_days_since(self, now: datetime) -> None:
        assert days_since("2024-12-01", now) == 31
        assert days_since("2024-01-01", now) == 366
        assert days_since(None, now) == UNKNOWN_DAYS
        assert days_since("not a date", now) == UNKNOWN_DAYS


# ---------------------------------------------------------------------------
# Record normalization
# ---------------------------------------------------------------------------


class TestNormalizeRecord:
    """Tests for normalize_record / normalize_records."""

    def test_keys_are_canonicalized(self) -> None:
        record = normalize_record({"accountNo": "  A1 ", "name": "Ravi", "kycStatus": "Expired"})
        assert record == {"ACCOUNT_NO": "A1", "NAME": "Ravi", "KYC_STATUS": "Expired"}

    def test_float_account_number_loses_decimal(self) -> None:
        assert normalize_record({"ACCOUNT_NO": 12345.0})["ACCOUNT_NO"] == "12345"

    def test_canonical_key_wins_over_variant(self) -> None:
        record = normalize_record({"accno": "OLD", "ACCOUNT_NO": "NEW"})
        assert record["ACCOUNT_NO"] == "NEW"

    def test_blank_canonical_value_is_filled_by_variant(self) -> None:
        record = normalize_record({"ACCOUNT_NO": "", "accountNo": "A9"})
        assert record["ACCOUNT_NO"] == "A9"

    def test_input_is_not_mutated(self) -> None:
        raw = {"accountNo": "A1"}
        normalize_record(raw)
        assert raw == {"accountNo": "A1"}

    def test_records_keep_order(self) -> None:
        rows = normalize_records([{"ACCOUNT_NO": "B"}, {"ACCOUNT_NO": "A"}])
        assert [r["ACCOUNT_NO"] for r in rows] == ["B", "A"]

    def test_empty_list_rejected(self) -> None:
        with pytest.raises(InputValidationError) as exc_info:
            normalize_records([])
        assert exc_info.value.field == "customers"

    def test_missing_account_number_rejected(self) -> None:
        with pytest.raises(InputValidationError, match="Row 2"):
            normalize_records([{"ACCOUNT_NO": "A1"}, {"NAME": "No Account"}])

    def test_non_mapping_row_rejected(self) -> None:
        with pytest.raises(InputValidationError):
            normalize_records([{"ACCOUNT_NO": "A1"}, "not a row"])
