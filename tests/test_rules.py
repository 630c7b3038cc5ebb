"""Tests for the per-issue rule evaluator.

Each rule is a pure function of (normalized record, issue type, now), so the
tests build records inline and evaluate against a fixed date.
"""

from datetime import datetime
from typing import Any

import pytest

from outreach.classifier.records import normalize_record
from outreach.classifier.rules import IssueType, Priority, evaluate


def _eval(customer: dict[str, Any], issue: str, now: datetime):
    return evaluate(normalize_record({"ACCOUNT_NO": "A1", **customer}), issue, now)


class TestIssueType:
    def test_parse_is_case_insensitive(self) -> None:
        assert IssueType.parse(" KYC_Update ") is IssueType.KYC_UPDATE

    def test_parse_unknown_returns_none(self) -> None:
        assert IssueType.parse("overdraft") is None

    def test_unknown_issue_never_matches(self, now: datetime) -> None:
        outcome = _eval({"BALANCE": 0}, "overdraft", now)
        assert outcome.matches is False


# ---------------------------------------------------------------------------
# account_closure
# ---------------------------------------------------------------------------


class TestAccountClosure:
    """Low balance or dormancy."""

    def test_zero_balance_is_high(self, now: datetime) -> None:
        outcome = _eval({"BALANCE": 0}, "account_closure", now)
        assert outcome.matches
        assert outcome.priority is Priority.HIGH
        assert outcome.reason == "Zero balance account"

    def test_small_positive_balance_is_medium(self, now: datetime) -> None:
        outcome = _eval({"BALANCE": 20, "LAST_TRANSACTION": "2024-12-20"}, "account_closure", now)
        assert outcome.matches
        assert outcome.priority is Priority.MEDIUM
        assert outcome.reason == "Low balance account"

    def test_balance_at_limit_matches_low(self, now: datetime) -> None:
        outcome = _eval({"BALANCE": 100, "LAST_TRANSACTION": "2024-12-20"}, "account_closure", now)
        assert outcome.matches
        assert outcome.priority is Priority.LOW

    def test_dormant_account_with_healthy_balance(self, now: datetime) -> None:
        outcome = _eval(
            {"BALANCE": 500, "LAST_TRANSACTION": "2024-01-01"}, "account_closure", now
        )
        assert outcome.matches
        assert outcome.priority is Priority.LOW
        assert outcome.reason == "No transactions for 366 days"

    def test_active_healthy_account_does_not_match(self, now: datetime) -> None:
        outcome = _eval(
            {"BALANCE": 500, "LAST_TRANSACTION": "2024-12-15"}, "account_closure", now
        )
        assert not outcome.matches

    def test_missing_transaction_date_counts_as_dormant(self, now: datetime) -> None:
        outcome = _eval({"BALANCE": 5000}, "account_closure", now)
        assert outcome.matches
        assert outcome.reason == "No recorded transactions"

    def test_balance_string_with_separators(self, now: datetime) -> None:
        outcome = _eval(
            {"BALANCE": "1,500.00", "LAST_TRANSACTION": "2024-12-31"}, "account_closure", now
        )
        assert not outcome.matches


# ---------------------------------------------------------------------------
# kyc_update
# ---------------------------------------------------------------------------


class TestKycUpdate:
    """Missing contact details or expired/pending KYC."""

    def test_complete_and_verified_does_not_match(self, now: datetime) -> None:
        outcome = _eval(
            {"EMAIL": "a@b.com", "MOBILE": "98", "KYC_STATUS": "Verified"}, "kyc_update", now
        )
        assert not outcome.matches

    def test_no_contact_details_is_high(self, now: datetime) -> None:
        outcome = _eval({"KYC_STATUS": "Verified"}, "kyc_update", now)
        assert outcome.matches
        assert outcome.priority is Priority.HIGH
        assert outcome.reason == "missing email, missing mobile"

    def test_expired_kyc_is_medium(self, now: datetime) -> None:
        outcome = _eval({"MOBILE": "98", "KYC_STATUS": "Expired"}, "kyc_update", now)
        assert outcome.priority is Priority.MEDIUM
        assert outcome.reason == "missing email, expired KYC"

    def test_pending_kyc_is_low(self, now: datetime) -> None:
        outcome = _eval(
            {"EMAIL": "a@b.com", "MOBILE": "98", "KYC_STATUS": "Pending review"}, "kyc_update", now
        )
        assert outcome.matches
        assert outcome.priority is Priority.LOW
        assert outcome.reason == "pending KYC"

    def test_missing_status_matches(self, now: datetime) -> None:
        outcome = _eval({"EMAIL": "a@b.com", "MOBILE": "98"}, "kyc_update", now)
        assert outcome.matches
        assert outcome.reason == "KYC status not recorded"


# ---------------------------------------------------------------------------
# loan_default
# ---------------------------------------------------------------------------


class TestLoanDefault:
    @pytest.mark.parametrize(
        ("amount", "priority"),
        [
            (150000, Priority.HIGH),
            (50000, Priority.MEDIUM),
            (10000, Priority.LOW),
            (1, Priority.LOW),
        ],
    )
    def test_priority_by_outstanding(self, now: datetime, amount: int, priority: Priority) -> None:
        outcome = _eval({"OUTSTANDING_AMOUNT": amount}, "loan_default", now)
        assert outcome.matches
        assert outcome.priority is priority

    def test_reason_formats_amount(self, now: datetime) -> None:
        outcome = _eval({"OUTSTANDING_AMOUNT": 150000}, "loan_default", now)
        assert outcome.reason == "Outstanding amount: ₹150,000.00"

    def test_nothing_outstanding(self, now: datetime) -> None:
        assert not _eval({"OUTSTANDING_AMOUNT": 0}, "loan_default", now).matches
        assert not _eval({}, "loan_default", now).matches


# ---------------------------------------------------------------------------
# fee_waiver / document_expiry
# ---------------------------------------------------------------------------


class TestFeeWaiver:
    def test_senior_by_age(self, now: datetime) -> None:
        outcome = _eval({"AGE": 67}, "fee_waiver", now)
        assert outcome.matches
        assert outcome.priority is Priority.MEDIUM
        assert outcome.reason == "Senior citizen"

    def test_age_sixty_is_not_senior(self, now: datetime) -> None:
        assert not _eval({"AGE": 60}, "fee_waiver", now).matches

    def test_student_account(self, now: datetime) -> None:
        outcome = _eval({"AGE": 20, "ACCOUNT_TYPE": "Student"}, "fee_waiver", now)
        assert outcome.reason == "Student account"

    def test_senior_category(self, now: datetime) -> None:
        outcome = _eval({"CUSTOMER_CATEGORY": "Senior Citizen"}, "fee_waiver", now)
        assert outcome.reason == "Senior citizen category"


class TestDocumentExpiry:
    def test_expired_status(self, now: datetime) -> None:
        outcome = _eval({"DOC_STATUS": "EXPIRED"}, "document_expiry", now)
        assert outcome.matches
        assert outcome.reason == "Document expired"

    def test_within_window(self, now: datetime) -> None:
        outcome = _eval({"DAYS_TO_EXPIRY": 45}, "document_expiry", now)
        assert outcome.reason == "Document expires in 45 days"

    def test_zero_days_is_not_missing(self, now: datetime) -> None:
        outcome = _eval({"DAYS_TO_EXPIRY": 0}, "document_expiry", now)
        assert outcome.matches
        assert outcome.reason == "Document expires in 0 days"

    def test_expiring_status_outside_window(self, now: datetime) -> None:
        outcome = _eval({"DOC_STATUS": "expiring", "DAYS_TO_EXPIRY": 90}, "document_expiry", now)
        assert outcome.reason == "Document expiring soon"

    def test_missing_fields_do_not_match(self, now: datetime) -> None:
        assert not _eval({}, "document_expiry", now).matches
        assert not _eval({"DAYS_TO_EXPIRY": 120}, "document_expiry", now).matches
