"""Rule evaluator for the five branch outreach issue types.

Each rule is a pure function of one normalized customer record and the
evaluation time. Rules never raise on dirty data: unparsable numbers count
as 0 (DAYS_TO_EXPIRY as 9999) and unparsable dates count as 9999 days old.
All string comparisons are case-insensitive.

Rules:
- account_closure: BALANCE <= 100, or no transaction for more than 90 days
- kyc_update: missing EMAIL or MOBILE, or KYC_STATUS expired/pending/empty
- loan_default: OUTSTANDING_AMOUNT > 0
- fee_waiver: AGE > 60, student account, or senior customer category
- document_expiry: DOC_STATUS expiring/expired, or DAYS_TO_EXPIRY <= 60

Usage:
    from outreach.classifier.rules import IssueType, evaluate

    outcome = evaluate(customer, IssueType.ACCOUNT_CLOSURE, now)
    if outcome.matches:
        print(outcome.priority, outcome.reason)
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import StrEnum
from typing import Any

import regex

from outreach.classifier.records import (
    UNKNOWN_DAYS,
    CustomerRecord,
    days_since,
    parse_float,
    parse_int,
    text,
)


class IssueType(StrEnum):
    """Business issue a customer can be classified under."""

    ACCOUNT_CLOSURE = "account_closure"
    KYC_UPDATE = "kyc_update"
    LOAN_DEFAULT = "loan_default"
    FEE_WAIVER = "fee_waiver"
    DOCUMENT_EXPIRY = "document_expiry"

    @classmethod
    def parse(cls, value: Any) -> IssueType | None:
        """Return the matching IssueType, or None for unknown values."""
        if isinstance(value, IssueType):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            return None


class Priority(StrEnum):
    """Outreach urgency for a matched customer."""

    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"

    @classmethod
    def parse(cls, value: Any) -> Priority | None:
        """Return the matching Priority, or None for unknown values."""
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            return None


# Thresholds
LOW_BALANCE_LIMIT = 100.0
MEDIUM_BALANCE_LIMIT = 50.0
DORMANT_AFTER_DAYS = 90
HIGH_OUTSTANDING = 100_000.0
MEDIUM_OUTSTANDING = 10_000.0
SENIOR_AGE = 60
EXPIRY_WINDOW_DAYS = 60

# Plain-language summary of each rule, for listings and help text
RULE_CRITERIA: dict[IssueType, str] = {
    IssueType.ACCOUNT_CLOSURE: (
        f"Balance ≤ ₹{LOW_BALANCE_LIMIT:,.0f} or no transactions for more than "
        f"{DORMANT_AFTER_DAYS} days"
    ),
    IssueType.KYC_UPDATE: "Missing email or mobile, or KYC status expired, pending or not recorded",
    IssueType.LOAN_DEFAULT: "Outstanding loan amount above ₹0",
    IssueType.FEE_WAIVER: (
        f"Age above {SENIOR_AGE}, senior citizen category, or student account"
    ),
    IssueType.DOCUMENT_EXPIRY: (
        f"Document expired, marked expiring, or expiring within {EXPIRY_WINDOW_DAYS} days"
    ),
}


@dataclass(frozen=True, slots=True)
class RuleOutcome:
    """Result of evaluating one customer against one rule.

    Attributes:
        matches: Whether the customer is affected by the issue
        priority: Outreach priority (meaningful only when matches is True)
        reason: Human-readable explanation
    """

    matches: bool
    priority: Priority
    reason: str


NO_MATCH = RuleOutcome(matches=False, priority=Priority.LOW, reason="No rule criteria met")


def evaluate(
    customer: CustomerRecord,
    issue_type: IssueType | str,
    now: datetime,
) -> RuleOutcome:
    """Evaluate a normalized customer record against the rule for an issue type.

    Args:
        customer: Normalized customer record (canonical keys)
        issue_type: Issue to check; unknown values never match
        now: Evaluation time for date-based rules

    Returns:
        RuleOutcome with match flag, priority and reason
    """
    parsed = IssueType.parse(issue_type)
    if parsed is None:
        return RuleOutcome(matches=False, priority=Priority.LOW, reason="Unknown issue type")

    match parsed:
        case IssueType.ACCOUNT_CLOSURE:
            return _account_closure(customer, now)
        case IssueType.KYC_UPDATE:
            return _kyc_update(customer)
        case IssueType.LOAN_DEFAULT:
            return _loan_default(customer)
        case IssueType.FEE_WAIVER:
            return _fee_waiver(customer)
        case IssueType.DOCUMENT_EXPIRY:
            return _document_expiry(customer)


def _account_closure(customer: CustomerRecord, now: datetime) -> RuleOutcome:
    balance = parse_float(customer.get("BALANCE"))
    idle_days = days_since(customer.get("LAST_TRANSACTION"), now)

    low_balance = balance <= LOW_BALANCE_LIMIT
    dormant = idle_days > DORMANT_AFTER_DAYS
    if not (low_balance or dormant):
        return NO_MATCH

    if balance == 0:
        priority = Priority.HIGH
    elif 0 < balance < MEDIUM_BALANCE_LIMIT:
        priority = Priority.MEDIUM
    else:
        priority = Priority.LOW

    if balance == 0:
        reason = "Zero balance account"
    elif low_balance:
        reason = "Low balance account"
    elif idle_days >= UNKNOWN_DAYS:
        reason = "No recorded transactions"
    else:
        reason = f"No transactions for {idle_days} days"
    return RuleOutcome(matches=True, priority=priority, reason=reason)


def _kyc_update(customer: CustomerRecord) -> RuleOutcome:
    email = text(customer.get("EMAIL"))
    mobile = text(customer.get("MOBILE"))
    status = text(customer.get("KYC_STATUS"))

    status_flagged = not status or bool(
        regex.search(r"expired|pending", status, flags=regex.IGNORECASE, timeout=1)
    )
    if email and mobile and not status_flagged:
        return NO_MATCH

    expired = status.lower() == "expired"
    if not email and not mobile:
        priority = Priority.HIGH
    elif expired:
        priority = Priority.MEDIUM
    else:
        priority = Priority.LOW

    issues = []
    if not email:
        issues.append("missing email")
    if not mobile:
        issues.append("missing mobile")
    if not status:
        issues.append("KYC status not recorded")
    elif regex.search(r"expired", status, flags=regex.IGNORECASE, timeout=1):
        issues.append("expired KYC")
    elif regex.search(r"pending", status, flags=regex.IGNORECASE, timeout=1):
        issues.append("pending KYC")
    reason = ", ".join(issues) if issues else "KYC update required"
    return RuleOutcome(matches=True, priority=priority, reason=reason)


def _loan_default(customer: CustomerRecord) -> RuleOutcome:
    outstanding = parse_float(customer.get("OUTSTANDING_AMOUNT"))
    if outstanding <= 0:
        return NO_MATCH

    if outstanding > HIGH_OUTSTANDING:
        priority = Priority.HIGH
    elif outstanding > MEDIUM_OUTSTANDING:
        priority = Priority.MEDIUM
    else:
        priority = Priority.LOW
    return RuleOutcome(
        matches=True,
        priority=priority,
        reason=f"Outstanding amount: ₹{outstanding:,.2f}",
    )


def _fee_waiver(customer: CustomerRecord) -> RuleOutcome:
    age = parse_int(customer.get("AGE"))
    account_type = text(customer.get("ACCOUNT_TYPE")).lower()
    category = text(customer.get("CUSTOMER_CATEGORY")).lower()

    if age > SENIOR_AGE:
        reason = "Senior citizen"
    elif account_type == "student":
        reason = "Student account"
    elif "senior" in category:
        reason = "Senior citizen category"
    else:
        return NO_MATCH
    return RuleOutcome(matches=True, priority=Priority.MEDIUM, reason=reason)


def _document_expiry(customer: CustomerRecord) -> RuleOutcome:
    status = text(customer.get("DOC_STATUS")).lower()
    days_left = parse_int(customer.get("DAYS_TO_EXPIRY"), default=UNKNOWN_DAYS)

    if status == "expired":
        reason = "Document expired"
    elif days_left <= EXPIRY_WINDOW_DAYS:
        reason = f"Document expires in {days_left} days"
    elif status == "expiring":
        reason = "Document expiring soon"
    else:
        return NO_MATCH
    return RuleOutcome(matches=True, priority=Priority.MEDIUM, reason=reason)
