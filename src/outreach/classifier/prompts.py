"""Prompt builder and tool definition for external customer scoring.

The scorer sends rule-matched customers to Claude and forces a
`score_customers` tool call so the response is structured. Only the fields
relevant to the issue type (plus the account number) are sent; names,
addresses and contact details stay out of the prompt.

Usage:
    from outreach.classifier.prompts import SCORE_CUSTOMERS_TOOL, build_user_message

    message = build_user_message(customers, IssueType.KYC_UPDATE, today)
"""

from __future__ import annotations

import json
from collections.abc import Mapping, Sequence
from datetime import date
from typing import Any

from outreach.classifier.records import ACCOUNT_KEY, is_blank
from outreach.classifier.rules import IssueType

# ---------------------------------------------------------------------------
# Tool definition
# ---------------------------------------------------------------------------

SCORE_CUSTOMERS_TOOL: dict[str, Any] = {
    "name": "score_customers",
    "description": "Score how strongly each customer is affected by the banking issue",
    "input_schema": {
        "type": "object",
        "properties": {
            "analysis": {
                "type": "array",
                "items": {
                    "type": "object",
                    "properties": {
                        "account_no": {
                            "type": "string",
                            "description": "Account number exactly as given",
                        },
                        "confidence": {
                            "type": "number",
                            "minimum": 0.0,
                            "maximum": 1.0,
                            "description": "How certain it is that this customer is affected",
                        },
                        "priority": {"type": "string", "enum": ["high", "medium", "low"]},
                        "reason": {
                            "type": "string",
                            "description": "One sentence naming the specific issue",
                        },
                        "recommendation": {
                            "type": "string",
                            "description": "Suggested next action for branch staff",
                        },
                    },
                    "required": ["account_no", "confidence", "priority", "reason"],
                },
            },
            "summary": {
                "type": "object",
                "properties": {
                    "total_analyzed": {"type": "integer"},
                    "high_priority": {"type": "integer"},
                    "medium_priority": {"type": "integer"},
                    "low_priority": {"type": "integer"},
                    "average_confidence": {"type": "number"},
                    "key_insights": {"type": "array", "items": {"type": "string"}},
                    "recommendations": {"type": "array", "items": {"type": "string"}},
                },
            },
        },
        "required": ["analysis"],
    },
}

ISSUE_DESCRIPTIONS: dict[IssueType, str] = {
    IssueType.ACCOUNT_CLOSURE: "accounts that should be closed due to inactivity or zero balance",
    IssueType.KYC_UPDATE: "customers who need to update their KYC documents",
    IssueType.LOAN_DEFAULT: "customers with overdue loan payments",
    IssueType.FEE_WAIVER: "customers eligible for fee waivers (senior citizens, students)",
    IssueType.DOCUMENT_EXPIRY: "customers with expiring identity or address documents",
}

# Fields sent to the scorer per issue type (ACCOUNT_NO is always included)
RELEVANT_FIELDS: dict[IssueType, tuple[str, ...]] = {
    IssueType.ACCOUNT_CLOSURE: ("BALANCE", "LAST_TRANSACTION", "ACCOUNT_TYPE", "ACCOUNT_AGE"),
    IssueType.KYC_UPDATE: ("KYC_STATUS", "LAST_KYC_UPDATE", "EMAIL", "MOBILE"),
    IssueType.LOAN_DEFAULT: ("OUTSTANDING_AMOUNT", "EMI_AMOUNT", "DUE_DATE", "DAYS_OVERDUE"),
    IssueType.FEE_WAIVER: ("AGE", "ACCOUNT_TYPE", "CUSTOMER_CATEGORY"),
    IssueType.DOCUMENT_EXPIRY: ("DOC_TYPE", "DOC_STATUS", "DOC_EXPIRY", "DAYS_TO_EXPIRY"),
}

# Contact fields are reduced to presence flags before sending
_PRESENCE_ONLY = frozenset({"EMAIL", "MOBILE"})


def build_system_prompt(bank_name: str) -> str:
    """Build the scorer system prompt.

    Args:
        bank_name: Bank name used to set the analyst persona

    Returns:
        System prompt text
    """
    return (
        f"You are an expert banking analyst for {bank_name}. You review customer "
        "records that a rule-based filter has already flagged and judge how strongly "
        "each customer is really affected.\n\n"
        "Banking context:\n"
        "- Account closure: consider balance, transaction history, account age\n"
        "- KYC update: look for missing information, expired documents, compliance gaps\n"
        "- Loan default: focus on outstanding amounts and overdue status\n"
        "- Fee waiver: consider customer category, age, account type\n"
        "- Document expiry: check document validity and upcoming renewals\n\n"
        "Score every customer you are given exactly once using the score_customers tool. "
        "Copy account numbers exactly."
    )


def compact_customer(customer: Mapping[str, Any], issue_type: IssueType) -> dict[str, Any]:
    """Reduce a record to the fields the scorer needs for this issue type."""
    compact: dict[str, Any] = {ACCOUNT_KEY: customer.get(ACCOUNT_KEY)}
    for field in RELEVANT_FIELDS[issue_type]:
        value = customer.get(field)
        if field in _PRESENCE_ONLY:
            compact[f"HAS_{field}"] = not is_blank(value)
        elif not is_blank(value):
            compact[field] = value
    return compact


def build_user_message(
    customers: Sequence[Mapping[str, Any]],
    issue_type: IssueType,
    today: date,
) -> str:
    """Build the per-request user message.

    Args:
        customers: Normalized, rule-matched customer records
        issue_type: Issue being scored
        today: Current date for date arithmetic

    Returns:
        User message text
    """
    payload = [compact_customer(customer, issue_type) for customer in customers]
    return (
        f"Identify {ISSUE_DESCRIPTIONS[issue_type]}.\n\n"
        f"Issue type: {issue_type.value}\n"
        f"Current date: {today.isoformat()}\n"
        f"Customers ({len(payload)}):\n"
        f"{json.dumps(payload, indent=2, default=str, ensure_ascii=False)}\n\n"
        "For each customer give a confidence score (0.0-1.0), a priority "
        "(high/medium/low), a specific reason and a recommended action, then a summary."
    )
