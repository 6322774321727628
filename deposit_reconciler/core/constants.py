"""Shared enumerations and operator-facing messages."""

import enum


class SettlementStatus(str, enum.Enum):
    PENDING = "Pending"
    DONE = "Done"
    VOID = "Void"


class CreditDebit(str, enum.Enum):
    CREDIT = "CR"
    DEBIT = "DR"


class TransactionType(str, enum.Enum):
    PURCHASE = "Purchase"
    REFUND = "Refund"
    AUTH = "Auth"
    COMPLETE = "Complete"
    VOID = "Void"


class LedgerEntryKind(str, enum.Enum):
    CUSTOMER_PAYMENT = "customer_payment"
    CASH_SALE = "cash_sale"


class ScheduleFrequency(str, enum.Enum):
    DAILY = "daily"
    WEEKLY = "weekly"


class Environment(str, enum.Enum):
    PRODUCTION = "production"
    UAT = "uat"


# Match outcomes
REFUND_REQUIRES_MANUAL = "Refund transactions require manual handling"
NO_PENDING_DEPOSIT = "No matched transactions pending deposit"
NO_UNDEPOSITED_PAYMENTS = (
    "No payments found in undeposited funds. "
    "Payments may have already been deposited elsewhere."
)
LOW_BUDGET = "Processing stopped due to low budget"
NO_ACTIVE_CONFIGURATION = "No active reconciliation configuration found"

# Notification subjects
SUBJECT_SUCCESS = "Settlement Processing Complete"
SUBJECT_ERRORS = "Settlement Processing - Errors Detected"

UNDEPOSITED_ACCOUNT_MARKER = "undeposited"
