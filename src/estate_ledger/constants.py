"""Enumerations and fixed financial rules shared across Estate Ledger modules.

The data access layer, the business logic layer, and the CLI all read their
status vocabularies and commission rates from here so that a persisted
snapshot always round-trips through the same identifiers.
"""

from __future__ import annotations

from decimal import Decimal
from enum import Enum


# Central schema version expected by all layers when validating config files.
EXPECTED_SCHEMA_VERSION = "1.0.0"

# Version written into wrapped snapshot exports.
EXPORT_FORMAT_VERSION = "1.0"

AGENCY_COMMISSION_RATE = Decimal("0.05")
AGENT_COMMISSION_RATE = Decimal("0.025")

# Noise margin applied before an installment account is flagged overdue.
OVERDUE_TOLERANCE = Decimal("10")

DEFAULT_DURATION_MONTHS = 12
DEFAULT_STAND_SIZE = Decimal("500")


class UserRole(str, Enum):
    """Roles a user of the agency can hold."""

    ADMIN = "ADMIN"
    AGENT = "AGENT"
    DEVELOPER = "DEVELOPER"


class StandStatus(str, Enum):
    """Inventory status of a stand.

    ``RESERVED`` is a legal stored value but no command transitions into it.
    """

    AVAILABLE = "AVAILABLE"
    RESERVED = "RESERVED"
    SOLD = "SOLD"


class SaleStatus(str, Enum):
    """Display label of a sale; only ``CANCELLED`` is driven by the engine."""

    PENDING = "PENDING"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"


class PaymentType(str, Enum):
    """Enumerate the kinds of payment recorded against a sale."""

    DEPOSIT = "DEPOSIT"
    INSTALLMENT = "INSTALLMENT"
    FULL_PAYMENT = "FULL_PAYMENT"


class CommissionStatus(str, Enum):
    PENDING = "PENDING"
    PAID = "PAID"


class AgreementStatus(str, Enum):
    DRAFT = "DRAFT"
    PENDING_APPROVAL = "PENDING_APPROVAL"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"


class NotificationType(str, Enum):
    INFO = "INFO"
    WARNING = "WARNING"
    SUCCESS = "SUCCESS"
    ALERT = "ALERT"


class AccountStatus(str, Enum):
    """Health classification produced by the installment projection."""

    PAID = "PAID"
    CURRENT = "CURRENT"
    OVERDUE = "OVERDUE"


class AuditAction(str, Enum):
    """Action codes written to the audit trail."""

    ADD_USER = "ADD_USER"
    ADD_CLIENT = "ADD_CLIENT"
    DELETE_CLIENT = "DELETE_CLIENT"
    ADD_DEVELOPER = "ADD_DEVELOPER"
    UPDATE_DEVELOPER = "UPDATE_DEVELOPER"
    DELETE_DEVELOPER = "DELETE_DEVELOPER"
    ADD_STAND = "ADD_STAND"
    DELETE_STAND = "DELETE_STAND"
    ADD_SALE = "ADD_SALE"
    CANCEL_SALE = "CANCEL_SALE"
    COMPLETE_SALE = "COMPLETE_SALE"
    ADD_PAYMENT = "ADD_PAYMENT"
    PAY_COMMISSION = "PAY_COMMISSION"
    ADD_TEMPLATE = "ADD_TEMPLATE"
    CREATE_AGREEMENT = "CREATE_AGREEMENT"
    UPDATE_AGREEMENT = "UPDATE_AGREEMENT"
    CREATE_BACKUP = "CREATE_BACKUP"
    IMPORT_DATA = "IMPORT_DATA"


class CollectionName(str, Enum):
    """Enumerate the snapshot collections managed by the DAL."""

    USERS = "users"
    CLIENTS = "clients"
    DEVELOPERS = "developers"
    STANDS = "stands"
    SALES = "sales"
    PAYMENTS = "payments"
    COMMISSIONS = "commissions"
    AGREEMENTS = "agreements"
    TEMPLATES = "templates"
    AUDIT_LOGS = "auditLogs"
    NOTIFICATIONS = "notifications"
    BACKUPS = "backups"
    RELEASE_NOTES = "releaseNotes"


__all__ = [
    "EXPECTED_SCHEMA_VERSION",
    "EXPORT_FORMAT_VERSION",
    "AGENCY_COMMISSION_RATE",
    "AGENT_COMMISSION_RATE",
    "OVERDUE_TOLERANCE",
    "DEFAULT_DURATION_MONTHS",
    "DEFAULT_STAND_SIZE",
    "UserRole",
    "StandStatus",
    "SaleStatus",
    "PaymentType",
    "CommissionStatus",
    "AgreementStatus",
    "NotificationType",
    "AccountStatus",
    "AuditAction",
    "CollectionName",
]
