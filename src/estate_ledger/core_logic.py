"""Business logic layer for Estate Ledger.

This module keeps stand inventory, sales, the payment ledger and commission
records consistent with one another. Every mutation goes through a command
function that validates its preconditions before touching the snapshot, so a
rejected command leaves the store exactly as it found it. All file I/O is
delegated to :mod:`estate_ledger.data_manager`.
"""

from __future__ import annotations

import threading
import uuid
from dataclasses import dataclass, field, fields, replace
from datetime import UTC, date, datetime
from decimal import Decimal
from pathlib import Path
from typing import List, Optional, Tuple

from . import data_manager, log
from .constants import (
    AGENCY_COMMISSION_RATE,
    AGENT_COMMISSION_RATE,
    DEFAULT_STAND_SIZE,
    EXPECTED_SCHEMA_VERSION,
    AuditAction,
    CommissionStatus,
    NotificationType,
    PaymentType,
    SaleStatus,
    StandStatus,
    UserRole,
)
from .data_manager import (
    BackupRecord,
    ClientRecord,
    CommissionRecord,
    DeveloperRecord,
    PaymentRecord,
    SaleRecord,
    StandRecord,
    UserRecord,
)
from .projections import (
    EMPTY_PROJECTION,
    InstallmentProjection,
    InstallmentSummary,
    project_account,
    summarize_accounts,
    total_paid_for,
)
from .terms import resolve_deposit

ZERO = Decimal("0")


class BusinessRuleViolation(Exception):
    """Raised when a requested operation violates a domain constraint."""


class MissingReferenceError(BusinessRuleViolation):
    """Raised when a referenced developer, stand, client, user, sale, or
    commission is unknown."""


@dataclass(frozen=True)
class RuntimeContext:
    """Settings plus the single owned snapshot every command operates on.

    ``lock`` is the only coordination point for the snapshot: commands and
    queries hold it for their whole duration, which keeps a command atomic
    relative to every other caller sharing the context.
    """

    settings: data_manager.ConfigSettings
    snapshot: data_manager.Snapshot
    lock: threading.RLock = field(default_factory=threading.RLock, repr=False, compare=False)


@dataclass(frozen=True)
class DeveloperCommand:
    """User intent for creating or editing a developer."""

    name: str
    contact_person: str = "Pending"
    email: str = "pending@example.com"
    total_stands: int = 0
    deposit_terms: Optional[str] = None
    financing_terms: Optional[str] = None
    mandate_holder_id: Optional[str] = None


@dataclass(frozen=True)
class StandCommand:
    """User intent for adding a single stand."""

    developer_id: str
    stand_number: str
    price: Decimal
    size: Decimal = DEFAULT_STAND_SIZE
    deposit_required: Optional[Decimal] = None
    financing_terms: Optional[str] = None


@dataclass(frozen=True)
class BatchStandCommand:
    """User intent for generating a numbered range of stands."""

    developer_id: str
    start: int
    end: int
    price: Decimal
    size: Decimal = DEFAULT_STAND_SIZE
    deposit_required: Optional[Decimal] = None
    financing_terms: Optional[str] = None


@dataclass(frozen=True)
class ClientCommand:
    name: str
    id_number: str
    email: str = ""
    phone: str = ""
    address: str = ""


@dataclass(frozen=True)
class UserCommand:
    name: str
    email: str
    role: UserRole = UserRole.AGENT


@dataclass(frozen=True)
class SaleCommand:
    """User intent for selling a stand to a client through an agent."""

    stand_id: str
    client_id: str
    agent_id: str
    deposit_amount: Decimal = ZERO
    sale_date: Optional[date] = None
    timestamp: Optional[datetime] = None


@dataclass(frozen=True)
class PaymentCommand:
    """User intent for appending a payment to a sale's ledger."""

    sale_id: str
    amount: Decimal
    payment_type: PaymentType = PaymentType.INSTALLMENT
    reference: Optional[str] = None
    manual_receipt_no: Optional[str] = None
    payment_date: Optional[date] = None
    timestamp: Optional[datetime] = None


@dataclass(frozen=True)
class BatchResult:
    """Outcome of :func:`batch_add_stands`."""

    added: List[StandRecord]
    skipped: List[str]

    @property
    def added_count(self) -> int:
        return len(self.added)

    @property
    def skipped_count(self) -> int:
        return len(self.skipped)


@dataclass(frozen=True)
class SaleFinancials:
    price: Decimal
    paid: Decimal
    balance: Decimal


EMPTY_FINANCIALS = SaleFinancials(price=ZERO, paid=ZERO, balance=ZERO)


@dataclass(frozen=True)
class ClientStatement:
    """Everything needed to print a statement or receipt for one sale."""

    sale: SaleRecord
    client: Optional[ClientRecord]
    stand: Optional[StandRecord]
    developer: Optional[DeveloperRecord]
    payments: List[PaymentRecord]
    total_paid: Decimal
    outstanding: Decimal


def resolve_timestamp(candidate: Optional[datetime]) -> datetime:
    """Return ``candidate`` or, when it is ``None``, the current UTC time."""

    return candidate if candidate is not None else datetime.now(UTC)


def generate_record_id(prefix: str, *, when: Optional[datetime] = None) -> str:
    """Generate a sortable identifier such as ``SALE20240101120000000000-1a2b``.

    The timestamp part keeps identifiers in creation order; the random suffix
    keeps two records created in the same microsecond apart.
    """

    when = when or resolve_timestamp(None)
    return f"{prefix}{when.strftime('%Y%m%d%H%M%S%f')}-{uuid.uuid4().hex[:4]}"


def require_positive_money(amount: Decimal) -> None:
    """Validate that a monetary value is strictly positive.

    Raises:
        ValueError: If ``amount`` is zero or negative.
    """
    if amount <= ZERO:
        log.error("Monetary value validation failed (must be positive): %s", amount)
        raise ValueError("Amount must be greater than zero")


def require_nonnegative_money(amount: Decimal) -> None:
    """Validate that a monetary value is nonnegative.

    Raises:
        ValueError: If ``amount`` is less than zero.
    """
    if amount < ZERO:
        log.error("Monetary value validation failed: %s", amount)
        raise ValueError("Amount must be zero or positive")


# ---------------------------------------------------------------------------
# Runtime/context management
# ---------------------------------------------------------------------------


def load_runtime_context(config_path: Optional[Path] = None) -> RuntimeContext:
    """Load configuration settings and the persisted snapshot.

    The configuration file must exist. The snapshot need not: a missing or
    unreadable data file yields the default snapshot so the application can
    always start. When the configured current user exists in the snapshot it
    becomes the actor recorded in the audit trail.

    Args:
        config_path (Path | None): Optional override path for ``config.ini``.
            When omitted the data layer searches upward from the working
            directory.

    Returns:
        RuntimeContext: Context ready for command and query functions.

    Raises:
        FileNotFoundError: If the configuration file cannot be located.
        KeyError: When mandatory configuration options are missing.
    """
    located_config = data_manager.find_config_file(config_path)
    resolved_config = Path(located_config).expanduser().resolve()
    parser = data_manager.read_config(resolved_config)
    settings = data_manager.parse_settings(parser, base_path=resolved_config.parent)
    snapshot = data_manager.load_snapshot(settings.data_file)

    index = data_manager.locate_record(snapshot.users, "user_id", settings.current_user_id)
    if index is not None:
        snapshot.current_user = snapshot.users[index]
    log.info("Loaded runtime context for data file '%s'", settings.data_file)
    return RuntimeContext(settings=settings, snapshot=snapshot)


def ensure_schema_version(context: RuntimeContext) -> None:
    """Validate that the configuration targets the schema this code expects.

    Raises:
        RuntimeError: If the configured schema version differs from
            ``EXPECTED_SCHEMA_VERSION``.
    """
    if context.settings.schema_version != EXPECTED_SCHEMA_VERSION:
        log.error(
            "Schema mismatch: expected %s, found %s",
            EXPECTED_SCHEMA_VERSION,
            context.settings.schema_version,
        )
        raise RuntimeError(
            "Schema mismatch: expected %s, found %s"
            % (EXPECTED_SCHEMA_VERSION, context.settings.schema_version)
        )

    log.debug("Schema version '%s' validated", context.settings.schema_version)


def persist_context(context: RuntimeContext) -> bool:
    """Overwrite the configured data file with the full snapshot.

    A failed write is logged and reported through the return value; the
    in-memory state is kept as is.

    Returns:
        bool: ``True`` when the snapshot reached disk.
    """
    with context.lock:
        try:
            size = data_manager.save_snapshot(context.snapshot, context.settings.data_file)
        except OSError as exc:
            log.error("Failed to persist snapshot '%s': %s", context.settings.data_file, exc)
            return False
    log.info("Persisted snapshot '%s' (%s)", context.settings.data_file, data_manager.format_size(size))
    return True


def refresh_context(context: RuntimeContext) -> RuntimeContext:
    """Reload the snapshot from disk, discarding unsaved modifications.

    Returns:
        RuntimeContext: Fresh context sharing ``context.settings``.
    """
    snapshot = data_manager.load_snapshot(context.settings.data_file)
    index = data_manager.locate_record(snapshot.users, "user_id", context.settings.current_user_id)
    if index is not None:
        snapshot.current_user = snapshot.users[index]
    log.info("Reloaded snapshot '%s'", context.settings.data_file)
    return RuntimeContext(settings=context.settings, snapshot=snapshot)


def commit(context: RuntimeContext) -> None:
    if context.settings.auto_persist:
        persist_context(context)


def actor_id(context: RuntimeContext) -> str:
    current = context.snapshot.current_user
    return current.user_id if current is not None else context.settings.current_user_id


# ---------------------------------------------------------------------------
# Audit trail and notifications
# ---------------------------------------------------------------------------


def record_audit(context: RuntimeContext, action: AuditAction, details: str, *, when: Optional[datetime] = None) -> data_manager.AuditLogRecord:
    """Prepend a human-readable entry to the audit trail (newest first)."""

    timestamp = resolve_timestamp(when)
    entry = data_manager.AuditLogRecord(
        log_id=generate_record_id("LOG", when=timestamp),
        user_id=actor_id(context),
        action=action.value,
        timestamp=timestamp.isoformat(),
        details=details,
    )
    context.snapshot.audit_logs.insert(0, entry)
    return entry


def push_notification(
    context: RuntimeContext,
    title: str,
    message: str,
    notification_type: NotificationType = NotificationType.INFO,
    *,
    action_url: Optional[str] = None,
    when: Optional[datetime] = None,
) -> data_manager.NotificationRecord:
    """Prepend an unread notification (newest first)."""

    timestamp = resolve_timestamp(when)
    notification = data_manager.NotificationRecord(
        notification_id=generate_record_id("NOTIF", when=timestamp),
        title=title,
        message=message,
        notification_type=notification_type,
        timestamp=timestamp.isoformat(),
        read=False,
        action_url=action_url,
    )
    context.snapshot.notifications.insert(0, notification)
    return notification


def mark_notification_read(context: RuntimeContext, notification_id: str) -> None:
    with context.lock:
        notifications = context.snapshot.notifications
        index = data_manager.locate_record(notifications, "notification_id", notification_id)
        if index is None:
            log.warning("Notification lookup failed for id '%s'", notification_id)
            raise MissingReferenceError(f"Unknown notification id: {notification_id}")
        data_manager.replace_record(notifications, index, replace(notifications[index], read=True))
        commit(context)


def clear_notifications(context: RuntimeContext) -> int:
    with context.lock:
        removed = len(context.snapshot.notifications)
        context.snapshot.notifications.clear()
        commit(context)
    log.info("Cleared %d notifications", removed)
    return removed


# ---------------------------------------------------------------------------
# Lookups
# ---------------------------------------------------------------------------


def require_record(records: List, key_attr: str, key_value: str, label: str):
    index = data_manager.locate_record(records, key_attr, key_value)
    if index is None:
        log.warning("%s lookup failed for id '%s'", label.capitalize(), key_value)
        raise MissingReferenceError(f"Unknown {label} id: {key_value}")
    return records[index]


def get_developer(context: RuntimeContext, developer_id: str) -> DeveloperRecord:
    """Resolve a developer by id.

    Raises:
        MissingReferenceError: If ``developer_id`` is unknown.
    """
    with context.lock:
        return require_record(context.snapshot.developers, "developer_id", developer_id, "developer")


def get_stand(context: RuntimeContext, stand_id: str) -> StandRecord:
    """Resolve a stand by id.

    Raises:
        MissingReferenceError: If ``stand_id`` is unknown.
    """
    with context.lock:
        return require_record(context.snapshot.stands, "stand_id", stand_id, "stand")


def get_client(context: RuntimeContext, client_id: str) -> ClientRecord:
    with context.lock:
        return require_record(context.snapshot.clients, "client_id", client_id, "client")


def get_user(context: RuntimeContext, user_id: str) -> UserRecord:
    with context.lock:
        return require_record(context.snapshot.users, "user_id", user_id, "user")


def get_agent(context: RuntimeContext, agent_id: str) -> UserRecord:
    """Resolve a user and confirm the user is an agent.

    Raises:
        MissingReferenceError: If ``agent_id`` is unknown.
        BusinessRuleViolation: If the user does not hold the ``AGENT`` role.
    """
    user = get_user(context, agent_id)
    if user.role is not UserRole.AGENT:
        log.warning("User '%s' is not an agent (role=%s)", agent_id, user.role.value)
        raise BusinessRuleViolation(f"User '{agent_id}' is not an agent")
    return user


def get_sale(context: RuntimeContext, sale_id: str) -> SaleRecord:
    """Resolve a sale by id, cancelled sales included.

    Raises:
        MissingReferenceError: If ``sale_id`` is unknown.
    """
    with context.lock:
        return require_record(context.snapshot.sales, "sale_id", sale_id, "sale")


def get_commission(context: RuntimeContext, commission_id: str) -> CommissionRecord:
    with context.lock:
        return require_record(context.snapshot.commissions, "commission_id", commission_id, "commission")


def find_record(records: List, key_attr: str, key_value: Optional[str]):
    if key_value is None:
        return None
    index = data_manager.locate_record(records, key_attr, key_value)
    return None if index is None else records[index]


def list_stands(
    context: RuntimeContext,
    *,
    developer_id: Optional[str] = None,
    status: Optional[StandStatus] = None,
) -> List[StandRecord]:
    """Return stands in insertion order, optionally filtered."""
    with context.lock:
        return [
            stand
            for stand in context.snapshot.stands
            if (developer_id is None or stand.developer_id == developer_id)
            and (status is None or stand.status is status)
        ]


def list_sales(context: RuntimeContext, *, include_cancelled: bool = True) -> List[SaleRecord]:
    with context.lock:
        return [
            sale
            for sale in context.snapshot.sales
            if include_cancelled or sale.status is not SaleStatus.CANCELLED
        ]


def list_payments(context: RuntimeContext, *, sale_id: Optional[str] = None) -> List[PaymentRecord]:
    with context.lock:
        return [p for p in context.snapshot.payments if sale_id is None or p.sale_id == sale_id]


def list_commissions(
    context: RuntimeContext,
    *,
    agent_id: Optional[str] = None,
    status: Optional[CommissionStatus] = None,
) -> List[CommissionRecord]:
    with context.lock:
        return [
            commission
            for commission in context.snapshot.commissions
            if (agent_id is None or commission.agent_id == agent_id)
            and (status is None or commission.status is status)
        ]


def list_audit_logs(context: RuntimeContext, *, limit: Optional[int] = None) -> List[data_manager.AuditLogRecord]:
    with context.lock:
        entries = list(context.snapshot.audit_logs)
    return entries if limit is None else entries[:limit]


def list_notifications(context: RuntimeContext, *, unread_only: bool = False) -> List[data_manager.NotificationRecord]:
    with context.lock:
        return [n for n in context.snapshot.notifications if not (unread_only and n.read)]


# ---------------------------------------------------------------------------
# Users, clients and developers
# ---------------------------------------------------------------------------


def add_user(context: RuntimeContext, command: UserCommand, *, when: Optional[datetime] = None) -> UserRecord:
    timestamp = resolve_timestamp(when)
    user = UserRecord(
        user_id=generate_record_id("U", when=timestamp),
        name=command.name,
        role=command.role,
        email=command.email,
    )
    with context.lock:
        context.snapshot.users.append(user)
        record_audit(context, AuditAction.ADD_USER, f"Added user {user.name}", when=timestamp)
        commit(context)
    log.info("Added user '%s' (%s, role=%s)", user.user_id, user.name, user.role.value)
    return user


def add_client(context: RuntimeContext, command: ClientCommand, *, when: Optional[datetime] = None) -> ClientRecord:
    timestamp = resolve_timestamp(when)
    client = ClientRecord(
        client_id=generate_record_id("C", when=timestamp),
        name=command.name,
        email=command.email,
        phone=command.phone,
        id_number=command.id_number,
        address=command.address,
        date_added=timestamp.date(),
    )
    with context.lock:
        context.snapshot.clients.append(client)
        record_audit(context, AuditAction.ADD_CLIENT, f"Added client {client.name}", when=timestamp)
        commit(context)
    log.info("Added client '%s' (%s)", client.client_id, client.name)
    return client


def delete_client(context: RuntimeContext, client_id: str) -> ClientRecord:
    """Remove a client that has never bought anything.

    Raises:
        MissingReferenceError: If ``client_id`` is unknown.
        BusinessRuleViolation: If any sale, cancelled or not, references the
            client.
    """
    with context.lock:
        client = get_client(context, client_id)
        if any(sale.client_id == client_id for sale in context.snapshot.sales):
            log.error("Cannot delete client '%s': sales reference it", client_id)
            raise BusinessRuleViolation(f"Client '{client.name}' has sales and cannot be deleted")
        context.snapshot.clients.remove(client)
        record_audit(context, AuditAction.DELETE_CLIENT, f"Deleted client {client.name}")
        commit(context)
    log.info("Deleted client '%s'", client_id)
    return client


def _validate_mandate_holder(context: RuntimeContext, mandate_holder_id: Optional[str]) -> None:
    if mandate_holder_id is not None:
        get_agent(context, mandate_holder_id)


def add_developer(context: RuntimeContext, command: DeveloperCommand, *, when: Optional[datetime] = None) -> DeveloperRecord:
    """Register a developer.

    Raises:
        MissingReferenceError: If the mandate holder is unknown.
        BusinessRuleViolation: If the mandate holder is not an agent.
    """
    timestamp = resolve_timestamp(when)
    with context.lock:
        _validate_mandate_holder(context, command.mandate_holder_id)
        developer = DeveloperRecord(
            developer_id=generate_record_id("D", when=timestamp),
            name=command.name,
            contact_person=command.contact_person,
            email=command.email,
            total_stands=command.total_stands,
            deposit_terms=command.deposit_terms,
            financing_terms=command.financing_terms,
            mandate_holder_id=command.mandate_holder_id,
        )
        context.snapshot.developers.append(developer)
        record_audit(context, AuditAction.ADD_DEVELOPER, f"Added developer {developer.name}", when=timestamp)
        commit(context)
    log.info("Added developer '%s' (%s)", developer.developer_id, developer.name)
    return developer


def update_developer(context: RuntimeContext, developer_id: str, command: DeveloperCommand) -> DeveloperRecord:
    """Replace the editable fields of an existing developer.

    Stands keep their own terms; only stands without an override pick up new
    financing terms, and only at projection time.
    """
    with context.lock:
        require_record(context.snapshot.developers, "developer_id", developer_id, "developer")
        _validate_mandate_holder(context, command.mandate_holder_id)
        updated = DeveloperRecord(
            developer_id=developer_id,
            name=command.name,
            contact_person=command.contact_person,
            email=command.email,
            total_stands=command.total_stands,
            deposit_terms=command.deposit_terms,
            financing_terms=command.financing_terms,
            mandate_holder_id=command.mandate_holder_id,
        )
        index = data_manager.locate_record(context.snapshot.developers, "developer_id", developer_id)
        data_manager.replace_record(context.snapshot.developers, index, updated)
        record_audit(context, AuditAction.UPDATE_DEVELOPER, f"Updated developer {updated.name}")
        commit(context)
    log.info("Updated developer '%s'", developer_id)
    return updated


def delete_developer(context: RuntimeContext, developer_id: str) -> DeveloperRecord:
    """Remove a developer that owns no stands.

    Raises:
        MissingReferenceError: If ``developer_id`` is unknown.
        BusinessRuleViolation: If any stand still belongs to the developer.
    """
    with context.lock:
        developer = get_developer(context, developer_id)
        stand_count = sum(1 for stand in context.snapshot.stands if stand.developer_id == developer_id)
        if stand_count:
            log.error("Cannot delete developer '%s': %d stands reference it", developer_id, stand_count)
            raise BusinessRuleViolation(
                f"Developer '{developer.name}' still has {stand_count} stands and cannot be deleted"
            )
        context.snapshot.developers.remove(developer)
        record_audit(context, AuditAction.DELETE_DEVELOPER, f"Deleted developer {developer.name}")
        commit(context)
    log.info("Deleted developer '%s'", developer_id)
    return developer


# ---------------------------------------------------------------------------
# Stands
# ---------------------------------------------------------------------------


def _stand_number_taken(context: RuntimeContext, developer_id: str, stand_number: str) -> bool:
    return any(
        stand.developer_id == developer_id and stand.stand_number == stand_number
        for stand in context.snapshot.stands
    )


def _build_stand(
    developer: DeveloperRecord,
    stand_number: str,
    *,
    price: Decimal,
    size: Decimal,
    deposit_required: Optional[Decimal],
    financing_terms: Optional[str],
) -> StandRecord:
    if deposit_required is None:
        deposit_required = resolve_deposit(developer.deposit_terms, price)
    return StandRecord(
        stand_id=f"{developer.developer_id}-{stand_number}",
        stand_number=stand_number,
        developer_id=developer.developer_id,
        price=price,
        size=size,
        status=StandStatus.AVAILABLE,
        deposit_required=deposit_required,
        financing_terms=financing_terms or developer.financing_terms or None,
    )


def add_stand(context: RuntimeContext, command: StandCommand) -> StandRecord:
    """Add one AVAILABLE stand to a developer.

    Missing deposit and financing terms are filled from the developer's terms.

    Raises:
        MissingReferenceError: If the developer is unknown.
        BusinessRuleViolation: If the developer already has a stand with the
            same number.
        ValueError: If the price is not positive.
    """
    require_positive_money(command.price)
    with context.lock:
        developer = get_developer(context, command.developer_id)
        if _stand_number_taken(context, developer.developer_id, command.stand_number):
            log.error(
                "Duplicate stand number '%s' for developer '%s'",
                command.stand_number,
                developer.developer_id,
            )
            raise BusinessRuleViolation(
                f"Stand {command.stand_number} already exists for developer '{developer.name}'"
            )
        stand = _build_stand(
            developer,
            command.stand_number,
            price=command.price,
            size=command.size,
            deposit_required=command.deposit_required,
            financing_terms=command.financing_terms,
        )
        context.snapshot.stands.append(stand)
        record_audit(
            context,
            AuditAction.ADD_STAND,
            f"Added stand {stand.stand_number} for developer {developer.developer_id}",
        )
        commit(context)
    log.info("Added stand '%s' (price=%s)", stand.stand_id, stand.price)
    return stand


def batch_add_stands(context: RuntimeContext, command: BatchStandCommand) -> BatchResult:
    """Generate stands numbered ``start`` to ``end`` inclusive.

    Numbers the developer already uses are skipped rather than rejected, so a
    range can be re-run safely. Deposits default to the developer's deposit
    terms applied to the batch price and financing terms default to the
    developer's terms.

    Args:
        context (RuntimeContext): Runtime context owning the snapshot.
        command (BatchStandCommand): Range, price and defaults.

    Returns:
        BatchResult: Created stands and the skipped stand numbers.

    Raises:
        MissingReferenceError: If the developer is unknown.
        ValueError: If the range is empty or the price is not positive.
    """
    if command.start < 1 or command.end < command.start:
        log.error("Invalid stand range %s-%s", command.start, command.end)
        raise ValueError("Stand range must satisfy 1 <= start <= end")
    require_positive_money(command.price)

    added: List[StandRecord] = []
    skipped: List[str] = []
    with context.lock:
        developer = get_developer(context, command.developer_id)
        for number in range(command.start, command.end + 1):
            stand_number = str(number)
            if _stand_number_taken(context, developer.developer_id, stand_number):
                skipped.append(stand_number)
                continue
            stand = _build_stand(
                developer,
                stand_number,
                price=command.price,
                size=command.size,
                deposit_required=command.deposit_required,
                financing_terms=command.financing_terms,
            )
            context.snapshot.stands.append(stand)
            record_audit(
                context,
                AuditAction.ADD_STAND,
                f"Added stand {stand.stand_number} for developer {developer.developer_id}",
            )
            added.append(stand)
        commit(context)

    log.info(
        "Generated %d stands for developer '%s' (skipped %d duplicates)",
        len(added),
        command.developer_id,
        len(skipped),
    )
    return BatchResult(added=added, skipped=skipped)


def delete_stand(context: RuntimeContext, stand_id: str) -> StandRecord:
    """Remove a stand that is not part of an active sale.

    Raises:
        MissingReferenceError: If ``stand_id`` is unknown.
        BusinessRuleViolation: If a non-cancelled sale references the stand.
    """
    with context.lock:
        stand = get_stand(context, stand_id)
        if any(
            sale.stand_id == stand_id and sale.status is not SaleStatus.CANCELLED
            for sale in context.snapshot.sales
        ):
            log.error("Cannot delete stand '%s': it has an active sale", stand_id)
            raise BusinessRuleViolation(f"Stand {stand.stand_number} is sold and cannot be deleted")
        context.snapshot.stands.remove(stand)
        record_audit(context, AuditAction.DELETE_STAND, f"Deleted stand {stand.stand_number}")
        commit(context)
    log.info("Deleted stand '%s'", stand_id)
    return stand


def _stand_sort_key(stand: StandRecord) -> int:
    digits = "".join(ch for ch in stand.stand_number if ch.isdigit())
    return int(digits) if digits else 0


def next_available_stand(context: RuntimeContext, developer_id: str) -> Optional[StandRecord]:
    """Lowest-numbered AVAILABLE stand of a developer, or ``None``."""

    candidates = list_stands(context, developer_id=developer_id, status=StandStatus.AVAILABLE)
    if not candidates:
        return None
    return min(candidates, key=_stand_sort_key)


def _set_stand_status(context: RuntimeContext, stand_id: str, status: StandStatus) -> None:
    stands = context.snapshot.stands
    index = data_manager.locate_record(stands, "stand_id", stand_id)
    if index is None:
        log.warning("Stand '%s' vanished before its status could become %s", stand_id, status.value)
        return
    data_manager.replace_record(stands, index, replace(stands[index], status=status))


# ---------------------------------------------------------------------------
# Sales
# ---------------------------------------------------------------------------


def build_commission(sale: SaleRecord, *, commission_id: str, created: date) -> CommissionRecord:
    """Derive the commission owed on ``sale``.

    The agency earns 5% of the sale price, of which the selling agent is
    allocated 2.5%.
    """
    return CommissionRecord(
        commission_id=commission_id,
        sale_id=sale.sale_id,
        agent_id=sale.agent_id,
        stand_id=sale.stand_id,
        sale_price=sale.sale_price,
        total_agency_commission=sale.sale_price * AGENCY_COMMISSION_RATE,
        agent_commission=sale.sale_price * AGENT_COMMISSION_RATE,
        status=CommissionStatus.PENDING,
        date_created=created,
    )


def record_sale(context: RuntimeContext, command: SaleCommand) -> Tuple[SaleRecord, CommissionRecord]:
    """Sell an available stand and derive its commission.

    The sale price is a snapshot of the stand price. A positive deposit is
    written to the ledger as a ``DEPOSIT`` payment, which also sets the sale's
    tracked ``deposit_paid``. The stand becomes SOLD, a PENDING commission is
    created, and the audit trail and notifications are updated. Everything
    happens under the context lock, so two sales can never claim the same
    stand.

    Args:
        context (RuntimeContext): Runtime context owning the snapshot.
        command (SaleCommand): Stand, client, agent and deposit.

    Returns:
        tuple[SaleRecord, CommissionRecord]: The stored sale (deposit applied)
            and its commission.

    Raises:
        MissingReferenceError: If the stand, client, or agent is unknown.
        BusinessRuleViolation: If the stand is not AVAILABLE or the agent is
            not an agent.
        ValueError: If the deposit is negative.
    """
    require_nonnegative_money(command.deposit_amount)
    timestamp = resolve_timestamp(command.timestamp)

    with context.lock:
        stand = get_stand(context, command.stand_id)
        if stand.status is not StandStatus.AVAILABLE:
            log.error("Attempted sale of stand '%s' with status %s", stand.stand_id, stand.status.value)
            raise BusinessRuleViolation(f"Stand {stand.stand_number} is not available ({stand.status.value})")
        client = get_client(context, command.client_id)
        agent = get_agent(context, command.agent_id)

        sale = SaleRecord(
            sale_id=generate_record_id("SALE", when=timestamp),
            stand_id=stand.stand_id,
            developer_id=stand.developer_id,
            agent_id=agent.user_id,
            client_id=client.client_id,
            client_name=client.name,
            sale_date=command.sale_date or timestamp.date(),
            sale_price=stand.price,
            deposit_paid=ZERO,
            status=SaleStatus.PENDING,
        )
        commission = build_commission(
            sale,
            commission_id=generate_record_id("COMM", when=timestamp),
            created=timestamp.date(),
        )
        context.snapshot.sales.append(sale)
        context.snapshot.commissions.append(commission)
        _set_stand_status(context, stand.stand_id, StandStatus.SOLD)

        if command.deposit_amount > ZERO:
            deposit = PaymentCommand(
                sale_id=sale.sale_id,
                amount=command.deposit_amount,
                payment_type=PaymentType.DEPOSIT,
                reference=f"DEP-{timestamp.strftime('%H%M%S%f')[-6:]}",
                payment_date=sale.sale_date,
            )
            _append_payment(context, deposit, timestamp=timestamp)
            sale = get_sale(context, sale.sale_id)

        record_audit(
            context,
            AuditAction.ADD_SALE,
            f"Sold stand {stand.stand_id} to {client.name}. Commission generated.",
            when=timestamp,
        )
        push_notification(
            context,
            "Stand Sold Alert",
            f"Stand #{stand.stand_number} has been officially SOLD to {client.name}. Inventory updated.",
            NotificationType.ALERT,
            action_url="/developers",
            when=timestamp,
        )
        if command.deposit_amount > ZERO:
            push_notification(
                context,
                "Payment Pending Verification",
                f"A deposit of ${command.deposit_amount:,} was recorded for Stand #{stand.stand_number}. "
                "Please verify receipt in Finance.",
                NotificationType.WARNING,
                action_url="/finance",
                when=timestamp,
            )
        commit(context)

    log.info(
        "Recorded sale '%s' of stand '%s' (price=%s, deposit=%s, commission=%s)",
        sale.sale_id,
        stand.stand_id,
        sale.sale_price,
        sale.deposit_paid,
        commission.total_agency_commission,
    )
    return sale, commission


def cancel_sale(context: RuntimeContext, sale_id: str, *, when: Optional[datetime] = None) -> SaleRecord:
    """Cancel a sale, release its stand, and void its commission.

    The sale record is kept with status CANCELLED. Payments already in the
    ledger are left untouched; no refund is booked.

    Raises:
        MissingReferenceError: If ``sale_id`` is unknown.
        BusinessRuleViolation: If the sale is already cancelled.
    """
    timestamp = resolve_timestamp(when)
    with context.lock:
        sale = get_sale(context, sale_id)
        if sale.status is SaleStatus.CANCELLED:
            log.error("Sale '%s' is already cancelled", sale_id)
            raise BusinessRuleViolation(f"Sale '{sale_id}' is already cancelled")

        sales = context.snapshot.sales
        cancelled = replace(sale, status=SaleStatus.CANCELLED)
        data_manager.replace_record(sales, data_manager.locate_record(sales, "sale_id", sale_id), cancelled)
        _set_stand_status(context, sale.stand_id, StandStatus.AVAILABLE)

        before = len(context.snapshot.commissions)
        context.snapshot.commissions[:] = [c for c in context.snapshot.commissions if c.sale_id != sale_id]
        voided = before - len(context.snapshot.commissions)

        stand = find_record(context.snapshot.stands, "stand_id", sale.stand_id)
        stand_label = stand.stand_number if stand is not None else sale.stand_id
        record_audit(
            context,
            AuditAction.CANCEL_SALE,
            f"Cancelled sale {sale_id} for stand {stand_label}. Commission voided.",
            when=timestamp,
        )
        push_notification(
            context,
            "Sale Cancelled",
            f"Sale for Stand #{stand_label} ({sale.client_name}) was cancelled. The stand is available again.",
            NotificationType.WARNING,
            action_url="/sales",
            when=timestamp,
        )
        commit(context)

    log.info("Cancelled sale '%s' (stand '%s' released, %d commissions voided)", sale_id, sale.stand_id, voided)
    return cancelled


def mark_sale_completed(context: RuntimeContext, sale_id: str) -> SaleRecord:
    """Relabel a PENDING sale as COMPLETED.

    Raises:
        MissingReferenceError: If ``sale_id`` is unknown.
        BusinessRuleViolation: If the sale is cancelled.
    """
    with context.lock:
        sale = get_sale(context, sale_id)
        if sale.status is SaleStatus.CANCELLED:
            raise BusinessRuleViolation(f"Sale '{sale_id}' is cancelled")
        completed = replace(sale, status=SaleStatus.COMPLETED)
        sales = context.snapshot.sales
        data_manager.replace_record(sales, data_manager.locate_record(sales, "sale_id", sale_id), completed)
        record_audit(context, AuditAction.COMPLETE_SALE, f"Sale {sale_id} marked as COMPLETED")
        commit(context)
    log.info("Marked sale '%s' as completed", sale_id)
    return completed


# ---------------------------------------------------------------------------
# Payment ledger
# ---------------------------------------------------------------------------


def _append_payment(context: RuntimeContext, command: PaymentCommand, *, timestamp: datetime) -> PaymentRecord:
    payment = PaymentRecord(
        payment_id=generate_record_id("PAY", when=timestamp),
        sale_id=command.sale_id,
        amount=command.amount,
        payment_date=command.payment_date or timestamp.date(),
        reference=command.reference or f"REF-{timestamp.strftime('%S%f')[-6:]}",
        payment_type=command.payment_type,
        manual_receipt_no=command.manual_receipt_no,
    )
    context.snapshot.payments.append(payment)
    if payment.payment_type is PaymentType.DEPOSIT:
        sales = context.snapshot.sales
        index = data_manager.locate_record(sales, "sale_id", payment.sale_id)
        sale = sales[index]
        data_manager.replace_record(sales, index, replace(sale, deposit_paid=sale.deposit_paid + payment.amount))
    return payment


def record_payment(context: RuntimeContext, command: PaymentCommand) -> PaymentRecord:
    """Append a payment to a sale's ledger.

    The sale's status is not consulted and the amount is not capped at the
    outstanding balance; an overpayment simply drives the balance negative.
    A ``DEPOSIT`` payment also increases the sale's tracked ``deposit_paid``.

    Args:
        context (RuntimeContext): Runtime context owning the snapshot.
        command (PaymentCommand): Sale, amount, type and references.

    Returns:
        PaymentRecord: The appended ledger entry.

    Raises:
        MissingReferenceError: If the sale is unknown.
        ValueError: If the amount is not positive.
    """
    require_positive_money(command.amount)
    timestamp = resolve_timestamp(command.timestamp)
    with context.lock:
        get_sale(context, command.sale_id)
        payment = _append_payment(context, command, timestamp=timestamp)
        record_audit(
            context,
            AuditAction.ADD_PAYMENT,
            f"Payment of {payment.amount} for sale {payment.sale_id}",
            when=timestamp,
        )
        push_notification(
            context,
            "Payment Received",
            f"Payment of ${payment.amount:,} logged for Sale {payment.reference}.",
            NotificationType.SUCCESS,
            when=timestamp,
        )
        commit(context)

    log.info(
        "Recorded %s payment '%s' for sale '%s' (amount=%s)",
        payment.payment_type.value,
        payment.payment_id,
        payment.sale_id,
        payment.amount,
    )
    return payment


def get_sale_financials(context: RuntimeContext, sale_id: str) -> SaleFinancials:
    """Price, total paid, and balance of a sale, recomputed from the ledger.

    ``paid`` sums every payment of the sale whatever its type. Unknown sales
    yield zeros.
    """
    with context.lock:
        sale = find_record(context.snapshot.sales, "sale_id", sale_id)
        if sale is None:
            log.warning("Financials requested for unknown sale '%s'", sale_id)
            return EMPTY_FINANCIALS
        paid = total_paid_for(sale_id, context.snapshot.payments)
    return SaleFinancials(price=sale.sale_price, paid=paid, balance=sale.sale_price - paid)


def build_client_statement(context: RuntimeContext, sale_id: str) -> Optional[ClientStatement]:
    """Collect the parties and the date-ordered payments of a sale.

    Returns ``None`` for an unknown sale.
    """
    with context.lock:
        snapshot = context.snapshot
        sale = find_record(snapshot.sales, "sale_id", sale_id)
        if sale is None:
            log.warning("Statement requested for unknown sale '%s'", sale_id)
            return None
        payments = sorted(
            (p for p in snapshot.payments if p.sale_id == sale_id),
            key=lambda p: p.payment_date,
        )
        total = sum((p.amount for p in payments), ZERO)
        return ClientStatement(
            sale=sale,
            client=find_record(snapshot.clients, "client_id", sale.client_id),
            stand=find_record(snapshot.stands, "stand_id", sale.stand_id),
            developer=find_record(snapshot.developers, "developer_id", sale.developer_id),
            payments=payments,
            total_paid=total,
            outstanding=sale.sale_price - total,
        )


# ---------------------------------------------------------------------------
# Installment projections
# ---------------------------------------------------------------------------


def _today(candidate: Optional[date]) -> date:
    return candidate if candidate is not None else resolve_timestamp(None).date()


def _project(context: RuntimeContext, sale: SaleRecord, today: date) -> InstallmentProjection:
    snapshot = context.snapshot
    return project_account(
        sale,
        find_record(snapshot.stands, "stand_id", sale.stand_id),
        snapshot.payments,
        today,
        developer=find_record(snapshot.developers, "developer_id", sale.developer_id),
    )


def project_installment_account(context: RuntimeContext, sale_id: str, *, today: Optional[date] = None) -> InstallmentProjection:
    """Project one sale's installment account; unknown sales yield an empty projection."""

    with context.lock:
        sale = find_record(context.snapshot.sales, "sale_id", sale_id)
        if sale is None:
            log.warning("Projection requested for unknown sale '%s'", sale_id)
            return EMPTY_PROJECTION
        return _project(context, sale, _today(today))


def list_installment_accounts(
    context: RuntimeContext,
    *,
    today: Optional[date] = None,
) -> Tuple[List[InstallmentProjection], InstallmentSummary]:
    """Projections for every non-cancelled sale that still has a balance.

    Returns:
        tuple[list[InstallmentProjection], InstallmentSummary]: Open accounts
            in sale order and the portfolio totals over them.
    """
    reference = _today(today)
    with context.lock:
        projections = [
            _project(context, sale, reference)
            for sale in context.snapshot.sales
            if sale.status is not SaleStatus.CANCELLED
        ]
    open_accounts = [p for p in projections if p.balance > ZERO]
    return open_accounts, summarize_accounts(open_accounts)


# ---------------------------------------------------------------------------
# Commissions
# ---------------------------------------------------------------------------


def mark_commission_paid(context: RuntimeContext, commission_id: str) -> CommissionRecord:
    """Flip a commission to PAID.

    Raises:
        MissingReferenceError: If ``commission_id`` is unknown.
    """
    with context.lock:
        commission = get_commission(context, commission_id)
        paid = replace(commission, status=CommissionStatus.PAID)
        commissions = context.snapshot.commissions
        data_manager.replace_record(
            commissions,
            data_manager.locate_record(commissions, "commission_id", commission_id),
            paid,
        )
        record_audit(context, AuditAction.PAY_COMMISSION, f"Commission {commission_id} marked as PAID")
        commit(context)
    log.info("Commission '%s' marked as paid (agent=%s)", commission_id, paid.agent_id)
    return paid


# ---------------------------------------------------------------------------
# Backups and data exchange
# ---------------------------------------------------------------------------


def set_auto_backup(context: RuntimeContext, enabled: bool) -> None:
    with context.lock:
        context.snapshot.is_auto_backup_enabled = enabled
        commit(context)
    log.info("Auto backup %s", "enabled" if enabled else "disabled")


def create_backup(context: RuntimeContext, *, when: Optional[datetime] = None) -> Tuple[BackupRecord, Path]:
    """Write a wrapped export to the backup directory and log its metadata.

    Returns:
        tuple[BackupRecord, Path]: Metadata appended to the snapshot and the
            file that was written.

    Raises:
        OSError: If the export cannot be written.
    """
    timestamp = resolve_timestamp(when)
    backup_dir = context.settings.backup_dir or context.settings.data_file.parent / "backups"
    destination = backup_dir / f"backup-{timestamp.strftime('%Y%m%d-%H%M%S')}.json"
    with context.lock:
        size = data_manager.write_json(
            data_manager.wrap_export(context.snapshot, exported_at=timestamp),
            destination,
        )
        record = BackupRecord(
            backup_id=generate_record_id("BK", when=timestamp),
            timestamp=timestamp.isoformat(),
            size=data_manager.format_size(size),
            record_count=data_manager.count_records(context.snapshot),
        )
        context.snapshot.backups.insert(0, record)
        record_audit(context, AuditAction.CREATE_BACKUP, f"Backup {destination.name} ({record.size})", when=timestamp)
        commit(context)
    log.info("Created backup '%s' (%s, %d records)", destination, record.size, record.record_count)
    return record, destination


def import_snapshot(context: RuntimeContext, source: Path) -> int:
    """Replace the whole store with the content of a wrapped or raw export.

    The file is fully parsed before anything is replaced.

    Returns:
        int: Number of records now in the store.

    Raises:
        FileNotFoundError: If ``source`` does not exist.
        ValueError: If the file is not a valid export.
    """
    payload = data_manager.read_json(source)
    try:
        imported = data_manager.snapshot_from_dict(payload)
    except KeyError as exc:
        raise ValueError(f"Export is missing a required field: {exc}") from exc

    with context.lock:
        for snapshot_field in fields(data_manager.Snapshot):
            setattr(context.snapshot, snapshot_field.name, getattr(imported, snapshot_field.name))
        if context.snapshot.current_user is None:
            context.snapshot.current_user = find_record(context.snapshot.users, "user_id", context.settings.current_user_id)
        count = data_manager.count_records(context.snapshot)
        record_audit(context, AuditAction.IMPORT_DATA, f"Imported {count} records from {Path(source).name}")
        commit(context)
    log.info("Imported snapshot from '%s' (%d records)", source, count)
    return count


def export_workbook(context: RuntimeContext, destination: Path) -> Path:
    """Write every collection to an Excel workbook at ``destination``."""

    with context.lock:
        path = data_manager.export_workbook(context.snapshot, destination)
    log.info("Exported workbook '%s'", path)
    return path
