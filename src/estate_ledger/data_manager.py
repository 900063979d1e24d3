"""Data access layer for Estate Ledger.

This module owns everything that touches the file system: the ``config.ini``
settings, the JSON snapshot that holds every collection of the agency, and the
Excel workbook export. Business rules belong elsewhere.

The public API is designed around four responsibilities:

1. Configuration handling: finding and parsing ``config.ini``.
2. Typed records: immutable dataclasses for every persisted entity together
   with their ``serialize_*``/``deserialize_*`` converters.
3. Snapshot lifecycle: loading (with fallback to defaults), saving, and
   importing wrapped or raw exports.
4. Workbook export: one worksheet per collection via ``openpyxl``.
"""


from __future__ import annotations

import configparser
import json
from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence

import openpyxl
from openpyxl.styles import Font
from openpyxl.workbook import Workbook

from . import log
from .constants import (
    EXPORT_FORMAT_VERSION,
    AgreementStatus,
    CollectionName,
    CommissionStatus,
    NotificationType,
    PaymentType,
    SaleStatus,
    StandStatus,
    UserRole,
)


CONFIG_FILE_NAME = "config.ini"

STANDARD_TEMPLATE_CONTENT = """AGREEMENT OF SALE

ENTERED INTO BY AND BETWEEN:
{{DEVELOPER_NAME}} (The "Seller")
AND
{{CLIENT_NAME}} (The "Purchaser")
ID/Registration: {{CLIENT_ID}}

1. PROPERTY
Stand No: {{STAND_NUMBER}}
Development: {{DEVELOPER_NAME}}
Size: {{SIZE}} sqm

2. PURCHASE PRICE
The purchase price is ${{PRICE}}.

3. DEPOSIT
A deposit of ${{DEPOSIT}} has been paid.

4. TERMS
{{TERMS}}

5. GENERAL
This agreement constitutes the entire agreement between the parties."""


@dataclass(frozen=True)
class ConfigSettings:
    """Typed representation of the ``config.ini`` settings we care about."""

    data_file: Path
    agency_name: str
    schema_version: str
    current_user_id: str
    auto_persist: bool = True
    backup_dir: Optional[Path] = None
    assistant_model: str = "gemini-2.5-flash"
    api_key_env: str = "GEMINI_API_KEY"
    assistant_timeout: float = 30.0


@dataclass(frozen=True)
class UserRecord:
    """An agency user; agents are users whose role is ``AGENT``."""

    user_id: str
    name: str
    role: UserRole
    email: str


@dataclass(frozen=True)
class ClientRecord:
    client_id: str
    name: str
    email: str
    phone: str
    id_number: str
    address: str
    date_added: date


@dataclass(frozen=True)
class DeveloperRecord:
    """A development company selling stands through the agency.

    ``deposit_terms`` and ``financing_terms`` stay free text in storage; see
    :mod:`estate_ledger.terms` for their parsed forms.
    """

    developer_id: str
    name: str
    contact_person: str
    email: str
    total_stands: int
    deposit_terms: Optional[str] = None
    financing_terms: Optional[str] = None
    mandate_holder_id: Optional[str] = None


@dataclass(frozen=True)
class StandRecord:
    stand_id: str
    stand_number: str
    developer_id: str
    price: Decimal
    size: Decimal
    status: StandStatus
    deposit_required: Optional[Decimal] = None
    financing_terms: Optional[str] = None


@dataclass(frozen=True)
class SaleRecord:
    """A sale of one stand; ``sale_price`` is frozen at the time of sale."""

    sale_id: str
    stand_id: str
    developer_id: str
    agent_id: str
    client_id: str
    client_name: str
    sale_date: date
    sale_price: Decimal
    deposit_paid: Decimal
    status: SaleStatus


@dataclass(frozen=True)
class PaymentRecord:
    payment_id: str
    sale_id: str
    amount: Decimal
    payment_date: date
    reference: str
    payment_type: PaymentType
    manual_receipt_no: Optional[str] = None


@dataclass(frozen=True)
class CommissionRecord:
    commission_id: str
    sale_id: str
    agent_id: str
    stand_id: str
    sale_price: Decimal
    total_agency_commission: Decimal
    agent_commission: Decimal
    status: CommissionStatus
    date_created: date


@dataclass(frozen=True)
class TemplateRecord:
    template_id: str
    name: str
    content: str
    last_modified: str


@dataclass(frozen=True)
class AgreementRecord:
    agreement_id: str
    sale_id: str
    content: str
    special_conditions: str
    generated_date: str
    status: AgreementStatus
    approved_by: Optional[str] = None


@dataclass(frozen=True)
class AuditLogRecord:
    log_id: str
    user_id: str
    action: str
    timestamp: str
    details: str


@dataclass(frozen=True)
class NotificationRecord:
    notification_id: str
    title: str
    message: str
    notification_type: NotificationType
    timestamp: str
    read: bool = False
    action_url: Optional[str] = None


@dataclass(frozen=True)
class BackupRecord:
    """Metadata describing an export; it does not hold the data itself."""

    backup_id: str
    timestamp: str
    size: str
    record_count: int


@dataclass
class Snapshot:
    """The whole agency state, loaded and saved as a single unit.

    Collections hold immutable records; updates replace a record in place
    through :func:`replace_record` so list identity is preserved for callers
    holding a reference to the snapshot.
    """

    users: List[UserRecord] = field(default_factory=list)
    clients: List[ClientRecord] = field(default_factory=list)
    developers: List[DeveloperRecord] = field(default_factory=list)
    stands: List[StandRecord] = field(default_factory=list)
    sales: List[SaleRecord] = field(default_factory=list)
    payments: List[PaymentRecord] = field(default_factory=list)
    commissions: List[CommissionRecord] = field(default_factory=list)
    agreements: List[AgreementRecord] = field(default_factory=list)
    templates: List[TemplateRecord] = field(default_factory=list)
    audit_logs: List[AuditLogRecord] = field(default_factory=list)
    notifications: List[NotificationRecord] = field(default_factory=list)
    backups: List[BackupRecord] = field(default_factory=list)
    release_notes: List[Dict[str, Any]] = field(default_factory=list)
    current_user: Optional[UserRecord] = None
    is_authenticated: bool = False
    is_auto_backup_enabled: bool = False


def find_config_file(explicit_path: Optional[Path] = None) -> Path:
    """Locate the configuration file that controls how the data layer behaves.

    If the caller provides ``explicit_path`` the value is returned immediately
    without any verification. Otherwise the function walks up from the current
    working directory toward the filesystem root looking for a file named
    ``CONFIG_FILE_NAME``; the first match is considered authoritative.

    Args:
        explicit_path (Path | None): Optional path to use instead of performing
            the upward search.

    Returns:
        Path: The path provided by the caller or the discovered configuration
            file.

    Raises:
        FileNotFoundError: If no ``CONFIG_FILE_NAME`` exists in the working
            directory or any of its parents.
    """

    if explicit_path:
        return explicit_path

    current = Path.cwd()
    for p in (current, *current.parents):
        candidate = p / CONFIG_FILE_NAME
        if candidate.exists():
            return candidate

    raise FileNotFoundError(
        f"Configuration file not found: {CONFIG_FILE_NAME}")


def read_config(config_path: Path) -> configparser.ConfigParser:
    """Load ``config.ini`` and return a populated ``ConfigParser`` instance.

    The path is expanded (``~``) and resolved before it is checked. Validation
    of individual entries happens in :func:`parse_settings`.

    Raises:
        FileNotFoundError: If ``config_path`` does not exist.
    """

    config_path = config_path.expanduser().resolve()
    if not config_path.exists():
        raise FileNotFoundError(f"Configuration file not found: {config_path}")

    parser = configparser.ConfigParser()
    parser.read(config_path)
    return parser


def _anchor_path(raw: str, base_path: Optional[Path]) -> Path:
    path = Path(raw).expanduser()
    if not path.is_absolute():
        if base_path is None:
            base_path = Path.cwd()
        path = (base_path / path).resolve()
    return path


def parse_settings(parser: configparser.ConfigParser, *, base_path: Optional[Path] = None) -> ConfigSettings:
    """Convert a ``ConfigParser`` into strongly typed :class:`ConfigSettings`.

    ``[System]`` must provide ``DataFile``, ``AgencyName`` and
    ``SchemaVersion``; ``[Defaults]`` must provide ``CurrentUser``. The
    ``AutoPersist`` and ``BackupDir`` options and the whole ``[Assistant]``
    section are optional. Relative paths are anchored at ``base_path`` (or the
    current working directory when omitted) and resolved.

    Args:
        parser (configparser.ConfigParser): Parsed configuration data.
        base_path (Path | None): Directory used to anchor relative paths.

    Returns:
        ConfigSettings: Immutable settings container.

    Raises:
        KeyError: If one of the required sections or options is missing.
    """

    try:
        data_file_raw = parser.get("System", "DataFile")
        agency_name = parser.get("System", "AgencyName")
        schema_version = parser.get("System", "SchemaVersion")
        current_user = parser.get("Defaults", "CurrentUser")
    except (configparser.NoSectionError, configparser.NoOptionError) as exc:
        raise KeyError(f"Missing required configuration entry: {exc}") from exc

    data_file_path = _anchor_path(data_file_raw, base_path)
    auto_persist = parser.getboolean("System", "AutoPersist", fallback=True)
    backup_raw = parser.get("System", "BackupDir", fallback=None)
    backup_dir = _anchor_path(backup_raw, base_path) if backup_raw else data_file_path.parent / "backups"

    return ConfigSettings(
        data_file=data_file_path,
        agency_name=agency_name,
        schema_version=schema_version,
        current_user_id=current_user,
        auto_persist=auto_persist,
        backup_dir=backup_dir,
        assistant_model=parser.get("Assistant", "Model", fallback="gemini-2.5-flash"),
        api_key_env=parser.get("Assistant", "ApiKeyEnv", fallback="GEMINI_API_KEY"),
        assistant_timeout=parser.getfloat("Assistant", "TimeoutSeconds", fallback=30.0),
    )


# ---------------------------------------------------------------------------
# Value converters
# ---------------------------------------------------------------------------


def to_decimal(raw: Any, default: Decimal = Decimal("0")) -> Decimal:
    """Coerce a stored number (int, float, or string) into a ``Decimal``."""

    if raw is None or raw == "":
        return default
    try:
        return Decimal(str(raw))
    except InvalidOperation as exc:
        raise ValueError(f"Invalid numeric value: {raw!r}") from exc


def _optional_decimal(raw: Any) -> Optional[Decimal]:
    if raw is None or raw == "":
        return None
    return to_decimal(raw)


def _money_out(value: Optional[Decimal]) -> Optional[str]:
    return None if value is None else str(value)


def to_date(raw: Any) -> date:
    """Parse ``YYYY-MM-DD`` or a full ISO timestamp into a ``date``."""

    if isinstance(raw, datetime):
        return raw.date()
    if isinstance(raw, date):
        return raw
    if not raw:
        raise ValueError("Missing date value")
    return date.fromisoformat(str(raw)[:10])


def _optional_text(raw: Any) -> Optional[str]:
    if raw is None or raw == "":
        return None
    return str(raw)


# ---------------------------------------------------------------------------
# Record serialization
# ---------------------------------------------------------------------------


def serialize_user(record: UserRecord) -> Dict[str, Any]:
    return {"id": record.user_id, "name": record.name, "role": record.role.value, "email": record.email}


def deserialize_user(raw: Mapping[str, Any]) -> UserRecord:
    return UserRecord(
        user_id=str(raw["id"]),
        name=str(raw.get("name", "")),
        role=UserRole(raw.get("role", UserRole.AGENT.value)),
        email=str(raw.get("email", "")),
    )


def serialize_client(record: ClientRecord) -> Dict[str, Any]:
    return {
        "id": record.client_id,
        "name": record.name,
        "email": record.email,
        "phone": record.phone,
        "idNumber": record.id_number,
        "address": record.address,
        "dateAdded": record.date_added.isoformat(),
    }


def deserialize_client(raw: Mapping[str, Any]) -> ClientRecord:
    return ClientRecord(
        client_id=str(raw["id"]),
        name=str(raw.get("name", "")),
        email=str(raw.get("email", "")),
        phone=str(raw.get("phone", "")),
        id_number=str(raw.get("idNumber", "")),
        address=str(raw.get("address", "")),
        date_added=to_date(raw.get("dateAdded") or date.today()),
    )


def serialize_developer(record: DeveloperRecord) -> Dict[str, Any]:
    return {
        "id": record.developer_id,
        "name": record.name,
        "contactPerson": record.contact_person,
        "email": record.email,
        "totalStands": record.total_stands,
        "depositTerms": record.deposit_terms,
        "financingTerms": record.financing_terms,
        "mandateHolderId": record.mandate_holder_id,
    }


def deserialize_developer(raw: Mapping[str, Any]) -> DeveloperRecord:
    return DeveloperRecord(
        developer_id=str(raw["id"]),
        name=str(raw.get("name", "")),
        contact_person=str(raw.get("contactPerson", "")),
        email=str(raw.get("email", "")),
        total_stands=int(raw.get("totalStands") or 0),
        deposit_terms=_optional_text(raw.get("depositTerms")),
        financing_terms=_optional_text(raw.get("financingTerms")),
        mandate_holder_id=_optional_text(raw.get("mandateHolderId")),
    )


def serialize_stand(record: StandRecord) -> Dict[str, Any]:
    return {
        "id": record.stand_id,
        "standNumber": record.stand_number,
        "developerId": record.developer_id,
        "price": _money_out(record.price),
        "size": _money_out(record.size),
        "status": record.status.value,
        "depositRequired": _money_out(record.deposit_required),
        "financingTerms": record.financing_terms,
    }


def deserialize_stand(raw: Mapping[str, Any]) -> StandRecord:
    return StandRecord(
        stand_id=str(raw["id"]),
        stand_number=str(raw["standNumber"]),
        developer_id=str(raw["developerId"]),
        price=to_decimal(raw.get("price")),
        size=to_decimal(raw.get("size")),
        status=StandStatus(raw.get("status", StandStatus.AVAILABLE.value)),
        deposit_required=_optional_decimal(raw.get("depositRequired")),
        financing_terms=_optional_text(raw.get("financingTerms")),
    )


def serialize_sale(record: SaleRecord) -> Dict[str, Any]:
    return {
        "id": record.sale_id,
        "standId": record.stand_id,
        "developerId": record.developer_id,
        "agentId": record.agent_id,
        "clientId": record.client_id,
        "clientName": record.client_name,
        "saleDate": record.sale_date.isoformat(),
        "salePrice": _money_out(record.sale_price),
        "depositPaid": _money_out(record.deposit_paid),
        "status": record.status.value,
    }


def deserialize_sale(raw: Mapping[str, Any]) -> SaleRecord:
    return SaleRecord(
        sale_id=str(raw["id"]),
        stand_id=str(raw["standId"]),
        developer_id=str(raw.get("developerId", "")),
        agent_id=str(raw.get("agentId", "")),
        client_id=str(raw.get("clientId", "")),
        client_name=str(raw.get("clientName", "")),
        sale_date=to_date(raw["saleDate"]),
        sale_price=to_decimal(raw.get("salePrice")),
        deposit_paid=to_decimal(raw.get("depositPaid")),
        status=SaleStatus(raw.get("status", SaleStatus.PENDING.value)),
    )


def serialize_payment(record: PaymentRecord) -> Dict[str, Any]:
    return {
        "id": record.payment_id,
        "saleId": record.sale_id,
        "amount": _money_out(record.amount),
        "date": record.payment_date.isoformat(),
        "reference": record.reference,
        "manualReceiptNo": record.manual_receipt_no,
        "type": record.payment_type.value,
    }


def deserialize_payment(raw: Mapping[str, Any]) -> PaymentRecord:
    return PaymentRecord(
        payment_id=str(raw["id"]),
        sale_id=str(raw["saleId"]),
        amount=to_decimal(raw.get("amount")),
        payment_date=to_date(raw["date"]),
        reference=str(raw.get("reference", "")),
        payment_type=PaymentType(raw.get("type", PaymentType.INSTALLMENT.value)),
        manual_receipt_no=_optional_text(raw.get("manualReceiptNo")),
    )


def serialize_commission(record: CommissionRecord) -> Dict[str, Any]:
    return {
        "id": record.commission_id,
        "saleId": record.sale_id,
        "agentId": record.agent_id,
        "standId": record.stand_id,
        "salePrice": _money_out(record.sale_price),
        "totalAgencyCommission": _money_out(record.total_agency_commission),
        "agentCommission": _money_out(record.agent_commission),
        "status": record.status.value,
        "dateCreated": record.date_created.isoformat(),
    }


def deserialize_commission(raw: Mapping[str, Any]) -> CommissionRecord:
    return CommissionRecord(
        commission_id=str(raw["id"]),
        sale_id=str(raw["saleId"]),
        agent_id=str(raw.get("agentId", "")),
        stand_id=str(raw.get("standId", "")),
        sale_price=to_decimal(raw.get("salePrice")),
        total_agency_commission=to_decimal(raw.get("totalAgencyCommission")),
        agent_commission=to_decimal(raw.get("agentCommission")),
        status=CommissionStatus(raw.get("status", CommissionStatus.PENDING.value)),
        date_created=to_date(raw["dateCreated"]),
    )


def serialize_template(record: TemplateRecord) -> Dict[str, Any]:
    return {
        "id": record.template_id,
        "name": record.name,
        "content": record.content,
        "lastModified": record.last_modified,
    }


def deserialize_template(raw: Mapping[str, Any]) -> TemplateRecord:
    return TemplateRecord(
        template_id=str(raw["id"]),
        name=str(raw.get("name", "")),
        content=str(raw.get("content", "")),
        last_modified=str(raw.get("lastModified", "")),
    )


def serialize_agreement(record: AgreementRecord) -> Dict[str, Any]:
    return {
        "id": record.agreement_id,
        "saleId": record.sale_id,
        "content": record.content,
        "specialConditions": record.special_conditions,
        "generatedDate": record.generated_date,
        "status": record.status.value,
        "approvedBy": record.approved_by,
    }


def deserialize_agreement(raw: Mapping[str, Any]) -> AgreementRecord:
    return AgreementRecord(
        agreement_id=str(raw["id"]),
        sale_id=str(raw["saleId"]),
        content=str(raw.get("content", "")),
        special_conditions=str(raw.get("specialConditions", "")),
        generated_date=str(raw.get("generatedDate", "")),
        status=AgreementStatus(raw.get("status", AgreementStatus.DRAFT.value)),
        approved_by=_optional_text(raw.get("approvedBy")),
    )


def serialize_audit_log(record: AuditLogRecord) -> Dict[str, Any]:
    return {
        "id": record.log_id,
        "userId": record.user_id,
        "action": record.action,
        "timestamp": record.timestamp,
        "details": record.details,
    }


def deserialize_audit_log(raw: Mapping[str, Any]) -> AuditLogRecord:
    return AuditLogRecord(
        log_id=str(raw["id"]),
        user_id=str(raw.get("userId", "")),
        action=str(raw.get("action", "")),
        timestamp=str(raw.get("timestamp", "")),
        details=str(raw.get("details", "")),
    )


def serialize_notification(record: NotificationRecord) -> Dict[str, Any]:
    return {
        "id": record.notification_id,
        "title": record.title,
        "message": record.message,
        "type": record.notification_type.value,
        "timestamp": record.timestamp,
        "read": record.read,
        "actionUrl": record.action_url,
    }


def deserialize_notification(raw: Mapping[str, Any]) -> NotificationRecord:
    return NotificationRecord(
        notification_id=str(raw["id"]),
        title=str(raw.get("title", "")),
        message=str(raw.get("message", "")),
        notification_type=NotificationType(raw.get("type", NotificationType.INFO.value)),
        timestamp=str(raw.get("timestamp", "")),
        read=bool(raw.get("read", False)),
        action_url=_optional_text(raw.get("actionUrl")),
    )


def serialize_backup(record: BackupRecord) -> Dict[str, Any]:
    return {
        "id": record.backup_id,
        "timestamp": record.timestamp,
        "size": record.size,
        "recordCount": record.record_count,
    }


def deserialize_backup(raw: Mapping[str, Any]) -> BackupRecord:
    return BackupRecord(
        backup_id=str(raw["id"]),
        timestamp=str(raw.get("timestamp", "")),
        size=str(raw.get("size", "")),
        record_count=int(raw.get("recordCount") or 0),
    )


_COLLECTION_CODECS: Dict[CollectionName, tuple[str, Callable[[Any], Dict[str, Any]], Callable[[Mapping[str, Any]], Any]]] = {
    CollectionName.USERS: ("users", serialize_user, deserialize_user),
    CollectionName.CLIENTS: ("clients", serialize_client, deserialize_client),
    CollectionName.DEVELOPERS: ("developers", serialize_developer, deserialize_developer),
    CollectionName.STANDS: ("stands", serialize_stand, deserialize_stand),
    CollectionName.SALES: ("sales", serialize_sale, deserialize_sale),
    CollectionName.PAYMENTS: ("payments", serialize_payment, deserialize_payment),
    CollectionName.COMMISSIONS: ("commissions", serialize_commission, deserialize_commission),
    CollectionName.AGREEMENTS: ("agreements", serialize_agreement, deserialize_agreement),
    CollectionName.TEMPLATES: ("templates", serialize_template, deserialize_template),
    CollectionName.AUDIT_LOGS: ("audit_logs", serialize_audit_log, deserialize_audit_log),
    CollectionName.NOTIFICATIONS: ("notifications", serialize_notification, deserialize_notification),
    CollectionName.BACKUPS: ("backups", serialize_backup, deserialize_backup),
}


# ---------------------------------------------------------------------------
# Snapshot helpers
# ---------------------------------------------------------------------------


def locate_record(records: Sequence[Any], key_attr: str, key_value: str) -> Optional[int]:
    """Return the index of the first record whose ``key_attr`` equals ``key_value``."""

    for index, record in enumerate(records):
        if getattr(record, key_attr) == key_value:
            return index
    return None


def replace_record(records: List[Any], index: int, record: Any) -> None:
    records[index] = record


def count_records(snapshot: Snapshot) -> int:
    """Total number of records across every codec-managed collection."""

    return sum(len(getattr(snapshot, attr)) for attr, _, _ in _COLLECTION_CODECS.values())


def format_size(num_bytes: int) -> str:
    """Render a byte count the way backup listings show it (``"2.41 KB"``)."""

    if num_bytes < 1024:
        return f"{num_bytes} B"
    if num_bytes < 1024 * 1024:
        return f"{num_bytes / 1024:.2f} KB"
    return f"{num_bytes / (1024 * 1024):.2f} MB"


def default_snapshot() -> Snapshot:
    """Return the state a fresh installation starts from.

    It contains a single administrator and the standard agreement template so
    that drafting works before anything has been configured.
    """

    admin = UserRecord(user_id="u1", name="Admin User", role=UserRole.ADMIN, email="admin@example.com")
    template = TemplateRecord(
        template_id="t1",
        name="Standard Residential Agreement",
        content=STANDARD_TEMPLATE_CONTENT,
        last_modified="2023-10-01",
    )
    return Snapshot(users=[admin], templates=[template], current_user=admin)


def snapshot_to_dict(snapshot: Snapshot) -> Dict[str, Any]:
    """Serialize the snapshot into the JSON-ready camelCase structure."""

    payload: Dict[str, Any] = {}
    for name, (attr, serializer, _) in _COLLECTION_CODECS.items():
        payload[name.value] = [serializer(record) for record in getattr(snapshot, attr)]
    payload[CollectionName.RELEASE_NOTES.value] = list(snapshot.release_notes)
    payload["currentUser"] = serialize_user(snapshot.current_user) if snapshot.current_user else None
    payload["isAuthenticated"] = snapshot.is_authenticated
    payload["isAutoBackupEnabled"] = snapshot.is_auto_backup_enabled
    return payload


def snapshot_from_dict(payload: Mapping[str, Any]) -> Snapshot:
    """Build a :class:`Snapshot` from a raw or wrapped export.

    Wrapped exports look like ``{"version": ..., "data": {...}}``; anything
    without a mapping under ``data`` is treated as the raw snapshot. Missing
    collections default to empty lists and unknown keys are ignored.

    Raises:
        ValueError: If a record cannot be converted.
        KeyError: If a record lacks a mandatory field such as ``id``.
    """

    data = payload.get("data") if isinstance(payload.get("data"), Mapping) else payload
    snapshot = Snapshot()
    for name, (attr, _, deserializer) in _COLLECTION_CODECS.items():
        raw_items = data.get(name.value) or []
        setattr(snapshot, attr, [deserializer(item) for item in raw_items])
    snapshot.release_notes = [dict(item) for item in data.get(CollectionName.RELEASE_NOTES.value) or []]

    current_user = data.get("currentUser")
    if isinstance(current_user, Mapping):
        snapshot.current_user = deserialize_user(current_user)
    elif isinstance(current_user, str):
        index = locate_record(snapshot.users, "user_id", current_user)
        snapshot.current_user = snapshot.users[index] if index is not None else None
    snapshot.is_authenticated = bool(data.get("isAuthenticated", False))
    snapshot.is_auto_backup_enabled = bool(data.get("isAutoBackupEnabled", False))
    return snapshot


def wrap_export(snapshot: Snapshot, *, exported_at: datetime) -> Dict[str, Any]:
    """Produce the wrapped export document used by backups."""

    return {
        "version": EXPORT_FORMAT_VERSION,
        "exportedAt": exported_at.isoformat(),
        "recordCount": count_records(snapshot),
        "data": snapshot_to_dict(snapshot),
    }


def read_json(path: Path) -> Dict[str, Any]:
    """Read a JSON document from ``path``.

    Raises:
        FileNotFoundError: If ``path`` does not exist.
        ValueError: If the content is not a JSON object.
    """

    path = Path(path).expanduser().resolve()
    if not path.exists():
        raise FileNotFoundError(f"Data file not found: {path}")
    payload = json.loads(path.read_text(encoding="utf-8"))
    if not isinstance(payload, dict):
        raise ValueError(f"Expected a JSON object in {path}")
    return payload


def write_json(payload: Mapping[str, Any], destination: Path) -> int:
    """Write ``payload`` to ``destination`` and return the number of bytes written."""

    dest = Path(destination).expanduser().resolve()
    dest.parent.mkdir(parents=True, exist_ok=True)
    text = json.dumps(payload, indent=2, ensure_ascii=False)
    dest.write_text(text, encoding="utf-8")
    return len(text.encode("utf-8"))


def load_snapshot(data_file: Path) -> Snapshot:
    """Load the persisted snapshot, falling back to :func:`default_snapshot`.

    A missing file, unreadable JSON, or malformed records never stop the
    application from starting: the problem is logged and the defaults are
    returned instead.
    """

    try:
        payload = read_json(data_file)
        snapshot = snapshot_from_dict(payload)
    except FileNotFoundError:
        log.info("No snapshot at '%s'; starting from defaults", data_file)
        return default_snapshot()
    except (OSError, ValueError, KeyError, TypeError) as exc:
        log.warning("Failed to load snapshot '%s' (%s); starting from defaults", data_file, exc)
        return default_snapshot()

    log.debug("Loaded snapshot '%s' with %d records", data_file, count_records(snapshot))
    return snapshot


def save_snapshot(snapshot: Snapshot, destination: Path) -> int:
    """Overwrite ``destination`` with the full serialized snapshot."""

    return write_json(snapshot_to_dict(snapshot), destination)


def export_workbook(snapshot: Snapshot, destination: Path) -> Path:
    """Write every collection of ``snapshot`` to its own worksheet.

    Column headers are the camelCase keys of the serialized records, written
    in bold on the first row. Collections without records still get a sheet
    so the workbook layout is stable.

    Returns:
        Path: The resolved destination of the saved workbook.
    """

    wb = Workbook()
    if "Sheet" in wb.sheetnames:
        del wb["Sheet"]
    bold_font = Font(bold=True)

    payload = snapshot_to_dict(snapshot)
    for name in _COLLECTION_CODECS:
        rows = payload[name.value]
        sheet = wb.create_sheet(title=name.value)
        if not rows:
            continue
        headers = list(rows[0].keys())
        for col_idx, header in enumerate(headers, 1):
            cell = sheet.cell(row=1, column=col_idx)
            cell.value = header
            cell.font = bold_font
        for row in rows:
            sheet.append([row.get(header) for header in headers])

    dest = Path(destination).expanduser().resolve()
    dest.parent.mkdir(parents=True, exist_ok=True)
    wb.save(dest)
    return dest


def open_exported_workbook(path: Path) -> Workbook:
    """Open a workbook written by :func:`export_workbook`.

    Raises:
        FileNotFoundError: If ``path`` does not exist.
    """

    path = Path(path).expanduser().resolve()
    if not path.exists():
        raise FileNotFoundError(f"Workbook not found: {path}")
    return openpyxl.load_workbook(path)
