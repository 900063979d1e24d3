"""Agreement templates plus drafting and approval of sales agreements."""

from __future__ import annotations

from dataclasses import replace
from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from . import data_manager, log
from .constants import AgreementStatus, AuditAction, NotificationType, SaleStatus
from .core_logic import (
    MissingReferenceError,
    RuntimeContext,
    actor_id,
    commit,
    find_record,
    require_record,
    generate_record_id,
    push_notification,
    record_audit,
    resolve_timestamp,
)
from .data_manager import (
    AgreementRecord,
    ClientRecord,
    DeveloperRecord,
    SaleRecord,
    StandRecord,
    TemplateRecord,
)

DEFAULT_TERMS_TEXT = "Standard terms apply."


def _money(value: Optional[Decimal]) -> str:
    return "" if value is None else f"{value:,}"


def render_agreement(
    content: str,
    *,
    sale: SaleRecord,
    client: Optional[ClientRecord],
    stand: Optional[StandRecord],
    developer: Optional[DeveloperRecord],
) -> str:
    """Substitute the ``{{PLACEHOLDER}}`` tokens of a template.

    Missing parties render as empty text. ``{{TERMS}}`` uses the stand's
    financing terms, then the developer's, then a standard sentence.
    """

    terms = (stand.financing_terms if stand else None) or (developer.financing_terms if developer else None)
    values = {
        "CLIENT_NAME": client.name if client else "",
        "CLIENT_ID": client.id_number if client else "",
        "DEVELOPER_NAME": developer.name if developer else "",
        "STAND_NUMBER": stand.stand_number if stand else "",
        "SIZE": str(stand.size) if stand else "",
        "PRICE": _money(sale.sale_price),
        "DEPOSIT": _money(sale.deposit_paid),
        "TERMS": terms or DEFAULT_TERMS_TEXT,
    }
    for token, value in values.items():
        content = content.replace("{{%s}}" % token, value)
    return content


def list_templates(context: RuntimeContext) -> List[TemplateRecord]:
    with context.lock:
        return list(context.snapshot.templates)


def add_template(context: RuntimeContext, name: str, content: str, *, when: Optional[datetime] = None) -> TemplateRecord:
    """Store a new agreement template.

    Raises:
        ValueError: If the name or content is blank.
    """
    if not name.strip() or not content.strip():
        log.error("Rejected template with blank name or content")
        raise ValueError("Template name and content are required")

    timestamp = resolve_timestamp(when)
    template = TemplateRecord(
        template_id=generate_record_id("TPL", when=timestamp),
        name=name.strip(),
        content=content,
        last_modified=timestamp.isoformat(),
    )
    with context.lock:
        context.snapshot.templates.append(template)
        record_audit(context, AuditAction.ADD_TEMPLATE, f"Added template {template.name}", when=timestamp)
        commit(context)
    log.info("Added agreement template '%s' (%s)", template.template_id, template.name)
    return template


def create_agreement(
    context: RuntimeContext,
    sale_id: str,
    *,
    template_id: Optional[str] = None,
    special_conditions: str = "",
    when: Optional[datetime] = None,
) -> AgreementRecord:
    """Draft an agreement for a sale and queue it for approval.

    Without a template the standard agreement text is used.

    Args:
        context (RuntimeContext): Runtime context owning the snapshot.
        sale_id (str): Sale the agreement covers.
        template_id (str | None): Template to render.
        special_conditions (str): Free-text conditions stored with the draft.
        when (datetime | None): Override for the generation timestamp.

    Returns:
        AgreementRecord: The stored agreement, status ``PENDING_APPROVAL``.

    Raises:
        MissingReferenceError: If the sale or template is unknown.
    """
    timestamp = resolve_timestamp(when)
    with context.lock:
        snapshot = context.snapshot
        sale = require_record(snapshot.sales, "sale_id", sale_id, "sale")
        if template_id is not None:
            body = require_record(snapshot.templates, "template_id", template_id, "template").content
        else:
            body = data_manager.STANDARD_TEMPLATE_CONTENT

        content = render_agreement(
            body,
            sale=sale,
            client=find_record(snapshot.clients, "client_id", sale.client_id),
            stand=find_record(snapshot.stands, "stand_id", sale.stand_id),
            developer=find_record(snapshot.developers, "developer_id", sale.developer_id),
        )
        agreement = AgreementRecord(
            agreement_id=generate_record_id("AGR", when=timestamp),
            sale_id=sale_id,
            content=content,
            special_conditions=special_conditions,
            generated_date=timestamp.isoformat(),
            status=AgreementStatus.PENDING_APPROVAL,
        )
        snapshot.agreements.append(agreement)
        record_audit(
            context,
            AuditAction.CREATE_AGREEMENT,
            f"Drafted agreement {agreement.agreement_id} for sale {sale_id}",
            when=timestamp,
        )
        commit(context)
    log.info("Created agreement '%s' for sale '%s'", agreement.agreement_id, sale_id)
    return agreement


def update_agreement_status(context: RuntimeContext, agreement_id: str, status: AgreementStatus) -> AgreementRecord:
    """Move an agreement to ``status``.

    Approval records the acting user as approver and raises a notification;
    any other status clears the approver.

    Raises:
        MissingReferenceError: If ``agreement_id`` is unknown.
    """
    with context.lock:
        agreements = context.snapshot.agreements
        index = data_manager.locate_record(agreements, "agreement_id", agreement_id)
        if index is None:
            log.warning("Agreement lookup failed for id '%s'", agreement_id)
            raise MissingReferenceError(f"Unknown agreement id: {agreement_id}")

        approved_by = actor_id(context) if status is AgreementStatus.APPROVED else None
        updated = replace(agreements[index], status=status, approved_by=approved_by)
        data_manager.replace_record(agreements, index, updated)
        record_audit(
            context,
            AuditAction.UPDATE_AGREEMENT,
            f"Agreement {agreement_id} status changed to {status.value}",
        )
        if status is AgreementStatus.APPROVED:
            push_notification(
                context,
                "Agreement Approved",
                f"Sales Agreement {agreement_id} has been approved.",
                NotificationType.SUCCESS,
            )
        commit(context)
    log.info("Agreement '%s' moved to %s", agreement_id, status.value)
    return updated


def sales_without_agreement(context: RuntimeContext) -> List[SaleRecord]:
    """Non-cancelled sales that have no agreement drafted yet."""
    with context.lock:
        covered = {agreement.sale_id for agreement in context.snapshot.agreements}
        return [
            sale
            for sale in context.snapshot.sales
            if sale.sale_id not in covered and sale.status is not SaleStatus.CANCELLED
        ]
