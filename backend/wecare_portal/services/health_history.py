from __future__ import annotations

import logging
from datetime import date, datetime, time, timedelta, timezone

from sqlalchemy import and_, or_, select
from sqlalchemy.orm import Session

from wecare_portal.models.appointment import Appointment
from wecare_portal.models.document import Document
from wecare_portal.models.invoice import Invoice
from wecare_portal.schemas.health_history import HealthEventOut, HealthEventType

logger = logging.getLogger("wecare_portal.health_history")


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _day_start(value: date) -> datetime:
    return datetime.combine(value, time.min, tzinfo=timezone.utc)


def _datetime_bounds(column, start_date: date | None, end_date: date | None) -> list:
    clauses = []
    if start_date:
        clauses.append(column >= _day_start(start_date))
    if end_date:
        clauses.append(column < _day_start(end_date + timedelta(days=1)))
    return clauses


def invoice_timestamp(invoice: Invoice) -> datetime:
    if invoice.issue_date:
        return _day_start(invoice.issue_date)
    return _as_utc(invoice.created_at)


def _appointment_events(
    db: Session, patient_user_id: int, start_date: date | None, end_date: date | None
) -> list[HealthEventOut]:
    stmt = (
        select(Appointment)
        .where(
            Appointment.patient_user_id == patient_user_id,
            *_datetime_bounds(Appointment.appointment_datetime, start_date, end_date),
        )
        .order_by(Appointment.appointment_datetime.desc())
    )
    return [
        HealthEventOut(
            type=HealthEventType.appointment,
            timestamp=_as_utc(appt.appointment_datetime),
            data={
                "id": appt.id,
                "appointment_type": appt.appointment_type,
                "status": appt.status.value,
                "notes": appt.notes,
                "created_at": appt.created_at,
            },
        )
        for appt in db.scalars(stmt).unique()
    ]


def _invoice_events(
    db: Session, patient_user_id: int, start_date: date | None, end_date: date | None
) -> list[HealthEventOut]:
    issued_clauses = [Invoice.issue_date.is_not(None)]
    unissued_clauses = [Invoice.issue_date.is_(None)]
    if start_date:
        issued_clauses.append(Invoice.issue_date >= start_date)
    if end_date:
        issued_clauses.append(Invoice.issue_date <= end_date)
    unissued_clauses.extend(_datetime_bounds(Invoice.created_at, start_date, end_date))
    stmt = select(Invoice).where(
        Invoice.patient_user_id == patient_user_id,
        or_(and_(*issued_clauses), and_(*unissued_clauses)),
    )
    return [
        HealthEventOut(
            type=HealthEventType.invoice,
            timestamp=invoice_timestamp(invoice),
            data={
                "id": invoice.id,
                "invoice_number": invoice.invoice_number,
                "total_pence": invoice.total_pence,
                "payment_status": invoice.status.value,
                "payment_method": invoice.payment_method.value if invoice.payment_method else None,
                "due_date": invoice.due_date,
                "created_at": invoice.created_at,
            },
        )
        for invoice in db.scalars(stmt).unique()
    ]


def _document_events(
    db: Session, patient_user_id: int, start_date: date | None, end_date: date | None
) -> list[HealthEventOut]:
    stmt = (
        select(Document)
        .where(
            Document.patient_user_id == patient_user_id,
            *_datetime_bounds(Document.uploaded_at, start_date, end_date),
        )
        .order_by(Document.uploaded_at.desc())
    )
    return [
        HealthEventOut(
            type=HealthEventType.document,
            timestamp=_as_utc(document.uploaded_at),
            data={
                "id": document.id,
                "document_type": document.document_type,
                "file_name": document.original_filename,
                "file_size": document.file_size,
                "mime_type": document.mime_type,
                "uploaded_at": document.uploaded_at,
            },
        )
        for document in db.scalars(stmt)
    ]


_SOURCES = {
    HealthEventType.appointment: _appointment_events,
    HealthEventType.invoice: _invoice_events,
    HealthEventType.document: _document_events,
}


def get_health_history(
    db: Session,
    *,
    patient_user_id: int,
    start_date: date | None = None,
    end_date: date | None = None,
    event_type: HealthEventType | None = None,
    limit: int = 50,
) -> list[HealthEventOut]:
    """Union of the patient's appointments, invoices and documents, newest first."""
    events: list[HealthEventOut] = []
    for source_type, loader in _SOURCES.items():
        if event_type is not None and event_type != source_type:
            continue
        events.extend(loader(db, patient_user_id, start_date, end_date))

    events.sort(key=lambda event: event.timestamp, reverse=True)
    logger.debug(
        "Health history for user %s: %s events before limit %s",
        patient_user_id,
        len(events),
        limit,
    )
    return events[:limit]
