from datetime import datetime, timezone

from fastapi import APIRouter, Depends, Header, HTTPException, Request, status
from fastapi.responses import Response
from sqlalchemy.orm import Session

from wecare_portal.db.session import get_db
from wecare_portal.deps import ensure_owner_or_staff, get_current_user
from wecare_portal.models.audit_log import AuditEntityType
from wecare_portal.models.invoice import Invoice, InvoiceStatus, Payment
from wecare_portal.models.user import User
from wecare_portal.schemas.invoice import InvoiceOut, PaymentCreate, PaymentOut
from wecare_portal.services.audit import log_event
from wecare_portal.services.receipts import build_invoice_receipt, receipt_filename

router = APIRouter(prefix="/invoices", tags=["invoices"])


def get_invoice_or_404(db: Session, invoice_id: int, user: User) -> Invoice:
    invoice = db.get(Invoice, invoice_id)
    if not invoice:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Invoice not found")
    ensure_owner_or_staff(user, invoice.patient_user_id, detail="Invoice not found")
    return invoice


def update_status_from_payments(invoice: Invoice) -> None:
    if invoice.status == InvoiceStatus.cancelled:
        return
    paid = invoice.paid_pence
    if paid <= 0:
        return
    if paid < invoice.total_pence:
        invoice.status = InvoiceStatus.partially_paid
    else:
        invoice.status = InvoiceStatus.paid


@router.get("/{invoice_id}", response_model=InvoiceOut)
def get_invoice(
    invoice_id: int,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    return get_invoice_or_404(db, invoice_id, user)


@router.get("/{invoice_id}/receipt")
def download_receipt(
    invoice_id: int,
    request: Request,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
    request_id: str | None = Header(default=None),
):
    invoice = get_invoice_or_404(db, invoice_id, user)
    pdf_bytes = build_invoice_receipt(invoice)
    filename = receipt_filename(invoice)
    log_event(
        db,
        actor=user,
        action="invoice.receipt_downloaded",
        entity_type=AuditEntityType.invoice,
        entity_id=invoice.id,
        patient_user_id=invoice.patient_user_id,
        after_data={"filename": filename},
        request=request,
        request_id=request_id,
    )
    db.commit()
    headers = {"Content-Disposition": f'attachment; filename="{filename}"'}
    return Response(content=pdf_bytes, media_type="application/pdf", headers=headers)


@router.post("/{invoice_id}/payments", response_model=PaymentOut, status_code=status.HTTP_201_CREATED)
def add_payment(
    invoice_id: int,
    payload: PaymentCreate,
    request: Request,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
    request_id: str | None = Header(default=None),
):
    invoice = get_invoice_or_404(db, invoice_id, user)
    if invoice.status == InvoiceStatus.cancelled:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invoice is cancelled")
    if invoice.status == InvoiceStatus.paid:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invoice is already paid")
    if payload.amount_pence > invoice.balance_pence:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Payment exceeds outstanding balance",
        )

    payment = Payment(
        invoice_id=invoice.id,
        amount_pence=payload.amount_pence,
        method=payload.method,
        paid_at=payload.paid_at or datetime.now(timezone.utc),
        reference=payload.reference,
        received_by_user_id=user.id,
    )
    db.add(payment)
    db.flush()
    db.refresh(invoice)

    before_status = invoice.status
    update_status_from_payments(invoice)
    invoice.payment_method = payload.method
    log_event(
        db,
        actor=user,
        action="payment.recorded",
        entity_type=AuditEntityType.invoice,
        entity_id=invoice.id,
        patient_user_id=invoice.patient_user_id,
        after_data={
            "amount_pence": payment.amount_pence,
            "method": payment.method.value,
            "status": invoice.status.value,
        },
        request=request,
        request_id=request_id,
    )
    if before_status != InvoiceStatus.paid and invoice.status == InvoiceStatus.paid:
        log_event(
            db,
            actor=user,
            action="invoice.paid",
            entity_type=AuditEntityType.invoice,
            entity_id=invoice.id,
            patient_user_id=invoice.patient_user_id,
            after_data={"total_pence": invoice.total_pence},
            request=request,
            request_id=request_id,
        )
    db.commit()
    db.refresh(payment)
    return payment
