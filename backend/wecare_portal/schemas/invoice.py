from datetime import date, datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from wecare_portal.models.invoice import InvoiceStatus, PaymentMethod


class InvoiceLineOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    description: str
    quantity: int
    unit_price_pence: int
    line_total_pence: int


class PaymentCreate(BaseModel):
    amount_pence: int = Field(ge=1)
    method: PaymentMethod
    paid_at: Optional[datetime] = None
    reference: Optional[str] = None


class PaymentOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    invoice_id: int
    amount_pence: int
    method: PaymentMethod
    paid_at: datetime
    reference: Optional[str] = None
    received_by_user_id: int


class InvoiceOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    patient_user_id: int
    appointment_id: Optional[int] = None
    invoice_number: str
    issue_date: Optional[date] = None
    due_date: Optional[date] = None
    status: InvoiceStatus
    payment_method: Optional[PaymentMethod] = None
    notes: Optional[str] = None
    total_pence: int
    paid_pence: int
    balance_pence: int
    created_at: datetime
    updated_at: datetime
    lines: list[InvoiceLineOut] = []
    payments: list[PaymentOut] = []
