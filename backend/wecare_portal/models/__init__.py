from wecare_portal.models.base import Base
from wecare_portal.models.user import Role, User
from wecare_portal.models.audit_log import AuditLog
from wecare_portal.models.appointment import Appointment, AppointmentStatus
from wecare_portal.models.invoice import Invoice, InvoiceLine, InvoiceStatus, Payment, PaymentMethod
from wecare_portal.models.document import Document

__all__ = [
    "Base",
    "Role",
    "User",
    "AuditLog",
    "Appointment",
    "AppointmentStatus",
    "Invoice",
    "InvoiceLine",
    "InvoiceStatus",
    "Payment",
    "PaymentMethod",
    "Document",
]
