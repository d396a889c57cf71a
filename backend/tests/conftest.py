import itertools
import os
import tempfile
from datetime import datetime, timezone
from pathlib import Path

_TEST_ROOT = Path(tempfile.mkdtemp(prefix="wecare-tests-"))
os.environ["DATABASE_URL"] = f"sqlite:///{_TEST_ROOT / 'test.db'}"
os.environ["DOCUMENTS_DIR"] = str(_TEST_ROOT / "documents")
os.environ["DOWNLOADS_DIR"] = str(_TEST_ROOT / "downloads")
os.environ["APP_ENV"] = "test"

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402

from wecare_portal.core.security import issue_portal_token  # noqa: E402
from wecare_portal.db.session import SessionLocal, engine  # noqa: E402
from wecare_portal.main import app  # noqa: E402
from wecare_portal.models import (  # noqa: E402
    Appointment,
    AppointmentStatus,
    Base,
    Document,
    Invoice,
    InvoiceLine,
    Role,
)
from wecare_portal.services import storage  # noqa: E402
from wecare_portal.services.users import create_user  # noqa: E402

PATIENT_PASSWORD = "Patient-Passw0rd!"


def token_for(user) -> str:
    return issue_portal_token(user, expires_minutes=30)


def headers_for(user) -> dict[str, str]:
    return {"Authorization": f"Bearer {token_for(user)}"}


@pytest.fixture()
def db_session():
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture()
def api_client(db_session):
    return TestClient(app)


@pytest.fixture()
def patient(db_session):
    return create_user(
        db_session,
        email="patient@example.com",
        password=PATIENT_PASSWORD,
        full_name="Pat Example",
        role=Role.patient,
    )


@pytest.fixture()
def other_patient(db_session):
    return create_user(
        db_session,
        email="other@example.com",
        password=PATIENT_PASSWORD,
        full_name="Other Example",
        role=Role.patient,
    )


@pytest.fixture()
def staff_user(db_session):
    return create_user(
        db_session,
        email="staff@example.com",
        password=PATIENT_PASSWORD,
        full_name="Sam Staff",
        role=Role.staff,
    )


@pytest.fixture()
def auth_headers(patient):
    return headers_for(patient)


@pytest.fixture()
def make_appointment(db_session):
    def _make(patient, when: datetime, **fields) -> Appointment:
        appointment = Appointment(
            patient_user_id=patient.id,
            appointment_datetime=when,
            appointment_type=fields.pop("appointment_type", "checkup"),
            status=fields.pop("status", AppointmentStatus.completed),
            **fields,
        )
        db_session.add(appointment)
        db_session.commit()
        db_session.refresh(appointment)
        return appointment

    return _make


@pytest.fixture()
def make_invoice(db_session):
    numbers = itertools.count(1)

    def _make(patient, issue_date, total_pence: int = 5000, **fields) -> Invoice:
        invoice = Invoice(
            patient_user_id=patient.id,
            invoice_number=fields.pop("invoice_number", f"INV-{next(numbers):04d}"),
            issue_date=issue_date,
            total_pence=total_pence,
            **fields,
        )
        invoice.lines.append(
            InvoiceLine(
                description="Consultation",
                quantity=1,
                unit_price_pence=total_pence,
                line_total_pence=total_pence,
            )
        )
        db_session.add(invoice)
        db_session.commit()
        db_session.refresh(invoice)
        return invoice

    return _make


@pytest.fixture()
def make_document(db_session):
    def _make(
        patient,
        uploaded_at: datetime | None = None,
        *,
        filename: str = "scan.pdf",
        mime_type: str = "application/pdf",
        content: bytes = b"%PDF-1.4 test document",
        document_type: str = "lab_result",
    ) -> Document:
        storage_key, size = storage.save_bytes(content)
        document = Document(
            patient_user_id=patient.id,
            document_type=document_type,
            original_filename=filename,
            mime_type=mime_type,
            file_size=size,
            storage_key=storage_key,
            uploaded_at=uploaded_at or datetime.now(timezone.utc),
            uploaded_by_user_id=patient.id,
        )
        db_session.add(document)
        db_session.commit()
        db_session.refresh(document)
        return document

    return _make


@pytest.fixture()
def auth_headers_for():
    return headers_for
