from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session

from wecare_portal.db.session import get_db
from wecare_portal.deps import ensure_owner_or_staff, get_current_user
from wecare_portal.models.appointment import Appointment
from wecare_portal.models.user import User
from wecare_portal.schemas.appointment import AppointmentOut

router = APIRouter(prefix="/appointments", tags=["appointments"])


@router.get("/{appointment_id}", response_model=AppointmentOut)
def get_appointment(
    appointment_id: int,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    appt = db.get(Appointment, appointment_id)
    if not appt:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Appointment not found")
    ensure_owner_or_staff(user, appt.patient_user_id, detail="Appointment not found")
    return appt
