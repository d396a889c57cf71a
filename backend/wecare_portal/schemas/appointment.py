from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict

from wecare_portal.models.appointment import AppointmentStatus


class AppointmentOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    patient_user_id: int
    staff_user_id: Optional[int] = None
    appointment_datetime: datetime
    duration_minutes: int
    appointment_type: Optional[str] = None
    status: AppointmentStatus
    location: Optional[str] = None
    notes: Optional[str] = None
    created_at: datetime
    updated_at: datetime
