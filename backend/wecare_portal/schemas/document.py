from datetime import datetime

from pydantic import BaseModel, ConfigDict


class DocumentOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    patient_user_id: int
    document_type: str
    original_filename: str
    mime_type: str
    file_size: int
    uploaded_at: datetime


class DocumentDeleteOut(BaseModel):
    success: bool
    message: str
