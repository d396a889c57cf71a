"""Timeline entries for the health history view.

Each entry wraps one appointment, invoice or document.  The payload shape
differs per ``type``; the models below form a tagged union keyed on that
field so callers branch on the variant instead of probing dict keys.
"""

from __future__ import annotations

import enum
from datetime import date, datetime
from typing import Annotated, Any, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError, field_validator


class EventType(str, enum.Enum):
    appointment = "appointment"
    invoice = "invoice"
    document = "document"


class EventAction(str, enum.Enum):
    download = "download"
    download_receipt = "download_receipt"


_ACTION_ALIASES = {"downloadReceipt": EventAction.download_receipt}


class InvalidEvent(ValueError):
    pass


class _Payload(BaseModel):
    model_config = ConfigDict(frozen=True, extra="ignore")

    id: Optional[int] = None


class AppointmentData(_Payload):
    appointment_type: Optional[str] = None
    status: Optional[str] = None
    notes: Optional[str] = None
    created_at: Optional[datetime] = None


class InvoiceData(_Payload):
    invoice_number: Optional[str] = None
    payment_status: Optional[str] = None
    payment_method: Optional[str] = None
    total_pence: Optional[int] = None
    due_date: Optional[date] = None
    created_at: Optional[datetime] = None


class DocumentData(_Payload):
    document_type: Optional[str] = None
    file_name: Optional[str] = None
    file_size: Optional[int] = None
    mime_type: Optional[str] = None
    uploaded_at: Optional[datetime] = None


class _Event(BaseModel):
    model_config = ConfigDict(frozen=True)

    timestamp: datetime
    action: Optional[EventAction] = None

    @field_validator("action", mode="before")
    @classmethod
    def _known_action(cls, value):
        # unrecognised hints fall back to the default view
        if value is None or isinstance(value, EventAction):
            return value
        if not isinstance(value, str):
            return None
        if value in _ACTION_ALIASES:
            return _ACTION_ALIASES[value]
        try:
            return EventAction(value)
        except ValueError:
            return None

    @property
    def key(self) -> tuple[str, Any]:
        # ids are only unique within a type
        return (str(self.type), self.data.id)

    def with_action(self, action: EventAction | None) -> "EventRecord":
        return self.model_copy(update={"action": action})


class AppointmentEvent(_Event):
    type: Literal["appointment"] = "appointment"
    data: AppointmentData


class InvoiceEvent(_Event):
    type: Literal["invoice"] = "invoice"
    data: InvoiceData


class DocumentEvent(_Event):
    type: Literal["document"] = "document"
    data: DocumentData


class UnknownEvent(_Event):
    """An entry whose type this client does not understand yet."""

    type: str
    data: _Payload = Field(default_factory=_Payload)


KnownEvent = Annotated[
    Union[AppointmentEvent, InvoiceEvent, DocumentEvent], Field(discriminator="type")
]
EventRecord = Union[AppointmentEvent, InvoiceEvent, DocumentEvent, UnknownEvent]

_known_adapter = TypeAdapter(KnownEvent)
KNOWN_TYPES = frozenset(member.value for member in EventType)


def parse_event(raw: Any) -> EventRecord:
    """Validate one upstream item, rejecting anything without a timestamp."""
    if not isinstance(raw, dict):
        raise InvalidEvent(f"expected an object, got {type(raw).__name__}")
    timestamp = raw.get("timestamp")
    if timestamp is None or (isinstance(timestamp, str) and not timestamp.strip()):
        raise InvalidEvent("event has no timestamp")
    event_type = raw.get("type")
    if not isinstance(event_type, str) or not event_type:
        raise InvalidEvent("event has no type")
    try:
        if event_type in KNOWN_TYPES:
            return _known_adapter.validate_python(raw)
        return UnknownEvent.model_validate(raw)
    except ValidationError as exc:
        raise InvalidEvent(str(exc)) from exc
