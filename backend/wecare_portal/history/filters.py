from __future__ import annotations

import calendar
from datetime import date, timedelta
from typing import Iterable, Literal, Optional, Sequence

from pydantic import BaseModel, ConfigDict

from wecare_portal.history.events import EventRecord, EventType

ALL_TYPES = "all"

FilterType = Literal["all", "appointment", "invoice", "document"]

SEARCH_FIELDS: dict[EventType, tuple[str, ...]] = {
    EventType.appointment: ("appointment_type", "notes", "status"),
    EventType.invoice: ("invoice_number", "payment_status", "payment_method"),
    EventType.document: ("document_type", "file_name"),
}

_missing = set(EventType) - set(SEARCH_FIELDS)
if _missing:
    raise RuntimeError(f"Search fields missing for event types: {sorted(t.value for t in _missing)}")


def _shift_months(value: date, months: int) -> date:
    month_index = value.month - 1 + months
    year = value.year + month_index // 12
    month = month_index % 12 + 1
    day = min(value.day, calendar.monthrange(year, month)[1])
    return date(year, month, day)


def _preset_start(preset: str, today: date) -> date | None:
    if preset == "last7days":
        return today - timedelta(days=7)
    if preset == "last30days":
        return today - timedelta(days=30)
    if preset == "last3months":
        return _shift_months(today, -3)
    if preset == "lastyear":
        return _shift_months(today, -12)
    return None


PRESETS = ("last7days", "last30days", "last3months", "lastyear", "all")


class FilterState(BaseModel):
    """Date, type and search constraints for the timeline.

    Values are immutable; every transition returns a new state.  Dates and
    type are applied by the server, search is applied locally.
    """

    model_config = ConfigDict(frozen=True)

    start_date: Optional[date] = None
    end_date: Optional[date] = None
    type: FilterType = ALL_TYPES
    search: str = ""

    def with_changes(self, **changes) -> "FilterState":
        if isinstance(changes.get("type"), EventType):
            changes["type"] = changes["type"].value
        return FilterState.model_validate({**self.model_dump(), **changes})

    def with_preset(self, preset: str, today: date | None = None) -> "FilterState":
        today = today or date.today()
        start = _preset_start(preset, today)
        if start is None:
            return self.with_changes(start_date=None, end_date=None)
        return self.with_changes(start_date=start, end_date=today)

    def cleared(self) -> "FilterState":
        return FilterState()

    @property
    def server_key(self) -> tuple:
        """The part of the state that changes what the server returns."""
        return (self.start_date, self.end_date, self.type)

    def request_params(self, limit: int) -> dict[str, str | int]:
        params: dict[str, str | int] = {"limit": limit}
        if self.start_date:
            params["start_date"] = self.start_date.isoformat()
        if self.end_date:
            params["end_date"] = self.end_date.isoformat()
        if self.type != ALL_TYPES:
            params["type"] = self.type
        return params


def normalize_search(search: str | None) -> str:
    return (search or "").strip().lower()


def matches_search(record: EventRecord, term: str) -> bool:
    try:
        fields = SEARCH_FIELDS[EventType(record.type)]
    except ValueError:
        return False
    for field in fields:
        value = getattr(record.data, field, None)
        if value is None:
            continue
        if term in str(value).lower():
            return True
    return False


def apply_search(records: Sequence[EventRecord], search: str | None) -> list[EventRecord]:
    """Narrow an already-fetched window by free text.

    Returns the same record objects, never copies.  An empty term keeps
    everything; records of unmapped types never match a non-empty term.
    """
    term = normalize_search(search)
    if not term:
        return list(records)
    return [record for record in records if matches_search(record, term)]


class EventCounts(BaseModel):
    total: int = 0
    appointments: int = 0
    invoices: int = 0
    documents: int = 0


def event_counts(records: Iterable[EventRecord]) -> EventCounts:
    counts = {"total": 0, "appointments": 0, "invoices": 0, "documents": 0}
    for record in records:
        counts["total"] += 1
        if record.type == EventType.appointment:
            counts["appointments"] += 1
        elif record.type == EventType.invoice:
            counts["invoices"] += 1
        elif record.type == EventType.document:
            counts["documents"] += 1
    return EventCounts(**counts)
