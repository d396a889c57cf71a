from __future__ import annotations

import enum
from datetime import date, datetime
from typing import Any, Optional

from pydantic import BaseModel, Field


class HealthEventType(str, enum.Enum):
    appointment = "appointment"
    invoice = "invoice"
    document = "document"


class HealthEventOut(BaseModel):
    """One merged timeline entry.

    ``timestamp`` comes from the source entity's own date field and ``data``
    carries the per-type payload the portal searches and routes on.
    """

    type: HealthEventType
    timestamp: datetime
    data: dict[str, Any] = Field(default_factory=dict)


class HealthHistoryFilters(BaseModel):
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    type: Optional[HealthEventType] = None
    limit: int


class HealthHistoryOut(BaseModel):
    events: list[HealthEventOut]
    filters: HealthHistoryFilters
