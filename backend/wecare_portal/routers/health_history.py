from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.orm import Session

from wecare_portal.core.settings import settings
from wecare_portal.db.session import get_db
from wecare_portal.deps import require_roles
from wecare_portal.models.user import User
from wecare_portal.schemas.health_history import (
    HealthEventType,
    HealthHistoryFilters,
    HealthHistoryOut,
)
from wecare_portal.services.health_history import get_health_history

router = APIRouter(prefix="/patients/me", tags=["health-history"])


@router.get("/health-history", response_model=HealthHistoryOut)
def my_health_history(
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
    type: Optional[HealthEventType] = None,
    limit: int = Query(
        default=settings.health_history_default_limit,
        ge=1,
        le=settings.health_history_max_limit,
    ),
    db: Session = Depends(get_db),
    user: User = Depends(require_roles("patient")),
):
    if start_date and end_date and end_date < start_date:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail="End date must be after start date",
        )
    events = get_health_history(
        db,
        patient_user_id=user.id,
        start_date=start_date,
        end_date=end_date,
        event_type=type,
        limit=limit,
    )
    return HealthHistoryOut(
        events=events,
        filters=HealthHistoryFilters(
            start_date=start_date, end_date=end_date, type=type, limit=limit
        ),
    )
