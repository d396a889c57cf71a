from fastapi import APIRouter, Depends, HTTPException, Request, status
from sqlalchemy.orm import Session

from wecare_portal.core.security import issue_portal_token
from wecare_portal.db.session import get_db
from wecare_portal.models.audit_log import AuditEntityType
from wecare_portal.schemas.auth import LoginRequest, Token
from wecare_portal.services.audit import log_event
from wecare_portal.services.users import AccountDisabled, authenticate

router = APIRouter(prefix="/auth", tags=["auth"])


@router.post("/login", response_model=Token)
def login(payload: LoginRequest, request: Request, db: Session = Depends(get_db)):
    try:
        user = authenticate(db, payload.email, payload.password)
    except AccountDisabled:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Account disabled")
    if user is None:
        log_event(
            db,
            actor=None,
            action="auth.login_failed",
            entity_type=AuditEntityType.auth,
            entity_id="login",
            after_data={"email": payload.email.lower().strip()},
            request=request,
        )
        db.commit()
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid credentials")
    return Token(access_token=issue_portal_token(user))
