from fastapi import Depends, Header, HTTPException, status
from sqlalchemy import select
from sqlalchemy.orm import Session

from wecare_portal.core.security import InvalidToken, token_user_id
from wecare_portal.db.session import get_db
from wecare_portal.models.user import Role, User


def get_current_user(
    db: Session = Depends(get_db), authorization: str | None = Header(default=None)
) -> User:
    if not authorization or not authorization.lower().startswith("bearer "):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Missing bearer token")
    try:
        user_id = token_user_id(authorization.split(" ", 1)[1].strip())
    except InvalidToken:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token")

    user = db.scalar(select(User).where(User.id == user_id))
    if not user or not user.is_active:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Inactive user")
    return user


def require_roles(*roles: str):
    def _inner(user: User = Depends(get_current_user)) -> User:
        if user.role.value not in roles:
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Forbidden")
        return user

    return _inner


def ensure_owner_or_staff(user: User, patient_user_id: int, *, detail: str) -> None:
    """Patients may only reach their own records; other patients' rows look missing."""
    if user.role == Role.patient and patient_user_id != user.id:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=detail)
