from __future__ import annotations

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from wecare_portal.core.security import hash_password, verify_password
from wecare_portal.models.user import Role, User


class AccountDisabled(Exception):
    pass


def get_user_by_email(db: Session, email: str) -> User | None:
    return db.scalar(select(User).where(User.email == email.lower().strip()))


def authenticate(db: Session, email: str, password: str) -> User | None:
    """The user for valid credentials, ``None`` otherwise.

    Raises :class:`AccountDisabled` for a known but deactivated account.
    """
    user = get_user_by_email(db, email)
    if not user or not verify_password(password, user.hashed_password):
        return None
    if not user.is_active:
        raise AccountDisabled(user.email)
    return user


def create_user(
    db: Session,
    *,
    email: str,
    password: str,
    full_name: str = "",
    role: Role = Role.patient,
    is_active: bool = True,
) -> User:
    user = User(
        email=email.lower().strip(),
        full_name=full_name,
        role=role,
        is_active=is_active,
        hashed_password=hash_password(password),
    )
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


def user_count(db: Session) -> int:
    return int(db.scalar(select(func.count(User.id))) or 0)


def seed_initial_admin(db: Session, *, email: str, password: str) -> bool:
    if user_count(db) > 0:
        return False
    create_user(db, email=email, password=password, full_name="Admin", role=Role.admin)
    return True
