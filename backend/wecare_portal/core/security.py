from datetime import datetime, timedelta, timezone

from jose import JWTError, jwt
from passlib.context import CryptContext

from wecare_portal.core.settings import settings

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")


class InvalidToken(ValueError):
    pass


def hash_password(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(plain_password: str, hashed_password: str) -> bool:
    return pwd_context.verify(plain_password, hashed_password)


def issue_portal_token(user, *, expires_minutes: int | None = None) -> str:
    """Bearer token for a signed-in portal user; the subject is the user id."""
    now = datetime.now(timezone.utc)
    lifetime = expires_minutes or settings.access_token_expire_minutes
    claims = {
        "sub": str(user.id),
        "role": user.role.value,
        "email": user.email,
        "iat": int(now.timestamp()),
        "exp": int((now + timedelta(minutes=lifetime)).timestamp()),
    }
    return jwt.encode(claims, settings.secret_key, algorithm=settings.jwt_alg)


def token_user_id(token: str) -> int:
    try:
        payload = jwt.decode(token, settings.secret_key, algorithms=[settings.jwt_alg])
        return int(payload["sub"])
    except (JWTError, KeyError, TypeError, ValueError) as exc:
        raise InvalidToken("Invalid token") from exc
