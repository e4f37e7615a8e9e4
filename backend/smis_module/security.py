from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

import bcrypt
import jwt

from .config import settings


class AuthError(Exception):
    pass


@dataclass(frozen=True)
class TokenClaims:
    user_id: int
    role: str
    expires_at: datetime


def hash_password(password: str) -> str:
    salt = bcrypt.gensalt()
    return bcrypt.hashpw(password.encode("utf-8"), salt).decode("utf-8")


def verify_password(password: str, password_hash: str) -> bool:
    try:
        return bcrypt.checkpw(password.encode("utf-8"), password_hash.encode("utf-8"))
    except ValueError:
        # Stored hash is not a bcrypt hash.
        return False


def create_access_token(user_id: int, role: str, expires_minutes: int | None = None) -> str:
    issued_at = datetime.now(timezone.utc)
    lifetime = timedelta(minutes=expires_minutes or settings.jwt_exp_minutes)
    claims = {
        "sub": str(user_id),
        "role": role,
        "iat": issued_at,
        "exp": issued_at + lifetime,
    }
    return jwt.encode(claims, settings.jwt_secret, algorithm=settings.jwt_algorithm)


def decode_access_token(token: str) -> TokenClaims:
    try:
        raw = jwt.decode(
            token,
            settings.jwt_secret,
            algorithms=[settings.jwt_algorithm],
            options={"require": ["sub", "role", "exp"]},
        )
    except jwt.ExpiredSignatureError as exc:
        raise AuthError("Token expired") from exc
    except jwt.MissingRequiredClaimError as exc:
        raise AuthError("Invalid token payload") from exc
    except jwt.InvalidTokenError as exc:
        raise AuthError("Invalid token") from exc

    sub = raw["sub"]
    if not isinstance(sub, str) or not sub.isdigit():
        raise AuthError("Invalid token payload")
    return TokenClaims(
        user_id=int(sub),
        role=raw["role"],
        expires_at=datetime.fromtimestamp(raw["exp"], tz=timezone.utc),
    )
