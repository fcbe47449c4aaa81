"""
Password hashing, JWT and secret-generation helpers.

- Passwords are hashed with bcrypt directly (passlib is unmaintained
  and broken with bcrypt>=4.1).
- Access tokens are self-contained JWTs carrying sub, email, role and
  a jti.  There is no server-side session store: authorization data is
  re-read from the database on every request, and a token cannot be
  revoked before it expires.
- Invitation tokens, reset tokens and temporary passwords come from
  the `secrets` module, never from `random`.
"""

import secrets
import string
import uuid
from datetime import datetime, timedelta
from typing import Any

import bcrypt
from fastapi.security import OAuth2PasswordBearer
from jose import JWTError, jwt

from authcore.core.clock import utcnow
from authcore.core.config import settings
from authcore.core.exceptions import InvalidTokenError

ACCESS_TOKEN_TYPE = "access"

# ── Password hashing ────────────────────────────────────────────────


def hash_password(plain: str) -> str:
    salt = bcrypt.gensalt(rounds=settings.BCRYPT_ROUNDS)
    return bcrypt.hashpw(plain.encode("utf-8"), salt).decode("utf-8")


def verify_password(plain: str, hashed: str | None) -> bool:
    """Constant-time comparison via bcrypt.  Unusable hashes never match."""
    if not hashed:
        return False
    try:
        return bcrypt.checkpw(plain.encode("utf-8"), hashed.encode("utf-8"))
    except ValueError:
        return False


_DUMMY_HASH: str | None = None


def burn_password_check(plain: str) -> None:
    """Spend one bcrypt round-trip for an unknown account.

    Keeps "no such user" as slow as "wrong password" so response time
    does not reveal which emails are registered.
    """
    global _DUMMY_HASH
    if _DUMMY_HASH is None:
        _DUMMY_HASH = hash_password(secrets.token_hex(16))
    verify_password(plain, _DUMMY_HASH)


# ── Secrets ──────────────────────────────────────────────────────────

_SYMBOLS = "!@#$%^&*"
_PASSWORD_CLASSES = (string.ascii_lowercase, string.ascii_uppercase, string.digits, _SYMBOLS)


def generate_token() -> str:
    """64 hex chars of CSPRNG output for invitation / reset links."""
    return secrets.token_hex(32)


def generate_temporary_password(length: int | None = None) -> str:
    """Random password with at least one char from every class."""
    length = max(length or settings.TEMPORARY_PASSWORD_LENGTH, len(_PASSWORD_CLASSES))
    rng = secrets.SystemRandom()
    chars = [rng.choice(group) for group in _PASSWORD_CLASSES]
    alphabet = "".join(_PASSWORD_CLASSES)
    chars.extend(rng.choice(alphabet) for _ in range(length - len(chars)))
    rng.shuffle(chars)
    return "".join(chars)


# ── JWT ──────────────────────────────────────────────────────────────
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/auth/login", auto_error=False)


def create_access_token(
    data: dict[str, Any],
    expires_delta: timedelta | None = None,
) -> tuple[str, datetime]:
    """Sign `data` and return the token with its expiry."""
    now = utcnow()
    expire = now + (expires_delta or timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES))
    to_encode = data.copy()
    to_encode.update(
        {
            "exp": expire,
            "iat": now,
            "jti": uuid.uuid4().hex,
            "type": ACCESS_TOKEN_TYPE,
        }
    )
    token = jwt.encode(to_encode, settings.SECRET_KEY, algorithm=settings.JWT_ALGORITHM)
    return token, expire


def decode_access_token(token: str) -> dict[str, Any]:
    """Decode & validate a JWT.  Raises InvalidTokenError on any failure."""
    try:
        payload = jwt.decode(token, settings.SECRET_KEY, algorithms=[settings.JWT_ALGORITHM])
    except JWTError as exc:
        raise InvalidTokenError() from exc
    if payload.get("type") != ACCESS_TOKEN_TYPE or not payload.get("sub"):
        raise InvalidTokenError()
    return payload
