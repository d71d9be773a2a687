"""Security utilities: JWT tokens, password hashing, device auth codes."""

import hashlib
import secrets
import string
from datetime import datetime, timedelta, timezone

import bcrypt
import jwt

from fieldsync.config import settings

# Compared against when the username is unknown so both failure paths cost a bcrypt round
_DUMMY_HASH = bcrypt.hashpw(b"fieldsync-dummy-password", bcrypt.gensalt()).decode()

AUTH_CODE_ALPHABET = string.ascii_uppercase + string.digits


# --- Password Hashing ---

def hash_password(password: str) -> str:
    return bcrypt.hashpw(password.encode(), bcrypt.gensalt()).decode()


def verify_password(password: str, hashed: str | None) -> bool:
    if not hashed:
        bcrypt.checkpw(password.encode(), _DUMMY_HASH.encode())
        return False
    try:
        return bcrypt.checkpw(password.encode(), hashed.encode())
    except ValueError:
        return False


# --- JWT Tokens ---

def create_access_token(user_id: str, username: str, role: str, device_id: str) -> str:
    expire = datetime.now(timezone.utc) + timedelta(minutes=settings.access_token_expire_minutes)
    payload = {
        "sub": user_id,
        "usr": username,
        "role": role,
        "dev": device_id,
        "exp": expire,
        "type": "access",
    }
    return jwt.encode(payload, settings.jwt_secret, algorithm=settings.jwt_algorithm)


def create_refresh_token(user_id: str, device_id: str) -> str:
    expire = datetime.now(timezone.utc) + timedelta(days=settings.refresh_token_expire_days)
    payload = {
        "sub": user_id,
        "dev": device_id,
        "exp": expire,
        "jti": secrets.token_hex(8),
        "type": "refresh",
    }
    return jwt.encode(payload, settings.jwt_secret, algorithm=settings.jwt_algorithm)


def decode_token(token: str) -> dict:
    """Decode and validate a JWT token. Raises jwt.PyJWTError on failure."""
    return jwt.decode(token, settings.jwt_secret, algorithms=[settings.jwt_algorithm])


# --- Device auth code ---

def generate_auth_code(length: int | None = None) -> str:
    """Short human-readable code relayed to an administrator."""
    length = length or settings.auth_code_length
    return "".join(secrets.choice(AUTH_CODE_ALPHABET) for _ in range(length))


# --- Token Hash ---

def hash_token(token: str) -> str:
    """Hash a token for storage (not for password - just fingerprint)."""
    return hashlib.sha256(token.encode()).hexdigest()
