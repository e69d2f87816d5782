import os
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional, Tuple

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt
from passlib.context import CryptContext
from sqlalchemy.orm import Session

from . import models
from .database import get_db

SECRET_KEY = os.getenv("SECRET_KEY", "super-secret-studio-booking-key")
ALGORITHM = "HS256"
ADMIN_TOKEN_TTL_MINUTES = int(os.getenv("ADMIN_TOKEN_TTL_MINUTES", "60"))
ADMIN_ROLE = "admin"

# --- Password hashing ---
pwd_context = CryptContext(schemes=["pbkdf2_sha256"], deprecated="auto")

security = HTTPBearer(auto_error=False)


def admin_auth_disabled() -> bool:
    return os.getenv("ADMIN_AUTH_DISABLED") == "1"


def verify_password(plain_password: str, hashed_password: str) -> bool:
    """
    Verify a plaintext password against the stored hash.

    Parameters
    ----------
    plain_password : str
        Raw password provided by the caller.
    hashed_password : str
        Previously stored hash.

    Returns
    -------
    bool
        True if the password matches, False otherwise.
    """
    if not hashed_password:
        return False
    return pwd_context.verify(plain_password, hashed_password)


def get_password_hash(password: str) -> str:
    return pwd_context.hash(password)


def create_admin_token(token_version: int) -> Tuple[str, datetime]:
    """
    Issue a signed admin bearer token.

    The token embeds the settings' ``token_version``; bumping that value
    (on password change) revokes every token issued before.

    Returns
    -------
    Tuple[str, datetime]
        The encoded token and its expiry time.
    """
    expires_at = datetime.now(timezone.utc) + timedelta(minutes=ADMIN_TOKEN_TTL_MINUTES)
    payload = {
        "sub": "admin",
        "role": ADMIN_ROLE,
        "ver": token_version,
        "exp": expires_at,
    }
    return jwt.encode(payload, SECRET_KEY, algorithm=ALGORITHM), expires_at


async def get_current_admin(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    db: Session = Depends(get_db),
) -> Dict[str, Any]:
    """
    Decode the admin bearer token and return its claims.

    When ``ADMIN_AUTH_DISABLED=1`` every caller is treated as admin, which
    is only meant for local development.

    Raises
    ------
    HTTPException
        401 if the token is missing, invalid, expired or revoked;
        403 if the token does not carry the admin role.
    """
    if admin_auth_disabled():
        return {"username": "dev-admin", "role": ADMIN_ROLE}

    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Invalid or expired token",
        headers={"WWW-Authenticate": "Bearer"},
    )

    if credentials is None or credentials.scheme.lower() != "bearer":
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Authorization header required",
            headers={"WWW-Authenticate": "Bearer"},
        )

    try:
        payload = jwt.decode(credentials.credentials, SECRET_KEY, algorithms=[ALGORITHM])
    except JWTError:
        raise credentials_exception

    if payload.get("role") != ADMIN_ROLE:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Not enough permissions",
        )

    settings_row = db.query(models.Settings).order_by(models.Settings.id).first()
    current_version = settings_row.token_version if settings_row else 1
    if payload.get("ver") != current_version:
        raise credentials_exception

    return {"username": payload.get("sub"), "role": payload.get("role")}
