from datetime import datetime, timedelta, timezone
from jose import JWTError, jwt
from typing import Any, Dict, Optional
from utils.logger import setup_logger
from core.config import settings

logger = setup_logger("SECURITY")

MAX_PRINCIPAL_LENGTH = 128


def create_access_token(
    principal: str,
    expires_delta: Optional[timedelta] = None,
    extra_claims: Optional[Dict[str, Any]] = None,
) -> str:
    """Issue a bearer token whose subject is the caller principal"""
    if not principal or len(principal) > MAX_PRINCIPAL_LENGTH:
        raise ValueError("Principal must be a non-empty string of at most 128 chars")

    to_encode: Dict[str, Any] = dict(extra_claims or {})
    expire = datetime.now(timezone.utc) + (
        expires_delta or timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES)
    )
    to_encode.update({"sub": str(principal), "exp": expire})

    return jwt.encode(to_encode, settings.SECRET_KEY, algorithm=settings.ALGORITHM)


def decode_access_token(token: str) -> Optional[str]:
    """Return the principal carried by a valid token, None otherwise"""
    try:
        payload = jwt.decode(
            token, settings.SECRET_KEY, algorithms=[settings.ALGORITHM]
        )
    except JWTError as e:
        logger.warning(f"JWT validation failed: {str(e)}")
        return None

    principal = payload.get("sub")
    if not principal or len(principal) > MAX_PRINCIPAL_LENGTH:
        logger.warning("Invalid token payload - missing or oversized sub")
        return None
    return principal
