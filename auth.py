import logging
from datetime import datetime, timedelta, timezone
from typing import Optional

import bcrypt
import jwt
from fastapi import Depends, HTTPException
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from pydantic import ValidationError

from config import JWT_ALGORITHM, JWT_EXPIRES_HOURS, JWT_SECRET
from schemas import TokenClaims

logger = logging.getLogger(__name__)

BCRYPT_ROUNDS = 10
# bcrypt only looks at the first 72 bytes of a password.
BCRYPT_MAX_BYTES = 72

bearer_scheme = HTTPBearer(auto_error=False)


def _password_bytes(password: str) -> bytes:
    return password.encode("utf-8")[:BCRYPT_MAX_BYTES]


def hash_password(password: str) -> str:
    return bcrypt.hashpw(_password_bytes(password), bcrypt.gensalt(rounds=BCRYPT_ROUNDS)).decode("utf-8")


def verify_password(password: str, hashed: str) -> bool:
    try:
        return bcrypt.checkpw(_password_bytes(password), hashed.encode("utf-8"))
    except ValueError:
        logger.warning("Stored password hash is malformed")
        return False


def generate_token(user_id: str, email: str, is_admin: bool) -> str:
    payload = {
        "userId": user_id,
        "email": email,
        "isAdmin": is_admin,
        "exp": datetime.now(timezone.utc) + timedelta(hours=JWT_EXPIRES_HOURS),
    }
    return jwt.encode(payload, JWT_SECRET, algorithm=JWT_ALGORITHM)


def verify_token(token: str) -> Optional[TokenClaims]:
    """Return the token's claims, or None when the signature or expiry is bad."""
    try:
        payload = jwt.decode(token, JWT_SECRET, algorithms=[JWT_ALGORITHM])
    except jwt.PyJWTError as e:
        logger.debug("Rejected token: %s", e)
        return None
    try:
        return TokenClaims.model_validate(payload)
    except ValidationError:
        logger.debug("Token payload is missing claims")
        return None


def authenticate_token(credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme)) -> TokenClaims:
    if credentials is None:
        raise HTTPException(status_code=401, detail="Token not provided")
    claims = verify_token(credentials.credentials)
    if claims is None:
        raise HTTPException(status_code=403, detail="Invalid or expired token")
    return claims


def require_admin(claims: TokenClaims = Depends(authenticate_token)) -> TokenClaims:
    if not claims.is_admin:
        logger.warning("User %s tried an administrator route", claims.user_id)
        raise HTTPException(status_code=403, detail="Administrator privileges required")
    return claims
