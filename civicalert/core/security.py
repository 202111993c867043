"""
Security utilities for authentication and authorization
Handles session JWT verification and the static admin token guard
"""

from datetime import datetime, timedelta
from typing import Optional, Dict, Any
from jose import JWTError, jwt
from fastapi import Depends, Header, Request
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
import secrets
import logging

from .config import settings
from .exceptions import AuthError

logger = logging.getLogger(__name__)

# Security scheme; missing credentials are reported as 401 by get_current_user
security = HTTPBearer(auto_error=False)

class SecurityUtils:
    """Security utility functions"""

    @staticmethod
    def create_access_token(data: Dict[str, Any], expires_minutes: Optional[int] = None) -> str:
        """Create JWT access token (used by scripts and tests)"""
        to_encode = data.copy()
        expire = datetime.utcnow() + timedelta(
            minutes=expires_minutes or settings.ACCESS_TOKEN_EXPIRE_MINUTES
        )
        to_encode.update({"exp": expire})
        return jwt.encode(to_encode, settings.SECRET_KEY, algorithm=settings.ALGORITHM)

    @staticmethod
    def decode_token(token: str) -> Dict[str, Any]:
        """Decode and validate JWT token"""
        try:
            return jwt.decode(
                token,
                settings.SECRET_KEY,
                algorithms=[settings.ALGORITHM],
                options={"verify_aud": False},
            )
        except JWTError:
            raise AuthError("Invalid authentication credentials")

    @staticmethod
    def verify_admin_token(token: Optional[str]) -> bool:
        """Constant-time comparison against the configured admin token"""
        if not settings.ADMIN_TOKEN or not token:
            return False
        return secrets.compare_digest(token, settings.ADMIN_TOKEN)

# Dependency to get current user from token
async def get_current_user(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security)
) -> Dict[str, Any]:
    """
    Extract and validate user from the session token
    The user id always comes from the verified token, never from the body
    """
    if credentials is None or not credentials.credentials:
        raise AuthError("Not authenticated")

    payload = SecurityUtils.decode_token(credentials.credentials)
    user_id = payload.get("sub")
    if not user_id:
        raise AuthError("Invalid session")

    # Rate limit key
    request.state.user_id = str(user_id)

    return {
        "id": str(user_id),
        "email": payload.get("email"),
        "role": payload.get("role"),
    }

async def require_admin_token(
    x_admin_token: Optional[str] = Header(None, alias="x-admin-token")
) -> None:
    """Guard for privileged endpoints"""
    if not SecurityUtils.verify_admin_token(x_admin_token):
        logger.warning("Rejected privileged request with missing or invalid admin token")
        raise AuthError("Unauthorized", error_code="INVALID_ADMIN_TOKEN")
