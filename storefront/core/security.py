"""
Security utilities for authentication and authorization
Tokens are issued elsewhere; this service only decodes them
"""

from datetime import datetime, timedelta
from typing import Dict, Any
import uuid
from jose import JWTError, jwt
from fastapi import Depends
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials

from .config import settings
from .exceptions import UnauthorizedException, ForbiddenException

# Security scheme
security = HTTPBearer(auto_error=False)

class SecurityUtils:
    """Security utility functions"""

    @staticmethod
    def create_access_token(data: Dict[str, Any]) -> str:
        """Create JWT access token (used by tooling and tests)"""
        to_encode = data.copy()
        expire = datetime.utcnow() + timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES)
        to_encode.update({"exp": expire, "type": "access"})
        return jwt.encode(to_encode, settings.SECRET_KEY, algorithm=settings.ALGORITHM)

    @staticmethod
    def decode_token(token: str) -> Dict[str, Any]:
        """Decode and validate JWT token"""
        try:
            return jwt.decode(token, settings.SECRET_KEY, algorithms=[settings.ALGORITHM])
        except JWTError:
            raise UnauthorizedException("Invalid authentication credentials", "INVALID_TOKEN")

async def get_current_user(
    credentials: HTTPAuthorizationCredentials = Depends(security)
) -> Dict[str, Any]:
    """Extract the caller identity from the bearer token"""
    if credentials is None:
        raise UnauthorizedException("Authentication required")

    payload = SecurityUtils.decode_token(credentials.credentials)

    if payload.get("type") != "access":
        raise UnauthorizedException("Invalid token type", "INVALID_TOKEN")
    try:
        uuid.UUID(str(payload.get("sub")))
    except ValueError:
        raise UnauthorizedException("Invalid authentication credentials", "INVALID_TOKEN")

    return {
        "id": payload.get("sub"),
        "role": payload.get("role", "customer"),
        "email": payload.get("email"),
    }

def require_role(allowed_roles: list[str]):
    """Dependency factory checking the caller's role"""
    async def role_checker(current_user: dict = Depends(get_current_user)):
        if current_user.get("role") not in allowed_roles:
            raise ForbiddenException("Insufficient permissions")
        return current_user
    return role_checker

require_admin = require_role(["admin"])
