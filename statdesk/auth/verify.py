"""
verify.py
---------
Purpose:
    JWT verification for the helpdesk statistics API.

Notes:
    - Tokens are issued by the login service; this module only verifies them.
    - Provides `auth_dependency` for any signed-in user and
      `admin_dependency` for taxonomy editing and data administration.
"""

import jwt
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from statdesk.config import settings

_security = HTTPBearer()


def verify_jwt(token: str) -> dict:
    try:
        options = {"verify_exp": True, "verify_aud": settings.JWT_AUDIENCE is not None}
        decoded = jwt.decode(
            token,
            settings.JWT_SECRET,
            algorithms=[settings.JWT_ALGORITHM],
            audience=settings.JWT_AUDIENCE,
            options=options,
        )
        return decoded
    except jwt.PyJWTError as e:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=f"Invalid authentication token: {e}",
            headers={"WWW-Authenticate": "Bearer"},
        ) from e


def is_admin(claims: dict) -> bool:
    role = claims.get("role")
    roles = claims.get("roles") or []
    return role == settings.ADMIN_ROLE or settings.ADMIN_ROLE in roles


def auth_dependency(credentials: HTTPAuthorizationCredentials = Depends(_security)) -> dict:
    token = credentials.credentials
    return verify_jwt(token)


def admin_dependency(claims: dict = Depends(auth_dependency)) -> dict:
    if not is_admin(claims):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Admin role required")
    return claims
