# app/api/deps/auth.py - Caller identity and role-based authorization
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from typing import List
import logging

from app.core.security import CallerIdentity, token_manager

logger = logging.getLogger(__name__)

security = HTTPBearer(auto_error=False)


def get_current_caller(
    credentials: HTTPAuthorizationCredentials = Depends(security),
) -> CallerIdentity:
    """
    Decode the bearer JWT into a CallerIdentity.
    Users are owned by the portal; nothing is looked up here.
    """
    if credentials is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return token_manager.identity_from_token(credentials.credentials)


def require_roles(required_roles: List[str]):
    """
    Create a dependency that requires specific roles.
    Usage: caller: CallerIdentity = Depends(require_roles(["ADMIN", "ACCOUNTANT"]))
    """
    def role_checker(caller: CallerIdentity = Depends(get_current_caller)) -> CallerIdentity:
        if not caller.has_any_role(required_roles):
            logger.warning(f"{caller.user_id} denied: needs one of {required_roles}")
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"Requires one of roles: {', '.join(required_roles)}",
            )
        return caller

    return role_checker
