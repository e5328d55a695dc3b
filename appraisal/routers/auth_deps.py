"""
Authentication and capability dependencies.
Capabilities come from the role table in appraisal.core.permissions, the same
table that drives navigation visibility.
"""
import logging
from typing import Callable

from fastapi import Depends, HTTPException, status
from fastapi.security import OAuth2PasswordBearer
from sqlalchemy.orm import Session

from appraisal.core.permissions import Capability, has_capability
from appraisal.database import get_db
from appraisal.models.user import User
from appraisal.services import auth as auth_service

logger = logging.getLogger(__name__)

oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/auth/login")


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


def get_current_user(token: str = Depends(oauth2_scheme), db: Session = Depends(get_db)) -> User:
    """
    Resolves the bearer token to an active user.
    401 for a bad, expired or orphaned token; 403 for a deactivated account.
    """
    payload = auth_service.decode_access_token(token)
    if payload is None:
        logger.warning("Rejected token: signature or format invalid")
        raise _unauthorized("Could not validate credentials")
    if payload.get("error") == "TOKEN_EXPIRED":
        raise _unauthorized("TOKEN_EXPIRED")
    if payload.get("type") != "access" or not payload.get("sub"):
        logger.warning("Rejected token: wrong type or missing subject")
        raise _unauthorized("Invalid token")

    user = db.query(User).filter(User.email == payload["sub"]).first()
    if user is None:
        logger.warning(f"Rejected token: no user {payload['sub']}")
        raise _unauthorized("User not found")
    if not user.is_active:
        logger.info(f"Rejected token: user {user.id} is deactivated")
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="User is inactive")
    return user


def get_current_company(current_user: User = Depends(get_current_user)) -> int:
    """The caller's tenant. Passed explicitly into every service."""
    if current_user.company_id is None:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="User does not belong to any company"
        )
    return current_user.company_id


def require_capability(capability: Capability) -> Callable:
    """
    Dependency factory that checks the caller's role grants a capability.

    Usage:
        @router.post("/initiate")
        def initiate(user: User = Depends(require_capability(Capability.initiate_appraisals))):
            ...
    """
    def capability_checker(current_user: User = Depends(get_current_user)) -> User:
        if not has_capability(current_user.role, capability):
            logger.info(f"Access denied: {current_user.email} lacks {capability.value}")
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"Access denied. Required capability: {capability.value}"
            )
        return current_user
    return capability_checker
