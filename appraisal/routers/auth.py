import logging

from fastapi import APIRouter, Depends, HTTPException, Request, status
from sqlalchemy.orm import Session

from appraisal.core.config import settings
from appraisal.core.exceptions import AuthenticationError
from appraisal.core.limiter import limiter
from appraisal.core.permissions import ROLE_CAPABILITIES
from appraisal.database import get_db
from appraisal.models.user import User
from appraisal.routers.auth_deps import get_current_user
from appraisal.schemas.auth import LoginRequest, SessionUser, Token, UserResponse
from appraisal.services import auth as auth_service
from appraisal.services.audit import AuditService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/auth", tags=["auth"])


@router.post("/login", response_model=Token)
@limiter.limit("10/minute")
def login(request: Request, login_data: LoginRequest, db: Session = Depends(get_db)):
    user = db.query(User).filter(User.email == login_data.email).first()
    if not user or not auth_service.verify_password(login_data.password, user.hashed_password):
        # Unknown email and wrong password look the same to the caller
        AuditService.log(
            db,
            user.company_id if user else None,
            action="failed_login",
            entity_type="user",
            entity_id=user.id if user else None,
            details={"email": login_data.email},
        )
        db.commit()
        raise AuthenticationError("Incorrect email or password")
    if not user.is_active:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="User is inactive")

    access_token = auth_service.create_access_token(data={
        "sub": user.email,
        "role": user.role.value,
        "user_id": user.id,
        "company_id": user.company_id,
    })
    AuditService.log(
        db,
        user.company_id,
        action="login",
        entity_type="user",
        entity_id=user.id,
        user_id=user.id,
        user_role=user.role,
    )
    db.commit()
    logger.info(f"User {user.id} logged in", extra={"company_id": user.company_id})

    return Token(
        access_token=access_token,
        expires_in=settings.access_token_expire_minutes * 60,
        user=SessionUser(
            id=user.id,
            email=user.email,
            full_name=user.full_name,
            role=user.role,
            company_id=user.company_id,
        ),
    )


@router.get("/me", response_model=UserResponse)
def get_me(current_user: User = Depends(get_current_user)):
    capabilities = sorted(c.value for c in ROLE_CAPABILITIES.get(current_user.role, ()))
    return UserResponse.model_validate(current_user).model_copy(update={"capabilities": capabilities})
