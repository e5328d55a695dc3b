from pydantic import BaseModel, EmailStr, ConfigDict
from typing import List, Optional
from datetime import datetime
from appraisal.models.user import UserRole


class LoginRequest(BaseModel):
    email: EmailStr
    password: str


class SessionUser(BaseModel):
    """Identity echoed back with the token so clients can render the menu right away."""
    id: int
    email: str
    full_name: str
    role: UserRole
    company_id: Optional[int] = None


class Token(BaseModel):
    access_token: str
    token_type: str = "bearer"
    expires_in: int
    user: SessionUser


class UserResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    email: str
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    full_name: str
    role: UserRole
    company_id: Optional[int] = None
    code: Optional[str] = None
    designation: Optional[str] = None
    department_id: Optional[int] = None
    reporting_manager_id: Optional[int] = None
    date_of_joining: Optional[datetime] = None
    capabilities: List[str] = []
    created_at: Optional[datetime] = None
