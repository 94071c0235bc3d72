from pydantic import BaseModel, EmailStr, Field, field_validator
from typing import Optional, List
from uuid import UUID
from datetime import datetime
from app.modules.auth.access import Role, AccessLevel, MembershipStatus

# User schemas
class UserCreate(BaseModel):
    email: EmailStr
    password: str = Field(..., min_length=8)
    first_name: str = Field(..., min_length=2, max_length=100)
    last_name: str = Field(..., min_length=2, max_length=100)

    @field_validator('password')
    @classmethod
    def validate_password(cls, v):
        if len(v) < 8:
            raise ValueError('La contraseña debe tener al menos 8 caracteres')
        return v

class UserLogin(BaseModel):
    email: EmailStr
    password: str

class UserOut(BaseModel):
    id: UUID
    email: EmailStr
    first_name: str
    last_name: str
    full_name: str
    role: Role
    is_active: bool

    class Config:
        from_attributes = True

class UserCompanyOut(BaseModel):
    id: UUID
    company_id: UUID
    access_level: AccessLevel
    status: MembershipStatus
    is_active: bool
    joined_at: Optional[datetime] = None
    company_name: str

    class Config:
        from_attributes = True

# Token schemas
class TokenResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"
    expires_in: int
    user: UserOut
    companies: List[UserCompanyOut] = []

class MeResponse(BaseModel):
    user: UserOut
    companies: List[UserCompanyOut] = []

# Request context
class AuthContext(BaseModel):
    """Identidad resuelta por la cadena de guards y adjuntada al request."""
    user_id: Optional[UUID] = None
    role: Optional[Role] = None
    company_id: Optional[UUID] = None
    access_level: Optional[AccessLevel] = None
    is_public: bool = False
