from pydantic import BaseModel, EmailStr, Field, field_validator
from typing import Optional, Union
from uuid import UUID
from datetime import datetime
from app.common.validators import normalize_phone, normalize_tax_id
from app.modules.auth.access import AccessLevel, MembershipStatus


class CompanyBase(BaseModel):
    name: str = Field(..., min_length=2, max_length=100)
    tax_id: Optional[str] = Field(None, description="NIT o identificación tributaria")
    address: Optional[str] = None
    phone: Optional[str] = None
    email: Optional[EmailStr] = None

    @field_validator('phone')
    @classmethod
    def validate_phone(cls, v):
        return normalize_phone(v)

    @field_validator('tax_id')
    @classmethod
    def validate_tax_id(cls, v):
        return normalize_tax_id(v)


class CompanyCreate(CompanyBase):
    pass


class CompanyUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=2, max_length=100)
    tax_id: Optional[str] = None
    address: Optional[str] = None
    phone: Optional[str] = None
    email: Optional[EmailStr] = None

    @field_validator('phone')
    @classmethod
    def validate_phone(cls, v):
        return normalize_phone(v)

    @field_validator('tax_id')
    @classmethod
    def validate_tax_id(cls, v):
        return normalize_tax_id(v)


class CompanyOut(BaseModel):
    id: UUID
    name: str
    tax_id: Optional[str] = None
    address: Optional[str] = None
    phone: Optional[str] = None
    email: Optional[str] = None
    is_active: bool
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class CompanyOutWithAccess(CompanyOut):
    access_level: AccessLevel


class CompanyCreateResponse(CompanyOut):
    """Empresa creada junto con su sede principal y su cliente genérico"""
    main_branch_id: UUID
    generic_customer_id: UUID


# Members
class MemberAdd(BaseModel):
    email: EmailStr
    access_level: Union[int, str] = Field(default=int(AccessLevel.EMPLOYEE), description="Nombre o valor numérico del nivel")


class MemberAccessLevelUpdate(BaseModel):
    access_level: Union[int, str]


class MemberStatusUpdate(BaseModel):
    status: MembershipStatus


class MemberOut(BaseModel):
    id: UUID
    user_id: UUID
    email: str
    full_name: str
    access_level: AccessLevel
    status: MembershipStatus
    is_active: bool
    joined_at: Optional[datetime] = None
