from pydantic import BaseModel, EmailStr, Field, field_validator
from typing import Optional, List
from uuid import UUID
from datetime import datetime
from app.common.pagination import PaginatedResponse
from app.common.validators import normalize_code, normalize_phone


class BranchCreate(BaseModel):
    name: str = Field(..., min_length=2, max_length=100)
    code: str = Field(..., description="Código único dentro de la empresa, ej: BOG-01")
    address: Optional[str] = Field(None, max_length=500)
    phone: Optional[str] = None
    email: Optional[EmailStr] = None
    manager_id: Optional[UUID] = None
    is_main: bool = False

    @field_validator('code')
    @classmethod
    def validate_code(cls, v):
        return normalize_code(v)

    @field_validator('phone')
    @classmethod
    def validate_phone(cls, v):
        return normalize_phone(v)


class BranchUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=2, max_length=100)
    code: Optional[str] = None
    address: Optional[str] = Field(None, max_length=500)
    phone: Optional[str] = None
    email: Optional[EmailStr] = None
    is_main: Optional[bool] = None
    is_active: Optional[bool] = None

    @field_validator('code')
    @classmethod
    def validate_code(cls, v):
        return normalize_code(v) if v is not None else v

    @field_validator('phone')
    @classmethod
    def validate_phone(cls, v):
        return normalize_phone(v)


class AssignManager(BaseModel):
    manager_id: Optional[UUID] = Field(None, description="None para quitar el encargado")


class BranchOut(BaseModel):
    id: UUID
    company_id: UUID
    name: str
    code: str
    address: Optional[str] = None
    phone: Optional[str] = None
    email: Optional[str] = None
    manager_id: Optional[UUID] = None
    is_main: bool
    is_active: bool
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class PaginatedBranchResponse(PaginatedResponse):
    data: List[BranchOut]
