from pydantic import BaseModel, EmailStr, Field, field_validator
from typing import Optional, List
from uuid import UUID
from datetime import datetime
from app.common.pagination import PaginatedResponse
from app.common.validators import normalize_phone, normalize_tax_id


class CustomerCreate(BaseModel):
    first_name: str = Field(..., min_length=1, max_length=100)
    last_name: Optional[str] = Field(None, max_length=100)
    email: Optional[EmailStr] = None
    phone: Optional[str] = None
    tax_id: Optional[str] = None
    address: Optional[str] = Field(None, max_length=500)

    @field_validator('phone')
    @classmethod
    def validate_phone(cls, v):
        return normalize_phone(v)

    @field_validator('tax_id')
    @classmethod
    def validate_tax_id(cls, v):
        return normalize_tax_id(v)


class CustomerUpdate(CustomerCreate):
    first_name: Optional[str] = Field(None, min_length=1, max_length=100)
    is_active: Optional[bool] = None


class CustomerOut(BaseModel):
    id: UUID
    company_id: UUID
    first_name: str
    last_name: Optional[str] = None
    full_name: str
    email: Optional[str] = None
    phone: Optional[str] = None
    tax_id: Optional[str] = None
    address: Optional[str] = None
    is_generic: bool
    is_active: bool
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class PaginatedCustomerResponse(PaginatedResponse):
    data: List[CustomerOut]
