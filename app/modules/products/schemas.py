from pydantic import BaseModel, Field, field_validator, model_validator
from uuid import UUID
from typing import Optional, List
from decimal import Decimal
from datetime import datetime
from app.common.pagination import PaginatedResponse
from app.common.validators import normalize_sku


class StockLevels(BaseModel):
    min_stock_level: int = Field(0, ge=0)
    max_stock_level: Optional[int] = Field(None, ge=0)
    reorder_point: Optional[int] = Field(None, ge=0)
    reorder_quantity: Optional[int] = Field(None, gt=0)

    @model_validator(mode='after')
    def validate_levels(self):
        if self.max_stock_level is not None and self.min_stock_level is not None:
            if self.max_stock_level < self.min_stock_level:
                raise ValueError('El stock máximo no puede ser menor al stock mínimo')
        return self


class ProductCreate(StockLevels):
    name: str = Field(..., min_length=1, max_length=100)
    sku: str
    description: Optional[str] = None
    price: Decimal = Field(..., ge=0, decimal_places=2)
    cost: Decimal = Field(Decimal("0"), ge=0, decimal_places=2)
    unit: str = Field("unidad", max_length=20)
    track_inventory: bool = True
    allow_backorder: bool = False

    @field_validator('sku')
    @classmethod
    def validate_sku(cls, v):
        return normalize_sku(v)


class ProductUpdate(StockLevels):
    name: Optional[str] = Field(None, min_length=1, max_length=100)
    sku: Optional[str] = None
    description: Optional[str] = None
    price: Optional[Decimal] = Field(None, ge=0, decimal_places=2)
    cost: Optional[Decimal] = Field(None, ge=0, decimal_places=2)
    unit: Optional[str] = Field(None, max_length=20)
    track_inventory: Optional[bool] = None
    allow_backorder: Optional[bool] = None
    min_stock_level: Optional[int] = Field(None, ge=0)
    is_active: Optional[bool] = None

    @field_validator('sku')
    @classmethod
    def validate_sku(cls, v):
        return normalize_sku(v) if v is not None else v


class ProductOut(BaseModel):
    id: UUID
    company_id: UUID
    name: str
    sku: str
    description: Optional[str] = None
    price: Decimal
    cost: Decimal
    unit: str
    track_inventory: bool
    allow_backorder: bool
    min_stock_level: int
    max_stock_level: Optional[int] = None
    reorder_point: Optional[int] = None
    reorder_quantity: Optional[int] = None
    is_active: bool
    deleted_at: Optional[datetime] = None
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class PaginatedProductResponse(PaginatedResponse):
    """Respuesta paginada para productos"""
    data: List[ProductOut]
