from pydantic import BaseModel, Field, model_validator
from typing import Optional, List
from uuid import UUID
from datetime import datetime
from decimal import Decimal
from app.modules.inventory.models import TransferStatus
from app.common.pagination import PaginatedResponse


# Movement type schemas
class StockMovementTypeCreate(BaseModel):
    name: str = Field(..., min_length=2, max_length=50)
    description: Optional[str] = Field(None, max_length=255)
    is_addition: bool


class StockMovementTypeOut(BaseModel):
    id: UUID
    name: str
    description: Optional[str] = None
    is_addition: bool

    class Config:
        from_attributes = True


# Movement schemas
class StockMovementCreate(BaseModel):
    branch_id: UUID
    product_id: UUID
    movement_type: str = Field(..., description="Nombre del tipo de movimiento, ej: compra, venta, ajuste")
    quantity: int = Field(..., gt=0, description="Cantidad sin signo; el tipo define si suma o resta")
    user_id: Optional[UUID] = Field(None, description="Usuario responsable; por defecto el autenticado")
    reference: Optional[str] = Field(None, max_length=100, description="Order/invoice reference")
    note: Optional[str] = Field(None, max_length=255)


class StockMovementBulkCreate(BaseModel):
    movements: List[StockMovementCreate] = Field(..., min_length=1)


class StockMovementOut(BaseModel):
    id: UUID
    branch_id: UUID
    product_id: UUID
    user_id: UUID
    movement_type: str
    is_addition: bool
    quantity: int
    reference: Optional[str] = None
    note: Optional[str] = None
    invoice_id: Optional[UUID] = None
    transfer_id: Optional[UUID] = None
    created_at: datetime

    # Joined data
    branch_name: Optional[str] = None
    product_name: Optional[str] = None
    product_sku: Optional[str] = None
    user_name: Optional[str] = None

    # Stock resultante (solo al registrar)
    resulting_stock: Optional[int] = None


class StockMovementBulkOut(BaseModel):
    movements: List[StockMovementOut]
    total: int


class PaginatedStockMovementResponse(PaginatedResponse):
    data: List[StockMovementOut]


# Inventory schemas
class InventoryOut(BaseModel):
    id: UUID
    product_id: UUID
    branch_id: UUID
    stock: int
    reserved_stock: int
    available_stock: int
    product_name: Optional[str] = None
    product_sku: Optional[str] = None
    branch_name: Optional[str] = None
    min_stock_level: int = 0
    reorder_point: Optional[int] = None
    reorder_quantity: Optional[int] = None
    is_low_stock: bool = False
    needs_restock: bool = False


class PaginatedInventoryResponse(PaginatedResponse):
    data: List[InventoryOut]


class StockAlertResponse(BaseModel):
    """Stock bajo o productos por reabastecer."""
    items: List[InventoryOut]
    total_count: int


class StockReservation(BaseModel):
    quantity: int = Field(..., gt=0)
    reference: Optional[str] = Field(None, max_length=100, description="Pedido u orden que origina la reserva")


# Transfer schemas
class StockTransferItemCreate(BaseModel):
    product_id: UUID
    quantity: int = Field(..., gt=0)
    unit_cost: Optional[Decimal] = Field(None, ge=0, decimal_places=2)


class StockTransferCreate(BaseModel):
    from_branch_id: UUID
    to_branch_id: UUID
    items: List[StockTransferItemCreate] = Field(..., min_length=1)
    transfer_date: Optional[datetime] = None
    notes: Optional[str] = Field(None, max_length=1000)

    @model_validator(mode='after')
    def validate_branches(self):
        if self.from_branch_id == self.to_branch_id:
            raise ValueError('La sede de origen y la de destino deben ser distintas')
        product_ids = [item.product_id for item in self.items]
        if len(product_ids) != len(set(product_ids)):
            raise ValueError('Cada producto debe aparecer una sola vez en el traslado')
        return self


class StockTransferItemOut(BaseModel):
    id: UUID
    product_id: UUID
    product_name: str
    product_sku: str
    quantity: int
    unit_cost: Optional[Decimal] = None

    class Config:
        from_attributes = True


class StockTransferOut(BaseModel):
    id: UUID
    company_id: UUID
    from_branch_id: UUID
    to_branch_id: UUID
    user_id: UUID
    status: TransferStatus
    transfer_date: datetime
    completed_date: Optional[datetime] = None
    completed_by: Optional[UUID] = None
    notes: Optional[str] = None
    created_at: datetime
    items: List[StockTransferItemOut] = []

    # Joined data
    from_branch_name: Optional[str] = None
    to_branch_name: Optional[str] = None
    total_quantity: int = 0

    class Config:
        from_attributes = True


class PaginatedStockTransferResponse(PaginatedResponse):
    data: List[StockTransferOut]
