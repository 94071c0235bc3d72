from pydantic import BaseModel, Field, field_validator, model_validator
from decimal import Decimal
from typing import Optional, List
from uuid import UUID
from datetime import date, datetime
from enum import Enum
from app.common.pagination import PaginatedResponse
from app.modules.invoices.models import InvoiceStatus


# Item schemas
class InvoiceItemCreate(BaseModel):
    product_id: UUID
    quantity: int = Field(..., gt=0, description="Cantidad debe ser mayor a 0")
    unit_price: Optional[Decimal] = Field(None, ge=0, description="Si se omite se usa el precio del producto")
    discount_amount: Decimal = Field(Decimal("0"), ge=0)


class InvoiceItemUpdate(BaseModel):
    quantity: Optional[int] = Field(None, gt=0)
    unit_price: Optional[Decimal] = Field(None, ge=0)
    discount_amount: Optional[Decimal] = Field(None, ge=0)


class InvoiceItemOut(BaseModel):
    id: UUID
    invoice_id: UUID
    product_id: UUID
    position: int
    product_name: str
    product_sku: str
    product_description: Optional[str] = None
    quantity: int
    unit_price: Decimal
    discount_amount: Decimal
    total_price: Decimal

    class Config:
        from_attributes = True


# Invoice schemas
class InvoiceCreate(BaseModel):
    branch_id: UUID
    customer_id: UUID
    items: List[InvoiceItemCreate] = Field(..., min_length=1, description="Debe incluir al menos un ítem")
    tax_rate: Decimal = Field(Decimal("0"), ge=0, le=100, description="Porcentaje de impuesto")
    discount_rate: Decimal = Field(Decimal("0"), ge=0, le=100, description="Porcentaje de descuento")
    due_date: Optional[date] = None
    notes: Optional[str] = Field(None, max_length=1000)


class InvoiceUpdate(BaseModel):
    """Solo aplica a facturas en borrador. Si llegan items reemplazan a los actuales."""
    customer_id: Optional[UUID] = None
    items: Optional[List[InvoiceItemCreate]] = Field(None, min_length=1)
    tax_rate: Optional[Decimal] = Field(None, ge=0, le=100)
    discount_rate: Optional[Decimal] = Field(None, ge=0, le=100)
    due_date: Optional[date] = None
    notes: Optional[str] = Field(None, max_length=1000)

    @field_validator('customer_id')
    @classmethod
    def validate_customer_not_null(cls, v):
        if v is None:
            raise ValueError('El cliente no puede ser nulo')
        return v

    @model_validator(mode='after')
    def validate_not_empty(self):
        if not self.model_fields_set:
            raise ValueError('Debe enviar al menos un campo para actualizar')
        return self


class InvoiceStatusUpdate(BaseModel):
    status: InvoiceStatus
    paid_date: Optional[datetime] = None
    notes: Optional[str] = Field(None, max_length=1000)


class InvoiceOut(BaseModel):
    id: UUID
    company_id: UUID
    branch_id: UUID
    customer_id: UUID
    user_id: UUID
    invoice_number: str
    status: InvoiceStatus
    subtotal_amount: Decimal
    tax_rate: Decimal
    tax_amount: Decimal
    discount_rate: Decimal
    discount_amount: Decimal
    total_amount: Decimal
    issued_at: datetime
    due_date: Optional[date] = None
    paid_date: Optional[datetime] = None
    notes: Optional[str] = None
    customer_name: Optional[str] = None
    branch_name: Optional[str] = None
    days_past_due: int = 0
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class InvoiceDetail(InvoiceOut):
    items: List[InvoiceItemOut] = []


class PaginatedInvoiceResponse(PaginatedResponse):
    data: List[InvoiceOut]


class InvoiceSortField(str, Enum):
    ISSUED_AT = "issued_at"
    CREATED_AT = "created_at"
    DUE_DATE = "due_date"
    TOTAL_AMOUNT = "total_amount"
    INVOICE_NUMBER = "invoice_number"
    STATUS = "status"


class SortOrder(str, Enum):
    ASC = "asc"
    DESC = "desc"


class InvoiceFilters(BaseModel):
    status: Optional[InvoiceStatus] = None
    branch_id: Optional[UUID] = None
    customer_id: Optional[UUID] = None
    user_id: Optional[UUID] = None
    date_from: Optional[date] = None
    date_to: Optional[date] = None
    min_amount: Optional[Decimal] = Field(None, ge=0)
    max_amount: Optional[Decimal] = Field(None, ge=0)
    search: Optional[str] = Field(None, description="Buscar por número o datos del cliente")
    overdue: Optional[bool] = None
    sort_by: InvoiceSortField = InvoiceSortField.ISSUED_AT
    sort_order: SortOrder = SortOrder.DESC

    @field_validator('search')
    @classmethod
    def strip_search(cls, v):
        if v is not None:
            v = v.strip()
        return v or None


class InvoiceSummary(BaseModel):
    total_invoices: int
    draft_invoices: int
    pending_invoices: int
    paid_invoices: int
    overdue_invoices: int
    cancelled_invoices: int
    total_amount: Decimal
    paid_amount: Decimal
    pending_amount: Decimal
    overdue_amount: Decimal
    average_invoice_amount: Decimal
    average_payment_days: Optional[int] = None
    date_from: Optional[date] = None
    date_to: Optional[date] = None
