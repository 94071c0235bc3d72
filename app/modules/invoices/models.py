from app.database.database import Base
from sqlalchemy import Column, Integer, String, DateTime, ForeignKey, UniqueConstraint, Numeric, Enum, Date, Text, Index
from sqlalchemy.orm import relationship
from datetime import datetime, timezone
from sqlalchemy.dialects.postgresql import UUID
from uuid import uuid4
from app.common.mixins import CompanyMixin, TimestampMixin
import enum


class InvoiceStatus(str, enum.Enum):
    DRAFT = "draft"          # Borrador, editable, no afecta inventario
    PENDING = "pending"      # Emitida, afecta inventario, pendiente de pago
    PAID = "paid"            # Pagada
    OVERDUE = "overdue"      # Vencida sin pago
    CANCELLED = "cancelled"  # Anulada


class Invoice(Base, CompanyMixin, TimestampMixin):
    __tablename__ = "invoices"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)

    # References
    branch_id = Column(UUID(as_uuid=True), ForeignKey("branches.id"), nullable=False)
    customer_id = Column(UUID(as_uuid=True), ForeignKey("customers.id"), nullable=False)
    user_id = Column(UUID(as_uuid=True), ForeignKey("users.id"), nullable=False)

    # Invoice data
    invoice_number = Column(String(50), nullable=False)
    status = Column(Enum(InvoiceStatus), nullable=False, default=InvoiceStatus.DRAFT)

    # Totals (calculated server-side)
    subtotal_amount = Column(Numeric(15, 2), nullable=False, default=0)
    tax_rate = Column(Numeric(5, 2), nullable=False, default=0)       # Porcentaje
    tax_amount = Column(Numeric(15, 2), nullable=False, default=0)
    discount_rate = Column(Numeric(5, 2), nullable=False, default=0)  # Porcentaje
    discount_amount = Column(Numeric(15, 2), nullable=False, default=0)
    total_amount = Column(Numeric(15, 2), nullable=False, default=0)

    # Dates
    issued_at = Column(DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc))
    due_date = Column(Date, nullable=True)
    paid_date = Column(DateTime(timezone=True), nullable=True)

    notes = Column(Text, nullable=True)

    # Relationships
    branch = relationship("Branch")
    customer = relationship("Customer")
    user = relationship("User")
    # Sin cascade: los ítems se borran explícitamente en el servicio
    items = relationship(
        "InvoiceItem",
        back_populates="invoice",
        order_by="InvoiceItem.position",
        passive_deletes="all",
    )

    __table_args__ = (
        UniqueConstraint("company_id", "invoice_number", name="uq_invoice_company_number"),
        Index("ix_invoices_company_status", "company_id", "status"),
    )


class InvoiceItem(Base, TimestampMixin):
    __tablename__ = "invoice_items"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    invoice_id = Column(UUID(as_uuid=True), ForeignKey("invoices.id"), nullable=False, index=True)
    product_id = Column(UUID(as_uuid=True), ForeignKey("products.id"), nullable=False)
    position = Column(Integer, nullable=False, default=0)

    # Snapshot data (para preservar información si el producto cambia)
    product_name = Column(String(100), nullable=False)
    product_sku = Column(String(50), nullable=False)
    product_description = Column(Text, nullable=True)

    # Line calculations
    quantity = Column(Integer, nullable=False)
    unit_price = Column(Numeric(15, 2), nullable=False)
    discount_amount = Column(Numeric(15, 2), nullable=False, default=0)
    total_price = Column(Numeric(15, 2), nullable=False)  # quantity * unit_price - discount_amount

    # Relationships
    invoice = relationship("Invoice", back_populates="items")
    product = relationship("Product")
