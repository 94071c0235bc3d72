from app.database.database import Base
from app.common.mixins import CompanyMixin, TimestampMixin
from sqlalchemy import Column, Integer, String, Boolean, DateTime, Enum, ForeignKey, Numeric, Text, UniqueConstraint, Index
from sqlalchemy.orm import relationship
from sqlalchemy.dialects.postgresql import UUID
from datetime import datetime, timezone
from uuid import uuid4
import enum


class Inventory(Base, TimestampMixin):
    """
    Stock actual por (producto, sede). Se modifica solo a través del ledger.
    reserved_stock es la parte comprometida (traslados pendientes, pedidos);
    disponible = stock - reserved_stock.
    """
    __tablename__ = "inventory"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    product_id = Column(UUID(as_uuid=True), ForeignKey("products.id", ondelete="CASCADE"), nullable=False)
    branch_id = Column(UUID(as_uuid=True), ForeignKey("branches.id", ondelete="CASCADE"), nullable=False)
    stock = Column(Integer, nullable=False, default=0)
    reserved_stock = Column(Integer, nullable=False, default=0)

    # Relationships
    product = relationship("Product")
    branch = relationship("Branch")

    __table_args__ = (
        UniqueConstraint("product_id", "branch_id", name="uq_inventory_product_branch"),
    )

    @property
    def available_stock(self) -> int:
        return self.stock - self.reserved_stock


class StockMovementType(Base, TimestampMixin):
    __tablename__ = "stock_movement_types"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    name = Column(String(50), unique=True, nullable=False)
    description = Column(String(255), nullable=True)
    is_addition = Column(Boolean, nullable=False)  # True suma al stock, False resta


class StockMovement(Base):
    """
    Registro inmutable del ledger de inventario. quantity lleva el signo del tipo.
    invoice_id / transfer_id enlazan los movimientos generados por el sistema
    con su documento de origen; reference es texto libre.
    """
    __tablename__ = "stock_movements"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    branch_id = Column(UUID(as_uuid=True), ForeignKey("branches.id"), nullable=False)
    product_id = Column(UUID(as_uuid=True), ForeignKey("products.id"), nullable=False)
    user_id = Column(UUID(as_uuid=True), ForeignKey("users.id"), nullable=False)
    movement_type_id = Column(UUID(as_uuid=True), ForeignKey("stock_movement_types.id"), nullable=False)
    quantity = Column(Integer, nullable=False)
    reference = Column(String(100), nullable=True)  # Número de factura, orden, etc.
    note = Column(String(255), nullable=True)
    invoice_id = Column(UUID(as_uuid=True), ForeignKey("invoices.id"), nullable=True)
    transfer_id = Column(UUID(as_uuid=True), ForeignKey("stock_transfers.id"), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc))

    # Relationships
    branch = relationship("Branch")
    product = relationship("Product")
    user = relationship("User")
    movement_type = relationship("StockMovementType")

    __table_args__ = (
        Index("ix_stock_movements_branch_created", "branch_id", "created_at"),
        Index("ix_stock_movements_reference", "reference"),
        Index("ix_stock_movements_invoice", "invoice_id"),
        Index("ix_stock_movements_transfer", "transfer_id"),
    )


class TransferStatus(enum.Enum):
    PENDING = "pending"        # Creado, stock reservado en origen
    IN_TRANSIT = "in_transit"  # Enviado, stock descontado en origen
    COMPLETED = "completed"    # Recibido en destino
    CANCELLED = "cancelled"


class StockTransfer(Base, CompanyMixin, TimestampMixin):
    """Traslado de stock entre dos sedes de la misma empresa."""
    __tablename__ = "stock_transfers"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    from_branch_id = Column(UUID(as_uuid=True), ForeignKey("branches.id"), nullable=False, index=True)
    to_branch_id = Column(UUID(as_uuid=True), ForeignKey("branches.id"), nullable=False, index=True)
    user_id = Column(UUID(as_uuid=True), ForeignKey("users.id"), nullable=False)
    status = Column(Enum(TransferStatus), nullable=False, default=TransferStatus.PENDING, index=True)
    transfer_date = Column(DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc))
    completed_date = Column(DateTime(timezone=True), nullable=True)
    completed_by = Column(UUID(as_uuid=True), ForeignKey("users.id"), nullable=True)
    notes = Column(Text, nullable=True)

    # Relationships
    from_branch = relationship("Branch", foreign_keys=[from_branch_id])
    to_branch = relationship("Branch", foreign_keys=[to_branch_id])
    items = relationship(
        "StockTransferItem",
        back_populates="transfer",
        cascade="all, delete-orphan",
        order_by="StockTransferItem.product_name",
    )


class StockTransferItem(Base):
    __tablename__ = "stock_transfer_items"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    transfer_id = Column(UUID(as_uuid=True), ForeignKey("stock_transfers.id", ondelete="CASCADE"), nullable=False, index=True)
    product_id = Column(UUID(as_uuid=True), ForeignKey("products.id"), nullable=False)
    product_name = Column(String(100), nullable=False)
    product_sku = Column(String(50), nullable=False)
    quantity = Column(Integer, nullable=False)
    unit_cost = Column(Numeric(15, 2), nullable=True)

    transfer = relationship("StockTransfer", back_populates="items")
