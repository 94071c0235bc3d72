from app.database.database import Base
from app.common.mixins import CompanyMixin, SoftDeleteMixin, TimestampMixin
from sqlalchemy import Column, Integer, String, Boolean, Numeric, Text, UniqueConstraint
from sqlalchemy.dialects.postgresql import UUID
from uuid import uuid4


class Product(Base, CompanyMixin, TimestampMixin, SoftDeleteMixin):
    __tablename__ = "products"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    name = Column(String(100), nullable=False)
    sku = Column(String(50), nullable=False)
    description = Column(Text, nullable=True)
    price = Column(Numeric(15, 2), nullable=False, default=0)  # Precio de venta
    cost = Column(Numeric(15, 2), nullable=False, default=0)   # Costo
    unit = Column(String(20), nullable=False, default="unidad")

    # Control de inventario
    track_inventory = Column(Boolean, default=True, nullable=False)
    allow_backorder = Column(Boolean, default=False, nullable=False)  # Permitir venta sin stock
    min_stock_level = Column(Integer, nullable=False, default=0)
    max_stock_level = Column(Integer, nullable=True)
    reorder_point = Column(Integer, nullable=True)
    reorder_quantity = Column(Integer, nullable=True)

    is_active = Column(Boolean, default=True)

    __table_args__ = (
        UniqueConstraint("company_id", "sku", name="uq_product_company_sku"),
    )
