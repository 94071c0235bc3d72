from app.database.database import Base
from app.common.mixins import CompanyMixin, TimestampMixin
from sqlalchemy import Column, String, Boolean, Index
from sqlalchemy.dialects.postgresql import UUID
from uuid import uuid4


class Customer(Base, CompanyMixin, TimestampMixin):
    __tablename__ = "customers"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    first_name = Column(String(100), nullable=False)
    last_name = Column(String(100), nullable=True)
    email = Column(String, nullable=True)
    phone = Column(String(20), nullable=True)
    tax_id = Column(String(50), nullable=True)
    address = Column(String(500), nullable=True)
    is_generic = Column(Boolean, default=False, nullable=False)  # Cliente de mostrador
    is_active = Column(Boolean, default=True)

    __table_args__ = (
        Index("ix_customers_company_generic", "company_id", "is_generic"),
    )

    @property
    def full_name(self):
        return " ".join(part for part in (self.first_name, self.last_name) if part)
