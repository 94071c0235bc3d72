from app.database.database import Base
from app.common.mixins import CompanyMixin, TimestampMixin
from sqlalchemy import Column, String, Boolean, ForeignKey, UniqueConstraint
from sqlalchemy.orm import relationship
from sqlalchemy.dialects.postgresql import UUID
from uuid import uuid4


class Branch(Base, CompanyMixin, TimestampMixin):
    __tablename__ = "branches"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    name = Column(String(100), nullable=False)
    code = Column(String(20), nullable=False)  # Único dentro de la empresa
    address = Column(String(500), nullable=True)
    phone = Column(String(20), nullable=True)
    email = Column(String, nullable=True)
    manager_id = Column(UUID(as_uuid=True), ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    is_main = Column(Boolean, default=False, nullable=False)
    is_active = Column(Boolean, default=True)

    # Relationships
    manager = relationship("User")

    __table_args__ = (
        UniqueConstraint("company_id", "code", name="uq_branch_company_code"),
    )
