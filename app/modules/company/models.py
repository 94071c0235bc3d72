from app.database.database import Base
from app.common.mixins import TimestampMixin
from sqlalchemy import Column, String, Boolean
from sqlalchemy.orm import relationship
from sqlalchemy.dialects.postgresql import UUID
import uuid


class Company(Base, TimestampMixin):
    __tablename__ = "companies"

    id = Column(UUID(as_uuid=True), primary_key=True, index=True, default=uuid.uuid4)
    name = Column(String(100), unique=True, index=True, nullable=False)
    tax_id = Column(String(50), unique=True, nullable=True)
    address = Column(String, nullable=True)
    phone = Column(String(20), nullable=True)
    email = Column(String, nullable=True)
    is_active = Column(Boolean, default=True)

    user_companies = relationship("UserCompany", back_populates="company")
