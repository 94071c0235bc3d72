from sqlalchemy import Column, String, Boolean, ForeignKey, DateTime, Integer, Enum, UniqueConstraint, Index
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import relationship
from uuid import uuid4
from datetime import datetime, timezone
from app.database.database import Base
from app.common.mixins import TimestampMixin
from app.modules.auth.access import Role, AccessLevel, MembershipStatus


class User(Base, TimestampMixin):
    __tablename__ = "users"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    email = Column(String, unique=True, nullable=False)
    password = Column(String, nullable=False)
    first_name = Column(String(100), nullable=False)
    last_name = Column(String(100), nullable=False)
    role = Column(Enum(Role), nullable=False, default=Role.USER)
    is_active = Column(Boolean, default=True)
    last_login = Column(DateTime(timezone=True), nullable=True)

    # Relationships
    user_companies = relationship(
        "UserCompany",
        foreign_keys="UserCompany.user_id",
        back_populates="user",
    )

    @property
    def full_name(self):
        return f"{self.first_name} {self.last_name}"


class UserCompany(Base, TimestampMixin):
    __tablename__ = "user_companies"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    user_id = Column(UUID(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    company_id = Column(UUID(as_uuid=True), ForeignKey("companies.id", ondelete="CASCADE"), nullable=False)
    access_level = Column(Integer, nullable=False, default=int(AccessLevel.EMPLOYEE))
    status = Column(Enum(MembershipStatus), nullable=False, default=MembershipStatus.ACTIVE)
    is_active = Column(Boolean, default=True)
    invited_by = Column(UUID(as_uuid=True), ForeignKey("users.id"), nullable=True)
    joined_at = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))

    # Relationships
    user = relationship("User", foreign_keys=[user_id], back_populates="user_companies")
    company = relationship("Company", back_populates="user_companies")
    inviter = relationship("User", foreign_keys=[invited_by])

    __table_args__ = (
        UniqueConstraint("user_id", "company_id", name="uq_user_company"),
        Index("ix_user_companies_company_status", "company_id", "status"),
    )
