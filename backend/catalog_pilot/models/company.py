"""
Company, User and CompanyInvitation models - tenant and team data
"""

from datetime import datetime
from uuid import uuid4

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Integer, String, Text
from sqlalchemy.orm import relationship

from catalog_pilot.database import Base
from catalog_pilot.utils.clock import utcnow


def _new_id() -> str:
    return str(uuid4())


class Company(Base):
    """
    A tenant. Settings, products and work orders are partitioned by company.
    """

    __tablename__ = "companies"

    id = Column(String(36), primary_key=True, default=_new_id)
    name = Column(Text, nullable=False)

    # Subscription
    subscription_plan = Column(String(20), default="trial")
    product_limit = Column(Integer, default=5)
    stripe_customer_id = Column(String(255))
    stripe_subscription_id = Column(String(255))
    subscription_status = Column(String(50), default="active")
    current_period_end = Column(DateTime, nullable=True)

    # Timestamps
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    # Relationships
    users = relationship("User", back_populates="company")
    invitations = relationship(
        "CompanyInvitation",
        back_populates="company",
        cascade="all, delete-orphan",
    )

    def __repr__(self) -> str:
        return f"<Company {self.id}: {self.name}>"


class User(Base):
    """
    A person signed in through the identity provider; belongs to one company.
    """

    __tablename__ = "users"

    # Identity-provider uid
    id = Column(String(128), primary_key=True)
    company_id = Column(
        String(36),
        ForeignKey("companies.id"),
        nullable=False,
        index=True,
    )

    email = Column(String(255), unique=True)
    first_name = Column(String(255))
    last_name = Column(String(255))
    profile_image_url = Column(Text)
    role = Column(String(20), default="member")  # owner, admin, member
    is_active = Column(Boolean, default=True)

    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    company = relationship("Company", back_populates="users")

    def __repr__(self) -> str:
        return f"<User {self.id} ({self.role})>"

    @property
    def can_manage_team(self) -> bool:
        return self.role in ("owner", "admin")

    @property
    def display_name(self) -> str:
        full = " ".join(p for p in (self.first_name, self.last_name) if p)
        return full or self.email or self.id


class CompanyInvitation(Base):
    """
    Pending invitation for someone to join a company.
    """

    __tablename__ = "company_invitations"

    id = Column(String(36), primary_key=True, default=_new_id)
    company_id = Column(
        String(36),
        ForeignKey("companies.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    email = Column(String(255), nullable=False)
    role = Column(String(20), default="member")
    invited_by = Column(String(128), ForeignKey("users.id"), nullable=False)
    token = Column(String(64), unique=True, nullable=False, index=True)
    status = Column(String(20), default="pending")  # pending, accepted, expired
    expires_at = Column(DateTime, nullable=False)
    accepted_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=utcnow)

    company = relationship("Company", back_populates="invitations")

    def __repr__(self) -> str:
        return f"<CompanyInvitation {self.email} -> {self.company_id}>"

    def is_expired(self, now: datetime = None) -> bool:
        return (now or utcnow()) >= self.expires_at

    @property
    def is_open(self) -> bool:
        """Invitation can still be accepted."""
        return self.status == "pending" and self.accepted_at is None and not self.is_expired()
