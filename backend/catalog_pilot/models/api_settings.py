"""
ApiSettings Model - per-company BigCommerce credentials
"""

from uuid import uuid4

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, String, Text

from catalog_pilot.database import Base
from catalog_pilot.utils.clock import utcnow


class ApiSettings(Base):
    """
    BigCommerce API credentials for a company.
    One row per company; saving new credentials replaces the row.
    """

    __tablename__ = "api_settings"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid4()))
    company_id = Column(
        String(36),
        ForeignKey("companies.id", ondelete="CASCADE"),
        nullable=False,
        unique=True,
        index=True,
    )

    store_hash = Column(String(50), nullable=False)
    access_token = Column(Text, nullable=False)  # Encrypted
    client_id = Column(String(255), nullable=False)

    # Catalog browser display options
    show_stock = Column(Boolean, default=False)
    show_stock_status = Column(Boolean, default=False)

    last_sync_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=utcnow)

    def __repr__(self) -> str:
        return f"<ApiSettings {self.store_hash} for {self.company_id}>"
