"""
PriceHistory Model - audit trail of applied price changes
"""

from uuid import uuid4

from sqlalchemy import Column, DateTime, ForeignKey, Numeric, String

from catalog_pilot.database import Base
from catalog_pilot.models.product import format_price
from catalog_pilot.utils.clock import utcnow


class PriceHistory(Base):
    """
    One row per price change applied to BigCommerce.
    """

    __tablename__ = "price_history"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid4()))
    company_id = Column(
        String(36),
        ForeignKey("companies.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    product_id = Column(String(32), nullable=False, index=True)
    variant_id = Column(String(32), nullable=True)  # null for product-level changes

    old_regular_price = Column(Numeric(10, 2))
    new_regular_price = Column(Numeric(10, 2))
    old_sale_price = Column(Numeric(10, 2))
    new_sale_price = Column(Numeric(10, 2))

    change_type = Column(String(20), nullable=False)  # manual, work_order, undo
    work_order_id = Column(
        String(36),
        ForeignKey("work_orders.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )
    changed_by = Column(String(128), nullable=True)

    created_at = Column(DateTime, default=utcnow)

    def __repr__(self) -> str:
        return f"<PriceHistory {self.product_id}/{self.variant_id} {self.change_type}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "variant_id": self.variant_id,
            "old_regular_price": format_price(self.old_regular_price),
            "new_regular_price": format_price(self.new_regular_price),
            "old_sale_price": format_price(self.old_sale_price),
            "new_sale_price": format_price(self.new_sale_price),
            "change_type": self.change_type,
            "work_order_id": self.work_order_id,
            "changed_by": self.changed_by,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }
