"""
WorkOrder Model - scheduled batches of price changes
"""

import enum
from typing import Any, Dict, List, Optional, Tuple
from uuid import uuid4

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, String, Text

from catalog_pilot.database import Base, JSONType
from catalog_pilot.utils.clock import utcnow


class WorkOrderStatus(str, enum.Enum):
    PENDING = "pending"
    EXECUTING = "executing"
    COMPLETED = "completed"
    FAILED = "failed"
    UNDONE = "undone"


def price_key(entry: Dict[str, Any]) -> Tuple[str, Optional[str]]:
    """(product_id, variant_id) key shared by updates and snapshots."""
    variant_id = entry.get("variant_id")
    return str(entry.get("product_id")), str(variant_id) if variant_id else None


class WorkOrder(Base):
    """
    A user-authored batch of product/variant price changes.

    product_updates items:
        {product_id, product_name, new_regular_price?, new_sale_price?,
         variant_id?, variant_sku?}
    original_prices items (captured right before execution):
        {product_id, variant_id?, original_regular_price, original_sale_price}
    """

    __tablename__ = "work_orders"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid4()))
    company_id = Column(
        String(36),
        ForeignKey("companies.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    created_by = Column(String(128), ForeignKey("users.id"), nullable=False)

    title = Column(Text, nullable=False)
    product_updates = Column(JSONType, nullable=False, default=list)
    original_prices = Column(JSONType, nullable=True)

    # Scheduling
    scheduled_at = Column(DateTime, nullable=True)
    execute_immediately = Column(Boolean, default=False)

    status = Column(String(20), default=WorkOrderStatus.PENDING.value, index=True)
    archived = Column(Boolean, default=False)
    error = Column(Text)

    # Timestamps
    created_at = Column(DateTime, default=utcnow)
    executed_at = Column(DateTime, nullable=True)
    undone_at = Column(DateTime, nullable=True)

    def __repr__(self) -> str:
        return f"<WorkOrder {self.id}: {self.title} ({self.status})>"

    @property
    def is_pending(self) -> bool:
        return self.status == WorkOrderStatus.PENDING.value

    @property
    def can_undo(self) -> bool:
        return self.status == WorkOrderStatus.COMPLETED.value and bool(self.original_prices)

    def mark_completed(self, original_prices: List[Dict[str, Any]]) -> None:
        self.status = WorkOrderStatus.COMPLETED.value
        self.original_prices = original_prices
        self.executed_at = utcnow()

    def mark_failed(self, error: str) -> None:
        self.status = WorkOrderStatus.FAILED.value
        self.error = error
        self.executed_at = utcnow()

    def mark_undone(self) -> None:
        self.status = WorkOrderStatus.UNDONE.value
        self.undone_at = utcnow()

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "company_id": self.company_id,
            "created_by": self.created_by,
            "title": self.title,
            "product_updates": self.product_updates or [],
            "original_prices": self.original_prices,
            "scheduled_at": self.scheduled_at.isoformat() if self.scheduled_at else None,
            "execute_immediately": bool(self.execute_immediately),
            "status": self.status,
            "archived": bool(self.archived),
            "error": self.error,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "executed_at": self.executed_at.isoformat() if self.executed_at else None,
            "undone_at": self.undone_at.isoformat() if self.undone_at else None,
        }
