"""
Work Order Service
CRUD, archiving and undo of scheduled price change batches
"""

import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from catalog_pilot.models import WorkOrder, WorkOrderStatus
from catalog_pilot.models.work_order import price_key
from catalog_pilot.services.bigcommerce_client import BigCommerceAPIError, BigCommerceClient, InvalidPriceError
from catalog_pilot.services.product_service import ProductService
from catalog_pilot.services.tenant_service import TenantService

logger = logging.getLogger(__name__)


class WorkOrderStateError(Exception):
    """Operation not allowed in the work order's current status."""


class WorkOrderService:
    """Service for work order persistence and undo."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_work_order(self, company_id: str, work_order_id: str) -> Optional[WorkOrder]:
        result = await self.db.execute(
            select(WorkOrder).where(
                WorkOrder.id == work_order_id,
                WorkOrder.company_id == company_id,
            )
        )
        return result.scalar_one_or_none()

    async def _require(self, company_id: str, work_order_id: str) -> WorkOrder:
        work_order = await self.get_work_order(company_id, work_order_id)
        if not work_order:
            raise ValueError(f"Work order not found: {work_order_id}")
        return work_order

    async def list_work_orders(self, company_id: str, archived: bool = False) -> List[WorkOrder]:
        result = await self.db.execute(
            select(WorkOrder)
            .where(
                WorkOrder.company_id == company_id,
                WorkOrder.archived == archived,
            )
            .order_by(WorkOrder.created_at.desc())
        )
        return list(result.scalars().all())

    async def get_pending_work_orders(self) -> List[WorkOrder]:
        """Pending orders of every company, for scheduler recovery."""
        result = await self.db.execute(
            select(WorkOrder)
            .where(WorkOrder.status == WorkOrderStatus.PENDING.value)
            .order_by(WorkOrder.created_at)
        )
        return list(result.scalars().all())

    async def create_work_order(
        self,
        company_id: str,
        created_by: str,
        title: str,
        product_updates: List[Dict[str, Any]],
        scheduled_at: Optional[datetime] = None,
        execute_immediately: bool = False,
    ) -> WorkOrder:
        """
        Create a pending work order.

        Args:
            company_id: Company ID
            created_by: Creating user ID
            title: Display title
            product_updates: Price changes to apply
            scheduled_at: Naive UTC execution time
            execute_immediately: Run as soon as it is scheduled

        Returns:
            WorkOrder: Created work order
        """
        work_order = WorkOrder(
            company_id=company_id,
            created_by=created_by,
            title=title,
            product_updates=product_updates,
            scheduled_at=scheduled_at,
            execute_immediately=execute_immediately,
            status=WorkOrderStatus.PENDING.value,
        )
        self.db.add(work_order)
        await self.db.commit()
        await self.db.refresh(work_order)

        logger.info(f"Work order created: {work_order.id} ({len(product_updates)} updates)")
        return work_order

    async def update_work_order(self, company_id: str, work_order_id: str, **fields) -> WorkOrder:
        """
        Edit a pending work order.

        Only title, product_updates, scheduled_at and execute_immediately
        can change; None values are ignored.

        Raises:
            ValueError: If the work order does not exist
            WorkOrderStateError: If the work order is no longer pending
        """
        work_order = await self._require(company_id, work_order_id)
        if not work_order.is_pending:
            raise WorkOrderStateError(f"Only pending work orders can be edited (status: {work_order.status})")

        for name in ("title", "product_updates", "scheduled_at", "execute_immediately"):
            value = fields.get(name)
            if value is not None:
                setattr(work_order, name, value)

        await self.db.commit()
        await self.db.refresh(work_order)

        logger.info(f"Work order updated: {work_order.id}")
        return work_order

    async def set_archived(self, company_id: str, work_order_id: str, archived: bool) -> WorkOrder:
        work_order = await self._require(company_id, work_order_id)
        work_order.archived = archived
        await self.db.commit()
        await self.db.refresh(work_order)
        return work_order

    async def delete_work_order(self, company_id: str, work_order_id: str) -> None:
        """
        Delete a work order.

        Raises:
            ValueError: If the work order does not exist
            WorkOrderStateError: While the work order is executing
        """
        work_order = await self._require(company_id, work_order_id)
        if work_order.status == WorkOrderStatus.EXECUTING.value:
            raise WorkOrderStateError("Cannot delete a work order while it is executing")

        await self.db.delete(work_order)
        await self.db.commit()

        logger.info(f"Work order deleted: {work_order_id}")

    async def undo_work_order(
        self,
        company_id: str,
        work_order_id: str,
        user_id: Optional[str] = None,
        client_factory=BigCommerceClient,
    ) -> WorkOrder:
        """
        Restore the prices captured before a completed work order ran.

        Each snapshot is matched to an update by (product_id, variant_id);
        snapshots without a matching update are skipped. Individual
        BigCommerce failures are logged and do not stop the undo.

        Raises:
            ValueError: If the work order does not exist
            WorkOrderStateError: Unless completed with captured prices
            ApiSettingsMissingError: If the company has no credentials
        """
        work_order = await self._require(company_id, work_order_id)
        if not work_order.can_undo:
            raise WorkOrderStateError(
                f"Work order cannot be undone (status: {work_order.status})"
            )

        updates_by_key = {price_key(update): update for update in work_order.product_updates or []}
        products = ProductService(self.db)
        client = await TenantService(self.db).get_client(company_id, client_factory)

        restored = 0
        async with client:
            for snapshot in work_order.original_prices:
                key = price_key(snapshot)
                if key not in updates_by_key:
                    logger.warning(f"Snapshot {key} of work order {work_order.id} has no matching update")
                    continue

                product_id, variant_id = key
                regular_price = snapshot.get("original_regular_price")
                if regular_price is None and variant_id:
                    # The variant inherited the product price before the change
                    regular_price = ""
                try:
                    await products.apply_price_change(
                        client,
                        company_id,
                        product_id,
                        variant_id=variant_id,
                        regular_price=regular_price,
                        # A cleared sale price is restored as "no sale price"
                        sale_price=snapshot.get("original_sale_price") or "",
                        change_type="undo",
                        work_order_id=work_order.id,
                        changed_by=user_id,
                    )
                    restored += 1
                except (BigCommerceAPIError, InvalidPriceError) as e:
                    logger.error(f"Failed to restore price of {product_id}/{variant_id}: {e}")

        work_order.mark_undone()
        await self.db.commit()
        await self.db.refresh(work_order)

        logger.info(f"Work order {work_order.id} undone ({restored}/{len(work_order.original_prices)} restored)")
        return work_order
