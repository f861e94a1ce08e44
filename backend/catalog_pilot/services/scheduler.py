"""
Scheduler Service
Runs work orders immediately or at their scheduled time
"""

import asyncio
import logging
from datetime import datetime
from typing import Any, Dict, List, Optional, Set

from sqlalchemy import update

from catalog_pilot.config import settings
from catalog_pilot.database import async_session_factory
from catalog_pilot.models import WorkOrder, WorkOrderStatus
from catalog_pilot.services.bigcommerce_client import BigCommerceAPIError, BigCommerceClient, InvalidPriceError
from catalog_pilot.services.product_service import ProductService
from catalog_pilot.services.tenant_service import ApiSettingsMissingError, TenantService
from catalog_pilot.services.work_order_service import WorkOrderService
from catalog_pilot.utils.clock import utcnow

logger = logging.getLogger(__name__)


def cron_expression(run_at: datetime) -> str:
    """One-shot cron expression "M H D MON *" for a point in time."""
    return f"{run_at.minute} {run_at.hour} {run_at.day} {run_at.month} *"


class SchedulerService:
    """
    In-process work order scheduler.

    Timers are asyncio tasks keyed by work order id. They live only as long
    as the process; initialize_scheduled_jobs() rebuilds them on startup.
    """

    def __init__(self, session_factory=None, client_factory=BigCommerceClient):
        self.session_factory = session_factory or async_session_factory
        self.client_factory = client_factory
        self._jobs: Dict[str, asyncio.Task] = {}
        self._running: Set[asyncio.Task] = set()

    # ============== Scheduling ==============

    def schedule_work_order(self, work_order: WorkOrder) -> None:
        """
        Arrange execution of a pending work order.

        Immediate and overdue orders run on the next event loop tick;
        future orders get a timer, replacing any earlier timer for the
        same order.
        """
        self.cancel_work_order(work_order.id)

        if work_order.execute_immediately:
            logger.info(f"Work order {work_order.id} executing immediately")
            self._start(work_order.id)
            return

        if not work_order.scheduled_at:
            logger.warning(f"Work order {work_order.id} has no schedule; not scheduled")
            return

        delay = (work_order.scheduled_at - utcnow()).total_seconds()
        if delay <= 0:
            logger.info(f"Work order {work_order.id} is overdue; executing immediately")
            self._start(work_order.id)
            return

        logger.info(
            f"Work order {work_order.id} scheduled for {work_order.scheduled_at.isoformat()} "
            f"(cron: {cron_expression(work_order.scheduled_at)})"
        )
        self._jobs[work_order.id] = asyncio.create_task(self._run_at(work_order.id, delay))

    def cancel_work_order(self, work_order_id: str) -> bool:
        """Drop the pending timer of a work order, if any."""
        task = self._jobs.pop(work_order_id, None)
        if task is None:
            return False
        task.cancel()
        logger.info(f"Timer cancelled for work order {work_order_id}")
        return True

    def has_pending_timer(self, work_order_id: str) -> bool:
        task = self._jobs.get(work_order_id)
        return task is not None and not task.done()

    def _start(self, work_order_id: str) -> asyncio.Task:
        task = asyncio.create_task(self.execute_work_order(work_order_id))
        self._running.add(task)
        task.add_done_callback(self._running.discard)
        return task

    async def _run_at(self, work_order_id: str, delay: float) -> None:
        try:
            await asyncio.sleep(delay)
        except asyncio.CancelledError:
            return
        self._jobs.pop(work_order_id, None)
        await self._start(work_order_id)

    async def initialize_scheduled_jobs(self) -> int:
        """
        Reschedule every pending work order after a restart.

        Returns:
            Number of work orders scheduled
        """
        async with self.session_factory() as db:
            pending = await WorkOrderService(db).get_pending_work_orders()

        for work_order in pending:
            self.schedule_work_order(work_order)

        logger.info(f"Scheduler initialized with {len(pending)} pending work orders")
        return len(pending)

    async def wait_idle(self) -> None:
        """Wait for in-flight executions to finish."""
        while self._running:
            await asyncio.gather(*list(self._running), return_exceptions=True)

    async def shutdown(self) -> None:
        """Cancel every timer; in-flight executions are left to finish."""
        for work_order_id in list(self._jobs):
            self.cancel_work_order(work_order_id)
        await self.wait_idle()

    # ============== Execution ==============

    async def execute_work_order(self, work_order_id: str) -> Optional[WorkOrder]:
        """
        Apply a work order's price changes.

        The order is claimed by moving it from pending to executing in a
        single UPDATE; runs that lose the claim are skipped. Prices of
        locally mirrored products are captured before each change so the
        order can be undone. A failure of a single update is logged and
        the rest continue; a failure of the whole order marks it failed.

        Args:
            work_order_id: Work order ID

        Returns:
            The work order after execution, or None if skipped
        """
        async with self.session_factory() as db:
            # Claim the order in one statement so concurrent runs cannot both start it
            claimed = await db.execute(
                update(WorkOrder)
                .where(
                    WorkOrder.id == work_order_id,
                    WorkOrder.status == WorkOrderStatus.PENDING.value,
                )
                .values(status=WorkOrderStatus.EXECUTING.value, error=None)
            )
            await db.commit()

            work_order = await db.get(WorkOrder, work_order_id)
            if work_order is None:
                logger.warning(f"Work order {work_order_id} no longer exists")
                return None
            if claimed.rowcount != 1:
                logger.warning(f"Work order {work_order_id} skipped (status: {work_order.status})")
                return None

            logger.info(f"Executing work order {work_order.id}: {work_order.title}")

            try:
                client = await TenantService(db).get_client(work_order.company_id, self.client_factory)
                async with client:
                    original_prices = await self._apply_updates(db, client, work_order)
            except (ApiSettingsMissingError, BigCommerceAPIError) as e:
                logger.error(f"Work order {work_order_id} failed: {e}")
                return await self._fail(db, work_order, str(e))
            except Exception as e:
                logger.exception(f"Work order {work_order_id} failed unexpectedly")
                return await self._fail(db, work_order, str(e) or e.__class__.__name__)

            work_order.mark_completed(original_prices)
            await db.commit()
            logger.info(
                f"Work order {work_order.id} completed "
                f"({len(original_prices)} of {len(work_order.product_updates or [])} prices captured)"
            )
            return work_order

    async def _fail(self, db, work_order: WorkOrder, error: str) -> WorkOrder:
        await db.rollback()
        await db.refresh(work_order)
        work_order.mark_failed(error)
        await db.commit()
        return work_order

    async def _apply_updates(
        self,
        db,
        client: BigCommerceClient,
        work_order: WorkOrder,
    ) -> List[Dict[str, Any]]:
        products = ProductService(db)
        original_prices: List[Dict[str, Any]] = []
        updates = list(work_order.product_updates or [])

        for index, change in enumerate(updates, start=1):
            product_id = str(change.get("product_id"))
            variant_id = change.get("variant_id")
            try:
                snapshot = await products.apply_price_change(
                    client,
                    work_order.company_id,
                    product_id,
                    variant_id=str(variant_id) if variant_id else None,
                    regular_price=change.get("new_regular_price"),
                    sale_price=change.get("new_sale_price"),
                    change_type="work_order",
                    work_order_id=work_order.id,
                    changed_by=work_order.created_by,
                )
                if snapshot is not None:
                    original_prices.append(snapshot)
            except (BigCommerceAPIError, InvalidPriceError) as e:
                logger.error(
                    f"Work order {work_order.id}: update of {product_id}/{variant_id or '-'} failed: {e}"
                )

            if index % settings.update_batch_size == 0 and index < len(updates):
                await asyncio.sleep(settings.update_batch_delay_seconds)

        return original_prices


scheduler = SchedulerService()
