"""
Work order routes
Create, schedule, execute, archive and undo price change batches
"""

import logging
from datetime import datetime
from typing import Any, List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel, Field, field_validator, model_validator
from sqlalchemy.ext.asyncio import AsyncSession

from catalog_pilot.database import get_db
from catalog_pilot.middleware.auth import get_current_user
from catalog_pilot.models import User
from catalog_pilot.services.bigcommerce_client import BigCommerceClient, validate_price
from catalog_pilot.services.scheduler import scheduler
from catalog_pilot.services.tenant_service import ApiSettingsMissingError
from catalog_pilot.services.work_order_service import WorkOrderService, WorkOrderStateError
from catalog_pilot.utils.clock import to_naive_utc

logger = logging.getLogger(__name__)

router = APIRouter()


# ============== Request/Response Models ==============


class ProductUpdate(BaseModel):
    """One price change; None prices are left untouched."""

    product_id: str
    product_name: Optional[str] = None
    new_regular_price: Optional[str] = None
    new_sale_price: Optional[str] = None
    variant_id: Optional[str] = None
    variant_sku: Optional[str] = None

    @field_validator("product_id", "variant_id", "new_regular_price", "new_sale_price", mode="before")
    @classmethod
    def stringify(cls, value: Any) -> Any:
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            return str(value)
        return value

    @field_validator("new_regular_price")
    @classmethod
    def check_regular_price(cls, value: Optional[str]) -> Optional[str]:
        return validate_price(value)

    @field_validator("new_sale_price")
    @classmethod
    def check_sale_price(cls, value: Optional[str]) -> Optional[str]:
        return validate_price(value, allow_blank=True)


class WorkOrderCreate(BaseModel):
    """Request to create a work order."""

    title: str = Field(..., min_length=1)
    product_updates: List[ProductUpdate] = Field(..., min_length=1)
    scheduled_at: Optional[datetime] = None
    execute_immediately: bool = False

    @model_validator(mode="after")
    def check_schedule(self):
        if not self.execute_immediately and self.scheduled_at is None:
            raise ValueError("scheduled_at is required unless execute_immediately is set")
        if self.scheduled_at is not None:
            self.scheduled_at = to_naive_utc(self.scheduled_at)
        return self


class WorkOrderUpdate(BaseModel):
    """Request to edit a pending work order."""

    title: Optional[str] = Field(None, min_length=1)
    product_updates: Optional[List[ProductUpdate]] = Field(None, min_length=1)
    scheduled_at: Optional[datetime] = None
    execute_immediately: Optional[bool] = None

    @field_validator("scheduled_at")
    @classmethod
    def normalize_schedule(cls, value: Optional[datetime]) -> Optional[datetime]:
        return to_naive_utc(value) if value is not None else None


def _updates_payload(updates: List[ProductUpdate]) -> List[dict]:
    return [update.model_dump(exclude_none=True) for update in updates]


def _state_error(e: Exception) -> HTTPException:
    return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))


def _not_found(e: Exception) -> HTTPException:
    return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))


# ============== Endpoints ==============


@router.get("")
async def list_work_orders(
    archived: bool = Query(False),
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    work_orders = await WorkOrderService(db).list_work_orders(user.company_id, archived=archived)
    return [work_order.to_dict() for work_order in work_orders]


@router.get("/{work_order_id}")
async def get_work_order(
    work_order_id: str,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    work_order = await WorkOrderService(db).get_work_order(user.company_id, work_order_id)
    if not work_order:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Work order not found")
    return work_order.to_dict()


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_work_order(
    request: WorkOrderCreate,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Create a work order and schedule it."""
    work_order = await WorkOrderService(db).create_work_order(
        user.company_id,
        created_by=user.id,
        title=request.title,
        product_updates=_updates_payload(request.product_updates),
        scheduled_at=request.scheduled_at,
        execute_immediately=request.execute_immediately,
    )
    scheduler.schedule_work_order(work_order)
    return work_order.to_dict()


@router.patch("/{work_order_id}")
async def update_work_order(
    work_order_id: str,
    request: WorkOrderUpdate,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Edit a pending work order and reschedule it."""
    try:
        work_order = await WorkOrderService(db).update_work_order(
            user.company_id,
            work_order_id,
            title=request.title,
            product_updates=_updates_payload(request.product_updates) if request.product_updates else None,
            scheduled_at=request.scheduled_at,
            execute_immediately=request.execute_immediately,
        )
    except ValueError as e:
        raise _not_found(e)
    except WorkOrderStateError as e:
        raise _state_error(e)

    scheduler.schedule_work_order(work_order)
    return work_order.to_dict()


@router.delete("/{work_order_id}")
async def delete_work_order(
    work_order_id: str,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    try:
        await WorkOrderService(db).delete_work_order(user.company_id, work_order_id)
    except ValueError as e:
        raise _not_found(e)
    except WorkOrderStateError as e:
        raise _state_error(e)

    scheduler.cancel_work_order(work_order_id)
    return {"status": "deleted", "id": work_order_id}


@router.post("/{work_order_id}/execute")
async def execute_work_order(
    work_order_id: str,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Run a pending work order now instead of at its scheduled time."""
    work_order = await WorkOrderService(db).get_work_order(user.company_id, work_order_id)
    if not work_order:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Work order not found")
    if not work_order.is_pending:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Only pending work orders can be executed (status: {work_order.status})",
        )

    scheduler.cancel_work_order(work_order_id)
    executed = await scheduler.execute_work_order(work_order_id)
    if executed is None:
        await db.refresh(work_order)
        return work_order.to_dict()
    return executed.to_dict()


@router.post("/{work_order_id}/archive")
async def archive_work_order(
    work_order_id: str,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    try:
        work_order = await WorkOrderService(db).set_archived(user.company_id, work_order_id, True)
    except ValueError as e:
        raise _not_found(e)
    return work_order.to_dict()


@router.post("/{work_order_id}/unarchive")
async def unarchive_work_order(
    work_order_id: str,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    try:
        work_order = await WorkOrderService(db).set_archived(user.company_id, work_order_id, False)
    except ValueError as e:
        raise _not_found(e)
    return work_order.to_dict()


@router.post("/{work_order_id}/undo")
async def undo_work_order(
    work_order_id: str,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Restore the prices captured before a completed work order ran."""
    try:
        work_order = await WorkOrderService(db).undo_work_order(
            user.company_id,
            work_order_id,
            user_id=user.id,
            client_factory=BigCommerceClient,
        )
    except ValueError as e:
        raise _not_found(e)
    except (WorkOrderStateError, ApiSettingsMissingError) as e:
        raise _state_error(e)
    return work_order.to_dict()
