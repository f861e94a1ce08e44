"""
Product routes
Local catalog mirror, manual price changes and catalog sync
"""

import asyncio
import json
import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from fastapi.responses import StreamingResponse
from pydantic import BaseModel, field_validator, model_validator
from sqlalchemy.ext.asyncio import AsyncSession

from catalog_pilot.database import async_session_factory, get_db
from catalog_pilot.middleware.auth import get_current_user
from catalog_pilot.models import User
from catalog_pilot.services.bigcommerce_client import BigCommerceAPIError, BigCommerceClient, validate_price
from catalog_pilot.services.product_service import ProductService
from catalog_pilot.services.product_sync import (
    SyncCancelledError,
    clear_sync_cancel,
    perform_sync,
    request_sync_cancel,
)
from catalog_pilot.services.tenant_service import ApiSettingsMissingError, TenantService

logger = logging.getLogger(__name__)

router = APIRouter()


# ============== Request/Response Models ==============


class PriceUpdateRequest(BaseModel):
    """Manual price change of a product or one of its variants."""

    regular_price: Optional[str] = None
    sale_price: Optional[str] = None
    variant_id: Optional[str] = None

    @field_validator("regular_price")
    @classmethod
    def check_regular_price(cls, value: Optional[str]) -> Optional[str]:
        return validate_price(value)

    @field_validator("sale_price")
    @classmethod
    def check_sale_price(cls, value: Optional[str]) -> Optional[str]:
        return validate_price(value, allow_blank=True)

    @model_validator(mode="after")
    def check_has_price(self):
        if self.regular_price is None and self.sale_price is None:
            raise ValueError("regular_price or sale_price is required")
        return self


async def _get_client(db: AsyncSession, company_id: str) -> BigCommerceClient:
    try:
        return await TenantService(db).get_client(company_id, BigCommerceClient)
    except ApiSettingsMissingError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))


# ============== Catalog Endpoints ==============


@router.get("")
async def list_products(
    category: Optional[str] = Query(None),
    search: Optional[str] = Query(None),
    page: int = Query(1, ge=1),
    limit: int = Query(50, ge=1, le=250),
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """List mirrored products with optional category/search filters."""
    products, total = await ProductService(db).get_products(
        user.company_id,
        category=category,
        search=search,
        page=page,
        limit=limit,
    )
    return {
        "products": [product.to_dict() for product in products],
        "total": total,
        "page": page,
        "limit": limit,
    }


@router.get("/categories")
async def list_product_categories(
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Distinct category paths of the mirrored products."""
    return await ProductService(db).get_categories(user.company_id)


@router.get("/{product_id}")
async def get_product(
    product_id: str,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    product = await ProductService(db).get_product(user.company_id, product_id)
    if not product:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Product not found")
    return product.to_dict()


@router.get("/{product_id}/variants")
async def get_product_variants(
    product_id: str,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    variants = await ProductService(db).get_product_variants(user.company_id, product_id)
    return [variant.to_dict() for variant in variants]


@router.get("/{product_id}/price-history")
async def get_price_history(
    product_id: str,
    limit: int = Query(100, ge=1, le=500),
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    history = await ProductService(db).get_price_history(user.company_id, product_id, limit=limit)
    return [entry.to_dict() for entry in history]


@router.put("/{product_id}/price")
async def update_product_price(
    product_id: str,
    request: PriceUpdateRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Change a price in BigCommerce right away and mirror it locally."""
    service = ProductService(db)
    if request.variant_id:
        record = await service.get_variant(user.company_id, request.variant_id)
        if record and record.product_id != product_id:
            record = None
    else:
        record = await service.get_product(user.company_id, product_id)
    if not record:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Product not found")

    client = await _get_client(db, user.company_id)
    try:
        async with client:
            await service.apply_price_change(
                client,
                user.company_id,
                product_id,
                variant_id=request.variant_id,
                regular_price=request.regular_price,
                sale_price=request.sale_price,
                change_type="manual",
                changed_by=user.id,
            )
    except BigCommerceAPIError as e:
        logger.error(f"Manual price update of {product_id} failed: {e.message}")
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=e.message)

    return record.to_dict()


# ============== Sync Endpoints ==============


@router.post("/sync")
async def sync_products(
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """
    Replace the local mirror with the BigCommerce catalog.

    Streams text lines while running:
        data: {"stage", "current", "total", "message"}
        result: {...sync result...}
        error: {"message"}
    """
    company_id = user.company_id
    client = await _get_client(db, company_id)
    await clear_sync_cancel(company_id)

    async def stream():
        queue: asyncio.Queue = asyncio.Queue()

        def on_progress(stage: str, current: int, total: int, message: str) -> None:
            queue.put_nowait(
                ("data", {"stage": stage, "current": current, "total": total, "message": message})
            )

        async def run() -> None:
            try:
                async with async_session_factory() as session:
                    async with client:
                        result = await perform_sync(session, company_id, client, on_progress)
                queue.put_nowait(("result", result.to_dict()))
            except SyncCancelledError as e:
                logger.info(f"Sync cancelled for company {company_id}")
                queue.put_nowait(("error", {"message": str(e)}))
            except BigCommerceAPIError as e:
                logger.error(f"Sync failed for company {company_id}: {e.message}")
                queue.put_nowait(("error", {"message": e.message}))
            except Exception as e:
                logger.exception(f"Sync failed for company {company_id}")
                queue.put_nowait(("error", {"message": str(e) or "Sync failed"}))
            finally:
                queue.put_nowait(None)

        task = asyncio.create_task(run())
        try:
            while True:
                item = await queue.get()
                if item is None:
                    break
                kind, payload = item
                yield f"{kind}: {json.dumps(payload)}\n"
        finally:
            await task
            await clear_sync_cancel(company_id)

    return StreamingResponse(stream(), media_type="text/plain")


@router.post("/sync/cancel")
async def cancel_sync(user: User = Depends(get_current_user)):
    """Stop the running sync of the caller's company at the next page."""
    await request_sync_cancel(user.company_id)
    return {"status": "cancelling"}
