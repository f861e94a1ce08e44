"""
Category routes
Live category tree from BigCommerce
"""

import logging

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from catalog_pilot.database import get_db
from catalog_pilot.middleware.auth import get_current_user
from catalog_pilot.models import User
from catalog_pilot.services.bigcommerce_client import (
    BigCommerceAPIError,
    BigCommerceClient,
    build_category_path,
)
from catalog_pilot.services.tenant_service import ApiSettingsMissingError, TenantService

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("")
async def list_categories(
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Get the store's categories with their full "Parent > Child" paths."""
    try:
        client = await TenantService(db).get_client(user.company_id, BigCommerceClient)
    except ApiSettingsMissingError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))

    try:
        async with client:
            categories = await client.get_category_map()
    except BigCommerceAPIError as e:
        logger.error(f"Failed to fetch categories for company {user.company_id}: {e.message}")
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=e.message)

    return [
        {
            "id": category["id"],
            "name": category.get("name", ""),
            "parent_id": category.get("parent_id", 0),
            "path": build_category_path([category["id"]], categories),
            "is_visible": category.get("is_visible", True),
        }
        for category in sorted(categories.values(), key=lambda c: (c.get("sort_order") or 0, c["id"]))
    ]
