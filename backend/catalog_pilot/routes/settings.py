"""
API settings routes
BigCommerce credentials of the caller's company
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from catalog_pilot.database import get_db
from catalog_pilot.middleware.auth import get_current_user
from catalog_pilot.models import User
from catalog_pilot.services.bigcommerce_client import BigCommerceClient
from catalog_pilot.services.tenant_service import ApiSettingsMissingError, TenantService
from catalog_pilot.utils.encryption import decrypt_token, mask_token

logger = logging.getLogger(__name__)

router = APIRouter()


# ============== Request/Response Models ==============


class ApiSettingsRequest(BaseModel):
    """Request to save BigCommerce credentials."""

    store_hash: str = Field(..., min_length=1)
    access_token: str = Field(..., min_length=1)
    client_id: str = Field(..., min_length=1)
    show_stock: bool = False
    show_stock_status: bool = False


class ApiSettingsResponse(BaseModel):
    """Stored credentials with the token masked."""

    store_hash: str
    access_token: str
    client_id: str
    show_stock: bool
    show_stock_status: bool
    last_sync_at: Optional[str]


class ConnectionTestRequest(BaseModel):
    """Credentials to test; stored ones are used when omitted."""

    store_hash: Optional[str] = None
    access_token: Optional[str] = None
    client_id: Optional[str] = None


def _to_response(api_settings) -> ApiSettingsResponse:
    return ApiSettingsResponse(
        store_hash=api_settings.store_hash,
        access_token=mask_token(decrypt_token(api_settings.access_token)),
        client_id=api_settings.client_id,
        show_stock=bool(api_settings.show_stock),
        show_stock_status=bool(api_settings.show_stock_status),
        last_sync_at=api_settings.last_sync_at.isoformat() if api_settings.last_sync_at else None,
    )


# ============== Endpoints ==============


@router.get("", response_model=Optional[ApiSettingsResponse])
async def get_api_settings(
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Get the company's BigCommerce settings, or null if none are saved."""
    api_settings = await TenantService(db).get_api_settings(user.company_id)
    if not api_settings:
        return None
    return _to_response(api_settings)


@router.post("", response_model=ApiSettingsResponse)
async def save_api_settings(
    request: ApiSettingsRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Save the company's BigCommerce settings."""
    api_settings = await TenantService(db).save_api_settings(
        user.company_id,
        store_hash=request.store_hash.strip(),
        access_token=request.access_token.strip(),
        client_id=request.client_id.strip(),
        show_stock=request.show_stock,
        show_stock_status=request.show_stock_status,
    )
    return _to_response(api_settings)


@router.post("/test")
async def test_api_connection(
    request: Optional[ConnectionTestRequest] = None,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Check that BigCommerce accepts the given or stored credentials."""
    if request and request.store_hash and request.access_token:
        client = BigCommerceClient(request.store_hash, request.access_token, request.client_id or "")
    else:
        try:
            client = await TenantService(db).get_client(user.company_id, BigCommerceClient)
        except ApiSettingsMissingError as e:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))

    async with client:
        connected = await client.test_connection()

    return {
        "success": connected,
        "message": "Connection successful" if connected else "Could not connect to BigCommerce",
    }
