"""
Product Sync Service
Replaces a company's local catalog mirror with a fresh copy from BigCommerce
"""

import logging
import time
from dataclasses import asdict, dataclass
from typing import Any, Callable, Dict, List, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from catalog_pilot.config import settings
from catalog_pilot.models import Product, ProductVariant
from catalog_pilot.services.bigcommerce_client import BigCommerceClient, build_category_path
from catalog_pilot.services.plans import DEFAULT_PLAN
from catalog_pilot.services.product_service import ProductService
from catalog_pilot.services.tenant_service import TenantService
from catalog_pilot.utils.redis_client import get_redis

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[str, int, int, str], None]

CANCEL_FLAG_TTL = 600

# Fallback cancellation flags (only used if Redis unavailable)
_fallback_cancel_flags: Dict[str, float] = {}


class SyncCancelledError(Exception):
    """The sync was cancelled by the user."""

    def __init__(self, message: str = "Sync cancelled"):
        super().__init__(message)


@dataclass
class SyncResult:
    stored_count: int
    variant_count: int
    total_available: int
    product_limit: int
    subscription_plan: str
    is_limited: bool
    error_count: int = 0
    warning: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


# ============== Cancellation flags ==============


def _cancel_key(company_id: str) -> str:
    return f"sync_cancel:{company_id}"


async def request_sync_cancel(company_id: str) -> None:
    """Ask the running sync of a company to stop at the next page."""
    redis = await get_redis()
    if redis:
        try:
            await redis.setex(_cancel_key(company_id), CANCEL_FLAG_TTL, "1")
            return
        except Exception as e:
            logger.warning(f"Redis cancel flag error: {e}")
    _fallback_cancel_flags[company_id] = time.monotonic()


async def clear_sync_cancel(company_id: str) -> None:
    _fallback_cancel_flags.pop(company_id, None)
    redis = await get_redis()
    if redis:
        try:
            await redis.delete(_cancel_key(company_id))
        except Exception as e:
            logger.warning(f"Redis cancel flag error: {e}")


async def is_sync_cancelled(company_id: str) -> bool:
    flagged_at = _fallback_cancel_flags.get(company_id)
    if flagged_at and time.monotonic() - flagged_at < CANCEL_FLAG_TTL:
        return True

    redis = await get_redis()
    if redis:
        try:
            return bool(await redis.get(_cancel_key(company_id)))
        except Exception as e:
            logger.warning(f"Redis cancel flag error: {e}")
    return False


# ============== Sync ==============


def _collect_page(
    company_id: str,
    page_products: List[Dict[str, Any]],
    categories: Dict[int, Dict[str, Any]],
    products: Dict[str, Product],
    variants: Dict[str, ProductVariant],
) -> int:
    """Convert one page of BigCommerce products; returns the number of bad records."""
    errors = 0
    for bc_product in page_products:
        try:
            category_path = build_category_path(bc_product.get("categories") or [], categories)
            product = Product.from_bigcommerce_data(company_id, bc_product, category_path)
            products.setdefault(product.id, product)

            for bc_variant in bc_product.get("variants") or []:
                bc_variant = {"product_id": bc_product.get("id"), **bc_variant}
                variant = ProductVariant.from_bigcommerce_data(company_id, bc_variant)
                variants.setdefault(variant.id, variant)
        except (TypeError, ValueError, AttributeError) as e:
            errors += 1
            logger.error(f"Skipping malformed product {bc_product.get('id')}: {e}")
    return errors


async def perform_sync(
    db: AsyncSession,
    company_id: str,
    client: BigCommerceClient,
    on_progress: Optional[ProgressCallback] = None,
) -> SyncResult:
    """
    Refresh a company's catalog mirror from BigCommerce.

    Pages through every product (variants embedded), resolves category
    paths, truncates to the company's plan ceiling, clears the mirror and
    stores the new batch.

    Args:
        db: Database session
        company_id: Company ID
        client: Open BigCommerce client for the company's store
        on_progress: Called with (stage, current, total, message)

    Returns:
        SyncResult

    Raises:
        BigCommerceAPIError: If a page cannot be fetched
        SyncCancelledError: If the sync was cancelled between pages
    """

    def progress(stage: str, current: int, total: int, message: str) -> None:
        if on_progress:
            on_progress(stage, current, total, message)

    tenants = TenantService(db)
    company = await tenants.get_company(company_id)
    if not company:
        raise ValueError(f"Company not found: {company_id}")

    product_limit = company.product_limit or 5
    subscription_plan = company.subscription_plan or DEFAULT_PLAN
    page_size = settings.sync_page_size
    logger.info(f"Sync started for company {company_id} (plan {subscription_plan}, limit {product_limit})")

    progress("categories", 5, 100, "Fetching categories from BigCommerce...")
    categories = await client.get_category_map()

    progress("fetching", 10, 100, "Fetching products from BigCommerce...")
    products: Dict[str, Product] = {}
    variants: Dict[str, ProductVariant] = {}
    error_count = 0
    fetched = 0
    total_available = 0
    page = 1

    while True:
        if await is_sync_cancelled(company_id):
            raise SyncCancelledError()

        response = await client.get_products(page=page, limit=page_size, include=["variants", "images"])
        page_products = response.get("data", [])
        if page == 1:
            total_available = response.get("meta", {}).get("pagination", {}).get("total", len(page_products))

        fetched += len(page_products)
        error_count += _collect_page(company_id, page_products, categories, products, variants)
        logger.debug(f"Sync page {page}: {len(page_products)} products, {fetched} total")

        if len(page_products) < page_size or fetched >= total_available:
            break

        page += 1
        progress("fetching", min(10 + page * 5, 45), 100, f"Fetching page {page}...")

    if await is_sync_cancelled(company_id):
        raise SyncCancelledError()

    kept = list(products.values())
    is_limited = len(kept) > product_limit
    warning = None
    if is_limited:
        kept = kept[:product_limit]
        warning = (
            f"Your {subscription_plan} plan allows {product_limit} products; "
            f"{product_limit} of {total_available} were synced. Upgrade to sync more."
        )
        logger.warning(f"Sync for company {company_id} limited to {product_limit} of {total_available} products")

    kept_ids = {product.id for product in kept}
    kept_variants = [variant for variant in variants.values() if variant.product_id in kept_ids]

    progress("processing", 50, 100, f"Storing {len(kept)} products...")
    await ProductService(db).clear_company_products(company_id)

    db.add_all(kept)
    await db.commit()

    progress("processing", 80, 100, f"Storing {len(kept_variants)} variants...")
    db.add_all(kept_variants)
    await db.commit()

    await tenants.touch_last_sync(company_id)

    result = SyncResult(
        stored_count=len(kept),
        variant_count=len(kept_variants),
        total_available=total_available,
        product_limit=product_limit,
        subscription_plan=subscription_plan,
        is_limited=is_limited,
        error_count=error_count,
        warning=warning,
    )
    progress("complete", 100, 100, f"Synced {result.stored_count} products")

    logger.info(
        f"Sync complete for company {company_id}: {result.stored_count}/{total_available} products, "
        f"{result.variant_count} variants, {error_count} errors"
    )
    return result
