"""
Product Service
Queries the local catalog mirror and applies price changes to BigCommerce
"""

import logging
from decimal import Decimal
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy import delete, func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from catalog_pilot.models import PriceHistory, Product, ProductVariant
from catalog_pilot.models.product import format_price, to_price
from catalog_pilot.services.bigcommerce_client import BigCommerceClient, price_payload
from catalog_pilot.utils.clock import utcnow

logger = logging.getLogger(__name__)


def _new_sale_price(sale_price: Optional[str]) -> Optional[Decimal]:
    """Local value for a sale price sent to BigCommerce ("" / 0 clear it)."""
    value = to_price(sale_price)
    return value if value else None


class ProductService:
    """Service for the locally mirrored catalog."""

    def __init__(self, db: AsyncSession):
        self.db = db

    # ============== Queries ==============

    async def get_products(
        self,
        company_id: str,
        category: Optional[str] = None,
        search: Optional[str] = None,
        page: int = 1,
        limit: int = 50,
    ) -> Tuple[List[Product], int]:
        """
        Get a page of products for a company.

        Args:
            company_id: Company ID
            category: Exact category path; "all" or None for every category
            search: Substring of name or SKU, or an exact product id
            page: 1-based page number
            limit: Page size

        Returns:
            Tuple of (products, total_count)
        """
        conditions = [Product.company_id == company_id]
        if category and category != "all":
            conditions.append(Product.category == category)
        if search:
            pattern = f"%{search}%"
            conditions.append(
                or_(
                    Product.name.ilike(pattern),
                    Product.sku.ilike(pattern),
                    Product.id == search,
                )
            )

        count_result = await self.db.execute(
            select(func.count()).select_from(Product).where(*conditions)
        )
        total = count_result.scalar() or 0

        offset = (max(page, 1) - 1) * limit
        result = await self.db.execute(
            select(Product)
            .where(*conditions)
            .order_by(Product.last_updated.desc(), Product.id)
            .limit(limit)
            .offset(offset)
        )
        return list(result.scalars().all()), total

    async def get_product(self, company_id: str, product_id: str) -> Optional[Product]:
        result = await self.db.execute(
            select(Product).where(Product.company_id == company_id, Product.id == product_id)
        )
        return result.scalar_one_or_none()

    async def get_variant(self, company_id: str, variant_id: str) -> Optional[ProductVariant]:
        result = await self.db.execute(
            select(ProductVariant).where(
                ProductVariant.company_id == company_id,
                ProductVariant.id == variant_id,
            )
        )
        return result.scalar_one_or_none()

    async def get_product_variants(self, company_id: str, product_id: str) -> List[ProductVariant]:
        result = await self.db.execute(
            select(ProductVariant)
            .where(
                ProductVariant.company_id == company_id,
                ProductVariant.product_id == product_id,
            )
            .order_by(ProductVariant.id)
        )
        return list(result.scalars().all())

    async def get_categories(self, company_id: str) -> List[str]:
        """Distinct category paths in the local mirror."""
        result = await self.db.execute(
            select(Product.category)
            .where(Product.company_id == company_id, Product.category.isnot(None))
            .distinct()
            .order_by(Product.category)
        )
        return [row for row in result.scalars().all() if row]

    async def count_products(self, company_id: str) -> int:
        result = await self.db.execute(
            select(func.count()).select_from(Product).where(Product.company_id == company_id)
        )
        return result.scalar() or 0

    async def get_price_history(
        self,
        company_id: str,
        product_id: str,
        limit: int = 100,
    ) -> List[PriceHistory]:
        result = await self.db.execute(
            select(PriceHistory)
            .where(
                PriceHistory.company_id == company_id,
                PriceHistory.product_id == product_id,
            )
            .order_by(PriceHistory.created_at.desc())
            .limit(limit)
        )
        return list(result.scalars().all())

    # ============== Mirror maintenance ==============

    async def clear_company_products(self, company_id: str) -> None:
        """Delete every mirrored product and variant of a company."""
        await self.db.execute(delete(ProductVariant).where(ProductVariant.company_id == company_id))
        await self.db.execute(delete(Product).where(Product.company_id == company_id))
        await self.db.commit()

    # ============== Price changes ==============

    async def apply_price_change(
        self,
        client: BigCommerceClient,
        company_id: str,
        product_id: str,
        variant_id: Optional[str] = None,
        regular_price: Optional[str] = None,
        sale_price: Optional[str] = None,
        change_type: str = "manual",
        work_order_id: Optional[str] = None,
        changed_by: Optional[str] = None,
    ) -> Optional[Dict[str, Any]]:
        """
        Push one price change to BigCommerce and mirror it locally.

        The current local prices are read before the remote call and
        returned as a snapshot. A product or variant that is not mirrored
        locally is still updated remotely, but no snapshot is returned.

        Args:
            client: Open BigCommerce client
            company_id: Company ID
            product_id: BigCommerce product ID
            variant_id: BigCommerce variant ID for variant-level changes
            regular_price: New price, None to keep; "" reverts a variant to the product price
            sale_price: New sale price, None to keep, "" or "0" to clear
            change_type: manual, work_order or undo
            work_order_id: Work order that caused the change
            changed_by: User that caused the change

        Returns:
            Snapshot of the prices before the change, or None

        Raises:
            InvalidPriceError: If a price is not a non-negative decimal
            BigCommerceAPIError: If BigCommerce rejects the update
        """
        # Reject bad prices before anything is read or sent
        price_payload(regular_price, sale_price, nullable_price=bool(variant_id))

        if variant_id:
            record = await self.get_variant(company_id, variant_id)
        else:
            record = await self.get_product(company_id, product_id)

        snapshot = None
        if record is not None:
            snapshot = {
                "product_id": str(product_id),
                "variant_id": str(variant_id) if variant_id else None,
                "original_regular_price": format_price(record.regular_price),
                "original_sale_price": format_price(record.sale_price),
            }
            old_regular, old_sale = record.regular_price, record.sale_price
        else:
            logger.warning(
                f"Product {product_id}/{variant_id} not in local catalog of {company_id}; "
                "change cannot be undone"
            )
            old_regular = old_sale = None

        if variant_id:
            await client.update_product_variant(
                product_id, variant_id, regular_price=regular_price, sale_price=sale_price
            )
        else:
            await client.update_product(product_id, regular_price=regular_price, sale_price=sale_price)

        if regular_price is None or (regular_price == "" and not variant_id):
            new_regular = old_regular
        else:
            new_regular = to_price(regular_price)
        new_sale = _new_sale_price(sale_price) if sale_price is not None else old_sale

        if record is not None:
            record.regular_price = new_regular
            record.sale_price = new_sale
            record.last_updated = utcnow()

        self.db.add(
            PriceHistory(
                company_id=company_id,
                product_id=str(product_id),
                variant_id=str(variant_id) if variant_id else None,
                old_regular_price=old_regular,
                new_regular_price=new_regular,
                old_sale_price=old_sale,
                new_sale_price=new_sale,
                change_type=change_type,
                work_order_id=work_order_id,
                changed_by=changed_by,
            )
        )
        await self.db.commit()

        logger.info(f"Price change applied to {product_id}/{variant_id or '-'} ({change_type})")
        return snapshot
