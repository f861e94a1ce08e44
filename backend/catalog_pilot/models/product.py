"""
Product and ProductVariant Models - local mirror of the BigCommerce catalog
"""

from decimal import Decimal, InvalidOperation
from typing import Any, Dict, List, Optional

from sqlalchemy import Column, DateTime, ForeignKey, Integer, Numeric, String, Text

from catalog_pilot.database import Base, JSONType
from catalog_pilot.utils.clock import utcnow

MISSING_CATEGORY = ""


def to_price(value: Any) -> Optional[Decimal]:
    """Parse a BigCommerce price value; empty and unparsable values become None."""
    if value is None or value == "":
        return None
    try:
        return Decimal(str(value)).quantize(Decimal("0.01"))
    except (InvalidOperation, ValueError):
        return None


def format_price(value: Optional[Decimal]) -> Optional[str]:
    """Render a stored price the way the API exposes it."""
    if value is None:
        return None
    return f"{Decimal(value):.2f}"


class Product(Base):
    """
    A product synced from BigCommerce, keyed by its BigCommerce id per company.
    BigCommerce stays the source of truth; rows are replaced on every sync.
    """

    __tablename__ = "products"

    # BigCommerce product id (as string) + tenant
    id = Column(String(32), primary_key=True)
    company_id = Column(
        String(36),
        ForeignKey("companies.id", ondelete="CASCADE"),
        primary_key=True,
        index=True,
    )

    name = Column(Text, nullable=False)
    sku = Column(String(255), index=True)
    description = Column(Text)
    category = Column(Text, index=True)  # "Parent > Child" path

    # Pricing
    regular_price = Column(Numeric(10, 2))
    sale_price = Column(Numeric(10, 2))

    stock = Column(Integer, default=0)
    weight = Column(Numeric(10, 2))
    status = Column(String(20), default="published")  # published, draft

    last_updated = Column(DateTime, default=utcnow, onupdate=utcnow)

    def __repr__(self) -> str:
        return f"<Product {self.id}: {self.name}>"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "sku": self.sku,
            "description": self.description,
            "category": self.category,
            "regular_price": format_price(self.regular_price),
            "sale_price": format_price(self.sale_price),
            "stock": self.stock,
            "weight": format_price(self.weight),
            "status": self.status,
            "last_updated": self.last_updated.isoformat() if self.last_updated else None,
        }

    @classmethod
    def from_bigcommerce_data(
        cls,
        company_id: str,
        bc_data: dict,
        category_path: str = MISSING_CATEGORY,
    ) -> "Product":
        """
        Create a product from BigCommerce API data.

        Args:
            company_id: Tenant id
            bc_data: BigCommerce product data
            category_path: Resolved category path for the product

        Returns:
            Product instance
        """
        sale_price = to_price(bc_data.get("sale_price"))
        return cls(
            id=str(bc_data.get("id")),
            company_id=company_id,
            name=bc_data.get("name") or "",
            sku=bc_data.get("sku") or "",
            description=bc_data.get("description") or "",
            category=category_path or None,
            regular_price=to_price(bc_data.get("price")) or Decimal("0.00"),
            # BigCommerce reports "no sale price" as 0
            sale_price=sale_price if sale_price else None,
            stock=bc_data.get("inventory_level") or 0,
            weight=to_price(bc_data.get("weight")) or Decimal("0.00"),
            status="published" if bc_data.get("is_visible") else "draft",
            last_updated=utcnow(),
        )


class ProductVariant(Base):
    """
    A product variant (size, colour, ...) synced from BigCommerce.
    """

    __tablename__ = "product_variants"

    id = Column(String(32), primary_key=True)
    company_id = Column(
        String(36),
        ForeignKey("companies.id", ondelete="CASCADE"),
        primary_key=True,
        index=True,
    )
    product_id = Column(String(32), nullable=False, index=True)

    variant_sku = Column(String(255))
    option_values = Column(JSONType, default=dict)

    regular_price = Column(Numeric(10, 2))
    sale_price = Column(Numeric(10, 2))
    calculated_price = Column(Numeric(10, 2))
    stock = Column(Integer, default=0)

    last_updated = Column(DateTime, default=utcnow, onupdate=utcnow)

    def __repr__(self) -> str:
        return f"<ProductVariant {self.id} of {self.product_id}>"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "variant_sku": self.variant_sku,
            "option_values": self.option_values or {},
            "regular_price": format_price(self.regular_price),
            "sale_price": format_price(self.sale_price),
            "calculated_price": format_price(self.calculated_price),
            "stock": self.stock,
            "last_updated": self.last_updated.isoformat() if self.last_updated else None,
        }

    @staticmethod
    def option_values_from(options: List[dict]) -> Dict[str, str]:
        """Flatten BigCommerce option_values into {display name: label}."""
        return {
            opt.get("option_display_name"): opt.get("label")
            for opt in options or []
            if opt.get("option_display_name")
        }

    @classmethod
    def from_bigcommerce_data(cls, company_id: str, bc_data: dict) -> "ProductVariant":
        """Create a variant from BigCommerce variant data."""
        sale_price = to_price(bc_data.get("sale_price"))
        return cls(
            id=str(bc_data.get("id")),
            company_id=company_id,
            product_id=str(bc_data.get("product_id")),
            variant_sku=bc_data.get("sku") or "",
            option_values=cls.option_values_from(bc_data.get("option_values")),
            # Variants without their own price inherit the product price
            regular_price=to_price(bc_data.get("price")),
            sale_price=sale_price if sale_price else None,
            calculated_price=to_price(bc_data.get("calculated_price")),
            stock=bc_data.get("inventory_level") or 0,
            last_updated=utcnow(),
        )
