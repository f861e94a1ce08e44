"""
Database models for Catalog Pilot
"""

from catalog_pilot.models.api_settings import ApiSettings
from catalog_pilot.models.company import Company, CompanyInvitation, User
from catalog_pilot.models.price_history import PriceHistory
from catalog_pilot.models.product import Product, ProductVariant
from catalog_pilot.models.work_order import WorkOrder, WorkOrderStatus

__all__ = [
    "ApiSettings",
    "Company",
    "CompanyInvitation",
    "User",
    "PriceHistory",
    "Product",
    "ProductVariant",
    "WorkOrder",
    "WorkOrderStatus",
]
