"""
Pytest configuration and fixtures for Catalog Pilot tests.
"""

import os
from typing import Dict, List

import jwt
import pytest
from fastapi.testclient import TestClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

# Set test environment variables before importing app
os.environ.setdefault("DATABASE_URL", "sqlite:///:memory:")
os.environ.setdefault("ENCRYPTION_KEY", "test-encryption-key-32chars-long!")
os.environ.setdefault("JWT_SECRET_KEY", "test-jwt-secret")
os.environ.setdefault("REDIS_URL", "redis://127.0.0.1:6399/0")
os.environ.setdefault("UPDATE_BATCH_DELAY_SECONDS", "0")
os.environ.setdefault("RATE_LIMIT_PER_MINUTE", "10000")
os.environ.setdefault("STRIPE_SECRET_KEY", "sk_test_123")
os.environ.setdefault("STRIPE_WEBHOOK_SECRET", "whsec_test")
os.environ.setdefault("STRIPE_PRICE_STARTER", "price_starter")
os.environ.setdefault("STRIPE_PRICE_PREMIUM", "price_premium")

from catalog_pilot.database import Base  # noqa: E402
from catalog_pilot.main import app  # noqa: E402
from catalog_pilot.services.bigcommerce_client import BigCommerceAPIError  # noqa: E402

JWT_SECRET = os.environ["JWT_SECRET_KEY"]


def make_token(user_id: str, email: str = None) -> str:
    payload = {"sub": user_id}
    if email:
        payload["email"] = email
    return jwt.encode(payload, JWT_SECRET, algorithm="HS256")


class FakeBigCommerceClient:
    """
    In-memory stand-in for BigCommerceClient.

    The instance doubles as its own factory so it can replace the class:
    FakeBigCommerceClient(store_hash, token, client_id) returns the instance.
    """

    def __init__(self, products: List[Dict] = None, categories: List[Dict] = None):
        self.products = products or []
        self.categories = categories or []
        self.updates: List[tuple] = []
        self.failing_products = set()
        self.credentials = None
        self.connected = True

    def __call__(self, store_hash: str, access_token: str, client_id: str = ""):
        self.credentials = (store_hash, access_token, client_id)
        return self

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        return False

    async def test_connection(self) -> bool:
        return self.connected

    async def get_category_map(self) -> Dict[int, Dict]:
        return {category["id"]: category for category in self.categories}

    async def get_products(self, page: int = 1, limit: int = 50, include=None) -> Dict:
        start = (page - 1) * limit
        return {
            "data": self.products[start:start + limit],
            "meta": {"pagination": {"total": len(self.products)}},
        }

    async def update_product(self, product_id, regular_price=None, sale_price=None) -> Dict:
        if str(product_id) in self.failing_products:
            raise BigCommerceAPIError("The product was not found.", status_code=404)
        self.updates.append((str(product_id), None, regular_price, sale_price))
        return {}

    async def update_product_variant(self, product_id, variant_id, regular_price=None, sale_price=None) -> Dict:
        if str(product_id) in self.failing_products:
            raise BigCommerceAPIError("The product was not found.", status_code=404)
        self.updates.append((str(product_id), str(variant_id), regular_price, sale_price))
        return {}


def bc_product(product_id: int, price: str = "10.00", sale_price: str = "0", categories=None) -> Dict:
    """BigCommerce product payload with one embedded variant."""
    return {
        "id": product_id,
        "name": f"Product {product_id}",
        "sku": f"SKU-{product_id}",
        "description": "",
        "price": price,
        "sale_price": sale_price,
        "inventory_level": 3,
        "weight": "1.5",
        "is_visible": True,
        "categories": categories if categories is not None else [20],
        "variants": [
            {
                "id": 1000 + product_id,
                "product_id": product_id,
                "sku": f"SKU-{product_id}-M",
                "price": price,
                "sale_price": 0,
                "calculated_price": price,
                "inventory_level": 3,
                "option_values": [{"option_display_name": "Size", "label": "M"}],
            }
        ],
    }


CATEGORIES = [
    {"id": 10, "name": "Apparel", "parent_id": 0},
    {"id": 20, "name": "Shirts", "parent_id": 10},
    {"id": 30, "name": "Shop All", "parent_id": 0},
]


@pytest.fixture
def client():
    """Test client; the lifespan creates a fresh in-memory database."""
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def auth_headers():
    return {"Authorization": f"Bearer {make_token('user-1', 'owner@example.com')}"}


@pytest.fixture
def token_for():
    return make_token


@pytest.fixture
def fake_bc():
    return FakeBigCommerceClient(
        products=[bc_product(i, price=f"{10 + i}.00") for i in range(1, 4)],
        categories=list(CATEGORIES),
    )


@pytest.fixture
def make_bc_product():
    return bc_product


@pytest.fixture
def make_fake_bc():
    return FakeBigCommerceClient


@pytest.fixture
def make_db():
    """
    Build an isolated in-memory database inside a running event loop.

    Usage (inside asyncio.run): engine, session_factory = await make_db()
    """

    async def _make_db():
        engine = create_async_engine(
            "sqlite+aiosqlite://",
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        session_factory = async_sessionmaker(
            engine,
            class_=AsyncSession,
            autoflush=False,
            expire_on_commit=False,
        )
        return engine, session_factory

    return _make_db


@pytest.fixture
def configured_company(client, auth_headers):
    """Provision user-1 with stored BigCommerce credentials; returns the company id."""
    response = client.post(
        "/api/settings",
        json={"store_hash": "abc123", "access_token": "secret-token-value", "client_id": "client-1"},
        headers=auth_headers,
    )
    assert response.status_code == 200
    return client.get("/api/company", headers=auth_headers).json()["id"]
