"""
BigCommerce API Client
Handles all catalog API interactions with BigCommerce
"""

import logging
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, Iterable, List, Optional

import httpx

from catalog_pilot.config import settings

logger = logging.getLogger(__name__)

SHOP_ALL_CATEGORY = "Shop All"


class BigCommerceAPIError(Exception):
    """Error from BigCommerce API."""

    def __init__(self, message: str, status_code: int = None, response: dict = None):
        self.message = message
        self.status_code = status_code
        self.response = response or {}
        super().__init__(message)


class InvalidPriceError(ValueError):
    """A price is not a non-negative decimal."""


def parse_price(value: Any) -> Decimal:
    """Parse a price string; raises InvalidPriceError unless it is a non-negative decimal."""
    try:
        price = Decimal(str(value).strip())
    except InvalidOperation:
        raise InvalidPriceError(f"Invalid price: {value!r}")
    if not price.is_finite() or price < 0:
        raise InvalidPriceError(f"Invalid price: {value!r}")
    return price


def validate_price(value: Optional[str], allow_blank: bool = False) -> Optional[str]:
    """
    Check a requested price and return it trimmed.

    None passes through. "" is only accepted with allow_blank (clearing a
    sale price).
    """
    if value is None:
        return None
    text = str(value).strip()
    if text == "" and allow_blank:
        return ""
    parse_price(text)
    return text


def price_payload(
    regular_price: Optional[str] = None,
    sale_price: Optional[str] = None,
    nullable_price: bool = False,
) -> Dict[str, Optional[float]]:
    """
    Build the price fields of a product/variant PUT body.

    None leaves a field untouched. An empty or zero sale price clears it;
    BigCommerce rejects null there, so clearing is sent as 0. With
    nullable_price (variants) an empty regular price is sent as null so the
    variant inherits the product price again.

    Raises:
        InvalidPriceError: If a price is not a non-negative decimal
    """
    data: Dict[str, Optional[float]] = {}
    if regular_price is not None:
        text = str(regular_price).strip()
        if text:
            data["price"] = float(parse_price(text))
        elif nullable_price:
            data["price"] = None
    if sale_price is not None:
        text = str(sale_price).strip()
        data["sale_price"] = float(parse_price(text)) if text else 0.0
    return data


def build_category_path(category_ids: Iterable[int], categories: Dict[int, Dict[str, Any]]) -> str:
    """
    Resolve a product's category ids to a single "Parent > Child" path.

    Prefers categories other than "Shop All", then the deepest path.
    Unknown ids are ignored; parent cycles are cut.
    """
    candidates = []
    for category_id in category_ids or []:
        category = categories.get(category_id)
        if not category:
            continue

        names: List[str] = []
        seen = set()
        current = category
        while current and current.get("id") not in seen:
            seen.add(current.get("id"))
            names.insert(0, current.get("name", ""))
            current = categories.get(current.get("parent_id"))

        is_shop_all = category.get("name") == SHOP_ALL_CATEGORY
        candidates.append((is_shop_all, -len(names), " > ".join(names)))

    if not candidates:
        return ""
    candidates.sort(key=lambda c: (c[0], c[1]))
    return candidates[0][2]


class BigCommerceClient:
    """
    Client for BigCommerce catalog API interactions.

    API URL format: https://api.bigcommerce.com/stores/{store_hash}/v3/{endpoint}
    """

    def __init__(
        self,
        store_hash: str,
        access_token: str,
        client_id: str = "",
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """
        Initialize BigCommerce client.

        Args:
            store_hash: Store hash identifier
            access_token: API account access token
            client_id: API account client id
            transport: Optional httpx transport (tests)
        """
        self.store_hash = store_hash
        self.access_token = access_token
        self.client_id = client_id
        self.base_url = f"{settings.bigcommerce_api_url}/stores/{store_hash}"
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    async def __aenter__(self):
        """Async context manager entry."""
        self._client = httpx.AsyncClient(
            headers=self._get_headers(),
            timeout=settings.bigcommerce_timeout_seconds,
            transport=self._transport,
        )
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        """Async context manager exit."""
        if self._client:
            await self._client.aclose()
            self._client = None

    def _get_headers(self) -> Dict[str, str]:
        """Get default request headers."""
        headers = {
            "X-Auth-Token": self.access_token,
            "Content-Type": "application/json",
            "Accept": "application/json",
        }
        if self.client_id:
            headers["X-Auth-Client"] = self.client_id
        return headers

    async def _request(
        self,
        method: str,
        endpoint: str,
        json: Optional[Dict] = None,
        params: Optional[Dict] = None,
    ) -> Dict[str, Any]:
        """
        Make an authenticated request to the BigCommerce v3 API.

        Args:
            method: HTTP method
            endpoint: API endpoint path (without version prefix)
            json: JSON body data
            params: Query parameters

        Returns:
            Response JSON data

        Raises:
            BigCommerceAPIError: On API error
        """
        url = f"{self.base_url}/v3/{endpoint.lstrip('/')}"

        if self._client is None:
            raise RuntimeError("Client not initialized. Use async context manager.")

        try:
            response = await self._client.request(
                method=method,
                url=url,
                json=json,
                params=params,
            )
        except httpx.TimeoutException:
            raise BigCommerceAPIError("Request timeout", status_code=504)
        except httpx.RequestError as e:
            raise BigCommerceAPIError(f"Request failed: {str(e)}", status_code=503)

        # BigCommerce rate limiting
        if response.status_code == 429:
            retry_after = response.headers.get("X-Rate-Limit-Time-Reset-Ms", "1000")
            raise BigCommerceAPIError(
                f"Rate limited. Retry after {retry_after}ms",
                status_code=429,
            )

        if response.status_code >= 400:
            error_data = {}
            try:
                error_data = response.json()
            except ValueError:
                pass

            raise BigCommerceAPIError(
                message=error_data.get("title", f"API error: {response.status_code}"),
                status_code=response.status_code,
                response=error_data,
            )

        if response.status_code == 204:
            return {}

        return response.json()

    # ============== Connection ==============

    async def test_connection(self) -> bool:
        """Check that the credentials can read the catalog."""
        try:
            await self._request("GET", "catalog/products", params={"limit": 1})
            return True
        except BigCommerceAPIError as e:
            logger.warning(f"BigCommerce connection test failed for {self.store_hash}: {e.message}")
            return False

    # ============== Products ==============

    async def get_products(
        self,
        page: int = 1,
        limit: int = 50,
        include: Optional[List[str]] = None,
    ) -> Dict[str, Any]:
        """
        Get one page of products.

        Args:
            page: Page number
            limit: Products per page (max 250)
            include: Sub-resources to embed (variants, images, ...)

        Returns:
            Response with data array and meta.pagination
        """
        params = {
            "page": page,
            "limit": min(limit, 250),
        }
        if include:
            params["include"] = ",".join(include)

        return await self._request("GET", "catalog/products", params=params)

    async def update_product(
        self,
        product_id: str,
        regular_price: Optional[str] = None,
        sale_price: Optional[str] = None,
    ) -> Dict[str, Any]:
        """
        Update the prices of a product.

        Args:
            product_id: BigCommerce product ID
            regular_price: New price, None to keep
            sale_price: New sale price, None to keep, "" or "0" to clear

        Returns:
            Updated product data
        """
        data = price_payload(regular_price, sale_price)
        logger.debug(f"Updating product {product_id} with {data}")
        response = await self._request("PUT", f"catalog/products/{product_id}", json=data)
        return response.get("data", {})

    # ============== Variants ==============

    async def update_product_variant(
        self,
        product_id: str,
        variant_id: str,
        regular_price: Optional[str] = None,
        sale_price: Optional[str] = None,
    ) -> Dict[str, Any]:
        """Update the prices of a single variant; a regular price of "" reverts to the product price."""
        data = price_payload(regular_price, sale_price, nullable_price=True)
        logger.debug(f"Updating variant {variant_id} of product {product_id} with {data}")
        response = await self._request(
            "PUT",
            f"catalog/products/{product_id}/variants/{variant_id}",
            json=data,
        )
        return response.get("data", {})

    # ============== Categories ==============

    async def get_categories(self) -> List[Dict[str, Any]]:
        """Get all categories (handles pagination)."""
        categories = []
        page = 1

        while True:
            response = await self._request(
                "GET",
                "catalog/categories",
                params={"page": page, "limit": 250},
            )
            categories.extend(response.get("data", []))

            pagination = response.get("meta", {}).get("pagination", {})
            if page >= pagination.get("total_pages", 1):
                break
            page += 1

        return categories

    async def get_category_map(self) -> Dict[int, Dict[str, Any]]:
        """Categories keyed by id, for path resolution."""
        return {category["id"]: category for category in await self.get_categories()}
