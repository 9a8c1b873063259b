"""
Product catalog and system prompt generation.
Prices come from the record store products table and are cached in process.

Version: 1.0.0
"""
import logging
import time
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from cachetools import TTLCache

from .record_store import AirtableRecordStore, RecordStoreError

logger = logging.getLogger(__name__)

PACKAGE_NAME_MARKERS = ("Package", "Starter", "Popular", "Dusty Rose", "Eternal")

FALLBACK_PRICING = """
📦 FALLBACK PRICING (Airtable unavailable):
- Standard photos: $0.50 each
- Large photos (8x10+): $1.00 each
- Slides/negatives: $0.75 each
- VHS/VHS-C: $25 per tape
- 8mm/Hi8/Digital8: $30 per tape
- MiniDV: $20 per tape
- Film reels (8mm/16mm): $40-80 per reel

⚠️ Note: Please check our website for most current pricing.
"""

SYSTEM_PROMPT_TEMPLATE = """You are Helena, the helpful AI assistant for Heritagebox - a professional media digitization service.

You help customers with:
- Pricing quotes for photo scanning, video transfer, film digitization
- Project status updates and order tracking
- Service information and turnaround times
- Technical questions about digitization processes

Be friendly, professional, and knowledgeable. Always try to provide specific, helpful information.

{pricing}

Current turnaround times:
- Standard processing: 2-3 weeks
- Express processing: 1 week (+$50)
- Rush processing: 3-5 days (+$100)
- Large projects may take longer

IMPORTANT INSTRUCTIONS:
- Always use the current pricing information provided above
- When customers ask about packages, explain our main offerings: Starter, Popular, Dusty Rose, and Eternal packages
- Mention that we offer various add-ons like USB drives, online galleries, photo restoration, etc.
- For specific order status, ask for order number, email, or customer details
- Be helpful, professional, and encourage customers to visit our website for full package details

If pricing information seems unavailable, direct customers to check our website or contact us directly for the most current rates."""


@dataclass
class Product:
    """Catalog entry."""
    id: str
    name: str
    description: str = ""
    price: float = 0
    sku: str = ""
    stock_quantity: int = 0
    category: str = "General"
    features: str = ""

    @classmethod
    def from_record(cls, record: Dict[str, Any]) -> 'Product':
        fields = record.get("fields", {})
        return cls(
            id=record.get("id", ""),
            name=fields.get("Product Name") or "Unknown Product",
            description=fields.get("Description") or "",
            price=fields.get("Price") or 0,
            sku=fields.get("SKU") or "",
            stock_quantity=fields.get("Stock Quantity") or 0,
            category=fields.get("Category") or "General",
            features=fields.get("Features") or ""
        )

    @property
    def display_price(self) -> str:
        if float(self.price).is_integer():
            return f"${int(self.price)}"
        return f"${self.price}"


class ProductCatalog:
    """
    Cached view of the products table.

    A fresh copy is kept for cache_ttl seconds. When a refresh fails the
    last successful copy is served, however old.
    """

    CACHE_KEY = "products"

    def __init__(
        self,
        record_store: AirtableRecordStore,
        products_table: str,
        cache_ttl: int = 300
    ):
        self.record_store = record_store
        self.products_table = products_table
        self._cache: TTLCache = TTLCache(maxsize=1, ttl=cache_ttl)
        self._last_known: Optional[List[Product]] = None
        self._last_fetched_at: Optional[float] = None

    async def _fetch(self) -> Optional[List[Product]]:
        if not self.record_store.is_configured:
            logger.info("Record store not configured; product catalog unavailable")
            return None

        try:
            records = await self.record_store.list_records(
                self.products_table,
                sort_field="Price",
                sort_direction="asc"
            )
        except RecordStoreError as e:
            logger.warning(f"Failed to fetch products: {e}")
            return None

        products = [Product.from_record(record) for record in records]
        logger.info(f"Fetched {len(products)} products")
        return products

    async def get_products(self) -> Optional[List[Product]]:
        """
        Get products, fresh from cache, refreshed, or stale.

        Returns:
            Products sorted by price, or None if never available
        """
        cached = self._cache.get(self.CACHE_KEY)
        if cached is not None:
            logger.debug("Products cache hit")
            return cached

        products = await self._fetch()
        if products is not None:
            self._cache[self.CACHE_KEY] = products
            self._last_known = products
            self._last_fetched_at = time.time()
            return products

        if self._last_known is not None:
            age = time.time() - (self._last_fetched_at or 0)
            logger.warning(f"Serving stale product catalog (age: {age:.0f}s)")
            return self._last_known

        return None

    async def build_system_prompt(self) -> str:
        """System prompt embedding current pricing."""
        products = await self.get_products()
        return SYSTEM_PROMPT_TEMPLATE.format(pricing=format_pricing(products))


def _is_package(product: Product) -> bool:
    return product.category == "Package" or any(m in product.name for m in PACKAGE_NAME_MARKERS)


def _is_add_on(product: Product) -> bool:
    return product.category == "Add-on" or "Add-on" in product.name


def _is_service(product: Product) -> bool:
    return product.category == "Service" or "Speed" in product.name


def format_pricing(products: Optional[List[Product]]) -> str:
    """
    Pricing section of the system prompt.

    Args:
        products: Catalog, or None/empty when unavailable

    Returns:
        Grouped price list, or fixed fallback pricing
    """
    if not products:
        return FALLBACK_PRICING

    packages = [p for p in products if _is_package(p)]
    add_ons = [p for p in products if _is_add_on(p)]
    services = [p for p in products if _is_service(p)]
    grouped = {id(p) for p in packages + add_ons + services}
    others = [p for p in products if id(p) not in grouped]

    lines: List[str] = []

    if packages:
        lines.append("\n📦 CURRENT DIGITIZATION PACKAGES:")
        for product in packages:
            line = f"- {product.name}: {product.display_price}"
            if product.features:
                line += f" ({product.features})"
            if product.description and product.description != product.name:
                line += f" - {product.description}"
            lines.append(line)

    for title, group in (
        ("🔧 ADD-ON SERVICES:", add_ons),
        ("⚡ SPEED OPTIONS:", services),
        ("📋 OTHER SERVICES:", others)
    ):
        if not group:
            continue
        lines.append(f"\n{title}")
        for product in group:
            line = f"- {product.name}: {product.display_price}"
            if product.description:
                line += f" - {product.description}"
            lines.append(line)

    lines.append(
        "\n💡 NOTE: All pricing is current as of today. "
        "Packages may include multiple services and bulk discounts."
    )
    return "\n".join(lines) + "\n"


__all__ = ['ProductCatalog', 'Product', 'format_pricing', 'FALLBACK_PRICING']
