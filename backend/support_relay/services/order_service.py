"""
Order status lookup against the record store.

Version: 1.0.0
"""
import logging
import re
from dataclasses import dataclass
from typing import Optional

from .record_store import AirtableRecordStore, RecordStoreError

logger = logging.getLogger(__name__)

EMAIL_PATTERN = re.compile(r"\b[A-Za-z0-9._%+-]+@[A-Za-z0-9.-]+\.[A-Z|a-z]{2,}\b")
ORDER_NUMBER_PATTERN = re.compile(r"\b(?:order|#)[\s#]*([A-Za-z0-9]+)\b", re.IGNORECASE)

NO_IDENTIFIER_MESSAGE = (
    "I can check your order status! Please provide your order number (like #12345) "
    "or the email address you used when placing your order."
)
NOT_FOUND_MESSAGE = (
    "I couldn't find that order or email in our system. "
    "Please double-check the information or contact us directly."
)


@dataclass
class OrderLookupResult:
    """Outcome of an order status lookup."""
    found: bool
    message: str


class OrderStatusService:
    """Answers order-status questions from customers and orders tables."""

    def __init__(
        self,
        record_store: AirtableRecordStore,
        customers_table: str,
        orders_table: str
    ):
        self.record_store = record_store
        self.customers_table = customers_table
        self.orders_table = orders_table

    async def check_order_status(self, query: str) -> Optional[OrderLookupResult]:
        """
        Look up an order by the email or order number found in query.

        Args:
            query: Visitor message

        Returns:
            Lookup result, or None if the record store is unavailable
        """
        if not self.record_store.is_configured:
            logger.debug("Record store not configured; skipping order lookup")
            return None

        email_match = EMAIL_PATTERN.search(query)
        order_match = ORDER_NUMBER_PATTERN.search(query)

        try:
            if email_match:
                return await self._lookup_by_email(email_match.group(0))
            if order_match:
                return await self._lookup_by_order_number(order_match.group(1))
        except RecordStoreError as e:
            logger.warning(f"Order lookup failed: {e}")
            return None

        return OrderLookupResult(found=False, message=NO_IDENTIFIER_MESSAGE)

    async def _lookup_by_email(self, email: str) -> OrderLookupResult:
        logger.info("Searching customers by email", extra={"search_type": "email"})
        customers = await self.record_store.find_by_field(self.customers_table, "Email", email)
        if not customers:
            return OrderLookupResult(found=False, message=NOT_FOUND_MESSAGE)

        customer = customers[0]
        customer_name = customer.get("fields", {}).get("Name") or "Valued Customer"

        orders = await self.record_store.find_by_field(
            self.orders_table,
            "Customer",
            customer["id"],
            sort_field="Order Date",
            sort_direction="desc",
            max_records=None
        )
        if orders:
            fields = orders[0].get("fields", {})
            return OrderLookupResult(
                found=True,
                message=(
                    f"Hi {customer_name}! I found your order #{fields.get('Order Number')} "
                    f"from {fields.get('Order Date')}. "
                    f"Current status: {fields.get('Status') or 'Processing'}"
                )
            )

        return OrderLookupResult(
            found=True,
            message=(
                f"Hi {customer_name}! I found your account, but no recent orders. "
                "Please contact us if you need assistance."
            )
        )

    async def _lookup_by_order_number(self, order_number: str) -> OrderLookupResult:
        logger.info(f"Searching orders by number {order_number}", extra={"search_type": "order"})
        orders = await self.record_store.find_by_field(
            self.orders_table,
            "Order Number",
            order_number,
            max_records=None
        )
        if not orders:
            return OrderLookupResult(found=False, message=NOT_FOUND_MESSAGE)

        fields = orders[0].get("fields", {})
        return OrderLookupResult(
            found=True,
            message=(
                f"Order #{fields.get('Order Number')} from {fields.get('Order Date')} - "
                f"Status: {fields.get('Status') or 'Processing'}"
            )
        )


__all__ = ['OrderStatusService', 'OrderLookupResult', 'EMAIL_PATTERN', 'ORDER_NUMBER_PATTERN']
