"""
Payment processor client (Square Payments API).

Version: 1.0.0
"""
import logging
import uuid
from typing import Any, Dict, List, Optional

from .exceptions import ExternalServiceError, ServiceNotConfiguredError
from .http_client import BaseAPIClient

logger = logging.getLogger(__name__)


class PaymentError(ExternalServiceError):
    """Payment call failed."""
    pass


class PaymentNotConfiguredError(PaymentError):
    """Access token, location or API URL missing."""
    pass


class PaymentDeclinedError(PaymentError):
    """Processor rejected the payment; detail is safe to show."""

    def __init__(self, detail: str, errors: Optional[List[Dict[str, Any]]] = None, **kwargs):
        super().__init__(detail, **kwargs)
        self.detail = detail
        self.errors = errors or []


def first_error_detail(payload: Any) -> str:
    """Detail or code of the first processor error."""
    errors = payload.get("errors") if isinstance(payload, dict) else None
    if errors:
        first = errors[0]
        return first.get("detail") or first.get("code") or "Payment failed"
    return "Payment failed"


class SquarePaymentClient(BaseAPIClient):
    """
    Captures card payments.

    Every logical payment attempt carries its own idempotency key; the key
    is reused when the transport layer retries that attempt, so a retry
    can never charge twice.
    """

    service_name = "square"

    def __init__(
        self,
        access_token: Optional[str],
        location_id: Optional[str],
        base_url: Optional[str],
        api_version: str = "2024-02-15",
        currency: str = "USD",
        **client_options
    ):
        super().__init__(base_url or "", **client_options)
        self.access_token = access_token
        self.location_id = location_id
        self.api_version = api_version
        self.currency = currency

    @property
    def is_configured(self) -> bool:
        """Status lookups need no location id; payments check it separately."""
        return bool(self.access_token and self.base_url)

    def _default_headers(self) -> Dict[str, str]:
        return {
            "Square-Version": self.api_version,
            "Authorization": f"Bearer {self.access_token}",
            "Content-Type": "application/json"
        }

    async def create_payment(
        self,
        source_token: str,
        amount_minor_units: int,
        note: str,
        idempotency_key: Optional[str] = None
    ) -> Dict[str, Any]:
        """
        Create and complete a payment.

        Args:
            source_token: Card nonce from the web payments SDK
            amount_minor_units: Amount in cents
            note: Payment note
            idempotency_key: Key for this attempt (generated when omitted)

        Returns:
            Payment object

        Raises:
            PaymentNotConfiguredError: If credentials are missing
            PaymentDeclinedError: If the processor rejected the request
            PaymentError: On any other failure
        """
        if not self.is_configured or not self.location_id:
            raise PaymentNotConfiguredError("Payment service not configured properly")

        idempotency_key = idempotency_key or str(uuid.uuid4())
        body = {
            "source_id": source_token,
            "amount_money": {
                "amount": amount_minor_units,
                "currency": self.currency
            },
            "location_id": self.location_id,
            "idempotency_key": idempotency_key,
            "note": note,
            "autocomplete": True
        }

        logger.info(
            f"Creating payment of {amount_minor_units} {self.currency}",
            extra={"idempotency_key": idempotency_key, "amount": amount_minor_units}
        )

        try:
            result = await self._make_api_request(
                "POST",
                "/v2/payments",
                operation="create_payment",
                json_data=body
            )
        except ExternalServiceError as e:
            if e.status_code and 400 <= e.status_code < 500:
                errors = e.payload.get("errors") if isinstance(e.payload, dict) else None
                raise PaymentDeclinedError(
                    first_error_detail(e.payload),
                    errors=errors,
                    status_code=e.status_code,
                    payload=e.payload
                ) from e
            raise PaymentError(str(e), status_code=e.status_code, payload=e.payload) from e

        payment = result.get("payment")
        if not payment:
            raise PaymentError("Payment object not returned from Square", payload=result)

        logger.info(
            f"Payment {payment.get('id')} processed with status {payment.get('status')}",
            extra={"payment_id": payment.get("id"), "payment_status": payment.get("status")}
        )
        return payment

    async def get_payment(self, payment_id: str) -> Dict[str, Any]:
        """
        Fetch a payment.

        Args:
            payment_id: Payment id

        Returns:
            Payment object

        Raises:
            PaymentNotConfiguredError: If credentials are missing
            PaymentError: With the processor's status code on failure
        """
        if not self.is_configured:
            raise PaymentNotConfiguredError("Payment service not configured")

        try:
            result = await self._make_api_request(
                "GET",
                f"/v2/payments/{payment_id}",
                operation="get_payment"
            )
        except ServiceNotConfiguredError as e:
            raise PaymentNotConfiguredError(str(e)) from e
        except ExternalServiceError as e:
            raise PaymentError(str(e), status_code=e.status_code, payload=e.payload) from e

        return result.get("payment") or {}


__all__ = [
    'SquarePaymentClient',
    'PaymentError',
    'PaymentNotConfiguredError',
    'PaymentDeclinedError',
    'first_error_detail'
]
