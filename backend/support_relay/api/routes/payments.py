"""
Payment API routes.
"""
from fastapi import APIRouter, Depends, HTTPException, Query
from typing import Optional
import logging

from ...models.schemas import PaymentRequest, PaymentResponse
from ...services import (
    PaymentDeclinedError,
    PaymentError,
    PaymentNotConfiguredError,
    SquarePaymentClient
)
from ...utils.telemetry import metrics_collector, track_payment
from ..dependencies import get_payment_client

logger = logging.getLogger(__name__)

router = APIRouter()

DEFAULT_PAYMENT_NOTE = "Heritage Box Order"


def payment_note(order_details: Optional[dict]) -> str:
    """Note shown on the processor dashboard."""
    if order_details:
        return f"{order_details.get('package')} Package"
    return DEFAULT_PAYMENT_NOTE


@router.post("/process-payment", response_model=PaymentResponse)
async def process_payment(
    request: PaymentRequest,
    payments: SquarePaymentClient = Depends(get_payment_client)
):
    """
    Capture a card payment.

    Declines answer 400 with the processor's detail so the visitor can
    act on it; configuration problems answer 500.
    """
    if not request.token or not request.amount:
        raise HTTPException(status_code=400, detail="Missing required fields")

    try:
        payment = await payments.create_payment(
            source_token=request.token,
            amount_minor_units=round(request.amount * 100),
            note=payment_note(request.order_details)
        )

    except PaymentNotConfiguredError as e:
        logger.error(f"Payment rejected: {e}")
        track_payment("not_configured")
        raise HTTPException(status_code=500, detail="Payment service not configured properly")
    except PaymentDeclinedError as e:
        logger.warning(f"Payment declined: {e.detail}", extra={"status_code": e.status_code})
        track_payment("declined")
        raise HTTPException(status_code=400, detail=e.detail)
    except PaymentError as e:
        logger.error(f"Payment failed: {e}", extra={"status_code": e.status_code})
        track_payment("error")
        metrics_collector.record_error()
        raise HTTPException(status_code=500, detail="Payment processing failed")

    status = payment.get("status")
    if status != "COMPLETED":
        logger.warning(
            f"Unexpected payment status: {status}",
            extra={"payment_id": payment.get("id"), "payment_status": status}
        )
        track_payment("unexpected_status")
        raise HTTPException(status_code=400, detail=f"Unexpected payment status: {status}")

    track_payment("completed")
    return PaymentResponse(success=True, payment=payment)


@router.get("/payment-status", response_model=PaymentResponse)
async def payment_status(
    payment_id: Optional[str] = Query(None, alias="paymentId"),
    payments: SquarePaymentClient = Depends(get_payment_client)
):
    """Look up a payment by id."""
    if not payment_id:
        raise HTTPException(status_code=400, detail="Missing paymentId")

    try:
        payment = await payments.get_payment(payment_id)

    except PaymentNotConfiguredError:
        raise HTTPException(status_code=500, detail="Payment service not configured")
    except PaymentError as e:
        logger.warning(f"Payment status lookup failed: {e}", extra={"payment_id": payment_id})
        raise HTTPException(status_code=e.status_code or 500, detail="Failed to get payment status")

    return PaymentResponse(success=True, payment=payment)
