"""
Payment gateway notifications.

Response contract towards the gateway:
- 200 for applied, duplicate, stale and mismatched events (retrying
  cannot change the outcome, so the gateway should stop)
- 401 for a bad signature
- 404 for an unknown order, so the gateway retries later
"""

import logging

from fastapi import APIRouter, Request

from storefront.api.deps import Checkout
from storefront.core.exceptions import InconsistencyError, OrderNotFound
from storefront.schemas.checkout import PaymentEventResponse

logger = logging.getLogger(__name__)
router = APIRouter()


@router.post("/notification", response_model=PaymentEventResponse, include_in_schema=False)
async def payment_notification(request: Request, service: Checkout):
    """Handle a payment status notification from the gateway."""
    body = await request.body()
    notification = service.gateway.parse_notification(body, request.headers)

    logger.info(
        f"Received payment notification for {notification.order_number}: "
        f"{notification.transaction_status}"
    )

    try:
        result = await service.process_payment_notification(notification)
    except OrderNotFound:
        raise
    except InconsistencyError as e:
        logger.warning(f"Payment notification for {notification.order_number} ignored: {e}")
        return PaymentEventResponse(
            status="ignored",
            order_number=notification.order_number,
            outcome=e.code,
            order_status="",
            payment_status="",
            note=e.message,
        )

    return PaymentEventResponse(
        order_number=result.order_number,
        outcome=result.outcome.value,
        order_status=result.order_status,
        payment_status=result.payment_status,
        note=result.note,
    )
