import logging
from typing import List

from fastapi import APIRouter, Query

from storefront.api.deps import Checkout
from storefront.services.checkout_service import DEFAULT_PAGE_SIZE, page_bounds
from storefront.schemas.checkout import (
    AdvanceOrderRequest,
    CancelOrderRequest,
    OrderDetailResponse,
    OrderListResponse,
    OrderResponse,
    RefundOrderRequest,
    StockLogResponse,
)

logger = logging.getLogger(__name__)
router = APIRouter()


@router.get("", response_model=OrderListResponse)
async def list_orders(
    service: Checkout,
    user_id: str = Query(..., min_length=1),
    limit: int = Query(DEFAULT_PAGE_SIZE),
    offset: int = Query(0),
):
    """
    Get a customer's order history, newest first.
    Limits outside 1..50 fall back to 10; negative offsets start at 0.
    """
    limit, offset = page_bounds(limit, offset)
    orders, total = await service.list_orders(user_id, limit=limit, offset=offset)

    return OrderListResponse(
        items=[OrderResponse.model_validate(o) for o in orders],
        total=total,
        limit=limit,
        offset=offset,
    )


@router.get("/{order_number}", response_model=OrderDetailResponse)
async def get_order(order_number: str, service: Checkout):
    """Get order with items and status history."""
    order = await service.get_order(order_number)
    return OrderDetailResponse.model_validate(order)


@router.get("/{order_number}/stock-logs", response_model=List[StockLogResponse])
async def get_order_stock_logs(order_number: str, service: Checkout):
    """Stock ledger entries referencing this order."""
    await service.get_order(order_number)
    logs = await service.get_stock_logs(order_number)
    return [StockLogResponse.model_validate(log) for log in logs]


@router.post("/{order_number}/cancel", response_model=OrderDetailResponse)
async def cancel_order(order_number: str, request: CancelOrderRequest, service: Checkout):
    """Cancel an order that has not shipped yet; stock is restored."""
    await service.cancel(order_number, reason=request.reason)
    order = await service.get_order(order_number)
    return OrderDetailResponse.model_validate(order)


@router.post("/{order_number}/refund", response_model=OrderDetailResponse)
async def refund_order(order_number: str, request: RefundOrderRequest, service: Checkout):
    """Refund a paid order."""
    await service.refund(order_number, reason=request.reason)
    order = await service.get_order(order_number)
    return OrderDetailResponse.model_validate(order)


@router.post("/{order_number}/status", response_model=OrderDetailResponse)
async def advance_order(order_number: str, request: AdvanceOrderRequest, service: Checkout):
    """Move a confirmed order to its next fulfilment status."""
    await service.advance(
        order_number,
        request.status,
        tracking_number=request.tracking_number,
        notes=request.notes,
    )
    order = await service.get_order(order_number)
    return OrderDetailResponse.model_validate(order)
