"""API routes for order fulfillment and checkout."""

from typing import Any
from uuid import UUID

from fastapi import APIRouter, Depends, Header, HTTPException, Response, status
from pydantic import BaseModel, Field

from comanda.errors import ErrorCategory
from comanda.models.customer import CustomerProfile
from comanda.models.delivery import DeliveryQuote, Location
from comanda.models.history import StatusChange
from comanda.models.order import (
    CustomerInfo,
    Order,
    OrderItem,
    OrderStatus,
    OrderStatusSnapshot,
    OrderType,
)
from comanda.models.payment import BillingDetail, SettlementReceipt, TipRecord
from comanda.services.checkout import CheckoutService
from comanda.services.orders import OrderService
from comanda.services.results import ServiceResult
from comanda.state.manager import StateBackend, get_state_manager
from comanda.utils.logging import get_logger

logger = get_logger(__name__)

router = APIRouter()

STATUS_BY_CATEGORY = {
    ErrorCategory.VALIDATION: 422,
    ErrorCategory.NOT_FOUND: 404,
    ErrorCategory.CONFLICT: 409,
    ErrorCategory.COVERAGE: 422,
    ErrorCategory.TRANSIENT: 503,
    ErrorCategory.UNEXPECTED: 500,
}


# Request/Response Models


class CreateOrderRequest(BaseModel):
    """Request to take a new order."""

    order_type: OrderType
    items: list[OrderItem]
    delivery_quote: DeliveryQuote | None = None
    customer: CustomerInfo | None = None


class TransitionRequest(BaseModel):
    """Request to move an order to its next status."""

    target_status: OrderStatus


class CancelRequest(BaseModel):
    reason: str | None = None


class SettlementRequest(BaseModel):
    """
    Request to charge an order.

    Payment method and invoice kind are taken as plain strings so that an
    unknown value is reported by the checkout checks in their usual order.
    """

    payment_method: str | None = None
    invoice_kind: str = "none"
    billing_detail: BillingDetail | None = None
    tip: int | None = None
    tip_percentage: float | None = None


class TipRequest(BaseModel):
    amount: int
    percentage: float | None = None


class CustomerRequest(BaseModel):
    name: str
    address: str | None = None
    lat: float | None = Field(default=None, ge=-90, le=90)
    lng: float | None = Field(default=None, ge=-180, le=180)


class OrderResponse(BaseModel):
    """An order plus any best-effort follow-up warnings."""

    order: Order
    warnings: list[str] = []


class SettlementResponse(BaseModel):
    receipt: SettlementReceipt
    warnings: list[str] = []


# Dependencies


async def get_state_backend() -> StateBackend:
    """Get the shared state backend."""
    return await get_state_manager()


async def get_order_service(
    state_manager: StateBackend = Depends(get_state_backend),
) -> OrderService:
    return OrderService(state_manager)


async def get_checkout_service(
    state_manager: StateBackend = Depends(get_state_backend),
) -> CheckoutService:
    return CheckoutService(state_manager)


def unwrap(result: ServiceResult) -> Any:
    """Return the result value or raise the matching HTTP error."""
    if result.success:
        return result.value

    category = result.error_category or ErrorCategory.UNEXPECTED
    detail: dict[str, Any] = {
        "kind": result.error_kind.value if result.error_kind else None,
        "message": result.error,
    }
    if result.details:
        detail["details"] = result.details
    if result.log_reference:
        detail["log_reference"] = result.log_reference

    logger.info("request_rejected", kind=detail["kind"], category=category.value)
    raise HTTPException(status_code=STATUS_BY_CATEGORY[category], detail=detail)


# Delivery


@router.post("/delivery/quote", response_model=DeliveryQuote)
async def quote_delivery(
    location: Location,
    orders: OrderService = Depends(get_order_service),
) -> DeliveryQuote:
    """Quote the delivery fee to a coordinate."""
    return unwrap(await orders.quote_delivery(location=location))


# Orders


@router.post(
    "/orders",
    response_model=OrderResponse,
    status_code=status.HTTP_201_CREATED,
)
async def create_order(
    request: CreateOrderRequest,
    orders: OrderService = Depends(get_order_service),
) -> OrderResponse:
    """Take a new order."""
    result = await orders.create_order(
        items=request.items,
        order_type=request.order_type,
        delivery_quote=request.delivery_quote,
        customer=request.customer,
    )
    return OrderResponse(order=unwrap(result), warnings=result.warnings)


@router.get("/orders/{order_id}", response_model=Order)
async def get_order(
    order_id: UUID,
    orders: OrderService = Depends(get_order_service),
) -> Order:
    """Get order details."""
    return unwrap(await orders.get_order(order_id=order_id))


@router.post("/orders/{order_id}/transitions", response_model=OrderResponse)
async def transition_order(
    order_id: UUID,
    request: TransitionRequest,
    operator_id: str | None = Header(default=None, alias="X-Operator-Id"),
    orders: OrderService = Depends(get_order_service),
) -> OrderResponse:
    """Advance an order to its next status."""
    result = await orders.transition_order(
        order_id=order_id,
        target_status=request.target_status,
        operator_id=operator_id,
    )
    return OrderResponse(order=unwrap(result), warnings=result.warnings)


@router.post("/orders/{order_id}/cancel", response_model=OrderResponse)
async def cancel_order(
    order_id: UUID,
    request: CancelRequest = CancelRequest(),
    operator_id: str | None = Header(default=None, alias="X-Operator-Id"),
    orders: OrderService = Depends(get_order_service),
) -> OrderResponse:
    """Cancel an order inside its cancellation window."""
    result = await orders.cancel_order(
        order_id=order_id,
        reason=request.reason,
        operator_id=operator_id,
    )
    return OrderResponse(order=unwrap(result), warnings=result.warnings)


@router.delete("/orders/{order_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_order(
    order_id: UUID,
    orders: OrderService = Depends(get_order_service),
) -> Response:
    """Delete an order that is still taken."""
    unwrap(await orders.delete_order(order_id=order_id))
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get("/orders/{order_id}/status", response_model=OrderStatusSnapshot)
async def poll_order_status(
    order_id: UUID,
    orders: OrderService = Depends(get_order_service),
) -> OrderStatusSnapshot:
    """Status snapshot for customer tracking screens."""
    return unwrap(await orders.poll_order_status(order_id=order_id))


@router.get("/orders/{order_id}/history", response_model=list[StatusChange])
async def get_order_history(
    order_id: UUID,
    orders: OrderService = Depends(get_order_service),
) -> list[StatusChange]:
    return unwrap(await orders.get_order_history(order_id=order_id))


# Checkout


@router.post("/orders/{order_id}/settlement", response_model=SettlementResponse)
async def settle_order(
    order_id: UUID,
    request: SettlementRequest,
    operator_id: str | None = Header(default=None, alias="X-Operator-Id"),
    checkout: CheckoutService = Depends(get_checkout_service),
) -> SettlementResponse:
    """
    Charge an order.

    The order is marked delivered by the same write that records the
    payment. Tip registration problems come back as warnings.
    """
    result = await checkout.settle_order(
        order_id=order_id,
        operator_id=operator_id,
        payment_method=request.payment_method,
        invoice_kind=request.invoice_kind,
        billing_detail=request.billing_detail,
        tip=request.tip,
        tip_percentage=request.tip_percentage,
    )
    return SettlementResponse(receipt=unwrap(result), warnings=result.warnings)


@router.post(
    "/payments/{payment_id}/tip",
    response_model=TipRecord,
    status_code=status.HTTP_201_CREATED,
)
async def register_tip(
    payment_id: UUID,
    request: TipRequest,
    checkout: CheckoutService = Depends(get_checkout_service),
) -> TipRecord:
    """Register the tip for a payment."""
    return unwrap(
        await checkout.register_tip(
            payment_id=payment_id,
            amount=request.amount,
            percentage=request.percentage,
        )
    )


# Customers


@router.get("/customers/{phone}/active-order", response_model=Order)
async def find_active_order(
    phone: str,
    orders: OrderService = Depends(get_order_service),
) -> Order:
    """Newest open order placed with a phone number."""
    return unwrap(await orders.find_active_order_by_phone(phone=phone))


@router.put("/customers/{phone}", response_model=CustomerProfile)
async def remember_customer(
    phone: str,
    request: CustomerRequest,
    orders: OrderService = Depends(get_order_service),
) -> CustomerProfile:
    try:
        profile = CustomerProfile(phone=phone, **request.model_dump())
    except ValueError as e:
        raise HTTPException(
            status_code=STATUS_BY_CATEGORY[ErrorCategory.VALIDATION],
            detail={"kind": "invalid_customer", "message": str(e)},
        ) from e
    return unwrap(await orders.remember_customer(profile=profile))


@router.get("/customers/{phone}", response_model=CustomerProfile)
async def get_customer(
    phone: str,
    orders: OrderService = Depends(get_order_service),
) -> CustomerProfile:
    return unwrap(await orders.get_customer(phone=phone))
