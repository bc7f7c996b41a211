"""Tests for checkout settlement."""

import asyncio
from uuid import uuid4

import pytest

from comanda.config import Settings
from comanda.errors import ErrorCategory, ErrorKind
from comanda.models.order import InvoiceKind, Order, OrderStatus, PaymentMethod
from comanda.models.payment import BillingDetail, DocumentType
from comanda.services.checkout import CheckoutService
from comanda.services.events import SETTLEMENT_SUCCEEDED
from comanda.services.orders import OrderService
from comanda.state.manager import MemoryStateManager
from comanda.state.orders import OrderRepository
from tests.conftest import FakeClock


async def advance_to(order_service: OrderService, order: Order, *targets: OrderStatus) -> None:
    for target in targets:
        result = await order_service.transition_order(order_id=order.id, target_status=target)
        assert result.success, result.error


def complete_billing(**overrides: object) -> BillingDetail:
    fields = {
        "document_type": DocumentType.NIT,
        "document_number": "900123456-7",
        "legal_name": "Inversiones La Esquina SAS",
        "email": "facturas@laesquina.co",
    }
    fields.update(overrides)
    return BillingDetail(**fields)


@pytest.mark.asyncio
async def test_delivery_settlement_example(
    order_service: OrderService,
    checkout_service: CheckoutService,
    repository: OrderRepository,
    delivery_order: Order,
    clock: FakeClock,
) -> None:
    """30000 subtotal, 7000 delivery and a 10% tip come to 40000."""
    await advance_to(order_service, delivery_order, OrderStatus.READY)
    clock.advance(minutes=30)

    result = await checkout_service.settle_order(
        order_id=delivery_order.id,
        operator_id="cashier-1",
        payment_method=PaymentMethod.CASH,
        tip_percentage=10,
    )

    assert result.success is True, result.error
    receipt = result.value
    assert receipt.final_total == 40000
    assert receipt.payment.amount == 40000
    assert receipt.payment.tip == 3000
    assert receipt.tip_registered is True
    assert receipt.requires_printing is False
    assert result.warnings == []

    stored = await repository.get(delivery_order.id)
    assert stored.status == OrderStatus.DELIVERED
    assert stored.payment_method == PaymentMethod.CASH
    assert stored.payment_id == receipt.payment.id
    assert stored.tip == 3000
    assert stored.delivered_at == clock.now

    payment = await repository.get_payment(receipt.payment.id)
    assert payment is not None
    assert payment.operator_id == "cashier-1"

    tip = await repository.get_tip(receipt.payment.id)
    assert tip.amount == 3000
    assert tip.percentage == 10


@pytest.mark.asyncio
async def test_concurrent_settlements_charge_once(
    order_service: OrderService,
    checkout_service: CheckoutService,
    repository: OrderRepository,
    dine_in_order: Order,
) -> None:
    await advance_to(order_service, dine_in_order, OrderStatus.READY)

    results = await asyncio.gather(
        checkout_service.settle_order(
            order_id=dine_in_order.id, operator_id="cashier-1", payment_method="cash"
        ),
        checkout_service.settle_order(
            order_id=dine_in_order.id, operator_id="cashier-2", payment_method="card"
        ),
    )

    succeeded = [r for r in results if r.success]
    failed = [r for r in results if not r.success]
    assert len(succeeded) == 1
    assert len(failed) == 1
    assert failed[0].error_kind == ErrorKind.ALREADY_SETTLED
    assert failed[0].error_category == ErrorCategory.CONFLICT

    stored = await repository.get(dine_in_order.id)
    assert stored.payment_id == succeeded[0].value.payment.id
    assert await repository.get_payment(succeeded[0].value.payment.id) is not None


@pytest.mark.asyncio
async def test_second_settlement_is_rejected(
    order_service: OrderService,
    checkout_service: CheckoutService,
    dine_in_order: Order,
) -> None:
    await advance_to(order_service, dine_in_order, OrderStatus.READY)

    first = await checkout_service.settle_order(
        order_id=dine_in_order.id, operator_id="cashier-1", payment_method="transfer"
    )
    second = await checkout_service.settle_order(
        order_id=dine_in_order.id, operator_id="cashier-1", payment_method="transfer"
    )

    assert first.success is True
    assert second.error_kind == ErrorKind.ALREADY_SETTLED


@pytest.mark.asyncio
async def test_invoice_requires_email(
    order_service: OrderService,
    checkout_service: CheckoutService,
    dine_in_order: Order,
) -> None:
    await advance_to(order_service, dine_in_order, OrderStatus.READY)

    rejected = await checkout_service.settle_order(
        order_id=dine_in_order.id,
        operator_id="cashier-1",
        payment_method="card",
        invoice_kind="invoice",
        billing_detail=complete_billing(email=""),
    )
    accepted = await checkout_service.settle_order(
        order_id=dine_in_order.id,
        operator_id="cashier-1",
        payment_method="card",
        invoice_kind="invoice",
        billing_detail=complete_billing(),
    )

    assert rejected.error_kind == ErrorKind.INCOMPLETE_INVOICE_DATA
    assert rejected.details["missing"] == ["email"]
    assert accepted.success is True
    assert accepted.value.requires_printing is True
    assert accepted.value.order.invoice_kind == InvoiceKind.INVOICE


@pytest.mark.asyncio
async def test_invoice_without_billing_detail(
    order_service: OrderService,
    checkout_service: CheckoutService,
    dine_in_order: Order,
) -> None:
    await advance_to(order_service, dine_in_order, OrderStatus.READY)

    result = await checkout_service.settle_order(
        order_id=dine_in_order.id,
        operator_id="cashier-1",
        payment_method="card",
        invoice_kind=InvoiceKind.INVOICE,
    )

    assert result.error_kind == ErrorKind.INCOMPLETE_INVOICE_DATA


@pytest.mark.asyncio
async def test_receipt_needs_no_billing_detail(
    order_service: OrderService,
    checkout_service: CheckoutService,
    dine_in_order: Order,
) -> None:
    await advance_to(order_service, dine_in_order, OrderStatus.READY)

    result = await checkout_service.settle_order(
        order_id=dine_in_order.id,
        operator_id="cashier-1",
        payment_method="cash",
        invoice_kind="receipt",
    )

    assert result.success is True
    assert result.value.requires_printing is True


@pytest.mark.asyncio
async def test_checks_run_in_order(
    order_service: OrderService,
    checkout_service: CheckoutService,
    dine_in_order: Order,
) -> None:
    missing_operator = await checkout_service.settle_order(
        order_id=uuid4(), operator_id="", payment_method="bitcoin"
    )
    missing_order = await checkout_service.settle_order(
        order_id=uuid4(), operator_id="cashier-1", payment_method="bitcoin"
    )
    not_ready = await checkout_service.settle_order(
        order_id=dine_in_order.id, operator_id="cashier-1", payment_method="bitcoin"
    )

    await advance_to(order_service, dine_in_order, OrderStatus.READY)

    bad_method = await checkout_service.settle_order(
        order_id=dine_in_order.id,
        operator_id="cashier-1",
        payment_method="bitcoin",
        invoice_kind="invoice",
        tip=-5,
    )
    bad_billing = await checkout_service.settle_order(
        order_id=dine_in_order.id,
        operator_id="cashier-1",
        payment_method="cash",
        invoice_kind="invoice",
        tip=-5,
    )
    bad_tip = await checkout_service.settle_order(
        order_id=dine_in_order.id,
        operator_id="cashier-1",
        payment_method="cash",
        tip=-5,
    )

    assert missing_operator.error_kind == ErrorKind.MISSING_OPERATOR
    assert missing_order.error_kind == ErrorKind.NOT_FOUND
    assert not_ready.error_kind == ErrorKind.ILLEGAL_TRANSITION
    assert bad_method.error_kind == ErrorKind.INVALID_PAYMENT_METHOD
    assert bad_billing.error_kind == ErrorKind.INCOMPLETE_INVOICE_DATA
    assert bad_tip.error_kind == ErrorKind.INVALID_TIP


@pytest.mark.asyncio
async def test_cancelled_order_cannot_be_charged(
    order_service: OrderService,
    checkout_service: CheckoutService,
    dine_in_order: Order,
) -> None:
    await order_service.cancel_order(order_id=dine_in_order.id)

    result = await checkout_service.settle_order(
        order_id=dine_in_order.id, operator_id="cashier-1", payment_method="cash"
    )

    assert result.error_kind == ErrorKind.ILLEGAL_TRANSITION


@pytest.mark.asyncio
async def test_delivery_order_charged_on_arrival(
    order_service: OrderService,
    checkout_service: CheckoutService,
    delivery_order: Order,
) -> None:
    await advance_to(order_service, delivery_order, OrderStatus.READY, OrderStatus.EN_ROUTE)

    en_route = await checkout_service.settle_order(
        order_id=delivery_order.id, operator_id="courier-3", payment_method="cash"
    )
    await advance_to(order_service, delivery_order, OrderStatus.ARRIVED)
    arrived = await checkout_service.settle_order(
        order_id=delivery_order.id, operator_id="courier-3", payment_method="cash"
    )

    assert en_route.error_kind == ErrorKind.ILLEGAL_TRANSITION
    assert arrived.success is True
    assert arrived.value.final_total == 37000
    assert arrived.value.order.status == OrderStatus.DELIVERED


@pytest.mark.asyncio
async def test_simplified_mode_charges_open_orders(
    state_manager: MemoryStateManager,
    order_service: OrderService,
    dine_in_order: Order,
    clock: FakeClock,
) -> None:
    checkout = CheckoutService(
        state_manager,
        settings=Settings(_env_file=None, settlement_mode="simplified"),
        clock=clock,
    )

    result = await checkout.settle_order(
        order_id=dine_in_order.id, operator_id="cashier-1", payment_method="cash", tip=1500
    )

    assert result.success is True
    assert result.value.final_total == 31500


@pytest.mark.asyncio
async def test_tip_failure_does_not_undo_charge(
    order_service: OrderService,
    checkout_service: CheckoutService,
    repository: OrderRepository,
    dine_in_order: Order,
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    await advance_to(order_service, dine_in_order, OrderStatus.READY)

    async def unavailable(*args: object, **kwargs: object) -> bool:
        raise ConnectionError("connection reset")

    monkeypatch.setattr(checkout_service.repository, "add_tip", unavailable)

    result = await checkout_service.settle_order(
        order_id=dine_in_order.id, operator_id="cashier-1", payment_method="card", tip=2000
    )

    assert result.success is True
    assert result.value.tip_registered is False
    assert len(result.warnings) == 1

    stored = await repository.get(dine_in_order.id)
    assert stored.status == OrderStatus.DELIVERED
    assert stored.tip == 2000
    assert await repository.get_tip(result.value.payment.id) is None


@pytest.mark.asyncio
async def test_settlement_publishes_signals(
    order_service: OrderService,
    checkout_service: CheckoutService,
    state_manager: MemoryStateManager,
    dine_in_order: Order,
) -> None:
    await advance_to(order_service, dine_in_order, OrderStatus.READY)
    state_manager.published.clear()

    await checkout_service.settle_order(
        order_id=dine_in_order.id, operator_id="cashier-1", payment_method="cash"
    )

    events = [message["event"] for _, message in state_manager.published]
    assert SETTLEMENT_SUCCEEDED in events

    history = await order_service.get_order_history(order_id=dine_in_order.id)
    assert history.value[-1].to_status == OrderStatus.DELIVERED
    assert history.value[-1].operator_id == "cashier-1"


@pytest.mark.asyncio
async def test_register_tip_once_per_payment(
    order_service: OrderService,
    checkout_service: CheckoutService,
    repository: OrderRepository,
    dine_in_order: Order,
) -> None:
    await advance_to(order_service, dine_in_order, OrderStatus.READY)
    settled = await checkout_service.settle_order(
        order_id=dine_in_order.id, operator_id="cashier-1", payment_method="cash"
    )
    payment_id = settled.value.payment.id

    first = await checkout_service.register_tip(payment_id=payment_id, amount=2000)
    second = await checkout_service.register_tip(payment_id=payment_id, amount=500)

    assert first.success is True
    assert first.value.amount == 2000
    assert second.error_kind == ErrorKind.TIP_ALREADY_REGISTERED

    order = await repository.get(dine_in_order.id)
    payment = await repository.get_payment(payment_id)
    assert order.tip == 2000
    assert payment.tip == 2000
    assert payment.amount == 32000


@pytest.mark.asyncio
async def test_late_tip_must_match_the_charged_tip(
    order_service: OrderService,
    checkout_service: CheckoutService,
    repository: OrderRepository,
    dine_in_order: Order,
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    await advance_to(order_service, dine_in_order, OrderStatus.READY)
    async def unavailable(*args: object, **kwargs: object) -> bool:
        raise ConnectionError("connection reset")

    monkeypatch.setattr(checkout_service.repository, "add_tip", unavailable)
    settled = await checkout_service.settle_order(
        order_id=dine_in_order.id, operator_id="cashier-1", payment_method="card", tip=2000
    )
    monkeypatch.undo()
    payment_id = settled.value.payment.id

    different = await checkout_service.register_tip(payment_id=payment_id, amount=9999)
    retried = await checkout_service.register_tip(payment_id=payment_id, amount=2000)

    assert different.error_kind == ErrorKind.INVALID_TIP
    assert retried.success is True
    payment = await repository.get_payment(payment_id)
    assert (payment.tip, payment.amount) == (2000, 32000)
    assert (await repository.get(dine_in_order.id)).tip == 2000


@pytest.mark.asyncio
async def test_concurrent_late_tips_record_once(
    order_service: OrderService,
    checkout_service: CheckoutService,
    repository: OrderRepository,
    dine_in_order: Order,
) -> None:
    await advance_to(order_service, dine_in_order, OrderStatus.READY)
    settled = await checkout_service.settle_order(
        order_id=dine_in_order.id, operator_id="cashier-1", payment_method="cash"
    )
    payment_id = settled.value.payment.id

    results = await asyncio.gather(
        checkout_service.register_tip(payment_id=payment_id, amount=1000),
        checkout_service.register_tip(payment_id=payment_id, amount=3000),
    )

    assert sorted(r.success for r in results) == [False, True]
    winner = next(r for r in results if r.success).value
    payment = await repository.get_payment(payment_id)
    assert payment.tip == winner.amount
    assert payment.amount == 30000 + winner.amount
    assert (await repository.get(dine_in_order.id)).tip == winner.amount
    assert (await repository.get_tip(payment_id)).amount == winner.amount


@pytest.mark.asyncio
async def test_register_tip_validation(checkout_service: CheckoutService) -> None:
    unknown = await checkout_service.register_tip(payment_id=uuid4(), amount=1000)

    assert unknown.error_kind == ErrorKind.NOT_FOUND
