"""Checkout settlement: charge an order and close it in one step."""

from uuid import UUID

from comanda.config import Settings, get_settings
from comanda.core.tips import fixed_tip, implied_percentage, percentage_tip
from comanda.errors import (
    AlreadySettled,
    ConcurrentUpdate,
    IllegalTransition,
    IncompleteInvoiceData,
    InvalidPaymentMethod,
    InvalidTip,
    MissingOperator,
    OrderNotFound,
    TipAlreadyRegistered,
)
from comanda.models.history import StatusChange
from comanda.models.order import (
    InvoiceKind,
    Order,
    OrderStatus,
    OrderType,
    PaymentMethod,
    utcnow,
)
from comanda.models.payment import BillingDetail, Payment, SettlementReceipt, TipRecord
from comanda.services.events import (
    ORDERS_RELOAD,
    SETTLEMENT_SUCCEEDED,
    EventPublisher,
    record_status_change,
)
from comanda.services.orders import Clock
from comanda.services.results import ServiceResult, service_boundary
from comanda.state.manager import StateBackend
from comanda.state.orders import OrderRepository
from comanda.state.workflow import OrderTransitions
from comanda.utils.logging import OperationLogger
from comanda.utils.tracing import OperationTracer


class CheckoutService:
    """
    Settles orders at the cashier.

    The paid fields, the delivered status and the Payment record are written
    by one conditional statement guarded on the status the checks ran
    against, so two cashiers charging the same order cannot both succeed.
    Tip registration, history and UI signals follow as best-effort steps.
    """

    def __init__(
        self,
        state_manager: StateBackend,
        settings: Settings | None = None,
        clock: Clock | None = None,
        publisher: EventPublisher | None = None,
    ):
        self.settings = settings or get_settings()
        self.clock = clock or utcnow
        self.repository = OrderRepository(state_manager, self.settings)
        self.publisher = publisher or EventPublisher(state_manager, self.settings.events_channel)
        self.logger = OperationLogger("comanda.checkout")

    def _check_settleable(self, order: Order) -> None:
        if order.is_settled or order.status == OrderStatus.DELIVERED:
            raise AlreadySettled(
                "This order has already been charged",
                payment_id=str(order.payment_id) if order.payment_id else None,
            )

        if order.status == OrderStatus.CANCELLED:
            raise IllegalTransition(
                "Cancelled orders cannot be charged",
                current=order.status.value,
                target=OrderStatus.DELIVERED.value,
            )

        mode = self.settings.settlement_mode
        if not OrderTransitions.can_settle_from(order.order_type, order.status, mode):
            allowed = sorted(s.value for s in OrderTransitions.SETTLEABLE[mode][order.order_type])
            raise IllegalTransition(
                f"A {order.order_type.value} order cannot be charged while {order.status.value}",
                current=order.status.value,
                allowed=allowed,
            )

    @staticmethod
    def _parse_payment_method(value: PaymentMethod | str | None) -> PaymentMethod:
        try:
            return PaymentMethod(value)
        except ValueError:
            raise InvalidPaymentMethod(
                "Payment method must be cash, card or transfer",
                payment_method=value,
            ) from None

    @staticmethod
    def _parse_invoice_kind(value: InvoiceKind | str | None) -> InvoiceKind:
        if value is None:
            return InvoiceKind.NONE
        try:
            return InvoiceKind(value)
        except ValueError:
            raise IncompleteInvoiceData(
                "Invoice kind must be none, receipt or invoice",
                invoice_kind=value,
            ) from None

    @staticmethod
    def _check_billing(
        order: Order, invoice_kind: InvoiceKind, billing_detail: BillingDetail | None
    ) -> None:
        if order.order_type != OrderType.DINE_IN or invoice_kind != InvoiceKind.INVOICE:
            return

        missing = billing_detail.missing_fields() if billing_detail else ["billing_detail"]
        if missing:
            raise IncompleteInvoiceData(
                "Billing details are incomplete for an invoice",
                missing=missing,
            )

    @staticmethod
    def _resolve_tip(
        order: Order, tip: int | None, tip_percentage: float | None
    ) -> tuple[int | None, float | None]:
        """Tip amount and the percentage recorded with it."""
        if tip is None and tip_percentage is None:
            return None, None

        if tip is None:
            amount = percentage_tip(order.subtotal, tip_percentage)
            return amount, tip_percentage

        amount = fixed_tip(tip)
        if tip_percentage is not None and tip_percentage < 0:
            raise InvalidTip("Tip percentage cannot be negative", percentage=tip_percentage)
        return amount, (
            tip_percentage
            if tip_percentage is not None
            else implied_percentage(amount, order.subtotal)
        )

    @service_boundary("settle_order")
    async def settle_order(
        self,
        order_id: UUID,
        operator_id: str | None,
        payment_method: PaymentMethod | str | None,
        invoice_kind: InvoiceKind | str | None = InvoiceKind.NONE,
        billing_detail: BillingDetail | None = None,
        tip: int | None = None,
        tip_percentage: float | None = None,
    ) -> ServiceResult:
        """
        Charge an order and mark it delivered.

        Checks run in a fixed order and stop at the first failure: operator,
        order, order status, payment method, billing details, tip.
        """
        if not operator_id or not str(operator_id).strip():
            raise MissingOperator("An operator session is required to charge an order")

        tracer = OperationTracer("settle_order", str(order_id))

        with tracer.trace_step("load_order"):
            order = await self.repository.get(order_id)
        if order is None:
            raise OrderNotFound("Order not found", order_id=str(order_id))

        self._check_settleable(order)
        method = self._parse_payment_method(payment_method)
        kind = self._parse_invoice_kind(invoice_kind)
        self._check_billing(order, kind, billing_detail)
        tip_amount, recorded_percentage = self._resolve_tip(order, tip, tip_percentage)

        now = self.clock()
        final_total = order.amount_due(tip_amount)

        payment = Payment(
            order_id=order.id,
            operator_id=operator_id,
            payment_method=method,
            amount=final_total,
            tip=tip_amount or 0,
            invoice_kind=kind,
            created_at=now,
        )
        changes = {
            "status": OrderStatus.DELIVERED,
            "payment_method": method,
            "payment_id": payment.id,
            "tip": tip_amount,
            "invoice_kind": kind,
            "updated_at": now,
            "delivered_at": now,
        }

        with tracer.trace_step("conditional_update", from_status=order.status.value):
            applied = await self.repository.conditional_update(
                order, order.status, changes, payment=payment
            )

        if not applied:
            await self._raise_conflict(order)

        settled = order.model_copy(update=changes)
        self.logger.log_settlement(
            order_id=str(order.id),
            payment_id=str(payment.id),
            payment_method=method.value,
            final_total=final_total,
            operator_id=operator_id,
            tip=tip_amount,
        )

        warnings: list[str] = []
        tip_registered = False

        if tip_amount:
            with tracer.trace_step("register_tip"):
                tip_registered = await self._register_tip_quietly(
                    TipRecord(
                        payment_id=payment.id,
                        amount=tip_amount,
                        percentage=recorded_percentage,
                        created_at=now,
                    ),
                    order,
                )
            if not tip_registered:
                warnings.append(
                    "The charge succeeded but the tip could not be registered"
                )

        with tracer.trace_step("follow_up"):
            warning = await record_status_change(
                self.repository,
                StatusChange(
                    order_id=order.id,
                    from_status=order.status,
                    to_status=OrderStatus.DELIVERED,
                    operator_id=operator_id,
                    notes=f"settled by {method.value}",
                    created_at=now,
                ),
            )
            if warning:
                warnings.append(warning)

            await self.publisher.publish(
                ORDERS_RELOAD, order_id=str(order.id), status=OrderStatus.DELIVERED.value
            )
            await self.publisher.publish(
                SETTLEMENT_SUCCEEDED,
                order_id=str(order.id),
                payment_id=str(payment.id),
                final_total=final_total,
            )

        self.logger.logger.debug("settlement_trace", **tracer.get_trace_summary())

        receipt = SettlementReceipt(
            order=settled,
            payment=payment,
            final_total=final_total,
            tip_registered=tip_registered,
            requires_printing=kind != InvoiceKind.NONE,
        )
        return ServiceResult.ok("settle_order", receipt, warnings=warnings)

    async def _raise_conflict(self, order: Order) -> None:
        current = await self.repository.get(order.id)
        if current is None:
            raise OrderNotFound("Order not found", order_id=str(order.id))
        if current.is_settled or current.status == OrderStatus.DELIVERED:
            raise AlreadySettled(
                "This order has already been charged",
                payment_id=str(current.payment_id) if current.payment_id else None,
            )
        raise ConcurrentUpdate(
            "The order was changed by someone else. Reload and try again.",
            expected=order.status.value,
            current=current.status.value,
        )

    async def _register_tip_quietly(self, record: TipRecord, order: Order) -> bool:
        try:
            added = await self.repository.add_tip(record)
        except Exception as e:
            self.logger.logger.warning(
                "tip_registration_failed",
                order_id=str(order.id),
                payment_id=str(record.payment_id),
                error=str(e),
            )
            return False

        if not added:
            self.logger.logger.warning(
                "tip_registration_failed",
                order_id=str(order.id),
                payment_id=str(record.payment_id),
                error="tip already registered",
            )
        return added

    @service_boundary("register_tip", order_arg=None)
    async def register_tip(
        self,
        payment_id: UUID,
        amount: int,
        percentage: float | None = None,
    ) -> TipRecord:
        """
        Record the tip for a payment. A payment holds at most one tip.

        When the charge already included a tip, only that amount can be
        recorded. Otherwise the tip is added to the order and the payment in
        the same step as the record.
        """
        payment = await self.repository.get_payment(payment_id)
        if payment is None:
            raise OrderNotFound("Payment not found", payment_id=str(payment_id))

        amount = fixed_tip(amount)
        if percentage is not None and percentage < 0:
            raise InvalidTip("Tip percentage cannot be negative", percentage=percentage)

        if await self.repository.get_tip(payment.id) is not None:
            self._raise_tip_registered(payment)

        record = TipRecord(
            payment_id=payment.id,
            amount=amount,
            percentage=percentage,
            created_at=self.clock(),
        )

        if payment.tip:
            if amount != payment.tip:
                raise InvalidTip(
                    "The tip must match the one charged with the payment",
                    amount=amount,
                    charged=payment.tip,
                )
            added = await self.repository.add_tip(record)
        else:
            if amount == 0:
                raise InvalidTip("A tip added after checkout must be greater than zero")

            order = await self.repository.get(payment.order_id)
            if order is None:
                raise OrderNotFound("Order not found", order_id=str(payment.order_id))
            if order.tip:
                self._raise_tip_registered(payment)

            tipped = payment.model_copy(update={"tip": amount, "amount": payment.amount + amount})
            added = await self.repository.attach_tip(order, tipped, record)

        if not added:
            self._raise_tip_registered(payment)

        self.logger.logger.info(
            "tip_registered",
            payment_id=str(payment.id),
            order_id=str(payment.order_id),
            amount=amount,
        )
        return record

    @staticmethod
    def _raise_tip_registered(payment: Payment) -> None:
        raise TipAlreadyRegistered(
            "A tip is already registered for this payment",
            payment_id=str(payment.id),
        )
