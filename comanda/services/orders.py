"""Order lifecycle service: quoting, creation, transitions and tracking."""

from datetime import datetime, timedelta
from typing import Callable
from uuid import UUID

from comanda.config import Settings, get_settings
from comanda.core.delivery_fee import DeliveryFeeCalculator, linear_eta
from comanda.errors import (
    ConcurrentUpdate,
    ConfigurationMissing,
    InvalidOrder,
    NotDeletable,
    OrderNotFound,
    OutOfCoverage,
)
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
    utcnow,
)
from comanda.services.events import ORDERS_RELOAD, EventPublisher, record_status_change
from comanda.services.results import ServiceResult, service_boundary
from comanda.state.manager import StateBackend
from comanda.state.orders import OrderRepository
from comanda.state.restaurant import CustomerCache, QuoteCache, RestaurantConfigStore
from comanda.state.workflow import TRACKING_FINAL_STATES, OrderStateMachine
from comanda.utils.logging import OperationLogger, get_logger

logger = get_logger(__name__)

Clock = Callable[[], datetime]


class OrderService:
    """
    Order operations used by staff screens and customer tracking.

    Every public coroutine returns a ServiceResult; expected failures come
    back tagged rather than raised.
    """

    def __init__(
        self,
        state_manager: StateBackend,
        settings: Settings | None = None,
        clock: Clock | None = None,
        fee_calculator: DeliveryFeeCalculator | None = None,
        publisher: EventPublisher | None = None,
    ):
        self.settings = settings or get_settings()
        self.clock = clock or utcnow
        self.repository = OrderRepository(state_manager, self.settings)
        self.config_store = RestaurantConfigStore(state_manager)
        self.quotes = QuoteCache(state_manager, self.settings)
        self.customers = CustomerCache(state_manager, self.settings)
        self.publisher = publisher or EventPublisher(state_manager, self.settings.events_channel)
        self.fee_calculator = fee_calculator or DeliveryFeeCalculator(
            linear_eta(self.settings.minutes_per_km)
        )
        self.state_machine = OrderStateMachine(
            timedelta(minutes=self.settings.cancellation_window_minutes)
        )
        self.logger = OperationLogger("comanda.orders")

    async def _require_order(self, order_id: UUID) -> Order:
        order = await self.repository.get(order_id)
        if order is None:
            raise OrderNotFound("Order not found", order_id=str(order_id))
        return order

    async def _after_status_change(
        self,
        order: Order,
        from_status: OrderStatus | None,
        operator_id: str | None = None,
        notes: str | None = None,
    ) -> list[str]:
        """History and UI signal for a committed change. Returns warnings."""
        warnings = []
        warning = await record_status_change(
            self.repository,
            StatusChange(
                order_id=order.id,
                from_status=from_status,
                to_status=order.status,
                operator_id=operator_id,
                notes=notes,
                created_at=order.updated_at,
            ),
        )
        if warning:
            warnings.append(warning)

        await self.publisher.publish(
            ORDERS_RELOAD, order_id=str(order.id), status=order.status.value
        )
        return warnings

    async def _price(self, location: Location) -> DeliveryQuote:
        """In-coverage quote for ``location`` under the stored configuration."""
        config = await self.config_store.get_delivery_config()
        if config is None:
            raise ConfigurationMissing("Delivery pricing has not been configured")

        quote = await self.quotes.get(location, config)
        if quote is None:
            quote = self.fee_calculator.quote(location, config)
            await self.quotes.remember(quote, location, config)

        if quote.out_of_coverage:
            raise OutOfCoverage(
                "The address is outside the delivery coverage area",
                distance_km=quote.distance_km,
                max_coverage_km=config.max_coverage_km,
            )
        return quote

    @service_boundary("quote_delivery", order_arg=None)
    async def quote_delivery(self, location: Location) -> DeliveryQuote:
        """Price delivery to ``location`` from the restaurant's configuration."""
        quote = await self._price(location)

        logger.info(
            "delivery_quoted",
            distance_km=quote.distance_km,
            total_cost=quote.total_cost,
            estimated_minutes=quote.estimated_minutes,
        )
        return quote

    @service_boundary("create_order", order_arg=None)
    async def create_order(
        self,
        items: list[OrderItem],
        order_type: OrderType,
        delivery_quote: DeliveryQuote | None = None,
        customer: CustomerInfo | None = None,
    ) -> ServiceResult:
        """
        Take a new order.

        Delivery orders need a confirmed in-coverage quote and an address.
        The quote is priced again from its destination and must still match;
        the fee from that pricing is fixed on the order from here on.
        """
        if not items:
            raise InvalidOrder("An order needs at least one item")

        if order_type == OrderType.DELIVERY:
            if delivery_quote is None:
                raise InvalidOrder("Delivery orders need a delivery quote")
            if delivery_quote.out_of_coverage:
                raise OutOfCoverage(
                    "The address is outside the delivery coverage area",
                    distance_km=delivery_quote.distance_km,
                )
            if customer is None or not (customer.address or "").strip():
                raise InvalidOrder("Delivery orders need a customer address")
            if delivery_quote.destination is None:
                raise InvalidOrder("The delivery quote has no destination")

            priced = await self._price(delivery_quote.destination)
            if priced.total_cost != delivery_quote.total_cost:
                raise InvalidOrder(
                    "The delivery quote no longer matches current pricing. Quote again.",
                    quoted=delivery_quote.total_cost,
                    current=priced.total_cost,
                )
            delivery_quote = priced
        elif delivery_quote is not None:
            raise InvalidOrder("Dine-in orders cannot carry a delivery quote")

        now = self.clock()
        fields: dict[str, object] = {
            "order_type": order_type,
            "items": items,
            "created_at": now,
            "updated_at": now,
        }

        if delivery_quote is not None:
            fields["delivery_fee"] = delivery_quote.total_cost
            fields["delivery_distance_km"] = delivery_quote.distance_km
            fields["estimated_minutes"] = delivery_quote.estimated_minutes

        if customer is not None:
            fields["customer_name"] = customer.name
            fields["customer_phone"] = customer.phone
            fields["customer_address"] = customer.address
            fields["customer_notes"] = customer.notes

        order = Order(**fields)
        order.calculate_subtotal()

        await self.repository.create(order)

        logger.info(
            "order_created",
            order_id=str(order.id),
            order_type=order.order_type.value,
            subtotal=order.subtotal,
            delivery_fee=order.delivery_fee,
        )

        warnings = await self._after_status_change(order, None)

        if customer is not None and customer.phone:
            warning = await self._remember_customer_quietly(customer, order)
            if warning:
                warnings.append(warning)

        return ServiceResult.ok("create_order", order, warnings=warnings)

    async def _remember_customer_quietly(self, customer: CustomerInfo, order: Order) -> str | None:
        try:
            await self.customers.remember(
                CustomerProfile(
                    phone=customer.phone,
                    name=customer.name,
                    address=customer.address,
                    updated_at=order.created_at,
                )
            )
        except Exception as e:
            logger.warning("customer_cache_failed", order_id=str(order.id), error=str(e))
            return "Customer profile could not be cached"
        return None

    @service_boundary("transition_order")
    async def transition_order(
        self,
        order_id: UUID,
        target_status: OrderStatus,
        operator_id: str | None = None,
    ) -> ServiceResult:
        """Move an order to the next status in its graph."""
        order = await self._require_order(order_id)
        updated = self.state_machine.transition(order, target_status, self.clock())

        changes = {"status": updated.status, "updated_at": updated.updated_at}
        if updated.delivered_at is not None:
            changes["delivered_at"] = updated.delivered_at

        applied = await self.repository.conditional_update(order, order.status, changes)
        if not applied:
            await self._raise_conflict(order)

        self.logger.log_transition(
            order_id=str(order.id),
            from_status=order.status.value,
            to_status=updated.status.value,
            operator_id=operator_id,
        )

        warnings = await self._after_status_change(updated, order.status, operator_id)
        return ServiceResult.ok("transition_order", updated, warnings=warnings)

    @service_boundary("cancel_order")
    async def cancel_order(
        self,
        order_id: UUID,
        reason: str | None = None,
        operator_id: str | None = None,
    ) -> ServiceResult:
        """Cancel an order while the cancellation window is open."""
        order = await self._require_order(order_id)
        cancelled = self.state_machine.cancel(order, self.clock(), reason)

        applied = await self.repository.conditional_update(
            order,
            order.status,
            {
                "status": cancelled.status,
                "cancel_reason": cancelled.cancel_reason,
                "cancelled_at": cancelled.cancelled_at,
                "updated_at": cancelled.updated_at,
            },
        )
        if not applied:
            await self._raise_conflict(order)

        self.logger.log_transition(
            order_id=str(order.id),
            from_status=order.status.value,
            to_status=OrderStatus.CANCELLED.value,
            operator_id=operator_id,
            reason=reason,
        )

        warnings = await self._after_status_change(cancelled, order.status, operator_id, reason)
        return ServiceResult.ok("cancel_order", cancelled, warnings=warnings)

    async def _raise_conflict(self, order: Order) -> None:
        current = await self.repository.get(order.id)
        if current is None:
            raise OrderNotFound("Order not found", order_id=str(order.id))
        raise ConcurrentUpdate(
            "The order was changed by someone else. Reload and try again.",
            expected=order.status.value,
            current=current.status.value,
        )

    @service_boundary("delete_order")
    async def delete_order(self, order_id: UUID) -> UUID:
        """Remove an order that has not left the taken status."""
        order = await self._require_order(order_id)

        if order.status != OrderStatus.TAKEN:
            raise NotDeletable(
                "Only orders that are still taken can be deleted",
                status=order.status.value,
            )

        if not await self.repository.delete(order, OrderStatus.TAKEN):
            current = await self.repository.get(order.id)
            if current is None:
                raise OrderNotFound("Order not found", order_id=str(order.id))
            raise NotDeletable(
                "Only orders that are still taken can be deleted",
                status=current.status.value,
            )
        await self.publisher.publish(ORDERS_RELOAD, order_id=str(order.id), status="deleted")

        logger.info("order_deleted", order_id=str(order.id))
        return order.id

    @service_boundary("poll_order_status")
    async def poll_order_status(self, order_id: UUID) -> OrderStatusSnapshot:
        """Current status plus whether the customer may still cancel."""
        order = await self._require_order(order_id)
        return OrderStatusSnapshot(
            order_id=order.id,
            status=order.status,
            order_type=order.order_type,
            updated_at=order.updated_at,
            can_cancel=self.state_machine.can_cancel(order, self.clock()),
            tracking_finished=order.status in TRACKING_FINAL_STATES,
        )

    @service_boundary("get_order")
    async def get_order(self, order_id: UUID) -> Order:
        return await self._require_order(order_id)

    @service_boundary("get_order_history")
    async def get_order_history(self, order_id: UUID) -> list[StatusChange]:
        """Status changes of an order, oldest first."""
        await self._require_order(order_id)
        return await self.repository.history(order_id)

    @service_boundary("find_active_order_by_phone", order_arg=None)
    async def find_active_order_by_phone(self, phone: str) -> Order:
        """Newest order for ``phone`` that is not delivered or cancelled."""
        if not phone or not phone.strip():
            raise InvalidOrder("A phone number is required")

        for order_id in await self.repository.order_ids_for_phone(phone):
            order = await self.repository.get(order_id)
            if order is not None and not order.is_terminal:
                return order

        raise OrderNotFound("No active order found for that phone number")

    @service_boundary("remember_customer", order_arg=None)
    async def remember_customer(self, profile: CustomerProfile) -> CustomerProfile:
        profile = profile.model_copy(update={"updated_at": self.clock()})
        return await self.customers.remember(profile)

    @service_boundary("get_customer", order_arg=None)
    async def get_customer(self, phone: str) -> CustomerProfile:
        profile = await self.customers.get(phone)
        if profile is None:
            raise OrderNotFound("Customer profile not found")
        return profile
