"""Order status state machine."""

from datetime import datetime, timedelta

from comanda.errors import CancellationWindowExpired, IllegalTransition
from comanda.models.order import Order, OrderStatus, OrderType

TERMINAL_STATES = frozenset({OrderStatus.DELIVERED, OrderStatus.CANCELLED})

# Customer tracking stops here; the courier is at the door.
TRACKING_FINAL_STATES = TERMINAL_STATES | {OrderStatus.ARRIVED}

CANCELLABLE_STATES = frozenset({OrderStatus.TAKEN, OrderStatus.READY})


class OrderTransitions:
    """Valid order status transitions per order type."""

    TRANSITIONS = {
        OrderType.DINE_IN: {
            OrderStatus.TAKEN: OrderStatus.READY,
            OrderStatus.READY: OrderStatus.DELIVERED,
        },
        OrderType.DELIVERY: {
            OrderStatus.TAKEN: OrderStatus.READY,
            OrderStatus.READY: OrderStatus.EN_ROUTE,
            OrderStatus.EN_ROUTE: OrderStatus.ARRIVED,
            OrderStatus.ARRIVED: OrderStatus.DELIVERED,
        },
    }

    # Statuses a cashier may charge from.
    SETTLEABLE = {
        "strict": {
            OrderType.DINE_IN: frozenset({OrderStatus.READY}),
            OrderType.DELIVERY: frozenset({OrderStatus.READY, OrderStatus.ARRIVED}),
        },
        "simplified": {
            OrderType.DINE_IN: frozenset({OrderStatus.TAKEN, OrderStatus.READY}),
            OrderType.DELIVERY: frozenset(
                {
                    OrderStatus.TAKEN,
                    OrderStatus.READY,
                    OrderStatus.EN_ROUTE,
                    OrderStatus.ARRIVED,
                }
            ),
        },
    }

    @classmethod
    def next_status(
        cls, order_type: OrderType, current: OrderStatus
    ) -> OrderStatus | None:
        """Immediate successor of ``current``, or None when terminal."""
        return cls.TRANSITIONS[order_type].get(current)

    @classmethod
    def can_transition(
        cls, order_type: OrderType, from_state: OrderStatus, to_state: OrderStatus
    ) -> bool:
        """Check if a forward state transition is valid."""
        return cls.next_status(order_type, from_state) == to_state

    @classmethod
    def can_settle_from(
        cls, order_type: OrderType, status: OrderStatus, mode: str = "strict"
    ) -> bool:
        return status in cls.SETTLEABLE[mode][order_type]

    @classmethod
    def path(cls, order_type: OrderType) -> list[OrderStatus]:
        """Full forward path for an order type, from taken to delivered."""
        steps = [OrderStatus.TAKEN]
        while (nxt := cls.next_status(order_type, steps[-1])) is not None:
            steps.append(nxt)
        return steps


class OrderStateMachine:
    """Applies status changes to orders, enforcing the transition graph."""

    def __init__(self, cancellation_window: timedelta):
        self.cancellation_window = cancellation_window

    def can_cancel(self, order: Order, now: datetime) -> bool:
        """Cancellation is open while taken/ready and inside the window."""
        if order.status not in CANCELLABLE_STATES:
            return False
        return now - order.created_at <= self.cancellation_window

    def check_transition(self, order: Order, target: OrderStatus) -> None:
        """Raise IllegalTransition unless ``target`` is the next status."""
        if order.status in TERMINAL_STATES:
            raise IllegalTransition(
                f"Order is already {order.status.value}",
                current=order.status.value,
                target=target.value,
            )

        if target == OrderStatus.CANCELLED:
            raise IllegalTransition(
                "Use cancellation to cancel an order",
                current=order.status.value,
                target=target.value,
            )

        if not OrderTransitions.can_transition(order.order_type, order.status, target):
            expected = OrderTransitions.next_status(order.order_type, order.status)
            raise IllegalTransition(
                f"Cannot move a {order.order_type.value} order from "
                f"{order.status.value} to {target.value}",
                current=order.status.value,
                target=target.value,
                expected=expected.value if expected else None,
            )

    def transition(self, order: Order, target: OrderStatus, now: datetime) -> Order:
        """Return a copy of ``order`` moved to ``target``."""
        self.check_transition(order, target)

        changes: dict[str, object] = {"status": target, "updated_at": now}
        if target == OrderStatus.DELIVERED:
            changes["delivered_at"] = now
        return order.model_copy(update=changes)

    def check_cancel(self, order: Order, now: datetime) -> None:
        if order.status in TERMINAL_STATES:
            raise IllegalTransition(
                f"Order is already {order.status.value}",
                current=order.status.value,
                target=OrderStatus.CANCELLED.value,
            )

        if order.status not in CANCELLABLE_STATES:
            raise IllegalTransition(
                f"Order can no longer be cancelled once {order.status.value}",
                current=order.status.value,
                target=OrderStatus.CANCELLED.value,
            )

        if not self.can_cancel(order, now):
            raise CancellationWindowExpired(
                "The cancellation window for this order has closed",
                window_minutes=self.cancellation_window.total_seconds() / 60,
            )

    def cancel(self, order: Order, now: datetime, reason: str | None = None) -> Order:
        """Return a cancelled copy of ``order``."""
        self.check_cancel(order, now)
        return order.model_copy(
            update={
                "status": OrderStatus.CANCELLED,
                "cancel_reason": reason,
                "cancelled_at": now,
                "updated_at": now,
            }
        )
