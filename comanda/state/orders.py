"""Order, payment and tip persistence."""

import re
from typing import Any
from uuid import UUID

from comanda.config import Settings, get_settings
from comanda.models.history import StatusChange
from comanda.models.order import Order, OrderStatus
from comanda.models.payment import Payment, TipRecord
from comanda.state.manager import StateBackend
from comanda.utils.logging import get_logger

logger = get_logger(__name__)


def normalize_phone(phone: str) -> str:
    """Digits only, so "+57 300-123" and "57300123" index alike."""
    return re.sub(r"\D", "", phone)


class OrderRepository:
    """Stores orders as hashes so single fields can be guarded and updated."""

    def __init__(self, state_manager: StateBackend, settings: Settings | None = None):
        self.state = state_manager
        self.settings = settings or get_settings()

    def _order_key(self, order_id: UUID) -> str:
        return f"order:{order_id}"

    def _history_key(self, order_id: UUID) -> str:
        return f"order:{order_id}:history"

    def _payment_key(self, payment_id: UUID) -> str:
        return f"payment:{payment_id}"

    def _tip_key(self, payment_id: UUID) -> str:
        return f"tip:{payment_id}"

    def _phone_index_key(self, phone: str) -> str:
        return f"orders:phone:{normalize_phone(phone)}"

    async def create(self, order: Order) -> Order:
        """Persist a new order and index it by customer phone."""
        await self.state.hset_many(self._order_key(order.id), order.model_dump(mode="json"))

        if order.customer_phone:
            await self.state.zadd(
                self._phone_index_key(order.customer_phone),
                {str(order.id): order.created_at.timestamp()},
            )

        logger.debug("order_stored", order_id=str(order.id))
        return order

    async def get(self, order_id: UUID) -> Order | None:
        """Retrieve an order by ID."""
        data = await self.state.hgetall(self._order_key(order_id))

        if not data:
            return None

        return Order(**data)

    async def conditional_update(
        self,
        order: Order,
        expected_status: OrderStatus,
        changes: dict[str, Any],
        payment: Payment | None = None,
    ) -> bool:
        """
        Apply ``changes`` only if the stored status is still ``expected_status``.

        When ``payment`` is given it is written by the same statement. Returns
        False if another writer changed the status first.
        """
        updated = order.model_copy(update=changes).model_dump(mode="json")
        mapping = {field: updated[field] for field in changes}

        companions = None
        if payment is not None:
            companions = {self._payment_key(payment.id): payment.model_dump(mode="json")}

        return await self.state.conditional_hset(
            self._order_key(order.id),
            "status",
            expected_status.value,
            mapping,
            companions=companions,
        )

    async def attach_tip(self, order: Order, payment: Payment, record: TipRecord) -> bool:
        """
        Write a late tip on the order, its payment and the tip record together.

        Guarded on the order's stored tip still being ``order.tip``, so only
        one registration can land. ``payment`` must already carry the tip.
        """
        return await self.state.conditional_hset(
            self._order_key(order.id),
            "tip",
            order.tip,
            {"tip": record.amount},
            companions={
                self._payment_key(payment.id): payment.model_dump(mode="json"),
                self._tip_key(payment.id): record.model_dump(mode="json"),
            },
        )

    async def delete(self, order: Order, expected_status: OrderStatus) -> bool:
        """
        Remove an order and everything keyed by it if its stored status is
        still ``expected_status``. Returns False otherwise.
        """
        removed = await self.state.conditional_delete(
            self._order_key(order.id),
            "status",
            expected_status.value,
            self._history_key(order.id),
        )

        if removed and order.customer_phone:
            await self.state.zrem(self._phone_index_key(order.customer_phone), str(order.id))
        return removed

    async def order_ids_for_phone(self, phone: str) -> list[UUID]:
        """Orders placed with ``phone``, newest first."""
        members = await self.state.zrange(self._phone_index_key(phone), desc=True)
        return [UUID(member) for member in members]

    async def append_history(self, change: StatusChange) -> None:
        await self.state.rpush(
            self._history_key(change.order_id),
            change.model_dump(mode="json"),
            ttl=self.settings.history_ttl,
        )

    async def history(self, order_id: UUID) -> list[StatusChange]:
        entries = await self.state.lrange(self._history_key(order_id))
        return [StatusChange(**entry) for entry in entries]

    async def get_payment(self, payment_id: UUID) -> Payment | None:
        data = await self.state.get(self._payment_key(payment_id))

        if not data:
            return None

        return Payment(**data)

    async def add_tip(self, record: TipRecord) -> bool:
        """Store a tip for a payment. False if one is already recorded."""
        return await self.state.set(
            self._tip_key(record.payment_id),
            record.model_dump(mode="json"),
            nx=True,
        )

    async def get_tip(self, payment_id: UUID) -> TipRecord | None:
        data = await self.state.get(self._tip_key(payment_id))

        if not data:
            return None

        return TipRecord(**data)
