"""Pytest configuration and fixtures."""

from datetime import datetime, timedelta, timezone
from typing import AsyncGenerator

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from comanda.api.routes import get_state_backend
from comanda.config import Settings
from comanda.main import app
from comanda.models.delivery import Location, RestaurantDeliveryConfig
from comanda.models.order import CustomerInfo, Order, OrderItem, OrderType
from comanda.services.checkout import CheckoutService
from comanda.services.orders import OrderService
from comanda.state.manager import MemoryStateManager
from comanda.state.orders import OrderRepository
from comanda.state.restaurant import RestaurantConfigStore


class FakeClock:
    """Controllable clock for cancellation-window tests."""

    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> None:
        self.now += timedelta(**kwargs)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock(datetime(2024, 5, 17, 12, 0, tzinfo=timezone.utc))


@pytest.fixture
def settings() -> Settings:
    return Settings(_env_file=None, state_backend="memory")


@pytest_asyncio.fixture
async def state_manager() -> AsyncGenerator[MemoryStateManager, None]:
    """Create a test state manager."""
    manager = MemoryStateManager()
    await manager.connect()
    yield manager
    await manager.disconnect()


@pytest.fixture
def repository(state_manager: MemoryStateManager, settings: Settings) -> OrderRepository:
    return OrderRepository(state_manager, settings)


@pytest.fixture
def order_service(
    state_manager: MemoryStateManager, settings: Settings, clock: FakeClock
) -> OrderService:
    return OrderService(state_manager, settings=settings, clock=clock)


@pytest.fixture
def checkout_service(
    state_manager: MemoryStateManager, settings: Settings, clock: FakeClock
) -> CheckoutService:
    return CheckoutService(state_manager, settings=settings, clock=clock)


@pytest_asyncio.fixture
async def test_client(
    state_manager: MemoryStateManager,
) -> AsyncGenerator[AsyncClient, None]:
    """Create a test HTTP client backed by the in-memory store."""
    app.dependency_overrides[get_state_backend] = lambda: state_manager
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client
    app.dependency_overrides.clear()


# Sample data fixtures


@pytest.fixture
def delivery_config() -> RestaurantDeliveryConfig:
    """Base 2 km for 4000, 1000 per extra km, 10 km coverage."""
    return RestaurantDeliveryConfig(
        origin_lat=4.6097,
        origin_lng=-74.0817,
        base_distance_km=2,
        base_cost=4000,
        per_km_excess_rate=1000,
        max_coverage_km=10,
    )


def five_km_north(config: RestaurantDeliveryConfig) -> Location:
    # 5 km of arc along the meridian on a 6371 km sphere
    return Location(lat=config.origin_lat + 0.044966, lng=config.origin_lng)


@pytest_asyncio.fixture
async def configured_store(
    state_manager: MemoryStateManager,
    delivery_config: RestaurantDeliveryConfig,
) -> RestaurantConfigStore:
    store = RestaurantConfigStore(state_manager)
    await store.save_delivery_config(delivery_config)
    return store


@pytest.fixture
def sample_items() -> list[OrderItem]:
    """Two lines adding up to 30000."""
    return [
        OrderItem(product_id="bandeja", name="Bandeja paisa", quantity=1, unit_price=22000),
        OrderItem(product_id="limonada", name="Limonada de coco", quantity=2, unit_price=4000),
    ]


@pytest.fixture
def sample_customer() -> CustomerInfo:
    return CustomerInfo(
        name="Laura Gómez",
        phone="+57 300 555 0101",
        address="Calle 45 # 13-20",
    )


@pytest_asyncio.fixture
async def dine_in_order(order_service: OrderService, sample_items: list[OrderItem]) -> Order:
    result = await order_service.create_order(items=sample_items, order_type=OrderType.DINE_IN)
    assert result.success, result.error
    return result.value


@pytest_asyncio.fixture
async def delivery_order(
    order_service: OrderService,
    sample_items: list[OrderItem],
    sample_customer: CustomerInfo,
    delivery_config: RestaurantDeliveryConfig,
    configured_store: RestaurantConfigStore,
) -> Order:
    """Delivery order 5 km out: fee 7000 on a 30000 subtotal."""
    quote = await order_service.quote_delivery(location=five_km_north(delivery_config))
    assert quote.success, quote.error
    result = await order_service.create_order(
        items=sample_items,
        order_type=OrderType.DELIVERY,
        delivery_quote=quote.value,
        customer=sample_customer,
    )
    assert result.success, result.error
    return result.value
