"""Seed a delivery configuration and a few sample orders."""

import asyncio

from comanda.models.delivery import Location, RestaurantDeliveryConfig
from comanda.models.order import CustomerInfo, OrderItem, OrderStatus, OrderType
from comanda.services.orders import OrderService
from comanda.state.manager import StateManager
from comanda.state.restaurant import RestaurantConfigStore

# Restaurant in Chapinero, Bogotá
DELIVERY_CONFIG = RestaurantDeliveryConfig(
    origin_lat=4.6486,
    origin_lng=-74.0628,
    base_distance_km=2,
    base_cost=4000,
    per_km_excess_rate=1000,
    max_coverage_km=10,
    preparation_minutes=20,
)


async def seed_delivery_config(state_manager: StateManager) -> None:
    """Write the restaurant's delivery pricing."""
    print("Seeding delivery configuration...")

    await RestaurantConfigStore(state_manager).save_delivery_config(DELIVERY_CONFIG)

    print(
        f"  ✓ Base {DELIVERY_CONFIG.base_cost} up to {DELIVERY_CONFIG.base_distance_km} km, "
        f"{DELIVERY_CONFIG.per_km_excess_rate}/km after, "
        f"coverage {DELIVERY_CONFIG.max_coverage_km} km"
    )
    print("✓ Delivery configuration seeded successfully\n")


async def seed_sample_orders(state_manager: StateManager) -> None:
    """Create one dine-in and two delivery orders at different stages."""
    print("Seeding sample orders...")

    service = OrderService(state_manager)

    dine_in = await service.create_order(
        items=[
            OrderItem(product_id="ajiaco", name="Ajiaco santafereño", quantity=2, unit_price=28000),
            OrderItem(product_id="aguapanela", name="Aguapanela", quantity=2, unit_price=5000),
        ],
        order_type=OrderType.DINE_IN,
    )
    print(f"  ✓ Dine-in order {dine_in.value.id} (subtotal: {dine_in.value.subtotal})")

    deliveries = [
        (
            CustomerInfo(name="Laura Gómez", phone="3005550101", address="Calle 45 # 13-20"),
            Location(lat=4.6327, lng=-74.0659),
            OrderStatus.READY,
        ),
        (
            CustomerInfo(name="Camilo Ruiz", phone="3104445566", address="Cra 15 # 93-47"),
            Location(lat=4.6766, lng=-74.0484),
            OrderStatus.EN_ROUTE,
        ),
    ]

    for customer, location, stage in deliveries:
        quote = await service.quote_delivery(location=location)
        if not quote.success:
            print(f"  ❌ Could not quote delivery for {customer.name}: {quote.error}")
            continue

        created = await service.create_order(
            items=[
                OrderItem(product_id="bandeja", name="Bandeja paisa", quantity=1, unit_price=32000),
            ],
            order_type=OrderType.DELIVERY,
            delivery_quote=quote.value,
            customer=customer,
        )
        order = created.value

        for target in (OrderStatus.READY, OrderStatus.EN_ROUTE):
            await service.transition_order(order_id=order.id, target_status=target)
            if target == stage:
                break

        print(
            f"  ✓ Delivery order {order.id} for {customer.name} "
            f"(fee: {order.delivery_fee}, status: {stage.value})"
        )

    print("✓ Sample orders seeded successfully\n")


async def main() -> None:
    """Run all seed functions."""
    print("\n" + "=" * 50)
    print("  Seeding Comanda Data")
    print("=" * 50 + "\n")

    state_manager = StateManager()
    await state_manager.connect()

    try:
        await seed_delivery_config(state_manager)
        await seed_sample_orders(state_manager)
    finally:
        await state_manager.disconnect()

    print("=" * 50)
    print("  ✓ All data seeded successfully!")
    print("=" * 50 + "\n")


if __name__ == "__main__":
    asyncio.run(main())
