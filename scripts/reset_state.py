"""Reset all order state in Redis (useful for local testing)."""

import asyncio

from comanda.state.manager import StateManager


async def reset_all_state() -> None:
    """Clear orders, payments, tips and delivery configuration."""
    print("\n⚠️  WARNING: This will delete ALL orders and payments from Redis!")
    response = input("Are you sure? (yes/no): ")

    if response.lower() != "yes":
        print("Cancelled.")
        return

    print("\nResetting state...")

    state_manager = StateManager()
    await state_manager.connect()

    # FLUSHDB blocks the server; only run against a dedicated database
    await state_manager.flush()

    await state_manager.disconnect()

    print("✓ All state cleared from Redis\n")


if __name__ == "__main__":
    asyncio.run(reset_all_state())
