"""Restaurant configuration and customer profile cache."""

import hashlib

from comanda.config import Settings, get_settings
from comanda.models.customer import CustomerProfile
from comanda.models.delivery import DeliveryQuote, Location, RestaurantDeliveryConfig
from comanda.state.manager import StateBackend
from comanda.state.orders import normalize_phone
from comanda.utils.logging import get_logger

logger = get_logger(__name__)

DELIVERY_CONFIG_KEY = "restaurant:delivery_config"


class RestaurantConfigStore:
    """Reads the owner-managed delivery configuration."""

    def __init__(self, state_manager: StateBackend):
        self.state = state_manager

    async def get_delivery_config(self) -> RestaurantDeliveryConfig | None:
        data = await self.state.get(DELIVERY_CONFIG_KEY)

        if not data:
            return None

        return RestaurantDeliveryConfig(**data)

    async def save_delivery_config(self, config: RestaurantDeliveryConfig) -> None:
        """Write the configuration (owner tooling and seed scripts only)."""
        await self.state.set(DELIVERY_CONFIG_KEY, config.model_dump(mode="json"))
        logger.info(
            "delivery_config_saved",
            active=config.active,
            max_coverage_km=config.max_coverage_km,
        )


class QuoteCache:
    """
    Short-lived delivery quotes keyed by destination.

    Keys carry a fingerprint of the pricing configuration, so a saved config
    change never serves a quote priced under the old one.
    """

    def __init__(self, state_manager: StateBackend, settings: Settings | None = None):
        self.state = state_manager
        self.settings = settings or get_settings()

    def _quote_key(self, destination: Location, config: RestaurantDeliveryConfig) -> str:
        fingerprint = hashlib.sha1(config.model_dump_json().encode()).hexdigest()[:12]
        return f"quote:{fingerprint}:{destination.lat:.5f}:{destination.lng:.5f}"

    async def get(
        self, destination: Location, config: RestaurantDeliveryConfig
    ) -> DeliveryQuote | None:
        if not self.settings.quote_cache_ttl:
            return None

        data = await self.state.get(self._quote_key(destination, config))

        if not data:
            return None

        return DeliveryQuote(**data)

    async def remember(
        self, quote: DeliveryQuote, destination: Location, config: RestaurantDeliveryConfig
    ) -> None:
        if not self.settings.quote_cache_ttl:
            return

        await self.state.set(
            self._quote_key(destination, config),
            quote.model_dump(mode="json"),
            ttl=self.settings.quote_cache_ttl,
        )


class CustomerCache:
    """Convenience cache of customer profiles keyed by phone."""

    def __init__(self, state_manager: StateBackend, settings: Settings | None = None):
        self.state = state_manager
        self.settings = settings or get_settings()

    def _customer_key(self, phone: str) -> str:
        return f"customer:{normalize_phone(phone)}"

    async def get(self, phone: str) -> CustomerProfile | None:
        data = await self.state.get(self._customer_key(phone))

        if not data:
            return None

        return CustomerProfile(**data)

    async def remember(self, profile: CustomerProfile) -> CustomerProfile:
        await self.state.set(
            self._customer_key(profile.phone),
            profile.model_dump(mode="json"),
            ttl=self.settings.customer_cache_ttl,
        )
        return profile

    async def forget(self, phone: str) -> None:
        await self.state.delete(self._customer_key(phone))
