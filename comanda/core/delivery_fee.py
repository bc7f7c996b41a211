"""Distance-tiered delivery fee calculation."""

import math
from decimal import ROUND_HALF_UP, Decimal
from typing import Callable

from comanda.errors import ServiceDisabled
from comanda.models.delivery import DeliveryQuote, Location, RestaurantDeliveryConfig

EARTH_RADIUS_KM = 6371

EtaEstimator = Callable[[float, RestaurantDeliveryConfig], int]


def round_half_up(value: float | Decimal) -> int:
    """Round half-up to a whole number."""
    return int(Decimal(str(value)).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def haversine_km(origin: Location, destination: Location) -> float:
    """Great-circle distance between two locations in km."""
    lat1, lng1 = math.radians(origin.lat), math.radians(origin.lng)
    lat2, lng2 = math.radians(destination.lat), math.radians(destination.lng)

    dlat = lat2 - lat1
    dlng = lng2 - lng1

    a = math.sin(dlat / 2) ** 2 + math.cos(lat1) * math.cos(lat2) * math.sin(dlng / 2) ** 2
    c = 2 * math.asin(math.sqrt(a))

    return EARTH_RADIUS_KM * c


def linear_eta(minutes_per_km: float) -> EtaEstimator:
    """Travel time proportional to distance plus kitchen preparation time."""

    def estimate(distance_km: float, config: RestaurantDeliveryConfig) -> int:
        return round_half_up(distance_km * minutes_per_km) + config.preparation_minutes

    return estimate


class DeliveryFeeCalculator:
    """
    Quotes delivery fees from the restaurant's tiered pricing.

    A flat base cost covers the first ``base_distance_km``; each km beyond it
    is charged at ``per_km_excess_rate``. Locations farther than
    ``max_coverage_km`` are reported out of coverage with no cost.
    """

    def __init__(self, eta_estimator: EtaEstimator | None = None):
        self.eta_estimator = eta_estimator or linear_eta(3.0)

    def quote(self, destination: Location, config: RestaurantDeliveryConfig) -> DeliveryQuote:
        """Quote delivery to ``destination``."""
        self._ensure_active(config)
        distance_km = haversine_km(config.origin, destination)
        quote = self._price(distance_km, config)
        quote.destination = destination
        return quote

    def quote_for_distance(
        self, distance_km: float, config: RestaurantDeliveryConfig
    ) -> DeliveryQuote:
        """Quote delivery for an already known distance."""
        if distance_km < 0:
            raise ValueError("distance_km must be non-negative")
        self._ensure_active(config)
        return self._price(distance_km, config)

    def _ensure_active(self, config: RestaurantDeliveryConfig) -> None:
        if not config.active:
            raise ServiceDisabled("Delivery service is currently disabled")

    def _price(self, distance_km: float, config: RestaurantDeliveryConfig) -> DeliveryQuote:
        estimated_minutes = self.eta_estimator(distance_km, config)

        if distance_km > config.max_coverage_km:
            return DeliveryQuote(
                distance_km=round(distance_km, 2),
                estimated_minutes=estimated_minutes,
                out_of_coverage=True,
            )

        base_distance = min(distance_km, config.base_distance_km)
        excess_distance = max(0.0, distance_km - config.base_distance_km)

        base_cost = config.base_cost if distance_km > 0 else 0
        excess_cost = round_half_up(Decimal(str(excess_distance)) * config.per_km_excess_rate)

        return DeliveryQuote(
            distance_km=round(distance_km, 2),
            base_distance_km=round(base_distance, 2),
            excess_distance_km=round(excess_distance, 2),
            base_cost=base_cost,
            excess_cost=excess_cost,
            total_cost=base_cost + excess_cost,
            estimated_minutes=estimated_minutes,
        )
