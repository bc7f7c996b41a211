"""Pure pricing calculators."""

from comanda.core.delivery_fee import DeliveryFeeCalculator, haversine_km, linear_eta
from comanda.core.tips import TipMode, TipSelection, fixed_tip, percentage_tip

__all__ = [
    "DeliveryFeeCalculator",
    "haversine_km",
    "linear_eta",
    "TipMode",
    "TipSelection",
    "fixed_tip",
    "percentage_tip",
]
