"""Delivery coverage and pricing models."""

from pydantic import BaseModel, Field


class Location(BaseModel):
    """Geographic location."""

    lat: float = Field(ge=-90, le=90)
    lng: float = Field(ge=-180, le=180)


class RestaurantDeliveryConfig(BaseModel):
    """Delivery pricing configured by the restaurant owner."""

    origin_lat: float = Field(ge=-90, le=90)
    origin_lng: float = Field(ge=-180, le=180)
    base_distance_km: float = Field(ge=0)
    base_cost: int = Field(ge=0)
    per_km_excess_rate: int = Field(ge=0)
    max_coverage_km: float = Field(gt=0)
    preparation_minutes: int = Field(default=0, ge=0)
    active: bool = True

    @property
    def origin(self) -> Location:
        return Location(lat=self.origin_lat, lng=self.origin_lng)


class DeliveryQuote(BaseModel):
    """Fee breakdown for one candidate delivery location."""

    destination: Location | None = None
    distance_km: float = Field(ge=0)
    base_distance_km: float = Field(default=0.0, ge=0)
    excess_distance_km: float = Field(default=0.0, ge=0)
    base_cost: int = Field(default=0, ge=0)
    excess_cost: int = Field(default=0, ge=0)
    total_cost: int = Field(default=0, ge=0)
    estimated_minutes: int = Field(default=0, ge=0)
    out_of_coverage: bool = False
