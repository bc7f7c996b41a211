"""Customer-related models."""

from datetime import datetime

from pydantic import BaseModel, Field

from comanda.models.order import utcnow


class CustomerProfile(BaseModel):
    """Locally cached customer profile, keyed by phone number.

    Used for convenience lookups on customer-facing screens only. It is not
    an identity: settlement always relies on the operator session.
    """

    phone: str = Field(min_length=7)
    name: str
    address: str | None = None
    lat: float | None = Field(default=None, ge=-90, le=90)
    lng: float | None = Field(default=None, ge=-180, le=180)
    updated_at: datetime = Field(default_factory=utcnow)
