"""Tip resolution for checkout."""

from decimal import Decimal
from enum import Enum

from pydantic import BaseModel

from comanda.core.delivery_fee import round_half_up
from comanda.errors import InvalidTip


class TipMode(str, Enum):
    NONE = "none"
    PERCENTAGE = "percentage"
    FIXED = "fixed"


def percentage_tip(subtotal: int, percentage: float) -> int:
    """Tip as a percentage of the product subtotal, rounded half-up."""
    if percentage < 0:
        raise InvalidTip("Tip percentage cannot be negative", percentage=percentage)
    if subtotal < 0:
        raise InvalidTip("Subtotal cannot be negative", subtotal=subtotal)
    return round_half_up(Decimal(str(percentage)) / 100 * subtotal)


def fixed_tip(amount: int) -> int:
    """Explicit tip amount, passed through once validated."""
    if isinstance(amount, bool) or not isinstance(amount, int):
        raise InvalidTip("Tip amount must be a whole number", amount=amount)
    if amount < 0:
        raise InvalidTip("Tip amount cannot be negative", amount=amount)
    return amount


def implied_percentage(tip: int, subtotal: int) -> float | None:
    """Percentage of the subtotal a tip represents, to two decimals."""
    if subtotal <= 0:
        return None
    return round(tip / subtotal * 100, 2)


class TipSelection(BaseModel):
    """The cashier's current tip choice. The last selection wins."""

    subtotal: int
    mode: TipMode = TipMode.NONE
    percentage: float | None = None
    amount: int = 0

    def select_percentage(self, percentage: float) -> int:
        if percentage == 0:
            return self.clear()
        self.amount = percentage_tip(self.subtotal, percentage)
        self.percentage = percentage
        self.mode = TipMode.PERCENTAGE
        return self.amount

    def select_fixed(self, amount: int) -> int:
        if amount == 0:
            return self.clear()
        self.amount = fixed_tip(amount)
        self.percentage = None
        self.mode = TipMode.FIXED
        return self.amount

    def clear(self) -> int:
        self.mode = TipMode.NONE
        self.percentage = None
        self.amount = 0
        return 0

    @property
    def recorded_percentage(self) -> float | None:
        """Percentage stored with the tip record."""
        if self.mode == TipMode.PERCENTAGE:
            return self.percentage
        if self.mode == TipMode.FIXED:
            return implied_percentage(self.amount, self.subtotal)
        return None
