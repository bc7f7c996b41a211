"""Settlement, tip and billing models."""

from datetime import datetime
from enum import Enum
from uuid import UUID, uuid4

from pydantic import BaseModel, Field

from comanda.models.order import InvoiceKind, Order, PaymentMethod, utcnow


class DocumentType(str, Enum):
    """Identity documents accepted on a tax invoice."""

    CC = "CC"
    NIT = "NIT"
    CE = "CE"
    PASSPORT = "PASSPORT"


class BillingDetail(BaseModel):
    """Billing data required to issue a formal invoice."""

    document_type: DocumentType | None = None
    document_number: str = ""
    legal_name: str = ""
    email: str = ""
    phone: str | None = None
    address: str | None = None

    def missing_fields(self) -> list[str]:
        """Required fields that are absent or blank."""
        missing = []
        if self.document_type is None:
            missing.append("document_type")
        for name in ("document_number", "legal_name", "email"):
            if not getattr(self, name).strip():
                missing.append(name)
        return missing

    @property
    def is_complete(self) -> bool:
        return not self.missing_fields()


class Payment(BaseModel):
    """Settlement record created together with the paid transition."""

    id: UUID = Field(default_factory=uuid4)
    order_id: UUID
    operator_id: str
    payment_method: PaymentMethod
    amount: int = Field(ge=0)
    tip: int = Field(default=0, ge=0)
    invoice_kind: InvoiceKind = InvoiceKind.NONE
    created_at: datetime = Field(default_factory=utcnow)


class TipRecord(BaseModel):
    """Gratuity attached to a payment."""

    payment_id: UUID
    amount: int = Field(ge=0)
    percentage: float | None = Field(default=None, ge=0)
    created_at: datetime = Field(default_factory=utcnow)


class SettlementReceipt(BaseModel):
    """What a successful checkout returns to the cashier."""

    order: Order
    payment: Payment
    final_total: int
    tip_registered: bool = False
    requires_printing: bool = False
