"""
Payment model: one provider transaction.
provider_reference is assigned at initialization and never changes; rows are
never deleted (financial record).
"""
from datetime import datetime, timezone
from enum import Enum
from uuid import uuid4

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Numeric, String, UniqueConstraint
from sqlalchemy.orm import relationship

from app.db.base import Base, JSONType


class PaymentStatus(str, Enum):
    PENDING = "PENDING"
    PAID = "PAID"
    FAILED = "FAILED"
    REFUNDED = "REFUNDED"


class PaymentProvider(str, Enum):
    PAYSTACK = "paystack"
    ETEGRAM = "etegram"
    FLUTTERWAVE = "flutterwave"


# Forward-only transitions
ALLOWED_TRANSITIONS: dict[PaymentStatus, frozenset[PaymentStatus]] = {
    PaymentStatus.PENDING: frozenset({PaymentStatus.PAID, PaymentStatus.FAILED}),
    PaymentStatus.PAID: frozenset({PaymentStatus.REFUNDED}),
    PaymentStatus.FAILED: frozenset(),
    PaymentStatus.REFUNDED: frozenset(),
}


def can_transition(current: str, target: str) -> bool:
    return PaymentStatus(target) in ALLOWED_TRANSITIONS[PaymentStatus(current)]


class Payment(Base):
    __tablename__ = "payments"
    __table_args__ = (
        UniqueConstraint("provider", "provider_reference", name="uq_payments_provider_reference"),
    )

    id = Column(String, primary_key=True, default=lambda: str(uuid4()))
    work_order_id = Column(String, ForeignKey("work_orders.id"), nullable=True, index=True)
    user_id = Column(String, ForeignKey("users.id"), nullable=False, index=True)
    amount = Column(Numeric(12, 2), nullable=False)
    currency = Column(String, nullable=False, default="NGN")
    provider = Column(String, nullable=False, default=PaymentProvider.PAYSTACK.value)
    provider_reference = Column(String, nullable=False, index=True)
    access_code = Column(String, nullable=True)
    authorization_code = Column(String, nullable=True)
    status = Column(String, nullable=False, default=PaymentStatus.PENDING.value)
    webhook_verified = Column(Boolean, nullable=False, default=False)
    webhook_verified_at = Column(DateTime(timezone=True), nullable=True)
    meta = Column("metadata", JSONType, nullable=False, default=dict)
    created_at = Column(DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc))
    refunded_at = Column(DateTime(timezone=True), nullable=True)

    work_order = relationship("WorkOrder")
    user = relationship("User")

    def to_public_dict(self) -> dict:
        """Subset exposed to unauthenticated callers and in verify responses."""
        return {
            "id": self.id,
            "status": self.status,
            "amount": str(self.amount),
            "currency": self.currency,
            "metadata": self.meta or {},
            "createdAt": self.created_at.isoformat() if self.created_at else None,
        }
