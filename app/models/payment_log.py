from datetime import datetime, timezone
from uuid import uuid4

from sqlalchemy import Column, DateTime, ForeignKey, String

from app.db.base import Base, JSONType


class PaymentLog(Base):
    """Append-only trail of provider interactions for a payment."""

    __tablename__ = "payment_logs"

    id = Column(String, primary_key=True, default=lambda: str(uuid4()))
    payment_id = Column(String, ForeignKey("payments.id"), nullable=False, index=True)
    event = Column(String, nullable=False)  # initialized / verified / webhook_<event> / refunded
    response = Column(JSONType, nullable=False, default=dict)
    created_at = Column(DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc))
