"""
WorkOrder: repair ticket linking a user, a device and two orthogonal lifecycles:
the repair status and the payment status mirrored from the last verified Payment.
"""
from datetime import datetime, timezone
from uuid import uuid4

from sqlalchemy import Column, DateTime, ForeignKey, Numeric, String
from sqlalchemy.orm import relationship

from app.db.base import Base, JSONType


class WorkOrder(Base):
    __tablename__ = "work_orders"

    id = Column(String, primary_key=True, default=lambda: str(uuid4()))
    user_id = Column(String, ForeignKey("users.id"), nullable=False, index=True)
    device_id = Column(String, ForeignKey("devices.id"), nullable=True, index=True)
    status = Column(String, nullable=False, default="CREATED")        # repair lifecycle
    payment_status = Column(String, nullable=False, default="PENDING")  # PENDING / PAID / FAILED / REFUNDED
    payment_reference = Column(String, nullable=True)
    total_amount = Column(Numeric(12, 2), nullable=True)
    issue_description = Column(String, nullable=True)
    meta = Column("metadata", JSONType, nullable=False, default=dict)  # {"service": "warranty-check" | "repair", ...}
    created_at = Column(DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc))
    updated_at = Column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    user = relationship("User")
    device = relationship("Device")
