"""
WarrantyCheck: one lookup against a manufacturer warranty / device-status API.

At most one check per work order may be created by the automatic payment path;
the partial unique index below enforces it at the database level.
"""
from datetime import datetime, timezone
from enum import Enum
from uuid import uuid4

from sqlalchemy import Column, DateTime, ForeignKey, Index, String, Text, text
from sqlalchemy.orm import relationship

from app.db.base import Base, JSONType


class WarrantyCheckStatus(str, Enum):
    QUEUED = "QUEUED"
    IN_PROGRESS = "IN_PROGRESS"
    SUCCESS = "SUCCESS"
    FAILED = "FAILED"
    MANUAL_REQUIRED = "MANUAL_REQUIRED"


OPEN_STATUSES = frozenset({WarrantyCheckStatus.QUEUED.value, WarrantyCheckStatus.IN_PROGRESS.value})

INITIATED_BY_PAYMENT_VERIFY = "payment_verify"
INITIATED_BY_PAYMENT_AUTO = "payment_auto"
INITIATED_BY_PUBLIC = "public"
INITIATED_BY_ADMIN_RETRY = "admin_retry"

AUTO_INITIATORS = (INITIATED_BY_PAYMENT_VERIFY, INITIATED_BY_PAYMENT_AUTO)

_AUTO_PREDICATE = text("initiated_by IN ('payment_verify', 'payment_auto')")


class WarrantyCheck(Base):
    __tablename__ = "warranty_checks"
    __table_args__ = (
        Index(
            "uq_warranty_checks_auto_work_order",
            "work_order_id",
            unique=True,
            postgresql_where=_AUTO_PREDICATE,
            sqlite_where=_AUTO_PREDICATE,
        ),
    )

    id = Column(String, primary_key=True, default=lambda: str(uuid4()))
    work_order_id = Column(String, ForeignKey("work_orders.id"), nullable=True, index=True)
    provider = Column(String, nullable=False)  # apple / dell / samsung / hp / custom
    initiated_by = Column(String, nullable=False)
    status = Column(String, nullable=False, default=WarrantyCheckStatus.QUEUED.value)
    warranty_status = Column(String, nullable=True)
    warranty_expiry = Column(DateTime(timezone=True), nullable=True)
    purchase_date = Column(DateTime(timezone=True), nullable=True)
    coverage_start = Column(DateTime(timezone=True), nullable=True)
    coverage_end = Column(DateTime(timezone=True), nullable=True)
    device_status = Column(String, nullable=True)
    result = Column(JSONType, nullable=True)
    error_message = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc))
    updated_at = Column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )
    finished_at = Column(DateTime(timezone=True), nullable=True)

    work_order = relationship("WorkOrder")

    def to_dict(self) -> dict:
        def _iso(value):
            return value.isoformat() if value else None

        return {
            "id": self.id,
            "workOrderId": self.work_order_id,
            "provider": self.provider,
            "initiatedBy": self.initiated_by,
            "status": self.status,
            "warrantyStatus": self.warranty_status,
            "warrantyExpiry": _iso(self.warranty_expiry),
            "purchaseDate": _iso(self.purchase_date),
            "coverageStart": _iso(self.coverage_start),
            "coverageEnd": _iso(self.coverage_end),
            "deviceStatus": self.device_status,
            "result": self.result,
            "errorMessage": self.error_message,
            "createdAt": _iso(self.created_at),
            "finishedAt": _iso(self.finished_at),
        }
