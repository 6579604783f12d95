from decimal import Decimal
from typing import Any

from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator


class _CamelModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class InitializePaymentIn(_CamelModel):
    amount: Decimal = Field(gt=0)
    email: EmailStr
    work_order_id: str | None = Field(default=None, alias="workOrderId")
    provider: str | None = None
    metadata: dict[str, Any] = Field(default_factory=dict)

    @field_validator("provider")
    @classmethod
    def normalize_provider(cls, v: str | None) -> str | None:
        return v.lower().strip() if v else v


class InitializePaymentOut(_CamelModel):
    authorization_url: str = Field(serialization_alias="authorizationUrl")
    access_code: str | None = Field(default=None, serialization_alias="accessCode")
    reference: str
    payment_id: str = Field(serialization_alias="paymentId")


class VerifyPaymentIn(BaseModel):
    reference: str = Field(min_length=1)


class PaymentOut(BaseModel):
    id: str
    status: str
    amount: str
    currency: str
    metadata: dict[str, Any]
    createdAt: str | None


class VerifyPaymentOut(BaseModel):
    status: str
    amount: str | None
    payment: PaymentOut


class RefundIn(BaseModel):
    reason: str = Field(min_length=3, max_length=500)
