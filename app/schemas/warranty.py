from pydantic import BaseModel, ConfigDict, EmailStr, Field, model_validator


class WarrantyLookupIn(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    brand: str = Field(min_length=1)
    serial_number: str | None = Field(default=None, alias="serialNumber")
    imei: str | None = None

    @model_validator(mode="after")
    def require_identifier(self) -> "WarrantyLookupIn":
        if not self.serial_number and not self.imei:
            raise ValueError("Serial number or IMEI required")
        return self


class WarrantyStatusIn(BaseModel):
    """Either paymentId, or at least one of email / serialNumber / imei."""
    model_config = ConfigDict(populate_by_name=True)

    payment_id: str | None = Field(default=None, alias="paymentId")
    email: EmailStr | None = None
    serial_number: str | None = Field(default=None, alias="serialNumber")
    imei: str | None = None

    @model_validator(mode="after")
    def require_criteria(self) -> "WarrantyStatusIn":
        if not (self.payment_id or self.email or self.serial_number or self.imei):
            raise ValueError("At least one search criteria required")
        return self
