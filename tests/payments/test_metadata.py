"""Payment metadata discriminated by `service`."""
from app.schemas.metadata import (
    OtherPurchase,
    RepairPurchase,
    WarrantyCheckPurchase,
    is_warranty_check_purchase,
    parse_payment_metadata,
)


def test_warranty_check_purchase_with_camel_case_keys():
    parsed = parse_payment_metadata({
        "service": "warranty-check",
        "brand": "APPLE",
        "serialNumber": "C02ABC",
        "deviceType": "laptop",
        "campaign": "oct",
    })
    assert isinstance(parsed, WarrantyCheckPurchase)
    assert parsed.serial_number == "C02ABC"
    assert parsed.device_type == "laptop"
    # unknown keys are preserved
    assert parsed.model_extra["campaign"] == "oct"


def test_repair_purchase():
    parsed = parse_payment_metadata({"service": "repair", "workOrderId": "wo_1"})
    assert isinstance(parsed, RepairPurchase)
    assert parsed.work_order_id == "wo_1"


def test_missing_discriminator_is_other():
    parsed = parse_payment_metadata({"note": "deposit"})
    assert isinstance(parsed, OtherPurchase)
    assert parsed.service is None
    assert parsed.raw == {"note": "deposit"}


def test_malformed_known_service_falls_back_to_other():
    parsed = parse_payment_metadata({"service": "warranty-check", "brand": ["not", "a", "string"]})
    assert isinstance(parsed, OtherPurchase)
    assert parsed.service == "warranty-check"


def test_none_and_helper():
    assert isinstance(parse_payment_metadata(None), OtherPurchase)
    assert is_warranty_check_purchase({"service": "warranty-check"}) is True
    assert is_warranty_check_purchase({"service": "repair"}) is False
