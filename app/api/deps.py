"""
FastAPI dependencies that assemble the payment / warranty services per request.
Tests override get_gateway_resolver and get_warranty_adapter.
"""
from typing import Callable

from fastapi import Depends
from sqlalchemy.orm import Session

from app.core.config import Settings, settings
from app.db.session import get_db
from app.services.idempotency import WebhookDeduplicator
from app.services.payment_gateways import GatewayFactory, PaymentGateway
from app.services.payments.service import PaymentService
from app.services.payments.verification import PaymentVerificationOrchestrator
from app.services.warranty import WarrantyLookupAdapter
from app.services.warranty_checks.service import WarrantyCheckService
from app.services.warranty_checks.status import StatusQueryService


def get_settings() -> Settings:
    return settings


def get_gateway_resolver(app_settings: Settings = Depends(get_settings)) -> Callable[[str], PaymentGateway]:
    def resolve(provider: str) -> PaymentGateway:
        return GatewayFactory.create_from_settings(app_settings, provider)
    return resolve


def get_warranty_adapter(app_settings: Settings = Depends(get_settings)) -> WarrantyLookupAdapter:
    return WarrantyLookupAdapter.from_settings(app_settings)


def get_deduplicator() -> WebhookDeduplicator:
    return WebhookDeduplicator()


def get_warranty_check_service(
    db: Session = Depends(get_db),
    adapter: WarrantyLookupAdapter = Depends(get_warranty_adapter),
) -> WarrantyCheckService:
    return WarrantyCheckService(db, adapter)


def get_orchestrator(
    db: Session = Depends(get_db),
    gateway_for: Callable[[str], PaymentGateway] = Depends(get_gateway_resolver),
    warranty_checks: WarrantyCheckService = Depends(get_warranty_check_service),
) -> PaymentVerificationOrchestrator:
    return PaymentVerificationOrchestrator(db, gateway_for, warranty_checks)


def get_payment_service(
    db: Session = Depends(get_db),
    app_settings: Settings = Depends(get_settings),
    gateway_for: Callable[[str], PaymentGateway] = Depends(get_gateway_resolver),
    orchestrator: PaymentVerificationOrchestrator = Depends(get_orchestrator),
    deduplicator: WebhookDeduplicator = Depends(get_deduplicator),
) -> PaymentService:
    return PaymentService(db, app_settings, gateway_for, orchestrator, deduplicator)


def get_status_service(
    db: Session = Depends(get_db),
    warranty_checks: WarrantyCheckService = Depends(get_warranty_check_service),
) -> StatusQueryService:
    return StatusQueryService(db, warranty_checks)
