"""
Payment Reconciliation Module

Bridges the external payment gateway to the booking lifecycle:

- gateway.py: HMAC-SHA256 checksums, order codes, status-code mapping and
  the signed checkout request
- reconciliation.py: PaymentReconciliationService, which verifies webhooks,
  applies webhook and return-callback events idempotently and surfaces
  conflicting events as StaleConfirmationError
- router.py: create, webhook and browser callback endpoints
"""

from .router import router
from .reconciliation import PaymentReconciliationService
from .gateway import create_signature, verify_signature, map_gateway_status, generate_order_code

__all__ = [
    "router",
    "PaymentReconciliationService",
    "create_signature",
    "verify_signature",
    "map_gateway_status",
    "generate_order_code",
]
