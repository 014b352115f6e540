"""
PayMongo adapter: hosted checkout sessions for QRPH and webhook signatures.

Signature header format: `t=<unix ts>,te=<test sig>,li=<live sig>`, where each
signature is hex HMAC-SHA256(secret, "<t>.<raw body>").
"""
import hashlib
import hmac
import logging
from typing import Any, Dict, List, Optional

import httpx

from jazjo.core.config import is_configured, settings
from jazjo.core.errors import ConfigurationError, UpstreamError
from jazjo.domain.schemas import CheckoutLineItem, CheckoutSession, WebhookEvent
from jazjo.interfaces.IPaymentGateway import IPaymentGateway

logger = logging.getLogger(__name__)

PAID_EVENT_TYPES = ("checkout_session.payment.paid", "payment.paid")


def parse_signature_header(header_value: Optional[str]) -> Dict[str, str]:
    parts = {}
    for part in str(header_value or "").split(","):
        key, sep, value = part.partition("=")
        if sep and key.strip() and value.strip():
            parts[key.strip()] = value.strip()
    return parts


def compute_signature(secret: str, timestamp: str, raw_body: bytes) -> str:
    signed = timestamp.encode() + b"." + raw_body
    return hmac.new(secret.encode(), signed, hashlib.sha256).hexdigest()


def _first_payment(attributes: Dict[str, Any]) -> Optional[Dict[str, Any]]:
    payments = attributes.get("payments")
    if isinstance(payments, list) and payments:
        return payments[0]
    intent = attributes.get("payment_intent") or {}
    intent_payments = (intent.get("attributes") or {}).get("payments")
    if isinstance(intent_payments, list) and intent_payments:
        return intent_payments[0]
    return None


def parse_webhook_event(event: Dict[str, Any]) -> WebhookEvent:
    """
    Pulls the fields reconciliation needs out of a PayMongo event envelope.
    Checkout-session and payment events nest them differently.
    """
    data = event.get("data") or {}
    data_attr = data.get("attributes") or {}
    resource = data_attr.get("data") or data_attr.get("resource") or event.get("resource") or {}
    resource_attr = resource.get("attributes") or {}
    metadata = (
        resource_attr.get("metadata")
        or (resource_attr.get("checkout_session") or {}).get("metadata")
        or (resource_attr.get("checkout") or {}).get("metadata")
        or {}
    )
    payment = _first_payment(resource_attr) or {}
    payment_id = payment.get("id") or (payment.get("attributes") or {}).get("id")

    return WebhookEvent(
        event_id=str(data.get("id") or event.get("id") or ""),
        event_type=str(data_attr.get("type") or event.get("type") or ""),
        resource_id=resource.get("id"),
        order_code=metadata.get("order_code"),
        payment_id=payment_id,
        payload=event,
    )


def is_paid_event(event: WebhookEvent) -> bool:
    return event.event_type in PAID_EVENT_TYPES


class PayMongoGateway(IPaymentGateway):
    def __init__(self, secret_key: str = None, webhook_secret: str = None, api_base: str = None,
                 timeout: float = None, transport: httpx.BaseTransport = None):
        self.secret_key = secret_key if secret_key is not None else settings.PAYMONGO_SECRET_KEY
        self.webhook_secret = webhook_secret if webhook_secret is not None else settings.PAYMONGO_WEBHOOK_SECRET
        self.http = httpx.Client(
            base_url=(api_base or settings.PAYMONGO_API_BASE).rstrip("/"),
            timeout=timeout or settings.HTTP_TIMEOUT_SECONDS,
            transport=transport,
        )

    def close(self):
        self.http.close()

    def create_checkout_session(self, order_code: str, line_items: List[CheckoutLineItem],
                                success_url: str, cancel_url: str) -> CheckoutSession:
        if not is_configured(self.secret_key):
            raise ConfigurationError("PayMongo secret key is missing or placeholder.")

        payload = {
            "data": {
                "attributes": {
                    "payment_method_types": ["qrph"],
                    "line_items": [item.model_dump() for item in line_items],
                    "success_url": success_url,
                    "cancel_url": cancel_url,
                    "metadata": {"order_code": order_code},
                }
            }
        }
        try:
            response = self.http.post("/checkout_sessions", json=payload, auth=(self.secret_key, ""))
        except httpx.HTTPError as e:
            logger.error("PayMongo checkout session request failed for %s", order_code, exc_info=True)
            raise UpstreamError("Failed to create PayMongo checkout session") from e

        try:
            data = response.json()
        except ValueError:
            data = {}
        if not isinstance(data, dict):
            data = {}
        if response.is_error:
            errors = data.get("errors") or [{}]
            logger.error("PayMongo checkout session for %s rejected (%s): %s",
                         order_code, response.status_code, errors[0].get("detail") or data)
            raise UpstreamError("Failed to create PayMongo checkout session")

        session = data.get("data") or {}
        checkout = CheckoutSession(
            session_id=session.get("id"),
            checkout_url=(session.get("attributes") or {}).get("checkout_url"),
        )
        logger.info("PayMongo checkout session %s created for %s", checkout.session_id, order_code)
        return checkout

    def verify_webhook_signature(self, raw_body: bytes, signature_header: str) -> bool:
        if not is_configured(self.webhook_secret):
            logger.error("PayMongo webhook secret not configured; rejecting webhook.")
            return False

        parts = parse_signature_header(signature_header)
        timestamp = parts.get("t", "")
        candidates = [c for c in (parts.get("te"), parts.get("li")) if c]
        if not timestamp or not candidates:
            return False

        expected = compute_signature(self.webhook_secret, timestamp, raw_body)
        return any(hmac.compare_digest(candidate, expected) for candidate in candidates)
