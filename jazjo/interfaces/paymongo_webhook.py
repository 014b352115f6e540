import json
import logging

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse
from starlette.concurrency import run_in_threadpool

from jazjo.core.config import settings
from jazjo.core.errors import NotFoundError, PayloadTooLargeError, ValidationError
from jazjo.infrastructure.paymongo_gateway import is_paid_event, parse_webhook_event
from jazjo.interfaces.dependencies import Services, get_services

router = APIRouter()
logger = logging.getLogger(__name__)

SIGNATURE_HEADER = "paymongo-signature"


@router.post("/paymongo/webhook")
@router.post("/payments/webhook")
async def paymongo_webhook(request: Request, services: Services = Depends(get_services)):
    """
    PayMongo webhook endpoint. Unauthenticated, so the HMAC over the raw body
    is the only gate; the body is never re-serialized before verification.
    """
    raw_body = await request.body()
    if len(raw_body) > settings.MAX_BODY_BYTES:
        raise PayloadTooLargeError()

    signature = request.headers.get(SIGNATURE_HEADER, "")
    if not services.gateway.verify_webhook_signature(raw_body, signature):
        logger.warning("PayMongo webhook: invalid signature")
        return JSONResponse(status_code=401, content={"error": "Invalid PayMongo signature"})

    try:
        payload = json.loads(raw_body) if raw_body else {}
    except ValueError as e:
        raise ValidationError("Webhook body is not valid JSON.") from e
    if not isinstance(payload, dict):
        raise ValidationError("Webhook body must be a JSON object.")

    event = parse_webhook_event(payload)
    logger.info("PayMongo webhook: event=%s type=%s resource=%s order=%s payment=%s",
                event.event_id, event.event_type, event.resource_id, event.order_code, event.payment_id)

    if is_paid_event(event):
        try:
            result = await run_in_threadpool(
                services.lifecycle.confirm_payment_from_webhook,
                order_code=event.order_code,
                checkout_session_id=event.resource_id,
                payment_id=event.payment_id,
                event_id=event.event_id,
                raw_payload=event.payload,
            )
        except NotFoundError:
            # Permanent: a retry cannot find the order either.
            logger.warning("PayMongo webhook: event %s matches no order (order=%s, resource=%s); acknowledged",
                           event.event_id, event.order_code, event.resource_id)
            return {"received": True}
        if result["duplicate"]:
            outcome = "was a duplicate"
        elif result["already_paid"]:
            outcome = "arrived for an order already paid"
        else:
            outcome = "marked the order paid"
        logger.info("PayMongo webhook: event %s %s", event.event_id, outcome)
    else:
        logger.info("PayMongo webhook: ignored event type %s", event.event_type)

    return {"received": True}
