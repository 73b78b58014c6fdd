# clinicdesk/routers/payments.py
import logging

from fastapi import APIRouter, Depends, Request

from .. import schemas
from ..dependencies import get_invoice_service, get_subscription_service
from ..services.invoice_service import InvoiceService
from ..services.payment_gateway import PaymentGateway, get_payment_gateway
from ..services.subscription_service import SubscriptionService

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/payments",
    tags=["Payments"],
)

SUBSCRIPTION_EVENTS = ("customer.subscription.created", "customer.subscription.updated")


@router.post("/webhook", response_model=schemas.WebhookAck)
async def stripe_webhook(
    request: Request,
    gateway: PaymentGateway = Depends(get_payment_gateway),
    invoices: InvoiceService = Depends(get_invoice_service),
    subscriptions: SubscriptionService = Depends(get_subscription_service)
):
    """
    Stripe webhook receiver. The signature is verified before any event is applied.
    """
    payload = await request.body()
    event = gateway.construct_event(payload, request.headers.get("stripe-signature"))
    event_type = event.get("type")
    data_object = (event.get("data") or {}).get("object") or {}
    logger.info(f"Stripe webhook received: {event_type} ({event.get('id')})")

    if event_type == "payment_intent.succeeded":
        invoices.mark_paid_from_webhook(data_object)
    elif event_type in SUBSCRIPTION_EVENTS:
        subscriptions.sync_from_stripe(data_object)
    elif event_type == "customer.subscription.deleted":
        subscriptions.sync_from_stripe(data_object, deleted=True)
    else:
        logger.debug(f"Unhandled Stripe event type: {event_type}")

    return {"received": True, "event_type": event_type}
