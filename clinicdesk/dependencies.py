# clinicdesk/dependencies.py
"""
FastAPI providers for services and their external collaborators, plus the
subscription feature gates. Tests swap the collaborators through
``app.dependency_overrides``.
"""
import logging

from fastapi import Depends, status
from sqlalchemy.orm import Session

from . import models
from .database import get_db
from .exceptions import ApiError
from .security import ClinicContext, get_clinic_context
from .services.ai_assistant_service import AIAssistantService
from .services.email_service import EmailService, get_email_service
from .services.generative_client import GenerativeTextClient, get_ai_client
from .services.invoice_service import InvoiceService
from .services.payment_gateway import PaymentGateway, get_payment_gateway
from .services.plan_service import PlanService
from .services.subscription_service import SubscriptionService

logger = logging.getLogger(__name__)

INACTIVE_MESSAGES = {
    models.SubscriptionStatus.cancelled: "Your subscription has been cancelled. Please reactivate to continue.",
    models.SubscriptionStatus.past_due: "Your subscription payment is past due. Please update your payment method.",
    models.SubscriptionStatus.inactive: "Your subscription is inactive. Please contact support.",
}


# --- Service providers ---
def get_subscription_service(
    db: Session = Depends(get_db),
    gateway: PaymentGateway = Depends(get_payment_gateway)
) -> SubscriptionService:
    return SubscriptionService(db, gateway)


def get_invoice_service(
    db: Session = Depends(get_db),
    gateway: PaymentGateway = Depends(get_payment_gateway),
    email: EmailService = Depends(get_email_service)
) -> InvoiceService:
    return InvoiceService(db, gateway, email)


def get_ai_assistant_service(
    db: Session = Depends(get_db),
    ai_client: GenerativeTextClient = Depends(get_ai_client)
) -> AIAssistantService:
    return AIAssistantService(db, ai_client)


# --- Feature gates ---
def require_active_subscription(
    ctx: ClinicContext = Depends(get_clinic_context),
    db: Session = Depends(get_db)
) -> models.Subscription:
    subscription = SubscriptionService(db).check_subscription_status(ctx.clinic_id)
    if subscription.status in (models.SubscriptionStatus.active, models.SubscriptionStatus.trialing):
        return subscription
    logger.info(f"Clinic {ctx.clinic_id} blocked with subscription status {subscription.status.value}")
    raise ApiError(
        status.HTTP_403_FORBIDDEN,
        INACTIVE_MESSAGES.get(subscription.status, "Your subscription is not active.")
    )


def require_feature(feature: str):
    """Dependency factory gating a route on a plan feature flag."""
    def feature_dependency(
        ctx: ClinicContext = Depends(get_clinic_context),
        db: Session = Depends(get_db)
    ) -> models.Subscription:
        subscription = SubscriptionService(db).check_subscription_status(ctx.clinic_id)
        if subscription.status in (models.SubscriptionStatus.cancelled, models.SubscriptionStatus.inactive):
            raise ApiError(
                status.HTTP_403_FORBIDDEN,
                "Your subscription is not active. Please reactivate your subscription to access this feature."
            )
        if subscription.status == models.SubscriptionStatus.past_due:
            raise ApiError(
                status.HTTP_402_PAYMENT_REQUIRED,
                "Your subscription payment is past due. Please update your payment method to continue using this feature."
            )
        if not PlanService.check_feature_access(subscription.plan, feature):
            raise ApiError(
                status.HTTP_403_FORBIDDEN,
                f"This feature requires a higher plan. Your current plan ({subscription.plan.name}) does not "
                f"include {feature}. Please upgrade your subscription."
            )
        return subscription
    return feature_dependency
