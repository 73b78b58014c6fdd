# clinicdesk/services/subscription_service.py
"""
Subscription lifecycle, plan limits and trials.

Every clinic has exactly one subscription row (unique ``clinic_id``).  A row
is provisioned on the free plan when the clinic is created and, failing that,
the first time :meth:`SubscriptionService.check_subscription_status` runs.
Trials put the clinic on the professional plan; once ``trial_end`` passes the
clinic drops back to the free plan, either on the next status check or when
the batch job :meth:`TrialService.process_expired_trials` runs.
"""
import logging
import math
from datetime import datetime, timedelta, timezone
from typing import Optional, Dict, Any, List

from fastapi import status
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from .. import models, schemas
from ..config import get_settings
from ..exceptions import ApiError
from ..utils import utcnow, as_utc
from .payment_gateway import PaymentGateway
from .plan_service import PlanService

logger = logging.getLogger(__name__)

BILLING_PERIOD_DAYS = 30

# Stripe subscription states mapped onto ours
STRIPE_STATUS_MAP = {
    "active": models.SubscriptionStatus.active,
    "trialing": models.SubscriptionStatus.trialing,
    "past_due": models.SubscriptionStatus.past_due,
    "unpaid": models.SubscriptionStatus.past_due,
    "canceled": models.SubscriptionStatus.cancelled,
    "incomplete_expired": models.SubscriptionStatus.cancelled,
    "incomplete": models.SubscriptionStatus.inactive,
    "paused": models.SubscriptionStatus.inactive,
}


class SubscriptionService:

    def __init__(self, db: Session, gateway: Optional[PaymentGateway] = None):
        self.db = db
        self.gateway = gateway
        self.plans = PlanService(db)

    def _query(self):
        return self.db.query(models.Subscription)

    def get_subscription(self, subscription_id: int) -> models.Subscription:
        subscription = self._query().filter(models.Subscription.id == subscription_id).first()
        if subscription is None:
            raise ApiError(status.HTTP_404_NOT_FOUND, "Subscription not found")
        return subscription

    def get_subscription_by_clinic_id(self, clinic_id: int) -> models.Subscription:
        subscription = self._query().filter(models.Subscription.clinic_id == clinic_id).first()
        if subscription is None:
            raise ApiError(status.HTTP_404_NOT_FOUND, "Subscription not found")
        return subscription

    def create_subscription(self, data: schemas.SubscriptionCreate) -> models.Subscription:
        if self._query().filter(models.Subscription.clinic_id == data.clinic_id).first():
            raise ApiError(status.HTTP_409_CONFLICT, "Clinic already has a subscription")
        if self.db.query(models.Clinic).filter(models.Clinic.id == data.clinic_id).first() is None:
            raise ApiError(status.HTTP_404_NOT_FOUND, "Clinic not found")
        self.plans.get_plan(data.plan_id)

        subscription = models.Subscription(**data.model_dump())
        self.db.add(subscription)
        try:
            self.db.commit()
        except IntegrityError:
            self.db.rollback()
            raise ApiError(status.HTTP_409_CONFLICT, "Clinic already has a subscription")
        self.db.refresh(subscription)
        logger.info(f"Subscription {subscription.id} created for clinic {subscription.clinic_id}")
        return subscription

    def apply_changes(self, subscription: models.Subscription, **fields) -> models.Subscription:
        for key, value in fields.items():
            setattr(subscription, key, value)
        self.db.commit()
        self.db.refresh(subscription)
        return subscription

    def update_subscription(self, subscription_id: int, data: schemas.SubscriptionUpdate) -> models.Subscription:
        subscription = self.get_subscription(subscription_id)
        fields = data.model_dump(exclude_unset=True)
        if fields.get("plan_id") is not None:
            self.plans.get_plan(fields["plan_id"])
        return self.apply_changes(subscription, **fields)

    def assign_default_subscription(self, clinic_id: int) -> models.Subscription:
        """Insert the free-plan row; a concurrent insert that wins is re-read instead."""
        try:
            free_plan = self.plans.get_plan_by_type(models.PlanType.free)
        except ApiError as e:
            logger.error(f"Failed to assign default subscription to clinic {clinic_id}: {e.message}")
            raise ApiError(status.HTTP_500_INTERNAL_SERVER_ERROR, "Failed to assign default subscription")

        subscription = models.Subscription(
            clinic_id=clinic_id,
            plan_id=free_plan.id,
            status=models.SubscriptionStatus.active,
        )
        self.db.add(subscription)
        try:
            self.db.commit()
        except IntegrityError:
            self.db.rollback()
            existing = self._query().filter(models.Subscription.clinic_id == clinic_id).first()
            if existing is None:
                raise
            return existing
        self.db.refresh(subscription)
        logger.info(f"Assigned free plan to clinic {clinic_id}")
        return subscription

    def check_subscription_status(self, clinic_id: int) -> models.Subscription:
        """Current subscription with an expired trial already downgraded."""
        subscription = self._query().filter(models.Subscription.clinic_id == clinic_id).first()
        if subscription is None:
            return self.assign_default_subscription(clinic_id)

        trial_end = as_utc(subscription.trial_end)
        if subscription.status == models.SubscriptionStatus.trialing and trial_end and trial_end < utcnow():
            free_plan = self.plans.get_plan_by_type(models.PlanType.free)
            self.apply_changes(subscription, plan_id=free_plan.id, status=models.SubscriptionStatus.active)
            logger.info(f"Trial expired for clinic {clinic_id}; downgraded to free plan")
        return subscription

    def cancel_subscription(self, clinic_id: int) -> models.Subscription:
        subscription = self.get_subscription_by_clinic_id(clinic_id)
        if subscription.status == models.SubscriptionStatus.cancelled:
            raise ApiError(status.HTTP_400_BAD_REQUEST, "Subscription is already cancelled")
        if subscription.stripe_subscription_id and self.gateway is not None and self.gateway.enabled:
            self.gateway.cancel_subscription(subscription.stripe_subscription_id)

        self.apply_changes(subscription, status=models.SubscriptionStatus.cancelled, cancelled_at=utcnow())
        logger.info(f"Subscription for clinic {clinic_id} cancelled")
        return subscription

    def upgrade_subscription(self, clinic_id: int, plan_type: models.PlanType) -> models.Subscription:
        subscription = self.check_subscription_status(clinic_id)
        plan = self.plans.get_plan_by_type(plan_type)
        if not plan.is_active:
            raise ApiError(status.HTTP_400_BAD_REQUEST, f"{plan.name} is not available")
        if plan.id == subscription.plan_id and subscription.status == models.SubscriptionStatus.active:
            raise ApiError(status.HTTP_400_BAD_REQUEST, f"Clinic is already on the {plan.name}")
        if plan.price > 0 and not subscription.stripe_customer_id:
            raise ApiError(
                status.HTTP_400_BAD_REQUEST,
                "A billing account is required to upgrade to a paid plan. Please add a payment method first."
            )

        now = utcnow()
        self.apply_changes(
            subscription,
            plan_id=plan.id,
            status=models.SubscriptionStatus.active,
            current_period_start=now,
            current_period_end=now + timedelta(days=BILLING_PERIOD_DAYS),
            cancelled_at=None,
        )
        logger.info(f"Clinic {clinic_id} moved to {plan.type.value} plan")
        return subscription

    def list_subscriptions(self, page: int = 1, limit: int = 10,
                           status_filter: Optional[models.SubscriptionStatus] = None,
                           plan_type: Optional[models.PlanType] = None) -> Dict[str, Any]:
        query = self._query()
        if status_filter:
            query = query.filter(models.Subscription.status == status_filter)
        if plan_type:
            query = query.join(models.Plan).filter(models.Plan.type == plan_type)

        total = query.count()
        items = (
            query.order_by(models.Subscription.created_at.desc(), models.Subscription.id.desc())
            .offset((page - 1) * limit)
            .limit(limit)
            .all()
        )
        return {"items": items, "total": total, "page": page, "limit": limit}

    def sync_from_stripe(self, stripe_subscription: Dict[str, Any], deleted: bool = False) -> Optional[models.Subscription]:
        """Apply a ``customer.subscription.*`` webhook object to the matching row."""
        stripe_id = stripe_subscription.get("id")
        customer_id = stripe_subscription.get("customer")
        subscription = None
        if stripe_id:
            subscription = self._query().filter(models.Subscription.stripe_subscription_id == stripe_id).first()
        if subscription is None and customer_id:
            subscription = self._query().filter(models.Subscription.stripe_customer_id == customer_id).first()
        if subscription is None:
            logger.warning(f"No subscription matches Stripe subscription {stripe_id} / customer {customer_id}")
            return None

        fields: Dict[str, Any] = {"stripe_subscription_id": stripe_id}
        if deleted:
            fields.update(status=models.SubscriptionStatus.cancelled, cancelled_at=utcnow())
        else:
            mapped = STRIPE_STATUS_MAP.get(stripe_subscription.get("status"))
            if mapped is not None:
                fields["status"] = mapped
        for key in ("current_period_start", "current_period_end"):
            ts = stripe_subscription.get(key)
            if ts:
                fields[key] = datetime.fromtimestamp(ts, tz=timezone.utc)

        self.apply_changes(subscription, **fields)
        logger.info(f"Subscription {subscription.id} synced from Stripe: status={subscription.status.value}")
        return subscription


class LimitService:
    """Client and clinician quotas derived from the clinic's plan (0 = unlimited)."""

    def __init__(self, db: Session):
        self.db = db
        self.subscriptions = SubscriptionService(db)

    @staticmethod
    def _check(current_count: int, limit: int) -> Dict[str, Any]:
        is_unlimited = limit == 0
        return {
            "can_add": is_unlimited or current_count < limit,
            "current_count": current_count,
            "limit": limit,
            "is_unlimited": is_unlimited,
        }

    def count_clients(self, clinic_id: int) -> int:
        return self.db.query(models.Client).filter(
            models.Client.clinic_id == clinic_id,
            models.Client.status != models.ClientStatus.inactive,
        ).count()

    def count_clinicians(self, clinic_id: int) -> int:
        return self.db.query(models.ClinicMember).filter(
            models.ClinicMember.clinic_id == clinic_id,
            models.ClinicMember.role.in_([models.MemberRole.admin, models.MemberRole.clinician]),
        ).count()

    def check_client_limit(self, clinic_id: int) -> Dict[str, Any]:
        subscription = self.subscriptions.check_subscription_status(clinic_id)
        result = self._check(self.count_clients(clinic_id), subscription.plan.client_limit)
        return {
            "can_add_client": result["can_add"],
            "current_count": result["current_count"],
            "limit": result["limit"],
            "is_unlimited": result["is_unlimited"],
        }

    def enforce_client_limit(self, clinic_id: int) -> Dict[str, Any]:
        check = self.check_client_limit(clinic_id)
        if not check["can_add_client"]:
            logger.info(f"Clinic {clinic_id} refused a client at {check['current_count']}/{check['limit']}")
            raise ApiError(
                status.HTTP_403_FORBIDDEN,
                f"Client limit reached. Your plan allows {check['limit']} clients and you currently have "
                f"{check['current_count']} clients. Please upgrade your plan to add more clients."
            )
        return check

    def check_clinician_limit(self, clinic_id: int) -> Dict[str, Any]:
        subscription = self.subscriptions.check_subscription_status(clinic_id)
        result = self._check(self.count_clinicians(clinic_id), subscription.plan.clinician_limit)
        return {
            "can_add_clinician": result["can_add"],
            "current_count": result["current_count"],
            "limit": result["limit"],
            "is_unlimited": result["is_unlimited"],
        }

    def enforce_clinician_limit(self, clinic_id: int) -> Dict[str, Any]:
        check = self.check_clinician_limit(clinic_id)
        if not check["can_add_clinician"]:
            raise ApiError(
                status.HTTP_403_FORBIDDEN,
                f"Clinician limit reached. Your plan allows {check['limit']} clinicians and you currently have "
                f"{check['current_count']} clinicians. Please upgrade your plan to add more clinicians."
            )
        return check

    def get_usage_stats(self, clinic_id: int) -> Dict[str, Any]:
        subscription = self.subscriptions.check_subscription_status(clinic_id)
        plan = subscription.plan
        return {
            "clients": self._check(self.count_clients(clinic_id), plan.client_limit),
            "clinicians": self._check(self.count_clinicians(clinic_id), plan.clinician_limit),
            "plan": {
                "name": plan.name,
                "type": plan.type,
                "price": plan.price,
                "features": plan.features or {},
            },
            "subscription": {
                "status": subscription.status,
                "trial_end": subscription.trial_end,
                "current_period_end": subscription.current_period_end,
            },
        }


class TrialService:

    def __init__(self, db: Session):
        self.db = db
        self.subscriptions = SubscriptionService(db)
        self.plans = PlanService(db)

    def process_expired_trials(self) -> Dict[str, Any]:
        """Downgrade every trial whose end has passed; one failure does not stop the batch."""
        now = utcnow()
        expired: List[models.Subscription] = (
            self.db.query(models.Subscription)
            .filter(
                models.Subscription.status == models.SubscriptionStatus.trialing,
                models.Subscription.trial_end < now,
            )
            .order_by(models.Subscription.id)
            .all()
        )
        if not expired:
            logger.info("No expired trials found")
            return {"processed": 0, "successful": 0, "failed": 0, "results": []}

        logger.info(f"Found {len(expired)} expired trials to process")
        free_plan = self.plans.get_plan_by_type(models.PlanType.free)

        results = []
        for subscription in expired:
            clinic_id = subscription.clinic_id
            clinic_name = subscription.clinic.name if subscription.clinic else None
            previous_plan = subscription.plan.name if subscription.plan else None
            try:
                self.subscriptions.apply_changes(
                    subscription,
                    plan_id=free_plan.id,
                    status=models.SubscriptionStatus.active,
                    trial_start=None,
                    trial_end=None,
                )
                results.append({
                    "success": True,
                    "clinic_id": clinic_id,
                    "clinic_name": clinic_name,
                    "previous_plan": previous_plan,
                    "new_plan": free_plan.name,
                })
                logger.info(f"Downgraded clinic {clinic_name} from trial to free plan")
            except Exception as e:
                self.db.rollback()
                results.append({
                    "success": False,
                    "clinic_id": clinic_id,
                    "clinic_name": clinic_name,
                    "error": str(e),
                })
                logger.error(f"Failed to downgrade clinic {clinic_name}: {e}")

        successful = sum(1 for r in results if r["success"])
        failed = len(results) - successful
        logger.info(f"Trial processing completed: {successful} successful, {failed} failed")
        return {
            "processed": len(expired),
            "successful": successful,
            "failed": failed,
            "results": results,
        }

    def check_trial_eligibility(self, clinic_id: int) -> Dict[str, Any]:
        subscription = self.subscriptions.check_subscription_status(clinic_id)
        has_had_trial = subscription.trial_start is not None or subscription.trial_end is not None
        return {
            "eligible": not has_had_trial,
            "reason": "Trial already used" if has_had_trial else None,
        }

    def get_trial_status(self, clinic_id: int) -> Dict[str, Any]:
        subscription = self.subscriptions.get_subscription_by_clinic_id(clinic_id)
        if subscription.status != models.SubscriptionStatus.trialing:
            return {
                "is_trialing": False,
                "trial_start": None,
                "trial_end": None,
                "days_remaining": 0,
                "is_expired": False,
            }

        now = utcnow()
        trial_end = as_utc(subscription.trial_end)
        days_remaining = 0
        if trial_end:
            days_remaining = max(0, math.ceil((trial_end - now).total_seconds() / 86400))
        return {
            "is_trialing": True,
            "trial_start": subscription.trial_start,
            "trial_end": subscription.trial_end,
            "days_remaining": days_remaining,
            "is_expired": bool(trial_end and now > trial_end),
        }

    def start_trial(self, clinic_id: int, duration_days: Optional[int] = None) -> models.Subscription:
        duration_days = duration_days or get_settings().trial_duration_days
        eligibility = self.check_trial_eligibility(clinic_id)
        if not eligibility["eligible"]:
            raise ApiError(status.HTTP_400_BAD_REQUEST, eligibility["reason"] or "Not eligible for trial")

        professional = self.plans.get_plan_by_type(models.PlanType.professional)
        subscription = self.subscriptions.get_subscription_by_clinic_id(clinic_id)
        trial_start = utcnow()
        self.subscriptions.apply_changes(
            subscription,
            plan_id=professional.id,
            status=models.SubscriptionStatus.trialing,
            trial_start=trial_start,
            trial_end=trial_start + timedelta(days=duration_days),
        )
        logger.info(f"Started {duration_days}-day trial for clinic {clinic_id}")
        return subscription
