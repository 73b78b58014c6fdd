# clinicdesk/routers/subscriptions.py
from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session
from typing import Optional

from .. import schemas, security, models
from ..database import get_db
from ..dependencies import get_subscription_service
from ..security import ClinicContext
from ..services.notification_service import NotificationService, get_notification_template
from ..services.subscription_service import SubscriptionService, LimitService, TrialService

router = APIRouter(
    prefix="/subscriptions",
    tags=["Subscriptions"],
    dependencies=[Depends(security.get_current_user)],
    responses={404: {"description": "Not found"}},
)

require_subscription_right = security.require_clinic_permission("subscription")


def _notify(db: Session, clinic_id: int, sub_type: str, *args):
    template = get_notification_template(models.NotificationType.subscription, sub_type, *args)
    NotificationService(db).notify_clinic(
        clinic_id, template["title"], template["message"], models.NotificationType.subscription
    )


def _limit_check(check: dict) -> dict:
    return {
        "can_add": check.get("can_add_client", check.get("can_add_clinician")),
        "current_count": check["current_count"],
        "limit": check["limit"],
        "is_unlimited": check["is_unlimited"],
    }


# --- Current clinic ---
@router.get("/me", response_model=schemas.SubscriptionResponse)
def read_my_subscription(
    service: SubscriptionService = Depends(get_subscription_service),
    ctx: ClinicContext = Depends(security.get_clinic_context)
):
    """
    The clinic's subscription; an expired trial is downgraded before it is returned.
    """
    return service.check_subscription_status(ctx.clinic_id)


@router.get("/me/usage", response_model=schemas.UsageStatsResponse)
def read_usage(db: Session = Depends(get_db), ctx: ClinicContext = Depends(security.get_clinic_context)):
    return LimitService(db).get_usage_stats(ctx.clinic_id)


@router.get("/me/limits/clients", response_model=schemas.LimitCheck)
def read_client_limit(db: Session = Depends(get_db), ctx: ClinicContext = Depends(security.get_clinic_context)):
    return _limit_check(LimitService(db).check_client_limit(ctx.clinic_id))


@router.get("/me/limits/clinicians", response_model=schemas.LimitCheck)
def read_clinician_limit(db: Session = Depends(get_db), ctx: ClinicContext = Depends(security.get_clinic_context)):
    return _limit_check(LimitService(db).check_clinician_limit(ctx.clinic_id))


@router.post("/me/upgrade", response_model=schemas.SubscriptionResponse)
def upgrade_subscription(
    payload: schemas.UpgradeRequest,
    db: Session = Depends(get_db),
    service: SubscriptionService = Depends(get_subscription_service),
    ctx: ClinicContext = Depends(require_subscription_right)
):
    subscription = service.upgrade_subscription(ctx.clinic_id, payload.plan_type)
    _notify(db, ctx.clinic_id, "upgraded", subscription.plan.name)
    return subscription


@router.post("/me/cancel", response_model=schemas.SubscriptionResponse)
def cancel_subscription(
    db: Session = Depends(get_db),
    service: SubscriptionService = Depends(get_subscription_service),
    ctx: ClinicContext = Depends(require_subscription_right)
):
    subscription = service.cancel_subscription(ctx.clinic_id)
    _notify(db, ctx.clinic_id, "cancelled")
    return subscription


@router.get("/me/trial", response_model=schemas.TrialStatusResponse)
def read_trial_status(db: Session = Depends(get_db), ctx: ClinicContext = Depends(security.get_clinic_context)):
    return TrialService(db).get_trial_status(ctx.clinic_id)


@router.get("/me/trial/eligibility", response_model=schemas.TrialEligibilityResponse)
def read_trial_eligibility(db: Session = Depends(get_db), ctx: ClinicContext = Depends(security.get_clinic_context)):
    return TrialService(db).check_trial_eligibility(ctx.clinic_id)


@router.post("/me/trial", response_model=schemas.SubscriptionResponse)
def start_trial(
    payload: Optional[schemas.StartTrialRequest] = None,
    db: Session = Depends(get_db),
    ctx: ClinicContext = Depends(require_subscription_right)
):
    """
    Start the one-time Professional trial (14 days unless a duration is given).
    """
    duration_days = payload.duration_days if payload else None
    subscription = TrialService(db).start_trial(ctx.clinic_id, duration_days)
    trial_days = (subscription.trial_end - subscription.trial_start).days
    _notify(db, ctx.clinic_id, "trial_started", trial_days)
    return subscription


# --- Platform administration ---
@router.get("", response_model=schemas.SubscriptionListResponse, dependencies=[Depends(security.require_platform_admin)])
def list_subscriptions(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    status_filter: Optional[models.SubscriptionStatus] = Query(None, alias="status"),
    plan_type: Optional[models.PlanType] = None,
    service: SubscriptionService = Depends(get_subscription_service)
):
    return service.list_subscriptions(page=page, limit=limit, status_filter=status_filter, plan_type=plan_type)


@router.post("", response_model=schemas.SubscriptionResponse, status_code=status.HTTP_201_CREATED,
             dependencies=[Depends(security.require_platform_admin)])
def create_subscription(
    payload: schemas.SubscriptionCreate,
    service: SubscriptionService = Depends(get_subscription_service)
):
    return service.create_subscription(payload)


@router.post("/process-expired-trials", response_model=schemas.TrialProcessResponse,
             dependencies=[Depends(security.require_platform_admin)])
def process_expired_trials(db: Session = Depends(get_db)):
    return TrialService(db).process_expired_trials()


@router.get("/clinic/{clinic_id}", response_model=schemas.SubscriptionResponse,
            dependencies=[Depends(security.require_platform_admin)])
def read_clinic_subscription(clinic_id: int, service: SubscriptionService = Depends(get_subscription_service)):
    return service.get_subscription_by_clinic_id(clinic_id)


@router.get("/{subscription_id}", response_model=schemas.SubscriptionResponse,
            dependencies=[Depends(security.require_platform_admin)])
def read_subscription(subscription_id: int, service: SubscriptionService = Depends(get_subscription_service)):
    return service.get_subscription(subscription_id)


@router.put("/{subscription_id}", response_model=schemas.SubscriptionResponse,
            dependencies=[Depends(security.require_platform_admin)])
def update_subscription(
    subscription_id: int,
    payload: schemas.SubscriptionUpdate,
    service: SubscriptionService = Depends(get_subscription_service)
):
    return service.update_subscription(subscription_id, payload)
