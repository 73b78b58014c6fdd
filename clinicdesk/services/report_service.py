# clinicdesk/services/report_service.py
"""
Platform-wide reporting for administrators.

Every report is recomputed from the database on each call; nothing is cached.
"""
import logging
import math
from collections import Counter
from datetime import datetime, timedelta
from typing import Optional, Dict, Any

from sqlalchemy import func, or_
from sqlalchemy.orm import Session, joinedload

from .. import models
from ..utils import utcnow, as_utc

logger = logging.getLogger(__name__)

ACTIVE_STATUSES = (models.SubscriptionStatus.active, models.SubscriptionStatus.trialing)
NEAR_LIMIT_PERCENT = 80
EXPIRING_SOON_DAYS = 3
RECENT_CHANGES = 20


def _days_between(later: datetime, earlier: datetime) -> int:
    return math.ceil((later - earlier).total_seconds() / 86400)


def calculate_health_score(health: Dict[str, Any], trials: Dict[str, Any], usage: Dict[str, Any]) -> int:
    """Score platform health out of 100 from the system, trial and usage reports."""
    score = 100

    past_due = health["past_due_subscriptions"]
    if past_due > 0:
        score -= min(20, past_due * 2)
    restricted = health["restricted_users"]
    if restricted > 0:
        score -= min(10, restricted)
    if trials["conversion_rate"] < 20:
        score -= 15
    if usage["clinics_at_limit"] > usage["total_clients"] * 0.1:
        score -= 10

    if trials["conversion_rate"] > 50:
        score += 5
    if health["user_activation_rate"] > 90:
        score += 5

    return max(0, min(100, score))


class ReportService:

    def __init__(self, db: Session):
        self.db = db

    def get_subscription_overview(self) -> Dict[str, Any]:
        by_status = {
            status.value: count
            for status, count in self.db.query(
                models.Subscription.status, func.count(models.Subscription.id)
            ).group_by(models.Subscription.status)
        }

        by_plan = {}
        total_mrr = 0.0
        rows = (
            self.db.query(models.Plan.type, models.Plan.price, func.count(models.Subscription.id))
            .join(models.Subscription, models.Subscription.plan_id == models.Plan.id)
            .group_by(models.Plan.id, models.Plan.type, models.Plan.price)
        )
        for plan_type, price, count in rows:
            key = plan_type.value
            by_plan[key] = by_plan.get(key, 0) + count
            total_mrr += float(price or 0) * count

        return {
            "total_clinics": self.db.query(models.Clinic).count(),
            "active_subscriptions": self.db.query(models.Subscription).filter(
                models.Subscription.status.in_(ACTIVE_STATUSES)
            ).count(),
            "total_mrr": round(total_mrr, 2),
            "by_status": by_status,
            "by_plan": by_plan,
        }

    def get_client_usage_report(self) -> Dict[str, Any]:
        counts = dict(
            self.db.query(models.Client.clinic_id, func.count(models.Client.id))
            .filter(models.Client.status != models.ClientStatus.inactive)
            .group_by(models.Client.clinic_id)
            .all()
        )
        clinics = (
            self.db.query(models.Clinic)
            .options(joinedload(models.Clinic.subscription).joinedload(models.Subscription.plan))
            .order_by(models.Clinic.created_at.desc(), models.Clinic.id.desc())
            .all()
        )

        usage = []
        for clinic in clinics:
            plan = clinic.subscription.plan if clinic.subscription else None
            client_count = counts.get(clinic.id, 0)
            client_limit = plan.client_limit if plan else 0
            is_unlimited = client_limit == 0
            percentage = 0 if is_unlimited else client_count / client_limit * 100
            usage.append({
                "clinic_id": clinic.id,
                "clinic_name": clinic.name,
                "plan_type": plan.type.value if plan else None,
                "client_count": client_count,
                "client_limit": "Unlimited" if is_unlimited else client_limit,
                "usage_percentage": round(percentage),
                "is_at_limit": not is_unlimited and client_count >= client_limit,
                "is_near_limit": not is_unlimited and percentage >= NEAR_LIMIT_PERCENT,
            })

        total_clients = sum(item["client_count"] for item in usage)
        return {
            "clinics": usage,
            "summary": {
                "total_clients": total_clients,
                "clinics_at_limit": sum(1 for item in usage if item["is_at_limit"]),
                "clinics_near_limit": sum(1 for item in usage if item["is_near_limit"]),
                "average_clients_per_clinic": round(total_clients / len(usage)) if usage else 0,
            },
        }

    def get_trial_report(self) -> Dict[str, Any]:
        now = utcnow()
        subscriptions = (
            self.db.query(models.Subscription)
            .options(joinedload(models.Subscription.clinic))
            .filter(models.Subscription.status == models.SubscriptionStatus.trialing)
            .order_by(models.Subscription.trial_end.asc())
            .all()
        )

        active_trials = []
        for sub in subscriptions:
            trial_start, trial_end = as_utc(sub.trial_start), as_utc(sub.trial_end)
            days_remaining = max(0, _days_between(trial_end, now)) if trial_end else 0
            total_days = _days_between(trial_end, trial_start) if trial_start and trial_end else 14
            active_trials.append({
                "clinic_id": sub.clinic_id,
                "clinic_name": sub.clinic.name,
                "trial_start": trial_start,
                "trial_end": trial_end,
                "days_remaining": days_remaining,
                "days_used": total_days - days_remaining,
                "total_trial_days": total_days,
                "is_expiring_soon": days_remaining <= EXPIRING_SOON_DAYS,
                "is_expired": days_remaining == 0,
            })

        trials_started = self.db.query(models.Subscription).filter(
            models.Subscription.trial_start.isnot(None)
        ).count()
        conversions = (
            self.db.query(models.Subscription)
            .join(models.Plan, models.Subscription.plan_id == models.Plan.id)
            .filter(
                models.Subscription.trial_start.isnot(None),
                models.Subscription.trial_end.isnot(None),
                models.Subscription.status == models.SubscriptionStatus.active,
                models.Plan.type != models.PlanType.free,
            )
            .count()
        )

        return {
            "active_trials": active_trials,
            "total_active": len(active_trials),
            "expiring_soon": sum(1 for t in active_trials if t["is_expiring_soon"]),
            "expired": sum(1 for t in active_trials if t["is_expired"]),
            "trials_started": trials_started,
            "conversions": conversions,
            "conversion_rate": round(conversions / trials_started * 100) if trials_started else 0,
        }

    def get_revenue_report(self, start: Optional[datetime] = None, end: Optional[datetime] = None) -> Dict[str, Any]:
        end = as_utc(end) or utcnow()
        start = as_utc(start) or end - timedelta(days=30)

        mrr_by_plan = {}
        active = (
            self.db.query(models.Subscription)
            .options(joinedload(models.Subscription.plan))
            .filter(models.Subscription.status.in_(ACTIVE_STATUSES))
            .all()
        )
        for sub in active:
            key = sub.plan.type.value
            mrr_by_plan[key] = round(mrr_by_plan.get(key, 0.0) + float(sub.plan.price or 0), 2)

        changes = (
            self.db.query(models.Subscription)
            .options(joinedload(models.Subscription.plan), joinedload(models.Subscription.clinic))
            .filter(or_(
                models.Subscription.created_at.between(start, end),
                models.Subscription.updated_at.between(start, end),
            ))
            .order_by(models.Subscription.updated_at.desc(), models.Subscription.id.desc())
            .all()
        )
        new_subscriptions = sum(
            1 for sub in changes if sub.created_at and start <= as_utc(sub.created_at) <= end
        )
        cancelled_subscriptions = self.db.query(models.Subscription).filter(
            models.Subscription.status == models.SubscriptionStatus.cancelled,
            models.Subscription.cancelled_at.between(start, end),
        ).count()

        return {
            "period_start": start,
            "period_end": end,
            "mrr_by_plan": mrr_by_plan,
            "total_mrr": round(sum(mrr_by_plan.values()), 2),
            "new_subscriptions": new_subscriptions,
            "cancelled_subscriptions": cancelled_subscriptions,
            "net_growth": new_subscriptions - cancelled_subscriptions,
            "recent_changes": [
                {
                    "clinic_id": sub.clinic_id,
                    "clinic_name": sub.clinic.name,
                    "plan_type": sub.plan.type.value,
                    "status": sub.status,
                    "changed_at": as_utc(sub.updated_at or sub.created_at),
                }
                for sub in changes[:RECENT_CHANGES]
            ],
        }

    def get_system_health_report(self) -> Dict[str, Any]:
        since = utcnow() - timedelta(days=7)
        total_users = self.db.query(models.User).count()
        active_users = self.db.query(models.User).filter(
            models.User.is_active.is_(True),
            models.User.is_restricted.is_(False),
        ).count()

        status_counts = Counter({
            status: count for status, count in self.db.query(
                models.Subscription.status, func.count(models.Subscription.id)
            ).group_by(models.Subscription.status)
        })

        return {
            "total_users": total_users,
            "active_users": active_users,
            "restricted_users": self.db.query(models.User).filter(models.User.is_restricted.is_(True)).count(),
            "total_clinics": self.db.query(models.Clinic).count(),
            "total_clients": self.db.query(models.Client).count(),
            "new_users_7d": self.db.query(models.User).filter(models.User.created_at >= since).count(),
            "new_clinics_7d": self.db.query(models.Clinic).filter(models.Clinic.created_at >= since).count(),
            "new_clients_7d": self.db.query(models.Client).filter(models.Client.created_at >= since).count(),
            "appointments_7d": self.db.query(models.Appointment).filter(models.Appointment.created_at >= since).count(),
            "past_due_subscriptions": status_counts[models.SubscriptionStatus.past_due],
            "cancelled_subscriptions": status_counts[models.SubscriptionStatus.cancelled],
            "user_activation_rate": round(active_users / total_users * 100) if total_users else 0,
        }

    def get_dashboard_summary(self) -> Dict[str, Any]:
        overview = self.get_subscription_overview()
        usage = self.get_client_usage_report()
        trials = self.get_trial_report()
        health = self.get_system_health_report()
        score = calculate_health_score(health, trials, usage["summary"])
        logger.info(f"Dashboard summary generated; health score {score}")
        return {
            "overview": overview,
            "client_usage": usage["summary"],
            "trials": trials,
            "system_health": health,
            "health_score": score,
            "generated_at": utcnow(),
        }
