# clinicdesk/services/dashboard_service.py
"""
Per-clinic dashboard figures: appointments, clients, revenue and plan usage.

Counts are always scoped to one clinic and recomputed on each call.
"""
import logging
from datetime import date, datetime, timedelta
from typing import Optional, Dict, Any

from fastapi import status
from sqlalchemy import func
from sqlalchemy.orm import Session, joinedload

from .. import models
from ..exceptions import ApiError
from ..utils import as_utc, day_bounds, month_start, utcnow
from .appointment_service import UPCOMING_STATUSES
from .subscription_service import LimitService

logger = logging.getLogger(__name__)

RECENT_APPOINTMENTS = 5
OPEN_INVOICE_STATUSES = (models.InvoiceStatus.pending, models.InvoiceStatus.overdue)


def _percent(part: float, whole: float) -> int:
    return round(part / whole * 100) if whole else 0


def _month_end(start: datetime) -> datetime:
    next_month = (start.replace(day=28) + timedelta(days=4)).replace(day=1)
    return next_month - timedelta(microseconds=1)


class DashboardService:

    def __init__(self, db: Session):
        self.db = db
        self.limits = LimitService(db)

    def resolve_range(self, start_date: Optional[date] = None, end_date: Optional[date] = None,
                      now: Optional[datetime] = None):
        """Whole days in UTC; the current calendar month when no dates are given."""
        now = now or utcnow()
        start = day_bounds(start_date)[0] if start_date else month_start(now)
        end = day_bounds(end_date)[1] if end_date else _month_end(month_start(now))
        if end < start:
            raise ApiError(status.HTTP_400_BAD_REQUEST, "start_date must be on or before end_date")
        return start, end

    def _appointments(self, clinic_id: int):
        return self.db.query(models.Appointment).filter(models.Appointment.clinic_id == clinic_id)

    def _paid_revenue(self, clinic_id: int, start: datetime, end: datetime) -> float:
        total = self.db.query(func.coalesce(func.sum(models.Invoice.total), 0)).filter(
            models.Invoice.clinic_id == clinic_id,
            models.Invoice.status == models.InvoiceStatus.paid,
            models.Invoice.paid_at.between(start, end),
        ).scalar()
        return round(float(total or 0), 2)

    def _open_revenue(self, clinic_id: int, start: datetime, end: datetime) -> float:
        total = self.db.query(func.coalesce(func.sum(models.Invoice.total), 0)).filter(
            models.Invoice.clinic_id == clinic_id,
            models.Invoice.status.in_(OPEN_INVOICE_STATUSES),
            models.Invoice.issue_date.between(start.date(), end.date()),
        ).scalar()
        return round(float(total or 0), 2)

    def get_quick_stats(self, clinic_id: int, now: Optional[datetime] = None) -> Dict[str, Any]:
        now = now or utcnow()
        today_start, today_end = day_bounds(now.date())
        appointments = self._appointments(clinic_id)
        return {
            "today_appointments": appointments.filter(
                models.Appointment.start_time.between(today_start, today_end)
            ).count(),
            "upcoming_appointments": appointments.filter(
                models.Appointment.status.in_(UPCOMING_STATUSES),
                models.Appointment.start_time >= now,
            ).count(),
            "total_clients": self.db.query(models.Client).filter(models.Client.clinic_id == clinic_id).count(),
            "total_clinicians": self.limits.count_clinicians(clinic_id),
        }

    def get_overview(self, clinic_id: int, start_date: Optional[date] = None, end_date: Optional[date] = None,
                     now: Optional[datetime] = None) -> Dict[str, Any]:
        now = now or utcnow()
        start, end = self.resolve_range(start_date, end_date, now)

        in_range = self._appointments(clinic_id).filter(models.Appointment.start_time.between(start, end))
        by_status = dict(
            in_range.with_entities(models.Appointment.status, func.count(models.Appointment.id))
            .group_by(models.Appointment.status)
            .all()
        )
        total_appointments = sum(by_status.values())
        completed = by_status.get(models.AppointmentStatus.completed, 0)

        clients = self.db.query(models.Client).filter(models.Client.clinic_id == clinic_id)
        quick = self.get_quick_stats(clinic_id, now)

        # Previous window of the same length, ending where this one starts
        previous_end = start - timedelta(microseconds=1)
        previous_start = previous_end - (end - start)
        revenue = self._paid_revenue(clinic_id, start, end)
        previous_revenue = self._paid_revenue(clinic_id, previous_start, previous_end)

        subscription = self.limits.subscriptions.check_subscription_status(clinic_id)
        client_usage = self.limits.count_clients(clinic_id)
        client_limit = subscription.plan.client_limit

        logger.debug(f"Dashboard for clinic {clinic_id}: {total_appointments} appointments, revenue {revenue}")
        return {
            "summary": {
                "total_appointments": total_appointments,
                "completed_appointments": completed,
                "pending_appointments": by_status.get(models.AppointmentStatus.pending, 0),
                "cancelled_appointments": by_status.get(models.AppointmentStatus.cancelled, 0),
                "upcoming_appointments": quick["upcoming_appointments"],
                "today_appointments": quick["today_appointments"],
                "completion_rate": _percent(completed, total_appointments),
                "total_clients": quick["total_clients"],
                "active_clients": clients.filter(models.Client.status == models.ClientStatus.active).count(),
                "new_clients_this_month": clients.filter(models.Client.created_at >= month_start(now)).count(),
                "total_clinicians": quick["total_clinicians"],
            },
            "financial": {
                "total_revenue": revenue,
                "pending_revenue": self._open_revenue(clinic_id, start, end),
                "previous_revenue": previous_revenue,
                "revenue_growth": _percent(revenue - previous_revenue, previous_revenue),
                "average_appointment_value": round(revenue / total_appointments, 2) if total_appointments else 0.0,
            },
            "recent_appointments": self._recent_appointments(clinic_id),
            "subscription": {
                "plan_name": subscription.plan.name,
                "status": subscription.status,
                "client_limit": client_limit,
                "client_usage": client_usage,
                "usage_percentage": _percent(client_usage, client_limit),
            },
            "date_range": {"start": start, "end": end},
        }

    def _recent_appointments(self, clinic_id: int):
        recent = (
            self._appointments(clinic_id)
            .options(
                joinedload(models.Appointment.client),
                joinedload(models.Appointment.session),
                joinedload(models.Appointment.clinician).joinedload(models.ClinicMember.user),
            )
            .order_by(models.Appointment.created_at.desc(), models.Appointment.id.desc())
            .limit(RECENT_APPOINTMENTS)
            .all()
        )
        return [
            {
                "id": appointment.id,
                "client_name": appointment.client.full_name,
                "session_name": appointment.session.name,
                "clinician_name": appointment.clinician.user.full_name if appointment.clinician else None,
                "start_time": as_utc(appointment.start_time),
                "status": appointment.status,
                "price": float(appointment.session.price or 0),
            }
            for appointment in recent
        ]
