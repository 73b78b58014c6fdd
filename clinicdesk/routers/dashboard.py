# clinicdesk/routers/dashboard.py
from datetime import date
from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session
from typing import Optional

from .. import schemas, security
from ..database import get_db
from ..dependencies import require_active_subscription
from ..security import ClinicContext
from ..services.dashboard_service import DashboardService

router = APIRouter(
    prefix="/dashboard",
    tags=["Dashboard"],
    dependencies=[Depends(security.get_current_user), Depends(require_active_subscription)],
)

require_dashboard = security.require_clinic_permission("dashboard")


@router.get("/overview", response_model=schemas.ClinicDashboardOverview)
def dashboard_overview(
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
    db: Session = Depends(get_db),
    ctx: ClinicContext = Depends(require_dashboard)
):
    """
    Appointment, client and revenue figures for the clinic, with plan usage.
    Covers the current month unless a date range is given; revenue growth
    compares against the window of the same length just before it.
    """
    return DashboardService(db).get_overview(ctx.clinic_id, start_date=start_date, end_date=end_date)


@router.get("/stats", response_model=schemas.DashboardQuickStats)
def dashboard_stats(db: Session = Depends(get_db), ctx: ClinicContext = Depends(require_dashboard)):
    return DashboardService(db).get_quick_stats(ctx.clinic_id)
