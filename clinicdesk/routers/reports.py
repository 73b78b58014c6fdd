# clinicdesk/routers/reports.py
from datetime import datetime
from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session
from typing import Optional

from .. import schemas, security
from ..database import get_db
from ..services.report_service import ReportService

router = APIRouter(
    prefix="/admin/reports",
    tags=["Admin Reports"],
    dependencies=[Depends(security.require_platform_admin)],
)


@router.get("/dashboard", response_model=schemas.DashboardSummary)
def dashboard_summary(db: Session = Depends(get_db)):
    """
    Overview, usage, trials and system health in one call, with the platform health score.
    """
    return ReportService(db).get_dashboard_summary()


@router.get("/subscriptions", response_model=schemas.SubscriptionOverview)
def subscription_overview(db: Session = Depends(get_db)):
    return ReportService(db).get_subscription_overview()


@router.get("/usage", response_model=schemas.ClientUsageReport)
def client_usage(db: Session = Depends(get_db)):
    return ReportService(db).get_client_usage_report()


@router.get("/trials", response_model=schemas.TrialReport)
def trial_report(db: Session = Depends(get_db)):
    return ReportService(db).get_trial_report()


@router.get("/revenue", response_model=schemas.RevenueReport)
def revenue_report(
    start_date: Optional[datetime] = None,
    end_date: Optional[datetime] = None,
    db: Session = Depends(get_db)
):
    """
    Revenue over a window; the last 30 days when no dates are given.
    """
    return ReportService(db).get_revenue_report(start_date, end_date)


@router.get("/health", response_model=schemas.SystemHealthReport)
def system_health(db: Session = Depends(get_db)):
    return ReportService(db).get_system_health_report()
