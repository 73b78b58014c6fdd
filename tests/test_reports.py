# tests/test_reports.py
from datetime import timedelta

from clinicdesk import models
from clinicdesk.services.report_service import ReportService, calculate_health_score
from clinicdesk.services.subscription_service import SubscriptionService, TrialService
from clinicdesk.utils import utcnow


def health(past_due=0, restricted=0, activation=100):
    return {"past_due_subscriptions": past_due, "restricted_users": restricted, "user_activation_rate": activation}


def trials(conversion_rate):
    return {"conversion_rate": conversion_rate}


def usage(at_limit=0, total_clients=0):
    return {"clinics_at_limit": at_limit, "total_clients": total_clients}


def test_healthy_platform_is_capped_at_100():
    assert calculate_health_score(health(activation=95), trials(60), usage(0, 50)) == 100


def test_penalties_add_up():
    score = calculate_health_score(health(past_due=3, restricted=2, activation=50), trials(10), usage(2, 10))
    assert score == 100 - 6 - 2 - 15 - 10


def test_penalties_are_capped():
    score = calculate_health_score(health(past_due=50, restricted=30, activation=50), trials(30), usage(0, 0))
    assert score == 100 - 20 - 10


def test_empty_platform_only_loses_conversion_points():
    assert calculate_health_score(health(activation=0), trials(0), usage(0, 0)) == 85


def test_subscription_overview_counts_mrr(db, clinic):
    subscription = SubscriptionService(db).get_subscription_by_clinic_id(clinic.id)
    professional = db.query(models.Plan).filter(models.Plan.type == models.PlanType.professional).one()
    SubscriptionService(db).apply_changes(subscription, plan_id=professional.id)

    overview = ReportService(db).get_subscription_overview()
    assert overview["total_clinics"] == 1
    assert overview["active_subscriptions"] == 1
    assert overview["total_mrr"] == 29.99
    assert overview["by_plan"] == {"professional": 1}


def test_trial_report_flags_expiring_trials(db, clinic):
    TrialService(db).start_trial(clinic.id, duration_days=2)

    report = ReportService(db).get_trial_report()
    assert report["total_active"] == 1
    assert report["expiring_soon"] == 1
    assert report["trials_started"] == 1
    assert report["active_trials"][0]["clinic_name"] == "Harbor Clinic"


def test_client_usage_marks_clinic_at_limit(db, clinic):
    for i in range(10):
        db.add(models.Client(clinic_id=clinic.id, first_name="C", last_name=str(i), email=f"c{i}@example.com"))
    db.commit()

    report = ReportService(db).get_client_usage_report()
    assert report["clinics"][0]["is_at_limit"] is True
    assert report["clinics"][0]["usage_percentage"] == 100
    assert report["summary"]["clinics_at_limit"] == 1


def test_revenue_report_window(db, clinic):
    start = utcnow() - timedelta(days=1)
    report = ReportService(db).get_revenue_report(start, utcnow() + timedelta(minutes=1))
    assert report["new_subscriptions"] == 1
    assert report["cancelled_subscriptions"] == 0
    assert report["net_growth"] == 1


def test_dashboard_requires_platform_admin(client, owner_headers, admin_headers):
    assert client.get("/api/v1/admin/reports/dashboard", headers=owner_headers).status_code == 403

    response = client.get("/api/v1/admin/reports/dashboard", headers=admin_headers)
    assert response.status_code == 200
    body = response.json()
    assert 0 <= body["health_score"] <= 100
    assert body["overview"]["total_clinics"] == 1


def test_health_report_endpoint(client, owner, admin_headers):
    response = client.get("/api/v1/admin/reports/health", headers=admin_headers)
    assert response.status_code == 200
    assert response.json()["total_users"] == 2
