# tests/test_dashboard_api.py
import secrets
from datetime import date, datetime, timedelta, timezone

import pytest

from clinicdesk import crud, models, schemas
from clinicdesk.services.dashboard_service import DashboardService

NOW = datetime(2030, 5, 15, 12, 0, tzinfo=timezone.utc)


@pytest.fixture()
def busy_clinic(db, clinic):
    jane = models.Client(clinic_id=clinic.id, first_name="Jane", last_name="Doe", email="jane@example.com")
    gone = models.Client(clinic_id=clinic.id, first_name="Old", last_name="Client", email="old@example.com",
                         status=models.ClientStatus.inactive)
    therapy = models.ClinicSession(clinic_id=clinic.id, name="Therapy", duration=50, price=120)
    db.add_all([jane, gone, therapy])
    db.commit()

    def appointment(start, status):
        return models.Appointment(clinic_id=clinic.id, client_id=jane.id, session_id=therapy.id,
                                  clinician_id=clinic.members[0].id, start_time=start,
                                  end_time=start + timedelta(minutes=50), status=status)

    def invoice(total, status, issue_date, paid_at=None):
        return models.Invoice(clinic_id=clinic.id, client_id=jane.id, items=[], subtotal=total, total=total,
                              status=status, issue_date=issue_date, due_date=issue_date + timedelta(days=30),
                              paid_at=paid_at, public_token=secrets.token_hex(32))

    db.add_all([
        appointment(datetime(2030, 4, 20, 9, tzinfo=timezone.utc), models.AppointmentStatus.completed),
        appointment(datetime(2030, 5, 10, 9, tzinfo=timezone.utc), models.AppointmentStatus.completed),
        appointment(datetime(2030, 5, 12, 9, tzinfo=timezone.utc), models.AppointmentStatus.cancelled),
        appointment(datetime(2030, 5, 20, 9, tzinfo=timezone.utc), models.AppointmentStatus.pending),
        invoice(200, models.InvoiceStatus.paid, date(2030, 5, 1), paid_at=datetime(2030, 5, 5, tzinfo=timezone.utc)),
        invoice(100, models.InvoiceStatus.paid, date(2030, 4, 1), paid_at=datetime(2030, 4, 20, tzinfo=timezone.utc)),
        invoice(50, models.InvoiceStatus.pending, date(2030, 5, 3)),
        invoice(75, models.InvoiceStatus.draft, date(2030, 5, 3)),
    ])
    db.commit()
    return clinic


def test_overview_defaults_to_current_month(db, busy_clinic):
    overview = DashboardService(db).get_overview(busy_clinic.id, now=NOW)

    summary = overview["summary"]
    assert summary["total_appointments"] == 3
    assert summary["completed_appointments"] == 1
    assert summary["pending_appointments"] == 1
    assert summary["cancelled_appointments"] == 1
    assert summary["upcoming_appointments"] == 1
    assert summary["completion_rate"] == 33
    assert summary["total_clients"] == 2
    assert summary["active_clients"] == 1

    assert overview["date_range"]["start"] == datetime(2030, 5, 1, tzinfo=timezone.utc)
    assert overview["date_range"]["end"].date() == date(2030, 5, 31)


def test_revenue_compares_with_the_previous_window(db, busy_clinic):
    financial = DashboardService(db).get_overview(busy_clinic.id, now=NOW)["financial"]
    assert financial["total_revenue"] == 200.0
    assert financial["previous_revenue"] == 100.0
    assert financial["revenue_growth"] == 100
    assert financial["pending_revenue"] == 50.0
    assert financial["average_appointment_value"] == 66.67


def test_explicit_range_narrows_the_counts(db, busy_clinic):
    overview = DashboardService(db).get_overview(busy_clinic.id, start_date=date(2030, 4, 1),
                                                 end_date=date(2030, 4, 30), now=NOW)
    assert overview["summary"]["total_appointments"] == 1
    assert overview["summary"]["completion_rate"] == 100
    assert overview["financial"]["total_revenue"] == 100.0
    assert overview["financial"]["revenue_growth"] == 0


def test_recent_appointments_and_plan_usage(db, busy_clinic):
    overview = DashboardService(db).get_overview(busy_clinic.id, now=NOW)

    recent = overview["recent_appointments"]
    assert len(recent) == 4
    assert recent[0]["status"] == models.AppointmentStatus.pending
    assert recent[0]["client_name"] == "Jane Doe"
    assert recent[0]["clinician_name"] == "owner"
    assert recent[0]["price"] == 120.0

    assert overview["subscription"] == {
        "plan_name": "Free Plan",
        "status": models.SubscriptionStatus.active,
        "client_limit": 10,
        "client_usage": 1,
        "usage_percentage": 10,
    }


# --- API ---
def test_quick_stats(client, owner_headers, create_client):
    create_client(1)
    response = client.get("/api/v1/dashboard/stats", headers=owner_headers)
    assert response.status_code == 200
    assert response.json() == {
        "today_appointments": 0,
        "upcoming_appointments": 0,
        "total_clients": 1,
        "total_clinicians": 1,
    }


def test_overview_endpoint(client, owner_headers, create_client):
    create_client(1)
    response = client.get("/api/v1/dashboard/overview", headers=owner_headers)
    assert response.status_code == 200, response.text
    body = response.json()
    assert body["summary"]["new_clients_this_month"] == 1
    assert body["subscription"]["plan_name"] == "Free Plan"
    assert body["recent_appointments"] == []


def test_reversed_range_is_rejected(client, owner_headers):
    response = client.get("/api/v1/dashboard/overview", params={"start_date": "2030-05-10", "end_date": "2030-05-01"},
                          headers=owner_headers)
    assert response.status_code == 400
    assert response.json()["message"] == "start_date must be on or before end_date"


def test_clinician_without_dashboard_right_is_refused(db, client, clinic, headers_for):
    enterprise = db.query(models.Plan).filter(models.Plan.type == models.PlanType.enterprise).one()
    clinic.subscription.plan_id = enterprise.id
    db.commit()
    clinician = crud.create_user(db, schemas.UserCreate(username="clinician", email="clinician@example.com",
                                                       password="secret123"))
    crud.add_member(db, clinic.id, schemas.MemberCreate(identifier="clinician"))

    assert client.get("/api/v1/dashboard/stats", headers=headers_for(clinician)).status_code == 200

    clinic.permissions = dict(models.DEFAULT_CLINIC_PERMISSIONS, clinician_dashboard=False)
    db.commit()
    response = client.get("/api/v1/dashboard/stats", headers=headers_for(clinician))
    assert response.status_code == 403
    assert response.json()["message"] == "Permission 'dashboard' is required"
