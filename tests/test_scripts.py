# tests/test_scripts.py
from datetime import timedelta

import pytest
from sqlalchemy.orm import sessionmaker

from clinicdesk import models
from clinicdesk.scripts import admin_reports, process_expired_trials, seed_admin, seed_plans, send_reminders
from clinicdesk.services.subscription_service import TrialService
from clinicdesk.utils import utcnow


@pytest.fixture(autouse=True)
def script_database(db, monkeypatch):
    session_factory = sessionmaker(autocommit=False, autoflush=False, bind=db.get_bind())
    for module in (admin_reports, process_expired_trials, seed_admin, seed_plans, send_reminders):
        monkeypatch.setattr(module, "SessionLocal", session_factory)
        monkeypatch.setattr(module, "create_tables", lambda: None)
        monkeypatch.setattr(module, "setup_logging", lambda *args, **kwargs: None)


def test_admin_reports_help(capsys):
    assert admin_reports.main(["help"]) == 0
    assert "dashboard" in capsys.readouterr().out


def test_admin_reports_unknown_command(capsys):
    assert admin_reports.main(["bogus"]) == 1
    assert "Unknown command: bogus" in capsys.readouterr().out


def test_admin_reports_dashboard(clinic, capsys):
    assert admin_reports.main(["dashboard"]) == 0
    assert "health score" in capsys.readouterr().out


def test_seed_plans_is_repeatable(capsys):
    assert seed_plans.main() == 0
    out = capsys.readouterr().out
    assert "[exists] free" in out
    assert "Created: 0" in out


def test_process_expired_trials(db, clinic, capsys):
    TrialService(db).start_trial(clinic.id)
    clinic.subscription.trial_end = utcnow() - timedelta(days=1)
    db.commit()

    assert process_expired_trials.main() == 0
    out = capsys.readouterr().out
    assert "Processed: 1" in out
    assert "[ok] Harbor Clinic" in out

    assert process_expired_trials.main() == 0
    assert "Processed: 0" in capsys.readouterr().out


def test_seed_admin_requires_password(monkeypatch, capsys):
    monkeypatch.delenv("ADMIN_PASSWORD", raising=False)
    assert seed_admin.main() == 1
    assert "ADMIN_PASSWORD" in capsys.readouterr().out


def test_seed_admin_creates_then_updates(db, monkeypatch):
    monkeypatch.setenv("ADMIN_PASSWORD", "s3cret-admin")
    monkeypatch.setenv("ADMIN_USERNAME", "root")
    monkeypatch.setenv("ADMIN_EMAIL", "root@example.com")

    assert seed_admin.upsert_admin(db) == "created"
    assert seed_admin.upsert_admin(db) == "updated"

    admin = db.query(models.User).filter(models.User.username == "root").one()
    assert admin.role == models.UserRole.super_admin


def test_send_reminders(db, clinic, capsys):
    client = models.Client(clinic_id=clinic.id, first_name="Jane", last_name="Doe", email="jane@example.com")
    session = models.ClinicSession(clinic_id=clinic.id, name="Therapy", duration=50, reminders=[60])
    db.add_all([client, session])
    db.commit()
    start = utcnow() + timedelta(minutes=61)
    db.add(models.Appointment(clinic_id=clinic.id, client_id=client.id, session_id=session.id,
                              clinician_id=clinic.members[0].id, start_time=start,
                              end_time=start + timedelta(minutes=50)))
    db.commit()

    assert send_reminders.main() == 0
    out = capsys.readouterr().out
    assert "Reminders sent: 1" in out
    assert "[sent] Jane Doe" in out

    assert send_reminders.main() == 0
    assert "Reminders sent: 0" in capsys.readouterr().out
