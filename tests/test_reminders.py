# tests/test_reminders.py
from datetime import timedelta

import pytest

from clinicdesk import models
from clinicdesk.services.appointment_service import AppointmentService, reminder_time_text
from clinicdesk.utils import utcnow


@pytest.fixture()
def therapy(db, clinic):
    client = models.Client(clinic_id=clinic.id, first_name="Jane", last_name="Doe", email="jane@example.com")
    session = models.ClinicSession(clinic_id=clinic.id, name="Therapy", duration=50, price=120, reminders=[60])
    db.add_all([client, session])
    db.commit()
    return {"client": client, "session": session, "clinician": clinic.members[0]}


@pytest.fixture()
def schedule(db, clinic, therapy):
    def create(start, status=models.AppointmentStatus.pending):
        appointment = models.Appointment(
            clinic_id=clinic.id,
            client_id=therapy["client"].id,
            session_id=therapy["session"].id,
            clinician_id=therapy["clinician"].id,
            start_time=start,
            end_time=start + timedelta(minutes=50),
            status=status,
        )
        db.add(appointment)
        db.commit()
        return appointment
    return create


def reminders_for(db, user_id):
    return db.query(models.Notification).filter(
        models.Notification.user_id == user_id,
        models.Notification.type == models.NotificationType.reminder,
    ).all()


@pytest.mark.parametrize("minutes, text", [(45, "45 minutes"), (60, "1 hour"), (125, "2 hours")])
def test_reminder_time_text(minutes, text):
    assert reminder_time_text(minutes) == text


def test_reminder_sent_near_session_offset(db, owner, therapy, schedule):
    now = utcnow()
    appointment = schedule(now + timedelta(minutes=62))

    result = AppointmentService(db).send_appointment_reminders(now=now)
    assert result["processed"] == 1
    assert result["sent"] == 1
    assert result["results"][0]["minutes_until"] == 62

    [notification] = reminders_for(db, owner.id)
    assert notification.title == "Appointment Reminder"
    assert notification.message == "Reminder: You have an appointment with Jane Doe in 1 hour"
    assert notification.data["appointment_id"] == appointment.id
    assert notification.data["session_name"] == "Therapy"


def test_reminder_is_not_repeated_by_the_next_run(db, owner, schedule):
    now = utcnow()
    schedule(now + timedelta(minutes=60))

    assert AppointmentService(db).send_appointment_reminders(now=now)["sent"] == 1
    again = AppointmentService(db).send_appointment_reminders(now=now + timedelta(minutes=2))
    assert again["processed"] == 1
    assert again["sent"] == 0
    assert len(reminders_for(db, owner.id)) == 1


def test_no_reminder_away_from_offset(db, owner, schedule):
    now = utcnow()
    schedule(now + timedelta(minutes=30))

    result = AppointmentService(db).send_appointment_reminders(now=now)
    assert result["processed"] == 1
    assert result["sent"] == 0
    assert reminders_for(db, owner.id) == []


def test_cancelled_and_distant_appointments_are_ignored(db, schedule):
    now = utcnow()
    schedule(now + timedelta(minutes=60), status=models.AppointmentStatus.cancelled)
    schedule(now + timedelta(hours=5))
    schedule(now - timedelta(minutes=60))

    result = AppointmentService(db).send_appointment_reminders(now=now)
    assert result == {"processed": 0, "sent": 0, "failed": 0, "results": []}


def test_email_reminder_goes_to_the_client(db, therapy, schedule, email_service):
    therapy["session"].reminder_method = "email"
    db.commit()
    now = utcnow()
    schedule(now + timedelta(minutes=118), status=models.AppointmentStatus.scheduled)
    therapy["session"].reminders = [15, 120]
    db.commit()

    result = AppointmentService(db, email_service).send_appointment_reminders(now=now)
    assert result["sent"] == 1
    assert result["results"][0]["emailed"] is True

    [sent] = email_service.sent
    assert sent["to"] == "jane@example.com"
    assert sent["subject"] == "Reminder: your appointment with Harbor Clinic"
    assert "1 hour" in sent["html"]


def test_session_reminder_method_is_validated(client, owner_headers):
    response = client.post("/api/v1/sessions", json={"name": "Therapy", "duration": 50, "reminder_method": "sms"},
                           headers=owner_headers)
    assert response.status_code == 422
