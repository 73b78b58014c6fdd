# tests/test_ai_assistant.py
from datetime import datetime, timedelta, timezone

from clinicdesk import models
from clinicdesk.services.ai_assistant_service import (
    NO_APPOINTMENTS_SUMMARY, AIAssistantService, extract_body, extract_subject,
)


def test_extract_subject_and_body():
    text = "Subject: Your next session\n\nHi Jane,\nSee you Tuesday."
    assert extract_subject(text) == "Your next session"
    assert extract_body(text) == "Hi Jane,\nSee you Tuesday."


def test_subject_match_is_case_insensitive():
    assert extract_subject("SUBJECT:   Reminder  \nBody") == "Reminder"


def test_missing_subject_falls_back():
    text = "Hi Jane, just checking in."
    assert extract_subject(text) == "Follow-up"
    assert extract_body(text) == text


def test_no_appointments_summary_skips_the_model(db, clinic, ai_client):
    member = clinic.members[0]
    result = AIAssistantService(db, ai_client).summarize_schedule(clinic.id, None, member.id)

    assert result == {"summary": NO_APPOINTMENTS_SUMMARY, "appointments": [], "total_appointments": 0}
    assert ai_client.calls == []


def test_draft_email_via_api(client, owner_headers, create_client, ai_client):
    client_id = create_client(1)["id"]

    response = client.post("/api/v1/ai-assistant/draft-email",
                           json={"client_id": client_id, "purpose": "followup"}, headers=owner_headers)
    assert response.status_code == 200
    body = response.json()
    assert body["subject"] == "Checking in"
    assert body["body"] == "Hi there,\nHope you are well."
    assert body["client_email"] == "jane1@example.com"
    assert "Jane Doe1" in ai_client.calls[0]["messages"][0]["content"]


def test_draft_email_for_unknown_client(client, owner_headers):
    response = client.post("/api/v1/ai-assistant/draft-email",
                           json={"client_id": 404, "purpose": "welcome"}, headers=owner_headers)
    assert response.status_code == 404


def test_chat_echoes_history(client, owner_headers, ai_client):
    ai_client.reply = "You have three sessions today."
    response = client.post("/api/v1/ai-assistant/chat", json={
        "message": "How busy am I?",
        "conversation_history": [{"role": "user", "content": "Hello"}, {"role": "assistant", "content": "Hi!"}],
    }, headers=owner_headers)
    assert response.status_code == 200
    body = response.json()
    assert body["message"] == "You have three sessions today."
    assert [m["role"] for m in body["conversation_history"]] == ["user", "assistant", "user", "assistant"]
    assert ai_client.calls[0]["messages"][-1] == {"role": "user", "content": "How busy am I?"}


def test_summarize_schedule_with_appointments(db, client, clinic, owner_headers, create_client, ai_client):
    client_id = create_client(1)["id"]
    session = models.ClinicSession(clinic_id=clinic.id, name="Therapy", duration=50, price=120)
    db.add(session)
    db.commit()
    start = datetime(2030, 5, 6, 9, 0, tzinfo=timezone.utc)
    db.add(models.Appointment(
        clinic_id=clinic.id, client_id=client_id, session_id=session.id, clinician_id=clinic.members[0].id,
        start_time=start, end_time=start + timedelta(minutes=50),
    ))
    db.commit()

    ai_client.reply = "A light day with one morning session."
    response = client.post("/api/v1/ai-assistant/summarize-schedule", json={"date": "2030-05-06"},
                           headers=owner_headers)
    assert response.status_code == 200
    body = response.json()
    assert body["summary"] == "A light day with one morning session."
    assert body["total_appointments"] == 1
    assert body["appointments"][0]["session_type"] == "Therapy"


def test_invoice_draft_requires_items(client, owner_headers, create_client):
    client_id = create_client(1)["id"]
    response = client.post("/api/v1/ai-assistant/create-invoice", json={"client_id": client_id},
                           headers=owner_headers)
    assert response.status_code == 400
    assert response.json()["message"] == "No items provided for invoice"


def test_invoice_draft_totals_custom_items(client, owner_headers, create_client, ai_client):
    client_id = create_client(1)["id"]
    ai_client.reply = "Counselling services, May 2030."
    response = client.post("/api/v1/ai-assistant/create-invoice", json={
        "client_id": client_id,
        "custom_items": [{"description": "Session", "amount": "80.00"}, {"description": "Report", "amount": "20.50"}],
    }, headers=owner_headers)
    assert response.status_code == 200
    body = response.json()
    assert body["total_amount"] == 100.5
    assert body["suggested_description"] == "Counselling services, May 2030."


def test_dashboard_suggestions(client, owner_headers):
    response = client.post("/api/v1/ai-assistant/suggestions", json={"context": "dashboard"}, headers=owner_headers)
    assert response.status_code == 200
    assert response.json()["suggestions"] == ["Draft follow-up email", "Create invoice"]
