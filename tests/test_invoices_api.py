# tests/test_invoices_api.py
import pytest

from clinicdesk import models


def create_invoice(client, headers, payload):
    response = client.post("/api/v1/invoices", json=payload, headers=headers)
    assert response.status_code == 201, response.text
    return response.json()


def test_create_invoice_with_matching_totals(client, owner_headers, create_client, invoice_payload):
    client_id = create_client(1)["id"]
    invoice = create_invoice(client, owner_headers, invoice_payload(client_id))

    assert invoice["status"] == "draft"
    assert invoice["total"] == 110.0
    assert invoice["items"][0] == {"description": "Therapy session", "quantity": 2.0, "unit_price": 50.0, "total": 100.0}
    assert len(invoice["public_token"]) == 64
    assert invoice["invoice_number"].startswith("INV-")


def test_total_mismatch_is_rejected(client, owner_headers, create_client, invoice_payload):
    client_id = create_client(1)["id"]
    response = client.post("/api/v1/invoices", json=invoice_payload(client_id, total=111), headers=owner_headers)
    assert response.status_code == 400
    assert response.json() == {"code": 400, "message": "Total does not match subtotal + tax"}


def test_invoice_for_unknown_client_is_404(client, owner_headers, invoice_payload):
    response = client.post("/api/v1/invoices", json=invoice_payload(999), headers=owner_headers)
    assert response.status_code == 404


def test_update_revalidates_amounts(client, owner_headers, create_client, invoice_payload):
    client_id = create_client(1)["id"]
    invoice = create_invoice(client, owner_headers, invoice_payload(client_id))

    response = client.put(f"/api/v1/invoices/{invoice['id']}", json={"tax": 20}, headers=owner_headers)
    assert response.status_code == 400

    response = client.put(f"/api/v1/invoices/{invoice['id']}", json={"tax": 20, "total": 120}, headers=owner_headers)
    assert response.status_code == 200
    assert response.json()["total"] == 120.0


@pytest.mark.parametrize("field", ["items", "subtotal", "tax", "total", "issue_date", "due_date", "status"])
def test_null_for_required_field_is_rejected(client, owner_headers, create_client, invoice_payload, field):
    client_id = create_client(1)["id"]
    invoice = create_invoice(client, owner_headers, invoice_payload(client_id))

    response = client.put(f"/api/v1/invoices/{invoice['id']}", json={field: None}, headers=owner_headers)
    assert response.status_code == 422
    assert f"{field} cannot be null" in response.json()["message"]

    unchanged = client.get(f"/api/v1/invoices/{invoice['id']}", headers=owner_headers)
    assert unchanged.status_code == 200
    assert unchanged.json()["total"] == 110.0
    assert len(unchanged.json()["items"]) == 1


def test_notes_can_be_cleared(client, owner_headers, create_client, invoice_payload):
    client_id = create_client(1)["id"]
    invoice = create_invoice(client, owner_headers, invoice_payload(client_id, notes="Pay by Friday"))

    response = client.put(f"/api/v1/invoices/{invoice['id']}", json={"notes": None}, headers=owner_headers)
    assert response.status_code == 200
    assert response.json()["notes"] is None


def test_status_cannot_be_set_to_paid_by_hand(client, owner_headers, create_client, invoice_payload):
    client_id = create_client(1)["id"]
    invoice = create_invoice(client, owner_headers, invoice_payload(client_id))

    response = client.put(f"/api/v1/invoices/{invoice['id']}", json={"status": "paid"}, headers=owner_headers)
    assert response.status_code == 400


def test_list_and_filter_invoices(client, owner_headers, create_client, invoice_payload):
    first = create_client(1)["id"]
    second = create_client(2)["id"]
    create_invoice(client, owner_headers, invoice_payload(first))
    create_invoice(client, owner_headers, invoice_payload(second, status="pending"))

    everything = client.get("/api/v1/invoices", headers=owner_headers).json()
    assert everything["total"] == 2

    pending = client.get("/api/v1/invoices", params={"status": "pending"}, headers=owner_headers).json()
    assert pending["total"] == 1
    assert pending["items"][0]["client_id"] == second


def test_send_invoice_emails_link_and_marks_pending(client, owner_headers, create_client, invoice_payload,
                                                    email_service):
    client_id = create_client(1)["id"]
    invoice = create_invoice(client, owner_headers, invoice_payload(client_id))

    response = client.post(f"/api/v1/invoices/{invoice['id']}/send", headers=owner_headers)
    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "pending"
    assert body["invoice_link"].endswith(f"/invoice/{invoice['public_token']}")

    assert len(email_service.sent) == 1
    sent = email_service.sent[0]
    assert sent["to"] == "jane1@example.com"
    assert sent["subject"] == "Invoice from Harbor Clinic"
    assert invoice["public_token"] in sent["html"]


def test_invoice_stats(client, owner_headers, create_client, invoice_payload):
    client_id = create_client(1)["id"]
    create_invoice(client, owner_headers, invoice_payload(client_id, status="pending"))

    stats = client.get("/api/v1/invoices/stats", headers=owner_headers).json()
    assert stats["due_amount"] == 110.0
    assert stats["pending_count"] == 1
    assert stats["paid_count"] == 0


def test_public_payment_flow(client, owner_headers, create_client, invoice_payload, gateway):
    client_id = create_client(1)["id"]
    invoice = create_invoice(client, owner_headers, invoice_payload(client_id, status="pending"))
    token = invoice["public_token"]

    public = client.get(f"/api/v1/public/invoices/{token}")
    assert public.status_code == 200
    assert public.json()["clinic_name"] == "Harbor Clinic"
    assert public.json()["client_name"] == "Jane Doe1"

    intent = client.post(f"/api/v1/public/invoices/{token}/payment-intent")
    assert intent.status_code == 200
    intent_body = intent.json()
    assert intent_body["amount"] == 11000
    assert gateway.intents[intent_body["payment_intent_id"]]["metadata"]["invoice_id"] == str(invoice["id"])

    not_yet = client.post(f"/api/v1/public/invoices/{token}/confirm",
                          json={"payment_intent_id": intent_body["payment_intent_id"]})
    assert not_yet.status_code == 400

    gateway.succeed(intent_body["payment_intent_id"])
    confirmed = client.post(f"/api/v1/public/invoices/{token}/confirm",
                            json={"payment_intent_id": intent_body["payment_intent_id"]})
    assert confirmed.status_code == 200
    assert confirmed.json()["status"] == "paid"

    notifications = client.get("/api/v1/notifications", headers=owner_headers).json()
    assert any(n["title"] == "Invoice Paid" for n in notifications["items"])

    locked = client.put(f"/api/v1/invoices/{invoice['id']}", json={"notes": "late edit"}, headers=owner_headers)
    assert locked.status_code == 400


def test_unknown_public_token_is_404(client):
    response = client.get("/api/v1/public/invoices/does-not-exist")
    assert response.status_code == 404


def test_webhook_marks_invoice_paid_once(db, client, owner_headers, create_client, invoice_payload, signed_webhook):
    client_id = create_client(1)["id"]
    invoice = create_invoice(client, owner_headers, invoice_payload(client_id, status="pending"))

    payload, headers = signed_webhook(
        "payment_intent.succeeded",
        {"id": "pi_webhook_1", "object": "payment_intent", "metadata": {"invoice_id": str(invoice["id"])}},
    )
    response = client.post("/api/v1/payments/webhook", content=payload, headers=headers)
    assert response.status_code == 200
    assert response.json() == {"received": True, "event_type": "payment_intent.succeeded"}

    paid = client.get(f"/api/v1/invoices/{invoice['id']}", headers=owner_headers).json()
    assert paid["status"] == "paid"
    assert paid["payment_intent_id"] == "pi_webhook_1"

    repeat = client.post("/api/v1/payments/webhook", content=payload, headers=headers)
    assert repeat.status_code == 200
    paid_notifications = db.query(models.Notification).filter(models.Notification.title == "Invoice Paid").count()
    assert paid_notifications == 1


def test_webhook_rejects_bad_signature(client, signed_webhook):
    payload, headers = signed_webhook("payment_intent.succeeded", {"id": "pi_x"}, secret="whsec_wrong")
    response = client.post("/api/v1/payments/webhook", content=payload, headers=headers)
    assert response.status_code == 400
    assert response.json()["message"] == "Invalid webhook signature"


def test_webhook_requires_signature_header(client):
    response = client.post("/api/v1/payments/webhook", content=b"{}")
    assert response.status_code == 400


def test_subscription_deleted_webhook_cancels(db, client, clinic, signed_webhook):
    subscription = db.query(models.Subscription).filter(models.Subscription.clinic_id == clinic.id).one()
    subscription.stripe_customer_id = "cus_harbor"
    subscription.stripe_subscription_id = "sub_harbor"
    db.commit()

    payload, headers = signed_webhook(
        "customer.subscription.deleted",
        {"id": "sub_harbor", "object": "subscription", "customer": "cus_harbor", "status": "canceled"},
    )
    response = client.post("/api/v1/payments/webhook", content=payload, headers=headers)
    assert response.status_code == 200

    db.expire_all()
    subscription = db.query(models.Subscription).filter(models.Subscription.clinic_id == clinic.id).one()
    assert subscription.status == models.SubscriptionStatus.cancelled
    assert subscription.cancelled_at is not None
