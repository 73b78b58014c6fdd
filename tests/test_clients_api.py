# tests/test_clients_api.py
from clinicdesk import crud, models, schemas


def test_create_and_read_client(client, owner_headers, create_client):
    created = create_client(1, note="Referred by GP")
    assert created["status"] == "active"

    response = client.get(f"/api/v1/clients/{created['id']}", headers=owner_headers)
    assert response.status_code == 200
    assert response.json()["email"] == "jane1@example.com"
    assert response.json()["note"] == "Referred by GP"


def test_eleventh_client_is_refused_on_free_plan(client, owner_headers, create_client, client_payload):
    for i in range(10):
        create_client(i)

    response = client.post("/api/v1/clients", json=client_payload(10), headers=owner_headers)
    assert response.status_code == 403
    assert response.json()["message"].startswith("Client limit reached")

    listing = client.get("/api/v1/clients", params={"limit": 100}, headers=owner_headers).json()
    assert listing["total"] == 10


def test_inactive_clients_do_not_use_quota(client, owner_headers, create_client, client_payload):
    for i in range(10):
        create_client(i)

    response = client.post("/api/v1/clients", json=client_payload(10, status="inactive"), headers=owner_headers)
    assert response.status_code == 201

    reactivate = client.put(f"/api/v1/clients/{response.json()['id']}", json={"status": "active"},
                            headers=owner_headers)
    assert reactivate.status_code == 403


def test_duplicate_email_in_clinic_conflicts(client, owner_headers, create_client, client_payload):
    create_client(1)
    response = client.post("/api/v1/clients", json=client_payload(2, email="jane1@example.com"), headers=owner_headers)
    assert response.status_code == 409


def test_search_and_status_filter(client, owner_headers, create_client):
    create_client(1, first_name="Alice")
    create_client(2, first_name="Bob", status="pending")

    found = client.get("/api/v1/clients", params={"search": "ali"}, headers=owner_headers).json()
    assert [c["first_name"] for c in found["items"]] == ["Alice"]

    pending = client.get("/api/v1/clients", params={"status": "pending"}, headers=owner_headers).json()
    assert [c["first_name"] for c in pending["items"]] == ["Bob"]


def test_clients_are_scoped_to_the_clinic(db, client, create_client, headers_for):
    created = create_client(1)

    other_owner = crud.create_user(db, schemas.UserCreate(username="other", email="other@example.com",
                                                         password="secret123"))
    crud.create_clinic(db, schemas.ClinicCreate(name="Other Clinic"), other_owner)

    response = client.get(f"/api/v1/clients/{created['id']}", headers=headers_for(other_owner))
    assert response.status_code == 404


def test_client_with_invoice_cannot_be_deleted(client, owner_headers, create_client, invoice_payload):
    client_id = create_client(1)["id"]
    assert client.post("/api/v1/invoices", json=invoice_payload(client_id), headers=owner_headers).status_code == 201

    response = client.delete(f"/api/v1/clients/{client_id}", headers=owner_headers)
    assert response.status_code == 400

    spare = create_client(2)["id"]
    assert client.delete(f"/api/v1/clients/{spare}", headers=owner_headers).status_code == 200


def test_client_notes(client, owner_headers, create_client):
    client_id = create_client(1)["id"]

    added = client.post(f"/api/v1/clients/{client_id}/notes", json={"note": "First visit went well"},
                        headers=owner_headers)
    assert added.status_code == 201

    notes = client.get(f"/api/v1/clients/{client_id}/notes", headers=owner_headers).json()
    assert [n["note"] for n in notes] == ["First visit went well"]

    deleted = client.delete(f"/api/v1/clients/{client_id}/notes/{added.json()['id']}", headers=owner_headers)
    assert deleted.status_code == 200


def test_clinician_without_clients_right_is_refused(db, client, clinic, owner, headers_for, client_payload):
    enterprise = db.query(models.Plan).filter(models.Plan.type == models.PlanType.enterprise).one()
    clinic.subscription.plan_id = enterprise.id
    clinic.permissions = dict(models.DEFAULT_CLINIC_PERMISSIONS, clinician_clients=False)
    db.commit()

    clinician = crud.create_user(db, schemas.UserCreate(username="clinician", email="clinician@example.com",
                                                       password="secret123"))
    crud.add_member(db, clinic.id, schemas.MemberCreate(identifier="clinician"))

    response = client.post("/api/v1/clients", json=client_payload(1), headers=headers_for(clinician))
    assert response.status_code == 403
    assert response.json()["message"] == "Permission 'clients' is required"


def test_unauthenticated_request_is_401(client):
    response = client.get("/api/v1/clients")
    assert response.status_code == 401
