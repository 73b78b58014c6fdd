# tests/test_subscriptions.py
from datetime import timedelta

import pytest
from sqlalchemy.orm import sessionmaker

from clinicdesk import crud, models, schemas
from clinicdesk.exceptions import ApiError
from clinicdesk.services.plan_service import PlanService
from clinicdesk.services.subscription_service import LimitService, SubscriptionService, TrialService
from clinicdesk.utils import utcnow


def expire_trial(db, clinic_id):
    subscription = SubscriptionService(db).get_subscription_by_clinic_id(clinic_id)
    subscription.trial_start = utcnow() - timedelta(days=15)
    subscription.trial_end = utcnow() - timedelta(days=1)
    db.commit()
    return subscription


def test_new_clinic_starts_on_free_plan(db, clinic):
    subscription = SubscriptionService(db).get_subscription_by_clinic_id(clinic.id)
    assert subscription.status == models.SubscriptionStatus.active
    assert subscription.plan.type == models.PlanType.free


def test_missing_subscription_is_provisioned_on_status_check(db, clinic):
    db.query(models.Subscription).filter(models.Subscription.clinic_id == clinic.id).delete()
    db.commit()

    subscription = SubscriptionService(db).check_subscription_status(clinic.id)
    assert subscription.plan.type == models.PlanType.free
    assert db.query(models.Subscription).filter(models.Subscription.clinic_id == clinic.id).count() == 1


def test_create_subscription_conflicts_when_one_exists(db, clinic):
    free_plan = PlanService(db).get_plan_by_type(models.PlanType.free)
    with pytest.raises(ApiError) as exc:
        SubscriptionService(db).create_subscription(schemas.SubscriptionCreate(clinic_id=clinic.id, plan_id=free_plan.id))
    assert exc.value.status_code == 409


def test_expired_trial_is_downgraded_on_status_check(db, clinic):
    TrialService(db).start_trial(clinic.id)
    expire_trial(db, clinic.id)

    subscription = SubscriptionService(db).check_subscription_status(clinic.id)
    assert subscription.status == models.SubscriptionStatus.active
    assert subscription.plan.type == models.PlanType.free


def test_process_expired_trials_is_idempotent(db, clinic):
    TrialService(db).start_trial(clinic.id)
    expire_trial(db, clinic.id)

    first = TrialService(db).process_expired_trials()
    assert first["processed"] == 1
    assert first["successful"] == 1
    assert first["results"][0]["previous_plan"] == "Professional Plan"
    assert first["results"][0]["new_plan"] == "Free Plan"

    second = TrialService(db).process_expired_trials()
    assert second == {"processed": 0, "successful": 0, "failed": 0, "results": []}


def test_one_failed_downgrade_does_not_stop_the_batch(db, clinic, monkeypatch):
    other_owner = crud.create_user(db, schemas.UserCreate(username="second", email="second@example.com",
                                                         password="secret123"))
    other_clinic = crud.create_clinic(db, schemas.ClinicCreate(name="Second Clinic"), other_owner)
    for clinic_id in (clinic.id, other_clinic.id):
        TrialService(db).start_trial(clinic_id)
        expire_trial(db, clinic_id)

    trials = TrialService(db)
    apply_changes = trials.subscriptions.apply_changes
    failing_clinic_id = clinic.id

    def apply_changes_failing_for_one_clinic(subscription, **fields):
        if subscription.clinic_id == failing_clinic_id:
            raise RuntimeError("database unavailable")
        return apply_changes(subscription, **fields)

    monkeypatch.setattr(trials.subscriptions, "apply_changes", apply_changes_failing_for_one_clinic)
    result = trials.process_expired_trials()

    assert result["processed"] == 2
    assert result["successful"] == 1
    assert result["failed"] == 1
    failure = next(r for r in result["results"] if not r["success"])
    assert failure["clinic_name"] == "Harbor Clinic"
    assert failure["error"] == "database unavailable"

    still_trialing = SubscriptionService(db).get_subscription_by_clinic_id(failing_clinic_id)
    assert still_trialing.status == models.SubscriptionStatus.trialing
    downgraded = SubscriptionService(db).get_subscription_by_clinic_id(other_clinic.id)
    assert downgraded.plan.type == models.PlanType.free


def test_losing_a_concurrent_insert_returns_the_winning_row(db, clinic, monkeypatch):
    db.query(models.Subscription).filter(models.Subscription.clinic_id == clinic.id).delete()
    db.commit()
    professional_id = PlanService(db).get_plan_by_type(models.PlanType.professional).id
    clinic_id = clinic.id
    other_session = sessionmaker(autocommit=False, autoflush=False, bind=db.get_bind())()

    service = SubscriptionService(db)
    get_plan_by_type = service.plans.get_plan_by_type

    def insert_competing_row_first(plan_type):
        other_session.add(models.Subscription(clinic_id=clinic_id, plan_id=professional_id,
                                              status=models.SubscriptionStatus.active))
        other_session.commit()
        return get_plan_by_type(plan_type)

    monkeypatch.setattr(service.plans, "get_plan_by_type", insert_competing_row_first)
    try:
        subscription = service.check_subscription_status(clinic_id)
    finally:
        other_session.close()

    assert subscription.plan_id == professional_id
    assert db.query(models.Subscription).filter(models.Subscription.clinic_id == clinic_id).count() == 1


def test_running_trial_is_left_alone_by_batch(db, clinic):
    TrialService(db).start_trial(clinic.id)
    assert TrialService(db).process_expired_trials()["processed"] == 0
    status = TrialService(db).get_trial_status(clinic.id)
    assert status["is_trialing"] is True
    assert status["days_remaining"] == 14


def test_trial_can_only_be_started_once(db, clinic):
    trials = TrialService(db)
    trials.start_trial(clinic.id, duration_days=7)
    with pytest.raises(ApiError) as exc:
        trials.start_trial(clinic.id)
    assert exc.value.status_code == 400
    assert exc.value.message == "Trial already used"


def test_client_limit_counts_only_non_inactive_clients(db, clinic):
    for i in range(3):
        db.add(models.Client(clinic_id=clinic.id, first_name="A", last_name=str(i), email=f"a{i}@example.com"))
    db.add(models.Client(clinic_id=clinic.id, first_name="B", last_name="Gone", email="gone@example.com",
                         status=models.ClientStatus.inactive))
    db.commit()

    check = LimitService(db).check_client_limit(clinic.id)
    assert check == {"can_add_client": True, "current_count": 3, "limit": 10, "is_unlimited": False}


def test_owner_counts_against_clinician_limit(db, clinic):
    check = LimitService(db).check_clinician_limit(clinic.id)
    assert check["current_count"] == 1
    assert check["can_add_clinician"] is False


def test_enterprise_plan_is_unlimited(db, clinic):
    subscription = SubscriptionService(db).get_subscription_by_clinic_id(clinic.id)
    enterprise = PlanService(db).get_plan_by_type(models.PlanType.enterprise)
    SubscriptionService(db).apply_changes(subscription, plan_id=enterprise.id)

    check = LimitService(db).check_client_limit(clinic.id)
    assert check["is_unlimited"] is True
    assert check["can_add_client"] is True


def test_sync_from_stripe_maps_status(db, clinic):
    subscription = SubscriptionService(db).get_subscription_by_clinic_id(clinic.id)
    SubscriptionService(db).apply_changes(subscription, stripe_customer_id="cus_123")

    synced = SubscriptionService(db).sync_from_stripe(
        {"id": "sub_123", "customer": "cus_123", "status": "past_due", "current_period_end": 1893456000}
    )
    assert synced.stripe_subscription_id == "sub_123"
    assert synced.status == models.SubscriptionStatus.past_due
    assert synced.current_period_end is not None


def test_sync_from_stripe_ignores_unknown_subscription(db, clinic):
    assert SubscriptionService(db).sync_from_stripe({"id": "sub_missing", "status": "active"}) is None


# --- API ---
def test_read_my_subscription(client, owner_headers):
    response = client.get("/api/v1/subscriptions/me", headers=owner_headers)
    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "active"
    assert body["plan"]["type"] == "free"


def test_usage_endpoint(client, owner_headers, create_client):
    create_client(1)
    response = client.get("/api/v1/subscriptions/me/usage", headers=owner_headers)
    assert response.status_code == 200
    body = response.json()
    assert body["clients"] == {"can_add": True, "current_count": 1, "limit": 10, "is_unlimited": False}
    assert body["plan"]["type"] == "free"


def test_start_trial_via_api(client, owner_headers):
    response = client.post("/api/v1/subscriptions/me/trial", headers=owner_headers)
    assert response.status_code == 200, response.text
    body = response.json()
    assert body["status"] == "trialing"
    assert body["plan"]["type"] == "professional"

    eligibility = client.get("/api/v1/subscriptions/me/trial/eligibility", headers=owner_headers).json()
    assert eligibility == {"eligible": False, "reason": "Trial already used"}

    notifications = client.get("/api/v1/notifications", headers=owner_headers).json()
    assert any(n["title"] == "Trial Started" for n in notifications["items"])


def test_paid_upgrade_requires_billing_account(client, owner_headers):
    response = client.post("/api/v1/subscriptions/me/upgrade", json={"plan_type": "professional"},
                           headers=owner_headers)
    assert response.status_code == 400
    assert response.json()["message"].startswith("A billing account is required")


def test_cancel_blocks_gated_routes(client, owner_headers, create_client, invoice_payload):
    client_id = create_client(1)["id"]

    response = client.post("/api/v1/subscriptions/me/cancel", headers=owner_headers)
    assert response.status_code == 200
    assert response.json()["status"] == "cancelled"

    invoices = client.post("/api/v1/invoices", json=invoice_payload(client_id), headers=owner_headers)
    assert invoices.status_code == 403
    assert invoices.json()["message"].startswith("Your subscription has been cancelled")

    clients = client.get("/api/v1/clients", headers=owner_headers)
    assert clients.status_code == 403
    assert clients.json()["message"].startswith("Your subscription is not active")

    again = client.post("/api/v1/subscriptions/me/cancel", headers=owner_headers)
    assert again.status_code == 400


def test_past_due_returns_payment_required(db, client, clinic, owner_headers):
    subscription = SubscriptionService(db).get_subscription_by_clinic_id(clinic.id)
    SubscriptionService(db).apply_changes(subscription, status=models.SubscriptionStatus.past_due)

    response = client.get("/api/v1/clients", headers=owner_headers)
    assert response.status_code == 402


def test_admin_can_process_expired_trials(db, client, clinic, admin_headers):
    TrialService(db).start_trial(clinic.id)
    expire_trial(db, clinic.id)

    response = client.post("/api/v1/subscriptions/process-expired-trials", headers=admin_headers)
    assert response.status_code == 200
    assert response.json()["processed"] == 1

    response = client.post("/api/v1/subscriptions/process-expired-trials", headers=admin_headers)
    assert response.json()["processed"] == 0


def test_subscription_admin_routes_need_platform_role(client, owner_headers):
    response = client.get("/api/v1/subscriptions", headers=owner_headers)
    assert response.status_code == 403


def test_public_plan_catalog(client):
    response = client.get("/api/v1/plans")
    assert response.status_code == 200
    assert [p["type"] for p in response.json()] == ["free", "professional", "enterprise"]
