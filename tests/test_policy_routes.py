from uuid import uuid4

import pytest
from sqlalchemy.exc import SQLAlchemyError

from conftest import (
    NOW,
    FakeAsyncSession,
    FakeResult,
    entity_handler,
    make_actor,
    make_policy,
    sequence_handler,
    staff_headers,
    staff_token,
)
from rentguard.models.activity_log import ActivityLog
from rentguard.models.actor import Actor
from rentguard.models.policy import Policy
from rentguard.models.review import DocumentValidation, SectionValidation
from rentguard.schemas.policies import ActorCreateRequest
from rentguard.services import notifications, policies
from rentguard.services.errors import InternalError, StateConflictError, ValidationError

INITIATE_BODY = {
    "tenantEmail": "Ana.Lopez@Example.com",
    "tenantName": "Ana López",
    "tenantPhone": "+52 55 1234 5678",
    "propertyAddress": "Av. Insurgentes Sur 1000, CDMX",
    "rentAmount": "18500.00",
}


# ---------------------------------------------------------------------------
# Auth
# ---------------------------------------------------------------------------


def test_missing_token_is_401(client):
    response = client.get("/api/v1/policies")
    assert response.status_code == 401
    assert response.json()["error"] == "Unauthorized"
    assert response.headers["WWW-Authenticate"] == "Bearer"


def test_bad_signature_is_401(client):
    token = staff_token(secret="someone-else")
    response = client.get("/api/v1/policies", headers={"Authorization": f"Bearer {token}"})
    assert response.status_code == 401


def test_non_staff_role_is_403(client):
    response = client.get("/api/v1/policies", headers=staff_headers(role="tenant"))
    assert response.status_code == 403
    assert response.json()["error"] == "Forbidden: staff or admin role required"


# ---------------------------------------------------------------------------
# Initiation
# ---------------------------------------------------------------------------


def test_initiate_creates_policy_and_sends_invitation(client, fake_db, _no_outbound_email):
    response = client.post("/api/v1/policies/initiate", json=INITIATE_BODY, headers=staff_headers())

    assert response.status_code == 200
    body = response.json()
    assert body["message"] == "Policy created and invitation sent"
    assert body["policy"]["emailSent"] is True
    assert body["policy"]["status"] == "SENT"
    assert body["policy"]["tenantEmail"] == "ana.lopez@example.com"
    assert body["policy"]["accessToken"]

    [policy] = fake_db.added_of(Policy)
    [tenant] = fake_db.added_of(Actor)
    assert policy.policy_number.startswith("POL-")
    assert policy.initiated_by == "staff-1"
    assert tenant.actor_type == "tenant"
    assert tenant.policy_id == policy.id
    assert [log.action for log in fake_db.added_of(ActivityLog)] == ["policy_created", "invitation_sent"]
    assert _no_outbound_email == [{"to": "ana.lopez@example.com", "template": "policy_invitation"}]


def test_initiate_keeps_draft_when_email_fails(client, fake_db, monkeypatch):
    async def _fail(message):
        return False

    monkeypatch.setattr(notifications, "send_email", _fail)

    response = client.post("/api/v1/policies/initiate", json=INITIATE_BODY, headers=staff_headers())

    assert response.status_code == 200
    body = response.json()
    assert body["policy"]["emailSent"] is False
    assert body["policy"]["status"] == "DRAFT"
    assert "could not be sent" in body["message"]
    assert [log.action for log in fake_db.added_of(ActivityLog)] == ["policy_created", "invitation_failed"]


def test_initiate_validates_email(client):
    response = client.post(
        "/api/v1/policies/initiate", json={"tenantEmail": "not-an-email"}, headers=staff_headers()
    )
    assert response.status_code == 400
    assert response.json()["code"] == "validation_error"


def test_policy_numbers_follow_format():
    number = policies.generate_policy_number(NOW)
    prefix, day, suffix = number.split("-")
    assert (prefix, day) == ("POL", "20260302")
    assert len(suffix) == 6 and suffix.isalnum() and suffix.upper() == suffix


# ---------------------------------------------------------------------------
# Listing and detail
# ---------------------------------------------------------------------------


def test_list_policies_returns_page_and_total(client, fake_db):
    first, second = make_policy(), make_policy(status="SUBMITTED")
    fake_db.on_execute(sequence_handler([FakeResult(scalar=7), FakeResult(items=[first, second])]))

    response = client.get("/api/v1/policies", params={"limit": 2}, headers=staff_headers())

    assert response.status_code == 200
    body = response.json()
    assert body["total"] == 7
    assert [item["id"] for item in body["items"]] == [str(first.id), str(second.id)]


def test_unknown_policy_is_404(client):
    response = client.get(f"/api/v1/policies/{uuid4()}", headers=staff_headers())
    assert response.status_code == 404
    assert response.json()["error"] == "Policy not found"


def test_policy_detail_nests_actors(client, fake_db):
    policy = make_policy()
    tenant = make_actor(policy)
    fake_db.on_execute(entity_handler(Policy, FakeResult(scalar=policy)))
    fake_db.on_execute(entity_handler(Actor, FakeResult(items=[tenant])))

    response = client.get(f"/api/v1/policies/{policy.id}", headers=staff_headers())

    assert response.status_code == 200
    body = response.json()
    assert body["policyNumber"] == policy.policy_number
    assert [actor["id"] for actor in body["actors"]] == [str(tenant.id)]
    assert body["actors"][0]["sections"] == {}


def test_completeness_endpoint(client, fake_db):
    policy = make_policy()
    tenant = make_actor(policy)
    fake_db.on_execute(entity_handler(Policy, FakeResult(scalar=policy)))
    fake_db.on_execute(entity_handler(Actor, FakeResult(items=[tenant])))

    response = client.get(f"/api/v1/policies/{policy.id}/completeness", headers=staff_headers())

    assert response.status_code == 200
    body = response.json()
    assert body["valid"] is False
    assert body["missingByActor"] == {str(tenant.id): body["missing"]}


# ---------------------------------------------------------------------------
# Invitations, payment and status
# ---------------------------------------------------------------------------


def test_resend_rotates_token(client, fake_db):
    policy = make_policy(status="SENT")
    old_token = policy.access_token
    tenant = make_actor(policy)
    fake_db.on_execute(entity_handler(Policy, FakeResult(scalar=policy)))
    fake_db.on_execute(entity_handler(Actor, FakeResult(scalar=tenant)))

    response = client.post(f"/api/v1/policies/{policy.id}/resend-invitation", headers=staff_headers())

    assert response.status_code == 200
    assert response.json()["policy"]["accessToken"] != old_token
    assert policy.access_token != old_token


def test_resend_refused_once_intake_started(client, fake_db):
    policy = make_policy(status="INTAKE_IN_PROGRESS")
    fake_db.on_execute(entity_handler(Policy, FakeResult(scalar=policy)))

    response = client.post(f"/api/v1/policies/{policy.id}/resend-invitation", headers=staff_headers())

    assert response.status_code == 400
    assert response.json()["code"] == "invitation_not_allowed"


def test_payment_update_is_logged(client, fake_db):
    policy = make_policy(status="INTAKE_IN_PROGRESS")
    fake_db.on_execute(entity_handler(Policy, FakeResult(scalar=policy)))

    response = client.post(
        f"/api/v1/policies/{policy.id}/payment",
        json={"paymentStatus": "COMPLETED", "reference": "ch_123"},
        headers=staff_headers(),
    )

    assert response.status_code == 200
    assert response.json()["paymentStatus"] == "COMPLETED"
    [entry] = fake_db.added_of(ActivityLog)
    assert entry.action == "payment_status_changed"
    assert entry.payload == {"from": "PENDING", "to": "COMPLETED", "reference": "ch_123"}


@pytest.mark.asyncio
async def test_payment_update_refused_on_closed_policy():
    policy = make_policy(status="CANCELLED")
    with pytest.raises(StateConflictError):
        await policies.record_payment_status(FakeAsyncSession(), policy, "COMPLETED", actor_ref="s")


def test_staff_cannot_jump_to_submitted(client, fake_db):
    policy = make_policy(status="INTAKE_IN_PROGRESS")
    fake_db.on_execute(entity_handler(Policy, FakeResult(scalar=policy)))

    response = client.post(
        f"/api/v1/policies/{policy.id}/transition", json={"status": "SUBMITTED"}, headers=staff_headers()
    )

    assert response.status_code == 400
    assert policy.status == "INTAKE_IN_PROGRESS"


def test_cancel_from_any_open_status(client, fake_db):
    policy = make_policy(status="UNDER_REVIEW")
    fake_db.on_execute(entity_handler(Policy, FakeResult(scalar=policy)))

    response = client.post(
        f"/api/v1/policies/{policy.id}/transition",
        json={"status": "CANCELLED", "reason": "Tenant withdrew"},
        headers=staff_headers(role="admin"),
    )

    assert response.status_code == 200
    assert response.json()["status"] == "CANCELLED"
    [entry] = fake_db.added_of(ActivityLog)
    assert entry.payload == {"from": "UNDER_REVIEW", "to": "CANCELLED", "reason": "Tenant withdrew"}


def test_contract_pending_requires_full_approval(client, fake_db):
    policy = make_policy(status="UNDER_REVIEW")
    tenant = make_actor(policy)
    fake_db.on_execute(entity_handler(Policy, FakeResult(scalar=policy)))
    fake_db.on_execute(entity_handler(Actor, FakeResult(items=[tenant])))
    fake_db.on_execute(
        entity_handler(
            SectionValidation,
            FakeResult(items=[SectionValidation(actor_id=tenant.id, section_name="personal_info", status="APPROVED")]),
        )
    )

    response = client.post(
        f"/api/v1/policies/{policy.id}/transition", json={"status": "CONTRACT_PENDING"}, headers=staff_headers()
    )

    assert response.status_code == 400
    assert response.json()["code"] == "review_incomplete"
    assert policy.status == "UNDER_REVIEW"


def test_contract_pending_after_full_approval(client, fake_db):
    policy = make_policy(status="UNDER_REVIEW")
    tenant = make_actor(policy)
    approved = [
        SectionValidation(actor_id=tenant.id, section_name=name, status="APPROVED")
        for name in ("personal_info", "employment", "references")
    ]
    fake_db.on_execute(entity_handler(Policy, FakeResult(scalar=policy)))
    fake_db.on_execute(entity_handler(Actor, FakeResult(items=[tenant])))
    fake_db.on_execute(entity_handler(SectionValidation, FakeResult(items=approved)))
    fake_db.on_execute(entity_handler(DocumentValidation, FakeResult(items=[])))

    response = client.post(
        f"/api/v1/policies/{policy.id}/transition", json={"status": "CONTRACT_PENDING"}, headers=staff_headers()
    )

    assert response.status_code == 200
    assert policy.status == "CONTRACT_PENDING"


@pytest.mark.asyncio
async def test_expiry_sweep_moves_lapsed_policies():

    lapsed = [make_policy(status="SENT"), make_policy(status="INTAKE_IN_PROGRESS")]
    db = FakeAsyncSession().on_execute_return(FakeResult(items=lapsed))

    assert await policies.expire_stale_policies(db, now=NOW) == 2
    assert {policy.status for policy in lapsed} == {"EXPIRED"}
    assert [log.actor_ref for log in db.added_of(ActivityLog)] == ["system", "system"]


@pytest.mark.asyncio
async def test_expiry_sweep_with_nothing_to_do():
    db = FakeAsyncSession()
    assert await policies.expire_stale_policies(db) == 0
    assert db.commits == 0


# ---------------------------------------------------------------------------
# Actors
# ---------------------------------------------------------------------------


def _landlord_request(**overrides):
    body = {
        "actorType": "landlord",
        "identity": {"kind": "company", "companyName": "Inmuebles Roma SA"},
        "contact": {"email": "Owner@Example.com"},
    }
    body.update(overrides)
    return ActorCreateRequest.model_validate(body)


def test_reconcile_primary_landlord():
    policy = make_policy()
    first = make_actor(policy, actor_type="landlord")
    second = make_actor(policy, actor_type="landlord", is_primary=True)

    assert policies.reconcile_primary_landlord([]) is None
    assert policies.reconcile_primary_landlord([first, second]) == second.id
    assert policies.reconcile_primary_landlord([first, second], preferred_id=first.id) == first.id
    assert policies.reconcile_primary_landlord([first, second], preferred_id=uuid4()) == second.id
    second.is_primary = False
    assert policies.reconcile_primary_landlord([first, second]) == first.id


@pytest.mark.asyncio
async def test_first_landlord_becomes_primary():
    db = FakeAsyncSession()
    policy = make_policy()

    actor = await policies.add_actor(db, policy, _landlord_request(), actor_ref="staff-1")

    assert actor.is_primary is True
    assert actor.is_company is True
    assert actor.display_name == "Inmuebles Roma SA"
    assert actor.email == "owner@example.com"


@pytest.mark.asyncio
async def test_new_primary_demotes_existing_one_first():
    policy = make_policy()
    current = make_actor(policy, actor_type="landlord", is_primary=True)
    db = FakeAsyncSession().on_execute_return(FakeResult(items=[current]))

    actor = await policies.add_actor(db, policy, _landlord_request(isPrimary=True), actor_ref="staff-1")

    assert actor.is_primary is True
    assert current.is_primary is False
    assert db.flushed is True


@pytest.mark.asyncio
async def test_second_landlord_is_not_primary_by_default():
    policy = make_policy()
    current = make_actor(policy, actor_type="landlord", is_primary=True)
    db = FakeAsyncSession().on_execute_return(FakeResult(items=[current]))

    actor = await policies.add_actor(db, policy, _landlord_request(), actor_ref="staff-1")

    assert actor.is_primary is False
    assert current.is_primary is True


@pytest.mark.asyncio
async def test_only_landlords_can_be_primary():
    request = ActorCreateRequest.model_validate(
        {
            "actorType": "aval",
            "identity": {"kind": "individual", "firstName": "Jorge", "paternalLastName": "Ruiz"},
            "isPrimary": True,
        }
    )
    with pytest.raises(ValidationError) as exc:
        await policies.add_actor(FakeAsyncSession(), make_policy(), request, actor_ref="staff-1")
    assert exc.value.code == "invalid_primary"


@pytest.mark.asyncio
async def test_second_tenant_is_refused():
    request = ActorCreateRequest.model_validate(
        {"actorType": "tenant", "identity": {"kind": "company", "companyName": "Otra SA"}}
    )
    with pytest.raises(ValidationError) as exc:
        await policies.add_actor(FakeAsyncSession(), make_policy(), request, actor_ref="staff-1")
    assert exc.value.code == "tenant_exists"


@pytest.mark.asyncio
async def test_removing_primary_promotes_earliest_landlord():
    policy = make_policy()
    primary = make_actor(policy, actor_type="landlord", is_primary=True)
    other = make_actor(policy, actor_type="landlord")
    db = FakeAsyncSession().on_execute_return(FakeResult(items=[primary, other]))

    await policies.remove_actor(db, policy, primary, actor_ref="staff-1")

    assert db.deleted == [primary]
    assert other.is_primary is True
    [entry] = db.added_of(ActivityLog)
    assert entry.payload["promotedActorId"] == str(other.id)


@pytest.mark.asyncio
async def test_tenant_cannot_be_removed():
    policy = make_policy()
    with pytest.raises(ValidationError):
        await policies.remove_actor(FakeAsyncSession(), policy, make_actor(policy), actor_ref="staff-1")


@pytest.mark.asyncio
async def test_actor_add_failure_rolls_back():
    db = FakeAsyncSession()
    db.fail_commit_with = SQLAlchemyError("duplicate primary")
    with pytest.raises(InternalError):
        await policies.add_actor(db, make_policy(), _landlord_request(), actor_ref="staff-1")
    assert db.rollbacks == 1


def test_set_primary_route(client, fake_db):
    policy = make_policy()
    current = make_actor(policy, actor_type="landlord", is_primary=True)
    target = make_actor(policy, actor_type="landlord")
    fake_db.on_execute(entity_handler(Policy, FakeResult(scalar=policy)))
    fake_db.on_execute(entity_handler(Actor, FakeResult(scalar=target, items=[current, target])))

    response = client.post(f"/api/v1/policies/{policy.id}/actors/{target.id}/primary", headers=staff_headers())

    assert response.status_code == 200
    assert response.json()["isPrimary"] is True
    assert current.is_primary is False


def test_staff_section_update_validates_payload(client, fake_db):
    policy = make_policy()
    landlord = make_actor(policy, actor_type="landlord")
    fake_db.on_execute(entity_handler(Policy, FakeResult(scalar=policy)))
    fake_db.on_execute(entity_handler(Actor, FakeResult(scalar=landlord)))

    bad = client.put(
        f"/api/v1/policies/{policy.id}/actors/{landlord.id}/sections/financial_info",
        json={"bankName": "BBVA", "accountHolder": "Ana", "clabe": "123"},
        headers=staff_headers(),
    )
    assert bad.status_code == 400

    good = client.put(
        f"/api/v1/policies/{policy.id}/actors/{landlord.id}/sections/financial_info",
        json={"bankName": "BBVA", "accountHolder": "Ana", "clabe": "012180001234567891"},
        headers=staff_headers(),
    )
    assert good.status_code == 200
    assert good.json()["data"] == {"bankName": "BBVA", "accountHolder": "Ana", "clabe": "012180001234567891"}


def test_staff_section_update_rejects_unknown_section(client, fake_db):
    policy = make_policy()
    landlord = make_actor(policy, actor_type="landlord")
    fake_db.on_execute(entity_handler(Policy, FakeResult(scalar=policy)))
    fake_db.on_execute(entity_handler(Actor, FakeResult(scalar=landlord)))

    response = client.put(
        f"/api/v1/policies/{policy.id}/actors/{landlord.id}/sections/hobbies",
        json={},
        headers=staff_headers(),
    )

    assert response.status_code == 400
    assert response.json()["error"] == "Invalid section"
