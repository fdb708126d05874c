from datetime import timedelta
from uuid import uuid4

import pytest

from conftest import NOW, FakeResult, entity_handler, make_actor, make_document, make_policy, make_section
from rentguard.models.activity_log import ActivityLog
from rentguard.models.actor import Actor, ActorSection
from rentguard.models.document import Document
from rentguard.models.policy import Policy
from rentguard.services import notifications, token_gate

PDF_BYTES = b"%PDF-1.7\n" + b"0" * 256

ALL_SECTIONS = ("personal_info", "employment", "references", "documents", "property_guarantee")
TENANT_DOCS = ("identification", "income_proof", "address_proof", "bank_statement")


def _wire(fake_db, policy, tenant, *, sections=(), documents=(), others=()):
    fake_db.on_execute(entity_handler(Policy, FakeResult(scalar=policy)))
    fake_db.on_execute(entity_handler(Actor, FakeResult(scalar=tenant, items=[tenant, *others])))
    fake_db.on_execute(entity_handler(ActorSection, FakeResult(items=list(sections))))
    fake_db.on_execute(entity_handler(Document, FakeResult(items=list(documents))))


# ---------------------------------------------------------------------------
# Token gate
# ---------------------------------------------------------------------------


def test_unknown_token_is_404(client):
    response = client.get("/api/v1/tenant/does-not-exist")
    assert response.status_code == 404
    body = response.json()
    assert body["success"] is False
    assert body["error"] == "Invalid or expired token"


def test_expired_token_matches_unknown_token(client, fake_db):
    policy = make_policy(token_expiry=NOW - timedelta(days=1))
    fake_db.on_execute(entity_handler(Policy, FakeResult(scalar=policy)))

    expired = client.get(f"/api/v1/tenant/{policy.access_token}")
    unknown = client.get("/api/v1/tenant/other-token")

    assert expired.status_code == unknown.status_code == 404
    assert expired.json() == unknown.json()


def test_first_open_moves_sent_to_pending_intake(client, fake_db):
    policy = make_policy(status="SENT")
    tenant = make_actor(policy)
    _wire(
        fake_db,
        policy,
        tenant,
        sections=[make_section(tenant, "references", {"personalReferenceName": "Eva"})],
        documents=[make_document(policy, tenant)],
    )

    response = client.get(f"/api/v1/tenant/{policy.access_token}")

    assert response.status_code == 200
    snapshot = response.json()["policy"]
    assert snapshot["status"] == "PENDING_INTAKE"
    assert snapshot["tenant"]["actorType"] == "tenant"
    assert snapshot["sections"] == {"references": {"personalReferenceName": "Eva"}}
    assert snapshot["documents"][0]["category"] == "identification"
    assert [log.action for log in fake_db.added_of(ActivityLog)] == ["invitation_opened"]


# ---------------------------------------------------------------------------
# Steps
# ---------------------------------------------------------------------------


@pytest.mark.parametrize("step", ["0", "8", "abc", "1.5", "-1"])
def test_invalid_step_fails_before_token_lookup(client, monkeypatch, step):
    calls = []

    async def _resolve(db, token, **kwargs):
        calls.append(token)
        raise AssertionError("token lookup should not run")

    monkeypatch.setattr(token_gate, "resolve_policy", _resolve)

    response = client.put(f"/api/v1/tenant/any-token/step/{step}", json={})

    assert response.status_code == 400
    assert response.json()["error"] == "Invalid step number"
    assert calls == []


def test_step_update_saves_section(client, fake_db):
    policy = make_policy(status="PENDING_INTAKE", current_step=1)
    tenant = make_actor(policy)
    _wire(fake_db, policy, tenant)

    response = client.put(
        f"/api/v1/tenant/{policy.access_token}/step/1",
        json={"nationality": "MEXICAN", "curp": "ABCD123456HDFRLL01"},
    )

    assert response.status_code == 200
    assert response.json() == {"success": True, "currentStep": 2, "status": "INTAKE_IN_PROGRESS"}


def test_step_update_rejects_invalid_payload(client, fake_db):
    policy = make_policy(status="INTAKE_IN_PROGRESS", current_step=2)
    tenant = make_actor(policy)
    _wire(fake_db, policy, tenant)

    response = client.put(f"/api/v1/tenant/{policy.access_token}/step/3", json={"personalReferenceName": ""})

    assert response.status_code == 400
    body = response.json()
    assert body["error"] == "Invalid data"
    assert body["details"]["issues"]
    assert policy.current_step == 2


def test_step_update_rejects_malformed_json(client, fake_db):
    policy = make_policy(status="INTAKE_IN_PROGRESS")
    _wire(fake_db, policy, make_actor(policy))

    response = client.put(
        f"/api/v1/tenant/{policy.access_token}/step/2",
        content=b"{not json",
        headers={"Content-Type": "application/json"},
    )

    assert response.status_code == 400
    assert response.json()["error"] == "Invalid data"


def test_step_update_blocked_after_submission(client, fake_db):
    policy = make_policy(status="SUBMITTED")
    _wire(fake_db, policy, make_actor(policy))

    response = client.put(f"/api/v1/tenant/{policy.access_token}/step/6")

    assert response.status_code == 400
    assert response.json()["error"] == "Policy cannot be modified in its current state"


def test_review_step_requires_payment(client, fake_db):
    policy = make_policy(status="INTAKE_IN_PROGRESS", current_step=7, payment_status="PROCESSING")
    _wire(fake_db, policy, make_actor(policy))

    response = client.put(f"/api/v1/tenant/{policy.access_token}/step/7")

    assert response.status_code == 400
    assert response.json()["error"] == "Payment must be completed before proceeding to review"


# ---------------------------------------------------------------------------
# Uploads
# ---------------------------------------------------------------------------


def test_upload_requires_file(client, fake_db):
    policy = make_policy()
    _wire(fake_db, policy, make_actor(policy))

    response = client.post(f"/api/v1/tenant/{policy.access_token}/upload", data={"category": "identification"})

    assert response.status_code == 400
    assert response.json()["error"] == "File is required"


def test_upload_rejects_unknown_category(client, fake_db):
    policy = make_policy()
    _wire(fake_db, policy, make_actor(policy))

    response = client.post(
        f"/api/v1/tenant/{policy.access_token}/upload",
        files={"file": ("id.pdf", PDF_BYTES, "application/pdf")},
        data={"category": "selfie"},
    )

    assert response.status_code == 400
    assert response.json()["error"] == "Invalid category"


def test_upload_rejects_disallowed_type(client, fake_db):
    policy = make_policy()
    _wire(fake_db, policy, make_actor(policy))

    response = client.post(
        f"/api/v1/tenant/{policy.access_token}/upload",
        files={"file": ("notes.txt", b"hello", "text/plain")},
        data={"category": "identification"},
    )

    assert response.status_code == 400
    assert response.json()["error"].startswith("Invalid file type")


def test_upload_rejects_spoofed_content(client, fake_db, local_storage):
    policy = make_policy()
    _wire(fake_db, policy, make_actor(policy))

    response = client.post(
        f"/api/v1/tenant/{policy.access_token}/upload",
        files={"file": ("id.pdf", b"MZ\x90\x00" + b"0" * 64, "application/pdf")},
        data={"category": "identification"},
    )

    assert response.status_code == 400
    assert "does not match" in response.json()["error"]


def test_upload_stores_file_and_records_document(client, fake_db, local_storage):
    policy = make_policy()
    tenant = make_actor(policy)
    _wire(fake_db, policy, tenant)

    response = client.post(
        f"/api/v1/tenant/{policy.access_token}/upload",
        files={"file": ("../../id card.pdf", PDF_BYTES, "application/pdf")},
        data={"category": "IDENTIFICATION"},
    )

    assert response.status_code == 200
    document = response.json()["document"]
    assert document["category"] == "identification"
    assert document["originalName"] == "id card.pdf"
    assert document["fileSize"] == len(PDF_BYTES)

    [stored] = fake_db.added_of(Document)
    assert stored.actor_id == tenant.id
    assert local_storage.resolve_path(stored.storage_key).read_bytes() == PDF_BYTES
    assert stored.storage_key.endswith("/id_card.pdf")
    assert [log.action for log in fake_db.added_of(ActivityLog)] == ["document_uploaded"]


def test_delete_requires_document_id(client, monkeypatch):
    async def _resolve(db, token, **kwargs):
        raise AssertionError("token lookup should not run")

    monkeypatch.setattr(token_gate, "resolve_policy", _resolve)

    response = client.delete("/api/v1/tenant/any-token/upload")

    assert response.status_code == 400
    assert response.json()["error"] == "Document ID is required"


def test_delete_unknown_document_is_404(client, fake_db):
    policy = make_policy()
    fake_db.on_execute(entity_handler(Policy, FakeResult(scalar=policy)))

    response = client.delete(f"/api/v1/tenant/{policy.access_token}/upload", params={"documentId": str(uuid4())})

    assert response.status_code == 404
    assert response.json()["error"] == "Document not found"


# ---------------------------------------------------------------------------
# Submit
# ---------------------------------------------------------------------------


def test_submit_lists_missing_sections_and_documents(client, fake_db):
    policy = make_policy(status="INTAKE_IN_PROGRESS", payment_status="COMPLETED")
    tenant = make_actor(policy)
    _wire(
        fake_db,
        policy,
        tenant,
        sections=[make_section(tenant, name) for name in ALL_SECTIONS if name != "employment"],
    )

    response = client.post(f"/api/v1/tenant/{policy.access_token}/submit")

    assert response.status_code == 400
    body = response.json()
    assert body["error"] == "Incomplete application"
    assert "employment" in body["missing"]
    assert "identification" in body["missing"]


def test_submit_checks_documents_before_payment(client, fake_db):
    policy = make_policy(status="INTAKE_IN_PROGRESS", payment_status="PENDING")
    tenant = make_actor(policy)
    _wire(
        fake_db,
        policy,
        tenant,
        sections=[make_section(tenant, name) for name in ALL_SECTIONS],
        documents=[make_document(policy, tenant, "identification")],
    )

    response = client.post(f"/api/v1/tenant/{policy.access_token}/submit")

    assert response.status_code == 400
    body = response.json()
    assert body["error"] == "Missing required documents"
    assert body["missing"] == ["income_proof", "address_proof", "bank_statement"]


def test_submit_requires_payment(client, fake_db):
    policy = make_policy(status="INTAKE_IN_PROGRESS", payment_status="FAILED")
    tenant = make_actor(policy)
    _wire(
        fake_db,
        policy,
        tenant,
        sections=[make_section(tenant, name) for name in ALL_SECTIONS],
        documents=[make_document(policy, tenant, category) for category in TENANT_DOCS],
    )

    response = client.post(f"/api/v1/tenant/{policy.access_token}/submit")

    assert response.status_code == 400
    assert response.json()["missing"] == ["payment"]


def test_submit_succeeds_and_notifies(client, fake_db, _no_outbound_email):
    policy = make_policy(status="INTAKE_IN_PROGRESS", payment_status="COMPLETED")
    tenant = make_actor(policy)
    _wire(
        fake_db,
        policy,
        tenant,
        sections=[make_section(tenant, name) for name in ALL_SECTIONS],
        documents=[make_document(policy, tenant, category) for category in TENANT_DOCS],
    )

    response = client.post(f"/api/v1/tenant/{policy.access_token}/submit")

    assert response.status_code == 200
    body = response.json()
    assert body["message"] == "Application submitted successfully"
    assert body["policyId"] == str(policy.id)
    assert policy.status == "SUBMITTED"
    assert policy.submitted_at is not None
    assert _no_outbound_email == [{"to": policy.tenant_email, "template": "policy_submitted"}]

    again = client.post(f"/api/v1/tenant/{policy.access_token}/submit")
    assert again.status_code == 400
    assert again.json()["code"] == "already_submitted"


def test_submit_requires_aval_documents(client, fake_db):
    policy = make_policy(status="INTAKE_IN_PROGRESS", payment_status="COMPLETED")
    tenant = make_actor(policy)
    aval = make_actor(policy, actor_type="aval", display_name="Luis Pérez", email="aval@example.com")
    _wire(
        fake_db,
        policy,
        tenant,
        sections=[make_section(tenant, name) for name in ALL_SECTIONS],
        documents=[make_document(policy, tenant, category) for category in TENANT_DOCS],
        others=[aval],
    )

    response = client.post(f"/api/v1/tenant/{policy.access_token}/submit")

    assert response.status_code == 400
    body = response.json()
    assert body["error"] == "Missing required documents"
    assert body["missing"] == list(TENANT_DOCS)
    assert policy.status == "INTAKE_IN_PROGRESS"
    assert fake_db.commits == 0


def test_submit_survives_confirmation_email_failure(client, fake_db, monkeypatch):
    policy = make_policy(status="INTAKE_IN_PROGRESS", payment_status="COMPLETED")
    tenant = make_actor(policy)
    _wire(
        fake_db,
        policy,
        tenant,
        sections=[make_section(tenant, name) for name in ALL_SECTIONS],
        documents=[make_document(policy, tenant, category) for category in TENANT_DOCS],
    )

    async def _undeliverable(message):
        return False

    monkeypatch.setattr(notifications, "send_email", _undeliverable)

    response = client.post(f"/api/v1/tenant/{policy.access_token}/submit")

    assert response.status_code == 200
    assert response.json()["success"] is True
    assert policy.status == "SUBMITTED"
    assert [log.action for log in fake_db.added_of(ActivityLog)] == ["policy_submitted", "submission_email_failed"]
