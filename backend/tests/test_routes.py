# Overview: HTTP-level tests for authentication, error mapping and the approval endpoints.

from conftest import activated_token, auth_headers, get_auth_token
from sqlalchemy import text

from fundflow.extensions import db
from fundflow.services import approval_service
from fundflow.services.hierarchy_service import create_tenant, get_root_unit


def _create_report(client, token, unit_id, amount=3_000_000, category="EVENT"):
    response = client.post(
        "/api/expense-reports",
        json={"title": "여름수련회", "organization_unit_id": unit_id, "amount": amount, "category": category},
        headers=auth_headers(token),
    )
    assert response.status_code == 201, response.json
    return response.json["report"]


def test_health(client, db_session):
    response = client.get("/api/system/health")
    assert response.status_code == 200
    assert response.json["checks"]["database"]["status"] == "healthy"


def test_requests_without_token_are_refused(client, org):
    response = client.get("/api/organizations/units")
    assert response.status_code == 401
    assert response.json["code"] == "AUTH_REQUIRED"

    response = client.get("/api/organizations/units", headers=auth_headers("not-a-token"))
    assert response.status_code == 401


def test_login_with_wrong_password(client, org):
    response = client.post("/api/auth/login", json={"email": org.head.email, "password": "wrong-pass1"})
    assert response.status_code == 401

    response = client.post("/api/auth/login", json={"email": org.head.email})
    assert response.status_code == 400


def test_one_time_credential_must_be_changed(client, org):
    login = client.post("/api/auth/login", json={"email": org.head.email, "password": org.head.email})
    assert login.status_code == 200
    assert login.json["must_change_credential"] is True
    token = login.json["token"]

    blocked = client.get("/api/organizations/units", headers=auth_headers(token))
    assert blocked.status_code == 403
    assert blocked.json["code"] == "CREDENTIAL_CHANGE_REQUIRED"

    me = client.get("/api/auth/me", headers=auth_headers(token))
    assert me.status_code == 200

    weak = client.post(
        "/api/auth/change-credential",
        json={"current_password": org.head.email, "new_password": "short"},
        headers=auth_headers(token),
    )
    assert weak.status_code == 400

    changed = client.post(
        "/api/auth/change-credential",
        json={"current_password": org.head.email, "new_password": "NewPass123"},
        headers=auth_headers(token),
    )
    assert changed.status_code == 200

    allowed = client.get("/api/organizations/units", headers=auth_headers(token))
    assert allowed.status_code == 200

    assert get_auth_token(client, org.head.email, org.head.email) is None
    assert get_auth_token(client, org.head.email, "NewPass123") is not None


def test_logout_revokes_token(client, org):
    token = activated_token(client, org.head)
    assert client.post("/api/auth/logout", headers=auth_headers(token)).status_code == 200
    assert client.get("/api/auth/me", headers=auth_headers(token)).status_code == 401


def test_structure_edits_need_admin_role(client, org):
    treasurer = activated_token(client, org.treasurer)
    response = client.post(
        "/api/organizations/units",
        json={"name": "새가족부", "parent_id": org.root.id},
        headers=auth_headers(treasurer),
    )
    assert response.status_code == 403
    assert response.json["code"] == "AUTHORITY_DENIED"

    chair = activated_token(client, org.chair)
    response = client.post(
        "/api/organizations/units",
        json={"name": "새가족부", "parent_id": org.root.id},
        headers=auth_headers(chair),
    )
    assert response.status_code == 201
    assert response.json["unit"]["level"] == "LEVEL_2"


def test_other_tenant_records_are_not_found(client, org):
    other = create_tenant("다른교회", "OTHER")
    foreign_root = get_root_unit(other.id)

    token = activated_token(client, org.chair)
    response = client.get(f"/api/organizations/units/{foreign_root.id}", headers=auth_headers(token))
    assert response.status_code == 404
    assert response.json["code"] == "NOT_FOUND"


def test_unresolvable_approver_is_reported(client, org):
    token = activated_token(client, org.assistant)
    report = _create_report(client, token, org.mission.id)

    response = client.post(f"/api/expense-reports/{report['id']}/submit", headers=auth_headers(token))
    assert response.status_code == 422
    assert response.json["code"] == "UNRESOLVABLE_APPROVER"
    assert response.json["tier"] == 1
    assert response.json["affordance"] == "contact-admin"

    detail = client.get(f"/api/expense-reports/{report['id']}", headers=auth_headers(token))
    assert detail.json["report"]["workflow_status"] == "DRAFT"


def test_approval_over_http(client, org):
    requester = activated_token(client, org.assistant)
    treasurer = activated_token(client, org.treasurer)
    head = activated_token(client, org.head)

    preview = client.post(
        "/api/approvals/preview",
        json={"organization_unit_id": org.department.id, "amount": 3_000_000, "category": "EVENT"},
        headers=auth_headers(requester),
    )
    assert preview.status_code == 200
    assert preview.json["preview"]["total_steps"] == 3

    report = _create_report(client, requester, org.department.id)
    submitted = client.post(f"/api/expense-reports/{report['id']}/submit", headers=auth_headers(requester))
    assert submitted.status_code == 201
    flow = submitted.json["flow"]
    assert flow["current_step"]["resolved_approver_user_id"] == org.treasurer.id

    pending = client.get("/api/approvals/pending", headers=auth_headers(treasurer))
    assert len(pending.json["pending"]) == 1

    wrong = client.post(
        f"/api/approvals/{flow['id']}/steps/1", json={"action": "APPROVE"}, headers=auth_headers(head)
    )
    assert wrong.status_code == 403
    assert wrong.json["code"] == "APPROVER_MISMATCH"

    ok = client.post(
        f"/api/approvals/{flow['id']}/steps/1",
        json={"action": "approve", "version": flow["version"]},
        headers=auth_headers(treasurer),
    )
    assert ok.status_code == 200
    assert ok.json["flow"]["current_step_index"] == 2

    again = client.post(
        f"/api/approvals/{flow['id']}/steps/1", json={"action": "APPROVE"}, headers=auth_headers(treasurer)
    )
    assert again.status_code == 409
    assert again.json["code"] == "STALE_STEP"
    assert again.json["affordance"] == "retry"

    no_reason = client.post(
        f"/api/approvals/{flow['id']}/steps/2", json={"action": "REJECT"}, headers=auth_headers(head)
    )
    assert no_reason.status_code == 400
    assert no_reason.json["code"] == "MISSING_REJECTION_REASON"

    rejected = client.post(
        f"/api/approvals/{flow['id']}/steps/2",
        json={"action": "REJECT", "comments": "예산 초과"},
        headers=auth_headers(head),
    )
    assert rejected.status_code == 200
    assert rejected.json["flow"]["status"] == "REJECTED"
    assert rejected.json["flow"]["business_status"] == "REJECTED"

    audit = client.get(f"/api/approvals/{flow['id']}/audit", headers=auth_headers(requester))
    assert [row["action"] for row in audit.json["audit"]] == ["SUBMIT", "APPROVE", "REJECT"]


def test_authority_lookup(client, org):
    token = activated_token(client, org.head)
    response = client.get("/api/authority/resolve", query_string={"role_name": "회계"}, headers=auth_headers(token))
    assert response.status_code == 200
    assert response.json["profile"]["authority_tier"] == 1


def test_approvers_and_matrix(client, org):
    requester = activated_token(client, org.assistant)

    response = client.get(
        "/api/approvals/approvers",
        query_string={"organization_unit_id": org.department.id, "tier": 3},
        headers=auth_headers(requester),
    )
    assert response.status_code == 200
    assert response.json["approvers"][0]["resolved"]["user_id"] == org.chair.id

    missing = client.get("/api/approvals/approvers", headers=auth_headers(requester))
    assert missing.status_code == 400

    denied = client.get("/api/approvals/matrix", headers=auth_headers(requester))
    assert denied.status_code == 403

    chair = activated_token(client, org.chair)
    matrix = client.get("/api/approvals/matrix", headers=auth_headers(chair))
    assert matrix.status_code == 200
    assert matrix.json["matrix"]["full_chain_categories"] == sorted(
        ["BENEFITS", "BONUS", "CONSTRUCTION", "FACILITIES", "SALARY"]
    )


def test_lost_race_maps_to_stale_step(client, org, monkeypatch):
    requester = activated_token(client, org.assistant)
    treasurer = activated_token(client, org.treasurer)
    report = _create_report(client, requester, org.department.id)
    flow = client.post(f"/api/expense-reports/{report['id']}/submit", headers=auth_headers(requester)).json["flow"]
    real_utcnow = approval_service.utcnow

    def _competing_write():
        db.session.execute(
            text("UPDATE approval_flows SET version_id = version_id + 1, current_step_index = 2 WHERE id = :id"),
            {"id": flow["id"]},
        )
        return real_utcnow()

    monkeypatch.setattr(approval_service, "utcnow", _competing_write)
    response = client.post(
        f"/api/approvals/{flow['id']}/steps/1", json={"action": "APPROVE"}, headers=auth_headers(treasurer)
    )
    assert response.status_code == 409
    assert response.json["code"] == "STALE_STEP"
