import pytest

from leave_ledger.core.exceptions import ConflictError, NotFoundError, ValidationError
from leave_ledger.core.security import UserRole
from leave_ledger.models.audit_log import AuditLog
from leave_ledger.services.leave_type_service import LeaveTypeService


def test_create_leave_type_defaults(db_session, make_leave_type):
    leave_type = make_leave_type(name="Annual", description="Yearly holiday", accrual_rate=2)

    assert leave_type.id is not None
    assert leave_type.active is True
    assert leave_type.requires_approval is True
    assert leave_type.requires_documentation is False
    assert leave_type.annual_entitlement == 24
    assert db_session.query(AuditLog).filter(AuditLog.action == "create_leave_type").count() == 1


@pytest.mark.parametrize("fields", [
    {"description": "No name", "accrual_rate": 1},
    {"name": "Annual", "accrual_rate": 1},
    {"name": "Annual", "description": "Negative accrual", "accrual_rate": -1},
    {"name": "Annual", "description": "Bad color", "accrual_rate": 1, "color": "blue"},
    {"name": "   ", "description": "Blank name", "accrual_rate": 1},
])
def test_create_leave_type_validation(db_session, fields):
    with pytest.raises(ValidationError):
        LeaveTypeService(db_session).create_leave_type(fields)


def test_duplicate_name_conflicts(db_session, make_leave_type):
    make_leave_type(name="Annual")
    with pytest.raises(ConflictError):
        make_leave_type(name="Annual")


def test_active_types_exclude_deactivated(db_session, make_leave_type):
    service = LeaveTypeService(db_session)
    annual = make_leave_type(name="Annual")
    sick = make_leave_type(name="Sick")

    service.deactivate_leave_type(sick.id, actor_id="hr-1")

    assert [lt.id for lt in service.get_active_leave_types()] == [annual.id]
    assert len(service.list_leave_types(include_inactive=True)) == 2
    # Deactivated types stay readable
    assert service.get_leave_type_by_id(sick.id).active is False


def test_update_leave_type(db_session, make_leave_type):
    service = LeaveTypeService(db_session)
    annual = make_leave_type(name="Annual", max_consecutive_days=10)

    updated = service.update_leave_type(
        annual.id,
        {"name": "Annual Leave", "description": "Paid holiday", "accrual_rate": 1.5, "max_consecutive_days": 7},
        actor_id="hr-1"
    )

    assert updated.name == "Annual Leave"
    assert updated.max_consecutive_days == 7
    assert updated.active is True
    entry = db_session.query(AuditLog).filter(AuditLog.action == "update_leave_type").one()
    assert entry.before_state["name"] == "Annual"
    assert entry.after_state["name"] == "Annual Leave"


def test_delete_unreferenced_leave_type(db_session, make_leave_type):
    service = LeaveTypeService(db_session)
    annual = make_leave_type(name="Annual")

    service.delete_leave_type(annual.id, actor_id="hr-1")

    with pytest.raises(NotFoundError):
        service.get_leave_type_by_id(annual.id)


def test_delete_referenced_leave_type_conflicts(db_session, ledger, make_leave_type):
    service = LeaveTypeService(db_session)
    annual = make_leave_type(name="Annual")
    ledger.adjust("emp-1", annual.id, 1, reason="Opening balance", year=2024)

    assert service.is_referenced(annual.id)
    with pytest.raises(ConflictError):
        service.delete_leave_type(annual.id)
    assert service.get_leave_type_by_id(annual.id).name == "Annual"


# --- HTTP ---

def test_list_leave_types_api(client, make_leave_type, auth_headers):
    make_leave_type(name="Annual")
    make_leave_type(name="Retired")

    response = client.get("/api/leave-types", headers=auth_headers("emp-1"))

    assert response.status_code == 200
    body = response.json()
    assert body["success"] is True
    assert {lt["name"] for lt in body["data"]} == {"Annual", "Retired"}


def test_include_inactive_requires_admin(client, db_session, make_leave_type, auth_headers):
    make_leave_type(name="Annual")
    retired = make_leave_type(name="Retired")
    LeaveTypeService(db_session).deactivate_leave_type(retired.id)

    response = client.get("/api/leave-types", headers=auth_headers("emp-1"))
    assert [lt["name"] for lt in response.json()["data"]] == ["Annual"]

    response = client.get("/api/leave-types?include_inactive=true", headers=auth_headers("emp-1"))
    assert response.status_code == 403
    assert response.json()["error"]["code"] == "PERMISSION_DENIED"

    response = client.get("/api/leave-types?include_inactive=true", headers=auth_headers("hr-1", UserRole.HR))
    assert response.status_code == 200
    assert len(response.json()["data"]) == 2


def test_create_leave_type_api_is_admin_only(client, auth_headers):
    payload = {"name": "Parental", "description": "Parental leave", "accrual_rate": 0, "max_days": 20}

    response = client.post("/api/leave-types", json=payload, headers=auth_headers("mgr-1", UserRole.MANAGER))
    assert response.status_code == 403

    response = client.post("/api/leave-types", json=payload, headers=auth_headers("admin-1", UserRole.ADMIN))
    assert response.status_code == 201
    data = response.json()["data"]
    assert data["name"] == "Parental"
    assert data["active"] is True

    response = client.post("/api/leave-types", json=payload, headers=auth_headers("admin-1", UserRole.ADMIN))
    assert response.status_code == 409
    assert response.json()["error"]["code"] == "CONFLICT"


def test_delete_leave_type_api(client, make_leave_type, auth_headers):
    leave_type_id = make_leave_type(name="Annual").id
    headers = auth_headers("admin-1", UserRole.ADMIN)

    response = client.delete(f"/api/leave-types/{leave_type_id}", headers=headers)
    assert response.status_code == 200
    assert response.json()["data"] == {"id": leave_type_id, "deleted": True}

    response = client.get(f"/api/leave-types/{leave_type_id}", headers=headers)
    assert response.status_code == 404
    assert response.json()["error"]["code"] == "NOT_FOUND"
