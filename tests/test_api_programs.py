"""
Tests — Program API.

Covers:
    - Create / update with date-window validation
    - Role-scoped listing and detail
    - Delete guard while TODO / IN_PROGRESS tasks exist
    - Membership add / remove
"""

from ceti.models.program import Program, ProgramMember
from ceti.models.task import Task

LAB_UPGRADE = {
    "name": "Lab Upgrade",
    "generalObjective": "Modernizar los laboratorios",
    "description": "Equipos nuevos",
    "startDate": "2025-01-01",
    "endDate": "2025-06-30",
    "status": "ACTIVE",
}


# ═════════════════════════════════════════════════════════════════════════════
# CREATE / UPDATE
# ═════════════════════════════════════════════════════════════════════════════

def test_admin_creates_program(client, admin, auth_headers):
    res = client.post("/api/v1/programs", json=LAB_UPGRADE, headers=auth_headers(admin))
    assert res.status_code == 201
    data = res.get_json()
    assert data["name"] == "Lab Upgrade"
    assert data["start_date"] == "2025-01-01"
    assert data["end_date"] == "2025-06-30"
    assert data["task_count"] == 0


def test_create_requires_fields(client, admin, auth_headers):
    res = client.post("/api/v1/programs", json={"name": "Sin fechas"}, headers=auth_headers(admin))
    assert res.status_code == 400
    body = res.get_json()
    assert body["error"] == "Faltan datos requeridos"
    assert "general_objective" in body["details"]


def test_end_must_follow_start(client, admin, auth_headers):
    payload = dict(LAB_UPGRADE, endDate="2025-01-01")
    res = client.post("/api/v1/programs", json=payload, headers=auth_headers(admin))
    assert res.status_code == 400
    assert res.get_json()["error"] == "La fecha de fin debe ser posterior a la fecha de inicio"
    assert Program.query.count() == 0


def test_invalid_status_rejected(client, admin, auth_headers):
    payload = dict(LAB_UPGRADE, status="PAUSED")
    res = client.post("/api/v1/programs", json=payload, headers=auth_headers(admin))
    assert res.status_code == 400


def test_non_text_fields_rejected(client, admin, auth_headers):
    payload = dict(LAB_UPGRADE, name=123)
    res = client.post("/api/v1/programs", json=payload, headers=auth_headers(admin))
    assert res.status_code == 400
    body = res.get_json()
    assert body["code"] == "ERR_VALIDATION_INVALID"
    assert body["details"] == {"name": "must_be_string"}

    payload = dict(LAB_UPGRADE, generalObjective=["Modernizar"])
    res = client.post("/api/v1/programs", json=payload, headers=auth_headers(admin))
    assert res.status_code == 400
    assert Program.query.count() == 0


def test_update_rejects_non_text_name(client, admin, auth_headers, make_program):
    program = make_program("Lab Upgrade")
    res = client.put(f"/api/v1/programs/{program.id}", json={"name": 5, "status": ["CLOSED"]},
                     headers=auth_headers(admin))
    assert res.status_code == 400
    assert Program.query.one().name == "Lab Upgrade"


def test_collaborator_cannot_create(client, collaborator, auth_headers):
    res = client.post("/api/v1/programs", json=LAB_UPGRADE, headers=auth_headers(collaborator))
    assert res.status_code == 403
    assert res.get_json()["code"] == "ERR_FORBIDDEN"


def test_unauthenticated_request_is_401(client):
    res = client.get("/api/v1/programs")
    assert res.status_code == 401
    assert res.get_json()["code"] == "ERR_UNAUTHENTICATED"


def test_update_revalidates_window(client, admin, auth_headers, make_program):
    program = make_program()
    res = client.put(f"/api/v1/programs/{program.id}", json={"endDate": "2024-12-01"},
                     headers=auth_headers(admin))
    assert res.status_code == 400

    res = client.put(f"/api/v1/programs/{program.id}", json={"status": "CLOSED", "endDate": "2025-07-31"},
                     headers=auth_headers(admin))
    assert res.status_code == 200
    data = res.get_json()
    assert data["status"] == "CLOSED"
    assert data["end_date"] == "2025-07-31"


def test_get_missing_program(client, admin, auth_headers):
    res = client.get("/api/v1/programs/999", headers=auth_headers(admin))
    assert res.status_code == 404
    assert res.get_json()["error"] == "Programa no encontrado"


# ═════════════════════════════════════════════════════════════════════════════
# VISIBILITY
# ═════════════════════════════════════════════════════════════════════════════

def test_collaborator_lists_only_assigned_programs(client, admin, collaborator, auth_headers, make_program):
    make_program("Lab Upgrade", members=[collaborator])
    make_program("ISO 9001")

    res = client.get("/api/v1/programs", headers=auth_headers(collaborator))
    assert [p["name"] for p in res.get_json()] == ["Lab Upgrade"]

    res = client.get("/api/v1/programs", headers=auth_headers(admin))
    assert len(res.get_json()) == 2


def test_list_filters_by_status(client, admin, auth_headers, make_program):
    make_program("Abierto")
    make_program("Cerrado", status="CLOSED")
    res = client.get("/api/v1/programs?status=CLOSED", headers=auth_headers(admin))
    assert [p["name"] for p in res.get_json()] == ["Cerrado"]


def test_non_member_cannot_read_program(client, collaborator, auth_headers, make_program):
    program = make_program()
    res = client.get(f"/api/v1/programs/{program.id}", headers=auth_headers(collaborator))
    assert res.status_code == 403


# ═════════════════════════════════════════════════════════════════════════════
# DELETE GUARD
# ═════════════════════════════════════════════════════════════════════════════

def test_delete_blocked_by_active_task(client, admin, auth_headers, make_program, make_task):
    program = make_program()
    make_task(program, "Inventario", status="IN_PROGRESS")
    make_task(program, "Cierre", status="DONE")

    res = client.delete(f"/api/v1/programs/{program.id}", headers=auth_headers(admin))
    assert res.status_code == 400
    body = res.get_json()
    assert body["error"] == "No se puede eliminar el programa. Tiene 1 tareas activas"
    assert body["code"] == "ERR_BLOCKED"
    assert body["details"]["blocking_count"] == 1
    assert Program.query.count() == 1


def test_delete_cascades_when_all_done(client, admin, collaborator, auth_headers, make_program, make_task):
    program = make_program(members=[collaborator])
    make_task(program, "Cierre", status="DONE", assignees=[collaborator])

    res = client.delete(f"/api/v1/programs/{program.id}", headers=auth_headers(admin))
    assert res.status_code == 200
    assert res.get_json()["message"] == "Programa eliminado exitosamente"
    assert Program.query.count() == 0
    assert Task.query.count() == 0
    assert ProgramMember.query.count() == 0


# ═════════════════════════════════════════════════════════════════════════════
# MEMBERS
# ═════════════════════════════════════════════════════════════════════════════

def test_add_and_remove_member(client, admin, collaborator, auth_headers, make_program):
    program = make_program()
    res = client.post(f"/api/v1/programs/{program.id}/members", json={"userId": collaborator.id},
                      headers=auth_headers(admin))
    assert res.status_code == 201
    assert res.get_json()["user_email"] == "maria.lopez@ceti.mx"

    res = client.get(f"/api/v1/programs/{program.id}", headers=auth_headers(collaborator))
    assert res.status_code == 200

    res = client.delete(f"/api/v1/programs/{program.id}/members/{collaborator.id}",
                        headers=auth_headers(admin))
    assert res.status_code == 200
    assert ProgramMember.query.count() == 0


def test_add_member_is_idempotent(client, admin, collaborator, auth_headers, make_program):
    program = make_program(members=[collaborator])
    res = client.post(f"/api/v1/programs/{program.id}/members", json={"user_id": collaborator.id},
                      headers=auth_headers(admin))
    assert res.status_code == 201
    assert ProgramMember.query.count() == 1


def test_remove_non_member(client, admin, collaborator, auth_headers, make_program):
    program = make_program()
    res = client.delete(f"/api/v1/programs/{program.id}/members/{collaborator.id}",
                        headers=auth_headers(admin))
    assert res.status_code == 400
    assert res.get_json()["error"] == "El usuario no está asignado al programa"
