"""
Tests — Audit trail.

Covers:
    - One entry per committed mutation with actor, snapshots and request meta
    - Rejected mutations leave no entry
    - Audit rows are append-only
    - A failing audit write never fails the request
"""

import pytest

from ceti.models import db
from ceti.models.audit import AuditLog, AuditLogImmutableError, record_audit


def _entries(entity_type=None):
    q = AuditLog.query.order_by(AuditLog.id)
    if entity_type:
        q = q.filter_by(entity_type=entity_type)
    return q.all()


def test_program_lifecycle_is_audited(client, admin, auth_headers):
    headers = dict(auth_headers(admin), **{"User-Agent": "pytest-agent", "X-Forwarded-For": "10.1.2.3"})
    res = client.post("/api/v1/programs", json={
        "name": "Lab Upgrade", "generalObjective": "Modernizar",
        "startDate": "2025-01-01", "endDate": "2025-06-30",
    }, headers=headers)
    pid = res.get_json()["id"]
    client.put(f"/api/v1/programs/{pid}", json={"status": "CLOSED"}, headers=headers)
    client.delete(f"/api/v1/programs/{pid}", headers=headers)

    entries = _entries("program")
    assert [e.action for e in entries] == ["create", "update", "delete"]
    assert all(e.actor_id == admin.id and e.entity_id == str(pid) for e in entries)

    create, update, delete = entries
    assert create.old_values is None
    assert create.new_values["name"] == "Lab Upgrade"
    assert create.new_values["start_date"] == "2025-01-01"
    assert update.old_values["status"] == "ACTIVE"
    assert update.new_values["status"] == "CLOSED"
    assert delete.new_values is None
    assert create.ip_address == "10.1.2.3"
    assert create.user_agent == "pytest-agent"


def test_task_move_and_assignment_are_audited(client, admin, collaborator, auth_headers, make_program, make_task):
    task = make_task(make_program(members=[collaborator]))
    client.put(f"/api/v1/tasks/{task.id}", json={"assigneeIds": [collaborator.id]}, headers=auth_headers(admin))
    client.post(f"/api/v1/tasks/{task.id}/move", json={"direction": "next"}, headers=auth_headers(collaborator))

    update, move = _entries("task")
    assert update.new_values["assignee_ids"] == [collaborator.id]
    assert move.action == "move"
    assert move.actor_id == collaborator.id
    assert (move.old_values, move.new_values) == ({"status": "TODO"}, {"status": "IN_PROGRESS"})


def test_rejected_mutation_writes_nothing(client, admin, auth_headers, make_program, make_task):
    program = make_program()
    make_task(program, status="TODO")
    res = client.delete(f"/api/v1/programs/{program.id}", headers=auth_headers(admin))
    assert res.status_code == 400
    assert _entries() == []


def test_entries_outlive_deleted_actor(client, admin, collaborator, auth_headers, make_program, make_task):
    task = make_task(make_program(), assignees=[collaborator], status="DONE")
    client.post(f"/api/v1/tasks/{task.id}/comments", json={"content": "Nota"}, headers=auth_headers(collaborator))
    client.delete(f"/api/v1/users/{collaborator.id}", headers=auth_headers(admin))

    comment_entry = _entries("comment")[0]
    assert comment_entry.actor_id == collaborator.id


class TestImmutability:
    def test_update_refused(self):
        entry = record_audit("create", "program", 1, actor_id=1, request_meta={})
        entry.action = "delete"
        with pytest.raises(AuditLogImmutableError):
            db.session.commit()
        db.session.rollback()

    def test_delete_refused(self):
        entry = record_audit("create", "program", 1, actor_id=1, request_meta={})
        db.session.delete(entry)
        with pytest.raises(AuditLogImmutableError):
            db.session.commit()
        db.session.rollback()


def test_audit_failure_does_not_fail_request(client, admin, auth_headers, monkeypatch):
    def _boom(*args, **kwargs):
        raise RuntimeError("audit storage down")

    monkeypatch.setattr("ceti.models.audit.AuditLog", _boom)
    res = client.post("/api/v1/programs", json={
        "name": "Lab Upgrade", "generalObjective": "Modernizar",
        "startDate": "2025-01-01", "endDate": "2025-06-30",
    }, headers=auth_headers(admin))
    monkeypatch.undo()

    assert res.status_code == 201
    assert _entries() == []
