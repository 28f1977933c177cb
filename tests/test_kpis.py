"""
Tests — KPI dashboard.

Covers:
    - Overall figures (completion, on-time, delay, participation, averages)
    - Role filtering: collaborators only count their assigned programs
    - Programs chart name truncation and period window
    - Tasks timeline length and status buckets
    - Per-program and per-user performance tables
"""

from datetime import datetime, timedelta

import pytest

from ceti.models import db, utcnow
from ceti.models.task import Comment, TaskFile

DUE = datetime(2025, 3, 10)


@pytest.fixture()
def dashboard(admin, collaborator, make_program, make_task):
    """One visible program with a mixed board plus one program the collaborator cannot see."""
    lab = make_program("Modernización de Laboratorios", members=[collaborator])
    on_time = make_task(lab, "A tiempo", status="DONE", assignees=[collaborator],
                        due_date=DUE, completed_at=DUE - timedelta(days=2))
    make_task(lab, "Tarde", status="DONE", assignees=[collaborator],
              due_date=DUE, completed_at=DUE + timedelta(days=3))
    make_task(lab, "Atrasada", status="IN_PROGRESS", assignees=[collaborator],
              due_date=utcnow() - timedelta(days=1))
    make_task(lab, "Pendiente")

    db.session.add_all([
        Comment(task_id=on_time.id, author_id=collaborator.id, content="Listo"),
        Comment(task_id=on_time.id, author_id=admin.id, content="Gracias"),
        TaskFile(task_id=on_time.id, uploaded_by_id=collaborator.id, filename="1-a.pdf",
                 original_name="acta.pdf", mime_type="application/pdf", size=10,
                 url=f"/uploads/tasks/{on_time.id}/1-a.pdf"),
    ])
    db.session.commit()

    iso = make_program("ISO 9001")
    make_task(iso, "Auditoría")
    return lab, iso


def test_overall_admin(client, admin, auth_headers, dashboard):
    res = client.get("/api/v1/kpis/overall", headers=auth_headers(admin))
    assert res.status_code == 200
    k = res.get_json()
    assert k["total_tasks"] == 5
    assert k["completed_tasks"] == 2
    assert k["in_progress_tasks"] == 1
    assert k["pending_tasks"] == 2
    assert k["completion_rate"] == 40.0
    assert k["on_time_completion_rate"] == 50.0
    assert k["tasks_in_delay"] == k["overdue_tasks"] == 1
    assert k["average_completion_time"] == 0.5
    assert k["deliverables_uploaded"] == 1
    assert k["participation_level"] == 0.4
    assert k["total_users"] == 2 and k["active_users"] == 2
    assert k["total_programs"] == 2 and k["active_programs"] == 2
    assert k["average_tasks_per_user"] == 2.5
    assert k["average_tasks_per_program"] == 2.5


def test_overall_collaborator_scope(client, collaborator, auth_headers, dashboard):
    k = client.get("/api/v1/kpis/overall", headers=auth_headers(collaborator)).get_json()
    assert k["total_tasks"] == 4
    assert k["completion_rate"] == 50.0
    assert k["total_programs"] == 1
    assert k["total_users"] == 1
    assert k["participation_level"] == 0.5


def test_overall_empty(client, admin, auth_headers):
    k = client.get("/api/v1/kpis/overall", headers=auth_headers(admin)).get_json()
    assert k["total_tasks"] == 0
    assert k["completion_rate"] == 0.0
    assert k["average_tasks_per_program"] == 0.0


def test_programs_chart(client, admin, auth_headers, dashboard):
    res = client.get("/api/v1/kpis/programs?period=30", headers=auth_headers(admin))
    chart = res.get_json()
    assert [c["name"] for c in chart] == ["ISO 9001", "Modernización d..."]
    assert {c["name"]: c["value"] for c in chart} == {"ISO 9001": 1, "Modernización d...": 4}


def test_programs_chart_period_window(client, admin, auth_headers, make_program):
    old = make_program("Viejo")
    old.created_at = utcnow() - timedelta(days=90)
    db.session.commit()
    make_program("Nuevo")
    chart = client.get("/api/v1/kpis/programs?period=30", headers=auth_headers(admin)).get_json()
    assert [c["name"] for c in chart] == ["Nuevo"]


def test_tasks_timeline(client, admin, auth_headers, dashboard):
    data = client.get("/api/v1/kpis/tasks-timeline?period=30", headers=auth_headers(admin)).get_json()
    assert data["completed"] == 2
    assert data["in_progress"] == 1
    assert data["pending"] == 2
    assert data["overdue"] == 1
    assert len(data["timeline"]) == 7
    assert data["timeline"][-1]["date"] == utcnow().date().isoformat()
    assert data["timeline"][-1]["completed"] == 2
    assert data["timeline"][-1]["pending"] == 2


def test_timeline_shorter_than_a_week(client, admin, auth_headers, dashboard):
    data = client.get("/api/v1/kpis/tasks-timeline?period=3", headers=auth_headers(admin)).get_json()
    assert len(data["timeline"]) == 3


def test_bad_period_falls_back_to_default(client, admin, auth_headers, dashboard):
    res = client.get("/api/v1/kpis/tasks-timeline?period=abc", headers=auth_headers(admin))
    assert res.status_code == 200
    assert len(res.get_json()["timeline"]) == 7


def test_program_performance(client, admin, collaborator, auth_headers, dashboard):
    lab, iso = dashboard
    rows = client.get("/api/v1/kpis/program-performance", headers=auth_headers(admin)).get_json()
    by_id = {r["program_id"]: r for r in rows}
    assert by_id[lab.id]["total_tasks"] == 4
    assert by_id[lab.id]["on_time_completion_rate"] == 50.0
    assert by_id[iso.id]["completion_rate"] == 0.0

    rows = client.get("/api/v1/kpis/program-performance", headers=auth_headers(collaborator)).get_json()
    assert [r["program_id"] for r in rows] == [lab.id]

    rows = client.get(f"/api/v1/kpis/program-performance?program_id={iso.id}",
                      headers=auth_headers(admin)).get_json()
    assert [r["program_id"] for r in rows] == [iso.id]


def test_user_performance(client, admin, collaborator, auth_headers, dashboard):
    rows = client.get("/api/v1/kpis/user-performance", headers=auth_headers(admin)).get_json()
    assert [r["user_id"] for r in rows] == [collaborator.id]
    row = rows[0]
    assert row["total_tasks"] == 3
    assert row["completed_tasks"] == 2
    assert row["tasks_in_delay"] == 1
    assert row["participation_level"] == 0.33


def test_user_performance_is_admin_only(client, collaborator, auth_headers):
    res = client.get("/api/v1/kpis/user-performance", headers=auth_headers(collaborator))
    assert res.status_code == 403
