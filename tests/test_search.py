"""
Tests — Global search.

Covers:
    - Minimum query length
    - Relevance ranking (title prefix > title > description > content)
    - Per-kind cap and wildcard escaping
    - Collaborator visibility (assigned programs / tasks only, no users)
"""

from ceti.models import db
from ceti.models.task import Comment
from ceti.services.search_service import rank_results, relevance


def _search(client, headers, q):
    res = client.get("/api/v1/search", query_string={"q": q}, headers=headers)
    assert res.status_code == 200
    return res.get_json()["results"]


def _comment(task, author, content):
    db.session.add(Comment(task_id=task.id, author_id=author.id, content=content))
    db.session.commit()


# ═════════════════════════════════════════════════════════════════════════════
# RANKING (pure)
# ═════════════════════════════════════════════════════════════════════════════

class TestRelevance:
    def test_scores(self):
        assert relevance({"title": "Inventario general"}, "inventario") == 15
        assert relevance({"title": "Plan de inventario"}, "inventario") == 10
        assert relevance({"title": "Plan", "description": "inventario"}, "inventario") == 5
        assert relevance({"title": "Nota", "content": "revisar inventario"}, "inventario") == 2
        assert relevance({"title": "Nada"}, "inventario") == 0

    def test_ties_keep_discovery_order(self):
        results = [
            {"type": "program", "title": "x", "description": "lab"},
            {"type": "task", "title": "y", "description": "lab"},
            {"type": "user", "title": "lab", "description": None},
        ]
        ranked = rank_results(results, "lab")
        assert [r["type"] for r in ranked] == ["user", "program", "task"]
        assert ranked[0]["score"] == 15

    def test_limit(self):
        ranked = rank_results([{"title": f"lab {i}"} for i in range(60)], "lab")
        assert len(ranked) == 50


# ═════════════════════════════════════════════════════════════════════════════
# API
# ═════════════════════════════════════════════════════════════════════════════

def test_short_query_returns_nothing(client, admin, auth_headers, make_program):
    make_program("Lab Upgrade")
    assert _search(client, auth_headers(admin), "l") == []
    assert _search(client, auth_headers(admin), " ") == []


def test_query_is_matched_as_typed(client, admin, auth_headers, make_program):
    make_program("Visita a planta")
    make_program("Auditoría")
    results = _search(client, auth_headers(admin), " a ")
    assert [r["title"] for r in results] == ["Visita a planta"]


def test_admin_finds_every_kind(client, admin, collaborator, auth_headers, make_program, make_task):
    program = make_program("Lab Upgrade")
    task = make_task(program, "Inventario del lab", assignees=[collaborator])
    _comment(task, collaborator, "Faltan equipos en el lab")
    make_task(program, "Otra cosa")

    results = _search(client, auth_headers(admin), "LAB")
    kinds = [r["type"] for r in results]
    assert kinds[0] == "program"
    assert set(kinds) == {"program", "task", "comment"}
    task_hit = next(r for r in results if r["type"] == "task")
    assert task_hit["metadata"]["program"] == "Lab Upgrade"
    assert task_hit["metadata"]["assignee"] == "María López"


def test_admin_searches_users(client, admin, collaborator, auth_headers):
    results = _search(client, auth_headers(admin), "maria.lopez")
    assert [(r["type"], r["id"]) for r in results] == [("user", collaborator.id)]
    assert results[0]["metadata"]["status"] == "Activo"


def test_collaborator_visibility(client, collaborator, other_collaborator, auth_headers,
                                 make_program, make_task):
    mine = make_program("Lab Upgrade", members=[collaborator])
    make_program("Lab Secreto")
    my_task = make_task(mine, "Lab inventario", assignees=[collaborator])
    other_task = make_task(mine, "Lab compras", assignees=[other_collaborator])
    _comment(my_task, collaborator, "lab listo")
    _comment(other_task, other_collaborator, "lab pendiente")

    results = _search(client, auth_headers(collaborator), "lab")
    titles = {(r["type"], r["title"]) for r in results}
    assert ("program", "Lab Upgrade") in titles
    assert ("program", "Lab Secreto") not in titles
    assert ("task", "Lab inventario") in titles
    assert ("task", "Lab compras") not in titles
    assert [r["content"] for r in results if r["type"] == "comment"] == ["lab listo"]
    assert all(r["type"] != "user" for r in _search(client, auth_headers(collaborator), "ceti.mx"))


def test_per_kind_cap(client, admin, auth_headers, make_program):
    for i in range(12):
        make_program(f"Meta {i}")
    results = _search(client, auth_headers(admin), "meta")
    assert len(results) == 10


def test_wildcards_are_literal(client, admin, auth_headers, make_program):
    make_program("Avance 50%")
    make_program("Avance 500")
    results = _search(client, auth_headers(admin), "50%")
    assert [r["title"] for r in results] == ["Avance 50%"]


def test_search_requires_auth(client):
    res = client.get("/api/v1/search?q=lab")
    assert res.status_code == 401
