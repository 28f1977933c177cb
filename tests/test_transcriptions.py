"""
Tests — Audio transcriptions and streamed summaries.

The local stub provider (TRANSCRIPTION_PROVIDER=local under testing) gives
deterministic text; failing vendors are simulated by patching the gateway.

Covers:
    - Upload: MIME allow-list, owner scoping, PENDING status
    - Transcribe: stub text, single-shot, provider failure → ERROR + 500
    - Summarize: data-line stream, persisted summary, in-band errors
    - Client disconnect still persists the drained summary
    - Manual edits and deletion
"""

import json
import os
from io import BytesIO

import pytest

from ceti.ai import transcription_gateway
from ceti.models import db
from ceti.models.transcription import Transcription
from ceti.services.file_service import absolute_path
from ceti.services.transcription_service import STREAM_DONE, relay_summary

AUDIO = b"ID3 fake-audio"


def _upload(client, headers, content=AUDIO, name="reunion.mp3", mimetype="audio/mpeg", title="Reunión"):
    data = {"file": (BytesIO(content), name, mimetype)}
    if title is not None:
        data["title"] = title
    return client.post("/api/v1/transcriptions", data=data, headers=headers,
                       content_type="multipart/form-data")


def _events(body: str) -> list:
    return [line[len("data: "):] for line in body.split("\n\n") if line.startswith("data: ")]


class _BrokenTranscriber(transcription_gateway.LocalStubProvider):
    def transcribe(self, path, filename):
        raise transcription_gateway.TranscriptionProviderError("401 invalid api key")


class _UnreachableSummarizer(transcription_gateway.LocalStubProvider):
    def open_summary_stream(self, text):
        raise transcription_gateway.TranscriptionProviderError("connection refused")


class _MidStreamFailure(transcription_gateway.LocalStubProvider):
    def open_summary_stream(self, text):
        def _chunks():
            yield "Resumen parcial"
            raise transcription_gateway.TranscriptionProviderError("stream reset")
        return _chunks()


@pytest.fixture()
def uploaded(client, collaborator, auth_headers):
    res = _upload(client, auth_headers(collaborator))
    assert res.status_code == 201
    return res.get_json()


# ═════════════════════════════════════════════════════════════════════════════
# UPLOAD / CRUD
# ═════════════════════════════════════════════════════════════════════════════

def test_upload_creates_pending_record(uploaded, collaborator):
    assert uploaded["status"] == "PENDING"
    assert uploaded["title"] == "Reunión"
    assert uploaded["original_name"] == "reunion.mp3"
    assert uploaded["size"] == len(AUDIO)
    assert uploaded["owner_id"] == collaborator.id
    assert uploaded["file_url"].startswith(f"/uploads/transcriptions/{collaborator.id}/")
    row = db.session.get(Transcription, uploaded["id"])
    assert os.path.isfile(absolute_path(row.relative_path))


def test_title_defaults_to_file_name(client, collaborator, auth_headers):
    res = _upload(client, auth_headers(collaborator), title=None)
    assert res.get_json()["title"] == "reunion.mp3"


def test_upload_rejects_non_audio(client, collaborator, auth_headers):
    res = _upload(client, auth_headers(collaborator), content=b"%PDF", name="acta.pdf",
                  mimetype="application/pdf")
    assert res.status_code == 400
    assert res.get_json()["error"] == "Tipo de archivo no soportado. Solo archivos de audio/video."


def test_upload_rejects_oversize(app, client, collaborator, auth_headers, monkeypatch):
    monkeypatch.setitem(app.config, "TRANSCRIPTION_MAX_BYTES", 4)
    res = _upload(client, auth_headers(collaborator))
    assert res.status_code == 400
    assert res.get_json()["error"] == "Archivo demasiado grande. Máximo 100MB."


def test_history_is_per_owner(client, uploaded, collaborator, other_collaborator, admin, auth_headers):
    assert [t["id"] for t in client.get("/api/v1/transcriptions",
                                        headers=auth_headers(collaborator)).get_json()] == [uploaded["id"]]
    assert client.get("/api/v1/transcriptions", headers=auth_headers(other_collaborator)).get_json() == []

    res = client.get(f"/api/v1/transcriptions/{uploaded['id']}", headers=auth_headers(other_collaborator))
    assert res.status_code == 403
    res = client.get(f"/api/v1/transcriptions/{uploaded['id']}", headers=auth_headers(admin))
    assert res.status_code == 200


def test_manual_edit(client, uploaded, collaborator, auth_headers):
    res = client.patch(f"/api/v1/transcriptions/{uploaded['id']}",
                       json={"title": "Junta académica", "transcriptText": "Texto corregido"},
                       headers=auth_headers(collaborator))
    assert res.status_code == 200
    data = res.get_json()
    assert data["title"] == "Junta académica"
    assert data["transcript_text"] == "Texto corregido"


def test_manual_edit_requires_text(client, uploaded, collaborator, auth_headers):
    for payload in ({"title": 9}, {"title": "  "}, {"summary": ["a"]}):
        res = client.patch(f"/api/v1/transcriptions/{uploaded['id']}", json=payload,
                           headers=auth_headers(collaborator))
        assert res.status_code == 400, payload
    assert db.session.get(Transcription, uploaded["id"]).title == "Reunión"


def test_delete_removes_file(client, uploaded, collaborator, auth_headers):
    path = absolute_path(db.session.get(Transcription, uploaded["id"]).relative_path)
    res = client.delete(f"/api/v1/transcriptions/{uploaded['id']}", headers=auth_headers(collaborator))
    assert res.status_code == 200
    assert Transcription.query.count() == 0
    assert not os.path.exists(path)


def test_missing_transcription(client, collaborator, auth_headers):
    res = client.get("/api/v1/transcriptions/99", headers=auth_headers(collaborator))
    assert res.status_code == 404
    assert res.get_json()["error"] == "Transcripción no encontrada"


# ═════════════════════════════════════════════════════════════════════════════
# TRANSCRIBE
# ═════════════════════════════════════════════════════════════════════════════

def test_transcribe_with_stub(client, uploaded, collaborator, auth_headers):
    res = client.post(f"/api/v1/transcriptions/{uploaded['id']}/transcribe", headers=auth_headers(collaborator))
    assert res.status_code == 200
    data = res.get_json()
    assert data["status"] == "COMPLETED"
    assert data["transcript_text"] == f"Transcripción simulada de reunion.mp3 ({len(AUDIO)} bytes)."

    res = client.post(f"/api/v1/transcriptions/{uploaded['id']}/transcribe", headers=auth_headers(collaborator))
    assert res.status_code == 400
    assert res.get_json()["error"] == "Esta transcripción ya fue procesada"


def test_transcribe_provider_failure(client, uploaded, collaborator, auth_headers, monkeypatch):
    monkeypatch.setattr(transcription_gateway, "get_provider", lambda name=None: _BrokenTranscriber())
    res = client.post(f"/api/v1/transcriptions/{uploaded['id']}/transcribe", headers=auth_headers(collaborator))
    assert res.status_code == 500
    assert res.get_json()["code"] == "ERR_EXTERNAL_SERVICE"

    row = db.session.get(Transcription, uploaded["id"])
    assert row.status == "ERROR"
    assert "invalid api key" in row.error_message
    assert row.transcript_text is None


# ═════════════════════════════════════════════════════════════════════════════
# SUMMARIZE
# ═════════════════════════════════════════════════════════════════════════════

def test_summarize_requires_transcript(client, uploaded, collaborator, auth_headers):
    res = client.post(f"/api/v1/transcriptions/{uploaded['id']}/summarize", headers=auth_headers(collaborator))
    assert res.status_code == 400
    assert res.get_json()["error"] == "La transcripción no tiene texto para resumir"


def test_summarize_streams_and_persists(client, uploaded, collaborator, auth_headers):
    headers = auth_headers(collaborator)
    client.post(f"/api/v1/transcriptions/{uploaded['id']}/transcribe", headers=headers)

    res = client.post(f"/api/v1/transcriptions/{uploaded['id']}/summarize", headers=headers)
    assert res.status_code == 200
    assert res.mimetype == "text/plain"
    assert res.headers["Cache-Control"] == "no-cache"
    body = res.get_data(as_text=True)
    assert body.endswith(STREAM_DONE)

    events = _events(body)
    assert events[-1] == "[DONE]"
    chunks = [json.loads(e)["content"] for e in events[:-1]]
    assert chunks[0] == "Resumen:"

    row = db.session.get(Transcription, uploaded["id"])
    assert row.summary == "".join(chunks)
    assert row.status == "COMPLETED"


def test_summary_connection_failure(client, uploaded, collaborator, auth_headers, monkeypatch):
    headers = auth_headers(collaborator)
    client.post(f"/api/v1/transcriptions/{uploaded['id']}/transcribe", headers=headers)

    monkeypatch.setattr(transcription_gateway, "get_provider", lambda name=None: _UnreachableSummarizer())
    res = client.post(f"/api/v1/transcriptions/{uploaded['id']}/summarize", headers=headers)
    assert res.status_code == 500
    assert db.session.get(Transcription, uploaded["id"]).status == "ERROR"


def test_summary_mid_stream_failure(client, uploaded, collaborator, auth_headers, monkeypatch):
    headers = auth_headers(collaborator)
    client.post(f"/api/v1/transcriptions/{uploaded['id']}/transcribe", headers=headers)

    monkeypatch.setattr(transcription_gateway, "get_provider", lambda name=None: _MidStreamFailure())
    res = client.post(f"/api/v1/transcriptions/{uploaded['id']}/summarize", headers=headers)
    assert res.status_code == 200
    events = [json.loads(e) for e in _events(res.get_data(as_text=True))]
    assert events == [{"content": "Resumen parcial"}, {"error": "Error durante la generación del resumen"}]

    row = db.session.get(Transcription, uploaded["id"])
    assert row.status == "ERROR"
    assert row.summary is None


def test_disconnect_drains_and_saves(uploaded, collaborator):
    relay = relay_summary(iter(["Uno", " dos", " tres"]), uploaded["id"], collaborator.id)
    assert json.loads(next(relay)[len("data: "):]) == {"content": "Uno"}
    relay.close()

    row = db.session.get(Transcription, uploaded["id"])
    assert row.summary == "Uno dos tres"
    assert row.status == "COMPLETED"
