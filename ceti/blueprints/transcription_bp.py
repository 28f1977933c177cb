"""
Transcription Blueprint — audio upload, speech-to-text and streamed summary.

Endpoints:
    GET    /api/v1/transcriptions                   — Own history
    POST   /api/v1/transcriptions                   — Upload multipart "file" (+ "title")
    GET    /api/v1/transcriptions/<id>              — Detail (owner or ADMIN)
    PATCH  /api/v1/transcriptions/<id>              — Edit title / transcript / summary
    DELETE /api/v1/transcriptions/<id>              — Delete record and audio
    POST   /api/v1/transcriptions/<id>/transcribe   — Run speech-to-text
    POST   /api/v1/transcriptions/<id>/summarize    — Stream summary (text/plain, data: lines)
"""

import logging

from flask import Blueprint, Response, g, jsonify, request, stream_with_context

from ceti.auth import require_auth
from ceti.services import transcription_service
from ceti.utils.helpers import json_body

logger = logging.getLogger(__name__)

transcription_bp = Blueprint("transcription", __name__, url_prefix="/api/v1/transcriptions")


@transcription_bp.route("", methods=["GET"])
@require_auth
def list_transcriptions():
    return jsonify(transcription_service.list_transcriptions(g.actor)), 200


@transcription_bp.route("", methods=["POST"])
@require_auth
def upload():
    transcription = transcription_service.create_transcription(
        g.actor, request.files.get("file"), title=request.form.get("title"),
    )
    return jsonify(transcription.to_dict()), 201


@transcription_bp.route("/<int:transcription_id>", methods=["GET"])
@require_auth
def get_transcription(transcription_id):
    return jsonify(transcription_service.get_transcription(g.actor, transcription_id).to_dict()), 200


@transcription_bp.route("/<int:transcription_id>", methods=["PATCH"])
@require_auth
def update_transcription(transcription_id):
    transcription = transcription_service.update_transcription(g.actor, transcription_id, json_body())
    return jsonify(transcription.to_dict()), 200


@transcription_bp.route("/<int:transcription_id>", methods=["DELETE"])
@require_auth
def delete_transcription(transcription_id):
    transcription_service.delete_transcription(g.actor, transcription_id)
    return jsonify({"message": "Transcripción eliminada"}), 200


@transcription_bp.route("/<int:transcription_id>/transcribe", methods=["POST"])
@require_auth
def transcribe(transcription_id):
    transcription = transcription_service.transcribe(g.actor, transcription_id)
    return jsonify(transcription.to_dict()), 200


@transcription_bp.route("/<int:transcription_id>/summarize", methods=["POST"])
@require_auth
def summarize(transcription_id):
    """Relay the provider's summary as it is generated.

    Validation and connection errors surface before streaming starts; after
    that, failures arrive in-band as ``data: {"error": ...}``.
    """
    relay = transcription_service.start_summary(g.actor, transcription_id)
    resp = Response(stream_with_context(relay), mimetype="text/plain")
    resp.headers["Cache-Control"] = "no-cache"
    resp.headers["X-Accel-Buffering"] = "no"
    return resp
