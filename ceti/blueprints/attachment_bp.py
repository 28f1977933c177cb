"""
Attachment Blueprint — task comments and files.

Endpoints:
    GET    /api/v1/tasks/<id>/comments        — List (ADMIN or assignee)
    POST   /api/v1/tasks/<id>/comments        — Add {content} (ADMIN or assignee)
    DELETE /api/v1/comments/<id>              — Delete (ADMIN or author)

    GET    /api/v1/tasks/<id>/files           — List (ADMIN or assignee)
    POST   /api/v1/tasks/<id>/files           — Upload multipart "file" (≤ 50 MB)
    GET    /api/v1/files/<id>                 — Metadata
    GET    /api/v1/files/<id>/download        — Bytes, original filename
    DELETE /api/v1/files/<id>                 — Delete (ADMIN or uploader)
"""

import logging
import os

from flask import Blueprint, g, jsonify, request, send_from_directory

from ceti.auth import require_auth
from ceti.core.exceptions import NotFoundError
from ceti.services import comment_service, file_service
from ceti.utils.helpers import json_body

logger = logging.getLogger(__name__)

attachment_bp = Blueprint("attachment", __name__, url_prefix="/api/v1")


# ═════════════════════════════════════════════════════════════════════════════
# Comments
# ═════════════════════════════════════════════════════════════════════════════


@attachment_bp.route("/tasks/<int:task_id>/comments", methods=["GET"])
@require_auth
def list_comments(task_id):
    return jsonify(comment_service.list_comments(g.actor, task_id)), 200


@attachment_bp.route("/tasks/<int:task_id>/comments", methods=["POST"])
@require_auth
def create_comment(task_id):
    comment = comment_service.create_comment(g.actor, task_id, json_body().get("content"))
    return jsonify(comment.to_dict()), 201


@attachment_bp.route("/comments/<int:comment_id>", methods=["DELETE"])
@require_auth
def delete_comment(comment_id):
    comment_service.delete_comment(g.actor, comment_id)
    return jsonify({"message": "Comentario eliminado"}), 200


# ═════════════════════════════════════════════════════════════════════════════
# Files
# ═════════════════════════════════════════════════════════════════════════════


@attachment_bp.route("/tasks/<int:task_id>/files", methods=["GET"])
@require_auth
def list_files(task_id):
    return jsonify(file_service.list_files(g.actor, task_id)), 200


@attachment_bp.route("/tasks/<int:task_id>/files", methods=["POST"])
@require_auth
def upload_file(task_id):
    row = file_service.upload_file(g.actor, task_id, request.files.get("file"))
    return jsonify(row.to_dict()), 201


@attachment_bp.route("/files/<int:file_id>", methods=["GET"])
@require_auth
def get_file(file_id):
    return jsonify(file_service.get_file(g.actor, file_id).to_dict()), 200


@attachment_bp.route("/files/<int:file_id>/download", methods=["GET"])
@require_auth
def download_file(file_id):
    row = file_service.get_file(g.actor, file_id)
    path = file_service.absolute_path(row.relative_path)
    if not os.path.isfile(path):
        logger.warning("Stored file missing for id=%s path=%s", row.id, row.relative_path)
        raise NotFoundError(resource="Archivo", resource_id=file_id, message="Archivo no encontrado")
    return send_from_directory(
        os.path.dirname(path),
        os.path.basename(path),
        mimetype=row.mime_type,
        as_attachment=True,
        download_name=row.original_name,
    )


@attachment_bp.route("/files/<int:file_id>", methods=["DELETE"])
@require_auth
def delete_file(file_id):
    file_service.delete_file(g.actor, file_id)
    return jsonify({"message": "Archivo eliminado exitosamente"}), 200
