"""
Search Blueprint.

    GET /api/v1/search?q=<term>   — {results: [...]} ranked, at most 50
"""

from flask import Blueprint, g, jsonify, request

from ceti.auth import require_auth
from ceti.services import search_service

search_bp = Blueprint("search", __name__, url_prefix="/api/v1")


@search_bp.route("/search", methods=["GET"])
@require_auth
def search():
    results = search_service.search(g.actor, request.args.get("q"))
    return jsonify({"results": results}), 200
