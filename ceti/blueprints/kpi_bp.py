"""
KPI Blueprint — dashboard aggregates, role-filtered.

Endpoints:
    GET /api/v1/kpis/overall
    GET /api/v1/kpis/programs?period=30
    GET /api/v1/kpis/tasks-timeline?period=30
    GET /api/v1/kpis/program-performance?program_id=
    GET /api/v1/kpis/user-performance?user_id=        (ADMIN)
"""

from flask import Blueprint, g, jsonify

from ceti.auth import require_auth, require_role
from ceti.models.user import ROLE_ADMIN
from ceti.services import kpi_service
from ceti.utils.helpers import int_arg

kpi_bp = Blueprint("kpi", __name__, url_prefix="/api/v1/kpis")


def _period() -> int:
    period = int_arg("period", kpi_service.DEFAULT_PERIOD_DAYS)
    return period if period and period > 0 else kpi_service.DEFAULT_PERIOD_DAYS


@kpi_bp.route("/overall", methods=["GET"])
@require_auth
def overall():
    return jsonify(kpi_service.overall(g.actor)), 200


@kpi_bp.route("/programs", methods=["GET"])
@require_auth
def programs():
    return jsonify(kpi_service.programs_chart(g.actor, _period())), 200


@kpi_bp.route("/tasks-timeline", methods=["GET"])
@require_auth
def tasks_timeline():
    return jsonify(kpi_service.tasks_timeline(g.actor, _period())), 200


@kpi_bp.route("/program-performance", methods=["GET"])
@require_auth
def program_performance():
    return jsonify(kpi_service.program_performance(g.actor, int_arg("program_id"))), 200


@kpi_bp.route("/user-performance", methods=["GET"])
@require_auth
@require_role(ROLE_ADMIN)
def user_performance():
    return jsonify(kpi_service.user_performance(g.actor, int_arg("user_id"))), 200
