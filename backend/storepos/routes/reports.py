# Overview: Flask API routes for reports.

from flask import Blueprint, request, jsonify

from ..decorators import require_auth, require_permission
from ..errors import ValidationError, error_response
from ..services import reporting_service
from storepos.time_utils import parse_date

reports_bp = Blueprint("reports", __name__, url_prefix="/api/reports")


@reports_bp.get("/summary")
@require_auth
@require_permission("VIEW_REPORTS")
def summary():
    """
    Daily dashboard numbers. ?date=YYYY-MM-DD, default today at the store.
    """
    try:
        day = parse_date(request.args.get("date"))
    except ValueError:
        return error_response(ValidationError("date must be YYYY-MM-DD"))

    return jsonify(reporting_service.daily_summary(day)), 200
