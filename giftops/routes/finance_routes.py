from __future__ import annotations

from flask import Blueprint, jsonify, request

from giftops.application.financials_service import FinancialsService
from giftops.auth import current_actor
from giftops.db import get_db


finance_bp = Blueprint("finance", __name__)

_FINANCIALS_SERVICE = FinancialsService()


@finance_bp.route("/api/finance/financials", methods=["GET"])
def financials_api():
    summary = _FINANCIALS_SERVICE.summary(
        get_db(),
        current_actor(),
        request.args.get("start_date"),
        request.args.get("end_date"),
    )
    return jsonify(summary), 200
