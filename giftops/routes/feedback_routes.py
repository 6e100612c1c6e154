from __future__ import annotations

from flask import Blueprint, jsonify, request

from giftops.application.feedback_service import FeedbackService
from giftops.auth import current_actor
from giftops.db import get_db
from giftops.domain.contracts import FeedbackThreadInput
from giftops.validation import clean_text, optional_text


feedback_bp = Blueprint("feedback", __name__)

_FEEDBACK_SERVICE = FeedbackService()


@feedback_bp.route("/api/feedback", methods=["GET", "POST"])
def feedback_threads_api():
    db = get_db()
    actor = current_actor()
    if request.method == "POST":
        payload = request.get_json(silent=True) or {}
        thread = _FEEDBACK_SERVICE.create_thread(
            db,
            actor,
            FeedbackThreadInput(
                subject=clean_text(payload.get("subject")),
                message=clean_text(payload.get("message")),
                target_role=clean_text(payload.get("target_role")),
                target_user_id=optional_text(payload.get("target_user_id")),
            ),
        )
        return jsonify(thread), 201
    return jsonify({"items": _FEEDBACK_SERVICE.list_threads(db, actor)}), 200


@feedback_bp.route("/api/feedback/<string:thread_id>", methods=["GET"])
def feedback_thread_api(thread_id: str):
    return jsonify(_FEEDBACK_SERVICE.get_thread(get_db(), current_actor(), thread_id)), 200


@feedback_bp.route("/api/feedback/<string:thread_id>/messages", methods=["POST"])
def feedback_reply_api(thread_id: str):
    payload = request.get_json(silent=True) or {}
    thread = _FEEDBACK_SERVICE.reply(get_db(), current_actor(), thread_id, payload.get("message"))
    return jsonify(thread), 201


@feedback_bp.route("/api/feedback/<string:thread_id>/close", methods=["POST"])
def feedback_close_api(thread_id: str):
    return jsonify(_FEEDBACK_SERVICE.close(get_db(), current_actor(), thread_id)), 200
