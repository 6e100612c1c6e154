from __future__ import annotations

from flask import Blueprint, jsonify, request

from giftops.application.user_service import UserService
from giftops.auth import current_actor
from giftops.db import get_db
from giftops.errors import validation_failed
from giftops.validation import clean_text


user_bp = Blueprint("users", __name__)

_USER_SERVICE = UserService()


@user_bp.route("/api/users", methods=["GET"])
def users_api():
    users = _USER_SERVICE.list_users(
        get_db(),
        current_actor(),
        role=clean_text(request.args.get("role")) or None,
        status=clean_text(request.args.get("status")) or None,
    )
    return jsonify({"items": users}), 200


@user_bp.route("/api/users/<string:uid>/<string:action>", methods=["POST"])
def user_action_api(uid: str, action: str):
    db = get_db()
    actor = current_actor()
    payload = request.get_json(silent=True) or {}
    if action == "approve":
        user = _USER_SERVICE.approve(db, actor, uid)
    elif action == "reject":
        user = _USER_SERVICE.reject(db, actor, uid, payload.get("reason"))
    elif action == "role":
        user = _USER_SERVICE.set_role(db, actor, uid, payload.get("role"))
    elif action == "disable":
        user = _USER_SERVICE.disable(db, actor, uid)
    elif action == "enable":
        user = _USER_SERVICE.enable(db, actor, uid)
    else:
        raise validation_failed("action_invalid", "action")
    return jsonify(user), 200


@user_bp.route("/api/riders", methods=["GET"])
def riders_api():
    return jsonify({"items": _USER_SERVICE.list_riders(get_db(), current_actor())}), 200


@user_bp.route("/api/riders/me/location", methods=["PUT"])
def rider_location_api():
    payload = request.get_json(silent=True) or {}
    user = _USER_SERVICE.update_location(get_db(), current_actor(), payload.get("lat"), payload.get("lng"))
    return jsonify(user), 200
