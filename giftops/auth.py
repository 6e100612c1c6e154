from __future__ import annotations

from flask import Blueprint, g, jsonify, redirect, render_template, request, session, url_for

from giftops.application.user_service import UserService
from giftops.db import get_db
from giftops.domain.contracts import Actor, RegistrationInput
from giftops.errors import AppError, AuthRequiredError
from giftops.observability import ensure_request_id
from giftops.policies import ADMIN, CUSTOMER, VALID_ROLES, route_allows


auth_bp = Blueprint("auth", __name__)

_USER_SERVICE = UserService()
_UNGUARDED_PATHS = {"/login", "/logout", "/register", "/health", "/metrics"}


def register_auth(app) -> None:
    app.register_blueprint(auth_bp)

    @app.before_request
    def _load_actor_and_guard():
        path = request.path or "/"
        if path.startswith("/static/") or path in _UNGUARDED_PATHS:
            g.actor = None
            return None

        g.actor = _USER_SERVICE.load_actor(get_db(), session.get("user_id"))
        if g.actor is None and session.get("user_id"):
            session.pop("user_id", None)

        role = g.actor.role if g.actor else None
        if route_allows(path, role):
            return None

        if path.startswith("/api/") or path == "/api":
            error = AuthRequiredError()
            return jsonify(error.to_response_payload(ensure_request_id())), error.http_status

        if path == "/dashboard" or path.startswith("/dashboard/"):
            return redirect(url_for("auth.login", next=path))
        # Wrong role or signed out: bounce before the view runs so it never loads data.
        return redirect(url_for("pages.dashboard"))


def current_actor() -> Actor:
    actor = getattr(g, "actor", None)
    if actor is None:
        raise AuthRequiredError()
    return actor


def _start_session(actor: Actor) -> None:
    session.clear()
    session["user_id"] = actor.uid
    session.permanent = True


@auth_bp.route("/login", methods=["GET", "POST"])
def login():
    if _USER_SERVICE.load_actor(get_db(), session.get("user_id")):
        return redirect(_safe_next_url() or url_for("pages.dashboard"))

    error = None
    if request.method == "POST":
        try:
            actor = _USER_SERVICE.authenticate(
                get_db(),
                request.form.get("email") or "",
                request.form.get("password") or "",
            )
        except AppError as exc:
            error = exc.user_message()
        else:
            _start_session(actor)
            return redirect(_safe_next_url() or url_for("pages.dashboard"))

    return render_template("login.html", error=error)


@auth_bp.route("/register", methods=["GET", "POST"])
def register():
    if _USER_SERVICE.load_actor(get_db(), session.get("user_id")):
        return redirect(url_for("pages.dashboard"))

    error = None
    notice = None
    if request.method == "POST":
        registration = _registration_from(request.form)
        try:
            user = _USER_SERVICE.register(get_db(), registration)
        except AppError as exc:
            error = exc.user_message()
        else:
            if user["status"] == "approved":
                _start_session(Actor.from_user_row(user))
                return redirect(url_for("pages.dashboard"))
            notice = "account_not_approved"

    return render_template(
        "register.html",
        error=error,
        notice=notice,
        roles=sorted(VALID_ROLES - {ADMIN}),
        default_role=CUSTOMER,
    )


@auth_bp.route("/logout", methods=["GET", "POST"])
def logout():
    session.clear()
    return redirect(url_for("auth.login"))


@auth_bp.route("/api/auth/login", methods=["POST"])
def api_login():
    payload = request.get_json(silent=True) or {}
    actor = _USER_SERVICE.authenticate(get_db(), payload.get("email") or "", payload.get("password") or "")
    _start_session(actor)
    return jsonify(_actor_payload(actor)), 200


@auth_bp.route("/api/auth/register", methods=["POST"])
def api_register():
    payload = request.get_json(silent=True) or {}
    user = _USER_SERVICE.register(get_db(), _registration_from(payload))
    if user["status"] == "approved":
        _start_session(Actor.from_user_row(user))
    return jsonify(user), 201


@auth_bp.route("/api/auth/me", methods=["GET"])
def api_me():
    actor = _USER_SERVICE.load_actor(get_db(), session.get("user_id"))
    if actor is None:
        raise AuthRequiredError()
    return jsonify(_actor_payload(actor)), 200


@auth_bp.route("/api/auth/logout", methods=["POST"])
def api_logout():
    session.clear()
    return jsonify({"ok": True}), 200


def _registration_from(source) -> RegistrationInput:
    return RegistrationInput(
        email=str(source.get("email") or ""),
        password=str(source.get("password") or ""),
        display_name=source.get("display_name"),
        role=str(source.get("role") or CUSTOMER),
        phone=source.get("phone"),
        county=source.get("county"),
        town=source.get("town"),
    )


def _actor_payload(actor: Actor) -> dict:
    return {"uid": actor.uid, "email": actor.email, "display_name": actor.display_name, "role": actor.role}


def _safe_next_url() -> str | None:
    raw_next = request.args.get("next") or request.form.get("next")
    if not raw_next:
        return None
    if raw_next.startswith("//") or "://" in raw_next:
        return None
    if not raw_next.startswith("/"):
        return None
    return raw_next
