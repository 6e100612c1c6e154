from __future__ import annotations

import logging
from typing import Any, Dict

from werkzeug.security import check_password_hash, generate_password_hash

from giftops.core.event_bus import EventBus, UserStatusChanged, get_event_bus
from giftops.db import new_id, utc_now_iso
from giftops.domain.contracts import Actor, RegistrationInput
from giftops.errors import AuthRequiredError, ConflictError, PermissionError, not_found, validation_failed
from giftops.infrastructure.repositories import UserRepository
from giftops.policies import ADMIN, CUSTOMER, DISPATCH_MANAGER, RIDER, VALID_ROLES, normalize_role, require_roles
from giftops.validation import clean_text, coordinate, optional_text, required_text


USER_STATUSES = ("pending", "approved", "rejected")
MIN_PASSWORD_LENGTH = 8


class UserService:
    def __init__(self, repository: UserRepository | None = None, event_bus: EventBus | None = None) -> None:
        self.repository = repository or UserRepository()
        self._event_bus = event_bus
        self._logger = logging.getLogger("giftops")

    @property
    def event_bus(self) -> EventBus:
        return self._event_bus or get_event_bus()

    # Authentication

    def register(self, db, registration: RegistrationInput) -> dict:
        """Customers are approved on sign-up; every other role waits for an admin."""
        role = normalize_role(registration.role or CUSTOMER)
        if not role or role == ADMIN:
            raise validation_failed("role_invalid", "role")
        return self.create_user(
            db,
            email=registration.email,
            password=registration.password,
            role=role,
            display_name=registration.display_name,
            status="approved" if role == CUSTOMER else "pending",
            phone=registration.phone,
            county=registration.county,
            town=registration.town,
        )

    def create_user(
        self,
        db,
        *,
        email: str,
        password: str,
        role: str,
        display_name: str | None = None,
        status: str = "approved",
        phone: str | None = None,
        county: str | None = None,
        town: str | None = None,
    ) -> dict:
        email = clean_text(email).lower()
        if "@" not in email:
            raise validation_failed("field_required", "email")
        if len(password or "") < MIN_PASSWORD_LENGTH:
            raise validation_failed("password_too_short", "password")
        role = normalize_role(role)
        if role not in VALID_ROLES:
            raise validation_failed("role_invalid", "role")
        if status not in USER_STATUSES:
            raise validation_failed("status_invalid", "status")

        display = optional_text(display_name) or email.split("@")[0]
        first_name, _, last_name = display.partition(" ")
        uid = new_id()
        with db.transaction():
            if self.repository.email_exists(db, email):
                raise ConflictError(code="email_taken", message_key="email_taken")
            self.repository.create(
                db,
                {
                    "uid": uid,
                    "email": email,
                    "password_hash": generate_password_hash(password),
                    "display_name": display,
                    "first_name": first_name or None,
                    "last_name": last_name or None,
                    "phone": optional_text(phone),
                    "county": optional_text(county),
                    "town": optional_text(town),
                    "role": role,
                    "status": status,
                },
            )
        self._logger.info("user_registered", extra={"user_id": uid, "role": role, "status": status})
        return self.repository.get(db, uid)

    def authenticate(self, db, email: str, password: str) -> Actor:
        credentials = self.repository.get_credentials(db, clean_text(email).lower())
        if (
            credentials is None
            or not credentials.get("password_hash")
            or not check_password_hash(credentials["password_hash"], password or "")
        ):
            raise AuthRequiredError(code="invalid_credentials", message_key="invalid_credentials")
        if credentials.get("disabled"):
            raise PermissionError(code="account_disabled", message_key="account_disabled")
        if credentials.get("status") != "approved":
            raise PermissionError(code="account_not_approved", message_key="account_not_approved")
        return self.load_actor(db, credentials["uid"])

    def load_actor(self, db, uid: str | None) -> Actor | None:
        """Active identity for ``uid``; disabled or unapproved accounts count as signed out."""
        if not uid:
            return None
        user = self.repository.get(db, uid)
        if user is None or user.get("disabled") or user.get("status") != "approved":
            return None
        return Actor.from_user_row(user)

    # Administration

    def get_user(self, db, uid: str) -> dict:
        user = self.repository.get(db, uid)
        if user is None:
            raise not_found("user", uid)
        return user

    def list_users(self, db, actor: Actor, *, role: str | None = None, status: str | None = None) -> list[dict]:
        require_roles(actor.role, ADMIN)
        role_filter = normalize_role(role) if role else None
        if role and not role_filter:
            raise validation_failed("role_invalid", "role")
        if status and status not in USER_STATUSES:
            raise validation_failed("status_invalid", "status")
        return self.repository.list_users(db, role=role_filter, status=status or None)

    def list_riders(self, db, actor: Actor) -> list[dict]:
        require_roles(actor.role, DISPATCH_MANAGER, ADMIN)
        return self.repository.list_users(db, role=RIDER, status="approved", include_disabled=False)

    def approve(self, db, actor: Actor, uid: str) -> dict:
        return self._update(db, actor, uid, {"status": "approved", "rejection_reason": None}, "user_approved")

    def reject(self, db, actor: Actor, uid: str, reason: str | None) -> dict:
        reason_text = required_text(reason, "reason", code="reason_required")
        return self._update(db, actor, uid, {"status": "rejected", "rejection_reason": reason_text}, "user_rejected")

    def set_role(self, db, actor: Actor, uid: str, role: str | None) -> dict:
        normalized = normalize_role(role)
        if not normalized:
            raise validation_failed("role_invalid", "role")
        return self._update(db, actor, uid, {"role": normalized}, "user_role_changed")

    def disable(self, db, actor: Actor, uid: str) -> dict:
        require_roles(actor.role, ADMIN)
        if uid == actor.uid:
            raise validation_failed("action_invalid", "uid")
        return self._update(db, actor, uid, {"disabled": 1, "disabled_at": utc_now_iso()}, "user_disabled")

    def enable(self, db, actor: Actor, uid: str) -> dict:
        return self._update(db, actor, uid, {"disabled": 0, "disabled_at": None}, "user_enabled")

    def update_location(self, db, actor: Actor, lat: Any, lng: Any) -> dict:
        require_roles(actor.role, RIDER)
        fields = {
            "current_lat": coordinate(lat, "lat"),
            "current_lng": coordinate(lng, "lng"),
            "location_updated_at": utc_now_iso(),
        }
        with db.transaction():
            if not self.repository.update(db, actor.uid, fields):
                raise not_found("user", actor.uid)
        return self.get_user(db, actor.uid)

    def _update(self, db, actor: Actor, uid: str, fields: Dict[str, Any], event: str) -> dict:
        require_roles(actor.role, ADMIN)
        with db.transaction():
            if not self.repository.update(db, uid, fields):
                raise not_found("user", uid)
        user = self.get_user(db, uid)
        self._logger.info(event, extra={"user_id": uid, "actor_id": actor.uid})
        self.event_bus.publish(
            UserStatusChanged(
                user_id=uid,
                status=user["status"],
                disabled=bool(user.get("disabled")),
                actor_id=actor.uid,
            )
        )
        return user
