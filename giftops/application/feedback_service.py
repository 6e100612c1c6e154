from __future__ import annotations

from giftops.db import new_id
from giftops.domain.contracts import Actor, FeedbackThreadInput
from giftops.errors import ConflictError, PermissionError, not_found, validation_failed
from giftops.infrastructure.repositories import FeedbackRepository, UserRepository
from giftops.policies import ADMIN, CUSTOMER_BROADCAST, normalize_role
from giftops.validation import required_text
from giftops.workflow.feedback import can_close, can_view, is_unread, snippet


class FeedbackService:
    def __init__(self, repository: FeedbackRepository | None = None, users: UserRepository | None = None) -> None:
        self.repository = repository or FeedbackRepository()
        self.users = users or UserRepository()

    def list_threads(self, db, actor: Actor) -> list[dict]:
        threads = [thread for thread in self.repository.list_threads(db) if can_view(thread, actor)]
        for thread in threads:
            thread["unread"] = is_unread(thread, actor.role)
        return threads

    def get_thread(self, db, actor: Actor, thread_id: str) -> dict:
        thread = self._visible(db, actor, thread_id)
        thread["unread"] = is_unread(thread, actor.role)
        thread["messages"] = self.repository.list_messages(db, thread_id)
        return thread

    def create_thread(self, db, actor: Actor, thread_input: FeedbackThreadInput) -> dict:
        subject = required_text(thread_input.subject, "subject")
        message = required_text(thread_input.message, "message")
        target_role = thread_input.target_role
        if target_role != CUSTOMER_BROADCAST:
            target_role = normalize_role(target_role)
            if not target_role:
                raise validation_failed("role_invalid", "target_role")
        elif actor.role != ADMIN:
            raise PermissionError()

        target_user = None
        if thread_input.target_user_id:
            target_user = self.users.get(db, thread_input.target_user_id)
            if target_user is None:
                raise not_found("user", thread_input.target_user_id)

        thread_id = new_id()
        with db.transaction():
            self.repository.create_thread(
                db,
                {
                    "id": thread_id,
                    "subject": subject,
                    "sender_id": actor.uid,
                    "sender_name": actor.display_name,
                    "sender_email": actor.email,
                    "sender_role": actor.role,
                    "target_role": target_role,
                    "target_user_id": target_user["uid"] if target_user else None,
                    "target_user_name": target_user.get("display_name") if target_user else None,
                    "last_message_snippet": snippet(message),
                },
            )
            self.repository.add_message(
                db,
                thread_id,
                sender_id=actor.uid,
                sender_name=actor.display_name,
                sender_role=actor.role,
                message=message,
            )
        return self.get_thread(db, actor, thread_id)

    def reply(self, db, actor: Actor, thread_id: str, message: str | None) -> dict:
        text = required_text(message, "message")
        thread = self._visible(db, actor, thread_id)
        if thread["status"] == "closed":
            raise ConflictError(code="thread_closed", message_key="thread_closed")
        with db.transaction():
            if not self.repository.record_reply(db, thread_id, snippet=snippet(text), replier_role=actor.role):
                raise ConflictError(code="thread_closed", message_key="thread_closed")
            self.repository.add_message(
                db,
                thread_id,
                sender_id=actor.uid,
                sender_name=actor.display_name,
                sender_role=actor.role,
                message=text,
            )
        return self.get_thread(db, actor, thread_id)

    def close(self, db, actor: Actor, thread_id: str) -> dict:
        thread = self._visible(db, actor, thread_id)
        if thread["status"] == "closed":
            raise ConflictError(code="thread_closed", message_key="thread_closed")
        if not can_close(thread, actor):
            raise PermissionError()
        with db.transaction():
            if not self.repository.close_thread(db, thread_id):
                raise ConflictError(code="thread_closed", message_key="thread_closed")
        return self.get_thread(db, actor, thread_id)

    def _visible(self, db, actor: Actor, thread_id: str) -> dict:
        thread = self.repository.get_thread(db, thread_id)
        if thread is None or not can_view(thread, actor):
            raise not_found("feedback_thread", thread_id)
        return thread
