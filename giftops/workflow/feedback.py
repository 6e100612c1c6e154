from __future__ import annotations

from typing import Any, Dict

from giftops.domain.contracts import Actor
from giftops.policies import ADMIN, CUSTOMER, CUSTOMER_BROADCAST, normalize_role


SNIPPET_LENGTH = 50
THREAD_STATUSES = ("open", "replied", "closed")


def snippet(message: str) -> str:
    return str(message or "")[:SNIPPET_LENGTH]


def is_unread(thread: Dict[str, Any], viewer_role: str | None) -> bool:
    return thread.get("last_replier_role") != normalize_role(viewer_role)


def can_view(thread: Dict[str, Any], actor: Actor) -> bool:
    if actor.role == ADMIN or thread.get("sender_id") == actor.uid:
        return True
    if thread.get("target_user_id"):
        return thread["target_user_id"] == actor.uid
    if thread.get("target_role") == CUSTOMER_BROADCAST:
        return actor.role == CUSTOMER
    return thread.get("target_role") == actor.role


def can_close(thread: Dict[str, Any], actor: Actor) -> bool:
    if thread.get("status") == "closed":
        return False
    if thread.get("target_role") == CUSTOMER_BROADCAST:
        return actor.role == ADMIN
    return can_view(thread, actor)
