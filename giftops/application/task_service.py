from __future__ import annotations

import logging
from typing import Any, Dict

from giftops.application.order_service import OrderService
from giftops.db import new_id
from giftops.domain.contracts import Actor, TaskCreateInput
from giftops.errors import ConflictError, PermissionError, not_found, validation_failed
from giftops.infrastructure.repositories import StatusEventRepository, TaskRepository, UserRepository
from giftops.observability import observe_transition_applied
from giftops.policies import ADMIN, TECHNICIAN_ROLES, normalize_role, require_roles
from giftops.validation import iso_date, optional_text, required_text
from giftops.workflow.task_flow import ASSIGNEE_ACTIONS, MANAGER_ROLES, TASK_FLOW


TASK_ORDER_STATUSES = frozenset({"processing", "in_production"})


class TaskService:
    """Production tasks for technicians; drives the order into and out of production."""

    def __init__(
        self,
        tasks: TaskRepository | None = None,
        users: UserRepository | None = None,
        status_events: StatusEventRepository | None = None,
        order_service: OrderService | None = None,
    ) -> None:
        self.tasks = tasks or TaskRepository()
        self.users = users or UserRepository()
        self.status_events = status_events or StatusEventRepository()
        self.order_service = order_service or OrderService()
        self._logger = logging.getLogger("giftops")

    def load(self, db, task_id: str) -> dict:
        task = self.tasks.get(db, task_id)
        if task is None:
            raise not_found("task", task_id)
        return task

    def list_tasks(self, db, actor: Actor, *, order_id: str | None = None, statuses=None) -> list[dict]:
        require_roles(actor.role, *(TECHNICIAN_ROLES | MANAGER_ROLES))
        assignee_id = actor.uid if actor.role in TECHNICIAN_ROLES else None
        tasks = self.tasks.list_tasks(db, order_id=order_id, assignee_id=assignee_id, statuses=statuses)
        return [self._present(task) for task in tasks]

    def create(self, db, actor: Actor, create_input: TaskCreateInput) -> dict:
        require_roles(actor.role, *MANAGER_ROLES)
        task_type = normalize_role(create_input.task_type)
        if task_type not in TECHNICIAN_ROLES:
            raise validation_failed("role_invalid", "task_type")
        description = required_text(create_input.description, "description")
        order = self.order_service.load(db, create_input.order_id)
        if order["status"] not in TASK_ORDER_STATUSES:
            raise ConflictError(
                code="order_not_ready_for_tasks",
                message_key="order_not_ready_for_tasks",
                payload={"order_id": order["id"], "status": order["status"]},
            )
        assignee = self._technician(db, create_input.assignee_id, task_type) if create_input.assignee_id else None

        task_id = new_id()
        with db.transaction():
            self.tasks.create(
                db,
                {
                    "id": task_id,
                    "order_id": order["id"],
                    "item_name": optional_text(create_input.item_name),
                    "task_type": task_type,
                    "description": description,
                    "assignee_id": assignee["uid"] if assignee else None,
                    "assignee_name": assignee.get("display_name") if assignee else None,
                    "customizations": create_input.customizations,
                    "due_date": iso_date(create_input.due_date, "due_date"),
                    "notes": optional_text(create_input.notes),
                },
            )
            self._record(db, actor, task_id, None, "pending", "task_created")
        self._logger.info("task_created", extra={"task_id": task_id, "order_id": order["id"], "actor_id": actor.uid})
        return self._present(self.load(db, task_id))

    def assign(self, db, actor: Actor, task_id: str, assignee_id: str | None) -> dict:
        require_roles(actor.role, *MANAGER_ROLES)
        task = self.load(db, task_id)
        assignee = self._technician(db, assignee_id, task["task_type"])
        with db.transaction():
            changed = self.tasks.assign(
                db,
                task_id,
                assignee_id=assignee["uid"],
                assignee_name=assignee.get("display_name") or assignee.get("email"),
            )
            if not changed:
                raise TASK_FLOW.rejection("assign", task["status"])
        return self._present(self.load(db, task_id))

    def transition(
        self,
        db,
        actor: Actor,
        task_id: str,
        action: str,
        *,
        notes: str | None = None,
        proof_of_work_url: str | None = None,
    ) -> dict:
        transition = TASK_FLOW.get(action)
        require_roles(actor.role, *transition.roles)
        task = self.load(db, task_id)

        guards: Dict[str, Any] = {}
        if action in ASSIGNEE_ACTIONS or actor.role in TECHNICIAN_ROLES:
            if task.get("assignee_id") != actor.uid:
                raise PermissionError()
            guards["assignee_id"] = actor.uid
        TASK_FLOW.ensure_allowed(action, task["status"])

        updates: Dict[str, Any] = {}
        if action == "submit" and proof_of_work_url is not None:
            updates["proof_of_work_url"] = optional_text(proof_of_work_url)
        if action in {"approve", "reject"} and notes is not None:
            updates["service_manager_notes"] = optional_text(notes)
        elif notes is not None:
            updates["notes"] = optional_text(notes)

        with db.transaction():
            changed = self.tasks.apply_transition(
                db,
                task_id,
                sources=transition.sources,
                target=transition.target,
                updates=updates,
                guards=guards,
            )
            if not changed:
                current = self.tasks.get(db, task_id)
                if current is None:
                    raise not_found("task", task_id)
                raise TASK_FLOW.rejection(action, current["status"])
            self._record(db, actor, task_id, task["status"], transition.target, action)

        observe_transition_applied("task", action)
        self._logger.info(
            "task_transition_applied",
            extra={"task_id": task_id, "action": action, "to_status": transition.target, "actor_id": actor.uid},
        )
        self._sync_order(db, actor, task, action)
        return self._present(self.load(db, task_id))

    def _sync_order(self, db, actor: Actor, task: dict, action: str) -> None:
        """First task started moves the order into production; last task approved hands it to dispatch."""
        order_id = task.get("order_id")
        if not order_id:
            return
        order = self.order_service.orders.get(db, order_id, with_history=False)
        if order is None:
            return
        system_actor = Actor(uid=actor.uid, role=ADMIN, display_name=actor.display_name, email=actor.email)
        if action == "start" and order["status"] == "processing":
            self.order_service.apply_action(
                db,
                system_actor,
                order_id,
                "start_production",
                notes=f"Production started: {task['task_type']}",
            )
        elif action == "approve" and order["status"] in {"processing", "in_production"}:
            if self.tasks.count_open_for_order(db, order_id) == 0:
                self.order_service.apply_action(
                    db,
                    system_actor,
                    order_id,
                    "complete_production",
                    notes="All production tasks completed",
                )

    def _technician(self, db, user_id: str | None, task_type: str) -> dict:
        user = self.users.get(db, str(user_id or "").strip()) if user_id else None
        if user is None or user.get("disabled") or user.get("role") not in TECHNICIAN_ROLES:
            raise validation_failed("technician_invalid", "assignee_id")
        if user.get("role") != task_type:
            raise validation_failed("technician_invalid", "assignee_id")
        return user

    def _record(self, db, actor: Actor, task_id: str, from_status, to_status: str, reason: str) -> None:
        self.status_events.add_event(
            db,
            entity="task",
            entity_id=task_id,
            from_status=from_status,
            to_status=to_status,
            reason=reason,
            actor_id=actor.uid,
        )

    @staticmethod
    def _present(task: dict) -> dict:
        task["flow"] = TASK_FLOW.flow_meta(task["status"])
        return task
