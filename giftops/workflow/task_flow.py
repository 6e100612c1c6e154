from __future__ import annotations

from typing import FrozenSet

from giftops.policies import ADMIN, SERVICE_MANAGER, TECHNICIAN_ROLES
from giftops.workflow.transitions import FlowPolicy, Transition


OPEN_STATUSES: FrozenSet[str] = frozenset({"pending", "in-progress", "needs_approval", "blocked", "rejected"})
MANAGER_ROLES: FrozenSet[str] = frozenset({SERVICE_MANAGER, ADMIN})

# Actions only the assigned technician may perform.
ASSIGNEE_ACTIONS: FrozenSet[str] = frozenset({"start", "submit"})


def _t(action: str, sources, target: str, roles) -> Transition:
    return Transition(action=action, sources=frozenset(sources), target=target, roles=frozenset(roles))


TASK_FLOW = FlowPolicy(
    "task",
    [
        _t("start", {"pending", "rejected", "blocked"}, "in-progress", TECHNICIAN_ROLES),
        _t("submit", {"in-progress"}, "needs_approval", TECHNICIAN_ROLES),
        _t("approve", {"needs_approval"}, "completed", MANAGER_ROLES),
        _t("reject", {"needs_approval"}, "rejected", MANAGER_ROLES),
        _t("block", {"pending", "in-progress"}, "blocked", TECHNICIAN_ROLES | MANAGER_ROLES),
    ],
    terminal={"completed"},
)
