from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, FrozenSet, Iterable, List

from giftops.errors import ValidationError, transition_not_allowed
from giftops.observability import observe_transition_rejected


@dataclass(frozen=True)
class Transition:
    action: str
    sources: FrozenSet[str]
    target: str
    roles: FrozenSet[str]


class FlowPolicy:
    """Table of named transitions for one entity type."""

    def __init__(self, entity: str, transitions: Iterable[Transition], terminal: Iterable[str]) -> None:
        self.entity = entity
        self.terminal: FrozenSet[str] = frozenset(terminal)
        self._transitions: Dict[str, Transition] = {item.action: item for item in transitions}

    @property
    def actions(self) -> List[str]:
        return list(self._transitions)

    def get(self, action: str) -> Transition:
        transition = self._transitions.get(action)
        if transition is None:
            raise ValidationError(
                code="action_invalid",
                message_key="action_invalid",
                payload={"entity": self.entity, "action": action},
            )
        return transition

    def action_allowed(self, action: str, status: str | None) -> bool:
        transition = self._transitions.get(action)
        return transition is not None and status in transition.sources

    def allowed_actions(self, status: str | None) -> List[str]:
        return [action for action, item in self._transitions.items() if status in item.sources]

    def is_terminal(self, status: str | None) -> bool:
        return status in self.terminal

    def ensure_allowed(self, action: str, status: str | None) -> Transition:
        transition = self.get(action)
        if status not in transition.sources:
            observe_transition_rejected(self.entity, action)
            raise transition_not_allowed(self.entity, status, action, self.allowed_actions(status))
        return transition

    def rejection(self, action: str, status: str | None):
        observe_transition_rejected(self.entity, action)
        return transition_not_allowed(self.entity, status, action, self.allowed_actions(status))

    def flow_meta(self, status: str | None) -> Dict[str, object]:
        return {
            "status": status,
            "allowed_actions": self.allowed_actions(status),
            "terminal": self.is_terminal(status),
        }
