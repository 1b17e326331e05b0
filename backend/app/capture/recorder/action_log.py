"""
Action Log

A ready-made emission sink: keeps emitted actions in order and applies
identity-addressed patches (same id) in place.
"""

import json
import logging
from typing import Dict, List, Optional

from ..models import CheckpointAction, SelectorStrategy

# Configure logging
logger = logging.getLogger(__name__)


class ActionLog:
    """
    Ordered, id-addressed action store.

    Usage:
        log = ActionLog()
        listener = EventListener(document, on_action=log, ...)
        ...
        payload = log.to_json()
    """

    def __init__(self):
        self._actions: List = []
        self._index: Dict[str, int] = {}

    def __call__(self, action):
        self.upsert(action)

    def upsert(self, action):
        position = self._index.get(action.id)
        if position is None:
            self._index[action.id] = len(self._actions)
            self._actions.append(action)
            logger.debug(f"Logged {action.type} {action.id}")
        else:
            self._actions[position] = action
            logger.debug(f"Patched {action.type} {action.id}")

    @property
    def actions(self) -> List:
        return list(self._actions)

    def get(self, action_id: str):
        position = self._index.get(action_id)
        return self._actions[position] if position is not None else None

    def add_checkpoint(
        self,
        check_type: str,
        timestamp: int,
        url: str = "",
        expected_url: Optional[str] = None,
        actual_url: Optional[str] = None,
        selector: Optional[SelectorStrategy] = None,
        expected_value: Optional[str] = None,
        actual_value: Optional[str] = None,
        passed: bool = True,
        action_id: Optional[str] = None,
    ) -> CheckpointAction:
        """Append an explicit verification step recorded outside the event stream."""
        checkpoint = CheckpointAction(
            id=action_id or f"chk_{len(self._actions) + 1:03d}",
            timestamp=timestamp,
            completed_at=timestamp,
            url=url,
            check_type=check_type,
            expected_url=expected_url,
            actual_url=actual_url,
            selector=selector,
            expected_value=expected_value,
            actual_value=actual_value,
            passed=passed,
        )
        self.upsert(checkpoint)
        return checkpoint

    def to_list(self) -> List[dict]:
        return [action.to_dict() for action in self._actions]

    def to_json(self, indent: Optional[int] = 2) -> str:
        """camelCase JSON array for hand-off to an exporter."""
        return json.dumps(self.to_list(), indent=indent)

    def clear(self):
        self._actions.clear()
        self._index.clear()

    def __len__(self) -> int:
        return len(self._actions)

    def __iter__(self):
        return iter(self._actions)
