# action_queue.py
# Ordered store of parsed actions plus their approval and outcome state.
#
# The client owns the only ActionQueue. Everything outside it (UI, executor)
# addresses entries by integer index and receives copies, never the live
# objects, because the queue may be cleared and refilled between a read and
# a later write.
#
# Session actions additionally carry the server's action index as a key so
# that repeated session replies about the same action update one entry.

import threading

from scene_agent.actions import ActionBase, preview_text
from scene_agent.errors import ActionIndexError

ActionIndex = int


class ActionQueue:
    def __init__(self) -> None:
        self._lock = threading.RLock()
        self._actions: list[ActionBase] = []
        self._keys: list[int | None] = []

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def count(self) -> int:
        with self._lock:
            return len(self._actions)

    def __len__(self) -> int:
        return self.count()

    def _at(self, index: ActionIndex) -> ActionBase:
        if not isinstance(index, int) or index < 0 or index >= len(self._actions):
            raise ActionIndexError(f"Action index {index} is out of range (count={len(self._actions)}).")
        return self._actions[index]

    def get(self, index: ActionIndex) -> ActionBase:
        """Copy of the action at `index`. Raises ActionIndexError."""
        with self._lock:
            return self._at(index).model_copy(deep=True)

    def preview_text(self, index: ActionIndex) -> str:
        with self._lock:
            return preview_text(self._at(index))

    def is_approved(self, index: ActionIndex) -> bool:
        with self._lock:
            return self._at(index).approved

    def next_pending_index(self) -> ActionIndex | None:
        with self._lock:
            for index, action in enumerate(self._actions):
                if action.state == "pending":
                    return index
            return None

    def index_of_key(self, key: int) -> ActionIndex | None:
        with self._lock:
            try:
                return self._keys.index(key)
            except ValueError:
                return None

    def key_at(self, index: ActionIndex) -> int | None:
        with self._lock:
            self._at(index)
            return self._keys[index]

    def next_key(self) -> int:
        """One past the largest key held. Keys can have gaps, so this is not count()."""
        with self._lock:
            return max((key for key in self._keys if key is not None), default=-1) + 1

    def snapshot(self) -> list[ActionBase]:
        with self._lock:
            return [action.model_copy(deep=True) for action in self._actions]

    # ------------------------------------------------------------------
    # Mutation
    # ------------------------------------------------------------------

    def set_approved(self, index: ActionIndex, approved: bool) -> None:
        with self._lock:
            self._at(index).approved = bool(approved)

    def record_outcome(self, index: ActionIndex, succeeded: bool, attempt_count: int) -> bool:
        """
        Store an execution outcome. Out-of-range indices are ignored: the
        queue may have been reset while the executor was still running.
        Returns whether an entry was updated.
        """
        with self._lock:
            if not isinstance(index, int) or index < 0 or index >= len(self._actions):
                return False
            action = self._actions[index]
            action.state = "succeeded" if succeeded else "failed"
            action.attempt_count = max(0, int(attempt_count))
            return True

    def pop_approved(self) -> list[ActionBase]:
        """
        Remove and return every approved action in queue order. The
        unapproved remainder keeps its relative order.
        """
        with self._lock:
            popped: list[ActionBase] = []
            kept_actions: list[ActionBase] = []
            kept_keys: list[int | None] = []
            for action, key in zip(self._actions, self._keys):
                if action.approved:
                    popped.append(action)
                else:
                    kept_actions.append(action)
                    kept_keys.append(key)
            self._actions = kept_actions
            self._keys = kept_keys
            return popped

    def clear(self) -> None:
        with self._lock:
            self._actions = []
            self._keys = []

    def replace(self, actions: list[ActionBase]) -> None:
        with self._lock:
            self._actions = list(actions)
            self._keys = [None] * len(self._actions)

    def append(self, action: ActionBase, key: int | None = None) -> ActionIndex:
        with self._lock:
            self._actions.append(action)
            self._keys.append(key)
            return len(self._actions) - 1

    def upsert(self, key: int, action: ActionBase) -> ActionIndex:
        """Replace the entry carrying `key`, or append a new one."""
        with self._lock:
            index = self.index_of_key(key)
            if index is None:
                return self.append(action, key)
            self._actions[index] = action
            return index
