"""Undo/redo ledger for locally originated anchor edits.

- Each action keeps deep copies of the records it touched
- Recording a new action clears the redo stack
- Undo and redo never record anything themselves
"""

from dataclasses import dataclass
from enum import Enum
from typing import Awaitable, Callable, List, Optional

from chore_anchors.models.anchor import AnchorRecord


class ActionKind(str, Enum):
    ADD = "add"
    REMOVE = "remove"
    UPDATE = "update"


@dataclass(frozen=True)
class HistoryAction:
    kind: ActionKind
    before: Optional[AnchorRecord] = None
    after: Optional[AnchorRecord] = None

    @classmethod
    def added(cls, record: AnchorRecord) -> "HistoryAction":
        return cls(ActionKind.ADD, after=record.model_copy(deep=True))

    @classmethod
    def removed(cls, record: AnchorRecord) -> "HistoryAction":
        return cls(ActionKind.REMOVE, before=record.model_copy(deep=True))

    @classmethod
    def updated(cls, before: AnchorRecord, after: AnchorRecord) -> "HistoryAction":
        return cls(ActionKind.UPDATE, before=before.model_copy(deep=True), after=after.model_copy(deep=True))

    @property
    def record(self) -> AnchorRecord:
        """The added or removed record."""
        return self.after if self.kind is ActionKind.ADD else self.before


# Applies an action in one direction; returns the action to keep (possibly
# rewritten) or None when the store refused it.
Replay = Callable[[HistoryAction], Awaitable[Optional[HistoryAction]]]


class HistoryLedger:
    """Two-stack undo/redo over anchor actions."""

    def __init__(self) -> None:
        self._undoable: List[HistoryAction] = []
        self._redoable: List[HistoryAction] = []

    def record(self, action: HistoryAction) -> None:
        self._undoable.append(action)
        self._redoable.clear()

    async def undo(self, revert: Replay) -> bool:
        if not self._undoable:
            return False
        action = self._undoable.pop()
        applied = await revert(action)
        if applied is None:
            self._undoable.append(action)
            return False
        self._redoable.append(applied)
        return True

    async def redo(self, reapply: Replay) -> bool:
        if not self._redoable:
            return False
        action = self._redoable.pop()
        applied = await reapply(action)
        if applied is None:
            self._redoable.append(action)
            return False
        self._undoable.append(applied)
        return True

    def can_undo(self) -> bool:
        return bool(self._undoable)

    def can_redo(self) -> bool:
        return bool(self._redoable)

    def clear(self) -> None:
        self._undoable.clear()
        self._redoable.clear()

    @property
    def undoable(self) -> List[HistoryAction]:
        return list(self._undoable)

    @property
    def redoable(self) -> List[HistoryAction]:
        return list(self._redoable)
