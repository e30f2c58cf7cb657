"""
Local mirror of the anchor collection and the listener bus that reports
every change to it.
"""

from typing import Callable, Dict, List, Optional

from chore_anchors.logging_config import get_logger
from chore_anchors.models.anchor import AnchorRecord

logger = get_logger(__name__)

AnchorListener = Callable[[List[AnchorRecord]], None]


class AnchorEventBus:
    """Synchronous publish/subscribe for anchor snapshots."""

    def __init__(self):
        self._listeners: List[AnchorListener] = []

    def subscribe(self, listener: AnchorListener) -> None:
        self._listeners.append(listener)

    def unsubscribe(self, listener: AnchorListener) -> None:
        self._listeners = [cb for cb in self._listeners if cb != listener]

    def publish(self, snapshot: List[AnchorRecord]) -> None:
        """Call every listener in subscription order.

        A failing listener is logged and does not stop the rest.
        """
        for listener in list(self._listeners):
            try:
                listener(snapshot)
            except Exception:
                logger.exception("Anchor listener %r failed", listener)

    def __len__(self) -> int:
        return len(self._listeners)


class AnchorCache:
    """In-memory copy of the remote collection, in insertion order.

    Every mutation publishes the new full snapshot exactly once.
    """

    def __init__(self, bus: AnchorEventBus):
        self._bus = bus
        self._anchors: Dict[str, AnchorRecord] = {}

    def _changed(self) -> None:
        self._bus.publish(self.all())

    def replace_all(self, records: List[AnchorRecord]) -> None:
        self._anchors = {record.id: record.model_copy(deep=True) for record in records}
        self._changed()

    def upsert(self, record: AnchorRecord) -> None:
        self._anchors[record.id] = record.model_copy(deep=True)
        self._changed()

    def patch(self, anchor_id: str, fields: Dict) -> bool:
        """Merge fields into a cached record. Returns False if it is not cached."""
        record = self._anchors.get(anchor_id)
        if record is None:
            return False
        self._anchors[anchor_id] = record.model_copy(update=fields, deep=True)
        self._changed()
        return True

    def remove(self, anchor_id: str) -> None:
        self._anchors.pop(anchor_id, None)
        self._changed()

    def get(self, anchor_id: str) -> Optional[AnchorRecord]:
        record = self._anchors.get(anchor_id)
        return record.model_copy(deep=True) if record else None

    def all(self) -> List[AnchorRecord]:
        return [record.model_copy(deep=True) for record in self._anchors.values()]

    def __contains__(self, anchor_id: str) -> bool:
        return anchor_id in self._anchors

    def __len__(self) -> int:
        return len(self._anchors)
