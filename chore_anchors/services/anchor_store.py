"""
Remote anchor store contract and an in-process implementation.

The store is the only component that talks to the document database. The
manager treats every snapshot pushed through ``subscribe_collection`` as the
full, authoritative state of the collection.
"""

from abc import ABC, abstractmethod
from typing import Any, Awaitable, Callable, Dict, List, Optional, Set

from chore_anchors.errors import AnchorNotFound, AnchorStoreError
from chore_anchors.models.anchor import AnchorRecord

OnSnapshot = Callable[[List[AnchorRecord]], None]
Unsubscribe = Callable[[], Awaitable[None]]


class AnchorStore(ABC):
    """Document collection of anchors keyed by id.

    Every method may raise StoreUnavailable or StoreRejected.
    """

    @abstractmethod
    async def get_all(self) -> List[AnchorRecord]:
        ...

    @abstractmethod
    async def get(self, anchor_id: str) -> Optional[AnchorRecord]:
        ...

    @abstractmethod
    async def put(self, anchor_id: str, record: AnchorRecord) -> None:
        ...

    @abstractmethod
    async def update(self, anchor_id: str, fields: Dict[str, Any]) -> None:
        """Merge ``fields`` (attribute names) into an existing record.

        Raises AnchorNotFound when there is no record to merge into.
        """

    @abstractmethod
    async def delete(self, anchor_id: str) -> None:
        ...

    @abstractmethod
    async def subscribe_collection(self, on_snapshot: OnSnapshot) -> Unsubscribe:
        """Push the full collection to ``on_snapshot`` now and after every change.

        Subscribing again replaces (and tears down) the previous subscription.
        """


class InMemoryAnchorStore(AnchorStore):
    """Process-local store. Records are copied on the way in and out."""

    def __init__(self, records: Optional[List[AnchorRecord]] = None):
        self._records: Dict[str, AnchorRecord] = {}
        self._subscriber: Optional[OnSnapshot] = None
        self.fail_with: Optional[AnchorStoreError] = None
        self.fail_on: Optional[Set[str]] = None  # None fails every operation
        self.fail_after = 0  # matching calls let through before failing starts
        self.calls: List[str] = []
        for record in records or []:
            self._records[record.id] = record.model_copy(deep=True)

    def _enter(self, operation: str) -> None:
        self.calls.append(operation)
        if self.fail_with is not None and (self.fail_on is None or operation in self.fail_on):
            if self.fail_after > 0:
                self.fail_after -= 1
                return
            raise self.fail_with

    def _snapshot(self) -> List[AnchorRecord]:
        return [record.model_copy(deep=True) for record in self._records.values()]

    def _push(self) -> None:
        if self._subscriber is not None:
            self._subscriber(self._snapshot())

    async def get_all(self) -> List[AnchorRecord]:
        self._enter("get_all")
        return self._snapshot()

    async def get(self, anchor_id: str) -> Optional[AnchorRecord]:
        self._enter("get")
        record = self._records.get(anchor_id)
        return record.model_copy(deep=True) if record else None

    async def put(self, anchor_id: str, record: AnchorRecord) -> None:
        self._enter("put")
        self._records[anchor_id] = record.model_copy(deep=True)
        self._push()

    async def update(self, anchor_id: str, fields: Dict[str, Any]) -> None:
        self._enter("update")
        record = self._records.get(anchor_id)
        if record is None:
            raise AnchorNotFound(anchor_id)
        self._records[anchor_id] = record.model_copy(update=fields, deep=True)
        self._push()

    async def delete(self, anchor_id: str) -> None:
        self._enter("delete")
        self._records.pop(anchor_id, None)
        self._push()

    async def subscribe_collection(self, on_snapshot: OnSnapshot) -> Unsubscribe:
        self._enter("subscribe")
        self._subscriber = on_snapshot
        on_snapshot(self._snapshot())

        async def unsubscribe() -> None:
            if self._subscriber is on_snapshot:
                self._subscriber = None

        return unsubscribe
