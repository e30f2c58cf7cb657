"""
Anchor lifecycle operations with a local cache, change listeners and undo/redo.

Every mutation goes store first, cache second. Store failures are logged and
turned into sentinel results (None / False / []), never raised to callers.
Only add, update and remove are recorded for undo.
"""

import math
import time
from typing import Any, Callable, Dict, List, Mapping, Optional, Union
from uuid import uuid4

from pydantic import ValidationError

from chore_anchors.errors import AnchorStoreError, AnchorValidationError, MissingId
from chore_anchors.logging_config import get_logger
from chore_anchors.models.anchor import (
    DEFAULT_MIN_DURATION_SECONDS,
    AnchorInput,
    AnchorRecord,
    FinishResult,
    Position,
    QrCodes,
    as_mapping,
    to_wire_keys,
    validate_anchor,
)
from chore_anchors.services.anchor_cache import AnchorCache, AnchorEventBus, AnchorListener
from chore_anchors.services.anchor_store import AnchorStore, Unsubscribe
from chore_anchors.services.history import ActionKind, HistoryAction, HistoryLedger
from chore_anchors.services.sync_client import AnchorSyncClient

logger = get_logger(__name__)

# Fields the manager assigns itself when an anchor is created
MINTED_FIELDS = ("id", "qrStartCode", "qrEndCode", "startedAt", "finishedAt", "completed", "history")


def now_ms() -> int:
    return int(time.time() * 1000)


class AnchorManager:
    def __init__(
        self,
        store: AnchorStore,
        *,
        clock: Callable[[], int] = now_ms,
        preserve_identity: bool = True,
        token_factory: Callable[[], str] = lambda: str(uuid4()),
    ):
        self.store = store
        self.events = AnchorEventBus()
        self._cache = AnchorCache(self.events)
        self.history = HistoryLedger()
        self.preserve_identity = preserve_identity
        self._clock = clock
        self._new_token = token_factory
        self._unsubscribe: Optional[Unsubscribe] = None

    # --- Listeners ---

    def add_listener(self, callback: AnchorListener) -> None:
        self.events.subscribe(callback)

    def remove_listener(self, callback: AnchorListener) -> None:
        self.events.unsubscribe(callback)

    @property
    def anchors(self) -> List[AnchorRecord]:
        """Snapshot of the cached anchors."""
        return self._cache.all()

    def get_anchor(self, anchor_id: str) -> Optional[AnchorRecord]:
        return self._cache.get(anchor_id)

    @staticmethod
    def validate_anchor(candidate: AnchorInput) -> Optional[AnchorValidationError]:
        return validate_anchor(candidate)

    # --- Remote feed ---

    async def listen_to_anchors(self) -> bool:
        """Mirror the remote collection into the cache until stop_listening()."""
        await self.stop_listening()
        try:
            self._unsubscribe = await self.store.subscribe_collection(self._on_snapshot)
        except AnchorStoreError as e:
            logger.error("Failed to listen to anchors: %s", e)
            return False
        return True

    async def stop_listening(self) -> None:
        unsubscribe, self._unsubscribe = self._unsubscribe, None
        if unsubscribe is not None:
            await unsubscribe()

    def _on_snapshot(self, records: List[AnchorRecord]) -> None:
        # Remote changes reconcile the cache but never enter the undo history
        self._cache.replace_all(records)

    async def load_anchors(self) -> List[AnchorRecord]:
        try:
            records = await self.store.get_all()
        except AnchorStoreError as e:
            logger.error("Failed to load anchors: %s", e)
            return []
        self._cache.replace_all(records)
        return self._cache.all()

    # --- Internal write paths (no validation) ---

    async def _current(self, anchor_id: str) -> Optional[AnchorRecord]:
        cached = self._cache.get(anchor_id)
        if cached is not None:
            return cached
        return await self.store.get(anchor_id)

    def _new_record(self, candidate: AnchorInput) -> AnchorRecord:
        data = to_wire_keys(as_mapping(candidate))
        for field in MINTED_FIELDS:
            data.pop(field, None)
        data.update(
            id=self._new_token(),
            qrStartCode=self._new_token(),
            qrEndCode=self._new_token(),
            minDurationSeconds=data.get("minDurationSeconds") or DEFAULT_MIN_DURATION_SECONDS,
            startedAt=None,
            finishedAt=None,
            completed=False,
            history=[],
        )
        return AnchorRecord.model_validate(data)

    async def _write(self, record: AnchorRecord, action: Optional[HistoryAction] = None) -> bool:
        try:
            await self.store.put(record.id, record)
        except AnchorStoreError as e:
            logger.error("Failed to write anchor %s: %s", record.id, e)
            return False
        if action is not None:
            self.history.record(action)
        self._cache.upsert(record)
        return True

    async def _erase(self, anchor_id: str, action: Optional[HistoryAction] = None) -> bool:
        try:
            await self.store.delete(anchor_id)
        except AnchorStoreError as e:
            logger.error("Failed to remove anchor %s: %s", anchor_id, e)
            return False
        if action is not None:
            self.history.record(action)
        self._cache.remove(anchor_id)
        return True

    async def _patch(self, anchor_id: str, fields: Dict[str, Any], operation: str) -> bool:
        try:
            await self.store.update(anchor_id, fields)
        except AnchorStoreError as e:
            logger.error("Failed to %s anchor %s: %s", operation, anchor_id, e)
            return False
        self._cache.patch(anchor_id, fields)
        return True

    async def _with_current_history(self, record: AnchorRecord) -> Optional[AnchorRecord]:
        """Copy of ``record`` carrying the history currently stored for it."""
        try:
            current = await self._current(record.id)
        except AnchorStoreError as e:
            logger.error("Failed to read anchor %s before replay: %s", record.id, e)
            return None
        if current is None:
            return record
        return record.model_copy(update={"history": current.history}, deep=True)

    async def _replay_update(self, action: HistoryAction, image: AnchorRecord) -> Optional[HistoryAction]:
        image = await self._with_current_history(image)
        if image is not None and await self._write(image):
            return action
        return None

    async def _restore(self, record: AnchorRecord) -> Optional[AnchorRecord]:
        if not self.preserve_identity:
            record = self._new_record(record)
        if await self._write(record):
            return record
        return None

    # --- Lifecycle operations ---

    async def add_anchor(self, candidate: AnchorInput) -> Optional[AnchorRecord]:
        error = validate_anchor(candidate)
        if error is not None:
            logger.warning("Rejected anchor: %s", error)
            return None
        try:
            record = self._new_record(candidate)
        except ValidationError as e:
            logger.warning("Rejected anchor: %s", e)
            return None
        if await self._write(record, HistoryAction.added(record)):
            return record
        return None

    async def update_anchor(self, candidate: AnchorInput) -> bool:
        """Replace an anchor. A mapping is merged onto the current record first."""
        changes = to_wire_keys(as_mapping(candidate))
        anchor_id = changes.get("id")
        if not anchor_id:
            logger.error("%s", MissingId("Anchor must have an id to update."))
            return False
        try:
            before = await self._current(anchor_id)
        except AnchorStoreError as e:
            logger.error("Failed to read anchor %s before update: %s", anchor_id, e)
            return False
        if before is None:
            logger.warning("Cannot update anchor %s: not found", anchor_id)
            return False

        # history is append-only: the stored entries win over the caller's copy
        merged = {**before.model_dump(by_alias=True), **changes, "history": before.history}
        error = validate_anchor(merged)
        if error is not None:
            logger.warning("Rejected update for anchor %s: %s", anchor_id, error)
            return False
        try:
            after = AnchorRecord.model_validate(merged)
        except ValidationError as e:
            logger.warning("Rejected update for anchor %s: %s", anchor_id, e)
            return False
        return await self._write(after, HistoryAction.updated(before, after))

    async def remove_anchor(self, anchor_id: str) -> bool:
        try:
            before = await self._current(anchor_id)
        except AnchorStoreError as e:
            logger.error("Failed to read anchor %s before removal: %s", anchor_id, e)
            return False
        if before is None:
            logger.warning("Cannot remove anchor %s: not found", anchor_id)
            return False
        return await self._erase(anchor_id, HistoryAction.removed(before))

    async def complete_anchor(self, anchor_id: str) -> bool:
        """Mark an anchor completed regardless of how long the chore took."""
        return await self._patch(anchor_id, {"completed": True}, "complete")

    async def assign_kid_to_anchor(self, anchor_id: str, kid_id: Optional[str]) -> bool:
        return await self._patch(anchor_id, {"assigned_kid_id": kid_id}, "assign kid to")

    async def start_chore(self, anchor_id: str) -> bool:
        # Starting again simply moves startedAt forward
        return await self._patch(anchor_id, {"started_at": self._clock()}, "start chore on")

    async def finish_chore(self, anchor_id: str) -> Optional[FinishResult]:
        """Stop the clock on a chore; it completes only if it ran long enough.

        The record is read from the store, not the cache, so a start made on
        another device is taken into account.
        """
        try:
            record = await self.store.get(anchor_id)
            if record is None:
                logger.warning("Cannot finish chore %s: not found", anchor_id)
                return None
            finished_at = self._clock()
            duration = (finished_at - record.started_at) / 1000 if record.started_at is not None else 0.0
            completed = duration >= record.min_duration_seconds
            fields = {"finished_at": finished_at, "completed": completed}
            await self.store.update(anchor_id, fields)
        except AnchorStoreError as e:
            logger.error("Failed to finish chore %s: %s", anchor_id, e)
            return None
        self._cache.patch(anchor_id, fields)
        return FinishResult(finished_at=finished_at, completed=completed, duration=duration)

    async def get_qr_codes(self, anchor_id: str) -> Optional[QrCodes]:
        try:
            record = await self.store.get(anchor_id)
        except AnchorStoreError as e:
            logger.error("Failed to get QR codes for %s: %s", anchor_id, e)
            return None
        if record is None:
            return None
        return QrCodes(start=record.qr_start_code, end=record.qr_end_code)

    async def add_history(self, anchor_id: str, entry: Mapping[str, Any]) -> bool:
        """Append a timestamped entry to an anchor's history."""
        try:
            record = await self.store.get(anchor_id)
            if record is None:
                logger.warning("Cannot add history to %s: not found", anchor_id)
                return False
            history = record.history + [{**entry, "timestamp": self._clock()}]
            await self.store.update(anchor_id, {"history": history})
        except AnchorStoreError as e:
            logger.error("Failed to add history to %s: %s", anchor_id, e)
            return False
        self._cache.patch(anchor_id, {"history": history})
        return True

    # --- Undo / redo ---

    async def _revert(self, action: HistoryAction) -> Optional[HistoryAction]:
        if action.kind is ActionKind.ADD:
            return action if await self._erase(action.record.id) else None
        if action.kind is ActionKind.REMOVE:
            restored = await self._restore(action.record)
            return HistoryAction.removed(restored) if restored else None
        return await self._replay_update(action, action.before)

    async def _reapply(self, action: HistoryAction) -> Optional[HistoryAction]:
        if action.kind is ActionKind.ADD:
            restored = await self._restore(action.record)
            return HistoryAction.added(restored) if restored else None
        if action.kind is ActionKind.REMOVE:
            return action if await self._erase(action.record.id) else None
        return await self._replay_update(action, action.after)

    async def undo(self) -> bool:
        return await self.history.undo(self._revert)

    async def redo(self) -> bool:
        return await self.history.redo(self._reapply)

    # --- Sync server ---

    async def sync_to_backend(self, client: AnchorSyncClient) -> bool:
        """Push the cached anchors to the sync server, loading them first if needed."""
        if not len(self._cache):
            await self.load_anchors()
        try:
            await client.replace_anchors(self._cache.all())
        except AnchorStoreError as e:
            logger.error("Failed to sync to backend: %s", e)
            return False
        return True

    async def load_from_backend(self, client: AnchorSyncClient) -> List[AnchorRecord]:
        """Copy the sync server's anchors into the store and the cache."""
        try:
            records = await client.fetch_anchors()
        except AnchorStoreError as e:
            logger.error("Failed to load from backend: %s", e)
            return []
        written: Dict[str, AnchorRecord] = {}
        try:
            for record in records:
                await self.store.put(record.id, record)
                written[record.id] = record
        except AnchorStoreError as e:
            # keep the cache in step with the writes that did land
            logger.error("Failed to load from backend after %d of %d anchors: %s",
                         len(written), len(records), e)
            if written:
                kept = [a for a in self._cache.all() if a.id not in written]
                self._cache.replace_all(kept + list(written.values()))
            return []
        self._cache.replace_all(records)
        return self._cache.all()

    async def clear_all_anchors(self) -> bool:
        try:
            records = await self.store.get_all()
        except AnchorStoreError as e:
            logger.error("Failed to clear all anchors: %s", e)
            return False
        deleted = set()
        try:
            for record in records:
                await self.store.delete(record.id)
                deleted.add(record.id)
        except AnchorStoreError as e:
            logger.error("Failed to clear all anchors after %d of %d: %s", len(deleted), len(records), e)
            if deleted:
                self._cache.replace_all([a for a in self._cache.all() if a.id not in deleted])
            return False
        self._cache.replace_all([])
        return True

    # --- Queries ---

    def find_nearest_anchor(
        self,
        position: Union[Position, Mapping[str, float]],
        max_distance: float = 1.0,
    ) -> Optional[AnchorRecord]:
        if not isinstance(position, Position):
            position = Position.model_validate(position)
        target = (position.x, position.y, position.z)
        nearest = None
        min_dist = math.inf
        for anchor in self._cache.all():
            dist = math.dist((anchor.position.x, anchor.position.y, anchor.position.z), target)
            if dist < min_dist and dist <= max_distance:
                min_dist = dist
                nearest = anchor
        return nearest

    def get_anchors_for_kid(self, kid_id: str) -> List[AnchorRecord]:
        return [anchor for anchor in self._cache.all() if anchor.assigned_kid_id == kid_id]
