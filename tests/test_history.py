"""HistoryLedger stack discipline, independent of any store."""

from anchor_helpers import make_record
from chore_anchors.services.history import ActionKind, HistoryAction, HistoryLedger


async def _accept(action):
    return action


async def _refuse(action):
    return None


class TestHistoryLedger:

    async def test_empty_ledger(self):
        ledger = HistoryLedger()
        assert await ledger.undo(_accept) is False
        assert await ledger.redo(_accept) is False

    async def test_undo_moves_action_to_redo(self):
        ledger = HistoryLedger()
        action = HistoryAction.added(make_record())
        ledger.record(action)

        assert await ledger.undo(_accept) is True
        assert ledger.undoable == []
        assert ledger.redoable == [action]

        assert await ledger.redo(_accept) is True
        assert ledger.undoable == [action]
        assert ledger.redoable == []

    async def test_record_clears_redo(self):
        ledger = HistoryLedger()
        ledger.record(HistoryAction.added(make_record("a1")))
        await ledger.undo(_accept)
        assert ledger.can_redo()

        ledger.record(HistoryAction.added(make_record("a2")))
        assert not ledger.can_redo()
        assert await ledger.redo(_accept) is False

    async def test_failed_replay_keeps_action_in_place(self):
        ledger = HistoryLedger()
        action = HistoryAction.removed(make_record())
        ledger.record(action)

        assert await ledger.undo(_refuse) is False
        assert ledger.undoable == [action]
        assert ledger.redoable == []

    async def test_replay_can_rewrite_action(self):
        ledger = HistoryLedger()
        ledger.record(HistoryAction.removed(make_record("old")))

        async def reidentify(action):
            return HistoryAction.removed(make_record("new"))

        await ledger.undo(reidentify)
        assert ledger.redoable[0].record.id == "new"


class TestHistoryAction:

    def test_snapshots_are_independent_copies(self):
        record = make_record()
        action = HistoryAction.updated(record, record)
        record.history.append({"event": "later"})
        assert action.before.history == []
        assert action.after.history == []
        assert action.kind is ActionKind.UPDATE

    def test_record_property(self):
        added = HistoryAction.added(make_record("a"))
        removed = HistoryAction.removed(make_record("r"))
        assert added.record.id == "a"
        assert removed.record.id == "r"
