"""Tests for the in-memory result store and message log."""

import pytest

from fire_enrich.models import MessageType, RowStatus
from fire_enrich.storage.interfaces import ChangeKind
from fire_enrich.storage.memory import MESSAGE_LOG_CAP, InMemoryMessageLog, InMemoryResultStore

from tests.conftest import make_message, make_result


class TestResultStore:
    def test_only_first_pending_creates_entry(self, store):
        assert store.upsert_pending(0, {"email": "a@acme.com"}) is True
        assert store.upsert_pending(0, {"email": "other@acme.com"}) is False
        assert store.upsert_pending(0, {}) is False

        assert store.count() == 1
        assert store.get(0).original_data == {"email": "a@acme.com"}

    def test_replace_clears_missing_fields(self, store):
        store.replace(make_result(0, companyName="Acme", isB2B=True))
        store.replace(make_result(0, status=RowStatus.ERROR, error="timeout"))

        result = store.get(0)
        assert result.enrichments == {}
        assert result.status == RowStatus.ERROR
        assert result.error == "timeout"

    def test_set_processing_without_entry_is_noop(self, store):
        assert store.set_processing(3) is False
        assert store.get(3) is None
        assert store.count() == 0

    def test_set_processing_keeps_fields(self, store):
        store.replace(make_result(0, status=RowStatus.PENDING, companyName="Acme"))

        assert store.set_processing(0) is True

        assert store.get(0).status == RowStatus.PROCESSING
        assert store.get(0).enrichments["companyName"].value == "Acme"

    def test_all_preserves_insertion_order(self, store):
        store.upsert_pending(2, {})
        store.upsert_pending(0, {})
        store.replace(make_result(1))
        store.replace(make_result(2))

        assert [r.row_index for r in store.all()] == [2, 0, 1]

    def test_count_by_status(self, store):
        store.upsert_pending(0, {})
        store.upsert_pending(1, {})
        store.replace(make_result(2, status=RowStatus.SKIPPED))

        assert store.count_by_status(RowStatus.PENDING) == 2
        assert store.count_by_status(RowStatus.SKIPPED) == 1
        assert store.count_by_status(RowStatus.COMPLETED) == 0

    def test_reset(self, store):
        store.replace(make_result(0))
        store.reset()

        assert store.count() == 0
        assert store.all() == []

    def test_all_is_a_snapshot(self, store):
        store.replace(make_result(0, companyName="Acme"))
        snapshot = store.all()

        store.replace(make_result(0, companyName="Globex"))

        assert snapshot[0].enrichments["companyName"].value == "Acme"

    def test_subscribers_see_applied_changes(self, store):
        seen = []

        def listener(change):
            seen.append((change.kind, change.row_index, store.get(change.row_index) if change.row_index is not None else None))

        unsubscribe = store.subscribe(listener)
        store.upsert_pending(0, {})
        store.upsert_pending(0, {})
        store.set_processing(0)
        store.set_processing(9)
        store.replace(make_result(0))
        store.reset()
        unsubscribe()
        store.upsert_pending(1, {})

        assert [(kind, row) for kind, row, _ in seen] == [
            (ChangeKind.PENDING, 0),
            (ChangeKind.PROCESSING, 0),
            (ChangeKind.REPLACE, 0),
            (ChangeKind.RESET, None),
        ]
        assert seen[1][2].status == RowStatus.PROCESSING
        assert seen[2][2].status == RowStatus.COMPLETED


class TestMessageLog:
    def test_cap_evicts_oldest_first(self, log):
        for n in range(MESSAGE_LOG_CAP + 25):
            log.append(make_message(f"m{n}"))

        messages = log.messages()
        assert len(log) == MESSAGE_LOG_CAP
        assert messages[0].message == "m25"
        assert messages[-1].message == f"m{MESSAGE_LOG_CAP + 24}"

    def test_append_once_is_idempotent(self, log):
        notice = make_message("All enrichment tasks completed successfully", MessageType.SUCCESS)

        assert log.append_once(notice) is True
        assert log.append_once(notice.model_copy(update={"id": "other"})) is False

        assert len(log) == 1

    def test_append_once_respects_cap(self):
        log = InMemoryMessageLog(cap=3)
        for n in range(5):
            log.append_once(make_message(f"m{n}"))

        assert [m.message for m in log.messages()] == ["m2", "m3", "m4"]

    def test_conversation_history_filters_and_limits(self, log):
        log.append(make_message("q1", MessageType.USER))
        log.append(make_message("working", MessageType.INFO))
        log.append(make_message("a1", MessageType.ASSISTANT))
        log.append(make_message("oops", MessageType.WARNING))
        log.append(make_message("q2", MessageType.USER))

        assert log.conversation_history(limit=2) == [
            {"role": "assistant", "content": "a1"},
            {"role": "user", "content": "q2"},
        ]
        assert len(log.conversation_history()) == 3
        assert log.conversation_history(limit=0) == []

    def test_clear(self, log):
        log.append(make_message("x"))
        log.clear()

        assert len(log) == 0

    def test_cap_must_be_positive(self):
        with pytest.raises(ValueError):
            InMemoryMessageLog(cap=0)
