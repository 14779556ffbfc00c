"""
Tests for the in-memory record store.
"""

import threading

import pytest

from resumeparser.models import (
    FileDescriptor,
    Group,
    ProgressEvent,
    ResumeRecord,
    ResumeStatus,
    UploadStatus,
    UploadedFile,
)
from resumeparser.normalize import PDF
from resumeparser.store import FILTERS, GROUPS, RESUMES, SESSION, RecordStore


def _uploading(store, record_id="r1", name="a.pdf"):
    store.add_resume(ResumeRecord(id=record_id, file_name=name, file_size=10, progress=0))
    return record_id


def _add_ok(store, record_id):
    return store.add_resume(ResumeRecord(id=record_id, file_name="x.pdf", file_size=1))


class TestGroups:
    """Test group operations."""

    def test_bootstrap_groups(self, store):
        """A new store carries the four default groups."""
        assert [g.name for g in store.groups] == ["AI", "SDM1", "SDM", "OK"]
        assert store.selected_group is None

    def test_add_and_duplicate(self, store):
        assert store.add_group(Group(id="9", name="Data"))
        assert not store.add_group(Group(id="9", name="Other"))
        assert store.get_group("9").name == "Data"

    def test_update_ignores_id(self, store):
        """Only mutable fields change."""
        assert store.update_group("1", name="ML", id="x")
        assert store.get_group("1").name == "ML"
        assert store.get_group("x") is None

    def test_update_unknown_is_noop(self, store):
        assert not store.update_group("nope", name="x")

    def test_delete_clears_references(self, store):
        """Deleting a group clears it from records, selection and filter."""
        store.add_resume(ResumeRecord(id="r1", file_name="a.pdf", file_size=1, group_id="1"))
        store.add_resume(ResumeRecord(id="r2", file_name="b.pdf", file_size=1, group_id="2"))
        store.select_group("1")
        store.set_group_filter("1")

        assert store.delete_group("1")

        assert store.get_group("1") is None
        assert store.get_resume("r1").group_id is None
        assert store.get_resume("r2").group_id == "2"
        assert store.selected_group is None
        assert store.filters.group_id is None

    def test_delete_unknown_is_noop(self, store):
        assert not store.delete_group("nope")
        assert len(store.groups) == 4

    def test_select_unknown_rejected(self, store):
        assert not store.select_group("nope")
        assert store.select_group("2")
        assert store.selected_group.name == "SDM1"

    def test_recount(self, store):
        store.add_resume(ResumeRecord(id="r1", file_name="a.pdf", file_size=1, group_id="1"))
        store.add_resume(ResumeRecord(id="r2", file_name="b.pdf", file_size=1, group_id="1"))
        counts = store.recount_groups()
        assert counts["1"] == 2
        assert store.get_group("1").resume_count == 2
        assert store.get_group("4").resume_count == 0

    def test_reads_are_copies(self, store):
        """Mutating a returned group does not touch the store."""
        store.groups[0].name = "changed"
        assert store.get_group("1").name == "AI"


class TestResumeStatus:
    """Test the status transition table."""

    def test_uploading_to_completed(self, store):
        rid = _uploading(store)
        store.set_progress(rid, 40)
        assert store.set_status(rid, ResumeStatus.COMPLETED)
        record = store.get_resume(rid)
        assert record.status == ResumeStatus.COMPLETED
        assert record.progress is None

    def test_uploading_to_error_keeps_message(self, store):
        rid = _uploading(store)
        assert store.set_status(rid, "error", error="Network error")
        record = store.get_resume(rid)
        assert record.status == ResumeStatus.ERROR
        assert record.error == "Network error"
        assert record.progress is None

    def test_error_to_completed_rejected(self, store):
        """A failed record only leaves error through a retry."""
        rid = _uploading(store)
        store.set_status(rid, ResumeStatus.ERROR, error="boom")
        assert not store.set_status(rid, ResumeStatus.COMPLETED)
        assert store.get_resume(rid).status == ResumeStatus.ERROR

    def test_retry_resets_progress_and_error(self, store):
        rid = _uploading(store)
        store.set_status(rid, ResumeStatus.ERROR, error="boom")
        assert store.set_status(rid, ResumeStatus.UPLOADING)
        record = store.get_resume(rid)
        assert record.progress == 0
        assert record.error is None

    def test_completed_is_terminal(self, store):
        rid = _uploading(store)
        store.set_status(rid, ResumeStatus.COMPLETED)
        for target in (ResumeStatus.UPLOADING, ResumeStatus.PROCESSING, ResumeStatus.ERROR):
            assert not store.set_status(rid, target)
        assert store.get_resume(rid).status == ResumeStatus.COMPLETED

    def test_same_status_is_noop(self, store):
        rid = _uploading(store)
        store.set_progress(rid, 30)
        assert store.set_status(rid, ResumeStatus.UPLOADING)
        assert store.get_resume(rid).progress == 30

    def test_invalid_status_value(self, store):
        """Garbage status strings are rejected, not raised."""
        rid = _uploading(store)
        assert not store.set_status(rid, "exploded")
        assert store.get_resume(rid).status == ResumeStatus.UPLOADING

    def test_update_with_illegal_transition_dropped(self, store):
        """The whole update is discarded, not just the status."""
        rid = _uploading(store)
        store.set_status(rid, ResumeStatus.COMPLETED)
        assert not store.update_resume(rid, status=ResumeStatus.ERROR, group_id="3")
        assert store.get_resume(rid).group_id is None

    def test_update_cannot_change_id(self, store):
        rid = _uploading(store)
        assert store.update_resume(rid, id="other", group_id="2")
        assert store.get_resume(rid).group_id == "2"
        assert store.get_resume("other") is None

    def test_unknown_id_is_noop(self, store):
        assert not store.set_status("missing", ResumeStatus.COMPLETED)
        assert not store.update_resume("missing", group_id="1")
        assert not store.delete_resume("missing")
        assert not store.set_progress("missing", 10)


class TestProgress:
    """Test progress clamping and monotonicity."""

    def test_never_decreases(self, store):
        rid = _uploading(store)
        assert store.set_progress(rid, 60)
        assert not store.set_progress(rid, 40)
        assert store.get_resume(rid).progress == 60

    def test_clamped(self, store):
        rid = _uploading(store)
        store.set_progress(rid, 250)
        assert store.get_resume(rid).progress == 100

    def test_ignored_after_terminal(self, store):
        rid = _uploading(store)
        store.set_status(rid, ResumeStatus.COMPLETED)
        assert not store.set_progress(rid, 50)
        assert store.get_resume(rid).progress is None

    def test_apply_progress_updates_both(self, store):
        rid = _uploading(store)
        store.apply_progress(ProgressEvent("a.pdf", 35, rid))
        assert store.session.progress["a.pdf"] == 35
        assert store.get_resume(rid).progress == 35

    def test_concurrent_reports_stay_monotonic(self, store):
        """Out-of-order reports from many threads leave the maximum."""
        rid = _uploading(store)

        def report(values):
            for v in values:
                store.apply_progress(ProgressEvent("a.pdf", v, rid))

        threads = [
            threading.Thread(target=report, args=(range(start, 101, 4),))
            for start in range(4)
        ]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert store.get_resume(rid).progress == 100
        assert store.session.progress["a.pdf"] == 100


class TestSession:
    """Test upload session operations."""

    def test_add_pending_skips_duplicates(self, store):
        f = FileDescriptor(name="a.pdf", size=1, content_type=PDF)
        assert store.add_pending([f, f]) == [f]
        assert store.add_pending([f]) == []
        assert len(store.session.pending) == 1

    def test_clear_pending_clears_maps(self, store):
        store.add_pending([FileDescriptor(name="a.pdf", size=1, content_type=PDF)])
        store.set_upload_progress("a.pdf", 50)
        store.set_upload_error("a.pdf", "boom")
        store.clear_pending()
        session = store.session
        assert session.pending == []
        assert session.progress == {}
        assert session.errors == {}

    def test_remove_pending(self, store):
        store.add_pending([
            FileDescriptor(name="a.pdf", size=1, content_type=PDF),
            FileDescriptor(name="b.pdf", size=1, content_type=PDF),
        ])
        store.set_upload_error("a.pdf", "boom")
        assert store.remove_pending("a.pdf")
        assert [f.name for f in store.session.pending] == ["b.pdf"]
        assert "a.pdf" not in store.session.errors
        assert not store.remove_pending("a.pdf")

    def test_clear_completed_resets_status(self, store):
        store.add_completed([UploadedFile(id="1", name="a.pdf", size=1)])
        store.set_session_status(UploadStatus.SUCCESS)
        store.clear_completed()
        assert store.session.completed == []
        assert store.session.status == UploadStatus.IDLE

    def test_session_progress_monotonic(self, store):
        store.set_upload_progress("a.pdf", 70)
        assert not store.set_upload_progress("a.pdf", 20)
        assert store.session.progress["a.pdf"] == 70

    def test_update_session_bad_status_ignored(self, store):
        store.update_session(status="weird", is_uploading=True)
        session = store.session
        assert session.status == UploadStatus.IDLE
        assert session.is_uploading

    def test_update_session_dedupes_pending(self, store):
        """A file appears at most once in the pending selection, however it is set."""
        a = FileDescriptor(name="a.pdf", size=1, content_type=PDF)
        b = FileDescriptor(name="a.pdf", size=2, content_type=PDF)
        store.update_session(pending=[a, a, b, a])
        assert [f.key for f in store.session.pending] == [("a.pdf", 1), ("a.pdf", 2)]


class TestFiltersAndListeners:
    """Test search state and change notification."""

    def test_status_filter_coerces(self, store):
        store.set_status_filter(["completed", ResumeStatus.ERROR, "bogus"])
        assert store.filters.statuses == frozenset({ResumeStatus.COMPLETED, ResumeStatus.ERROR})

    def test_clear_filters_clears_query(self, store):
        store.set_query("jane")
        store.set_group_filter("1")
        store.clear_filters()
        assert store.filters.query == ""
        assert store.filters.group_id is None

    def test_listeners_get_topics(self, store):
        topics = []
        unsubscribe = store.subscribe(topics.append)
        store.add_group(Group(id="9", name="x"))
        _uploading(store)
        store.clear_pending()
        store.set_query("a")
        unsubscribe()
        store.set_query("b")
        assert topics == [GROUPS, RESUMES, SESSION, FILTERS]

    def test_listener_can_read_store(self, store):
        """Listeners run outside the lock."""
        seen = []
        store.subscribe(lambda topic: seen.append(len(store.resumes)))
        _uploading(store)
        assert seen == [1]


class TestIdsAndReset:
    """Test id allocation and reset."""

    def test_ids_unique(self, store):
        ids = {store.new_resume_id() for _ in range(50)}
        assert len(ids) == 50

    def test_reset_keeps_ids_retired(self, store):
        first = store.new_resume_id()
        _uploading(store)
        store.delete_group("1")
        store.reset()
        assert store.resumes == []
        assert len(store.groups) == 4
        assert store.new_resume_id() != first

    def test_custom_initial_groups(self):
        s = RecordStore(groups=[Group(id="g", name="Only")])
        s.add_group(Group(id="h", name="Extra"))
        s.reset()
        assert [g.id for g in s.groups] == ["g"]

    def test_add_resume_duplicate_id(self, store):
        _uploading(store)
        assert not store.add_resume(ResumeRecord(id="r1", file_name="x.pdf", file_size=1))

    def test_mutating_input_after_add(self, store):
        """The store keeps its own copy."""
        record = ResumeRecord(id="r1", file_name="a.pdf", file_size=1)
        store.add_resume(record)
        record.file_name = "changed.pdf"
        assert store.get_resume("r1").file_name == "a.pdf"

    def test_deleted_id_not_reused(self, store):
        rid = store.new_resume_id()
        assert store.add_resume(ResumeRecord(id=rid, file_name="a.pdf", file_size=1))
        assert store.delete_resume(rid)
        assert not store.add_resume(ResumeRecord(id=rid, file_name="b.pdf", file_size=2))
        assert store.get_resume(rid) is None

    def test_ids_dropped_by_set_resumes_are_retired(self, store, sample_records):
        store.set_resumes(sample_records)
        store.set_resumes(sample_records[:1])
        assert not store.add_resume(sample_records[1])
        store.set_resumes(sample_records)
        assert [r.id for r in store.resumes] == ["r1"]

    def test_reset_retires_existing_records(self, store):
        _uploading(store)
        store.reset()
        assert not _add_ok(store, "r1")


class TestInsertedProgress:
    """Progress is present only while a record is uploading or processing."""

    @pytest.mark.parametrize("status", [ResumeStatus.COMPLETED, ResumeStatus.ERROR])
    def test_cleared_for_settled_records(self, store, status):
        store.add_resume(ResumeRecord(id="r1", file_name="a.pdf", file_size=1, status=status, progress=50))
        assert store.get_resume("r1").progress is None

    @pytest.mark.parametrize("status", [ResumeStatus.UPLOADING, ResumeStatus.PROCESSING])
    def test_defaults_to_zero_in_flight(self, store, status):
        store.add_resume(ResumeRecord(id="r1", file_name="a.pdf", file_size=1, status=status))
        assert store.get_resume("r1").progress == 0

    def test_set_resumes_settles_and_clamps(self, store):
        store.set_resumes([
            ResumeRecord(id="r1", file_name="a.pdf", file_size=1, status=ResumeStatus.COMPLETED, progress=50),
            ResumeRecord(id="r2", file_name="b.pdf", file_size=1, status=ResumeStatus.UPLOADING, progress=250),
        ])
        assert store.get_resume("r1").progress is None
        assert store.get_resume("r2").progress == 100


@pytest.mark.parametrize("status", list(ResumeStatus))
def test_transition_table_matches_store(status):
    """The store accepts exactly the transitions the enum allows."""
    for target in ResumeStatus:
        if target == status:
            continue
        fresh = RecordStore()
        fresh.add_resume(ResumeRecord(id="r", file_name="a.pdf", file_size=1, status=status))
        assert fresh.set_status("r", target) == status.can_transition_to(target)
