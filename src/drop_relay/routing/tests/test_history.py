"""Tests for SubmissionHistory."""
from drop_relay.core import EventCategory
from drop_relay.routing import SubmissionHistory, SubmissionIntent, SubmissionRecord


def make_record(token, value=0):
    return SubmissionRecord(
        token=token, category=EventCategory.DROP, subject="Vorkath", group_ids=("1",), value=value
    )


class TestEviction:
    def test_bounded(self):
        history = SubmissionHistory(max_entries=3)
        for i in range(5):
            history.add(make_record(f"t{i}"))

        assert [r.token for r in history.records()] == ["t2", "t3", "t4"]

    def test_processed_evicted_first(self):
        history = SubmissionHistory(max_entries=3)
        records = [make_record(f"t{i}") for i in range(3)]
        for record in records:
            history.add(record)
        records[1].mark_processed()

        history.add(make_record("t3"))

        assert [r.token for r in history.records()] == ["t0", "t2", "t3"]

    def test_default_size(self):
        assert SubmissionHistory().max_entries == 50


class TestLookup:
    def test_get_and_remove(self):
        history = SubmissionHistory()
        record = make_record("abc")
        history.add(record)

        assert history.get("abc") is record
        assert history.get("missing") is None
        assert history.remove(record)
        assert not history.remove(record)
        assert len(history) == 0

    def test_mark_processed(self):
        history = SubmissionHistory()
        history.add(make_record("abc"))

        assert history.mark_processed("abc")
        assert not history.mark_processed("missing")
        assert history.active() == []


class TestStats:
    def test_session_stats(self):
        history = SubmissionHistory()
        sent, processed, failed, pending = (make_record(t) for t in ("a", "b", "c", "d"))
        for record in (sent, processed, failed, pending):
            history.add(record)
        sent.mark_sent()
        processed.mark_processed()
        failed.mark_failed("HTTP 401")
        history.add_value(5_000)
        history.add_value(1_000)

        stats = history.stats()
        assert stats.total_submissions == 4
        assert stats.notifications_sent == 2
        assert stats.failed_submissions == 1
        assert stats.total_value == 6_000
        assert stats.to_dict()["total_value"] == 6_000

    def test_from_intent(self, make_drop):
        event = make_drop(value=7_500)
        record = SubmissionRecord.from_intent(SubmissionIntent(event, ("1", "2")))

        assert record.token == event.token
        assert record.value == 7_500
        assert record.group_ids == ("1", "2")
