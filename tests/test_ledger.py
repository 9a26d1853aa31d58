"""Tests for the attendance ledger."""

import threading
from datetime import timedelta

from attendance.ledger import AttendanceLedger

from conftest import T0


class TestAttendanceLedger:
    def test_first_write_wins(self):
        ledger = AttendanceLedger()
        first = ledger.record_if_absent("S1", "Alice", T0)
        second = ledger.record_if_absent("S1", "Alice (renamed)", T0 + timedelta(minutes=5))

        assert first.inserted is True
        assert second.inserted is False
        assert second.record == first.record
        assert ledger.get("S1").checkin_time == T0
        assert ledger.get("S1").display_name == "Alice"
        assert ledger.count() == 1

    def test_list_keeps_first_seen_order(self):
        ledger = AttendanceLedger()
        ledger.record_if_absent("S2", "Bob", T0)
        ledger.record_if_absent("S1", "Alice", T0 + timedelta(seconds=1))
        ledger.record_if_absent("S2", "Bob", T0 + timedelta(seconds=2))

        assert [r.identity_id for r in ledger.list()] == ["S2", "S1"]
        assert "S1" in ledger
        assert "S3" not in ledger
        assert len(ledger) == 2

    def test_list_is_a_snapshot(self):
        ledger = AttendanceLedger()
        ledger.record_if_absent("S1", "Alice", T0)
        snapshot = ledger.list()
        ledger.record_if_absent("S2", "Bob", T0)
        assert len(snapshot) == 1

    def test_concurrent_writers_insert_once(self):
        ledger = AttendanceLedger()
        results = []
        lock = threading.Lock()

        def worker(i):
            r = ledger.record_if_absent("S1", "Alice", T0 + timedelta(seconds=i))
            with lock:
                results.append(r.inserted)

        threads = [threading.Thread(target=worker, args=(i,)) for i in range(16)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert results.count(True) == 1
        assert ledger.count() == 1

    def test_to_row(self):
        ledger = AttendanceLedger()
        record = ledger.record_if_absent("S1", "Alice", T0).record
        assert record.to_row() == {
            "student_id": "S1",
            "full_name": "Alice",
            "checkin_time": "2024-03-04T09:00:00+00:00",
        }
