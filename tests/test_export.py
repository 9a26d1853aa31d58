"""Tests for the CSV export."""

from datetime import timedelta

from attendance.export import export_csv
from attendance.ledger import AttendanceRecord

from conftest import T0


class TestExportCsv:
    def test_header_only_when_empty(self):
        assert export_csv([]) == b"student_id,full_name,checkin_time"

    def test_rows_in_order_without_trailing_newline(self):
        records = [
            AttendanceRecord("S1", "Alice", T0),
            AttendanceRecord("S2", "Bob", T0 + timedelta(seconds=30)),
        ]

        text = export_csv(records).decode("utf-8")

        assert text.split("\n") == [
            "student_id,full_name,checkin_time",
            "S1,Alice,2024-03-04T09:00:00+00:00",
            "S2,Bob,2024-03-04T09:00:30+00:00",
        ]
        assert not text.endswith("\n")

    def test_names_with_commas_are_quoted(self):
        text = export_csv([AttendanceRecord("S1", "Doe, Jane", T0)]).decode("utf-8")
        assert text.splitlines()[1] == 'S1,"Doe, Jane",2024-03-04T09:00:00+00:00'

    def test_utf8(self):
        data = export_csv([AttendanceRecord("S1", "Lê Thị Hoa", T0)])
        assert "Lê Thị Hoa" in data.decode("utf-8")
