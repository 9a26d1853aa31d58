# attendance/export.py
from __future__ import annotations

from typing import Iterable

import pandas as pd

from attendance.ledger import AttendanceRecord

COLUMNS = ["student_id", "full_name", "checkin_time"]
EXPORT_FILENAME = "attendance.csv"


def export_csv(records: Iterable[AttendanceRecord]) -> bytes:
    """
    Serialize attendance records as CSV: one header row, one row per record,
    rows joined by real line breaks (no trailing break).
    """
    df = pd.DataFrame([r.to_row() for r in records], columns=COLUMNS)
    text = df.to_csv(index=False, lineterminator="\n")
    return text.rstrip("\n").encode("utf-8")
