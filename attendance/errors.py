# attendance/errors.py
from __future__ import annotations


class AttendanceError(RuntimeError):
    pass


class SetupError(AttendanceError):
    """Camera, models or backend could not be prepared. Fatal to session start."""


class UsageError(AttendanceError):
    """Operation rejected in the current state. Nothing was changed."""


class RosterSourceError(AttendanceError):
    """The roster table itself could not be read (not a single bad row)."""


class InvalidThresholdError(UsageError):
    pass
