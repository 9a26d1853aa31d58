"""Tests for nearest-neighbour matching."""

import math

import numpy as np
import pytest

from attendance.errors import InvalidThresholdError, UsageError
from attendance.matcher import distances, euclidean_distance, match, nearest, validate_threshold
from attendance.roster import Roster, RosterEntry, as_embedding


def entry(identity_id, values, name=None):
    return RosterEntry(identity_id, name or identity_id, as_embedding(values))


@pytest.fixture
def roster():
    # distances from the origin probe: 0.9, 0.3, 0.5
    return Roster([entry("A", [0.9, 0.0]), entry("B", [0.3, 0.0]), entry("C", [0.0, 0.5])])


class TestDistance:
    def test_euclidean(self):
        assert euclidean_distance(as_embedding([0, 0]), as_embedding([3, 4])) == pytest.approx(5.0)

    def test_shape_mismatch(self):
        with pytest.raises(ValueError):
            euclidean_distance(as_embedding([0, 0]), as_embedding([0, 0, 0]))

    def test_nearest_uses_the_same_distance(self, roster):
        probe = as_embedding([0.1, 0.2])
        m = nearest(probe, roster)
        assert m.distance == euclidean_distance(probe, m.entry.embedding)
        np.testing.assert_allclose(
            distances(probe, roster.matrix),
            [euclidean_distance(probe, e.embedding) for e in roster],
        )


class TestMatch:
    def test_nearest_wins(self, roster):
        m = match([0.0, 0.0], roster, 0.6)
        assert m is not None
        assert m.entry.identity_id == "B"
        assert m.distance == pytest.approx(0.3)

    def test_no_match_above_threshold(self, roster):
        assert match([0.0, 0.0], roster, 0.2) is None
        # nearest still reports the closest entry
        assert nearest([0.0, 0.0], roster).entry.identity_id == "B"

    def test_empty_roster(self):
        assert match([0.0, 0.0], Roster(), 10.0) is None
        assert nearest([0.0, 0.0], Roster()) is None

    def test_threshold_is_inclusive(self, roster):
        d = nearest([0.0, 0.0], roster).distance
        assert match([0.0, 0.0], roster, d) is not None
        assert match([0.0, 0.0], roster, np.nextafter(d, -math.inf)) is None

    def test_tie_goes_to_first_entry(self):
        tied = Roster([entry("first", [1.0, 0.0]), entry("second", [0.0, 1.0])])
        m = match([0.0, 0.0], tied, 2.0)
        assert m.entry.identity_id == "first"

    def test_dimension_mismatch_is_no_match(self, roster):
        assert match([0.0, 0.0, 0.0], roster, 100.0) is None

    def test_exact_match_distance_zero(self, roster):
        m = match([0.3, 0.0], roster, 0.0)
        assert m.entry.identity_id == "B"
        assert m.distance == 0.0


class TestThreshold:
    @pytest.mark.parametrize("value", [0, 0.6, "0.4", 3])
    def test_valid(self, value):
        assert validate_threshold(value) == float(value)

    @pytest.mark.parametrize("value", [-0.1, float("nan"), float("inf"), "abc", None])
    def test_invalid(self, value):
        with pytest.raises(InvalidThresholdError):
            validate_threshold(value)

    def test_invalid_threshold_is_a_usage_error(self):
        assert issubclass(InvalidThresholdError, UsageError)
