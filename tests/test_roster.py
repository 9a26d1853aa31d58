"""Tests for roster construction and loading."""

import numpy as np
import pytest

from attendance.errors import RosterSourceError
from attendance.roster import Roster, RosterEntry, RosterRecord, as_embedding, load_roster
from attendance.roster_source import StaticRosterSource, SupabaseRosterSource

from conftest import E1, E2, FakeClient, FakeDetector, FakeQuery, FakeResponse, run


class TestEmbedding:
    def test_pgvector_string(self):
        emb = as_embedding("[0.1, 0.2,0.3]")
        assert emb.tolist() == pytest.approx([0.1, 0.2, 0.3])

    def test_read_only(self):
        emb = as_embedding([1.0, 2.0])
        with pytest.raises(ValueError):
            emb[0] = 5.0

    @pytest.mark.parametrize("bad", [[], [1.0, float("nan")], "[]"])
    def test_rejects_empty_or_non_finite(self, bad):
        with pytest.raises(ValueError):
            as_embedding(bad)


class TestRoster:
    def test_duplicate_ids_rejected(self):
        with pytest.raises(ValueError):
            Roster([RosterEntry("S1", "A", as_embedding(E1)), RosterEntry("S1", "B", as_embedding(E2))])

    def test_mixed_dimensions_rejected(self):
        with pytest.raises(ValueError):
            Roster([RosterEntry("S1", "A", as_embedding([0.0])), RosterEntry("S2", "B", as_embedding([0.0, 1.0]))])

    def test_lookup_and_matrix(self):
        roster = Roster([RosterEntry("S1", "A", as_embedding(E1)), RosterEntry("S2", "B", as_embedding(E2))])
        assert "S2" in roster
        assert roster.get("S1").display_name == "A"
        assert roster.identity_ids == ["S1", "S2"]
        assert roster.dimension == 4
        assert roster.matrix.shape == (2, 4)
        np.testing.assert_array_equal(roster.matrix[1], E2)

    def test_empty(self):
        roster = Roster()
        assert len(roster) == 0
        assert roster.dimension is None


class TestLoadRoster:
    def test_skips_bad_records_without_aborting(self):
        detector = FakeDetector(
            photos={
                "alice.jpg": E1,
                "nobody.jpg": None,
                "broken.jpg": IOError("404"),
                "carol.jpg": E2,
            }
        )
        records = [
            RosterRecord("S1", "Alice", "alice.jpg"),
            RosterRecord("S2", "Nobody", "nobody.jpg"),
            RosterRecord("S3", "Broken", "broken.jpg"),
            RosterRecord("S4", "Carol", "carol.jpg"),
            RosterRecord("S5", "Empty", ""),
        ]

        result = run(load_roster(records, detector))

        assert result.roster.identity_ids == ["S1", "S4"]
        assert result.loaded == 2
        assert [s.identity_id for s in result.skipped] == ["S2", "S3", "S5"]
        assert result.skipped[0].reason == "no face detected"

    def test_repeated_id_last_wins_first_position(self):
        detector = FakeDetector(photos={"a1.jpg": E1, "b.jpg": E2, "a2.jpg": [0.5, 0.5, 0.5, 0.5]})
        records = [
            RosterRecord("S1", "Alice", "a1.jpg"),
            RosterRecord("S2", "Bob", "b.jpg"),
            RosterRecord("S1", "Alice v2", "a2.jpg"),
        ]

        roster = run(load_roster(records, detector)).roster

        assert roster.identity_ids == ["S1", "S2"]
        assert roster.get("S1").display_name == "Alice v2"

    def test_mixed_dimensions_keep_first(self):
        detector = FakeDetector(photos={"a.jpg": E1, "b.jpg": [0.0, 1.0], "c.jpg": E2})
        records = [
            RosterRecord("S1", "A", "a.jpg"),
            RosterRecord("S2", "B", "b.jpg"),
            RosterRecord("S3", "C", "c.jpg"),
        ]

        result = run(load_roster(records, detector))

        assert result.roster.identity_ids == ["S1", "S3"]
        assert [(s.identity_id, s.reason) for s in result.skipped] == [("S2", "embedding dimension mismatch")]

    def test_empty_source(self):
        result = run(load_roster([], FakeDetector()))
        assert len(result.roster) == 0
        assert result.skipped == []


class TestRosterSources:
    def test_static_source_returns_copy(self, roster_records):
        source = StaticRosterSource(roster_records)
        fetched = source.fetch()
        fetched.clear()
        assert len(source.fetch()) == 2

    def test_supabase_rows(self):
        query = FakeQuery(
            FakeResponse(
                data=[
                    {"student_id": 7, "full_name": "Alice", "image_url": " https://x/a.jpg "},
                    {"student_id": None, "full_name": "Ghost", "image_url": "https://x/g.jpg"},
                    {"student_id": "S9", "full_name": None, "image_url": None},
                ]
            )
        )
        client = FakeClient(query)

        records = SupabaseRosterSource(client, table="students").fetch()

        assert client.tables == ["students"]
        assert query.selected == "student_id, full_name, image_url"
        assert records == [
            RosterRecord("7", "Alice", "https://x/a.jpg"),
            RosterRecord("S9", "", ""),
        ]

    def test_supabase_failure_raises(self):
        client = FakeClient(FakeQuery(exc=ConnectionError("offline")))
        with pytest.raises(RosterSourceError):
            SupabaseRosterSource(client).fetch()

    def test_supabase_error_response_raises(self):
        client = FakeClient(FakeQuery(FakeResponse(data=None, error="permission denied")))
        with pytest.raises(RosterSourceError):
            SupabaseRosterSource(client).fetch()
