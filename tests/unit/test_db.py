"""Tests for the database layer: init, ICP documents, version-checked missions."""

import pytest

from targeting.core.db import (
    init_db,
    read_icp,
    read_mission,
    write_icp,
    write_mission_merge,
    write_mission_replace,
)
from targeting.core.errors import PersistenceFailure, VersionConflict


@pytest.fixture()
def db(tmp_path):  # type: ignore[no-untyped-def]
    """Provide a fresh SQLite connection per test."""
    conn = init_db(tmp_path / "test.db")
    yield conn
    conn.close()


class TestInitDb:
    def test_creates_tables(self, db) -> None:  # type: ignore[no-untyped-def]
        tables = {
            row[0]
            for row in db.execute(
                "SELECT name FROM sqlite_master WHERE type='table'"
            ).fetchall()
        }
        assert "icp_profiles" in tables
        assert "missions" in tables

    def test_idempotent(self, tmp_path) -> None:  # type: ignore[no-untyped-def]
        p = tmp_path / "nested" / "double.db"
        init_db(p).close()
        init_db(p).close()


class TestIcp:
    def test_missing(self, db) -> None:  # type: ignore[no-untyped-def]
        assert read_icp(db, "u1") is None

    def test_write_then_overwrite(self, db) -> None:  # type: ignore[no-untyped-def]
        write_icp(db, "u1", {"jobTitles": ["CTO"]})
        write_icp(db, "u1", {"jobTitles": ["CFO"]})
        assert read_icp(db, "u1") == {"jobTitles": ["CFO"]}
        assert db.execute("SELECT COUNT(*) FROM icp_profiles").fetchone()[0] == 1


class TestMissionWrites:
    def test_create_starts_at_version_1(self, db) -> None:  # type: ignore[no-untyped-def]
        assert write_mission_replace(db, "u1", "a", {"phase": "discovery"}, None) == 1
        assert read_mission(db, "u1", "a") == ({"phase": "discovery"}, 1)

    def test_create_twice_conflicts(self, db) -> None:  # type: ignore[no-untyped-def]
        write_mission_replace(db, "u1", "a", {}, None)
        with pytest.raises(VersionConflict) as exc:
            write_mission_replace(db, "u1", "a", {}, None)
        assert exc.value.actual == 1
        assert exc.value.expected is None

    def test_replace_bumps_version(self, db) -> None:  # type: ignore[no-untyped-def]
        write_mission_replace(db, "u1", "a", {"phase": "discovery"}, None)
        assert write_mission_replace(db, "u1", "a", {"phase": "validation"}, 1) == 2
        assert read_mission(db, "u1", "a") == ({"phase": "validation"}, 2)

    def test_stale_write_rejected(self, db) -> None:  # type: ignore[no-untyped-def]
        write_mission_replace(db, "u1", "a", {"phase": "discovery"}, None)
        write_mission_replace(db, "u1", "a", {"phase": "validation"}, 1)

        with pytest.raises(VersionConflict) as exc:
            write_mission_replace(db, "u1", "a", {"phase": "clobbered"}, 1)

        assert (exc.value.expected, exc.value.actual) == (1, 2)
        assert isinstance(exc.value, PersistenceFailure)
        assert read_mission(db, "u1", "a") == ({"phase": "validation"}, 2)

    def test_slots_are_independent(self, db) -> None:  # type: ignore[no-untyped-def]
        write_mission_replace(db, "u1", "a", {"n": 1}, None)
        write_mission_replace(db, "u1", "b", {"n": 2}, None)
        write_mission_replace(db, "u2", "a", {"n": 3}, None)
        assert read_mission(db, "u1", "b") == ({"n": 2}, 1)
        assert read_mission(db, "u2", "a") == ({"n": 3}, 1)


class TestMissionMerge:
    def test_merge_keeps_unrelated_fields(self, db) -> None:  # type: ignore[no-untyped-def]
        write_mission_replace(db, "u1", "a", {"phase": "x", "campaigns": {}}, None)
        version = write_mission_merge(db, "u1", "a", {"campaigns": {"c1": "copy"}}, 1)
        assert version == 2
        assert read_mission(db, "u1", "a") == ({"phase": "x", "campaigns": {"c1": "copy"}}, 2)

    def test_merge_version_checked(self, db) -> None:  # type: ignore[no-untyped-def]
        write_mission_replace(db, "u1", "a", {"phase": "x"}, None)
        with pytest.raises(VersionConflict):
            write_mission_merge(db, "u1", "a", {"phase": "y"}, 7)

    def test_merge_missing_slot(self, db) -> None:  # type: ignore[no-untyped-def]
        with pytest.raises(VersionConflict):
            write_mission_merge(db, "u1", "nope", {"phase": "y"}, 1)
