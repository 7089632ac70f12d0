"""SQLite profile store: ICP documents and version-checked mission documents."""

import json
import sqlite3
from datetime import datetime
from pathlib import Path
from typing import Any

from targeting.core.errors import VersionConflict

_ICP_TABLE = """
CREATE TABLE IF NOT EXISTS icp_profiles (
    user_id     TEXT PRIMARY KEY,
    data        TEXT NOT NULL,
    updated_at  TEXT NOT NULL
);
"""

_MISSIONS_TABLE = """
CREATE TABLE IF NOT EXISTS missions (
    user_id     TEXT    NOT NULL,
    slot        TEXT    NOT NULL,
    data        TEXT    NOT NULL,
    version     INTEGER NOT NULL DEFAULT 1,
    updated_at  TEXT    NOT NULL,
    PRIMARY KEY (user_id, slot)
);
"""


def init_db(path: str | Path) -> sqlite3.Connection:
    """Create the database and tables, returning a connection."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    conn = sqlite3.connect(str(path))
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA journal_mode=WAL")
    conn.execute(_ICP_TABLE)
    conn.execute(_MISSIONS_TABLE)
    conn.commit()
    return conn


def read_icp(conn: sqlite3.Connection, user_id: str) -> dict[str, Any] | None:
    """Return the stored ICP document for a user, or None."""
    row = conn.execute(
        "SELECT data FROM icp_profiles WHERE user_id = ?", (user_id,),
    ).fetchone()
    if row is None:
        return None
    return json.loads(row["data"])  # type: ignore[no-any-return]


def write_icp(conn: sqlite3.Connection, user_id: str, data: dict[str, Any]) -> None:
    """Insert or replace a user's ICP document."""
    conn.execute(
        """
        INSERT INTO icp_profiles (user_id, data, updated_at)
        VALUES (?, ?, ?)
        ON CONFLICT(user_id)
        DO UPDATE SET data = excluded.data, updated_at = excluded.updated_at
        """,
        (user_id, json.dumps(data), datetime.now().isoformat()),
    )
    conn.commit()


def read_mission(
    conn: sqlite3.Connection, user_id: str, slot: str,
) -> tuple[dict[str, Any], int] | None:
    """Return ``(document, version)`` for a mission slot, or None."""
    row = conn.execute(
        "SELECT data, version FROM missions WHERE user_id = ? AND slot = ?",
        (user_id, slot),
    ).fetchone()
    if row is None:
        return None
    return json.loads(row["data"]), int(row["version"])


def _current_version(conn: sqlite3.Connection, user_id: str, slot: str) -> int | None:
    row = conn.execute(
        "SELECT version FROM missions WHERE user_id = ? AND slot = ?",
        (user_id, slot),
    ).fetchone()
    return None if row is None else int(row["version"])


def write_mission_replace(
    conn: sqlite3.Connection,
    user_id: str,
    slot: str,
    data: dict[str, Any],
    expected_version: int | None,
) -> int:
    """Replace the whole mission document if the stored version matches.

    ``expected_version=None`` means the slot must not exist yet.

    Returns:
        The new version number.

    Raises:
        VersionConflict: The stored version differs from ``expected_version``.
    """
    now = datetime.now().isoformat()
    payload = json.dumps(data)

    if expected_version is None:
        try:
            conn.execute(
                """
                INSERT INTO missions (user_id, slot, data, version, updated_at)
                VALUES (?, ?, ?, 1, ?)
                """,
                (user_id, slot, payload, now),
            )
        except sqlite3.IntegrityError as e:
            conn.rollback()
            actual = _current_version(conn, user_id, slot)
            msg = f"Mission {user_id}/{slot} already exists at version {actual}"
            raise VersionConflict(msg, expected=None, actual=actual) from e
        conn.commit()
        return 1

    cursor = conn.execute(
        """
        UPDATE missions SET data = ?, version = version + 1, updated_at = ?
        WHERE user_id = ? AND slot = ? AND version = ?
        """,
        (payload, now, user_id, slot, expected_version),
    )
    if cursor.rowcount == 0:
        conn.rollback()
        actual = _current_version(conn, user_id, slot)
        msg = f"Mission {user_id}/{slot} is at version {actual}, expected {expected_version}"
        raise VersionConflict(msg, expected=expected_version, actual=actual)
    conn.commit()
    return expected_version + 1


def write_mission_merge(
    conn: sqlite3.Connection,
    user_id: str,
    slot: str,
    partial: dict[str, Any],
    expected_version: int,
) -> int:
    """Shallow-merge top-level fields into a stored mission document.

    Fields absent from ``partial`` are left untouched.

    Raises:
        VersionConflict: The slot is missing or at another version.
    """
    current = read_mission(conn, user_id, slot)
    if current is None:
        msg = f"Mission {user_id}/{slot} does not exist"
        raise VersionConflict(msg, expected=expected_version, actual=None)
    data, _ = current
    data.update(partial)
    return write_mission_replace(conn, user_id, slot, data, expected_version)

