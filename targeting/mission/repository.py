"""Mission repository: typed access to the SQLite profile store.

Wraps the ``targeting.core.db`` functions so callers deal in ``Mission`` and
``IdealCustomerProfile`` objects and see ``PersistenceFailure`` instead of
driver errors.
"""

import logging
import sqlite3
from datetime import datetime

from pydantic import ValidationError

from targeting.core.db import (
    read_icp,
    read_mission,
    write_icp,
    write_mission_merge,
    write_mission_replace,
)
from targeting.core.errors import PersistenceFailure
from targeting.core.schemas import IdealCustomerProfile
from targeting.mission.models import Mission

logger = logging.getLogger(__name__)


class MissionRepository:
    """Reads and version-checked writes for missions and ICPs.

    Usage::

        repo = MissionRepository(conn)
        mission = repo.load("user-1", "default") or Mission(user_id="user-1", slot="default")
        repo.save(mission)  # bumps mission.version or raises VersionConflict
    """

    def __init__(self, conn: sqlite3.Connection) -> None:
        self._conn = conn

    def load_icp(self, user_id: str) -> IdealCustomerProfile | None:
        try:
            raw = read_icp(self._conn, user_id)
        except sqlite3.Error as e:
            msg = f"Could not read ICP for {user_id}: {e}"
            raise PersistenceFailure(msg) from e
        if raw is None:
            return None
        try:
            return IdealCustomerProfile.model_validate(raw)
        except ValidationError as e:
            msg = f"Stored ICP for {user_id} is invalid: {e}"
            raise PersistenceFailure(msg) from e

    def save_icp(self, user_id: str, icp: IdealCustomerProfile) -> None:
        try:
            write_icp(self._conn, user_id, icp.model_dump(mode="json", by_alias=True))
        except sqlite3.Error as e:
            msg = f"Could not write ICP for {user_id}: {e}"
            raise PersistenceFailure(msg) from e

    def load(self, user_id: str, slot: str) -> Mission | None:
        """Return the stored mission with its version, or None."""
        try:
            row = read_mission(self._conn, user_id, slot)
        except sqlite3.Error as e:
            msg = f"Could not read mission {user_id}/{slot}: {e}"
            raise PersistenceFailure(msg) from e
        if row is None:
            return None

        data, version = row
        try:
            mission = Mission.model_validate(data)
        except ValidationError as e:
            msg = f"Stored mission {user_id}/{slot} is invalid: {e}"
            raise PersistenceFailure(msg) from e
        mission.version = version
        return mission

    def save(self, mission: Mission) -> Mission:
        """Replace the stored document, checked against ``mission.version``.

        A mission with ``version=None`` is created; the slot must be free.

        Raises:
            VersionConflict: Another writer got there first.
            PersistenceFailure: The driver failed.
        """
        mission.updated_at = datetime.now()
        try:
            mission.version = write_mission_replace(
                self._conn,
                mission.user_id,
                mission.slot,
                mission.model_dump(mode="json"),
                mission.version,
            )
        except sqlite3.Error as e:
            msg = f"Could not write mission {mission.user_id}/{mission.slot}: {e}"
            raise PersistenceFailure(msg) from e
        logger.debug(
            "Saved mission %s/%s v%d (%s)",
            mission.user_id, mission.slot, mission.version, mission.phase,
        )
        return mission

    def save_fields(self, mission: Mission, fields: set[str]) -> Mission:
        """Merge only ``fields`` into the stored document."""
        if mission.version is None:
            return self.save(mission)
        mission.updated_at = datetime.now()
        partial = mission.model_dump(mode="json", include=fields | {"updated_at"})
        try:
            mission.version = write_mission_merge(
                self._conn, mission.user_id, mission.slot, partial, mission.version,
            )
        except sqlite3.Error as e:
            msg = f"Could not update mission {mission.user_id}/{mission.slot}: {e}"
            raise PersistenceFailure(msg) from e
        return mission
