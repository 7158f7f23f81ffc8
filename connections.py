"""Who is connected, in which role and group."""

from __future__ import annotations

import enum
import logging
from dataclasses import dataclass

from errors import StateConflictError, ValidationError

logger = logging.getLogger(__name__)

NAME_MAX = 40


class Role(str, enum.Enum):
    UNIDENTIFIED = "unidentified"
    PARTICIPANT = "participant"
    ADMIN = "admin"


@dataclass
class Connection:
    sid: str
    role: Role = Role.UNIDENTIFIED
    group: int | None = None
    joined: bool = False
    display_name: str = ""

    @property
    def is_admin(self) -> bool:
        return self.role is Role.ADMIN

    @property
    def can_vote(self) -> bool:
        return self.joined and self.group is not None


# ---- recipient predicates ----
def AUDIENCE(c: Connection) -> bool:
    return c.joined or c.is_admin


def EVERYONE(c: Connection) -> bool:
    return True


class ConnectionRegistry:
    def __init__(self, group_count: int = 5, group_capacity: int = 16):
        self.group_ids = tuple(range(1, group_count + 1))
        self.group_capacity = group_capacity
        self._conns: dict[str, Connection] = {}

    def __len__(self):
        return len(self._conns)

    def __contains__(self, sid):
        return sid in self._conns

    def add(self, sid: str) -> Connection:
        conn = self._conns.get(sid)
        if conn is None:
            conn = self._conns[sid] = Connection(sid=sid)
        return conn

    def remove(self, sid: str) -> Connection | None:
        return self._conns.pop(sid, None)

    def get(self, sid: str) -> Connection | None:
        return self._conns.get(sid)

    def select(self, predicate) -> list[Connection]:
        return [c for c in self._conns.values() if predicate(c)]

    # ================== Participant flow ==================
    def set_display_name(self, conn: Connection, name) -> str:
        if not isinstance(name, str):
            raise ValidationError("name must be a string")
        conn.display_name = name.strip()[:NAME_MAX]
        return conn.display_name

    def members(self, group: int) -> int:
        return sum(1 for c in self._conns.values() if c.group == group)

    def choose_group(self, conn: Connection, group) -> int:
        if isinstance(group, bool) or group not in self.group_ids:
            raise ValidationError(f"unknown group {group!r}")
        if conn.joined:
            # the group is fixed once a participant is in
            raise StateConflictError("already-joined", groupId=conn.group)
        if conn.group == group:
            return group
        if self.members(group) >= self.group_capacity:
            logger.info("group %s is full (%d)", group, self.group_capacity)
            raise StateConflictError("group-full", groupId=group, capacity=self.group_capacity)
        conn.group = group
        return group

    def join(self, conn: Connection) -> bool:
        """Mark ``conn`` joined. Returns False when it was already joined."""
        if conn.joined:
            return False
        if conn.group is None:
            raise StateConflictError("no-group")
        conn.joined = True
        if conn.role is Role.UNIDENTIFIED:
            conn.role = Role.PARTICIPANT
        return True

    # ================== Reporting ==================
    def counts_by_group(self) -> dict:
        per_group = {g: 0 for g in self.group_ids}
        total = 0
        for c in self._conns.values():
            if c.joined and c.group in per_group:
                per_group[c.group] += 1
                total += 1
        return {"total_joined": total, "per_group": per_group}
