"""Scene/vote/timer synchronization.

``StageController`` owns the cursor, the tallies, the round timer and the
connection registry. Every inbound event goes through one of its public
methods, each of which holds the same lock, so events are applied one at a
time and to completion. Outbound messages go through a ``Transport``; the
controller never touches sockets itself.
"""

from __future__ import annotations

import logging
import math
import secrets
import threading
from typing import Callable, Protocol

from ballots import VoteStore
from connections import AUDIENCE, EVERYONE, Connection, ConnectionRegistry, Role
from errors import (AuthorizationError, InvalidOption, NoEligibleBallot,
                    StageError, StateConflictError, ValidationError)
from round_timer import RoundTimer
from scenes import ScenePosition, SceneRegistry

logger = logging.getLogger(__name__)


class Transport(Protocol):
    def emit(self, event: str, payload: dict, to: str) -> None: ...


# StateConflictError reasons that have their own outbound event
_CONFLICT_EVENTS = {
    "group-full": "groupFull",
    "no-eligible-ballot": "notEligible",
}


def _arg(data, key):
    """Payloads arrive either as ``{key: value}`` or as the bare value."""
    if isinstance(data, dict):
        return data.get(key)
    return data


def _as_int(v) -> int | None:
    if isinstance(v, bool):
        return None
    if isinstance(v, int):
        return v
    if isinstance(v, float) and v.is_integer():
        return int(v)
    if isinstance(v, str):
        try:
            return int(v.strip())
        except ValueError:
            return None
    return None


class StageController:
    def __init__(
        self,
        registry: SceneRegistry,
        votes: VoteStore,
        timer: RoundTimer,
        connections: ConnectionRegistry,
        transport: Transport,
        admin_secret: str = "",
        initial_index: int = 0,
    ):
        self.registry = registry
        self.votes = votes
        self.timer = timer
        self.connections = connections
        self.transport = transport
        self._admin_secret = admin_secret
        self.index = registry.normalize(initial_index)
        self._lock = threading.RLock()
        self._handlers: dict[str, Callable[[Connection, object], None]] = {
            "identify": self._identify,
            "setDisplayName": self._set_display_name,
            "chooseGroup": self._choose_group,
            "join": self._join,
            "submitVote": self._submit_vote,
            # admin
            "advanceScene": self._advance_scene,
            "setSceneByIndex": self._set_scene_by_index,
            "setSceneByName": self._set_scene_by_name,
            "resetCurrentBallot": self._reset_current_ballot,
            "startTimer": self._start_timer,
            "stopTimer": self._stop_timer_cmd,
            "forceClientReload": self._force_client_reload,
        }
        self._admin_only = {
            "advanceScene", "setSceneByIndex", "setSceneByName",
            "resetCurrentBallot", "startTimer", "stopTimer", "forceClientReload",
        }

    @property
    def current(self) -> ScenePosition:
        return self.registry.resolve(self.index)

    def in_voting_scene(self) -> bool:
        return self.votes.is_voting(self.current.name)

    # ================== Entry points ==================
    def connect(self, sid: str):
        with self._lock:
            self.connections.add(sid)
            self.transport.emit("sceneRegistry", self.registry.payload(), to=sid)

    def disconnect(self, sid: str):
        with self._lock:
            self.connections.remove(sid)

    def tick(self):
        """Periodic timer broadcast; ends the round once it runs out."""
        with self._lock:
            if not self.timer.running:
                return
            self._broadcast("timerSnapshot", self.timer.snapshot())
            if self.timer.expired:
                self._stop_timer()

    def dispatch(self, sid: str, event: str, data=None):
        with self._lock:
            handler = self._handlers.get(event)
            if handler is None:
                logger.debug("ignoring unknown event %r from %s", event, sid)
                return
            conn = self.connections.get(sid)
            if conn is None:
                # connect registers sids; anything else raced a disconnect
                logger.debug("ignoring %s from untracked %s", event, sid)
                return
            try:
                if event in self._admin_only and not conn.is_admin:
                    raise AuthorizationError(event)
                handler(conn, data)
            except AuthorizationError:
                logger.info("%s not authorized for %s", sid, event)
                if event == "identify":
                    self.transport.emit("authRejected", {"reason": "bad-secret"}, to=sid)
            except ValidationError as exc:
                logger.debug("ignoring invalid %s from %s: %s", event, sid, exc.reason)
            except StateConflictError as exc:
                self._report_conflict(conn, event, exc)
            except StageError:
                logger.exception("unhandled stage error on %s", event)

    # ================== Reporting (read only) ==================
    def clients_report(self) -> dict:
        with self._lock:
            return self.connections.counts_by_group()

    def winner_report(self) -> dict:
        with self._lock:
            pos = self.current
            parts = self.votes.leaders(pos.name)
            if parts is None:
                return {"scene": pos.name, "index": pos.index, "vote_winner": None,
                        "votes": [], "message": "No active voting scene"}
            if len(parts) == 1 and parts[0]["group_label"] is None:
                report = {"scene": pos.name, "index": pos.index}
                report.update({k: v for k, v in parts[0].items() if k != "group_label"})
                return report
            return {"scene": pos.name, "index": pos.index, "sub_ballots": parts}

    def scenes_report(self) -> dict:
        with self._lock:
            report = self.registry.payload()
            report["current"] = self.index
            return report

    # ================== Outbound ==================
    def _broadcast(self, event: str, payload: dict, recipients=AUDIENCE):
        for conn in self.connections.select(recipients):
            self.transport.emit(event, payload, to=conn.sid)

    def _send_state(self, sid: str):
        pos = self.current
        self.transport.emit("sceneChanged", {"name": pos.name, "index": pos.index}, to=sid)
        if self.votes.is_voting(pos.name):
            self.transport.emit("ballotSnapshot", self.votes.describe(pos.name), to=sid)
        self.transport.emit("timerSnapshot", self.timer.snapshot(), to=sid)

    def _report_conflict(self, conn: Connection, event: str, exc: StateConflictError):
        out = _CONFLICT_EVENTS.get(exc.reason)
        if out is None:
            out = "voteRejected" if event == "submitVote" else "actionRejected"
        payload = {"reason": exc.reason, **exc.details}
        if out == "actionRejected":
            payload["event"] = event
        self.transport.emit(out, payload, to=conn.sid)

    # ================== Scene transitions ==================
    def _apply_index(self, new_index: int):
        prev = self.current
        self.index = self.registry.normalize(new_index)
        pos = self.current
        voting = self.votes.is_voting(pos.name)

        if pos.name != prev.name and voting:
            self.votes.clear_voted_only(pos.name)

        logger.info("scene %d:%s -> %d:%s", prev.index, prev.name, pos.index, pos.name)
        self._broadcast("sceneChanged", {"name": pos.name, "index": pos.index})
        if voting:
            self._broadcast("ballotSnapshot", self.votes.describe(pos.name))
            self._broadcast("timerSnapshot", self.timer.snapshot())
        else:
            self._stop_timer()

    def _advance_scene(self, conn, data):
        self._apply_index(self.index + 1)

    def _set_scene_by_index(self, conn, data):
        i = _as_int(_arg(data, "index"))
        if i is None or not 0 <= i < len(self.registry):
            raise ValidationError(f"scene index {data!r}")
        self._apply_index(i)

    def _set_scene_by_name(self, conn, data):
        name = _arg(data, "name")
        matches = self.registry.find_positions(name) if isinstance(name, str) else []
        if not matches:
            raise ValidationError(f"scene name {name!r}")
        after = next((i for i in matches if i > self.index), matches[0])
        self._apply_index(after)

    # ================== Timer ==================
    def _stop_timer(self):
        self.timer.stop()
        self._broadcast("timerSnapshot", self.timer.snapshot())

    def _start_timer(self, conn, data):
        if not self.in_voting_scene():
            raise ValidationError("timer outside a voting scene")
        seconds = _arg(data, "seconds")
        if seconds is None:
            ms = self.timer.default_ms
        else:
            if isinstance(seconds, bool):
                raise ValidationError("seconds")
            try:
                secs = float(seconds)
            except (TypeError, ValueError, OverflowError):
                raise ValidationError("seconds") from None
            if not math.isfinite(secs) or secs <= 0:
                raise ValidationError("seconds")
            ms = secs * 1000
            if not math.isfinite(ms):
                raise ValidationError("seconds")
            ms = int(ms)
        self.timer.start(ms)
        self._broadcast("timerSnapshot", self.timer.snapshot())

    def _stop_timer_cmd(self, conn, data):
        self._stop_timer()

    # ================== Admin misc ==================
    def _reset_current_ballot(self, conn, data):
        scene = self.current.name
        if not self.votes.is_voting(scene):
            raise ValidationError("reset outside a voting scene")
        self.votes.reset(scene)
        logger.info("ballot %s reset", scene)
        self._broadcast("ballotSnapshot", self.votes.describe(scene))
        self._broadcast("ballotWasReset", {"scene": scene})
        self._broadcast("timerSnapshot", self.timer.snapshot())

    def _force_client_reload(self, conn, data):
        logger.info("forcing reload on %d connections", len(self.connections))
        self._broadcast("forceReload", {}, recipients=EVERYONE)

    # ================== Participant flow ==================
    def _identify(self, conn, data):
        role = _arg(data, "role")
        if role == "admin":
            secret = data.get("secret") if isinstance(data, dict) else None
            if self._admin_secret and not secrets.compare_digest(
                    str(secret or "").encode(), self._admin_secret.encode()):
                raise AuthorizationError("bad admin secret")
            conn.role = Role.ADMIN
            logger.info("%s identified as admin", conn.sid)
            self._send_state(conn.sid)
        elif role == "participant":
            if not conn.is_admin:
                conn.role = Role.PARTICIPANT
        else:
            raise ValidationError(f"role {role!r}")

    def _set_display_name(self, conn, data):
        name = self.connections.set_display_name(conn, _arg(data, "name"))
        self.transport.emit("nameAccepted", {"ok": True, "name": name}, to=conn.sid)

    def _choose_group(self, conn, data):
        group = self.connections.choose_group(conn, _as_int(_arg(data, "groupId")))
        self.transport.emit("groupAccepted", {"groupId": group}, to=conn.sid)

    def _join(self, conn, data):
        if self.connections.join(conn):
            self._send_state(conn.sid)

    def _submit_vote(self, conn, data):
        if not conn.joined:
            raise StateConflictError("not-joined")
        scene = self.current.name
        if not self.votes.is_voting(scene):
            raise StateConflictError("not-voting-scene")
        if not self.timer.accepting():
            raise StateConflictError("round-ended")
        if conn.group not in self.votes.ballot(scene).eligible_groups:
            raise NoEligibleBallot(scene, self.votes.eligible_groups(scene))
        option = _as_int(_arg(data, "optionIndex"))
        if option is None:
            raise InvalidOption()
        self.votes.cast_vote(scene, conn.sid, option, conn.group)
        self._broadcast("ballotSnapshot", self.votes.describe(scene))
        self.transport.emit("voteAccepted", {"optionIndex": option}, to=conn.sid)
