"""Shared test fixtures for overseer-stage."""

import pytest

from ballots import SimpleBallot, VoteStore
from connections import ConnectionRegistry
from controller import StageController
from round_timer import RoundTimer
from scenes import SceneRegistry

SCENES = [
    {"name": "Lobby", "kind": "hold", "flavor": "Hold tight"},
    {"name": "VoteA", "kind": "vote", "prompt": "Pick one"},
    {"name": "Lobby", "kind": "hold", "flavor": "Thanks"},
]

BALLOTS = {
    "VoteA": SimpleBallot(options=("x", "y", "z"), eligible_groups=frozenset({1})),
}


class FakeClock:
    def __init__(self, t: float = 1000.0):
        self.t = t

    def __call__(self) -> float:
        return self.t

    def advance(self, seconds: float):
        self.t += seconds


class RecordingTransport:
    def __init__(self):
        self.sent = []

    def emit(self, event, payload, to):
        self.sent.append((event, payload, to))

    def to(self, sid):
        return [(e, p) for e, p, t in self.sent if t == sid]

    def events(self, sid):
        return [e for e, _, t in self.sent if t == sid]

    def last(self, sid, event):
        for e, p, t in reversed(self.sent):
            if t == sid and e == event:
                return p
        return None

    def clear(self):
        self.sent.clear()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def transport():
    return RecordingTransport()


@pytest.fixture
def make_stage(clock, transport):
    """Build a controller over a small timeline with a fake clock."""
    def _make(scenes=None, ballots=None, admin_secret="", group_capacity=16, initial_index=0):
        ballots = BALLOTS if ballots is None else ballots
        return StageController(
            registry=SceneRegistry(scenes or SCENES),
            votes=VoteStore(ballots),
            timer=RoundTimer(default_ms=30_000, clock=clock),
            connections=ConnectionRegistry(group_count=5, group_capacity=group_capacity),
            transport=transport,
            admin_secret=admin_secret,
            initial_index=initial_index,
        )
    return _make


@pytest.fixture
def stage(make_stage):
    return make_stage()


def add_admin(stage, sid="admin", secret=None):
    stage.connect(sid)
    payload = {"role": "admin"}
    if secret is not None:
        payload["secret"] = secret
    stage.dispatch(sid, "identify", payload)
    return sid


def add_participant(stage, sid, group):
    stage.connect(sid)
    stage.dispatch(sid, "chooseGroup", {"groupId": group})
    stage.dispatch(sid, "join")
    return sid
