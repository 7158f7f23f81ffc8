"""Ordered scene timeline plus the ballot definitions that go with it."""

from __future__ import annotations

import enum
from dataclasses import dataclass
from pathlib import Path

import yaml

from ballots import Ballot, CompositeBallot, SimpleBallot, SubBallot
from errors import SettingsError


class SceneKind(str, enum.Enum):
    HOLD = "hold"
    VOTE = "vote"


@dataclass(frozen=True)
class ScenePosition:
    index: int
    name: str
    kind: SceneKind
    prompt: str | None = None
    flavor_text: str | None = None

    def payload(self) -> dict:
        return {
            "index": self.index,
            "name": self.name,
            "kind": self.kind.value,
            "prompt": self.prompt,
            "flavorText": self.flavor_text,
        }


class SceneRegistry:
    """Read-only timeline. Identity is the index; names may repeat."""

    def __init__(self, entries: list[dict]):
        if not entries:
            raise SettingsError("timeline has no scenes")
        self._positions = tuple(
            ScenePosition(
                index=i,
                name=e["name"],
                kind=SceneKind(e.get("kind", "hold")),
                prompt=e.get("prompt"),
                flavor_text=e.get("flavor"),
            )
            for i, e in enumerate(entries)
        )

    def __len__(self) -> int:
        return len(self._positions)

    def __iter__(self):
        return iter(self._positions)

    def normalize(self, index: int) -> int:
        return index % len(self._positions)

    def resolve(self, index: int) -> ScenePosition:
        return self._positions[self.normalize(index)]

    def find_positions(self, name: str) -> list[int]:
        return [p.index for p in self._positions if p.name == name]

    def initial_index(self, selector: str | int | None) -> int:
        """First position named ``selector``, or ``selector`` as an index, else 0."""
        if selector is None or selector == "":
            return 0
        matches = self.find_positions(str(selector))
        if matches:
            return matches[0]
        try:
            i = int(selector)
        except (TypeError, ValueError):
            return 0
        return i if 0 <= i < len(self) else 0

    def payload(self) -> dict:
        return {"scenes": [p.payload() for p in self._positions]}


# ================== Built-in timeline ==================
DEFAULT_TIMELINE = [
    {"name": "Waiting", "kind": "hold", "flavor": "Please wait, the experience will begin soon..."},
    {"name": "BardTrial", "kind": "vote",
     "prompt": "Candidates of Song, three faces of your truth stand before you: one broken, one adored, "
               "one unremarkable. Which will you claim? Your Overseers recommend humility."},
    {"name": "Waiting", "kind": "hold", "flavor": "Bard stage"},
    {"name": "DruidTrial", "kind": "vote",
     "prompt": "Druids: Will you bow to comparison, steady yourselves in contentment, or entrust your "
               "fruit distribution to your Palantell Overseer?"},
    {"name": "Waiting", "kind": "hold", "flavor": "Druid stage"},
    {"name": "RogueTrial", "kind": "vote",
     "prompt": "Will you clutch tighter to your treasure, loosen your grip for another's sake, or trust "
               "the only one who can truly maintain order, your Palantell Overseer?"},
    {"name": "Waiting", "kind": "hold", "flavor": "Rogue stage"},
    {"name": "WizardTrial", "kind": "vote",
     "prompt": "Now the lock wavers, unstable and consuming. You must choose how it will be resolved. "
               "You know the only one you can truly trust is the insight of your Overseer."},
    {"name": "Waiting", "kind": "hold", "flavor": "Wizard stage"},
    {"name": "PaladinTrial", "kind": "vote",
     "prompt": "Paladins of Valor, The Hydra threatens all lands. You must choose how to defeat it. "
               "I strongly advise you trust my judgment and lop off the Hydra's third head in a "
               "strategic maneuver."},
    {"name": "Waiting", "kind": "hold", "flavor": "Paladin stage"},
    {"name": "EndScene", "kind": "hold", "flavor": "End Scene"},
]

DEFAULT_BALLOTS: dict[str, Ballot] = {
    "BardTrial": SimpleBallot(
        options=("A: Obedience, humble bard",
                 "B: Selfishness, radiant bard",
                 "C: Sacrifice, unremarkable bard"),
        eligible_groups=frozenset({1})),
    "DruidTrial": SimpleBallot(
        options=("A: Obedience, export your fruit as commanded",
                 "B: Selfishness, sell on the black market",
                 "C: Sacrifice, remain content with what you have"),
        eligible_groups=frozenset({2})),
    "RogueTrial": SimpleBallot(
        options=("A: Obedience, pay your share into the tax",
                 "B: Selfishness, steal and hoard",
                 "C: Sacrifice, feed the child and Druid"),
        eligible_groups=frozenset({3})),
    "WizardTrial": SimpleBallot(
        options=("A: Obedience, set glyphs according to the Overseer's instructions",
                 "B: Selfishness, rewrite glyphs according to your own knowledge",
                 "C: Sacrifice, seek Druid counsel"),
        eligible_groups=frozenset({4})),
    "PaladinTrial": SimpleBallot(
        options=("A: Obedience, strike on the Overseer's command",
                 "B: Selfishness, fight alone to risk martyrdom",
                 "C: Sacrifice, unite all classes and invite them to attack together"),
        eligible_groups=frozenset({5})),
}


def default_timeline() -> tuple[SceneRegistry, dict[str, Ballot]]:
    return SceneRegistry(DEFAULT_TIMELINE), dict(DEFAULT_BALLOTS)


# ================== Timeline file ==================
def _groups(raw, where: str) -> frozenset[int]:
    if not isinstance(raw, list) or not raw:
        raise SettingsError(f"{where}: 'groups' must be a non-empty list")
    try:
        return frozenset(int(g) for g in raw)
    except (TypeError, ValueError):
        raise SettingsError(f"{where}: 'groups' must hold integers") from None


def _options(raw, where: str) -> tuple[str, ...]:
    if not isinstance(raw, list) or not raw:
        raise SettingsError(f"{where}: 'options' must be a non-empty list")
    return tuple(str(o) for o in raw)


def _parse_ballot(name: str, raw: dict) -> Ballot:
    if not isinstance(raw, dict):
        raise SettingsError(f"ballot {name!r} must be a mapping")
    if "sub_ballots" in raw:
        if not isinstance(raw["sub_ballots"], list):
            raise SettingsError(f"ballot {name!r}: 'sub_ballots' must be a list")
        subs = []
        for i, s in enumerate(raw["sub_ballots"]):
            where = f"ballot {name!r} sub-ballot {i}"
            if not isinstance(s, dict):
                raise SettingsError(f"{where} must be a mapping")
            subs.append(SubBallot(
                group_label=str(s.get("label", f"Group {i + 1}")),
                prompt=s.get("prompt"),
                options=_options(s.get("options"), where),
                eligible_groups=_groups(s.get("groups"), where),
            ))
        if not subs:
            raise SettingsError(f"ballot {name!r} has no sub-ballots")
        return CompositeBallot(sub_ballots=tuple(subs))
    where = f"ballot {name!r}"
    return SimpleBallot(
        options=_options(raw.get("options"), where),
        eligible_groups=_groups(raw.get("groups"), where),
    )


def load_timeline(path: Path) -> tuple[SceneRegistry, dict[str, Ballot]]:
    """Load scenes and ballots from a YAML timeline file."""
    try:
        with open(path) as f:
            raw = yaml.safe_load(f)
    except OSError as exc:
        raise SettingsError(f"cannot read timeline {path}: {exc}") from exc
    except yaml.YAMLError as exc:
        raise SettingsError(f"timeline {path} is not valid YAML: {exc}") from exc

    if not isinstance(raw, dict) or not isinstance(raw.get("scenes"), list):
        raise SettingsError(f"timeline {path} needs a 'scenes' list")

    entries = []
    for i, s in enumerate(raw["scenes"]):
        if not isinstance(s, dict) or not s.get("name"):
            raise SettingsError(f"scene {i} needs a name")
        kind = s.get("kind", "hold")
        if kind not in ("hold", "vote"):
            raise SettingsError(f"scene {i} has unknown kind {kind!r}")
        entries.append({"name": str(s["name"]), "kind": kind,
                        "prompt": s.get("prompt"), "flavor": s.get("flavor")})

    raw_ballots = raw.get("ballots") or {}
    if not isinstance(raw_ballots, dict):
        raise SettingsError(f"timeline {path}: 'ballots' must map scene names to ballots")
    ballots = {str(n): _parse_ballot(str(n), b) for n, b in raw_ballots.items()}
    return SceneRegistry(entries), ballots


def validate_timeline(registry: SceneRegistry, ballots: dict[str, Ballot]) -> None:
    names = {p.name for p in registry}
    for p in registry:
        if p.kind is SceneKind.VOTE and p.name not in ballots:
            raise SettingsError(f"vote scene {p.name!r} (index {p.index}) has no ballot")
        if p.kind is SceneKind.HOLD and p.name in ballots:
            raise SettingsError(f"hold scene {p.name!r} (index {p.index}) has a ballot")
    for name in ballots:
        if name not in names:
            raise SettingsError(f"ballot {name!r} does not match any scene")
