"""Ballot definitions and live tallies.

A voting scene has either a ``SimpleBallot`` (one option list shared by its
eligible groups) or a ``CompositeBallot`` (one sub-ballot per group of
groups, each with its own options and tally). Definitions are fixed at
startup; only the tallies change.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from errors import AlreadyVoted, InvalidOption, NoEligibleBallot, UnknownScene


@dataclass(frozen=True)
class SimpleBallot:
    options: tuple[str, ...]
    eligible_groups: frozenset[int]


@dataclass(frozen=True)
class SubBallot:
    group_label: str
    prompt: str | None
    options: tuple[str, ...]
    eligible_groups: frozenset[int]


@dataclass(frozen=True)
class CompositeBallot:
    sub_ballots: tuple[SubBallot, ...]

    @property
    def eligible_groups(self) -> frozenset[int]:
        groups: set[int] = set()
        for sb in self.sub_ballots:
            groups |= sb.eligible_groups
        return frozenset(groups)


Ballot = SimpleBallot | CompositeBallot


@dataclass
class Tally:
    counts: list[int]
    voted: set[str] = field(default_factory=set)

    @classmethod
    def for_options(cls, options) -> "Tally":
        return cls(counts=[0] * len(options))

    def cast(self, sid: str, option_index: int):
        if isinstance(option_index, bool) or not isinstance(option_index, int):
            raise InvalidOption()
        if not 0 <= option_index < len(self.counts):
            raise InvalidOption()
        if sid in self.voted:
            raise AlreadyVoted()
        self.counts[option_index] += 1
        self.voted.add(sid)

    def reset(self):
        self.counts = [0] * len(self.counts)
        self.voted.clear()

    def leaders(self, options) -> tuple[list[str], int]:
        """Options sharing the top count. No leader while everything is zero."""
        top = max(self.counts, default=0)
        if top == 0:
            return [], 0
        return [opt for opt, n in zip(options, self.counts) if n == top], top


def _votes(options, tally: Tally) -> list[dict]:
    return [{"option": opt, "count": n} for opt, n in zip(options, tally.counts)]


class VoteStore:
    def __init__(self, ballots: dict[str, Ballot]):
        self._ballots = dict(ballots)
        # scene name -> one tally (simple) or one tally per sub-ballot (composite)
        self._tallies: dict[str, list[Tally]] = {}
        for name, ballot in self._ballots.items():
            if isinstance(ballot, CompositeBallot):
                self._tallies[name] = [Tally.for_options(sb.options) for sb in ballot.sub_ballots]
            else:
                self._tallies[name] = [Tally.for_options(ballot.options)]

    def is_voting(self, scene: str) -> bool:
        return scene in self._ballots

    def ballot(self, scene: str) -> Ballot | None:
        return self._ballots.get(scene)

    def tallies(self, scene: str) -> list[Tally]:
        return self._tallies.get(scene, [])

    def eligible_groups(self, scene: str) -> list[int]:
        ballot = self._ballots.get(scene)
        return sorted(ballot.eligible_groups) if ballot else []

    def describe(self, scene: str) -> dict | None:
        ballot = self._ballots.get(scene)
        if ballot is None:
            return None
        tallies = self._tallies[scene]
        snap = {"name": scene, "eligibleGroups": sorted(ballot.eligible_groups)}
        if isinstance(ballot, CompositeBallot):
            snap["kind"] = "composite"
            snap["subBallots"] = [
                {
                    "groupLabel": sb.group_label,
                    "prompt": sb.prompt,
                    "options": list(sb.options),
                    "counts": list(t.counts),
                    "eligibleGroups": sorted(sb.eligible_groups),
                }
                for sb, t in zip(ballot.sub_ballots, tallies)
            ]
        else:
            snap["kind"] = "simple"
            snap["options"] = list(ballot.options)
            snap["counts"] = list(tallies[0].counts)
        return snap

    def cast_vote(self, scene: str, sid: str, option_index: int, group: int | None):
        ballot = self._ballots.get(scene)
        if ballot is None:
            raise UnknownScene()
        tallies = self._tallies[scene]
        if isinstance(ballot, CompositeBallot):
            for sb, tally in zip(ballot.sub_ballots, tallies):
                if group in sb.eligible_groups:
                    tally.cast(sid, option_index)
                    return
            raise NoEligibleBallot(scene, sorted(ballot.eligible_groups))
        if group not in ballot.eligible_groups:
            raise NoEligibleBallot(scene, sorted(ballot.eligible_groups))
        tallies[0].cast(sid, option_index)

    def reset(self, scene: str):
        for t in self._tallies.get(scene, []):
            t.reset()

    def clear_voted_only(self, scene: str):
        for t in self._tallies.get(scene, []):
            t.voted.clear()

    def leaders(self, scene: str) -> list[dict] | None:
        """Leader report per tally, or None when ``scene`` has no ballot."""
        ballot = self._ballots.get(scene)
        if ballot is None:
            return None
        tallies = self._tallies[scene]
        if isinstance(ballot, CompositeBallot):
            parts = [(sb.group_label, sb.options, t) for sb, t in zip(ballot.sub_ballots, tallies)]
        else:
            parts = [(None, ballot.options, tallies[0])]
        report = []
        for label, options, tally in parts:
            winners, top = tally.leaders(options)
            report.append({
                "group_label": label,
                "vote_winner": winners,
                "vote_count": top,
                "votes": _votes(options, tally),
            })
        return report
