"""Tests for ballot definitions, tallies and leader reporting."""

import pytest

from ballots import CompositeBallot, SimpleBallot, SubBallot, Tally, VoteStore
from errors import (AlreadyVoted, InvalidOption, NoEligibleBallot,
                    StateConflictError, UnknownScene, ValidationError)


def _simple():
    return SimpleBallot(options=("a", "b", "c"), eligible_groups=frozenset({1}))


def _composite():
    return CompositeBallot(sub_ballots=(
        SubBallot("Druids", "Share?", ("yes", "no"), frozenset({2})),
        SubBallot("Rogues", "Steal?", ("open", "shut", "burn"), frozenset({3})),
    ))


@pytest.fixture
def store():
    return VoteStore({"Trial": _simple(), "Council": _composite()})


class TestTally:
    def test_cast_increments_and_records(self):
        t = Tally.for_options(["a", "b"])
        t.cast("s1", 1)
        assert t.counts == [0, 1]
        assert t.voted == {"s1"}

    def test_second_vote_rejected_without_touching_counts(self):
        t = Tally.for_options(["a", "b"])
        t.cast("s1", 0)
        with pytest.raises(AlreadyVoted):
            t.cast("s1", 1)
        assert t.counts == [1, 0]

    @pytest.mark.parametrize("bad", [-1, 2, True, "0", None, 1.0])
    def test_bad_option(self, bad):
        t = Tally.for_options(["a", "b"])
        with pytest.raises(InvalidOption):
            t.cast("s1", bad)
        assert t.counts == [0, 0]
        assert not t.voted

    def test_leaders_all_zero_is_no_leader(self):
        t = Tally.for_options(["a", "b"])
        assert t.leaders(["a", "b"]) == ([], 0)

    def test_leaders_reports_ties(self):
        t = Tally(counts=[2, 1, 2])
        assert t.leaders(["a", "b", "c"]) == (["a", "c"], 2)


class TestVoteStore:
    def test_describe_unknown_scene_is_none(self, store):
        assert store.describe("Waiting") is None
        assert not store.is_voting("Waiting")

    def test_describe_simple(self, store):
        snap = store.describe("Trial")
        assert snap == {
            "name": "Trial",
            "kind": "simple",
            "eligibleGroups": [1],
            "options": ["a", "b", "c"],
            "counts": [0, 0, 0],
        }

    def test_describe_composite_lists_union_of_groups(self, store):
        snap = store.describe("Council")
        assert snap["kind"] == "composite"
        assert snap["eligibleGroups"] == [2, 3]
        assert [sb["groupLabel"] for sb in snap["subBallots"]] == ["Druids", "Rogues"]
        assert snap["subBallots"][1]["counts"] == [0, 0, 0]

    def test_cast_unknown_scene(self, store):
        with pytest.raises(UnknownScene):
            store.cast_vote("Nope", "s1", 0, 1)

    def test_cast_wrong_group_simple(self, store):
        with pytest.raises(NoEligibleBallot) as exc:
            store.cast_vote("Trial", "s1", 0, 2)
        assert exc.value.details == {"scene": "Trial", "required": [1]}
        assert store.describe("Trial")["counts"] == [0, 0, 0]

    def test_composite_only_matching_sub_ballot_changes(self, store):
        store.cast_vote("Council", "s3", 2, 3)
        snap = store.describe("Council")
        assert snap["subBallots"][0]["counts"] == [0, 0]
        assert snap["subBallots"][1]["counts"] == [0, 0, 1]
        assert snap["eligibleGroups"] == [2, 3]

    def test_composite_no_sub_ballot_for_group(self, store):
        with pytest.raises(NoEligibleBallot):
            store.cast_vote("Council", "s1", 0, 1)

    def test_composite_already_voted(self, store):
        store.cast_vote("Council", "s2", 0, 2)
        with pytest.raises(AlreadyVoted):
            store.cast_vote("Council", "s2", 1, 2)

    def test_error_taxonomy(self):
        assert issubclass(AlreadyVoted, StateConflictError)
        assert issubclass(NoEligibleBallot, StateConflictError)
        assert issubclass(InvalidOption, ValidationError)
        assert issubclass(UnknownScene, ValidationError)

    def test_sum_matches_voters_after_each_vote(self, store):
        for i in range(12):
            store.cast_vote("Trial", f"s{i}", i % 3, 1)
            tally = store.tallies("Trial")[0]
            assert sum(tally.counts) == len(tally.voted)

    def test_reset_zeroes_everything(self, store):
        store.cast_vote("Council", "s2", 0, 2)
        store.cast_vote("Council", "s3", 1, 3)
        store.reset("Council")
        for tally in store.tallies("Council"):
            assert sum(tally.counts) == 0
            assert not tally.voted
        assert all(part["vote_winner"] == [] for part in store.leaders("Council"))

    def test_clear_voted_only_keeps_counts(self, store):
        store.cast_vote("Trial", "s1", 1, 1)
        store.clear_voted_only("Trial")
        assert store.describe("Trial")["counts"] == [0, 1, 0]
        store.cast_vote("Trial", "s1", 1, 1)
        assert store.describe("Trial")["counts"] == [0, 2, 0]

    def test_leaders_simple(self, store):
        store.cast_vote("Trial", "s1", 0, 1)
        store.cast_vote("Trial", "s2", 2, 1)
        [part] = store.leaders("Trial")
        assert part["group_label"] is None
        assert part["vote_winner"] == ["a", "c"]
        assert part["vote_count"] == 1
        assert part["votes"][1] == {"option": "b", "count": 0}

    def test_leaders_composite_per_sub_ballot(self, store):
        store.cast_vote("Council", "s2", 1, 2)
        druids, rogues = store.leaders("Council")
        assert druids["group_label"] == "Druids"
        assert druids["vote_winner"] == ["no"]
        assert rogues["vote_winner"] == []

    def test_leaders_without_ballot(self, store):
        assert store.leaders("Waiting") is None
