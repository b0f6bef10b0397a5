import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence, Set, Union

logger = logging.getLogger(__name__)


@dataclass
class Leaf:
    """Node of a continuing candidate: the ballots whose count stops here."""

    weight: int = 0
    ballots: List[int] = field(default_factory=list)


@dataclass
class Branch:
    """Node of a winning candidate, split by the next candidate on each ballot."""

    weight: int = 0
    children: Dict[int, "Node"] = field(default_factory=dict)


Node = Union[Leaf, Branch]


class BallotTree:
    """
    Ballots grouped by the order in which they reach non-eliminated candidates.

    The first level holds each ballot's top continuing or winning candidate.
    A winner's node is a Branch keyed by the next such candidate on the same
    ballots, since part of each ballot passes through a winner. Eliminated
    candidates are treated as if they never appeared on the ballots: their
    nodes are removed and their ballots re-added further down the ranking.
    """

    def __init__(self, rankings: Sequence[Sequence[int]], weights: Sequence[int]):
        self.rankings = rankings
        self.weights = weights
        self.root: Dict[int, Node] = {}

    def add_ballot(
        self,
        level: Dict[int, Node],
        index: int,
        ranking: Optional[Sequence[int]],
        active: Set[int],
        winners: Set[int],
    ) -> None:
        """
        Add one ballot (or the tail of one) below the given level.

        Args:
            level: Children mapping to add the ballot to
            index: Index of the ballot in ``rankings``
            ranking: Part of the ballot still to place, the whole ballot if None
            active: Continuing and winning candidates
            winners: Winning candidates
        """
        if ranking is None:
            ranking = self.rankings[index]

        candidate = next((c for c in ranking if c in active), None)
        if candidate is None:
            # only winners and losers left on this ballot, so it is exhausted
            return

        node = level.get(candidate)
        tail = ranking[ranking.index(candidate) + 1 :]

        if candidate in winners:
            if isinstance(node, Leaf):
                node = self._expand(node, candidate, active, winners)
            elif node is None:
                node = Branch()
            level[candidate] = node
            node.weight += self.weights[index]
            self.add_ballot(node.children, index, tail, active, winners)
        else:
            if node is None:
                node = level[candidate] = Leaf()
            node.weight += self.weights[index]
            node.ballots.append(index)

    def _expand(self, leaf: Leaf, candidate: int, active: Set[int], winners: Set[int]) -> Branch:
        branch = Branch(weight=leaf.weight)
        for index in leaf.ballots:
            ranking = self.rankings[index]
            tail = ranking[ranking.index(candidate) + 1 :]
            self.add_ballot(branch.children, index, tail, active, winners)
        return branch

    def build(self, active: Set[int], winners: Set[int]) -> None:
        """Place every ballot in an empty tree."""
        for index in range(len(self.rankings)):
            self.add_ballot(self.root, index, None, active, winners)

    def update(self, losers: Set[int], active: Set[int], winners: Set[int]) -> None:
        """Rewrite the tree after candidates have won or been eliminated."""
        self._update_level(self.root, losers, active, winners)

    def _update_level(
        self, level: Dict[int, Node], losers: Set[int], active: Set[int], winners: Set[int]
    ) -> None:
        self._prune_losers(level, losers, active, winners)
        self._expand_winners(level, losers, active, winners)

    def _prune_losers(
        self, level: Dict[int, Node], losers: Set[int], active: Set[int], winners: Set[int]
    ) -> None:
        for candidate in sorted(losers.intersection(level)):
            node = level.pop(candidate)
            for index in node.ballots:
                ranking = self.rankings[index]
                tail = ranking[ranking.index(candidate) + 1 :]
                self.add_ballot(level, index, tail, active, winners)
            logger.debug(f"Pruned candidate {candidate}, moved {len(node.ballots)} ballots")

    def _expand_winners(
        self, level: Dict[int, Node], losers: Set[int], active: Set[int], winners: Set[int]
    ) -> None:
        for candidate in sorted(winners.intersection(level)):
            node = level[candidate]
            if isinstance(node, Leaf):
                # new winner: split its ballots by their next candidate
                level[candidate] = self._expand(node, candidate, active, winners)
                logger.debug(f"Expanded winner {candidate} over {len(node.ballots)} ballots")
            else:
                self._update_level(node.children, losers, active, winners)

    def tally(self, keep_factor: Sequence[int], p: int, num_candidates: int) -> List[int]:
        """
        Count the votes for one round.

        Each ballot starts with ``p`` units; a candidate keeps
        ``keep_factor / p`` of what reaches it and passes the rest on.
        Every product is floored back to the fixed-point scale.

        Returns:
            Fixed-point vote count per candidate
        """
        count = [0] * num_candidates
        self._tally_level(self.root, p, count, keep_factor, p)
        return count

    def _tally_level(
        self,
        level: Dict[int, Node],
        remainder: int,
        count: List[int],
        keep_factor: Sequence[int],
        p: int,
    ) -> None:
        for candidate, node in level.items():
            count[candidate] += remainder * keep_factor[candidate] * node.weight // p
            passed_on = remainder * (p - keep_factor[candidate]) // p
            if passed_on > 0 and isinstance(node, Branch):
                self._tally_level(node.children, passed_on, count, keep_factor, p)
