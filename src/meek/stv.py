import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Set, Tuple

import pandas as pd

from ballots.blt_parser import BallotFileError, ElectionInfo

from .ballot_tree import BallotTree
from .tiebreak import RandomTieBreaker, TieBreaker
from .wording import join_list, pluralise

logger = logging.getLogger(__name__)

# digits of precision for the fixed-point arithmetic
PRECISION = 6

# a count still running after this many rounds has hit a bug
MAX_ROUNDS = 1000


class CountError(RuntimeError):
    """Raised when a count cannot reach a valid result."""


@dataclass
class RoundState:
    """Represents one round of a Meek STV count."""

    count: List[int]
    keep_factor: List[int]
    exhausted: int = 0
    thresh: int = 0
    surplus: int = 0
    message: str = ""
    action: Optional[Tuple[str, List[int]]] = None
    winners_text: str = ""
    surplus_text: str = ""
    eliminate_text: str = ""


@dataclass
class _Cluster:
    votes: int
    candidates: List[int] = field(default_factory=list)


def format_significant(value: int, p: int, digits: int = 6) -> str:
    """
    Format a fixed-point value in ``(0, 1]`` with a number of significant digits.

    ``583334`` at ``p = 10**6`` becomes ``"0.583334"``, ``p`` itself becomes
    ``"1.00000"``.
    """
    if value <= 0:
        return f"{0:.{digits - 1}f}"
    exponent = len(str(value)) - len(str(p))
    decimals = max(digits - 1 - exponent, 0)
    return f"{value / p:.{decimals}f}"


class MeekSTV:
    """
    Meek method Single Transferable Vote count.

    All vote values are integers scaled by ``p = 10**prec``. Every product is
    floored back to that scale, except the keep factor update which rounds up
    so a winner never drops below the threshold through rounding.
    """

    def __init__(
        self,
        election: ElectionInfo,
        tie_breaker: Optional[TieBreaker] = None,
        prec: int = PRECISION,
    ):
        """
        Initialize the count.

        Args:
            election: Cleaned ballot file contents
            tie_breaker: Strategy for ties no earlier round can break
                (default: RandomTieBreaker)
            prec: Digits of precision for fixed-point values
        """
        if election.num_candidates is None or election.num_seats is None:
            raise BallotFileError(["missing or unreadable header line"])
        if not election.unique_ballots_weight:
            raise BallotFileError(["no non-empty ballots"])
        if election.withdrawn and not election.cleaned:
            logger.warning("Counting a ballot file whose withdrawn candidates were not removed")

        self.names = list(election.names)
        self.num_candidates = election.num_candidates
        self.num_seats = election.num_seats
        self.title = election.title
        self.withdrawn = list(election.withdrawn)
        self.dirty_ballots_count = election.dirty_ballots_count

        self.unique_ballots = list(election.unique_ballots)
        self.unique_ballots_weight = list(election.unique_ballots_weight)
        self.num_ballots = sum(self.unique_ballots_weight)

        self.prec = prec
        self.p = 10**prec
        self.tie_breaker = tie_breaker or RandomTieBreaker()

        self.rounds: List[RoundState] = []
        self.round = 0
        self.num_rounds = 0
        self.first_elimination_round = True

        self.continuing: Set[int] = set(range(self.num_candidates))
        self.winners: Set[int] = set()
        self.losers: Set[int] = set()
        self.won_at_round: Dict[int, int] = {}
        self.lost_at_round: Dict[int, int] = {}

        self.tree = BallotTree(self.unique_ballots, self.unique_ballots_weight)

    @property
    def continuing_and_winners(self) -> Set[int]:
        return self.continuing | self.winners

    @property
    def current(self) -> RoundState:
        return self.rounds[self.round]

    @property
    def previous(self) -> RoundState:
        return self.rounds[self.round - 1]

    def join_names(self, candidates: List[int]) -> str:
        return join_list([self.names[c] for c in candidates])

    def winner_ids(self) -> List[int]:
        """Ids of the winning candidates, sorted."""
        return sorted(self.winners)

    def count_ballots(self) -> List[int]:
        """
        Run the count to completion.

        Returns:
            Sorted ids of the winning candidates

        Raises:
            CountError: if the count does not finish within MAX_ROUNDS rounds
        """
        logger.info(
            f"Starting Meek STV count: {self.num_candidates} candidates, "
            f"{self.num_seats} seats, {self.num_ballots} ballots"
        )

        # count first place votes
        self._allocate_round()
        self._initial_vote_tally()
        self._update_round()
        self._describe_round()

        # transfer surplus votes or eliminate candidates until done
        while not self.election_over():
            if self.round >= MAX_ROUNDS:
                raise CountError(f"Count did not finish within {MAX_ROUNDS} rounds")

            self.round += 1
            self._allocate_round()

            if self._is_surplus_to_transfer():
                self._transfer_surplus_votes()
            else:
                self._eliminate_candidates()

            self._update_round()
            self._describe_round()

        self._update_candidate_status()
        self.check_partition()
        self.num_rounds = self.round + 1

        logger.info(f"Meek STV count complete after {self.num_rounds} rounds")
        logger.info(f"Winners: {self.join_names(self.winner_ids())}")

        return self.winner_ids()

    def election_over(self) -> bool:
        """Whether every seat is filled or too few candidates remain to contest them."""
        return (
            len(self.winners) == self.num_seats
            or len(self.continuing) + len(self.winners) <= self.num_seats
        )

    def check_partition(self) -> None:
        """
        Verify that every candidate is exactly one of continuing, winner or loser.

        Raises:
            CountError: if the sets overlap or miss a candidate
        """
        overlap = (
            (self.continuing & self.winners)
            | (self.continuing & self.losers)
            | (self.winners & self.losers)
        )
        covered = self.continuing | self.winners | self.losers
        if overlap or covered != set(range(self.num_candidates)):
            raise CountError(
                f"Candidate status is inconsistent at round {self.round + 1}: "
                f"continuing={sorted(self.continuing)}, winners={sorted(self.winners)}, "
                f"losers={sorted(self.losers)}"
            )

    def _allocate_round(self) -> None:
        self.rounds.append(
            RoundState(count=[0] * self.num_candidates, keep_factor=[0] * self.num_candidates)
        )

    def _initial_vote_tally(self) -> None:
        # In the beginning all candidates are continuing, so the tree has a
        # single level holding each ballot's first choice.
        self.current.action = ("first", [])
        self.current.keep_factor = [self.p] * self.num_candidates
        self.tree.build(self.continuing_and_winners, self.winners)

    def _update_round(self) -> None:
        state = self.current

        state.count = self.tree.tally(state.keep_factor, self.p, self.num_candidates)
        state.exhausted = self.p * self.num_ballots - sum(state.count)

        # dynamic Droop threshold
        state.thresh = (self.p * self.num_ballots - state.exhausted) // (self.num_seats + 1) + 1

        state.surplus = sum(
            state.count[c] - state.thresh
            for c in self.continuing_and_winners
            if state.count[c] > state.thresh
        )

        new_winners = [c for c in sorted(self.continuing) if state.count[c] >= state.thresh]
        if new_winners:
            state.winners_text = self._new_winners(new_winners)

        self.check_partition()

        action = state.action[0] if state.action else "none"
        logger.info(
            f"Round {self.round + 1} ({action}): threshold {state.thresh / self.p:.6f}, "
            f"surplus {state.surplus / self.p:.6f}, exhausted {state.exhausted / self.p:.6f}"
        )

    def _new_winners(self, winners: List[int], status: str = "over") -> str:
        """
        Move candidates to the winners and announce them.

        Args:
            winners: Candidates who won this round
            status: "over" if they reached the threshold, "under" if they won
                because too few candidates were left

        Returns:
            Text announcing the new winners
        """
        new_winners = sorted(winners)

        for winner in new_winners:
            if self.current.count[winner] <= 0:
                continue
            self.continuing.discard(winner)
            self.winners.add(winner)
            self.won_at_round[winner] = self.round

        names = self.join_names(new_winners)
        n = len(new_winners)
        text_start = f"{pluralise('Candidate', n)} {names}"
        text_end = f"{pluralise('is', n)} elected. "

        if status == "over":
            return f"{text_start} {pluralise('has', n)} reached the threshold and {text_end}"
        return f"{text_start} {text_end}"

    def _new_losers(self, losers: List[int]) -> None:
        for loser in losers:
            self.continuing.discard(loser)
            self.losers.add(loser)
            self.lost_at_round[loser] = self.round

    def _describe_round(self) -> None:
        state = self.current
        action = state.action[0] if state.action else None

        text = ""
        if action == "first":
            text = "Count of first choices. "
        elif action == "surplus":
            text = state.surplus_text
        elif action == "eliminate":
            text = state.eliminate_text

        state.message = text + state.winners_text

    def _is_surplus_to_transfer(self) -> bool:
        return (
            self.previous.surplus >= 1
            and not self._sure_losers()
            and not self._in_infinite_loop()
        )

    def _in_infinite_loop(self) -> bool:
        # keep factors stopped changing: surplus can no longer be transferred
        return self.round > 1 and (
            self.rounds[self.round - 1].keep_factor == self.rounds[self.round - 2].keep_factor
        )

    def _sure_losers(self) -> List[int]:
        """
        Find the continuing candidates who cannot win even with all of the surplus.

        Candidates with equal votes are always treated alike, and no more
        candidates are returned than may be eliminated while keeping every
        seat contested. Earlier rounds are not consulted.
        """
        state = self.previous
        max_num_losers = len(self.continuing) + len(self.winners) - self.num_seats
        if max_num_losers >= len(self.continuing):
            return []

        continuing = sorted(self.continuing)
        total_continuing_vote = sum(state.count[c] for c in continuing)
        if total_continuing_vote == 0 and state.surplus == 0:
            return continuing

        # group candidates with the same number of votes, fewest votes first
        clusters: List[_Cluster] = []
        for candidate in sorted(continuing, key=lambda c: state.count[c]):
            votes = state.count[candidate]
            if clusters and clusters[-1].votes == votes:
                clusters[-1].candidates.append(candidate)
            else:
                clusters.append(_Cluster(votes, [candidate]))

        losers: List[int] = []
        potential_losers: List[int] = []
        total = state.surplus
        for cluster, next_cluster in zip(clusters, clusters[1:]):
            total += len(cluster.candidates) * cluster.votes
            potential_losers.extend(cluster.candidates)

            if total < next_cluster.votes and len(potential_losers) <= max_num_losers:
                losers = list(potential_losers)

        return losers

    def _transfer_surplus_votes(self) -> None:
        self.current.action = ("surplus", [])
        self.tree.update(self.losers, self.continuing_and_winners, self.winners)

        description = self._update_keep_factors()
        self.current.surplus_text = "Count after transferring surplus votes. " + description

    def _update_keep_factors(self) -> str:
        """
        Lower the keep factors of candidates above the threshold.

        Returns:
            Text listing the new keep factors
        """
        state, previous = self.current, self.previous
        updated = []

        for candidate in sorted(self.continuing_and_winners):
            if previous.count[candidate] > previous.thresh:
                state.action[1].append(candidate)

                # rounded up so the reduced count cannot fall under the threshold
                keep_thresh = previous.keep_factor[candidate] * previous.thresh
                state.keep_factor[candidate] = -(-keep_thresh // previous.count[candidate])

                keep = format_significant(state.keep_factor[candidate], self.p)
                updated.append(f"{self.names[candidate]}, {keep}")
                logger.debug(f"Keep factor of {self.names[candidate]} lowered to {keep}")
            else:
                state.keep_factor[candidate] = previous.keep_factor[candidate]

        if not self.winners:
            return ""
        return (
            "Keep factors of candidates who have exceeded the threshold: "
            + join_list(updated)
            + ". "
        )

    def _eliminate_candidates(self) -> None:
        eliminated, desc_choose = self._select_candidates_to_eliminate()
        eliminated.sort()
        self.current.action = ("eliminate", eliminated)

        desc_trans = f"Count after eliminating {self.join_names(eliminated)} and transferring votes. "
        self.current.eliminate_text = desc_trans + desc_choose

        self.tree.update(self.losers, self.continuing_and_winners, self.winners)
        self._copy_keep_factors()

    def _select_candidates_to_eliminate(self) -> Tuple[List[int], str]:
        """
        Choose the candidates to eliminate this round.

        Returns:
            The candidates and text describing how they were chosen
        """
        if self._in_infinite_loop():
            candidate, desc = self.break_weak_tie(
                self.round - 1, sorted(self.continuing), "candidates to eliminate"
            )
            self._new_losers([candidate])
            self.first_elimination_round = False
            return [candidate], f"Candidates tied within precision of computations. {desc}"

        desc = "All losing candidates are eliminated. "
        eliminated = self._sure_losers()

        # On the first elimination round one more candidate may go if the
        # surplus is zero, the sure losers have no votes and enough
        # candidates remain.
        if self.first_elimination_round and self.previous.surplus == 0:
            others = [c for c in sorted(self.continuing) if c not in eliminated]

            if len(others) + len(self.winners) > self.num_seats:
                if sum(self.previous.count[c] for c in eliminated) == 0:
                    candidate, tie_desc = self.break_weak_tie(
                        self.round - 1, others, "candidates to eliminate"
                    )
                    eliminated.append(candidate)
                    desc += tie_desc

        if not self.first_elimination_round or not eliminated:
            eliminated = self._sure_losers()

            if not eliminated:
                candidate, tie_desc = self.break_weak_tie(
                    self.round - 1, sorted(self.continuing), "candidates to eliminate"
                )
                eliminated = [candidate]
                desc += tie_desc

        self.first_elimination_round = False
        self._new_losers(eliminated)

        return eliminated, desc

    def _copy_keep_factors(self) -> None:
        for candidate in self.continuing_and_winners:
            self.current.keep_factor[candidate] = self.previous.keep_factor[candidate]

    def _update_candidate_status(self) -> None:
        desc = ""

        if len(self.winners) == self.num_seats:
            # all others are losers
            self._new_losers(sorted(self.continuing))
        else:
            # candidates with no votes are losers
            for candidate in sorted(self.continuing):
                if self.current.count[candidate] == 0:
                    self._new_losers([candidate])

            # reject candidates until no more remain than open seats
            while len(self.continuing) + len(self.winners) > self.num_seats:
                candidate, tie_desc = self.break_weak_tie(
                    self.round, sorted(self.continuing), "winners"
                )
                self._new_losers([candidate])
                desc += tie_desc

            # everyone else is a winner
            if self.continuing:
                desc += self._new_winners(sorted(self.continuing), "under")

        self.current.message += desc

    def break_weak_tie(
        self, round_index: int, candidates: List[int], what: str = ""
    ) -> Tuple[int, str]:
        """
        Pick the candidate with the fewest votes, using earlier rounds to break ties.

        A weak tie holds at the given round but not at some earlier one; it
        is broken by the most recent earlier round where exactly one of the
        tied candidates had the fewest votes. A strong tie holds at every
        round and goes to the tie-breaker.

        Args:
            round_index: Round whose counts are compared first
            candidates: Candidates to choose from
            what: What the choice is for, used in the description

        Returns:
            The chosen candidate and text describing the tie, if any
        """
        tied = self.find_tied_candidates(candidates, self.rounds[round_index].count)
        if not tied:
            raise CountError(f"No candidates to choose {what} from")
        if len(tied) == 1:
            return tied[0], ""

        tied = sorted(tied)
        desc = f"Candidates {self.join_names(tied)} were tied when choosing {what}. "

        for earlier in reversed(range(round_index)):
            tied_at_round = self.find_tied_candidates(tied, self.rounds[earlier].count)
            if len(tied_at_round) == 1:
                chosen = tied_at_round[0]
                desc += (
                    f"Candidate {self.names[chosen]} was chosen by breaking "
                    f"the tie at round {earlier + 1}. "
                )
                return chosen, desc

        chosen = self.tie_breaker.choose(tied)
        logger.warning(
            f"Strong tie between {self.join_names(tied)} broken randomly in favour of "
            f"eliminating {self.names[chosen]}"
        )
        desc += f"Candidate {self.names[chosen]} was chosen by breaking the tie randomly. "

        return chosen, desc

    @staticmethod
    def find_tied_candidates(candidates: List[int], values: List[int]) -> List[int]:
        """Return the candidates sharing the lowest value, in the given order."""
        if not candidates:
            return []
        lowest = min(values[c] for c in candidates)
        return [c for c in candidates if values[c] == lowest]

    def get_round_summary(self) -> pd.DataFrame:
        """
        Get summary of all rounds as a DataFrame.

        Returns:
            DataFrame with one row per round and candidate
        """
        if not self.rounds:
            return pd.DataFrame()

        summary_data = []
        for index, state in enumerate(self.rounds):
            for candidate in range(self.num_candidates):
                summary_data.append(
                    {
                        "round": index + 1,
                        "candidate_id": candidate,
                        "candidate_name": self.names[candidate],
                        "votes": state.count[candidate] / self.p,
                        "keep_factor": state.keep_factor[candidate] / self.p,
                        "threshold": state.thresh / self.p,
                        "status": self._get_candidate_status(candidate, index),
                        "exhausted_votes": state.exhausted / self.p,
                    }
                )

        return pd.DataFrame(summary_data)

    def _get_candidate_status(self, candidate: int, round_index: int) -> str:
        """Get the status of a candidate in a given round."""
        won = self.won_at_round.get(candidate)
        lost = self.lost_at_round.get(candidate)

        if won == round_index:
            return "elected"
        elif lost == round_index:
            return "eliminated"
        elif won is not None and won < round_index:
            return "already_elected"
        elif lost is not None and lost < round_index:
            return "already_eliminated"
        else:
            return "continuing"

    def get_final_results(self) -> pd.DataFrame:
        """
        Get final election results.

        Returns:
            DataFrame with final results for all candidates
        """
        if not self.rounds:
            return pd.DataFrame()

        final_round = self.rounds[-1]

        results_data = []
        for candidate in range(self.num_candidates):
            won = self.won_at_round.get(candidate)
            lost = self.lost_at_round.get(candidate)
            results_data.append(
                {
                    "candidate_id": candidate,
                    "candidate_name": self.names[candidate],
                    "final_votes": final_round.count[candidate] / self.p,
                    "status": "elected" if candidate in self.winners else "not_elected",
                    "election_round": won + 1 if won is not None else None,
                    "elimination_round": lost + 1 if lost is not None else None,
                }
            )

        return pd.DataFrame(results_data)
