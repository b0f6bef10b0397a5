import logging
import math
import re
from typing import List, Optional

from .stv import CountError, MeekSTV
from .wording import join_list, pluralise

logger = logging.getLogger(__name__)

# width budget of the report, in characters
MAX_WIDTH = 79

LABELS = ["Exhausted", "Surplus", "Threshold"]


def format_fixed(value: int, p: int, prec: int) -> str:
    """Render a fixed-point integer with ``prec`` decimals."""
    sign = "-" if value < 0 else ""
    whole, fraction = divmod(abs(value), p)
    return f"{sign}{whole}.{fraction:0{prec}d}"


def wrap_message(message: str, width: int) -> List[str]:
    """
    Break a message into lines of at most ``width`` characters at whitespace.

    A word longer than the width is left on a line of its own.
    """
    pattern = rf"(?![^\n]{{1,{width}}}\Z)([^\n]{{1,{width}}})\s"
    return re.sub(pattern, r"\1\n", message).split("\n")


class TextReport:
    """
    Fixed-width text report of a completed Meek STV count.

    The output is a pure function of the count: generating it twice yields the
    same text, byte for byte.
    """

    def __init__(self, results: MeekSTV):
        self.results = results

    def generate(self) -> str:
        """
        Pretty print election results in text format.

        Returns:
            The text report

        Raises:
            CountError: if the count has not been run
        """
        stv = self.results
        if not stv.num_rounds:
            raise CountError("Cannot report on a count that has not been run")

        rounds = stv.rounds[: stv.num_rounds]

        # the largest number to appear on the report sets the column width
        max_value = max(
            [state.surplus for state in rounds]
            + [state.thresh for state in rounds]
            + [votes for state in rounds for votes in state.count]
        )
        max_col_width = math.floor(math.log10(max_value / stv.p)) + stv.prec + 2

        # candidates + exhausted + surplus + threshold
        n_col = stv.num_candidates + len(LABELS)

        # how many columns fit in one row, and how many rows are needed
        max_n_sub_col = (MAX_WIDTH - 2) // (max_col_width + 1)
        n_row = -(-n_col // max_n_sub_col)

        # columns per row, spread evenly across rows
        n_sub_col = -(-n_col // n_row)
        col_width = (MAX_WIDTH - 2) // n_sub_col - 1
        width = 2 + n_sub_col * (col_width + 1)

        # pad header labels to a whole number of column widths
        max_len = max([len(name) for name in stv.names] + [len(label) for label in LABELS])
        max_name_len = max_len + col_width - (max_len % col_width)
        header = [label.ljust(max_name_len) for label in stv.names + LABELS]
        n_sub_row = -(-max_name_len // col_width)

        out = [self.generate_header()]

        for r in range(n_row):
            for sr in range(n_sub_row):
                line = " R" if r == 0 and sr == 0 else "  "
                begin = sr * col_width
                end = begin + col_width

                for sc in range(n_sub_col):
                    h = r * n_sub_col + sc
                    if h >= len(header):
                        break
                    line += f"|{header[h][begin:end]}"

                out.append(f"{line}\n")

            if r < n_row - 1:
                dashes = "-" * col_width
                out.append(f"  |{(dashes + '+') * (n_sub_col - 1)}{dashes}\n")

        for round_index in range(stv.num_rounds):
            out.append(self._round_results(round_index, width, n_sub_col, col_width))

        out.append("\n")
        out.append(self.winner_text())

        logger.debug(f"Generated report: {stv.num_rounds} rounds, {n_row} row groups")

        return "".join(out)

    def generate_header(self) -> str:
        stv = self.results
        dirty_count = stv.num_candidates + len(stv.withdrawn)

        return (
            f"Ballot file contains {dirty_count} candidates and {stv.dirty_ballots_count} ballots.\n"
            f"{self.withdrawn_text()}\n"
            f"Ballot file contains {stv.num_ballots} non-empty ballots.\n"
            "\n"
            f"Counting votes for {stv.title} using Meek STV.\n"
            f"{stv.num_candidates} candidates running for {stv.num_seats} "
            f"{pluralise('seat', stv.num_seats)}.\n\n"
        )

    def withdrawn_text(self) -> str:
        withdrawn = self.results.withdrawn

        if not withdrawn:
            return "No candidates have withdrawn."
        elif len(withdrawn) == 1:
            return f"Removed withdrawn candidate {withdrawn[0]} from the ballots."
        else:
            ids = [str(candidate) for candidate in sorted(withdrawn)]
            return f"Removed withdrawn candidates {join_list(ids)} from the ballots."

    def values_for_round(self, round_index: int) -> List[Optional[int]]:
        """
        Get the fixed-point values shown in one round's row.

        A candidate already eliminated with no votes gets None (a blank cell),
        so an empty column is not mistaken for a continuing candidate at zero.
        """
        stv = self.results
        state = stv.rounds[round_index]

        values: List[Optional[int]] = []
        for candidate, votes in enumerate(state.count):
            lost = stv.lost_at_round.get(candidate)
            if candidate in stv.losers and lost is not None and lost <= round_index and votes == 0:
                values.append(None)
            else:
                values.append(votes)

        values.extend([state.exhausted, state.surplus, state.thresh])
        return values

    def _round_results(self, round_index: int, width: int, n_sub_col: int, col_width: int) -> str:
        stv = self.results
        out = ["=" * width + "\n"]

        line = str(round_index + 1).rjust(2)
        for index, value in enumerate(self.values_for_round(round_index)):
            if index % n_sub_col == 0 and index > 0:
                line += "\n  "

            field = "" if value is None else format_fixed(value, stv.p, stv.prec)
            line += f"|{field.rjust(col_width)}"

        out.append(line + "\n")
        out.append(f"  |{'-' * (width - 3)}\n")

        message = stv.rounds[round_index].message.strip()
        lines = wrap_message(message, width - 4)
        out.append("\n".join(f"  | {text}" for text in lines) + "\n")

        return "".join(out)

    def winner_text(self) -> str:
        stv = self.results
        names = stv.join_names(stv.winner_ids())

        if len(stv.winners) == 1:
            return f"Winner is {names}."
        return f"Winners are {names}."
