"""
Meek STV counting for multi-seat ranked-choice elections.

This module provides:
- MeekSTV: the round-by-round count, with pandas summaries of each round
- TextReport: the fixed-width text report of a finished count
- check_invariants / ReportVerifier: consistency and golden-report checks

count_election() runs the whole pipeline on the text of a ballot file.
"""

from typing import Optional, Tuple

from ballots.blt_parser import clean, parse, validate

from .report import TextReport
from .stv import PRECISION, CountError, MeekSTV, RoundState
from .tiebreak import FixedTieBreaker, RandomTieBreaker, TieBreaker
from .verification import ReportVerifier, check_invariants, generate_verification_report


def count_election(
    text: str, tie_breaker: Optional[TieBreaker] = None
) -> Tuple[MeekSTV, str]:
    """
    Count a ballot file and render its report.

    Args:
        text: Contents of a BLT ballot file
        tie_breaker: Strategy for strong ties (default: RandomTieBreaker)

    Returns:
        The finished count and the text report
    """
    info = clean(parse(text))
    validate(info)

    stv = MeekSTV(info, tie_breaker=tie_breaker)
    stv.count_ballots()

    return stv, TextReport(stv).generate()


__all__ = [
    "MeekSTV",
    "RoundState",
    "CountError",
    "PRECISION",
    "TextReport",
    "TieBreaker",
    "RandomTieBreaker",
    "FixedTieBreaker",
    "ReportVerifier",
    "check_invariants",
    "generate_verification_report",
    "count_election",
]
