import logging
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional, Tuple, Union

logger = logging.getLogger(__name__)

Ranking = Tuple[int, ...]

CANDIDATE_NAME_PATTERN = re.compile(r"# Candidate \d+$")


class BallotFileError(ValueError):
    """Raised when a ballot file is inconsistent with its own header."""

    def __init__(self, problems: List[str]):
        self.problems = list(problems)
        super().__init__("Invalid ballot file: " + "; ".join(self.problems))


@dataclass
class ElectionInfo:
    """
    Structured contents of a BLT ballot file.

    Candidate ids are 0-based indices into ``names``. Rankings are stored once
    per distinct ordering, with the number of identical ballots kept in the
    parallel ``unique_ballots_weight`` list.
    """

    names: List[str] = field(default_factory=list)
    num_candidates: Optional[int] = None
    num_seats: Optional[int] = None
    title: str = ""
    withdrawn: List[int] = field(default_factory=list)
    unique_ballots: List[Ranking] = field(default_factory=list)
    unique_ballots_weight: List[int] = field(default_factory=list)
    dirty_ballots_count: int = 0
    cleaned: bool = False

    @property
    def num_ballots(self) -> int:
        """Total weight of the stored rankings."""
        return sum(self.unique_ballots_weight)

    def ballots(self) -> Dict[Ranking, int]:
        """Rankings mapped to their weights, in order of first appearance."""
        return dict(zip(self.unique_ballots, self.unique_ballots_weight))


def _parse_ids(tokens: List[str]) -> List[int]:
    ids = []
    for token in tokens:
        try:
            ids.append(int(token))
        except ValueError:
            continue
    return ids


def parse(text: str) -> ElectionInfo:
    """
    Parse the text of a BLT ballot file.

    Parsing is best-effort: lines that match no known shape are skipped and a
    garbled header leaves ``num_candidates``/``num_seats`` unset. Use
    ``validate`` to reject such records.

    Args:
        text: Contents of the ballot file

    Returns:
        Uncleaned ElectionInfo (candidate ids still include withdrawn ones)
    """
    info = ElectionInfo()
    weights: Dict[Ranking, int] = {}

    for line_index, raw_line in enumerate(text.split("\n")):
        line = raw_line.rstrip("\r")

        if line_index == 0:
            # "x y" => x candidates running for y seats
            header = line.split(" ")
            try:
                info.num_candidates = int(header[0])
                info.num_seats = int(header[1])
            except (IndexError, ValueError):
                logger.warning(f"Could not read ballot file header: {line!r}")
        elif line.startswith("-"):
            ids = [abs(i) for i in _parse_ids(line.split(" "))]
            info.withdrawn = [i - 1 for i in ids if i]
        elif line.startswith("1 ") and line.endswith("0"):
            # ballots always carry weight 1, terminated by 0
            ranking = tuple(i - 1 for i in _parse_ids(line[2:-2].split(" ")))
            weights[ranking] = weights.get(ranking, 0) + 1
        elif CANDIDATE_NAME_PATTERN.search(line):
            parts = line.split('"')
            info.names.append(parts[1] if len(parts) > 1 else "")
        elif line.endswith('"'):
            info.title = line[1:-1]

    info.unique_ballots = list(weights)
    info.unique_ballots_weight = list(weights.values())
    info.dirty_ballots_count = sum(info.unique_ballots_weight)

    logger.info(
        f"Parsed {info.dirty_ballots_count} ballots "
        f"({len(info.unique_ballots)} distinct rankings) for {len(info.names)} candidates"
    )

    return info


def clean(info: ElectionInfo) -> ElectionInfo:
    """
    Remove withdrawn candidates from the ballots and renumber the rest.

    Surviving candidate ids are shifted down to a contiguous 0-based range,
    rankings that become identical are merged and rankings that end up empty
    are dropped.

    Args:
        info: Record returned by ``parse``; modified in place

    Returns:
        The same record, cleaned
    """
    if info.cleaned:
        raise BallotFileError(["ballot file has already been cleaned"])

    num_candidates = info.num_candidates or 0
    withdrawn = set(info.withdrawn)

    # old id -> new id, None for withdrawn candidates
    new_ids: Dict[int, Optional[int]] = {}
    shift = 0
    for candidate in range(num_candidates):
        if candidate in withdrawn:
            new_ids[candidate] = None
            shift += 1
        else:
            new_ids[candidate] = candidate - shift

    weights: Dict[Ranking, int] = {}
    for ranking, weight in info.ballots().items():
        cleaned: List[int] = []
        for candidate in ranking:
            # ids outside the declared range stay out of range for validate()
            new_id = new_ids.get(candidate, candidate - shift)
            if new_id is not None and new_id not in cleaned:
                cleaned.append(new_id)

        if not cleaned:
            # only withdrawn candidates were ranked
            continue

        key = tuple(cleaned)
        weights[key] = weights.get(key, 0) + weight

    info.unique_ballots = list(weights)
    info.unique_ballots_weight = list(weights.values())
    info.names = [name for index, name in enumerate(info.names) if index not in withdrawn]
    if info.num_candidates is not None:
        info.num_candidates -= len(info.withdrawn)
    info.cleaned = True

    if info.withdrawn:
        logger.info(f"Removed {len(info.withdrawn)} withdrawn candidates from the ballots")

    return info


def validate(info: ElectionInfo) -> None:
    """
    Check that a cleaned record is consistent with its own header.

    Raises:
        BallotFileError: listing every problem found
    """
    problems = []

    if info.num_candidates is None or info.num_seats is None:
        problems.append("missing or unreadable header line")
    else:
        if info.num_seats < 1:
            problems.append(f"number of seats must be positive, got {info.num_seats}")
        if info.num_seats > info.num_candidates:
            problems.append(
                f"{info.num_seats} seats but only {info.num_candidates} candidates"
            )
        if len(info.names) != info.num_candidates:
            problems.append(
                f"header declares {info.num_candidates} candidates "
                f"but {len(info.names)} names were found"
            )
        out_of_range = sorted(
            {
                candidate
                for ranking in info.unique_ballots
                for candidate in ranking
                if not 0 <= candidate < info.num_candidates
            }
        )
        if out_of_range:
            problems.append(f"ballots rank unknown candidates {out_of_range}")

    if not info.unique_ballots:
        problems.append("no non-empty ballots")

    if problems:
        raise BallotFileError(problems)


def load_ballot_file(path: Union[str, Path]) -> ElectionInfo:
    """
    Read, clean and validate a ballot file from disk.

    Args:
        path: Path to a .blt file

    Returns:
        Cleaned, validated ElectionInfo
    """
    path = Path(path)
    logger.info(f"Loading ballot file: {path}")

    info = clean(parse(path.read_text(encoding="utf-8")))
    validate(info)
    return info
