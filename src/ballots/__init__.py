"""
Ballot file handling.

Reads BLT-style plaintext ballot exports into ElectionInfo records.
"""

from .blt_parser import (
    BallotFileError,
    ElectionInfo,
    clean,
    load_ballot_file,
    parse,
    validate,
)

__all__ = [
    "BallotFileError",
    "ElectionInfo",
    "clean",
    "load_ballot_file",
    "parse",
    "validate",
]
