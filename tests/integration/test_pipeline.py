"""
Integration tests for the full counting pipeline.

These tests read ballot files from disk, run the count and render the report
the way the command-line scripts do.
"""

import os
import subprocess
import sys
from pathlib import Path

import pandas as pd
import pytest

from ballots.blt_parser import BallotFileError, clean, load_ballot_file, parse
from meek.report import TextReport
from meek.stv import MeekSTV
from meek.tiebreak import FixedTieBreaker, RandomTieBreaker
from meek.verification import check_invariants

SCRIPTS_DIR = Path(__file__).parent.parent.parent / "scripts"

# scripts print non-ASCII status marks
SCRIPT_ENV = {**os.environ, "PYTHONIOENCODING": "utf-8"}


@pytest.mark.integration
class TestPipeline:
    """Test counting ballot files written to disk."""

    def test_file_to_report(self, tmp_path, elimination_blt):
        path = tmp_path / "election.blt"
        path.write_text(elimination_blt, encoding="utf-8")

        stv = MeekSTV(load_ballot_file(path), tie_breaker=FixedTieBreaker())
        winners = stv.count_ballots()
        report = TextReport(stv).generate()

        assert winners == [1]
        assert report.endswith("Winner is Bob.")
        assert check_invariants(stv) == []

    def test_invalid_file_rejected(self, tmp_path, make_blt):
        path = tmp_path / "invalid.blt"
        path.write_text(make_blt("2 5", ["1", "3"], ["A", "B"]), encoding="utf-8")

        with pytest.raises(BallotFileError) as excinfo:
            load_ballot_file(path)

        assert len(excinfo.value.problems) == 2

    def test_larger_election(self, make_blt):
        """Test a five-seat count mixing surplus transfers and eliminations."""
        names = [f"Candidate {i}" for i in range(1, 13)]
        patterns = [
            ("1 2 3", 9),
            ("2 1 4", 7),
            ("3 5 6", 6),
            ("4 7", 5),
            ("5 3 8", 5),
            ("6 9 10", 4),
            ("7 4 11", 3),
            ("8 12", 3),
            ("9 6", 2),
            ("10 11 12", 2),
            ("11 1", 1),
            ("12 2 5", 1),
        ]
        ballots = [ranking for ranking, weight in patterns for _ in range(weight)]

        stv = MeekSTV(clean(parse(make_blt("12 5", ballots, names))), RandomTieBreaker(1))
        winners = stv.count_ballots()

        assert len(winners) == 5
        assert check_invariants(stv) == []

        summary = stv.get_round_summary()
        assert len(summary) == stv.num_rounds * 12
        assert summary["round"].max() == stv.num_rounds

        final = stv.get_final_results()
        assert sorted(final[final["status"] == "elected"]["candidate_id"]) == winners

        report = TextReport(stv).generate()
        lines = report.split("\n")
        # the closing winners line is not wrapped
        assert all(len(line) <= 79 for line in lines[:-1])
        assert lines[-1].startswith("Winners are ")


@pytest.mark.integration
class TestScripts:
    """Test the command-line front ends."""

    def test_run_meek_export(self, tmp_path, samples_dir):
        export = tmp_path / "results.csv"
        output = tmp_path / "report.txt"

        result = subprocess.run(
            [
                sys.executable,
                str(SCRIPTS_DIR / "run_meek.py"),
                str(samples_dir / "surplus.blt"),
                "--seed",
                "0",
                "--output",
                str(output),
                "--export",
                str(export),
            ],
            capture_output=True,
            env=SCRIPT_ENV,
            text=True,
        )

        assert result.returncode == 0, result.stderr
        assert output.read_text(encoding="utf-8") == (
            (samples_dir / "surplus.txt").read_text(encoding="utf-8").rstrip("\n")
        )

        final = pd.read_csv(export)
        assert list(final["candidate_name"]) == ["Alice", "Bob", "Carol"]
        rounds = pd.read_csv(tmp_path / "results_rounds.csv")
        assert len(rounds) == 6

    def test_run_meek_missing_file(self, tmp_path):
        result = subprocess.run(
            [sys.executable, str(SCRIPTS_DIR / "run_meek.py"), str(tmp_path / "none.blt")],
            capture_output=True,
            env=SCRIPT_ENV,
            text=True,
        )

        assert result.returncode == 1

    def test_verify_report(self, samples_dir):
        result = subprocess.run(
            [
                sys.executable,
                str(SCRIPTS_DIR / "verify_report.py"),
                str(samples_dir / "elimination.blt"),
                str(samples_dir / "elimination.txt"),
            ],
            capture_output=True,
            env=SCRIPT_ENV,
            text=True,
        )

        assert result.returncode == 0, result.stderr
        assert "VERIFICATION PASSED" in result.stdout

    def test_verify_report_mismatch(self, samples_dir):
        result = subprocess.run(
            [
                sys.executable,
                str(SCRIPTS_DIR / "verify_report.py"),
                str(samples_dir / "surplus.blt"),
                str(samples_dir / "elimination.txt"),
            ],
            capture_output=True,
            env=SCRIPT_ENV,
            text=True,
        )

        assert result.returncode == 1
        assert "First difference at line 1:" in result.stdout
