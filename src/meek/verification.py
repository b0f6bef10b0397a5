import logging
from pathlib import Path
from typing import Dict, List, Optional, Union

from .stv import MeekSTV

logger = logging.getLogger(__name__)


def check_invariants(stv: MeekSTV) -> List[str]:
    """
    Check the bookkeeping of a completed count.

    Args:
        stv: A MeekSTV whose count has been run

    Returns:
        Descriptions of every violation found; empty if the count is consistent
    """
    violations = []
    total = stv.p * stv.num_ballots

    # each floored product loses under one unit per ballot it carries
    rounding_slack = stv.num_ballots * stv.num_candidates

    previous_exhausted = 0
    for index, state in enumerate(stv.rounds):
        round_number = index + 1

        # vote mass is conserved, rounding losses are counted as exhausted
        if sum(state.count) + state.exhausted != total:
            violations.append(
                f"Round {round_number}: counts plus exhausted sum to "
                f"{sum(state.count) + state.exhausted}, expected {total}"
            )

        expected_thresh = (total - state.exhausted) // (stv.num_seats + 1) + 1
        if state.thresh != expected_thresh:
            violations.append(
                f"Round {round_number}: threshold {state.thresh}, expected {expected_thresh}"
            )

        if state.exhausted < previous_exhausted - rounding_slack:
            violations.append(
                f"Round {round_number}: exhausted weight fell from "
                f"{previous_exhausted} to {state.exhausted}"
            )
        previous_exhausted = state.exhausted

    everyone = set(range(stv.num_candidates))
    if stv.winners | stv.losers | stv.continuing != everyone:
        violations.append("Some candidates are neither continuing, winners nor losers")
    if (
        stv.winners & stv.losers
        or stv.winners & stv.continuing
        or stv.losers & stv.continuing
    ):
        violations.append("Some candidates hold more than one status")

    if len(stv.winners) > stv.num_seats:
        violations.append(f"{len(stv.winners)} winners for {stv.num_seats} seats")

    for violation in violations:
        logger.warning(f"Invariant violated: {violation}")

    return violations


class ReportVerifier:
    """
    Verifies a generated report against an expected report on disk.
    """

    def __init__(self, expected_path: Union[str, Path]):
        """
        Initialize verifier.

        Args:
            expected_path: Path to the expected report text
        """
        self.expected_path = Path(expected_path)
        self.expected: Optional[str] = None

    def load_expected(self) -> str:
        """Load the expected report. A trailing newline in the file is ignored."""
        logger.info(f"Loading expected report from: {self.expected_path}")
        self.expected = self.expected_path.read_text(encoding="utf-8").rstrip("\n")
        return self.expected

    def verify_report(self, report: str, stv: Optional[MeekSTV] = None) -> Dict:
        """
        Compare a report with the expected one.

        Args:
            report: Generated report text
            stv: The count the report was generated from, to also check its
                invariants

        Returns:
            Verification results dictionary
        """
        if self.expected is None:
            self.load_expected()

        logger.info("Verifying report against expected output")

        expected_lines = self.expected.split("\n")
        actual_lines = report.rstrip("\n").split("\n")

        first_difference = None
        for line_number in range(max(len(expected_lines), len(actual_lines))):
            expected = expected_lines[line_number] if line_number < len(expected_lines) else None
            actual = actual_lines[line_number] if line_number < len(actual_lines) else None
            if expected != actual:
                first_difference = {
                    "line": line_number + 1,
                    "expected": expected,
                    "actual": actual,
                }
                break

        invariant_violations = check_invariants(stv) if stv is not None else []
        reports_match = first_difference is None

        return {
            "reports_match": reports_match,
            "expected_lines": len(expected_lines),
            "actual_lines": len(actual_lines),
            "first_difference": first_difference,
            "invariant_violations": invariant_violations,
            "winners": stv.join_names(stv.winner_ids()) if stv is not None else None,
            "verification_passed": reports_match and not invariant_violations,
        }


def generate_verification_report(verification_results: Dict) -> str:
    """
    Generate a human-readable verification report.

    Args:
        verification_results: Results from ReportVerifier.verify_report()

    Returns:
        Formatted verification report string
    """
    report = []
    report.append("=" * 60)
    report.append("COUNT REPORT VERIFICATION")
    report.append("=" * 60)

    if verification_results["verification_passed"]:
        report.append("✅ VERIFICATION PASSED - Report matches expected output!")
    else:
        report.append("❌ VERIFICATION FAILED - Discrepancies found")

    report.append("")

    report.append("REPORT COMPARISON:")
    report.append(f"Expected lines: {verification_results['expected_lines']}")
    report.append(f"Actual lines: {verification_results['actual_lines']}")

    difference = verification_results["first_difference"]
    if difference:
        report.append(f"First difference at line {difference['line']}:")
        report.append(f"  expected: {difference['expected']!r}")
        report.append(f"  actual:   {difference['actual']!r}")
    else:
        report.append("✅ Reports are identical")

    if verification_results["winners"] is not None:
        report.append("")
        report.append(f"Winners: {verification_results['winners']}")

    violations = verification_results["invariant_violations"]
    report.append("")
    report.append("COUNT INVARIANTS:")
    if violations:
        for violation in violations:
            report.append(f"  ❌ {violation}")
    else:
        report.append("✅ All invariants hold")

    return "\n".join(report)
