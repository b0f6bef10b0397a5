#!/usr/bin/env python3
"""
Verify the report of a Meek STV count against an expected report.
"""

import argparse
import logging
import sys
from pathlib import Path

# Add src to path so we can import our modules
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from ballots.blt_parser import load_ballot_file  # noqa: E402
from meek.report import TextReport  # noqa: E402
from meek.stv import MeekSTV  # noqa: E402
from meek.tiebreak import RandomTieBreaker  # noqa: E402
from meek.verification import (  # noqa: E402
    ReportVerifier,
    generate_verification_report,
)

logging.basicConfig(
    level=logging.INFO, format="%(asctime)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)


def main():
    parser = argparse.ArgumentParser(
        description="Verify a Meek STV report against an expected report"
    )
    parser.add_argument("ballot_file", help="Path to the BLT ballot file")
    parser.add_argument("expected", help="Path to the expected report")
    parser.add_argument(
        "--seed", type=int, default=0, help="Seed for breaking strong ties (default: 0)"
    )
    parser.add_argument("--export", help="Export verification report to file")
    parser.add_argument("--verbose", action="store_true", help="Enable debug logging")

    args = parser.parse_args()

    if args.verbose:
        logging.getLogger().setLevel(logging.DEBUG)

    for path in (args.ballot_file, args.expected):
        if not Path(path).exists():
            logger.error(f"File not found: {path}")
            sys.exit(1)

    try:
        logger.info("=== Running Meek STV Count ===")

        election = load_ballot_file(args.ballot_file)
        stv = MeekSTV(election, tie_breaker=RandomTieBreaker(args.seed))
        stv.count_ballots()
        report = TextReport(stv).generate()

        logger.info("=== Verifying Report ===")

        verifier = ReportVerifier(args.expected)
        verification_results = verifier.verify_report(report, stv)

        summary = generate_verification_report(verification_results)
        print(summary)

        if args.export:
            export_path = Path(args.export)
            export_path.write_text(summary, encoding="utf-8")
            print(f"\n✓ Verification report exported to: {export_path}")

    except Exception as e:
        logger.error(f"Error during verification: {e}")
        import traceback

        traceback.print_exc()
        sys.exit(1)

    # Exit with appropriate code
    if verification_results["verification_passed"]:
        print("\n🎉 Verification PASSED!")
        sys.exit(0)
    else:
        print("\n⚠️  Verification FAILED - see report above for details")
        sys.exit(1)


if __name__ == "__main__":
    main()
