#!/usr/bin/env python3
"""
Run a Meek STV count on a BLT ballot file and print the text report.
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

logging.basicConfig(
    level=logging.INFO, format="%(asctime)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)


def main():
    parser = argparse.ArgumentParser(description="Run a Meek STV count")
    parser.add_argument("ballot_file", help="Path to the BLT ballot file")
    parser.add_argument(
        "--seed", type=int, help="Seed for breaking strong ties (default: unseeded)"
    )
    parser.add_argument("--output", help="Write the text report to this file")
    parser.add_argument("--export", help="Export results to CSV file")
    parser.add_argument(
        "--verbose", action="store_true", help="Log tree and keep factor updates"
    )

    args = parser.parse_args()

    if args.verbose:
        logging.getLogger().setLevel(logging.DEBUG)

    if not Path(args.ballot_file).exists():
        logger.error(f"Ballot file not found: {args.ballot_file}")
        sys.exit(1)

    try:
        election = load_ballot_file(args.ballot_file)

        logger.info(f"=== Meek STV Count ({election.num_seats} seats) ===")
        stv = MeekSTV(election, tie_breaker=RandomTieBreaker(args.seed))
        winners = stv.count_ballots()

        report = TextReport(stv).generate()

        if args.output:
            output_path = Path(args.output)
            output_path.write_text(report, encoding="utf-8")
            print(f"✓ Report written to: {output_path}")
        else:
            print(report)

        # Export results if requested
        if args.export:
            export_path = Path(args.export)

            final_results = stv.get_final_results()
            final_results.to_csv(export_path.with_suffix(".csv"), index=False)
            print(f"\n✓ Final results exported to: {export_path.with_suffix('.csv')}")

            rounds_path = export_path.with_stem(export_path.stem + "_rounds").with_suffix(
                ".csv"
            )
            stv.get_round_summary().to_csv(rounds_path, index=False)
            print(f"✓ Round summary exported to: {rounds_path}")

        logger.info(f"Winner ids: {winners}")
        print("\n✓ Meek STV count completed successfully")

    except Exception as e:
        logger.error(f"Error running Meek STV count: {e}")
        import traceback

        traceback.print_exc()
        sys.exit(1)


if __name__ == "__main__":
    main()
