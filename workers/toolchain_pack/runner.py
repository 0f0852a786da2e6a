"""
Runner — CLI entry point for the toolchain bundle pipeline.

    toolchain-pack [all|deps|binutils|llvm|fixup|pack|revision] [-v]

Exit status: 0 on success, 1 when a stage fails, 33 for an unknown stage.
"""
import argparse
import logging
import sys
from pathlib import Path
from typing import List, Optional

from toolchain_pack.config import Settings
from toolchain_pack.errors import UsageError
from toolchain_pack.io.writer import write_run_report
from toolchain_pack.pipeline import Pipeline, RunState, Stage

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_STAGE_FAILED = 1
EXIT_USAGE = 33


def main(argv: Optional[List[str]] = None) -> int:
    """CLI entry point for toolchain_pack."""
    parser = argparse.ArgumentParser(
        description="toolchain_pack — build, fix up and pack a relocatable LLVM + binutils bundle",
    )
    parser.add_argument(
        "stage",
        nargs="?",
        default=Stage.ALL.value,
        help="Stage to run: " + ", ".join(s.value for s in Stage) + " (default: all)",
    )
    parser.add_argument(
        "--report",
        type=Path,
        default=None,
        help="Write a JSON run report to this path",
    )
    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Enable verbose logging",
    )
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s [%(name)s] %(levelname)s: %(message)s",
    )

    try:
        Stage.parse(args.stage)
    except UsageError as e:
        logger.error("%s", e)
        return EXIT_USAGE

    try:
        pipeline = Pipeline(Settings())
    except ValueError as e:
        # pydantic ValidationError and unknown BUILD_PROFILE both land here
        logger.error("Invalid configuration: %s", e)
        return EXIT_USAGE

    report = pipeline.run(args.stage)

    if args.report:
        write_run_report(report, args.report)

    if report.state != RunState.COMPLETED.value:
        print(f"FAILED at stage '{report.failed_stage}':", file=sys.stderr)
        print(report.cause, file=sys.stderr)
        return EXIT_STAGE_FAILED

    print(f"Stage '{report.requested}' completed"
          + (f" (version {report.version})" if report.version else ""))
    return EXIT_OK


if __name__ == "__main__":
    sys.exit(main())
