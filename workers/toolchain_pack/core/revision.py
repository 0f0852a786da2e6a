"""
Revision recorder — build provenance for the packed bundle.

Combines the resolved LLVM release, the binutils release hard-coded in
the binutils builder script, and today's UTC date into a RevisionRecord,
then hands it to the writer.
"""
import logging
import re
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable, Optional

from toolchain_pack.errors import ExtractionError
from toolchain_pack.io.schema import RevisionRecord
from toolchain_pack.io.writer import append_ci_env, write_revision

logger = logging.getLogger(__name__)

VERSION_PREFIX = "llvmorg-"
BINUTILS_CONSTANT = "LATEST_BINUTILS_RELEASE"
# Greedy prefix: take the last "(" followed by three digit groups.
_TRIPLE_RE = re.compile(r".*\((\d+)\D*(\d+)\D*(\d+)")


def toolchain_version(version: str) -> str:
    """'llvmorg-21.1.0' -> '21.1.0'."""
    return version[len(VERSION_PREFIX):] if version.startswith(VERSION_PREFIX) else version


def binutils_version(descriptor: Path) -> str:
    """Pull the three-part binutils release out of the builder script."""
    try:
        text = Path(descriptor).read_text(errors="replace")
    except OSError as e:
        raise ExtractionError(
            "Binutils descriptor is unreadable.",
            context={"descriptor": str(descriptor), "error": str(e)},
        ) from e

    for line in text.splitlines():
        if BINUTILS_CONSTANT not in line:
            continue
        m = _TRIPLE_RE.match(line)
        if m:
            return ".".join(m.groups())

    raise ExtractionError(
        f"{BINUTILS_CONSTANT} not found in binutils descriptor.",
        hint="The builder script layout may have changed.",
        context={"descriptor": str(descriptor)},
    )


def utc_today() -> str:
    return datetime.now(timezone.utc).strftime("%Y-%m-%d")


class RevisionRecorder:
    """Creates, persists and (under CI) exports the RevisionRecord."""

    def __init__(
        self,
        descriptor: Path,
        revision_file: Path,
        ci_env_file: Optional[Path] = None,
        in_ci: bool = False,
        today: Callable[[], str] = utc_today,
    ):
        self.descriptor = Path(descriptor)
        self.revision_file = Path(revision_file)
        self.ci_env_file = ci_env_file
        self.in_ci = in_ci
        self.today = today

    def build(self, version: str) -> RevisionRecord:
        return RevisionRecord(
            build_date=self.today(),
            toolchain_version=toolchain_version(version),
            binutils_version=binutils_version(self.descriptor),
        )

    def record(self, version: str) -> RevisionRecord:
        logger.info("Generating revision info...")
        record = self.build(version)
        write_revision(record, self.revision_file)

        if self.in_ci:
            if self.ci_env_file is None:
                logger.warning("Running under CI but GITHUB_ENV is unset; nothing exported")
            else:
                append_ci_env(record, self.ci_env_file)

        logger.info("Revision info saved to %s", self.revision_file)
        for line in self.revision_file.read_text().splitlines():
            logger.info("%s", line)
        return record
