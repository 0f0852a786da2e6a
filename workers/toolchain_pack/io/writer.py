"""
Writer — persist pipeline outputs.

Filesystem layout (all paths configurable):
    <build_root>/revision_info.md     human-readable, three labeled fields
    <build_root>/revision_info.json   same record, machine-readable
    $GITHUB_ENV                       KEY=value lines appended under CI
"""
import json
import os
from pathlib import Path

from toolchain_pack.io.schema import RevisionRecord, RunReport


def render_revision(record: RevisionRecord) -> str:
    return (
        f"- Build Date: {record.build_date}\n"
        f"- Clang Version: {record.toolchain_version}\n"
        f"- Binutils Version: {record.binutils_version}\n"
    )


def _atomic_write(path: Path, text: str) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp = path.with_name(path.name + ".partial")
    tmp.write_text(text)
    os.replace(tmp, path)


def write_revision(record: RevisionRecord, revision_file: Path) -> Path:
    """
    Write revision_info.md and its JSON sibling.

    Returns the markdown path.
    """
    revision_file = Path(revision_file)
    _atomic_write(revision_file, render_revision(record))
    _atomic_write(
        revision_file.with_suffix(".json"),
        json.dumps(record.model_dump(mode="json"), indent=2, sort_keys=True) + "\n",
    )
    return revision_file


def append_ci_env(record: RevisionRecord, env_file: Path) -> None:
    """Append each record field as KEY=value for later CI steps."""
    with open(env_file, "a") as f:
        for key, value in record.env_vars().items():
            f.write(f"{key}={value}\n")


def write_run_report(report: RunReport, path: Path) -> Path:
    _atomic_write(
        Path(path),
        json.dumps(report.model_dump(mode="json"), indent=2, sort_keys=True) + "\n",
    )
    return Path(path)
