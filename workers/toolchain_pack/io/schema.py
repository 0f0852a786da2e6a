"""
Schema — Pydantic models for pipeline outputs.

  FixupSummary    — what the fixup stage did to the install tree.
  PackSummary     — archive location, size, entry count, digest.
  RevisionRecord  — build provenance written to revision_info.{md,json}.
  RunReport       — overall outcome of one CLI invocation.

Runtime contract fields (present in every persisted output):
  package_name, schema_version.
"""
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from toolchain_pack import PACKAGE_NAME, SCHEMA_VERSION


class FixupSummary(BaseModel):
    install_dir: str
    pruned: int = 0
    files_seen: int = 0
    stripped: int = 0
    patched_executables: int = 0
    patched_libraries: int = 0
    unchanged: int = 0


class PackSummary(BaseModel):
    archive_path: str
    size_bytes: int
    entry_count: int
    sha256: str


class RevisionRecord(BaseModel):
    """Provenance for one bundle.  Field order matches revision_info.md."""

    package_name: str = PACKAGE_NAME
    schema_version: str = SCHEMA_VERSION

    build_date: str            # YYYY-MM-DD, UTC
    toolchain_version: str     # e.g. "21.1.0"
    binutils_version: str      # e.g. "2.45.0"

    def env_vars(self) -> dict:
        """The CI environment-variable form of this record."""
        return {
            "BUILD_DATE": self.build_date,
            "CLANG_VERSION": self.toolchain_version,
            "BINUTILS_VERSION": self.binutils_version,
        }


class StageResult(BaseModel):
    stage: str
    status: str                # completed | failed
    duration_ms: int = 0
    error_code: Optional[str] = None
    detail: Optional[Dict[str, Any]] = None    # stage summary on success
    error: Optional[Dict[str, Any]] = None     # PipelineError.to_dict() on failure


class RunReport(BaseModel):
    """Outcome of a pipeline invocation."""

    package_name: str = PACKAGE_NAME
    schema_version: str = SCHEMA_VERSION

    requested: str
    state: str                 # idle | running | completed | failed
    version: Optional[str] = None
    stages: List[StageResult] = Field(default_factory=list)

    failed_stage: Optional[str] = None
    cause: Optional[str] = None
