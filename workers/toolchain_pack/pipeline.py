"""
Pipeline — named-stage dispatcher with fail-fast semantics.

Stages: deps, binutils, llvm, fixup, pack, revision, plus ``all`` which
resolves the version up front and then runs the six in that order.  A
single stage may be run on its own; prerequisites are not re-checked, so
``pack`` on an unfixed tree ships whatever is there.

The install directory is the only hand-off between stages.
"""
import logging
import time
from enum import Enum, unique
from typing import Callable, Dict, List, Optional

from pydantic import BaseModel

from toolchain_pack.config import Settings
from toolchain_pack.core.builders import BinutilsBuilder, DependencyInstaller, LlvmBuilder
from toolchain_pack.core.fixup import FixupEngine
from toolchain_pack.core.packager import Packager
from toolchain_pack.core.revision import RevisionRecorder
from toolchain_pack.core.version import VersionResolver
from toolchain_pack.errors import BuildError, PipelineError, StageFailure, UsageError
from toolchain_pack.io.schema import (
    FixupSummary,
    PackSummary,
    RevisionRecord,
    RunReport,
    StageResult,
)

logger = logging.getLogger(__name__)


@unique
class Stage(str, Enum):
    ALL = "all"
    DEPS = "deps"
    BINUTILS = "binutils"
    LLVM = "llvm"
    FIXUP = "fixup"
    PACK = "pack"
    REVISION = "revision"

    @classmethod
    def parse(cls, name: Optional[str]) -> "Stage":
        if name is None:
            return cls.ALL
        try:
            return cls(name)
        except ValueError:
            raise UsageError(
                f"unknown stage '{name}'",
                hint="expected one of: " + ", ".join(s.value for s in cls),
            ) from None


SEQUENCE: List[Stage] = [
    Stage.DEPS,
    Stage.BINUTILS,
    Stage.LLVM,
    Stage.FIXUP,
    Stage.PACK,
    Stage.REVISION,
]


@unique
class RunState(str, Enum):
    IDLE = "idle"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


class Pipeline:
    """
    Owns one run: the shared version resolver and the stage handlers.

    Collaborators are built from Settings by default; tests swap any of
    them out through the keyword arguments.
    """

    def __init__(
        self,
        settings: Settings,
        resolver: Optional[VersionResolver] = None,
        installer: Optional[DependencyInstaller] = None,
        binutils: Optional[BinutilsBuilder] = None,
        llvm: Optional[LlvmBuilder] = None,
        fixup_engine: Optional[FixupEngine] = None,
        packager: Optional[Packager] = None,
        recorder: Optional[RevisionRecorder] = None,
    ):
        s = settings
        profile = s.profile
        self.settings = s
        self.install_dir = s.install_dir
        self.archive_path = s.archive_path

        self.resolver = resolver or VersionResolver(
            override=s.OVERRIDE_VERSION,
            pinned=profile.pinned_version,
            url=s.RELEASES_URL,
            retries=s.LOOKUP_RETRIES,
            retry_delay=s.LOOKUP_RETRY_DELAY,
            timeout=s.LOOKUP_TIMEOUT,
        )
        self.installer = installer or DependencyInstaller(profile, in_ci=s.in_ci)
        self.binutils = binutils or BinutilsBuilder(s.binutils_script, self.install_dir, profile)
        self.llvm = llvm or LlvmBuilder(s.llvm_script, self.install_dir, profile)
        self.fixup_engine = fixup_engine or FixupEngine(
            strip_tool=s.STRIP_TOOL,
            patchelf_tool=s.PATCHELF_TOOL,
            jobs=s.FIXUP_JOBS,
        )
        self.packager = packager or Packager(source_date_epoch=s.SOURCE_DATE_EPOCH)
        self.recorder = recorder or RevisionRecorder(
            descriptor=s.binutils_script,
            revision_file=s.revision_file,
            ci_env_file=s.GITHUB_ENV,
            in_ci=s.in_ci,
        )

        self.state = RunState.IDLE
        self.current: Optional[Stage] = None

        self._handlers: Dict[Stage, Callable[[], object]] = {
            Stage.DEPS: self.do_deps,
            Stage.BINUTILS: self.do_binutils,
            Stage.LLVM: self.do_llvm,
            Stage.FIXUP: self.do_fixup,
            Stage.PACK: self.do_pack,
            Stage.REVISION: self.do_revision,
        }

    # -----------------------------------------------------------------
    # Stage handlers
    # -----------------------------------------------------------------

    def _require_install_tree(self, stage: Stage) -> None:
        if not self.install_dir.is_dir():
            raise BuildError(
                f"Install tree missing; '{stage.value}' has nothing to work on.",
                hint="Run the binutils and llvm stages first.",
                context={"install_dir": str(self.install_dir)},
            )

    def do_deps(self) -> None:
        self.installer.install()

    def do_binutils(self) -> None:
        self.binutils.build()

    def do_llvm(self) -> None:
        self.llvm.build(self.resolver.resolve())

    def do_fixup(self) -> FixupSummary:
        self._require_install_tree(Stage.FIXUP)
        return self.fixup_engine.fixup(self.install_dir)

    def do_pack(self) -> PackSummary:
        self._require_install_tree(Stage.PACK)
        return self.packager.pack(self.install_dir, self.archive_path)

    def do_revision(self) -> RevisionRecord:
        self._require_install_tree(Stage.REVISION)
        return self.recorder.record(self.resolver.resolve())

    # -----------------------------------------------------------------
    # Dispatch
    # -----------------------------------------------------------------

    def run(self, name: Optional[str] = None) -> RunReport:
        """
        Run a stage by name (``all`` when omitted).

        Raises UsageError for an unknown name before anything runs.
        Stage failures are captured in the returned report, never raised.
        """
        requested = Stage.parse(name)
        report = RunReport(requested=requested.value, state=RunState.RUNNING.value)
        self.state = RunState.RUNNING

        try:
            if requested == Stage.ALL:
                self._step(Stage.ALL, self.resolver.resolve, report, record=False)
                for stage in SEQUENCE:
                    self._step(stage, self._handlers[stage], report)
            else:
                self._step(requested, self._handlers[requested], report)
        except StageFailure as failure:
            self.state = RunState.FAILED
            report.state = RunState.FAILED.value
            report.failed_stage = failure.stage
            report.cause = str(failure.cause)
            logger.error("Stage '%s' failed", failure.stage)
        else:
            self.state = RunState.COMPLETED
            report.state = RunState.COMPLETED.value
        finally:
            self.current = None
            report.version = self.resolver.resolved

        return report

    def _step(
        self,
        stage: Stage,
        handler: Callable[[], object],
        report: RunReport,
        record: bool = True,
    ) -> None:
        self.current = stage
        logger.info("==> %s", stage.value)
        t0 = time.monotonic()
        try:
            outcome = handler()
        except Exception as e:
            duration = int((time.monotonic() - t0) * 1000)
            report.stages.append(StageResult(
                stage=stage.value,
                status=RunState.FAILED.value,
                duration_ms=duration,
                error_code=getattr(e, "code", None),
                error=e.to_dict() if isinstance(e, PipelineError) else None,
            ))
            raise StageFailure(stage.value, e) from e

        if record:
            report.stages.append(StageResult(
                stage=stage.value,
                status=RunState.COMPLETED.value,
                duration_ms=int((time.monotonic() - t0) * 1000),
                detail=outcome.model_dump(mode="json") if isinstance(outcome, BaseModel) else None,
            ))