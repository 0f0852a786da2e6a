"""
Fixup engine — make a raw install tree small and relocatable.

Three passes over the tree, in place:
  1. prune    — drop include/ and every static archive / libtool file.
  2. strip    — ``strip --strip-unneeded`` every ELF file that still
                carries removable symbol data.
  3. relocate — point executables at ``$ORIGIN/../lib`` and shared
                objects at ``$ORIGIN`` via patchelf.

Classification comes from file content (see elf_reader), never the name.
The first failing file aborts the whole pass: a partially fixed-up tree
must never reach the packager.
"""
import logging
import os
import shutil
import subprocess
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from pathlib import Path
from typing import Iterator, List, Optional

from toolchain_pack.core.elf_reader import ElfInfo, FileKind, read_elf_info
from toolchain_pack.errors import FixupError
from toolchain_pack.io.schema import FixupSummary

logger = logging.getLogger(__name__)

HEADERS_DIR = "include"
PRUNED_SUFFIXES = (".a", ".la")

EXECUTABLE_RUNPATH = "$ORIGIN/../lib"
LIBRARY_RUNPATH = "$ORIGIN"


@dataclass(frozen=True)
class FileResult:
    """What fixup did to a single file."""

    path: str
    kind: FileKind
    stripped: bool = False
    patched: bool = False


def target_runpath(kind: FileKind) -> Optional[str]:
    """The relocatable runpath for *kind*, or None if it is left alone."""
    if kind == FileKind.ELF_EXECUTABLE:
        return EXECUTABLE_RUNPATH
    if kind == FileKind.ELF_SHARED_OBJECT:
        return LIBRARY_RUNPATH
    return None


def iter_tree_files(tree: Path) -> Iterator[Path]:
    """Every non-directory entry under *tree*, sorted, symlinks not followed."""
    for dirpath, dirnames, filenames in os.walk(tree):
        dirnames.sort()
        base = Path(dirpath)
        for name in sorted(filenames):
            yield base / name
        # Directory symlinks are listed in dirnames but never descended.
        for name in dirnames:
            if (base / name).is_symlink():
                yield base / name


class FixupEngine:
    """Prunes, strips and relocates an install tree."""

    def __init__(
        self,
        strip_tool: str = "strip",
        patchelf_tool: str = "patchelf",
        jobs: int = 1,
    ):
        self.strip_tool = strip_tool
        self.patchelf_tool = patchelf_tool
        self.jobs = max(1, jobs)

    def fixup(self, tree: Path) -> FixupSummary:
        tree = Path(tree)
        summary = FixupSummary(install_dir=str(tree))

        logger.info("Removing unused products...")
        summary.pruned = self.prune(tree)

        logger.info("Stripping and patching rpaths for portability...")
        paths = sorted(iter_tree_files(tree))
        for result in self._run_all(paths):
            summary.files_seen += 1
            if result.stripped:
                summary.stripped += 1
            if result.patched and result.kind == FileKind.ELF_EXECUTABLE:
                summary.patched_executables += 1
            elif result.patched:
                summary.patched_libraries += 1
            if not (result.stripped or result.patched):
                summary.unchanged += 1

        logger.info(
            "Fixup done: pruned=%d stripped=%d executables=%d libraries=%d unchanged=%d",
            summary.pruned,
            summary.stripped,
            summary.patched_executables,
            summary.patched_libraries,
            summary.unchanged,
        )
        return summary

    # -----------------------------------------------------------------
    # Pass 1: prune
    # -----------------------------------------------------------------

    def prune(self, tree: Path) -> int:
        """Remove headers and build-time-only archives.  Returns entries removed."""
        removed = 0
        headers = tree / HEADERS_DIR
        if headers.is_symlink():
            headers.unlink()
            removed += 1
        elif headers.is_dir():
            shutil.rmtree(headers)
            removed += 1

        for path in list(iter_tree_files(tree)):
            if path.name.endswith(PRUNED_SUFFIXES) and (path.is_symlink() or path.is_file()):
                path.unlink()
                removed += 1
        return removed

    # -----------------------------------------------------------------
    # Pass 2 + 3: per-file strip and relocate
    # -----------------------------------------------------------------

    def _run_all(self, paths: List[Path]) -> List[FileResult]:
        if self.jobs == 1:
            return [self.fixup_file(p) for p in paths]
        # map() re-raises the first failure when its result is consumed;
        # leaving the with-block waits for every submitted file.
        with ThreadPoolExecutor(max_workers=self.jobs) as pool:
            return list(pool.map(self.fixup_file, paths))

    def fixup_file(self, path: Path) -> FileResult:
        info = read_elf_info(path)
        if not info.kind.is_elf:
            return FileResult(path=str(path), kind=info.kind)

        stripped = False
        if info.has_symbols:
            self._run_tool([self.strip_tool, "--strip-unneeded", str(path)], info)
            stripped = True

        patched = False
        runpath = target_runpath(info.kind)
        if runpath is not None and info.runpath != runpath:
            label = "executable" if info.kind == FileKind.ELF_EXECUTABLE else "library"
            logger.info("  -> Patching %s: %s", label, path)
            self._run_tool([self.patchelf_tool, "--set-rpath", runpath, "--", str(path)], info)
            patched = True

        return FileResult(path=str(path), kind=info.kind, stripped=stripped, patched=patched)

    def _run_tool(self, cmd: List[str], info: ElfInfo) -> None:
        logger.debug("Running: %s", " ".join(cmd))
        try:
            result = subprocess.run(cmd, capture_output=True, text=True)
        except OSError as e:
            raise FixupError(
                f"Could not run {cmd[0]}.",
                hint=f"Install {cmd[0]} or point the matching *_TOOL setting at it.",
                context={"path": info.path, "error": str(e)},
            ) from e

        if result.returncode != 0:
            raise FixupError(
                f"{cmd[0]} failed with exit code {result.returncode}.",
                context={
                    "path": info.path,
                    "kind": info.kind.value,
                    "command": " ".join(cmd),
                    "stderr": result.stderr,
                    "stdout": result.stdout,
                },
            )
