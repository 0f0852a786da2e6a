"""
test_fixup — prune / strip / relocate.

Unit tests stub out ``read_elf_info`` and ``subprocess.run`` so they run
without a toolchain; the end-to-end class uses real gcc output with the
real strip and patchelf.
"""
from pathlib import Path
from typing import List

import pytest

from toolchain_pack.core import fixup as fixup_mod
from toolchain_pack.core.elf_reader import ElfInfo, FileKind, read_elf_info
from toolchain_pack.core.fixup import (
    EXECUTABLE_RUNPATH,
    LIBRARY_RUNPATH,
    FixupEngine,
    target_runpath,
)
from toolchain_pack.errors import FixupError


class _Completed:
    def __init__(self, returncode: int = 0, stdout: str = "", stderr: str = ""):
        self.returncode = returncode
        self.stdout = stdout
        self.stderr = stderr


class _Recorder:
    """Stands in for subprocess.run; remembers every argv."""

    def __init__(self, returncode: int = 0, stderr: str = ""):
        self.calls: List[List[str]] = []
        self.returncode = returncode
        self.stderr = stderr

    def __call__(self, cmd, *args, **kwargs):
        self.calls.append(list(cmd))
        return _Completed(self.returncode, stderr=self.stderr)


def _fake_reader(kinds: dict):
    """read_elf_info replacement keyed on file name."""
    def reader(path):
        spec = kinds.get(Path(path).name)
        if spec is None:
            return ElfInfo(path=str(path), kind=FileKind.NON_ELF)
        return ElfInfo(path=str(path), **spec)
    return reader


# ═══════════════════════════════════════════════════════════════════════════════
# Prune
# ═══════════════════════════════════════════════════════════════════════════════

class TestPrune:
    def test_headers_and_archives_removed(self, install_tree, monkeypatch):
        monkeypatch.setattr(fixup_mod.subprocess, "run", _Recorder())
        FixupEngine().fixup(install_tree)

        assert not (install_tree / "include").exists()
        leftovers = [p for p in install_tree.rglob("*") if p.name.endswith((".a", ".la"))]
        assert leftovers == []

    def test_other_files_survive(self, install_tree, monkeypatch):
        monkeypatch.setattr(fixup_mod.subprocess, "run", _Recorder())
        FixupEngine().fixup(install_tree)

        assert (install_tree / "bin" / "clang-wrapper.sh").is_file()
        assert (install_tree / "bin" / "clang++").is_symlink()
        # only the top-level include/ goes; resource-dir headers stay
        assert (install_tree / "lib" / "clang" / "21" / "include" / "stddef.h").is_file()
        assert (install_tree / "share" / "man" / "man1" / "clang.1").is_file()

    def test_prune_count(self, install_tree):
        # include/ + libLLVM.a + libfoo.la
        assert FixupEngine().prune(install_tree) == 3
        assert FixupEngine().prune(install_tree) == 0

    def test_archive_symlink_removed(self, install_tree):
        (install_tree / "lib" / "libz.a").symlink_to("libLLVM.a")
        FixupEngine().prune(install_tree)

        assert not (install_tree / "lib" / "libz.a").is_symlink()

    def test_non_elf_untouched(self, install_tree, monkeypatch):
        recorder = _Recorder()
        monkeypatch.setattr(fixup_mod.subprocess, "run", recorder)

        summary = FixupEngine().fixup(install_tree)

        assert recorder.calls == []
        assert summary.stripped == 0
        assert summary.patched_executables == 0
        assert summary.patched_libraries == 0


# ═══════════════════════════════════════════════════════════════════════════════
# Strip + relocate (stubbed tools)
# ═══════════════════════════════════════════════════════════════════════════════

class TestRelocationRules:
    def test_target_runpath_per_kind(self):
        assert target_runpath(FileKind.ELF_EXECUTABLE) == "$ORIGIN/../lib"
        assert target_runpath(FileKind.ELF_SHARED_OBJECT) == "$ORIGIN"
        assert target_runpath(FileKind.ELF_OTHER) is None
        assert target_runpath(FileKind.NON_ELF) is None
        assert target_runpath(FileKind.ORDINARY) is None

    def test_commands_issued(self, tmp_path, monkeypatch):
        tree = tmp_path / "install"
        (tree / "bin").mkdir(parents=True)
        (tree / "lib").mkdir()
        for rel in ("bin/clang", "lib/libLLVM.so.21", "lib/crt.o", "bin/readme"):
            (tree / rel).write_bytes(b"stub")

        monkeypatch.setattr(fixup_mod, "read_elf_info", _fake_reader({
            "clang": {"kind": FileKind.ELF_EXECUTABLE, "has_symbols": True},
            "libLLVM.so.21": {"kind": FileKind.ELF_SHARED_OBJECT, "has_symbols": False},
            "crt.o": {"kind": FileKind.ELF_OTHER, "has_symbols": True},
        }))
        recorder = _Recorder()
        monkeypatch.setattr(fixup_mod.subprocess, "run", recorder)

        summary = FixupEngine().fixup(tree)

        clang = str(tree / "bin" / "clang")
        lib = str(tree / "lib" / "libLLVM.so.21")
        crt = str(tree / "lib" / "crt.o")
        assert ["strip", "--strip-unneeded", clang] in recorder.calls
        assert ["strip", "--strip-unneeded", crt] in recorder.calls
        assert ["patchelf", "--set-rpath", EXECUTABLE_RUNPATH, "--", clang] in recorder.calls
        assert ["patchelf", "--set-rpath", LIBRARY_RUNPATH, "--", lib] in recorder.calls
        # crt.o is stripped but never relocated; lib has nothing to strip
        assert not any(c[0] == "patchelf" and c[-1] == crt for c in recorder.calls)
        assert not any(c[0] == "strip" and c[-1] == lib for c in recorder.calls)

        assert summary.stripped == 2
        assert summary.patched_executables == 1
        assert summary.patched_libraries == 1
        assert summary.unchanged == 1  # bin/readme

    def test_matching_runpath_skipped(self, tmp_path, monkeypatch):
        tree = tmp_path / "install"
        (tree / "bin").mkdir(parents=True)
        (tree / "bin" / "lld").write_bytes(b"stub")
        monkeypatch.setattr(fixup_mod, "read_elf_info", _fake_reader({
            "lld": {"kind": FileKind.ELF_EXECUTABLE, "runpath": EXECUTABLE_RUNPATH},
        }))
        recorder = _Recorder()
        monkeypatch.setattr(fixup_mod.subprocess, "run", recorder)

        summary = FixupEngine().fixup(tree)

        assert recorder.calls == []
        assert summary.unchanged == 1

    def test_tool_failure_aborts(self, tmp_path, monkeypatch):
        tree = tmp_path / "install"
        (tree / "bin").mkdir(parents=True)
        (tree / "bin" / "clang").write_bytes(b"stub")
        monkeypatch.setattr(fixup_mod, "read_elf_info", _fake_reader({
            "clang": {"kind": FileKind.ELF_EXECUTABLE, "has_symbols": True},
        }))
        monkeypatch.setattr(
            fixup_mod.subprocess, "run",
            _Recorder(returncode=1, stderr="strip: clang: file format not recognized"),
        )

        with pytest.raises(FixupError) as excinfo:
            FixupEngine().fixup(tree)

        err = excinfo.value
        assert err.context["path"] == str(tree / "bin" / "clang")
        assert "file format not recognized" in err.context["stderr"]

    def test_missing_tool(self, tmp_path, monkeypatch):
        tree = tmp_path / "install"
        tree.mkdir()
        (tree / "clang").write_bytes(b"stub")
        monkeypatch.setattr(fixup_mod, "read_elf_info", _fake_reader({
            "clang": {"kind": FileKind.ELF_EXECUTABLE, "has_symbols": True},
        }))

        with pytest.raises(FixupError, match="Could not run"):
            FixupEngine(strip_tool=str(tmp_path / "no-such-strip")).fixup(tree)

    def test_parallel_matches_serial(self, tmp_path, monkeypatch):
        tree = tmp_path / "install"
        (tree / "lib").mkdir(parents=True)
        kinds = {}
        for i in range(12):
            name = f"libpart{i}.so"
            (tree / "lib" / name).write_bytes(b"stub")
            kinds[name] = {"kind": FileKind.ELF_SHARED_OBJECT, "has_symbols": True}
        monkeypatch.setattr(fixup_mod, "read_elf_info", _fake_reader(kinds))

        serial, parallel = _Recorder(), _Recorder()
        monkeypatch.setattr(fixup_mod.subprocess, "run", serial)
        s1 = FixupEngine(jobs=1).fixup(tree)
        monkeypatch.setattr(fixup_mod.subprocess, "run", parallel)
        s2 = FixupEngine(jobs=4).fixup(tree)

        assert sorted(serial.calls) == sorted(parallel.calls)
        assert s1 == s2

    def test_parallel_failure_propagates(self, tmp_path, monkeypatch):
        tree = tmp_path / "install"
        (tree / "lib").mkdir(parents=True)
        kinds = {}
        for i in range(12):
            name = f"libpart{i}.so"
            (tree / "lib" / name).write_bytes(b"stub")
            kinds[name] = {"kind": FileKind.ELF_SHARED_OBJECT, "has_symbols": True}
        monkeypatch.setattr(fixup_mod, "read_elf_info", _fake_reader(kinds))

        bad = str(tree / "lib" / "libpart7.so")
        calls = []

        def run(cmd, *args, **kwargs):
            calls.append(list(cmd))
            if cmd[0] == "strip" and cmd[-1] == bad:
                return _Completed(1, stderr="strip: libpart7.so: file truncated")
            return _Completed()

        monkeypatch.setattr(fixup_mod.subprocess, "run", run)

        with pytest.raises(FixupError) as excinfo:
            FixupEngine(jobs=4).fixup(tree)

        assert excinfo.value.context["path"] == bad
        assert "file truncated" in excinfo.value.context["stderr"]
        # every submitted file was handled before the error surfaced
        assert len([c for c in calls if c[0] == "strip"]) == 12


# ═══════════════════════════════════════════════════════════════════════════════
# End-to-end with real strip + patchelf
# ═══════════════════════════════════════════════════════════════════════════════

class TestFixupEndToEnd:
    def test_executable_stripped_and_relocated(self, elf_install_tree, elf_tools_ok):
        FixupEngine().fixup(elf_install_tree)

        info = read_elf_info(elf_install_tree / "bin" / "hello")
        assert info.kind == FileKind.ELF_EXECUTABLE
        assert info.has_symbols is False
        assert info.runpath == "$ORIGIN/../lib"

    def test_shared_object_relocated(self, elf_install_tree, elf_tools_ok):
        FixupEngine().fixup(elf_install_tree)

        info = read_elf_info(elf_install_tree / "lib" / "libtc.so")
        assert info.kind == FileKind.ELF_SHARED_OBJECT
        assert info.runpath == "$ORIGIN"

    def test_object_file_not_relocated(self, elf_install_tree, elf_tools_ok):
        FixupEngine().fixup(elf_install_tree)

        assert read_elf_info(elf_install_tree / "lib" / "crt_stub.o").runpath is None

    def test_object_file_stripped_once(self, elf_install_tree, elf_tools_ok):
        summary = FixupEngine().fixup(elf_install_tree)

        info = read_elf_info(elf_install_tree / "lib" / "crt_stub.o")
        assert summary.stripped == 3
        assert info.has_symbols is False

    def test_second_run_changes_nothing(self, elf_install_tree, elf_tools_ok):
        FixupEngine().fixup(elf_install_tree)
        files = [
            elf_install_tree / "bin" / "hello",
            elf_install_tree / "lib" / "libtc.so",
            elf_install_tree / "lib" / "crt_stub.o",
        ]
        before = [(p.read_bytes(), p.stat().st_mtime_ns) for p in files]

        summary = FixupEngine().fixup(elf_install_tree)

        assert [(p.read_bytes(), p.stat().st_mtime_ns) for p in files] == before
        assert summary.stripped == 0
        assert summary.unchanged == summary.files_seen
        assert summary.pruned == 0
        assert summary.patched_executables == 0
        assert summary.patched_libraries == 0
