"""
Shared pytest fixtures for toolchain_pack tests.

Provides on-the-fly compilation of tiny C programs using gcc, producing
real ELF executables, shared objects and relocatable objects, plus a
synthetic install tree laid out like a tc-build install folder.

Requirements for the ELF-backed fixtures:
  - gcc must be available and produce ELF (Linux/WSL)
  - strip and patchelf must be on PATH for the end-to-end fixup tests

Tests that need them are skipped otherwise.  Everything else is pure
Python and runs anywhere.
"""
import shutil
import subprocess
import tempfile
import textwrap
from pathlib import Path

import pytest

HELLO_C = textwrap.dedent("""\
    #include <stdio.h>

    int greet(const char *who) {
        return printf("hello %s\\n", who);
    }

    int main(void) {
        return greet("world") < 0;
    }
""")

LIB_C = textwrap.dedent("""\
    int tc_add(int a, int b) {
        return a + b;
    }
""")

BINUTILS_DESCRIPTOR = textwrap.dedent("""\
    #!/usr/bin/env python3

    import tc_build.binutils

    LATEST_BINUTILS_RELEASE = (2, 45, 0)

    parser = ArgumentParser()
""")


def _gcc_produces_elf() -> bool:
    """Compile a trivial program and check for ELF magic."""
    if shutil.which("gcc") is None:
        return False
    with tempfile.TemporaryDirectory() as tmpdir:
        src = Path(tmpdir) / "t.c"
        out = Path(tmpdir) / "t"
        src.write_text("int main(void) { return 0; }")
        try:
            subprocess.run(
                ["gcc", str(src), "-o", str(out)],
                check=True,
                capture_output=True,
                timeout=30,
            )
        except (OSError, subprocess.SubprocessError):
            return False
        return out.exists() and out.read_bytes()[:4] == b"\x7fELF"


def _gcc(args, timeout: int = 60) -> None:
    subprocess.run(["gcc", *args], check=True, capture_output=True, timeout=timeout)


@pytest.fixture(scope="session")
def gcc_ok():
    """Skip if gcc is missing or does not produce ELF binaries."""
    if not _gcc_produces_elf():
        pytest.skip("gcc producing ELF binaries is required for this test")


@pytest.fixture(scope="session")
def elf_tools_ok(gcc_ok):
    """Skip unless strip and patchelf are both available."""
    for tool in ("strip", "patchelf"):
        if shutil.which(tool) is None:
            pytest.skip(f"{tool} not available - install it to run fixup end-to-end tests")


@pytest.fixture(scope="session")
def elf_fixtures(tmp_path_factory, gcc_ok) -> dict:
    """
    Session-scoped compiled binaries (never mutated by tests; copy first).

    Keys: executable, shared_object, relocatable.
    """
    d = tmp_path_factory.mktemp("elf_fixtures")
    (d / "hello.c").write_text(HELLO_C)
    (d / "lib.c").write_text(LIB_C)

    exe = d / "hello"
    so = d / "libtc.so"
    obj = d / "lib.o"
    _gcc(["-g", "-O0", str(d / "hello.c"), "-o", str(exe)])
    _gcc(["-g", "-O0", "-shared", "-fPIC", str(d / "lib.c"), "-o", str(so)])
    _gcc(["-g", "-O0", "-c", str(d / "lib.c"), "-o", str(obj)])
    return {"executable": exe, "shared_object": so, "relocatable": obj}


@pytest.fixture
def install_tree(tmp_path) -> Path:
    """
    A synthetic install tree with no ELF content.

        install/
          bin/clang-wrapper.sh
          bin/clang++ -> clang-wrapper.sh
          include/llvm/Config.h
          lib/libLLVM.a
          lib/libfoo.la
          lib/clang/21/include/stddef.h
          share/man/man1/clang.1
    """
    root = tmp_path / "install"
    (root / "bin").mkdir(parents=True)
    (root / "include" / "llvm").mkdir(parents=True)
    (root / "lib" / "clang" / "21" / "include").mkdir(parents=True)
    (root / "share" / "man" / "man1").mkdir(parents=True)

    wrapper = root / "bin" / "clang-wrapper.sh"
    wrapper.write_text("#!/bin/sh\nexec clang \"$@\"\n")
    wrapper.chmod(0o755)
    (root / "bin" / "clang++").symlink_to("clang-wrapper.sh")
    (root / "include" / "llvm" / "Config.h").write_text("#define LLVM 1\n")
    (root / "lib" / "libLLVM.a").write_bytes(b"!<arch>\n")
    (root / "lib" / "libfoo.la").write_text("# libtool\n")
    (root / "lib" / "clang" / "21" / "include" / "stddef.h").write_text("/* builtin */\n")
    (root / "share" / "man" / "man1" / "clang.1").write_text(".TH CLANG 1\n")
    return root


@pytest.fixture
def elf_install_tree(install_tree, elf_fixtures) -> Path:
    """install_tree plus a real executable, shared object and object file."""
    shutil.copy2(elf_fixtures["executable"], install_tree / "bin" / "hello")
    shutil.copy2(elf_fixtures["shared_object"], install_tree / "lib" / "libtc.so")
    shutil.copy2(elf_fixtures["relocatable"], install_tree / "lib" / "crt_stub.o")
    return install_tree


@pytest.fixture
def binutils_descriptor(tmp_path) -> Path:
    p = tmp_path / "build-binutils.py"
    p.write_text(BINUTILS_DESCRIPTOR)
    return p
