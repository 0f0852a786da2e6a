"""
Profile — build-profile descriptor for the bundled toolchain.

The profile holds every knob that describes *what* gets built (targets,
projects, compiler flags, system packages, pinned release).  Per-machine
details (paths, CI detection) live in Settings instead.  Changing the
target list or pinning a release is a profile change, not a code change.
"""
import os
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple

# Packages the CI host needs before either builder can run.
BUILD_PACKAGES: Tuple[str, ...] = (
    "bc",
    "bison",
    "ca-certificates",
    "clang",
    "cmake",
    "curl",
    "file",
    "flex",
    "gcc",
    "g++",
    "git",
    "libelf-dev",
    "libssl-dev",
    "lld",
    "make",
    "ninja-build",
    "python3",
    "texinfo",
    "xz-utils",
    "zlib1g-dev",
    "patchelf",
)


@dataclass(frozen=True)
class BuildProfile:
    """Describes which toolchain is built and how."""

    # Identity
    profile_id: str

    # Targets, named the way each builder spells them
    binutils_targets: Tuple[str, ...] = ("aarch64", "arm", "x86_64")
    llvm_targets: Tuple[str, ...] = ("AArch64", "ARM", "X86")
    llvm_projects: Tuple[str, ...] = ()

    # LLVM build knobs
    vendor_string: str = "llvmorg"
    lto: str = "thin"
    multicall: bool = False
    defines: Dict[str, str] = field(default_factory=dict)

    # Release pinned for this profile; None means "look up the latest"
    pinned_version: Optional[str] = None

    packages: Tuple[str, ...] = BUILD_PACKAGES

    def define_args(self) -> List[str]:
        """CMake defines as one space-separated ``--defines`` value, or nothing."""
        if not self.defines:
            return []
        return ["--defines", " ".join(f"{k}={v}" for k, v in self.defines.items())]

    @classmethod
    def release(cls) -> "BuildProfile":
        """Tracks the newest upstream release, multicall clang + lld."""
        return cls(
            profile_id="release-latest",
            llvm_projects=("clang", "lld", "compiler-rt", "polly"),
            multicall=True,
        )

    @classmethod
    def ci(cls) -> "BuildProfile":
        """Pinned release tuned for the hosted CI runners."""
        jobs = str(os.cpu_count() or 1)
        return cls(
            profile_id="ci-pinned",
            pinned_version="llvmorg-21.1.0",
            defines={
                "LLVM_PARALLEL_COMPILE_JOBS": jobs,
                "LLVM_PARALLEL_LINK_JOBS": jobs,
                "CMAKE_C_FLAGS": "-O3",
                "CMAKE_CXX_FLAGS": "-O3",
                "LLVM_USE_LINKER": "lld",
                "LLVM_ENABLE_LLD": "ON",
            },
        )

    @classmethod
    def named(cls, name: str) -> "BuildProfile":
        factories = {"release": cls.release, "ci": cls.ci}
        try:
            return factories[name]()
        except KeyError:
            raise ValueError(
                f"unknown build profile '{name}' (expected one of: {', '.join(sorted(factories))})"
            ) from None
