"""
Pipeline configuration
"""
from pathlib import Path

from pydantic_settings import BaseSettings

from toolchain_pack.policy.profile import BuildProfile


class Settings(BaseSettings):
    """Pipeline settings"""

    # Layout
    BUILD_ROOT: Path = Path(".")
    INSTALL_DIR: Path | None = None       # defaults to BUILD_ROOT/install
    ARCHIVE_PATH: Path | None = None      # defaults to BUILD_ROOT/clang.tar.gz
    REVISION_FILE: Path | None = None     # defaults to BUILD_ROOT/revision_info.md

    # Version
    OVERRIDE_VERSION: str | None = None   # e.g. "llvmorg-19.1.0"
    BUILD_PROFILE: str = "release"
    RELEASES_URL: str = "https://api.github.com/repos/llvm/llvm-project/releases/latest"
    LOOKUP_RETRIES: int = 3
    LOOKUP_RETRY_DELAY: float = 5.0       # seconds
    LOOKUP_TIMEOUT: float = 30.0          # seconds

    # CI
    GITHUB_ACTIONS: bool = False
    GITHUB_ENV: Path | None = None

    # Fixup / pack
    FIXUP_JOBS: int = 1
    STRIP_TOOL: str = "strip"
    PATCHELF_TOOL: str = "patchelf"
    SOURCE_DATE_EPOCH: int | None = None

    @property
    def base_dir(self) -> Path:
        return self.BUILD_ROOT.resolve()

    @property
    def install_dir(self) -> Path:
        return self.INSTALL_DIR or self.base_dir / "install"

    @property
    def archive_path(self) -> Path:
        return self.ARCHIVE_PATH or self.base_dir / "clang.tar.gz"

    @property
    def revision_file(self) -> Path:
        return self.REVISION_FILE or self.base_dir / "revision_info.md"

    @property
    def binutils_script(self) -> Path:
        return self.base_dir / "build-binutils.py"

    @property
    def llvm_script(self) -> Path:
        return self.base_dir / "build-llvm.py"

    @property
    def in_ci(self) -> bool:
        return self.GITHUB_ACTIONS

    @property
    def profile(self) -> BuildProfile:
        return BuildProfile.named(self.BUILD_PROFILE)

    class Config:
        env_file = ".env"
        case_sensitive = True
