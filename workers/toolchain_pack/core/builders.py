"""
Builders — thin adapters around the external collaborators.

  DependencyInstaller  apt-get, CI only
  BinutilsBuilder      build-binutils.py
  LlvmBuilder          build-llvm.py

Each one builds an argv, runs it with the collaborator's output streamed
straight to the terminal, and turns a non-zero exit into BuildError.
Nothing here inspects what the collaborator produced.
"""
import logging
import shlex
import subprocess
from pathlib import Path
from typing import List

from toolchain_pack.errors import BuildError
from toolchain_pack.policy.profile import BuildProfile

logger = logging.getLogger(__name__)


def run_collaborator(cmd: List[str], cwd: Path | None = None) -> None:
    """Run *cmd* with inherited stdout/stderr; raise BuildError on failure."""
    cmd_str = shlex.join(cmd)
    logger.info("Running: %s", cmd_str)
    try:
        result = subprocess.run(cmd, cwd=str(cwd) if cwd else None)
    except OSError as e:
        raise BuildError(
            f"Could not start {cmd[0]}.",
            context={"command": cmd_str, "error": str(e)},
        ) from e
    if result.returncode != 0:
        raise BuildError(
            f"{Path(cmd[0]).name} exited with status {result.returncode}.",
            context={"command": cmd_str, "exit_code": str(result.returncode)},
        )


class DependencyInstaller:
    """Installs the profile's build packages; a no-op outside CI."""

    def __init__(self, profile: BuildProfile, in_ci: bool):
        self.profile = profile
        self.in_ci = in_ci

    def commands(self) -> List[List[str]]:
        return [
            # Refresh mirrorlist to avoid dead mirrors
            ["sudo", "apt-get", "update", "-y"],
            ["sudo", "apt-get", "install", "-y", "--no-install-recommends", *self.profile.packages],
        ]

    def install(self) -> None:
        if not self.in_ci:
            logger.info("Not running under CI; skipping dependency installation")
            return
        for cmd in self.commands():
            run_collaborator(cmd)


class BinutilsBuilder:
    def __init__(self, script: Path, install_dir: Path, profile: BuildProfile):
        self.script = Path(script)
        self.install_dir = Path(install_dir)
        self.profile = profile

    def command(self) -> List[str]:
        return [
            str(self.script),
            "--install-folder", str(self.install_dir),
            "--show-build-commands",
            "--targets", *self.profile.binutils_targets,
        ]

    def build(self) -> None:
        run_collaborator(self.command(), cwd=self.script.parent)


class LlvmBuilder:
    def __init__(self, script: Path, install_dir: Path, profile: BuildProfile):
        self.script = Path(script)
        self.install_dir = Path(install_dir)
        self.profile = profile

    def command(self, version: str) -> List[str]:
        p = self.profile
        cmd = [
            str(self.script),
            "--vendor-string", p.vendor_string,
            "--targets", *p.llvm_targets,
        ]
        if p.llvm_projects:
            cmd += ["--projects", *p.llvm_projects]
        cmd += p.define_args()
        cmd += [
            "--lto", p.lto,
            "--no-ccache",
            "--quiet-cmake",
            "--ref", version,
            "--shallow-clone",
            "--no-update",
        ]
        if p.multicall:
            cmd.append("--multicall")
        cmd += ["--install-folder", str(self.install_dir)]
        return cmd

    def build(self, version: str) -> None:
        logger.info("Building %s...", version)
        run_collaborator(self.command(version), cwd=self.script.parent)
