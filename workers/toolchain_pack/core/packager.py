"""
Packager — serialize the install tree into a deterministic tar.gz.

Determinism rules:
  - entries are emitted in sorted order, rooted at ``.``;
  - owner is forced to uid/gid 0 with empty user/group names;
  - the gzip header carries no file name and a zero timestamp;
  - with SOURCE_DATE_EPOCH set, entry mtimes are clamped to it.

The archive is written beside its final path and moved into place only
after it is complete, so a failed pack never leaves a partial archive.
"""
import gzip
import hashlib
import logging
import os
import tarfile
from pathlib import Path
from typing import Iterator, Optional, Tuple

from toolchain_pack.errors import PackagingError
from toolchain_pack.io.schema import PackSummary

logger = logging.getLogger(__name__)


def hash_file(path: Path) -> str:
    """SHA-256 of a file."""
    h = hashlib.sha256()
    with open(path, "rb") as f:
        for chunk in iter(lambda: f.read(65536), b""):
            h.update(chunk)
    return h.hexdigest()


def human_size(n: int) -> str:
    size = float(n)
    for unit in ("B", "KiB", "MiB", "GiB"):
        if size < 1024:
            return f"{size:.1f} {unit}"
        size /= 1024
    return f"{size:.1f} TiB"


def iter_archive_entries(tree: Path) -> Iterator[Tuple[Path, str]]:
    """(path, arcname) pairs in archive order, symlinks never followed."""
    yield tree, "."
    for dirpath, dirnames, filenames in os.walk(tree):
        dirnames.sort()
        base = Path(dirpath)
        for name in sorted(dirnames + filenames):
            path = base / name
            yield path, "./" + path.relative_to(tree).as_posix()


class Packager:
    """Writes reproducible archives of an install tree."""

    def __init__(self, source_date_epoch: Optional[int] = None):
        self.source_date_epoch = source_date_epoch

    def normalize(self, info: tarfile.TarInfo) -> tarfile.TarInfo:
        """Strip machine-specific ownership from one entry."""
        info.uid = 0
        info.gid = 0
        info.uname = ""
        info.gname = ""
        if self.source_date_epoch is not None and info.mtime > self.source_date_epoch:
            info.mtime = self.source_date_epoch
        return info

    def pack(self, tree: Path, archive_path: Path) -> PackSummary:
        tree = Path(tree)
        archive_path = Path(archive_path)
        if not tree.is_dir():
            raise PackagingError(
                "Install tree does not exist.",
                context={"install_dir": str(tree)},
            )

        logger.info("Packing build into archive %s", archive_path)
        archive_path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = archive_path.with_name(archive_path.name + ".partial")

        try:
            entry_count = self._write(tree, tmp_path)
            os.replace(tmp_path, archive_path)
        except (OSError, tarfile.TarError) as e:
            tmp_path.unlink(missing_ok=True)
            raise PackagingError(
                "Archive creation failed.",
                context={"archive": str(archive_path), "error": str(e)},
            ) from e

        size = archive_path.stat().st_size
        logger.info("Archive size: %s", human_size(size))
        logger.info("Number of files: %d", entry_count)
        digest = hash_file(archive_path)
        logger.info("SHA-256: %s", digest)

        return PackSummary(
            archive_path=str(archive_path),
            size_bytes=size,
            entry_count=entry_count,
            sha256=digest,
        )

    def _write(self, tree: Path, out_path: Path) -> int:
        count = 0
        with open(out_path, "wb") as raw:
            with gzip.GzipFile(filename="", mode="wb", fileobj=raw, mtime=0) as gz:
                with tarfile.open(fileobj=gz, mode="w", format=tarfile.GNU_FORMAT) as tar:
                    for path, arcname in iter_archive_entries(tree):
                        tar.add(path, arcname=arcname, recursive=False, filter=self.normalize)
                        count += 1
        return count
