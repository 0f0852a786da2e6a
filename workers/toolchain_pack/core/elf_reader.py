"""
ELF reader — classify a file by content and extract fixup-relevant facts.

Responsibilities:
  - Decide whether a path is a regular file, and whether it carries ELF magic.
  - Classify ELF files into executable / shared object / other by looking
    for a PT_INTERP segment and at e_type.
  - Report whether removable symbol data is present: .symtab or .debug_*
    for linked images, only .debug_* for relocatable objects (their .symtab
    survives strip because relocations reference it).
  - Read the current DT_RUNPATH (or legacy DT_RPATH).

File names are never consulted.  This module does not modify anything.
"""
from dataclasses import dataclass
from enum import Enum, unique
from pathlib import Path
from typing import Optional

from elftools.common.exceptions import ELFError
from elftools.elf.dynamic import DynamicSection
from elftools.elf.elffile import ELFFile

from toolchain_pack.errors import FixupError

ELF_MAGIC = b"\x7fELF"


@unique
class FileKind(str, Enum):
    ORDINARY = "ordinary"               # not a regular file (symlink, fifo, ...)
    ELF_EXECUTABLE = "elf-executable"
    ELF_SHARED_OBJECT = "elf-shared-object"
    ELF_OTHER = "elf-other"
    NON_ELF = "non-elf"

    @property
    def is_elf(self) -> bool:
        return self in (FileKind.ELF_EXECUTABLE, FileKind.ELF_SHARED_OBJECT, FileKind.ELF_OTHER)


@dataclass(frozen=True)
class ElfInfo:
    """Content-derived facts about one file in the install tree."""

    path: str
    kind: FileKind

    # Only meaningful when kind.is_elf
    elf_type: str = ""            # ET_EXEC, ET_DYN, ET_REL, ...
    machine: str = ""             # EM_X86_64, EM_AARCH64, ...
    has_interpreter: bool = False
    has_symbols: bool = False     # something strip --strip-unneeded would remove
    runpath: Optional[str] = None


def has_elf_magic(path: Path) -> bool:
    with open(path, "rb") as f:
        return f.read(4) == ELF_MAGIC


def _read_runpath(elffile: ELFFile) -> Optional[str]:
    """DT_RUNPATH if present, else DT_RPATH, else None."""
    rpath = None
    for section in elffile.iter_sections():
        if not isinstance(section, DynamicSection):
            continue
        for tag in section.iter_tags():
            if tag.entry.d_tag == "DT_RUNPATH":
                return tag.runpath
            if tag.entry.d_tag == "DT_RPATH":
                rpath = tag.rpath
    return rpath


def _has_removable_symbols(elffile: ELFFile, elf_type: str) -> bool:
    names = [s.name for s in elffile.iter_sections()]
    if any(n.startswith(".debug_") for n in names):
        return True
    # ET_REL keeps .symtab after stripping
    return elf_type != "ET_REL" and ".symtab" in names


def _classify(elf_type: str, has_interpreter: bool) -> FileKind:
    if has_interpreter:
        return FileKind.ELF_EXECUTABLE
    if elf_type == "ET_DYN":
        return FileKind.ELF_SHARED_OBJECT
    return FileKind.ELF_OTHER


def read_elf_info(path: Path) -> ElfInfo:
    """
    Inspect *path* and return its classification.

    Raises
    ------
    FixupError
        If the file cannot be read, or carries ELF magic but is not a
        parseable ELF image.
    """
    p = Path(path)
    if p.is_symlink() or not p.is_file():
        return ElfInfo(path=str(p), kind=FileKind.ORDINARY)

    try:
        if not has_elf_magic(p):
            return ElfInfo(path=str(p), kind=FileKind.NON_ELF)

        with open(p, "rb") as f:
            elffile = ELFFile(f)
            elf_type = elffile.header["e_type"]
            machine = elffile.header["e_machine"]
            has_interpreter = any(
                seg["p_type"] == "PT_INTERP" for seg in elffile.iter_segments()
            )
            has_symbols = _has_removable_symbols(elffile, elf_type)
            runpath = _read_runpath(elffile)
    except (ELFError, OSError) as e:
        raise FixupError(
            "Content inspection failed.",
            hint="The install tree may be corrupt; rebuild from a clean tree.",
            context={"path": str(p), "error": str(e)},
        ) from e

    return ElfInfo(
        path=str(p),
        kind=_classify(elf_type, has_interpreter),
        elf_type=elf_type,
        machine=machine,
        has_interpreter=has_interpreter,
        has_symbols=has_symbols,
        runpath=runpath,
    )
