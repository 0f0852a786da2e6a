"""
Errors — typed pipeline failures with stable, machine-readable codes.

Every stage raises a subclass of PipelineError.  The orchestrator wraps
whatever escapes a stage into a StageFailure so the operator sees which
stage failed and the underlying cause, verbatim.
"""
from __future__ import annotations

from enum import Enum, unique
from typing import Dict, Mapping, Optional


@unique
class ErrorCode(str, Enum):
    RESOLUTION = "E_RESOLUTION"
    BUILD = "E_BUILD"
    FIXUP = "E_FIXUP"
    PACKAGING = "E_PACKAGING"
    EXTRACTION = "E_EXTRACTION"
    USAGE = "E_USAGE"


class PipelineError(Exception):
    """Base error carrying a code, an optional hint, and string context."""

    code: str
    hint: Optional[str]
    context: Dict[str, str]

    def __init__(
        self,
        message: str,
        *,
        code: ErrorCode,
        hint: Optional[str] = None,
        context: Optional[Mapping[str, str]] = None,
    ) -> None:
        super().__init__(message)
        self.code = code.value
        self.hint = hint
        self.context = dict(context or {})

    def __str__(self) -> str:
        parts = [super().__str__()]
        if self.hint:
            parts.append(f"Hint: {self.hint}")
        for k, v in self.context.items():
            if v:
                parts.append(f"  {k}: {v}")
        return "\n".join(parts)

    def to_dict(self) -> Dict[str, object]:
        payload: Dict[str, object] = {
            "code": self.code,
            "message": str(self),
            "context": dict(self.context),
        }
        if self.hint is not None:
            payload["hint"] = self.hint
        return payload


class ResolutionError(PipelineError):
    """The release to build could not be determined."""

    def __init__(self, message: str, *, hint: Optional[str] = None,
                 context: Optional[Mapping[str, str]] = None) -> None:
        super().__init__(message, code=ErrorCode.RESOLUTION, hint=hint, context=context)


class BuildError(PipelineError):
    """A delegated collaborator failed, or a stage precondition is unmet."""

    def __init__(self, message: str, *, hint: Optional[str] = None,
                 context: Optional[Mapping[str, str]] = None) -> None:
        super().__init__(message, code=ErrorCode.BUILD, hint=hint, context=context)


class FixupError(PipelineError):
    """Inspecting or patching a specific file failed."""

    def __init__(self, message: str, *, hint: Optional[str] = None,
                 context: Optional[Mapping[str, str]] = None) -> None:
        super().__init__(message, code=ErrorCode.FIXUP, hint=hint, context=context)


class PackagingError(PipelineError):
    def __init__(self, message: str, *, hint: Optional[str] = None,
                 context: Optional[Mapping[str, str]] = None) -> None:
        super().__init__(message, code=ErrorCode.PACKAGING, hint=hint, context=context)


class ExtractionError(PipelineError):
    """Revision metadata could not be parsed from a collaborator's descriptor."""

    def __init__(self, message: str, *, hint: Optional[str] = None,
                 context: Optional[Mapping[str, str]] = None) -> None:
        super().__init__(message, code=ErrorCode.EXTRACTION, hint=hint, context=context)


class UsageError(PipelineError):
    def __init__(self, message: str, *, hint: Optional[str] = None,
                 context: Optional[Mapping[str, str]] = None) -> None:
        super().__init__(message, code=ErrorCode.USAGE, hint=hint, context=context)


class StageFailure(Exception):
    """A named stage failed; ``cause`` is the original exception."""

    def __init__(self, stage: str, cause: BaseException) -> None:
        super().__init__(f"stage '{stage}' failed: {cause}")
        self.stage = stage
        self.cause = cause


__all__ = [
    "BuildError",
    "ErrorCode",
    "ExtractionError",
    "FixupError",
    "PackagingError",
    "PipelineError",
    "ResolutionError",
    "StageFailure",
    "UsageError",
]
