"""Typed error model with stable, machine-readable error codes."""

from __future__ import annotations

from collections.abc import Mapping
from enum import StrEnum


class ErrorCode(StrEnum):
    """Stable error identifiers used across API surfaces."""

    VALIDATION = "E_VALIDATION"
    POLICY = "E_POLICY"
    DOWNLOAD = "E_DOWNLOAD"
    CHECKSUM = "E_CHECKSUM"
    MISSING_DEPENDENCY = "E_MISSING_DEPENDENCY"
    UNSUPPORTED_API_LEVEL = "E_UNSUPPORTED_API_LEVEL"
    UNRESOLVED_IMPORT = "E_UNRESOLVED_IMPORT"
    CGO_UNSUPPORTED = "E_CGO_UNSUPPORTED"
    UNCLASSIFIED = "E_UNCLASSIFIED"
    CANCELLED = "E_CANCELLED"


class GomobenvError(Exception):
    """Base error class that carries code, optional hint, and context."""

    code: str
    hint: str | None
    context: Mapping[str, str]

    def __init__(
        self,
        message: str,
        *,
        code: ErrorCode,
        hint: str | None = None,
        context: Mapping[str, str] | None = None,
    ) -> None:
        super().__init__(message)
        self.code = code.value
        self.hint = hint
        self.context = dict(context or {})

    def __str__(self) -> str:
        parts = [super().__str__()]
        if self.hint:
            parts.append(f"Hint: {self.hint}")
        if self.context:
            for k, v in self.context.items():
                if v:
                    parts.append(f"  {k}: {v}")
        return "\n".join(parts)

    def to_dict(self) -> dict[str, object]:
        payload: dict[str, object] = {
            "code": self.code,
            "message": str(self),
            "context": dict(self.context),
        }
        if self.hint is not None:
            payload["hint"] = self.hint
        return payload


class ValidationError(GomobenvError):
    def __init__(
        self,
        message: str,
        *,
        hint: str | None = None,
        context: Mapping[str, str] | None = None,
    ) -> None:
        super().__init__(message, code=ErrorCode.VALIDATION, hint=hint, context=context)


class PolicyError(GomobenvError):
    def __init__(
        self,
        message: str,
        *,
        hint: str | None = None,
        context: Mapping[str, str] | None = None,
    ) -> None:
        super().__init__(message, code=ErrorCode.POLICY, hint=hint, context=context)


class DownloadError(GomobenvError):
    """Network or transfer failure; retried locally before surfacing."""

    def __init__(
        self,
        message: str,
        *,
        transient: bool = True,
        hint: str | None = None,
        context: Mapping[str, str] | None = None,
    ) -> None:
        super().__init__(message, code=ErrorCode.DOWNLOAD, hint=hint, context=context)
        self.transient = transient


class ChecksumMismatch(GomobenvError):
    """Downloaded or built artifact does not match its pinned sha256. Never retried."""

    def __init__(
        self,
        message: str,
        *,
        hint: str | None = None,
        context: Mapping[str, str] | None = None,
    ) -> None:
        super().__init__(message, code=ErrorCode.CHECKSUM, hint=hint, context=context)


class MissingDependency(GomobenvError):
    def __init__(
        self,
        message: str,
        *,
        hint: str | None = None,
        context: Mapping[str, str] | None = None,
    ) -> None:
        super().__init__(message, code=ErrorCode.MISSING_DEPENDENCY, hint=hint, context=context)


class LicenseNotAccepted(MissingDependency):
    """SDK packages need a license acceptance that was not granted in configuration."""


class BuildCancelled(GomobenvError):
    def __init__(
        self,
        message: str = "Operation cancelled.",
        *,
        hint: str | None = None,
        context: Mapping[str, str] | None = None,
    ) -> None:
        super().__init__(message, code=ErrorCode.CANCELLED, hint=hint, context=context)


class BuildFailure(GomobenvError):
    """A build tool exited non-zero. Subclasses narrow down the cause."""

    error_code: ErrorCode = ErrorCode.UNCLASSIFIED

    def __init__(
        self,
        message: str,
        *,
        exit_status: int,
        output: str,
        hint: str | None = None,
        context: Mapping[str, str] | None = None,
    ) -> None:
        super().__init__(message, code=self.error_code, hint=hint, context=context)
        self.exit_status = exit_status
        self.output = output


class UnsupportedApiLevel(BuildFailure):
    error_code = ErrorCode.UNSUPPORTED_API_LEVEL


class UnresolvedImport(BuildFailure):
    error_code = ErrorCode.UNRESOLVED_IMPORT


class CgoUnsupported(BuildFailure):
    error_code = ErrorCode.CGO_UNSUPPORTED


class Unclassified(BuildFailure):
    error_code = ErrorCode.UNCLASSIFIED


__all__ = [
    "BuildCancelled",
    "BuildFailure",
    "CgoUnsupported",
    "ChecksumMismatch",
    "DownloadError",
    "ErrorCode",
    "GomobenvError",
    "LicenseNotAccepted",
    "MissingDependency",
    "PolicyError",
    "Unclassified",
    "UnresolvedImport",
    "UnsupportedApiLevel",
    "ValidationError",
]
