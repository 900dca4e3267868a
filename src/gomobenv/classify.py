"""Map tool diagnostic text onto the normalized failure taxonomy."""

from __future__ import annotations

import re

from gomobenv.models import FailureKind

PATTERNS: tuple[tuple[FailureKind, re.Pattern[str]], ...] = (
    (
        FailureKind.UNSUPPORTED_API_LEVEL,
        re.compile(
            r"unsupported API version"
            r"|-androidapi\b.*\b(?:invalid|unsupported|out of range)"
            r"|API level \d+ is not supported"
            r"|minSdkVersion .* cannot be (?:smaller|lower)",
            re.IGNORECASE,
        ),
    ),
    (
        FailureKind.UNRESOLVED_IMPORT,
        re.compile(
            r"cannot find package"
            r"|no required module provides package"
            r"|cannot find module providing package"
            r"|could not import \S+"
            r"|package \S+ is not in (?:GOROOT|std)"
            r"|unable to import bind"
            r"|no Go package in",
            re.IGNORECASE,
        ),
    ),
    (
        FailureKind.CGO_UNSUPPORTED,
        re.compile(
            r"cgo: C compiler .* not found"
            r"|C source files not allowed when not using cgo"
            r"|requires cgo"
            r"|CGO_ENABLED=0"
            r"|could not determine kind of name for C\."
            r"|undefined reference to `?_?cgo",
            re.IGNORECASE,
        ),
    ),
)


def classify_output(output: str) -> FailureKind:
    """Return the first matching failure kind, or ``UNCLASSIFIED``."""
    for kind, pattern in PATTERNS:
        if pattern.search(output):
            return kind
    return FailureKind.UNCLASSIFIED
