"""Policy configuration and enforcement helpers."""

from __future__ import annotations

import warnings
from dataclasses import dataclass
from typing import Literal

from gomobenv.errors import PolicyError, ValidationError

MutableRefPolicy = Literal["warn", "error", "allow"]
NetworkMode = Literal["online", "offline"]

MUTABLE_VERSIONS = frozenset({"latest", "master", "main", "head", "HEAD"})


class MutableVersionWarning(UserWarning):
    """Warning raised when a toolchain is pinned to a moving version."""


@dataclass(frozen=True, slots=True)
class Policy:
    require_integrity: bool = True
    mutable_ref_policy: MutableRefPolicy = "warn"
    network_mode: NetworkMode = "online"


@dataclass(frozen=True, slots=True)
class RetryPolicy:
    """Bounded exponential backoff for transient download failures."""

    max_attempts: int = 5
    initial_delay: float = 1.0
    multiplier: float = 2.0
    max_delay: float = 30.0

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValidationError("RetryPolicy.max_attempts must be at least 1.")
        if self.initial_delay < 0 or self.max_delay < 0:
            raise ValidationError("RetryPolicy delays must not be negative.")
        if self.multiplier < 1:
            raise ValidationError("RetryPolicy.multiplier must be at least 1.")

    def delay_for(self, attempt: int) -> float:
        """Delay to wait after failed attempt number *attempt* (1-based)."""
        return min(self.initial_delay * self.multiplier ** (attempt - 1), self.max_delay)


def ensure_network_allowed(*, policy: Policy, operation: str) -> None:
    if policy.network_mode == "offline":
        raise PolicyError(
            "Network operations are disabled by policy.",
            hint="Switch policy.network_mode to 'online' or pre-populate the toolchain cache.",
            context={"operation": operation},
        )


def is_mutable_version(version: str) -> bool:
    return version in MUTABLE_VERSIONS


def enforce_mutable_version_policy(*, name: str, version: str, policy: Policy) -> None:
    if not is_mutable_version(version):
        return
    if policy.mutable_ref_policy == "allow":
        return
    if policy.mutable_ref_policy == "warn":
        warnings.warn(
            f"Toolchain `{name}` is pinned to mutable version `{version}`; "
            "result is not inherently reproducible.",
            MutableVersionWarning,
            stacklevel=3,
        )
        return
    if policy.mutable_ref_policy == "error":
        raise PolicyError(
            "Mutable toolchain versions are not allowed by policy.",
            hint="Pin an exact version or relax mutable_ref_policy.",
            context={"operation": "resolve", "toolchain": name, "version": version},
        )
    raise ValidationError(f"Unsupported mutable_ref_policy value: {policy.mutable_ref_policy}")
