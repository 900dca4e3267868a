"""Public package entrypoint for gomobenv."""

from .assembler import EnvironmentAssembler
from .cancel import CancellationToken
from .config import BuildConfig, Layout, load_config, parse_config
from .errors import (
    BuildCancelled,
    BuildFailure,
    CgoUnsupported,
    ChecksumMismatch,
    DownloadError,
    ErrorCode,
    GomobenvError,
    LicenseNotAccepted,
    MissingDependency,
    PolicyError,
    Unclassified,
    UnresolvedImport,
    UnsupportedApiLevel,
    ValidationError,
)
from .invoker import BuildInvoker
from .modcache import ModulePrefetcher
from .models import BuildEnvironment, BuildResult, FailureKind, ResolvedToolchain, ToolchainSpec
from .observability import StructuredLogger
from .pipeline import BuildPipeline
from .policy import Policy, RetryPolicy
from .resolver import ToolchainResolver
from .toolchains import default_toolchain_specs

__all__ = [
    "BuildCancelled",
    "BuildConfig",
    "BuildEnvironment",
    "BuildFailure",
    "BuildInvoker",
    "BuildPipeline",
    "BuildResult",
    "CancellationToken",
    "CgoUnsupported",
    "ChecksumMismatch",
    "DownloadError",
    "EnvironmentAssembler",
    "ErrorCode",
    "FailureKind",
    "GomobenvError",
    "Layout",
    "LicenseNotAccepted",
    "MissingDependency",
    "ModulePrefetcher",
    "Policy",
    "PolicyError",
    "ResolvedToolchain",
    "RetryPolicy",
    "StructuredLogger",
    "ToolchainResolver",
    "ToolchainSpec",
    "Unclassified",
    "UnresolvedImport",
    "UnsupportedApiLevel",
    "ValidationError",
    "default_toolchain_specs",
    "load_config",
    "parse_config",
]
