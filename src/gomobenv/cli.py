"""Command-line entry point: ``gomobenv bind|resolve|evict``."""

from __future__ import annotations

import argparse
import dataclasses
import json
import sys
import threading
from collections.abc import Callable, Sequence
from pathlib import Path
from typing import TypeVar

from gomobenv.cancel import CancellationToken
from gomobenv.config import BuildConfig, Layout, load_config
from gomobenv.errors import BuildCancelled, GomobenvError
from gomobenv.observability import StructuredLogger
from gomobenv.pipeline import BuildPipeline
from gomobenv.policy import Policy
from gomobenv.resolver import ToolchainResolver

EXIT_USAGE = 2
EXIT_CANCELLED = 130
EXIT_SIGNAL_BASE = 128

T = TypeVar("T")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="gomobenv",
        description="Reproducible gomobile build environments for Android bindings.",
    )
    parser.add_argument("--config", help="JSON build configuration file.")
    parser.add_argument("--home", help="Root for cache, install and scratch directories.")
    parser.add_argument("--cache-root")
    parser.add_argument("--install-root")
    parser.add_argument("--scratch-root")
    parser.add_argument("--accept-licenses", action="store_true")
    parser.add_argument("--offline", action="store_true", help="Serve toolchains from cache only.")
    parser.add_argument("--log-json", help="Write structured log records to this file.")
    sub = parser.add_subparsers(dest="command", required=True)

    bind = sub.add_parser("bind", help="Bind a Go module into an Android library.")
    bind.add_argument("module", help="Directory of the Go module to bind.")
    bind.add_argument("-o", "--output-dir", default=".")
    bind.add_argument("--name", help="Output name; defaults to the module name.")
    bind.add_argument("--androidapi", type=int, help="Minimum Android API level.")
    bind.add_argument("--target", help="Comma-separated architectures, e.g. arm64,amd64.")

    sub.add_parser("resolve", help="Fetch and verify all configured toolchains.")

    evict = sub.add_parser("evict", help="Remove a toolchain from the cache.")
    evict.add_argument("name")
    evict.add_argument("version")
    return parser


def main(argv: Sequence[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    logger = StructuredLogger()
    try:
        return _dispatch(args, logger)
    except BuildCancelled as exc:
        print(f"cancelled: {exc}", file=sys.stderr)
        return EXIT_CANCELLED
    except GomobenvError as exc:
        print(f"error [{exc.code}]: {exc}", file=sys.stderr)
        return EXIT_USAGE
    finally:
        if args.log_json:
            logger.to_json_lines(args.log_json)


def _dispatch(args: argparse.Namespace, logger: StructuredLogger) -> int:
    config = load_config(args.config) if args.config else BuildConfig()
    layout = _layout(args)
    policy = Policy(network_mode="offline" if args.offline else "online")

    if args.command == "evict":
        removed = ToolchainResolver(layout, policy=policy, logger=logger).cache.evict(
            args.name, args.version
        )
        print("evicted" if removed else "not cached")
        return 0

    if args.command == "bind":
        overrides: dict[str, object] = {}
        if args.androidapi is not None:
            overrides["android_api_level"] = args.androidapi
        if args.target:
            overrides["target_architectures"] = tuple(
                arch.strip() for arch in args.target.split(",") if arch.strip()
            )
        if overrides:
            config = dataclasses.replace(config, **overrides)

    pipeline = BuildPipeline(config, layout, policy=policy, logger=logger)
    cancel = CancellationToken()

    if args.command == "resolve":
        resolved = _run_cancellable(lambda: pipeline.resolve(cancel=cancel), cancel)
        for item in resolved:
            print(json.dumps({"name": item.name, "version": item.spec.version, "path": str(item.path)}))
        return 0

    result = _run_cancellable(
        lambda: pipeline.bind(
            args.module,
            args.output_dir,
            name=args.name,
            cancel=cancel,
        ),
        cancel,
    )
    sys.stdout.write(result.output)
    if not result.ok:
        error = result.error()
        print(f"error [{error.code if error else ''}]: build failed", file=sys.stderr)
        return exit_status_for(result.exit_status)
    for artifact in result.artifacts:
        print(artifact)
    return 0


def exit_status_for(status: int) -> int:
    """Map a child status to a process exit code; signal deaths become ``128 + signum``."""
    if status < 0:
        return EXIT_SIGNAL_BASE - status
    return status


def _layout(args: argparse.Namespace) -> Layout:
    base = (
        Layout.under(args.home, accept_licenses=args.accept_licenses)
        if args.home
        else Layout.default(accept_licenses=args.accept_licenses)
    )
    return dataclasses.replace(
        base,
        cache_root=Path(args.cache_root) if args.cache_root else base.cache_root,
        install_root=Path(args.install_root) if args.install_root else base.install_root,
        scratch_root=Path(args.scratch_root) if args.scratch_root else base.scratch_root,
    )


def _run_cancellable(work: Callable[[], T], cancel: CancellationToken) -> T:
    """Run *work* on a worker thread so Ctrl-C becomes a cooperative cancellation."""
    outcome: dict[str, object] = {}

    def target() -> None:
        try:
            outcome["value"] = work()
        except BaseException as exc:  # noqa: BLE001 - re-raised on the calling thread
            outcome["error"] = exc

    worker = threading.Thread(target=target, name="gomobenv-build", daemon=True)
    worker.start()
    while worker.is_alive():
        try:
            worker.join(timeout=0.5)
        except KeyboardInterrupt:
            cancel.cancel("interrupted")
    if "error" in outcome:
        raise outcome["error"]  # type: ignore[misc]
    return outcome["value"]  # type: ignore[return-value]


if __name__ == "__main__":
    raise SystemExit(main())
