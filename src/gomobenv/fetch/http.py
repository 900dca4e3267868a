"""Integrity-enforced HTTP/file download with bounded retries."""

from __future__ import annotations

import hashlib
import http.client
import time
from collections.abc import Callable
from pathlib import Path
from typing import IO, Any
from urllib.error import HTTPError, URLError
from urllib.request import urlopen

from gomobenv.cancel import CancellationToken, check
from gomobenv.errors import BuildCancelled, ChecksumMismatch, DownloadError, ValidationError
from gomobenv.observability import StructuredLogger
from gomobenv.policy import Policy, RetryPolicy, ensure_network_allowed

CHUNK_SIZE = 1 << 20
DEFAULT_TIMEOUT = 60.0

Opener = Callable[[str, float], Any]
Sleeper = Callable[[float], None]


def default_opener(url: str, timeout: float) -> Any:
    return urlopen(url, timeout=timeout)  # noqa: S310


def download(
    url: str,
    *,
    sha256: str,
    dest: str | Path,
    policy: Policy | None = None,
    retry: RetryPolicy | None = None,
    cancel: CancellationToken | None = None,
    opener: Opener | None = None,
    sleep: Sleeper | None = None,
    logger: StructuredLogger | None = None,
    toolchain: str | None = None,
    timeout: float = DEFAULT_TIMEOUT,
) -> str:
    """Download *url* into *dest* and return the verified sha256 digest.

    Transient failures are retried with exponential backoff. A checksum
    mismatch removes *dest* and is raised immediately.
    """
    policy = policy or Policy()
    retry = retry or RetryPolicy()
    opener = opener or default_opener
    ensure_network_allowed(policy=policy, operation="download")
    if not sha256 and policy.require_integrity:
        raise ValidationError(
            "download() requires a sha256 value.",
            hint="Add the artifact checksum to the config `checksums` table.",
            context={"url": url},
        )

    target = Path(dest)
    target.parent.mkdir(parents=True, exist_ok=True)
    attempt = 0
    while True:
        attempt += 1
        check(cancel, operation="download")
        try:
            actual = _transfer(url, target, opener=opener, cancel=cancel, timeout=timeout)
            break
        except BuildCancelled:
            target.unlink(missing_ok=True)
            raise
        except DownloadError as exc:
            target.unlink(missing_ok=True)
            if not exc.transient or attempt >= retry.max_attempts:
                exc.context["attempts"] = str(attempt)
                raise
            delay = retry.delay_for(attempt)
            if logger is not None:
                logger.log(
                    operation="download",
                    toolchain=toolchain,
                    phase="retry",
                    level="warning",
                    message=f"Transient download failure; retrying in {delay:.1f}s.",
                    extra={"attempt": attempt, "url": url, "error": str(exc).splitlines()[0]},
                )
            _backoff(delay, sleep=sleep, cancel=cancel)

    if sha256 and actual != sha256:
        target.unlink(missing_ok=True)
        raise ChecksumMismatch(
            "Downloaded content hash mismatch.",
            hint="Update the expected hash or source URL to a trusted immutable artifact.",
            context={"operation": "download", "url": url, "expected": sha256, "actual": actual},
        )
    return actual


def _transfer(
    url: str,
    target: Path,
    *,
    opener: Opener,
    cancel: CancellationToken | None,
    timeout: float,
) -> str:
    digest = hashlib.sha256()
    try:
        with opener(url, timeout) as response, target.open("wb") as handle:
            _copy(response, handle, digest, cancel)
    except HTTPError as exc:
        transient = exc.code >= 500 or exc.code == 429
        raise DownloadError(
            f"HTTP {exc.code} while downloading.",
            transient=transient,
            hint=None if transient else "Check the toolchain version and URL template.",
            context={"operation": "download", "url": url, "status": str(exc.code)},
        ) from exc
    except URLError as exc:
        transient = not isinstance(exc.reason, FileNotFoundError)
        raise DownloadError(
            "Unable to reach download URL.",
            transient=transient,
            context={"operation": "download", "url": url, "reason": str(exc.reason)},
        ) from exc
    except (http.client.HTTPException, OSError) as exc:
        raise DownloadError(
            "Download interrupted.",
            context={"operation": "download", "url": url, "reason": str(exc)},
        ) from exc
    return digest.hexdigest()


def _copy(response: IO[bytes], handle: IO[bytes], digest: Any, cancel: CancellationToken | None) -> None:
    while True:
        check(cancel, operation="download")
        chunk = response.read(CHUNK_SIZE)
        if not chunk:
            return
        digest.update(chunk)
        handle.write(chunk)


def _backoff(delay: float, *, sleep: Sleeper | None, cancel: CancellationToken | None) -> None:
    if sleep is not None:
        sleep(delay)
    elif cancel is not None:
        cancel.wait(delay)
    else:
        time.sleep(delay)
    check(cancel, operation="download")
