import hashlib
import http.client
import io
import ssl
from collections.abc import Callable
from pathlib import Path
from urllib.error import HTTPError, URLError

import pytest

from gomobenv.cancel import CancellationToken
from gomobenv.errors import BuildCancelled, ChecksumMismatch, DownloadError, PolicyError, ValidationError
from gomobenv.fetch import download, extract
from gomobenv.observability import StructuredLogger
from gomobenv.policy import Policy, RetryPolicy

ArchiveFactory = Callable[..., tuple[Path, str]]


class _Response(io.BytesIO):
    def __enter__(self) -> "_Response":
        return self


class FlakyOpener:
    """Fail with the queued errors, then serve *payload*."""

    def __init__(self, payload: bytes, failures: list[Exception]) -> None:
        self.payload = payload
        self.failures = list(failures)
        self.calls = 0

    def __call__(self, url: str, timeout: float) -> _Response:
        self.calls += 1
        if self.failures:
            raise self.failures.pop(0)
        return _Response(self.payload)


def _http_error(code: int) -> HTTPError:
    return HTTPError("https://example.invalid/a.tar.gz", code, "error", {}, None)  # type: ignore[arg-type]


def test_download_requires_sha256(tmp_path: Path) -> None:
    source = tmp_path / "source.bin"
    source.write_bytes(b"payload")

    with pytest.raises(ValidationError):
        download(source.as_uri(), sha256="", dest=tmp_path / "out")


def test_download_without_integrity_when_policy_allows(tmp_path: Path) -> None:
    source = tmp_path / "source.bin"
    source.write_bytes(b"payload")

    digest = download(
        source.as_uri(),
        sha256="",
        dest=tmp_path / "out",
        policy=Policy(require_integrity=False),
    )
    assert digest == hashlib.sha256(b"payload").hexdigest()


def test_download_verifies_file_url(tmp_path: Path) -> None:
    source = tmp_path / "source.bin"
    source.write_bytes(b"hello toolchain")
    digest = hashlib.sha256(b"hello toolchain").hexdigest()

    result = download(source.as_uri(), sha256=digest, dest=tmp_path / "out" / "artifact")

    assert result == digest
    assert (tmp_path / "out" / "artifact").read_bytes() == b"hello toolchain"


def test_checksum_mismatch_is_not_retried_and_leaves_no_file(tmp_path: Path) -> None:
    opener = FlakyOpener(b"tampered", [])
    dest = tmp_path / "artifact"

    with pytest.raises(ChecksumMismatch):
        download("https://example.invalid/a", sha256="0" * 64, dest=dest, opener=opener, sleep=lambda _: None)

    assert opener.calls == 1
    assert not dest.exists()


def test_transient_failures_are_retried_with_backoff(tmp_path: Path) -> None:
    payload = b"eventually"
    opener = FlakyOpener(payload, [URLError("timed out"), TimeoutError("read"), _http_error(503)])
    delays: list[float] = []
    logger = StructuredLogger()

    digest = download(
        "https://example.invalid/a",
        sha256=hashlib.sha256(payload).hexdigest(),
        dest=tmp_path / "artifact",
        retry=RetryPolicy(max_attempts=5, initial_delay=0.5, multiplier=2.0),
        opener=opener,
        sleep=delays.append,
        logger=logger,
        toolchain="go",
    )

    assert digest == hashlib.sha256(payload).hexdigest()
    assert opener.calls == 4
    assert delays == [0.5, 1.0, 2.0]
    assert len(logger.records_for_toolchain("go")) == 3


def test_truncated_body_and_tls_errors_are_retried(tmp_path: Path) -> None:
    payload = b"complete toolchain"
    reads: list[int] = []

    class TruncatedResponse(_Response):
        def read(self, size: int | None = -1) -> bytes:
            reads.append(1)
            raise http.client.IncompleteRead(b"partial", 100)

    failures: list[Exception] = [ssl.SSLError("decryption failed")]
    calls = 0

    def opener(url: str, timeout: float) -> _Response:
        nonlocal calls
        calls += 1
        if calls == 1:
            return TruncatedResponse(b"")
        if failures:
            raise failures.pop(0)
        return _Response(payload)

    delays: list[float] = []
    digest = download(
        "https://example.invalid/a",
        sha256=hashlib.sha256(payload).hexdigest(),
        dest=tmp_path / "artifact",
        retry=RetryPolicy(max_attempts=3, initial_delay=0.5),
        opener=opener,
        sleep=delays.append,
    )

    assert digest == hashlib.sha256(payload).hexdigest()
    assert calls == 3
    assert reads == [1]
    assert delays == [0.5, 1.0]
    assert (tmp_path / "artifact").read_bytes() == payload


def test_truncated_body_exhausting_retries_raises_download_error(tmp_path: Path) -> None:
    class TruncatedResponse(_Response):
        def read(self, size: int | None = -1) -> bytes:
            raise http.client.IncompleteRead(b"partial", 100)

    with pytest.raises(DownloadError) as excinfo:
        download(
            "https://example.invalid/a",
            sha256="0" * 64,
            dest=tmp_path / "artifact",
            retry=RetryPolicy(max_attempts=3, initial_delay=0.0),
            opener=lambda url, timeout: TruncatedResponse(b""),
            sleep=lambda _: None,
        )

    assert excinfo.value.transient is True
    assert excinfo.value.context["attempts"] == "3"
    assert not (tmp_path / "artifact").exists()


def test_retries_are_bounded(tmp_path: Path) -> None:
    opener = FlakyOpener(b"", [_http_error(502)] * 10)

    with pytest.raises(DownloadError) as excinfo:
        download(
            "https://example.invalid/a",
            sha256="0" * 64,
            dest=tmp_path / "artifact",
            retry=RetryPolicy(max_attempts=3, initial_delay=0.0),
            opener=opener,
            sleep=lambda _: None,
        )

    assert opener.calls == 3
    assert excinfo.value.context["attempts"] == "3"


def test_client_errors_are_not_retried(tmp_path: Path) -> None:
    opener = FlakyOpener(b"", [_http_error(404)])

    with pytest.raises(DownloadError) as excinfo:
        download(
            "https://example.invalid/a",
            sha256="0" * 64,
            dest=tmp_path / "artifact",
            opener=opener,
            sleep=lambda _: None,
        )

    assert opener.calls == 1
    assert excinfo.value.transient is False


def test_missing_local_file_is_not_retried(tmp_path: Path) -> None:
    with pytest.raises(DownloadError) as excinfo:
        download(
            (tmp_path / "absent.bin").as_uri(),
            sha256="0" * 64,
            dest=tmp_path / "artifact",
            sleep=lambda _: pytest.fail("should not back off"),
        )
    assert excinfo.value.transient is False


def test_offline_policy_blocks_download(tmp_path: Path) -> None:
    with pytest.raises(PolicyError):
        download(
            "https://example.invalid/a",
            sha256="0" * 64,
            dest=tmp_path / "artifact",
            policy=Policy(network_mode="offline"),
        )


def test_cancellation_mid_transfer_removes_partial_file(tmp_path: Path) -> None:
    cancel = CancellationToken()

    class CancellingResponse(_Response):
        def read(self, size: int | None = -1) -> bytes:
            cancel.cancel("user abort")
            return super().read(size)

    dest = tmp_path / "artifact"
    with pytest.raises(BuildCancelled):
        download(
            "https://example.invalid/a",
            sha256="0" * 64,
            dest=dest,
            opener=lambda url, timeout: CancellingResponse(b"x" * 4096),
            cancel=cancel,
        )
    assert not dest.exists()


def test_extract_handles_tar_and_zip_preserving_exec_bits(
    tmp_path: Path, make_tar: ArchiveFactory, make_zip: ArchiveFactory
) -> None:
    tar_path, _ = make_tar({"go/bin/go": "echo go\n", "go/VERSION": "go1.23.10\n"})
    zip_path, _ = make_zip({"cmdline-tools/bin/sdkmanager": "echo sdk\n"})

    tar_root = extract(tar_path, tmp_path / "tar")
    zip_root = extract(zip_path, tmp_path / "zip")

    assert (tar_root / "go" / "VERSION").read_text(encoding="utf-8") == "go1.23.10\n"
    assert (tar_root / "go" / "bin" / "go").stat().st_mode & 0o111
    assert (zip_root / "cmdline-tools" / "bin" / "sdkmanager").stat().st_mode & 0o111


def test_extract_rejects_traversal(tmp_path: Path, make_zip: ArchiveFactory) -> None:
    archive, _ = make_zip({"../escape.txt": "nope"})

    with pytest.raises(ValidationError):
        extract(archive, tmp_path / "out")
    assert not (tmp_path / "escape.txt").exists()


def test_extract_rejects_unknown_format(tmp_path: Path) -> None:
    blob = tmp_path / "blob.bin"
    blob.write_bytes(b"not an archive")
    with pytest.raises(ValidationError):
        extract(blob, tmp_path / "out")
