import json
import warnings
from pathlib import Path

import pytest

from gomobenv.config import BuildConfig, Layout, load_config, parse_config
from gomobenv.errors import PolicyError, ValidationError
from gomobenv.policy import MutableVersionWarning, Policy, RetryPolicy, enforce_mutable_version_policy
from gomobenv.toolchains import default_toolchain_specs, go_host, jdk_spec

DIGEST = "a" * 64


def test_defaults_match_recipe_versions() -> None:
    config = BuildConfig()
    assert config.compiler_version == "1.23.10"
    assert config.ndk_version == "23.1.7779620"
    assert config.jdk_version == "11.0.24+8"
    assert config.sdk_tools_version == "8092744"
    assert config.sdk_version == "31"
    assert config.target_architectures == ("arm", "arm64", "386", "amd64")


def test_parse_config_reads_known_fields(tmp_path: Path) -> None:
    path = tmp_path / "gomobenv.json"
    path.write_text(
        json.dumps(
            {
                "compiler_version": "1.22.5",
                "jdk_version": "17.0.12+7",
                "android_api_level": 23,
                "target_architectures": ["arm64"],
                "checksums": {"go": DIGEST},
            }
        ),
        encoding="utf-8",
    )

    config = load_config(path)

    assert config.compiler_version == "1.22.5"
    assert config.jdk_version == "17.0.12+7"
    assert config.android_api_level == 23
    assert config.target_architectures == ("arm64",)
    assert config.checksum_for("go") == DIGEST
    assert config.ndk_version == BuildConfig().ndk_version


@pytest.mark.parametrize(
    "payload",
    [
        "[]",
        "{not json",
        json.dumps({"android_api_level": "23"}),
        json.dumps({"android_api_level": True}),
        json.dumps({"android_api_level": 0}),
        json.dumps({"target_architectures": ["mips"]}),
        json.dumps({"target_architectures": []}),
        json.dumps({"checksums": {"go": "not-a-digest"}}),
        json.dumps({"toolchains": [{"name": "x", "version": "1"}]}),
        json.dumps({"toolchains": [{"name": "x", "version": "1", "source": "go-install"}]}),
        json.dumps({"toolchains": [{"name": "x", "version": "1", "source": "rsync"}]}),
    ],
)
def test_parse_config_rejects_invalid_payloads(payload: str) -> None:
    with pytest.raises(ValidationError):
        parse_config(payload)


def test_load_config_reports_missing_file(tmp_path: Path) -> None:
    with pytest.raises(ValidationError) as excinfo:
        load_config(tmp_path / "missing.json")
    assert "does not exist" in str(excinfo.value)


def test_layout_under_uses_explicit_roots(tmp_path: Path) -> None:
    layout = Layout.under(tmp_path, accept_licenses=True)
    assert layout.cache_root == tmp_path / "cache"
    assert layout.install_root == tmp_path / "install"
    assert layout.scratch_root == tmp_path / "scratch"
    assert layout.accept_licenses is True


def test_layout_default_honours_home_env(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("GOMOBENV_HOME", str(tmp_path))
    assert Layout.default().cache_root == tmp_path / "cache"


def test_default_specs_render_vendor_urls() -> None:
    config = BuildConfig(checksums={"go": DIGEST})
    specs = {spec.name: spec for spec in default_toolchain_specs(config, system="Linux", machine="x86_64")}

    assert list(specs) == ["jdk", "go", "android-cmdline-tools", "gobind", "gomobile"]
    assert specs["jdk"].url == (
        "https://github.com/adoptium/temurin11-binaries/releases/download/"
        "jdk-11.0.24%2B8/OpenJDK11U-jdk_x64_linux_hotspot_11.0.24_8.tar.gz"
    )
    assert specs["jdk"].env == {"JAVA_HOME": "{home}"}
    assert "java" in specs["jdk"].provides
    assert specs["go"].url == "https://go.dev/dl/go1.23.10.linux-amd64.tar.gz"
    assert specs["go"].sha256 == DIGEST
    assert specs["android-cmdline-tools"].url == (
        "https://dl.google.com/android/repository/commandlinetools-linux-8092744_latest.zip"
    )
    assert specs["gomobile"].source == "go-install"
    assert specs["gomobile"].module == "golang.org/x/mobile/cmd/gomobile"
    assert "bind" in specs["gomobile"].provides


def test_config_toolchains_override_and_extend_defaults() -> None:
    config = parse_config(
        json.dumps(
            {
                "toolchains": [
                    {
                        "name": "gomobile",
                        "version": "v0.0.1",
                        "url": "https://example.invalid/gomobile-{version}.tar.gz",
                        "sha256": DIGEST,
                        "provides": ["bind"],
                    },
                    {
                        "name": "jdk",
                        "version": "11",
                        "url": "https://example.invalid/jdk-{version}.tar.gz",
                        "home": "jdk",
                        "env": {"JAVA_HOME": "{home}"},
                        "provides": ["java"],
                    },
                    {
                        "name": "protoc",
                        "version": "27.3",
                        "url": "https://example.invalid/protoc-{version}.zip",
                    },
                ]
            }
        )
    )
    specs = default_toolchain_specs(config, system="Linux", machine="aarch64")
    by_name = {spec.name: spec for spec in specs}

    assert [spec.name for spec in specs] == ["jdk", "go", "android-cmdline-tools", "gobind", "gomobile", "protoc"]
    assert by_name["gomobile"].source == "archive"
    assert by_name["gomobile"].url == "https://example.invalid/gomobile-v0.0.1.tar.gz"
    assert by_name["jdk"].url == "https://example.invalid/jdk-11.tar.gz"
    assert by_name["go"].url.endswith("linux-arm64.tar.gz")


def test_jdk_home_on_macos_points_into_bundle() -> None:
    spec = jdk_spec(BuildConfig(jdk_version="17.0.12+7"), system="Darwin", machine="arm64")

    assert spec.url.endswith("OpenJDK17U-jdk_aarch64_mac_hotspot_17.0.12_7.tar.gz")
    assert "temurin17-binaries" in spec.url
    assert spec.home == "jdk-{version}/Contents/Home"


def test_go_host_rejects_unknown_machine() -> None:
    with pytest.raises(ValidationError):
        go_host("Linux", "sparc64")


def test_retry_policy_backoff_is_exponential_and_capped() -> None:
    retry = RetryPolicy(max_attempts=6, initial_delay=1.0, multiplier=2.0, max_delay=5.0)
    assert [retry.delay_for(n) for n in range(1, 6)] == [1.0, 2.0, 4.0, 5.0, 5.0]

    with pytest.raises(ValidationError):
        RetryPolicy(max_attempts=0)


def test_mutable_versions_follow_policy() -> None:
    with warnings.catch_warnings(record=True) as caught:
        warnings.simplefilter("always")
        enforce_mutable_version_policy(name="gomobile", version="latest", policy=Policy())
    assert any(isinstance(item.message, MutableVersionWarning) for item in caught)

    with pytest.raises(PolicyError):
        enforce_mutable_version_policy(
            name="gomobile", version="latest", policy=Policy(mutable_ref_policy="error")
        )

    enforce_mutable_version_policy(name="go", version="1.23.10", policy=Policy(mutable_ref_policy="error"))
