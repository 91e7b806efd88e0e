"""
Tests for platform resolution (piam_formula/platforms.py).
"""

import json
import re
import types
from unittest.mock import patch
from urllib.parse import urlparse

import pytest

from piam_formula.errors import ReleaseConfigError, UnsupportedPlatform
from piam_formula.platforms import (
    DEFAULT_RELEASE,
    SUPPORTED_PAIRS,
    ArtifactDescriptor,
    HostPlatform,
    ReleaseTable,
    canonicalize_arch,
    canonicalize_os,
    detect_host,
    load_release_manifest,
    load_release_table,
    resolve,
)

VALID_SHA = "a" * 64


def _manifest(**overrides):
    artifacts = [
        {
            "os": os_name,
            "arch": arch,
            "url": f"https://example.com/v2/piam-anc-{os_name}-{arch}.tar.gz",
            "sha256": f"{i:x}" * 64,
        }
        for i, (os_name, arch) in enumerate(SUPPORTED_PAIRS, start=1)
    ]
    data = {"version": "2.0.0", "artifacts": artifacts}
    data.update(overrides)
    return data


class TestCanonicalization:
    """Tests for raw OS / architecture normalization."""

    @pytest.mark.parametrize("raw,expected", [
        ("Darwin", "macos"),
        ("darwin", "macos"),
        ("macOS", "macos"),
        ("Linux", "linux"),
        ("linux", "linux"),
    ])
    def test_canonicalize_os(self, raw, expected):
        assert canonicalize_os(raw) == expected

    @pytest.mark.parametrize("raw,expected", [
        ("x86_64", "amd64"),
        ("AMD64", "amd64"),
        ("aarch64", "arm64"),
        ("arm64", "arm64"),
    ])
    def test_canonicalize_arch(self, raw, expected):
        assert canonicalize_arch(raw) == expected

    @pytest.mark.parametrize("raw", ["Windows", "FreeBSD", "SunOS", ""])
    def test_unsupported_os(self, raw):
        with pytest.raises(UnsupportedPlatform) as exc_info:
            canonicalize_os(raw)
        assert exc_info.value.os_name == raw

    @pytest.mark.parametrize("raw", ["i386", "armv7l", "ppc64le", "riscv64", "s390x"])
    def test_unsupported_arch_has_no_fallback(self, raw):
        with pytest.raises(UnsupportedPlatform) as exc_info:
            canonicalize_arch(raw)
        assert exc_info.value.arch == raw


class TestDetectHost:
    """Tests for host detection."""

    @patch("piam_formula.platforms.platform.machine", return_value="arm64")
    @patch("piam_formula.platforms.platform.system", return_value="Darwin")
    def test_detect_from_platform_module(self, mock_system, mock_machine):
        host = detect_host()
        assert host == HostPlatform(os="macos", arch="arm64")
        assert str(host) == "macos/arm64"

    @patch("piam_formula.platforms.platform.machine", return_value="x86_64")
    @patch("piam_formula.platforms.platform.system", return_value="Linux")
    def test_overrides_take_precedence(self, mock_system, mock_machine):
        host = detect_host(system="darwin", machine="aarch64")
        assert host == HostPlatform(os="macos", arch="arm64")

    @patch("piam_formula.platforms.platform.machine", return_value="x86_64")
    @patch("piam_formula.platforms.platform.system", return_value="Windows")
    def test_unsupported_host(self, mock_system, mock_machine):
        with pytest.raises(UnsupportedPlatform):
            detect_host()


class TestResolve:
    """Tests for table lookup."""

    @pytest.mark.parametrize("os_name,arch", SUPPORTED_PAIRS)
    def test_every_supported_pair_resolves(self, os_name, arch):
        descriptor = resolve(os_name, arch)
        assert descriptor.os == os_name
        assert descriptor.arch == arch
        assert re.fullmatch(r"[0-9a-f]{64}", descriptor.sha256)
        parsed = urlparse(descriptor.url)
        assert parsed.scheme == "https"
        assert parsed.netloc == "github.com"
        assert arch in parsed.path

    def test_urls_are_distinct_per_platform(self):
        urls = {resolve(o, a).url for o, a in SUPPORTED_PAIRS}
        assert len(urls) == 4

    def test_builtin_table_pins_v1(self):
        descriptor = resolve("linux", "amd64")
        assert DEFAULT_RELEASE.version == "1.0.0"
        assert descriptor.url.endswith("/v1.0.0/piam-anc-linux-amd64.tar.gz")
        assert descriptor.sha256 == "3688e4e8db9fe6f2b9cb8c7e564c0b5bc02e78b3af818d6a9ec807ca37e5d3fe"

    def test_macos_assets_use_darwin_name(self):
        assert resolve("macos", "arm64").archive_name == "piam-anc-darwin-arm64.tar.gz"

    @pytest.mark.parametrize("os_name,arch", [
        ("windows", "amd64"),
        ("linux", "386"),
        ("macos", "universal"),
        ("Linux", "amd64"),
        ("", ""),
    ])
    def test_unknown_pair_raises(self, os_name, arch):
        with pytest.raises(UnsupportedPlatform):
            resolve(os_name, arch)

    def test_custom_table(self, release_table):
        descriptor = resolve("linux", "arm64", release_table)
        assert descriptor.url.startswith("file://")


class TestArtifactDescriptor:
    """Tests for descriptor validation."""

    def test_valid_descriptor(self):
        descriptor = ArtifactDescriptor("linux", "amd64", "https://example.com/a.tar.gz", VALID_SHA)
        assert descriptor.key == ("linux", "amd64")
        assert descriptor.archive_name == "a.tar.gz"
        assert descriptor.to_dict()["sha256"] == VALID_SHA

    def test_descriptor_immutable(self):
        descriptor = ArtifactDescriptor("linux", "amd64", "https://example.com/a.tar.gz", VALID_SHA)
        with pytest.raises(AttributeError):
            descriptor.sha256 = "b" * 64

    @pytest.mark.parametrize("sha", [
        "a" * 66,
        "a" * 63,
        "A" * 64,
        "g" * 64,
        "",
    ])
    def test_malformed_hash_is_config_error(self, sha):
        with pytest.raises(ReleaseConfigError):
            ArtifactDescriptor("linux", "amd64", "https://example.com/a.tar.gz", sha)

    @pytest.mark.parametrize("url", [
        "example.com/a.tar.gz",
        "ftp://example.com/a.tar.gz",
        "https:///a.tar.gz",
        "https://example.com/",
    ])
    def test_malformed_url_is_config_error(self, url):
        with pytest.raises(ReleaseConfigError):
            ArtifactDescriptor("linux", "amd64", url, VALID_SHA)

    def test_unknown_os_in_table(self):
        with pytest.raises(ReleaseConfigError):
            ArtifactDescriptor("windows", "amd64", "https://example.com/a.tar.gz", VALID_SHA)

    def test_config_error_is_value_error(self):
        with pytest.raises(ValueError):
            ArtifactDescriptor("linux", "x86", "https://example.com/a.tar.gz", VALID_SHA)


class TestReleaseTable:
    """Tests for release table loading and invariants."""

    def test_load_complete_table(self):
        table = load_release_table(_manifest())
        assert table.version == "2.0.0"
        assert [d.key for d in table] == list(SUPPORTED_PAIRS)

    def test_table_is_read_only(self):
        table = load_release_table(_manifest())
        assert isinstance(table.descriptors, types.MappingProxyType)
        with pytest.raises(TypeError):
            table.descriptors[("linux", "amd64")] = None

    def test_missing_platform_rejected(self):
        data = _manifest()
        data["artifacts"] = data["artifacts"][:3]
        with pytest.raises(ReleaseConfigError, match="missing platforms"):
            load_release_table(data)

    def test_duplicate_platform_rejected(self):
        data = _manifest()
        data["artifacts"].append(dict(data["artifacts"][0]))
        with pytest.raises(ReleaseConfigError, match="twice"):
            load_release_table(data)

    def test_shared_url_rejected(self):
        data = _manifest()
        data["artifacts"][1]["url"] = data["artifacts"][0]["url"]
        with pytest.raises(ReleaseConfigError, match="reuses a url"):
            load_release_table(data)

    def test_missing_field_rejected(self):
        data = _manifest()
        del data["artifacts"][2]["sha256"]
        with pytest.raises(ReleaseConfigError, match="sha256"):
            load_release_table(data)

    def test_missing_version_rejected(self):
        with pytest.raises(ReleaseConfigError):
            load_release_table(_manifest(version=""))

    def test_non_mapping_rejected(self):
        with pytest.raises(ReleaseConfigError):
            load_release_table(["not", "a", "mapping"])

    def test_mismatched_key_rejected(self):
        descriptor = ArtifactDescriptor("linux", "amd64", "https://example.com/a.tar.gz", VALID_SHA)
        with pytest.raises(ReleaseConfigError):
            ReleaseTable(version="1", descriptors={("linux", "arm64"): descriptor})

    def test_builtin_table_exports_as_manifest(self):
        table = load_release_table(DEFAULT_RELEASE.to_dict())
        assert table.version == DEFAULT_RELEASE.version
        assert list(table) == list(DEFAULT_RELEASE)


class TestLoadReleaseManifest:
    """Tests for manifest files."""

    def test_yaml_manifest(self, tmp_path):
        import yaml
        path = tmp_path / "release.yml"
        path.write_text(yaml.safe_dump(_manifest()))
        table = load_release_manifest(path)
        assert table.version == "2.0.0"
        assert table.source == str(path)

    def test_json_manifest(self, tmp_path):
        path = tmp_path / "release.json"
        path.write_text(json.dumps(_manifest()))
        assert load_release_manifest(path).version == "2.0.0"

    def test_missing_file(self, tmp_path):
        with pytest.raises(ReleaseConfigError, match="Could not read"):
            load_release_manifest(tmp_path / "absent.yml")

    def test_invalid_yaml(self, tmp_path):
        path = tmp_path / "release.yml"
        path.write_text("version: [unclosed\n")
        with pytest.raises(ReleaseConfigError, match="Could not parse"):
            load_release_manifest(path)
