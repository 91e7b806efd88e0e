"""
Shared fixtures: real tar.gz release archives served over file:// URLs.
"""

import pytest

from helpers import FAKE_BINARY, build_archive, flip_hex, sha256_of
from piam_formula.platforms import SUPPORTED_PAIRS, ArtifactDescriptor, ReleaseTable


@pytest.fixture
def release_dir(tmp_path):
    path = tmp_path / "release"
    path.mkdir()
    return path


@pytest.fixture
def linux_archive(release_dir):
    """Valid linux/amd64 release archive containing the fake binary."""
    single = release_dir / "single"
    single.mkdir()
    return build_archive(
        single / "piam-anc-linux-amd64.tar.gz",
        {"piam-anc": FAKE_BINARY, "README.md": b"piam-anc\n", "LICENSE": b"MIT\n"},
    )


@pytest.fixture
def linux_descriptor(linux_archive):
    return ArtifactDescriptor(
        os="linux",
        arch="amd64",
        url=linux_archive.as_uri(),
        sha256=sha256_of(linux_archive),
    )


@pytest.fixture
def release_table(release_dir):
    """Complete four-platform table backed by local archives."""
    descriptors = {}
    for os_name, arch in SUPPORTED_PAIRS:
        asset_os = "darwin" if os_name == "macos" else os_name
        archive = build_archive(
            release_dir / f"piam-anc-{asset_os}-{arch}.tar.gz",
            {"piam-anc": FAKE_BINARY},
        )
        descriptors[(os_name, arch)] = ArtifactDescriptor(
            os=os_name,
            arch=arch,
            url=archive.as_uri(),
            sha256=sha256_of(archive),
        )
    return ReleaseTable(version="1.0.0", descriptors=descriptors, source="test")


@pytest.fixture
def target_dirs(tmp_path):
    """(bin_dir, state_dir) under a throwaway prefix."""
    prefix = tmp_path / "prefix"
    return prefix / "bin", prefix / "var" / "piam-anc"


@pytest.fixture
def tamper():
    """Return a copy of a descriptor whose pinned hash differs in one character."""
    def _tamper(descriptor: ArtifactDescriptor, index: int = 0) -> ArtifactDescriptor:
        return ArtifactDescriptor(
            os=descriptor.os,
            arch=descriptor.arch,
            url=descriptor.url,
            sha256=flip_hex(descriptor.sha256, index),
        )
    return _tamper
