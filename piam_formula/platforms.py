"""
Platform resolution for prebuilt piam-anc release archives.

Maps the host's (os, arch) to exactly one pinned ArtifactDescriptor. The
release table is a total lookup over the four supported pairs; anything
else is an explicit UnsupportedPlatform error, never a default.
"""

from __future__ import annotations

import json
import platform
import re
import types
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Mapping
from urllib.parse import urlparse

import yaml

from .common import vlog
from .errors import ReleaseConfigError, UnsupportedPlatform

SUPPORTED_OS = ("macos", "linux")
SUPPORTED_ARCH = ("amd64", "arm64")
SUPPORTED_PAIRS = tuple((os_name, arch) for os_name in SUPPORTED_OS for arch in SUPPORTED_ARCH)

# Raw platform.system() / platform.machine() spellings, lowercased
OS_ALIASES = {
    "darwin": "macos",
    "macos": "macos",
    "mac": "macos",
    "osx": "macos",
    "linux": "linux",
}
ARCH_ALIASES = {
    "x86_64": "amd64",
    "amd64": "amd64",
    "x64": "amd64",
    "aarch64": "arm64",
    "arm64": "arm64",
    "armv8": "arm64",
    "armv8l": "arm64",
    "armv8b": "arm64",
}

SHA256_PATTERN = re.compile(r"[0-9a-f]{64}")
ALLOWED_URL_SCHEMES = {"https", "http", "file"}

RELEASE_VERSION = "1.0.0"
RELEASE_BASE_URL = "https://github.com/ExclamationLabs/piam-anc/releases/download"


@dataclass(frozen=True)
class HostPlatform:
    """Canonicalized description of the running host."""
    os: str
    arch: str

    def __str__(self) -> str:
        return f"{self.os}/{self.arch}"


@dataclass(frozen=True)
class ArtifactDescriptor:
    """
    Pinned release artifact for one platform.

    Attributes:
        os: Canonical operating system ('macos' or 'linux')
        arch: Canonical CPU architecture ('amd64' or 'arm64')
        url: Download URL of the compressed archive
        sha256: Expected SHA-256 of the archive, 64 lowercase hex characters
    """
    os: str
    arch: str
    url: str
    sha256: str

    def __post_init__(self):
        if self.os not in SUPPORTED_OS:
            raise ReleaseConfigError(
                f"Invalid os in release table: {self.os!r}. "
                f"Must be one of: {', '.join(SUPPORTED_OS)}"
            )
        if self.arch not in SUPPORTED_ARCH:
            raise ReleaseConfigError(
                f"Invalid arch in release table: {self.arch!r}. "
                f"Must be one of: {', '.join(SUPPORTED_ARCH)}"
            )

        # No silent lowercasing or truncation: a malformed pin is a data error
        if not isinstance(self.sha256, str) or not SHA256_PATTERN.fullmatch(self.sha256):
            length = len(self.sha256) if isinstance(self.sha256, str) else 0
            raise ReleaseConfigError(
                f"Invalid sha256 for {self.os}/{self.arch}: expected 64 lowercase "
                f"hex characters, got {length} characters"
            )

        parsed = urlparse(self.url) if isinstance(self.url, str) else None
        if parsed is None or parsed.scheme not in ALLOWED_URL_SCHEMES:
            raise ReleaseConfigError(f"Invalid url for {self.os}/{self.arch}: {self.url!r}")
        if parsed.scheme != "file" and not parsed.netloc:
            raise ReleaseConfigError(f"Invalid url for {self.os}/{self.arch}: {self.url!r}")
        if not parsed.path or parsed.path.endswith("/"):
            raise ReleaseConfigError(
                f"Invalid url for {self.os}/{self.arch}: no archive file name in {self.url!r}"
            )

    @property
    def key(self) -> tuple[str, str]:
        return (self.os, self.arch)

    @property
    def archive_name(self) -> str:
        """File name component of the download URL."""
        return Path(urlparse(self.url).path).name

    def to_dict(self) -> dict[str, str]:
        """Convert to dictionary for JSON serialization."""
        return {
            "os": self.os,
            "arch": self.arch,
            "url": self.url,
            "sha256": self.sha256,
        }


@dataclass(frozen=True)
class ReleaseTable:
    """
    Immutable (os, arch) -> ArtifactDescriptor table for one release.

    Attributes:
        version: Release version every descriptor is pinned to
        descriptors: Read-only mapping covering all supported pairs
        source: Where the table was loaded from ('builtin' or a file path)
    """
    version: str
    descriptors: Mapping[tuple[str, str], ArtifactDescriptor]
    source: str = "builtin"

    def __post_init__(self):
        if not self.version:
            raise ReleaseConfigError("Release table has no version")

        for key, descriptor in self.descriptors.items():
            if key != descriptor.key:
                raise ReleaseConfigError(
                    f"Release table key {key} does not match descriptor "
                    f"{descriptor.os}/{descriptor.arch}"
                )

        missing = [pair for pair in SUPPORTED_PAIRS if pair not in self.descriptors]
        if missing:
            names = ", ".join(f"{o}/{a}" for o, a in missing)
            raise ReleaseConfigError(f"Release table {self.version} is missing platforms: {names}")

        urls = [d.url for d in self.descriptors.values()]
        if len(set(urls)) != len(urls):
            raise ReleaseConfigError(f"Release table {self.version} reuses a url across platforms")

        # Freeze whatever mapping we were handed
        if not isinstance(self.descriptors, types.MappingProxyType):
            object.__setattr__(self, "descriptors", types.MappingProxyType(dict(self.descriptors)))

    def __iter__(self):
        return iter(self.descriptors[pair] for pair in SUPPORTED_PAIRS)

    def to_dict(self) -> dict[str, Any]:
        """Convert to the manifest layout accepted by load_release_table."""
        return {
            "version": self.version,
            "artifacts": [d.to_dict() for d in self],
        }


def canonicalize_os(system: str) -> str:
    """
    Normalize a raw operating system name.

    Args:
        system: Value such as platform.system() ("Darwin", "Linux")

    Returns:
        'macos' or 'linux'

    Raises:
        UnsupportedPlatform: If the value does not name a supported OS
    """
    canonical = OS_ALIASES.get(system.strip().lower())
    if canonical is None:
        raise UnsupportedPlatform(f"Unsupported operating system: {system!r}", os_name=system)
    return canonical


def canonicalize_arch(machine: str) -> str:
    """
    Normalize a raw CPU architecture name.

    Classification is binary per OS family: exactly amd64 or arm64. There is
    no generic fallback for unknown machines.

    Raises:
        UnsupportedPlatform: If the value does not name a supported architecture
    """
    canonical = ARCH_ALIASES.get(machine.strip().lower())
    if canonical is None:
        raise UnsupportedPlatform(f"Unsupported CPU architecture: {machine!r}", arch=machine)
    return canonical


def detect_host(
    system: str | None = None,
    machine: str | None = None,
    verbose: bool = False,
) -> HostPlatform:
    """
    Detect and canonicalize the running host platform.

    Args:
        system: Override for platform.system()
        machine: Override for platform.machine()
        verbose: Enable verbose logging

    Returns:
        HostPlatform with canonical os and arch
    """
    raw_system = system if system is not None else platform.system()
    raw_machine = machine if machine is not None else platform.machine()
    host = HostPlatform(os=canonicalize_os(raw_system), arch=canonicalize_arch(raw_machine))
    vlog(f"Detected platform {raw_system}/{raw_machine} -> {host}", verbose)
    return host


def resolve(os_name: str, arch: str, table: ReleaseTable | None = None) -> ArtifactDescriptor:
    """
    Select the pinned artifact for a canonical (os, arch) pair.

    Args:
        os_name: Canonical operating system
        arch: Canonical CPU architecture
        table: Release table to consult (defaults to the built-in release)

    Returns:
        The single matching ArtifactDescriptor

    Raises:
        UnsupportedPlatform: If the table has no entry for the pair
    """
    table = table or DEFAULT_RELEASE
    descriptor = table.descriptors.get((os_name, arch))
    if descriptor is None:
        raise UnsupportedPlatform(
            f"No piam-anc {table.version} artifact for {os_name}/{arch}",
            os_name=os_name,
            arch=arch,
        )
    return descriptor


def load_release_table(data: dict[str, Any], source: str = "manifest") -> ReleaseTable:
    """
    Build a validated ReleaseTable from manifest data.

    Expected layout:
        version: "1.0.0"
        artifacts:
          - {os: linux, arch: amd64, url: ..., sha256: ...}

    Raises:
        ReleaseConfigError: If the data is malformed, incomplete or duplicated
    """
    if not isinstance(data, dict):
        raise ReleaseConfigError(f"Release manifest {source} must be a mapping")

    version = str(data.get("version") or "")
    artifacts = data.get("artifacts")
    if not isinstance(artifacts, list):
        raise ReleaseConfigError(f"Release manifest {source} has no 'artifacts' list")

    descriptors: dict[tuple[str, str], ArtifactDescriptor] = {}
    for entry in artifacts:
        if not isinstance(entry, dict):
            raise ReleaseConfigError(f"Release manifest {source} has a non-mapping artifact entry")
        try:
            descriptor = ArtifactDescriptor(
                os=entry["os"],
                arch=entry["arch"],
                url=entry["url"],
                sha256=entry["sha256"],
            )
        except KeyError as e:
            raise ReleaseConfigError(
                f"Release manifest {source} artifact is missing field {e.args[0]!r}"
            ) from e
        if descriptor.key in descriptors:
            raise ReleaseConfigError(
                f"Release manifest {source} lists {descriptor.os}/{descriptor.arch} twice"
            )
        descriptors[descriptor.key] = descriptor

    return ReleaseTable(version=version, descriptors=descriptors, source=source)


def load_release_manifest(path: str | Path, verbose: bool = False) -> ReleaseTable:
    """
    Load a release table from a YAML or JSON manifest file.

    Raises:
        ReleaseConfigError: If the file cannot be read or parsed
    """
    path = Path(path)
    vlog(f"Loading release manifest from: {path}", verbose)
    try:
        with open(path, "r", encoding="utf-8") as f:
            if path.suffix == ".json":
                data = json.load(f)
            else:
                data = yaml.safe_load(f)
    except OSError as e:
        raise ReleaseConfigError(f"Could not read release manifest {path}: {e}") from e
    except (json.JSONDecodeError, yaml.YAMLError) as e:
        raise ReleaseConfigError(f"Could not parse release manifest {path}: {e}") from e

    return load_release_table(data, source=str(path))


def _release_url(version: str, os_name: str, arch: str) -> str:
    asset_os = "darwin" if os_name == "macos" else os_name
    return f"{RELEASE_BASE_URL}/v{version}/piam-anc-{asset_os}-{arch}.tar.gz"


DEFAULT_RELEASE = load_release_table(
    {
        "version": RELEASE_VERSION,
        "artifacts": [
            {
                "os": "macos",
                "arch": "amd64",
                "url": _release_url(RELEASE_VERSION, "macos", "amd64"),
                "sha256": "2060c4594812f245e4c52e9536ce20ffd52c1c23827265060f74437d193fc0f1",
            },
            {
                "os": "macos",
                "arch": "arm64",
                "url": _release_url(RELEASE_VERSION, "macos", "arm64"),
                "sha256": "9a3208e3e71b9e55e7cfaa07a0e73b3e73f01b953a82a0e29129d76a17c382ee",
            },
            {
                "os": "linux",
                "arch": "amd64",
                "url": _release_url(RELEASE_VERSION, "linux", "amd64"),
                "sha256": "3688e4e8db9fe6f2b9cb8c7e564c0b5bc02e78b3af818d6a9ec807ca37e5d3fe",
            },
            {
                "os": "linux",
                "arch": "arm64",
                "url": _release_url(RELEASE_VERSION, "linux", "arm64"),
                "sha256": "e8d37462d105cc6721d6bef009fd7e2de8ee1b78285d20075236ad1df0985c9b",
            },
        ],
    },
    source="builtin",
)
