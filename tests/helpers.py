"""
Release archive builders shared by the test modules.
"""

import hashlib
import io
import tarfile
from pathlib import Path

FAKE_BINARY = b"""#!/bin/sh
if [ "$1" = "--version" ]; then
  echo "piam-anc version 1.0.0"
  echo "PIAM Admin Network Configurator"
  exit 0
fi
echo "usage: piam-anc [--help|--version]"
"""


def build_archive(path: Path, members: dict, mode: str = "w:gz") -> Path:
    """
    Write a tar archive at path.

    members maps archive names to bytes (regular file) or None (directory).
    """
    with tarfile.open(path, mode) as tar:
        for name, data in members.items():
            info = tarfile.TarInfo(name)
            if data is None:
                info.type = tarfile.DIRTYPE
                info.mode = 0o755
                tar.addfile(info)
            else:
                info.size = len(data)
                info.mode = 0o755
                tar.addfile(info, io.BytesIO(data))
    return path


def sha256_of(path: Path) -> str:
    return hashlib.sha256(path.read_bytes()).hexdigest()


def flip_hex(digest: str, index: int = 0) -> str:
    """Return digest with one hex character changed."""
    replacement = "0" if digest[index] != "0" else "1"
    return digest[:index] + replacement + digest[index + 1:]
