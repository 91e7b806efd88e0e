"""
Verified installation of a prebuilt piam-anc archive.

Fetch, verify, extract, place and provision run strictly in order, once
each. Scratch data lives in a per-invocation temporary directory that is
removed on every exit path. Nothing under the permanent bin or state
directories is touched before the archive's SHA-256 matches the pin.
"""

from __future__ import annotations

import hashlib
import logging
import os
import shutil
import socket
import stat
import tarfile
import tempfile
import time
import urllib.error
import urllib.request
from dataclasses import dataclass
from pathlib import Path

from .common import format_bytes, vlog
from .errors import ExtractionError, FetchError, FetchTimeout, IntegrityError, PlacementError
from .platforms import ArtifactDescriptor

logger = logging.getLogger(__name__)

EXECUTABLE_NAME = "piam-anc"
USER_AGENT = "piam-formula/1.0"
CHUNK_SIZE = 64 * 1024
DEFAULT_FETCH_TIMEOUT = 60

EXECUTABLE_MODE = 0o755
STATE_DIR_MODE = 0o755


@dataclass(frozen=True)
class VerificationResult:
    """
    Outcome of hashing a fetched archive.

    Attributes:
        ok: Whether the computed hash equals the pinned hash
        computed_hash: Lowercase hex SHA-256 of the fetched bytes
    """
    ok: bool
    computed_hash: str


@dataclass(frozen=True)
class InstalledPackage:
    """
    Result of a successful installation.

    Attributes:
        binary_path: Final path of the executable
        state_dir: Provisioned per-tool state directory
        version: Release version that was installed
    """
    binary_path: Path
    state_dir: Path
    version: str

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON serialization."""
        return {
            "binary_path": str(self.binary_path),
            "state_dir": str(self.state_dir),
            "version": self.version,
        }


def fetch_artifact(url: str, dest: Path, timeout: float = DEFAULT_FETCH_TIMEOUT) -> Path:
    """
    Download url to dest, streaming in chunks.

    Args:
        url: Archive URL (https, http or file)
        dest: Destination file path inside a scratch directory
        timeout: Socket timeout in seconds

    Returns:
        dest

    Raises:
        FetchTimeout: If the transfer stalls past the timeout
        FetchError: On any other transport failure
    """
    req = urllib.request.Request(url, headers={"User-Agent": USER_AGENT})
    start_time = time.time()
    try:
        with urllib.request.urlopen(req, timeout=timeout) as response, open(dest, "wb") as out:
            shutil.copyfileobj(response, out, CHUNK_SIZE)
    except (socket.timeout, TimeoutError) as e:
        raise FetchTimeout(f"Timed out after {timeout}s fetching {url}", url=url) from e
    except urllib.error.URLError as e:
        if isinstance(e.reason, (socket.timeout, TimeoutError)):
            raise FetchTimeout(f"Timed out after {timeout}s fetching {url}", url=url) from e
        raise FetchError(f"Failed to fetch {url}: {e.reason}", url=url) from e
    except (OSError, ValueError) as e:
        raise FetchError(f"Failed to fetch {url}: {e}", url=url) from e

    size = dest.stat().st_size
    logger.debug(f"Fetched {format_bytes(size)} in {time.time() - start_time:.1f}s")
    return dest


def sha256_file(path: Path) -> str:
    """Return the lowercase hex SHA-256 of a file."""
    hasher = hashlib.sha256()
    with open(path, "rb") as f:
        for chunk in iter(lambda: f.read(CHUNK_SIZE), b""):
            hasher.update(chunk)
    return hasher.hexdigest()


def verify_artifact(path: Path, expected_sha256: str) -> VerificationResult:
    """
    Hash path and compare against the pinned value.

    The comparison is exact: the pin is already validated as lowercase hex,
    so no case folding happens here.
    """
    computed = sha256_file(path)
    return VerificationResult(ok=computed == expected_sha256, computed_hash=computed)


def extract_executable(archive: Path, dest_dir: Path, name: str = EXECUTABLE_NAME) -> Path:
    """
    Pull the single executable named `name` out of a tar archive.

    Only the matching member's bytes are read and written to dest_dir/name,
    so member paths in the archive never influence where data lands.

    Raises:
        ExtractionError: If the archive is unreadable, or the executable is
            missing, duplicated or not a regular file
    """
    try:
        with tarfile.open(archive, "r:*") as tar:
            candidates = [
                member for member in tar.getmembers()
                if Path(member.name).name == name
            ]
            if not candidates:
                raise ExtractionError(f"Archive {archive.name} does not contain {name}")
            if len(candidates) > 1:
                paths = ", ".join(m.name for m in candidates)
                raise ExtractionError(f"Archive {archive.name} contains {name} more than once: {paths}")

            member = candidates[0]
            if not member.isfile():
                raise ExtractionError(f"Archive entry {member.name} is not a regular file")

            source = tar.extractfile(member)
            if source is None:
                raise ExtractionError(f"Archive entry {member.name} cannot be read")

            target = dest_dir / name
            with source, open(target, "wb") as out:
                shutil.copyfileobj(source, out, CHUNK_SIZE)
    except (tarfile.TarError, EOFError) as e:
        raise ExtractionError(f"Archive {archive.name} is not a valid tar archive: {e}") from e

    return target


def place_executable(source: Path, bin_dir: Path, name: str = EXECUTABLE_NAME) -> Path:
    """
    Atomically install source as bin_dir/name with execute permission.

    The bytes are written to a uniquely named hidden file in bin_dir, synced,
    made executable and then renamed onto the final name. The final path
    either keeps its previous content or holds the complete new file.

    Raises:
        PlacementError: On any filesystem failure
    """
    final_path = bin_dir / name
    try:
        bin_dir.mkdir(parents=True, exist_ok=True)
        fd, temp_name = tempfile.mkstemp(prefix=f".{name}.", suffix=".tmp", dir=bin_dir)
    except OSError as e:
        raise PlacementError(f"Cannot write to {bin_dir}: {e}", path=str(bin_dir)) from e

    temp_path = Path(temp_name)
    try:
        with os.fdopen(fd, "wb") as out, open(source, "rb") as src:
            shutil.copyfileobj(src, out, CHUNK_SIZE)
            out.flush()
            os.fsync(out.fileno())
        os.chmod(temp_path, EXECUTABLE_MODE)
        os.replace(temp_path, final_path)
    except OSError as e:
        temp_path.unlink(missing_ok=True)
        raise PlacementError(f"Failed to install {final_path}: {e}", path=str(final_path)) from e

    return final_path


def provision_state_dir(state_dir: Path) -> Path:
    """
    Ensure the per-tool state directory exists and is writable.

    Creating it when it already exists is not an error. Contents are left
    untouched; the tool manages them itself.

    Raises:
        PlacementError: If the path cannot be created or is not a writable directory
    """
    try:
        state_dir.mkdir(mode=STATE_DIR_MODE, parents=True, exist_ok=True)
    except FileExistsError as e:
        raise PlacementError(f"{state_dir} exists and is not a directory", path=str(state_dir)) from e
    except OSError as e:
        raise PlacementError(f"Cannot create state directory {state_dir}: {e}", path=str(state_dir)) from e

    if not os.access(state_dir, os.W_OK | os.X_OK):
        raise PlacementError(f"State directory {state_dir} is not writable", path=str(state_dir))
    return state_dir


def is_executable(path: Path) -> bool:
    """True if path is a regular file with owner-execute permission."""
    try:
        mode = path.stat().st_mode
    except OSError:
        return False
    return stat.S_ISREG(mode) and bool(mode & stat.S_IXUSR)


def install(
    descriptor: ArtifactDescriptor,
    target_bin_dir: Path,
    target_state_dir: Path,
    version: str,
    timeout: float = DEFAULT_FETCH_TIMEOUT,
    verbose: bool = False,
) -> InstalledPackage:
    """
    Fetch, verify and install the artifact described by descriptor.

    Each step runs once; failures propagate as FetchError, IntegrityError,
    ExtractionError or PlacementError. Retrying is the caller's decision.

    Args:
        descriptor: Pinned artifact for the host platform
        target_bin_dir: Directory that receives the executable
        target_state_dir: Per-tool state directory to provision
        version: Release version the descriptor belongs to
        timeout: Fetch timeout in seconds
        verbose: Enable verbose logging

    Returns:
        InstalledPackage describing the installed files
    """
    target_bin_dir = Path(target_bin_dir)
    target_state_dir = Path(target_state_dir)

    with tempfile.TemporaryDirectory(prefix=f"{EXECUTABLE_NAME}-install-") as scratch:
        scratch_dir = Path(scratch)
        archive = scratch_dir / descriptor.archive_name

        logger.info(f"Downloading {descriptor.url}")
        fetch_artifact(descriptor.url, archive, timeout=timeout)

        vlog(f"Verifying SHA-256 of {archive.name}", verbose)
        result = verify_artifact(archive, descriptor.sha256)
        if not result.ok:
            raise IntegrityError(
                f"SHA-256 mismatch for {descriptor.archive_name}\n"
                f"  Expected: {descriptor.sha256}\n"
                f"  Actual:   {result.computed_hash}",
                expected=descriptor.sha256,
                computed=result.computed_hash,
            )

        unpack_dir = scratch_dir / "unpack"
        unpack_dir.mkdir()
        vlog(f"Extracting {EXECUTABLE_NAME} from {archive.name}", verbose)
        executable = extract_executable(archive, unpack_dir)

        binary_path = place_executable(executable, target_bin_dir)
        logger.info(f"Installed {binary_path}")

    provision_state_dir(target_state_dir)
    vlog(f"State directory ready: {target_state_dir}", verbose)

    return InstalledPackage(binary_path=binary_path, state_dir=target_state_dir, version=version)
