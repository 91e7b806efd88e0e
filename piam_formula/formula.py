"""
Formula orchestration for piam-anc.

Sequences platform resolution, verified installation and post-install
guidance, and runs the smoke test against an installed binary.
"""

from __future__ import annotations

import logging
import random
import subprocess
import sys
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, TextIO

from .errors import FetchError, SmokeTestError
from .installer import DEFAULT_FETCH_TIMEOUT, EXECUTABLE_NAME, InstalledPackage, install
from .platforms import ReleaseTable, DEFAULT_RELEASE, detect_host, resolve

logger = logging.getLogger(__name__)

NAME = EXECUTABLE_NAME
PRODUCT_NAME = "PIAM Admin Network Configurator"
DESCRIPTION = "Beautiful TUI for managing Google Cloud SQL and GKE authorized networks"
HOMEPAGE = "https://github.com/ExclamationLabs/piam-anc"
LICENSE = "MIT"

REQUIRED_PERMISSIONS = (
    "cloudsql.instances.list/get/update",
    "container.clusters.list/get/update",
    "resourcemanager.projects.list",
)

SMOKE_TEST_TIMEOUT = 10


@dataclass(frozen=True)
class InstallLayout:
    """
    Filesystem layout under an installation prefix.

    Attributes:
        prefix: Installation prefix (e.g. /usr/local or /opt/homebrew)
    """
    prefix: Path

    @property
    def bin_dir(self) -> Path:
        return self.prefix / "bin"

    @property
    def state_dir(self) -> Path:
        return self.prefix / "var" / NAME

    @property
    def binary_path(self) -> Path:
        return self.bin_dir / NAME


def caveats() -> str:
    """Post-install guidance shown to the operator."""
    permissions = "\n".join(f"  - {perm}" for perm in REQUIRED_PERMISSIONS)
    return (
        f"{PRODUCT_NAME} has been installed!\n"
        "\n"
        f"Before using {NAME}, ensure you're authenticated with Google Cloud:\n"
        "  gcloud auth application-default login\n"
        "\n"
        "To get started:\n"
        f"  {NAME}\n"
        "\n"
        "For help:\n"
        f"  {NAME} --help\n"
        "\n"
        "Required GCP permissions:\n"
        f"{permissions}\n"
    )


def calculate_backoff_delay(attempt: int, base_delay: float = 1.0, max_delay: float = 30.0) -> float:
    """
    Exponential backoff with +/-20% jitter.

    Args:
        attempt: Retry attempt number (0-indexed)
        base_delay: Initial delay in seconds
        max_delay: Maximum delay in seconds
    """
    delay = min(base_delay * (2 ** attempt), max_delay)
    jitter = delay * 0.2 * (random.random() * 2 - 1)
    return max(0.1, delay + jitter)


def run_install(
    layout: InstallLayout,
    table: ReleaseTable | None = None,
    os_name: str | None = None,
    arch: str | None = None,
    timeout: float = DEFAULT_FETCH_TIMEOUT,
    fetch_retries: int = 0,
    out: TextIO | None = None,
    sleep: Callable[[float], None] = time.sleep,
    verbose: bool = False,
) -> InstalledPackage:
    """
    Resolve the host artifact, install it and print the caveats.

    Only FetchError triggers another attempt, and only when fetch_retries
    is positive. Integrity, extraction and placement failures are raised on
    the first occurrence.

    Args:
        layout: Target installation layout
        table: Release table (defaults to the built-in release)
        os_name: Raw or canonical OS override (defaults to the host)
        arch: Raw or canonical architecture override (defaults to the host)
        timeout: Fetch timeout in seconds
        fetch_retries: Extra attempts after a FetchError
        out: Stream for the caveats (defaults to stdout)
        sleep: Delay function between attempts
        verbose: Enable verbose logging

    Returns:
        InstalledPackage for the installed release

    Raises:
        ValueError: If fetch_retries is negative
    """
    if fetch_retries < 0:
        raise ValueError(f"fetch_retries must be >= 0, got {fetch_retries}")

    table = table or DEFAULT_RELEASE
    host = detect_host(system=os_name, machine=arch, verbose=verbose)
    descriptor = resolve(host.os, host.arch, table)
    logger.info(f"Installing {NAME} {table.version} for {host}")

    attempts = fetch_retries + 1
    for attempt in range(attempts):
        try:
            package = install(
                descriptor,
                layout.bin_dir,
                layout.state_dir,
                version=table.version,
                timeout=timeout,
                verbose=verbose,
            )
            break
        except FetchError as e:
            if attempt == attempts - 1:
                raise
            delay = calculate_backoff_delay(attempt)
            logger.warning(f"{e.message}; retrying in {delay:.1f}s ({attempt + 2}/{attempts})")
            sleep(delay)

    stream = out or sys.stdout
    stream.write(caveats())
    stream.flush()
    return package


def smoke_test(binary_path: Path | str, timeout: int = SMOKE_TEST_TIMEOUT) -> str:
    """
    Run `<binary> --version` and check it identifies as piam-anc.

    Returns:
        The binary's stdout

    Raises:
        SmokeTestError: If the binary cannot run, fails, or prints the wrong name
    """
    command = [str(binary_path), "--version"]
    try:
        result = subprocess.run(
            command,
            capture_output=True,
            text=True,
            timeout=timeout,
            check=False,
        )
    except subprocess.TimeoutExpired as e:
        raise SmokeTestError(f"{binary_path} --version timed out after {timeout}s") from e
    except OSError as e:
        raise SmokeTestError(f"Could not run {binary_path}: {e}") from e

    if result.returncode != 0:
        raise SmokeTestError(
            f"{binary_path} --version exited with code {result.returncode}: {result.stderr.strip()[:200]}"
        )
    if PRODUCT_NAME not in result.stdout:
        raise SmokeTestError(
            f"{binary_path} --version did not report {PRODUCT_NAME!r}",
            remediation="The release table may point at the wrong artifact",
        )

    logger.debug(f"Smoke test output: {result.stdout.strip()}")
    return result.stdout


def formula_info(table: ReleaseTable | None = None) -> dict:
    """Formula metadata plus the pinned release table."""
    table = table or DEFAULT_RELEASE
    return {
        "name": NAME,
        "desc": DESCRIPTION,
        "homepage": HOMEPAGE,
        "license": LICENSE,
        "version": table.version,
        "release_source": table.source,
        "artifacts": [d.to_dict() for d in table],
    }
