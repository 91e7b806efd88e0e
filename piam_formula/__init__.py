"""
piam-formula - Verified installation of prebuilt piam-anc releases.

Core Modules:
- Platform Resolver: host canonicalization and the pinned release table
- Installer: fetch, SHA-256 verification, extraction, atomic placement
- Orchestration: install pipeline, caveats, smoke test
- Foundation: configuration, logging, error taxonomy
"""

__version__ = "1.0.0"
__author__ = "PIAM Formula Contributors"

VERSION = __version__

# Errors
from .errors import (
    FormulaError,
    UnsupportedPlatform,
    FetchError,
    FetchTimeout,
    IntegrityError,
    ExtractionError,
    PlacementError,
    ReleaseConfigError,
    SmokeTestError,
)

# Platform Resolver
from .platforms import (
    HostPlatform,
    ArtifactDescriptor,
    ReleaseTable,
    DEFAULT_RELEASE,
    canonicalize_os,
    canonicalize_arch,
    detect_host,
    resolve,
    load_release_table,
    load_release_manifest,
)

# Installer
from .installer import (
    VerificationResult,
    InstalledPackage,
    fetch_artifact,
    verify_artifact,
    extract_executable,
    place_executable,
    provision_state_dir,
    install,
)

# Orchestration
from .formula import (
    InstallLayout,
    caveats,
    run_install,
    smoke_test,
    formula_info,
)

# Foundation
from .config import Config, load_config, load_config_file
from .logging_config import setup_logging, get_logger

__all__ = [
    "__version__",
    "VERSION",
    # Errors
    "FormulaError",
    "UnsupportedPlatform",
    "FetchError",
    "FetchTimeout",
    "IntegrityError",
    "ExtractionError",
    "PlacementError",
    "ReleaseConfigError",
    "SmokeTestError",
    # Platform Resolver
    "HostPlatform",
    "ArtifactDescriptor",
    "ReleaseTable",
    "DEFAULT_RELEASE",
    "canonicalize_os",
    "canonicalize_arch",
    "detect_host",
    "resolve",
    "load_release_table",
    "load_release_manifest",
    # Installer
    "VerificationResult",
    "InstalledPackage",
    "fetch_artifact",
    "verify_artifact",
    "extract_executable",
    "place_executable",
    "provision_state_dir",
    "install",
    # Orchestration
    "InstallLayout",
    "caveats",
    "run_install",
    "smoke_test",
    "formula_info",
    # Foundation
    "Config",
    "load_config",
    "load_config_file",
    "setup_logging",
    "get_logger",
]
