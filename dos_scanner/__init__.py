"""Client-side scanner that delegates license and copyright scanning to a DOS backend."""

from .config import DosScannerConfig
from .models import (
    ArtifactProvenance,
    CopyrightFinding,
    Issue,
    LicenseFinding,
    Package,
    RepositoryProvenance,
    ScanResult,
    ScanStatus,
    ScanSummary,
    Severity,
    TextLocation,
    UnknownProvenance,
    VcsInfo,
)
from .parser import generate_summary, parse_results
from .purls import get_dos_purls, package_from_purl
from .scanner import DosScanner

__version__ = "0.1.0"

__all__ = [
    "ArtifactProvenance",
    "CopyrightFinding",
    "DosScanner",
    "DosScannerConfig",
    "Issue",
    "LicenseFinding",
    "Package",
    "RepositoryProvenance",
    "ScanResult",
    "ScanStatus",
    "ScanSummary",
    "Severity",
    "TextLocation",
    "UnknownProvenance",
    "VcsInfo",
    "generate_summary",
    "get_dos_purls",
    "package_from_purl",
    "parse_results",
]
