"""Data models for DOS scanning: packages, provenance, findings and summaries."""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, FrozenSet, List, Optional, Union


class ScanStatus(str, Enum):
    """Status the DOS API reports for a set of package URLs."""

    NO_RESULTS = "no-results"
    PENDING = "pending"
    READY = "ready"
    FAILED = "failed"

    @classmethod
    def from_value(cls, value: Any) -> Optional["ScanStatus"]:
        """Map a wire value to a ScanStatus, or None if it is unknown."""
        try:
            return cls(value)
        except ValueError:
            return None


class JobStatus(str, Enum):
    """Terminal states of a scanner job. Any other state means the job is still running."""

    COMPLETED = "completed"
    FAILED = "failed"


class Severity(str, Enum):
    """Severity of an Issue."""

    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"

    @classmethod
    def parse(cls, value: Any, default: Optional["Severity"] = None) -> "Severity":
        """
        Parse a severity string case-insensitively.

        Accepts the aliases used by scanner backends ("hint", "warn").

        Args:
            value: Raw severity value
            default: Returned when the value is not recognized (ERROR if not given)

        Returns:
            Matching Severity
        """
        aliases = {"HINT": cls.INFO, "WARN": cls.WARNING}
        if isinstance(value, str):
            key = value.strip().upper()
            if key in aliases:
                return aliases[key]
            try:
                return cls(key)
            except ValueError:
                pass
        return default if default is not None else cls.ERROR


@dataclass(frozen=True)
class VcsInfo:
    """Version control coordinates of a package's source code."""

    type: str
    url: str
    revision: str
    path: str = ""


@dataclass(frozen=True)
class Package:
    """
    A package to scan.

    Attributes:
        purl: The package's self-described package URL
        type: purl type of the package (e.g. "npm", "maven")
        name: Package name
        namespace: Optional namespace (group, scope, vendor)
        version: Optional version
        vcs: Where the source code of the package lives, if known
    """

    purl: str
    type: str
    name: str
    namespace: Optional[str] = None
    version: Optional[str] = None
    vcs: Optional[VcsInfo] = None


@dataclass(frozen=True)
class RepositoryProvenance:
    """Source code comes from a checkout of a version control repository."""

    vcs_info: VcsInfo
    resolved_revision: str


@dataclass(frozen=True)
class ArtifactProvenance:
    """Source code comes from a downloadable source artifact."""

    url: str
    hash_value: str = ""
    hash_algorithm: str = ""


@dataclass(frozen=True)
class UnknownProvenance:
    """Origin of the source code is unknown."""


Provenance = Union[RepositoryProvenance, ArtifactProvenance, UnknownProvenance]


@dataclass(frozen=True, order=True)
class TextLocation:
    """A line range inside a file of the scanned source tree."""

    path: str
    start_line: int
    end_line: int

    def __post_init__(self) -> None:
        if self.start_line > self.end_line:
            raise ValueError(f"start_line {self.start_line} is after end_line {self.end_line} in '{self.path}'")

    def overlaps(self, other: "TextLocation") -> bool:
        return (
            self.path == other.path and self.start_line <= other.end_line and other.start_line <= self.end_line
        )

    def to_dict(self) -> Dict[str, Any]:
        return {"path": self.path, "start_line": self.start_line, "end_line": self.end_line}


@dataclass(frozen=True)
class LicenseFinding:
    """A license expression detected at a location, with the detection score."""

    license: str
    location: TextLocation
    score: Optional[float] = None

    def sort_key(self) -> tuple:
        return (self.location, self.license, -1.0 if self.score is None else self.score)

    def to_dict(self) -> Dict[str, Any]:
        return {"license": self.license, "location": self.location.to_dict(), "score": self.score}


@dataclass(frozen=True)
class CopyrightFinding:
    """A copyright statement detected at a location."""

    statement: str
    location: TextLocation

    def sort_key(self) -> tuple:
        return (self.location, self.statement)

    def to_dict(self) -> Dict[str, Any]:
        return {"statement": self.statement, "location": self.location.to_dict()}


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _format_time(value: datetime) -> str:
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat().replace("+00:00", "Z")


@dataclass(frozen=True)
class Issue:
    """A problem that occurred while scanning, reported by this client or by the backend."""

    source: str
    message: str
    severity: Severity = Severity.ERROR
    timestamp: datetime = field(default_factory=utc_now)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "timestamp": _format_time(self.timestamp),
            "source": self.source,
            "message": self.message,
            "severity": self.severity.value,
        }


@dataclass(frozen=True)
class ScanSummary:
    """
    Outcome of one scan of one provenance.

    A summary is always produced, also when the scan failed. In that case the
    finding sets are empty and the issues explain what went wrong.
    """

    start_time: datetime
    end_time: datetime
    license_findings: FrozenSet[LicenseFinding] = frozenset()
    copyright_findings: FrozenSet[CopyrightFinding] = frozenset()
    issues: List[Issue] = field(default_factory=list)

    @classmethod
    def empty(cls, start_time: datetime, end_time: datetime, issues: Optional[List[Issue]] = None) -> "ScanSummary":
        return cls(start_time=start_time, end_time=end_time, issues=list(issues or []))

    @property
    def has_errors(self) -> bool:
        return any(issue.severity == Severity.ERROR for issue in self.issues)

    def sorted_license_findings(self) -> List[LicenseFinding]:
        return sorted(self.license_findings, key=LicenseFinding.sort_key)

    def sorted_copyright_findings(self) -> List[CopyrightFinding]:
        return sorted(self.copyright_findings, key=CopyrightFinding.sort_key)

    def to_dict(self) -> Dict[str, Any]:
        """Serialize to a JSON-ready dict with findings in a stable order."""
        return {
            "start_time": _format_time(self.start_time),
            "end_time": _format_time(self.end_time),
            "licenses": [finding.to_dict() for finding in self.sorted_license_findings()],
            "copyrights": [finding.to_dict() for finding in self.sorted_copyright_findings()],
            "issues": [issue.to_dict() for issue in self.issues],
        }


@dataclass(frozen=True)
class ScanResult:
    """Scan summary together with the scanned provenance and the scanner that produced it."""

    provenance: Provenance
    scanner_name: str
    scanner_version: str
    summary: ScanSummary
