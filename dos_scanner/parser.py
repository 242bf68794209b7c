"""Interpret the scan results JSON of the DOS API as typed findings.

The payload is loosely typed: any top-level key may be missing and single
entries may be malformed. A broken entry is skipped and reported as an Issue;
it never aborts parsing of the rest of the payload.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional, Set

from .license_utils import InvalidLicenseExpression, associate_licenses_with_exceptions, to_spdx
from .logging_config import logger
from .models import (
    CopyrightFinding,
    Issue,
    LicenseFinding,
    ScanSummary,
    Severity,
    TextLocation,
    utc_now,
)

PARSER_NAME = "DOSResultParser"

NO_ASSERTION = "NOASSERTION"


@dataclass
class ParsedResults:
    """Findings and issues extracted from one scan results payload."""

    license_findings: Set[LicenseFinding] = field(default_factory=set)
    copyright_findings: Set[CopyrightFinding] = field(default_factory=set)
    issues: List[Issue] = field(default_factory=list)


def _parse_location(node: Dict[str, Any]) -> TextLocation:
    location = node["location"]
    return TextLocation(
        path=str(location["path"]),
        start_line=int(location["start_line"]),
        end_line=int(location["end_line"]),
    )


def _parse_score(value: Any) -> Optional[float]:
    if value is None:
        return None
    return float(value)


def _entries(result: Dict[str, Any], key: str, issues: List[Issue], source: str) -> List[Any]:
    entries = result.get(key)
    if entries is None:
        return []
    if not isinstance(entries, list):
        issues.append(
            Issue(source=source, message=f"Expected a list for '{key}' but got {type(entries).__name__}")
        )
        return []
    return entries


def _get_license_findings(result: Dict[str, Any], issues: List[Issue], source: str) -> Set[LicenseFinding]:
    findings: Set[LicenseFinding] = set()

    for entry in _entries(result, "licenses", issues, source):
        license_str = entry.get("license") if isinstance(entry, dict) else None

        try:
            location = _parse_location(entry)
            score = _parse_score(entry.get("score"))
        except (KeyError, TypeError, ValueError, AttributeError) as e:
            issues.append(Issue(source=source, message=f"Cannot parse license finding {entry!r}: {e}"))
            continue

        try:
            license_expression = to_spdx(license_str if isinstance(license_str, str) else "")
        except InvalidLicenseExpression as e:
            issues.append(
                Issue(source=source, message=f"Cannot parse '{license_str}' as an SPDX expression: {e}")
            )
            continue

        findings.add(LicenseFinding(license=license_expression, location=location, score=score))

    return findings


def _get_copyright_findings(result: Dict[str, Any], issues: List[Issue], source: str) -> Set[CopyrightFinding]:
    findings: Set[CopyrightFinding] = set()

    for entry in _entries(result, "copyrights", issues, source):
        try:
            statement = entry["statement"]
            location = _parse_location(entry)
        except (KeyError, TypeError, ValueError, AttributeError) as e:
            issues.append(Issue(source=source, message=f"Cannot parse copyright finding {entry!r}: {e}"))
            continue

        if not isinstance(statement, str) or statement.strip().upper() == NO_ASSERTION:
            continue

        findings.add(CopyrightFinding(statement=statement, location=location))

    return findings


def _parse_timestamp(value: Any) -> datetime:
    if isinstance(value, str):
        try:
            return datetime.fromisoformat(value.replace("Z", "+00:00"))
        except ValueError:
            logger.debug(f"Unparsable issue timestamp '{value}', using current time")
    return utc_now()


def _get_backend_issues(result: Dict[str, Any], issues: List[Issue], source: str) -> List[Issue]:
    backend_issues: List[Issue] = []

    for entry in _entries(result, "issues", issues, source):
        if not isinstance(entry, dict) or "message" not in entry:
            issues.append(Issue(source=source, message=f"Cannot parse issue {entry!r}"))
            continue

        backend_issues.append(
            Issue(
                timestamp=_parse_timestamp(entry.get("timestamp")),
                source=str(entry.get("source") or source),
                message=str(entry["message"]),
                severity=Severity.parse(entry.get("severity")),
            )
        )

    return backend_issues


def parse_results(raw: Any, source: str = PARSER_NAME) -> ParsedResults:
    """
    Convert a DOS scan results payload into typed findings.

    Args:
        raw: The "results" object of a scan results response
        source: Name used as the source of issues created while parsing

    Returns:
        ParsedResults with license findings, copyright findings and issues.
        Issues reported by the backend come first, parse issues after them.
    """
    parsed = ParsedResults()

    if raw is None:
        return parsed

    if not isinstance(raw, dict):
        parsed.issues.append(
            Issue(source=source, message=f"Expected scan results to be an object but got {type(raw).__name__}")
        )
        return parsed

    parse_issues: List[Issue] = []
    parsed.license_findings = _get_license_findings(raw, parse_issues, source)
    parsed.copyright_findings = _get_copyright_findings(raw, parse_issues, source)
    parsed.issues = _get_backend_issues(raw, parse_issues, source) + parse_issues

    for issue in parse_issues:
        logger.warning(f"{issue.source}: {issue.message}")

    logger.debug(
        f"Parsed {len(parsed.license_findings)} license findings, "
        f"{len(parsed.copyright_findings)} copyright findings and {len(parsed.issues)} issues"
    )
    return parsed


def generate_summary(start_time: datetime, end_time: datetime, raw: Any) -> ScanSummary:
    """
    Build a ScanSummary from a DOS scan results payload.

    License exception findings are paired with the licenses they apply to.

    Args:
        start_time: When the scan started
        end_time: When the scan ended
        raw: The "results" object of a scan results response

    Returns:
        ScanSummary with the parsed findings and issues
    """
    parsed = parse_results(raw)
    return ScanSummary(
        start_time=start_time,
        end_time=end_time,
        license_findings=frozenset(associate_licenses_with_exceptions(parsed.license_findings)),
        copyright_findings=frozenset(parsed.copyright_findings),
        issues=parsed.issues,
    )
