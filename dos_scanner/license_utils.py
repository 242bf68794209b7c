"""SPDX license expression handling for DOS scan results.

Expressions reported by the backend are checked for SPDX syntax using the
`license-expression` library and kept as the backend spelled them. Ids missing
from the SPDX license list are allowed. ScanCode reports license exceptions
(e.g. Classpath-exception-2.0) as findings of their own; those are paired with
the license they belong to here.
"""

import re
from typing import Iterable, List, Set

from license_expression import ExpressionError, get_spdx_licensing

from .models import LicenseFinding

_spdx_licensing = get_spdx_licensing()

# SPDX special values that are always valid
SPDX_SPECIAL_VALUES = {"NOASSERTION", "NONE"}

NOASSERTION = "NOASSERTION"

_LICENSE_AND_EXCEPTION_PATTERN = re.compile(r"^(\S+)\s+AND\s+(\S+)$", re.IGNORECASE)

_EXCEPTION_KEYS = frozenset(
    key.lower() for key, symbol in _spdx_licensing.known_symbols.items() if getattr(symbol, "is_exception", False)
)


class InvalidLicenseExpression(ValueError):
    """Raised when a string is not a syntactically valid SPDX license expression."""


def is_license_exception(license_key: str) -> bool:
    """Check whether a single license key names an SPDX license exception."""
    return license_key.strip().lower() in _EXCEPTION_KEYS


def to_spdx(license_str: str) -> str:
    """
    Check the SPDX syntax of a license expression.

    License ids are returned as given, including ids that are not on the SPDX
    license list. Only "<license> AND <exception>" is rewritten, to
    "<license> WITH <exception>".

    Args:
        license_str: License identifier or expression

    Returns:
        The stripped expression

    Raises:
        InvalidLicenseExpression: If the string is empty, cannot be parsed, has a
            license id containing whitespace or uses an exception as a license
    """
    if not license_str or not license_str.strip():
        raise InvalidLicenseExpression("empty license expression")

    stripped = license_str.strip()
    if stripped in SPDX_SPECIAL_VALUES:
        return stripped

    try:
        parsed = _spdx_licensing.parse(stripped, validate=False)
    except ExpressionError as e:
        raise InvalidLicenseExpression(str(e)) from e

    if parsed is None:
        raise InvalidLicenseExpression("empty license expression")

    for symbol in _spdx_licensing.license_symbols(parsed, unique=False, decompose=False):
        license_symbol = getattr(symbol, "license_symbol", None)
        if license_symbol is not None and is_license_exception(license_symbol.key):
            raise InvalidLicenseExpression(f"exception '{license_symbol.key}' used as a license")

    for symbol in _spdx_licensing.license_symbols(parsed, unique=False, decompose=True):
        if any(char.isspace() for char in symbol.key):
            raise InvalidLicenseExpression(f"invalid license id '{symbol.key}'")

    return _fix_license_and_exception(stripped)


def _fix_license_and_exception(expression: str) -> str:
    """Turn "<license> AND <exception>" into "<license> WITH <exception>"."""
    match = _LICENSE_AND_EXCEPTION_PATTERN.match(expression)
    if not match:
        return expression

    left, right = match.groups()
    if is_license_exception(right) and not is_license_exception(left):
        return f"{left} WITH {right}"
    if is_license_exception(left) and not is_license_exception(right):
        return f"{right} WITH {left}"
    return expression


def associate_licenses_with_exceptions(findings: Iterable[LicenseFinding]) -> Set[LicenseFinding]:
    """
    Pair license exception findings with the license findings they apply to.

    An exception found in the same file with an overlapping line range as a
    single-license finding is merged into "<license> WITH <exception>". An
    exception that matches no license stays as "NOASSERTION WITH <exception>".
    All other findings are returned unchanged.

    Args:
        findings: License findings of one scan

    Returns:
        New set of license findings
    """
    exceptions: List[LicenseFinding] = []
    licenses: List[LicenseFinding] = []

    for finding in findings:
        if is_license_exception(finding.license):
            exceptions.append(finding)
        else:
            licenses.append(finding)

    if not exceptions:
        return set(licenses)

    result: Set[LicenseFinding] = set()
    paired_licenses: Set[LicenseFinding] = set()

    for exception in sorted(exceptions, key=LicenseFinding.sort_key):
        partners = [
            finding
            for finding in sorted(licenses, key=LicenseFinding.sort_key)
            if finding not in paired_licenses
            and " " not in finding.license.strip()
            and finding.license not in SPDX_SPECIAL_VALUES
            and finding.location.overlaps(exception.location)
        ]

        if not partners:
            result.add(
                LicenseFinding(
                    license=f"{NOASSERTION} WITH {exception.license}",
                    location=exception.location,
                    score=exception.score,
                )
            )
            continue

        partner = partners[0]
        paired_licenses.add(partner)
        result.add(
            LicenseFinding(
                license=f"{partner.license} WITH {exception.license}",
                location=partner.location,
                score=partner.score,
            )
        )

    result.update(finding for finding in licenses if finding not in paired_licenses)
    return result
