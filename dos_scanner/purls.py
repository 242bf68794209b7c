"""Package URLs used as keys for scan results in the DOS API.

The DOS backend stores results per package URL. Packages whose source code
comes from a known provenance get that provenance encoded as purl qualifiers,
so results for the same package built from different sources are kept apart.
"""

from typing import Dict, Iterable, List, Optional

from packageurl import PackageURL

from .models import (
    ArtifactProvenance,
    Package,
    Provenance,
    RepositoryProvenance,
    UnknownProvenance,
    VcsInfo,
)


def package_from_purl(purl: str, vcs: Optional[VcsInfo] = None) -> Package:
    """
    Build a Package from its package URL.

    Args:
        purl: Package URL string (e.g., "pkg:npm/mime-types@2.1.18")
        vcs: Optional VCS coordinates of the package's source code

    Returns:
        Package with coordinates taken from the purl

    Raises:
        ValueError: If the purl cannot be parsed
    """
    parsed = PackageURL.from_string(purl)
    return Package(
        purl=purl,
        type=parsed.type,
        namespace=parsed.namespace,
        name=parsed.name,
        version=parsed.version,
        vcs=vcs,
    )


def provenance_qualifiers(provenance: Provenance) -> Dict[str, str]:
    """Return the purl qualifiers describing where the source code comes from."""
    if isinstance(provenance, RepositoryProvenance):
        vcs = provenance.vcs_info
        qualifiers = {
            "vcs_type": vcs.type.lower(),
            "vcs_url": vcs.url,
            "vcs_revision": vcs.revision,
            "resolved_revision": provenance.resolved_revision,
        }
        return {key: value for key, value in qualifiers.items() if value}

    if isinstance(provenance, ArtifactProvenance):
        qualifiers = {"download_url": provenance.url}
        if provenance.hash_value:
            algorithm = provenance.hash_algorithm.lower() or "sha1"
            qualifiers["checksum"] = f"{algorithm}:{provenance.hash_value}"
        return qualifiers

    if isinstance(provenance, UnknownProvenance):
        return {}

    raise TypeError(f"Unsupported provenance type: {type(provenance).__name__}")


def _package_purl(package: Package, qualifiers: Dict[str, str], subpath: Optional[str]) -> str:
    if not package.type or not package.name:
        raise ValueError(f"Package '{package.purl}' has no type or name")

    return PackageURL(
        type=package.type,
        namespace=package.namespace or None,
        name=package.name,
        version=package.version or None,
        qualifiers=qualifiers or None,
        subpath=subpath or None,
    ).to_string()


def get_dos_purls(packages: Iterable[Package], provenance: Provenance) -> List[str]:
    """
    Compute the DOS API keys for packages that share one provenance.

    For a repository checkout, each package's own VCS path becomes the purl
    subpath, so packages from different sub-trees of one repository get
    different keys. With unknown provenance, the packages' own purls are used.

    Args:
        packages: Packages to compute keys for
        provenance: Where the source code of the packages comes from

    Returns:
        One key per package, in input order

    Raises:
        TypeError: If provenance is not a known provenance variant
        ValueError: If a package lacks a type or name
    """
    if isinstance(provenance, UnknownProvenance):
        return [package.purl for package in packages]

    qualifiers = provenance_qualifiers(provenance)

    if isinstance(provenance, RepositoryProvenance):
        return [
            _package_purl(package, qualifiers, package.vcs.path if package.vcs else provenance.vcs_info.path)
            for package in packages
        ]

    return [_package_purl(package, qualifiers, None) for package in packages]
