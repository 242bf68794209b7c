"""Default downloader for repository and artifact provenances."""

import hashlib
import subprocess
from pathlib import Path
from typing import List, Optional
from urllib.parse import urlparse

import requests

from dos_scanner.exceptions import DownloadError, FileProcessingError
from dos_scanner.http_client import USER_AGENT
from dos_scanner.logging_config import logger
from dos_scanner.models import ArtifactProvenance, Provenance, RepositoryProvenance

from .archive import unpack_archive

GIT_TIMEOUT = 600
DOWNLOAD_TIMEOUT = 300
CHUNK_SIZE = 1024 * 1024


def _run_git(args: List[str], cwd: Path, timeout: int = GIT_TIMEOUT) -> None:
    cmd = ["git", *args]
    try:
        subprocess.run(cmd, cwd=cwd, capture_output=True, check=True, text=True, shell=False, timeout=timeout)
    except subprocess.CalledProcessError as e:
        stderr = (e.stderr or "").strip()
        raise DownloadError(f"'git {args[0]}' failed with return code {e.returncode}: {stderr}") from e
    except subprocess.TimeoutExpired as e:
        raise DownloadError(f"'git {args[0]}' timed out after {timeout}s") from e
    except FileNotFoundError as e:
        raise DownloadError("git command not found - is it installed?") from e


class ProvenanceDownloader:
    """
    Fetch source code for the provenance variants the scanner understands.

    Repository provenances are fetched with git at the resolved revision.
    Artifact provenances are downloaded with requests and unpacked if they
    are zip or tar archives.
    """

    def __init__(self, session: Optional[requests.Session] = None) -> None:
        self._session = session

    def _get_session(self) -> requests.Session:
        if self._session is None:
            self._session = requests.Session()
            self._session.headers.update({"User-Agent": USER_AGENT})
        return self._session

    def download(self, provenance: Provenance, target_dir: Path) -> Path:
        target = Path(target_dir)
        target.mkdir(parents=True, exist_ok=True)

        if isinstance(provenance, RepositoryProvenance):
            return self._download_repository(provenance, target)
        if isinstance(provenance, ArtifactProvenance):
            return self._download_artifact(provenance, target)

        raise DownloadError(f"Cannot download source code for {type(provenance).__name__}")

    def _download_repository(self, provenance: RepositoryProvenance, target: Path) -> Path:
        vcs = provenance.vcs_info
        if vcs.type.lower() != "git":
            raise DownloadError(f"Unsupported VCS type '{vcs.type}' for {vcs.url}")

        revision = provenance.resolved_revision or vcs.revision
        if not revision:
            raise DownloadError(f"No revision to check out for {vcs.url}")

        logger.info(f"Fetching {vcs.url} at revision {revision}")
        _run_git(["init", "--quiet"], cwd=target)
        _run_git(["remote", "add", "origin", vcs.url], cwd=target)
        _run_git(["fetch", "--quiet", "--depth", "1", "origin", revision], cwd=target)
        _run_git(["checkout", "--quiet", "FETCH_HEAD"], cwd=target)

        return target

    def _download_artifact(self, provenance: ArtifactProvenance, target: Path) -> Path:
        file_name = Path(urlparse(provenance.url).path).name or "artifact"
        artifact_file = target.parent / f"{target.name}-{file_name}"

        logger.info(f"Downloading source artifact {provenance.url}")
        try:
            digest = hashlib.new(provenance.hash_algorithm.lower() or "sha1")
        except ValueError as e:
            raise DownloadError(f"Unsupported hash algorithm '{provenance.hash_algorithm}'") from e

        try:
            with self._get_session().get(provenance.url, stream=True, timeout=DOWNLOAD_TIMEOUT) as response:
                if not response.ok:
                    raise DownloadError(f"Failed to download {provenance.url} [{response.status_code}]")
                with artifact_file.open("wb") as f:
                    for chunk in response.iter_content(chunk_size=CHUNK_SIZE):
                        f.write(chunk)
                        digest.update(chunk)
        except requests.exceptions.RequestException as e:
            raise DownloadError(f"Failed to download {provenance.url}: {e}") from e

        try:
            if provenance.hash_value and digest.hexdigest() != provenance.hash_value.lower():
                raise DownloadError(f"Checksum mismatch for {provenance.url}")

            try:
                unpacked = unpack_archive(artifact_file, target)
            except FileProcessingError as e:
                raise DownloadError(str(e)) from e

            if not unpacked:
                # Plain source file, scan it as is
                artifact_file.replace(target / file_name)
        finally:
            artifact_file.unlink(missing_ok=True)

        return target
