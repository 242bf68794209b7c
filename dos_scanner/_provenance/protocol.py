"""Protocols for the collaborators that fetch and pack source code."""

from pathlib import Path
from typing import Protocol

from dos_scanner.models import Provenance


class Downloader(Protocol):
    """
    Protocol for fetching the source code of a provenance.

    Example:
        class GitOnlyDownloader:
            def download(self, provenance: Provenance, target_dir: Path) -> Path:
                # Clone the repository into target_dir
                ...
    """

    def download(self, provenance: Provenance, target_dir: Path) -> Path:
        """
        Download the source code into target_dir.

        Args:
            provenance: Where the source code comes from
            target_dir: Empty directory owned by the caller, removed by the caller

        Returns:
            Directory containing the source tree (target_dir or a directory inside it)

        Raises:
            DownloadError: If the source code cannot be fetched
        """
        ...


class Archiver(Protocol):
    """Protocol for packing a source tree into a single file for upload."""

    def pack(self, source_dir: Path, target_file: Path) -> Path:
        """
        Pack source_dir into target_file.

        Returns:
            Path of the created archive

        Raises:
            FileProcessingError: If the archive cannot be created
        """
        ...
