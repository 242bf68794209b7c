"""Zip packing and archive unpacking for source trees."""

import tarfile
import zipfile
from pathlib import Path

from dos_scanner.exceptions import FileProcessingError
from dos_scanner.logging_config import logger

# Directories holding VCS metadata are not part of the scanned source
VCS_DIRECTORIES = frozenset({".git", ".hg", ".svn", ".bzr", "CVS"})


def pack_zip(source_dir: Path, target_file: Path) -> Path:
    """
    Pack a directory into a zip file.

    Entries are added in sorted order with paths relative to source_dir, so
    packing the same tree twice gives the same entry list.

    Args:
        source_dir: Directory to pack
        target_file: Zip file to create

    Returns:
        Path of the created zip file

    Raises:
        FileProcessingError: If source_dir is not a directory or writing fails
    """
    source = Path(source_dir)
    if not source.is_dir():
        raise FileProcessingError(f"Cannot pack '{source}': not a directory")

    target = Path(target_file)
    target.parent.mkdir(parents=True, exist_ok=True)

    count = 0
    try:
        with zipfile.ZipFile(target, "w", compression=zipfile.ZIP_DEFLATED) as zf:
            for path in sorted(source.rglob("*")):
                relative = path.relative_to(source)
                if VCS_DIRECTORIES.intersection(relative.parts):
                    continue
                if path.is_file() and not path.is_symlink():
                    zf.write(path, arcname=relative.as_posix())
                    count += 1
    except OSError as e:
        raise FileProcessingError(f"Failed to pack '{source}' into '{target.name}': {e}") from e

    logger.info(f"Packed {count} files from {source} into {target.name}")
    return target


class ZipArchiver:
    """Archiver that packs source trees into zip files."""

    def pack(self, source_dir: Path, target_file: Path) -> Path:
        return pack_zip(source_dir, target_file)


def _safe_extractall(tar: tarfile.TarFile, dest: Path) -> None:
    """Extract tarfile with safe filter, falling back for Python < 3.12."""
    try:
        tar.extractall(path=dest, filter="data")
    except TypeError:
        # Python < 3.12: TarFile.extractall does not support the 'filter' argument
        tar.extractall(path=dest)


def _safe_extract_zip(archive: Path, dest: Path) -> None:
    root = dest.resolve()
    with zipfile.ZipFile(archive) as zf:
        for member in zf.namelist():
            target = (dest / member).resolve()
            if root != target and root not in target.parents:
                raise FileProcessingError(f"Refusing to extract '{member}' outside of {dest}")
        zf.extractall(dest)


def unpack_archive(archive: Path, dest: Path) -> bool:
    """
    Unpack a zip or tar archive into dest.

    Args:
        archive: Archive file
        dest: Destination directory

    Returns:
        True if the file was an archive and got unpacked, False if it is no known archive type

    Raises:
        FileProcessingError: If extraction fails
    """
    archive = Path(archive)
    dest = Path(dest)
    dest.mkdir(parents=True, exist_ok=True)

    try:
        if zipfile.is_zipfile(archive):
            _safe_extract_zip(archive, dest)
            return True
        if tarfile.is_tarfile(archive):
            with tarfile.open(archive, "r:*") as tar:
                _safe_extractall(tar, dest)
            return True
    except FileProcessingError:
        raise
    except Exception as e:
        raise FileProcessingError(f"Failed to extract archive {archive.name}: {e}") from e

    return False
