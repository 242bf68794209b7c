"""Fetching and packing the source code of a provenance."""

from .archive import ZipArchiver, pack_zip, unpack_archive
from .downloader import ProvenanceDownloader
from .protocol import Archiver, Downloader

__all__ = [
    "Archiver",
    "Downloader",
    "ProvenanceDownloader",
    "ZipArchiver",
    "pack_zip",
    "unpack_archive",
]
