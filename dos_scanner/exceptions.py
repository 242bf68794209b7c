"""Custom exceptions for dos-scanner."""


class DosScannerError(Exception):
    """Base exception for all dos-scanner operations."""


class ConfigurationError(DosScannerError):
    """Raised when configuration validation fails."""


class DownloadError(DosScannerError):
    """Raised when the source code of a package cannot be downloaded."""


class FileProcessingError(DosScannerError):
    """Raised when packing or unpacking local files fails."""
