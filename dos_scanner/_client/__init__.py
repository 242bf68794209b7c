"""Client for the DOS backend REST API.

Usage:
    from dos_scanner._client import DosClient

    with DosClient(config) as client:
        response = client.get_scan_results(purls, fetch_concluded=False)
"""

from .client import DosClient
from .models import (
    JOB_REJECTED_MESSAGE,
    JobResponse,
    JobState,
    JobStateResponse,
    ScanResultsResponse,
    ScanResultsState,
    UploadUrlResponse,
)

__all__ = [
    "DosClient",
    "JOB_REJECTED_MESSAGE",
    "JobResponse",
    "JobState",
    "JobStateResponse",
    "ScanResultsResponse",
    "ScanResultsState",
    "UploadUrlResponse",
]
