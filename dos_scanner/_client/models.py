"""Request and response bodies of the DOS API."""

from dataclasses import dataclass
from typing import Any, Dict, Optional

from dos_scanner.models import ScanStatus

# Message the DOS API returns when a scan job could not be queued
JOB_REJECTED_MESSAGE = "Adding job to queue was unsuccessful"


def _optional_str(value: Any) -> Optional[str]:
    if value is None:
        return None
    return str(value)


@dataclass
class UploadUrlResponse:
    success: bool
    presigned_url: Optional[str] = None
    message: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "UploadUrlResponse":
        return cls(
            success=bool(data.get("success", False)),
            presigned_url=_optional_str(data.get("presignedUrl")),
            message=_optional_str(data.get("message")),
        )


@dataclass
class ScanResultsState:
    status: str
    job_id: Optional[str] = None


@dataclass
class ScanResultsResponse:
    """
    Response to a scan results request.

    Attributes:
        state: Status of the requested purls and, for pending scans, the running job
        results: Raw scan results, only present when the status is "ready"
    """

    state: ScanResultsState
    results: Optional[Any] = None

    @property
    def status(self) -> Optional[ScanStatus]:
        return ScanStatus.from_value(self.state.status)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ScanResultsResponse":
        """
        Parse a scan results response body.

        Raises:
            ValueError: If the body has no state status
        """
        state = data.get("state")
        if not isinstance(state, dict) or not state.get("status"):
            raise ValueError("scan results response has no state status")

        return cls(
            state=ScanResultsState(status=str(state["status"]), job_id=_optional_str(state.get("jobId"))),
            results=data.get("results"),
        )


@dataclass
class JobResponse:
    scanner_job_id: Optional[str] = None
    message: Optional[str] = None

    @property
    def is_rejected(self) -> bool:
        return self.message == JOB_REJECTED_MESSAGE

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "JobResponse":
        return cls(
            scanner_job_id=_optional_str(data.get("scannerJobId")),
            message=_optional_str(data.get("message")),
        )


@dataclass
class JobState:
    status: Optional[str] = None
    message: Optional[str] = None


@dataclass
class JobStateResponse:
    state: JobState

    @property
    def status(self) -> Optional[str]:
        return self.state.status

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "JobStateResponse":
        state = data.get("state")
        if isinstance(state, dict):
            return cls(
                state=JobState(status=_optional_str(state.get("status")), message=_optional_str(state.get("message")))
            )
        # Older backends report the state as a plain string
        return cls(state=JobState(status=_optional_str(state)))
