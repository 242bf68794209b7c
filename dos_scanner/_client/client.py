"""Client for the REST API of a DOS backend."""

import json
from pathlib import Path
from typing import Any, Dict, List, Optional
from urllib.parse import urljoin

import requests

from dos_scanner.config import DosScannerConfig
from dos_scanner.http_client import USER_AGENT, get_default_headers
from dos_scanner.logging_config import logger

from .models import JobResponse, JobStateResponse, ScanResultsResponse, UploadUrlResponse


class DosClient:
    """
    Stateless wrapper around the DOS API.

    Every method is a single request. Failures are logged and reported as
    None (or False for uploads); retry policy belongs to the caller.

    Example:
        with DosClient(config) as client:
            response = client.get_scan_results(["pkg:npm/mime-types@2.1.18"], fetch_concluded=False)
            if response and response.status == ScanStatus.READY:
                ...
    """

    def __init__(self, config: DosScannerConfig, session: Optional[requests.Session] = None) -> None:
        """
        Initialize the client.

        Args:
            config: Scanner configuration with API URL, token and timeout
            session: Optional requests session, created on first use if not given
        """
        self._config = config
        self._session = session

    def _get_session(self) -> requests.Session:
        """Get or create a requests session."""
        if self._session is None:
            self._session = requests.Session()
            self._session.headers.update({"User-Agent": USER_AGENT})
        return self._session

    def close(self) -> None:
        """Close the requests session."""
        if self._session:
            self._session.close()
            self._session = None

    def __enter__(self) -> "DosClient":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()

    def _url(self, path: str) -> str:
        return urljoin(self._config.url, path)

    def _request_json(
        self, method: str, path: str, payload: Optional[Dict[str, Any]] = None
    ) -> Optional[Dict[str, Any]]:
        """Send an authenticated API request and return the JSON object of a successful response."""
        url = self._url(path)
        content_type = "application/json" if payload is not None else None
        headers = get_default_headers(self._config.token, content_type=content_type)

        try:
            response = self._get_session().request(
                method,
                url,
                headers=headers,
                json=payload,
                timeout=self._config.timeout,
            )
        except requests.exceptions.Timeout:
            logger.warning(f"DOS API request timed out: {method} {url}")
            return None
        except requests.exceptions.RequestException as e:
            logger.warning(f"Failed to connect to DOS API: {method} {url}: {e}")
            return None

        if not response.ok:
            err_msg = f"DOS API request failed: {method} {url} [{response.status_code}]"
            try:
                detail = response.json().get("message", "")
                if detail:
                    err_msg += f" - {detail}"
            except (ValueError, AttributeError):
                pass
            logger.warning(err_msg)
            return None

        try:
            data = response.json()
        except (ValueError, json.JSONDecodeError):
            logger.warning(f"DOS API returned invalid JSON: {method} {url}")
            return None

        if not isinstance(data, dict):
            logger.warning(f"DOS API returned unexpected response type {type(data).__name__}: {method} {url}")
            return None

        return data

    def get_scan_results(self, purls: List[str], fetch_concluded: bool) -> Optional[ScanResultsResponse]:
        """
        Ask for existing scan results of packages.

        Args:
            purls: Package URLs to ask for
            fetch_concluded: Return license conclusions instead of detected licenses where they exist

        Returns:
            ScanResultsResponse, or None if the API is unavailable or the request failed
        """
        if not purls:
            logger.warning("No package URLs given, not requesting scan results")
            return None

        data = self._request_json(
            "POST", "scan-results", {"purls": purls, "options": {"fetchConcluded": fetch_concluded}}
        )
        if data is None:
            return None

        try:
            return ScanResultsResponse.from_dict(data)
        except ValueError as e:
            logger.warning(f"Invalid scan results response from DOS API: {e}")
            return None

    def get_upload_url(self, key: str) -> Optional[str]:
        """
        Request a presigned URL to upload a file to object storage.

        Args:
            key: Name of the file in object storage

        Returns:
            Presigned URL, or None if the backend refused or the request failed
        """
        data = self._request_json("POST", "upload-url", {"key": key})
        if data is None:
            return None

        response = UploadUrlResponse.from_dict(data)
        if not response.success or not response.presigned_url:
            logger.warning(f"DOS API refused an upload URL for '{key}': {response.message}")
            return None

        return response.presigned_url

    def upload_file(self, file: Path, presigned_url: str) -> bool:
        """
        Upload a zip file to object storage using a presigned URL.

        Object storage rejects authorization headers on presigned uploads, so
        this is the only request sent without the bearer token.

        Args:
            file: The zip file to upload
            presigned_url: URL returned by get_upload_url

        Returns:
            True if the upload succeeded
        """
        try:
            with Path(file).open("rb") as f:
                response = self._get_session().put(
                    presigned_url,
                    data=f,
                    headers={"User-Agent": USER_AGENT, "Content-Type": "application/zip"},
                    timeout=self._config.timeout,
                )
        except OSError as e:
            logger.error(f"Failed to read '{file}' for upload: {e}")
            return False
        except requests.exceptions.RequestException as e:
            logger.error(f"Failed to upload packet to S3: {e}")
            return False

        if not response.ok:
            logger.error(f"Failed to upload packet to S3: [{response.status_code}] {response.reason}")
            return False

        logger.info("Packet successfully uploaded to S3")
        return True

    def add_scan_job(self, zip_file_key: str, purls: List[str]) -> Optional[JobResponse]:
        """
        Register a scan job for an uploaded zip file.

        Args:
            zip_file_key: Name of the uploaded zip file in object storage
            purls: Package URLs the zip file contains the source code of

        Returns:
            JobResponse, or None if the request failed
        """
        data = self._request_json("POST", "job", {"zipFileKey": zip_file_key, "purls": purls})
        if data is None:
            return None

        return JobResponse.from_dict(data)

    def get_scan_job_state(self, job_id: str) -> Optional[JobStateResponse]:
        """
        Get the current state of a scan job.

        Args:
            job_id: ID of the scanner job

        Returns:
            JobStateResponse, or None if the request itself failed
        """
        data = self._request_json("GET", f"job-state/{job_id}")
        if data is None:
            return None

        return JobStateResponse.from_dict(data)
