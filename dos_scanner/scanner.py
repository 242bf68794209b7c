"""Scanner that delegates license and copyright scanning to a DOS backend.

A scan of one provenance runs these steps:

1. Ask the DOS API for existing results of the packages' purls.
2. "ready": use the returned results as they are.
3. "pending": another client already started a scan, poll its job.
4. "no-results": download the source code, zip it, upload the zip with a
   presigned URL, register a scan job and poll it until it completes.
5. "failed": give up.

Whatever happens, a ScanSummary is returned. Problems are reported as Issues
in the summary and never raised to the caller.
"""

import shutil
import tempfile
import time
import uuid
from dataclasses import replace
from datetime import datetime
from pathlib import Path
from typing import Callable, List, Optional, Sequence

from ._client import DosClient, ScanResultsResponse
from ._provenance import Archiver, Downloader, ProvenanceDownloader, ZipArchiver
from .config import DosScannerConfig
from .logging_config import logger
from .models import (
    Issue,
    JobStatus,
    Package,
    Provenance,
    ScanResult,
    ScanStatus,
    ScanSummary,
    UnknownProvenance,
    utc_now,
)
from .parser import generate_summary
from .purls import get_dos_purls
from .utils import collect_messages, create_and_log_issue, elapsed_time

SCANNER_NAME = "DOS"

# TODO: Ask the DOS API for its version once it exposes one.
SCANNER_VERSION = "1.0"


class DosScanner:
    """
    Scan packages with a DOS backend.

    Example:
        config = DosScannerConfig(url="https://dos.example.com/api/", token="...")
        scanner = DosScanner(config)
        result = scanner.scan_package(provenance, [package])
        for finding in result.summary.sorted_license_findings():
            print(finding.license, finding.location.path)
    """

    def __init__(
        self,
        config: DosScannerConfig,
        client: Optional[DosClient] = None,
        downloader: Optional[Downloader] = None,
        archiver: Optional[Archiver] = None,
        sleep: Callable[[float], None] = time.sleep,
        name: str = SCANNER_NAME,
    ) -> None:
        """
        Initialize the scanner.

        Args:
            config: Scanner configuration
            client: DOS API client, created from config if not given
            downloader: Fetches source code for "no-results" packages
            archiver: Packs downloaded source code for upload
            sleep: Called with the poll interval between two job state requests
            name: Scanner name, used as the source of issues
        """
        self._config = config
        self.client = client or DosClient(config)
        self._downloader = downloader or ProvenanceDownloader()
        self._archiver = archiver or ZipArchiver()
        self._sleep = sleep
        self._name = name
        self._total_scan_start_time = utc_now()

    @property
    def name(self) -> str:
        return self._name

    @property
    def version(self) -> str:
        return SCANNER_VERSION

    @property
    def config(self) -> DosScannerConfig:
        return self._config

    def _issue(self, message: str) -> Issue:
        return create_and_log_issue(self._name, message)

    def scan_package(self, provenance: Optional[Provenance], packages: Sequence[Package]) -> ScanResult:
        """
        Scan packages that share one provenance.

        Args:
            provenance: Where the source code of the packages comes from
            packages: Packages covered by this provenance

        Returns:
            ScanResult whose summary holds findings and all issues of this run
        """
        start_time = utc_now()
        issues: List[Issue] = []
        scan_results: Optional[ScanResultsResponse] = None
        work_dir: Optional[Path] = None

        try:
            if provenance is None or isinstance(provenance, UnknownProvenance):
                purls = ", ".join(package.purl for package in packages)
                logger.warning(f"Skipping scan as no provenance information is available for these packages: {purls}")
            else:
                work_dir = Path(tempfile.mkdtemp(prefix="dos-scanner-"))
                scan_results = self._scan_provenance(provenance, packages, work_dir, start_time, issues)
        except Exception as e:
            issues.append(self._issue(collect_messages(e)))
        finally:
            if work_dir is not None:
                shutil.rmtree(work_dir, ignore_errors=True)

        summary = self._create_summary(start_time, utc_now(), scan_results, issues)

        return ScanResult(
            provenance=provenance or UnknownProvenance(),
            scanner_name=self._name,
            scanner_version=SCANNER_VERSION,
            summary=summary,
        )

    def _create_summary(
        self,
        start_time: datetime,
        end_time: datetime,
        scan_results: Optional[ScanResultsResponse],
        issues: List[Issue],
    ) -> ScanSummary:
        if scan_results is not None and scan_results.status == ScanStatus.READY:
            parsed = generate_summary(start_time, end_time, scan_results.results)
            return replace(parsed, issues=parsed.issues + issues)

        return ScanSummary.empty(start_time, end_time, issues)

    def _scan_provenance(
        self,
        provenance: Provenance,
        packages: Sequence[Package],
        work_dir: Path,
        start_time: datetime,
        issues: List[Issue],
    ) -> Optional[ScanResultsResponse]:
        purls = get_dos_purls(packages, provenance)
        if not purls:
            logger.warning("No packages to scan")
            return None

        logger.info(f"Packages requested for scanning: {', '.join(purls)}")

        existing_results = self._get_existing_results(purls, issues)
        if existing_results is None:
            return None

        status = existing_results.status

        if status == ScanStatus.NO_RESULTS:
            try:
                source_dir = self._downloader.download(provenance, work_dir / uuid.uuid4().hex)
                logger.info(f"Package downloaded to: {source_dir}")
                return self.run_backend_scan(purls, source_dir, work_dir, start_time, issues)
            except Exception as e:
                issues.append(self._issue(collect_messages(e)))
                return None

        if status == ScanStatus.PENDING:
            job_id = existing_results.state.job_id
            if not job_id:
                issues.append(self._issue("The job ID must not be null for 'pending' status."))
                return None

            return self.poll_for_completion(purls[0], job_id, "Pending scan", start_time, issues)

        if status == ScanStatus.READY:
            return existing_results

        if status == ScanStatus.FAILED:
            issues.append(self._issue("Something went wrong at DOS backend, exiting scan of this package"))
            return None

        issues.append(self._issue(f"Unexpected scan status '{existing_results.state.status}' from DOS API"))
        return None

    def _get_existing_results(self, purls: List[str], issues: List[Issue]) -> Optional[ScanResultsResponse]:
        try:
            results = self.client.get_scan_results(purls, self._config.fetch_concluded)
        except Exception as e:
            issues.append(self._issue(collect_messages(e)))
            return None

        if results is None:
            issues.append(self._issue("Could not request scan results from DOS API"))

        return results

    def run_backend_scan(
        self,
        purls: List[str],
        source_dir: Path,
        tmp_dir: Path,
        start_time: datetime,
        issues: List[Issue],
    ) -> Optional[ScanResultsResponse]:
        """
        Upload source code to the DOS backend, start a scan job and wait for its results.

        The zip file and source_dir are deleted on every exit path.

        Args:
            purls: Package URLs the source code belongs to
            source_dir: Downloaded source tree
            tmp_dir: Directory for the zip file
            start_time: Start of this scan, for progress logging
            issues: Issues of this scan, appended to on failure

        Returns:
            "ready" scan results, or None if any step failed
        """
        logger.info("Initiating a backend scan")

        source_dir = Path(source_dir)
        # The zip name is the object storage key, so it must be unique per run
        zip_name = f"{uuid.uuid4().hex}.zip"
        zip_file = Path(tmp_dir) / zip_name

        try:
            self._archiver.pack(source_dir, zip_file)
            shutil.rmtree(source_dir, ignore_errors=True)

            presigned_url = self.client.get_upload_url(zip_name)
            if presigned_url is None:
                issues.append(self._issue("Could not get a presigned URL for this package"))
                return None

            if not self.client.upload_file(zip_file, presigned_url):
                issues.append(self._issue("Could not upload the packet to S3"))
                return None
        finally:
            zip_file.unlink(missing_ok=True)
            shutil.rmtree(source_dir, ignore_errors=True)

        job = self.client.add_scan_job(zip_name, purls)
        if job is None:
            issues.append(self._issue("Could not create a new scan job at DOS API"))
            return None

        logger.info(f"New scan request: Packages = {', '.join(purls)}, Zip file = {zip_name}")

        if job.is_rejected:
            issues.append(self._issue("DOS API: 'unsuccessful' response to the scan job request"))
            return None

        if not job.scanner_job_id:
            issues.append(self._issue("DOS API did not return a job ID for the scan job request"))
            return None

        # All purls share one provenance, so the job covers all of them and
        # results can be requested for the first one.
        return self.poll_for_completion(purls[0], job.scanner_job_id, "New scan", start_time, issues)

    def poll_for_completion(
        self,
        purl: str,
        job_id: str,
        log_message_prefix: str,
        start_time: datetime,
        issues: List[Issue],
    ) -> Optional[ScanResultsResponse]:
        """
        Poll a scan job until it completes or fails.

        Failed job state requests are logged and retried after the poll
        interval. Without a configured poll timeout, polling only ends with
        the job.

        Args:
            purl: Package URL to request results for once the job completed
            job_id: ID of the scanner job
            log_message_prefix: Label for progress log lines
            start_time: Start of this scan, for progress logging
            issues: Issues of this scan, appended to on failure

        Returns:
            "ready" scan results, or None if the job failed
        """
        poll_timeout = self._config.poll_timeout
        deadline = time.monotonic() + poll_timeout if poll_timeout is not None else None

        while True:
            job_state = self.client.get_scan_job_state(job_id)

            if job_state is None:
                logger.warning(f"{log_message_prefix}: could not get the state of job {job_id}, retrying")
            else:
                logger.info(
                    f"{log_message_prefix}: {elapsed_time(start_time)}/{elapsed_time(self._total_scan_start_time)}, "
                    f"state = {job_state.status}, message = {job_state.state.message}"
                )

                if job_state.status == JobStatus.COMPLETED.value:
                    logger.info("Scan completed")
                    return self._get_final_results(purl, job_id, issues)

                if job_state.status == JobStatus.FAILED.value:
                    issues.append(self._issue("Scan failed in DOS API"))
                    return None

            if deadline is not None and time.monotonic() >= deadline:
                issues.append(self._issue("Timed out waiting for the scan job to complete"))
                return None

            self._sleep(self._config.poll_interval)

    def _get_final_results(self, purl: str, job_id: str, issues: List[Issue]) -> Optional[ScanResultsResponse]:
        results = self.client.get_scan_results([purl], self._config.fetch_concluded)

        if results is None or results.status != ScanStatus.READY:
            status = results.state.status if results else "unavailable"
            issues.append(self._issue(f"Scan job {job_id} completed but results for '{purl}' are {status}"))
            return None

        return results
