"""Tests for the DOS scan orchestration."""

from pathlib import Path
from typing import List
from unittest.mock import Mock, patch

import pytest

from dos_scanner._client import DosClient, JobResponse, JobStateResponse, ScanResultsResponse
from dos_scanner._provenance import ZipArchiver
from dos_scanner.config import DosScannerConfig
from dos_scanner.exceptions import DownloadError
from dos_scanner.models import (
    RepositoryProvenance,
    ScanSummary,
    Severity,
    UnknownProvenance,
    VcsInfo,
)
from dos_scanner.purls import get_dos_purls, package_from_purl
from dos_scanner.scanner import SCANNER_NAME, SCANNER_VERSION, DosScanner

PRESIGNED_URL = "https://s3.example.com/dos/upload.zip?X-Amz-Signature=abc"

VCS = VcsInfo(type="Git", url="https://github.com/jshttp/mime-types.git", revision="2.1.18")
PROVENANCE = RepositoryProvenance(vcs_info=VCS, resolved_revision="076f7902e3a730970ea96cd0b9c09bb6110f1127")
PACKAGES = [package_from_purl("pkg:npm/mime-types@2.1.18", vcs=VCS)]
DOS_PURLS = get_dos_purls(PACKAGES, PROVENANCE)


class FakeDownloader:
    """Writes a small source tree instead of cloning."""

    def __init__(self, error: Exception = None, subdir: str = ""):
        self.error = error
        self.subdir = subdir
        self.target_dirs: List[Path] = []

    def download(self, provenance, target_dir: Path) -> Path:
        self.target_dirs.append(target_dir)
        if self.error:
            raise self.error
        source_dir = target_dir / self.subdir if self.subdir else target_dir
        source_dir.mkdir(parents=True)
        (source_dir / "LICENSE").write_text("MIT License\n")
        (source_dir / "index.js").write_text("module.exports = {}\n")
        return source_dir


class RecordingArchiver(ZipArchiver):
    def __init__(self):
        self.packed: List[Path] = []

    def pack(self, source_dir: Path, target_file: Path) -> Path:
        self.packed.append(target_file)
        return super().pack(source_dir, target_file)


def job_state(status, message=None) -> JobStateResponse:
    return JobStateResponse.from_dict({"state": {"status": status, "message": message}})


@pytest.fixture
def client():
    return Mock(spec=DosClient)


@pytest.fixture
def downloader():
    return FakeDownloader()


@pytest.fixture
def archiver():
    return RecordingArchiver()


@pytest.fixture
def sleep():
    return Mock()


@pytest.fixture
def scanner(config, client, downloader, archiver, sleep):
    return DosScanner(config, client=client, downloader=downloader, archiver=archiver, sleep=sleep)


@pytest.fixture
def results(load_fixture):
    def _results(name: str) -> ScanResultsResponse:
        return ScanResultsResponse.from_dict(load_fixture(name))

    return _results


def called_methods(client) -> List[str]:
    return [name for name, _, _ in client.mock_calls]


def assert_single_issue(summary: ScanSummary, message: str) -> None:
    assert not summary.license_findings
    assert not summary.copyright_findings
    assert len(summary.issues) == 1
    assert summary.issues[0].message == message
    assert summary.issues[0].severity == Severity.ERROR
    assert summary.issues[0].source == SCANNER_NAME


class TestExistingResults:
    def test_ready_results_are_used_without_upload(self, scanner, client, downloader, results):
        client.get_scan_results.return_value = results("ready.json")

        result = scanner.scan_package(PROVENANCE, PACKAGES)

        assert called_methods(client) == ["get_scan_results"]
        client.get_scan_results.assert_called_once_with(DOS_PURLS, False)
        assert downloader.target_dirs == []
        assert len(result.summary.license_findings) == 4
        assert len(result.summary.copyright_findings) == 2
        assert result.summary.issues == []
        assert result.scanner_name == SCANNER_NAME
        assert result.scanner_version == SCANNER_VERSION
        assert result.provenance == PROVENANCE

    def test_fetch_concluded_is_passed_on(self, client, downloader, archiver, sleep, results):
        config = DosScannerConfig(url="http://localhost:5000/api/", token="test-token", fetch_concluded=True)
        client.get_scan_results.return_value = results("ready.json")

        DosScanner(config, client=client, downloader=downloader, archiver=archiver, sleep=sleep).scan_package(
            PROVENANCE, PACKAGES
        )

        client.get_scan_results.assert_called_once_with(DOS_PURLS, True)

    def test_license_exceptions_are_merged(self, scanner, client, results):
        client.get_scan_results.return_value = results("ready-with-problems.json")

        summary = scanner.scan_package(PROVENANCE, PACKAGES).summary

        assert {finding.license for finding in summary.license_findings} == {
            "GPL-2.0-only WITH Classpath-exception-2.0"
        }
        assert len(summary.copyright_findings) == 1
        assert [issue.source for issue in summary.issues] == ["ScanCode", "DOSResultParser"]
        assert summary.issues[0].severity == Severity.WARNING
        assert summary.has_errors

    def test_repeated_scans_give_equal_findings(self, scanner, client, results):
        client.get_scan_results.return_value = results("ready.json")

        first = scanner.scan_package(PROVENANCE, PACKAGES).summary.to_dict()
        second = scanner.scan_package(PROVENANCE, PACKAGES).summary.to_dict()

        assert first["licenses"] == second["licenses"]
        assert first["copyrights"] == second["copyrights"]
        assert first["issues"] == second["issues"] == []

    def test_failed_status(self, scanner, client, results):
        client.get_scan_results.return_value = results("failed.json")

        summary = scanner.scan_package(PROVENANCE, PACKAGES).summary

        assert_single_issue(summary, "Something went wrong at DOS backend, exiting scan of this package")

    def test_unavailable_api(self, scanner, client):
        client.get_scan_results.return_value = None

        summary = scanner.scan_package(PROVENANCE, PACKAGES).summary

        assert_single_issue(summary, "Could not request scan results from DOS API")
        assert called_methods(client) == ["get_scan_results"]

    def test_unknown_status(self, scanner, client):
        client.get_scan_results.return_value = ScanResultsResponse.from_dict({"state": {"status": "queued"}})

        summary = scanner.scan_package(PROVENANCE, PACKAGES).summary

        assert_single_issue(summary, "Unexpected scan status 'queued' from DOS API")

    def test_client_exception_becomes_issue(self, scanner, client):
        client.get_scan_results.side_effect = RuntimeError("socket closed")

        summary = scanner.scan_package(PROVENANCE, PACKAGES).summary

        assert_single_issue(summary, "RuntimeError: socket closed")

    def test_unknown_provenance_is_skipped(self, scanner, client):
        result = scanner.scan_package(UnknownProvenance(), PACKAGES)

        assert client.mock_calls == []
        assert result.provenance == UnknownProvenance()
        assert result.summary.issues == []
        assert not result.summary.license_findings

    def test_missing_provenance_is_skipped(self, scanner, client):
        result = scanner.scan_package(None, PACKAGES)

        assert client.mock_calls == []
        assert result.provenance == UnknownProvenance()


class TestPendingScan:
    def test_polls_existing_job(self, scanner, client, downloader, sleep, results):
        client.get_scan_results.side_effect = [results("pending.json"), results("ready.json")]
        client.get_scan_job_state.side_effect = [job_state("processing", "Scanning"), job_state("completed")]

        summary = scanner.scan_package(PROVENANCE, PACKAGES).summary

        assert downloader.target_dirs == []
        client.get_upload_url.assert_not_called()
        assert [c.args for c in client.get_scan_job_state.call_args_list] == [("dj34eh4h65",), ("dj34eh4h65",)]
        sleep.assert_called_once_with(5)
        assert len(summary.license_findings) == 4
        assert summary.issues == []

    def test_missing_job_id(self, scanner, client):
        client.get_scan_results.return_value = ScanResultsResponse.from_dict({"state": {"status": "pending"}})

        summary = scanner.scan_package(PROVENANCE, PACKAGES).summary

        assert_single_issue(summary, "The job ID must not be null for 'pending' status.")
        client.get_scan_job_state.assert_not_called()


class TestBackendScan:
    @pytest.fixture(autouse=True)
    def no_results(self, client, results):
        client.get_scan_results.side_effect = [results("no-results.json"), results("ready.json")]

    def test_upload_and_scan(self, scanner, client, downloader, archiver, sleep):
        client.get_upload_url.return_value = PRESIGNED_URL
        client.upload_file.return_value = True
        client.add_scan_job.return_value = JobResponse(scanner_job_id="job-1", message="Job added to queue")
        client.get_scan_job_state.side_effect = [job_state("processing"), job_state("completed")]

        summary = scanner.scan_package(PROVENANCE, PACKAGES).summary

        assert called_methods(client) == [
            "get_scan_results",
            "get_upload_url",
            "upload_file",
            "add_scan_job",
            "get_scan_job_state",
            "get_scan_job_state",
            "get_scan_results",
        ]
        zip_file = archiver.packed[0]
        client.get_upload_url.assert_called_once_with(zip_file.name)
        client.upload_file.assert_called_once_with(zip_file, PRESIGNED_URL)
        client.add_scan_job.assert_called_once_with(zip_file.name, DOS_PURLS)
        assert client.get_scan_results.call_args_list[-1].args == ([DOS_PURLS[0]], False)
        sleep.assert_called_once_with(5)

        assert len(summary.license_findings) == 4
        assert summary.issues == []

        assert not zip_file.exists()
        assert not downloader.target_dirs[0].exists()
        assert not downloader.target_dirs[0].parent.exists()

    def test_zip_exists_during_upload(self, scanner, client, archiver):
        uploaded = []
        client.get_upload_url.return_value = PRESIGNED_URL
        client.upload_file.side_effect = lambda file, url: uploaded.append(file.exists()) or True
        client.add_scan_job.return_value = JobResponse(scanner_job_id="job-1")
        client.get_scan_job_state.return_value = job_state("completed")

        scanner.scan_package(PROVENANCE, PACKAGES)

        assert uploaded == [True]

    def test_upload_url_refused(self, scanner, client, downloader, archiver):
        client.get_upload_url.return_value = None

        summary = scanner.scan_package(PROVENANCE, PACKAGES).summary

        assert_single_issue(summary, "Could not get a presigned URL for this package")
        client.upload_file.assert_not_called()
        client.add_scan_job.assert_not_called()
        assert not archiver.packed[0].exists()
        assert not downloader.target_dirs[0].exists()

    def test_upload_failed(self, scanner, client, archiver):
        client.get_upload_url.return_value = PRESIGNED_URL
        client.upload_file.return_value = False

        summary = scanner.scan_package(PROVENANCE, PACKAGES).summary

        assert_single_issue(summary, "Could not upload the packet to S3")
        client.add_scan_job.assert_not_called()
        assert not archiver.packed[0].exists()

    def test_job_not_created(self, scanner, client):
        client.get_upload_url.return_value = PRESIGNED_URL
        client.upload_file.return_value = True
        client.add_scan_job.return_value = None

        summary = scanner.scan_package(PROVENANCE, PACKAGES).summary

        assert_single_issue(summary, "Could not create a new scan job at DOS API")

    def test_job_rejected(self, scanner, client):
        client.get_upload_url.return_value = PRESIGNED_URL
        client.upload_file.return_value = True
        client.add_scan_job.return_value = JobResponse(message="Adding job to queue was unsuccessful")

        summary = scanner.scan_package(PROVENANCE, PACKAGES).summary

        assert_single_issue(summary, "DOS API: 'unsuccessful' response to the scan job request")
        client.get_scan_job_state.assert_not_called()

    def test_job_without_id(self, scanner, client):
        client.get_upload_url.return_value = PRESIGNED_URL
        client.upload_file.return_value = True
        client.add_scan_job.return_value = JobResponse(message="Job added")

        summary = scanner.scan_package(PROVENANCE, PACKAGES).summary

        assert_single_issue(summary, "DOS API did not return a job ID for the scan job request")

    def test_job_failed(self, scanner, client):
        client.get_upload_url.return_value = PRESIGNED_URL
        client.upload_file.return_value = True
        client.add_scan_job.return_value = JobResponse(scanner_job_id="job-1")
        client.get_scan_job_state.return_value = job_state("failed", "Out of memory")

        summary = scanner.scan_package(PROVENANCE, PACKAGES).summary

        assert_single_issue(summary, "Scan failed in DOS API")

    def test_download_failed(self, client, archiver, sleep, config):
        downloader = FakeDownloader(error=DownloadError("'git fetch' failed with return code 128: not found"))
        scanner = DosScanner(config, client=client, downloader=downloader, archiver=archiver, sleep=sleep)

        summary = scanner.scan_package(PROVENANCE, PACKAGES).summary

        assert_single_issue(summary, "DownloadError: 'git fetch' failed with return code 128: not found")
        client.get_upload_url.assert_not_called()
        assert not downloader.target_dirs[0].parent.exists()

    def test_zip_names_are_unique_per_run(self, client, archiver, sleep, config, results):
        client.get_scan_results.side_effect = [
            results("no-results.json"),
            results("ready.json"),
            results("no-results.json"),
            results("ready.json"),
        ]
        client.get_upload_url.return_value = PRESIGNED_URL
        client.upload_file.return_value = True
        client.add_scan_job.return_value = JobResponse(scanner_job_id="job-1")
        client.get_scan_job_state.return_value = job_state("completed")
        downloader = FakeDownloader(subdir="mime-types")
        scanner = DosScanner(config, client=client, downloader=downloader, archiver=archiver, sleep=sleep)

        scanner.scan_package(PROVENANCE, PACKAGES)
        scanner.scan_package(PROVENANCE, PACKAGES)

        zip_names = [c.args[0] for c in client.get_upload_url.call_args_list]
        assert len(set(zip_names)) == 2
        assert "mime-types.zip" not in zip_names
        assert [c.args[0] for c in client.add_scan_job.call_args_list] == zip_names

    def test_interrupt_during_upload_cleans_up(self, scanner, client, downloader, archiver):
        client.get_upload_url.return_value = PRESIGNED_URL
        client.upload_file.side_effect = KeyboardInterrupt

        with pytest.raises(KeyboardInterrupt):
            scanner.scan_package(PROVENANCE, PACKAGES)

        assert not archiver.packed[0].exists()
        assert not downloader.target_dirs[0].exists()
        assert not downloader.target_dirs[0].parent.exists()

    def test_interrupt_while_polling_cleans_up(self, scanner, client, downloader, archiver, sleep):
        client.get_upload_url.return_value = PRESIGNED_URL
        client.upload_file.return_value = True
        client.add_scan_job.return_value = JobResponse(scanner_job_id="job-1")
        client.get_scan_job_state.return_value = job_state("processing")
        sleep.side_effect = KeyboardInterrupt

        with pytest.raises(KeyboardInterrupt):
            scanner.scan_package(PROVENANCE, PACKAGES)

        assert client.get_scan_job_state.call_count == 1
        assert not archiver.packed[0].exists()
        assert not downloader.target_dirs[0].parent.exists()


class TestPolling:
    @pytest.fixture(autouse=True)
    def pending(self, client, results):
        client.get_scan_results.side_effect = [results("pending.json"), results("ready.json")]

    def test_failed_state_request_is_retried(self, scanner, client, sleep):
        client.get_scan_job_state.side_effect = [None, None, job_state("completed")]

        summary = scanner.scan_package(PROVENANCE, PACKAGES).summary

        assert client.get_scan_job_state.call_count == 3
        assert sleep.call_count == 2
        assert len(summary.license_findings) == 4
        assert summary.issues == []

    def test_results_not_ready_after_completion(self, scanner, client, results):
        client.get_scan_results.side_effect = [results("pending.json"), results("no-results.json")]
        client.get_scan_job_state.return_value = job_state("completed")

        summary = scanner.scan_package(PROVENANCE, PACKAGES).summary

        assert_single_issue(
            summary, f"Scan job dj34eh4h65 completed but results for '{DOS_PURLS[0]}' are no-results"
        )

    def test_poll_timeout(self, client, downloader, archiver, sleep):
        config = DosScannerConfig(url="http://localhost:5000/api/", token="test-token", poll_timeout=10)
        scanner = DosScanner(config, client=client, downloader=downloader, archiver=archiver, sleep=sleep)
        client.get_scan_job_state.return_value = job_state("processing")

        ticks = iter([0.0, 5.0])
        with patch("dos_scanner.scanner.time.monotonic", side_effect=lambda: next(ticks, 11.0)):
            summary = scanner.scan_package(PROVENANCE, PACKAGES).summary

        assert_single_issue(summary, "Timed out waiting for the scan job to complete")
        assert client.get_scan_job_state.call_count == 2
        sleep.assert_called_once_with(5)

    def test_interrupt_while_polling_removes_work_dir(self, scanner, client, sleep, tmp_path):
        work_dir = tmp_path / "work"
        work_dir.mkdir()
        client.get_scan_job_state.return_value = job_state("processing")
        sleep.side_effect = KeyboardInterrupt

        with patch("dos_scanner.scanner.tempfile.mkdtemp", return_value=str(work_dir)):
            with pytest.raises(KeyboardInterrupt):
                scanner.scan_package(PROVENANCE, PACKAGES)

        assert not work_dir.exists()


def test_defaults_are_created_from_config(config):
    scanner = DosScanner(config)
    assert isinstance(scanner.client, DosClient)
    assert scanner.name == SCANNER_NAME
    assert scanner.version == SCANNER_VERSION
    assert scanner.config is config


def test_upload_url_http_error_with_real_client(config, mock_session, make_response, load_fixture, archiver, sleep):
    def request(method, url, **kwargs):
        if url.endswith("/scan-results"):
            return make_response(200, load_fixture("no-results.json"))
        return make_response(400, {"message": "Bad request"})

    mock_session.request.side_effect = request
    downloader = FakeDownloader()
    scanner = DosScanner(
        config,
        client=DosClient(config, session=mock_session),
        downloader=downloader,
        archiver=archiver,
        sleep=sleep,
    )

    summary = scanner.scan_package(PROVENANCE, PACKAGES).summary

    assert_single_issue(summary, "Could not get a presigned URL for this package")
    mock_session.put.assert_not_called()
    assert not archiver.packed[0].exists()
    assert not downloader.target_dirs[0].parent.exists()
