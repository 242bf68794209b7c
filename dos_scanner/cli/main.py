"""Command-line interface for dos-scanner.

Every option can also be given as an environment variable:

- DOS_URL: Base URL of the DOS API (default: http://localhost:5000/api/)
- DOS_TOKEN: Bearer token for the DOS API
- DOS_POLL_INTERVAL: Seconds between two job state requests (minimum 5)
- DOS_TIMEOUT: Timeout of DOS API requests in seconds (minimum 60)
- DOS_POLL_TIMEOUT: Give up polling a scan job after this many seconds
- DOS_FETCH_CONCLUDED: Prefer license conclusions over detected licenses
- LOG_LEVEL: Logging level (default: INFO)
"""

import json
import os
import sys
from pathlib import Path
from typing import Any, Dict, List, Optional

import click
import sentry_sdk

from .._client import DosClient
from ..config import (
    DEFAULT_FRONTEND_URL,
    DEFAULT_POLL_INTERVAL,
    DEFAULT_REST_TIMEOUT,
    DEFAULT_SERVER_URL,
    DosScannerConfig,
)
from ..console import console, print_final_failure, print_scan_summary
from ..exceptions import ConfigurationError
from ..http_client import PACKAGE_VERSION
from ..logging_config import logger, set_log_level
from ..models import (
    ArtifactProvenance,
    Provenance,
    RepositoryProvenance,
    ScanResult,
    ScanStatus,
    VcsInfo,
    utc_now,
)
from ..parser import generate_summary
from ..purls import get_dos_purls, package_from_purl
from ..scanner import DosScanner

LOG_LEVELS = ["DEBUG", "INFO", "WARNING", "ERROR"]


def initialize_sentry() -> None:
    """Initialize Sentry for error tracking if a DSN is configured and telemetry is enabled."""
    sentry_dsn = os.getenv("SENTRY_DSN")
    if not sentry_dsn or os.getenv("TELEMETRY", "true").lower() == "false":
        return

    def before_send(event, hint):
        """Don't send configuration errors - these are expected user errors."""
        if "exc_info" in hint:
            exc_type, exc_value, tb = hint["exc_info"]
            if isinstance(exc_value, ConfigurationError):
                return None
        return event

    sentry_sdk.init(
        dsn=sentry_dsn,
        send_default_pii=False,
        traces_sample_rate=0.0,
        before_send=before_send,
    )


def build_config(settings: Dict[str, Any]) -> DosScannerConfig:
    """
    Build a validated configuration from CLI settings.

    Raises:
        click.UsageError: If the configuration is invalid
    """
    try:
        return DosScannerConfig(
            url=settings["url"],
            token=settings["token"] or "",
            poll_interval=settings["poll_interval"],
            timeout=settings["timeout"],
            fetch_concluded=settings["fetch_concluded"],
            frontend_url=settings["frontend_url"],
            poll_timeout=settings["poll_timeout"],
        )
    except ConfigurationError as e:
        raise click.UsageError(str(e))


def build_provenance(
    vcs_url: Optional[str],
    vcs_type: str,
    revision: Optional[str],
    vcs_path: str,
    artifact_url: Optional[str],
    artifact_hash: str,
    hash_algorithm: str,
) -> Provenance:
    """
    Build the provenance described by the scan options.

    Raises:
        click.UsageError: If neither or both of a repository and an artifact are given
    """
    if vcs_url and artifact_url:
        raise click.UsageError("Provide either --vcs-url or --artifact-url, not both")

    if vcs_url:
        if not revision:
            raise click.UsageError("--revision is required together with --vcs-url")
        return RepositoryProvenance(
            vcs_info=VcsInfo(type=vcs_type, url=vcs_url, revision=revision, path=vcs_path),
            resolved_revision=revision,
        )

    if artifact_url:
        return ArtifactProvenance(url=artifact_url, hash_value=artifact_hash, hash_algorithm=hash_algorithm)

    raise click.UsageError("Provide --vcs-url and --revision, or --artifact-url")


def scan_result_to_dict(result: ScanResult, purls: List[str]) -> Dict[str, Any]:
    return {
        "scanner": {"name": result.scanner_name, "version": result.scanner_version},
        "purls": purls,
        "summary": result.summary.to_dict(),
    }


def _emit(data: Dict[str, Any], output: Optional[str], as_json: bool) -> None:
    text = json.dumps(data, indent=2)
    if output:
        Path(output).write_text(text + "\n")
        logger.info(f"Wrote scan summary to {output}")
    if as_json:
        click.echo(text)


@click.group(context_settings={"help_option_names": ["-h", "--help"]})
@click.version_option(PACKAGE_VERSION, prog_name="dos-scanner")
@click.option("--url", envvar="DOS_URL", default=DEFAULT_SERVER_URL, show_default=True, help="DOS API base URL.")
@click.option("--token", envvar="DOS_TOKEN", default=None, help="DOS API bearer token.")
@click.option(
    "--poll-interval",
    envvar="DOS_POLL_INTERVAL",
    type=int,
    default=DEFAULT_POLL_INTERVAL,
    show_default=True,
    help="Seconds between two job state requests.",
)
@click.option(
    "--timeout",
    envvar="DOS_TIMEOUT",
    type=int,
    default=DEFAULT_REST_TIMEOUT,
    show_default=True,
    help="Timeout of DOS API requests in seconds.",
)
@click.option(
    "--poll-timeout",
    envvar="DOS_POLL_TIMEOUT",
    type=int,
    default=None,
    help="Give up waiting for a scan job after this many seconds.",
)
@click.option(
    "--fetch-concluded/--no-fetch-concluded",
    envvar="DOS_FETCH_CONCLUDED",
    default=False,
    show_default=True,
    help="Use license conclusions as detected licenses where they exist.",
)
@click.option(
    "--frontend-url",
    envvar="DOS_FRONTEND_URL",
    default=DEFAULT_FRONTEND_URL,
    show_default=True,
    help="URL of the DOS package curation front-end.",
)
@click.option(
    "--log-level",
    envvar="LOG_LEVEL",
    type=click.Choice(LOG_LEVELS, case_sensitive=False),
    default="INFO",
    show_default=True,
)
@click.pass_context
def cli(
    ctx: click.Context,
    url: str,
    token: Optional[str],
    poll_interval: int,
    timeout: int,
    poll_timeout: Optional[int],
    fetch_concluded: bool,
    frontend_url: str,
    log_level: str,
) -> None:
    """Scan package source code for licenses and copyrights with a DOS backend."""
    set_log_level(log_level)
    initialize_sentry()
    ctx.obj = {
        "url": url,
        "token": token,
        "poll_interval": poll_interval,
        "timeout": timeout,
        "poll_timeout": poll_timeout,
        "fetch_concluded": fetch_concluded,
        "frontend_url": frontend_url,
    }


@cli.command("scan")
@click.option("--purl", "purls", multiple=True, required=True, help="Package URL to scan (repeatable).")
@click.option("--vcs-url", default=None, help="Repository the source code is checked out from.")
@click.option("--vcs-type", default="git", show_default=True, help="Type of the repository.")
@click.option("--revision", default=None, help="Resolved revision of the repository checkout.")
@click.option("--vcs-path", default="", help="Path of the packages inside the repository.")
@click.option("--artifact-url", default=None, help="URL of a source artifact to scan instead of a repository.")
@click.option("--artifact-hash", default="", help="Expected hash of the source artifact.")
@click.option("--hash-algorithm", default="sha1", show_default=True, help="Algorithm of --artifact-hash.")
@click.option("--output", "-o", type=click.Path(dir_okay=False), default=None, help="Write the summary as JSON.")
@click.option("--json", "as_json", is_flag=True, help="Print the summary as JSON instead of tables.")
@click.pass_context
def scan(
    ctx: click.Context,
    purls: List[str],
    vcs_url: Optional[str],
    vcs_type: str,
    revision: Optional[str],
    vcs_path: str,
    artifact_url: Optional[str],
    artifact_hash: str,
    hash_algorithm: str,
    output: Optional[str],
    as_json: bool,
) -> None:
    """Scan packages that share one source provenance, uploading the source code if needed."""
    config = build_config(ctx.obj)
    provenance = build_provenance(vcs_url, vcs_type, revision, vcs_path, artifact_url, artifact_hash, hash_algorithm)

    vcs = provenance.vcs_info if isinstance(provenance, RepositoryProvenance) else None
    try:
        packages = [package_from_purl(purl, vcs=vcs) for purl in purls]
    except ValueError as e:
        raise click.BadParameter(str(e), param_hint="--purl")

    scanner = DosScanner(config)
    try:
        result = scanner.scan_package(provenance, packages)
    finally:
        scanner.client.close()

    if not as_json:
        print_scan_summary(result.summary, title=", ".join(purls))
    _emit(scan_result_to_dict(result, get_dos_purls(packages, provenance)), output, as_json)

    if result.summary.has_errors:
        if not as_json:
            print_final_failure("Scan finished with errors")
        sys.exit(1)


@cli.command("results")
@click.option("--purl", "purls", multiple=True, required=True, help="DOS package URL to look up (repeatable).")
@click.option("--output", "-o", type=click.Path(dir_okay=False), default=None, help="Write the summary as JSON.")
@click.option("--json", "as_json", is_flag=True, help="Print the summary as JSON instead of tables.")
@click.pass_context
def results(ctx: click.Context, purls: List[str], output: Optional[str], as_json: bool) -> None:
    """Show existing scan results without starting a scan."""
    config = build_config(ctx.obj)
    start_time = utc_now()

    with DosClient(config) as client:
        response = client.get_scan_results(list(purls), config.fetch_concluded)

    if response is None:
        raise click.ClickException("Could not request scan results from DOS API")

    if response.status != ScanStatus.READY:
        message = f"Scan status: {response.state.status}"
        if response.state.job_id:
            message += f" (job {response.state.job_id})"
        if as_json:
            click.echo(json.dumps({"purls": list(purls), "status": response.state.status}, indent=2))
        else:
            console.print(message)
        return

    summary = generate_summary(start_time, utc_now(), response.results)
    if not as_json:
        print_scan_summary(summary, title=", ".join(purls))
    _emit({"purls": list(purls), "status": response.state.status, "summary": summary.to_dict()}, output, as_json)


def main() -> None:
    """Entry point for the dos-scanner console script."""
    cli()


if __name__ == "__main__":
    main()
