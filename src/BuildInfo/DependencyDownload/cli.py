# === NAVMAP v1 ===
# {
#   "module": "BuildInfo.DependencyDownload.cli",
#   "purpose": "Typer command-line interface for pulling, pruning, and checksumming dependencies",
#   "sections": [
#     {"id": "setup", "name": "App & Helpers", "anchor": "IMP", "kind": "infra"},
#     {"id": "commands", "name": "CLI Commands", "anchor": "CMDS", "kind": "commands"}
#   ]
# }
# === /NAVMAP ===

"""Command line entry point ``depfetch``.

``pull`` reconciles the working directory of a configuration file with its
artifact list, records the outcome in a manifest, and prunes files the previous
manifest listed that are no longer resolved.  ``prune`` runs only that last
step from two manifests.  Exit code 1 reports artifact or I/O failures, exit
code 2 configuration problems.
"""

from __future__ import annotations

import json
import os
from pathlib import Path
from typing import Any, Dict, NoReturn, Optional, Tuple

import typer
from rich.console import Console
from rich.table import Table

from . import __version__
from .checksums import MD5_ALGORITHM_NAME, SHA1_ALGORITHM_NAME, calculate_checksums
from .engine import DependenciesDownloader, remove_unused_artifacts
from .errors import ConfigurationError, DependencyDownloadError
from .logging_utils import setup_logging, teardown_logging
from .manifests import (
    DEFAULT_MANIFEST_NAME,
    load_manifest_paths,
    result_to_dict,
    write_manifest,
)
from .models import CleanupReport, DownloadBatchResult
from .remote import ArtifactoryDependenciesClient
from .settings import ResolvedConfig, build_resolved_config, load_raw_yaml
from .storage import LocalFileStore

__all__ = ["app"]

# ============================================================================
# SETUP (IMP)
# ============================================================================

app = typer.Typer(
    name="depfetch",
    help="Download, verify, and prune resolved dependencies",
    no_args_is_help=True,
)

_console = Console()


def _fail(exc: Exception, code: int) -> NoReturn:
    typer.echo(f"Error: {exc}", err=True)
    raise typer.Exit(code)


def _build_client(config: ResolvedConfig) -> ArtifactoryDependenciesClient:
    """Create the HTTP client for the configured server."""

    server = config.defaults.artifactory
    download = config.defaults.download
    if not server.url:
        raise ConfigurationError(
            "No server URL configured; pass --url or set DEPFETCH_ARTIFACTORY_URL"
        )
    return ArtifactoryDependenciesClient(
        server.url,
        access_token=server.access_token.get_secret_value() if server.access_token else None,
        username=server.username,
        password=server.password.get_secret_value() if server.password else None,
        timeout_sec=download.timeout_sec,
        connect_timeout_sec=download.connect_timeout_sec,
        chunk_size=download.chunk_size_bytes,
    )


def _cleanup_to_dict(report: Optional[CleanupReport]) -> Optional[Dict[str, Any]]:
    if report is None:
        return None
    return {
        "deleted": [str(path) for path in report.deleted],
        "kept": [str(path) for path in report.kept],
        "failed": [{"path": str(path), "error": str(error)} for path, error in report.failed],
    }


def _print_cleanup(report: CleanupReport) -> None:
    for path in report.deleted:
        _console.print(f"[yellow]deleted[/yellow] {path}")
    for path, error in report.failed:
        _console.print(f"[red]not deleted[/red] {path}: {error}")
    _console.print(
        f"Cleanup: {len(report.deleted)} deleted, {len(report.kept)} kept, "
        f"{len(report.failed)} failed"
    )


def _print_result(result: DownloadBatchResult, report: Optional[CleanupReport]) -> None:
    table = Table(title="Dependencies")
    table.add_column("Artifact")
    table.add_column("Status")
    table.add_column("Local path")
    for record in result.records:
        style = "green" if record.skipped else "cyan"
        table.add_row(
            record.artifact.coordinate,
            f"[{style}]{record.status}[/{style}]",
            str(record.local_path),
        )
    for failure in result.failures:
        table.add_row(failure.artifact.coordinate, "[red]failed[/red]", str(failure.error))
    _console.print(table)
    _console.print(
        f"{result.fetched} downloaded, {result.skipped} cached, {len(result.failures)} failed"
    )
    if report is not None:
        _print_cleanup(report)


def _run_pull(
    config: ResolvedConfig, manifest_path: Path, prune: bool
) -> Tuple[DownloadBatchResult, Optional[CleanupReport]]:
    previous = load_manifest_paths(manifest_path)
    download = config.defaults.download
    with _build_client(config) as client:
        downloader = DependenciesDownloader(
            client,
            config.working_directory,
            store=LocalFileStore(download.chunk_size_bytes),
            max_workers=download.concurrent_downloads,
        )
        result = downloader.download(config.artifacts)
    write_manifest(manifest_path, result, working_directory=config.working_directory)

    report: Optional[CleanupReport] = None
    # A partial resolution must not prune files that may still be needed.
    if prune and result.ok and previous:
        resolved = result.resolved_paths | {os.path.normpath(manifest_path)}
        report = downloader.remove_unused_artifacts(resolved, previous)
    return result, report


# ============================================================================
# COMMANDS (CMDS)
# ============================================================================


@app.command()
def pull(
    config_path: Path = typer.Argument(..., help="YAML configuration listing the artifacts"),
    working_dir: Optional[Path] = typer.Option(
        None, "--working-dir", "-w", help="Override the configured working directory"
    ),
    url: Optional[str] = typer.Option(None, "--url", help="Server root URL"),
    repo: Optional[str] = typer.Option(
        None, "--repo", help="Repository used for artifacts that do not name one"
    ),
    workers: Optional[int] = typer.Option(
        None, "--workers", "-j", help="Number of artifacts processed concurrently"
    ),
    manifest: Optional[Path] = typer.Option(
        None, "--manifest", help=f"Manifest path (default: <working dir>/{DEFAULT_MANIFEST_NAME})"
    ),
    prune: bool = typer.Option(
        True, "--prune/--no-prune", help="Delete files of the previous run that are no longer resolved"
    ),
    json_output: bool = typer.Option(False, "--json", help="Emit a JSON summary"),
    log_level: Optional[str] = typer.Option(None, "--log-level", help="DEBUG, INFO, WARNING or ERROR"),
    log_dir: Optional[Path] = typer.Option(None, "--log-dir", help="Directory for JSON log files"),
) -> None:
    """Download missing or changed dependencies and prune stale ones.

    Example:
        $ depfetch pull deps.yaml --url https://repo.example.com/artifactory --repo libs-release
    """

    try:
        raw = load_raw_yaml(config_path)
        if working_dir is not None:
            raw["working_directory"] = os.path.abspath(working_dir)
        config = build_resolved_config(
            raw,
            base_dir=config_path.resolve().parent,
            overrides={
                "artifactory": {"url": url, "repository": repo},
                "download": {"concurrent_downloads": workers},
                "logging": {"level": log_level},
            },
        )
    except ConfigurationError as exc:
        _fail(exc, 2)

    if manifest is not None:
        manifest_path = Path(os.path.abspath(manifest))
    else:
        manifest_path = config.working_directory / DEFAULT_MANIFEST_NAME

    setup_logging(config.defaults.logging, log_dir=log_dir)
    try:
        result, report = _run_pull(config, manifest_path, prune)
    except ConfigurationError as exc:
        _fail(exc, 2)
    except DependencyDownloadError as exc:
        _fail(exc, 1)
    finally:
        teardown_logging()

    if json_output:
        payload = result_to_dict(result, working_directory=config.working_directory)
        payload["manifest"] = str(manifest_path)
        payload["cleanup"] = _cleanup_to_dict(report)
        typer.echo(json.dumps(payload, indent=2))
    else:
        _print_result(result, report)

    if not result.ok or (report is not None and not report.ok):
        raise typer.Exit(1)


@app.command("prune")
def prune_command(
    manifest: Path = typer.Argument(..., help="Manifest of the current resolution"),
    candidates: Path = typer.Option(
        ..., "--candidates", help="Manifest of the previous resolution"
    ),
    json_output: bool = typer.Option(False, "--json", help="Emit a JSON summary"),
    log_dir: Optional[Path] = typer.Option(None, "--log-dir", help="Directory for JSON log files"),
) -> None:
    """Delete files listed in PREVIOUS whose directories hold no resolved file of MANIFEST.

    Example:
        $ depfetch prune build/.depfetch-manifest.json --candidates old-manifest.json
    """

    try:
        if not manifest.exists():
            raise ConfigurationError(f"Manifest not found: {manifest}")
        resolved = load_manifest_paths(manifest) | {os.path.abspath(manifest)}
        previous = load_manifest_paths(candidates)
    except ConfigurationError as exc:
        _fail(exc, 2)
    except DependencyDownloadError as exc:
        _fail(exc, 1)

    setup_logging(log_dir=log_dir)
    try:
        report = remove_unused_artifacts(resolved, previous)
    finally:
        teardown_logging()

    if json_output:
        typer.echo(json.dumps(_cleanup_to_dict(report), indent=2))
    else:
        _print_cleanup(report)
    if not report.ok:
        raise typer.Exit(1)


@app.command()
def checksum(
    file: Path = typer.Argument(..., help="File to digest"),
    json_output: bool = typer.Option(False, "--json", help="Emit a JSON object"),
) -> None:
    """Print the MD5 and SHA1 digests of FILE."""

    try:
        digests = calculate_checksums(file, MD5_ALGORITHM_NAME, SHA1_ALGORITHM_NAME)
    except DependencyDownloadError as exc:
        _fail(exc, 1)
    if json_output:
        payload = {
            "path": str(file),
            "md5": digests[MD5_ALGORITHM_NAME],
            "sha1": digests[SHA1_ALGORITHM_NAME],
        }
        typer.echo(json.dumps(payload))
        return
    _console.print(f"MD5   {digests[MD5_ALGORITHM_NAME]}")
    _console.print(f"SHA1  {digests[SHA1_ALGORITHM_NAME]}")


@app.command()
def version() -> None:
    """Show version information."""

    typer.echo(f"depfetch {__version__}")
