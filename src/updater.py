"""Update pipeline: discover packages, select versions, fetch, reconcile, write.

Each package is processed on its own; a failure skips that package and is
reported, and the run as a whole only fails when every package that needed
work was skipped.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Dict, List, Optional

from common.errors import AllPackagesFailedError, ChartSyncError, ReadError
from common.logging_utils import Timer, extra_context, is_debug_enabled
from charts.annotations import annotate_chart, deannotate_chart
from charts.icons import IconStore
from charts.reconcile import integrate_charts, merge_chart_sets
from charts.storage import (
    ChartStorage,
    FilesystemStorage,
    charts_dir,
    load_existing_charts,
    sort_newest_first,
    write_charts,
)
from registry.helm import ChartFetcher, HelmRepoFetcher, parse_timestamp
from repository.index import load_index, load_stored_versions, save_index, write_index
from repository.packages import PackageWrapper, list_package_wrappers
from versioning.filter import select_versions_to_fetch
from versioning.models import UpstreamVersion

logger = logging.getLogger(__name__)


@dataclass
class UpdateReport:
    """Outcome of one update run."""

    updated: List[str] = field(default_factory=list)
    up_to_date: List[str] = field(default_factory=list)
    skipped: Dict[str, str] = field(default_factory=dict)
    modified_paths: List[Path] = field(default_factory=list)

    @property
    def changed(self) -> bool:
        return bool(self.updated)


def list_packages(config) -> List[PackageWrapper]:
    """Packages of the repository, or only ``config.package`` when set."""
    return list_package_wrappers(config.repo_root, config.package)


def populate(package: PackageWrapper, fetcher: ChartFetcher, repo_root: Path) -> List[UpstreamVersion]:
    """Return the upstream versions of ``package`` that must be fetched.

    Raises:
        FetchError: If upstream cannot be listed.
        EmptyUpstreamError: If upstream has no stable versions.
        ReadError: If the repository index cannot be read.
    """
    upstream = fetcher.list_versions(package)
    if upstream and upstream[0].name != package.name:
        logger.warning("upstream name %r does not match package name %r", upstream[0].name, package.name)

    stored = load_stored_versions(repo_root, package.name)
    selected = select_versions_to_fetch(
        upstream, stored, package.config.track_versions, package.config.fetch,
        package_name=package.full_name,
    )
    if not selected:
        logger.info("%s is up-to-date", package.full_name)
    for version in selected:
        logger.info(
            "Package: %s Version: %s URL: %s",
            package.full_name, version.version, version.source_urls[0] if version.source_urls else "-",
        )
    return selected


def apply_updates(
    package: PackageWrapper,
    versions: List[UpstreamVersion],
    fetcher: ChartFetcher,
    storage: ChartStorage,
    icons: IconStore,
    repo_root: Path,
) -> List[Path]:
    """Fetch ``versions`` of ``package``, reconcile them with stored charts and write.

    Fetched charts are reconciled oldest first so the newest one inherits the
    featured annotation. Returns the storage paths that changed.
    """
    logger.debug("Applying updates for package %s", package.full_name)
    existing = load_existing_charts(storage, repo_root, package.parsed_vendor, package.name)

    fetched = [fetcher.fetch_chart(package, version) for version in versions]
    fetched = list(reversed(sort_newest_first(fetched)))

    integrate_charts(package, existing, fetched, package.overlay_files(), icons)

    merged = merge_chart_sets(existing, fetched)
    return write_charts(
        storage, repo_root, package.parsed_vendor, package.name, sort_newest_first(merged.values())
    )


def generate_changes(
    config,
    fetcher: Optional[ChartFetcher] = None,
    storage: Optional[ChartStorage] = None,
    icons: Optional[IconStore] = None,
) -> UpdateReport:
    """Bring every selected package up to date and regenerate the index.

    A package whose listing or update fails is skipped with its reason. The
    run fails only when every package that needed an update failed, or when
    no package could be processed at all; a package whose upstream cannot be
    listed in an otherwise healthy repository does not fail the run.

    Raises:
        AllPackagesFailedError: If packages needed an update and none
            succeeded, or if every package failed.
        ReadError, WriteError: If the index cannot be regenerated.
    """
    fetcher = fetcher or HelmRepoFetcher()
    storage = storage or FilesystemStorage()
    icons = icons or IconStore(config.repo_root)
    report = UpdateReport()
    needing_update = 0

    for package in list_packages(config):
        with Timer() as timer:
            try:
                versions = populate(package, fetcher, config.repo_root)
            except ChartSyncError as exc:
                logger.error("failed to populate %s: %s", package.full_name, exc)
                report.skipped[package.full_name] = str(exc)
                continue
            if not versions:
                report.up_to_date.append(package.full_name)
                continue
            needing_update += 1
            try:
                paths = apply_updates(package, versions, fetcher, storage, icons, config.repo_root)
            except ChartSyncError as exc:
                logger.error("failed to update %s: %s", package.full_name, exc)
                report.skipped[package.full_name] = str(exc)
                continue
        report.updated.append(package.full_name)
        report.modified_paths.extend(paths)
        if is_debug_enabled(logger):
            logger.debug(
                "Package updated",
                extra=extra_context(
                    event="package_update",
                    component="updater",
                    action="apply_updates",
                    target=package.full_name,
                    outcome="updated",
                    duration_ms=timer.duration_ms(),
                    count=len(paths)
                )
            )

    if report.skipped:
        logger.error("Skipped due to error: %s", ", ".join(sorted(report.skipped)))
        if not report.updated and (needing_update or not report.up_to_date):
            raise AllPackagesFailedError(report.skipped)

    if report.changed:
        write_index(config, icons)
    return report


def annotate(
    config,
    package: PackageWrapper,
    annotation: str,
    value: str = "",
    remove: bool = False,
    only_latest: bool = False,
    storage: Optional[ChartStorage] = None,
) -> List[Path]:
    """Set or remove ``annotation`` on the stored charts of ``package``.

    Only charts whose annotation actually changes are rewritten.

    Raises:
        ReadError: If the package has no stored charts.
    """
    storage = storage or FilesystemStorage()
    existing = load_existing_charts(storage, config.repo_root, package.parsed_vendor, package.name)
    if not existing:
        raise ReadError(f"found no stored charts for package {package.full_name!r}")

    targets = existing[:1] if only_latest else existing
    for wrapper in targets:
        if remove:
            wrapper.modified = deannotate_chart(wrapper.metadata, annotation, value)
        else:
            wrapper.modified = annotate_chart(wrapper.metadata, annotation, value, overwrite=True)
    return write_charts(storage, config.repo_root, package.parsed_vendor, package.name, existing)


def ensure_icons(config, icons: Optional[IconStore] = None, storage: Optional[ChartStorage] = None) -> List[str]:
    """Make sure every package has a downloaded icon, then regenerate the index.

    The icon of each package's newest stored chart is downloaded when the
    package has none yet. Failures are logged per package. Returns the
    packages that still lack an icon.
    """
    icons = icons or IconStore(config.repo_root)
    storage = storage or FilesystemStorage()
    missing = []
    for package in list_packages(config):
        if icons.downloaded_icon_path(package.name):
            continue
        try:
            existing = load_existing_charts(storage, config.repo_root, package.parsed_vendor, package.name)
            if not existing:
                raise ReadError(f"found no stored charts for package {package.full_name!r}")
            icons.ensure_local(existing[0].metadata.icon, package.name)
        except ChartSyncError as exc:
            logger.error("failed to ensure icon for %s: %s", package.full_name, exc)
            missing.append(package.full_name)
    write_index(config, icons)
    return missing


def cull(
    config,
    chart_name: str,
    days: int,
    now: Optional[datetime] = None,
    storage: Optional[ChartStorage] = None,
) -> List[str]:
    """Remove versions of ``chart_name`` created ``days`` or more days ago.

    A version survives only if its index ``created`` time is strictly after
    the cutoff; versions without a readable timestamp are removed. Archives
    and unpacked directories of removed versions are deleted and the chart's
    index entries are rewritten; the rest of the index is left as it is.
    Returns the removed versions.

    Raises:
        ReadError: If there is no index or the chart is not in it.
        WriteError: If a file cannot be removed or the index cannot be written.
    """
    storage = storage or FilesystemStorage()
    repo_root = Path(config.repo_root)
    index = load_index(repo_root)
    if index is None:
        raise ReadError(f"no index file in {repo_root}")
    entries = index["entries"].get(chart_name)
    if entries is None:
        raise ReadError(f"chart {chart_name!r} not present in index file")

    cutoff = (now or datetime.now(timezone.utc)) - timedelta(days=days)
    kept, culled = [], []
    for entry in entries:
        created = parse_timestamp(entry.get("created"))
        if created is not None and created > cutoff:
            kept.append(entry)
        else:
            culled.append(entry)

    for entry in culled:
        version = str(entry.get("version"))
        for url in entry.get("urls") or []:
            if "://" in str(url):
                logger.warning("not removing remote archive %s of %s %s", url, chart_name, version)
                continue
            archive_path = repo_root / str(url)
            storage.remove_all(archive_path)
            storage.remove_all(charts_dir(repo_root, archive_path.parent.name, chart_name) / version)
        logger.info("Culled %s %s (created %s)", chart_name, version, entry.get("created") or "unknown")

    index["entries"][chart_name] = kept
    save_index(repo_root, index)
    return [str(e.get("version")) for e in culled]
