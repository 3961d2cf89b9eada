"""CLI handlers for the package listing and update commands."""

from __future__ import annotations

import logging

from constants import ExitCodes
from common.errors import AllPackagesFailedError
from updater import cull, ensure_icons, generate_changes, list_packages

logger = logging.getLogger(__name__)


def run_list(args, config) -> int:
    """Print ``<vendor>/<name>`` for every package, sorted."""
    for name in sorted(p.full_name for p in list_packages(config)):
        print(name)
    return ExitCodes.SUCCESS.value


def run_stage(args, config) -> int:
    """Fetch new upstream versions, write charts and regenerate the index.

    Nothing is committed; the modified paths are logged for the operator.
    """
    try:
        report = generate_changes(config)
    except AllPackagesFailedError as exc:
        for name, reason in sorted(exc.skipped.items()):
            logger.error("  %s: %s", name, reason)
        logger.error("All packages skipped. Exiting...")
        return ExitCodes.ALL_PACKAGES_FAILED.value

    if not report.changed:
        logger.info("No changes: %d package(s) up-to-date", len(report.up_to_date))
        return ExitCodes.SUCCESS.value

    logger.info("Updated %d package(s): %s", len(report.updated), ", ".join(report.updated))
    for path in report.modified_paths:
        logger.info(" - %s", path)
    for name, reason in sorted(report.skipped.items()):
        logger.error("Skipped %s: %s", name, reason)
    return ExitCodes.SUCCESS.value


def run_ensure_icons(args, config) -> int:
    missing = ensure_icons(config)
    if missing:
        logger.warning("Packages without an icon: %s", ", ".join(missing))
        return ExitCodes.EXIT_WARNINGS.value
    return ExitCodes.SUCCESS.value


def run_cull(args, config) -> int:
    """Remove old versions of one chart and rewrite its index entries."""
    if args.days < 0:
        logger.error("days must not be negative")
        return ExitCodes.USAGE_ERROR.value
    removed = cull(config, args.chart_name, args.days)
    if removed:
        logger.info("Removed %d version(s) of %s: %s", len(removed), args.chart_name, ", ".join(removed))
    else:
        logger.info("No versions of %s older than %d days", args.chart_name, args.days)
    return ExitCodes.SUCCESS.value
