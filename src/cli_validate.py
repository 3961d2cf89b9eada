"""CLI handlers for validating the repository against reference copies."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Dict, List

from constants import Constants, ExitCodes
from common.errors import ConfigError
from cli_config import ValidateTarget, load_repository_config
from validate.compare import DirectoryComparison, artifacts_equivalent, compare_directories, drop_equivalent_archives

logger = logging.getLogger(__name__)


def _targets(args, config) -> List[ValidateTarget]:
    if args.reference:
        return [ValidateTarget(path=args.reference, skip=list(args.SKIP))]
    targets = load_repository_config(config.repo_root).validate
    if not targets:
        raise ConfigError(f"no reference given and no validate entries in {Constants.CONFIG_FILE}")
    return targets


def _resolve(path: str, repo_root: Path) -> Path:
    candidate = Path(path)
    return candidate if candidate.is_absolute() else repo_root / candidate


def _log_paths(level: int, title: str, paths: List[str]) -> None:
    if paths:
        logger.log(level, "%s:%s", title, "".join(f"\n - {p}" for p in paths))


def validate_targets(args, config) -> Dict[str, DirectoryComparison]:
    """Compare each reference tree with the repository; results keyed by reference."""
    results: Dict[str, DirectoryComparison] = {}
    for target in _targets(args, config):
        reference_root = _resolve(target.path, config.repo_root)
        if args.candidate:
            reference, candidate = reference_root, Path(args.candidate)
        elif args.reference:
            reference, candidate = reference_root, config.repo_root / Constants.ASSETS_DIR
        else:
            reference = reference_root / Constants.ASSETS_DIR
            candidate = config.repo_root / Constants.ASSETS_DIR

        if not reference.is_dir():
            logger.info("Directory '%s' not in reference. Skipping...", reference)
            continue
        comparison = compare_directories(reference, candidate, target.skip)
        results[str(reference)] = drop_equivalent_archives(comparison, reference, candidate)
    return results


def run_validate(args, config) -> int:
    """Report added, removed and modified files.

    Added files are expected (new releases) and removed ones are suspicious;
    only modified files count as drift.
    """
    total = DirectoryComparison()
    for comparison in validate_targets(args, config).values():
        total.merge(comparison)

    _log_paths(logging.INFO, "Files Added", total.added)
    _log_paths(logging.WARNING, "Files Removed", total.removed)
    if total.modified:
        _log_paths(logging.ERROR, "Files Modified", total.modified)
        return ExitCodes.DRIFT_DETECTED.value

    logger.info("Successfully validated")
    return ExitCodes.SUCCESS.value


def run_compare(args, config) -> int:
    if artifacts_equivalent(args.archive_a, args.archive_b):
        logger.info("%s and %s are equivalent", args.archive_a, args.archive_b)
        return ExitCodes.SUCCESS.value
    logger.error("%s and %s differ", args.archive_a, args.archive_b)
    return ExitCodes.DRIFT_DETECTED.value
