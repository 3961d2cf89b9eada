"""CLI handlers for the featured and hidden annotations."""

from __future__ import annotations

import logging
from typing import Dict, List

from constants import Annotations, Constants, ExitCodes
from repository.index import get_by_annotation, write_index
from repository.packages import list_package_wrappers
from updater import annotate

logger = logging.getLogger(__name__)


def featured_positions(repo_root) -> Dict[int, List[str]]:
    """Map each featured position to the charts holding it, from the index."""
    positions: Dict[int, List[str]] = {}
    for chart_name, entries in get_by_annotation(repo_root, Annotations.FEATURED).items():
        raw = entries[0]["annotations"][Annotations.FEATURED]
        try:
            position = int(raw)
        except (TypeError, ValueError):
            logger.error("%s has invalid featured value %r", chart_name, raw)
            continue
        positions.setdefault(position, []).append(chart_name)
    return positions


def run_feature_list(args, config) -> int:
    positions = featured_positions(config.repo_root)
    conflict = False
    for position in sorted(positions):
        names = sorted(positions[position])
        if len(names) > 1:
            conflict = True
        print(f"{position}: {', '.join(names)}")
    if conflict:
        logger.error("Multiple charts given same featured index")
        return ExitCodes.EXIT_WARNINGS.value
    return ExitCodes.SUCCESS.value


def run_feature_add(args, config) -> int:
    if not 1 <= args.position <= Constants.FEATURED_MAX:
        logger.error("featured number must be between 1 and %d", Constants.FEATURED_MAX)
        return ExitCodes.USAGE_ERROR.value

    package = list_package_wrappers(config.repo_root, args.package_name)[0]
    value = str(args.position)
    holders = get_by_annotation(config.repo_root, Annotations.FEATURED, value)
    if holders:
        for chart_name in sorted(holders):
            logger.error("%s already featured at index %s", chart_name, value)
        return ExitCodes.USAGE_ERROR.value

    annotate(config, package, Annotations.FEATURED, value, only_latest=True)
    write_index(config)
    return ExitCodes.SUCCESS.value


def run_feature_remove(args, config) -> int:
    package = list_package_wrappers(config.repo_root, args.package_name)[0]
    annotate(config, package, Annotations.FEATURED, remove=True)
    write_index(config)
    return ExitCodes.SUCCESS.value


def run_hide(args, config) -> int:
    """Set the hidden annotation on every stored version of a package."""
    package = list_package_wrappers(config.repo_root, args.package_name)[0]
    annotate(config, package, Annotations.HIDDEN, "true")
    write_index(config)
    return ExitCodes.SUCCESS.value
