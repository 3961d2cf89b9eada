"""Integration of freshly fetched charts with a package's stored charts.

New charts get the package's overlays, metadata overrides, annotations and a
local icon. Stored charts are never touched, except to move the "featured"
annotation onto the newest arrival.
"""

from __future__ import annotations

import logging
from typing import Dict, Mapping, Optional, Sequence

from constants import Annotations, Constants
from common.errors import FeaturedConflictError
from common.logging_utils import extra_context, is_debug_enabled
from versioning.parser import generate_package_version
from . import archive
from .annotations import annotate_chart, apply_annotations, deannotate_chart, desired_annotations
from .icons import FILE_SCHEME, IconLocalizer
from .models import Chart, ChartFile, ChartMetadata, ChartWrapper

logger = logging.getLogger(__name__)


def apply_overlay_files(overlay_files: Mapping[str, bytes], chart: Chart) -> None:
    """Overwrite or add each overlay file in ``chart``.

    An overlay ``Chart.yaml`` replaces the chart's metadata wholesale.
    """
    for relative_path, contents in sorted(overlay_files.items()):
        if relative_path == Constants.CHART_FILE:
            chart.metadata = ChartMetadata(archive.decode_chart_yaml(contents, f"overlay {relative_path}"))
            chart.raw_chart_yaml = None
            continue
        existing = chart.get_file(relative_path)
        if existing is not None:
            existing.data = contents
        else:
            chart.files.append(ChartFile(name=relative_path, data=contents))


def overlay_chart_metadata(chart: Chart, overrides: Mapping[str, object]) -> bool:
    """Copy each non-empty Chart.yaml override onto ``chart``; True if anything changed."""
    changed = False
    for key, value in overrides.items():
        if value in (None, "", [], {}):
            continue
        if chart.metadata.get(key) != value:
            chart.metadata.set(key, value)
            changed = True
    return changed


def localize_dependencies(chart: Chart) -> bool:
    """Point every dependency at its vendored copy under ``charts/``."""
    changed = False
    for dependency in chart.metadata.dependencies:
        if not isinstance(dependency, dict) or not dependency.get("name"):
            continue
        repository = f"file://./charts/{dependency['name']}"
        if dependency.get("repository") != repository:
            dependency["repository"] = repository
            changed = True
    return changed


def add_annotations(package, chart: Chart) -> bool:
    """Bring ``chart`` in line with ``package``'s configuration.

    Applies the desired annotation set, dependency localization and the
    package revision. Returns True if the chart changed.

    Raises:
        MalformedVersionError: If a package revision is configured and the
            chart version does not parse.
    """
    changed = False
    if not package.config.remote_dependencies:
        changed = localize_dependencies(chart) or changed

    if package.config.package_version:
        revised = generate_package_version(chart.version, package.config.package_version)
        if revised != chart.version:
            chart.metadata.version = revised
            changed = True

    annotations = desired_annotations(package, chart.metadata)
    return apply_annotations(chart.metadata, annotations) or changed


def ensure_icon(package, wrapper: ChartWrapper, icons: IconLocalizer) -> None:
    """Point the chart's icon at the package's local icon file."""
    local_path = icons.ensure_local(wrapper.metadata.icon, package.name)
    local_url = FILE_SCHEME + local_path
    if wrapper.metadata.icon != local_url:
        wrapper.metadata.icon = local_url
        wrapper.modified = True


def current_featured_value(charts: Sequence[ChartWrapper]) -> Optional[str]:
    """The featured value shared by ``charts``, or None when none is featured.

    Raises:
        FeaturedConflictError: If two charts carry different values.
    """
    featured: Optional[str] = None
    for wrapper in charts:
        value = wrapper.metadata.get_annotation(Annotations.FEATURED)
        if value is None:
            continue
        if featured is not None and featured != value:
            raise FeaturedConflictError(featured, value)
        featured = value
    return featured


def ensure_featured_annotation(existing: Sequence[ChartWrapper], fetched: Sequence[ChartWrapper]) -> None:
    """Leave the featured annotation on the last fetched chart only.

    The value comes from the stored charts, or failing that from the last
    fetched chart that arrived with one. The last chart in ``fetched`` wins
    regardless of its version, so callers must pass fetched charts oldest
    first if the newest should be featured. With nothing fetched, nothing
    changes.
    """
    if not fetched:
        return
    value = current_featured_value(existing)
    if value is None:
        value = next(
            (w.metadata.get_annotation(Annotations.FEATURED) for w in reversed(fetched)
             if w.metadata.get_annotation(Annotations.FEATURED) is not None),
            None,
        )
    if value is None:
        return

    last = fetched[-1]
    if annotate_chart(last.metadata, Annotations.FEATURED, value, overwrite=True):
        last.modified = True

    for wrapper in list(existing) + list(fetched[:-1]):
        if deannotate_chart(wrapper.metadata, Annotations.FEATURED):
            wrapper.modified = True


def integrate_charts(
    package,
    existing: Sequence[ChartWrapper],
    fetched: Sequence[ChartWrapper],
    overlay_files: Mapping[str, bytes],
    icons: IconLocalizer,
) -> None:
    """Reconcile ``fetched`` charts with ``existing`` ones in place.

    Raises:
        FeaturedConflictError: If stored charts disagree on the featured value.
        ChartSyncError: If a per-chart step fails; nothing has been written yet.
    """
    # Checked first so a conflict aborts before any fetched chart is touched.
    current_featured_value(existing)

    for wrapper in fetched:
        chart = wrapper.chart
        apply_overlay_files(overlay_files, chart)
        overlay_chart_metadata(chart, package.config.chart_metadata)
        add_annotations(package, chart)
        ensure_icon(package, wrapper, icons)
        wrapper.modified = True
        if is_debug_enabled(logger):
            logger.debug(
                "Integrated chart",
                extra=extra_context(
                    event="reconcile",
                    component="reconciler",
                    action="integrate",
                    target=f"{chart.name}-{chart.version}"
                )
            )

    ensure_featured_annotation(existing, fetched)


def merge_chart_sets(existing: Sequence[ChartWrapper], fetched: Sequence[ChartWrapper]) -> Dict[str, ChartWrapper]:
    """Combine stored and fetched charts keyed by version; fetched charts win."""
    merged: Dict[str, ChartWrapper] = {w.version: w for w in existing}
    for wrapper in fetched:
        merged[wrapper.version] = wrapper
    return merged
