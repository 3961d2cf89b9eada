"""Chart annotation management.

``desired_annotations`` computes what a package's charts should carry without
touching anything; ``apply_annotations`` writes a desired set onto a chart and
reports whether anything changed.
"""

from __future__ import annotations

from typing import Dict, Mapping

from constants import Annotations, Constants
from .models import ChartMetadata


def desired_annotations(package, metadata: ChartMetadata) -> Dict[str, str]:
    """Annotations a chart of ``package`` must carry.

    Args:
        package: The PackageWrapper the chart belongs to.
        metadata: The chart's metadata, consulted for its own kubeVersion.
    """
    config = package.config
    annotations: Dict[str, str] = {}

    if config.auto_install:
        annotations[Annotations.AUTO_INSTALL] = config.auto_install
    if config.experimental:
        annotations[Annotations.EXPERIMENTAL] = "true"
    if config.hidden:
        annotations[Annotations.HIDDEN] = "true"

    annotations[Annotations.CERTIFIED] = Constants.CERTIFIED_VALUE
    annotations[Annotations.DISPLAY_NAME] = package.display_name
    annotations[Annotations.RELEASE_NAME] = config.release_name or package.name

    if config.namespace:
        annotations[Annotations.NAMESPACE] = config.namespace

    override_kube_version = config.chart_metadata.get("kubeVersion")
    if override_kube_version:
        annotations[Annotations.KUBE_VERSION] = str(override_kube_version)
    elif metadata.kube_version:
        annotations[Annotations.KUBE_VERSION] = metadata.kube_version

    return annotations


def annotate_chart(metadata: ChartMetadata, key: str, value: str, overwrite: bool = True) -> bool:
    """Set one annotation. Returns True if the chart changed."""
    current = metadata.get_annotation(key)
    if current is not None and (current == value or not overwrite):
        return False
    metadata.set_annotation(key, value)
    return True


def deannotate_chart(metadata: ChartMetadata, key: str, value: str = "") -> bool:
    """Remove an annotation, only if it holds ``value`` when one is given.

    Returns True if the chart changed.
    """
    current = metadata.get_annotation(key)
    if current is None or (value and current != value):
        return False
    metadata.remove_annotation(key)
    return True


def apply_annotations(metadata: ChartMetadata, annotations: Mapping[str, str], overwrite: bool = True) -> bool:
    """Apply every annotation in ``annotations``; returns True if any changed."""
    changed = False
    for key, value in annotations.items():
        if annotate_chart(metadata, key, value, overwrite):
            changed = True
    return changed


def is_reserved(key: str) -> bool:
    """True for annotation keys managed by chartsync itself."""
    return key.startswith(Constants.RESERVED_ANNOTATION_PREFIX)
