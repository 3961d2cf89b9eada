"""In-memory model of a Helm chart and the modification-tracking wrapper."""

from __future__ import annotations

import copy
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional


class ChartMetadata:
    """The decoded Chart.yaml of one chart.

    Owns a copy of the document so mutations never leak into the caller's
    mapping. Unknown keys are preserved, and key order is kept for writing.
    """

    def __init__(self, data: Optional[Dict[str, Any]] = None):
        self._data: Dict[str, Any] = copy.deepcopy(dict(data or {}))

    @property
    def name(self) -> str:
        return str(self._data.get("name", ""))

    @property
    def version(self) -> str:
        return str(self._data.get("version", ""))

    @version.setter
    def version(self, value: str) -> None:
        self._data["version"] = value

    @property
    def icon(self) -> str:
        return str(self._data.get("icon") or "")

    @icon.setter
    def icon(self, value: str) -> None:
        self._data["icon"] = value

    @property
    def kube_version(self) -> str:
        return str(self._data.get("kubeVersion") or "")

    @property
    def annotations(self) -> Dict[str, str]:
        """A copy of the annotations; use set_annotation/remove_annotation to change them."""
        annotations = self._data.get("annotations")
        if not isinstance(annotations, dict):
            return {}
        return {str(k): str(v) for k, v in annotations.items() if v is not None}

    def get_annotation(self, key: str) -> Optional[str]:
        return self.annotations.get(key)

    def set_annotation(self, key: str, value: str) -> None:
        annotations = self._data.get("annotations")
        if not isinstance(annotations, dict):
            annotations = {}
            self._data["annotations"] = annotations
        annotations[key] = value

    def remove_annotation(self, key: str) -> None:
        """Remove ``key``; an emptied annotations block is dropped entirely."""
        annotations = self._data.get("annotations")
        if not isinstance(annotations, dict):
            return
        annotations.pop(key, None)
        if not annotations:
            del self._data["annotations"]

    @property
    def dependencies(self) -> List[Dict[str, Any]]:
        deps = self._data.get("dependencies")
        return deps if isinstance(deps, list) else []

    def get(self, key: str, default: Any = None) -> Any:
        return self._data.get(key, default)

    def set(self, key: str, value: Any) -> None:
        self._data[key] = copy.deepcopy(value)

    def pop(self, key: str, default: Any = None) -> Any:
        return self._data.pop(key, default)

    def to_dict(self) -> Dict[str, Any]:
        return copy.deepcopy(self._data)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, ChartMetadata):
            return NotImplemented
        return self._data == other._data

    def __repr__(self) -> str:
        return f"ChartMetadata(name={self.name!r}, version={self.version!r})"


@dataclass
class ChartFile:
    """A chart member other than Chart.yaml, relative to the chart root."""
    name: str
    data: bytes


@dataclass
class Chart:
    metadata: ChartMetadata
    files: List[ChartFile] = field(default_factory=list)
    # Raw Chart.yaml as read from storage; None once the chart is built in memory.
    raw_chart_yaml: Optional[bytes] = None

    @property
    def name(self) -> str:
        return self.metadata.name

    @property
    def version(self) -> str:
        return self.metadata.version

    def get_file(self, name: str) -> Optional[ChartFile]:
        return next((f for f in self.files if f.name == name), None)


@dataclass
class ChartWrapper:
    """A chart plus whether reconciliation changed it.

    Storage re-persists a chart only when ``modified`` is set (or nothing is
    on disk yet), which keeps untouched stored charts byte-identical.
    """
    chart: Chart
    modified: bool = False

    @property
    def name(self) -> str:
        return self.chart.name

    @property
    def version(self) -> str:
        return self.chart.version

    @property
    def metadata(self) -> ChartMetadata:
        return self.chart.metadata
