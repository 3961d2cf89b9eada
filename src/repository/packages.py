"""Package configuration: ``packages/<vendor>/<name>/upstream.yaml`` and overlays.

A package is configuration that refers to an upstream Helm chart plus any
local modifications applied while integrating it into the repository.
"""
from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml

from constants import Constants
from common.errors import ConfigError, MalformedVersionError
from versioning.models import FetchMode, TrackedLine
from versioning.parser import parse_tracked_line

logger = logging.getLogger(__name__)


@dataclass
class PackageConfig:
    """Parsed upstream.yaml."""

    helm_repo: Optional[str] = None
    helm_chart: Optional[str] = None
    url: Optional[str] = None
    git_repo: Optional[str] = None
    fetch: FetchMode = FetchMode.LATEST
    track_versions: List[TrackedLine] = field(default_factory=list)
    chart_metadata: Dict[str, Any] = field(default_factory=dict)
    auto_install: Optional[str] = None
    experimental: bool = False
    hidden: bool = False
    display_name: Optional[str] = None
    namespace: Optional[str] = None
    release_name: Optional[str] = None
    package_version: Optional[int] = None
    remote_dependencies: bool = False
    vendor: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any], source: str = "upstream.yaml") -> "PackageConfig":
        """Build a PackageConfig from decoded YAML.

        Raises:
            ConfigError: On unknown fetch modes, bad tracked lines or wrong types.
        """
        if not isinstance(data, dict):
            raise ConfigError(f"{source}: expected a mapping at the top level")

        tracked: List[TrackedLine] = []
        raw_tracked = data.get("TrackVersions") or []
        if not isinstance(raw_tracked, list):
            raise ConfigError(f"{source}: TrackVersions must be a list")
        for entry in raw_tracked:
            if isinstance(entry, float):
                logger.warning("%s: TrackVersions entry %r is a number; quote it to keep trailing zeros", source, entry)
            try:
                tracked.append(parse_tracked_line(entry))
            except MalformedVersionError as exc:
                raise ConfigError(f"{source}: invalid TrackVersions entry: {exc}") from exc

        chart_metadata = data.get("ChartMetadata") or {}
        if not isinstance(chart_metadata, dict):
            raise ConfigError(f"{source}: ChartMetadata must be a mapping")

        package_version = data.get("PackageVersion")
        if package_version is not None:
            if isinstance(package_version, bool) or not isinstance(package_version, int) or package_version < 0:
                raise ConfigError(f"{source}: PackageVersion must be a non-negative integer")
            package_version = package_version or None

        config = cls(
            helm_repo=_opt_str(data.get("HelmRepo")),
            helm_chart=_opt_str(data.get("HelmChart")),
            url=_opt_str(data.get("URL")),
            git_repo=_opt_str(data.get("GitRepo")),
            fetch=FetchMode.from_config(data.get("Fetch")),
            track_versions=tracked,
            chart_metadata=chart_metadata,
            auto_install=_opt_str(data.get("AutoInstall")),
            experimental=bool(data.get("Experimental", False)),
            hidden=bool(data.get("Hidden", False)),
            display_name=_opt_str(data.get("DisplayName")),
            namespace=_opt_str(data.get("Namespace")),
            release_name=_opt_str(data.get("ReleaseName")),
            package_version=package_version,
            remote_dependencies=bool(data.get("RemoteDependencies", False)),
            vendor=_opt_str(data.get("Vendor")),
        )
        if not (config.helm_repo or config.url or config.git_repo):
            raise ConfigError(f"{source}: one of HelmRepo, URL or GitRepo is required")
        if config.helm_repo and not config.helm_chart:
            raise ConfigError(f"{source}: HelmChart is required with HelmRepo")
        return config


def _opt_str(value: Any) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def load_package_config(package_dir: Path) -> PackageConfig:
    """Read ``upstream.yaml`` from ``package_dir``.

    Raises:
        ConfigError: If the file is missing, unreadable or invalid.
    """
    path = Path(package_dir) / Constants.UPSTREAM_FILE
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f)
    except OSError as exc:
        raise ConfigError(f"failed to read {path}: {exc}") from exc
    except yaml.YAMLError as exc:
        raise ConfigError(f"failed to parse {path}: {exc}") from exc
    return PackageConfig.from_dict(data or {}, str(path))


@dataclass
class PackageWrapper:
    """One package: its location, parsed config and derived names."""

    name: str
    parsed_vendor: str
    path: Path
    config: PackageConfig

    @property
    def vendor(self) -> str:
        """User-facing vendor name."""
        return self.config.vendor or self.parsed_vendor

    @property
    def display_name(self) -> str:
        """User-facing chart name."""
        return self.config.display_name or self.name

    @property
    def full_name(self) -> str:
        return f"{self.parsed_vendor}/{self.name}"

    @property
    def upstream_chart_name(self) -> str:
        return self.config.helm_chart or self.name

    def overlay_files(self) -> Dict[str, bytes]:
        """Return overlay files keyed by path relative to the chart root.

        A missing overlay directory yields an empty mapping.

        Raises:
            ConfigError: If an overlay file cannot be read.
        """
        overlay_dir = self.path / Constants.OVERLAY_DIR
        overlay: Dict[str, bytes] = {}
        if not overlay_dir.is_dir():
            return overlay
        for dirpath, dirnames, filenames in os.walk(overlay_dir):
            dirnames.sort()
            for filename in sorted(filenames):
                full = Path(dirpath) / filename
                relative = full.relative_to(overlay_dir).as_posix()
                try:
                    overlay[relative] = full.read_bytes()
                except OSError as exc:
                    raise ConfigError(f"failed to read overlay file {full}: {exc}") from exc
        return overlay


def list_package_wrappers(repo_root: Path, current_package: Optional[str] = None) -> List[PackageWrapper]:
    """Discover packages under ``<repo_root>/packages``.

    With ``current_package`` (``<vendor>/<name>``) exactly that package is
    returned, or ConfigError is raised when it does not exist.
    """
    packages_dir = Path(repo_root) / Constants.PACKAGES_DIR
    if current_package:
        parts = current_package.strip("/").split("/")
        if len(parts) != 2 or not all(parts):
            raise ConfigError(f"package {current_package!r} must be in <vendor>/<name> format")
        candidate = packages_dir / parts[0] / parts[1]
        if not (candidate / Constants.UPSTREAM_FILE).is_file():
            raise ConfigError(f"failed to find package {current_package!r}")
        matches = [candidate]
    else:
        matches = sorted(p.parent for p in packages_dir.glob(f"*/*/{Constants.UPSTREAM_FILE}"))

    wrappers = []
    for match in matches:
        wrappers.append(
            PackageWrapper(
                name=match.name,
                parsed_vendor=match.parent.name,
                path=match,
                config=load_package_config(match),
            )
        )
    return wrappers
