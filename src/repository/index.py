"""The repository's ``index.yaml``.

The index is always regenerated from the archives under ``assets/``: the
charts' own Chart.yaml files are the authoritative metadata. The old index is
only consulted to keep ``created`` timestamps stable.
"""
from __future__ import annotations

import hashlib
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml

from constants import Constants
from common.errors import ReadError, WriteError
from charts.archive import load_archive
from charts.icons import FILE_SCHEME, IconStore
from charts.storage import sort_newest_first
from charts.models import ChartWrapper
from registry.helm import parse_timestamp
from versioning.models import StoredVersion
from versioning.parser import parse_stored_version

logger = logging.getLogger(__name__)


def _timestamp(moment: datetime) -> str:
    return moment.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%S.%fZ")


def load_index(repo_root: Path) -> Optional[Dict[str, Any]]:
    """Decode ``index.yaml``; None when the repository has none yet.

    Raises:
        ReadError: If the index exists but cannot be read or decoded.
    """
    path = Path(repo_root) / Constants.INDEX_FILE
    if not path.exists():
        return None
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f)
    except (OSError, yaml.YAMLError) as exc:
        raise ReadError(f"failed to load index file {path}: {exc}") from exc
    if not isinstance(data, dict):
        raise ReadError(f"index file {path} is not a mapping")
    data.setdefault("entries", {})
    return data


def load_stored_versions(repo_root: Path, chart_name: str) -> List[StoredVersion]:
    """StoredVersions for ``chart_name`` in index order."""
    index = load_index(repo_root)
    if index is None:
        return []
    stored = []
    for entry in (index.get("entries") or {}).get(chart_name) or []:
        if isinstance(entry, dict) and entry.get("version"):
            stored.append(parse_stored_version(str(entry["version"]), parse_timestamp(entry.get("created"))))
    return stored


def get_by_annotation(repo_root: Path, annotation: str, value: str = "") -> Dict[str, List[Dict[str, Any]]]:
    """Index entries carrying ``annotation``, keyed by chart name.

    With ``value`` only entries whose annotation equals it are returned.
    """
    index = load_index(repo_root) or {"entries": {}}
    matched: Dict[str, List[Dict[str, Any]]] = {}
    for chart_name, entries in (index.get("entries") or {}).items():
        for entry in entries or []:
            annotations = (entry or {}).get("annotations") or {}
            if annotation not in annotations:
                continue
            if value and str(annotations[annotation]) != value:
                continue
            matched.setdefault(chart_name, []).append(entry)
    return matched


def _digest(path: Path) -> str:
    return hashlib.sha256(path.read_bytes()).hexdigest()


def build_index(repo_root: Path, old_index: Optional[Dict[str, Any]], icons: IconStore, update_generated: bool) -> Dict[str, Any]:
    """Build the index document for every archive under ``assets/``."""
    repo_root = Path(repo_root)
    assets = repo_root / Constants.ASSETS_DIR
    now = datetime.now(timezone.utc)
    old_entries = (old_index or {}).get("entries") or {}

    by_name: Dict[str, List[ChartWrapper]] = {}
    paths: Dict[int, Path] = {}
    for path in sorted(assets.rglob("*.tgz")):
        wrapper = ChartWrapper(load_archive(path))
        paths[id(wrapper)] = path
        by_name.setdefault(wrapper.name, []).append(wrapper)

    entries: Dict[str, List[Dict[str, Any]]] = {}
    for name in sorted(by_name):
        old_created = {
            str(e.get("version")): e.get("created")
            for e in old_entries.get(name) or [] if isinstance(e, dict)
        }
        icon_path = icons.downloaded_icon_path(name)
        chart_entries = []
        for wrapper in sort_newest_first(by_name[name]):
            path = paths[id(wrapper)]
            entry = wrapper.metadata.to_dict()
            created = old_created.get(wrapper.version)
            entry["created"] = created if created else _timestamp(now)
            entry["digest"] = _digest(path)
            entry["urls"] = [path.relative_to(repo_root).as_posix()]
            # Older archives cannot change and may still reference remote
            # icons; the index points at the local copy instead.
            if icon_path:
                entry["icon"] = FILE_SCHEME + icon_path
            chart_entries.append(entry)
        entries[name] = chart_entries

    generated = (old_index or {}).get("generated")
    if update_generated or not generated:
        generated = _timestamp(now)
    return {"apiVersion": "v1", "entries": entries, "generated": generated}


def save_index(repo_root: Path, document: Dict[str, Any]) -> Path:
    """Write ``document`` as the repository's ``index.yaml``.

    Raises:
        WriteError: If the index cannot be written.
    """
    path = Path(repo_root) / Constants.INDEX_FILE
    try:
        with open(path, "w", encoding="utf-8") as f:
            yaml.safe_dump(document, f, sort_keys=False, allow_unicode=True)
    except OSError as exc:
        raise WriteError(f"failed to write index file {path}: {exc}") from exc
    logger.info("Wrote %s", path)
    return path


def write_index(config, icons: Optional[IconStore] = None) -> Path:
    """Regenerate ``index.yaml`` from the archives under ``assets/``.

    ``config`` is a RunConfig; its ``update_generated`` flag decides whether
    the top-level ``generated`` timestamp is refreshed.

    Raises:
        ReadError: If the old index or an archive cannot be read.
        WriteError: If the index cannot be written.
    """
    repo_root = Path(config.repo_root)
    icons = icons or IconStore(repo_root)
    document = build_index(repo_root, load_index(repo_root), icons, config.update_generated)
    return save_index(repo_root, document)
