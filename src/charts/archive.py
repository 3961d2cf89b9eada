"""Reading and writing gzipped chart archives.

Archives follow the Helm layout: every member sits under a ``<name>/``
directory and ``<name>/Chart.yaml`` holds the metadata.
"""

from __future__ import annotations

import gzip
import io
import logging
import os
import tarfile
from pathlib import Path
from typing import Dict, Union

import yaml

from constants import Constants
from common.errors import ReadError, WriteError
from .models import Chart, ChartFile, ChartMetadata

logger = logging.getLogger(__name__)

PathLike = Union[str, "os.PathLike[str]"]


def tgz_filename(chart: Chart) -> str:
    """Canonical archive name, ``<name>-<version>.tgz``."""
    return f"{chart.name}-{chart.version}.tgz"


def read_members(data: bytes, source: str = "<bytes>") -> Dict[str, bytes]:
    """Return the regular-file members of a gzipped tarball keyed by path.

    Raises:
        ReadError: If ``data`` is not a readable gzipped tarball.
    """
    members: Dict[str, bytes] = {}
    try:
        with tarfile.open(fileobj=io.BytesIO(data), mode="r:gz") as tar:
            for member in tar.getmembers():
                if not member.isfile():
                    continue
                extracted = tar.extractfile(member)
                if extracted is None:
                    continue
                name = member.name[2:] if member.name.startswith("./") else member.name
                members[name] = extracted.read()
    except (tarfile.TarError, OSError, EOFError) as exc:
        raise ReadError(f"failed to read archive {source}: {exc}") from exc
    return members


def _split_root(members: Dict[str, bytes], source: str):
    roots = {name.split("/", 1)[0] for name in members if "/" in name}
    chart_roots = [r for r in sorted(roots) if f"{r}/{Constants.CHART_FILE}" in members]
    if not chart_roots:
        raise ReadError(f"archive {source} has no {Constants.CHART_FILE}")
    return chart_roots[0]


def decode_chart_yaml(raw: bytes, source: str) -> Dict:
    try:
        data = yaml.safe_load(raw)
    except yaml.YAMLError as exc:
        raise ReadError(f"invalid {Constants.CHART_FILE} in {source}: {exc}") from exc
    if not isinstance(data, dict):
        raise ReadError(f"{Constants.CHART_FILE} in {source} is not a mapping")
    return data


def load_archive_bytes(data: bytes, source: str = "<bytes>") -> Chart:
    """Decode an in-memory chart archive."""
    members = read_members(data, source)
    root = _split_root(members, source)
    prefix = f"{root}/"
    raw_chart_yaml = members[prefix + Constants.CHART_FILE]
    metadata = ChartMetadata(decode_chart_yaml(raw_chart_yaml, source))
    files = [
        ChartFile(name=name[len(prefix):], data=content)
        for name, content in sorted(members.items())
        if name.startswith(prefix) and name != prefix + Constants.CHART_FILE
    ]
    return Chart(metadata=metadata, files=files, raw_chart_yaml=raw_chart_yaml)


def load_archive(path: PathLike) -> Chart:
    """Read and decode the chart archive at ``path``.

    Raises:
        ReadError: If the file cannot be read or is not a chart archive.
    """
    try:
        data = Path(path).read_bytes()
    except OSError as exc:
        raise ReadError(f"failed to read {path}: {exc}") from exc
    return load_archive_bytes(data, str(path))


def encode_chart_yaml(metadata: ChartMetadata) -> bytes:
    return yaml.safe_dump(metadata.to_dict(), sort_keys=False, allow_unicode=True).encode("utf-8")


def chart_yaml_bytes(chart: Chart) -> bytes:
    """Chart.yaml content to persist; unchanged charts keep their original bytes."""
    if chart.raw_chart_yaml is not None:
        if decode_chart_yaml(chart.raw_chart_yaml, chart.name) == chart.metadata.to_dict():
            return chart.raw_chart_yaml
    return encode_chart_yaml(chart.metadata)


def _add_member(tar: tarfile.TarFile, name: str, data: bytes) -> None:
    info = tarfile.TarInfo(name=name)
    info.size = len(data)
    info.mtime = 0
    info.mode = 0o644
    tar.addfile(info, io.BytesIO(data))


def save_archive(chart: Chart, dest_dir: PathLike) -> Path:
    """Write ``chart`` as ``<dest_dir>/<name>-<version>.tgz`` and return the path.

    Raises:
        WriteError: If the archive cannot be written.
    """
    dest = Path(dest_dir)
    target = dest / tgz_filename(chart)
    buf = io.BytesIO()
    # Fixed timestamps: equal charts always produce equal bytes.
    with gzip.GzipFile(fileobj=buf, mode="wb", mtime=0) as gz:
        with tarfile.open(fileobj=gz, mode="w") as tar:
            _add_member(tar, f"{chart.name}/{Constants.CHART_FILE}", chart_yaml_bytes(chart))
            for chart_file in chart.files:
                _add_member(tar, f"{chart.name}/{chart_file.name}", chart_file.data)
    try:
        dest.mkdir(parents=True, exist_ok=True)
        target.write_bytes(buf.getvalue())
    except OSError as exc:
        raise WriteError(f"failed to write {target}: {exc}") from exc
    logger.debug("Wrote %s", target)
    return target


def unpack_archive(archive_path: PathLike, dest_dir: PathLike) -> None:
    """Extract the chart in ``archive_path`` into ``dest_dir`` (chart root at ``dest_dir``).

    Raises:
        ReadError: If the archive cannot be read.
        WriteError: If the files cannot be written.
    """
    try:
        data = Path(archive_path).read_bytes()
    except OSError as exc:
        raise ReadError(f"failed to read {archive_path}: {exc}") from exc
    members = read_members(data, str(archive_path))
    root = _split_root(members, str(archive_path))
    dest = Path(dest_dir).resolve()
    try:
        for name, content in members.items():
            if not name.startswith(f"{root}/"):
                continue
            target = (dest / name[len(root) + 1:]).resolve()
            if dest not in target.parents:
                raise WriteError(f"archive member {name!r} escapes {dest}")
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_bytes(content)
    except OSError as exc:
        raise WriteError(f"failed to unpack {archive_path} to {dest}: {exc}") from exc
