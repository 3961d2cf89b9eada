"""Shared fixtures: chart archives and repository layouts on disk."""

import io
import tarfile
from pathlib import Path

import pytest
import yaml


def build_archive_bytes(name="demo", version="1.0.0", files=None, mtime=1700000000, prefix="", **fields):
    """Gzipped chart archive with members under ``<prefix><name>/``.

    ``fields`` are added to Chart.yaml after apiVersion/name/version; a
    ``Chart.yaml`` entry in ``files`` replaces the generated one.
    """
    chart_yaml = {"apiVersion": "v2", "name": name, "version": version}
    chart_yaml.update(fields)
    members = {"Chart.yaml": yaml.safe_dump(chart_yaml, sort_keys=False).encode("utf-8")}
    members.update({"values.yaml": b"replicaCount: 1\n"} if files is None else files)

    buf = io.BytesIO()
    with tarfile.open(fileobj=buf, mode="w:gz") as tar:
        for relative, data in members.items():
            info = tarfile.TarInfo(name=f"{prefix}{name}/{relative}")
            info.size = len(data)
            info.mtime = mtime
            tar.addfile(info, io.BytesIO(data))
    return buf.getvalue()


@pytest.fixture
def archive_bytes():
    return build_archive_bytes


@pytest.fixture
def chart_archive():
    """Factory writing ``<directory>/<name>-<version>.tgz`` and returning its path."""
    def _make(directory, name="demo", version="1.0.0", files=None, mtime=1700000000, **fields):
        directory = Path(directory)
        directory.mkdir(parents=True, exist_ok=True)
        path = directory / f"{name}-{version}.tgz"
        path.write_bytes(build_archive_bytes(name, version, files=files, mtime=mtime, **fields))
        return path
    return _make


@pytest.fixture
def repo(tmp_path):
    root = tmp_path / "repo"
    root.mkdir()
    return root


@pytest.fixture
def add_package():
    """Factory creating ``packages/<vendor>/<name>/upstream.yaml`` (and overlay files)."""
    def _make(repo_root, vendor="acme", name="demo", upstream=None, overlay=None):
        package_dir = Path(repo_root) / "packages" / vendor / name
        package_dir.mkdir(parents=True, exist_ok=True)
        data = upstream if upstream is not None else {
            "HelmRepo": "https://charts.example.com",
            "HelmChart": name,
        }
        (package_dir / "upstream.yaml").write_text(yaml.safe_dump(data, sort_keys=False), encoding="utf-8")
        for relative, contents in (overlay or {}).items():
            target = package_dir / "overlay" / relative
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_bytes(contents)
        return package_dir
    return _make


@pytest.fixture
def local_icon():
    """Factory placing an already-downloaded icon so no download is attempted."""
    def _make(repo_root, name="demo", suffix=".png"):
        icons_dir = Path(repo_root) / "assets" / "icons"
        icons_dir.mkdir(parents=True, exist_ok=True)
        path = icons_dir / f"{name}{suffix}"
        path.write_bytes(b"\x89PNG\r\n")
        return path
    return _make
