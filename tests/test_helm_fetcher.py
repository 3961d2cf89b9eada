"""Tests for the Helm repository fetcher (HTTP mocked)."""

from datetime import timezone
from unittest.mock import patch

import pytest

from common.errors import FetchError
from registry.helm import HelmRepoFetcher, parse_timestamp
from repository.packages import PackageConfig, PackageWrapper
from versioning.models import UpstreamVersion

INDEX = {
    "apiVersion": "v1",
    "entries": {
        "demo": [
            {"name": "demo", "version": "1.1.0", "urls": ["charts/demo-1.1.0.tgz"], "created": "2024-02-01T00:00:00Z"},
            {"name": "demo", "version": "1.0.0", "urls": ["https://cdn.example.com/demo-1.0.0.tgz"]},
            {"name": "demo"},
        ],
    },
}


def make_package(tmp_path, **data):
    return PackageWrapper(name="demo", parsed_vendor="acme", path=tmp_path, config=PackageConfig.from_dict(data))


class TestListVersions:
    def test_versions_from_repository_index(self, tmp_path):
        package = make_package(tmp_path, HelmRepo="https://charts.example.com/stable", HelmChart="demo")
        with patch("registry.helm.get_yaml", return_value=INDEX) as mock_yaml:
            versions = HelmRepoFetcher().list_versions(package)
        mock_yaml.assert_called_once()
        assert mock_yaml.call_args[0][0] == "https://charts.example.com/stable/index.yaml"
        assert [v.version for v in versions] == ["1.1.0", "1.0.0"]
        assert versions[0].source_urls == ("https://charts.example.com/stable/charts/demo-1.1.0.tgz",)
        assert versions[1].source_urls == ("https://cdn.example.com/demo-1.0.0.tgz",)
        assert versions[0].created_at.tzinfo is not None

    def test_chart_missing_from_index(self, tmp_path):
        package = make_package(tmp_path, HelmRepo="https://charts.example.com", HelmChart="absent")
        with patch("registry.helm.get_yaml", return_value=INDEX):
            with pytest.raises(FetchError):
                HelmRepoFetcher().list_versions(package)

    def test_single_archive_url(self, tmp_path, archive_bytes):
        package = make_package(tmp_path, URL="https://example.com/demo.tgz")
        with patch("registry.helm.robust_get", return_value=({}, archive_bytes(version="0.3.0"))):
            versions = HelmRepoFetcher().list_versions(package)
        assert [(v.name, v.version) for v in versions] == [("demo", "0.3.0")]
        assert versions[0].source_urls == ("https://example.com/demo.tgz",)

    def test_git_sources_are_unsupported(self, tmp_path):
        package = make_package(tmp_path, GitRepo="https://github.com/acme/demo.git")
        with pytest.raises(FetchError):
            HelmRepoFetcher().list_versions(package)


class TestFetchChart:
    def test_version_is_forced_to_upstream(self, tmp_path, archive_bytes):
        package = make_package(tmp_path, HelmRepo="https://charts.example.com", HelmChart="demo")
        version = UpstreamVersion(name="demo", version="v1.1.0", source_urls=("https://charts.example.com/demo-1.1.0.tgz",))
        with patch("registry.helm.robust_get", return_value=({}, archive_bytes(version="1.1.0"))):
            wrapper = HelmRepoFetcher().fetch_chart(package, version)
        assert wrapper.version == "v1.1.0"
        assert not wrapper.modified

    def test_downloads_are_cached(self, tmp_path, archive_bytes):
        package = make_package(tmp_path, URL="https://example.com/demo.tgz")
        fetcher = HelmRepoFetcher()
        with patch("registry.helm.robust_get", return_value=({}, archive_bytes())) as mock_get:
            versions = fetcher.list_versions(package)
            fetcher.fetch_chart(package, versions[0])
        assert mock_get.call_count == 1

    def test_archive_is_released_after_fetch(self, tmp_path, archive_bytes):
        package = make_package(tmp_path, URL="https://example.com/demo.tgz")
        fetcher = HelmRepoFetcher()
        with patch("registry.helm.robust_get", return_value=({}, archive_bytes())) as mock_get:
            version = fetcher.list_versions(package)[0]
            fetcher.fetch_chart(package, version)
            fetcher.fetch_chart(package, version)
        assert mock_get.call_count == 2

    def test_corrupt_archive(self, tmp_path):
        package = make_package(tmp_path, URL="https://example.com/demo.tgz")
        version = UpstreamVersion(name="demo", version="1.0.0", source_urls=("https://example.com/demo.tgz",))
        with patch("registry.helm.robust_get", return_value=({}, b"not an archive")):
            with pytest.raises(FetchError):
                HelmRepoFetcher().fetch_chart(package, version)

    def test_version_without_urls(self, tmp_path):
        package = make_package(tmp_path, URL="https://example.com/demo.tgz")
        with pytest.raises(FetchError):
            HelmRepoFetcher().fetch_chart(package, UpstreamVersion(name="demo", version="1.0.0"))


class TestParseTimestamp:
    def test_nanoseconds_are_truncated(self):
        parsed = parse_timestamp("2023-05-01T10:00:00.123456789Z")
        assert parsed.microsecond == 123456
        assert parsed.tzinfo == timezone.utc

    def test_empty_and_invalid(self):
        assert parse_timestamp(None) is None
        assert parse_timestamp("yesterday") is None
