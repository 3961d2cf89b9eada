"""Tests for upstream version selection."""

import logging

import pytest

from common.errors import EmptyUpstreamError
from versioning.filter import (
    check_newer_untracked,
    latest_tracked,
    select_versions_to_fetch,
    strip_prerelease,
)
from versioning.models import FetchMode, TrackedLine, UpstreamVersion
from versioning.parser import parse_stored_version, parse_version


def upstream(*versions, name="demo"):
    return [
        UpstreamVersion(name=name, version=v, source_urls=(f"https://charts.example.com/{name}-{v}.tgz",))
        for v in versions
    ]


def stored(*versions):
    return [parse_stored_version(v) for v in versions]


def selected(result):
    return [uv.version for uv in result]


class TestScenarios:
    """Worked examples of the selection rules."""

    def test_latest_with_nothing_stored_selects_newest(self):
        result = select_versions_to_fetch(upstream("2.1.0", "2.0.0", "1.9.0"), [], [], FetchMode.LATEST)
        assert selected(result) == ["2.1.0"]

    def test_newer_with_newest_stored_selects_nothing(self):
        result = select_versions_to_fetch(upstream("2.1.0", "2.0.0"), stored("2.1.0"), [], FetchMode.NEWER)
        assert result == []

    def test_all_skips_prereleases(self):
        result = select_versions_to_fetch(upstream("2.1.0-rc1", "2.0.0"), [], [], FetchMode.ALL)
        assert selected(result) == ["2.0.0"]


class TestFetchModes:
    """LATEST, NEWER and ALL against stored versions."""

    def test_latest_selects_nothing_when_newest_is_stored(self):
        result = select_versions_to_fetch(upstream("2.1.0", "2.0.0"), stored("2.1.0"), [], FetchMode.LATEST)
        assert result == []

    def test_latest_ignores_older_unstored_versions(self):
        result = select_versions_to_fetch(upstream("2.1.0", "2.0.0"), stored("2.0.0"), [], FetchMode.LATEST)
        assert selected(result) == ["2.1.0"]

    def test_newer_selects_everything_above_newest_stored(self):
        result = select_versions_to_fetch(
            upstream("2.1.0", "2.0.0", "1.9.0", "1.8.0"), stored("1.8.0", "1.9.0"), [], FetchMode.NEWER
        )
        assert selected(result) == ["2.1.0", "2.0.0"]

    def test_newer_without_stored_selects_all_stable(self):
        result = select_versions_to_fetch(upstream("2.0.0", "1.1.0-beta.1", "1.0.0"), [], [], FetchMode.NEWER)
        assert selected(result) == ["2.0.0", "1.0.0"]

    def test_all_selects_every_unstored_version(self):
        result = select_versions_to_fetch(upstream("3.0.0", "2.0.0", "1.0.0"), stored("2.0.0"), [], FetchMode.ALL)
        assert selected(result) == ["3.0.0", "1.0.0"]

    def test_revision_suffix_is_stripped_before_comparison(self):
        result = select_versions_to_fetch(upstream("2.1.0"), stored("2.1.0+pkg1"), [], FetchMode.LATEST)
        assert result == []

    def test_revision_suffix_after_build_metadata_is_stripped(self):
        result = select_versions_to_fetch(
            upstream("2.1.0+k3s1"), stored("2.1.0+k3s1.pkg3"), [], FetchMode.ALL
        )
        assert result == []

    def test_leading_v_matches_stored_plain_version(self):
        result = select_versions_to_fetch(upstream("v1.2.0"), stored("1.2.0"), [], FetchMode.LATEST)
        assert result == []


class TestOrdering:
    """The filter does not trust caller ordering."""

    def test_unsorted_upstream_is_sorted_newest_first(self):
        result = select_versions_to_fetch(upstream("1.9.0", "2.1.0", "2.0.0"), [], [], FetchMode.LATEST)
        assert selected(result) == ["2.1.0"]

    def test_unsorted_stored_uses_true_newest(self):
        result = select_versions_to_fetch(
            upstream("3.0.0", "2.0.0", "1.0.0"), stored("2.0.0", "1.0.0"), [], FetchMode.NEWER
        )
        assert selected(result) == ["3.0.0"]
        result = select_versions_to_fetch(
            upstream("3.0.0", "2.0.0", "1.0.0"), stored("1.0.0", "2.0.0"), [], FetchMode.NEWER
        )
        assert selected(result) == ["3.0.0"]

    def test_newer_result_is_newest_first(self):
        result = select_versions_to_fetch(upstream("1.1.0", "1.3.0", "1.2.0"), [], [], FetchMode.NEWER)
        assert selected(result) == ["1.3.0", "1.2.0", "1.1.0"]


class TestTrackedLines:
    """Per-line buckets and the untracked-newer advisory."""

    UPSTREAM = ("2.1.1", "2.1.0", "2.0.3", "2.0.2", "1.5.2", "1.5.1", "1.4.0")

    def test_latest_selects_newest_per_line_in_declaration_order(self):
        lines = [TrackedLine(2, 0), TrackedLine(1, 5)]
        result = select_versions_to_fetch(upstream(*self.UPSTREAM), stored("1.5.1"), lines, FetchMode.LATEST)
        assert selected(result) == ["2.0.3", "1.5.2"]

    def test_line_is_skipped_when_its_newest_is_stored(self):
        lines = [TrackedLine(1, 5), TrackedLine(2, 0)]
        result = select_versions_to_fetch(upstream(*self.UPSTREAM), stored("2.0.3"), lines, FetchMode.LATEST)
        assert selected(result) == ["1.5.2"]

    def test_newer_compares_against_stored_of_same_line(self):
        lines = [TrackedLine(2, 0), TrackedLine(1, 5)]
        result = select_versions_to_fetch(
            upstream(*self.UPSTREAM), stored("2.0.2", "1.5.2"), lines, FetchMode.NEWER
        )
        assert selected(result) == ["2.0.3"]

    def test_all_per_line(self):
        lines = [TrackedLine(1, 5)]
        result = select_versions_to_fetch(upstream(*self.UPSTREAM), stored("1.5.1"), lines, FetchMode.ALL)
        assert selected(result) == ["1.5.2"]

    def test_line_without_upstream_versions_selects_nothing(self):
        result = select_versions_to_fetch(upstream("2.1.0"), [], [TrackedLine(3, 0)], FetchMode.ALL)
        assert result == []

    def test_duplicate_lines_select_once(self):
        lines = [TrackedLine(2, 0), TrackedLine(2, 0)]
        result = select_versions_to_fetch(upstream(*self.UPSTREAM), [], lines, FetchMode.LATEST)
        assert selected(result) == ["2.0.3"]

    def test_newer_untracked_versions_are_reported(self):
        lines = [TrackedLine(2, 0), TrackedLine(1, 5)]
        assert check_newer_untracked(lines, upstream(*self.UPSTREAM)) == ["2.1.1", "2.1.0"]

    def test_newer_untracked_warning_is_advisory(self, caplog):
        lines = [TrackedLine(2, 0)]
        with caplog.at_level(logging.WARNING):
            result = select_versions_to_fetch(upstream(*self.UPSTREAM), [], lines, FetchMode.LATEST)
        assert selected(result) == ["2.0.3"]
        assert "Newer untracked version available" in caplog.text
        assert "2.1.1, 2.1.0" in caplog.text

    def test_no_untracked_versions_when_tracking_newest_line(self):
        assert check_newer_untracked([TrackedLine(2, 1)], upstream(*self.UPSTREAM)) == []

    def test_no_tracked_lines_means_no_advisory(self):
        assert check_newer_untracked([], upstream(*self.UPSTREAM)) == []

    def test_latest_tracked(self):
        assert latest_tracked([TrackedLine(1, 5), TrackedLine(2, 0), TrackedLine(1, 10)]) == TrackedLine(2, 0)
        assert latest_tracked([]) is None


class TestEdgeCases:
    """Empty and malformed input."""

    def test_only_prereleases_raises(self):
        with pytest.raises(EmptyUpstreamError):
            select_versions_to_fetch(upstream("1.0.0-beta.1", "1.0.0-rc.1"), [], [], FetchMode.LATEST)

    def test_empty_upstream_raises(self):
        with pytest.raises(EmptyUpstreamError):
            select_versions_to_fetch([], stored("1.0.0"), [], FetchMode.ALL)

    def test_empty_upstream_error_names_the_package(self):
        with pytest.raises(EmptyUpstreamError, match="acme/demo"):
            select_versions_to_fetch([], [], [], FetchMode.LATEST, package_name="acme/demo")

    def test_prerelease_only_error_names_the_package(self):
        with pytest.raises(EmptyUpstreamError, match="^acme/demo:"):
            select_versions_to_fetch(upstream("1.0.0-rc.1"), [], [], FetchMode.ALL, package_name="acme/demo")

    def test_malformed_upstream_version_is_skipped(self, caplog):
        with caplog.at_level(logging.ERROR):
            result = select_versions_to_fetch(upstream("not-a-version", "1.0.0"), [], [], FetchMode.ALL)
        assert selected(result) == ["1.0.0"]
        assert "not-a-version" in caplog.text

    def test_malformed_stored_version_is_skipped(self):
        result = select_versions_to_fetch(upstream("1.0.0"), stored("garbage"), [], FetchMode.LATEST)
        assert selected(result) == ["1.0.0"]

    def test_strip_prerelease(self):
        assert selected(strip_prerelease(upstream("2.0.0-alpha", "1.0.0", "bogus"))) == ["1.0.0"]


class TestProperties:
    """Invariants checked across a handful of representative inputs."""

    CASES = [
        (("3.0.0", "3.0.0-rc.1", "2.5.0", "2.4.0", "1.0.0"), ("2.4.0",)),
        (("1.0.1", "1.0.0", "0.9.0-beta"), ()),
        (("4.1.0", "4.0.0", "3.9.9"), ("4.1.0+pkg2", "3.9.9")),
        (("0.3.0", "0.2.0", "0.1.0"), ("0.1.0", "0.2.0", "0.3.0")),
    ]

    @pytest.mark.parametrize("up,st", CASES)
    @pytest.mark.parametrize("mode", list(FetchMode))
    def test_no_prerelease_is_ever_selected(self, up, st, mode):
        result = select_versions_to_fetch(upstream(*up), stored(*st), [], mode)
        assert not any(parse_version(v).prerelease for v in selected(result))

    @pytest.mark.parametrize("up,st", CASES)
    def test_newer_selection_exceeds_every_stored_version(self, up, st):
        result = select_versions_to_fetch(upstream(*up), stored(*st), [], FetchMode.NEWER)
        stored_max = [parse_version(s.version.split("+")[0]) for s in stored(*st)]
        for version in selected(result):
            assert all(parse_version(version) > s for s in stored_max)

    @pytest.mark.parametrize("up,st", CASES)
    def test_all_selects_exactly_the_unstored(self, up, st):
        result = select_versions_to_fetch(upstream(*up), stored(*st), [], FetchMode.ALL)
        stored_plain = {s.version.split("+")[0] for s in stored(*st)}
        expected = {v for v in up if not parse_version(v).prerelease and v not in stored_plain}
        assert set(selected(result)) == expected

    @pytest.mark.parametrize("up,st", CASES)
    def test_latest_selects_nothing_when_newest_matches(self, up, st):
        newest = max((v for v in up if not parse_version(v).prerelease), key=parse_version)
        result = select_versions_to_fetch(upstream(*up), stored(*st, newest), [], FetchMode.LATEST)
        assert result == []
