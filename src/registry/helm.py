"""Upstream chart sources: Helm HTTP repositories and direct archive URLs."""

from __future__ import annotations

import logging
import re
from datetime import datetime, timezone
from typing import Dict, List, Optional, Protocol
from urllib.parse import urljoin

from constants import Constants
from common.errors import FetchError, ReadError
from common.http_client import get_yaml, robust_get
from common.logging_utils import safe_url
from charts.archive import load_archive_bytes
from charts.models import ChartWrapper
from versioning.models import UpstreamVersion

logger = logging.getLogger(__name__)

_FRACTION_RE = re.compile(r"\.(\d+)")


def parse_timestamp(value) -> Optional[datetime]:
    """Parse an index.yaml timestamp; Go writes nanoseconds, Python reads micro."""
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=timezone.utc)
    if not value:
        return None
    text = str(value).strip().replace("Z", "+00:00")
    text = _FRACTION_RE.sub(lambda m: "." + m.group(1)[:6].ljust(6, "0"), text, count=1)
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        logger.debug("Unparseable timestamp %r", value)
        return None
    return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)


class ChartFetcher(Protocol):
    def list_versions(self, package) -> List[UpstreamVersion]:
        """Upstream versions of ``package`` in upstream order."""
        ...

    def fetch_chart(self, package, version: UpstreamVersion) -> ChartWrapper:
        """Download and decode one upstream version."""
        ...


class HelmRepoFetcher:
    """ChartFetcher over HTTP.

    Supports packages configured with ``HelmRepo``/``HelmChart`` (a Helm
    repository index) or with a single archive ``URL``.
    """

    def __init__(self) -> None:
        # Archives downloaded while listing, kept until fetch_chart takes them.
        self._archives: Dict[str, bytes] = {}

    def _download(self, url: str, context: str) -> bytes:
        if url not in self._archives:
            _, body = robust_get(url, context=context)
            self._archives[url] = body
        return self._archives[url]

    def list_versions(self, package) -> List[UpstreamVersion]:
        """Raises FetchError on transport failure or an unsupported source."""
        config = package.config
        if config.helm_repo:
            return self._list_index_versions(config.helm_repo, package.upstream_chart_name, package.full_name)
        if config.url:
            chart = self._load(config.url, package.full_name)
            return [UpstreamVersion(name=chart.name, version=chart.version, source_urls=(config.url,))]
        raise FetchError(f"{package.full_name}: git sources are not supported")

    def _list_index_versions(self, helm_repo: str, chart_name: str, context: str) -> List[UpstreamVersion]:
        base = helm_repo.rstrip("/") + "/"
        index = get_yaml(urljoin(base, Constants.INDEX_FILE), context=context)
        entries = (index or {}).get("entries") if isinstance(index, dict) else None
        if not isinstance(entries, dict) or chart_name not in entries:
            raise FetchError(f"{context}: chart {chart_name!r} not found in {safe_url(base)}")

        versions = []
        for entry in entries[chart_name] or []:
            if not isinstance(entry, dict) or not entry.get("version"):
                continue
            urls = tuple(urljoin(base, str(u)) for u in entry.get("urls") or [])
            versions.append(
                UpstreamVersion(
                    name=str(entry.get("name") or chart_name),
                    version=str(entry["version"]),
                    source_urls=urls,
                    created_at=parse_timestamp(entry.get("created")),
                    extra=entry,
                )
            )
        return versions

    def _load(self, url: str, context: str):
        try:
            return load_archive_bytes(self._download(url, context), safe_url(url))
        except ReadError as exc:
            raise FetchError(f"{context}: {exc}") from exc

    def fetch_chart(self, package, version: UpstreamVersion) -> ChartWrapper:
        if not version.source_urls:
            raise FetchError(f"{package.full_name}: version {version.version} has no download URL")
        url = version.source_urls[0]
        try:
            chart = self._load(url, package.full_name)
        finally:
            self._archives.pop(url, None)
        chart.metadata.version = version.version
        return ChartWrapper(chart)
