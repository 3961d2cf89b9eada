"""Local copies of chart icons.

Charts reference icons by URL; the repository keeps one downloaded icon per
package under ``assets/icons/`` so air-gapped consumers never need to reach
the original host.
"""

from __future__ import annotations

import logging
import mimetypes
from pathlib import Path, PurePosixPath
from typing import Optional, Protocol
from urllib.parse import urlsplit

from constants import Constants
from common.errors import FetchError, WriteError
from common.http_client import robust_get

logger = logging.getLogger(__name__)

FILE_SCHEME = "file://"
_KNOWN_EXTENSIONS = (".png", ".svg", ".jpg", ".jpeg", ".gif", ".ico", ".webp")


class IconLocalizer(Protocol):
    def ensure_local(self, ref: str, package_name: str) -> str:
        """Return a repository-relative path to a local copy of icon ``ref``."""
        ...


def _extension_for(url: str, content_type: Optional[str]) -> str:
    suffix = PurePosixPath(urlsplit(url).path).suffix.lower()
    if suffix in _KNOWN_EXTENSIONS:
        return suffix
    if content_type:
        guessed = mimetypes.guess_extension(content_type.split(";", 1)[0].strip())
        if guessed in _KNOWN_EXTENSIONS:
            return guessed
    return ".png"


class IconStore:
    """IconLocalizer that stores icons under ``<repo_root>/assets/icons``."""

    def __init__(self, repo_root: Path):
        self.repo_root = Path(repo_root)
        self.icons_dir = self.repo_root / Constants.ASSETS_DIR / Constants.ICONS_DIR

    def _relative(self, path: Path) -> str:
        return path.relative_to(self.repo_root).as_posix()

    def downloaded_icon_path(self, package_name: str) -> Optional[str]:
        """Repository-relative path of the package's stored icon, if any."""
        if not self.icons_dir.is_dir():
            return None
        for candidate in sorted(self.icons_dir.glob(f"{package_name}.*")):
            if candidate.is_file() and candidate.suffix.lower() in _KNOWN_EXTENSIONS:
                return self._relative(candidate)
        return None

    def ensure_local(self, ref: str, package_name: str) -> str:
        """Return the local icon for ``package_name``, downloading ``ref`` if needed.

        Raises:
            FetchError: If there is no local icon and ``ref`` cannot be downloaded.
            WriteError: If the downloaded icon cannot be stored.
        """
        existing = self.downloaded_icon_path(package_name)
        if existing:
            return existing

        if not ref:
            raise FetchError(f"chart {package_name!r} has no icon to download")

        if ref.startswith(FILE_SCHEME):
            local_ref = ref[len(FILE_SCHEME):]
            if (self.repo_root / local_ref).is_file():
                return local_ref
            raise FetchError(f"local icon {ref!r} for {package_name!r} does not exist")

        response_headers, body = robust_get(ref, context=f"icon for {package_name}")
        content_type = next((v for k, v in response_headers.items() if k.lower() == "content-type"), None)
        target = self.icons_dir / f"{package_name}{_extension_for(ref, content_type)}"
        try:
            self.icons_dir.mkdir(parents=True, exist_ok=True)
            target.write_bytes(body)
        except OSError as exc:
            raise WriteError(f"failed to write icon {target}: {exc}") from exc
        logger.info("Downloaded icon for %s to %s", package_name, target)
        return self._relative(target)
