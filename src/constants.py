"""Constants used in the project."""

from enum import Enum


class ExitCodes(Enum):
    """Exit codes for the program.

    Args:
        Enum (int): Exit codes for the program.
    """

    SUCCESS = 0
    FILE_ERROR = 1
    CONNECTION_ERROR = 2
    EXIT_WARNINGS = 3
    ALL_PACKAGES_FAILED = 4
    DRIFT_DETECTED = 5
    USAGE_ERROR = 6


class Annotations:  # pylint: disable=too-few-public-methods
    """Chart annotation keys managed by chartsync."""

    AUTO_INSTALL = "catalog.cattle.io/auto-install"
    CERTIFIED = "catalog.cattle.io/certified"
    DISPLAY_NAME = "catalog.cattle.io/display-name"
    EXPERIMENTAL = "catalog.cattle.io/experimental"
    FEATURED = "catalog.cattle.io/featured"
    HIDDEN = "catalog.cattle.io/hidden"
    KUBE_VERSION = "catalog.cattle.io/kube-version"
    NAMESPACE = "catalog.cattle.io/namespace"
    RELEASE_NAME = "catalog.cattle.io/release-name"


class Constants:  # pylint: disable=too-few-public-methods
    """General constants used in the project.
    Data holder for configuration constants; not intended to provide behavior.
    """

    INDEX_FILE = "index.yaml"
    CONFIG_FILE = "configuration.yaml"
    UPSTREAM_FILE = "upstream.yaml"
    CHART_FILE = "Chart.yaml"
    OVERLAY_DIR = "overlay"
    ASSETS_DIR = "assets"
    CHARTS_DIR = "charts"
    PACKAGES_DIR = "packages"
    ICONS_DIR = "icons"

    ENV_PACKAGE = "PACKAGE"
    ENV_REPO_ROOT = "CHARTSYNC_REPO_ROOT"
    ENV_LOG_LEVEL = "CHARTSYNC_LOG_LEVEL"

    RESERVED_ANNOTATION_PREFIX = "catalog.cattle.io/"
    DEPRECATED_FIELD = "deprecated"
    CERTIFIED_VALUE = "partner"
    FEATURED_MAX = 5
    # Appended as semver build metadata: 1.2.3 -> 1.2.3+pkg1
    REVISION_MARKER = "pkg"

    LOG_FORMAT = "[%(levelname)s] %(message)s"
    REQUEST_TIMEOUT = 30  # Timeout in seconds for all HTTP requests
    HTTP_RETRY_MAX = 3
    HTTP_RETRY_BASE_DELAY_SEC = 0.3
    USER_AGENT = "chartsync"
