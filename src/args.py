"""Argument parsing functionality for chartsync."""

import argparse
from constants import Constants


def _add_package_filter(parser):
    parser.add_argument("-p", "--package",
                        dest="PACKAGE",
                        help=f"Only operate on one <vendor>/<name> package (env: {Constants.ENV_PACKAGE})",
                        action="store",
                        type=str)


def build_parser():
    """Build the top-level parser with one subparser per command."""
    parser = argparse.ArgumentParser(
        prog="chartsync",
        description="Mirror upstream Helm charts into a versioned chart repository",
        add_help=True,
    )
    parser.add_argument("-r", "--repo-root",
                        dest="REPO_ROOT",
                        help=f"Repository root (env: {Constants.ENV_REPO_ROOT}, default: current directory)",
                        action="store",
                        type=str)
    parser.add_argument("--loglevel",
                        dest="LOG_LEVEL",
                        help="Set the logging level",
                        action="store",
                        type=str,
                        choices=['DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL'],
                        default='INFO')
    parser.add_argument("--logfile",
                        dest="LOG_FILE",
                        help="Log output file",
                        action="store",
                        type=str)

    sub = parser.add_subparsers(dest="COMMAND", required=True)

    list_cmd = sub.add_parser("list", help="Print all packages tracked in the repository")
    _add_package_filter(list_cmd)

    stage = sub.add_parser("stage", help="Fetch new upstream versions and write charts and index")
    _add_package_filter(stage)
    stage.add_argument("--update-generated",
                       dest="UPDATE_GENERATED",
                       help="Refresh the index 'generated' timestamp",
                       action="store_true")

    validate = sub.add_parser("validate", help="Compare repository trees against reference trees")
    validate.add_argument("reference",
                          help="Reference directory; defaults to the configuration.yaml entries",
                          nargs="?")
    validate.add_argument("candidate",
                          help="Candidate directory (default: the repository's assets directory)",
                          nargs="?")
    validate.add_argument("-s", "--skip",
                          dest="SKIP",
                          help="Relative directory to leave out of the comparison (repeatable)",
                          action="append",
                          type=str,
                          default=[])

    compare = sub.add_parser("compare", help="Check two chart archives for equivalence")
    compare.add_argument("archive_a", help="First chart archive")
    compare.add_argument("archive_b", help="Second chart archive")

    hide = sub.add_parser("hide", help="Hide every stored version of a package")
    hide.add_argument("package_name", help="Package in <vendor>/<name> format")

    cull = sub.add_parser("cull", help="Remove versions of a chart older than a number of days")
    cull.add_argument("chart_name", help="Chart name as it appears in index.yaml")
    cull.add_argument("days", help="Versions created this many days ago or earlier are removed", type=int)

    ensure_icons = sub.add_parser("ensure-icons", help="Download missing icons and point the index at them")
    _add_package_filter(ensure_icons)

    feature = sub.add_parser("feature", help="Manage featured charts")
    feature_sub = feature.add_subparsers(dest="FEATURE_COMMAND", required=True)
    feature_sub.add_parser("list", help="List featured charts")
    feature_add = feature_sub.add_parser("add", help="Feature the newest version of a package")
    feature_add.add_argument("package_name", help="Package in <vendor>/<name> format")
    feature_add.add_argument("position",
                             help=f"Featured position (1-{Constants.FEATURED_MAX})",
                             type=int)
    feature_remove = feature_sub.add_parser("remove", help="Remove the featured annotation from a package")
    feature_remove.add_argument("package_name", help="Package in <vendor>/<name> format")

    return parser


def parse_args(argv=None):
    """Parses the arguments passed to the program."""
    return build_parser().parse_args(argv)
