"""chartsync - mirror upstream Helm charts into a versioned chart repository.

    Returns:
        int: Exit code
"""
import logging
import os
import sys

from constants import Constants, ExitCodes
from common.errors import AllPackagesFailedError, ChartSyncError, FetchError
from common.logging_utils import add_file_handler, configure_logging, extra_context, is_debug_enabled
from args import parse_args
from cli_config import build_run_config
from cli_feature import run_feature_add, run_feature_list, run_feature_remove, run_hide
from cli_update import run_cull, run_ensure_icons, run_list, run_stage
from cli_validate import run_compare, run_validate

COMMANDS = {
    "list": run_list,
    "stage": run_stage,
    "validate": run_validate,
    "compare": run_compare,
    "hide": run_hide,
    "ensure-icons": run_ensure_icons,
    "cull": run_cull,
}

FEATURE_COMMANDS = {
    "list": run_feature_list,
    "add": run_feature_add,
    "remove": run_feature_remove,
}


def _exit_code_for(exc: ChartSyncError) -> int:
    if isinstance(exc, AllPackagesFailedError):
        return ExitCodes.ALL_PACKAGES_FAILED.value
    if isinstance(exc, FetchError):
        return ExitCodes.CONNECTION_ERROR.value
    return ExitCodes.FILE_ERROR.value


def run(argv=None) -> int:
    """Parse ``argv``, configure logging and dispatch to the command handler."""
    logger = logging.getLogger(__name__)

    args = parse_args(argv)
    # Honor CLI --loglevel by passing it to centralized logger via env
    if getattr(args, "LOG_LEVEL", None):
        os.environ[Constants.ENV_LOG_LEVEL] = str(args.LOG_LEVEL).upper()
    configure_logging()
    if getattr(args, "LOG_FILE", None):
        add_file_handler(args.LOG_FILE)

    config = build_run_config(args)
    if is_debug_enabled(logger):
        logger.debug(
            "CLI start",
            extra=extra_context(
                event="function_entry",
                component="cli",
                action=args.COMMAND,
                target=str(config.repo_root)
            )
        )

    if args.COMMAND == "feature":
        handler = FEATURE_COMMANDS[args.FEATURE_COMMAND]
    else:
        handler = COMMANDS[args.COMMAND]

    try:
        return handler(args, config)
    except ChartSyncError as exc:
        logger.error("%s", exc)
        return _exit_code_for(exc)


def main():
    """Main function of the program."""
    sys.exit(run())


if __name__ == "__main__":
    main()
