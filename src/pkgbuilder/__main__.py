# Copyright (c) 2026 - 2026, Oracle and/or its affiliates. All rights reserved.
# Licensed under the Universal Permissive License v 1.0 as shown at https://oss.oracle.com/licenses/upl/.

"""This is the main entrypoint to run pkgbuilder."""

import argparse
import logging
import os
import sys

from rich.console import Console
from rich.logging import RichHandler

import pkgbuilder
from pkgbuilder.config.defaults import create_defaults, load_defaults
from pkgbuilder.descriptor import load_descriptor
from pkgbuilder.errors import BuildError, ConfigurationError, DescriptorError, PkgBuilderError
from pkgbuilder.pipeline import PipelineOptions, run_pipeline

logger: logging.Logger = logging.getLogger(__name__)

#: The environment variable read when the descriptor path is not passed as an argument.
DESCRIPTOR_PATH_ENV = "PKGBUILDER_PKGFILE_PATH"

#: The environment variable read when the output path is not passed as an argument.
OUTPUT_PATH_ENV = "PKGBUILDER_OUTPUT_PATH"


def build_package(args: argparse.Namespace) -> int:
    """Build the package described by the parsed command-line arguments.

    Returns
    -------
    int
        The exit status of the program.
    """
    descriptor_path = args.descriptor or os.environ.get(DESCRIPTOR_PATH_ENV, "")
    output_path = args.output or os.environ.get(OUTPUT_PATH_ENV, "")
    if not descriptor_path:
        logger.error("No descriptor path provided. Pass it as an argument or set %s.", DESCRIPTOR_PATH_ENV)
        return os.EX_USAGE
    if not output_path:
        logger.error("No output path provided. Pass it as an argument or set %s.", OUTPUT_PATH_ENV)
        return os.EX_USAGE

    try:
        options = PipelineOptions.from_defaults()
    except ConfigurationError as error:
        logger.error(error)
        return os.EX_CONFIG

    if args.temp_root:
        options.temp_root = os.path.abspath(args.temp_root)
    if args.fetch_failure_fatal:
        options.fetch_failure_is_fatal = True
    if args.subpackage_failure_fatal:
        options.subpackage_failure_is_fatal = True
    if args.timeout is not None:
        options.build_timeout = args.timeout if args.timeout > 0 else None

    try:
        descriptor = load_descriptor(descriptor_path)
    except DescriptorError as error:
        logger.error(error)
        return os.EX_DATAERR

    try:
        archives = run_pipeline(descriptor, output_path, options)
    except BuildError as error:
        logger.error("Build script failed: %s", error)
        return os.EX_SOFTWARE
    except PkgBuilderError as error:
        logger.error(error)
        return os.EX_SOFTWARE

    for archive in archives:
        logger.info("%s: %s", archive.package, os.path.relpath(archive.path, os.getcwd()))
    return os.EX_OK


def main(argv: list[str] | None = None) -> None:
    """Execute pkgbuilder as a standalone command-line tool.

    Parameters
    ----------
    argv: list[str] | None
        Command-line arguments.
        If ``argv`` is ``None``, argparse automatically looks at ``sys.argv``.
    """
    main_parser = argparse.ArgumentParser(
        prog="pkgbuilder",
        description="Fetch the sources of a package, run its build script and archive the result.",
    )

    main_parser.add_argument(
        "-V",
        "--version",
        action="version",
        version=f"%(prog)s {pkgbuilder.__version__}",
        help="Show pkgbuilder's version number and exit",
    )

    main_parser.add_argument(
        "-v",
        "--verbose",
        help="Run pkgbuilder with more debug logs",
        action="store_true",
    )

    main_parser.add_argument(
        "-dp",
        "--defaults-path",
        default="",
        help="The path to the defaults configuration file.",
    )

    main_parser.add_argument(
        "--dump-defaults",
        metavar="DIR",
        default="",
        help="Write the default configuration into DIR and exit.",
    )

    main_parser.add_argument(
        "--temp-root",
        default="",
        help="The directory under which the scratch directories are created.",
    )

    main_parser.add_argument(
        "--fetch-failure-fatal",
        action="store_true",
        help="Abort the build when a source cannot be fetched.",
    )

    main_parser.add_argument(
        "--subpackage-failure-fatal",
        action="store_true",
        help="Abort packaging when a subpackage cannot be created.",
    )

    main_parser.add_argument(
        "--timeout",
        type=float,
        default=None,
        help="The maximum number of seconds the build script may run. 0 disables the limit.",
    )

    main_parser.add_argument(
        "descriptor",
        nargs="?",
        default="",
        help=f"The path to the package descriptor. Defaults to ${DESCRIPTOR_PATH_ENV}.",
    )

    main_parser.add_argument(
        "output",
        nargs="?",
        default="",
        help=(
            "The path of the archive, or the output directory if the package has subpackages. "
            + f"Defaults to ${OUTPUT_PATH_ENV}."
        ),
    )

    args = main_parser.parse_args(argv)

    # Logs go to stderr so that they interleave with the output of the build script.
    log_level = logging.DEBUG if args.verbose else logging.INFO
    rich_handler = RichHandler(console=Console(stderr=True), show_path=args.verbose, markup=False)
    logging.basicConfig(format="%(message)s", handlers=[rich_handler], force=True, level=log_level)

    if not load_defaults(args.defaults_path):
        logger.error("Exiting because the defaults configuration could not be loaded.")
        sys.exit(os.EX_NOINPUT)

    if args.dump_defaults:
        sys.exit(os.EX_OK if create_defaults(args.dump_defaults, os.getcwd()) else os.EX_CANTCREAT)

    sys.exit(build_package(args))


if __name__ == "__main__":
    main()
