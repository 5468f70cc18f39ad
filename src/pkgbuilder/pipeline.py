# Copyright (c) 2026 - 2026, Oracle and/or its affiliates. All rights reserved.
# Licensed under the Universal Permissive License v 1.0 as shown at https://oss.oracle.com/licenses/upl/.

"""This module chains the stages of a package build.

The stages run one after the other: prepare the workspace, fetch the sources, run the build
script, package the output and finally remove the workspace. The workspace is removed whatever
the outcome of the previous stages.
"""

import logging
from dataclasses import dataclass

from pkgbuilder.build import run_build_script
from pkgbuilder.config.defaults import defaults
from pkgbuilder.descriptor import Descriptor
from pkgbuilder.errors import ConfigurationError, WorkspaceError
from pkgbuilder.fetcher import fetch_sources
from pkgbuilder.packager import Archive, package
from pkgbuilder.process import ProcessRunner, SubprocessRunner
from pkgbuilder.workspace import get_temp_root, prepare, teardown

logger: logging.Logger = logging.getLogger(__name__)


@dataclass
class PipelineOptions:
    """The tunables of one pipeline run."""

    #: The directory under which the scratch directories are created.
    temp_root: str = ""

    #: If True, a source that cannot be fetched aborts the build.
    fetch_failure_is_fatal: bool = False

    #: If True, a subpackage that cannot be partitioned or archived aborts packaging.
    subpackage_failure_is_fatal: bool = False

    #: The number of seconds the build script may run. None means no limit.
    build_timeout: float | None = None

    #: The shell interpreting the build script.
    shell: str = "bash"

    @classmethod
    def from_defaults(cls) -> "PipelineOptions":
        """Create the options from the values loaded from ``defaults.ini``.

        Returns
        -------
        PipelineOptions
            The options.

        Raises
        ------
        ConfigurationError
            If a value in ``defaults.ini`` has the wrong type.
        """
        try:
            timeout = defaults.getint("build", "timeout", fallback=0)
            return cls(
                temp_root=get_temp_root(),
                fetch_failure_is_fatal=defaults.getboolean("pipeline", "fetch_failure_is_fatal", fallback=False),
                subpackage_failure_is_fatal=defaults.getboolean(
                    "pipeline", "subpackage_failure_is_fatal", fallback=False
                ),
                build_timeout=timeout if timeout > 0 else None,
                shell=defaults.get("build", "shell", fallback="bash"),
            )
        except ValueError as error:
            raise ConfigurationError(f"Invalid value in the defaults configuration: {error}") from error


def run_pipeline(
    descriptor: Descriptor,
    output_path: str,
    options: PipelineOptions | None = None,
    runner: ProcessRunner | None = None,
) -> list[Archive]:
    """Build ``descriptor`` and write its archives to ``output_path``.

    Parameters
    ----------
    descriptor : Descriptor
        The package to build.
    output_path : str
        The archive path, or the output directory when the package has subpackages.
    options : PipelineOptions | None
        The options of the run. If None, they are read from ``defaults.ini``.
    runner : ProcessRunner | None
        The runner for external commands. A :class:`SubprocessRunner` is used if None.

    Returns
    -------
    list[Archive]
        The archives written.

    Raises
    ------
    PkgBuilderError
        If a fatal error happens in one of the stages. The workspace is removed regardless.
    """
    options = options or PipelineOptions.from_defaults()
    runner = runner or SubprocessRunner()

    paths = prepare(descriptor, options.temp_root or None, with_package_dir=bool(descriptor.subpackages))
    try:
        fetch_sources(descriptor.sources, paths.build_dir, runner, fail_fast=options.fetch_failure_is_fatal)

        if descriptor.build:
            run_build_script(
                descriptor.build.script,
                paths.build_dir,
                paths.out_dir,
                runner=runner,
                shell=options.shell,
                timeout=options.build_timeout,
            )
        else:
            logger.info("No build script to execute.")

        logger.info("Packaging %s %s", descriptor.name, descriptor.version)
        archives = package(
            descriptor,
            paths,
            output_path,
            subpackage_failure_is_fatal=options.subpackage_failure_is_fatal,
        )
    finally:
        try:
            teardown(paths)
        except WorkspaceError as error:
            # A leftover scratch directory does not invalidate archives already written.
            logger.error(error)

    logger.info("Package built successfully.")
    return archives
