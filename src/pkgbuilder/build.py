# Copyright (c) 2026 - 2026, Oracle and/or its affiliates. All rights reserved.
# Licensed under the Universal Permissive License v 1.0 as shown at https://oss.oracle.com/licenses/upl/.

"""This module runs the build script of a package."""

import logging
import subprocess  # nosec B404

from pkgbuilder.config.defaults import defaults
from pkgbuilder.errors import BuildError
from pkgbuilder.process import ProcessRunner, SubprocessRunner, get_patched_env

logger: logging.Logger = logging.getLogger(__name__)


def run_build_script(
    script: str,
    build_dir: str,
    out_dir: str,
    runner: ProcessRunner | None = None,
    shell: str | None = None,
    timeout: float | None = None,
) -> None:
    """Run ``script`` with a shell inside ``build_dir``.

    The variable named by ``output_env_var`` in ``defaults.ini`` (``OUT`` by default) points the
    script at ``out_dir``. The output of the script is streamed live to our own stdout and stderr.

    Parameters
    ----------
    script : str
        The build script.
    build_dir : str
        The working directory of the script.
    out_dir : str
        The directory the script populates with the files to package.
    runner : ProcessRunner | None
        The runner for the shell. A :class:`SubprocessRunner` is used if None.
    shell : str | None
        The shell interpreting the script. Defaults to ``shell`` in the ``[build]`` section.
    timeout : float | None
        The number of seconds after which the script is killed. None means no limit.

    Raises
    ------
    BuildError
        If the shell cannot be started, the script times out or exits with a non-zero status.
    """
    runner = runner or SubprocessRunner()
    shell = shell or defaults.get("build", "shell", fallback="bash")
    env_var = defaults.get("build", "output_env_var", fallback="OUT")

    logger.info("Running the build script in %s", build_dir)
    try:
        result = runner.run(
            [shell, "-c", script],
            cwd=build_dir,
            env=get_patched_env({env_var: out_dir}),
            timeout=timeout,
            stream=True,
        )
    except subprocess.TimeoutExpired as error:
        raise BuildError(f"The build script did not finish within {timeout} seconds.") from error
    except OSError as error:
        raise BuildError(f"Unable to start the build script with {shell}: {error}") from error

    if not result.succeeded:
        raise BuildError(f"The build script exited with status {result.returncode}.", returncode=result.returncode)

    logger.info("Build script executed successfully.")
