# Copyright (c) 2026 - 2026, Oracle and/or its affiliates. All rights reserved.
# Licensed under the Universal Permissive License v 1.0 as shown at https://oss.oracle.com/licenses/upl/.

"""This module allocates and removes the scratch directories of one build."""

import logging
import os
import secrets
import shutil
import tempfile
from dataclasses import dataclass
from datetime import datetime, timezone

from pkgbuilder.config.defaults import defaults
from pkgbuilder.descriptor import Descriptor, is_safe_name
from pkgbuilder.errors import WorkspaceError

logger: logging.Logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class WorkspacePaths:
    """The scratch directories of one invocation."""

    #: The directory the build script runs in. Sources are fetched into it.
    build_dir: str

    #: The directory the build script populates with the files to package.
    out_dir: str

    #: The directory where subpackages are assembled. Only allocated when the package has subpackages.
    package_dir: str | None = None

    def all_dirs(self) -> list[str]:
        """Return every allocated directory."""
        return [path for path in (self.build_dir, self.out_dir, self.package_dir) if path]


def get_temp_root() -> str:
    """Return the shared directory under which the scratch directories are created.

    The value comes from ``temp_root`` in the ``[workspace]`` section of ``defaults.ini``.
    When it is empty, a ``pkgbuilder`` directory in the system temporary directory is used.
    """
    temp_root = defaults.get("workspace", "temp_root", fallback="")
    if not temp_root:
        return os.path.join(tempfile.gettempdir(), "pkgbuilder")
    return os.path.abspath(os.path.expanduser(temp_root))


def _make_stamp() -> str:
    # Seconds alone collide when the same package is built twice in a row.
    return f"{datetime.now(timezone.utc).strftime('%Y%m%dT%H%M%S%fZ')}_{secrets.token_hex(4)}"


def prepare(descriptor: Descriptor, temp_root: str | None = None, with_package_dir: bool = False) -> WorkspacePaths:
    """Create fresh scratch directories for ``descriptor``.

    The directories are named ``build_<name>_<version>_<stamp>`` with the suffixes ``_out``
    and ``_pkg`` so that they can be found easily when debugging a build.

    Parameters
    ----------
    descriptor : Descriptor
        The package being built.
    temp_root : str | None
        The directory under which the scratch directories are created. If None, :func:`get_temp_root` is used.
    with_package_dir : bool
        If True, the directory for assembling subpackages is allocated too.

    Returns
    -------
    WorkspacePaths
        The created directories.

    Raises
    ------
    WorkspaceError
        If the package name or version is not safe to embed in a path, or a directory cannot be created.
    """
    for label, value in (("name", descriptor.name), ("version", descriptor.version)):
        if not is_safe_name(value):
            raise WorkspaceError(f"The package {label} {value!r} cannot be used in a directory name.")

    root = temp_root or get_temp_root()
    base = os.path.join(root, f"build_{descriptor.name}_{descriptor.version}_{_make_stamp()}")
    paths = WorkspacePaths(
        build_dir=base,
        out_dir=f"{base}_out",
        package_dir=f"{base}_pkg" if with_package_dir else None,
    )

    created: list[str] = []
    try:
        os.makedirs(root, exist_ok=True)
        for path in paths.all_dirs():
            os.makedirs(path, exist_ok=False)
            created.append(path)
            logger.info("Created directory %s", path)
    except OSError as error:
        for path in created:
            shutil.rmtree(path, ignore_errors=True)
        raise WorkspaceError(f"Cannot create the scratch directories under {root}: {error}") from error

    return paths


def teardown(paths: WorkspacePaths) -> None:
    """Remove the scratch directories.

    Directories that do not exist anymore, e.g. an output tree already moved into the package
    directory, are skipped. Every directory is attempted even if an earlier removal fails.

    Parameters
    ----------
    paths : WorkspacePaths
        The directories to remove.

    Raises
    ------
    WorkspaceError
        If at least one existing directory cannot be removed.
    """
    failures = []
    for path in paths.all_dirs():
        if not os.path.lexists(path):
            logger.debug("Skipping %s as it does not exist anymore.", path)
            continue
        try:
            shutil.rmtree(path)
            logger.info("Removed directory %s", path)
        except OSError as error:
            logger.error("Unable to remove %s: %s", path, error)
            failures.append(path)

    if failures:
        raise WorkspaceError(f"Unable to remove the scratch directories: {', '.join(failures)}")
