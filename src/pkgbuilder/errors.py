# Copyright (c) 2026 - 2026, Oracle and/or its affiliates. All rights reserved.
# Licensed under the Universal Permissive License v 1.0 as shown at https://oss.oracle.com/licenses/upl/.

"""This module contains error classes for pkgbuilder."""


class PkgBuilderError(Exception):
    """The base class for pkgbuilder errors."""


class ConfigurationError(PkgBuilderError):
    """Happens when there is an error in the configuration (.ini) file."""


class DescriptorError(PkgBuilderError):
    """Happens when the package descriptor cannot be read or is invalid."""


class WorkspaceError(PkgBuilderError):
    """Happens when a scratch directory cannot be created or removed."""


class FetchError(PkgBuilderError):
    """Happens when a source cannot be cloned, downloaded or extracted."""


class BuildError(PkgBuilderError):
    """Happens when the build script cannot be run or exits with a non-zero status."""

    def __init__(self, message: str, returncode: int | None = None) -> None:
        """Construct the error.

        Parameters
        ----------
        message : str
            The error message.
        returncode : int | None
            The exit status of the build script, or None if it never exited normally.
        """
        super().__init__(message)
        self.returncode = returncode


class PackageError(PkgBuilderError):
    """Happens when the build output cannot be partitioned, archived or copied to its destination."""
