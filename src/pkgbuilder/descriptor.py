# Copyright (c) 2026 - 2026, Oracle and/or its affiliates. All rights reserved.
# Licensed under the Universal Permissive License v 1.0 as shown at https://oss.oracle.com/licenses/upl/.

"""This module contains the typed model of the package descriptor and its TOML loader.

A descriptor looks like the following:

.. code-block:: toml

    [package]
    name = "foo"
    version = "1.0"
    description = "The foo tool"
    license = "MIT"

    [[source]]
    source = "https://example.com/foo.git"
    git_ref = "v1.0"

    [[subpackage]]
    name = "foo-dev"
    description = "Headers for foo"
    files = ["usr/include/**"]

    [build]
    script = "make && make DESTDIR=$OUT install"
"""

import logging
import os
import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

import tomli

from pkgbuilder.config.defaults import defaults
from pkgbuilder.errors import DescriptorError

logger: logging.Logger = logging.getLogger(__name__)

#: The identifiers embedded in scratch directory and archive names must match this pattern.
SAFE_NAME_PATTERN = re.compile(r"^[A-Za-z0-9][A-Za-z0-9._+-]*$")

#: The suffixes used when the ``[fetcher]`` section of ``defaults.ini`` is not loaded.
FALLBACK_SUFFIXES = {
    "git_suffixes": [".git"],
    "tar_suffixes": [".tar.gz", ".tgz", ".tar.bz2", ".tar.xz"],
    "zip_suffixes": [".zip"],
}


class SourceKind(Enum):
    """The fetch strategies selected from the suffix of a source."""

    GIT = "git"
    TARBALL = "tarball"
    ZIP = "zip"


@dataclass(frozen=True)
class SourceSpec:
    """One input materialized into the build tree before the build script runs."""

    #: The URL or path of the source. Its suffix selects the fetch strategy.
    source: str

    #: The branch or tag to clone. Only used for git sources.
    git_ref: str | None = None

    #: The exact commit checked out after cloning. Only used for git sources.
    git_commit: str | None = None

    #: The path relative to the build tree where the source is placed. Defaults to the build tree itself.
    destination: str | None = None


@dataclass(frozen=True)
class SubpackageSpec:
    """A named subset of the build output packaged as its own archive."""

    #: The name of the subpackage, also used for its archive name.
    name: str

    #: The description of the subpackage.
    description: str

    #: Glob patterns relative to the output tree selecting the files of this subpackage.
    files: tuple[str, ...] = ()


@dataclass(frozen=True)
class BuildSpec:
    """The build instructions of a package."""

    #: The script interpreted by a shell inside the build tree.
    script: str


@dataclass(frozen=True)
class Descriptor:
    """The parsed package descriptor."""

    name: str
    version: str
    description: str
    license: str
    sources: tuple[SourceSpec, ...] = ()
    subpackages: tuple[SubpackageSpec, ...] = ()
    build: BuildSpec | None = None

    #: The verbatim text of the descriptor, embedded as the manifest of every archive.
    document: str = field(default="", repr=False)

    #: The path the descriptor was read from.
    path: str = ""


def is_safe_name(value: str) -> bool:
    """Return True if ``value`` can be embedded in a file name without escaping its directory.

    >>> is_safe_name("libfoo-1.0")
    True
    >>> is_safe_name("../etc")
    False
    """
    return bool(SAFE_NAME_PATTERN.match(value)) and ".." not in value


def classify_source(source: str) -> SourceKind | None:
    """Return the fetch strategy for ``source`` based on its suffix.

    The suffixes are read from the ``[fetcher]`` section of ``defaults.ini``. The longest
    matching suffix wins, so ``.tar.gz`` is preferred over a shorter suffix such as ``.gz``.

    Parameters
    ----------
    source : str
        The URL or path of the source.

    Returns
    -------
    SourceKind | None
        The fetch strategy or None if no suffix matches.
    """
    candidates: list[tuple[str, SourceKind]] = []
    for item, kind in (
        ("git_suffixes", SourceKind.GIT),
        ("tar_suffixes", SourceKind.TARBALL),
        ("zip_suffixes", SourceKind.ZIP),
    ):
        suffixes = defaults.get_list("fetcher", item, fallback=FALLBACK_SUFFIXES[item])
        candidates.extend((suffix, kind) for suffix in suffixes)

    # Query strings and trailing slashes do not take part in the classification.
    path = source.split("?", 1)[0].split("#", 1)[0].rstrip("/")
    for suffix, kind in sorted(candidates, key=lambda candidate: len(candidate[0]), reverse=True):
        if path.endswith(suffix):
            return kind

    return None


def _require_str(table: dict[str, Any], key: str, where: str, optional: bool = False) -> str | None:
    value = table.get(key)
    if value is None:
        if optional:
            return None
        raise DescriptorError(f'The "{key}" key is missing in {where}.')
    if not isinstance(value, str) or (not optional and not value.strip()):
        raise DescriptorError(f'The "{key}" key in {where} must be a non-empty string.')
    return value


def _require_tables(data: dict[str, Any], key: str) -> list[dict[str, Any]]:
    value = data.get(key, [])
    if not isinstance(value, list) or not all(isinstance(elem, dict) for elem in value):
        raise DescriptorError(f'"{key}" must be an array of tables, e.g. [[{key}]].')
    return value


def _parse_source(table: dict[str, Any], index: int) -> SourceSpec:
    where = f"[[source]] #{index + 1}"
    source = _require_str(table, "source", where) or ""
    spec = SourceSpec(
        source=source,
        git_ref=_require_str(table, "git_ref", where, optional=True),
        git_commit=_require_str(table, "git_commit", where, optional=True),
        destination=_require_str(table, "destination", where, optional=True),
    )

    kind = classify_source(source)
    if kind is None:
        raise DescriptorError(f"{where}: cannot determine how to fetch {source} from its suffix.")
    if kind is not SourceKind.GIT and (spec.git_ref or spec.git_commit):
        raise DescriptorError(f"{where}: git_ref and git_commit can only be used with git sources.")
    if spec.destination and ".." in spec.destination.replace("\\", "/").split("/"):
        raise DescriptorError(f"{where}: the destination {spec.destination} escapes the build directory.")

    return spec


def _parse_subpackage(table: dict[str, Any], index: int) -> SubpackageSpec:
    where = f"[[subpackage]] #{index + 1}"
    name = _require_str(table, "name", where) or ""
    if not is_safe_name(name):
        raise DescriptorError(f"{where}: {name!r} is not a valid subpackage name.")

    files = table.get("files", [])
    if not isinstance(files, list) or not all(isinstance(pattern, str) for pattern in files):
        raise DescriptorError(f'{where}: "files" must be an array of strings.')

    return SubpackageSpec(
        name=name,
        description=_require_str(table, "description", where, optional=True) or "",
        files=tuple(files),
    )


def parse_descriptor(document: str, path: str = "") -> Descriptor:
    """Parse and validate the TOML text of a descriptor.

    Parameters
    ----------
    document : str
        The TOML text.
    path : str
        The path the text was read from, used in error messages.

    Returns
    -------
    Descriptor
        The validated descriptor.

    Raises
    ------
    DescriptorError
        If the text is not valid TOML or does not describe a valid package.
    """
    try:
        data = tomli.loads(document)
    except tomli.TOMLDecodeError as error:
        raise DescriptorError(f"Cannot parse the descriptor {path}: {error}") from error

    package = data.get("package")
    if not isinstance(package, dict):
        raise DescriptorError("The [package] table is missing.")

    name, version, description, license_ = (
        _require_str(package, key, "[package]") or "" for key in ("name", "version", "description", "license")
    )
    for label, value in (("name", name), ("version", version)):
        if not is_safe_name(value):
            raise DescriptorError(f"The package {label} {value!r} contains characters that are not allowed.")

    sources = tuple(_parse_source(table, index) for index, table in enumerate(_require_tables(data, "source")))
    subpackages = tuple(
        _parse_subpackage(table, index) for index, table in enumerate(_require_tables(data, "subpackage"))
    )

    seen = {name}
    for subpackage in subpackages:
        if subpackage.name in seen:
            raise DescriptorError(f"The subpackage name {subpackage.name} is used more than once.")
        seen.add(subpackage.name)

    build = None
    if "build" in data:
        if not isinstance(data["build"], dict):
            raise DescriptorError("[build] must be a table.")
        build = BuildSpec(script=_require_str(data["build"], "script", "[build]") or "")

    return Descriptor(
        name=name,
        version=version,
        description=description,
        license=license_,
        sources=sources,
        subpackages=subpackages,
        build=build,
        document=document,
        path=path,
    )


def load_descriptor(path: str) -> Descriptor:
    """Read and validate the descriptor file at ``path``.

    Parameters
    ----------
    path : str
        The path to the TOML descriptor.

    Returns
    -------
    Descriptor
        The validated descriptor.

    Raises
    ------
    DescriptorError
        If the file cannot be read or is invalid.
    """
    logger.debug("Loading the descriptor %s", path)
    try:
        with open(path, encoding="utf-8") as file:
            document = file.read()
    except (OSError, UnicodeDecodeError) as error:
        raise DescriptorError(f"Cannot read the descriptor {path}: {error}") from error

    descriptor = parse_descriptor(document, os.path.abspath(path))
    logger.info(
        "Loaded %s %s with %d source(s) and %d subpackage(s).",
        descriptor.name,
        descriptor.version,
        len(descriptor.sources),
        len(descriptor.subpackages),
    )
    return descriptor
