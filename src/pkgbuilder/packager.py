# Copyright (c) 2026 - 2026, Oracle and/or its affiliates. All rights reserved.
# Licensed under the Universal Permissive License v 1.0 as shown at https://oss.oracle.com/licenses/upl/.

"""This module turns the output tree of a build into one archive per package.

When the descriptor declares subpackages, the files matched by the patterns of each subpackage
are moved out of the output tree, in declaration order, into a directory of their own. A file is
therefore packaged at most once: the first subpackage matching it claims it and whatever is left in
the output tree afterwards forms the main package.
"""

import glob
import logging
import os
import shutil
import tarfile
import tempfile
from dataclasses import dataclass

from pkgbuilder.config.defaults import defaults
from pkgbuilder.descriptor import Descriptor, SubpackageSpec
from pkgbuilder.errors import PackageError
from pkgbuilder.workspace import WorkspacePaths

logger: logging.Logger = logging.getLogger(__name__)

#: The extension of every archive produced.
ARCHIVE_EXTENSION = ".tar.gz"


@dataclass(frozen=True)
class Archive:
    """An archive copied to its final destination."""

    #: The name of the package or subpackage in the archive.
    package: str

    #: The path of the archive at its destination.
    path: str


def get_manifest_name() -> str:
    """Return the file name of the descriptor copy embedded in every archive."""
    return defaults.get("packager", "manifest_name", fallback="package.toml")


def write_manifest(descriptor: Descriptor, directory: str) -> str:
    """Write the descriptor document into ``directory`` as the manifest.

    Parameters
    ----------
    descriptor : Descriptor
        The package descriptor.
    directory : str
        The root of the package tree.

    Returns
    -------
    str
        The path of the manifest.

    Raises
    ------
    PackageError
        If the manifest cannot be written.
    """
    manifest_path = os.path.join(directory, get_manifest_name())
    if os.path.lexists(manifest_path):
        logger.warning("The build produced a %s file, it is replaced by the manifest.", get_manifest_name())
    try:
        if descriptor.path and os.path.isfile(descriptor.path):
            shutil.copyfile(descriptor.path, manifest_path)
        else:
            with open(manifest_path, "w", encoding="utf-8") as file:
                file.write(descriptor.document)
    except OSError as error:
        raise PackageError(f"Unable to write the manifest into {directory}: {error}") from error

    return manifest_path


def _walk_files(root: str, directory: str) -> list[str]:
    found = []
    for dirpath, dirnames, filenames in os.walk(os.path.join(root, directory)):
        # Symbolic links to directories are packaged as links, like files.
        entries = filenames + [name for name in dirnames if os.path.islink(os.path.join(dirpath, name))]
        found.extend(os.path.relpath(os.path.join(dirpath, name), root) for name in entries)
    return found


def _inside_linked_dir(root: str, relative: str) -> bool:
    parent = os.path.dirname(relative)
    while parent:
        if os.path.islink(os.path.join(root, parent)):
            return True
        parent = os.path.dirname(parent)
    return False


def expand_patterns(root: str, patterns: tuple[str, ...] | list[str], exclude: set[str] | None = None) -> list[str]:
    """Return the files under ``root`` matched by ``patterns``.

    Patterns are relative to ``root``. ``**`` matches any number of directories and hidden files
    are matched by wildcards. A directory match selects every file below it. A pattern matching
    nothing contributes nothing.

    Parameters
    ----------
    root : str
        The directory the patterns are expanded against.
    patterns : tuple[str, ...] | list[str]
        The glob patterns.
    exclude : set[str] | None
        Relative paths that are never returned.

    Returns
    -------
    list[str]
        The sorted relative paths of the matched files, without duplicates.

    Raises
    ------
    PackageError
        If a pattern is absolute or reaches outside of ``root``.
    """
    exclude = exclude or set()
    matched: set[str] = set()
    for pattern in patterns:
        if os.path.isabs(pattern) or ".." in pattern.replace("\\", "/").split("/"):
            raise PackageError(f"The pattern {pattern} must stay inside the package tree.")

        for match in glob.glob(pattern, root_dir=root, recursive=True, include_hidden=True):
            relative = os.path.normpath(match)
            if _inside_linked_dir(root, relative):
                # ``**`` descends into linked directories, but the link itself is what gets packaged.
                continue
            full_path = os.path.join(root, relative)
            if os.path.isdir(full_path) and not os.path.islink(full_path):
                matched.update(_walk_files(root, relative))
            elif os.path.lexists(full_path):
                matched.add(relative)

    return sorted(matched - exclude)


def _prune_empty_dirs(root: str, directory: str) -> None:
    while os.path.normpath(directory) != os.path.normpath(root):
        try:
            os.rmdir(directory)
        except OSError:
            # Not empty.
            return
        directory = os.path.dirname(directory)


def move_files(root: str, relative_paths: list[str], target_dir: str) -> None:
    """Move files from ``root`` to the same relative paths under ``target_dir``.

    Directories left empty in ``root`` are removed.

    Raises
    ------
    PackageError
        If a file cannot be moved.
    """
    for relative in relative_paths:
        source = os.path.join(root, relative)
        target = os.path.join(target_dir, relative)
        try:
            os.makedirs(os.path.dirname(target), exist_ok=True)
            shutil.move(source, target)
        except (OSError, shutil.Error) as error:
            raise PackageError(f"Unable to move {relative} into {target_dir}: {error}") from error
        _prune_empty_dirs(root, os.path.dirname(source))


def create_archive(source_dir: str, archive_path: str) -> None:
    """Create a gzip compressed tarball of the content of ``source_dir``.

    The members are relative to ``source_dir`` so that extracting the archive reproduces the tree.

    Raises
    ------
    PackageError
        If the archive cannot be created.
    """
    logger.debug("Compressing %s into %s", source_dir, archive_path)
    try:
        with tarfile.open(archive_path, "w:gz") as tar:
            for entry in sorted(os.listdir(source_dir)):
                tar.add(os.path.join(source_dir, entry), arcname=entry)
    except (tarfile.TarError, OSError) as error:
        raise PackageError(f"Compression of {source_dir} failed: {error}") from error


def copy_archive(archive_path: str, destination: str) -> str:
    """Copy an archive to ``destination``, a file path or an existing directory.

    Returns
    -------
    str
        The path of the copied archive.

    Raises
    ------
    PackageError
        If the archive cannot be copied.
    """
    if os.path.isdir(destination):
        destination = os.path.join(destination, os.path.basename(archive_path))
    try:
        os.makedirs(os.path.dirname(os.path.abspath(destination)), exist_ok=True)
        shutil.copyfile(archive_path, destination)
    except OSError as error:
        raise PackageError(f"Unable to copy the archive to {destination}: {error}") from error

    logger.info("Wrote %s", destination)
    return destination


def publish_archives(staged: list[Archive], output_dir: str) -> list[Archive]:
    """Copy the staged archives into ``output_dir``.

    Either every archive is copied or none is: when a copy fails, the archives already copied are removed.

    Raises
    ------
    PackageError
        If an archive cannot be copied.
    """
    published: list[Archive] = []
    try:
        for archive in staged:
            published.append(Archive(package=archive.package, path=copy_archive(archive.path, output_dir)))
    except PackageError:
        for archive in published:
            try:
                os.remove(archive.path)
            except OSError as error:
                logger.error("Unable to remove the partial output %s: %s", archive.path, error)
        raise
    return published


def _package_subpackage(
    descriptor: Descriptor,
    subpackage: SubpackageSpec,
    paths: WorkspacePaths,
    staging_dir: str,
    fatal: bool,
) -> Archive | None:
    package_dir = paths.package_dir or ""
    subpackage_dir = os.path.join(package_dir, subpackage.name)
    try:
        os.makedirs(subpackage_dir)
    except OSError as error:
        raise PackageError(f"Unable to create the directory of subpackage {subpackage.name}: {error}") from error

    try:
        try:
            files = expand_patterns(paths.out_dir, subpackage.files, exclude={get_manifest_name()})
            logger.info("Subpackage %s claims %d file(s).", subpackage.name, len(files))
            move_files(paths.out_dir, files, subpackage_dir)
        except PackageError as error:
            if fatal:
                raise
            logger.error("Skipping subpackage %s: %s", subpackage.name, error)
            return None

        write_manifest(descriptor, subpackage_dir)

        staged_archive = os.path.join(staging_dir, f"{subpackage.name}{ARCHIVE_EXTENSION}")
        try:
            create_archive(subpackage_dir, staged_archive)
        except PackageError as error:
            if fatal:
                raise
            logger.error("Skipping subpackage %s: %s", subpackage.name, error)
            return None

        return Archive(package=subpackage.name, path=staged_archive)
    finally:
        shutil.rmtree(subpackage_dir, ignore_errors=True)


def package(
    descriptor: Descriptor,
    paths: WorkspacePaths,
    output_path: str,
    subpackage_failure_is_fatal: bool = False,
) -> list[Archive]:
    """Archive the output tree of a build and copy the archives to ``output_path``.

    Without subpackages, the whole output tree is archived as ``<name>.tar.gz`` and copied to
    ``output_path``, which is either the path of the archive or an existing directory.

    With subpackages, ``output_path`` is a directory. Each subpackage is archived as
    ``<subpackage>.tar.gz`` and the files claimed by no subpackage form ``<name>.tar.gz``.
    Every archive contains the manifest. The archives are copied only once all of them are built.

    Parameters
    ----------
    descriptor : Descriptor
        The package descriptor.
    paths : WorkspacePaths
        The scratch directories. ``package_dir`` must be set when the descriptor has subpackages.
    output_path : str
        Where the archives are copied to.
    subpackage_failure_is_fatal : bool
        If True, a subpackage that cannot be partitioned or archived raises instead of being skipped.

    Returns
    -------
    list[Archive]
        The archives written, subpackages first in declaration order and the main package last.

    Raises
    ------
    PackageError
        If a manifest cannot be written, the main package cannot be archived, an archive cannot be copied
        to its destination, or a subpackage fails while ``subpackage_failure_is_fatal`` is True.
    """
    write_manifest(descriptor, paths.out_dir)
    main_archive_name = f"{descriptor.name}{ARCHIVE_EXTENSION}"

    # Archives are staged next to the scratch directories, which are on the same file system.
    with tempfile.TemporaryDirectory(prefix="archives_", dir=os.path.dirname(paths.out_dir)) as staging_dir:
        staged_main = os.path.join(staging_dir, main_archive_name)

        if not descriptor.subpackages:
            create_archive(paths.out_dir, staged_main)
            return [Archive(package=descriptor.name, path=copy_archive(staged_main, output_path))]

        if not paths.package_dir:
            raise PackageError("A package directory is required to assemble subpackages.")
        if os.path.isfile(output_path):
            raise PackageError(f"{output_path} must be a directory when the package has subpackages.")
        staged = []
        for subpackage in descriptor.subpackages:
            archive = _package_subpackage(descriptor, subpackage, paths, staging_dir, subpackage_failure_is_fatal)
            if archive:
                staged.append(archive)

        main_dir = os.path.join(paths.package_dir, descriptor.name)
        try:
            os.rename(paths.out_dir, main_dir)
        except OSError as error:
            raise PackageError(f"Unable to move the remaining files into {main_dir}: {error}") from error

        create_archive(main_dir, staged_main)
        staged.append(Archive(package=descriptor.name, path=staged_main))

        try:
            os.makedirs(output_path, exist_ok=True)
        except OSError as error:
            raise PackageError(f"Unable to create the output directory {output_path}: {error}") from error
        return publish_archives(staged, output_path)
