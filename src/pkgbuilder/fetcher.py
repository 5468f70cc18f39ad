# Copyright (c) 2026 - 2026, Oracle and/or its affiliates. All rights reserved.
# Licensed under the Universal Permissive License v 1.0 as shown at https://oss.oracle.com/licenses/upl/.

"""This module materializes the sources of a package into the build directory."""

import logging
import os
import shutil
import subprocess  # nosec B404
import tarfile
import urllib.parse
import urllib.request
import zipfile

import requests
from git import GitCommandError
from git.exc import InvalidGitRepositoryError, NoSuchPathError
from git.repo import Repo

from pkgbuilder.config.defaults import defaults
from pkgbuilder.descriptor import SourceKind, SourceSpec, classify_source
from pkgbuilder.errors import FetchError
from pkgbuilder.process import ProcessRunner, SubprocessRunner, get_patched_env

logger: logging.Logger = logging.getLogger(__name__)

#: The suffix of the temporary file an archive is downloaded to, next to its destination.
DOWNLOAD_SUFFIX = ".tmpdownload"


def resolve_destination(build_dir: str, destination: str | None) -> str:
    """Return the absolute directory a source is placed in.

    Parameters
    ----------
    build_dir : str
        The build directory.
    destination : str | None
        The destination of the source relative to ``build_dir``. A leading ``/`` is ignored.

    Returns
    -------
    str
        The absolute destination.

    Raises
    ------
    FetchError
        If the destination is outside of ``build_dir``.

    Examples
    --------
    >>> resolve_destination("/tmp/build", "/src/foo")
    '/tmp/build/src/foo'
    >>> resolve_destination("/tmp/build", None)
    '/tmp/build'
    """
    root = os.path.abspath(build_dir)
    if not destination:
        return root

    resolved = os.path.normpath(os.path.join(root, destination.lstrip("/\\")))
    if os.path.commonpath([root, resolved]) != root:
        raise FetchError(f"The destination {destination} is outside of the build directory.")
    return resolved


def clone_git_source(spec: SourceSpec, destination: str, runner: ProcessRunner) -> None:
    """Clone a git repository into ``destination``.

    Without ``git_commit``, a shallow clone of ``git_ref`` (or the default branch) is made. A
    commit cannot be checked out reliably from a shallow history, so when ``git_commit`` is set
    the full history is cloned, the commit is verified to exist and the work tree is hard reset to it.

    Parameters
    ----------
    spec : SourceSpec
        The git source.
    destination : str
        The directory to clone into. It must not exist or be empty.
    runner : ProcessRunner
        The runner used to call ``git clone``.

    Raises
    ------
    FetchError
        If the clone fails or the commit cannot be checked out.
    """
    args = ["git", "clone"]
    if not spec.git_commit:
        args.extend(["--depth", str(defaults.getint("git", "depth", fallback=1))])
    if spec.git_ref:
        args.extend(["--branch", spec.git_ref])
    args.extend(["--", spec.source, destination])

    logger.info("Cloning %s into %s", spec.source, destination)
    try:
        os.makedirs(os.path.dirname(destination), exist_ok=True)
        result = runner.run(
            args,
            # Stop ``git clone`` from prompting for login credentials.
            env=get_patched_env({"GIT_TERMINAL_PROMPT": "0"}),
            timeout=defaults.getint("git", "timeout", fallback=600) or None,
        )
    except (OSError, subprocess.TimeoutExpired) as error:
        raise FetchError(f"Failed to clone {spec.source}: {error}") from error

    if not result.succeeded:
        logger.error("Git clone failed: %s", result.stderr.strip())
        raise FetchError(f"Failed to clone {spec.source}: git exited with status {result.returncode}.")

    if spec.git_commit:
        checkout_commit(destination, spec.git_commit)


def checkout_commit(repo_path: str, commit: str) -> None:
    """Hard reset the repository at ``repo_path`` to ``commit``.

    Parameters
    ----------
    repo_path : str
        The path to the cloned repository.
    commit : str
        The commit to check out. Any revision accepted by ``git rev-parse`` works.

    Raises
    ------
    FetchError
        If ``repo_path`` is not a repository or ``commit`` is not in its history.
    """
    try:
        repo = Repo(path=repo_path)
    except (InvalidGitRepositoryError, NoSuchPathError) as error:
        raise FetchError(f"{repo_path} is not a git repository.") from error

    try:
        full_hash = repo.git.rev_parse("--verify", f"{commit}^{{commit}}")
    except GitCommandError as error:
        raise FetchError(f"The commit {commit} does not exist in the history of {repo_path}.") from error

    try:
        repo.git.reset("--hard", full_hash)
    except GitCommandError as error:
        raise FetchError(f"Unable to reset {repo_path} to {commit}: {error.stderr.strip()}") from error

    logger.info("Checked out commit %s", full_hash)


def download_file(url: str, dest: str) -> None:
    """Stream ``url`` into the local file ``dest``.

    HTTP(S) URLs are downloaded with ``requests``. ``file://`` URLs and plain paths are copied.

    Parameters
    ----------
    url : str
        The URL or path of the file.
    dest : str
        The path of the file to write, including the file name.

    Raises
    ------
    FetchError
        If the file cannot be retrieved or written.
    """
    parsed_url = urllib.parse.urlparse(url)
    if parsed_url.scheme in ("http", "https"):
        timeout = defaults.getint("requests", "timeout", fallback=30)
        chunk_size = defaults.getint("requests", "chunk_size", fallback=65536)
        try:
            with requests.get(url=url, stream=True, timeout=timeout) as response:
                if response.status_code != 200:
                    raise FetchError(f"Cannot download {url}: the server returned status {response.status_code}.")
                with open(dest, "wb") as file:
                    for chunk in response.iter_content(chunk_size=chunk_size):
                        file.write(chunk)
        except (requests.RequestException, OSError) as error:
            raise FetchError(f"Cannot download {url}: {error}") from error
        return

    if parsed_url.scheme == "file":
        path = urllib.request.url2pathname(parsed_url.path)
    elif not parsed_url.scheme or len(parsed_url.scheme) == 1:
        # A one letter scheme is a Windows drive.
        path = url
    else:
        raise FetchError(f"Cannot download {url}: the {parsed_url.scheme} scheme is not supported.")

    try:
        shutil.copyfile(path, dest)
    except OSError as error:
        raise FetchError(f"Cannot copy {path}: {error}") from error


def _restore_zip_permissions(archive: zipfile.ZipFile, destination: str) -> None:
    # zipfile drops the permission bits, which makes scripts such as ``configure`` unusable.
    root = os.path.realpath(destination)
    for info in archive.infolist():
        mode = (info.external_attr >> 16) & 0o777
        if not mode or info.is_dir():
            continue
        # Member names are untrusted. Only files extracted below the destination are touched.
        path = os.path.realpath(os.path.join(root, info.filename))
        if os.path.commonpath([root, path]) != root:
            logger.debug("Not restoring the permissions of %s as it is outside of %s.", info.filename, root)
            continue
        if os.path.isfile(path):
            os.chmod(path, mode)


def extract_archive(archive_path: str, destination: str, kind: SourceKind) -> None:
    """Extract a tarball or zip archive into ``destination``.

    Parameters
    ----------
    archive_path : str
        The path to the archive.
    destination : str
        The directory to extract into. It is created if missing.
    kind : SourceKind
        Either ``SourceKind.TARBALL`` or ``SourceKind.ZIP``.

    Raises
    ------
    FetchError
        If the archive cannot be read or extracted.
    """
    try:
        os.makedirs(destination, exist_ok=True)
        if kind is SourceKind.TARBALL:
            # The compression is detected from the content, not from the name.
            with tarfile.open(archive_path, "r:*") as tar:
                tar.extractall(destination, filter="data")
        elif kind is SourceKind.ZIP:
            with zipfile.ZipFile(archive_path) as archive:
                archive.extractall(destination)
                _restore_zip_permissions(archive, destination)
        else:
            raise FetchError(f"{kind.value} sources are not archives.")
    except (tarfile.TarError, zipfile.BadZipFile, OSError) as error:
        raise FetchError(f"Cannot extract {os.path.basename(archive_path)}: {error}") from error


def fetch_archive_source(spec: SourceSpec, destination: str, kind: SourceKind) -> None:
    """Download an archive next to ``destination``, extract it there and delete the download.

    Raises
    ------
    FetchError
        If the download or the extraction fails.
    """
    download_path = destination.rstrip("/\\") + DOWNLOAD_SUFFIX
    try:
        os.makedirs(os.path.dirname(download_path), exist_ok=True)
    except OSError as error:
        raise FetchError(f"Cannot create the directory of {destination}: {error}") from error

    try:
        logger.info("Downloading %s into %s", spec.source, destination)
        download_file(spec.source, download_path)
        logger.info("Extracting %s into %s", spec.source, destination)
        extract_archive(download_path, destination, kind)
    finally:
        if os.path.exists(download_path):
            os.remove(download_path)


def fetch_source(spec: SourceSpec, build_dir: str, runner: ProcessRunner) -> None:
    """Materialize one source into ``build_dir``.

    Raises
    ------
    FetchError
        If the source is not supported or cannot be fetched.
    """
    destination = resolve_destination(build_dir, spec.destination)
    kind = classify_source(spec.source)
    match kind:
        case SourceKind.GIT:
            clone_git_source(spec, destination, runner)
        case SourceKind.TARBALL | SourceKind.ZIP:
            fetch_archive_source(spec, destination, kind)
        case _:
            raise FetchError(f"Cannot determine how to fetch {spec.source} from its suffix.")


def fetch_sources(
    sources: tuple[SourceSpec, ...] | list[SourceSpec],
    build_dir: str,
    runner: ProcessRunner | None = None,
    fail_fast: bool = False,
) -> list[SourceSpec]:
    """Fetch every source in order.

    Sources are independent of each other. By default, a source that cannot be fetched is
    logged and the remaining sources are still fetched.

    Parameters
    ----------
    sources : tuple[SourceSpec, ...] | list[SourceSpec]
        The sources of the package.
    build_dir : str
        The build directory.
    runner : ProcessRunner | None
        The runner for external commands. A :class:`SubprocessRunner` is used if None.
    fail_fast : bool
        If True, the first failure is raised instead of logged.

    Returns
    -------
    list[SourceSpec]
        The sources that could not be fetched.

    Raises
    ------
    FetchError
        If ``fail_fast`` is True and a source cannot be fetched.
    """
    if not sources:
        logger.info("No sources to fetch.")
        return []

    runner = runner or SubprocessRunner()
    failed = []
    for spec in sources:
        try:
            fetch_source(spec, build_dir, runner)
        except FetchError as error:
            if fail_fast:
                raise
            logger.error("Skipping source %s: %s", spec.source, error)
            failed.append(spec)

    logger.info("Fetched %d of %d source(s).", len(sources) - len(failed), len(sources))
    return failed
