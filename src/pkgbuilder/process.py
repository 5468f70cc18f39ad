# Copyright (c) 2026 - 2026, Oracle and/or its affiliates. All rights reserved.
# Licensed under the Universal Permissive License v 1.0 as shown at https://oss.oracle.com/licenses/upl/.

"""This module contains the abstraction used to run external commands.

The fetcher and the build executor never call :mod:`subprocess` directly. They receive a
:class:`ProcessRunner`, which allows the tests to replace the real processes with a fake runner.
"""

import logging
import os
import signal
import subprocess  # nosec B404
import sys
import threading
from abc import ABC, abstractmethod
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from typing import IO, TextIO

logger: logging.Logger = logging.getLogger(__name__)

#: The maximum number of bytes forwarded by one read of a child output stream.
PUMP_CHUNK_SIZE = 4096


def get_patched_env(
    patch: Mapping[str, str | None],
    _env: Mapping[str, str] | None = None,
) -> dict[str, str]:
    """Return a copy of ``os.environ`` updated according to ``patch``.

    This function does not modify ``os.environ``.

    Parameters
    ----------
    patch : Mapping[str, str | None]
        The variables to set. A ``None`` value unsets the variable.
    _env : Mapping[str, str] | None
        The environment being patched. This is ``None`` by default, in which case ``os.environ`` is used.

    Returns
    -------
    dict[str, str]
        The patched environment.
    """
    env = os.environ if _env is None else _env

    patched_env = dict(env)
    for var, value in patch.items():
        if value is None:
            patched_env.pop(var, None)
        else:
            patched_env[var] = value

    return patched_env


@dataclass(frozen=True)
class ProcessResult:
    """The outcome of one external command."""

    #: The exit status of the command.
    returncode: int

    #: The captured standard output. Empty when the output was streamed.
    stdout: str = ""

    #: The captured standard error. Empty when the output was streamed.
    stderr: str = ""

    @property
    def succeeded(self) -> bool:
        """Return True if the command exited with status zero."""
        return self.returncode == 0


class ProcessRunner(ABC):
    """The interface for running external commands synchronously."""

    @abstractmethod
    def run(
        self,
        args: Sequence[str],
        cwd: str | None = None,
        env: Mapping[str, str] | None = None,
        timeout: float | None = None,
        stream: bool = False,
    ) -> ProcessResult:
        """Run a command and block until it exits.

        Parameters
        ----------
        args : Sequence[str]
            The program and its arguments.
        cwd : str | None
            The working directory of the command.
        env : Mapping[str, str] | None
            The complete environment of the command. If None, the current environment is inherited.
        timeout : float | None
            The number of seconds after which the command is killed. None means no limit.
        stream : bool
            If True, the output of the command is copied live to our own stdout and stderr
            instead of being captured.

        Returns
        -------
        ProcessResult
            The exit status and captured output of the command.

        Raises
        ------
        OSError
            If the program cannot be started.
        subprocess.TimeoutExpired
            If the command does not exit before ``timeout``. The command is killed first.
        """


def _pump(source: IO[bytes], sink: TextIO) -> None:
    """Copy ``source`` to ``sink`` until EOF, flushing after every chunk."""
    target = getattr(sink, "buffer", None)
    for chunk in iter(lambda: source.read1(PUMP_CHUNK_SIZE), b""):  # type: ignore[attr-defined]
        if target is not None:
            # Flush the text layer first so that earlier text is not reordered after the bytes.
            sink.flush()
            target.write(chunk)
            target.flush()
        else:
            sink.write(chunk.decode("utf-8", errors="replace"))
            sink.flush()


def _signal_group(child: subprocess.Popen, sig: signal.Signals) -> None:
    """Send ``sig`` to the process group led by ``child``."""
    try:
        os.killpg(child.pid, sig)
    except ProcessLookupError:
        logger.debug("The process group of %s has already exited.", child.pid)


class SubprocessRunner(ProcessRunner):
    """Run commands as child processes using :mod:`subprocess`."""

    def run(
        self,
        args: Sequence[str],
        cwd: str | None = None,
        env: Mapping[str, str] | None = None,
        timeout: float | None = None,
        stream: bool = False,
    ) -> ProcessResult:
        """Run a command and block until it exits.

        See :meth:`ProcessRunner.run`.
        """
        logger.debug("Running %s in %s", args[0], cwd or os.getcwd())
        if not stream:
            result = subprocess.run(  # nosec B603
                args=list(args),
                capture_output=True,
                cwd=cwd,
                env=dict(env) if env is not None else None,
                # The exit status is checked by the callers.
                check=False,
                timeout=timeout,
            )
            return ProcessResult(
                returncode=result.returncode,
                stdout=result.stdout.decode("utf-8", errors="replace"),
                stderr=result.stderr.decode("utf-8", errors="replace"),
            )

        return ProcessResult(returncode=self._run_streamed(args, cwd, env, timeout))

    @staticmethod
    def _run_streamed(
        args: Sequence[str],
        cwd: str | None,
        env: Mapping[str, str] | None,
        timeout: float | None,
    ) -> int:
        with subprocess.Popen(  # nosec B603
            args=list(args),
            cwd=cwd,
            env=dict(env) if env is not None else None,
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
            # The child leads its own process group so that a timeout or an interrupt also
            # reaches the processes started by the script.
            start_new_session=True,
        ) as child:
            # Both pipes are drained independently so that a child filling one of them never blocks.
            pumps = [
                threading.Thread(target=_pump, args=(child.stdout, sys.stdout), daemon=True),
                threading.Thread(target=_pump, args=(child.stderr, sys.stderr), daemon=True),
            ]
            for pump in pumps:
                pump.start()

            try:
                returncode = child.wait(timeout=timeout)
            except subprocess.TimeoutExpired:
                logger.debug("Killing %s after %s seconds.", args[0], timeout)
                _signal_group(child, signal.SIGKILL)
                child.wait()
                raise
            except KeyboardInterrupt:
                logger.debug("Interrupted, terminating %s.", args[0])
                _signal_group(child, signal.SIGTERM)
                child.wait()
                raise
            finally:
                for pump in pumps:
                    pump.join()

        return returncode
