# Copyright 2026 Google LLC
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.
#
# SPDX-License-Identifier: Apache-2.0

"""Central subprocess abstraction for provenancekit.

All external tool calls (``git``, ``docker``, build steps) go through
:func:`run_command`. This provides:

- Structured logging of every subprocess invocation.
- An explicit ``cwd`` on every call; the process never changes directory.
- Cancellation and timeouts that kill the child instead of orphaning it.
- Three output modes: captured in memory, streamed live, or written to
  ``log-*.txt`` temp files that outlive the call for post-mortem reading.

Key Concepts (ELI5)::

    ┌─────────────────────┬────────────────────────────────────────────────┐
    │ Concept             │ ELI5 Explanation                               │
    ├─────────────────────┼────────────────────────────────────────────────┤
    │ run_command         │ A single function that runs any command and   │
    │                     │ waits for it. Like a universal remote.        │
    ├─────────────────────┼────────────────────────────────────────────────┤
    │ CommandResult       │ A receipt for the command you ran. Tells you  │
    │                     │ if it worked, what it printed, and how long.  │
    ├─────────────────────┼────────────────────────────────────────────────┤
    │ inherit_env=False   │ The child sees *only* the variables you pass. │
    │                     │ Nothing leaks in from the parent process.     │
    └─────────────────────┴────────────────────────────────────────────────┘
"""

from __future__ import annotations

import asyncio
import os
import sys
import tempfile
import time
from collections.abc import Awaitable, Mapping
from dataclasses import dataclass
from pathlib import Path
from typing import Literal, TextIO, TypeVar

from provenancekit.logging import get_logger

log = get_logger('provenancekit.backends.run')

#: How a command's output is handled.
OutputMode = Literal['capture', 'stream', 'files']

_T = TypeVar('_T')

_RELAY_CHUNK = 4096


@dataclass(frozen=True)
class CommandResult:
    """Result of a subprocess invocation.

    Attributes:
        command: The command that was executed.
        return_code: Process exit code (0 = success).
        stdout: Captured standard output (``capture`` mode only).
        stderr: Captured standard error (``capture`` mode only).
        duration: Wall-clock duration in milliseconds.
        stdout_path: Log file holding stdout (``files`` mode only).
        stderr_path: Log file holding stderr (``files`` mode only).
    """

    command: list[str]
    return_code: int
    stdout: str = ''
    stderr: str = ''
    duration: float = 0.0
    stdout_path: str = ''
    stderr_path: str = ''

    @property
    def ok(self) -> bool:
        """Whether the command succeeded."""
        return self.return_code == 0

    @property
    def command_str(self) -> str:
        """The command as a single shell-style string."""
        return ' '.join(self.command)

    @property
    def logs_hint(self) -> str:
        """Where to look for the output, for error messages."""
        if self.stdout_path or self.stderr_path:
            return f'see {self.stdout_path!r} for logs, and {self.stderr_path!r} for errors'
        return self.stderr.strip()[:500]

    def cleanup_logs(self) -> None:
        """Remove the ``files`` mode log files, if any."""
        for path in (self.stdout_path, self.stderr_path):
            if path:
                try:
                    Path(path).unlink(missing_ok=True)
                except OSError as exc:
                    log.warning('log_cleanup_failed', path=path, error=str(exc))


async def _relay(reader: asyncio.StreamReader | None, sink: TextIO) -> None:
    if reader is None:
        return
    while True:
        chunk = await reader.read(_RELAY_CHUNK)
        if not chunk:
            return
        sink.write(chunk.decode('utf-8', errors='replace'))
        sink.flush()


async def _supervise(
    proc: asyncio.subprocess.Process,
    awaitable: Awaitable[_T],
    *,
    timeout: float | None,
    cmd_str: str,
) -> _T:
    """Await ``awaitable``; kill ``proc`` if we are cancelled or time out."""
    try:
        return await asyncio.wait_for(awaitable, timeout)
    except (asyncio.CancelledError, asyncio.TimeoutError):
        if proc.returncode is None:
            log.warning('command_killed', cmd=cmd_str, pid=proc.pid, timeout=timeout)
            proc.kill()
            await proc.wait()
        raise


async def run_command(
    cmd: list[str],
    *,
    cwd: Path | str | None = None,
    env: Mapping[str, str] | None = None,
    inherit_env: bool = True,
    timeout: float | None = None,
    output: OutputMode = 'capture',
    stream: TextIO | None = None,
) -> CommandResult:
    """Execute a command, wait for it, and report the result.

    Args:
        cmd: Command and arguments.
        cwd: Working directory for the command.
        env: Environment variables. Merged over ``os.environ`` when
            ``inherit_env`` is true, used verbatim otherwise.
        inherit_env: Whether the child inherits the parent environment.
        timeout: Seconds to wait before killing the process. ``None``
            waits forever.
        output: ``capture`` keeps output in memory, ``stream`` copies it
            live to ``stream`` (default ``sys.stderr``), ``files`` writes it
            to ``log-*.txt`` temp files that are left in place.
        stream: Sink for ``stream`` mode.

    Returns:
        A :class:`CommandResult`. A non-zero exit is reported, not raised.

    Raises:
        OSError: If the process cannot be spawned.
        asyncio.TimeoutError: If ``timeout`` elapses (the child is killed).
        asyncio.CancelledError: If the caller is cancelled (the child is killed).
    """
    cmd_str = ' '.join(cmd)
    log.debug('run_command', cmd=cmd_str, cwd=str(cwd or '.'), output=output)

    if inherit_env:
        full_env: dict[str, str] | None = {**os.environ, **env} if env else None
    else:
        full_env = dict(env or {})

    start = time.monotonic()
    stdout = stderr = ''
    stdout_path = stderr_path = ''

    if output == 'files':
        with (
            tempfile.NamedTemporaryFile('wb', prefix='log-', suffix='.txt', delete=False) as out_f,
            tempfile.NamedTemporaryFile('wb', prefix='log-', suffix='.txt', delete=False) as err_f,
        ):
            stdout_path, stderr_path = out_f.name, err_f.name
            proc = await asyncio.create_subprocess_exec(*cmd, cwd=cwd, env=full_env, stdout=out_f, stderr=err_f)
            await _supervise(proc, proc.wait(), timeout=timeout, cmd_str=cmd_str)
    elif output == 'stream':
        sink = stream or sys.stderr
        proc = await asyncio.create_subprocess_exec(
            *cmd,
            cwd=cwd,
            env=full_env,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
        await _supervise(
            proc,
            asyncio.gather(_relay(proc.stdout, sink), _relay(proc.stderr, sink), proc.wait()),
            timeout=timeout,
            cmd_str=cmd_str,
        )
    else:
        proc = await asyncio.create_subprocess_exec(
            *cmd,
            cwd=cwd,
            env=full_env,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
        out, err = await _supervise(proc, proc.communicate(), timeout=timeout, cmd_str=cmd_str)
        stdout = out.decode('utf-8', errors='replace')
        stderr = err.decode('utf-8', errors='replace')

    duration = (time.monotonic() - start) * 1000
    return_code = proc.returncode if proc.returncode is not None else -1
    result = CommandResult(
        command=list(cmd),
        return_code=return_code,
        stdout=stdout,
        stderr=stderr,
        duration=duration,
        stdout_path=stdout_path,
        stderr_path=stderr_path,
    )

    if result.ok:
        log.debug('command_ok', cmd=cmd_str, duration=duration)
    else:
        log.warning(
            'command_failed',
            cmd=cmd_str,
            return_code=return_code,
            stderr=stderr[:500],
            duration=duration,
        )
    return result


__all__ = [
    'CommandResult',
    'OutputMode',
    'run_command',
]
