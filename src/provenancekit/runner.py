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

r"""Secure command runner for build steps.

Runs an ordered list of :class:`CommandStep` and returns a faithful
record of what ran. The record is embedded in signed provenance, so
:meth:`CommandRunner.dry` and :meth:`CommandRunner.run` share a single
resolver and produce identical records for identical inputs.

Key Concepts (ELI5)::

    ┌─────────────────────┬────────────────────────────────────────────────┐
    │ Concept             │ ELI5 Explanation                               │
    ├─────────────────────┼────────────────────────────────────────────────┤
    │ CommandStep         │ One command, its env and where to run it.     │
    ├─────────────────────┼────────────────────────────────────────────────┤
    │ Explicit env        │ The child gets PWD, a fixed PATH, and what    │
    │                     │ you list. Nothing else leaks in (no           │
    │                     │ LD_PRELOAD from the runner machine).          │
    ├─────────────────────┼────────────────────────────────────────────────┤
    │ Last one wins       │ ``A=1 B=2 A=3`` runs with ``B=2 A=3``.        │
    ├─────────────────────┼────────────────────────────────────────────────┤
    │ dry()               │ Resolve everything, run nothing. Same record. │
    └─────────────────────┴────────────────────────────────────────────────┘

Failure semantics::

    step 1 ok ──▶ step 2 ok ──▶ step 3 FAILS ──▶ raise STEP_FAILED
                                                  completed_steps = [1, 2]
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from typing import Any, TextIO

from provenancekit.backends._run import run_command
from provenancekit.errors import E, ProvenanceKitError
from provenancekit.logging import get_logger

logger = get_logger(__name__)

#: PATH every step runs with unless the step overrides it.
DEFAULT_PATH = '/usr/local/sbin:/usr/local/bin:/usr/sbin:/usr/bin:/sbin:/bin'

#: Variables that are implied by the runner and left out of the record.
POSIX_VARIABLES = frozenset({'PATH', 'PWD', 'HOME', 'USER', 'TERM', 'SHELL', 'EDITOR'})


@dataclass
class CommandStep:
    """A single build step.

    Before running, ``working_dir`` may be relative and ``env`` may hold
    duplicates. The records returned by the runner have an absolute
    ``working_dir`` and deduplicated ``env``.

    Attributes:
        command: Program and arguments.
        env: ``KEY=VALUE`` entries.
        working_dir: Directory to run in.
    """

    command: list[str] = field(default_factory=list)
    env: list[str] = field(default_factory=list)
    working_dir: str = ''

    def to_dict(self) -> dict[str, Any]:
        """Serialize with the JSON field names used in provenance."""
        return {
            'command': list(self.command),
            'env': list(self.env),
            'workingDir': self.working_dir,
        }


def _split_env(entry: str) -> tuple[str, str]:
    key, sep, value = entry.partition('=')
    if not sep or not key:
        raise ProvenanceKitError(
            code=E.RUNNER_INVALID_ENV,
            message=f'Environment entry {entry!r} is not in KEY=VALUE form.',
        )
    return key, value


def merge_env(*groups: list[str]) -> list[str]:
    """Concatenate ``KEY=VALUE`` lists and drop shadowed keys.

    Each key appears once, at the position of its last occurrence,
    carrying its last value.

    >>> merge_env(['A=1', 'B=2'], ['A=3'])
    ['B=2', 'A=3']
    """
    entries = [entry for group in groups for entry in group]
    last_index = {_split_env(entry)[0]: i for i, entry in enumerate(entries)}
    return [entry for i, entry in enumerate(entries) if last_index[_split_env(entry)[0]] == i]


class StepFailedError(ProvenanceKitError):
    """A step could not be spawned or exited non-zero.

    Attributes:
        completed_steps: Records of the steps that ran successfully before
            the failure.
    """

    def __init__(self, message: str, *, completed_steps: list[CommandStep]) -> None:
        """Initialize with the failure message and the successful steps."""
        super().__init__(code=E.STEP_FAILED, message=message)
        self.completed_steps = list(completed_steps)


@dataclass(frozen=True)
class _ResolvedStep:
    record: CommandStep
    process_env: dict[str, str]


@dataclass
class CommandRunner:
    """Runs build steps in order with an explicit environment.

    Attributes:
        env: ``KEY=VALUE`` entries applied to every step. A step's own
            entries take precedence.
        steps: The steps to run.
        stream: Where live step output goes (default ``sys.stderr``).
        inherit_env: Start each step from the process environment instead
            of an empty one. The record is the same either way; only the
            fixed ``PATH`` is dropped so the caller's toolchain stays
            reachable.
    """

    env: list[str] = field(default_factory=list)
    steps: list[CommandStep] = field(default_factory=list)
    stream: TextIO | None = None
    inherit_env: bool = False

    def _resolve(self, step: CommandStep) -> _ResolvedStep:
        if not step.command:
            raise ProvenanceKitError(code=E.RUNNER_EMPTY_COMMAND, message='Command is empty.')
        try:
            pwd = os.path.abspath(step.working_dir or os.curdir)
        except OSError as exc:
            raise ProvenanceKitError(
                code=E.RUNNER_INVALID_WORKDIR,
                message=f'Cannot resolve working directory {step.working_dir!r}: {exc}',
            ) from exc

        base = [f'PWD={pwd}'] if self.inherit_env else [f'PWD={pwd}', f'PATH={DEFAULT_PATH}']
        merged = merge_env(base, self.env, step.env)
        process_env = dict(_split_env(entry) for entry in merged)
        recorded = [entry for entry in merged if _split_env(entry)[0] not in POSIX_VARIABLES]
        return _ResolvedStep(
            record=CommandStep(command=list(step.command), env=recorded, working_dir=pwd),
            process_env=process_env,
        )

    def dry(self) -> list[CommandStep]:
        """Resolve every step without executing anything."""
        return [self._resolve(step).record for step in self.steps]

    async def run(self) -> list[CommandStep]:
        """Run every step in order.

        Returns:
            The resolved records of all steps.

        Raises:
            ProvenanceKitError: ``STEP_FAILED`` when a step cannot be
                spawned or exits non-zero; the steps that did succeed are
                on the exception's ``completed_steps`` attribute. Resolution
                errors (empty command, bad env entry) are raised as is.
        """
        completed: list[CommandStep] = []
        for index, step in enumerate(self.steps):
            resolved = self._resolve(step)
            record = resolved.record
            logger.info('step_started', index=index, command=' '.join(record.command), cwd=record.working_dir)
            try:
                result = await run_command(
                    record.command,
                    cwd=record.working_dir,
                    env=resolved.process_env,
                    inherit_env=self.inherit_env,
                    output='stream',
                    stream=self.stream,
                )
            except OSError as exc:
                raise _step_failed(index, record, f'could not start: {exc}', completed) from exc
            if not result.ok:
                raise _step_failed(index, record, f'exited with status {result.return_code}', completed)
            completed.append(record)
            logger.debug('step_finished', index=index, duration=result.duration)
        return completed


def _step_failed(index: int, record: CommandStep, reason: str, completed: list[CommandStep]) -> StepFailedError:
    logger.error('step_failed', index=index, command=' '.join(record.command), reason=reason)
    return StepFailedError(
        f'Step {index} ({" ".join(record.command)!r}) {reason}.',
        completed_steps=completed,
    )


__all__ = [
    'DEFAULT_PATH',
    'POSIX_VARIABLES',
    'CommandRunner',
    'CommandStep',
    'StepFailedError',
    'merge_env',
]
