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

r"""Compile a Go binary from a validated configuration.

Only allow-listed flags and environment variables reach the compiler.
Anything else in the configuration is rejected before ``go`` starts.

Templates::

    {{ .Os }}        -> goos
    {{ .Arch }}      -> goarch
    {{ .Tag }}       -> $GITHUB_REF_NAME, or "unknown"
    {{ .Env.NAME }}  -> value passed as "NAME:value" on the command line

Dry run vs. real run::

    dry()                            run()
     │                                │
     ├── flags, env, ldflags          ├── flags, env, ldflags
     ├── binary name (templated,      ├── binary = $OUTPUT_BINARY
     │   allow-listed chars only)     │   (absolute path)
     └── CommandRunner.dry()          └── CommandRunner.run()

The dry run publishes what *would* run; that record is what ends up in
the signed provenance.
"""

from __future__ import annotations

import base64
import binascii
import json
import os
import re
from dataclasses import dataclass
from typing import Any, TextIO

from provenancekit.builders.golang.config import GoReleaserConfig
from provenancekit.context import set_output
from provenancekit.errors import E, ProvenanceKitError
from provenancekit.logging import get_logger
from provenancekit.paths import validate_filename
from provenancekit.runner import CommandRunner, CommandStep

logger = get_logger(__name__)

UNKNOWN_TAG = 'unknown'

ALLOWED_BUILD_ARGS = (
    '-a',
    '-race',
    '-msan',
    '-asan',
    '-v',
    '-x',
    '-buildinfo',
    '-buildmode',
    '-buildvcs',
    '-compiler',
    '-gccgoflags',
    '-gcflags',
    '-ldflags',
    '-linkshared',
    '-tags',
    '-trimpath',
)

ALLOWED_ENV_PREFIXES = ('GO', 'CGO_')

_SPECIAL_VAR_RE = re.compile(r'{{ \.([A-Z][a-z]*) }}')
_ENV_VAR_RE = re.compile(r'{{ \.Env\.(\w+) }}')


def marshal_list(values: list[str]) -> str:
    """Encode a list as base64 JSON, the form used for step outputs."""
    return base64.b64encode(json.dumps(values).encode('utf-8')).decode('ascii')


def unmarshal_list(text: str) -> list[str]:
    """Decode :func:`marshal_list` output. An empty string is an empty list."""
    if not text:
        return []
    try:
        values: Any = json.loads(base64.b64decode(text, validate=True))
    except (binascii.Error, ValueError) as exc:
        raise ProvenanceKitError(code=E.INVALID_FIELD, message=f'Cannot decode list {text!r}: {exc}') from exc
    if not isinstance(values, list) or not all(isinstance(v, str) for v in values):
        raise ProvenanceKitError(code=E.INVALID_FIELD, message=f'Expected a list of strings, got {values!r}.')
    return values


@dataclass(frozen=True)
class GoDryRun:
    """What a real build would run.

    Attributes:
        binary_name: Resolved output filename.
        step: The resolved compile step.
    """

    binary_name: str
    step: CommandStep

    def publish(self) -> None:
        """Publish the dry run as workflow step outputs."""
        set_output('go-binary-name', self.binary_name)
        set_output('go-command', marshal_list(self.step.command))
        set_output('go-env', marshal_list(self.step.env))
        set_output('go-working-dir', self.step.working_dir)


class GoBuild:
    """Builds one Go binary.

    Args:
        goc: Path to the ``go`` executable.
        config: The validated configuration.
        arg_env: Caller-supplied template values, ``"K1:v1,K2:v2"``.
    """

    def __init__(self, goc: str, config: GoReleaserConfig, arg_env: str = '') -> None:
        """Parse ``arg_env`` up front so bad values fail before any work."""
        self.goc = goc
        self.config = config
        self.arg_env: dict[str, str] = {}
        self.set_arg_env(arg_env)

    def set_arg_env(self, envs: str) -> None:
        """Add ``"K1:v1,K2:v2"`` values usable as ``{{ .Env.K1 }}``."""
        if not envs:
            return
        for entry in envs.split(','):
            item = entry.strip(' ')
            parts = item.split(':')
            if len(parts) != 2:
                raise ProvenanceKitError(
                    code=E.INVALID_ENV_VARIABLE,
                    message=f'Invalid env argument {item!r}, want NAME:VALUE.',
                )
            name, value = parts[0].strip(' '), parts[1].strip(' ')
            self.arg_env[name] = value
            logger.debug('arg_env_set', name=name)

    def working_dir(self) -> str:
        """The build directory (``dir`` from the config, else the cwd)."""
        if self.config.dir is None:
            return os.getcwd()
        return os.path.abspath(self.config.dir)

    def generate_flags(self) -> list[str]:
        """``go build -mod=vendor`` plus allow-listed configuration flags."""
        flags = [self.goc, 'build', '-mod=vendor']
        for flag in self.config.flags:
            if not flag.startswith(ALLOWED_BUILD_ARGS):
                raise ProvenanceKitError(
                    code=E.INVALID_FLAG,
                    message=f'Unsupported build argument {flag!r}.',
                    hint=f'Allowed: {", ".join(ALLOWED_BUILD_ARGS)}.',
                )
            flags.append(flag)
        return flags

    def generate_env(self) -> list[str]:
        """``GOOS``/``GOARCH`` followed by the configuration's env entries."""
        if not self.config.goos:
            raise ProvenanceKitError(code=E.INVALID_ENV_VARIABLE, message='Variable name empty: GOOS.')
        if not self.config.goarch:
            raise ProvenanceKitError(code=E.INVALID_ENV_VARIABLE, message='Variable name empty: GOARCH.')
        env = [f'GOOS={self.config.goos}', f'GOARCH={self.config.goarch}']
        for name, value in self.config.env.items():
            if not name.startswith(ALLOWED_ENV_PREFIXES):
                raise ProvenanceKitError(
                    code=E.INVALID_ENV_VARIABLE,
                    message=f'Invalid variable name {name!r}.',
                    hint=f'Names must start with one of: {", ".join(ALLOWED_ENV_PREFIXES)}.',
                )
            env.append(f'{name}={value}')
        return env

    def _resolve_special_variables(self, text: str) -> str:
        for match in _SPECIAL_VAR_RE.finditer(text):
            token, name = match.group(0), match.group(1)
            if name == 'Os':
                value = self.config.goos
            elif name == 'Arch':
                value = self.config.goarch
            elif name == 'Tag':
                value = os.environ.get('GITHUB_REF_NAME') or UNKNOWN_TAG
            else:
                raise ProvenanceKitError(code=E.INVALID_ENV_VARIABLE, message=f'Unknown template {token!r}.')
            if not value:
                raise ProvenanceKitError(code=E.INVALID_ENV_VARIABLE, message=f'Variable name empty: {token}.')
            text = text.replace(token, value)
        return text

    def _resolve_env_variables(self, text: str) -> str:
        for match in _ENV_VAR_RE.finditer(text):
            token, name = match.group(0), match.group(1)
            if name not in self.arg_env:
                raise ProvenanceKitError(code=E.INVALID_ENV_VARIABLE, message=f'Variable name empty: {token}.')
            text = text.replace(token, self.arg_env[name])
        return text

    def resolve_template(self, text: str) -> str:
        """Substitute ``{{ .Os }}``-style and ``{{ .Env.X }}`` templates."""
        return self._resolve_env_variables(self._resolve_special_variables(text))

    def generate_ldflags(self) -> str:
        """Resolved linker flags joined by spaces, or ``''``."""
        return ' '.join(self.resolve_template(v) for v in self.config.ldflags)

    def generate_output_filename(self) -> str:
        """The templated binary name, restricted to allow-listed characters."""
        return validate_filename(self.resolve_template(self.config.binary))

    def generate_command(self, flags: list[str], binary: str) -> list[str]:
        """Full compile command line."""
        command = [*flags, '-o', binary]
        if self.config.main is not None:
            command.append(self.config.main)
        return command

    def _flags_with_ldflags(self) -> list[str]:
        flags = self.generate_flags()
        ldflags = self.generate_ldflags()
        if ldflags:
            flags.append(f'-ldflags={ldflags}')
        return flags

    def dry(self) -> GoDryRun:
        """Resolve everything a build would run, without running it."""
        working_dir = self.working_dir()
        flags = self._flags_with_ldflags()
        env = self.generate_env()
        filename = self.generate_output_filename()
        runner = CommandRunner(
            steps=[CommandStep(command=self.generate_command(flags, filename), env=env, working_dir=working_dir)],
        )
        step = runner.dry()[0]
        logger.info('go_dry_run', binary=filename, command=' '.join(step.command))
        return GoDryRun(binary_name=filename, step=step)

    async def run(self, output_binary: str | None = None, *, stream: TextIO | None = None) -> list[CommandStep]:
        """Compile the binary.

        The compiler starts from the process environment (it needs
        ``HOME`` or ``GOCACHE`` for its build cache). The record holds
        only the generated variables, as in :meth:`dry`.

        Args:
            output_binary: Absolute output path. Defaults to
                ``$OUTPUT_BINARY``, which the trusted workflow sets.
            stream: Sink for compiler output.

        Returns:
            The record of the compile step.
        """
        working_dir = self.working_dir()
        flags = self._flags_with_ldflags()
        env = self.generate_env()
        binary = output_binary_path(os.environ.get('OUTPUT_BINARY', '') if output_binary is None else output_binary)
        runner = CommandRunner(
            steps=[CommandStep(command=self.generate_command(flags, binary), env=env, working_dir=working_dir)],
            stream=stream,
            inherit_env=True,
        )
        return await runner.run()


def output_binary_path(binary: str) -> str:
    """Check the compile output path is set and absolute."""
    if not binary:
        raise ProvenanceKitError(code=E.INVALID_FILENAME, message='OUTPUT_BINARY not defined.')
    if os.path.abspath(binary) != binary:
        raise ProvenanceKitError(code=E.INVALID_FILENAME, message=f'{binary!r} is not an absolute path.')
    return binary


__all__ = [
    'ALLOWED_BUILD_ARGS',
    'ALLOWED_ENV_PREFIXES',
    'UNKNOWN_TAG',
    'GoBuild',
    'GoDryRun',
    'marshal_list',
    'output_binary_path',
    'unmarshal_list',
]
