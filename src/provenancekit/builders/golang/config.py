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

r"""Reader for the Go builder's YAML configuration.

Example ``.slsa-goreleaser.yml``::

    version: 1
    goos: linux
    goarch: amd64
    env:
      - GO111MODULE=on
      - CGO_ENABLED=0
    flags:
      - -trimpath
      - -tags=netgo
    ldflags:
      - '-X main.Version={{ .Env.VERSION }}'
    binary: 'app-{{ .Os }}-{{ .Arch }}'
    main: ./cmd/app
    dir: ./

Key Concepts (ELI5)::

    ┌─────────────────────────┬────────────────────────────────────────────┐
    │ Concept                 │ ELI5 Explanation                           │
    ├─────────────────────────┼────────────────────────────────────────────┤
    │ version                 │ Checked before anything else. Only ``1``   │
    │                         │ is understood today.                       │
    ├─────────────────────────┼────────────────────────────────────────────┤
    │ main / dir              │ Must stay inside the checkout; otherwise   │
    │                         │ the build could compile someone else's     │
    │                         │ code.                                      │
    ├─────────────────────────┼────────────────────────────────────────────┤
    │ Fuzzy key matching      │ A typo like ``ldflag`` gets a "did you     │
    │                         │ mean ``ldflags``?" hint.                   │
    └─────────────────────────┴────────────────────────────────────────────┘
"""

from __future__ import annotations

import difflib
from dataclasses import dataclass, field
from typing import Any

import yaml

from provenancekit.errors import E, ProvenanceKitError
from provenancekit.logging import get_logger
from provenancekit.paths import path_is_under_current_directory, safe_read_file

logger = get_logger(__name__)

SUPPORTED_VERSIONS = frozenset({1})

VALID_KEYS = frozenset({'version', 'goos', 'goarch', 'env', 'flags', 'ldflags', 'binary', 'main', 'dir'})

_TYPE_MAP: dict[str, type | tuple[type, ...]] = {
    'goos': str,
    'goarch': str,
    'env': list,
    'flags': list,
    'ldflags': list,
    'binary': str,
    'main': str,
    'dir': str,
}


@dataclass(frozen=True)
class GoReleaserConfig:
    """Validated Go build configuration.

    Attributes:
        goos: Target operating system.
        goarch: Target architecture.
        main: Package to build, relative to ``dir``.
        dir: Directory to build in.
        env: Extra environment, ``NAME -> value``.
        flags: Extra ``go build`` flags.
        ldflags: Linker flags; may contain templates.
        binary: Output filename template.
    """

    goos: str = ''
    goarch: str = ''
    main: str | None = None
    dir: str | None = None
    env: dict[str, str] = field(default_factory=dict)
    flags: list[str] = field(default_factory=list)
    ldflags: list[str] = field(default_factory=list)
    binary: str = ''

    @classmethod
    def from_yaml(cls, text: str | bytes) -> GoReleaserConfig:
        """Parse and validate a YAML document."""
        try:
            raw = yaml.safe_load(text)
        except yaml.YAMLError as exc:
            raise ProvenanceKitError(code=E.CONFIG_INVALID, message=f'Invalid YAML: {exc}') from exc
        if raw is None:
            raw = {}
        if not isinstance(raw, dict):
            raise ProvenanceKitError(
                code=E.CONFIG_INVALID,
                message=f'Config must be a mapping, got {type(raw).__name__}.',
            )
        return cls.from_dict(raw)

    @classmethod
    def from_dict(cls, raw: dict[str, Any]) -> GoReleaserConfig:
        """Validate a decoded config mapping.

        Raises:
            ProvenanceKitError: ``UNSUPPORTED_VERSION`` first, then
                ``CONFIG_INVALID``, ``INVALID_DIRECTORY`` or
                ``INVALID_ENV_VARIABLE``.
        """
        _validate_version(raw.get('version'))

        for key, value in raw.items():
            if key not in VALID_KEYS:
                suggestion = difflib.get_close_matches(str(key), VALID_KEYS, n=1, cutoff=0.6)
                raise ProvenanceKitError(
                    code=E.CONFIG_INVALID,
                    message=f'Unknown key {key!r} in Go builder config.',
                    hint=f"Did you mean '{suggestion[0]}'?" if suggestion else '',
                )
            _validate_value_type(key, value)

        main = raw.get('main')
        directory = raw.get('dir')
        for value in (main, directory):
            if value is not None:
                _validate_directory(value)

        return cls(
            goos=raw.get('goos') or '',
            goarch=raw.get('goarch') or '',
            main=main,
            dir=directory,
            env=_parse_env(raw.get('env') or []),
            flags=[str(f) for f in raw.get('flags') or []],
            ldflags=[str(f) for f in raw.get('ldflags') or []],
            binary=raw.get('binary') or '',
        )

    @classmethod
    def from_file(cls, path: str) -> GoReleaserConfig:
        """Read a config file, which must lie under the working directory."""
        try:
            data = safe_read_file(path)
        except ProvenanceKitError as exc:
            raise ProvenanceKitError(
                code=E.INVALID_DIRECTORY,
                message=f'Config file {path!r} is not under the working directory.',
            ) from exc
        except OSError as exc:
            raise ProvenanceKitError(code=E.CONFIG_INVALID, message=f'Failed to read {path!r}: {exc}') from exc
        config = cls.from_yaml(data)
        logger.debug('go_config_loaded', path=path, goos=config.goos, goarch=config.goarch)
        return config


def _validate_version(version: Any) -> None:  # noqa: ANN401 - raw YAML value
    # bool is an int subclass; `version: true` is not version 1.
    if isinstance(version, bool) or version not in SUPPORTED_VERSIONS:
        raise ProvenanceKitError(
            code=E.UNSUPPORTED_VERSION,
            message=f'Version not supported: {version!r}.',
            hint=f'Supported versions: {", ".join(str(v) for v in sorted(SUPPORTED_VERSIONS))}.',
        )


def _validate_value_type(key: str, value: Any) -> None:  # noqa: ANN401 - raw YAML value
    expected = _TYPE_MAP.get(key)
    if expected is None or value is None:
        return
    if not isinstance(value, expected):
        type_name = expected.__name__ if isinstance(expected, type) else str(expected)
        raise ProvenanceKitError(
            code=E.CONFIG_INVALID,
            message=f"'{key}' must be {type_name}, got {type(value).__name__}.",
        )


def _validate_directory(path: str) -> None:
    try:
        path_is_under_current_directory(path)
    except ProvenanceKitError as exc:
        raise ProvenanceKitError(
            code=E.INVALID_DIRECTORY,
            message=f'Invalid directory {path!r}: not under the working directory.',
        ) from exc


def _parse_env(entries: list[Any]) -> dict[str, str]:
    env: dict[str, str] = {}
    for entry in entries:
        parts = str(entry).split('=')
        if len(parts) != 2:
            raise ProvenanceKitError(
                code=E.INVALID_ENV_VARIABLE,
                message=f'Invalid environment variable: {entry!r}.',
                hint='Use NAME=VALUE; values may not contain "=".',
            )
        env[parts[0]] = parts[1]
    return env


__all__ = [
    'SUPPORTED_VERSIONS',
    'GoReleaserConfig',
]
