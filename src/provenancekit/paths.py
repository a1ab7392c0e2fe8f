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

r"""Path and filename validation.

Every path that reaches provenancekit from a flag or a configuration
file passes through this module before any I/O happens.

Key Concepts (ELI5)::

    ┌──────────────────────────────┬───────────────────────────────────────┐
    │ Concept                      │ ELI5 Explanation                      │
    ├──────────────────────────────┼───────────────────────────────────────┤
    │ path_is_under_directory      │ "Is this file inside the fence?"      │
    │                              │ ``../x`` and ``/etc/passwd`` are not. │
    ├──────────────────────────────┼───────────────────────────────────────┤
    │ create_new_file_under_…      │ Open a brand-new file for writing.    │
    │                              │ Never overwrites; ``-`` is stdout.    │
    ├──────────────────────────────┼───────────────────────────────────────┤
    │ validate_filename            │ Generated names may only contain      │
    │                              │ ``[a-z0-9._-]``.                      │
    └──────────────────────────────┴───────────────────────────────────────┘

The containment check is lexical: the candidate is joined onto the base
directory, normalized, and must either equal the base or start with the
base followed by a separator. ``/tmp/foobar`` is therefore *not* under
``/tmp/foo``.
"""

from __future__ import annotations

import os
import sys
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path
from typing import TextIO

from provenancekit.errors import E, ProvenanceKitError

#: Path that means "write to standard output".
STDOUT_PATH = '-'

#: Suffix every attestation output must carry.
ATTESTATION_SUFFIX = '.intoto.jsonl'

#: Characters allowed in generated filenames, compared case-insensitively.
FILENAME_ALPHABET = frozenset('.abcdefghijklmnopqrstuvwxyz1234567890-_')

_NEW_FILE_MODE = 0o600


def _check_under(candidate: str, directory: str) -> Path:
    if candidate != directory and not candidate.startswith(directory.rstrip(os.sep) + os.sep):
        raise ProvenanceKitError(
            code=E.INVALID_PATH,
            message=f'{candidate!r} is not under {directory!r}.',
        )
    return Path(candidate)


def path_is_under_directory(path: str | os.PathLike[str], directory: str | os.PathLike[str]) -> Path:
    """Check that ``path`` resolves to ``directory`` or one of its descendants.

    A relative ``path`` is taken relative to ``directory``; an absolute one
    is checked as is.

    Args:
        path: Candidate path.
        directory: Absolute base directory.

    Returns:
        The normalized absolute path.

    Raises:
        ProvenanceKitError: ``INVALID_PATH`` if the path escapes.
    """
    base = os.path.abspath(os.fspath(directory))
    candidate = os.path.abspath(os.path.join(base, os.fspath(path)))
    return _check_under(candidate, base)


def path_is_under_current_directory(path: str | os.PathLike[str]) -> Path:
    """Same as :func:`path_is_under_directory` with the working directory as base."""
    return path_is_under_directory(path, os.getcwd())


def verify_attestation_path(path: str) -> Path:
    """Check that ``path`` ends in ``.intoto.jsonl`` and lies under the working directory."""
    if not path.endswith(ATTESTATION_SUFFIX):
        raise ProvenanceKitError(
            code=E.INVALID_PATH,
            message=f'Suffix of {path!r} must be {ATTESTATION_SUFFIX}.',
        )
    return path_is_under_current_directory(path)


def _open_exclusive(target: Path) -> TextIO:
    try:
        fd = os.open(target, os.O_WRONLY | os.O_CREAT | os.O_EXCL, _NEW_FILE_MODE)
    except (FileExistsError, FileNotFoundError, PermissionError, IsADirectoryError) as exc:
        raise ProvenanceKitError(
            code=E.INVALID_PATH,
            message=f'Cannot create {str(target)!r}: {exc.strerror}.',
            hint='Output files are never overwritten; remove the old file or pick a new name.',
        ) from exc
    return os.fdopen(fd, 'w', encoding='utf-8')


@contextmanager
def create_new_file_under_directory(path: str, directory: str | os.PathLike[str]) -> Iterator[TextIO]:
    """Create ``directory/path`` exclusively, creating parent directories first.

    ``-`` yields standard output.
    """
    if path == STDOUT_PATH:
        yield sys.stdout
        sys.stdout.flush()
        return
    target = path_is_under_directory(path, directory)
    target.parent.mkdir(parents=True, exist_ok=True)
    with _open_exclusive(target) as f:
        yield f


@contextmanager
def create_new_file_under_current_directory(path: str) -> Iterator[TextIO]:
    """Open a new file under the working directory for writing.

    The path is validated first, then opened with ``O_CREAT | O_EXCL`` so
    an existing file is never overwritten. ``-`` yields standard output and
    skips the filesystem checks.

    Raises:
        ProvenanceKitError: ``INVALID_PATH`` if the path escapes the working
            directory, already exists, or cannot be created.
    """
    if path == STDOUT_PATH:
        yield sys.stdout
        sys.stdout.flush()
        return
    target = path_is_under_current_directory(path)
    with _open_exclusive(target) as f:
        yield f


def check_new_file_under_current_directory(path: str) -> None:
    """Fail early if :func:`create_new_file_under_current_directory` would fail.

    Lets commands reject a bad output path before doing any work, while the
    file itself is only created once the content is fully computed.
    """
    if path == STDOUT_PATH:
        return
    target = path_is_under_current_directory(path)
    if target.exists():
        raise ProvenanceKitError(
            code=E.INVALID_PATH,
            message=f'{str(target)!r} already exists.',
            hint='Output files are never overwritten; remove the old file or pick a new name.',
        )


def safe_read_file(path: str | os.PathLike[str], directory: str | os.PathLike[str] | None = None) -> bytes:
    """Read a file after checking it lies under ``directory`` (default: cwd)."""
    base = os.getcwd() if directory is None else directory
    target = path_is_under_directory(path, base)
    return target.read_bytes()


def validate_filename(name: str) -> str:
    """Check a generated filename against the allow-listed alphabet.

    Args:
        name: Filename after all template substitution.

    Returns:
        ``name`` unchanged.

    Raises:
        ProvenanceKitError: ``INVALID_FILENAME`` on any other character,
            an empty name or a name made only of dots; ``INVALID_PATH`` if
            it escapes the working directory.
    """
    for char in name:
        if char.lower() not in FILENAME_ALPHABET:
            raise ProvenanceKitError(
                code=E.INVALID_FILENAME,
                message=f'Found character {char!r} in filename {name!r}.',
            )
    if not name:
        raise ProvenanceKitError(code=E.INVALID_FILENAME, message='Filename is empty.')
    if not name.strip('.'):
        # "." and ".." name directories, not files.
        raise ProvenanceKitError(code=E.INVALID_FILENAME, message=f'Filename {name!r} is only dots.')
    path_is_under_current_directory(name)
    return name


def verify_provenance_name(name: str) -> str:
    """Check a provenance name is a bare filename made of allow-listed characters."""
    if not name.strip('.') or os.path.basename(name) != name or any(c.lower() not in FILENAME_ALPHABET for c in name):
        raise ProvenanceKitError(
            code=E.INVALID_PROVENANCE_NAME,
            message=f'Invalid provenance name {name!r}.',
            hint='Use a plain file name such as my-build.build.slsa.',
        )
    return name


__all__ = [
    'ATTESTATION_SUFFIX',
    'FILENAME_ALPHABET',
    'STDOUT_PATH',
    'check_new_file_under_current_directory',
    'create_new_file_under_current_directory',
    'create_new_file_under_directory',
    'path_is_under_current_directory',
    'path_is_under_directory',
    'safe_read_file',
    'validate_filename',
    'verify_attestation_path',
    'verify_provenance_name',
]
