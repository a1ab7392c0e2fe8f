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

"""Structured error system for provenancekit.

Every failure is a :class:`ProvenanceKitError` carrying a ``PK-NAMED-KEY``
code from a closed enum, so callers and tests match on the *kind* of
failure rather than on message text. The underlying exception, when
there is one, is chained with ``raise ... from exc``.

Key Concepts (ELI5)::

    ┌─────────────────────┬────────────────────────────────────────────────┐
    │ Concept             │ ELI5 Explanation                               │
    ├─────────────────────┼────────────────────────────────────────────────┤
    │ ErrorCode           │ A unique named ID like "PK-INVALID-PATH" for  │
    │                     │ each kind of failure.                         │
    ├─────────────────────┼────────────────────────────────────────────────┤
    │ ErrorInfo           │ A bundle of code + message + hint.            │
    ├─────────────────────┼────────────────────────────────────────────────┤
    │ ProvenanceKitError  │ The one exception type we raise. Carries the  │
    │                     │ error card so renderers can display it.       │
    ├─────────────────────┼────────────────────────────────────────────────┤
    │ ERRORS catalog      │ Pre-written explanations and fixes.           │
    ├─────────────────────┼────────────────────────────────────────────────┤
    │ explain()           │ Looks up an error code and prints details.    │
    └─────────────────────┴────────────────────────────────────────────────┘

Code categories::

    Validation   Caught before any subprocess or network call.
    Subprocess   A build step, git or docker invocation failed.
    Integrity    The output cannot be trusted; nothing is attested.
    External     Signing, transparency log, OIDC or GitHub API failures.

Usage::

    from provenancekit.errors import E, ProvenanceKitError

    raise ProvenanceKitError(
        code=E.INVALID_PATH,
        message="'../x' is not under the current directory",
    )
"""

from __future__ import annotations

import sys
from dataclasses import dataclass
from enum import Enum
from typing import TextIO

from rich.console import Console
from rich.markup import escape as rich_escape


class ErrorCode(str, Enum):
    """Enumeration of all provenancekit diagnostic codes."""

    # Validation
    INVALID_PATH = 'PK-INVALID-PATH'
    INVALID_FILENAME = 'PK-INVALID-FILENAME'
    INVALID_DIRECTORY = 'PK-INVALID-DIRECTORY'
    INVALID_DIGEST = 'PK-INVALID-DIGEST'
    INVALID_IMAGE = 'PK-INVALID-IMAGE'
    INVALID_URI = 'PK-INVALID-URI'
    INVALID_BASE64 = 'PK-INVALID-BASE64'
    MISSING_SUBJECT_NAME = 'PK-MISSING-SUBJECT-NAME'
    UNSUPPORTED_VERSION = 'PK-UNSUPPORTED-VERSION'
    INVALID_ENV_VARIABLE = 'PK-INVALID-ENV-VARIABLE'
    MISSING_ENV_VARIABLE = 'PK-MISSING-ENV-VARIABLE'
    INVALID_FLAG = 'PK-INVALID-FLAG'
    INVALID_FIELD = 'PK-INVALID-FIELD'
    INVALID_PROVENANCE_NAME = 'PK-INVALID-PROVENANCE-NAME'
    CONFIG_INVALID = 'PK-CONFIG-INVALID'

    # Subprocess
    RUNNER_EMPTY_COMMAND = 'PK-RUNNER-EMPTY-COMMAND'
    RUNNER_INVALID_WORKDIR = 'PK-RUNNER-INVALID-WORKDIR'
    RUNNER_INVALID_ENV = 'PK-RUNNER-INVALID-ENV'
    STEP_FAILED = 'PK-STEP-FAILED'
    SUBPROCESS_FAILED = 'PK-SUBPROCESS-FAILED'

    # Integrity
    CHECKOUT_MISMATCH = 'PK-CHECKOUT-MISMATCH'
    ARTIFACT_PREEXISTING = 'PK-ARTIFACT-PREEXISTING'
    NO_ARTIFACTS = 'PK-NO-ARTIFACTS'
    DUPLICATE_SUBJECT = 'PK-DUPLICATE-SUBJECT'
    VERIFICATION_FAILED = 'PK-VERIFICATION-FAILED'

    # External services
    INVALID_OIDC_TOKEN = 'PK-INVALID-OIDC-TOKEN'
    OIDC_REQUEST_FAILED = 'PK-OIDC-REQUEST-FAILED'
    GITHUB_API_FAILED = 'PK-GITHUB-API-FAILED'
    SIGNING_FAILED = 'PK-SIGNING-FAILED'
    TLOG_UPLOAD_FAILED = 'PK-TLOG-UPLOAD-FAILED'


# Convenience alias for shorter imports.
E = ErrorCode


@dataclass(frozen=True)
class ErrorInfo:
    """Metadata for a single error code.

    Attributes:
        code: The ``PK-NAMED-KEY`` error code.
        message: Human-readable description of what went wrong.
        hint: Optional suggestion for how to fix the error.
    """

    code: ErrorCode
    message: str
    hint: str = ''


class ProvenanceKitError(Exception):
    """Base exception for all provenancekit errors.

    Args:
        code: The error code from :class:`ErrorCode`.
        message: Human-readable description of what went wrong.
        hint: Optional suggestion for how to fix the error.
    """

    def __init__(self, code: ErrorCode, message: str, hint: str = '') -> None:
        """Initialize with an error code, message, and optional hint."""
        self.info = ErrorInfo(code=code, message=message, hint=hint)
        super().__init__(f'[{code.value}] {message}')

    @property
    def code(self) -> ErrorCode:
        """The error code."""
        return self.info.code

    @property
    def hint(self) -> str:
        """Suggestion for fixing this error, or empty string."""
        return self.info.hint


ERRORS: dict[ErrorCode, ErrorInfo] = {
    E.INVALID_PATH: ErrorInfo(
        code=E.INVALID_PATH,
        message='A path resolved outside the current working directory, or the file already exists.',
        hint='Pass a relative path inside the workspace that does not exist yet.',
    ),
    E.INVALID_FILENAME: ErrorInfo(
        code=E.INVALID_FILENAME,
        message='A generated filename contains characters outside [a-z0-9._-].',
        hint='Check the binary template and the values substituted into it (e.g. GOARCH).',
    ),
    E.UNSUPPORTED_VERSION: ErrorInfo(
        code=E.UNSUPPORTED_VERSION,
        message='The build configuration declares a version this tool does not support.',
        hint="Set 'version: 1' in the build configuration.",
    ),
    E.INVALID_ENV_VARIABLE: ErrorInfo(
        code=E.INVALID_ENV_VARIABLE,
        message='An environment variable is not on the allow-list.',
        hint='Only variables starting with GO or CGO_ may be set by the build configuration.',
    ),
    E.INVALID_FLAG: ErrorInfo(
        code=E.INVALID_FLAG,
        message='A compiler flag is not on the allow-list.',
    ),
    E.CHECKOUT_MISMATCH: ErrorInfo(
        code=E.CHECKOUT_MISMATCH,
        message='The repository is checked out at a different commit than requested.',
        hint='Pass --force-checkout to clone a fresh copy at the requested commit.',
    ),
    E.ARTIFACT_PREEXISTING: ErrorInfo(
        code=E.ARTIFACT_PREEXISTING,
        message='Files matching the artifact pattern exist before the build ran.',
        hint='Remove stale artifacts so the attested files are the ones the build produced.',
    ),
    E.NO_ARTIFACTS: ErrorInfo(
        code=E.NO_ARTIFACTS,
        message='The build finished but produced no files matching the artifact pattern.',
        hint="Check 'artifact_path' in the build configuration.",
    ),
    E.DUPLICATE_SUBJECT: ErrorInfo(
        code=E.DUPLICATE_SUBJECT,
        message='Two subjects share the same name.',
        hint='Each artifact listed in a provenance statement must have a unique name.',
    ),
    E.INVALID_OIDC_TOKEN: ErrorInfo(
        code=E.INVALID_OIDC_TOKEN,
        message='The GitHub OIDC token is missing a required claim or failed verification.',
        hint="Make sure the workflow has 'id-token: write' permission.",
    ),
    E.STEP_FAILED: ErrorInfo(
        code=E.STEP_FAILED,
        message='A build step exited with a non-zero status.',
    ),
}


def explain(code: str) -> str | None:
    """Return a detailed explanation for an error code.

    Args:
        code: The error code string, e.g. ``"PK-INVALID-PATH"``.

    Returns:
        A formatted explanation string, or ``None`` if the code is unknown.
    """
    try:
        error_code = ErrorCode(code)
    except ValueError:
        return None

    info = ERRORS.get(error_code)
    if info is None:
        return f'{code}: No detailed explanation available.'

    lines = [f'{code}: {info.message}']
    if info.hint:
        lines.append(f'  Hint: {info.hint}')
    return '\n'.join(lines)


def render_error(exc: ProvenanceKitError, *, file: TextIO | None = None) -> None:
    """Render an error in Rust-compiler style.

    Output format::

        error[PK-INVALID-PATH]: '../x' is not under the current directory
          |
          = hint: Pass a relative path inside the workspace.

    Args:
        exc: The error to render.
        file: Output stream (defaults to ``sys.stderr``).
    """
    out = file or sys.stderr

    if out.isatty():
        console = Console(file=out, highlight=False)
        msg = rich_escape(exc.info.message)
        console.print(
            f'[bold red]error[/bold red][bold red]\\[{exc.code.value}][/bold red][bold]: {msg}[/bold]',
        )
        if exc.hint:
            hint = rich_escape(exc.hint)
            console.print('  [dim]|[/dim]')
            console.print(f'  [dim]=[/dim] [cyan]hint[/cyan]: {hint}')
        console.print()
    else:
        print(f'error[{exc.code.value}]: {exc.info.message}', file=out)  # noqa: T201 - CLI output
        if exc.hint:
            print('  |', file=out)  # noqa: T201 - CLI output
            print(f'  = hint: {exc.hint}', file=out)  # noqa: T201 - CLI output
        print(file=out)  # noqa: T201 - CLI output


__all__ = [
    'E',
    'ERRORS',
    'ErrorCode',
    'ErrorInfo',
    'ProvenanceKitError',
    'explain',
    'render_error',
]
