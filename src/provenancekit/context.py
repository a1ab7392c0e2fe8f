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

"""GitHub Actions workflow context.

The workflow passes ``${{ toJSON(github) }}`` in the ``GITHUB_CONTEXT``
environment variable. :meth:`WorkflowContext.from_env` decodes it once
per run; the result is immutable.

This module also writes step outputs through the ``GITHUB_OUTPUT`` file
so later workflow steps can read them.
"""

from __future__ import annotations

import json
import os
import uuid
from dataclasses import dataclass, field, fields
from typing import Any

from provenancekit.errors import E, ProvenanceKitError
from provenancekit.logging import get_logger

logger = get_logger(__name__)

GITHUB_CONTEXT_ENV = 'GITHUB_CONTEXT'
GITHUB_OUTPUT_ENV = 'GITHUB_OUTPUT'


@dataclass(frozen=True)
class WorkflowContext:
    """Read-only metadata for one workflow run.

    Field names follow the keys of the ``github`` context object.
    """

    repository: str = ''
    action_path: str = ''
    workflow: str = ''
    event_name: str = ''
    event: dict[str, Any] | None = None
    sha: str = ''
    ref_type: str = ''
    ref: str = ''
    base_ref: str = ''
    head_ref: str = ''
    actor: str = ''
    run_number: str = ''
    server_url: str = ''
    run_id: str = ''
    run_attempt: str = ''
    repository_owner: str = ''
    token: str = field(default='', repr=False)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> WorkflowContext:
        """Build a context from a decoded ``github`` object, ignoring unknown keys."""
        known = {f.name for f in fields(cls)}
        values: dict[str, Any] = {}
        for key in known:
            if key not in data or data[key] is None:
                continue
            value = data[key]
            if key == 'event':
                if not isinstance(value, dict):
                    raise ProvenanceKitError(
                        code=E.INVALID_FIELD,
                        message=f"GitHub context field 'event' must be an object, got {type(value).__name__}.",
                    )
                values[key] = value
            else:
                values[key] = str(value)
        return cls(**values)

    @classmethod
    def from_env(cls) -> WorkflowContext:
        """Decode the context from ``GITHUB_CONTEXT``."""
        raw = os.environ.get(GITHUB_CONTEXT_ENV)
        if raw is None:
            raise ProvenanceKitError(
                code=E.MISSING_ENV_VARIABLE,
                message=f'{GITHUB_CONTEXT_ENV} environment variable not set.',
                hint=f'Set {GITHUB_CONTEXT_ENV}: ${{{{ toJSON(github) }}}} in the workflow step.',
            )
        try:
            data = json.loads(raw)
        except json.JSONDecodeError as exc:
            raise ProvenanceKitError(
                code=E.INVALID_FIELD,
                message=f'{GITHUB_CONTEXT_ENV} is not valid JSON: {exc}',
            ) from exc
        if not isinstance(data, dict):
            raise ProvenanceKitError(code=E.INVALID_FIELD, message=f'{GITHUB_CONTEXT_ENV} must be a JSON object.')
        return cls.from_dict(data)

    def repository_uri(self) -> str:
        """Return ``git+<server>/<repo>[@<ref>]``, or ``''`` when unknown."""
        if not self.server_url or not self.repository:
            return ''
        ref = f'@{self.ref}' if self.ref else ''
        return f'git+{self.server_url}/{self.repository}{ref}'

    @property
    def event_inputs(self) -> Any:  # noqa: ANN401 - arbitrary JSON
        """The ``inputs`` object of the triggering event, if any."""
        if self.event is None:
            return None
        return self.event.get('inputs')


def set_output(name: str, value: str) -> None:
    """Publish a step output via the ``GITHUB_OUTPUT`` file.

    Uses the multi-line ``name<<DELIM`` form so values may contain newlines.
    """
    path = os.environ.get(GITHUB_OUTPUT_ENV)
    if not path:
        raise ProvenanceKitError(
            code=E.MISSING_ENV_VARIABLE,
            message=f'{GITHUB_OUTPUT_ENV} environment variable not set.',
        )
    delimiter = f'ghadelimiter_{uuid.uuid4()}'
    with open(path, 'a', encoding='utf-8') as f:
        f.write(f'{name}<<{delimiter}\n{value}\n{delimiter}\n')
    logger.debug('output_set', name=name)


__all__ = [
    'GITHUB_CONTEXT_ENV',
    'GITHUB_OUTPUT_ENV',
    'WorkflowContext',
    'set_output',
]
