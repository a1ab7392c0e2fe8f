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

"""Generic (provenance-only) flavor.

The caller builds the artifacts however it likes and hands over their
digests as base64-encoded ``<sha256> <name>`` lines. Those digests are
trusted as given; nothing is re-measured.
"""

from __future__ import annotations

import re

from provenancekit.backends.clients import ClientProvider
from provenancekit.context import WorkflowContext
from provenancekit.errors import E, ProvenanceKitError
from provenancekit.layout import decode_subjects_b64
from provenancekit.provenance import BuildDefinition, GitHubActionsBuild, RunDetails, Subject

GENERIC_BUILD_TYPE = 'https://github.com/slsa-framework/slsa-github-generator/generic@v1'

_SHA256_RE = re.compile(r'^[a-f0-9]{64}$')
_WS_SPLIT = re.compile(r'[\t ]')


def parse_subjects(b64: str) -> list[Subject]:
    """Parse base64-encoded ``<sha256> <name>`` lines into subjects.

    Digests are lowercased. Blank lines are skipped.

    Raises:
        ProvenanceKitError: ``INVALID_BASE64``, ``INVALID_DIGEST``,
            ``MISSING_SUBJECT_NAME`` or ``DUPLICATE_SUBJECT``.
    """
    text = decode_subjects_b64(b64)
    parsed: list[Subject] = []
    seen: set[str] = set()
    for line in text.splitlines():
        parts = _WS_SPLIT.split(line.strip(), maxsplit=1)
        digest = parts[0].strip().lower()
        if not digest:
            continue
        if not _SHA256_RE.match(digest):
            raise ProvenanceKitError(code=E.INVALID_DIGEST, message=f'Unexpected sha256 hash format for {digest!r}.')
        if len(parts) == 1 or not parts[1].strip():
            raise ProvenanceKitError(code=E.MISSING_SUBJECT_NAME, message=f'Expected subject name for hash {digest!r}.')
        name = parts[1].strip()
        if name in seen:
            raise ProvenanceKitError(code=E.DUPLICATE_SUBJECT, message=f'Duplicate subject {name!r}.')
        seen.add(name)
        parsed.append(Subject(name=name, digest={'sha256': digest}))
    return parsed


class GenericBuild:
    """:class:`~provenancekit.provenance.BuildType` over caller-supplied subjects.

    The digests are taken on trust; nothing is measured.

    Args:
        subjects: Parsed subjects, see :func:`parse_subjects`.
        context: The workflow context.
        clients: OIDC/GitHub API clients.
        build_type: Build type URI to record.
    """

    def __init__(
        self,
        subjects: list[Subject],
        context: WorkflowContext,
        clients: ClientProvider | None = None,
        *,
        build_type: str = GENERIC_BUILD_TYPE,
    ) -> None:
        """Keep a copy of the subjects."""
        self._subjects = list(subjects)
        self._github = GitHubActionsBuild(context, build_type, clients)

    @property
    def uri(self) -> str:
        """The build type URI."""
        return self._github.build_type

    async def subject(self) -> list[Subject]:
        """The subjects as given."""
        return list(self._subjects)

    async def build_definition(self) -> BuildDefinition:
        """GitHub-derived data only; there are no build steps."""
        return await self._github.build_definition()

    async def run_details(self) -> RunDetails:
        """GitHub-derived run details."""
        return await self._github.run_details()


__all__ = [
    'GENERIC_BUILD_TYPE',
    'GenericBuild',
    'parse_subjects',
]
