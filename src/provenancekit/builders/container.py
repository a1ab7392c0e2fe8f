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

"""Container image flavor.

Provenance-only: the image is pushed by the caller, whose registry
digest is taken as the subject digest.
"""

from __future__ import annotations

from provenancekit.backends.clients import ClientProvider
from provenancekit.context import WorkflowContext
from provenancekit.digest import Digest
from provenancekit.errors import E, ProvenanceKitError
from provenancekit.provenance import BuildDefinition, GitHubActionsBuild, RunDetails, Subject

CONTAINER_BUILD_TYPE = 'https://github.com/slsa-framework/slsa-github-generator/container@v1'


class ContainerBuild:
    """:class:`~provenancekit.provenance.BuildType` for one pushed image.

    Args:
        image: Image name without tag or digest, e.g. ``ghcr.io/o/app``.
            Empty for a predicate-only run with no subject.
        digest: Registry digest, ``sha256:<hex>``.
        context: The workflow context.
        clients: OIDC/GitHub API clients.
    """

    def __init__(
        self,
        image: str,
        digest: str,
        context: WorkflowContext,
        clients: ClientProvider | None = None,
    ) -> None:
        """Validate the image reference up front."""
        self._subjects: list[Subject] = []
        if image:
            parsed = Digest.parse(digest)
            if parsed.alg != 'sha256':
                raise ProvenanceKitError(
                    code=E.INVALID_DIGEST,
                    message=f'Image digest must be sha256, got {parsed.alg!r}.',
                )
            self._subjects.append(Subject(name=image, digest=parsed.to_dict()))
        self._github = GitHubActionsBuild(context, CONTAINER_BUILD_TYPE, clients)

    @property
    def uri(self) -> str:
        """The container flavor's build type URI."""
        return CONTAINER_BUILD_TYPE

    async def subject(self) -> list[Subject]:
        """The image, or nothing for a predicate-only run."""
        return list(self._subjects)

    async def build_definition(self) -> BuildDefinition:
        """GitHub-derived build definition with no build steps."""
        return await self._github.build_definition()

    async def run_details(self) -> RunDetails:
        """GitHub-derived run details."""
        return await self._github.run_details()


__all__ = [
    'CONTAINER_BUILD_TYPE',
    'ContainerBuild',
]
