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

"""Provenance for a Go binary built by :mod:`provenancekit.builders.golang.build`.

The build config records two steps: ``go mod vendor`` and the compile
command published by the dry run. Both run on the same VM, so the
runner's architecture and image are recorded too.
"""

from __future__ import annotations

import os
from collections.abc import Mapping
from typing import Any

from provenancekit.backends.clients import ClientProvider
from provenancekit.context import WorkflowContext
from provenancekit.digest import validate_hex
from provenancekit.provenance import ArtifactReference, BuildDefinition, GitHubActionsBuild, RunDetails, Subject
from provenancekit.runner import CommandStep

GO_BUILD_TYPE = 'https://github.com/slsa-framework/slsa-github-generator/go@v1'
BUILD_CONFIG_VERSION = 1


class GoProvenance:
    """:class:`~provenancekit.provenance.BuildType` for a compiled Go binary.

    Args:
        name: Binary name (the subject name).
        digest: Hex sha256 of the binary.
        command: Compile command from the dry run.
        env: Compile environment from the dry run.
        working_dir: Directory the compile ran in.
        context: The workflow context.
        clients: OIDC/GitHub API clients.
        runner_env: Source of ``RUNNER_ARCH``, ``ImageOS`` and
            ``ImageVersion`` (default ``os.environ``).
    """

    def __init__(
        self,
        name: str,
        digest: str,
        command: list[str],
        env: list[str],
        working_dir: str,
        context: WorkflowContext,
        clients: ClientProvider | None = None,
        *,
        runner_env: Mapping[str, str] | None = None,
    ) -> None:
        """Validate the digest and assemble the two recorded steps."""
        self._subject = Subject(name=name, digest={'sha256': validate_hex('sha256', digest)})
        vendor = [command[0], 'mod', 'vendor'] if command else []
        self.steps = [
            CommandStep(command=vendor, env=[], working_dir=working_dir),
            CommandStep(command=list(command), env=list(env), working_dir=working_dir),
        ]
        self._runner_env = os.environ if runner_env is None else runner_env
        self._github = GitHubActionsBuild(context, GO_BUILD_TYPE, clients)

    @property
    def uri(self) -> str:
        """The Go flavor's build type URI."""
        return GO_BUILD_TYPE

    def build_config(self) -> dict[str, Any]:
        """The recorded vendoring and compile steps."""
        return {'version': BUILD_CONFIG_VERSION, 'steps': [s.to_dict() for s in self.steps]}

    async def subject(self) -> list[Subject]:
        """The binary."""
        return [self._subject]

    async def build_definition(self) -> BuildDefinition:
        """GitHub data plus the steps, runner architecture and runner image."""
        image_os = self._runner_env.get('ImageOS', '')
        image_version = self._runner_env.get('ImageVersion', '')
        runner_image = ArtifactReference(
            uri=f'https://github.com/actions/virtual-environments/releases/tag/{image_os}/{image_version}',
        )
        return await self._github.build_definition(
            build_config=self.build_config(),
            extra_internal={'arch': self._runner_env.get('RUNNER_ARCH', ''), 'os': image_os},
            extra_dependencies=[runner_image],
        )

    async def run_details(self) -> RunDetails:
        """GitHub-derived run details."""
        return await self._github.run_details()


__all__ = [
    'GO_BUILD_TYPE',
    'GoProvenance',
]
