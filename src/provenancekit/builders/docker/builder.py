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

r"""Docker-based build orchestration.

Builds artifacts by running a digest-pinned builder image over a
digest-pinned source checkout, then measures what came out.

Key Concepts (ELI5)::

    ┌─────────────────────┬────────────────────────────────────────────────┐
    │ Concept             │ ELI5 Explanation                               │
    ├─────────────────────┼────────────────────────────────────────────────┤
    │ Pre-flight          │ Before building, nothing may match the        │
    │                     │ artifact glob. Otherwise we might attest a    │
    │                     │ file the build never produced.                │
    ├─────────────────────┼────────────────────────────────────────────────┤
    │ docker run          │ The checkout is mounted at /workspace and the │
    │                     │ container is removed afterwards.              │
    ├─────────────────────┼────────────────────────────────────────────────┤
    │ Inspect             │ Glob again and sha256 every match. No match  │
    │                     │ is an error, never an empty attestation.      │
    └─────────────────────┴────────────────────────────────────────────────┘

State machine::

    Configured ──fetch──▶ SourceFetched ──load TOML──▶ ConfigLoaded
        ──docker run──▶ Built ──glob + sha256──▶ Inspected

Any failure leaves no subjects behind. :func:`set_up_build_state`
removes a temporary checkout itself when it fails after fetching; once
it returns, the caller owns :attr:`DockerBuild.repo_info` and must call
``cleanup()``.
"""

from __future__ import annotations

import glob
import os
import shutil
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from provenancekit.backends._run import CommandResult, run_command
from provenancekit.backends.clients import ClientProvider
from provenancekit.builders.docker.config import (
    DOCKER_BUILD_TYPE,
    BuildConfig,
    DockerBuildConfig,
    DockerBuildDefinition,
    create_build_definition,
    load_build_config,
)
from provenancekit.builders.docker.fetcher import Fetcher, GitFetcher, RepoCheckoutInfo
from provenancekit.context import WorkflowContext
from provenancekit.digest import compute_sha256
from provenancekit.errors import E, ProvenanceKitError
from provenancekit.logging import get_logger
from provenancekit.paths import path_is_under_directory
from provenancekit.provenance import BuildDefinition, GitHubActionsBuild, RunDetails, Subject

logger = get_logger(__name__)

WORKSPACE_MOUNT = '/workspace'

#: Output folders for built artifacts must live under this prefix.
OUTPUT_FOLDER_PREFIX = '/tmp'  # noqa: S108 - fixed location required by the workflow

#: Signature of :func:`provenancekit.backends._run.run_command`, for injection.
CommandFunc = Callable[..., Awaitable[CommandResult]]


def _glob(pattern: str, root: str) -> list[str]:
    matches = sorted(glob.glob(pattern, root_dir=root))
    return [os.path.join(root, m) for m in matches]


def check_existing_files(pattern: str, root: str) -> None:
    """Fail if ``pattern`` already matches something under ``root``.

    Raises:
        ProvenanceKitError: ``ARTIFACT_PREEXISTING``.
    """
    matches = _glob(pattern, root)
    if matches:
        raise ProvenanceKitError(
            code=E.ARTIFACT_PREEXISTING,
            message=f'The pattern {pattern!r} matches {len(matches)} existing files; expected no matches.',
            hint='Remove stale outputs so only freshly built files are attested.',
        )


def _matched_artifacts(pattern: str, root: str) -> dict[str, Path]:
    matches = _glob(pattern, root)
    if not matches:
        raise ProvenanceKitError(code=E.NO_ARTIFACTS, message=f'No files matching the pattern {pattern!r}.')
    artifacts: dict[str, Path] = {}
    for path in matches:
        resolved = path_is_under_directory(path, root)
        if resolved.name in artifacts:
            raise ProvenanceKitError(
                code=E.DUPLICATE_SUBJECT,
                message=f'Two artifacts named {resolved.name!r} match {pattern!r}.',
            )
        artifacts[resolved.name] = resolved
    return artifacts


def inspect_artifacts(pattern: str, root: str) -> list[Subject]:
    """Glob ``pattern`` under ``root`` and sha256 every match.

    Raises:
        ProvenanceKitError: ``NO_ARTIFACTS`` for zero matches,
            ``INVALID_PATH`` for a match outside ``root``,
            ``DUPLICATE_SUBJECT`` when two matches share a basename.
    """
    return [
        Subject(name=name, digest={'sha256': compute_sha256(path)})
        for name, path in _matched_artifacts(pattern, root).items()
    ]


def check_output_folder(output_folder: str) -> str:
    """Resolve ``output_folder`` and check it is a fresh location under ``/tmp``.

    Returns:
        The absolute folder path.
    """
    absolute = os.path.abspath(output_folder)
    if not os.path.dirname(absolute).startswith(OUTPUT_FOLDER_PREFIX):
        raise ProvenanceKitError(
            code=E.INVALID_PATH,
            message=f'Output folder must be in {OUTPUT_FOLDER_PREFIX}: {absolute!r}.',
        )
    check_existing_files(absolute, os.sep)
    return absolute


@dataclass
class DockerBuild:
    """A build whose source is fetched and whose config is loaded.

    Attributes:
        config: The validated inputs.
        build_config: The TOML part, read from the checkout.
        repo_info: The checkout; call ``repo_info.cleanup()`` when done.
        definition: The build definition; gains the ``command`` value
            once :meth:`build_artifacts` has run.
    """

    config: DockerBuildConfig
    build_config: BuildConfig
    repo_info: RepoCheckoutInfo
    definition: DockerBuildDefinition
    run: CommandFunc = field(default=run_command, repr=False)

    def docker_run_command(self) -> list[str]:
        """The literal ``docker run`` argv."""
        return [
            'docker',
            'run',
            f'--volume={self.repo_info.repo_root}:{WORKSPACE_MOUNT}',
            f'--workdir={WORKSPACE_MOUNT}',
            '--rm',
            str(self.config.builder_image),
            *self.build_config.command,
        ]

    async def build_artifacts(self, output_folder: str = '') -> list[Subject]:
        """Run the builder image and measure its outputs.

        Args:
            output_folder: If set, matched artifacts are also copied here.

        Returns:
            One subject per matched artifact.

        Raises:
            ProvenanceKitError: ``SUBPROCESS_FAILED`` if ``docker run``
                fails, or any :func:`inspect_artifacts` error.
        """
        command = self.docker_run_command()
        self.definition = create_build_definition(self.config, command)
        logger.info('docker_run', command=' '.join(command))
        try:
            result = await self.run(command, cwd=self.repo_info.repo_root, output='files')
        except OSError as exc:
            raise ProvenanceKitError(
                code=E.SUBPROCESS_FAILED,
                message=f'Could not start docker: {exc}',
            ) from exc
        if not result.ok:
            raise ProvenanceKitError(
                code=E.SUBPROCESS_FAILED,
                message=f'docker run exited with status {result.return_code}; {result.logs_hint}.',
            )
        result.cleanup_logs()

        subjects = inspect_artifacts(self.build_config.artifact_path, self.repo_info.repo_root)
        if output_folder:
            os.makedirs(output_folder, exist_ok=True)
            for name, path in _matched_artifacts(self.build_config.artifact_path, self.repo_info.repo_root).items():
                shutil.copy2(path, os.path.join(output_folder, name))
        logger.info('artifacts_inspected', count=len(subjects))
        return subjects


async def set_up_build_state(
    config: DockerBuildConfig,
    fetcher: Fetcher | None = None,
    *,
    workdir: str | None = None,
    run: CommandFunc = run_command,
) -> DockerBuild:
    """Fetch the source, load the build config and run the pre-flight check.

    Args:
        config: The validated inputs.
        fetcher: Source fetcher (default :class:`GitFetcher`).
        workdir: Directory that may already hold the checkout (default cwd).
        run: Subprocess runner used for ``docker run``.
    """
    fetcher = fetcher or GitFetcher()
    repo_info = await fetcher.fetch(config, workdir or os.getcwd())
    try:
        build_config = load_build_config(config.build_config_path, repo_info.repo_root)
        check_existing_files(build_config.artifact_path, repo_info.repo_root)
    except ProvenanceKitError:
        repo_info.cleanup()
        raise
    return DockerBuild(
        config=config,
        build_config=build_config,
        repo_info=repo_info,
        definition=create_build_definition(config),
        run=run,
    )


class DockerBuilder:
    """:class:`~provenancekit.provenance.BuildType` over a finished Docker build.

    Args:
        build: The build, after :meth:`DockerBuild.build_artifacts`.
        subjects: What :meth:`DockerBuild.build_artifacts` returned.
        context: The workflow context.
        clients: OIDC/GitHub API clients.
    """

    def __init__(
        self,
        build: DockerBuild,
        subjects: list[Subject],
        context: WorkflowContext,
        clients: ClientProvider | None = None,
    ) -> None:
        """Wrap a finished build."""
        self._build = build
        self._subjects = list(subjects)
        self._github = GitHubActionsBuild(context, DOCKER_BUILD_TYPE, clients)

    @property
    def uri(self) -> str:
        """The Docker flavor's build type URI."""
        return DOCKER_BUILD_TYPE

    async def subject(self) -> list[Subject]:
        """The measured artifacts."""
        return list(self._subjects)

    async def build_definition(self) -> BuildDefinition:
        """Source, builder image and command, plus the GitHub-derived data."""
        github: dict[str, Any] = await self._github.internal_parameters()
        return BuildDefinition(
            build_type=DOCKER_BUILD_TYPE,
            external_parameters=self._build.definition.external_parameters.to_dict(),
            internal_parameters=github,
            resolved_dependencies=self._github.resolved_dependencies(),
        )

    async def run_details(self) -> RunDetails:
        """GitHub-derived run details."""
        return await self._github.run_details()


__all__ = [
    'OUTPUT_FOLDER_PREFIX',
    'WORKSPACE_MOUNT',
    'DockerBuild',
    'DockerBuilder',
    'check_existing_files',
    'check_output_folder',
    'inspect_artifacts',
    'set_up_build_state',
]
