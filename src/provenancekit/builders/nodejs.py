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

r"""Node.js flavor: ``npm ci``, ``npm run``, ``npm pack``.

The delegating workflow hands over its inputs as JSON::

    SLSA_INPUTS_PATH ──▶ {"version": 1,
                          "workflowInputs": {"working-directory": "pkg",
                                             "ci-arguments": "--ignore-scripts",
                                             "run-scripts": "lint, build"},
                          "dryRun": true,
                          "artifacts": [{"path": "hello-1.0.0.tgz",
                                         "digests": {"sha256": "..."}}]}

    steps:   npm ci --ignore-scripts
             npm run lint
             npm run build
             npm pack --json

A dry run writes ``{"<name>.intoto.jsonl": [{name, digests, steps}]}`` to
``SLSA_OUTPUTS_PATH``. A real run writes ``{path, digests}`` for the
packed tarball, measured from disk.
"""

from __future__ import annotations

import json
import os
from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from provenancekit.backends.clients import ClientProvider
from provenancekit.context import WorkflowContext
from provenancekit.digest import compute_sha256
from provenancekit.errors import E, ProvenanceKitError
from provenancekit.logging import get_logger
from provenancekit.provenance import BuildDefinition, GitHubActionsBuild, RunDetails, Subject
from provenancekit.runner import CommandRunner, CommandStep

logger = get_logger(__name__)

NODEJS_BUILD_TYPE = 'https://github.com/slsa-framework/slsa-github-generator/delegator-generic@v0'
INPUTS_VERSION = 1
TARBALL_SUFFIX = '.tgz'

WORKING_DIRECTORY_INPUT = 'working-directory'
CI_ARGUMENTS_INPUT = 'ci-arguments'
RUN_SCRIPTS_INPUT = 'run-scripts'


@dataclass(frozen=True)
class NodeArtifact:
    """A file the delegating workflow expects, with its digests."""

    path: str
    digests: dict[str, str] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        """Serialize."""
        return {'path': self.path, 'digests': dict(self.digests)}


@dataclass(frozen=True)
class NodeInputs:
    """Inputs of a delegated Node.js build.

    Attributes:
        workflow_inputs: The caller workflow's ``with:`` values.
        dry_run: Only resolve the steps.
        artifacts: Expected outputs. A dry run needs exactly one.
        builder_path: Path of the delegating builder.
    """

    workflow_inputs: dict[str, str] = field(default_factory=dict)
    dry_run: bool = False
    artifacts: list[NodeArtifact] = field(default_factory=list)
    builder_path: str = ''

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> NodeInputs:
        """Parse and check the version."""
        version = data.get('version')
        if isinstance(version, bool) or version != INPUTS_VERSION:
            raise ProvenanceKitError(
                code=E.INVALID_FIELD,
                message=f'Unsupported inputs version {version!r}; expected {INPUTS_VERSION}.',
            )
        inputs = data.get('workflowInputs') or {}
        artifacts = data.get('artifacts') or []
        if not isinstance(inputs, dict) or not isinstance(artifacts, list):
            raise ProvenanceKitError(
                code=E.INVALID_FIELD,
                message="'workflowInputs' must be an object and 'artifacts' a list.",
            )
        return cls(
            workflow_inputs={str(k): str(v) for k, v in inputs.items()},
            dry_run=bool(data.get('dryRun', False)),
            artifacts=[
                NodeArtifact(path=str(a.get('path', '')), digests=dict(a.get('digests') or {}))
                for a in artifacts
                if isinstance(a, dict)
            ],
            builder_path=str(data.get('builderPath', '')),
        )

    @classmethod
    def from_file(cls, path: str) -> NodeInputs:
        """Read the JSON document at ``path``."""
        try:
            raw = json.loads(Path(path).read_text(encoding='utf-8'))
        except OSError as exc:
            raise ProvenanceKitError(code=E.INVALID_PATH, message=f'Cannot read inputs {path!r}: {exc}') from exc
        except ValueError as exc:
            raise ProvenanceKitError(code=E.INVALID_FIELD, message=f'Inputs {path!r} are not JSON: {exc}') from exc
        if not isinstance(raw, dict):
            raise ProvenanceKitError(code=E.INVALID_FIELD, message=f'Inputs {path!r} must be a JSON object.')
        return cls.from_dict(raw)

    def require(self, name: str) -> str:
        """Return a workflow input that must be present (it may be empty)."""
        if name not in self.workflow_inputs:
            raise ProvenanceKitError(code=E.INVALID_FIELD, message=f'{name!r} not present in the workflow inputs.')
        return self.workflow_inputs[name]


@dataclass(frozen=True)
class NodeIntegration:
    """Where inputs come from and outputs go."""

    workspace: str
    inputs: NodeInputs
    output_path: str

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> NodeIntegration:
        """Read ``SLSA_WORKSPACE``, ``SLSA_INPUTS_PATH`` and ``SLSA_OUTPUTS_PATH``."""
        env = os.environ if environ is None else environ
        workspace = _env_path(env, 'SLSA_WORKSPACE', exists=True)
        output_path = _env_path(env, 'SLSA_OUTPUTS_PATH', exists=False)
        inputs = NodeInputs.from_file(_env_path(env, 'SLSA_INPUTS_PATH', exists=True))
        return cls(workspace=workspace, inputs=inputs, output_path=output_path)


def _env_path(env: Mapping[str, str], name: str, *, exists: bool) -> str:
    value = env.get(name, '')
    if not value:
        raise ProvenanceKitError(code=E.MISSING_ENV_VARIABLE, message=f'{name} is not set.')
    if exists and not os.path.exists(value):
        raise ProvenanceKitError(code=E.INVALID_PATH, message=f'{name} points to a missing path: {value!r}.')
    return value


def create_steps(inputs: NodeInputs) -> list[CommandStep]:
    """Build the ``npm ci``, ``npm run`` and ``npm pack`` steps."""
    working_dir = inputs.require(WORKING_DIRECTORY_INPUT)
    ci_args = inputs.require(CI_ARGUMENTS_INPUT)
    scripts = inputs.require(RUN_SCRIPTS_INPUT)

    steps = [CommandStep(command=['npm', 'ci', *(ci_args.split(',') if ci_args else [])], working_dir=working_dir)]
    for script in scripts.split(','):
        steps.append(CommandStep(command=['npm', 'run', script.strip()], working_dir=working_dir))
    steps.append(CommandStep(command=['npm', 'pack', '--json'], working_dir=working_dir))
    return steps


def tarball_name(package_json: dict[str, Any]) -> str:
    """The file ``npm pack`` writes for a package.

    >>> tarball_name({'name': '@scope/hello', 'version': '1.0.0'})
    'scope-hello-1.0.0.tgz'
    """
    name = str(package_json.get('name', '')).lstrip('@').replace('/', '-')
    version = str(package_json.get('version', ''))
    if not name or not version:
        raise ProvenanceKitError(code=E.INVALID_FIELD, message="package.json needs both 'name' and 'version'.")
    return f'{name}-{version}{TARBALL_SUFFIX}'


def dry_run_output(inputs: NodeInputs, steps: list[CommandStep]) -> dict[str, list[dict[str, Any]]]:
    """The metadata a dry run hands back to the delegating workflow."""
    if len(inputs.artifacts) != 1:
        raise ProvenanceKitError(code=E.INVALID_FIELD, message='Only 1 artifact is supported.')
    artifact = inputs.artifacts[0]
    name = os.path.basename(artifact.path).removesuffix(TARBALL_SUFFIX)
    return {
        f'{name}.intoto.jsonl': [
            {
                'name': name,
                'digests': dict(artifact.digests),
                'steps': [s.to_dict() for s in steps],
            },
        ],
    }


@dataclass(frozen=True)
class NodeBuildResult:
    """A finished real build: the measured tarball and the steps that made it."""

    artifact: NodeArtifact
    steps: list[CommandStep]


def _write_output(path: str, data: Any) -> None:  # noqa: ANN401 - any JSON value
    with open(path, 'w', encoding='utf-8') as f:
        json.dump(data, f)
        f.write('\n')


async def build(integration: NodeIntegration) -> NodeBuildResult | dict[str, Any]:
    """Run (or dry-run) the npm steps and write the result to the outputs path.

    npm starts from the process environment for its cache and registry
    settings; the step records are the same as a dry run's.

    Returns:
        The dry-run metadata, or the measured tarball with its steps.
    """
    runner = CommandRunner(steps=create_steps(integration.inputs), inherit_env=True)
    if integration.inputs.dry_run:
        output = dry_run_output(integration.inputs, runner.dry())
        _write_output(integration.output_path, output)
        return output

    steps = await runner.run()
    working_dir = steps[-1].working_dir
    package_json = json.loads(Path(working_dir, 'package.json').read_text(encoding='utf-8'))
    tarball = os.path.join(working_dir, tarball_name(package_json))
    artifact = NodeArtifact(path=tarball, digests={'sha256': compute_sha256(Path(tarball))})
    logger.info('npm_package_built', path=tarball, sha256=artifact.digests['sha256'])
    _write_output(integration.output_path, artifact.to_dict())
    return NodeBuildResult(artifact=artifact, steps=steps)


class NodeJSBuild:
    """:class:`~provenancekit.provenance.BuildType` for a packed npm tarball.

    Args:
        artifact: The measured tarball.
        steps: The executed step records.
        context: The workflow context.
        clients: OIDC/GitHub API clients.
    """

    def __init__(
        self,
        artifact: NodeArtifact,
        steps: list[CommandStep],
        context: WorkflowContext,
        clients: ClientProvider | None = None,
    ) -> None:
        """Wrap a finished build."""
        self._artifact = artifact
        self._steps = list(steps)
        self._github = GitHubActionsBuild(context, NODEJS_BUILD_TYPE, clients)

    @property
    def uri(self) -> str:
        """The Node.js flavor's build type URI."""
        return NODEJS_BUILD_TYPE

    async def subject(self) -> list[Subject]:
        """The tarball, named by its basename."""
        return [Subject(name=os.path.basename(self._artifact.path), digest=dict(self._artifact.digests))]

    async def build_definition(self) -> BuildDefinition:
        """GitHub-derived data plus the executed npm steps as the build config."""
        return await self._github.build_definition(
            build_config={'version': INPUTS_VERSION, 'steps': [s.to_dict() for s in self._steps]},
        )

    async def run_details(self) -> RunDetails:
        """GitHub-derived run details."""
        return await self._github.run_details()


__all__ = [
    'NODEJS_BUILD_TYPE',
    'NodeArtifact',
    'NodeBuildResult',
    'NodeInputs',
    'NodeIntegration',
    'NodeJSBuild',
    'build',
    'create_steps',
    'dry_run_output',
    'tarball_name',
]
