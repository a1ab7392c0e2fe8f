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

r"""SLSA provenance generation for GitHub Actions builds.

Every builder flavor (generic, container, Go, Docker, Node.js) exposes
the same small capability set, the :class:`BuildType` protocol.
:func:`generate` drives any of them and assembles an in-toto Statement.

Key Concepts (ELI5)::

    ┌─────────────────────┬────────────────────────────────────────────────┐
    │ Concept             │ ELI5 Explanation                               │
    ├─────────────────────┼────────────────────────────────────────────────┤
    │ Subject             │ An artifact's name + digest. "This exact     │
    │                     │ file is what the build produced."             │
    ├─────────────────────┼────────────────────────────────────────────────┤
    │ BuildDefinition     │ What went *in*: workflow path, repo, inputs,  │
    │                     │ run IDs, pinned source commit.                │
    ├─────────────────────┼────────────────────────────────────────────────┤
    │ RunDetails          │ Who ran it: the builder identity and an ID    │
    │                     │ for this particular run.                      │
    ├─────────────────────┼────────────────────────────────────────────────┤
    │ BuildType           │ The protocol every builder flavor satisfies.  │
    ├─────────────────────┼────────────────────────────────────────────────┤
    │ GitHubActionsBuild  │ Shared helper that fills in the GitHub bits.  │
    │                     │ Builders compose it; they don't subclass it.  │
    └─────────────────────┴────────────────────────────────────────────────┘

Generation order::

    generate(build_type)
         │
         ├── subject()           ─┐
         ├── build_definition()   ├─ any error aborts; nothing is returned
         ├── run_details()       ─┘
         └── ProvenanceStatement (v1, or the legacy v0.2 layout)

Two predicate layouts are produced from the same data:

- **v1** (``https://slsa.dev/provenance/v1``): ``buildDefinition`` with
  external/internal parameters and resolved dependencies, plus
  ``runDetails``.
- **v0.2** (``https://slsa.dev/provenance/v0.2``): ``invocation``,
  ``materials``, ``buildConfig`` and ``metadata``.
"""

from __future__ import annotations

import json
import re
from dataclasses import dataclass, field
from typing import Any, Literal, Protocol, runtime_checkable

import jsonschema

from provenancekit.backends.clients import ClientProvider, NilClientProvider
from provenancekit.context import WorkflowContext
from provenancekit.digest import validate_hex
from provenancekit.errors import E, ProvenanceKitError
from provenancekit.logging import get_logger

logger = get_logger(__name__)

# --- Constants ---

IN_TOTO_STATEMENT_V01 = 'https://in-toto.io/Statement/v0.1'
IN_TOTO_STATEMENT_V1 = 'https://in-toto.io/Statement/v1'

SLSA_PREDICATE_V02 = 'https://slsa.dev/provenance/v0.2'
SLSA_PREDICATE_V1 = 'https://slsa.dev/provenance/v1'

#: Builder identity when no OIDC token names the reusable workflow.
GITHUB_HOSTED_ACTIONS_BUILDER_ID = 'https://github.com/Attestations/GitHubHostedActions@v1'

PredicateVersion = Literal['v1', 'v0.2']

_GITHUB_COM_PREFIX = re.compile(r'^(https?://)?github\.com/?')


# --- Data model ---


@dataclass(frozen=True)
class Subject:
    """An artifact identified by name and digest set.

    Attributes:
        name: Artifact name, unique within one statement.
        digest: Mapping of algorithm to lowercase hex digest.
    """

    name: str
    digest: dict[str, str]

    def to_dict(self) -> dict[str, Any]:
        """Serialize to the in-toto subject form."""
        return {'name': self.name, 'digest': dict(self.digest)}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Subject:
        """Parse the in-toto subject form."""
        return cls(name=str(data.get('name', '')), digest={str(k): str(v) for k, v in data.get('digest', {}).items()})


def validate_subjects(subjects: list[Subject]) -> list[Subject]:
    """Check subject names are unique and digests are well formed.

    Raises:
        ProvenanceKitError: ``DUPLICATE_SUBJECT``, ``MISSING_SUBJECT_NAME``
            or ``INVALID_DIGEST``.
    """
    seen: set[str] = set()
    for subject in subjects:
        if not subject.name:
            raise ProvenanceKitError(code=E.MISSING_SUBJECT_NAME, message='Subject has an empty name.')
        if subject.name in seen:
            raise ProvenanceKitError(
                code=E.DUPLICATE_SUBJECT,
                message=f'Subject name {subject.name!r} appears more than once.',
            )
        seen.add(subject.name)
        if not subject.digest:
            raise ProvenanceKitError(code=E.INVALID_DIGEST, message=f'Subject {subject.name!r} has no digest.')
        for alg, value in subject.digest.items():
            validate_hex(alg, value)
    return subjects


@dataclass(frozen=True)
class ArtifactReference:
    """A reference to an input artifact (a SLSA resource descriptor).

    Attributes:
        uri: Where the artifact lives.
        digest: Mapping of algorithm to hex digest.
        local_name: Optional name the build used for it.
        download_location: Optional fetch location when it differs from ``uri``.
        media_type: Optional media type.
    """

    uri: str
    digest: dict[str, str] = field(default_factory=dict)
    local_name: str = ''
    download_location: str = ''
    media_type: str = ''

    def to_dict(self) -> dict[str, Any]:
        """Serialize, omitting empty optional fields."""
        data: dict[str, Any] = {'uri': self.uri, 'digest': dict(self.digest)}
        if self.local_name:
            data['localName'] = self.local_name
        if self.download_location:
            data['downloadLocation'] = self.download_location
        if self.media_type:
            data['mediaType'] = self.media_type
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ArtifactReference:
        """Parse the serialized form."""
        return cls(
            uri=str(data.get('uri', '')),
            digest={str(k): str(v) for k, v in (data.get('digest') or {}).items()},
            local_name=str(data.get('localName', '')),
            download_location=str(data.get('downloadLocation', '')),
            media_type=str(data.get('mediaType', '')),
        )


@dataclass
class BuildDefinition:
    """Inputs of a build.

    Attributes:
        build_type: URI naming the build flavor.
        external_parameters: Caller-controlled inputs, reproducible from
            public data (workflow path, repository, event inputs).
        internal_parameters: Values set by the platform, not the caller.
        resolved_dependencies: Pinned inputs such as the source commit.
        build_config: Flavor-specific steps, when the flavor has any.
    """

    build_type: str
    external_parameters: dict[str, Any] = field(default_factory=dict)
    internal_parameters: dict[str, Any] = field(default_factory=dict)
    resolved_dependencies: list[ArtifactReference] = field(default_factory=list)
    build_config: Any = None

    def to_dict(self) -> dict[str, Any]:
        """Serialize to the v1 ``buildDefinition`` layout."""
        data: dict[str, Any] = {
            'buildType': self.build_type,
            'externalParameters': self.external_parameters,
        }
        internal = dict(self.internal_parameters)
        if self.build_config is not None:
            internal['buildConfig'] = self.build_config
        if internal:
            data['internalParameters'] = internal
        if self.resolved_dependencies:
            data['resolvedDependencies'] = [d.to_dict() for d in self.resolved_dependencies]
        return data


@dataclass(frozen=True)
class RunDetails:
    """Who ran the build.

    Attributes:
        builder_id: URI identifying the trusted builder.
        invocation_id: Identifier of this particular run.
    """

    builder_id: str
    invocation_id: str = ''

    def to_dict(self) -> dict[str, Any]:
        """Serialize to the v1 ``runDetails`` layout."""
        data: dict[str, Any] = {'builder': {'id': self.builder_id}}
        if self.invocation_id:
            data['metadata'] = {'invocationId': self.invocation_id}
        return data


@dataclass
class ProvenanceStatement:
    """An in-toto Statement carrying a SLSA predicate."""

    subjects: list[Subject]
    predicate: dict[str, Any]
    predicate_type: str = SLSA_PREDICATE_V1
    statement_type: str = IN_TOTO_STATEMENT_V1

    def to_dict(self) -> dict[str, Any]:
        """Serialize to the in-toto Statement layout."""
        return {
            '_type': self.statement_type,
            'subject': [s.to_dict() for s in self.subjects],
            'predicateType': self.predicate_type,
            'predicate': self.predicate,
        }

    def to_json(self, *, indent: int | None = None) -> str:
        """Serialize to a JSON string (compact by default)."""
        return json.dumps(self.to_dict(), indent=indent)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ProvenanceStatement:
        """Parse a statement produced by :meth:`to_dict`."""
        try:
            return cls(
                subjects=[Subject.from_dict(s) for s in data['subject']],
                predicate=dict(data['predicate']),
                predicate_type=str(data['predicateType']),
                statement_type=str(data['_type']),
            )
        except (KeyError, TypeError, AttributeError) as exc:
            raise ProvenanceKitError(
                code=E.INVALID_FIELD,
                message=f'Malformed provenance statement: {exc!r}',
            ) from exc


# --- Capability protocol ---


@runtime_checkable
class BuildType(Protocol):
    """The capability set every builder flavor implements."""

    @property
    def uri(self) -> str:
        """The flavor's stable build type URI."""
        ...

    async def subject(self) -> list[Subject]:
        """The artifacts this build produced."""
        ...

    async def build_definition(self) -> BuildDefinition:
        """The inputs of this build."""
        ...

    async def run_details(self) -> RunDetails:
        """Who ran this build."""
        ...


def oidc_audience(build_type: str) -> str:
    """Strip a leading ``github.com/`` (with optional scheme) from a build type URI."""
    return _GITHUB_COM_PREFIX.sub('', build_type, count=1)


class GitHubActionsBuild:
    """Shared GitHub Actions data for every builder flavor.

    Args:
        context: The workflow context of this run.
        build_type: The URI of the flavor composing this helper.
        clients: Where the OIDC and GitHub API clients come from.
            Defaults to no clients.
    """

    def __init__(
        self,
        context: WorkflowContext,
        build_type: str,
        clients: ClientProvider | None = None,
    ) -> None:
        """Initialize with the run context and flavor URI."""
        self.context = context
        self.build_type = build_type
        self.clients: ClientProvider = clients or NilClientProvider()

    async def entry_point(self) -> str:
        """Path of the workflow file that ran.

        Resolved through the GitHub API (run -> workflow -> path). Without
        an API client, falls back to the workflow name from the context.
        """
        github = self.clients.github_client()
        if github is None:
            return self.context.workflow
        return await github.workflow_path(self.context.repository, self.context.run_id)

    async def external_parameters(self) -> dict[str, Any]:
        """Parameters a verifier can reproduce from public data."""
        ctx = self.context
        workflow: dict[str, Any] = {'ref': ctx.ref, 'path': await self.entry_point()}
        if ctx.server_url and ctx.repository:
            workflow['repository'] = f'{ctx.server_url}/{ctx.repository}'
        params: dict[str, Any] = {'workflow': workflow}
        if ctx.event_inputs is not None:
            params['inputs'] = ctx.event_inputs
        return params

    async def internal_parameters(self) -> dict[str, Any]:
        """Platform-set values, plus numeric IDs from a verified OIDC token."""
        ctx = self.context
        params: dict[str, Any] = {}
        for key, value in (
            ('github_run_number', ctx.run_number),
            ('github_run_id', ctx.run_id),
            ('github_run_attempt', ctx.run_attempt),
            ('github_event_name', ctx.event_name),
        ):
            if value:
                params[key] = value
        if ctx.event is not None:
            params['github_event_payload'] = ctx.event
        for key, value in (
            ('github_ref_type', ctx.ref_type),
            ('github_ref', ctx.ref),
            ('github_base_ref', ctx.base_ref),
            ('github_head_ref', ctx.head_ref),
            ('github_actor', ctx.actor),
            ('github_sha1', ctx.sha),
            ('github_repository_owner', ctx.repository_owner),
        ):
            if value:
                params[key] = value

        oidc = self.clients.oidc_client()
        if oidc is not None:
            token = await oidc.token([ctx.repository])
            for claim, value in (
                ('repository ID', token.repository_id),
                ('repository owner ID', token.repository_owner_id),
                ('actor ID', token.actor_id),
            ):
                if not value:
                    raise ProvenanceKitError(
                        code=E.INVALID_OIDC_TOKEN,
                        message=f'Invalid OIDC token: {claim} is empty.',
                    )
            params['github_repository_id'] = token.repository_id
            params['github_actor_id'] = token.actor_id
            params['github_repository_owner_id'] = token.repository_owner_id
        return params

    def resolved_dependencies(self) -> list[ArtifactReference]:
        """The triggering repository pinned at its commit."""
        uri = self.context.repository_uri()
        if not uri:
            return []
        return [ArtifactReference(uri=uri, digest={'sha1': self.context.sha})]

    async def build_definition(
        self,
        *,
        build_config: Any = None,  # noqa: ANN401 - flavor-specific JSON
        extra_internal: dict[str, Any] | None = None,
        extra_dependencies: list[ArtifactReference] | None = None,
    ) -> BuildDefinition:
        """Assemble a :class:`BuildDefinition` from the GitHub data."""
        internal = await self.internal_parameters()
        if extra_internal:
            internal.update(extra_internal)
        return BuildDefinition(
            build_type=self.build_type,
            external_parameters=await self.external_parameters(),
            internal_parameters=internal,
            resolved_dependencies=[*self.resolved_dependencies(), *(extra_dependencies or [])],
            build_config=build_config,
        )

    async def run_details(self) -> RunDetails:
        """Builder identity and run ID.

        With an OIDC client the builder is the reusable workflow named in
        the token's ``job_workflow_ref``.
        """
        builder_id = GITHUB_HOSTED_ACTIONS_BUILDER_ID
        oidc = self.clients.oidc_client()
        if oidc is not None:
            token = await oidc.token([oidc_audience(self.build_type)])
            if token.job_workflow_ref:
                builder_id = f'https://github.com/{token.job_workflow_ref}'

        ctx = self.context
        invocation_id = ''
        if ctx.server_url and ctx.repository and ctx.run_id:
            invocation_id = f'{ctx.server_url}/{ctx.repository}/actions/runs/{ctx.run_id}'
            if ctx.run_attempt:
                invocation_id += f'/attempts/{ctx.run_attempt}'
        return RunDetails(builder_id=builder_id, invocation_id=invocation_id)


# --- Generation ---


def _v02_predicate(definition: BuildDefinition, details: RunDetails) -> dict[str, Any]:
    """Lay the same data out in the SLSA v0.2 shape."""
    external = definition.external_parameters
    internal = definition.internal_parameters
    workflow = external.get('workflow', {})

    config_source: dict[str, Any] = {'entryPoint': workflow.get('path', '')}
    if definition.resolved_dependencies:
        source = definition.resolved_dependencies[0]
        config_source['uri'] = source.uri
        config_source['digest'] = dict(source.digest)

    invocation: dict[str, Any] = {'configSource': config_source}
    if 'github_event_payload' in internal:
        invocation['parameters'] = {'event_inputs': external.get('inputs')}
    if internal:
        invocation['environment'] = dict(internal)

    build_invocation_id = internal.get('github_run_id', '')
    if internal.get('github_run_attempt'):
        build_invocation_id = f'{build_invocation_id}-{internal["github_run_attempt"]}'

    predicate: dict[str, Any] = {
        'builder': {'id': details.builder_id},
        'buildType': definition.build_type,
        'invocation': invocation,
        'metadata': {
            'buildInvocationID': build_invocation_id,
            'completeness': {
                'parameters': 'github_event_payload' in internal,
                'environment': False,
                'materials': False,
            },
            'reproducible': False,
        },
        'materials': [d.to_dict() for d in definition.resolved_dependencies],
    }
    if definition.build_config is not None:
        predicate['buildConfig'] = definition.build_config
    return predicate


async def generate(
    build_type: BuildType,
    *,
    predicate_version: PredicateVersion = 'v1',
) -> ProvenanceStatement:
    """Produce a provenance statement for ``build_type``.

    Calls :meth:`~BuildType.subject`, then
    :meth:`~BuildType.build_definition`, then
    :meth:`~BuildType.run_details`. Any error propagates immediately and
    no statement is returned.

    Args:
        build_type: The builder flavor.
        predicate_version: ``v1`` (default) or the legacy ``v0.2`` layout.

    Returns:
        The assembled :class:`ProvenanceStatement`.
    """
    subjects = validate_subjects(list(await build_type.subject()))
    definition = await build_type.build_definition()
    details = await build_type.run_details()

    if predicate_version == 'v0.2':
        statement = ProvenanceStatement(
            subjects=subjects,
            predicate=_v02_predicate(definition, details),
            predicate_type=SLSA_PREDICATE_V02,
            statement_type=IN_TOTO_STATEMENT_V01,
        )
    else:
        statement = ProvenanceStatement(
            subjects=subjects,
            predicate={'buildDefinition': definition.to_dict(), 'runDetails': details.to_dict()},
        )

    logger.info(
        'provenance_generated',
        build_type=build_type.uri,
        subjects=len(subjects),
        builder=details.builder_id,
        predicate_version=predicate_version,
    )
    return statement


# --- JSON Schema for the in-toto Statement ---

_DIGEST_SET_SCHEMA: dict[str, Any] = {
    'type': 'object',
    'minProperties': 1,
    'additionalProperties': {'type': 'string', 'pattern': '^[0-9a-f]+$'},
}

_RESOURCE_DESCRIPTOR_SCHEMA: dict[str, Any] = {
    'type': 'object',
    'required': ['uri'],
    'properties': {
        'uri': {'type': 'string'},
        'digest': {'type': 'object', 'additionalProperties': {'type': 'string'}},
        'localName': {'type': 'string'},
        'downloadLocation': {'type': 'string'},
        'mediaType': {'type': 'string'},
    },
}

_V1_PREDICATE_SCHEMA: dict[str, Any] = {
    'type': 'object',
    'required': ['buildDefinition', 'runDetails'],
    'properties': {
        'buildDefinition': {
            'type': 'object',
            'required': ['buildType', 'externalParameters'],
            'properties': {
                'buildType': {'type': 'string'},
                'externalParameters': {'type': 'object'},
                'internalParameters': {'type': 'object'},
                'resolvedDependencies': {'type': 'array', 'items': _RESOURCE_DESCRIPTOR_SCHEMA},
            },
            'additionalProperties': False,
        },
        'runDetails': {
            'type': 'object',
            'required': ['builder'],
            'properties': {
                'builder': {
                    'type': 'object',
                    'required': ['id'],
                    'properties': {'id': {'type': 'string'}},
                },
                'metadata': {
                    'type': 'object',
                    'properties': {'invocationId': {'type': 'string'}},
                },
            },
        },
    },
    'additionalProperties': False,
}

_V02_PREDICATE_SCHEMA: dict[str, Any] = {
    'type': 'object',
    'required': ['builder', 'buildType', 'invocation'],
    'properties': {
        'builder': {'type': 'object', 'required': ['id'], 'properties': {'id': {'type': 'string'}}},
        'buildType': {'type': 'string'},
        'invocation': {'type': 'object'},
        'buildConfig': {},
        'metadata': {'type': 'object'},
        'materials': {'type': 'array', 'items': _RESOURCE_DESCRIPTOR_SCHEMA},
    },
    'additionalProperties': False,
}

#: Schema of a statement produced by :func:`generate`, either layout.
PROVENANCE_STATEMENT_SCHEMA: dict[str, Any] = {
    '$schema': 'https://json-schema.org/draft/2020-12/schema',
    'type': 'object',
    'required': ['_type', 'subject', 'predicateType', 'predicate'],
    'properties': {
        '_type': {'enum': [IN_TOTO_STATEMENT_V01, IN_TOTO_STATEMENT_V1]},
        'subject': {
            'type': 'array',
            'items': {
                'type': 'object',
                'required': ['name', 'digest'],
                'properties': {'name': {'type': 'string', 'minLength': 1}, 'digest': _DIGEST_SET_SCHEMA},
            },
        },
        'predicateType': {'enum': [SLSA_PREDICATE_V02, SLSA_PREDICATE_V1]},
        'predicate': {'type': 'object'},
    },
    'allOf': [
        {
            'if': {'properties': {'predicateType': {'const': SLSA_PREDICATE_V1}}},
            'then': {'properties': {'predicate': _V1_PREDICATE_SCHEMA}},
            'else': {'properties': {'predicate': _V02_PREDICATE_SCHEMA}},
        },
    ],
}


def validate_provenance_schema(statement: dict[str, Any]) -> list[str]:
    """Validate a serialized statement against :data:`PROVENANCE_STATEMENT_SCHEMA`.

    Returns:
        Validation error messages; empty when the statement is valid.
    """
    validator = jsonschema.Draft202012Validator(PROVENANCE_STATEMENT_SCHEMA)
    errors = sorted(validator.iter_errors(statement), key=lambda e: list(e.absolute_path))
    return [f'{".".join(str(p) for p in e.absolute_path) or "(root)"}: {e.message}' for e in errors]


def check_statement(statement: ProvenanceStatement) -> None:
    """Refuse to publish a statement that does not match the schema.

    Raises:
        ProvenanceKitError: ``INVALID_FIELD`` listing every schema violation.
    """
    problems = validate_provenance_schema(statement.to_dict())
    if problems:
        logger.error('statement_invalid', problems=problems)
        raise ProvenanceKitError(
            code=E.INVALID_FIELD,
            message=f'Provenance statement does not match the schema: {"; ".join(problems)}',
        )


__all__ = [
    'GITHUB_HOSTED_ACTIONS_BUILDER_ID',
    'IN_TOTO_STATEMENT_V01',
    'IN_TOTO_STATEMENT_V1',
    'PROVENANCE_STATEMENT_SCHEMA',
    'SLSA_PREDICATE_V02',
    'SLSA_PREDICATE_V1',
    'ArtifactReference',
    'BuildDefinition',
    'BuildType',
    'GitHubActionsBuild',
    'PredicateVersion',
    'ProvenanceStatement',
    'RunDetails',
    'Subject',
    'check_statement',
    'generate',
    'oidc_audience',
    'validate_provenance_schema',
    'validate_subjects',
]
