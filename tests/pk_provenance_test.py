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

"""Tests for provenancekit.provenance module.

Generation runs against in-memory OIDC and GitHub clients, so no
network access is needed.
"""

from __future__ import annotations

import pytest
from provenancekit.backends.clients import ClientProvider
from provenancekit.backends.github_api import GitHubClient
from provenancekit.backends.oidc import OIDCClient, OIDCToken
from provenancekit.builders.generic import GENERIC_BUILD_TYPE, GenericBuild
from provenancekit.context import WorkflowContext
from provenancekit.errors import E, ProvenanceKitError
from provenancekit.logging import configure_logging
from provenancekit.provenance import (
    GITHUB_HOSTED_ACTIONS_BUILDER_ID,
    IN_TOTO_STATEMENT_V01,
    IN_TOTO_STATEMENT_V1,
    SLSA_PREDICATE_V02,
    SLSA_PREDICATE_V1,
    ArtifactReference,
    BuildDefinition,
    BuildType,
    GitHubActionsBuild,
    ProvenanceStatement,
    RunDetails,
    Subject,
    check_statement,
    generate,
    oidc_audience,
    validate_provenance_schema,
    validate_subjects,
)

configure_logging(quiet=True)

SHA256 = 'e' * 64
SHA1 = 'c' * 40

CONTEXT = WorkflowContext.from_dict({
    'repository': 'octo/hello',
    'repository_owner': 'octo',
    'workflow': 'release',
    'event_name': 'workflow_dispatch',
    'event': {'inputs': {'tag': 'v1.0.0'}},
    'sha': SHA1,
    'ref': 'refs/tags/v1.0.0',
    'ref_type': 'tag',
    'actor': 'mona',
    'server_url': 'https://github.com',
    'run_id': '1234',
    'run_number': '7',
    'run_attempt': '2',
})


class _FakeOIDC:
    def __init__(self, token: OIDCToken) -> None:
        self._token = token
        self.audiences: list[list[str]] = []

    async def token(self, audience: list[str]) -> OIDCToken:
        self.audiences.append(list(audience))
        return self._token


class _FakeGitHub:
    async def workflow_path(self, repository: str, run_id: str) -> str:
        return '.github/workflows/release.yml'


class _Clients:
    def __init__(self, token: OIDCToken) -> None:
        self.oidc = _FakeOIDC(token)
        self.github = _FakeGitHub()

    def oidc_client(self) -> OIDCClient | None:
        return self.oidc

    def github_client(self) -> GitHubClient | None:
        return self.github


def _token(**overrides: str) -> OIDCToken:
    values = {
        'job_workflow_ref': 'octo/builder/.github/workflows/gen.yml@refs/tags/v1',
        'repository_id': '1',
        'repository_owner_id': '2',
        'actor_id': '3',
    }
    values.update(overrides)
    return OIDCToken(**values)


class _FailingBuild:
    """A build whose subject() fails, to check nothing else runs."""

    def __init__(self) -> None:
        self.definition_called = False

    @property
    def uri(self) -> str:
        return GENERIC_BUILD_TYPE

    async def subject(self) -> list[Subject]:
        raise ProvenanceKitError(code=E.INVALID_DIGEST, message='boom')

    async def build_definition(self) -> BuildDefinition:
        self.definition_called = True
        return BuildDefinition(build_type=GENERIC_BUILD_TYPE)

    async def run_details(self) -> RunDetails:
        return RunDetails(builder_id=GITHUB_HOSTED_ACTIONS_BUILDER_ID)


class TestDataModel:
    """Tests for the statement data classes."""

    def test_subject_round_trip(self) -> None:
        """Subjects serialize to the in-toto shape."""
        subject = Subject(name='hello', digest={'sha256': SHA256})
        assert subject.to_dict() == {'name': 'hello', 'digest': {'sha256': SHA256}}
        assert Subject.from_dict(subject.to_dict()) == subject

    def test_artifact_reference_omits_empty_fields(self) -> None:
        """Optional descriptor fields appear only when set."""
        ref = ArtifactReference(uri='git+https://github.com/octo/hello@refs/heads/main', digest={'sha1': SHA1})
        assert set(ref.to_dict()) == {'uri', 'digest'}
        named = ArtifactReference(uri='x', local_name='src', media_type='application/x-git')
        assert named.to_dict()['localName'] == 'src'
        assert ArtifactReference.from_dict(named.to_dict()) == named

    def test_build_config_lands_in_internal_parameters(self) -> None:
        """buildConfig is carried inside internalParameters in the v1 layout."""
        definition = BuildDefinition(build_type='t', build_config={'steps': []})
        assert definition.to_dict() == {
            'buildType': 't',
            'externalParameters': {},
            'internalParameters': {'buildConfig': {'steps': []}},
        }

    def test_run_details_without_invocation(self) -> None:
        """No invocation ID means no metadata block."""
        assert RunDetails(builder_id='b').to_dict() == {'builder': {'id': 'b'}}

    def test_statement_from_dict_malformed(self) -> None:
        """A statement without its required keys is INVALID_FIELD."""
        with pytest.raises(ProvenanceKitError) as exc_info:
            ProvenanceStatement.from_dict({'subject': []})
        assert exc_info.value.code == E.INVALID_FIELD


class TestValidateSubjects:
    """Tests for validate_subjects()."""

    def test_valid(self) -> None:
        """Unique names with hex digests pass through unchanged."""
        subjects = [Subject('a', {'sha256': SHA256}), Subject('b', {'sha1': SHA1})]
        assert validate_subjects(subjects) == subjects

    @pytest.mark.parametrize(
        ('subjects', 'code'),
        [
            ([Subject('', {'sha256': SHA256})], E.MISSING_SUBJECT_NAME),
            ([Subject('a', {'sha256': SHA256}), Subject('a', {'sha256': SHA256})], E.DUPLICATE_SUBJECT),
            ([Subject('a', {})], E.INVALID_DIGEST),
            ([Subject('a', {'sha256': 'XYZ'})], E.INVALID_DIGEST),
        ],
    )
    def test_invalid(self, subjects: list[Subject], code: E) -> None:
        """Each malformed subject list maps to its error code."""
        with pytest.raises(ProvenanceKitError) as exc_info:
            validate_subjects(subjects)
        assert exc_info.value.code == code


class TestOIDCAudience:
    """Tests for oidc_audience()."""

    @pytest.mark.parametrize(
        ('build_type', 'expected'),
        [
            (GENERIC_BUILD_TYPE, 'slsa-framework/slsa-github-generator/generic@v1'),
            ('github.com/octo/builder@v1', 'octo/builder@v1'),
            ('http://github.com/octo/builder@v1', 'octo/builder@v1'),
            ('https://slsa.dev/container-based-build/v0.1?draft', 'https://slsa.dev/container-based-build/v0.1?draft'),
        ],
    )
    def test_strips_github_prefix(self, build_type: str, expected: str) -> None:
        """Only a leading github.com prefix is removed."""
        assert oidc_audience(build_type) == expected


class TestGitHubActionsBuild:
    """Tests for GitHubActionsBuild."""

    @pytest.mark.asyncio
    async def test_without_clients(self) -> None:
        """Without clients the workflow name is the entry point and the hosted builder is used."""
        helper = GitHubActionsBuild(CONTEXT, GENERIC_BUILD_TYPE)
        external = await helper.external_parameters()
        assert external == {
            'workflow': {'ref': 'refs/tags/v1.0.0', 'path': 'release', 'repository': 'https://github.com/octo/hello'},
            'inputs': {'tag': 'v1.0.0'},
        }
        internal = await helper.internal_parameters()
        assert internal['github_run_id'] == '1234'
        assert internal['github_sha1'] == SHA1
        assert 'github_repository_id' not in internal
        details = await helper.run_details()
        assert details.builder_id == GITHUB_HOSTED_ACTIONS_BUILDER_ID
        assert details.invocation_id == 'https://github.com/octo/hello/actions/runs/1234/attempts/2'

    @pytest.mark.asyncio
    async def test_with_clients(self) -> None:
        """The API resolves the workflow path and the token names the builder."""
        clients = _Clients(_token())
        helper = GitHubActionsBuild(CONTEXT, GENERIC_BUILD_TYPE, clients)
        assert isinstance(clients, ClientProvider)
        assert await helper.entry_point() == '.github/workflows/release.yml'
        internal = await helper.internal_parameters()
        assert internal['github_repository_id'] == '1'
        assert internal['github_repository_owner_id'] == '2'
        assert internal['github_actor_id'] == '3'
        details = await helper.run_details()
        assert details.builder_id == 'https://github.com/octo/builder/.github/workflows/gen.yml@refs/tags/v1'
        assert ['slsa-framework/slsa-github-generator/generic@v1'] in clients.oidc.audiences

    @pytest.mark.asyncio
    @pytest.mark.parametrize('claim', ['repository_id', 'repository_owner_id', 'actor_id'])
    async def test_empty_claim(self, claim: str) -> None:
        """An empty numeric ID claim is INVALID_OIDC_TOKEN."""
        helper = GitHubActionsBuild(CONTEXT, GENERIC_BUILD_TYPE, _Clients(_token(**{claim: ''})))
        with pytest.raises(ProvenanceKitError) as exc_info:
            await helper.internal_parameters()
        assert exc_info.value.code == E.INVALID_OIDC_TOKEN

    @pytest.mark.asyncio
    async def test_token_without_workflow_ref(self) -> None:
        """A token without job_workflow_ref keeps the hosted builder."""
        helper = GitHubActionsBuild(CONTEXT, GENERIC_BUILD_TYPE, _Clients(_token(job_workflow_ref='')))
        assert (await helper.run_details()).builder_id == GITHUB_HOSTED_ACTIONS_BUILDER_ID

    def test_resolved_dependencies(self) -> None:
        """The triggering repository is pinned at its commit."""
        helper = GitHubActionsBuild(CONTEXT, GENERIC_BUILD_TYPE)
        assert helper.resolved_dependencies() == [
            ArtifactReference(uri='git+https://github.com/octo/hello@refs/tags/v1.0.0', digest={'sha1': SHA1}),
        ]
        assert GitHubActionsBuild(WorkflowContext(), GENERIC_BUILD_TYPE).resolved_dependencies() == []


class TestGenerate:
    """Tests for generate()."""

    def _build(self) -> GenericBuild:
        return GenericBuild([Subject('hello', {'sha256': SHA256})], CONTEXT, _Clients(_token()))

    def test_generic_build_is_build_type(self) -> None:
        """Builder flavors satisfy the BuildType protocol."""
        assert isinstance(self._build(), BuildType)

    @pytest.mark.asyncio
    async def test_v1(self) -> None:
        """The v1 statement carries buildDefinition and runDetails and passes the schema."""
        statement = await generate(self._build())
        data = statement.to_dict()
        assert data['_type'] == IN_TOTO_STATEMENT_V1
        assert data['predicateType'] == SLSA_PREDICATE_V1
        assert data['subject'] == [{'name': 'hello', 'digest': {'sha256': SHA256}}]
        definition = data['predicate']['buildDefinition']
        assert definition['buildType'] == GENERIC_BUILD_TYPE
        assert definition['externalParameters']['workflow']['path'] == '.github/workflows/release.yml'
        assert definition['resolvedDependencies'][0]['digest'] == {'sha1': SHA1}
        assert data['predicate']['runDetails']['metadata']['invocationId'].endswith('/runs/1234/attempts/2')
        assert validate_provenance_schema(data) == []

    @pytest.mark.asyncio
    async def test_v02(self) -> None:
        """The legacy layout has invocation, materials and metadata."""
        statement = await generate(self._build(), predicate_version='v0.2')
        data = statement.to_dict()
        assert data['_type'] == IN_TOTO_STATEMENT_V01
        assert data['predicateType'] == SLSA_PREDICATE_V02
        predicate = data['predicate']
        assert predicate['invocation']['configSource'] == {
            'entryPoint': '.github/workflows/release.yml',
            'uri': 'git+https://github.com/octo/hello@refs/tags/v1.0.0',
            'digest': {'sha1': SHA1},
        }
        assert predicate['invocation']['parameters'] == {'event_inputs': {'tag': 'v1.0.0'}}
        assert predicate['metadata']['buildInvocationID'] == '1234-2'
        assert predicate['metadata']['completeness']['parameters'] is True
        assert predicate['materials'][0]['uri'].startswith('git+')
        assert validate_provenance_schema(data) == []

    @pytest.mark.asyncio
    async def test_error_aborts_generation(self) -> None:
        """A failing subject() stops generation before anything else runs."""
        build = _FailingBuild()
        with pytest.raises(ProvenanceKitError):
            await generate(build)
        assert build.definition_called is False

    @pytest.mark.asyncio
    async def test_invalid_subject_digest_aborts(self) -> None:
        """Subjects are validated before the statement is assembled."""
        build = GenericBuild([Subject('hello', {'sha256': 'nothex'})], CONTEXT)
        with pytest.raises(ProvenanceKitError) as exc_info:
            await generate(build)
        assert exc_info.value.code == E.INVALID_DIGEST

    @pytest.mark.asyncio
    async def test_json_round_trip(self) -> None:
        """A generated statement parses back to the same subjects."""
        statement = await generate(self._build())
        parsed = ProvenanceStatement.from_dict(statement.to_dict())
        assert parsed.subjects == statement.subjects
        assert parsed.predicate_type == SLSA_PREDICATE_V1


class TestSchema:
    """Tests for validate_provenance_schema()."""

    def test_rejects_unknown_predicate_field(self) -> None:
        """Extra keys in the v1 buildDefinition are reported."""
        statement = {
            '_type': IN_TOTO_STATEMENT_V1,
            'subject': [{'name': 'a', 'digest': {'sha256': SHA256}}],
            'predicateType': SLSA_PREDICATE_V1,
            'predicate': {
                'buildDefinition': {'buildType': 't', 'externalParameters': {}, 'surprise': 1},
                'runDetails': {'builder': {'id': 'b'}},
            },
        }
        errors = validate_provenance_schema(statement)
        assert errors
        assert any('surprise' in e for e in errors)

    def test_rejects_uppercase_digest(self) -> None:
        """Subject digests must be lowercase hex."""
        statement = {
            '_type': IN_TOTO_STATEMENT_V1,
            'subject': [{'name': 'a', 'digest': {'sha256': 'ABC'}}],
            'predicateType': SLSA_PREDICATE_V1,
            'predicate': {
                'buildDefinition': {'buildType': 't', 'externalParameters': {}},
                'runDetails': {'builder': {'id': 'b'}},
            },
        }
        assert validate_provenance_schema(statement)

    def test_check_statement(self) -> None:
        """check_statement passes valid statements and fails closed on the rest."""
        predicate = {
            'buildDefinition': {'buildType': 't', 'externalParameters': {}},
            'runDetails': {'builder': {'id': 'b'}},
        }
        check_statement(ProvenanceStatement(subjects=[Subject('a', {'sha256': SHA256})], predicate=predicate))
        with pytest.raises(ProvenanceKitError) as exc_info:
            check_statement(ProvenanceStatement(subjects=[Subject('a', {'sha256': SHA256})], predicate={'x': 1}))
        assert exc_info.value.code == E.INVALID_FIELD
