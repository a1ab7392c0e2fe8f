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

"""Tests for the GitHub REST API workflow lookup."""

from __future__ import annotations

import httpx
import pytest
from provenancekit.backends.clients import DefaultClientProvider, NilClientProvider
from provenancekit.backends.github_api import GitHubAPIBackend, GitHubClient
from provenancekit.errors import E, ProvenanceKitError
from provenancekit.logging import configure_logging

configure_logging(quiet=True)

# ── Helpers ──────────────────────────────────────────────────────────


def _routes(routes: dict[str, httpx.Response], seen: list[httpx.Request] | None = None) -> httpx.MockTransport:
    def handler(request: httpx.Request) -> httpx.Response:
        if seen is not None:
            seen.append(request)
        return routes.get(request.url.path, httpx.Response(404, json={'message': 'Not Found'}))

    return httpx.MockTransport(handler)


def _backend(transport: httpx.MockTransport) -> GitHubAPIBackend:
    return GitHubAPIBackend(token='ghp_test_token_for_unit_tests', transport=transport)


# ── Tests ────────────────────────────────────────────────────────────


class TestGitHubAPIBackend:
    """Tests for GitHubAPIBackend.workflow_path()."""

    def test_is_github_client(self) -> None:
        """The backend satisfies the GitHubClient protocol."""
        assert isinstance(_backend(_routes({})), GitHubClient)

    def test_token_required(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """Without any token the backend refuses to start."""
        monkeypatch.delenv('GITHUB_TOKEN', raising=False)
        monkeypatch.delenv('GH_TOKEN', raising=False)
        with pytest.raises(ProvenanceKitError) as exc_info:
            GitHubAPIBackend()
        assert exc_info.value.code == E.MISSING_ENV_VARIABLE

    def test_token_from_env(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """GH_TOKEN is used when nothing else is set."""
        monkeypatch.delenv('GITHUB_TOKEN', raising=False)
        monkeypatch.setenv('GH_TOKEN', 'from-gh')
        backend = GitHubAPIBackend()
        assert 'from-gh' not in repr(backend)

    @pytest.mark.asyncio
    async def test_resolves_path(self) -> None:
        """Run ID maps to workflow ID maps to workflow path."""
        seen: list[httpx.Request] = []
        transport = _routes(
            {
                '/repos/octo/hello/actions/runs/1234': httpx.Response(200, json={'workflow_id': 55}),
                '/repos/octo/hello/actions/workflows/55': httpx.Response(
                    200,
                    json={'path': '.github/workflows/release.yml'},
                ),
            },
            seen,
        )
        path = await _backend(transport).workflow_path('octo/hello', '1234')
        assert path == '.github/workflows/release.yml'
        assert seen[0].headers['Authorization'] == 'Bearer ghp_test_token_for_unit_tests'
        assert seen[0].headers['X-GitHub-Api-Version'] == '2022-11-28'

    @pytest.mark.asyncio
    @pytest.mark.parametrize(('repository', 'run_id'), [('octo/hello', 'abc'), ('octo', '1'), ('/hello', '1')])
    async def test_bad_inputs(self, repository: str, run_id: str) -> None:
        """Malformed run IDs and repositories fail before any request."""
        seen: list[httpx.Request] = []
        with pytest.raises(ProvenanceKitError) as exc_info:
            await _backend(_routes({}, seen)).workflow_path(repository, run_id)
        assert exc_info.value.code == E.INVALID_FIELD
        assert seen == []

    @pytest.mark.asyncio
    async def test_not_found(self) -> None:
        """A 404 is GITHUB_API_FAILED."""
        with pytest.raises(ProvenanceKitError) as exc_info:
            await _backend(_routes({})).workflow_path('octo/hello', '1')
        assert exc_info.value.code == E.GITHUB_API_FAILED

    @pytest.mark.asyncio
    async def test_workflow_without_path(self) -> None:
        """A workflow without a path is GITHUB_API_FAILED."""
        transport = _routes(
            {
                '/repos/octo/hello/actions/runs/1': httpx.Response(200, json={'workflow_id': 2}),
                '/repos/octo/hello/actions/workflows/2': httpx.Response(200, json={'path': ''}),
            },
        )
        with pytest.raises(ProvenanceKitError) as exc_info:
            await _backend(transport).workflow_path('octo/hello', '1')
        assert exc_info.value.code == E.GITHUB_API_FAILED


class TestClientProviders:
    """Tests for the client providers."""

    def test_nil_provider(self) -> None:
        """The nil provider has no clients."""
        provider = NilClientProvider()
        assert provider.oidc_client() is None
        assert provider.github_client() is None

    def test_default_provider_caches(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """Clients are built once and then reused."""
        monkeypatch.setenv('ACTIONS_ID_TOKEN_REQUEST_URL', 'https://runtime.test/token')
        monkeypatch.setenv('ACTIONS_ID_TOKEN_REQUEST_TOKEN', 'bearer')
        provider = DefaultClientProvider(github_token='ghp_x')
        assert provider.oidc_client() is provider.oidc_client()
        assert provider.github_client() is provider.github_client()

    def test_default_provider_without_runtime(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """Outside Actions the OIDC client cannot be built."""
        monkeypatch.delenv('ACTIONS_ID_TOKEN_REQUEST_URL', raising=False)
        with pytest.raises(ProvenanceKitError) as exc_info:
            DefaultClientProvider().oidc_client()
        assert exc_info.value.code == E.MISSING_ENV_VARIABLE
