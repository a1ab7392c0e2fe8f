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

"""GitHub REST API lookups used while assembling provenance.

The only question provenance needs answered is "which workflow file
produced this run?". The context gives the run ID; the API maps it to
a workflow ID and then to the workflow's path in the repository::

    GET /repos/{owner}/{repo}/actions/runs/{run_id}          -> workflow_id
    GET /repos/{owner}/{repo}/actions/workflows/{workflow_id} -> path

Authentication:

    Resolves a token in order of precedence:

    1. ``token`` constructor parameter.
    2. ``GITHUB_TOKEN`` env var (set automatically by GitHub Actions).
    3. ``GH_TOKEN`` env var (used by the ``gh`` CLI).
"""

from __future__ import annotations

import os
from typing import Any, Protocol, runtime_checkable

import httpx

from provenancekit.errors import E, ProvenanceKitError
from provenancekit.logging import get_logger
from provenancekit.net import DEFAULT_POOL_SIZE, DEFAULT_TIMEOUT, http_client, request_with_retry

log = get_logger('provenancekit.backends.github_api')

_DEFAULT_BASE_URL = 'https://api.github.com'
_API_VERSION = '2022-11-28'


@runtime_checkable
class GitHubClient(Protocol):
    """Workflow lookups against the GitHub API."""

    async def workflow_path(self, repository: str, run_id: str) -> str:
        """Return the path of the workflow file that ran ``run_id``."""
        ...


class GitHubAPIBackend:
    """:class:`GitHubClient` backed by the REST API via ``httpx``."""

    def __init__(
        self,
        *,
        token: str = '',
        base_url: str = _DEFAULT_BASE_URL,
        pool_size: int = DEFAULT_POOL_SIZE,
        timeout: float = DEFAULT_TIMEOUT,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """Initialize with an API token."""
        self._base_url = base_url.rstrip('/')
        self._pool_size = pool_size
        self._timeout = timeout
        self._transport = transport

        resolved_token = token or os.environ.get('GITHUB_TOKEN', '') or os.environ.get('GH_TOKEN', '')
        if not resolved_token:
            raise ProvenanceKitError(
                code=E.MISSING_ENV_VARIABLE,
                message='GitHub API token required: pass token= or set GITHUB_TOKEN or GH_TOKEN.',
            )

        self._headers = {
            'Authorization': f'Bearer {resolved_token}',
            'Accept': 'application/vnd.github+json',
            'X-GitHub-Api-Version': _API_VERSION,
        }

    def __repr__(self) -> str:
        """Return a safe repr that never exposes the API token."""
        return f'GitHubAPIBackend(base_url={self._base_url!r})'

    async def _get_json(self, client: httpx.AsyncClient, url: str) -> dict[str, Any]:
        try:
            response = await request_with_retry(client, 'GET', url)
        except httpx.HTTPError as exc:
            raise ProvenanceKitError(code=E.GITHUB_API_FAILED, message=f'GET {url} failed: {exc}') from exc
        if not response.is_success:
            raise ProvenanceKitError(
                code=E.GITHUB_API_FAILED,
                message=f'GET {url} returned {response.status_code}: {response.text[:200]}',
            )
        return response.json()

    async def workflow_path(self, repository: str, run_id: str) -> str:
        """Resolve a run to the path of its workflow file.

        Raises:
            ProvenanceKitError: ``INVALID_FIELD`` for a malformed run ID or
                repository, ``GITHUB_API_FAILED`` for API errors or a
                workflow without a path.
        """
        if not run_id.isdigit():
            raise ProvenanceKitError(code=E.INVALID_FIELD, message=f'Parsing run ID {run_id!r}: not a number.')
        owner, sep, name = repository.partition('/')
        if not sep or not owner or not name:
            raise ProvenanceKitError(code=E.INVALID_FIELD, message=f'Unexpected repository: {repository!r}.')

        repo_url = f'{self._base_url}/repos/{owner}/{name}'
        async with http_client(
            pool_size=self._pool_size,
            timeout=self._timeout,
            headers=self._headers,
            transport=self._transport,
        ) as client:
            run = await self._get_json(client, f'{repo_url}/actions/runs/{run_id}')
            workflow_id = run.get('workflow_id')
            if workflow_id is None:
                raise ProvenanceKitError(code=E.GITHUB_API_FAILED, message=f'Run {run_id} has no workflow_id.')
            workflow = await self._get_json(client, f'{repo_url}/actions/workflows/{workflow_id}')

        path = workflow.get('path')
        if not path:
            raise ProvenanceKitError(code=E.GITHUB_API_FAILED, message='Workflow path not found.')
        log.debug('workflow_path_resolved', run_id=run_id, workflow_id=workflow_id, path=path)
        return path


__all__ = [
    'GitHubAPIBackend',
    'GitHubClient',
]
