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

"""Providers that hand out the OIDC and GitHub API clients.

A provider returning ``None`` for a client means "not available": the
provenance helper then skips the OIDC-derived IDs, or falls back to the
bare workflow name for the entry point.

Clients are created lazily on first use and cached. A provider belongs
to one generation; do not share it across concurrent generations.
"""

from __future__ import annotations

from typing import Protocol, runtime_checkable

from provenancekit.backends.github_api import GitHubAPIBackend, GitHubClient
from provenancekit.backends.oidc import GitHubOIDCClient, OIDCClient


@runtime_checkable
class ClientProvider(Protocol):
    """Source of the external clients used during generation."""

    def oidc_client(self) -> OIDCClient | None:
        """Return the OIDC client, or ``None`` if unavailable."""
        ...

    def github_client(self) -> GitHubClient | None:
        """Return the GitHub API client, or ``None`` if unavailable."""
        ...


class DefaultClientProvider:
    """Builds real clients from the Actions environment on first use.

    Args:
        github_token: Token for the REST API. Falls back to
            ``GITHUB_TOKEN``/``GH_TOKEN`` when empty.
    """

    def __init__(self, github_token: str = '') -> None:
        """Initialize with an optional GitHub token."""
        self._github_token = github_token
        self._oidc: OIDCClient | None = None
        self._github: GitHubClient | None = None

    def oidc_client(self) -> OIDCClient | None:
        """Return the cached :class:`GitHubOIDCClient`, creating it once."""
        if self._oidc is None:
            self._oidc = GitHubOIDCClient.from_env()
        return self._oidc

    def github_client(self) -> GitHubClient | None:
        """Return the cached :class:`GitHubAPIBackend`, creating it once."""
        if self._github is None:
            self._github = GitHubAPIBackend(token=self._github_token)
        return self._github


class NilClientProvider:
    """Provider with no clients, for offline and test generation."""

    def oidc_client(self) -> OIDCClient | None:
        """No OIDC client."""
        return None

    def github_client(self) -> GitHubClient | None:
        """No GitHub client."""
        return None


__all__ = [
    'ClientProvider',
    'DefaultClientProvider',
    'NilClientProvider',
]
