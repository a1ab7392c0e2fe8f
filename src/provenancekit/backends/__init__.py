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

"""Protocol-based backend layer for provenancekit.

Every call that leaves the process (subprocesses, the Actions OIDC
endpoint, the GitHub REST API) goes through an injectable interface
defined here, so tests can swap in fakes.

- :func:`run_command`: subprocess execution
- :class:`OIDCClient`: verified ID tokens (default :class:`GitHubOIDCClient`)
- :class:`GitHubClient`: workflow lookups (default :class:`GitHubAPIBackend`)
- :class:`ClientProvider`: hands out the two clients above
"""

from provenancekit.backends._run import CommandResult, run_command
from provenancekit.backends.clients import ClientProvider, DefaultClientProvider, NilClientProvider
from provenancekit.backends.github_api import GitHubAPIBackend, GitHubClient
from provenancekit.backends.oidc import GitHubOIDCClient, OIDCClient, OIDCToken

__all__ = [
    'ClientProvider',
    'CommandResult',
    'DefaultClientProvider',
    'GitHubAPIBackend',
    'GitHubClient',
    'GitHubOIDCClient',
    'NilClientProvider',
    'OIDCClient',
    'OIDCToken',
    'run_command',
]
