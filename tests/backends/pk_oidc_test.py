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

"""Tests for the GitHub Actions OIDC client.

Tokens are signed with a throwaway RSA key; a fake key resolver stands
in for the issuer's JWKS endpoint.
"""

from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Any

import httpx
import jwt
import pytest
from cryptography.hazmat.primitives.asymmetric import rsa
from provenancekit.backends.oidc import GITHUB_OIDC_ISSUER, GitHubOIDCClient, OIDCClient, OIDCToken
from provenancekit.errors import E, ProvenanceKitError
from provenancekit.logging import configure_logging

configure_logging(quiet=True)

_PRIVATE_KEY = rsa.generate_private_key(public_exponent=65537, key_size=2048)
_OTHER_KEY = rsa.generate_private_key(public_exponent=65537, key_size=2048)

REQUEST_URL = 'https://runtime.test/token?api-version=2.0'
AUDIENCE = 'slsa-framework/slsa-github-generator/generic@v1'


@dataclass
class _Key:
    key: Any


class _FakeResolver:
    """Resolves every token to one public key."""

    def __init__(self, private_key: rsa.RSAPrivateKey) -> None:
        self._public = private_key.public_key()

    def get_signing_key_from_jwt(self, token: str) -> _Key:
        return _Key(self._public)


def _claims(**overrides: Any) -> dict[str, Any]:  # noqa: ANN401 - JSON claims
    claims: dict[str, Any] = {
        'iss': GITHUB_OIDC_ISSUER,
        'aud': AUDIENCE,
        'exp': int(time.time()) + 600,
        'job_workflow_ref': 'octo/hello/.github/workflows/build.yml@refs/heads/main',
        'repository_id': '42',
        'repository_owner_id': 7,
        'actor_id': '99',
    }
    claims.update(overrides)
    return claims


def _sign(claims: dict[str, Any], key: rsa.RSAPrivateKey = _PRIVATE_KEY) -> str:
    return jwt.encode(claims, key, algorithm='RS256')


def _client(
    body: Any,  # noqa: ANN401 - JSON body
    *,
    status: int = 200,
    seen: list[httpx.Request] | None = None,
) -> GitHubOIDCClient:
    def handler(request: httpx.Request) -> httpx.Response:
        if seen is not None:
            seen.append(request)
        return httpx.Response(status, json=body)

    return GitHubOIDCClient(
        REQUEST_URL,
        'runtime-bearer',
        key_resolver=_FakeResolver(_PRIVATE_KEY),
        transport=httpx.MockTransport(handler),
    )


class TestOIDCToken:
    """Tests for OIDCToken.from_claims()."""

    def test_stringifies_claims(self) -> None:
        """Numeric claims become strings; missing ones are empty."""
        token = OIDCToken.from_claims({'repository_owner_id': 7, 'actor_id': None})
        assert token.repository_owner_id == '7'
        assert token.actor_id == ''
        assert token.job_workflow_ref == ''

    def test_raw_token_hidden_from_repr(self) -> None:
        """The raw JWT never appears in repr()."""
        token = OIDCToken.from_claims({}, raw_token='aaa.bbb.ccc')
        assert 'aaa.bbb.ccc' not in repr(token)


class TestGitHubOIDCClient:
    """Tests for GitHubOIDCClient.token()."""

    def test_satisfies_protocol(self) -> None:
        """The client is an OIDCClient."""
        assert isinstance(_client({}), OIDCClient)

    @pytest.mark.asyncio
    async def test_valid_token(self) -> None:
        """A correctly signed token yields its claims."""
        seen: list[httpx.Request] = []
        raw = _sign(_claims())
        token = await _client({'value': raw}, seen=seen).token([AUDIENCE])
        assert token.job_workflow_ref == 'octo/hello/.github/workflows/build.yml@refs/heads/main'
        assert token.repository_id == '42'
        assert token.repository_owner_id == '7'
        assert token.actor_id == '99'
        assert token.raw_token == raw
        assert seen[0].url.params.get_list('audience') == [AUDIENCE]
        assert seen[0].headers['Authorization'] == 'bearer runtime-bearer'

    @pytest.mark.asyncio
    async def test_wrong_signature(self) -> None:
        """A token signed by another key is rejected."""
        with pytest.raises(ProvenanceKitError) as exc_info:
            await _client({'value': _sign(_claims(), _OTHER_KEY)}).token([AUDIENCE])
        assert exc_info.value.code == E.INVALID_OIDC_TOKEN

    @pytest.mark.asyncio
    async def test_wrong_audience(self) -> None:
        """A token minted for someone else is rejected."""
        with pytest.raises(ProvenanceKitError) as exc_info:
            await _client({'value': _sign(_claims(aud='someone-else'))}).token([AUDIENCE])
        assert exc_info.value.code == E.INVALID_OIDC_TOKEN

    @pytest.mark.asyncio
    async def test_wrong_issuer(self) -> None:
        """A token from another issuer is rejected."""
        with pytest.raises(ProvenanceKitError) as exc_info:
            await _client({'value': _sign(_claims(iss='https://evil.test'))}).token([AUDIENCE])
        assert exc_info.value.code == E.INVALID_OIDC_TOKEN

    @pytest.mark.asyncio
    async def test_expired(self) -> None:
        """An expired token is rejected."""
        with pytest.raises(ProvenanceKitError) as exc_info:
            await _client({'value': _sign(_claims(exp=int(time.time()) - 3600))}).token([AUDIENCE])
        assert exc_info.value.code == E.INVALID_OIDC_TOKEN

    @pytest.mark.asyncio
    @pytest.mark.parametrize('body', [{}, {'value': 'not-a-jwt'}, {'value': 3}])
    async def test_malformed_response(self, body: dict[str, Any]) -> None:
        """Responses without a three-part token are INVALID_OIDC_TOKEN."""
        with pytest.raises(ProvenanceKitError) as exc_info:
            await _client(body).token([AUDIENCE])
        assert exc_info.value.code == E.INVALID_OIDC_TOKEN

    @pytest.mark.asyncio
    async def test_runtime_refuses(self) -> None:
        """A 403 from the runtime is OIDC_REQUEST_FAILED."""
        with pytest.raises(ProvenanceKitError) as exc_info:
            await _client({'message': 'forbidden'}, status=403).token([AUDIENCE])
        assert exc_info.value.code == E.OIDC_REQUEST_FAILED

    def test_from_env_requires_both_variables(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """Without the runtime variables no client can be built."""
        monkeypatch.setenv('ACTIONS_ID_TOKEN_REQUEST_URL', REQUEST_URL)
        monkeypatch.delenv('ACTIONS_ID_TOKEN_REQUEST_TOKEN', raising=False)
        with pytest.raises(ProvenanceKitError) as exc_info:
            GitHubOIDCClient.from_env()
        assert exc_info.value.code == E.MISSING_ENV_VARIABLE

    def test_repr_hides_bearer(self) -> None:
        """The runtime bearer token is not in repr()."""
        assert 'runtime-bearer' not in repr(_client({}))
