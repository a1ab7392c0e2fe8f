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

r"""GitHub Actions OIDC ID-token client.

Requests an ID token from the Actions runtime and verifies its signature
against the issuer's JSON Web Key Set before any claim is used. Numeric
IDs (repository, owner, actor) taken from a verified token are much
harder to spoof than the string names in the workflow context.

Key Concepts (ELI5)::

    ┌─────────────────────┬────────────────────────────────────────────────┐
    │ Concept             │ Plain-English                                  │
    ├─────────────────────┼────────────────────────────────────────────────┤
    │ Request URL/token   │ The runtime hands each job a URL + bearer     │
    │                     │ token it can trade for a signed JWT.          │
    ├─────────────────────┼────────────────────────────────────────────────┤
    │ Audience            │ Who the JWT is meant for. We ask for one and  │
    │                     │ refuse tokens minted for anyone else.         │
    ├─────────────────────┼────────────────────────────────────────────────┤
    │ JWKS                │ The issuer's public keys. Used to check the   │
    │                     │ JWT signature.                                │
    └─────────────────────┴────────────────────────────────────────────────┘

Flow::

    token(audience)
         │
         ├── GET $ACTIONS_ID_TOKEN_REQUEST_URL&audience=...
         ├── PyJWKClient.get_signing_key_from_jwt(raw)
         ├── jwt.decode(raw, key, RS256, audience, issuer)
         └── OIDCToken(job_workflow_ref, repository_id, ...)
"""

from __future__ import annotations

import asyncio
import os
from dataclasses import dataclass, field
from typing import Any, Protocol, runtime_checkable

import httpx
import jwt
from jwt import PyJWKClient

from provenancekit.errors import E, ProvenanceKitError
from provenancekit.logging import get_logger
from provenancekit.net import http_client, request_with_retry

logger = get_logger(__name__)

#: GitHub Actions OIDC issuer.
GITHUB_OIDC_ISSUER = 'https://token.actions.githubusercontent.com'

#: JWKS endpoint published by the GitHub Actions issuer.
GITHUB_OIDC_JWKS_URI = f'{GITHUB_OIDC_ISSUER}/.well-known/jwks'

REQUEST_URL_ENV = 'ACTIONS_ID_TOKEN_REQUEST_URL'
REQUEST_TOKEN_ENV = 'ACTIONS_ID_TOKEN_REQUEST_TOKEN'

_SUPPORTED_ALGORITHMS: list[str] = ['RS256']


@dataclass(frozen=True)
class OIDCToken:
    """The claims provenancekit reads from a verified ID token."""

    job_workflow_ref: str = ''
    repository_id: str = ''
    repository_owner_id: str = ''
    actor_id: str = ''
    raw_token: str = field(default='', repr=False)
    claims: dict[str, Any] = field(default_factory=dict, repr=False)

    @classmethod
    def from_claims(cls, claims: dict[str, Any], raw_token: str = '') -> OIDCToken:
        """Pick the known claims out of a decoded payload."""

        def _claim(name: str) -> str:
            value = claims.get(name)
            return '' if value is None else str(value)

        return cls(
            job_workflow_ref=_claim('job_workflow_ref'),
            repository_id=_claim('repository_id'),
            repository_owner_id=_claim('repository_owner_id'),
            actor_id=_claim('actor_id'),
            raw_token=raw_token,
            claims=dict(claims),
        )


@runtime_checkable
class OIDCClient(Protocol):
    """Anything that can produce a verified :class:`OIDCToken`."""

    async def token(self, audience: list[str]) -> OIDCToken:
        """Fetch and verify a token minted for ``audience``."""
        ...


class SigningKeyResolver(Protocol):
    """The part of :class:`jwt.PyJWKClient` we rely on."""

    def get_signing_key_from_jwt(self, token: str) -> Any:  # noqa: ANN401 - PyJWK
        """Return the key that signed ``token``."""
        ...


class GitHubOIDCClient:
    """Fetches ID tokens from the GitHub Actions runtime.

    Args:
        request_url: Value of ``ACTIONS_ID_TOKEN_REQUEST_URL``.
        request_token: Value of ``ACTIONS_ID_TOKEN_REQUEST_TOKEN``.
        issuer: Expected ``iss`` claim.
        key_resolver: JWKS client; defaults to a caching
            :class:`jwt.PyJWKClient` for the GitHub issuer.
        transport: Optional httpx transport (tests).
    """

    def __init__(
        self,
        request_url: str,
        request_token: str,
        *,
        issuer: str = GITHUB_OIDC_ISSUER,
        key_resolver: SigningKeyResolver | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """Initialize with the runtime's request URL and bearer token."""
        self._request_url = request_url
        self._request_token = request_token
        self._issuer = issuer
        self._key_resolver = key_resolver or PyJWKClient(GITHUB_OIDC_JWKS_URI, cache_keys=True)
        self._transport = transport

    def __repr__(self) -> str:
        """Return a repr that never exposes the bearer token."""
        return f'GitHubOIDCClient(issuer={self._issuer!r})'

    @classmethod
    def from_env(cls) -> GitHubOIDCClient:
        """Build a client from the Actions runtime environment."""
        request_url = os.environ.get(REQUEST_URL_ENV, '')
        request_token = os.environ.get(REQUEST_TOKEN_ENV, '')
        if not request_url or not request_token:
            raise ProvenanceKitError(
                code=E.MISSING_ENV_VARIABLE,
                message=f'{REQUEST_URL_ENV} and {REQUEST_TOKEN_ENV} must be set.',
                hint="Grant the job 'id-token: write' permission.",
            )
        return cls(request_url, request_token)

    async def _fetch_raw(self, audience: list[str]) -> str:
        params = [('audience', a) for a in audience]
        async with http_client(transport=self._transport) as client:
            try:
                response = await request_with_retry(
                    client,
                    'GET',
                    self._request_url,
                    params=params,
                    headers={'Authorization': f'bearer {self._request_token}'},
                )
            except httpx.HTTPError as exc:
                raise ProvenanceKitError(
                    code=E.OIDC_REQUEST_FAILED,
                    message=f'OIDC token request failed: {exc}',
                ) from exc
        if response.status_code >= 400:
            raise ProvenanceKitError(
                code=E.OIDC_REQUEST_FAILED,
                message=f'OIDC token request failed: {response.status_code}: {response.text[:200]}',
            )
        try:
            value = response.json()['value']
        except (ValueError, KeyError, TypeError) as exc:
            raise ProvenanceKitError(
                code=E.INVALID_OIDC_TOKEN,
                message=f'Unexpected OIDC token response: {exc}',
            ) from exc
        if not isinstance(value, str) or value.count('.') != 2:
            raise ProvenanceKitError(code=E.INVALID_OIDC_TOKEN, message='Invalid token, expected 3 parts.')
        return value

    def _verify(self, raw: str, audience: list[str]) -> dict[str, Any]:
        try:
            signing_key = self._key_resolver.get_signing_key_from_jwt(raw)
            return jwt.decode(
                raw,
                key=signing_key.key,
                algorithms=_SUPPORTED_ALGORITHMS,
                audience=audience,
                issuer=self._issuer,
                options={'require': ['exp', 'iss', 'aud']},
            )
        except (jwt.PyJWTError, httpx.HTTPError) as exc:
            raise ProvenanceKitError(
                code=E.INVALID_OIDC_TOKEN,
                message=f'Could not verify OIDC token: {exc}',
            ) from exc

    async def token(self, audience: list[str]) -> OIDCToken:
        """Fetch a token for ``audience`` and verify it.

        Raises:
            ProvenanceKitError: ``OIDC_REQUEST_FAILED`` if the runtime
                refuses, ``INVALID_OIDC_TOKEN`` if the token does not verify.
        """
        raw = await self._fetch_raw(audience)
        claims = await asyncio.to_thread(self._verify, raw, audience)
        token = OIDCToken.from_claims(claims, raw_token=raw)
        logger.debug('oidc_token_verified', audience=audience, job_workflow_ref=token.job_workflow_ref)
        return token


__all__ = [
    'GITHUB_OIDC_ISSUER',
    'GITHUB_OIDC_JWKS_URI',
    'GitHubOIDCClient',
    'OIDCClient',
    'OIDCToken',
]
