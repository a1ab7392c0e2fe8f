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

r"""Keyless DSSE signing of provenance statements via Sigstore.

Key Concepts (ELI5)::

    ┌─────────────────────┬────────────────────────────────────────────────┐
    │ Concept             │ Plain-English                                  │
    ├─────────────────────┼────────────────────────────────────────────────┤
    │ DSSE envelope       │ The statement, base64'd, plus a signature.    │
    │                     │ This is what lands in ``*.intoto.jsonl``.     │
    ├─────────────────────┼────────────────────────────────────────────────┤
    │ Fulcio certificate  │ Short-lived cert binding the signing key to   │
    │                     │ the workflow's OIDC identity. Injected into   │
    │                     │ each envelope signature as ``cert``.          │
    ├─────────────────────┼────────────────────────────────────────────────┤
    │ Rekor entry         │ Public transparency log record of the         │
    │                     │ signature. Read back from the bundle.         │
    └─────────────────────┴────────────────────────────────────────────────┘

Signing flow::

    SigstoreSigner.sign(statement)
         │
         ├── Obtain OIDC identity (explicit token or ambient CI creds)
         ├── SigningContext.signer(token).sign_dsse(Statement)
         ├── Pull dsseEnvelope out of the bundle, inject PEM cert
         └── Attestation(cert, data, bundle)

    SigstoreTransparencyLog.upload(attestation)
         │
         └── LogEntry from the bundle's tlogEntries[0]
"""

from __future__ import annotations

import asyncio
import base64
import hashlib
import json
from dataclasses import dataclass, field
from typing import Any, Protocol, runtime_checkable

from cryptography.hazmat.primitives.serialization import Encoding
from sigstore.dsse import Statement
from sigstore.errors import Error as SigstoreError
from sigstore.models import ClientTrustConfig
from sigstore.oidc import IdentityToken, detect_credential
from sigstore.sign import SigningContext

from provenancekit.errors import E, ProvenanceKitError
from provenancekit.logging import get_logger
from provenancekit.provenance import ProvenanceStatement

logger = get_logger(__name__)


@dataclass(frozen=True)
class Attestation:
    """A signed statement.

    Attributes:
        cert: PEM signing certificate.
        data: DSSE envelope JSON, with ``cert`` injected into each signature.
        bundle: The full Sigstore bundle JSON, when signed by Sigstore.
    """

    cert: bytes
    data: bytes
    bundle: str = field(default='', repr=False)


@dataclass(frozen=True)
class LogEntry:
    """A transparency log record."""

    id: str
    log_index: int
    uuid: str


@runtime_checkable
class Signer(Protocol):
    """Turns a provenance statement into an :class:`Attestation`."""

    async def sign(self, statement: ProvenanceStatement) -> Attestation:
        """Sign ``statement``."""
        ...


@runtime_checkable
class TransparencyLog(Protocol):
    """Records an :class:`Attestation` publicly."""

    async def upload(self, attestation: Attestation) -> LogEntry:
        """Upload ``attestation`` and return its log entry."""
        ...


def envelope_with_cert(bundle: dict[str, Any], cert_pem: bytes) -> bytes:
    """Extract the DSSE envelope from a bundle and inject the certificate.

    Raises:
        ProvenanceKitError: ``SIGNING_FAILED`` if the bundle has no
            envelope or no signatures.
    """
    envelope = bundle.get('dsseEnvelope')
    if not isinstance(envelope, dict) or not envelope.get('signatures'):
        raise ProvenanceKitError(code=E.SIGNING_FAILED, message='Sigstore bundle has no signed DSSE envelope.')
    for signature in envelope['signatures']:
        signature['cert'] = cert_pem.decode('utf-8')
    return json.dumps(envelope).encode('utf-8')


class SigstoreSigner:
    """Keyless :class:`Signer` backed by the public-good Sigstore instance.

    Args:
        identity_token: Explicit OIDC identity token. If empty, sigstore
            attempts ambient credential detection.
        trust_config: Sigstore trust configuration (default: production).
    """

    def __init__(self, identity_token: str = '', trust_config: ClientTrustConfig | None = None) -> None:
        """Initialize with an optional identity token."""
        self._identity_token = identity_token
        self._trust_config = trust_config

    def __repr__(self) -> str:
        """Return a repr that never exposes the identity token."""
        return 'SigstoreSigner()'

    def _identity(self) -> IdentityToken:
        if self._identity_token:
            return IdentityToken(self._identity_token)
        raw = detect_credential()
        if raw is None:
            raise ProvenanceKitError(
                code=E.SIGNING_FAILED,
                message='No ambient OIDC credential detected.',
                hint="Run in GitHub Actions with 'id-token: write', or pass an identity token.",
            )
        return IdentityToken(raw)

    def _sign(self, payload: bytes) -> Attestation:
        try:
            token = self._identity()
            trust_config = self._trust_config or ClientTrustConfig.production()
            ctx = SigningContext.from_trust_config(trust_config)
            with ctx.signer(token) as signer:
                bundle = signer.sign_dsse(Statement(payload))
            cert_pem = bundle.signing_certificate.public_bytes(Encoding.PEM)
            bundle_json = bundle.to_json()
        except SigstoreError as exc:
            raise ProvenanceKitError(code=E.SIGNING_FAILED, message=f'Signing failed: {exc}') from exc
        except ValueError as exc:
            # Statement() rejects anything that is not an in-toto v1 statement.
            raise ProvenanceKitError(code=E.SIGNING_FAILED, message=f'Statement rejected: {exc}') from exc
        data = envelope_with_cert(json.loads(bundle_json), cert_pem)
        return Attestation(cert=cert_pem, data=data, bundle=bundle_json)

    async def sign(self, statement: ProvenanceStatement) -> Attestation:
        """Sign ``statement`` as a DSSE envelope.

        Raises:
            ProvenanceKitError: ``SIGNING_FAILED`` on any Sigstore error.
        """
        attestation = await asyncio.to_thread(self._sign, statement.to_json().encode('utf-8'))
        logger.info('statement_signed', subjects=len(statement.subjects))
        return attestation


def _leaf_uuid(canonicalized_body_b64: str) -> str:
    # Rekor entry UUIDs are the RFC 6962 leaf hash of the canonical body.
    body = base64.b64decode(canonicalized_body_b64)
    return hashlib.sha256(b'\x00' + body).hexdigest()


class SigstoreTransparencyLog:
    """:class:`TransparencyLog` for attestations from :class:`SigstoreSigner`.

    Sigstore uploads to Rekor while signing; this reads the resulting
    entry back out of the bundle.
    """

    async def upload(self, attestation: Attestation) -> LogEntry:
        """Return the Rekor entry recorded in the attestation's bundle.

        Raises:
            ProvenanceKitError: ``TLOG_UPLOAD_FAILED`` if the bundle holds
                no transparency log entry.
        """
        try:
            bundle = json.loads(attestation.bundle)
            entry = bundle['verificationMaterial']['tlogEntries'][0]
            log_entry = LogEntry(
                id=str(entry['logId']['keyId']),
                log_index=int(entry['logIndex']),
                uuid=_leaf_uuid(entry['canonicalizedBody']),
            )
        except (ValueError, KeyError, IndexError, TypeError) as exc:
            raise ProvenanceKitError(
                code=E.TLOG_UPLOAD_FAILED,
                message=f'No transparency log entry in bundle: {exc!r}',
            ) from exc
        logger.info('tlog_entry_recorded', log_index=log_entry.log_index, uuid=log_entry.uuid)
        return log_entry


__all__ = [
    'Attestation',
    'LogEntry',
    'Signer',
    'SigstoreSigner',
    'SigstoreTransparencyLog',
    'TransparencyLog',
    'envelope_with_cert',
]
