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

"""Content digests and digest-pinned image references.

Accepted syntax::

    sha1:<40 lowercase hex>              source commit
    sha256:<64 lowercase hex>            artifact or image
    NAME@sha256:<64 lowercase hex>       builder image

Anything else raises :class:`~provenancekit.errors.ProvenanceKitError`
with ``INVALID_DIGEST`` or ``INVALID_IMAGE`` before the value is used.
"""

from __future__ import annotations

import hashlib
import re
from dataclasses import dataclass
from pathlib import Path

from provenancekit.errors import E, ProvenanceKitError

#: Hex length of each supported digest algorithm.
DIGEST_LENGTHS: dict[str, int] = {
    'sha1': 40,
    'sha256': 64,
    'sha512': 128,
}

_LOWER_HEX = re.compile(r'[0-9a-f]+')

_READ_CHUNK = 1 << 20


def validate_hex(alg: str, value: str) -> str:
    """Check that ``value`` is lowercase hex of the length ``alg`` requires.

    Returns:
        ``value`` unchanged.
    """
    length = DIGEST_LENGTHS.get(alg)
    if length is None:
        raise ProvenanceKitError(
            code=E.INVALID_DIGEST,
            message=f'Unsupported digest algorithm {alg!r}.',
            hint=f'Use one of: {", ".join(sorted(DIGEST_LENGTHS))}.',
        )
    if len(value) != length or not _LOWER_HEX.fullmatch(value):
        raise ProvenanceKitError(
            code=E.INVALID_DIGEST,
            message=f'Invalid {alg} digest {value!r}: want {length} lowercase hex characters.',
        )
    return value


@dataclass(frozen=True)
class Digest:
    """A content digest such as ``sha1:<hex>``.

    Attributes:
        alg: Algorithm name (``sha1``, ``sha256``, ...).
        value: Lowercase hex encoding of the digest.
    """

    alg: str
    value: str

    def __post_init__(self) -> None:
        """Reject malformed digests at construction."""
        validate_hex(self.alg, self.value)

    @classmethod
    def parse(cls, text: str) -> Digest:
        """Parse ``ALG:VALUE``."""
        parts = text.split(':')
        if len(parts) != 2:
            raise ProvenanceKitError(
                code=E.INVALID_DIGEST,
                message=f'Got {text!r}, want ALG:VALUE format.',
            )
        return cls(alg=parts[0], value=parts[1])

    def to_dict(self) -> dict[str, str]:
        """Serialize to the in-toto digest-set form ``{alg: value}``."""
        return {self.alg: self.value}

    def __str__(self) -> str:
        """Return ``alg:value``."""
        return f'{self.alg}:{self.value}'


@dataclass(frozen=True)
class DockerImage:
    """A container image pinned by digest.

    Attributes:
        name: Image name, e.g. ``bash`` or ``ghcr.io/org/builder``.
        digest: The image's sha256 digest.
    """

    name: str
    digest: Digest

    @classmethod
    def parse(cls, text: str) -> DockerImage:
        """Parse ``NAME@ALG:VALUE``; the algorithm must be sha256."""
        parts = text.split('@')
        if len(parts) != 2:
            raise ProvenanceKitError(
                code=E.INVALID_IMAGE,
                message=f'Got {text!r}, want NAME@DIGEST format.',
            )
        name, digest_text = parts
        if not name or any(c.isspace() for c in name):
            raise ProvenanceKitError(
                code=E.INVALID_IMAGE,
                message=f'Docker image name {name!r} is not a valid reference.',
            )
        try:
            digest = Digest.parse(digest_text)
        except ProvenanceKitError as exc:
            raise ProvenanceKitError(
                code=E.INVALID_IMAGE,
                message=f'Docker image digest {digest_text!r} is malformed: {exc.info.message}',
            ) from exc
        if digest.alg != 'sha256':
            raise ProvenanceKitError(
                code=E.INVALID_IMAGE,
                message=f'Docker image digest must be sha256, got {digest.alg!r}.',
            )
        return cls(name=name, digest=digest)

    def __str__(self) -> str:
        """Return ``name@alg:value``."""
        return f'{self.name}@{self.digest}'


def compute_sha256(path: Path) -> str:
    """Return the hex SHA-256 of the file at ``path``."""
    sha = hashlib.sha256()
    with path.open('rb') as f:
        for chunk in iter(lambda: f.read(_READ_CHUNK), b''):
            sha.update(chunk)
    return sha.hexdigest()


__all__ = [
    'DIGEST_LENGTHS',
    'Digest',
    'DockerImage',
    'compute_sha256',
    'validate_hex',
]
