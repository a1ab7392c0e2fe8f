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

"""Tests for provenancekit.digest module."""

from __future__ import annotations

import hashlib
from pathlib import Path

import pytest
from provenancekit.digest import Digest, DockerImage, compute_sha256, validate_hex
from provenancekit.errors import E, ProvenanceKitError

SHA1 = 'a' * 40
SHA256 = '9e0c4b7e8f3a2d1c6b5a49382716f5e4d3c2b1a09f8e7d6c5b4a392817f6e5d4'


class TestValidateHex:
    """Tests for validate_hex()."""

    def test_valid(self) -> None:
        """Correct length lowercase hex is returned unchanged."""
        assert validate_hex('sha256', SHA256) == SHA256
        assert validate_hex('sha1', SHA1) == SHA1

    @pytest.mark.parametrize(
        ('alg', 'value'),
        [
            ('sha256', SHA256[:-1]),
            ('sha256', SHA256.upper()),
            ('sha256', 'g' * 64),
            ('sha1', SHA256),
            ('md5', 'a' * 32),
        ],
    )
    def test_invalid(self, alg: str, value: str) -> None:
        """Wrong length, uppercase, non-hex and unknown algorithms fail."""
        with pytest.raises(ProvenanceKitError) as exc_info:
            validate_hex(alg, value)
        assert exc_info.value.code == E.INVALID_DIGEST


class TestDigest:
    """Tests for Digest."""

    def test_parse(self) -> None:
        """ALG:VALUE splits into its parts."""
        digest = Digest.parse(f'sha1:{SHA1}')
        assert digest.alg == 'sha1'
        assert digest.value == SHA1
        assert str(digest) == f'sha1:{SHA1}'
        assert digest.to_dict() == {'sha1': SHA1}

    @pytest.mark.parametrize('text', ['sha1', f'sha1:{SHA1}:x', f'sha1{SHA1}'])
    def test_parse_rejects_bad_shape(self, text: str) -> None:
        """Anything but exactly one colon fails."""
        with pytest.raises(ProvenanceKitError) as exc_info:
            Digest.parse(text)
        assert exc_info.value.code == E.INVALID_DIGEST

    def test_constructor_validates(self) -> None:
        """Direct construction is validated too."""
        with pytest.raises(ProvenanceKitError):
            Digest(alg='sha256', value='abc')


class TestDockerImage:
    """Tests for DockerImage."""

    def test_parse(self) -> None:
        """NAME@sha256:HEX parses."""
        image = DockerImage.parse(f'bash@sha256:{SHA256}')
        assert image.name == 'bash'
        assert image.digest == Digest('sha256', SHA256)
        assert str(image) == f'bash@sha256:{SHA256}'

    def test_registry_name(self) -> None:
        """Names with a registry and path are accepted."""
        image = DockerImage.parse(f'ghcr.io/org/builder@sha256:{SHA256}')
        assert image.name == 'ghcr.io/org/builder'

    @pytest.mark.parametrize(
        'text',
        [
            'bash',
            f'bash@sha256:{SHA256}@x',
            f'@sha256:{SHA256}',
            f'bash@sha1:{SHA1}',
            'bash@sha256:abc',
        ],
    )
    def test_invalid(self, text: str) -> None:
        """Missing names, wrong algorithms and bad digests fail as INVALID_IMAGE."""
        with pytest.raises(ProvenanceKitError) as exc_info:
            DockerImage.parse(text)
        assert exc_info.value.code == E.INVALID_IMAGE


class TestComputeSha256:
    """Tests for compute_sha256()."""

    def test_matches_hashlib(self, tmp_path: Path) -> None:
        """The digest equals hashlib's over the whole file."""
        path = tmp_path / 'artifact.bin'
        data = b'hello world\n' * 1000
        path.write_bytes(data)
        assert compute_sha256(path) == hashlib.sha256(data).hexdigest()
