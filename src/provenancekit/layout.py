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

"""Aggregate layout of the attestations a workflow will produce.

A layout lists, per attestation, the subjects it covers::

    {"version": 1,
     "attestations": [{"name": "my-build", "subjects": [{"name": ..., "digest": {"sha256": ...}}]}]}

The attestation name is the provenance name without its ``.build.slsa``
suffix.
"""

from __future__ import annotations

import base64
import binascii
import json
from typing import Any

from provenancekit.digest import validate_hex
from provenancekit.errors import E, ProvenanceKitError
from provenancekit.provenance import Subject

LAYOUT_VERSION = 1
PROVENANCE_NAME_SUFFIX = '.build.slsa'


def decode_subjects_b64(b64: str) -> str:
    """Decode base64-transported subjects text."""
    try:
        return base64.b64decode(b64.strip(), validate=True).decode('utf-8')
    except (binascii.Error, UnicodeDecodeError) as exc:
        raise ProvenanceKitError(
            code=E.INVALID_BASE64,
            message=f'Failed to decode subjects (is it base64 encoded?): {exc}',
        ) from exc


def parse_layout_subjects(text: str) -> list[Subject]:
    """Parse ``<sha256> <name>`` lines, skipping empty ones."""
    subjects: list[Subject] = []
    for line in text.split('\n'):
        if not line:
            continue
        digest, sep, name = line.partition(' ')
        if not sep:
            raise ProvenanceKitError(
                code=E.MISSING_SUBJECT_NAME,
                message=f'Invalid line, expected `<artifact digest> <artifact name>`: {line!r}',
            )
        subjects.append(Subject(name=name, digest={'sha256': validate_hex('sha256', digest)}))
    return subjects


def create_layout(provenance_name: str, subjects_text: str) -> dict[str, Any]:
    """Build the layout document for one attestation.

    Args:
        provenance_name: Name including the ``.build.slsa`` suffix.
        subjects_text: Decoded ``<sha256> <name>`` lines.

    Raises:
        ProvenanceKitError: ``INVALID_PROVENANCE_NAME`` for a bad name,
            ``MISSING_SUBJECT_NAME`` for a malformed line, ``INVALID_DIGEST``
            for a bad digest, ``NO_ARTIFACTS`` when no subject is listed.
    """
    if not provenance_name.endswith(PROVENANCE_NAME_SUFFIX) or provenance_name == PROVENANCE_NAME_SUFFIX:
        raise ProvenanceKitError(
            code=E.INVALID_PROVENANCE_NAME,
            message=f'Provenance name must have the {PROVENANCE_NAME_SUFFIX} suffix: {provenance_name!r}',
        )
    subjects = parse_layout_subjects(subjects_text)
    if not subjects:
        raise ProvenanceKitError(code=E.NO_ARTIFACTS, message='No subjects found.')
    return {
        'version': LAYOUT_VERSION,
        'attestations': [
            {
                'name': provenance_name[: -len(PROVENANCE_NAME_SUFFIX)],
                'subjects': [s.to_dict() for s in subjects],
            },
        ],
    }


def layout_json(layout: dict[str, Any]) -> str:
    """Serialize a layout compactly."""
    return json.dumps(layout, separators=(',', ':'))


__all__ = [
    'LAYOUT_VERSION',
    'PROVENANCE_NAME_SUFFIX',
    'create_layout',
    'decode_subjects_b64',
    'layout_json',
    'parse_layout_subjects',
]
