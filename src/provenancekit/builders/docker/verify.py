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

"""Verify a Docker-based provenance by rebuilding from it."""

from __future__ import annotations

import json
import os

from provenancekit.backends._run import run_command
from provenancekit.builders.docker.builder import CommandFunc, set_up_build_state
from provenancekit.builders.docker.config import (
    BUILDER_IMAGE_KEY,
    CONFIG_FILE_KEY,
    DOCKER_BUILD_TYPE,
    SOURCE_KEY,
    DockerBuildConfig,
    ParameterCollection,
)
from provenancekit.builders.docker.fetcher import Fetcher
from provenancekit.errors import E, ProvenanceKitError
from provenancekit.logging import get_logger
from provenancekit.provenance import SLSA_PREDICATE_V1, ProvenanceStatement, Subject

logger = get_logger(__name__)


def parse_provenance(data: bytes | str) -> ProvenanceStatement:
    """Parse a v1 Docker-based provenance statement."""
    try:
        raw = json.loads(data)
    except ValueError as exc:
        raise ProvenanceKitError(code=E.INVALID_FIELD, message=f'Provenance is not valid JSON: {exc}') from exc
    if not isinstance(raw, dict):
        raise ProvenanceKitError(code=E.INVALID_FIELD, message='Provenance must be a JSON object.')
    statement = ProvenanceStatement.from_dict(raw)
    if statement.predicate_type != SLSA_PREDICATE_V1:
        raise ProvenanceKitError(
            code=E.INVALID_FIELD,
            message=f'Unsupported predicate type {statement.predicate_type!r}.',
        )
    return statement


def to_docker_build_config(statement: ProvenanceStatement, *, force_checkout: bool = True) -> DockerBuildConfig:
    """Recover the build inputs from a statement's external parameters."""
    definition = statement.predicate.get('buildDefinition') or {}
    if definition.get('buildType') != DOCKER_BUILD_TYPE:
        raise ProvenanceKitError(
            code=E.INVALID_FIELD,
            message=f'Not a Docker-based provenance: buildType {definition.get("buildType")!r}.',
        )
    params = ParameterCollection.from_dict(definition.get('externalParameters') or {})
    source = params.artifacts.get(SOURCE_KEY)
    image = params.artifacts.get(BUILDER_IMAGE_KEY)
    config_file = params.values.get(CONFIG_FILE_KEY)
    if source is None or image is None or not config_file:
        raise ProvenanceKitError(
            code=E.INVALID_FIELD,
            message='Provenance lacks the source, builderImage or configFile parameter.',
        )
    sha1 = source.digest.get('sha1', '')
    return DockerBuildConfig.create(
        source.uri,
        f'sha1:{sha1}',
        image.uri,
        config_file,
        force_checkout=force_checkout,
    )


def _sort_key(subject: Subject) -> tuple[str, list[tuple[str, str]]]:
    return subject.name, sorted(subject.digest.items())


async def verify_provenance(
    data: bytes | str,
    fetcher: Fetcher | None = None,
    *,
    workdir: str | None = None,
    run: CommandFunc = run_command,
) -> list[Subject]:
    """Rebuild from a provenance statement and compare the subjects.

    Returns:
        The rebuilt subjects, which equal the statement's.

    Raises:
        ProvenanceKitError: ``VERIFICATION_FAILED`` if the rebuilt
            artifacts differ, or any build error.
    """
    statement = parse_provenance(data)
    config = to_docker_build_config(statement)
    build = await set_up_build_state(config, fetcher, workdir=workdir or os.getcwd(), run=run)
    try:
        rebuilt = await build.build_artifacts()
    finally:
        build.repo_info.cleanup()

    if sorted(rebuilt, key=_sort_key) != sorted(statement.subjects, key=_sort_key):
        raise ProvenanceKitError(
            code=E.VERIFICATION_FAILED,
            message=(
                f'Rebuilt subjects {[s.to_dict() for s in rebuilt]} differ from '
                f'the attested {[s.to_dict() for s in statement.subjects]}.'
            ),
        )
    logger.info('provenance_verified', subjects=len(rebuilt))
    return rebuilt


__all__ = [
    'parse_provenance',
    'to_docker_build_config',
    'verify_provenance',
]
