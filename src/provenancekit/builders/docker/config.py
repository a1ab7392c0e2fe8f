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

r"""Inputs of a Docker-based build.

Two layers of configuration::

    DockerBuildConfig (flags, trusted)        BuildConfig (TOML, user-controlled)
    ─────────────────────────────────         ───────────────────────────────────
    source repo + sha1 commit                 artifact_path = "dist/*.tar.gz"
    builder image name@sha256:digest          command = ["make", "release"]
    path of the TOML file  ───────────────▶   read from the *verified* checkout

The TOML file lives in the source repository, so it can only be read
after the checkout is pinned to the expected commit.
"""

from __future__ import annotations

import urllib.parse
from dataclasses import dataclass, field
from typing import Any

import tomlkit
import tomlkit.exceptions

from provenancekit.digest import Digest, DockerImage
from provenancekit.errors import E, ProvenanceKitError
from provenancekit.paths import path_is_under_current_directory, safe_read_file
from provenancekit.provenance import ArtifactReference

DOCKER_BUILD_TYPE = 'https://slsa.dev/container-based-build/v0.1?draft'

SOURCE_KEY = 'source'
BUILDER_IMAGE_KEY = 'builderImage'
CONFIG_FILE_KEY = 'configFile'
COMMAND_KEY = 'command'

_SCHEME_ALIASES = {'git+https': 'https', 'https+git': 'https', 'https': 'https'}


def normalize_source_uri(uri: str) -> str:
    """Map a ``git+https``/``https+git``/``https`` URI to a clonable ``https`` URL.

    Raises:
        ProvenanceKitError: ``INVALID_URI`` for any other scheme or a
            missing host.
    """
    parsed = urllib.parse.urlsplit(uri)
    scheme = _SCHEME_ALIASES.get(parsed.scheme)
    if scheme is None:
        raise ProvenanceKitError(
            code=E.INVALID_URI,
            message=f'Unsupported source URI scheme {parsed.scheme!r} in {uri!r}.',
            hint='Use git+https://, https+git:// or https://.',
        )
    if not parsed.netloc:
        raise ProvenanceKitError(code=E.INVALID_URI, message=f'Source URI {uri!r} has no host.')
    return urllib.parse.urlunsplit(parsed._replace(scheme=scheme))


@dataclass
class ParameterCollection:
    """Named artifacts and scalar values."""

    artifacts: dict[str, ArtifactReference] = field(default_factory=dict)
    values: dict[str, str] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        """Serialize, omitting empty sections."""
        data: dict[str, Any] = {}
        if self.artifacts:
            data['artifacts'] = {k: v.to_dict() for k, v in self.artifacts.items()}
        if self.values:
            data['values'] = dict(self.values)
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ParameterCollection:
        """Parse the serialized form."""
        return cls(
            artifacts={k: ArtifactReference.from_dict(v) for k, v in (data.get('artifacts') or {}).items()},
            values={k: str(v) for k, v in (data.get('values') or {}).items()},
        )


@dataclass
class DockerBuildDefinition:
    """What a Docker-based build consumed."""

    build_type: str
    external_parameters: ParameterCollection
    system_parameters: ParameterCollection = field(default_factory=ParameterCollection)
    resolved_dependencies: list[ArtifactReference] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        """Serialize, omitting empty optional sections."""
        data: dict[str, Any] = {
            'buildType': self.build_type,
            'externalParameters': self.external_parameters.to_dict(),
        }
        system = self.system_parameters.to_dict()
        if system:
            data['systemParameters'] = system
        if self.resolved_dependencies:
            data['resolvedDependencies'] = [d.to_dict() for d in self.resolved_dependencies]
        return data


@dataclass(frozen=True)
class BuildConfig:
    """The user-controlled part of a build, read from TOML.

    Attributes:
        artifact_path: Glob, relative to the checkout root, matching the outputs.
        command: Command run inside the builder image.
    """

    artifact_path: str
    command: list[str]

    @classmethod
    def from_toml(cls, text: str) -> BuildConfig:
        """Parse and validate a TOML document."""
        try:
            doc = tomlkit.parse(text)
        except tomlkit.exceptions.TOMLKitError as exc:
            raise ProvenanceKitError(code=E.CONFIG_INVALID, message=f'Invalid TOML: {exc}') from exc
        raw: dict[str, Any] = doc.unwrap()
        artifact_path = raw.get('artifact_path')
        command = raw.get('command')
        if not isinstance(artifact_path, str) or not artifact_path:
            raise ProvenanceKitError(
                code=E.CONFIG_INVALID,
                message="'artifact_path' must be a non-empty string.",
            )
        if not isinstance(command, list) or not command or not all(isinstance(c, str) for c in command):
            raise ProvenanceKitError(
                code=E.CONFIG_INVALID,
                message="'command' must be a non-empty list of strings.",
            )
        return cls(artifact_path=artifact_path, command=list(command))


def load_build_config(path: str, root: str) -> BuildConfig:
    """Read :class:`BuildConfig` from ``path``, which must lie under ``root``."""
    try:
        data = safe_read_file(path, root)
    except OSError as exc:
        raise ProvenanceKitError(
            code=E.CONFIG_INVALID,
            message=f'Could not load build config from {path!r}: {exc}',
        ) from exc
    return BuildConfig.from_toml(data.decode('utf-8'))


@dataclass(frozen=True)
class DockerBuildConfig:
    """Validated, trusted inputs of a Docker-based build.

    Attributes:
        source_repo: Source repository URI as given (``git+https://...``).
        source_digest: Commit to build; always sha1.
        builder_image: Builder image pinned by sha256 digest.
        build_config_path: TOML path, relative to the checkout root.
        force_checkout: Clone a fresh copy when the working directory is
            checked out at another commit.
    """

    source_repo: str
    source_digest: Digest
    builder_image: DockerImage
    build_config_path: str
    force_checkout: bool = False

    @classmethod
    def create(
        cls,
        source_repo: str,
        git_commit_digest: str,
        builder_image: str,
        build_config_path: str,
        *,
        force_checkout: bool = False,
    ) -> DockerBuildConfig:
        """Validate raw inputs. Nothing is fetched or run.

        Raises:
            ProvenanceKitError: ``INVALID_URI``, ``INVALID_DIGEST``,
                ``INVALID_IMAGE`` or ``INVALID_PATH``.
        """
        normalize_source_uri(source_repo)
        digest = Digest.parse(git_commit_digest)
        if digest.alg != 'sha1':
            raise ProvenanceKitError(
                code=E.INVALID_DIGEST,
                message=f'Git commit digest must be a sha1 digest, got {digest.alg!r}.',
            )
        image = DockerImage.parse(builder_image)
        path_is_under_current_directory(build_config_path)
        return cls(
            source_repo=source_repo,
            source_digest=digest,
            builder_image=image,
            build_config_path=build_config_path,
            force_checkout=force_checkout,
        )

    @property
    def clone_url(self) -> str:
        """The source URI with its scheme normalized to ``https``."""
        return normalize_source_uri(self.source_repo)


def create_build_definition(config: DockerBuildConfig, command: list[str] | None = None) -> DockerBuildDefinition:
    """Describe the inputs of a build of ``config``.

    Args:
        config: The validated inputs.
        command: The literal ``docker run`` argv, once known.
    """
    values = {CONFIG_FILE_KEY: config.build_config_path}
    if command is not None:
        values[COMMAND_KEY] = ' '.join(command)
    return DockerBuildDefinition(
        build_type=DOCKER_BUILD_TYPE,
        external_parameters=ParameterCollection(
            artifacts={
                SOURCE_KEY: ArtifactReference(uri=config.source_repo, digest=config.source_digest.to_dict()),
                BUILDER_IMAGE_KEY: ArtifactReference(
                    uri=str(config.builder_image),
                    digest=config.builder_image.digest.to_dict(),
                ),
            },
            values=values,
        ),
    )


__all__ = [
    'BUILDER_IMAGE_KEY',
    'COMMAND_KEY',
    'CONFIG_FILE_KEY',
    'DOCKER_BUILD_TYPE',
    'SOURCE_KEY',
    'BuildConfig',
    'DockerBuildConfig',
    'DockerBuildDefinition',
    'ParameterCollection',
    'create_build_definition',
    'load_build_config',
    'normalize_source_uri',
]
