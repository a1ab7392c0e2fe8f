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

"""Docker-based builder: fetch, build, inspect, verify."""

from provenancekit.builders.docker.builder import (
    DockerBuild,
    DockerBuilder,
    check_existing_files,
    check_output_folder,
    inspect_artifacts,
    set_up_build_state,
)
from provenancekit.builders.docker.config import (
    DOCKER_BUILD_TYPE,
    BuildConfig,
    DockerBuildConfig,
    DockerBuildDefinition,
    ParameterCollection,
    create_build_definition,
)
from provenancekit.builders.docker.fetcher import Fetcher, GitFetcher, RepoCheckoutInfo
from provenancekit.builders.docker.verify import parse_provenance, verify_provenance

__all__ = [
    'DOCKER_BUILD_TYPE',
    'BuildConfig',
    'DockerBuild',
    'DockerBuildConfig',
    'DockerBuildDefinition',
    'DockerBuilder',
    'Fetcher',
    'GitFetcher',
    'ParameterCollection',
    'RepoCheckoutInfo',
    'check_existing_files',
    'check_output_folder',
    'create_build_definition',
    'inspect_artifacts',
    'parse_provenance',
    'set_up_build_state',
    'verify_provenance',
]
