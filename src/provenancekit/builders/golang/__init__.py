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

"""Go builder: YAML config, compile, and provenance."""

from provenancekit.builders.golang.build import GoBuild, GoDryRun, marshal_list, unmarshal_list
from provenancekit.builders.golang.config import GoReleaserConfig
from provenancekit.builders.golang.provenance import GO_BUILD_TYPE, GoProvenance

__all__ = [
    'GO_BUILD_TYPE',
    'GoBuild',
    'GoDryRun',
    'GoProvenance',
    'GoReleaserConfig',
    'marshal_list',
    'unmarshal_list',
]
