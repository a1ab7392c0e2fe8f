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

"""Builder flavors.

Each flavor implements :class:`provenancekit.provenance.BuildType` and
composes :class:`provenancekit.provenance.GitHubActionsBuild` for the
GitHub-derived parts of the statement.

============  =====================================================  =================
Flavor        Build type URI                                         Subject digests
============  =====================================================  =================
generic       ``.../slsa-github-generator/generic@v1``               caller-supplied
container     ``.../slsa-github-generator/container@v1``             caller-supplied
go            ``.../slsa-github-generator/go@v1``                    measured
docker        ``https://slsa.dev/container-based-build/v0.1?draft``  measured
nodejs        ``.../slsa-github-generator/delegator-generic@v0``     measured
============  =====================================================  =================
"""
