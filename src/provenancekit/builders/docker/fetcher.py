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

r"""Materialize the source tree of a Docker-based build at a pinned commit.

Decision table for :meth:`GitFetcher.fetch`::

    workdir HEAD          force_checkout   result
    ────────────────────  ───────────────  ─────────────────────────────
    == expected sha1      any              build in workdir
    != expected sha1      False            CHECKOUT_MISMATCH
    != expected sha1      True             clone into release-* tempdir
    (not a git checkout)  any              clone into release-* tempdir

A clone is always re-verified after ``git checkout``. Clone and
checkout output goes to ``log-*.txt`` files named in any error.
"""

from __future__ import annotations

import os
import shutil
import tempfile
from dataclasses import dataclass
from typing import Protocol, runtime_checkable

from provenancekit.backends._run import CommandResult, run_command
from provenancekit.builders.docker.config import DockerBuildConfig
from provenancekit.errors import E, ProvenanceKitError
from provenancekit.logging import get_logger

logger = get_logger(__name__)

TEMP_DIR_PREFIX = 'release-'


@dataclass
class RepoCheckoutInfo:
    """Where the verified source tree lives.

    Attributes:
        repo_root: Absolute checkout root.
        temp_dir: Temporary directory owning the checkout, if one was
            created. Removed by :meth:`cleanup`.
    """

    repo_root: str = ''
    temp_dir: str = ''

    def cleanup(self) -> None:
        """Remove the temporary checkout, if any. Safe to call repeatedly."""
        if not self.temp_dir:
            return
        temp_dir, self.temp_dir = self.temp_dir, ''
        try:
            shutil.rmtree(temp_dir)
        except OSError as exc:
            # Some toolchains leave read-only caches behind.
            logger.warning('checkout_cleanup_failed', path=temp_dir, error=str(exc))
        else:
            logger.debug('checkout_removed', path=temp_dir)


@runtime_checkable
class Fetcher(Protocol):
    """Puts the source of a build on disk."""

    async def fetch(self, config: DockerBuildConfig, workdir: str) -> RepoCheckoutInfo:
        """Return a checkout of ``config.source_repo`` at ``config.source_digest``."""
        ...


def _repo_dir_name(url: str) -> str:
    name = url.rstrip('/').rsplit('/', 1)[-1]
    return name.removesuffix('.git') or 'repo'


class GitFetcher:
    """:class:`Fetcher` backed by the ``git`` CLI.

    Args:
        git: The ``git`` executable.
        timeout: Seconds allowed per git command; ``None`` waits forever.
    """

    def __init__(self, git: str = 'git', *, timeout: float | None = None) -> None:
        """Initialize with the git executable."""
        self._git = git
        self._timeout = timeout

    async def head(self, directory: str) -> str | None:
        """Return the commit checked out in ``directory``, or ``None`` if it is not a checkout."""
        try:
            result = await run_command(
                [self._git, 'rev-parse', '--verify', 'HEAD'],
                cwd=directory,
                timeout=self._timeout,
            )
        except OSError:
            return None
        if not result.ok:
            return None
        return result.stdout.strip()

    async def _run_logged(self, cmd: list[str], cwd: str) -> CommandResult:
        try:
            result = await run_command(cmd, cwd=cwd, timeout=self._timeout, output='files')
        except OSError as exc:
            raise ProvenanceKitError(
                code=E.SUBPROCESS_FAILED,
                message=f'Could not start {" ".join(cmd)!r}: {exc}',
            ) from exc
        if not result.ok:
            raise ProvenanceKitError(
                code=E.SUBPROCESS_FAILED,
                message=f'{result.command_str!r} exited with status {result.return_code}; {result.logs_hint}.',
            )
        result.cleanup_logs()
        return result

    async def fetch(self, config: DockerBuildConfig, workdir: str) -> RepoCheckoutInfo:
        """Verify ``workdir`` or clone a fresh checkout.

        Raises:
            ProvenanceKitError: ``CHECKOUT_MISMATCH`` if the commit does not
                match, ``SUBPROCESS_FAILED`` if clone or checkout fails.
        """
        expected = config.source_digest.value
        workdir = os.path.abspath(workdir)
        head = await self.head(workdir)
        if head == expected:
            logger.info('checkout_verified', root=workdir, commit=expected)
            return RepoCheckoutInfo(repo_root=workdir)
        if head is not None and not config.force_checkout:
            raise ProvenanceKitError(
                code=E.CHECKOUT_MISMATCH,
                message=f'The repo is already checked out at a different commit ({head!r}).',
                hint='Pass --force-checkout to build from a fresh clone.',
            )
        return await self._clone(config)

    async def _clone(self, config: DockerBuildConfig) -> RepoCheckoutInfo:
        url = config.clone_url
        expected = config.source_digest.value
        temp_dir = tempfile.mkdtemp(prefix=TEMP_DIR_PREFIX)
        repo_root = os.path.join(temp_dir, _repo_dir_name(url))
        info = RepoCheckoutInfo(repo_root=repo_root, temp_dir=temp_dir)
        logger.info('checkout_cloning', url=url, into=repo_root)

        try:
            await self._run_logged([self._git, 'clone', url, repo_root], cwd=temp_dir)
            await self._run_logged([self._git, 'checkout', expected], cwd=repo_root)
            head = await self.head(repo_root)
            if head != expected:
                raise ProvenanceKitError(
                    code=E.CHECKOUT_MISMATCH,
                    message=f'Checked out {head!r} in {repo_root!r}, expected {expected!r}.',
                )
        except ProvenanceKitError:
            info.cleanup()
            raise
        logger.info('checkout_verified', root=repo_root, commit=expected)
        return info


__all__ = [
    'TEMP_DIR_PREFIX',
    'Fetcher',
    'GitFetcher',
    'RepoCheckoutInfo',
]
