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

"""Tests for provenancekit.paths module."""

from __future__ import annotations

import os
import stat
from pathlib import Path

import pytest
from provenancekit.errors import E, ProvenanceKitError
from provenancekit.paths import (
    check_new_file_under_current_directory,
    create_new_file_under_current_directory,
    create_new_file_under_directory,
    path_is_under_current_directory,
    path_is_under_directory,
    safe_read_file,
    validate_filename,
    verify_attestation_path,
    verify_provenance_name,
)


class TestPathIsUnderDirectory:
    """Tests for path_is_under_directory()."""

    def test_relative_child(self, tmp_path: Path) -> None:
        """A relative child resolves under the base."""
        assert path_is_under_directory('a/b.txt', tmp_path) == tmp_path / 'a' / 'b.txt'

    def test_base_itself(self, tmp_path: Path) -> None:
        """The base directory counts as under itself."""
        assert path_is_under_directory('.', tmp_path) == tmp_path

    def test_dotdot_escape(self, tmp_path: Path) -> None:
        """'..' segments that leave the base fail."""
        with pytest.raises(ProvenanceKitError) as exc_info:
            path_is_under_directory('a/../../x', tmp_path)
        assert exc_info.value.code == E.INVALID_PATH

    def test_sibling_prefix_is_not_under(self, tmp_path: Path) -> None:
        """/base-other is not under /base even though it shares a prefix."""
        base = tmp_path / 'foo'
        with pytest.raises(ProvenanceKitError):
            path_is_under_directory(str(tmp_path / 'foobar'), base)

    def test_absolute_inside(self, tmp_path: Path) -> None:
        """An absolute path inside the base is accepted as is."""
        target = tmp_path / 'x' / 'y'
        assert path_is_under_directory(str(target), tmp_path) == target


class TestPathIsUnderCurrentDirectory:
    """Tests for path_is_under_current_directory()."""

    def test_parent_fails(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        """'../x' escapes the working directory."""
        monkeypatch.chdir(tmp_path)
        with pytest.raises(ProvenanceKitError) as exc_info:
            path_is_under_current_directory('../x')
        assert exc_info.value.code == E.INVALID_PATH

    def test_parent_from_root(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """At '/', '../x' normalizes to '/x', which is under '/'."""
        monkeypatch.chdir('/')
        assert path_is_under_current_directory('../x') == Path('/x')

    def test_child(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        """A plain name is under the working directory."""
        monkeypatch.chdir(tmp_path)
        assert path_is_under_current_directory('out.json') == tmp_path / 'out.json'


class TestCreateNewFile:
    """Tests for the exclusive-create context managers."""

    def test_creates_with_private_mode(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        """New files are created with mode 0600."""
        monkeypatch.chdir(tmp_path)
        with create_new_file_under_current_directory('out.json') as f:
            f.write('{}')
        path = tmp_path / 'out.json'
        assert path.read_text() == '{}'
        assert stat.S_IMODE(path.stat().st_mode) == 0o600

    def test_never_overwrites(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        """An existing file is left untouched and INVALID_PATH is raised."""
        monkeypatch.chdir(tmp_path)
        (tmp_path / 'out.json').write_text('old')
        with pytest.raises(ProvenanceKitError) as exc_info:
            with create_new_file_under_current_directory('out.json') as f:
                f.write('new')
        assert exc_info.value.code == E.INVALID_PATH
        assert (tmp_path / 'out.json').read_text() == 'old'

    def test_absolute_outside_cwd_fails(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        """An absolute path outside the working directory always fails."""
        work = tmp_path / 'work'
        work.mkdir()
        monkeypatch.chdir(work)
        outside = tmp_path / 'outside.json'
        with pytest.raises(ProvenanceKitError) as exc_info:
            with create_new_file_under_current_directory(str(outside)):
                pass
        assert exc_info.value.code == E.INVALID_PATH
        assert not outside.exists()

    def test_missing_parent_fails(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        """Parent directories are not created under the working directory."""
        monkeypatch.chdir(tmp_path)
        with pytest.raises(ProvenanceKitError):
            with create_new_file_under_current_directory('missing/out.json'):
                pass

    def test_stdout(self, capsys: pytest.CaptureFixture[str]) -> None:
        """'-' writes to standard output."""
        with create_new_file_under_current_directory('-') as f:
            f.write('to stdout')
        assert capsys.readouterr().out == 'to stdout'

    def test_under_directory_creates_parents(self, tmp_path: Path) -> None:
        """The directory variant creates missing parents."""
        with create_new_file_under_directory('a/b/c.txt', tmp_path) as f:
            f.write('x')
        assert (tmp_path / 'a' / 'b' / 'c.txt').read_text() == 'x'


class TestCheckNewFile:
    """Tests for check_new_file_under_current_directory()."""

    def test_existing_file(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        """An existing file is rejected before any work is done."""
        monkeypatch.chdir(tmp_path)
        (tmp_path / 'p.json').write_text('')
        with pytest.raises(ProvenanceKitError):
            check_new_file_under_current_directory('p.json')

    def test_fresh_file_and_stdout(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        """A fresh name and '-' pass."""
        monkeypatch.chdir(tmp_path)
        check_new_file_under_current_directory('p.json')
        check_new_file_under_current_directory('-')
        assert not (tmp_path / 'p.json').exists()


class TestSafeReadFile:
    """Tests for safe_read_file()."""

    def test_reads_inside(self, tmp_path: Path) -> None:
        """A file inside the base is read."""
        (tmp_path / 'f.toml').write_bytes(b'data')
        assert safe_read_file('f.toml', tmp_path) == b'data'

    def test_rejects_outside(self, tmp_path: Path) -> None:
        """A file outside the base is never read."""
        with pytest.raises(ProvenanceKitError) as exc_info:
            safe_read_file('/etc/hostname', tmp_path)
        assert exc_info.value.code == E.INVALID_PATH


class TestValidateFilename:
    """Tests for validate_filename()."""

    @pytest.mark.parametrize('name', ['binary-linux-amd64', 'Binary_1.2.3', 'a.b-c_d'])
    def test_allowed(self, name: str, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        """Allow-listed characters come back unchanged."""
        monkeypatch.chdir(tmp_path)
        assert validate_filename(name) == name

    @pytest.mark.parametrize('name', ['bin/../x', 'bin ary', 'bin$', 'bin\n', '', '.', '..', '...'])
    def test_rejected(self, name: str, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        """Any other character, an empty name or a dots-only name is INVALID_FILENAME."""
        monkeypatch.chdir(tmp_path)
        with pytest.raises(ProvenanceKitError) as exc_info:
            validate_filename(name)
        assert exc_info.value.code == E.INVALID_FILENAME


class TestVerifyNames:
    """Tests for verify_attestation_path() and verify_provenance_name()."""

    def test_attestation_suffix(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        """Attestations must end in .intoto.jsonl."""
        monkeypatch.chdir(tmp_path)
        assert verify_attestation_path('repo.intoto.jsonl') == tmp_path / 'repo.intoto.jsonl'
        with pytest.raises(ProvenanceKitError):
            verify_attestation_path('repo.json')

    def test_attestation_outside(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        """Attestations must stay under the working directory."""
        monkeypatch.chdir(tmp_path)
        with pytest.raises(ProvenanceKitError):
            verify_attestation_path(os.path.join('..', 'repo.intoto.jsonl'))

    def test_provenance_name(self) -> None:
        """Provenance names are bare allow-listed filenames."""
        assert verify_provenance_name('my-build.build.slsa') == 'my-build.build.slsa'
        for bad in ['', '.', '..', 'dir/x.build.slsa', 'x y.build.slsa']:
            with pytest.raises(ProvenanceKitError) as exc_info:
                verify_provenance_name(bad)
            assert exc_info.value.code == E.INVALID_PROVENANCE_NAME
