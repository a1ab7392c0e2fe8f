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

r"""Command-line interface for provenancekit.

Subcommands::

    provenancekit generic attest     --subjects B64 [-g NAME.intoto.jsonl]
    provenancekit generic generate   --subjects B64 [--predicate FILE]
    provenancekit container generate --image IMG --digest sha256:HEX
    provenancekit go build           [--dry] CONFIG [ARGENV]
    provenancekit go provenance      --binary-name N --digest HEX ...
    provenancekit docker dry-run     --source-repo ... --build-definition-path FILE
    provenancekit docker build       --source-repo ... --subjects-path FILE
    provenancekit docker verify      --provenance-path FILE
    provenancekit nodejs build       [-g NAME.intoto.jsonl]
    provenancekit layout             --subjects B64 --provenance-name N --output FILE
    provenancekit explain            PK-...

Every output file is validated before any work starts and created
exclusively once its content is complete. On error, nothing is written
and the exit status is 1.
"""

from __future__ import annotations

import argparse
import asyncio
import inspect
import json
import os
import shutil
import sys
from typing import Any

from rich_argparse import RichHelpFormatter

from provenancekit import __version__
from provenancekit.backends.clients import ClientProvider, DefaultClientProvider, NilClientProvider
from provenancekit.builders.container import ContainerBuild
from provenancekit.builders.docker import (
    DockerBuildConfig,
    DockerBuilder,
    check_output_folder,
    create_build_definition,
    set_up_build_state,
    verify_provenance,
)
from provenancekit.builders.generic import GenericBuild, parse_subjects
from provenancekit.builders.golang import GoBuild, GoProvenance, GoReleaserConfig, unmarshal_list
from provenancekit.builders.nodejs import NodeBuildResult, NodeIntegration, NodeJSBuild, build as nodejs_build
from provenancekit.context import WorkflowContext
from provenancekit.errors import E, ProvenanceKitError, explain, render_error
from provenancekit.layout import create_layout, decode_subjects_b64, layout_json
from provenancekit.logging import configure_logging, get_logger
from provenancekit.paths import (
    ATTESTATION_SUFFIX,
    check_new_file_under_current_directory,
    create_new_file_under_current_directory,
    safe_read_file,
    verify_attestation_path,
    verify_provenance_name,
)
from provenancekit.provenance import BuildType, ProvenanceStatement, check_statement, generate
from provenancekit.signing import LogEntry, SigstoreSigner, SigstoreTransparencyLog

logger = get_logger(__name__)

DEFAULT_PREDICATE_PATH = 'predicate.json'


def _clients(args: argparse.Namespace) -> ClientProvider:
    if getattr(args, 'offline', False):
        return NilClientProvider()
    return DefaultClientProvider()


def _status(message: str) -> None:
    # stdout carries payloads when an output path is "-".
    print(message, file=sys.stderr)  # noqa: T201 - CLI output


def _write_json(path: str, data: Any) -> None:  # noqa: ANN401 - any JSON value
    with create_new_file_under_current_directory(path) as f:
        json.dump(data, f)
        f.write('\n')


async def _sign(statement: ProvenanceStatement) -> tuple[str, LogEntry]:
    """Sign ``statement`` and record it in the transparency log.

    Returns:
        The DSSE envelope JSON and its log entry.
    """
    check_statement(statement)
    attestation = await SigstoreSigner().sign(statement)
    entry = await SigstoreTransparencyLog().upload(attestation)
    return attestation.data.decode('utf-8'), entry


def _write_envelope(path: str, envelope: str, entry: LogEntry) -> None:
    with create_new_file_under_current_directory(path) as f:
        f.write(envelope)
    _status(f'Signed attestation written to {path} (log index {entry.log_index})')


async def _sign_and_write(statement: ProvenanceStatement, path: str) -> None:
    envelope, entry = await _sign(statement)
    _write_envelope(path, envelope, entry)


async def _write_predicate(build_type: BuildType, path: str, predicate_version: str) -> None:
    check_new_file_under_current_directory(path)
    statement = await generate(build_type, predicate_version='v0.2' if predicate_version == 'v0.2' else 'v1')
    check_statement(statement)
    _write_json(path, statement.predicate)
    _status(f'Predicate written to {path}')


# --- generic ---


async def _cmd_generic_attest(args: argparse.Namespace) -> int:
    """Handle ``generic attest``."""
    context = WorkflowContext.from_env()
    subjects = parse_subjects(args.subjects)
    path = args.attestation_name or f'{os.path.basename(context.repository) or "provenance"}{ATTESTATION_SUFFIX}'
    verify_attestation_path(path)
    check_new_file_under_current_directory(path)

    statement = await generate(GenericBuild(subjects, context, _clients(args)))
    await _sign_and_write(statement, path)
    return 0


async def _cmd_generic_generate(args: argparse.Namespace) -> int:
    """Handle ``generic generate``."""
    context = WorkflowContext.from_env()
    subjects = parse_subjects(args.subjects)
    await _write_predicate(GenericBuild(subjects, context, _clients(args)), args.predicate, args.predicate_version)
    return 0


# --- container ---


async def _cmd_container_generate(args: argparse.Namespace) -> int:
    """Handle ``container generate``."""
    context = WorkflowContext.from_env()
    build = ContainerBuild(args.image, args.digest, context, _clients(args))
    await _write_predicate(build, args.predicate, args.predicate_version)
    return 0


# --- go ---


async def _cmd_go_build(args: argparse.Namespace) -> int:
    """Handle ``go build``."""
    goc = shutil.which('go')
    if goc is None:
        raise ProvenanceKitError(
            code=E.SUBPROCESS_FAILED,
            message='The go compiler was not found on PATH.',
            hint='Install Go with actions/setup-go before this step.',
        )
    config = GoReleaserConfig.from_file(args.config)
    builder = GoBuild(goc, config, args.argenv)
    if args.dry:
        dry = builder.dry()
        dry.publish()
        print(json.dumps({'binary': dry.binary_name, 'step': dry.step.to_dict()}))  # noqa: T201 - CLI output
        return 0
    await builder.run()
    return 0


async def _cmd_go_provenance(args: argparse.Namespace) -> int:
    """Handle ``go provenance``."""
    context = WorkflowContext.from_env()
    path = args.attestation_name or f'{args.binary_name}{ATTESTATION_SUFFIX}'
    verify_attestation_path(path)
    check_new_file_under_current_directory(path)

    build = GoProvenance(
        args.binary_name,
        args.digest,
        unmarshal_list(args.command),
        unmarshal_list(args.env),
        args.working_dir,
        context,
        _clients(args),
    )
    statement = await generate(build)
    await _sign_and_write(statement, path)
    return 0


# --- docker ---


def _docker_config(args: argparse.Namespace) -> DockerBuildConfig:
    return DockerBuildConfig.create(
        args.source_repo,
        args.source_digest,
        args.builder_image,
        args.build_config_path,
        force_checkout=getattr(args, 'force_checkout', False),
    )


def _cmd_docker_dry_run(args: argparse.Namespace) -> int:
    """Handle ``docker dry-run``: validate inputs and describe the build."""
    config = _docker_config(args)
    check_new_file_under_current_directory(args.build_definition_path)
    _write_json(args.build_definition_path, create_build_definition(config).to_dict())
    _status(f'Build definition written to {args.build_definition_path}')
    return 0


async def _cmd_docker_build(args: argparse.Namespace) -> int:
    """Handle ``docker build``."""
    config = _docker_config(args)
    check_new_file_under_current_directory(args.subjects_path)
    if args.attestation_name:
        verify_attestation_path(args.attestation_name)
        check_new_file_under_current_directory(args.attestation_name)
    output_folder = check_output_folder(args.output_folder) if args.output_folder else ''
    context = WorkflowContext.from_env() if args.attestation_name else None

    build = await set_up_build_state(config)
    try:
        subjects = await build.build_artifacts(output_folder)
    finally:
        build.repo_info.cleanup()

    signed: tuple[str, LogEntry] | None = None
    if context is not None:
        statement = await generate(DockerBuilder(build, subjects, context, _clients(args)))
        signed = await _sign(statement)

    # Both payloads exist before either file is opened.
    _write_json(args.subjects_path, [s.to_dict() for s in subjects])
    _status(f'{len(subjects)} subjects written to {args.subjects_path}')
    if signed is not None:
        _write_envelope(args.attestation_name, *signed)
    return 0


async def _cmd_docker_verify(args: argparse.Namespace) -> int:
    """Handle ``docker verify``."""
    subjects = await verify_provenance(safe_read_file(args.provenance_path))
    for subject in subjects:
        print(f'Verified {subject.name} sha256:{subject.digest.get("sha256", "")}')  # noqa: T201 - CLI output
    return 0


# --- nodejs ---


async def _cmd_nodejs_build(args: argparse.Namespace) -> int:
    """Handle ``nodejs build``."""
    integration = NodeIntegration.from_env()
    context = None
    if args.attestation_name:
        verify_attestation_path(args.attestation_name)
        check_new_file_under_current_directory(args.attestation_name)
        context = WorkflowContext.from_env()

    result = await nodejs_build(integration)
    _status(f'Output written to {integration.output_path}')
    if context is not None and isinstance(result, NodeBuildResult):
        statement = await generate(NodeJSBuild(result.artifact, result.steps, context, _clients(args)))
        await _sign_and_write(statement, args.attestation_name)
    return 0


# --- layout / explain ---


def _cmd_layout(args: argparse.Namespace) -> int:
    """Handle ``layout``."""
    if args.subjects_file:
        text = safe_read_file(args.subjects_file).decode('utf-8')
    else:
        text = decode_subjects_b64(args.subjects)
    verify_provenance_name(args.provenance_name)
    check_new_file_under_current_directory(args.output)
    layout = create_layout(args.provenance_name, text)
    with create_new_file_under_current_directory(args.output) as f:
        f.write(layout_json(layout))
    return 0


def _cmd_explain(args: argparse.Namespace) -> int:
    """Handle the ``explain`` subcommand."""
    result = explain(args.code)
    if result is None:
        print(f'Unknown error code: {args.code}')  # noqa: T201 - CLI output
        return 1
    print(result)  # noqa: T201 - CLI output
    return 0


# --- parser ---


def _add_generate_options(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        '--predicate',
        '-p',
        default=DEFAULT_PREDICATE_PATH,
        help=f'Where to write the predicate (default: {DEFAULT_PREDICATE_PATH}, "-" for stdout).',
    )
    parser.add_argument(
        '--predicate-version',
        choices=['v1', 'v0.2'],
        default='v1',
        help='SLSA predicate layout to emit.',
    )
    _add_offline_option(parser)


def _add_offline_option(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        '--offline',
        action='store_true',
        help='Do not contact the OIDC or GitHub API endpoints.',
    )


def _add_docker_inputs(parser: argparse.ArgumentParser) -> None:
    parser.add_argument('--source-repo', required=True, help='Source repository (git+https://...).')
    parser.add_argument('--source-digest', required=True, help='Commit to build, as sha1:HEX.')
    parser.add_argument('--builder-image', required=True, help='Builder image, as NAME@sha256:HEX.')
    parser.add_argument(
        '--build-config-path',
        required=True,
        help='TOML build configuration, relative to the repository root.',
    )


def build_parser() -> argparse.ArgumentParser:
    """Build the CLI argument parser.

    Returns:
        Configured :class:`argparse.ArgumentParser`.
    """
    RichHelpFormatter.styles['argparse.groups'] = 'bold yellow'
    parser = argparse.ArgumentParser(
        prog='provenancekit',
        description='Generate SLSA build provenance in GitHub Actions.',
        formatter_class=RichHelpFormatter,
    )
    parser.add_argument('--version', action='version', version=f'%(prog)s {__version__}')
    parser.add_argument('--verbose', '-v', action='store_true', help='Enable debug logging.')
    parser.add_argument('--quiet', '-q', action='store_true', help='Only log warnings and errors.')
    parser.add_argument('--json-log', action='store_true', help='Emit logs as JSON lines.')

    subparsers = parser.add_subparsers(dest='command')

    # generic
    generic_parser = subparsers.add_parser('generic', help='Provenance for caller-supplied artifacts.')
    generic_sub = generic_parser.add_subparsers(dest='subcommand')
    attest_parser = generic_sub.add_parser('attest', help='Generate and sign a provenance attestation.')
    attest_parser.add_argument('--subjects', '-s', required=True, help='Base64 of "<sha256> <name>" lines.')
    attest_parser.add_argument(
        '--attestation-name',
        '-g',
        default='',
        help=f'Output file ending in {ATTESTATION_SUFFIX} (default: <repository>{ATTESTATION_SUFFIX}).',
    )
    _add_offline_option(attest_parser)
    generic_generate = generic_sub.add_parser('generate', help='Write an unsigned predicate.')
    generic_generate.add_argument('--subjects', '-s', required=True, help='Base64 of "<sha256> <name>" lines.')
    _add_generate_options(generic_generate)

    # container
    container_parser = subparsers.add_parser('container', help='Provenance for a container image.')
    container_sub = container_parser.add_subparsers(dest='subcommand')
    container_generate = container_sub.add_parser('generate', help='Write an unsigned predicate.')
    container_generate.add_argument('--image', default='', help='Image name.')
    container_generate.add_argument('--digest', default='', help='Image digest, as sha256:HEX.')
    _add_generate_options(container_generate)

    # go
    go_parser = subparsers.add_parser('go', help='Build a Go binary and attest it.')
    go_sub = go_parser.add_subparsers(dest='subcommand')
    go_build = go_sub.add_parser('build', help='Compile from a .slsa-goreleaser.yml configuration.')
    go_build.add_argument('--dry', action='store_true', help='Resolve and publish the command without running it.')
    go_build.add_argument('config', help='Path to the build configuration.')
    go_build.add_argument('argenv', nargs='?', default='', help='Template values as "NAME:value,NAME2:value2".')
    go_provenance = go_sub.add_parser('provenance', help='Generate and sign provenance for a built binary.')
    go_provenance.add_argument('--binary-name', required=True, help='Name of the binary.')
    go_provenance.add_argument('--digest', required=True, help='Hex sha256 of the binary.')
    go_provenance.add_argument('--command', required=True, help='Compile command, as published by the dry run.')
    go_provenance.add_argument('--env', default='', help='Compile environment, as published by the dry run.')
    go_provenance.add_argument('--working-dir', default='', help='Directory the compile ran in.')
    go_provenance.add_argument(
        '--attestation-name',
        '-g',
        default='',
        help=f'Output file (default: <binary>{ATTESTATION_SUFFIX}).',
    )
    _add_offline_option(go_provenance)

    # docker
    docker_parser = subparsers.add_parser('docker', help='Build inside a pinned builder image.')
    docker_sub = docker_parser.add_subparsers(dest='subcommand')
    docker_dry = docker_sub.add_parser('dry-run', help='Validate inputs and write the build definition.')
    _add_docker_inputs(docker_dry)
    docker_dry.add_argument('--build-definition-path', required=True, help='Where to write the definition JSON.')
    docker_build = docker_sub.add_parser('build', help='Check out, build and measure the artifacts.')
    _add_docker_inputs(docker_build)
    docker_build.add_argument('--force-checkout', action='store_true', help='Clone when the checkout differs.')
    docker_build.add_argument('--subjects-path', required=True, help='Where to write the measured subjects.')
    docker_build.add_argument('--output-folder', default='', help='Copy the artifacts into this fresh /tmp folder.')
    docker_build.add_argument(
        '--attestation-name',
        '-g',
        default='',
        help='Also sign provenance into this file.',
    )
    _add_offline_option(docker_build)
    docker_verify = docker_sub.add_parser('verify', help='Rebuild from a provenance and compare the artifacts.')
    docker_verify.add_argument('--provenance-path', required=True, help='Provenance statement JSON.')

    # nodejs
    nodejs_parser = subparsers.add_parser('nodejs', help='Build an npm package.')
    nodejs_sub = nodejs_parser.add_subparsers(dest='subcommand')
    nodejs_build_parser = nodejs_sub.add_parser('build', help='Run npm ci/run/pack as described by SLSA_INPUTS_PATH.')
    nodejs_build_parser.add_argument(
        '--attestation-name',
        '-g',
        default='',
        help='After a real run, also sign provenance for the tarball into this file.',
    )
    _add_offline_option(nodejs_build_parser)

    # layout
    layout_parser = subparsers.add_parser('layout', help='Write the attestation layout file.')
    subjects_group = layout_parser.add_mutually_exclusive_group(required=True)
    subjects_group.add_argument('--subjects', '-s', default='', help='Base64 of "<sha256> <name>" lines.')
    subjects_group.add_argument('--subjects-file', default='', help='File of "<sha256> <name>" lines.')
    layout_parser.add_argument('--provenance-name', required=True, help='Name ending in .build.slsa.')
    layout_parser.add_argument('--output', '-o', required=True, help='Where to write the layout ("-" for stdout).')

    # explain
    explain_parser = subparsers.add_parser('explain', help='Explain an error code.')
    explain_parser.add_argument('code', help='Error code to explain (e.g., PK-INVALID-PATH).')

    return parser


_HANDLERS: dict[tuple[str, str | None], Any] = {
    ('generic', 'attest'): _cmd_generic_attest,
    ('generic', 'generate'): _cmd_generic_generate,
    ('container', 'generate'): _cmd_container_generate,
    ('go', 'build'): _cmd_go_build,
    ('go', 'provenance'): _cmd_go_provenance,
    ('docker', 'dry-run'): _cmd_docker_dry_run,
    ('docker', 'build'): _cmd_docker_build,
    ('docker', 'verify'): _cmd_docker_verify,
    ('nodejs', 'build'): _cmd_nodejs_build,
    ('layout', None): _cmd_layout,
    ('explain', None): _cmd_explain,
}


def main(argv: list[str] | None = None) -> int:
    """CLI entry point.

    Returns:
        Exit code (0 for success, non-zero for failure).
    """
    parser = build_parser()
    args = parser.parse_args(argv)
    configure_logging(verbose=args.verbose, quiet=args.quiet, json_log=args.json_log)

    handler = _HANDLERS.get((args.command, getattr(args, 'subcommand', None)))
    if handler is None:
        parser.print_help()  # noqa: T201 - CLI output
        print(  # noqa: T201 - CLI output
            f'\n{parser.prog}: error: please provide a command',
            file=sys.stderr,
        )
        return 2

    try:
        if inspect.iscoroutinefunction(handler):
            return asyncio.run(handler(args))
        return handler(args)
    except ProvenanceKitError as exc:
        render_error(exc)
        return 1
    except KeyboardInterrupt:
        logger.info('interrupted')
        return 130


def _main() -> None:
    """Wrapper for pyproject.toml [project.scripts] entry point."""
    sys.exit(main())


__all__ = [
    'build_parser',
    'main',
]
