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

"""Structured logging for provenancekit.

Configures `structlog <https://www.structlog.org/>`_ to write to stderr,
either as colored console output (default on a TTY) or as one JSON object
per line (``--json-log``). Stdout is reserved for payloads such as a
predicate written to ``-``, so nothing else may print there.

Usage::

    from provenancekit.logging import configure_logging, get_logger

    configure_logging(verbose=True)
    logger = get_logger(__name__)
    logger.info('step_started', command='go build')
"""

from __future__ import annotations

import logging
import re
import sys

import structlog

REDACTED = '***'

_SECRET_KEY_RE = re.compile(r'(?i)(token|secret|password|authorization|bearer|credential)')

# GitHub tokens (ghp_, ghs_, github_pat_ ...) and compact JWTs.
_SECRET_VALUE_RE = re.compile(
    r'\b(gh[pousr]_[A-Za-z0-9]{20,}|github_pat_[A-Za-z0-9_]{20,}|eyJ[\w-]+\.[\w-]+\.[\w-]+)'
)


def redact_secrets(
    _logger: structlog.types.WrappedLogger,
    _method: str,
    event_dict: structlog.types.EventDict,
) -> structlog.types.EventDict:
    """Mask token-like values before an event is rendered.

    Values under secret-looking keys are replaced outright; GitHub tokens
    and JWTs embedded in any other string value are masked in place.
    """
    for key, value in event_dict.items():
        if not isinstance(value, str):
            continue
        if key != 'event' and _SECRET_KEY_RE.search(key):
            event_dict[key] = REDACTED
        else:
            event_dict[key] = _SECRET_VALUE_RE.sub(REDACTED, value)
    return event_dict



def configure_logging(
    *,
    verbose: bool = False,
    quiet: bool = False,
    json_log: bool = False,
) -> None:
    """Configure structlog for provenancekit.

    Args:
        verbose: Enable debug-level output.
        quiet: Only warnings and errors.
        json_log: Use JSON output instead of console output.
    """
    if quiet:
        level = logging.WARNING
    elif verbose:
        level = logging.DEBUG
    else:
        level = logging.INFO

    logging.basicConfig(
        format='%(message)s',
        stream=sys.stderr,
        level=level,
        force=True,
    )

    shared_processors: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        redact_secrets,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt='iso'),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
    ]

    if json_log:
        renderer: structlog.types.Processor = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer(colors=sys.stderr.isatty())

    structlog.configure(
        processors=[
            *shared_processors,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    formatter = structlog.stdlib.ProcessorFormatter(
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            renderer,
        ],
    )
    for handler in logging.root.handlers:
        handler.setFormatter(formatter)


def get_logger(name: str = 'provenancekit') -> structlog.stdlib.BoundLogger:
    """Return a bound structlog logger for ``name``."""
    return structlog.get_logger(name)


__all__ = [
    'configure_logging',
    'get_logger',
    'redact_secrets',
]
