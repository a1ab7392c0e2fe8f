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

"""Tests for provenancekit.net module."""

from __future__ import annotations

import httpx
import pytest
from provenancekit.logging import configure_logging
from provenancekit.net import http_client, request_with_retry

configure_logging(quiet=True)


def _sequence_transport(statuses: list[int]) -> tuple[httpx.MockTransport, list[httpx.Request]]:
    """Transport answering with ``statuses`` in order; records requests."""
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(statuses[min(len(seen), len(statuses)) - 1], json={'n': len(seen)})

    return httpx.MockTransport(handler), seen


class TestHttpClient:
    """Tests for http_client()."""

    @pytest.mark.asyncio
    async def test_default_headers(self) -> None:
        """Headers passed to the factory are sent on every request."""
        captured: dict[str, str] = {}

        def handler(request: httpx.Request) -> httpx.Response:
            captured['auth'] = request.headers.get('Authorization', '')
            return httpx.Response(200)

        async with http_client(headers={'Authorization': 'Bearer t'}, transport=httpx.MockTransport(handler)) as c:
            await c.get('https://example.test/')
        assert captured['auth'] == 'Bearer t'


class TestRequestWithRetry:
    """Tests for request_with_retry()."""

    @pytest.mark.asyncio
    async def test_success_first_try(self) -> None:
        """A 200 returns immediately."""
        transport, seen = _sequence_transport([200])
        async with http_client(transport=transport) as client:
            response = await request_with_retry(client, 'GET', 'https://example.test/')
        assert response.status_code == 200
        assert len(seen) == 1

    @pytest.mark.asyncio
    async def test_non_retryable_error_is_returned(self) -> None:
        """A 404 is returned to the caller, not retried."""
        transport, seen = _sequence_transport([404])
        async with http_client(transport=transport) as client:
            response = await request_with_retry(client, 'GET', 'https://example.test/')
        assert response.status_code == 404
        assert len(seen) == 1

    @pytest.mark.asyncio
    async def test_retries_then_succeeds(self) -> None:
        """503 then 200 retries once."""
        transport, seen = _sequence_transport([503, 200])
        async with http_client(transport=transport) as client:
            response = await request_with_retry(client, 'GET', 'https://example.test/', backoff_base=0.0)
        assert response.status_code == 200
        assert len(seen) == 2

    @pytest.mark.asyncio
    async def test_exhausted_retries_raise(self) -> None:
        """A retryable status on the last attempt raises HTTPStatusError."""
        transport, seen = _sequence_transport([429])
        async with http_client(transport=transport) as client:
            with pytest.raises(httpx.HTTPStatusError):
                await request_with_retry(client, 'GET', 'https://example.test/', max_retries=2, backoff_base=0.0)
        assert len(seen) == 3

    @pytest.mark.asyncio
    async def test_connect_error_reraised(self) -> None:
        """Connection errors are retried and finally re-raised."""
        calls = 0

        def handler(request: httpx.Request) -> httpx.Response:
            nonlocal calls
            calls += 1
            raise httpx.ConnectError('refused', request=request)

        async with http_client(transport=httpx.MockTransport(handler)) as client:
            with pytest.raises(httpx.ConnectError):
                await request_with_retry(client, 'GET', 'https://example.test/', max_retries=1, backoff_base=0.0)
        assert calls == 2
