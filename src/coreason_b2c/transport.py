# Copyright (c) 2025 CoReason, Inc.
#
# This software is proprietary and dual-licensed.
# Licensed under the Prosperity Public License 3.0 (the "License").
# A copy of the license is available at https://prosperitylicense.com/versions/3.0.0
# For details, see the LICENSE file.
# Commercial use beyond a 30-day trial requires a separate license.
#
# Source Code: https://github.com/CoReason-AI/coreason_identity

"""
Bounded HTTP helpers for talking to the identity provider.

Responses are streamed and capped so a misbehaving endpoint cannot exhaust memory,
and transport failures are surfaced as `NetworkError`. Nothing here retries.
"""

import json
from typing import Any

import httpx

from coreason_b2c.exceptions import NetworkError, OversizedResponseError
from coreason_b2c.utils.logger import logger

MAX_RESPONSE_BYTES = 1_000_000


async def fetch_bounded(
    client: httpx.AsyncClient,
    url: str,
    method: str = "GET",
    data: dict[str, str] | None = None,
    max_bytes: int = MAX_RESPONSE_BYTES,
) -> tuple[httpx.Response, bytes]:
    """
    Sends a request and reads at most `max_bytes` of the body.

    Args:
        client: The async HTTP client (its timeout applies).
        url: Target URL.
        method: HTTP method.
        data: Optional form body.
        max_bytes: Upper bound for the body size.

    Returns:
        The response (status and headers) and the raw body.

    Raises:
        OversizedResponseError: If the body exceeds `max_bytes`.
        NetworkError: On timeouts, connection failures and undecodable bodies.
    """
    try:
        async with client.stream(method, url, data=data) as response:
            content_length = response.headers.get("Content-Length")
            if content_length and content_length.isdigit() and int(content_length) > max_bytes:
                raise OversizedResponseError(f"Response from {url} too large ({content_length} bytes)")

            content = bytearray()
            async for chunk in response.aiter_bytes():
                content.extend(chunk)
                if len(content) > max_bytes:
                    raise OversizedResponseError(f"Response from {url} exceeded {max_bytes} bytes")
            return response, bytes(content)
    except httpx.TimeoutException as e:
        logger.error(f"Request to {url} timed out: {e!r}")
        raise NetworkError(f"Timed out contacting {url}") from e
    except httpx.TransportError as e:
        logger.error(f"Request to {url} failed: {e!r}")
        raise NetworkError(f"Failed to contact {url}: {e}") from e
    except (httpx.RequestError, httpx.StreamError) as e:
        logger.error(f"Unreadable response from {url}: {e!r}")
        raise NetworkError(f"Could not read the response from {url}: {e}") from e


async def safe_json_fetch(
    client: httpx.AsyncClient,
    url: str,
    method: str = "GET",
    data: dict[str, str] | None = None,
) -> Any:
    """
    Fetches a JSON document with size protection.

    Raises:
        httpx.HTTPStatusError: For status >= 400.
        ValueError: If the body is not valid JSON.
        OversizedResponseError / NetworkError: See `fetch_bounded`.
    """
    response, content = await fetch_bounded(client, url, method=method, data=data)
    response.raise_for_status()
    return json.loads(content)
