# Copyright (c) 2025 CoReason, Inc.
#
# This software is proprietary and dual-licensed.
# Licensed under the Prosperity Public License 3.0 (the "License").
# A copy of the license is available at https://prosperitylicense.com/versions/3.0.0
# For details, see the LICENSE file.
# Commercial use beyond a 30-day trial requires a separate license.
#
# Source Code: https://github.com/CoReason-AI/coreason_webid

"""
Secure HTTP transport for dereferencing user-supplied WebIDs.

Discovery fetches URIs typed in by anonymous users, which makes it an SSRF vector.
`SafeHTTPTransport` resolves the host once, refuses private and reserved ranges and
pins the connection to the vetted address.
"""

import ipaddress
import json
import socket
from typing import Any

import anyio
import httpx

from coreason_webid.exceptions import OversizedResponseError, SecurityError
from coreason_webid.utils.logger import logger


def is_public_address(ip_obj: Any) -> bool:
    return not (
        ip_obj.is_private
        or ip_obj.is_loopback
        or ip_obj.is_link_local
        or ip_obj.is_reserved
        or ip_obj.is_multicast
        or ip_obj.is_unspecified
    )


class SafeHTTPTransport(httpx.AsyncHTTPTransport):
    """
    An ``httpx`` transport enforcing DNS pinning against SSRF / DNS rebinding.

    Attributes:
        allow_private (bool): Skip the address checks (local development only).
    """

    def __init__(self, *args: Any, allow_private: bool = False, **kwargs: Any) -> None:
        super().__init__(*args, **kwargs)
        self.allow_private = allow_private

    async def handle_async_request(self, request: httpx.Request) -> httpx.Response:
        if self.allow_private:
            return await super().handle_async_request(request)

        hostname = request.url.host

        try:
            literal = ipaddress.ip_address(hostname)
        except ValueError:
            literal = None

        if literal is not None:
            self._check(literal, hostname)
            return await super().handle_async_request(request)

        target_ip = await self._resolve(hostname)

        request.extensions["sni_hostname"] = hostname
        if "Host" not in request.headers:
            request.headers["Host"] = request.url.netloc.decode("ascii")
        request.url = request.url.copy_with(host=target_ip)

        logger.debug(f"DNS pinned: {hostname} -> {target_ip}")
        return await super().handle_async_request(request)

    async def _resolve(self, hostname: str) -> str:
        """
        Returns the first public address ``hostname`` resolves to.

        Raises:
            SecurityError: If resolution fails or only blocked addresses are returned.
        """
        try:
            addr_infos = await anyio.to_thread.run_sync(
                socket.getaddrinfo, hostname, None, 0, socket.SOCK_STREAM
            )
        except socket.gaierror as e:
            logger.error(f"DNS resolution failed for {hostname}: {e}")
            raise SecurityError(f"DNS resolution failed for {hostname}") from e

        for _, _, _, _, sockaddr in addr_infos:
            try:
                ip_obj = ipaddress.ip_address(sockaddr[0])
            except ValueError:
                continue
            if is_public_address(ip_obj):
                return str(ip_obj)

        logger.warning(f"Security violation: No public address found for {hostname}")
        raise SecurityError(f"Security violation: No public address found for {hostname}")

    def _check(self, ip_obj: Any, hostname: str) -> None:
        if not is_public_address(ip_obj):
            logger.warning(f"Security violation: Blocked access to {hostname} ({ip_obj})")
            raise SecurityError(f"Access to {hostname} ({ip_obj}) is blocked")


async def read_limited(response: httpx.Response, max_bytes: int) -> bytes:
    """
    Reads a streamed response body, refusing anything larger than ``max_bytes``.

    Args:
        response: A response obtained via ``client.stream(...)``.
        max_bytes: Upper bound for the body size.

    Returns:
        bytes: The body.

    Raises:
        OversizedResponseError: If the declared or actual size exceeds the limit.
    """
    content_length = response.headers.get("Content-Length")
    if content_length and content_length.isdigit() and int(content_length) > max_bytes:
        raise OversizedResponseError(f"Response from {response.url} too large ({content_length} bytes)")

    content = bytearray()
    async for chunk in response.aiter_bytes():
        content.extend(chunk)
        if len(content) > max_bytes:
            raise OversizedResponseError(f"Response from {response.url} exceeds {max_bytes} bytes")
    return bytes(content)


async def fetch_json(client: httpx.AsyncClient, url: str, max_bytes: int) -> Any:
    """
    GETs ``url`` and decodes its JSON body, with the same size bound as `read_limited`.

    Raises:
        httpx.HTTPStatusError: For non-success statuses.
        OversizedResponseError: If the body is too large.
        ValueError: If the body is not JSON.
    """
    async with client.stream("GET", url, headers={"Accept": "application/json"}) as response:
        body = await read_limited(response, max_bytes)
        response.raise_for_status()

    return json.loads(body)
