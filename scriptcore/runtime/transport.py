# scriptcore/runtime/transport.py
# Copyright (c) 2024 Brad Edwards
# Licensed under the MIT License - see LICENSE file for details

from __future__ import annotations

import logging
from typing import List, Optional

import httpx

from scriptcore.core.errors import AbortError, NetworkError
from scriptcore.interfaces.protocols import CancelToken
from scriptcore.interfaces.types import HeaderPairs, TransportResponse

logger = logging.getLogger(__name__)


class HttpxTransport:
    """
    Blocking transport built on ``httpx.Client``. Runs on bridge worker
    threads and stops reading the body once the cancel token is cancelled.

    :param client: Client to use. One is created when omitted.
    :param timeout: Timeout for a created client, None for no timeout.
    :param transport: Optional httpx transport for a created client (tests
        pass ``httpx.MockTransport``).
    """

    def __init__(
        self,
        client: Optional[httpx.Client] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.BaseTransport] = None,
    ) -> None:
        self._owns_client = client is None
        self._client = client if client is not None else httpx.Client(timeout=timeout, transport=transport)

    def perform_request(
        self,
        method: str,
        url: str,
        headers: HeaderPairs,
        body: Optional[bytes],
        cancel_context: CancelToken,
        follow_redirects: bool = True,
    ) -> TransportResponse:
        """
        :raises AbortError: If cancelled before or while reading the response.
        :raises NetworkError: On any transport failure.
        """
        if cancel_context.cancelled:
            raise AbortError("The operation was aborted.")
        logger.debug("%s %s", method, url)
        try:
            with self._client.stream(
                method, url, headers=headers, content=body, follow_redirects=follow_redirects
            ) as response:
                cancel_context.on_cancel(response.close)
                chunks: List[bytes] = []
                for chunk in response.iter_bytes():
                    if cancel_context.cancelled:
                        raise AbortError("The operation was aborted.")
                    chunks.append(chunk)
                return TransportResponse(
                    status=response.status_code,
                    headers=list(response.headers.multi_items()),
                    body=b"".join(chunks),
                    final_url=str(response.url),
                )
        except (httpx.HTTPError, httpx.StreamError) as exc:
            if cancel_context.cancelled:
                raise AbortError("The operation was aborted.") from exc
            raise NetworkError(f"Network error: {exc}", details={"url": url, "method": method}) from exc

    def close(self) -> None:
        if self._owns_client:
            self._client.close()
