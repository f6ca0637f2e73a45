"""Outbound HTTP to provider endpoints.

Every provider call goes through ``ProviderHttpClient`` so timeouts and error
mapping are uniform. Calls are never retried: a failed request-token, exchange,
refresh or data call aborts the whole operation.
"""

from __future__ import annotations

import json
import logging
from http import HTTPStatus
from typing import Any, Dict, Mapping, Optional
from urllib.parse import parse_qsl, urlsplit

import httpx

from dsu.core.errors import ExternalServiceError

logger = logging.getLogger(__name__)


class ProviderHttpClient:
    def __init__(
        self,
        *,
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self._timeout = timeout
        self._transport = transport

    async def request(
        self,
        method: str,
        url: str,
        *,
        params: Optional[Mapping[str, Any]] = None,
        data: Optional[Mapping[str, Any]] = None,
        json_body: Any = None,
        headers: Optional[Mapping[str, str]] = None,
    ) -> httpx.Response:
        """Send one request and return the response, requiring HTTP 200."""
        async with httpx.AsyncClient(
            timeout=self._timeout, transport=self._transport
        ) as client:
            try:
                response = await client.request(
                    method,
                    url,
                    params=params,
                    data=data,
                    json=json_body,
                    headers=headers,
                )
            except httpx.HTTPError as exc:
                logger.warning(
                    "Provider call %s %s failed: %s", method, _redact(url), type(exc).__name__
                )
                raise ExternalServiceError(
                    f"Could not reach {_host(url)}."
                ) from exc

        if response.status_code != HTTPStatus.OK:
            logger.warning(
                "Provider call %s %s returned %s",
                method,
                _redact(url),
                response.status_code,
            )
            raise ExternalServiceError(
                f"{_host(url)} responded with HTTP {response.status_code}."
            )
        return response

    async def get(self, url: str, **kwargs: Any) -> httpx.Response:
        return await self.request("GET", url, **kwargs)

    async def post(self, url: str, **kwargs: Any) -> httpx.Response:
        return await self.request("POST", url, **kwargs)


def parse_form(response: httpx.Response) -> Dict[str, str]:
    """Decode an ``application/x-www-form-urlencoded`` body."""
    try:
        pairs = parse_qsl(response.text, keep_blank_values=True, strict_parsing=True)
    except ValueError as exc:
        raise ExternalServiceError("Provider returned a malformed form body.") from exc
    return dict(pairs)


def parse_json(response: httpx.Response) -> Dict[str, Any]:
    try:
        payload = response.json()
    except (json.JSONDecodeError, UnicodeDecodeError) as exc:
        raise ExternalServiceError("Provider returned malformed JSON.") from exc
    if not isinstance(payload, dict):
        raise ExternalServiceError("Provider returned an unexpected JSON document.")
    return payload


def _host(url: str) -> str:
    return urlsplit(url).netloc or url


def _redact(url: str) -> str:
    parts = urlsplit(url)
    return f"{parts.scheme}://{parts.netloc}{parts.path}"


__all__ = ["ProviderHttpClient", "parse_form", "parse_json"]
