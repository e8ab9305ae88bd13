"""Shared HTTP error mapping for metadata fetchers.

Hey future me - every fetcher funnels its requests through send() so all of them
classify failures the same way:

    400 / 404                  -> NotFoundUpstreamError  (bad or unknown id, don't retry)
    429 / 5xx                  -> TransientFetchError    (retry later, Retry-After kept)
    timeouts / network errors  -> TransientFetchError
    anything else non-2xx      -> ExternalServiceError
"""

import logging
from typing import Any

import httpx

from recrate.domain.exceptions import (
    ExternalServiceError,
    NotFoundUpstreamError,
    TransientFetchError,
)

logger = logging.getLogger(__name__)

_NOT_FOUND_STATUSES = frozenset({400, 404})


def _retry_after(response: httpx.Response) -> float | None:
    value = response.headers.get("Retry-After")
    if value is None:
        return None
    try:
        return float(value)
    except ValueError:
        return None


def check_response(response: httpx.Response, source: str, external_id: str) -> None:
    """Raise the matching domain error for a non-2xx response."""
    status = response.status_code
    if status < 400:
        return
    if status in _NOT_FOUND_STATUSES:
        raise NotFoundUpstreamError(source, external_id)
    if status == 429 or status >= 500:
        raise TransientFetchError(
            source,
            f"HTTP {status} for {external_id}",
            status_code=status,
            retry_after=_retry_after(response),
        )
    raise ExternalServiceError(source, f"HTTP {status} for {external_id}")


async def send(
    client: httpx.AsyncClient,
    source: str,
    external_id: str,
    url: str,
    **kwargs: Any,
) -> dict[str, Any]:
    """GET ``url`` and return the JSON body, mapping every failure to a domain error."""
    try:
        response = await client.get(url, **kwargs)
    except httpx.TransportError as e:
        logger.warning("%s request for %s failed: %s", source, external_id, e)
        raise TransientFetchError(source, f"{type(e).__name__}: {e}") from e

    check_response(response, source, external_id)
    try:
        data = response.json()
    except ValueError as e:
        raise ExternalServiceError(source, f"invalid JSON for {external_id}") from e
    if not isinstance(data, dict):
        raise ExternalServiceError(source, f"unexpected payload for {external_id}")
    return data
