"""Shared JSON-over-HTTP plumbing for the provider clients.

Every failure a lookup can hit (non-2xx status, transport error, body that is
not JSON, JSON of the wrong shape) leaves this module as ProviderError.
"""

from __future__ import annotations

from contextlib import contextmanager
from typing import Iterator, Optional

import httpx

from ..errors import ProviderError
from ..models import DataSource

TIMEOUT = httpx.Timeout(30.0, connect=10.0)


async def get_json(
    url: str,
    source: DataSource,
    params: Optional[dict] = None,
    headers: Optional[dict] = None,
    client: Optional[httpx.AsyncClient] = None,
) -> dict:
    """GET url and return its JSON object body."""
    try:
        if client is None:
            async with httpx.AsyncClient(timeout=TIMEOUT) as own_client:
                response = await own_client.get(url, params=params, headers=headers)
        else:
            response = await client.get(url, params=params, headers=headers)
        response.raise_for_status()
        data = response.json()
    except httpx.HTTPStatusError as exc:
        raise ProviderError(source.value, f"HTTP {exc.response.status_code} from {url}") from exc
    except httpx.HTTPError as exc:
        raise ProviderError(source.value, f"request to {url} failed: {exc}") from exc
    except ValueError as exc:
        raise ProviderError(source.value, f"malformed JSON from {url}") from exc

    if not isinstance(data, dict):
        raise ProviderError(source.value, f"unexpected payload from {url}")
    return data


@contextmanager
def parsing(source: DataSource, url: str) -> Iterator[None]:
    """Turn shape errors raised while reading a payload into ProviderError."""
    try:
        yield
    except (AttributeError, TypeError, ValueError, KeyError, IndexError) as exc:
        raise ProviderError(source.value, f"unexpected payload from {url}: {exc}") from exc
