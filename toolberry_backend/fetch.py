from __future__ import annotations

import json
import logging
from typing import Any, Optional

import httpx

from .config import FETCH_TIMEOUT_SECONDS, MAX_REDIRECTS, USER_AGENT
from .errors import ArtifactError, Failure, classify_exception, classify_status


logger = logging.getLogger(__name__)

# Redirect statuses are accepted too; httpx follows them up to max_redirects.
ACCEPTED_STATUS_RANGE = range(200, 400)


class RemoteFetcher:
    """Thin wrapper over httpx that raises ArtifactError for every failure.

    Each call opens its own AsyncClient, so nothing is shared between
    concurrent requests. Tests pass an httpx.MockTransport as `transport`.
    """

    def __init__(
        self,
        timeout: float = FETCH_TIMEOUT_SECONDS,
        max_redirects: int = MAX_REDIRECTS,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.timeout = timeout
        self.max_redirects = max_redirects
        self.transport = transport

    async def fetch(
        self,
        url: str,
        *,
        timeout: Optional[float] = None,
        params: Optional[dict[str, str]] = None,
    ) -> httpx.Response:
        try:
            async with httpx.AsyncClient(
                timeout=self.timeout if timeout is None else timeout,
                follow_redirects=True,
                max_redirects=self.max_redirects,
                transport=self.transport,
                headers={"User-Agent": USER_AGENT},
            ) as client:
                response = await client.get(url, params=params)
        except (httpx.InvalidURL, UnicodeError) as e:
            # UnicodeError: hosts that fail IDNA encoding, e.g. a bare "xn--" label.
            raise ArtifactError(Failure.INPUT_INVALID, "The URL is not valid.") from e
        except httpx.HTTPError as e:
            raise ArtifactError(classify_exception(e)) from e

        if response.status_code not in ACCEPTED_STATUS_RANGE:
            logger.debug("Remote %s answered %s", url, response.status_code)
            raise ArtifactError(classify_status(response.status_code))
        return response

    async def fetch_json(
        self,
        url: str,
        *,
        timeout: Optional[float] = None,
        params: Optional[dict[str, str]] = None,
    ) -> Any:
        response = await self.fetch(url, timeout=timeout, params=params)
        try:
            return response.json()
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            raise ArtifactError(Failure.REMOTE_ERROR, "The remote service returned invalid data.") from e


def check_http_url(url: str) -> httpx.URL:
    """Parse a client-supplied URL, rejecting it before any request is made."""
    try:
        parsed = httpx.URL(url)
        host = parsed.host
    except (httpx.InvalidURL, UnicodeError) as e:
        raise ArtifactError(Failure.INPUT_INVALID, "Please enter a valid http(s) URL.") from e
    if parsed.scheme not in ("http", "https") or not host:
        raise ArtifactError(Failure.INPUT_INVALID, "Please enter a valid http(s) URL.")
    return parsed
