"""
Outbound HTTP helpers shared by lookup and enrichment adapters.

Adapters describe their calls as ``HttpRequest`` values; ``fetch_json``
executes one against a ``requests.Session`` with a bounded timeout and turns
every failure mode into ``AdapterRequestError``.
"""

from __future__ import annotations

import json
import logging
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Iterable, Mapping, Optional

import requests

from .errors import AdapterRequestError

logger = logging.getLogger(__name__)

DEFAULT_USER_AGENT = "locationmart/0.1 (+https://github.com/locationmart)"


@dataclass(frozen=True)
class HttpRequest:
    """Description of a single outbound call built by an adapter."""
    url: str
    params: Mapping[str, Any] = field(default_factory=dict)
    method: str = "GET"
    headers: Mapping[str, str] = field(default_factory=dict)
    data: Optional[Mapping[str, Any] | str] = None
    label: str = "primary"

    def describe(self) -> str:
        return f"{self.method} {self.url}"


def fetch_json(
    session: requests.Session,
    request: HttpRequest,
    timeout: float,
    retry_statuses: Iterable[int] = (),
    max_retries: int = 0,
    retry_delay_s: float = 1.0,
    sleep: Callable[[float], None] = time.sleep,
) -> Any:
    """
    Execute ``request`` and decode its JSON body.

    Args:
        session: Session (or any object with a compatible ``request`` method)
        request: The request to send
        timeout: Per-attempt timeout in seconds
        retry_statuses: HTTP statuses worth retrying (e.g. 504 from Overpass)
        max_retries: Additional attempts allowed for ``retry_statuses``
        retry_delay_s: Base delay, doubled on every attempt

    Returns:
        Decoded JSON payload

    Raises:
        AdapterRequestError on network errors, timeouts, non-2xx statuses,
        HTML error pages and undecodable bodies
    """
    retry_statuses = set(retry_statuses)
    headers = {"Accept": "application/json", "User-Agent": DEFAULT_USER_AGENT}
    headers.update(request.headers)

    for attempt in range(max_retries + 1):
        logger.debug(f"{request.describe()} params={dict(request.params)} attempt={attempt + 1}")
        try:
            response = session.request(
                request.method,
                request.url,
                params=dict(request.params) or None,
                data=request.data,
                headers=headers,
                timeout=timeout,
            )
        except requests.exceptions.Timeout as e:
            raise AdapterRequestError(f"Timed out after {timeout}s", url=request.url, label="timeout") from e
        except requests.exceptions.RequestException as e:
            raise AdapterRequestError(str(e)[:500], url=request.url, label="network") from e

        status = response.status_code
        if status in retry_statuses and attempt < max_retries:
            delay = retry_delay_s * (2 ** attempt)
            logger.warning(
                f"HTTP {status} from {request.url}, retrying in {delay:.1f}s "
                f"(attempt {attempt + 1}/{max_retries + 1})"
            )
            sleep(delay)
            continue

        if not response.ok:
            raise AdapterRequestError(
                f"HTTP {status}: {(response.text or '')[:200]}",
                url=request.url,
                http_status=status,
                label=f"http_{status}",
            )

        text = response.text or ""
        stripped = text.lstrip()[:15].lower()
        if stripped.startswith("<html") or stripped.startswith("<!doctype"):
            raise AdapterRequestError(
                "Received HTML instead of JSON", url=request.url, http_status=status, label="html_body"
            )
        try:
            return json.loads(text)
        except ValueError as e:
            raise AdapterRequestError(
                f"Invalid JSON response: {text[:100]}", url=request.url, http_status=status, label="bad_json"
            ) from e

    raise AdapterRequestError(
        f"Gave up after {max_retries + 1} attempts", url=request.url, label="retries_exhausted"
    )
