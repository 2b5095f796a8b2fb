"""
HTTP layer for the OpenStreetMap services used by the hikes pipeline.

All Nominatim and Overpass requests go through OSMClient, which provides:
- a shared requests.Session carrying the User-Agent both services require
- serial minimum spacing between requests to the same service
- per-request timeouts
- a small error taxonomy (rate limited / unavailable) for callers to act on

Requests are never retried here. A 403 is reported as UpstreamRateLimited and
the caller decides whether to pause (see OSMClient.pause_after_rate_limit).
"""

import logging
import time
from typing import Any, Dict, List, Optional

import requests

from config import (
    NOMINATIM_DELAY,
    NOMINATIM_RATE_LIMIT_DELAY,
    NOMINATIM_TIMEOUT,
    NOMINATIM_URL,
    OVERPASS_DELAY,
    OVERPASS_DETAIL_TIMEOUT,
    OVERPASS_RATE_LIMIT_DELAY,
    OVERPASS_URL,
    SEARCH_RESULT_LIMIT,
    USER_AGENT,
)

logger = logging.getLogger(__name__)

NOMINATIM = "nominatim"
OVERPASS = "overpass"


class OSMServiceError(Exception):
    """Base class for failures talking to an OpenStreetMap service."""

    def __init__(self, message: str, service: str):
        super().__init__(message)
        self.service = service


class UpstreamRateLimited(OSMServiceError):
    """Raised when a service answers 403 (rate limited / blocked)."""

    pass


class UpstreamUnavailable(OSMServiceError):
    """Raised on timeouts, connection errors, HTTP errors and malformed bodies."""

    pass


class OSMClient:
    def __init__(
        self,
        nominatim_url: str = NOMINATIM_URL,
        overpass_url: str = OVERPASS_URL,
        user_agent: str = USER_AGENT,
    ):
        self.nominatim_url = nominatim_url
        self.overpass_url = overpass_url
        self.session = requests.Session()
        self.session.headers.update({"User-Agent": user_agent})

        self.spacing = {NOMINATIM: NOMINATIM_DELAY, OVERPASS: OVERPASS_DELAY}
        self.rate_limit_delay = {
            NOMINATIM: NOMINATIM_RATE_LIMIT_DELAY,
            OVERPASS: OVERPASS_RATE_LIMIT_DELAY,
        }
        self._last_request_time: Dict[str, float] = {}

    def search(
        self, query: str, limit: int = SEARCH_RESULT_LIMIT, extratags: bool = True
    ) -> List[Dict[str, Any]]:
        """Run a Nominatim free-text search and return the list of hits."""
        params = {"q": query, "format": "json", "limit": limit}
        if extratags:
            params["extratags"] = 1

        data = self._request(
            NOMINATIM,
            "get",
            self.nominatim_url,
            timeout=NOMINATIM_TIMEOUT,
            params=params,
        )
        if not isinstance(data, list):
            raise UpstreamUnavailable(
                f"Nominatim returned {type(data).__name__}, expected a list", NOMINATIM
            )
        return data

    def overpass(
        self, overpass_ql: str, timeout: Optional[int] = None
    ) -> List[Dict[str, Any]]:
        """Run an Overpass QL query and return its flat element list."""
        data = self._request(
            OVERPASS,
            "post",
            self.overpass_url,
            timeout=timeout or OVERPASS_DETAIL_TIMEOUT,
            data={"data": overpass_ql},
        )
        if not isinstance(data, dict):
            raise UpstreamUnavailable(
                f"Overpass returned {type(data).__name__}, expected an object", OVERPASS
            )
        return data.get("elements") or []

    def pause_after_rate_limit(self, service: str) -> None:
        """Wait once, longer than the normal spacing, after a 403."""
        delay = self.rate_limit_delay.get(service, 0)
        if delay > 0:
            logger.warning(f"Rate limited by {service}, waiting {delay:g}s...")
            time.sleep(delay)

    def _wait_turn(self, service: str) -> None:
        spacing = self.spacing.get(service, 0)
        last = self._last_request_time.get(service)
        if last is not None and spacing > 0:
            elapsed = time.monotonic() - last
            if elapsed < spacing:
                time.sleep(spacing - elapsed)
        self._last_request_time[service] = time.monotonic()

    def _request(self, service: str, method: str, url: str, timeout: float, **kwargs):
        self._wait_turn(service)

        try:
            response = self.session.request(method, url, timeout=timeout, **kwargs)
        except requests.exceptions.Timeout:
            raise UpstreamUnavailable(
                f"{service} request timed out after {timeout}s", service
            )
        except requests.exceptions.RequestException as e:
            raise UpstreamUnavailable(f"{service} network error: {e}", service) from e

        if response.status_code == 403:
            raise UpstreamRateLimited(f"{service} HTTP 403", service)
        if response.status_code == 429:
            raise UpstreamRateLimited(f"{service} HTTP 429 Too Many Requests", service)
        if response.status_code >= 400:
            raise UpstreamUnavailable(
                f"{service} HTTP {response.status_code}", service
            )

        try:
            return response.json()
        except ValueError:
            raise UpstreamUnavailable(
                f"{service} returned a non-JSON response (HTTP {response.status_code})",
                service,
            )
