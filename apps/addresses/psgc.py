"""Thin read-only client for the PSGC (Philippine Standard Geographic Code) API.

A client is built per request from settings and closed afterwards; nothing is
cached across requests.
"""

import logging

import httpx
from django.conf import settings

from apps.common.exceptions import NotFoundError, ServiceUnavailableError

logger = logging.getLogger(__name__)


class PsgcUnavailableError(ServiceUnavailableError):
    default_detail = "Address lookup is temporarily unavailable. Please retry."
    default_code = "psgc_unavailable"


class PsgcClient:
    def __init__(self, base_url, timeout_seconds, transport=None):
        self._client = httpx.Client(
            base_url=base_url.rstrip("/"),
            timeout=httpx.Timeout(timeout_seconds),
            headers={"Accept": "application/json"},
            transport=transport,
        )

    @classmethod
    def from_settings(cls):
        return cls(settings.PSGC_API_BASE, settings.PSGC_TIMEOUT_SECONDS)

    def __enter__(self):
        return self

    def __exit__(self, *exc_info):
        self.close()

    def close(self):
        self._client.close()

    def provinces(self):
        return self._fetch_areas("/provinces/")

    def cities(self, province_code):
        return self._fetch_areas(f"/provinces/{province_code}/cities-municipalities/")

    def barangays(self, city_code):
        return self._fetch_areas(f"/cities-municipalities/{city_code}/barangays/")

    def _fetch_areas(self, path):
        try:
            response = self._client.get(path)
        except httpx.TimeoutException as exc:
            logger.warning("PSGC lookup timed out", extra={"path": path})
            raise PsgcUnavailableError() from exc
        except httpx.TransportError as exc:
            logger.warning("PSGC lookup failed", extra={"path": path, "error": str(exc)})
            raise PsgcUnavailableError() from exc

        if response.status_code == 404:
            raise NotFoundError("Unknown geographic code.")
        if response.status_code >= 400:
            logger.warning("PSGC lookup returned an error", extra={"path": path, "status": response.status_code})
            raise PsgcUnavailableError()

        try:
            areas = [{"code": str(item["code"]), "name": item["name"]} for item in response.json() if item.get("code")]
        except (ValueError, KeyError, TypeError, AttributeError) as exc:
            logger.warning("PSGC lookup returned an unreadable body", extra={"path": path})
            raise PsgcUnavailableError() from exc
        return sorted(areas, key=lambda area: area["name"])
