"""
Service-worker metadata (``sw.js_data``).

The document is a JSON array behind an optional ``)]}'`` XSSI guard. The
fields of interest sit in the nested array at [0][2][0][0]: the visitor id
at index 13 and the client version at index 16. Positions are fixed by the
upstream document; a shape change makes every lookup read as None.
"""

import json
import logging

from ..models.enums import ClientVariant
from ..utils.helpers import str_or_none, traverse_obj
from .http_client import HTTPClient
from .state import VariantStateStore

logger = logging.getLogger(__name__)

SERVICE_WORKER_URLS = {
    ClientVariant.MOBILE_WEB: "https://m.youtube.com/sw.js_data",
    ClientVariant.TV: "https://www.youtube.com/tv/sw.js_data",
}

XSSI_PREFIX = ")]}'"

_METADATA_PATH = (0, 2, 0, 0)
VISITOR_ID_INDEX = 13
CLIENT_VERSION_INDEX = 16


def parse_service_worker_metadata(text: str) -> list | None:
    """Parse a sw.js_data payload down to the nested metadata array."""
    if text.startswith(XSSI_PREFIX):
        text = text[len(XSSI_PREFIX) :]
    try:
        document = json.loads(text)
    except json.JSONDecodeError as e:
        logger.warning("Service worker data is not valid JSON: %s", e)
        return None
    if not isinstance(document, list):
        logger.warning("Service worker data is not a JSON array")
        return None

    metadata = traverse_obj(document, _METADATA_PATH)
    if not isinstance(metadata, list):
        logger.warning("Service worker data has no metadata array at [0][2][0][0]")
        return None
    return metadata


def _field(metadata: list, index: int) -> str | None:
    value = traverse_obj(metadata, (index,))
    if isinstance(value, (list, dict, bool)):
        return None
    return str_or_none(value)


class ServiceWorkerMetadataReader:
    """Fetches and memoises the service-worker metadata of each client variant."""

    def __init__(self, http: HTTPClient, store: VariantStateStore):
        self._http = http
        self._store = store

    def get_service_worker_metadata(self, variant: ClientVariant) -> list | None:
        return self._store.compute_once(variant, "service_worker", lambda: self._fetch(variant))

    def get_client_version(self, variant: ClientVariant) -> str | None:
        return self._store.compute_once(
            variant, "client_version", lambda: self._read(variant, CLIENT_VERSION_INDEX, "clientVersion")
        )

    def get_visitor_id(self, variant: ClientVariant) -> str | None:
        return self._store.compute_once(
            variant, "visitor_id", lambda: self._read(variant, VISITOR_ID_INDEX, "visitorId")
        )

    def _fetch(self, variant: ClientVariant) -> list | None:
        text = self._http.fetch(SERVICE_WORKER_URLS[variant], variant)
        if text is None:
            return None
        return parse_service_worker_metadata(text)

    def _read(self, variant: ClientVariant, index: int, name: str) -> str | None:
        metadata = self.get_service_worker_metadata(variant)
        if metadata is None:
            return None
        value = _field(metadata, index)
        if value is None:
            logger.warning("%s not found in service worker data (%s)", name, variant.value)
        else:
            logger.debug("%s: %s (%s)", name, value, variant.value)
        return value
