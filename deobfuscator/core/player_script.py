"""
Player script location and the state derived from the script.

The player script url is either built from a hardcoded player path or
resolved from the iframe API page, which embeds the current player id as an
escaped path segment (``player\\/0004de42\\/``). A failed resolution resets
every memoised field of the variant so the next call retries the whole chain.
"""

import logging
import re
from collections.abc import Callable

from ..models.enums import ClientVariant
from .http_client import HTTPClient
from .signature_rules import PlayerRuleExtractor, RuleExtractor
from .state import VariantStateStore

logger = logging.getLogger(__name__)

PLAYER_JS_URL_FORMATS = {
    ClientVariant.MOBILE_WEB: "https://m.youtube.com/s/player/%s/player-plasma-ias-phone-en_US.vflset/base.js",
    ClientVariant.TV: "https://www.youtube.com/s/player/%s/tv-player-ias.vflset/tv-player-ias.js",
}

HARDCODED_PLAYER_PATHS = {
    ClientVariant.MOBILE_WEB: "0004de42",
    ClientVariant.TV: "0004de42",
}

IFRAME_API_URL = "https://www.youtube.com/iframe_api"

_PLAYER_JS_IDENTIFIER_RE = re.compile(r"player\\/([a-z0-9]{8})\\/")
_SIGNATURE_TIMESTAMP_RE = re.compile(r"signatureTimestamp[=:](\d+)")

ExtractorFactory = Callable[[str, bool], RuleExtractor]


def build_player_js_url(variant: ClientVariant, player_id: str) -> str:
    return PLAYER_JS_URL_FORMATS[variant] % player_id


def find_player_id(iframe_api: str) -> str | None:
    match = _PLAYER_JS_IDENTIFIER_RE.search(iframe_api)
    return match.group(1) if match else None


def find_signature_timestamp(script: str) -> int | None:
    match = _SIGNATURE_TIMESTAMP_RE.search(script)
    return int(match.group(1)) if match else None


class PlayerScriptLocator:
    """Resolves, fetches and interprets the player script of each client variant."""

    def __init__(
        self,
        http: HTTPClient,
        store: VariantStateStore,
        *,
        use_hardcoded_path: bool = True,
        use_ejs: bool = False,
        extractor_factory: ExtractorFactory = PlayerRuleExtractor,
    ):
        self._http = http
        self._store = store
        self._use_hardcoded_path = use_hardcoded_path
        self._use_ejs = use_ejs
        self._extractor_factory = extractor_factory

    def resolve_script_url(self, variant: ClientVariant) -> str | None:
        return self._store.compute_once(variant, "script_url", lambda: self._find_script_url(variant))

    def get_script(self, variant: ClientVariant) -> str | None:
        return self._store.compute_once(variant, "script_content", lambda: self._fetch_script(variant))

    def get_signature_timestamp(self, variant: ClientVariant) -> int | None:
        return self._store.compute_once(
            variant, "signature_timestamp", lambda: self._find_signature_timestamp(variant)
        )

    def get_extractor(self, variant: ClientVariant) -> RuleExtractor | None:
        return self._store.compute_once(variant, "extractor", lambda: self._create_extractor(variant))

    # ------------------------------------------------------------------
    # Computations
    # ------------------------------------------------------------------

    def _find_script_url(self, variant: ClientVariant) -> str | None:
        if self._use_hardcoded_path:
            return build_player_js_url(variant, HARDCODED_PLAYER_PATHS[variant])

        iframe_api = self._http.fetch(IFRAME_API_URL, variant)
        player_id = find_player_id(iframe_api) if iframe_api is not None else None
        if player_id is None:
            logger.warning("Player id not found in iframe API page (%s)", variant.value)
            self._store.reset(variant)
            return None

        url = build_player_js_url(variant, player_id)
        logger.debug("Player script url (%s): %s", variant.value, url)
        return url

    def _fetch_script(self, variant: ClientVariant) -> str | None:
        url = self.resolve_script_url(variant)
        if url is None:
            return None
        return self._http.fetch(url, variant) or None

    def _find_signature_timestamp(self, variant: ClientVariant) -> int | None:
        script = self.get_script(variant)
        if script is not None:
            timestamp = find_signature_timestamp(script)
            if timestamp is not None:
                logger.debug("signatureTimestamp (%s): %d", variant.value, timestamp)
                return timestamp
        logger.debug("signatureTimestamp not found (%s)", variant.value)
        return None

    def _create_extractor(self, variant: ClientVariant) -> RuleExtractor | None:
        script = self.get_script(variant)
        if script is None:
            return None
        try:
            return self._extractor_factory(script, self._use_ejs)
        except Exception:
            logger.exception("Could not create rule extractor (%s)", variant.value)
            return None
