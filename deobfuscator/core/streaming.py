"""
Streaming url deobfuscation.

Turns the url-bearing fields of a streaming format into a playable url:

1. The base url is the format's ``url`` or, failing that, the url rebuilt
   from its ``signatureCipher`` (``s`` run through the player's signature
   rule, appended as ``&sig=``).
2. The ``n`` throttling parameter of the base url is replaced by its
   deobfuscated form, from the cache when the same value was seen before.
3. ``&cpn=`` and ``&pot=`` are appended when present.

No step raises to the caller. A failed signature yields None; a failed n
rule leaves the url with its obfuscated n (playback may be throttled but
still works).
"""

import logging
import re
import threading

from ..config import get_settings
from ..models.enums import ClientType, ClientVariant
from ..models.request import StreamingData
from ..models.response import DeobfuscatedStreamingData
from ..utils.helpers import search_group, url_decode
from .clients import get_hardcoded_client_version
from .http_client import HTTPClient
from .nsig_cache import ThrottlingParameterCache
from .player_script import ExtractorFactory, PlayerScriptLocator
from .service_worker import ServiceWorkerMetadataReader
from .signature_rules import PlayerRuleExtractor, SignatureRuleError
from .state import VariantStateStore

logger = logging.getLogger(__name__)

_N_PARAM_RE = re.compile(r"[&?]n=([^&]+)")
_S_PARAM_RE = re.compile(r"s=([^&]+)")
_URL_PARAM_RE = re.compile(r"&url=([^&]+)")


def get_throttling_parameter(streaming_url: str) -> str | None:
    """The obfuscated n value of *streaming_url*, if it has one."""
    if "&n=" not in streaming_url and "?n=" not in streaming_url:
        return None
    return search_group(_N_PARAM_RE, streaming_url)


def replace_throttling_parameter(streaming_url: str, obfuscated: str, deobfuscated: str) -> str:
    return streaming_url.replace(f"n={obfuscated}", f"n={deobfuscated}", 1)


class StreamingUrlDeobfuscator:
    """
    Process-wide deobfuscation service.

    Owns the per-variant state (player script, rule extractor, service-worker
    metadata) and the n parameter cache shared by every request.
    """

    def __init__(
        self,
        http: HTTPClient | None = None,
        *,
        use_ejs: bool | None = None,
        use_mobile_web: bool | None = None,
        use_hardcoded_player_path: bool | None = None,
        extractor_factory: ExtractorFactory = PlayerRuleExtractor,
        cache: ThrottlingParameterCache | None = None,
    ):
        settings = get_settings()
        self.use_ejs = settings.use_ejs if use_ejs is None else use_ejs
        self.use_mobile_web = settings.use_mobile_web if use_mobile_web is None else use_mobile_web
        if use_hardcoded_player_path is None:
            if settings.use_hardcoded_player_path is None:
                use_hardcoded_player_path = not self.use_ejs
            else:
                use_hardcoded_player_path = settings.use_hardcoded_player_path

        self.http = http or HTTPClient()
        self.store = VariantStateStore()
        self.locator = PlayerScriptLocator(
            self.http,
            self.store,
            use_hardcoded_path=use_hardcoded_player_path,
            use_ejs=self.use_ejs,
            extractor_factory=extractor_factory,
        )
        self.service_worker = ServiceWorkerMetadataReader(self.http, self.store)
        self.cache = cache if cache is not None else ThrottlingParameterCache()

        self._init_lock = threading.Lock()
        self._init_generation: int | None = None

    @property
    def enabled_variants(self) -> list[ClientVariant]:
        if self.use_mobile_web:
            return [ClientVariant.TV, ClientVariant.MOBILE_WEB]
        return [ClientVariant.TV]

    @property
    def is_initialized(self) -> bool:
        return self._init_generation == self.store.generation

    # ------------------------------------------------------------------
    # Warm-up
    # ------------------------------------------------------------------

    def initialize_javascript(self) -> bool:
        """
        Download the player scripts and build the rule extractors up front.

        Fetching and parsing the script takes a few seconds, so this is meant
        to run in the background before the first video. Returns False when
        the state is already initialised.
        """
        with self._init_lock:
            if self.is_initialized:
                return False
            self._init_generation = self.store.generation

        for variant in self.enabled_variants:
            self.locator.get_extractor(variant)
            self.locator.get_script(variant)
            self.locator.resolve_script_url(variant)
            self.locator.get_signature_timestamp(variant)
            if self.use_ejs:
                self.service_worker.get_client_version(variant)
            if self.use_ejs or variant is ClientVariant.MOBILE_WEB:
                self.service_worker.get_service_worker_metadata(variant)
            if variant is ClientVariant.MOBILE_WEB:
                self.service_worker.get_visitor_id(variant)

        logger.info(
            "Player JavaScript initialized for %s",
            ", ".join(v.value for v in self.enabled_variants),
        )
        return True

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    def get_signature_timestamp(self, variant: ClientVariant) -> int | None:
        return self.locator.get_signature_timestamp(variant)

    def get_visitor_id(self, variant: ClientVariant) -> str | None:
        return self.service_worker.get_visitor_id(variant)

    def get_client_version(self, client_type: ClientType) -> str:
        """The service-worker client version in EJS mode, else the hardcoded one."""
        variant = client_type.variant
        if self.use_ejs and variant is not None:
            client_version = self.service_worker.get_client_version(variant)
            if client_version:
                return client_version
        return get_hardcoded_client_version(client_type)

    # ------------------------------------------------------------------
    # Deobfuscation
    # ------------------------------------------------------------------

    def deobfuscate_streaming_url(
        self,
        video_id: str,
        cpn: str,
        url: str | None,
        signature_cipher: str | None,
        po_token: str | None,
        variant: ClientVariant,
    ) -> str | None:
        """
        Build the playable url of one streaming format.

        Returns None only when no base url could be obtained.
        """
        stream_url = None
        if url:
            stream_url = url
        elif signature_cipher:
            stream_url = self._url_from_signature_cipher(video_id, signature_cipher, variant)

        if not stream_url:
            return None

        deobfuscated_url = self._deobfuscate_throttling_parameter(video_id, stream_url, variant)
        if cpn:
            deobfuscated_url += f"&cpn={cpn}"
        if po_token:
            deobfuscated_url += f"&pot={po_token}"
        return deobfuscated_url

    def deobfuscate_streaming_data(
        self,
        video_id: str,
        streaming_data: StreamingData,
        po_token: str | None,
        variant: ClientVariant,
    ) -> DeobfuscatedStreamingData | None:
        """
        Deobfuscate every url of a player response's streaming data.

        Adaptive formats are all-or-nothing: an empty list or any failed
        format returns None. Progressive formats are dropped as a group when
        one of them fails.
        """
        if not streaming_data.adaptive_formats:
            logger.debug("AdaptiveFormats is empty, videoId: %s", video_id)
            return None

        adaptive_formats = []
        for fmt in streaming_data.adaptive_formats:
            deobfuscated_url = self.deobfuscate_streaming_url(
                video_id, "", fmt.url, fmt.signature_cipher, po_token, variant
            )
            if not deobfuscated_url:
                logger.warning(
                    "Failed to decrypt n-sig or signatureCipher (itag %s), videoId: %s",
                    fmt.itag,
                    video_id,
                )
                return None
            adaptive_formats.append(deobfuscated_url)

        formats = []
        for fmt in streaming_data.formats:
            deobfuscated_url = self.deobfuscate_streaming_url(
                video_id, "", fmt.url, fmt.signature_cipher, po_token, variant
            )
            if not deobfuscated_url:
                logger.debug("Failed to decrypt progressive format (itag %s)", fmt.itag)
                formats = []
                break
            formats.append(deobfuscated_url)

        server_abr_streaming_url = streaming_data.server_abr_streaming_url
        if server_abr_streaming_url:
            server_abr_streaming_url = self.deobfuscate_streaming_url(
                video_id, "", server_abr_streaming_url, None, po_token, variant
            )

        return DeobfuscatedStreamingData(
            adaptive_formats=adaptive_formats,
            formats=formats,
            server_abr_streaming_url=server_abr_streaming_url,
        )

    def _url_from_signature_cipher(
        self, video_id: str, signature_cipher: str, variant: ClientVariant
    ) -> str | None:
        """Streaming url (n still obfuscated) rebuilt from a signatureCipher."""
        try:
            s_param = search_group(_S_PARAM_RE, signature_cipher)
            url_param = search_group(_URL_PARAM_RE, signature_cipher)
            if s_param and url_param:
                extractor = self.locator.get_extractor(variant)
                if extractor is not None:
                    sig = extractor.extract_sig(url_decode(s_param))
                    if sig:
                        logger.debug("Converted signatureCipher to url, videoId: %s", video_id)
                        return f"{url_decode(url_param)}&sig={sig}"
        except SignatureRuleError as e:
            logger.warning("Signature rule failed, videoId: %s: %s", video_id, e)
        except Exception:
            logger.exception("Converting signatureCipher failed, videoId: %s", video_id)

        logger.debug("Failed to convert signatureCipher, videoId: %s", video_id)
        return None

    def _deobfuscate_throttling_parameter(
        self, video_id: str, streaming_url: str, variant: ClientVariant
    ) -> str:
        """*streaming_url* with its n parameter deobfuscated, or unchanged."""
        try:
            obfuscated = get_throttling_parameter(streaming_url)
            if not obfuscated:
                logger.debug("'n' parameter not found in streaming url, videoId: %s", video_id)
                return streaming_url

            cached = self.cache.get(obfuscated)
            if cached is not None:
                logger.debug("Cached 'n' parameter found, videoId: %s", video_id)
                return replace_throttling_parameter(streaming_url, obfuscated, cached)

            extractor = self.locator.get_extractor(variant)
            if extractor is not None:
                deobfuscated = extractor.extract_nsig(obfuscated)
                if deobfuscated:
                    self.cache.put(obfuscated, deobfuscated)
                    logger.debug(
                        "Deobfuscated 'n' parameter, videoId: %s, %s -> %s",
                        video_id,
                        obfuscated,
                        deobfuscated,
                    )
                    return replace_throttling_parameter(streaming_url, obfuscated, deobfuscated)
        except SignatureRuleError as e:
            logger.warning("n rule failed, videoId: %s: %s", video_id, e)
        except Exception:
            logger.exception("Deobfuscating 'n' parameter failed, videoId: %s", video_id)

        logger.debug("Failed to deobfuscate 'n' parameter, videoId: %s", video_id)
        return streaming_url

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def reset_all(self):
        """Forget every player script, extractor and service-worker value."""
        self.store.reset()
        logger.info("Deobfuscation state reset")

    def close(self):
        self.http.close()


# ------------------------------------------------------------------
# Thread-safe singleton
# ------------------------------------------------------------------

_singleton_lock = threading.Lock()
_deobfuscator: StreamingUrlDeobfuscator | None = None


def get_deobfuscator() -> StreamingUrlDeobfuscator:
    global _deobfuscator
    if _deobfuscator is None:
        with _singleton_lock:
            # Double-checked locking
            if _deobfuscator is None:
                _deobfuscator = StreamingUrlDeobfuscator()
    return _deobfuscator
