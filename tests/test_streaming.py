"""Tests for streaming url deobfuscation."""

import json
import threading

import pytest

from deobfuscator.core.clients import INNERTUBE_CLIENT_VERSIONS
from deobfuscator.core.service_worker import CLIENT_VERSION_INDEX, SERVICE_WORKER_URLS
from deobfuscator.core.signature_rules import SignatureRuleError
from deobfuscator.core.streaming import (
    StreamingUrlDeobfuscator,
    get_throttling_parameter,
    replace_throttling_parameter,
)
from deobfuscator.models.enums import ClientType, ClientVariant
from deobfuscator.models.request import StreamFormat, StreamingData
from conftest import TV_PLAYER_URL, FakeWeb

TV = ClientVariant.TV
CIPHER = "s=ABC&url=https%3A%2F%2Fx.test%2Fv%3Fn%3Dobf123"


class BrokenRuleExtractor:
    def extract_sig(self, value):
        raise SignatureRuleError("sig broke")

    def extract_nsig(self, value):
        raise SignatureRuleError("n broke")


# ── Url helpers ──────────────────────────────────────────────────────
class TestThrottlingParameter:
    @pytest.mark.parametrize(
        "url, expected",
        [
            ("https://x.test/v?n=obf123", "obf123"),
            ("https://x.test/v?a=1&n=obf123&b=2", "obf123"),
            ("https://x.test/v?a=1", None),
            ("https://x.test/v?nn=obf123", None),
            ("https://x.test/v?a=1&n=", None),
        ],
    )
    def test_get(self, url, expected):
        assert get_throttling_parameter(url) == expected

    def test_replace_first_occurrence_only(self):
        url = "https://x.test/v?n=abc&m=n=abc"
        assert replace_throttling_parameter(url, "abc", "xyz") == "https://x.test/v?n=xyz&m=n=abc"


# ── deobfuscate_streaming_url ────────────────────────────────────────
class TestDeobfuscateStreamingUrl:
    def test_signature_cipher_end_to_end(self, make_service):
        service = make_service()
        result = service.deobfuscate_streaming_url("vid", "cpn1", None, CIPHER, None, TV)
        assert result == "https://x.test/v?n=deobf1&sig=sig1&cpn=cpn1"

    def test_plain_url_with_po_token(self, make_service):
        service = make_service()
        result = service.deobfuscate_streaming_url(
            "vid", "cpn1", "https://x.test/v?n=obf123", None, "tok", TV
        )
        assert result == "https://x.test/v?n=deobf1&cpn=cpn1&pot=tok"

    def test_url_takes_precedence_over_cipher(self, make_service, fake_extractor):
        service = make_service()
        service.deobfuscate_streaming_url("vid", "", "https://x.test/v?a=1", CIPHER, None, TV)
        assert fake_extractor.sig_calls == []

    def test_without_n_only_appends(self, make_service, fake_extractor):
        service = make_service()
        result = service.deobfuscate_streaming_url("vid", "c", "https://x.test/v?a=1", None, "p", TV)
        assert result == "https://x.test/v?a=1&cpn=c&pot=p"
        assert fake_extractor.nsig_calls == []

    def test_empty_cpn_not_appended(self, make_service):
        service = make_service()
        result = service.deobfuscate_streaming_url("vid", "", "https://x.test/v?a=1", None, None, TV)
        assert result == "https://x.test/v?a=1"

    def test_no_url_and_no_cipher(self, make_service):
        service = make_service()
        assert service.deobfuscate_streaming_url("vid", "c", None, None, None, TV) is None
        assert service.deobfuscate_streaming_url("vid", "c", "", "", None, TV) is None

    def test_cache_hit_skips_rule(self, make_service, fake_extractor):
        service = make_service()
        first = service.deobfuscate_streaming_url("vid", "", "https://x.test/v?n=obf123", None, None, TV)
        second = service.deobfuscate_streaming_url("vid", "", "https://y.test/v?n=obf123", None, None, TV)
        assert first == "https://x.test/v?n=deobf1"
        assert second == "https://y.test/v?n=deobf1"
        assert fake_extractor.nsig_calls == ["obf123"]
        assert service.cache.get("obf123") == "deobf1"

    def test_prefilled_cache_is_used(self, make_service, fake_extractor):
        service = make_service()
        service.cache.put("obf999", "cached")
        result = service.deobfuscate_streaming_url("vid", "", "https://x.test/v?n=obf999", None, None, TV)
        assert result == "https://x.test/v?n=cached"
        assert fake_extractor.nsig_calls == []

    def test_failed_n_rule_passes_url_through(self, make_service):
        service = make_service()
        url = "https://x.test/v?n=unknown"
        assert service.deobfuscate_streaming_url("vid", "c", url, None, None, TV) == url + "&cpn=c"
        assert "unknown" not in service.cache

    def test_raising_n_rule_passes_url_through(self, make_service):
        service = make_service(extractor_factory=lambda script, use_ejs: BrokenRuleExtractor())
        url = "https://x.test/v?n=obf123"
        assert service.deobfuscate_streaming_url("vid", "", url, None, None, TV) == url

    def test_missing_player_passes_url_through(self, fake_extractor):
        service = StreamingUrlDeobfuscator(
            FakeWeb().client(),
            use_ejs=False,
            use_hardcoded_player_path=True,
            extractor_factory=lambda script, use_ejs: fake_extractor,
        )
        url = "https://x.test/v?n=obf123"
        assert service.deobfuscate_streaming_url("vid", "", url, None, None, TV) == url


class TestSignatureCipher:
    @pytest.mark.parametrize(
        "cipher, expected",
        [
            (CIPHER, "https://x.test/v?n=deobf1&sig=sig1"),
            ("sp=sig&s=ABC&url=https%3A%2F%2Fx.test%2Fv%3Fn%3Dobf123", "https://x.test/v?n=deobf1&sig=sig1"),
            ("s=ABC&sp=sig&url=https%3A%2F%2Fx.test%2Fv", "https://x.test/v&sig=sig1"),
        ],
    )
    def test_recombination(self, make_service, cipher, expected):
        service = make_service()
        assert service.deobfuscate_streaming_url("vid", "", None, cipher, None, TV) == expected

    def test_s_value_is_url_decoded(self, make_service, fake_extractor):
        fake_extractor.sig["A+B/C"] = "sig2"
        service = make_service()
        cipher = "s=A%2BB%2FC&url=https%3A%2F%2Fx.test%2Fv"
        assert service.deobfuscate_streaming_url("vid", "", None, cipher, None, TV) == (
            "https://x.test/v&sig=sig2"
        )
        assert fake_extractor.sig_calls == ["A+B/C"]

    def test_invalid_utf8_in_s_is_decoded_leniently(self, make_service, fake_extractor):
        fake_extractor.sig["A\ufffdB"] = "sig3"
        service = make_service()
        cipher = "s=A%FFB&url=https%3A%2F%2Fx.test%2Fv"
        assert service.deobfuscate_streaming_url("vid", "", None, cipher, None, TV) == (
            "https://x.test/v&sig=sig3"
        )

    @pytest.mark.parametrize(
        "cipher",
        [
            "url=https%3A%2F%2Fx.test%2Fv",
            "s=ABC",
            "url=https%3A%2F%2Fx.test%2Fv&s=ABC",
            "s=UNKNOWN&url=https%3A%2F%2Fx.test%2Fv",
        ],
    )
    def test_unusable_cipher_returns_none(self, make_service, cipher):
        service = make_service()
        assert service.deobfuscate_streaming_url("vid", "", None, cipher, None, TV) is None

    def test_raising_sig_rule_returns_none(self, make_service):
        service = make_service(extractor_factory=lambda script, use_ejs: BrokenRuleExtractor())
        assert service.deobfuscate_streaming_url("vid", "", None, CIPHER, None, TV) is None

    def test_missing_player_returns_none(self, fake_extractor):
        service = StreamingUrlDeobfuscator(
            FakeWeb().client(),
            use_ejs=False,
            use_hardcoded_player_path=True,
            extractor_factory=lambda script, use_ejs: fake_extractor,
        )
        assert service.deobfuscate_streaming_url("vid", "", None, CIPHER, None, TV) is None


class TestConcurrency:
    def test_parallel_requests_agree(self, make_service):
        service = make_service()
        results: list[str | None] = []
        lock = threading.Lock()

        def work():
            for _ in range(20):
                url = service.deobfuscate_streaming_url("vid", "cpn1", None, CIPHER, None, TV)
                with lock:
                    results.append(url)

        workers = [threading.Thread(target=work) for _ in range(8)]
        for w in workers:
            w.start()
        for w in workers:
            w.join()

        assert len(results) == 160
        assert set(results) == {"https://x.test/v?n=deobf1&sig=sig1&cpn=cpn1"}


# ── deobfuscate_streaming_data ───────────────────────────────────────
class TestDeobfuscateStreamingData:
    def test_all_formats(self, make_service):
        service = make_service()
        data = StreamingData(
            adaptive_formats=[
                StreamFormat(itag=251, signature_cipher=CIPHER),
                StreamFormat(itag=137, url="https://x.test/a?n=obf123"),
            ],
            formats=[StreamFormat(itag=18, url="https://x.test/p?n=obf123")],
            server_abr_streaming_url="https://x.test/abr?n=obf123",
        )
        result = service.deobfuscate_streaming_data("vid", data, "tok", TV)
        assert result.adaptive_formats == [
            "https://x.test/v?n=deobf1&sig=sig1&pot=tok",
            "https://x.test/a?n=deobf1&pot=tok",
        ]
        assert result.formats == ["https://x.test/p?n=deobf1&pot=tok"]
        assert result.server_abr_streaming_url == "https://x.test/abr?n=deobf1&pot=tok"

    def test_empty_adaptive_formats(self, make_service):
        service = make_service()
        data = StreamingData(formats=[StreamFormat(itag=18, url="https://x.test/p")])
        assert service.deobfuscate_streaming_data("vid", data, None, TV) is None

    def test_failed_adaptive_format_fails_all(self, make_service):
        service = make_service()
        data = StreamingData(
            adaptive_formats=[
                StreamFormat(itag=137, url="https://x.test/a"),
                StreamFormat(itag=251, signature_cipher="s=UNKNOWN&url=https%3A%2F%2Fx.test%2Fv"),
            ]
        )
        assert service.deobfuscate_streaming_data("vid", data, None, TV) is None

    def test_failed_progressive_format_drops_group(self, make_service):
        service = make_service()
        data = StreamingData(
            adaptive_formats=[StreamFormat(itag=137, url="https://x.test/a")],
            formats=[
                StreamFormat(itag=18, url="https://x.test/p"),
                StreamFormat(itag=22),
            ],
        )
        result = service.deobfuscate_streaming_data("vid", data, None, TV)
        assert result.adaptive_formats == ["https://x.test/a"]
        assert result.formats == []
        assert result.server_abr_streaming_url is None


# ── Warm-up and lookups ──────────────────────────────────────────────
class TestInitialize:
    def test_runs_once_until_reset(self, make_service):
        service = make_service()
        assert service.is_initialized is False
        assert service.initialize_javascript() is True
        assert service.is_initialized is True
        assert service.initialize_javascript() is False
        service.reset_all()
        assert service.is_initialized is False
        assert service.initialize_javascript() is True

    def test_populates_enabled_variants(self, make_service):
        service = make_service(use_mobile_web=False)
        service.initialize_javascript()
        assert service.store.get(TV).script_content is not None
        assert service.store.get(TV).signature_timestamp == 20131
        assert service.store.get(ClientVariant.MOBILE_WEB).is_empty()

    def test_reset_forgets_state_and_refetches(self, make_service, fake_web):
        service = make_service()
        service.get_signature_timestamp(TV)
        service.reset_all()
        assert service.store.get(TV).is_empty()
        assert service.get_signature_timestamp(TV) == 20131
        assert fake_web.count(TV_PLAYER_URL) == 2

    def test_reset_keeps_nsig_cache(self, make_service):
        service = make_service()
        service.cache.put("obf123", "deobf1")
        service.reset_all()
        assert service.cache.get("obf123") == "deobf1"


class TestEnabledVariants:
    def test_mobile_web_enabled(self, make_service):
        assert make_service(use_mobile_web=True).enabled_variants == [TV, ClientVariant.MOBILE_WEB]

    def test_mobile_web_disabled(self, make_service):
        assert make_service(use_mobile_web=False).enabled_variants == [TV]


class TestClientVersion:
    def _sw_data(self, version: str) -> str:
        metadata = [None] * 20
        metadata[CLIENT_VERSION_INDEX] = version
        return ")]}'" + json.dumps([[None, None, [[metadata]]]])

    def test_hardcoded_without_ejs(self, make_service, fake_web):
        fake_web.routes[SERVICE_WORKER_URLS[TV]] = self._sw_data("7.99999999.00.00")
        service = make_service(use_ejs=False)
        assert service.get_client_version(ClientType.TV) == INNERTUBE_CLIENT_VERSIONS[ClientType.TV]

    def test_service_worker_with_ejs(self, make_service, fake_web):
        fake_web.routes[SERVICE_WORKER_URLS[TV]] = self._sw_data("7.99999999.00.00")
        service = make_service(use_ejs=True)
        assert service.get_client_version(ClientType.TV) == "7.99999999.00.00"

    def test_ejs_falls_back_to_hardcoded(self, make_service):
        service = make_service(use_ejs=True)
        assert service.get_client_version(ClientType.MWEB) == INNERTUBE_CLIENT_VERSIONS[ClientType.MWEB]

    def test_client_without_variant(self, make_service):
        service = make_service(use_ejs=True)
        assert service.get_client_version(ClientType.IOS) == INNERTUBE_CLIENT_VERSIONS[ClientType.IOS]


class TestHardcodedPlayerPathDefault:
    def test_follows_ejs(self):
        web = FakeWeb()
        service = StreamingUrlDeobfuscator(web.client(), use_ejs=True)
        assert service.locator.resolve_script_url(TV) is None
        assert len(web.requests) == 1

    def test_hardcoded_without_ejs(self):
        web = FakeWeb()
        service = StreamingUrlDeobfuscator(web.client(), use_ejs=False)
        assert service.locator.resolve_script_url(TV) == TV_PLAYER_URL
        assert web.requests == []
