"""
Tests for logging, settings, provider plumbing, cache, page fetch,
catalog loading and ambiguity detection.
"""

import json
import shutil

import httpx
import pytest


class TestLogging:
    """Structured logging tests."""

    def _record(self, msg):
        import logging
        return logging.LogRecord(
            name="claimrisk.test",
            level=logging.INFO,
            pathname="test.py",
            lineno=1,
            msg=msg,
            args=(),
            exc_info=None,
        )

    def test_json_formatter(self):
        from claimrisk.logging import JSONFormatter

        parsed = json.loads(JSONFormatter().format(self._record("Test message")))
        assert parsed["level"] == "INFO"
        assert parsed["message"] == "Test message"
        assert parsed["logger"] == "claimrisk.test"
        assert "timestamp" in parsed

    def test_json_formatter_extra_fields(self):
        from claimrisk.logging import JSONFormatter

        record = self._record("Job completed")
        record.job_id = "abc"
        record.score = 7.4
        record.not_whitelisted = "hidden"
        parsed = json.loads(JSONFormatter().format(record))
        assert parsed["job_id"] == "abc"
        assert parsed["score"] == 7.4
        assert "not_whitelisted" not in parsed

    def test_process_context(self):
        import os
        from claimrisk.logging import JSONFormatter, ProcessContextFilter

        record = self._record("Worker started")
        assert ProcessContextFilter("worker").filter(record) is True
        parsed = json.loads(JSONFormatter().format(record))
        assert parsed["component"] == "worker"
        assert parsed["pid"] == os.getpid()

    def test_text_formatter_appends_job(self):
        from claimrisk.logging import TextFormatter

        record = self._record("Job claimed")
        record.job_id = "abc"
        assert TextFormatter().format(record).endswith("Job claimed [job abc]")

    def test_get_logger(self):
        from claimrisk.logging import get_logger
        assert get_logger("worker").name == "claimrisk.worker"


class TestSettings:
    """Defaults that the worker and API rely on."""

    def test_worker_defaults(self):
        from claimrisk.config import Settings
        s = Settings()
        assert s.MAX_ATTEMPTS >= 1
        assert s.STALE_AFTER_SECONDS > 0
        assert s.ENGINE_VERSION

    def test_settings_frozen(self):
        import dataclasses
        from claimrisk.config import settings
        with pytest.raises(dataclasses.FrozenInstanceError):
            settings.MAX_ATTEMPTS = 10


# ============================================================
# PROVIDER
# ============================================================

class TestProvider:
    """Provider interface, circuit breaker and factory."""

    def test_circuit_opens_after_threshold(self):
        from claimrisk.llm.gemini import CircuitBreaker
        cb = CircuitBreaker(failure_threshold=3, recovery_timeout=60)
        cb.record_failure()
        cb.record_failure()
        assert not cb.is_open
        cb.record_failure()
        assert cb.is_open
        cb.record_success()
        assert cb.state == "closed"

    def test_circuit_half_open_after_timeout(self):
        from claimrisk.llm.gemini import CircuitBreaker
        cb = CircuitBreaker(failure_threshold=1, recovery_timeout=0)
        cb.record_failure()
        assert cb.state == "half-open"

    def test_transient_classification(self):
        import asyncio
        from claimrisk.llm.gemini import is_transient
        assert is_transient(asyncio.TimeoutError())
        assert is_transient(RuntimeError("503 Service Unavailable"))
        assert not is_transient(ValueError("invalid argument"))

    @pytest.mark.asyncio
    async def test_missing_key_trips_breaker(self):
        from claimrisk.errors import CircuitOpenError, ProviderError
        from claimrisk.llm.gemini import GeminiProvider

        provider = GeminiProvider()
        provider._api_key = ""
        for _ in range(3):
            with pytest.raises(ProviderError):
                await provider.generate("hi")
        with pytest.raises(CircuitOpenError):
            await provider.generate("hi")

    def _scripted_provider(self, monkeypatch, errors):
        from types import SimpleNamespace
        from claimrisk.llm import gemini

        calls = []
        pending = list(errors)

        async def generate_content(model, contents, config):
            calls.append(model)
            if pending:
                raise pending.pop(0)
            return SimpleNamespace(text="ok")

        monkeypatch.setattr(gemini, "RETRY_BASE_DELAY", 0)
        provider = gemini.GeminiProvider(api_key="test-key", model="gemini-2.5-pro")
        provider._client = SimpleNamespace(
            aio=SimpleNamespace(models=SimpleNamespace(generate_content=generate_content))
        )
        return provider, calls

    @pytest.mark.asyncio
    async def test_non_transient_error_is_not_retried(self, monkeypatch):
        from claimrisk.errors import ProviderError, TransientProviderError

        provider, calls = self._scripted_provider(
            monkeypatch, [RuntimeError("400 INVALID_ARGUMENT")],
        )
        with pytest.raises(ProviderError) as exc:
            await provider.generate("hi")
        assert not isinstance(exc.value, TransientProviderError)
        assert calls == ["gemini-2.5-pro"]

    @pytest.mark.asyncio
    async def test_transient_errors_end_on_fallback_model(self, monkeypatch):
        from claimrisk.errors import TransientProviderError
        from claimrisk.llm.gemini import FALLBACK_MODEL, MAX_CALL_ATTEMPTS

        provider, calls = self._scripted_provider(
            monkeypatch, [RuntimeError("503 Service Unavailable")] * 5,
        )
        with pytest.raises(TransientProviderError):
            await provider.generate("hi")
        assert len(calls) == MAX_CALL_ATTEMPTS
        assert calls == ["gemini-2.5-pro", "gemini-2.5-pro", FALLBACK_MODEL]

    @pytest.mark.asyncio
    async def test_fallback_model_answers(self, monkeypatch):
        from claimrisk.llm.gemini import FALLBACK_MODEL

        provider, calls = self._scripted_provider(
            monkeypatch, [RuntimeError("429 rate limited"), RuntimeError("503 overloaded")],
        )
        assert await provider.generate("hi") == "ok"
        assert provider.last_model == FALLBACK_MODEL
        assert provider.circuit_breaker.state == "closed"
        assert len(calls) == 3

    @pytest.mark.asyncio
    async def test_generate_json_strips_fences(self):
        from tests.conftest import MockLLM
        llm = MockLLM(['```json\n{"candidates": []}\n```'])
        assert await llm.generate_json("q") == {"candidates": []}

    def test_extract_json_from_prose(self):
        from claimrisk.llm import extract_json
        text = 'Here you go:\n{"candidates": [{"id": "a"}]}\nHope that helps.'
        assert extract_json(text) == {"candidates": [{"id": "a"}]}

    @pytest.mark.asyncio
    async def test_generate_json_invalid(self):
        from claimrisk.errors import ProviderError
        from tests.conftest import MockLLM
        llm = MockLLM(["not json"])
        with pytest.raises(ProviderError):
            await llm.generate_json("q")

    def test_unknown_provider(self):
        from claimrisk.llm.factory import get_provider
        with pytest.raises(ValueError):
            get_provider("nope")


# ============================================================
# CACHE
# ============================================================

class TestTTLCache:
    """Disambiguation cache behavior."""

    @pytest.mark.asyncio
    async def test_hit_and_miss(self):
        from claimrisk.cache import TTLCache
        cache = TTLCache(ttl_seconds=60)
        assert await cache.get("JOVS") is None
        await cache.put("JOVS", ["a"])
        assert await cache.get("  jovs ") == ["a"]
        assert cache.stats["hits"] == 1
        assert cache.stats["misses"] == 1

    @pytest.mark.asyncio
    async def test_expiry(self):
        from claimrisk.cache import TTLCache
        cache = TTLCache(ttl_seconds=-1)
        await cache.put("q", ["a"])
        assert await cache.get("q") is None
        assert cache.stats["entries"] == 0

    @pytest.mark.asyncio
    async def test_eviction(self):
        from claimrisk.cache import TTLCache
        cache = TTLCache(ttl_seconds=60, max_entries=2)
        await cache.put("a", 1)
        await cache.put("b", 2)
        await cache.put("c", 3)
        assert cache.stats["entries"] == 2
        assert await cache.get("c") == 3

    @pytest.mark.asyncio
    async def test_invalidate(self):
        from claimrisk.cache import TTLCache
        cache = TTLCache()
        await cache.put("a", 1)
        await cache.invalidate("a")
        assert await cache.get("a") is None


# ============================================================
# PAGE FETCH
# ============================================================

class TestFetch:
    """HTML reduction and the never-raising fetch."""

    def test_html_to_text(self):
        from claimrisk.fetch import html_to_text
        html = (
            "<html><head><style>p {color: red}</style>"
            "<script>var x = '<b>';</script></head>"
            "<body><h1>Miracle&nbsp;Serum</h1>\n<p>Tom &amp; Jerry&#8217;s   pick</p></body></html>"
        )
        text = html_to_text(html)
        assert "color" not in text
        assert "var x" not in text
        assert "Miracle Serum" in text
        assert "Tom & Jerry\u2019s pick" in text

    def test_html_to_text_decodes_named_and_numeric_entities(self):
        from claimrisk.fetch import html_to_text
        text = html_to_text("<p>5 &lt; 6 &eacute;t&eacute; &#x2014; caf&#233;</p>")
        assert text == "5 < 6 \u00e9t\u00e9 \u2014 caf\u00e9"

    def test_truncation(self):
        from claimrisk.fetch import TRUNCATION_MARKER, html_to_text
        text = html_to_text("<p>" + "a" * 100 + "</p>", max_chars=10)
        assert text == "a" * 10 + TRUNCATION_MARKER

    @pytest.mark.asyncio
    async def test_fetch_success(self):
        from claimrisk.fetch import USER_AGENT, fetch_page_text

        seen = {}

        def handler(request):
            seen["ua"] = request.headers["user-agent"]
            return httpx.Response(200, text="<p>Hello product</p>")

        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            result = await fetch_page_text("https://example.com/p", client=client)
        assert result.success
        assert result.content == "Hello product"
        assert seen["ua"] == USER_AGENT

    @pytest.mark.asyncio
    async def test_fetch_non_200(self):
        from claimrisk.fetch import fetch_page_text

        transport = httpx.MockTransport(lambda request: httpx.Response(404))
        async with httpx.AsyncClient(transport=transport) as client:
            result = await fetch_page_text("https://example.com/missing", client=client)
        assert not result.success
        assert result.error == "HTTP 404"
        assert result.status_code == 404

    @pytest.mark.asyncio
    async def test_fetch_network_error(self):
        from claimrisk.fetch import fetch_page_text

        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            result = await fetch_page_text("https://example.com/p", client=client)
        assert not result.success
        assert "connection refused" in result.error


# ============================================================
# CATALOG
# ============================================================

class TestCatalogLoading:
    """Configuration files are validated at load time."""

    def test_packaged_catalog_loads(self, catalog):
        assert catalog.archetypes
        assert "apple" in catalog.commodities.terms
        assert catalog.scoring.detection.fallback.id == "general"

    def test_missing_directory(self, tmp_path):
        from claimrisk.catalog import load_catalog
        from claimrisk.errors import CatalogError
        with pytest.raises(CatalogError):
            load_catalog(tmp_path / "nope")

    def test_weights_must_sum_to_one(self, tmp_path, catalog):
        from claimrisk.catalog import load_catalog
        from claimrisk.errors import CatalogError

        data = tmp_path / "data"
        shutil.copytree(catalog.source_dir, data)
        scoring = json.loads((data / "scoring.json").read_text())
        scoring["weights"]["harm_potential"] = 0.5
        (data / "scoring.json").write_text(json.dumps(scoring))
        with pytest.raises(CatalogError, match="sum to 1"):
            load_catalog(data)

    def test_invalid_json(self, tmp_path, catalog):
        from claimrisk.catalog import load_catalog
        from claimrisk.errors import CatalogError

        data = tmp_path / "data"
        shutil.copytree(catalog.source_dir, data)
        (data / "archetypes.json").write_text("{broken")
        with pytest.raises(CatalogError, match="not valid JSON"):
            load_catalog(data)


# ============================================================
# AMBIGUITY
# ============================================================

class TestAmbiguity:
    """Short queries that need a meaning picked before scoring."""

    @pytest.mark.parametrize("query, reason", [
        ("apple", "known_ambiguous_term"),
        ("JOVS", "all_caps_acronym"),
        ("iPhone", "mixed_case_brand"),
        ("V8", "alphanumeric_brand"),
        ("minoxidil", "lowercase_single_word"),
    ])
    def test_ambiguous(self, catalog, query, reason):
        from claimrisk.disambiguation import check_ambiguity
        check = check_ambiguity(query, catalog.commodities)
        assert check.ambiguous
        assert check.reason == reason

    @pytest.mark.parametrize("query", [
        "a blue ceramic mug",
        "www.example.com",
        "serum 500mg",
        "broccoli",
    ])
    def test_not_ambiguous(self, catalog, query):
        from claimrisk.disambiguation import is_ambiguous
        assert not is_ambiguous(query, catalog.commodities)

    def test_normalize_candidates(self):
        from claimrisk.disambiguation import normalize_candidates
        raw = {"candidates": [
            {"id": "Low One", "label": "Low", "category_hint": "general", "confidence": 0.1},
            {"id": "high", "label": "High", "category_hint": "general", "confidence": 7},
            {"id": "nan", "label": "NaN", "category_hint": "general", "confidence": "x"},
            {"label": "missing id", "category_hint": "general"},
            "not a dict",
        ]}
        out = normalize_candidates(raw)
        assert [c.id for c in out] == ["high", "nan", "low-one"]
        assert out[0].confidence == 1.0
        assert out[1].confidence == 0.5

    def test_normalize_caps_at_five(self):
        from claimrisk.disambiguation import MAX_CANDIDATES, normalize_candidates
        raw = [
            {"id": f"c{i}", "label": str(i), "category_hint": "general", "confidence": i / 10}
            for i in range(1, 9)
        ]
        out = normalize_candidates(raw)
        assert len(out) == MAX_CANDIDATES
        assert out[0].id == "c8"

    def test_not_a_list(self):
        from claimrisk.disambiguation import normalize_candidates
        assert normalize_candidates({"candidates": "nope"}) == []
