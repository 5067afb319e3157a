"""
Tests for the Briefrr facade: key management, one-shot generation, content providers
"""

import httpx
import pytest

from briefrr import Briefrr, Mode, create_memory_briefrr
from briefrr.exceptions import ExtractionError, InvalidCredentialError, ThrottledError
from briefrr.session.content import StaticContentProvider, TextFileContentProvider, cap_content

from fakes import PAGE_TEXT, FakeClock, RecordingView, ScriptedGemini, make_briefrr, stream_response


class TestKeyManagement:
    """Validation against the model endpoint and storage of the key"""

    @pytest.mark.asyncio
    async def test_valid_key_is_saved(self):
        gemini = ScriptedGemini(httpx.Response(200, json={"name": "models/gemini-2.5-flash-lite"}))
        briefrr = make_briefrr(gemini, FakeClock(), api_key=None)

        result = await briefrr.set_api_key("  AIzaSyExample1234  ")

        assert result.valid
        assert await briefrr.store.get_api_key() == "AIzaSyExample1234"
        assert await briefrr.store.is_onboarded()
        assert await briefrr.get_masked_api_key() == "••••••••1234"
        request = gemini.requests[0]
        assert request.method == "GET"
        assert request.url.path.endswith("/models/gemini-2.5-flash-lite")
        assert request.url.params["key"] == "AIzaSyExample1234"
        await briefrr.aclose()

    @pytest.mark.asyncio
    @pytest.mark.parametrize("response, error", [
        (httpx.Response(400, json={}), "INVALID_KEY"),
        (httpx.Response(403, json={}), "INVALID_KEY"),
        (httpx.Response(429, json={}), "RATE_LIMITED"),
        (httpx.Response(500, json={"error": {"message": "Backend error"}}), "Backend error"),
        (httpx.ConnectError("offline"), "NETWORK_ERROR"),
    ])
    async def test_rejected_key_is_not_saved(self, response, error):
        briefrr = make_briefrr(ScriptedGemini(response), FakeClock(), api_key=None)

        result = await briefrr.set_api_key("AIzaSyExample1234")

        assert not result.valid
        assert result.error == error
        assert await briefrr.store.get_api_key() is None
        await briefrr.aclose()

    def test_describe_key_error(self):
        assert Briefrr.describe_key_error("INVALID_KEY") == "Invalid API key. Please check and try again."
        assert Briefrr.describe_key_error("Backend error") == "Backend error"
        assert Briefrr.describe_key_error(None) == "Validation failed"

    @pytest.mark.asyncio
    async def test_clear_key(self):
        briefrr = create_memory_briefrr(api_key="AIzaSyExample1234")
        await briefrr.store.set_onboarded()

        await briefrr.clear_api_key()

        assert await briefrr.store.get_api_key() is None
        assert await briefrr.store.is_onboarded()
        assert await briefrr.get_masked_api_key() == "Not set"
        await briefrr.aclose()

    @pytest.mark.asyncio
    async def test_environment_key_seeds_store(self):
        briefrr = make_briefrr(ScriptedGemini(), FakeClock(), api_key=None)
        briefrr.config.gemini_api_key = "from-env"

        assert await briefrr.ensure_api_key() == "from-env"
        assert await briefrr.store.get_api_key() == "from-env"
        await briefrr.aclose()


class TestGenerate:
    """One-shot generation raising on failure"""

    @pytest.mark.asyncio
    async def test_returns_text(self):
        briefrr = make_briefrr(ScriptedGemini(stream_response("# Brief", "\n- point")), FakeClock())
        view = RecordingView()

        text = await briefrr.generate(StaticContentProvider(PAGE_TEXT), Mode.BRIEF, view=view)

        assert text == "# Brief\n- point"
        assert view.renders[-1] == ("# Brief\n- point", False)
        await briefrr.aclose()

    @pytest.mark.asyncio
    async def test_missing_key_raises(self):
        briefrr = make_briefrr(ScriptedGemini(), FakeClock(), api_key=None)

        with pytest.raises(InvalidCredentialError):
            await briefrr.generate(StaticContentProvider(PAGE_TEXT))
        await briefrr.aclose()

    @pytest.mark.asyncio
    async def test_throttled_raises_with_wait(self):
        gemini = ScriptedGemini(httpx.Response(429, json={}))
        briefrr = make_briefrr(gemini, FakeClock())

        with pytest.raises(ThrottledError) as exc_info:
            await briefrr.generate(StaticContentProvider(PAGE_TEXT))

        assert exc_info.value.remaining_ms == 60000
        assert gemini.calls == 1
        await briefrr.aclose()

    @pytest.mark.asyncio
    async def test_empty_query_raises(self):
        briefrr = make_briefrr(ScriptedGemini(), FakeClock())

        with pytest.raises(ValueError):
            await briefrr.generate(StaticContentProvider(PAGE_TEXT), Mode.QUERY, query="")
        await briefrr.aclose()

    @pytest.mark.asyncio
    async def test_stats(self):
        briefrr = create_memory_briefrr(api_key="AIzaSyExample1234")

        stats = await briefrr.get_stats()

        assert stats['api_key'] == "••••••••1234"
        assert stats['config']['storage_type'] == "memory"
        assert stats['rate_limit']['remaining_cooldown_ms'] == 0
        assert stats['storage']['backend'] == "InMemoryStateStore"
        await briefrr.aclose()


class TestContentProviders:
    """Text sources for the session"""

    def test_static_provider(self):
        article = StaticContentProvider(PAGE_TEXT, title="T", site_name="s").extract()

        assert article.title == "T"
        assert article.length == len(PAGE_TEXT)

    def test_cap_keeps_original_length(self):
        article = StaticContentProvider("a" * 60000).extract()

        assert len(article.content) == 50000
        assert article.length == 60000
        assert cap_content(article, 10).content == "a" * 10

    def test_text_file_provider(self, tmp_path):
        page = tmp_path / "saved-article.txt"
        page.write_text("# Why streaming matters\n\n" + PAGE_TEXT, encoding="utf-8")

        article = TextFileContentProvider(page, source_url="https://blog.example.com/post").extract()

        assert article.title == "Why streaming matters"
        assert article.site_name == "blog.example.com"
        assert PAGE_TEXT in article.content

    def test_missing_file(self, tmp_path):
        with pytest.raises(ExtractionError):
            TextFileContentProvider(tmp_path / "missing.txt").extract()
