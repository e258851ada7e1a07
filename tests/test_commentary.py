"""Tests for commentary providers."""

import json
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import pytest

from ketogo.core.fingerprint import hash_mod
from ketogo.core.settings import Settings
from ketogo.curation.commentary import (
    STOCK_PHRASES, CommentaryFactory, DeterministicCommentary, LLMCommentary, NoCommentary
)


def completion(content):
    """Shape of an OpenAI chat completion response."""
    return SimpleNamespace(choices=[SimpleNamespace(message=SimpleNamespace(content=content))])


@pytest.fixture
def mock_client():
    client = MagicMock()
    client.chat.completions.create = AsyncMock()
    return client


class TestDeterministicCommentary:
    """Hash-seeded stock phrases."""

    @pytest.mark.asyncio
    async def test_same_title_same_phrase(self):
        provider = DeterministicCommentary()
        first = await provider.generate("Weird lamp shaped like a cloud")
        second = await DeterministicCommentary().generate("Weird lamp shaped like a cloud")
        assert first == second
        assert first in STOCK_PHRASES

    @pytest.mark.asyncio
    async def test_phrase_index_is_hash_mod(self):
        provider = DeterministicCommentary()
        title = "Chair with a single leg"
        assert await provider.generate(title) == STOCK_PHRASES[hash_mod(title, len(STOCK_PHRASES))]

    @pytest.mark.asyncio
    async def test_empty_title_still_gets_phrase(self):
        assert await DeterministicCommentary().generate("") == STOCK_PHRASES[hash_mod("x", len(STOCK_PHRASES))]

    @pytest.mark.asyncio
    async def test_custom_phrases(self):
        provider = DeterministicCommentary(["Only this."])
        assert await provider.generate("anything") == "Only this."

    @pytest.mark.asyncio
    async def test_no_commentary(self):
        assert await NoCommentary().generate("Weird lamp") is None


class TestLLMCommentary:
    """OpenAI-backed bilingual commentary."""

    @pytest.fixture
    def provider(self, mock_client):
        return LLMCommentary(api_key="sk-test", client=mock_client)

    @pytest.mark.asyncio
    async def test_generate_returns_primary_language(self, provider, mock_client):
        mock_client.chat.completions.create.return_value = completion(
            json.dumps({"en": "It exists, regardless.", "it": "Esiste, comunque."})
        )

        result = await provider.generate("Weird lamp shaped like a cloud", "A lamp.")

        assert result == "It exists, regardless."
        kwargs = mock_client.chat.completions.create.call_args.kwargs
        assert kwargs["model"] == "gpt-4o-mini"
        assert kwargs["messages"][0]["role"] == "system"
        assert "Weird lamp shaped like a cloud" in kwargs["messages"][1]["content"]

    @pytest.mark.asyncio
    async def test_generate_bilingual(self, provider, mock_client):
        mock_client.chat.completions.create.return_value = completion(
            '```json\n{"en": "Someone approved this.", "it": "Qualcuno ha approvato."}\n```'
        )

        result = await provider.generate_bilingual("Spoon with a hole")

        assert result == {"en": "Someone approved this.", "it": "Qualcuno ha approvato."}

    @pytest.mark.asyncio
    async def test_api_failure_returns_none(self, provider, mock_client):
        mock_client.chat.completions.create.side_effect = RuntimeError("rate limited")
        assert await provider.generate("Weird lamp") is None

    @pytest.mark.asyncio
    @pytest.mark.parametrize("content", [
        None,
        "",
        "not json at all",
        '["en", "it"]',
        '{"en": "Only one language."}',
        '{"en": "Fine.", "it": "   "}',
    ])
    async def test_malformed_response_returns_none(self, provider, mock_client, content):
        mock_client.chat.completions.create.return_value = completion(content)
        assert await provider.generate("Weird lamp") is None

    @pytest.mark.asyncio
    async def test_empty_title_skips_request(self, provider, mock_client):
        assert await provider.generate("") is None
        mock_client.chat.completions.create.assert_not_called()

    def test_prompt_names_configured_languages(self, mock_client):
        provider = LLMCommentary(api_key="sk-test", primary_lang="en", secondary_lang="fr", client=mock_client)
        assert '"fr"' in provider.system_prompt
        assert "French" in provider.system_prompt


class TestCommentaryFactory:
    """Provider selection from settings."""

    def test_default_is_deterministic(self):
        provider = CommentaryFactory.create(settings=Settings())
        assert provider.provider_name == "deterministic"

    def test_none_provider(self):
        provider = CommentaryFactory.create("none", settings=Settings())
        assert isinstance(provider, NoCommentary)

    def test_unknown_provider_falls_back(self):
        provider = CommentaryFactory.create("poet", settings=Settings())
        assert isinstance(provider, DeterministicCommentary)

    def test_llm_without_key_falls_back(self):
        provider = CommentaryFactory.create(settings=Settings(commentary_provider="llm", openai_api_key=None))
        assert isinstance(provider, DeterministicCommentary)

    def test_llm_with_key(self):
        settings = Settings(commentary_provider="llm", openai_api_key="sk-test", openai_model="gpt-4o")
        provider = CommentaryFactory.create(settings=settings)
        assert isinstance(provider, LLMCommentary)
        assert provider.model == "gpt-4o"

    def test_list_providers(self):
        assert set(CommentaryFactory.list_providers()) == {"deterministic", "none", "llm"}
