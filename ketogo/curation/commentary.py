"""
Commentary providers for approved items.

The pipeline only depends on ``CommentaryProvider.generate``; which variant
is active is a configuration choice. A provider never raises: a failed or
empty generation yields ``None`` and the item is published without a
micro-judgment.
"""

import json
from abc import ABC, abstractmethod
from typing import Dict, List, Optional

from openai import AsyncOpenAI

from ketogo.core.fingerprint import hash_mod
from ketogo.core.logging import get_logger
from ketogo.core.settings import Settings, get_settings

logger = get_logger(__name__)

# Minimal, dry, non-explanatory nods
STOCK_PHRASES = (
    "This exists.",
    "Someone approved this.",
    "No one stopped it.",
    "And yet, here we are.",
    "Perfectly normal, apparently.",
    "Reality remains employed.",
)

LANGUAGE_NAMES = {
    "en": "English",
    "it": "Italian",
    "es": "Spanish",
    "fr": "French",
    "de": "German",
}

SYSTEM_PROMPT = """
You are the quiet editor of a site that collects small oddities of everyday civilization.
For the item you receive, write one micro-judgment: a brief, dry, ironic nod.

RULES
- At most 8 words per language.
- Do not describe, summarise or explain the item.
- No emojis, no hashtags, no exclamation marks, no questions.
- Never mock people, tragedies or vulnerable groups.

OUTPUT
Return strictly valid JSON with exactly two keys, no markdown:
{{"{primary}": "<{primary_name} text>", "{secondary}": "<{secondary_name} text>"}}
""".strip()


class CommentaryProvider(ABC):
    """Abstract base class for commentary providers."""

    @property
    @abstractmethod
    def provider_name(self) -> str:
        """Provider identification name."""

    @abstractmethod
    async def generate(self, title: str, context: Optional[str] = None) -> Optional[str]:
        """
        Produce a micro-judgment for a title.

        Args:
            title: Item title
            context: Optional short description of the item

        Returns:
            Commentary text, or None when nothing could be produced
        """


class DeterministicCommentary(CommentaryProvider):
    """Hash-seeded pick from a fixed phrase list; identical titles get identical text."""

    def __init__(self, phrases: Optional[List[str]] = None):
        self.phrases = tuple(phrases) if phrases else STOCK_PHRASES

    @property
    def provider_name(self) -> str:
        return "deterministic"

    def pick(self, title: str) -> str:
        return self.phrases[hash_mod(title or "x", len(self.phrases))]

    async def generate(self, title: str, context: Optional[str] = None) -> Optional[str]:
        return self.pick(title)


class NoCommentary(CommentaryProvider):
    """Always publishes without commentary."""

    @property
    def provider_name(self) -> str:
        return "none"

    async def generate(self, title: str, context: Optional[str] = None) -> Optional[str]:
        return None


class LLMCommentary(CommentaryProvider):
    """Bilingual commentary from an OpenAI chat completion."""

    def __init__(
        self,
        api_key: str,
        model: str = "gpt-4o-mini",
        primary_lang: str = "en",
        secondary_lang: str = "it",
        timeout: float = 20.0,
        client: Optional[AsyncOpenAI] = None,
    ):
        self.model = model
        self.primary_lang = primary_lang
        self.secondary_lang = secondary_lang
        self.timeout = timeout
        self.client = client or AsyncOpenAI(api_key=api_key, timeout=timeout, max_retries=1)
        self.system_prompt = SYSTEM_PROMPT.format(
            primary=primary_lang,
            primary_name=LANGUAGE_NAMES.get(primary_lang, primary_lang),
            secondary=secondary_lang,
            secondary_name=LANGUAGE_NAMES.get(secondary_lang, secondary_lang),
        )

    @property
    def provider_name(self) -> str:
        return "llm"

    def _build_prompt(self, title: str, context: Optional[str]) -> str:
        prompt = f"Title: {title}"
        if context:
            prompt += f"\nContext: {context[:300]}"
        return prompt

    def parse_response(self, content: Optional[str]) -> Optional[Dict[str, str]]:
        """Extract both language texts from a model reply; None if malformed."""
        if not content:
            return None

        text = content.strip()
        if text.startswith("```"):
            text = text.strip("`")
            if text.lower().startswith("json"):
                text = text[4:]

        try:
            data = json.loads(text)
        except json.JSONDecodeError:
            logger.warning(f"Commentary response is not JSON: {content[:120]!r}")
            return None

        if not isinstance(data, dict):
            return None

        result = {}
        for lang in (self.primary_lang, self.secondary_lang):
            value = data.get(lang)
            if not isinstance(value, str) or not value.strip():
                logger.warning(f"Commentary response missing '{lang}' text")
                return None
            result[lang] = value.strip()
        return result

    async def generate_bilingual(self, title: str, context: Optional[str] = None) -> Optional[Dict[str, str]]:
        """Both language texts keyed by language code, or None on any failure."""
        if not title:
            return None

        try:
            response = await self.client.chat.completions.create(
                model=self.model,
                messages=[
                    {"role": "system", "content": self.system_prompt},
                    {"role": "user", "content": self._build_prompt(title, context)},
                ],
                temperature=0.7,
                max_tokens=120,
            )
            content = response.choices[0].message.content
        except Exception as e:
            logger.error(f"Commentary generation failed for '{title[:50]}': {e}")
            return None

        return self.parse_response(content)

    async def generate(self, title: str, context: Optional[str] = None) -> Optional[str]:
        texts = await self.generate_bilingual(title, context)
        if not texts:
            return None
        return texts[self.primary_lang]


class CommentaryFactory:
    """Factory for creating commentary provider instances."""

    _providers = {
        "deterministic": DeterministicCommentary,
        "none": NoCommentary,
        "llm": LLMCommentary,
    }

    @classmethod
    def create(cls, provider_type: Optional[str] = None, settings: Optional[Settings] = None) -> CommentaryProvider:
        """
        Create the configured provider.

        Unknown names, and ``llm`` without an API key, fall back to the
        deterministic provider.
        """
        settings = settings or get_settings()
        provider_type = (provider_type or settings.commentary_provider or "deterministic").lower()

        if provider_type not in cls._providers:
            logger.warning(f"Unknown commentary provider: {provider_type}, falling back to deterministic")
            provider_type = "deterministic"

        if provider_type == "llm":
            if not settings.openai_api_key:
                logger.warning("OPENAI_API_KEY not set, falling back to deterministic commentary")
                return DeterministicCommentary()
            return LLMCommentary(
                api_key=settings.openai_api_key,
                model=settings.openai_model,
                primary_lang=settings.commentary_primary_lang,
                secondary_lang=settings.commentary_secondary_lang,
                timeout=settings.openai_timeout,
            )

        return cls._providers[provider_type]()

    @classmethod
    def list_providers(cls) -> List[str]:
        """List available provider types."""
        return list(cls._providers.keys())
