"""Enrichment of words with generated learning content.

The trainer only reads the resulting ``examples`` to decide which exercise
types a word can get; everything else is shown to the learner as is.
"""
import json
import logging
from typing import List, Optional

from openai import OpenAI, OpenAIError
from pydantic import BaseModel, Field, ValidationError

from kalima.config import EnrichmentSettings, settings

logger = logging.getLogger(__name__)

SYSTEM_PROMPT = """You are an Arabic language teaching assistant. Given an Arabic word or phrase (MSA), produce detailed learning data as a JSON object.

Rules:
- Treat the input as Modern Standard Arabic. Pick the most common MSA meaning.
- arabic_vowelized: add full harakat for correct MSA pronunciation.
- transliteration: simplified consistent system (sh=ش, kh=خ, gh=غ, 3=ع, H=ح, S=ص, D=ض, T=ط, Z=ظ, th=ث, dh=ذ, q=ق).
- Keep translations short (1-4 words).
- Provide exactly {examples_count} example sentences in "examples" as objects with "ar", "en" and "nl". Each must be short (4-8 words), natural MSA, clearly using the word.
- synonyms_ar, synonyms_en, synonyms_nl: 0-{max_synonyms} index-aligned entries, only if confident.
- notes: brief usage note or empty string.
- Always provide BOTH English AND Dutch.
Keys: arabic_vowelized, transliteration, pos, english, dutch, synonyms_ar, synonyms_en, synonyms_nl, examples, notes."""

MORE_EXAMPLES_PROMPT = (
    "Generate {examples_count} NEW short MSA example sentences using the given Arabic word. "
    'Return a JSON object {{"examples": [{{"ar": ..., "en": ..., "nl": ...}}]}}. '
    "Each sentence should be 4-8 words, natural MSA."
)


class EnrichmentError(RuntimeError):
    """Raised when enrichment content could not be produced."""


class ExampleSentence(BaseModel):
    """Example sentence with its English and Dutch glosses."""
    ar: str
    en: str = ""
    nl: str = ""


class EnrichmentResult(BaseModel):
    """Generated content for one word."""
    arabic_vowelized: str = ""
    transliteration: str = ""
    pos: str = ""
    english: str = ""
    dutch: str = ""
    synonyms_ar: List[str] = Field(default_factory=list, max_length=3)
    synonyms_en: List[str] = Field(default_factory=list, max_length=3)
    synonyms_nl: List[str] = Field(default_factory=list, max_length=3)
    examples: List[ExampleSentence] = Field(default_factory=list)
    notes: str = ""


class ExamplesResult(BaseModel):
    examples: List[ExampleSentence] = Field(default_factory=list)


class EnrichmentService:
    """Fetches enrichment content from the OpenAI chat completions API."""

    def __init__(
        self,
        client: Optional[OpenAI] = None,
        model: Optional[str] = None,
        config: Optional[EnrichmentSettings] = None,
    ):
        self.config = config or settings.enrichment
        self.model = model or self.config.model
        self._client = client

    @property
    def client(self) -> OpenAI:
        """Get or create the OpenAI client."""
        if self._client is None:
            if not self.config.api_key:
                raise EnrichmentError("OPENAI_API_KEY is not set")
            self._client = OpenAI(api_key=self.config.api_key)
        return self._client

    def _complete(self, system_prompt: str, user_prompt: str, temperature: float) -> str:
        try:
            response = self.client.chat.completions.create(
                model=self.model,
                messages=[
                    {"role": "system", "content": system_prompt},
                    {"role": "user", "content": user_prompt},
                ],
                response_format={"type": "json_object"},
                temperature=temperature,
                max_tokens=self.config.max_tokens,
            )
        except OpenAIError as e:
            logger.error(f"Enrichment request failed: {e}")
            raise EnrichmentError(f"Enrichment request failed: {e}") from e

        content = response.choices[0].message.content if response.choices else None
        if not content:
            raise EnrichmentError("Empty enrichment response")
        return content

    def enrich(self, word) -> EnrichmentResult:
        """Generate vowelization, transliteration, synonyms and examples for a word."""
        logger.info(f"Enriching word {word.id} ({word.arabic_raw})")
        system_prompt = SYSTEM_PROMPT.format(
            examples_count=self.config.examples_count,
            max_synonyms=self.config.max_synonyms,
        )
        content = self._complete(
            system_prompt,
            f"Arabic word/phrase: {word.arabic_raw}",
            self.config.temperature,
        )
        try:
            return EnrichmentResult.model_validate_json(content)
        except ValidationError as e:
            logger.error(f"Invalid enrichment for word {word.id}: {e}")
            raise EnrichmentError(f"Invalid enrichment content for word {word.id}") from e

    def generate_more_examples(self, word) -> List[ExampleSentence]:
        """Generate additional example sentences for a word."""
        logger.info(f"Generating more examples for word {word.id}")
        content = self._complete(
            MORE_EXAMPLES_PROMPT.format(examples_count=self.config.examples_count),
            word.arabic_raw,
            0.7,
        )
        try:
            data = json.loads(content)
            if isinstance(data, list):
                data = {"examples": data}
            return ExamplesResult.model_validate(data).examples
        except (ValueError, ValidationError) as e:
            logger.error(f"Invalid examples for word {word.id}: {e}")
            raise EnrichmentError(f"Invalid examples content for word {word.id}") from e
