"""Service for managing words in the system."""
import csv
import json
import logging
from datetime import UTC, datetime
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Union

from sqlalchemy.orm import Session

from kalima.models.models import Example, Word

logger = logging.getLogger(__name__)

_BASE36 = "0123456789abcdefghijklmnopqrstuvwxyz"


def _to_base36(value: int) -> str:
    if value == 0:
        return "0"
    digits = []
    while value:
        value, remainder = divmod(value, 36)
        digits.append(_BASE36[remainder])
    return "".join(reversed(digits))


def stable_word_id(arabic_raw: str) -> str:
    """Deterministic word id derived from the raw Arabic form.

    A 32-bit rolling hash over the UTF-16 code units, written in base 36 with a
    "w" prefix. Importing the same raw form twice yields the same id.
    """
    data = arabic_raw.encode("utf-16-le")
    value = 0
    for i in range(0, len(data), 2):
        unit = data[i] | (data[i + 1] << 8)
        value = ((value << 5) - value + unit) & 0xFFFFFFFF
    if value >= 0x80000000:
        value -= 0x100000000
    return "w" + _to_base36(abs(value))


class WordService:
    """Service for managing words in the system."""

    def __init__(self, db: Session):
        """Initialize the service with a database session."""
        self.db = db

    def get_word(self, word_id: str) -> Optional[Word]:
        """Get a word by its ID."""
        return self.db.query(Word).filter(Word.id == word_id).first()

    def get_word_by_arabic(self, arabic_raw: str) -> Optional[Word]:
        """Get a word by its raw Arabic form."""
        return self.db.query(Word).filter(Word.arabic_raw == arabic_raw.strip()).first()

    def list_words(self) -> List[Word]:
        """Get all words."""
        return self.db.query(Word).order_by(Word.id).all()

    def count(self) -> int:
        """Get the count of words in the database."""
        return self.db.query(Word).count()

    def import_entries(self, entries: Iterable[Dict[str, str]]) -> List[Word]:
        """Import word-list entries with ``ar``, ``en`` and ``nl`` keys.

        Entries are de-duplicated by their raw Arabic form; words that already
        exist are returned unchanged.
        """
        words: List[Word] = []
        seen = set()
        created = 0
        for entry in entries:
            arabic_raw = (entry.get("ar") or "").strip()
            if not arabic_raw or arabic_raw in seen:
                continue
            seen.add(arabic_raw)

            word_id = stable_word_id(arabic_raw)
            word = self.get_word(word_id)
            if word is None:
                word = Word(
                    id=word_id,
                    arabic_raw=arabic_raw,
                    english=(entry.get("en") or "").strip(),
                    dutch=(entry.get("nl") or "").strip(),
                    synonyms_ar=[],
                    synonyms_en=[],
                    synonyms_nl=[],
                )
                self.db.add(word)
                created += 1
            words.append(word)

        self.db.commit()
        logger.info(f"Imported {len(words)} words ({created} new)")
        return words

    def load_word_list(self, path: Union[str, Path]) -> List[Word]:
        """Import a CSV (``ar,en,nl`` header) or JSON word list."""
        path = Path(path)
        if not path.exists():
            raise ValueError(f"Word list {path} not found")

        with path.open(encoding="utf-8") as handle:
            if path.suffix.lower() == ".json":
                entries = json.load(handle)
            else:
                entries = list(csv.DictReader(handle))
        logger.info(f"Loaded {len(entries)} entries from {path}")
        return self.import_entries(entries)

    def update_word(self, word_id: str, **kwargs) -> Optional[Word]:
        """Update a word's attributes."""
        word = self.get_word(word_id)
        if not word:
            return None

        for key, value in kwargs.items():
            if hasattr(word, key):
                setattr(word, key, value)

        self.db.commit()
        self.db.refresh(word)
        return word

    def set_examples(self, word: Word, examples: Iterable[Any]) -> Word:
        """Replace the example sentences of a word."""
        word.examples = [self._make_example(example, position) for position, example in enumerate(examples)]
        self.db.commit()
        return word

    def add_examples(self, word: Word, examples: Iterable[Any]) -> Word:
        """Append example sentences to a word."""
        start = len(word.examples)
        for offset, example in enumerate(examples):
            word.examples.append(self._make_example(example, start + offset))
        self.db.commit()
        return word

    def apply_enrichment(self, word: Word, result) -> Word:
        """Store generated content on a word.

        The English and Dutch glosses from the word list are never overwritten.
        """
        word.arabic_vowelized = result.arabic_vowelized or word.arabic_vowelized
        word.transliteration = result.transliteration or word.transliteration
        word.pos = result.pos or word.pos
        word.synonyms_ar = list(result.synonyms_ar)
        word.synonyms_en = list(result.synonyms_en)
        word.synonyms_nl = list(result.synonyms_nl)
        word.notes = result.notes
        word.ai_generated = True
        word.ai_error = False
        word.updated_at = datetime.now(UTC)
        self.set_examples(word, result.examples)
        logger.info(f"Applied enrichment to word {word.id}")
        return word

    def mark_enrichment_failed(self, word: Word) -> Word:
        """Flag a word whose enrichment failed."""
        word.ai_error = True
        self.db.commit()
        return word

    def get_word_details(self, word_id: str) -> Optional[Dict[str, Any]]:
        """Get detailed information about a word."""
        word = self.get_word(word_id)
        if not word:
            return None

        return {
            "id": word.id,
            "arabic_raw": word.arabic_raw,
            "arabic_vowelized": word.arabic_vowelized,
            "transliteration": word.transliteration,
            "pos": word.pos,
            "english": word.english,
            "dutch": word.dutch,
            "synonyms_ar": list(word.synonyms_ar or []),
            "synonyms_en": list(word.synonyms_en or []),
            "synonyms_nl": list(word.synonyms_nl or []),
            "examples": [example.to_dict() for example in word.examples],
            "notes": word.notes,
            "ai_generated": word.ai_generated,
            "ai_error": word.ai_error,
        }

    @staticmethod
    def _make_example(example: Any, position: int) -> Example:
        if isinstance(example, dict):
            ar, en, nl = example.get("ar", ""), example.get("en", ""), example.get("nl", "")
        else:
            ar, en, nl = example.ar, example.en, example.nl
        return Example(position=position, ar=ar, en=en, nl=nl)
