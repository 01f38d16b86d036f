"""Tests for typed answer grading."""
import pytest

from kalima.services.answer_grading import (
    arabic_match,
    grade_arabic_answer,
    levenshtein,
    normalize_arabic,
    remove_harakat,
    split_forms,
)


def test_remove_harakat() -> None:
    assert remove_harakat("كِتَابٌ") == "كتاب"
    assert remove_harakat("كـتـاب") == "كتاب"


def test_normalize_arabic() -> None:
    """Test that spelling variants normalize to one form."""
    assert normalize_arabic("أحمد") == normalize_arabic("احمد")
    assert normalize_arabic("مدرسة") == normalize_arabic("مدرسه")
    assert normalize_arabic("مستشفى") == normalize_arabic("مستشفي")
    assert normalize_arabic(" كتاب؟ ") == "كتاب"


def test_split_forms() -> None:
    assert split_forms("كتاب، كتب") == ["كتاب", "كتب"]
    assert split_forms("قلم / أقلام") == ["قلم", "أقلام"]


def test_arabic_match() -> None:
    """Test matching against any accepted form."""
    assert arabic_match("كُتُب", "كتاب، كتب")
    assert arabic_match("مدرسه", "مدرسة")
    assert not arabic_match("قلم", "كتاب")
    assert not arabic_match("مدرسه", "مدرسة", strict=True)


def test_levenshtein() -> None:
    assert levenshtein("", "abc") == 3
    assert levenshtein("kitten", "sitting") == 3
    assert levenshtein("same", "same") == 0


@pytest.mark.parametrize(
    "answer,target,grade",
    [
        ("كتاب", "كتاب", 5),
        ("كِتَاب", "كتاب", 5),
        ("مدرسه", "مدرسة", 4),
        ("المدرسون", "المدرسين", 3),
        ("كتا", "كتاب", 2),
        ("قلم", "كتاب", 0),
        ("", "كتاب", 0),
    ],
)
def test_grade_arabic_answer(answer: str, target: str, grade: int) -> None:
    """Test the 0-5 grade of typed answers."""
    assert grade_arabic_answer(answer, target) == grade
