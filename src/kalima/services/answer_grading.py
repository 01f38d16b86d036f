"""Grading of typed Arabic answers."""
import re
from typing import List

HARAKAT = re.compile(r"[\u064B-\u065F\u0670]")
TATWEEL = re.compile(r"\u0640")
ALIF_VARIANTS = re.compile(r"[أإآٱ]")
PUNCTUATION = re.compile(r"[؟،؛\s.,:;!?'\"()\-]")
FORM_SEPARATORS = re.compile(r"[،,;/]+")


def remove_harakat(text: str) -> str:
    """Strip short-vowel marks and tatweel."""
    return TATWEEL.sub("", HARAKAT.sub("", text))


def normalize_arabic(text: str) -> str:
    """Normalize spelling variants that should not count as mistakes."""
    s = remove_harakat(text.strip())
    s = ALIF_VARIANTS.sub("ا", s)
    s = s.replace("ة", "ه")
    s = s.replace("ى", "ي")
    return PUNCTUATION.sub("", s)


def split_forms(text: str) -> List[str]:
    """Split a target such as "كتاب، كتب" into its accepted forms."""
    return [form.strip() for form in FORM_SEPARATORS.split(text) if form.strip()]


def arabic_match(answer: str, target: str, strict: bool = False) -> bool:
    """True when the answer matches one of the accepted forms."""
    if strict:
        return answer.strip() == target.strip()
    normalized = normalize_arabic(answer)
    return any(normalize_arabic(form) == normalized for form in split_forms(target))


def levenshtein(a: str, b: str) -> int:
    """Edit distance between two strings."""
    if len(a) < len(b):
        a, b = b, a
    previous = list(range(len(b) + 1))
    for i, char_a in enumerate(a, 1):
        current = [i]
        for j, char_b in enumerate(b, 1):
            if char_a == char_b:
                current.append(previous[j - 1])
            else:
                current.append(1 + min(previous[j], current[j - 1], previous[j - 1]))
        previous = current
    return previous[-1]


def grade_arabic_answer(answer: str, target: str) -> int:
    """Grade a typed answer on the 0-5 scale.

    5 for the exact letters, 4 for a match after normalization, then 3, 2 or 1
    by similarity (at least 0.85, 0.6 or 0.4), 0 otherwise.
    """
    normalized = normalize_arabic(answer)
    best = 0
    for form in split_forms(target):
        form_normalized = normalize_arabic(form)
        if normalized == form_normalized:
            if remove_harakat(answer.strip()) == remove_harakat(form.strip()):
                return 5
            best = max(best, 4)
            continue

        longest = max(len(normalized), len(form_normalized))
        if longest == 0:
            continue
        similarity = 1 - levenshtein(normalized, form_normalized) / longest
        if similarity >= 0.85:
            best = max(best, 3)
        elif similarity >= 0.6:
            best = max(best, 2)
        elif similarity >= 0.4:
            best = max(best, 1)
    return best
