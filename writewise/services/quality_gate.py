"""Cheap pre-scoring checks on a writing submission.

Runs before any model call so degenerate text gets a fast, friendly answer
and never costs a scoring request. Not a security boundary.
"""

import re
from typing import Optional

from writewise.models.assessment import QualityCheck
from writewise.services.catalog import Rubric

DEFAULT_MIN_WORDS = 10
MIN_VOWEL_WORD_RATIO = 0.4
MIN_UNIQUE_RATIO = 0.2
UNIQUE_CHECK_MIN_WORDS = 20

_VOWEL_RE = re.compile(r"[aeiouy]", re.IGNORECASE)
_ALPHA_RE = re.compile(r"[a-z]", re.IGNORECASE)
_PUNCT_RE = re.compile(r"^\W+|\W+$")

TOO_SHORT = "too_short"
GIBBERISH = "gibberish"


def min_words_for(rubric: Optional[Rubric]) -> int:
    """Half the rubric's lower word bound, never below 10."""
    if rubric is None:
        return DEFAULT_MIN_WORDS
    return max(DEFAULT_MIN_WORDS, rubric.word_range[0] // 2)


def _looks_like_gibberish(words: list[str]) -> bool:
    if not any(_ALPHA_RE.search(w) for w in words):
        return True

    vowel_words = sum(1 for w in words if _VOWEL_RE.search(w))
    if vowel_words / len(words) < MIN_VOWEL_WORD_RATIO:
        return True

    if len(words) >= UNIQUE_CHECK_MIN_WORDS:
        normalized = {_PUNCT_RE.sub("", w.lower()) for w in words}
        if len(normalized) / len(words) < MIN_UNIQUE_RATIO:
            return True

    return False


def check_submission(text: str, rubric: Optional[Rubric]) -> QualityCheck:
    words = (text or "").split()
    word_count = len(words)
    min_words = min_words_for(rubric)

    if word_count < min_words:
        return QualityCheck(
            valid=False,
            error=TOO_SHORT,
            message=(
                f"Your writing needs at least {min_words} words to be scored. "
                f"You have {word_count} so far. Keep going, you've got this!"
            ),
            word_count=word_count,
            min_words=min_words,
        )

    if _looks_like_gibberish(words):
        return QualityCheck(
            valid=False,
            error=GIBBERISH,
            message=(
                "Hmm, that doesn't look like real writing yet. "
                "Try writing real sentences about the topic. You can do it!"
            ),
            word_count=word_count,
            min_words=min_words,
        )

    return QualityCheck(valid=True, word_count=word_count, min_words=min_words)
