"""
markers.py - Control markers embedded in coach replies

The coach model steers the lesson by appending bracketed tags to its reply:

    [PHASE_TRANSITION: guided|assessment]   request a phase advance
    [COMPREHENSION_CHECK: passed]           comprehension gate satisfied
    [HINT_GIVEN]                            a hint was given this turn
    [WRITING_PROMPT: "..."]                 show a micro-writing exercise
    [EXPECTS_RESPONSE]                      collect a short answer

Tags are case-insensitive, optional and order-independent. extract_markers()
tokenizes them, interpret() turns them into a typed CoachSignals record, and
strip_markers() removes every recognised tag from the display text. Tag
values that are not understood count as absent; they are still stripped.
Ordinary square brackets that do not start with a known tag name are left alone.
"""

import re
import logging
from typing import NamedTuple, Optional

from writewise.models.session import CoachSignals, Phase

logger = logging.getLogger(__name__)

_TAGS = (
    "PHASE_TRANSITION",
    "COMPREHENSION_CHECK_PASSED",
    "COMPREHENSION_CHECK",
    "HINT_GIVEN",
    "WRITING_PROMPT",
    "EXPECTS_RESPONSE",
)

_MARKER = (
    r"\[\s*(?P<tag>" + "|".join(_TAGS) + r")\s*"
    r"(?::\s*(?P<arg>\"[^\"]*\"|[^\]]*?)\s*)?\]"
)
_MARKER_RE = re.compile(_MARKER, re.IGNORECASE)
# A run of markers plus the spaces and tabs around it; newlines are never touched
_MARKER_RUN_RE = re.compile(r"(?P<before>[ \t]*)(?:" + _MARKER + r"[ \t]*)+", re.IGNORECASE)

_QUOTE_PAIRS = {'"': '"', "'": "'", "“": "”", "‘": "’"}

_REQUESTABLE_PHASES = {Phase.GUIDED, Phase.ASSESSMENT}


class Marker(NamedTuple):
    tag: str
    arg: Optional[str]


def _unquote(arg: str) -> str:
    arg = arg.strip()
    if len(arg) >= 2 and _QUOTE_PAIRS.get(arg[0]) == arg[-1]:
        return arg[1:-1].strip()
    return arg


def extract_markers(text: str) -> list[Marker]:
    """Every recognised marker in order of appearance."""
    markers = []
    for match in _MARKER_RE.finditer(text or ""):
        arg = match.group("arg")
        if arg is not None:
            arg = _unquote(arg)
        markers.append(Marker(match.group("tag").upper(), arg))
    return markers


def _close_gap(match: re.Match) -> str:
    # words on both sides keep one space between them
    run = match.group(0)
    return " " if match.group("before") and run[-1] in " \t" else ""


def strip_markers(text: str) -> str:
    """Remove every recognised marker from ``text``.

    Only the spaces touching a removed tag are collapsed; indentation and
    blank lines elsewhere survive. Text without markers comes back
    unchanged, so stripping is idempotent.
    """
    if not text or not _MARKER_RE.search(text):
        return text
    cleaned = text
    # Removing one tag can splice a new one together from its neighbours
    while _MARKER_RE.search(cleaned):
        cleaned = _MARKER_RUN_RE.sub(_close_gap, cleaned)
    return cleaned.strip()


def _phase_from_arg(arg: Optional[str]) -> Optional[Phase]:
    if not arg:
        return None
    try:
        phase = Phase(arg.strip().lower())
    except ValueError:
        logger.debug("Ignoring unknown transition target %r", arg)
        return None
    return phase if phase in _REQUESTABLE_PHASES else None


def interpret(raw_text: str) -> CoachSignals:
    """Turn a raw coach reply into display text plus typed control signals."""
    transition = None
    comprehension = False
    hint = False
    writing_prompt = None
    expects_response = False

    for marker in extract_markers(raw_text):
        if marker.tag == "PHASE_TRANSITION":
            requested = _phase_from_arg(marker.arg)
            if requested is not None:
                transition = requested
        elif marker.tag == "COMPREHENSION_CHECK_PASSED":
            comprehension = True
        elif marker.tag == "COMPREHENSION_CHECK":
            if (marker.arg or "").lower() == "passed":
                comprehension = True
        elif marker.tag == "HINT_GIVEN":
            hint = True
        elif marker.tag == "WRITING_PROMPT":
            if marker.arg:
                writing_prompt = marker.arg
        elif marker.tag == "EXPECTS_RESPONSE":
            expects_response = True

    return CoachSignals(
        display_text=strip_markers(raw_text or ""),
        transition_request=transition,
        comprehension_passed=comprehension,
        hint_given=hint,
        writing_prompt=writing_prompt,
        expects_response=expects_response,
    )
