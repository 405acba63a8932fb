"""
Validation and clean-up rules for changelog summaries.
"""

from __future__ import annotations

import re
import unicodedata
from typing import List, Optional

MIN_CHANGELOG_LENGTH = 10
MAX_CHANGELOG_LENGTH = 1000
MAX_LINE_LENGTH = 100
MAX_LINES = 20
MAX_SPECIAL_CHAR_RATIO = 0.3

_ALLOWED_PUNCTUATION = set(".,!?-_")
_TERMINAL_PUNCTUATION = (".", "!", "?")
_WORD_SPLIT = re.compile(r"\W+")


def _is_control(c: str) -> bool:
    return unicodedata.category(c) == "Cc"


def _first_run_length(items: List[str]) -> int:
    count = 1
    for item in items[1:]:
        if item != items[0]:
            break
        count += 1
    return count


def is_meaningless(text: Optional[str]) -> bool:
    """
    True for filler such as "aaaaaa", "!!!", "asdf asdf asdf" or fewer than
    three words.
    """
    if not text:
        return True

    if len(text) > 5 and _first_run_length(list(text)) > 5:
        return True

    if not any(c.isalnum() for c in text):
        return True

    words = _WORD_SPLIT.split(text.lower())
    if len(words) > 2 and words[0] and _first_run_length(words) >= 3:
        return True

    return len(re.sub(r"[^\w]", " ", text).split()) < 3


def _repeated_word_errors(text: str) -> List[str]:
    words = _WORD_SPLIT.split(text.lower())
    for i, word in enumerate(words[:-1]):
        if not word:
            continue
        count = _first_run_length(words[i:])
        if count >= 3:
            return [f"Word '{word}' is repeated {count} times consecutively"]
    return []


def validate_changelog(text: Optional[str], is_update: bool = False) -> List[str]:
    """
    Validate a changelog summary.

    Returns the list of problems found; an empty list means the text is
    acceptable. An empty summary is only an error for updates.
    """
    errors: List[str] = []

    if not text or not text.strip():
        if is_update:
            errors.append("Changelog is required for updates")
        return errors

    text = text.strip()

    if len(text) < MIN_CHANGELOG_LENGTH:
        errors.append(f"Changelog must be at least {MIN_CHANGELOG_LENGTH} characters long")
    if len(text) > MAX_CHANGELOG_LENGTH:
        errors.append(f"Changelog must not exceed {MAX_CHANGELOG_LENGTH} characters")

    if is_meaningless(text):
        errors.append("Changelog must contain meaningful content")

    lines = text.split("\n")
    for number, line in enumerate(lines, start=1):
        if len(line) > MAX_LINE_LENGTH:
            errors.append(f"Line {number} exceeds maximum length of {MAX_LINE_LENGTH} characters")
    if len(lines) > MAX_LINES:
        errors.append(f"Changelog must not exceed {MAX_LINES} lines")

    for position, c in enumerate(text, start=1):
        if _is_control(c) and c not in "\n\r\t":
            errors.append(f"Changelog contains invalid control character at position {position}")
            break

    special = sum(
        1 for c in text if not c.isalnum() and not c.isspace() and c not in _ALLOWED_PUNCTUATION
    )
    if special / len(text) > MAX_SPECIAL_CHAR_RATIO:
        errors.append("Changelog contains too many special characters")

    if not text.endswith(_TERMINAL_PUNCTUATION):
        errors.append("Changelog should end with proper punctuation (. ! ?)")
    if "  " in text or "\t\t" in text:
        errors.append("Changelog contains excessive whitespace")
    if text[0].islower():
        errors.append("Changelog should start with a capital letter")

    errors.extend(_repeated_word_errors(text))
    return errors


def sanitize_changelog(text: Optional[str]) -> Optional[str]:
    """
    Replace stray control characters, collapse whitespace and make sure the
    summary ends with terminal punctuation.
    """
    if not text:
        return text

    cleaned = "".join(
        c if not _is_control(c) or c in "\n\r\t" else " "
        for c in text
    )
    cleaned = re.sub(r"[ \t]+", " ", cleaned)
    cleaned = re.sub(r"\n[ \t]+", "\n", cleaned)
    cleaned = re.sub(r"\n{2,}", "\n", cleaned)
    cleaned = cleaned.strip()

    if cleaned and not cleaned.endswith(_TERMINAL_PUNCTUATION):
        cleaned += "."
    return cleaned
