"""Text chunking utilities for research content."""

import re

_SENTENCE_BOUNDARY = re.compile(r"(?<=[.!?])\s+")
_PARAGRAPH_BOUNDARY = re.compile(r"\n\s*\n")


def _sentence_units(text: str, max_words: int) -> list[list[str]]:
    """Split text into sentences (as word lists), none longer than max_words."""
    units: list[list[str]] = []
    for paragraph in _PARAGRAPH_BOUNDARY.split(text):
        for sentence in _SENTENCE_BOUNDARY.split(paragraph.strip()):
            words = sentence.split()
            for start in range(0, len(words), max_words):
                piece = words[start : start + max_words]
                if piece:
                    units.append(piece)
    return units


def chunk_words(text: str, min_words: int = 200, max_words: int = 400) -> list[str]:
    """
    Split text into chunks of roughly min_words to max_words words.

    Sentence boundaries are kept where possible. A chunk is only cut short of
    min_words when the text runs out; a short tail is merged into the
    previous chunk when the result stays within max_words.

    Args:
        text: Text to chunk
        min_words: Preferred minimum words per chunk
        max_words: Hard maximum words per chunk

    Returns:
        List of chunk strings

    Raises:
        ValueError: If min_words is not positive or exceeds max_words
    """
    if min_words <= 0 or min_words > max_words:
        raise ValueError(
            f"min_words ({min_words}) must be positive and not exceed max_words ({max_words})"
        )

    if not text or not text.strip():
        return []

    chunks: list[list[str]] = []
    current: list[str] = []

    for unit in _sentence_units(text, max_words):
        if len(current) + len(unit) <= max_words:
            current.extend(unit)
            continue

        if len(current) >= min_words:
            chunks.append(current)
            current = list(unit)
            continue

        # Current chunk is still short: fill it from this sentence
        room = max_words - len(current)
        current.extend(unit[:room])
        chunks.append(current)
        current = list(unit[room:])

    if current:
        if chunks and len(current) < min_words and len(chunks[-1]) + len(current) <= max_words:
            chunks[-1].extend(current)
        else:
            chunks.append(current)

    return [" ".join(words) for words in chunks]


def word_count(text: str) -> int:
    """Count whitespace-separated words."""
    return len(text.split())
