"""
Name and text normalization for matching.

Entity resolution is a case-insensitive EXACT match on the trimmed name.
There is deliberately no fuzzy matching: "Acme Corp" and "Acme Corp."
resolve as two entities. Token helpers here back note similarity and
knowledge topic deduplication.
"""

from __future__ import annotations

import re

UNKNOWN_ENTITY_NAME = "Unknown Entity"

# Tokens must be longer than this to count as content words
MIN_TOKEN_LENGTH = 3

_CAPITALIZED_WORD = re.compile(r"\b[A-Z][a-zA-Z0-9]+\b")


def normalize_entity_name(name: str | None) -> str:
    """
    Normalize a candidate entity name for storage.

    Trims surrounding whitespace; empty or blank names become the
    placeholder so resolution never fails on bad input.

    Examples:
        >>> normalize_entity_name("  Acme  ")
        'Acme'
        >>> normalize_entity_name("   ")
        'Unknown Entity'
    """
    if name is None:
        return UNKNOWN_ENTITY_NAME
    stripped = name.strip()
    return stripped or UNKNOWN_ENTITY_NAME


def name_key(name: str) -> str:
    """
    Lookup key for case-insensitive exact name matching.

    Examples:
        >>> name_key(" ACME Corp ")
        'acme corp'
    """
    return name.strip().lower()


def content_tokens(text: str, min_length: int = MIN_TOKEN_LENGTH) -> set[str]:
    """
    Lowercase whitespace-split tokens longer than min_length characters.

    Examples:
        >>> sorted(content_tokens("Deploy the Pipeline now"))
        ['deploy', 'pipeline']
    """
    return {token for token in text.lower().split() if len(token) > min_length}


def capitalized_words(text: str, min_length: int = 4) -> list[str]:
    """
    Capitalized words of at least min_length characters, in order of appearance.

    Examples:
        >>> capitalized_words("Met Acme and Globex at Initech")
        ['Acme', 'Globex', 'Initech']
    """
    return [w for w in _CAPITALIZED_WORD.findall(text) if len(w) >= min_length]
