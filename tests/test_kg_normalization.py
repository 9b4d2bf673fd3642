"""
Tests for name and token normalization.
"""

from __future__ import annotations

import pytest

from notegraph.kg.normalization import (
    UNKNOWN_ENTITY_NAME,
    capitalized_words,
    content_tokens,
    name_key,
    normalize_entity_name,
)


class TestEntityNames:
    @pytest.mark.parametrize(
        ("raw", "expected"),
        [
            ("  Acme  ", "Acme"),
            ("", UNKNOWN_ENTITY_NAME),
            ("   ", UNKNOWN_ENTITY_NAME),
            (None, UNKNOWN_ENTITY_NAME),
            ("Acme Corp.", "Acme Corp."),
        ],
    )
    def test_normalize(self, raw, expected) -> None:
        assert normalize_entity_name(raw) == expected

    def test_name_key_is_case_insensitive(self) -> None:
        assert name_key("ACME") == name_key(" acme ")

    def test_no_punctuation_folding(self) -> None:
        assert name_key("Acme Corp") != name_key("Acme Corp.")


class TestTokens:
    def test_short_tokens_dropped(self) -> None:
        assert content_tokens("The big red Pipeline") == {"pipeline"}

    def test_tokens_lowercased(self) -> None:
        assert content_tokens("DEPLOY Deploy deploy") == {"deploy"}

    def test_capitalized_words(self) -> None:
        text = "Sent IBM the Globex quote. initech is lowercase, Acme is not."
        assert capitalized_words(text) == ["Sent", "Globex", "Acme"]
